"""
Configuration aggregate for the meshbloom engine.

A single mutable ``EngineState`` holds every tunable parameter plus the
live energy value. It is owned by the orchestrator and passed by reference
to each component; nothing caches a copy across frames.
"""

import copy
from dataclasses import dataclass, field, fields
from typing import Dict, Tuple

REACTIVITY_CHANNELS: Tuple[str, ...] = (
    "morph_speed",
    "scale",
    "glow",
    "blur",
    "brightness",
)

BACKGROUND_STYLES: Tuple[str, ...] = ("solid", "linear", "radial", "mesh", "field")

BLEND_MODES: Tuple[str, ...] = (
    "source-over",
    "screen",
    "multiply",
    "overlay",
    "lighten",
    "darken",
    "soft-light",
)

TIMING_FUNCTIONS: Tuple[str, ...] = (
    "linear",
    "ease",
    "ease-in",
    "ease-out",
    "ease-in-out",
)

ENERGY_PRESETS: Dict[str, float] = {
    "idle": 0.05,
    "speaking": 0.5,
    "loud": 0.95,
}

# Colour fields validated as #rrggbb before they reach the renderer
COLOR_FIELDS: Tuple[str, ...] = (
    "color1",
    "color2",
    "color3",
    "bg_color1",
    "bg_color2",
    "bg_color3",
    "bg_color4",
    "bg_color5",
)

# Fields that invalidate the generated control points
POINT_FIELDS: Tuple[str, ...] = ("seed", "bg_complexity", "bg_color_count", "bg_style")

# Live signal, never serialised
TRANSIENT_FIELDS: Tuple[str, ...] = ("energy",)

MAX_BG_COLORS = 5

# Slider bounds; restored and commanded values are clamped into these
FIELD_RANGES: Dict[str, Tuple[float, float]] = {
    "extra_points": (0, 12),
    "randomness": (0, 20),
    "size": (50, 600),
    "duration": (200.0, 10000.0),
    "opacity": (0.0, 100.0),
    "edge_blur": (0.0, 60.0),
    "glow_intensity": (0.0, 100.0),
    "x_pos": (0.0, 100.0),
    "y_pos": (0.0, 100.0),
    "energy": (0.0, 1.0),
    "sensitivity": (0.1, 10.0),
    "smoothing": (0.0, 0.99),
    "reactivity_amount": (0.0, 100.0),
    "bg_color_count": (2, MAX_BG_COLORS),
    "bg_angle": (0.0, 360.0),
    "bg_speed": (0.0, 100.0),
    "bg_complexity": (1, 12),
    "bg_grain": (0.0, 40.0),
    "bg_softness": (0.0, 100.0),
    "bg_edge": (0.0, 100.0),
    "bg_flow": (0.0, 100.0),
}


def default_reactivity() -> Dict[str, bool]:
    return {
        "morph_speed": True,
        "scale": True,
        "glow": True,
        "blur": False,
        "brightness": False,
    }


@dataclass
class ViewportConfig:
    """Render target dimensions and refresh rate."""
    width: int = 390
    height: int = 844
    fps: int = 60

    @property
    def area(self) -> int:
        return max(0, self.width) * max(0, self.height)


@dataclass
class EngineState:
    """Every tunable parameter of a composition."""

    # Blob shape
    extra_points: int = 5
    randomness: int = 8
    size: int = 250

    # Blob animation
    duration: float = 2000.0  # ms per morph transition
    timing_function: str = "ease"

    # Blob appearance
    color1: str = "#5ce1e6"
    color2: str = "#ffffff"
    color3: str = "#c4b5fd"
    opacity: float = 80.0
    edge_blur: float = 20.0
    glow_intensity: float = 60.0
    blend_mode: str = "source-over"

    # Blob position (percent of viewport, 50 = centred)
    x_pos: float = 50.0
    y_pos: float = 50.0

    # Audio
    energy: float = 0.5
    sensitivity: float = 3.0
    smoothing: float = 0.85
    audio_source: str = ""  # "" = manual energy

    # Reactivity
    reactivity: Dict[str, bool] = field(default_factory=default_reactivity)
    reactivity_amount: float = 60.0  # 0-100

    # Background
    bg_style: str = "field"
    bg_color1: str = "#7b8cde"  # base
    bg_color2: str = "#a5b4f0"  # mid
    bg_color3: str = "#c8c0e8"  # accent
    bg_color4: str = "#e8c4d8"
    bg_color5: str = "#9ed8e0"
    bg_color_count: int = 3
    bg_angle: float = 160.0
    bg_speed: float = 30.0  # 0-100
    bg_complexity: int = 4  # control point density
    bg_grain: float = 12.0  # 0-40
    bg_softness: float = 55.0  # 0-100
    bg_edge: float = 40.0  # 0-100
    bg_flow: float = 35.0  # 0-100

    # Base seed for point and blob streams
    seed: int = 1337

    def copy(self) -> "EngineState":
        return copy.deepcopy(self)

    @property
    def bg_palette(self) -> Tuple[str, ...]:
        """Active background colours, first ``bg_color_count`` slots."""
        count = min(MAX_BG_COLORS, max(2, int(self.bg_color_count)))
        return tuple(getattr(self, f"bg_color{i + 1}") for i in range(count))

    @property
    def blob_palette(self) -> Tuple[str, str, str]:
        return (self.color1, self.color2, self.color3)


def state_field_names() -> Tuple[str, ...]:
    return tuple(f.name for f in fields(EngineState))


def clamp_field(name: str, value):
    """Clamp a numeric field into its slider range, keeping its type."""
    bounds = FIELD_RANGES.get(name)
    if bounds is None:
        return value
    lo, hi = bounds
    return type(value)(min(hi, max(lo, value)))
