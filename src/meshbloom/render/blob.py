"""
Blob shape, morph scheduling and blob/glow rendering.

A blob is a closed radial outline: ``3 + extra_points`` control radii on a
circle, joined by a periodic cubic spline and resampled to a fixed number
of angles so any two shapes can be interpolated directly.

Morphing runs as a small state machine. Each transition is fixed once
started; when it completes the next target is planned from the current
reactivity state, so energy changes bend future morphs without
disturbing the one in flight.
"""

import math
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np
from PIL import Image, ImageDraw
from scipy.interpolate import CubicSpline

from meshbloom.config import BLEND_MODES, EngineState
from meshbloom.core.reactivity import ReactiveParams
from meshbloom.core.rng import MASK32, SeededStream
from meshbloom.render.colorgrade import (
    blur_alpha,
    composite,
    gradient_ramp,
    hex_to_unit,
    linear_gradient_param,
    radial_gradient_param,
)

OUTLINE_SAMPLES = 96
MAX_RANDOMNESS = 20
SUPERSAMPLE = 2

# CSS timing functions as cubic Bezier control points
EASINGS = {
    "linear": (0.0, 0.0, 1.0, 1.0),
    "ease": (0.25, 0.1, 0.25, 1.0),
    "ease-in": (0.42, 0.0, 1.0, 1.0),
    "ease-out": (0.0, 0.0, 0.58, 1.0),
    "ease-in-out": (0.42, 0.0, 0.58, 1.0),
}


def _bezier(t: float, p1: float, p2: float) -> float:
    u = 1.0 - t
    return 3 * u * u * t * p1 + 3 * u * t * t * p2 + t * t * t


def _bezier_slope(t: float, p1: float, p2: float) -> float:
    u = 1.0 - t
    return 3 * u * u * p1 + 6 * u * t * (p2 - p1) + 3 * t * t * (1.0 - p2)


def ease(progress: float, timing_function: str = "ease") -> float:
    """Map linear progress in [0, 1] through a CSS timing curve."""
    x = min(1.0, max(0.0, progress))
    x1, y1, x2, y2 = EASINGS.get(timing_function, EASINGS["ease"])
    if (x1, y1, x2, y2) == EASINGS["linear"]:
        return x

    # Newton first, bisection if the slope flattens out
    t = x
    for _ in range(8):
        err = _bezier(t, x1, x2) - x
        if abs(err) < 1e-7:
            return _bezier(t, y1, y2)
        slope = _bezier_slope(t, x1, x2)
        if abs(slope) < 1e-6:
            break
        t -= err / slope

    lo, hi = 0.0, 1.0
    t = x
    for _ in range(40):
        value = _bezier(t, x1, x2)
        if abs(value - x) < 1e-7:
            break
        if value < x:
            lo = t
        else:
            hi = t
        t = (lo + hi) / 2.0
    return _bezier(t, y1, y2)


@dataclass(frozen=True)
class BlobOptions:
    seed: float
    extra_points: int
    randomness: int
    size: float


def blob_outline(options: BlobOptions) -> np.ndarray:
    """
    Radii of a blob sampled at OUTLINE_SAMPLES evenly spaced angles.

    Returns:
        (OUTLINE_SAMPLES,) float64 array.
    """
    n = 3 + max(0, int(options.extra_points))
    rng = SeededStream(int(options.seed * 4294967296.0) & MASK32)
    half = options.size / 2.0
    pull = min(max(0, int(options.randomness)), MAX_RANDOMNESS) / MAX_RANDOMNESS * 0.5

    radii = np.array([half * (1.0 - pull * rng.random()) for _ in range(n)], dtype=np.float64)
    angles = np.linspace(0.0, 2.0 * math.pi, n + 1)
    spline = CubicSpline(angles, np.append(radii, radii[0]), bc_type="periodic")

    samples = np.linspace(0.0, 2.0 * math.pi, OUTLINE_SAMPLES, endpoint=False)
    return np.maximum(spline(samples), 0.0)


@dataclass(frozen=True)
class Transition:
    source: np.ndarray
    target: np.ndarray
    start: float
    duration: float
    easing: str

    @property
    def deadline(self) -> float:
        return self.start + self.duration

    def at(self, now: float) -> np.ndarray:
        progress = (now - self.start) / self.duration if self.duration > 0 else 1.0
        k = ease(progress, self.easing)
        return self.source + (self.target - self.source) * k


# (options, duration ms, easing) for the next transition
MorphPlan = Tuple[BlobOptions, float, str]


class MorphScheduler:
    """
    Closed-loop morph driver.

    States: ``idle`` (no transition yet) and ``transitioning``. Completion
    is detected in ``tick`` and immediately chains the next transition
    from ``planner``.
    """

    def __init__(self, planner: Callable[[], MorphPlan]):
        self.planner = planner
        self.current: Optional[np.ndarray] = None
        self.transition: Optional[Transition] = None
        self.completed = 0

    @property
    def state(self) -> str:
        return "idle" if self.transition is None else "transitioning"

    def reset(self):
        self.current = None
        self.transition = None
        self.completed = 0

    def _start(self, source: np.ndarray, now: float, plan: MorphPlan):
        options, duration, easing = plan
        self.transition = Transition(
            source=source,
            target=blob_outline(options),
            start=now,
            duration=max(0.0, float(duration)),
            easing=easing,
        )

    def tick(self, now: float) -> np.ndarray:
        """Advance to ``now`` (ms) and return the outline to draw."""
        if self.transition is None:
            if self.current is None:
                self.current = blob_outline(self.planner()[0])
            self._start(self.current, now, self.planner())
        elif now >= self.transition.deadline:
            self.current = self.transition.target
            self.completed += 1
            self._start(self.current, now, self.planner())
        return self.transition.at(now)

    def interrupt(self, now: float, options: BlobOptions, duration: float = 300.0, easing: str = "ease"):
        """Jump to a new target from whatever is on screen now."""
        if self.transition is not None:
            source = self.transition.at(now)
        elif self.current is not None:
            source = self.current
        else:
            source = blob_outline(options)
        self.current = source
        self._start(source, now, (options, duration, easing))


def outline_points(
    radii: np.ndarray,
    center: Tuple[float, float],
    scale: float = 1.0,
) -> np.ndarray:
    """(N, 2) polygon vertices in pixel space."""
    angles = np.linspace(0.0, 2.0 * math.pi, len(radii), endpoint=False)
    r = radii * scale
    return np.stack([center[0] + r * np.cos(angles), center[1] + r * np.sin(angles)], axis=1)


def rasterize(points: np.ndarray, width: int, height: int) -> np.ndarray:
    """Anti-aliased coverage of a polygon, (H, W) float32 in [0, 1]."""
    img = Image.new("L", (width * SUPERSAMPLE, height * SUPERSAMPLE), 0)
    draw = ImageDraw.Draw(img)
    draw.polygon([(float(x) * SUPERSAMPLE, float(y) * SUPERSAMPLE) for x, y in points], fill=255)
    img = img.resize((width, height), Image.BOX)
    return np.asarray(img, dtype=np.float32) / 255.0


class BlobRenderer:
    """Draws the glow and the blob onto a background frame."""

    def blob_center(self, state: EngineState, width: int, height: int) -> Tuple[float, float]:
        return (width * state.x_pos / 100.0, height * state.y_pos / 100.0)

    def render_glow(
        self,
        frame: np.ndarray,
        state: EngineState,
        params: ReactiveParams,
        width: int,
        height: int,
    ) -> np.ndarray:
        opacity = min(1.0, params.glow_intensity)
        if opacity <= 0:
            return frame

        center = self.blob_center(state, width, height)
        radius = 0.8 * state.size * params.glow_scale
        s = radial_gradient_param(width, height, center, radius)
        c1, c2, c3 = (hex_to_unit(c) for c in state.blob_palette)
        ramp = gradient_ramp(s, [
            (0.0, (c2[0], c2[1], c2[2], 1.0)),
            (0.4, (c1[0], c1[1], c1[2], 1.0)),
            (0.7, (c3[0], c3[1], c3[2], 1.0)),
            (1.0, (c3[0], c3[1], c3[2], 0.0)),
        ])
        return composite(frame, ramp[..., :3], ramp[..., 3] * opacity, "screen")

    def render_blob(
        self,
        frame: np.ndarray,
        radii: np.ndarray,
        state: EngineState,
        params: ReactiveParams,
        width: int,
        height: int,
    ) -> np.ndarray:
        """
        Fill the blob outline with the reactive gradient.

        Args:
            frame: (H, W, 3) float32 backdrop in [0, 1].
            radii: Outline from the morph scheduler.
            state: Appearance controls.
            params: Reactive parameters for this frame.

        Returns:
            (H, W, 3) float32.
        """
        center = self.blob_center(state, width, height)
        coverage = rasterize(outline_points(radii, center, params.blob_scale), width, height)
        coverage = blur_alpha(coverage, params.edge_blur)

        # gradient runs across the blob's own canvas box
        side = state.size * 1.5
        x0 = center[0] - side / 2.0
        y0 = center[1] - side / 2.0
        s = linear_gradient_param(width, height, (x0, y0 + side * 0.3), (x0 + side, y0 + side * 0.7))
        stops = []
        for stop in params.gradient_stops:
            c = hex_to_unit(stop.color)
            stops.append((stop.offset, (c[0], c[1], c[2], stop.alpha)))
        ramp = gradient_ramp(s, stops)

        mode = state.blend_mode if state.blend_mode in BLEND_MODES else "source-over"
        return composite(frame, ramp[..., :3], coverage * ramp[..., 3], mode)
