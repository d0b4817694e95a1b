"""
Fan-out of the frame's energy sample to the reactivity channels.

One scaled energy value (energy x amount/100) feeds every enabled channel.
Disabled channels use fixed baselines rather than zero so the composition
never looks switched off.
"""

import math
from dataclasses import dataclass
from typing import Tuple

from meshbloom.config import REACTIVITY_CHANNELS, EngineState
from meshbloom.core.color import lerp_hex

MIN_DURATION_MS = 200.0


@dataclass(frozen=True)
class GradientStop:
    offset: float
    color: str
    alpha: float


@dataclass(frozen=True)
class ReactiveParams:
    """Per-frame modulated parameters for the blob, glow and background."""
    scaled_energy: float
    extra_points: int
    randomness: int
    duration: float
    blob_scale: float
    glow_intensity: float
    glow_scale: float
    edge_blur: float
    gradient_stops: Tuple[GradientStop, ...]


def js_round(value: float) -> int:
    """Round half up, as browsers do."""
    return int(math.floor(value + 0.5))


class ReactivityDistributor:
    """Applies the per-channel response table to one energy sample."""

    def __init__(self, state: EngineState):
        self.state = state

    def enabled(self, channel: str) -> bool:
        if channel not in REACTIVITY_CHANNELS:
            raise ValueError(f"Unknown reactivity channel: {channel}")
        return bool(self.state.reactivity.get(channel, False))

    def scaled_energy(self) -> float:
        return self.state.energy * (self.state.reactivity_amount / 100.0)

    def morph_energy(self) -> float:
        return self.scaled_energy() if self.enabled("morph_speed") else 0.0

    def shape_counts(self) -> Tuple[int, int]:
        """(extra_points, randomness) for the next morph target."""
        e = self.morph_energy()
        return (
            js_round(self.state.extra_points + e * 4),
            js_round(self.state.randomness + e * 12),
        )

    def effective_duration(self) -> float:
        e = self.morph_energy()
        return max(MIN_DURATION_MS, self.state.duration * (1.0 - e * 0.7))

    def blob_scale(self) -> float:
        if not self.enabled("scale"):
            return 1.0
        return 1.0 + self.scaled_energy() * 0.2

    def glow(self) -> Tuple[float, float]:
        """(intensity, scale); intensity is not clamped here."""
        base = self.state.glow_intensity / 100.0
        if self.enabled("glow"):
            e = self.scaled_energy()
            return base * (0.5 + e * 0.8), 1.0 + e * 0.5
        return base * 0.7, 1.0

    def edge_blur(self) -> float:
        if not self.enabled("blur"):
            return self.state.edge_blur
        return self.state.edge_blur + self.scaled_energy() * 25.0

    def gradient_stops(self) -> Tuple[GradientStop, ...]:
        s = self.state
        alpha = s.opacity / 100.0
        if self.enabled("brightness"):
            b = self.scaled_energy() * 0.6
            return (
                GradientStop(0.0, lerp_hex(s.color1, s.color2, b), alpha),
                GradientStop(0.45, s.color2, alpha),
                GradientStop(1.0, lerp_hex(s.color3, s.color2, b), alpha * (0.7 + b * 0.3)),
            )
        return (
            GradientStop(0.0, s.color1, alpha),
            GradientStop(0.45, s.color2, alpha),
            GradientStop(1.0, s.color3, alpha * 0.7),
        )

    def compute(self) -> ReactiveParams:
        extra_points, randomness = self.shape_counts()
        glow_intensity, glow_scale = self.glow()
        return ReactiveParams(
            scaled_energy=self.scaled_energy(),
            extra_points=extra_points,
            randomness=randomness,
            duration=self.effective_duration(),
            blob_scale=self.blob_scale(),
            glow_intensity=glow_intensity,
            glow_scale=glow_scale,
            edge_blur=self.edge_blur(),
            gradient_stops=self.gradient_stops(),
        )
