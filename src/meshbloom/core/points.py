"""
Control point generation for the procedural backgrounds.

Points are drawn from the seeded point stream in a fixed field order, so a
stored seed always reproduces the same layout. A ``PointField`` publishes
each generated batch as one immutable tuple and swaps it in a single
assignment; readers never see a partially rebuilt set.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from meshbloom.core.rng import POINT_STREAM, SeededStream, coerce_seed

TWO_PI = 2.0 * math.pi

# The weighted field adds this many points over the configured density
FIELD_POINT_OFFSET = 4
FIELD_MIN_POINTS = 5


@dataclass(frozen=True)
class ControlPoint:
    """One drifting colour source."""
    x: float
    y: float
    phase_x: float
    phase_y: float
    freq_x: float
    freq_y: float
    drift_x: float
    drift_y: float
    color_index: int
    radius: float  # fraction of viewport diagonal
    alpha: float
    stretch_seed: float
    tilt_seed: float
    pulse_phase: float

    def position(self, t: float) -> Tuple[float, float]:
        """Normalised centre at time ``t`` (seconds, speed-scaled)."""
        return (
            self.x + math.sin(t * self.freq_x + self.phase_x) * self.drift_x,
            self.y + math.cos(t * self.freq_y + self.phase_y) * self.drift_y,
        )


def point_count(style: str, density: int) -> int:
    """Number of points a background style consumes."""
    density = max(0, int(density))
    if style == "field":
        return max(FIELD_MIN_POINTS, density + FIELD_POINT_OFFSET)
    return density


def generate_points(seed, count: int, palette_size: int = 3) -> Tuple[ControlPoint, ...]:
    """
    Generate ``count`` control points from the point stream of ``seed``.

    Draw order per point: x, y, phase_x, phase_y, freq_x, freq_y,
    drift_x, drift_y, radius, alpha, stretch, tilt, pulse phase.
    """
    rng = SeededStream(coerce_seed(seed), POINT_STREAM)
    palette_size = max(1, int(palette_size))
    points = []
    for i in range(max(0, int(count))):
        points.append(ControlPoint(
            x=0.15 + rng.random() * 0.7,
            y=0.1 + rng.random() * 0.8,
            phase_x=rng.random() * TWO_PI,
            phase_y=rng.random() * TWO_PI,
            freq_x=0.3 + rng.random() * 0.5,
            freq_y=0.2 + rng.random() * 0.4,
            drift_x=0.04 + rng.random() * 0.08,
            drift_y=0.03 + rng.random() * 0.07,
            radius=0.25 + rng.random() * 0.25,
            alpha=0.5 + rng.random() * 0.4,
            stretch_seed=rng.random(),
            tilt_seed=(rng.random() - 0.5) * 1.4,
            pulse_phase=rng.random() * TWO_PI,
            color_index=i % palette_size,
        ))
    return tuple(points)


@dataclass(frozen=True)
class PointArrays:
    """Column view of a point batch for vectorised rendering."""
    x: np.ndarray
    y: np.ndarray
    phase_x: np.ndarray
    phase_y: np.ndarray
    freq_x: np.ndarray
    freq_y: np.ndarray
    drift_x: np.ndarray
    drift_y: np.ndarray
    color_index: np.ndarray
    radius: np.ndarray
    alpha: np.ndarray
    stretch_seed: np.ndarray
    tilt_seed: np.ndarray
    pulse_phase: np.ndarray

    @classmethod
    def from_points(cls, points: Tuple[ControlPoint, ...]) -> "PointArrays":
        def col(name, dtype=np.float64):
            return np.array([getattr(p, name) for p in points], dtype=dtype)

        return cls(
            x=col("x"),
            y=col("y"),
            phase_x=col("phase_x"),
            phase_y=col("phase_y"),
            freq_x=col("freq_x"),
            freq_y=col("freq_y"),
            drift_x=col("drift_x"),
            drift_y=col("drift_y"),
            color_index=col("color_index", np.intp),
            radius=col("radius"),
            alpha=col("alpha"),
            stretch_seed=col("stretch_seed"),
            tilt_seed=col("tilt_seed"),
            pulse_phase=col("pulse_phase"),
        )

    def positions(self, t: float) -> Tuple[np.ndarray, np.ndarray]:
        px = self.x + np.sin(t * self.freq_x + self.phase_x) * self.drift_x
        py = self.y + np.cos(t * self.freq_y + self.phase_y) * self.drift_y
        return px, py


@dataclass(frozen=True)
class PointBatch:
    """A generated set plus the key it was generated for."""
    seed: int
    count: int
    palette_size: int
    points: Tuple[ControlPoint, ...]
    arrays: PointArrays

    def __len__(self) -> int:
        return len(self.points)


class PointField:
    """Owns the current point batch and replaces it wholesale."""

    def __init__(self):
        self._batch: Optional[PointBatch] = None

    @property
    def batch(self) -> Optional[PointBatch]:
        return self._batch

    @property
    def points(self) -> Tuple[ControlPoint, ...]:
        batch = self._batch
        return batch.points if batch is not None else ()

    def regenerate(self, seed, count: int, palette_size: int = 3) -> PointBatch:
        seed = coerce_seed(seed)
        points = generate_points(seed, count, palette_size)
        batch = PointBatch(
            seed=seed,
            count=len(points),
            palette_size=max(1, int(palette_size)),
            points=points,
            arrays=PointArrays.from_points(points),
        )
        # single reference swap
        self._batch = batch
        return batch

    def ensure(self, seed, count: int, palette_size: int = 3) -> PointBatch:
        """Regenerate only when the (seed, count, palette size) key changed."""
        batch = self._batch
        seed = coerce_seed(seed)
        if (
            batch is None
            or batch.seed != seed
            or batch.count != max(0, int(count))
            or batch.palette_size != max(1, int(palette_size))
        ):
            batch = self.regenerate(seed, count, palette_size)
        return batch
