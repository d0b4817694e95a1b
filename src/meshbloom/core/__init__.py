"""Seeding, control points, audio energy and reactivity."""

from meshbloom.core.energy import AudioBufferSource, EnergyExtractor
from meshbloom.core.points import ControlPoint, PointField, generate_points
from meshbloom.core.reactivity import ReactivityDistributor
from meshbloom.core.rng import SeededStream

__all__ = [
    "AudioBufferSource",
    "EnergyExtractor",
    "ControlPoint",
    "PointField",
    "generate_points",
    "ReactivityDistributor",
    "SeededStream",
]
