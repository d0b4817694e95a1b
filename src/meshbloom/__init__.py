"""Audio-reactive blob and procedural mesh-gradient engine."""

from meshbloom.config import EngineState, ViewportConfig
from meshbloom.core.energy import AudioBufferSource, EnergyExtractor
from meshbloom.core.points import PointField, generate_points
from meshbloom.core.reactivity import ReactivityDistributor
from meshbloom.io.state import deserialize, serialize
from meshbloom.render.background import BackgroundCompositor
from meshbloom.render.renderer import FrameOrchestrator

__version__ = "0.1.0"
__all__ = [
    "EngineState",
    "ViewportConfig",
    "AudioBufferSource",
    "EnergyExtractor",
    "PointField",
    "generate_points",
    "ReactivityDistributor",
    "serialize",
    "deserialize",
    "BackgroundCompositor",
    "FrameOrchestrator",
]
