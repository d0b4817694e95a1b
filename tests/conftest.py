"""Pytest configuration and shared fixtures."""

import numpy as np
import pytest

from meshbloom.config import EngineState, ViewportConfig

# Default sample rate for test audio
TEST_SR = 22050


@pytest.fixture
def sample_rate() -> int:
    """Default sample rate for tests."""
    return TEST_SR


@pytest.fixture
def pure_sine(sample_rate: int) -> tuple[np.ndarray, int]:
    """
    Generate a 440Hz sine at amplitude 0.5 (RMS ~0.354).

    Returns:
        Tuple of (audio_signal, sample_rate).
    """
    duration = 2.0
    t = np.linspace(0, duration, int(sample_rate * duration), endpoint=False)
    y = 0.5 * np.sin(2 * np.pi * 440.0 * t)
    return y.astype(np.float32), sample_rate


@pytest.fixture
def silence(sample_rate: int) -> tuple[np.ndarray, int]:
    """Two seconds of digital silence."""
    return np.zeros(int(sample_rate * 2.0), dtype=np.float32), sample_rate


@pytest.fixture
def state() -> EngineState:
    """Fresh default configuration."""
    return EngineState()


@pytest.fixture
def small_viewport() -> ViewportConfig:
    """Tiny portrait viewport that keeps renders fast."""
    return ViewportConfig(width=48, height=96, fps=30)


@pytest.fixture
def temp_audio_file(tmp_path, pure_sine):
    """Create a temporary audio file for testing file I/O."""
    import soundfile as sf

    y, sr = pure_sine
    audio_path = tmp_path / "test_audio.wav"
    sf.write(audio_path, y, sr)
    return audio_path
