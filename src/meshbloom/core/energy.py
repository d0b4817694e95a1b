"""
Live audio energy extraction.

Reads the most recent time-domain window from an audio source, computes
RMS, scales by sensitivity and applies a fixed exponential smoothing. The
smoothed value is written back into the engine state as the single energy
sample for the frame.
"""

import math
from pathlib import Path
from typing import Optional, Union

import numpy as np

from meshbloom.config import EngineState

# Blend between the running value and the raw RMS per sample
SMOOTH_KEEP = 0.6
SMOOTH_TAKE = 0.4


def load_audio(path: Union[str, Path], sample_rate: Optional[int] = None) -> "AudioBufferSource":
    """
    Decode an audio file into a mono buffer source.

    Args:
        path: Any format librosa can read.
        sample_rate: Resample target, or None to keep the native rate.
    """
    import librosa

    y, sr = librosa.load(str(path), sr=sample_rate, mono=True)
    return AudioBufferSource(y.astype(np.float32), int(sr), name=str(path))


class AudioBufferSource:
    """
    Decoded samples with a playhead.

    The playhead only moves through ``advance``/``seek``; reading never
    blocks or waits for data.
    """

    def __init__(self, samples: np.ndarray, sample_rate: int, name: str = ""):
        self.samples = np.clip(np.asarray(samples, dtype=np.float32).ravel(), -1.0, 1.0)
        self.sample_rate = int(sample_rate)
        self.name = name
        self.position = 0  # in samples
        self.playing = False

    @property
    def duration(self) -> float:
        return len(self.samples) / max(self.sample_rate, 1)

    @property
    def current_time(self) -> float:
        return self.position / max(self.sample_rate, 1)

    @property
    def ended(self) -> bool:
        return self.position >= len(self.samples)

    @property
    def active(self) -> bool:
        return self.playing and not self.ended

    def play(self):
        if self.ended:
            self.position = 0
        self.playing = len(self.samples) > 0

    def pause(self):
        self.playing = False

    def stop(self):
        self.playing = False
        self.position = 0

    def seek(self, seconds: float):
        pos = int(max(0.0, seconds) * self.sample_rate)
        self.position = min(pos, len(self.samples))

    def advance(self, seconds: float):
        """Move the playhead forward while playing."""
        if not self.playing:
            return
        self.position = min(
            len(self.samples),
            self.position + int(round(seconds * self.sample_rate)),
        )
        if self.ended:
            self.playing = False

    def window(self, size: int) -> np.ndarray:
        """The ``size`` samples ending at the playhead, zero-padded at the start."""
        end = self.position
        start = max(0, end - size)
        chunk = self.samples[start:end]
        if len(chunk) < size:
            chunk = np.concatenate([np.zeros(size - len(chunk), dtype=np.float32), chunk])
        return chunk


class Analyser:
    """
    Time-domain tap on an audio source.

    ``smoothing`` tunes spectral averaging only; time-domain reads are raw.
    """

    def __init__(self, source: Optional[AudioBufferSource] = None, fft_size: int = 512, smoothing: float = 0.85):
        self.source = source
        self.fft_size = fft_size
        self.smoothing = smoothing

    def byte_time_domain_data(self) -> np.ndarray:
        """Most recent window as uint8, 128 = silence."""
        if self.source is None:
            return np.full(self.fft_size, 128, dtype=np.uint8)
        window = self.source.window(self.fft_size)
        return np.clip(np.floor(128.0 * (1.0 + window)), 0, 255).astype(np.uint8)


def rms_from_bytes(data: np.ndarray) -> float:
    """RMS of uint8 time-domain data mapped to [-1, 1]."""
    if len(data) == 0:
        return 0.0
    v = (data.astype(np.float64) - 128.0) / 128.0
    return float(np.sqrt(np.mean(v * v)))


class EnergyExtractor:
    """
    Produces the per-frame energy signal.

    Sampling is a no-op while no source is playing; the last smoothed value
    persists in that case.
    """

    def __init__(self, state: EngineState, analyser: Optional[Analyser] = None):
        self.state = state
        self.analyser = analyser or Analyser(smoothing=state.smoothing)
        self.smoothed = float(state.energy)

    @property
    def source(self) -> Optional[AudioBufferSource]:
        return self.analyser.source

    def attach(self, source: Optional[AudioBufferSource]):
        """Select a new source; its playhead and transport are reset."""
        if self.analyser.source is not None and self.analyser.source is not source:
            self.analyser.source.stop()
        if source is not None:
            source.stop()
        self.analyser.source = source

    def sample(self) -> Optional[float]:
        """
        Take one energy sample.

        Returns:
            The new smoothed energy, or None when no source is active.
        """
        source = self.analyser.source
        if source is None or not source.active:
            return None

        self.analyser.smoothing = self.state.smoothing
        rms = rms_from_bytes(self.analyser.byte_time_domain_data())
        raw = min(1.0, rms * self.state.sensitivity)

        self.smoothed = self.smoothed * SMOOTH_KEEP + raw * SMOOTH_TAKE
        self.state.energy = self.smoothed
        return self.smoothed

    def set_manual(self, value: float) -> float:
        """Seed the smoothed value directly, bypassing RMS."""
        value = float(value)
        if not math.isfinite(value):
            return self.smoothed
        value = min(1.0, max(0.0, value))
        self.smoothed = value
        self.state.energy = value
        return value
