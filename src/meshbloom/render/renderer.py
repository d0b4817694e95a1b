"""
Frame orchestrator for the meshbloom engine.

One call per display refresh: sample energy, recompute the reactive
parameters, render the background, advance the blob morph, then draw
glow, blob and grain. Configuration changes arrive as direct method
calls and are persisted through an optional debounced writer.
"""

import logging
import math
from typing import Callable, Iterator, Optional, Union

import numpy as np

from meshbloom.config import (
    BACKGROUND_STYLES,
    COLOR_FIELDS,
    ENERGY_PRESETS,
    REACTIVITY_CHANNELS,
    EngineState,
    ViewportConfig,
    clamp_field,
    state_field_names,
)
from meshbloom.core.color import parse_hex
from meshbloom.core.energy import AudioBufferSource, EnergyExtractor, load_audio
from meshbloom.core.points import PointBatch, PointField, point_count
from meshbloom.core.reactivity import ReactiveParams, ReactivityDistributor
from meshbloom.core.rng import BLOB_STREAM, MASK32, SeededStream, coerce_seed
from meshbloom.io.state import DebouncedPersister, deserialize, serialize
from meshbloom.render.background import BackgroundCompositor, scene_time
from meshbloom.render.blob import BlobOptions, BlobRenderer, MorphPlan, MorphScheduler
from meshbloom.render.colorgrade import add_grain, to_uint8

logger = logging.getLogger(__name__)

RANDOMIZE_DURATION_MS = 300.0


class FrameOrchestrator:
    """
    Drives the engine one frame at a time.

    Driven either by a live clock (preview window) or by fixed timesteps
    (offline export).
    """

    def __init__(
        self,
        state: Optional[EngineState] = None,
        viewport: Optional[ViewportConfig] = None,
        persister: Optional[DebouncedPersister] = None,
        drive_audio: bool = True,
    ):
        self.state = state or EngineState()
        self.viewport = viewport or ViewportConfig()
        self.persister = persister
        # When False the caller keeps the audio playhead in sync itself
        self.drive_audio = drive_audio

        self.points = PointField()
        self.compositor = BackgroundCompositor()
        self.extractor = EnergyExtractor(self.state)
        self.distributor = ReactivityDistributor(self.state)
        self.blob_renderer = BlobRenderer()
        self.blob_stream = SeededStream(self.state.seed, BLOB_STREAM)
        self.morph = MorphScheduler(self._plan_morph)

        self.frame_index = 0
        self.time_ms: Optional[float] = None
        self.last_params: Optional[ReactiveParams] = None

    # ------------------------------------------------------------------
    # Per-frame work
    # ------------------------------------------------------------------

    def _plan_morph(self) -> MorphPlan:
        extra_points, randomness = self.distributor.shape_counts()
        options = BlobOptions(
            seed=self.blob_stream.random(),
            extra_points=extra_points,
            randomness=randomness,
            size=self.state.size,
        )
        return options, self.distributor.effective_duration(), self.state.timing_function

    def ensure_points(self) -> PointBatch:
        count = point_count(self.state.bg_style, self.state.bg_complexity)
        return self.points.ensure(self.state.seed, count, len(self.state.bg_palette))

    def render_frame(self, time_ms: float) -> Optional[np.ndarray]:
        """
        Render the frame at ``time_ms``.

        Returns:
            (H, W, 3) uint8 RGB, or None when the viewport has no area.
        """
        width, height = self.viewport.width, self.viewport.height
        if width <= 0 or height <= 0:
            return None

        previous = self.time_ms
        self.time_ms = time_ms
        source = self.extractor.source
        if self.drive_audio and source is not None and previous is not None:
            source.advance(max(0.0, time_ms - previous) / 1000.0)

        # Single energy sample shared by every channel this frame
        self.extractor.sample()
        params = self.distributor.compute()
        self.last_params = params

        batch = self.ensure_points()
        background = self.compositor.render(
            self.state.bg_style,
            scene_time(time_ms, self.state.bg_speed),
            self.state,
            batch,
            width,
            height,
        )

        radii = self.morph.tick(time_ms)

        frame = background[..., :3].astype(np.float32) / 255.0
        frame = self.blob_renderer.render_glow(frame, self.state, params, width, height)
        frame = self.blob_renderer.render_blob(frame, radii, self.state, params, width, height)
        out = add_grain(to_uint8(frame), self.state.bg_grain / 100.0, seed=self.frame_index)

        if self.persister is not None:
            self.persister.poll(time_ms)

        self.frame_index += 1
        return out

    def render_frames(
        self,
        duration: float,
        progress_callback: Callable = None,
    ) -> Iterator[np.ndarray]:
        """
        Render ``duration`` seconds at the viewport fps as a generator.

        Args:
            duration: Seconds of output.
            progress_callback: Optional callback(current, total).

        Yields:
            (H, W, 3) uint8 RGB arrays, one per frame.
        """
        fps = self.viewport.fps
        total = int(duration * fps)

        for i in range(total):
            frame = self.render_frame(i * 1000.0 / fps)
            if frame is not None:
                yield frame

            if progress_callback:
                progress_callback(i + 1, total)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _now(self, now_ms: Optional[float]) -> float:
        if now_ms is not None:
            return now_ms
        return self.time_ms or 0.0

    def _changed(self, now_ms: Optional[float] = None):
        if self.persister is not None:
            self.persister.schedule(self.state, self._now(now_ms))

    def _reseed_streams(self):
        self.blob_stream = SeededStream(self.state.seed, BLOB_STREAM)

    def set_param(self, name: str, value, now_ms: Optional[float] = None) -> bool:
        """
        Update one configuration field.

        Invalid colours and non-numeric values are rejected and the
        previous value kept.

        Returns:
            True if the state changed.

        Raises:
            KeyError: ``name`` is not a configuration field.
            ValueError: ``bg_style`` is not a known style.
        """
        if name not in state_field_names() or name == "reactivity":
            raise KeyError(name)

        if name == "energy":
            self.set_energy(value)
            return True
        if name == "audio_source":
            self.select_audio_source(value, now_ms)
            return True

        current = getattr(self.state, name)
        if name in COLOR_FIELDS:
            new = parse_hex(value)
            if new is None:
                logger.debug("Rejected colour %r for %s", value, name)
                return False
        elif name == "seed":
            new = coerce_seed(value, default=current)
        elif isinstance(current, str):
            if not isinstance(value, str):
                logger.debug("Rejected non-string %r for %s", value, name)
                return False
            if name == "bg_style" and value not in BACKGROUND_STYLES:
                raise ValueError(f"Unknown background style: {value}")
            new = value
        else:
            try:
                number = float(value)
            except (TypeError, ValueError):
                logger.debug("Rejected non-numeric %r for %s", value, name)
                return False
            if not math.isfinite(number):
                logger.debug("Rejected non-finite %r for %s", value, name)
                return False
            new = clamp_field(name, int(number) if isinstance(current, int) else number)

        setattr(self.state, name, new)
        if name == "seed":
            self._reseed_streams()
        self._changed(now_ms)
        return True

    def set_channel(self, channel: str, enabled: bool, now_ms: Optional[float] = None):
        if channel not in REACTIVITY_CHANNELS:
            raise ValueError(f"Unknown reactivity channel: {channel}")
        self.state.reactivity[channel] = bool(enabled)
        self._changed(now_ms)

    def toggle_channel(self, channel: str, now_ms: Optional[float] = None) -> bool:
        if channel not in REACTIVITY_CHANNELS:
            raise ValueError(f"Unknown reactivity channel: {channel}")
        enabled = not self.state.reactivity.get(channel, False)
        self.set_channel(channel, enabled, now_ms)
        return enabled

    def set_energy(self, value: float) -> float:
        """Manual energy; automatic smoothing continues from here."""
        return self.extractor.set_manual(value)

    def apply_preset(self, name: str) -> float:
        return self.set_energy(ENERGY_PRESETS[name])

    def reseed(self, now_ms: Optional[float] = None) -> int:
        """Step to the next seed variant and rebuild every derived stream."""
        self.state.seed = (coerce_seed(self.state.seed) + 1) & MASK32
        self._reseed_streams()
        self.ensure_points()
        self._changed(now_ms)
        return self.state.seed

    def randomize_blob(self, now_ms: Optional[float] = None):
        """Quick morph to a fresh shape; the regular loop resumes after it."""
        options, _, _ = self._plan_morph()
        self.morph.interrupt(self._now(now_ms), options, RANDOMIZE_DURATION_MS, "ease")

    def select_audio_source(
        self,
        source: Union[None, str, AudioBufferSource],
        now_ms: Optional[float] = None,
    ) -> Optional[AudioBufferSource]:
        """
        Switch the energy source.

        ``None`` or ``""`` returns to manual energy; a path is decoded;
        a buffer source is used directly. The playhead starts stopped.
        """
        if source is None or source == "":
            buffer = None
            self.state.audio_source = ""
        elif isinstance(source, str):
            buffer = load_audio(source)
            self.state.audio_source = source
        else:
            buffer = source
            self.state.audio_source = source.name
        self.extractor.attach(buffer)
        self._changed(now_ms)
        return buffer

    def play(self):
        if self.extractor.source is not None:
            self.extractor.source.play()

    def pause(self):
        if self.extractor.source is not None:
            self.extractor.source.pause()

    def stop(self):
        if self.extractor.source is not None:
            self.extractor.source.stop()

    def load_state(self, token: str):
        """Replace the configuration in place from a share token."""
        restored = deserialize(token)
        energy = self.state.energy
        for name in state_field_names():
            setattr(self.state, name, getattr(restored, name))
        self.state.energy = energy
        self._reseed_streams()
        self.morph.reset()

    def share_token(self) -> str:
        return serialize(self.state)
