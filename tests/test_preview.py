"""Tests for the live preview key handling."""

import numpy as np
import pygame
import pytest

from meshbloom.config import EngineState
from meshbloom.core.energy import AudioBufferSource
from meshbloom.render.preview import _follow_mixer, _handle_key, frame_to_surface
from meshbloom.render.renderer import FrameOrchestrator


@pytest.fixture
def orchestrator(small_viewport):
    return FrameOrchestrator(EngineState(), small_viewport, drive_audio=False)


class TestHandleKey:
    def test_escape_quits(self, orchestrator):
        assert _handle_key(pygame.K_ESCAPE, orchestrator, 0.0) is False

    def test_presets(self, orchestrator):
        assert _handle_key(pygame.K_3, orchestrator, 0.0)
        assert orchestrator.state.energy == 0.95
        _handle_key(pygame.K_1, orchestrator, 0.0)
        assert orchestrator.state.energy == 0.05

    def test_reseed(self, orchestrator):
        _handle_key(pygame.K_r, orchestrator, 0.0)
        assert orchestrator.state.seed == 1338

    def test_cycle_style(self, orchestrator):
        _handle_key(pygame.K_m, orchestrator, 0.0)
        # field wraps around to the first style
        assert orchestrator.state.bg_style == "solid"

    def test_space_toggles_playback(self, orchestrator, pure_sine):
        source = AudioBufferSource(*pure_sine)
        orchestrator.select_audio_source(source)
        _handle_key(pygame.K_SPACE, orchestrator, 0.0)
        assert source.playing
        _handle_key(pygame.K_SPACE, orchestrator, 0.0)
        assert not source.playing

    def test_print_token(self, orchestrator, capsys):
        _handle_key(pygame.K_p, orchestrator, 0.0)
        assert capsys.readouterr().out.strip() == orchestrator.share_token()


def test_frame_to_surface_size():
    frame = np.zeros((30, 20, 3), dtype=np.uint8)
    frame[0, 19] = (255, 0, 0)
    surface = frame_to_surface(frame)
    assert surface.get_size() == (20, 30)
    assert surface.get_at((19, 0))[:3] == (255, 0, 0)


class TestFollowMixer:
    def test_tracks_mixer_position(self, pure_sine):
        source = AudioBufferSource(*pure_sine)
        source.play()
        assert _follow_mixer(source, 0.25, 500, True)
        assert source.current_time == pytest.approx(0.75, abs=1e-3)

    def test_track_end_pauses_source(self, orchestrator, pure_sine):
        source = AudioBufferSource(*pure_sine)
        orchestrator.select_audio_source(source)
        orchestrator.play()
        assert not _follow_mixer(source, 0.0, -1, False)
        assert not source.playing
        assert source.ended

        # energy holds once nothing is sampled
        orchestrator.render_frame(0.0)
        held = orchestrator.state.energy
        orchestrator.render_frame(100.0)
        assert orchestrator.state.energy == held

    def test_idle_mixer_with_position_pauses(self, pure_sine):
        source = AudioBufferSource(*pure_sine)
        source.play()
        assert not _follow_mixer(source, 0.0, 1200, False)
        assert not source.playing

    def test_replay_after_end_rewinds(self, pure_sine):
        source = AudioBufferSource(*pure_sine)
        source.play()
        _follow_mixer(source, 0.0, -1, False)
        source.play()
        assert source.current_time == 0.0

    def test_paused_source_untouched(self, pure_sine):
        source = AudioBufferSource(*pure_sine)
        source.seek(0.3)
        assert not _follow_mixer(source, 0.0, -1, False)
        assert source.current_time == pytest.approx(0.3, abs=1e-3)
        assert not _follow_mixer(None, 0.0, 100, True)
