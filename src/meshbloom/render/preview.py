"""
Live preview window.

Usage:
    meshbloom-preview [audio_file] [--state TOKEN]

Keys:
    space    play / pause
    s        stop
    r        next seed variant
    b        randomize blob
    1 2 3    idle / speaking / loud energy
    m        cycle background style
    p        print share token
    esc      quit
"""

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
import pygame

from meshbloom.config import BACKGROUND_STYLES, EngineState, ViewportConfig
from meshbloom.io.state import DebouncedPersister, deserialize
from meshbloom.render.renderer import FrameOrchestrator

logger = logging.getLogger(__name__)

_PRESET_KEYS = {
    pygame.K_1: "idle",
    pygame.K_2: "speaking",
    pygame.K_3: "loud",
}


def frame_to_surface(frame: np.ndarray) -> pygame.Surface:
    """(H, W, 3) uint8 to a pygame Surface."""
    # pygame wants (width, height, 3)
    return pygame.surfarray.make_surface(np.transpose(frame, (1, 0, 2)))


def _handle_key(key: int, orchestrator: FrameOrchestrator, now_ms: float) -> bool:
    """Apply one key command. Returns False to quit."""
    if key == pygame.K_ESCAPE:
        return False
    if key == pygame.K_SPACE:
        source = orchestrator.extractor.source
        if source is not None and source.playing:
            orchestrator.pause()
        else:
            orchestrator.play()
    elif key == pygame.K_s:
        orchestrator.stop()
    elif key == pygame.K_r:
        seed = orchestrator.reseed(now_ms)
        logger.info("Seed %s", seed)
    elif key == pygame.K_b:
        orchestrator.randomize_blob(now_ms)
    elif key in _PRESET_KEYS:
        orchestrator.apply_preset(_PRESET_KEYS[key])
    elif key == pygame.K_m:
        styles = list(BACKGROUND_STYLES)
        idx = styles.index(orchestrator.state.bg_style)
        orchestrator.set_param("bg_style", styles[(idx + 1) % len(styles)], now_ms)
        logger.info("Style %s", orchestrator.state.bg_style)
    elif key == pygame.K_p:
        print(orchestrator.share_token(), flush=True)
    return True


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="meshbloom-preview",
        description="Live audio-reactive blob and mesh-gradient preview",
    )
    parser.add_argument("audio", type=Path, nargs="?", default=None, help="Audio file to play")
    parser.add_argument("--state", type=str, default=None, help="Share token to restore")
    parser.add_argument("--width", type=int, default=390, help="Window width (default: 390)")
    parser.add_argument("--height", type=int, default=844, help="Window height (default: 844)")
    parser.add_argument("-f", "--fps", type=int, default=30, help="Refresh rate (default: 30)")
    parser.add_argument(
        "--state-file", type=Path, default=None,
        help="Keep the latest share token in this file",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log commands")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.audio is not None and not args.audio.exists():
        print(f"Error: Audio file not found: {args.audio}", file=sys.stderr)
        sys.exit(1)

    state = EngineState()
    if args.state:
        state = deserialize(args.state)
    elif args.state_file is not None and args.state_file.exists():
        state = deserialize(args.state_file.read_text().strip())

    persister = None
    if args.state_file is not None:
        persister = DebouncedPersister(lambda token: args.state_file.write_text(token))

    viewport = ViewportConfig(width=args.width, height=args.height, fps=args.fps)
    # The mixer owns the playhead; we only mirror it
    orchestrator = FrameOrchestrator(state, viewport, persister=persister, drive_audio=False)

    pygame.init()
    window = pygame.display.set_mode((viewport.width, viewport.height))
    pygame.display.set_caption("meshbloom")
    clock = pygame.time.Clock()

    if args.audio is not None:
        orchestrator.select_audio_source(str(args.audio))
        pygame.mixer.init()
        pygame.mixer.music.load(str(args.audio))

    running = True
    start_offset = 0.0
    try:
        while running:
            clock.tick(viewport.fps)
            now_ms = float(pygame.time.get_ticks())

            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.KEYDOWN:
                    was_playing = orchestrator.extractor.source is not None and orchestrator.extractor.source.playing
                    running = _handle_key(event.key, orchestrator, now_ms)
                    start_offset = _sync_mixer(orchestrator, was_playing, event.key, start_offset)

            if pygame.mixer.get_init():
                _follow_mixer(
                    orchestrator.extractor.source,
                    start_offset,
                    pygame.mixer.music.get_pos(),
                    pygame.mixer.music.get_busy(),
                )

            frame = orchestrator.render_frame(now_ms)
            if frame is not None:
                window.blit(frame_to_surface(frame), (0, 0))
                pygame.display.flip()
    finally:
        if persister is not None:
            persister.flush()
        pygame.quit()


def _sync_mixer(orchestrator: FrameOrchestrator, was_playing: bool, key: int, start_offset: float) -> float:
    """Mirror transport commands onto the pygame mixer; returns the playback offset."""
    source = orchestrator.extractor.source
    if source is None or not pygame.mixer.get_init():
        return start_offset
    if key == pygame.K_SPACE:
        if source.playing and not was_playing:
            start_offset = source.current_time
            pygame.mixer.music.play(start=start_offset)
        elif was_playing and not source.playing:
            pygame.mixer.music.stop()
    elif key == pygame.K_s:
        pygame.mixer.music.stop()
        start_offset = 0.0
    return start_offset


def _follow_mixer(source, start_offset: float, pos_ms: int, busy: bool) -> bool:
    """
    Mirror the mixer playhead onto a playing source.

    Once the track has finished (mixer idle or no position) the source is
    parked at its end and paused, so energy stops being sampled.

    Returns:
        True while the source is still playing.
    """
    if source is None or not source.playing:
        return False
    if pos_ms < 0 or not busy:
        source.seek(source.duration)
        source.pause()
        return False
    source.seek(start_offset + pos_ms / 1000.0)
    return True


if __name__ == "__main__":
    main()
