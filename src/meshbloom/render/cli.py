"""
CLI entry point for offline rendering.

Usage:
    meshbloom-render [audio_file] [options]
"""

import argparse
import sys
import time
from pathlib import Path

from meshbloom.config import BACKGROUND_STYLES, EngineState, ViewportConfig
from meshbloom.core.rng import coerce_seed
from meshbloom.io.state import deserialize
from meshbloom.render.encoder import encode_video
from meshbloom.render.renderer import FrameOrchestrator

PROFILES = {
    "low": {"width": 390, "height": 844, "fps": 30, "quality": "fast"},
    "medium": {"width": 780, "height": 1688, "fps": 60, "quality": "medium"},
    "high": {"width": 1170, "height": 2532, "fps": 60, "quality": "high"},
}


def _progress_bar(current: int, total: int, width: int = 35):
    """Print a progress bar to stdout."""
    pct = current / max(total, 1) * 100
    filled = int(width * current / max(total, 1))
    bar = "#" * filled + "-" * (width - filled)
    if sys.stdout.isatty():
        sys.stdout.write(f"\r[{bar}] {pct:5.1f}%  frame {current}/{total}")
        sys.stdout.flush()
        if current >= total:
            sys.stdout.write("\n")
    else:
        if current % max(1, total // 20) == 0 or current >= total:
            print(f"{pct:5.1f}%  frame {current}/{total}", flush=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="meshbloom-render",
        description="Render an audio-reactive blob and mesh-gradient composition to MP4",
    )

    parser.add_argument(
        "audio",
        type=Path,
        nargs="?",
        default=None,
        help="Audio file driving the energy signal (omit for manual energy)",
    )
    parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output MP4 path (default: <audio>_meshbloom.mp4 or meshbloom.mp4)",
    )
    parser.add_argument(
        "-d", "--duration", type=float, default=None,
        help="Seconds to render (default: audio length, or 10s without audio)",
    )

    # Resolution & Profile
    parser.add_argument(
        "-p", "--profile", type=str, default="low",
        choices=sorted(PROFILES),
        help="Target profile (low: 390x844 30fps, medium: 780x1688 60fps, high: 1170x2532 60fps)",
    )
    parser.add_argument("--width", type=int, default=None, help="Video width (overrides profile)")
    parser.add_argument("--height", type=int, default=None, help="Video height (overrides profile)")
    parser.add_argument("-f", "--fps", type=int, default=None, help="Frames per second (overrides profile)")

    # Composition
    parser.add_argument("--state", type=str, default=None, help="Share token to restore")
    parser.add_argument("--seed", type=int, default=None, help="Base seed (overrides the state)")
    parser.add_argument(
        "--style", type=str, default=None, choices=BACKGROUND_STYLES,
        help="Background style (overrides the state)",
    )
    parser.add_argument(
        "--energy", type=float, default=None,
        help="Manual energy 0-1 when no audio is given",
    )

    parser.add_argument(
        "-q", "--quality", type=str, default=None,
        choices=["high", "medium", "fast"],
        help="Encoding quality (defaults to profile quality)",
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.audio is not None and not args.audio.exists():
        print(f"Error: Audio file not found: {args.audio}", file=sys.stderr)
        sys.exit(1)

    p_cfg = PROFILES[args.profile]
    viewport = ViewportConfig(
        width=args.width or p_cfg["width"],
        height=args.height or p_cfg["height"],
        fps=args.fps or p_cfg["fps"],
    )
    quality = args.quality or p_cfg["quality"]

    state = deserialize(args.state) if args.state else EngineState()
    if args.seed is not None:
        state.seed = coerce_seed(args.seed, state.seed)
    if args.style is not None:
        state.bg_style = args.style

    output = args.output
    if output is None:
        output = args.audio.with_name(f"{args.audio.stem}_meshbloom.mp4") if args.audio else Path("meshbloom.mp4")

    orchestrator = FrameOrchestrator(state, viewport)

    duration = args.duration
    if args.audio is not None:
        print(f"Loading audio: {args.audio}")
        source = orchestrator.select_audio_source(str(args.audio))
        orchestrator.play()
        print(f"  Duration: {source.duration:.1f}s")
        if duration is None:
            duration = source.duration
    else:
        if args.energy is not None:
            orchestrator.set_energy(args.energy)
        if duration is None:
            duration = 10.0

    total_frames = int(duration * viewport.fps)
    print(f"\nRendering {total_frames} frames at {viewport.width}x{viewport.height} @ {viewport.fps}fps")
    print(f"  Style: {state.bg_style}, Seed: {state.seed}, Quality: {quality}")

    t0 = time.time()
    frame_gen = orchestrator.render_frames(duration, progress_callback=_progress_bar)

    encode_video(
        frame_iterator=frame_gen,
        output_path=output,
        width=viewport.width,
        height=viewport.height,
        fps=viewport.fps,
        quality=quality,
        audio_path=args.audio,
        duration=duration,
        total_frames=total_frames,
    )

    elapsed = time.time() - t0
    file_size_mb = output.stat().st_size / 1024 / 1024

    print(f"\nDone! {file_size_mb:.1f} MB")
    print(f"  Render+encode took {elapsed:.1f}s ({total_frames / max(elapsed, 0.01):.1f} fps)")
    print(f"  Share token: {orchestrator.share_token()}")
    print(f"  Output: {output}")


if __name__ == "__main__":
    main()
