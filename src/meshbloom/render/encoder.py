"""
FFmpeg video export.

Raw RGB frames stream into ffmpeg over stdin; a soundtrack, when given, is
muxed in and the output trimmed to the shorter stream. Frames never touch
disk.
"""

import logging
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import IO, Callable, Iterable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Quality presets: (preset, crf, pix_fmt)
QUALITY_PRESETS = {
    "high": ("slow", "18", "yuv444p"),
    "medium": ("medium", "23", "yuv420p"),
    "fast": ("ultrafast", "28", "yuv420p"),
}

# chroma subsampling needs even dimensions
EVEN_PAD = "pad=ceil(iw/2)*2:ceil(ih/2)*2"

_ERROR_MARKERS = ("error", "invalid")


def ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None


def build_command(
    output_path: Path,
    width: int,
    height: int,
    fps: int,
    quality: str = "high",
    audio_path: Optional[Path] = None,
    duration: Optional[float] = None,
) -> List[str]:
    """ffmpeg argument list for an rgb24 stream on stdin."""
    preset, crf, pix_fmt = QUALITY_PRESETS.get(quality, QUALITY_PRESETS["high"])

    inputs = ["-f", "rawvideo", "-pix_fmt", "rgb24", "-s", f"{width}x{height}", "-r", str(fps), "-i", "pipe:0"]
    video = ["-c:v", "libx264", "-preset", preset, "-crf", crf, "-pix_fmt", pix_fmt, "-vf", EVEN_PAD]
    audio: List[str] = []
    if audio_path is not None:
        inputs += ["-i", str(audio_path)]
        audio = ["-c:a", "aac", "-b:a", "192k", "-shortest"]
    limit = ["-t", str(duration)] if duration is not None else []

    return ["ffmpeg", "-y", "-loglevel", "error", *inputs, *video, *audio, *limit, str(output_path)]


def _pipe_frames(
    stdin: IO[bytes],
    frames: Iterable[np.ndarray],
    total_frames: Optional[int],
    progress_callback: Optional[Callable],
) -> int:
    """Write frames until exhausted or ffmpeg hangs up. Returns frames written."""
    written = 0
    try:
        for frame in frames:
            # RGBA frames lose their alpha here
            stdin.write(np.ascontiguousarray(frame[..., :3]).tobytes())
            written += 1
            if progress_callback and total_frames:
                progress_callback(written, total_frames)
    except BrokenPipeError:
        logger.debug("ffmpeg closed its input after %s frames", written)
    finally:
        stdin.close()
    return written


def _summarize_stderr(stderr: str) -> str:
    """Last few error-looking lines, or the tail of the log."""
    flagged = [line for line in stderr.splitlines() if any(m in line.lower() for m in _ERROR_MARKERS)]
    return "\n".join(flagged[-5:]) if flagged else stderr[-500:]


def encode_video(
    frame_iterator: Iterable[np.ndarray],
    output_path: Path,
    width: int = 390,
    height: int = 844,
    fps: int = 60,
    quality: str = "high",
    audio_path: Optional[Path] = None,
    duration: Optional[float] = None,
    total_frames: Optional[int] = None,
    progress_callback: Callable = None,
) -> Path:
    """
    Encode frames to MP4.

    Args:
        frame_iterator: Yields (H, W, 3) or (H, W, 4) uint8 arrays.
        output_path: Output MP4 path; parent directories are created.
        width: Frame width.
        height: Frame height.
        fps: Frames per second.
        quality: "high", "medium", or "fast".
        audio_path: Optional soundtrack to mux in.
        duration: Output length limit in seconds.
        total_frames: Total frame count for progress reporting.
        progress_callback: Optional callback(current_frame, total_frames).

    Returns:
        Path to the output file.

    Raises:
        RuntimeError: ffmpeg exited with an error.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    cmd = build_command(output_path, width, height, fps, quality, audio_path, duration)
    logger.debug("Running %s", " ".join(cmd))
    # stderr must not be a pipe nobody drains
    with tempfile.TemporaryFile() as log:
        proc = subprocess.Popen(cmd, stdin=subprocess.PIPE, stdout=subprocess.DEVNULL, stderr=log)
        count = _pipe_frames(proc.stdin, frame_iterator, total_frames, progress_callback)
        proc.wait()
        log.seek(0)
        stderr = log.read().decode("utf-8", errors="replace")

    if proc.returncode != 0:
        raise RuntimeError(f"ffmpeg exited with code {proc.returncode}: {_summarize_stderr(stderr)}")

    logger.debug("Encoded %s frames to %s", count, output_path)
    return output_path
