"""
Colour compositing primitives.

Gradient ramps, W3C blend modes, blurred upsampling and film grain. All
working buffers are float32 in [0, 1]; finished frames are uint8.
"""

from typing import Sequence, Tuple

import numpy as np
from PIL import Image, ImageFilter
from scipy.ndimage import gaussian_filter

from meshbloom.core.color import hex_to_rgb

RGBA = Tuple[float, float, float, float]


def hex_to_unit(hex_color: str) -> np.ndarray:
    """(3,) float32 colour in [0, 1]."""
    return np.array(hex_to_rgb(hex_color), dtype=np.float32) / 255.0


def gradient_ramp(
    s: np.ndarray,
    stops: Sequence[Tuple[float, RGBA]],
) -> np.ndarray:
    """
    Evaluate a multi-stop gradient.

    Args:
        s: (H, W) gradient parameter; clamped to the stop range.
        stops: (offset, (r, g, b, a)) pairs, offsets ascending, channels in [0, 1].

    Returns:
        (H, W, 4) float32 array.
    """
    offsets = np.array([o for o, _ in stops], dtype=np.float64)
    colors = np.array([c for _, c in stops], dtype=np.float64)
    out = np.empty(s.shape + (4,), dtype=np.float32)
    for ch in range(4):
        out[..., ch] = np.interp(s, offsets, colors[:, ch])
    return out


def linear_gradient_param(
    width: int,
    height: int,
    start: Tuple[float, float],
    end: Tuple[float, float],
) -> np.ndarray:
    """Projection of every pixel centre onto the start-end segment, 0 at start."""
    x0, y0 = start
    dx = end[0] - x0
    dy = end[1] - y0
    denom = dx * dx + dy * dy
    xs = np.arange(width, dtype=np.float32) + 0.5
    ys = np.arange(height, dtype=np.float32) + 0.5
    xg, yg = np.meshgrid(xs, ys)
    if denom <= 0:
        return np.zeros((height, width), dtype=np.float32)
    return ((xg - x0) * dx + (yg - y0) * dy) / denom


def radial_gradient_param(
    width: int,
    height: int,
    center: Tuple[float, float],
    radius: float,
) -> np.ndarray:
    """Distance from ``center`` in units of ``radius``."""
    xs = np.arange(width, dtype=np.float32) + 0.5 - center[0]
    ys = np.arange(height, dtype=np.float32) + 0.5 - center[1]
    xg, yg = np.meshgrid(xs, ys)
    return np.sqrt(xg ** 2 + yg ** 2) / max(radius, 1e-6)


def _soft_light(cb: np.ndarray, cs: np.ndarray) -> np.ndarray:
    d = np.where(cb <= 0.25, ((16.0 * cb - 12.0) * cb + 4.0) * cb, np.sqrt(cb))
    return np.where(
        cs <= 0.5,
        cb - (1.0 - 2.0 * cs) * cb * (1.0 - cb),
        cb + (2.0 * cs - 1.0) * (d - cb),
    )


def blend(cb: np.ndarray, cs: np.ndarray, mode: str = "source-over") -> np.ndarray:
    """Separable blend function B(Cb, Cs)."""
    if mode == "screen":
        return cb + cs - cb * cs
    if mode == "multiply":
        return cb * cs
    if mode == "overlay":
        return np.where(cb <= 0.5, 2.0 * cb * cs, 1.0 - 2.0 * (1.0 - cb) * (1.0 - cs))
    if mode == "lighten":
        return np.maximum(cb, cs)
    if mode == "darken":
        return np.minimum(cb, cs)
    if mode == "soft-light":
        return _soft_light(cb, cs)
    return cs


def composite(
    backdrop: np.ndarray,
    source: np.ndarray,
    alpha: np.ndarray,
    mode: str = "source-over",
) -> np.ndarray:
    """
    Composite ``source`` over an opaque ``backdrop``.

    Args:
        backdrop: (H, W, 3) float in [0, 1].
        source: (H, W, 3) float in [0, 1].
        alpha: (H, W) or (H, W, 1) coverage in [0, 1].
        mode: Blend mode name.

    Returns:
        (H, W, 3) float32.
    """
    if alpha.ndim == 2:
        alpha = alpha[:, :, np.newaxis]
    mixed = blend(backdrop, source, mode)
    return (backdrop + (mixed - backdrop) * alpha).astype(np.float32)


def upsample_blur(
    buffer: np.ndarray,
    width: int,
    height: int,
    radius: float,
) -> np.ndarray:
    """
    Bilinear upscale of a small RGB buffer followed by a gaussian blur.

    Args:
        buffer: (h, w, 3) uint8.
        width: Target width.
        height: Target height.
        radius: Blur radius in target pixels.

    Returns:
        (height, width, 3) uint8.
    """
    img = Image.fromarray(np.ascontiguousarray(buffer))
    img = img.resize((width, height), Image.BILINEAR)
    if radius > 0:
        img = img.filter(ImageFilter.GaussianBlur(radius=radius))
    return np.asarray(img, dtype=np.uint8)


def blur_alpha(mask: np.ndarray, radius: float) -> np.ndarray:
    """Gaussian blur of a float coverage mask in [0, 1]."""
    if radius <= 0:
        return mask
    img = Image.fromarray((np.clip(mask, 0, 1) * 255 + 0.5).astype(np.uint8))
    img = img.filter(ImageFilter.GaussianBlur(radius=radius))
    return np.asarray(img, dtype=np.float32) / 255.0


def add_grain(
    frame: np.ndarray,
    amount: float,
    seed: int = 0,
) -> np.ndarray:
    """
    Overlay soft monochrome film grain.

    Args:
        frame: (H, W, 3) uint8.
        amount: Opacity of the grain layer (0-1).
        seed: Noise seed; equal seeds give equal grain.

    Returns:
        (H, W, 3) uint8.
    """
    if amount <= 0:
        return frame

    h, w = frame.shape[:2]
    rng = np.random.default_rng(seed)
    noise = rng.random((h, w), dtype=np.float32)
    noise = gaussian_filter(noise, sigma=0.6)
    # re-centre after the blur narrows the spread
    noise = np.clip(0.5 + (noise - noise.mean()) * 3.0, 0.0, 1.0)

    base = frame.astype(np.float32) / 255.0
    grain = np.repeat(noise[:, :, np.newaxis], 3, axis=2)
    out = base + (blend(base, grain, "overlay") - base) * amount
    return (np.clip(out, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def to_uint8(frame: np.ndarray) -> np.ndarray:
    """Float [0, 1] frame to uint8 with rounding."""
    return (np.clip(frame, 0.0, 1.0) * 255.0 + 0.5).astype(np.uint8)


def with_alpha(frame: np.ndarray) -> np.ndarray:
    """Append an opaque alpha channel to an (H, W, 3) uint8 frame."""
    h, w = frame.shape[:2]
    alpha = np.full((h, w, 1), 255, dtype=np.uint8)
    return np.concatenate([frame, alpha], axis=2)
