"""
Procedural background compositor.

Five styles share one entry point:
  - solid   first palette colour
  - linear  three-stop gradient along a slowly rotating angle
  - radial  drifting radial gradient, brightest colour at the centre
  - mesh    soft orbs screen-blended over the base colour
  - field   warped gaussian-weighted blend of the control points,
            computed on a reduced grid and upsampled with blur

Every style is a pure function of (time, palette, points, viewport); the
only retained state is the field style's scratch buffer.
"""

import math
from typing import Optional, Sequence, Tuple

import numpy as np

from meshbloom.config import BACKGROUND_STYLES, EngineState
from meshbloom.core.points import PointBatch
from meshbloom.render.colorgrade import (
    composite,
    gradient_ramp,
    hex_to_unit,
    linear_gradient_param,
    radial_gradient_param,
    to_uint8,
    upsample_blur,
    with_alpha,
)

# Weighted field tuning
FIELD_BASE_RES = 72
FIELD_RES_PER_POINT = 6
FIELD_MAX_RES = 160
FIELD_MIN_RES = 8
BASE_WEIGHT = 1e-4
DOMINANCE_PIVOT = 0.46
RELIEF_GAIN = 0.35
OVERLAY_OPACITY = 0.18
OVERLAY_LIGHT = "#f5f5f5"
OVERLAY_DARK = "#141414"


def scene_time(time_ms: float, bg_speed: float) -> float:
    """Background clock in seconds, scaled by the 0-100 speed control."""
    return time_ms * 0.001 * (bg_speed / 100.0)


def field_grid_size(width: int, height: int, n_points: int) -> Tuple[int, int]:
    """
    Reduced (w, h) for the weighted field.

    The long side grows modestly with point count; the short side follows
    the viewport aspect.
    """
    long_side = int(np.clip(FIELD_BASE_RES + FIELD_RES_PER_POINT * n_points, FIELD_BASE_RES, FIELD_MAX_RES))
    if width >= height:
        return long_side, max(FIELD_MIN_RES, int(round(long_side * height / width)))
    return max(FIELD_MIN_RES, int(round(long_side * width / height))), long_side


def _stop(colors: Sequence[np.ndarray], i: int) -> Tuple[float, float, float, float]:
    c = colors[min(i, len(colors) - 1)]
    return (float(c[0]), float(c[1]), float(c[2]), 1.0)


class BackgroundCompositor:
    """Renders one background frame per call."""

    def __init__(self):
        self._scratch: Optional[np.ndarray] = None

    def render(
        self,
        style: str,
        t: float,
        state: EngineState,
        batch: Optional[PointBatch],
        width: int,
        height: int,
    ) -> Optional[np.ndarray]:
        """
        Render a background.

        Args:
            style: One of BACKGROUND_STYLES.
            t: Scene time in seconds (already speed-scaled).
            state: Palette and shape controls.
            batch: Current control points (mesh and field styles).
            width: Viewport width.
            height: Viewport height.

        Returns:
            (H, W, 4) uint8 RGBA, or None for a zero-area viewport.
        """
        if style not in BACKGROUND_STYLES:
            raise ValueError(f"Unknown background style: {style}")
        if width <= 0 or height <= 0:
            return None

        if style == "field":
            return with_alpha(self._field(t, state, batch, width, height))

        colors = [hex_to_unit(c) for c in state.bg_palette]
        if style == "solid":
            rgb = np.empty((height, width, 3), dtype=np.float32)
            rgb[:] = colors[0]
            frame = to_uint8(rgb)
        elif style == "linear":
            frame = to_uint8(self._linear(t, state, colors, width, height))
        elif style == "radial":
            frame = to_uint8(self._radial(t, colors, width, height))
        else:
            frame = to_uint8(self._mesh(t, colors, batch, width, height))

        return with_alpha(frame)

    # ------------------------------------------------------------------
    # Gradient styles
    # ------------------------------------------------------------------

    def _linear(self, t, state, colors, width, height) -> np.ndarray:
        angle = math.radians(state.bg_angle + t * 10.0)
        cx, cy = width / 2.0, height / 2.0
        length = max(width, height)
        dx = math.cos(angle) * length
        dy = math.sin(angle) * length
        s = linear_gradient_param(width, height, (cx - dx, cy - dy), (cx + dx, cy + dy))
        ramp = gradient_ramp(s, [
            (0.0, _stop(colors, 0)),
            (0.5, _stop(colors, 1)),
            (1.0, _stop(colors, 2)),
        ])
        return ramp[..., :3]

    def _radial(self, t, colors, width, height) -> np.ndarray:
        cx = width * (0.5 + math.sin(t * 0.4) * 0.1)
        cy = height * (0.45 + math.cos(t * 0.3) * 0.1)
        radius = max(width, height) * 0.7
        s = radial_gradient_param(width, height, (cx, cy), radius)
        # brightest colour in the middle
        ramp = gradient_ramp(s, [
            (0.0, _stop(colors, 1)),
            (0.5, _stop(colors, 0)),
            (1.0, _stop(colors, 2)),
        ])
        return ramp[..., :3]

    def _mesh(self, t, colors, batch, width, height) -> np.ndarray:
        rgb = np.empty((height, width, 3), dtype=np.float32)
        rgb[:] = colors[0]
        if batch is None:
            return rgb

        diag = math.sqrt(width * width + height * height)
        for point in batch.points:
            nx, ny = point.position(t)
            radius = point.radius * diag
            s = radial_gradient_param(width, height, (nx * width, ny * height), radius)
            c = colors[point.color_index % len(colors)]
            ramp = gradient_ramp(s, [
                (0.0, (c[0], c[1], c[2], point.alpha)),
                (0.6, (c[0], c[1], c[2], point.alpha * 0.3)),
                (1.0, (c[0], c[1], c[2], 0.0)),
            ])
            rgb = composite(rgb, ramp[..., :3], ramp[..., 3], "screen")
        return rgb

    # ------------------------------------------------------------------
    # Weighted field
    # ------------------------------------------------------------------

    def field_buffer(
        self,
        t: float,
        state: EngineState,
        batch: Optional[PointBatch],
        grid_w: int,
        grid_h: int,
    ) -> np.ndarray:
        """
        Compute the reduced-resolution weighted field.

        Returns:
            (grid_h, grid_w, 3) uint8.
        """
        colors = np.stack([hex_to_unit(c) for c in state.bg_palette]).astype(np.float64)
        edge = float(np.clip(state.bg_edge / 100.0, 0.0, 1.0))
        soft = float(np.clip(state.bg_softness / 100.0, 0.0, 1.0))
        flow = float(np.clip(state.bg_flow / 100.0, 0.0, 1.0))

        u = (np.arange(grid_w, dtype=np.float64) + 0.5) / grid_w
        v = (np.arange(grid_h, dtype=np.float64) + 0.5) / grid_h
        ug, vg = np.meshgrid(u, v)

        # Domain warp bends the region boundaries
        amp = (0.02 + flow * 0.08) * (1.0 - edge * 0.5) * (0.6 + soft * 0.4)
        freq = 3.0 + edge * 4.0
        wu = (
            ug
            + amp * np.sin(vg * freq + t * 0.7)
            + amp * 0.5 * np.cos((ug + vg) * freq * 0.6 - t * 0.45)
        )
        wv = (
            vg
            + amp * np.cos(ug * freq * 1.1 - t * 0.6)
            + amp * 0.5 * np.sin((ug - vg) * freq * 0.8 + t * 0.35)
        )

        if self._scratch is None or self._scratch.shape != (grid_h, grid_w, 3):
            self._scratch = np.empty((grid_h, grid_w, 3), dtype=np.float64)
        out = self._scratch

        if batch is None or len(batch) == 0:
            out[:] = colors[0]
            return to_uint8(out)

        pts = batch.arrays
        px, py = pts.positions(t)

        # Distances measured in long-side units so kernels stay round
        long_side = float(max(grid_w, grid_h))
        ax = grid_w / long_side
        ay = grid_h / long_side
        dx = (wu[:, :, np.newaxis] - px) * ax
        dy = (wv[:, :, np.newaxis] - py) * ay

        cos_t = np.cos(pts.tilt_seed)
        sin_t = np.sin(pts.tilt_seed)
        rx = dx * cos_t + dy * sin_t
        ry = -dx * sin_t + dy * cos_t
        stretch = 1.0 + (pts.stretch_seed - 0.5) * 0.6
        d2 = (rx / stretch) ** 2 + (ry * stretch) ** 2

        diag = math.sqrt(ax * ax + ay * ay)
        pulse = 1.0 + 0.08 * np.sin(t * 0.9 + pts.pulse_phase)
        sigma = pts.radius * diag * (0.35 + soft * 0.45) * pulse
        sharpness = 0.8 + edge * 2.2

        weights = pts.alpha * np.exp(-d2 / (2.0 * sigma ** 2) * sharpness)

        point_colors = colors[pts.color_index % len(colors)]
        total = weights.sum(axis=2) + BASE_WEIGHT
        np.divide(
            weights @ point_colors + BASE_WEIGHT * colors[0],
            total[:, :, np.newaxis],
            out=out,
        )

        # Ridge shading where one point stops dominating
        dominance = weights.max(axis=2) / total
        relief = (dominance - DOMINANCE_PIVOT) * (0.45 + edge * 1.0)
        out *= (1.0 + relief * RELIEF_GAIN)[:, :, np.newaxis]

        return to_uint8(out)

    def _field(self, t, state, batch, width, height) -> np.ndarray:
        n_points = len(batch) if batch is not None else 0
        grid_w, grid_h = field_grid_size(width, height, n_points)
        small = self.field_buffer(t, state, batch, grid_w, grid_h)

        soft = float(np.clip(state.bg_softness / 100.0, 0.0, 1.0))
        scale = max(width, height) / max(grid_w, grid_h)
        frame = upsample_blur(small, width, height, radius=(1.0 + soft * 10.0) * scale / 4.0)

        return self._depth_overlay(frame, state.bg_angle, width, height)

    def _depth_overlay(self, frame: np.ndarray, angle_deg: float, width: int, height: int) -> np.ndarray:
        """Soft-light a light-to-dark ramp along the configured angle."""
        angle = math.radians(angle_deg)
        cx, cy = width / 2.0, height / 2.0
        half = max(width, height) / 2.0
        dx = math.cos(angle) * half
        dy = math.sin(angle) * half
        s = linear_gradient_param(width, height, (cx - dx, cy - dy), (cx + dx, cy + dy))
        light = hex_to_unit(OVERLAY_LIGHT)
        dark = hex_to_unit(OVERLAY_DARK)
        ramp = gradient_ramp(s, [
            (0.0, (light[0], light[1], light[2], 1.0)),
            (1.0, (dark[0], dark[1], dark[2], 1.0)),
        ])
        base = frame.astype(np.float32) / 255.0
        alpha = np.full((height, width), OVERLAY_OPACITY, dtype=np.float32)
        return to_uint8(composite(base, ramp[..., :3], alpha, "soft-light"))
