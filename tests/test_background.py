"""Tests for the procedural background compositor."""

import numpy as np
import pytest

from meshbloom.config import BACKGROUND_STYLES, EngineState
from meshbloom.core.color import hex_to_rgb
from meshbloom.core.points import PointField, point_count
from meshbloom.render.background import (
    FIELD_MAX_RES,
    BackgroundCompositor,
    field_grid_size,
    scene_time,
)


def _batch(state: EngineState, density=None):
    density = state.bg_complexity if density is None else density
    field = PointField()
    return field.regenerate(state.seed, point_count(state.bg_style, density), len(state.bg_palette))


class TestHelpers:
    def test_scene_time(self):
        assert scene_time(2000.0, 50.0) == pytest.approx(1.0)
        assert scene_time(2000.0, 0.0) == 0.0

    def test_grid_portrait(self):
        w, h = field_grid_size(390, 844, 8)
        assert h == 72 + 6 * 8
        assert w == round(h * 390 / 844)

    def test_grid_landscape(self):
        w, h = field_grid_size(1920, 1080, 0)
        assert w == 72
        assert h == round(72 * 1080 / 1920)

    def test_grid_clamped(self):
        w, h = field_grid_size(100, 100, 500)
        assert (w, h) == (FIELD_MAX_RES, FIELD_MAX_RES)


class TestStyles:
    @pytest.mark.parametrize("style", BACKGROUND_STYLES)
    def test_shape_and_opaque(self, style):
        state = EngineState(bg_style=style)
        frame = BackgroundCompositor().render(style, 1.5, state, _batch(state), 40, 72)
        assert frame.shape == (72, 40, 4)
        assert frame.dtype == np.uint8
        assert np.all(frame[..., 3] == 255)

    @pytest.mark.parametrize("style", BACKGROUND_STYLES)
    def test_zero_area(self, style):
        state = EngineState(bg_style=style)
        compositor = BackgroundCompositor()
        assert compositor.render(style, 0.0, state, None, 0, 100) is None
        assert compositor.render(style, 0.0, state, None, 100, 0) is None

    def test_unknown_style(self):
        with pytest.raises(ValueError):
            BackgroundCompositor().render("plasma", 0.0, EngineState(), None, 10, 10)

    def test_solid_is_first_colour(self):
        state = EngineState(bg_color1="#336699")
        frame = BackgroundCompositor().render("solid", 3.0, state, None, 8, 8)
        assert tuple(frame[0, 0, :3]) == hex_to_rgb("#336699")
        assert np.all(frame[..., :3] == frame[0, 0, :3])

    def test_linear_varies_across_frame(self):
        state = EngineState(bg_color1="#000000", bg_color2="#808080", bg_color3="#ffffff")
        frame = BackgroundCompositor().render("linear", 0.0, state, None, 32, 64)
        assert frame[..., :3].std() > 10

    def test_mesh_without_points_is_base(self):
        state = EngineState(bg_color1="#204060")
        frame = BackgroundCompositor().render("mesh", 0.0, state, None, 16, 16)
        assert np.all(frame[..., :3] == np.array(hex_to_rgb("#204060"), dtype=np.uint8))

    def test_mesh_orbs_lighten(self):
        state = EngineState(bg_style="mesh", bg_color1="#101010", bg_color2="#f0f0f0", bg_color3="#e0e0e0")
        frame = BackgroundCompositor().render("mesh", 0.0, state, _batch(state, 4), 32, 32)
        # screen blending never darkens the base
        assert frame[..., :3].min() >= 0x10
        assert frame[..., :3].max() > 0x40

    def test_animates_over_time(self):
        state = EngineState(bg_style="field")
        batch = _batch(state)
        compositor = BackgroundCompositor()
        a = compositor.render("field", 0.0, state, batch, 32, 64)
        b = compositor.render("field", 5.0, state, batch, 32, 64)
        assert not np.array_equal(a, b)


class TestWeightedField:
    def test_buffer_bit_identical(self):
        state = EngineState(seed=12345, bg_style="field", bg_complexity=4)
        batch = _batch(state)
        a = BackgroundCompositor().field_buffer(0.0, state, batch, 40, 86)
        b = BackgroundCompositor().field_buffer(0.0, state, batch, 40, 86)
        np.testing.assert_array_equal(a, b)

    def test_scratch_reuse_does_not_alias(self):
        state = EngineState(seed=12345)
        batch = _batch(state)
        compositor = BackgroundCompositor()
        a = compositor.field_buffer(0.0, state, batch, 40, 86)
        compositor.field_buffer(3.0, state, batch, 40, 86)
        b = compositor.field_buffer(0.0, state, batch, 40, 86)
        np.testing.assert_array_equal(a, b)

    def test_same_seed_same_frame(self):
        state = EngineState(seed=12345, bg_style="field", bg_complexity=4)
        batch = _batch(state)
        assert len(batch) == 8
        a = BackgroundCompositor().render("field", 0.0, state, batch, 39, 84)
        b = BackgroundCompositor().render("field", 0.0, state, _batch(state), 39, 84)
        np.testing.assert_array_equal(a, b)

    def test_render_end_to_end_opaque(self):
        state = EngineState(seed=12345, bg_style="field", bg_complexity=4)
        frame = BackgroundCompositor().render("field", 0.0, state, _batch(state), 39, 84)
        assert frame.shape == (84, 39, 4)
        assert frame.dtype == np.uint8
        assert np.all(frame[..., 3] == 255)
        assert frame[..., :3].std() > 0

    def test_colours_stay_near_palette(self):
        state = EngineState(
            seed=12345,
            bg_color1="#7b8cde",
            bg_color2="#a5b4f0",
            bg_color3="#c8c0e8",
        )
        buffer = BackgroundCompositor().field_buffer(0.0, state, _batch(state), 40, 86)
        palette = np.array([hex_to_rgb(c) for c in state.bg_palette])
        # relief shading moves colours by a bounded amount
        assert buffer.min() >= palette.min() * 0.8
        assert buffer.max() <= min(255, palette.max() * 1.2)

    def test_empty_batch_is_base_colour(self):
        state = EngineState(bg_color1="#112233")
        buffer = BackgroundCompositor().field_buffer(0.0, state, None, 10, 20)
        assert buffer.shape == (20, 10, 3)
        assert np.all(buffer == np.array(hex_to_rgb("#112233"), dtype=np.uint8))

    def test_seed_changes_field(self):
        a_state = EngineState(seed=1)
        b_state = EngineState(seed=2)
        a = BackgroundCompositor().field_buffer(0.0, a_state, _batch(a_state), 30, 60)
        b = BackgroundCompositor().field_buffer(0.0, b_state, _batch(b_state), 30, 60)
        assert not np.array_equal(a, b)
