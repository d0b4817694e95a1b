"""Tests for state snapshot transport."""

import base64
import json

import pytest

from meshbloom.config import EngineState, default_reactivity, state_field_names
from meshbloom.io.state import (
    DebouncedPersister,
    coerce,
    decode_payload,
    deserialize,
    encode_payload,
    serialize,
    share_url,
    snapshot,
    state_from_url,
)


def _token(data) -> str:
    raw = json.dumps(data).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


class TestSerialize:
    def test_roundtrip_excludes_energy(self):
        state = EngineState(
            seed=4242,
            bg_style="mesh",
            color1="#010203",
            energy=0.93,
            reactivity_amount=12.5,
            bg_complexity=7,
        )
        state.reactivity["blur"] = True
        restored = deserialize(serialize(state))

        for name in state_field_names():
            if name == "energy":
                continue
            assert getattr(restored, name) == getattr(state, name), name
        assert restored.energy == EngineState().energy

    def test_snapshot_omits_energy(self):
        assert "energy" not in snapshot(EngineState())

    def test_token_is_url_safe(self):
        token = serialize(EngineState(audio_source="a/b?c=d&e"))
        assert "=" not in token
        assert "+" not in token
        assert "/" not in token

    def test_token_stable(self):
        assert serialize(EngineState()) == serialize(EngineState())

    def test_payload_roundtrip(self):
        data = {"a": 1, "b": [1, 2]}
        assert decode_payload(encode_payload(data)) == data


class TestDeserializeFallbacks:
    def test_not_json(self):
        assert deserialize("not json") == EngineState()

    def test_empty(self):
        assert deserialize("") == EngineState()

    def test_not_a_string(self):
        assert deserialize(None) == EngineState()

    def test_array_payload(self):
        assert deserialize(_token([1, 2, 3])) == EngineState()

    def test_unknown_fields_ignored(self):
        restored = deserialize(_token({"wobble": 9, "seed": 77}))
        assert restored.seed == 77
        assert not hasattr(restored, "wobble")

    def test_logs_warning(self, caplog):
        with caplog.at_level("WARNING", logger="meshbloom.io.state"):
            deserialize("%%%")
        assert "Ignoring persisted state" in caplog.text

    def test_decode_payload_raises(self):
        with pytest.raises(ValueError):
            decode_payload("%%%%")

    def test_template_used(self):
        template = EngineState(size=111)
        assert deserialize("garbage!", template).size == 111


class TestCoercion:
    def test_bad_number_keeps_default(self):
        state = coerce({"size": "huge", "duration": None, "opacity": "NaN"})
        defaults = EngineState()
        assert state.size == defaults.size
        assert state.duration == defaults.duration
        assert state.opacity == defaults.opacity

    def test_numeric_strings_parse(self):
        state = coerce({"size": "300", "duration": "1500.5"})
        assert state.size == 300
        assert state.duration == 1500.5

    def test_int_fields_truncate(self):
        assert coerce({"extra_points": 6.9}).extra_points == 6

    def test_float_field_from_int(self):
        state = coerce({"opacity": 50})
        assert state.opacity == 50.0
        assert isinstance(state.opacity, float)

    def test_bool_rejected_for_numbers(self):
        assert coerce({"size": True}).size == EngineState().size

    def test_bad_colour(self):
        state = coerce({"color1": "blue", "bg_color2": "#12345", "color2": "#ABCDEF"})
        defaults = EngineState()
        assert state.color1 == defaults.color1
        assert state.bg_color2 == defaults.bg_color2
        assert state.color2 == "#abcdef"

    def test_string_field_type_checked(self):
        assert coerce({"timing_function": 5}).timing_function == "ease"
        assert coerce({"timing_function": "ease-in"}).timing_function == "ease-in"

    def test_unknown_style_keeps_default(self):
        assert coerce({"bg_style": "plasma"}).bg_style == EngineState().bg_style
        assert coerce({"bg_style": 5}).bg_style == EngineState().bg_style
        assert coerce({"bg_style": "mesh"}).bg_style == "mesh"

    def test_reactivity_merges(self):
        state = coerce({"reactivity": {"blur": True, "glow": "yes", "bogus": True}})
        expected = default_reactivity()
        expected["blur"] = True
        assert state.reactivity == expected

    def test_reactivity_not_a_dict(self):
        assert coerce({"reactivity": [1]}).reactivity == default_reactivity()

    def test_seed_coerced(self):
        assert coerce({"seed": -1}).seed == 0xFFFFFFFF
        assert coerce({"seed": 12.7}).seed == 12
        assert coerce({"seed": "x"}).seed == EngineState().seed

    def test_energy_never_restored(self):
        assert coerce({"energy": 0.01}).energy == EngineState().energy

    def test_template_not_mutated(self):
        template = EngineState()
        coerce({"reactivity": {"blur": True}, "size": 10}, template)
        assert template.reactivity["blur"] is False
        assert template.size == 250

    def test_out_of_range_numbers_clamped(self):
        state = deserialize(_token({
            "bg_complexity": 3000,
            "reactivity_amount": 1000,
            "bg_color_count": 9,
            "opacity": -20,
            "smoothing": 1.5,
        }))
        assert state.bg_complexity == 12
        assert state.reactivity_amount == 100.0
        assert state.bg_color_count == 5
        assert state.opacity == 0.0
        assert isinstance(state.opacity, float)
        assert state.smoothing == 0.99

    def test_clamped_amount_bounds_blob_scale(self):
        from meshbloom.core.reactivity import ReactivityDistributor

        state = deserialize(_token({"reactivity_amount": 1000}))
        state.energy = 1.0
        assert ReactivityDistributor(state).blob_scale() == pytest.approx(1.2)


class TestUrl:
    def test_share_url_roundtrip(self):
        state = EngineState(seed=9, bg_style="radial")
        url = share_url("https://example.com/view?theme=dark", state)
        assert "theme=dark" in url
        restored = state_from_url(url)
        assert restored.seed == 9
        assert restored.bg_style == "radial"

    def test_missing_query(self):
        assert state_from_url("https://example.com/") == EngineState()

    def test_replaces_existing_token(self):
        first = share_url("https://example.com/", EngineState(seed=1))
        second = share_url(first, EngineState(seed=2))
        assert state_from_url(second).seed == 2


class TestDebouncedPersister:
    def test_last_write_wins(self):
        written = []
        persister = DebouncedPersister(written.append, delay_ms=400)
        persister.schedule(EngineState(seed=1), 0.0)
        persister.schedule(EngineState(seed=2), 100.0)
        persister.schedule(EngineState(seed=3), 200.0)

        assert not persister.poll(599.0)
        assert persister.poll(600.0)
        assert len(written) == 1
        assert deserialize(written[0]).seed == 3

    def test_nothing_pending(self):
        written = []
        persister = DebouncedPersister(written.append)
        assert not persister.poll(10_000.0)
        persister.flush()
        assert written == []

    def test_flush_writes_immediately(self):
        written = []
        persister = DebouncedPersister(written.append)
        persister.schedule(EngineState(), 0.0)
        assert persister.pending
        persister.flush()
        assert not persister.pending
        assert persister.writes == 1
        assert len(written) == 1

    def test_snapshot_taken_at_schedule(self):
        written = []
        persister = DebouncedPersister(written.append)
        state = EngineState(seed=5)
        persister.schedule(state, 0.0)
        state.seed = 6
        persister.flush()
        assert deserialize(written[0]).seed == 5
