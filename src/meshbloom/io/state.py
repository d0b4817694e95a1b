"""
State snapshot transport.

Serialises an ``EngineState`` (minus the live energy value) to a compact,
URL-safe token and restores it with per-field coercion against the
defaults. Restoring never raises: any decode failure yields the default
state and a logged warning.
"""

import base64
import binascii
import json
import logging
import math
from dataclasses import asdict, fields
from typing import Any, Callable, Dict, Optional
from urllib.parse import parse_qs, urlencode, urlparse, urlunparse

from meshbloom.config import (
    BACKGROUND_STYLES,
    COLOR_FIELDS,
    REACTIVITY_CHANNELS,
    TRANSIENT_FIELDS,
    EngineState,
    clamp_field,
)
from meshbloom.core.color import parse_hex
from meshbloom.core.rng import coerce_seed

logger = logging.getLogger(__name__)

QUERY_KEY = "s"


def snapshot(state: EngineState) -> Dict[str, Any]:
    """JSON-ready dict of every configuration field."""
    data = asdict(state)
    for name in TRANSIENT_FIELDS:
        data.pop(name, None)
    return data


def encode_payload(data: Dict[str, Any]) -> str:
    """Compact JSON, URL-safe base64, no padding."""
    raw = json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def decode_payload(token: str) -> Any:
    """
    Inverse of ``encode_payload``.

    Raises:
        ValueError: The token is not valid base64 JSON.
    """
    if not isinstance(token, str):
        raise ValueError("token must be a string")
    compact = "".join(token.split())
    padded = compact + "=" * (-len(compact) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
        return json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"undecodable state token: {exc}") from exc


def serialize(state: EngineState) -> str:
    return encode_payload(snapshot(state))


def _coerce_number(value, default, as_int: bool):
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return default
    else:
        return default
    if not math.isfinite(number):
        return default
    if as_int:
        return int(number)
    return value if isinstance(value, float) else number


def coerce(data: Any, template: Optional[EngineState] = None) -> EngineState:
    """
    Build a state from untrusted ``data`` field by field.

    Numbers must parse to finite values, strings must be strings, colours
    must be ``#rrggbb`` and the style a known one. Numbers are clamped to
    their slider range; anything else keeps the template value. Unknown
    keys are ignored and the reactivity map merges key by key.
    """
    state = (template or EngineState()).copy()
    if not isinstance(data, dict):
        return state

    for f in fields(EngineState):
        name = f.name
        if name in TRANSIENT_FIELDS or name not in data:
            continue
        value = data[name]
        default = getattr(state, name)

        if name == "reactivity":
            if isinstance(value, dict):
                merged = dict(default)
                for channel in REACTIVITY_CHANNELS:
                    if isinstance(value.get(channel), bool):
                        merged[channel] = value[channel]
                state.reactivity = merged
        elif name == "seed":
            state.seed = coerce_seed(_coerce_number(value, default, as_int=False), default)
        elif name in COLOR_FIELDS:
            setattr(state, name, parse_hex(value, default))
        elif name == "bg_style":
            if value in BACKGROUND_STYLES:
                state.bg_style = value
        elif isinstance(default, str):
            if isinstance(value, str):
                setattr(state, name, value)
        elif isinstance(default, int):
            setattr(state, name, clamp_field(name, _coerce_number(value, default, as_int=True)))
        elif isinstance(default, float):
            setattr(state, name, clamp_field(name, float(_coerce_number(value, default, as_int=False))))

    return state


def deserialize(token: str, template: Optional[EngineState] = None) -> EngineState:
    """Restore a state token; malformed input falls back to defaults."""
    try:
        data = decode_payload(token)
    except ValueError as exc:
        logger.warning("Ignoring persisted state: %s", exc)
        return (template or EngineState()).copy()
    if not isinstance(data, dict):
        logger.warning("Ignoring persisted state: expected an object, got %s", type(data).__name__)
    return coerce(data, template)


def share_url(base_url: str, state: EngineState) -> str:
    """``base_url`` with the state token in its query string."""
    parts = urlparse(base_url)
    query = parse_qs(parts.query)
    query[QUERY_KEY] = [serialize(state)]
    return urlunparse(parts._replace(query=urlencode(query, doseq=True)))


def state_from_url(url: str, template: Optional[EngineState] = None) -> EngineState:
    query = parse_qs(urlparse(url).query)
    tokens = query.get(QUERY_KEY)
    if not tokens:
        return (template or EngineState()).copy()
    return deserialize(tokens[-1], template)


class DebouncedPersister:
    """
    Last-write-wins persistence of state snapshots.

    ``schedule`` replaces any pending snapshot and restarts the window;
    ``poll`` writes once the window has elapsed. Driven by the frame clock,
    so nothing here sleeps or spawns threads.
    """

    def __init__(self, write: Callable[[str], None], delay_ms: float = 400.0):
        self.write = write
        self.delay_ms = delay_ms
        self._pending: Optional[str] = None
        self._due: float = 0.0
        self.writes = 0

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, state: EngineState, now_ms: float):
        self._pending = serialize(state)
        self._due = now_ms + self.delay_ms

    def poll(self, now_ms: float) -> bool:
        if self._pending is None or now_ms < self._due:
            return False
        self.flush()
        return True

    def flush(self):
        if self._pending is None:
            return
        token, self._pending = self._pending, None
        self.write(token)
        self.writes += 1
