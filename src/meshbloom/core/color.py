"""Hex colour parsing and interpolation."""

import math
import re
from typing import Optional, Tuple

_HEX_RE = re.compile(r"^#[0-9a-fA-F]{6}$")


def is_hex_color(value) -> bool:
    return isinstance(value, str) and bool(_HEX_RE.match(value))


def parse_hex(value, fallback: Optional[str] = None) -> Optional[str]:
    """Normalised ``#rrggbb``, or ``fallback`` when ``value`` is not one."""
    if is_hex_color(value):
        return value.lower()
    return fallback


def hex_to_rgb(hex_color: str) -> Tuple[int, int, int]:
    return (
        int(hex_color[1:3], 16),
        int(hex_color[3:5], 16),
        int(hex_color[5:7], 16),
    )


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return f"#{r:02x}{g:02x}{b:02x}"


def lerp_hex(hex1: str, hex2: str, t: float) -> str:
    """Blend two hex colours, rounding half up per channel."""
    c1 = hex_to_rgb(hex1)
    c2 = hex_to_rgb(hex2)
    out = [int(math.floor(a + (b - a) * t + 0.5)) for a, b in zip(c1, c2)]
    return rgb_to_hex(*(min(255, max(0, c)) for c in out))
