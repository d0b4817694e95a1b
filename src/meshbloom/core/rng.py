"""
Deterministic seeded random streams.

A mulberry32 generator (Weyl increment followed by xorshift-multiply
mixing) over a single 32-bit state word. Each consumer derives its own
stream by XOR-ing the base seed with a fixed domain tag, so control
points and blob shapes never share draws.
"""

import math
from typing import List, Tuple

MASK32 = 0xFFFFFFFF

# Domain tags combined with the base seed
POINT_STREAM = 0x9E3779B9
BLOB_STREAM = 0x85EBCA6B

_WEYL = 0x6D2B79F5
_INV_2_32 = 1.0 / 4294967296.0


def coerce_seed(value, default: int = 0) -> int:
    """
    Coerce arbitrary input to an unsigned 32-bit seed.

    Fractions are truncated toward zero and negatives wrap modulo 2**32.
    Non-finite or unparseable values yield ``default``.
    """
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value & MASK32
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default & MASK32
    if not math.isfinite(number):
        return default & MASK32
    return int(number) & MASK32


def derive_seed(base_seed, tag: int) -> int:
    """Seed for one stream domain."""
    return (coerce_seed(base_seed) ^ tag) & MASK32


def init(seed) -> int:
    """Generator state for ``seed``."""
    return coerce_seed(seed)


def next_float(state: int) -> Tuple[float, int]:
    """
    Advance the generator one step.

    Returns:
        (value in [0, 1), new state).
    """
    a = (state + _WEYL) & MASK32
    t = ((a ^ (a >> 15)) * (a | 1)) & MASK32
    t = ((t + (((t ^ (t >> 7)) * (t | 61)) & MASK32)) & MASK32) ^ t
    return ((t ^ (t >> 14)) & MASK32) * _INV_2_32, a


class SeededStream:
    """Stateful convenience wrapper around ``next_float``."""

    def __init__(self, seed, tag: int = 0):
        self.seed = derive_seed(seed, tag)
        self._state = init(self.seed)

    def random(self) -> float:
        value, self._state = next_float(self._state)
        return value

    def uniform(self, low: float, high: float) -> float:
        return low + self.random() * (high - low)

    def take(self, n: int) -> List[float]:
        return [self.random() for _ in range(n)]

    def __iter__(self):
        return self

    def __next__(self) -> float:
        return self.random()
