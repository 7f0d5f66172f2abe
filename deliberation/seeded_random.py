"""Seeded pseudo-random numbers for reproducible statement ordering

Same seed -> same sequence on every process, machine, and Python version.
The generator is SplitMix64 (Steele, Lea & Flood 2014) with plain 64-bit
integer arithmetic, and seeds are derived from strings with SHA-256, so
nothing depends on Python's `random` module or on hash randomization.
"""

import hashlib
import math
from typing import List, Sequence, TypeVar

T = TypeVar("T")

MASK_64 = (1 << 64) - 1
GOLDEN_GAMMA = 0x9E3779B97F4A7C15

# 53 bits fill a double's mantissa exactly
_DOUBLE_UNIT = 1.0 / (1 << 53)


def string_to_seed(text: str) -> int:
    """64-bit seed from the first 8 bytes of SHA-256(text), big endian"""
    digest = hashlib.sha256(text.encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


class SeededRandom:
    """SplitMix64 generator

    Seeded once and consumed sequentially; callers never re-seed mid-run.
    """

    def __init__(self, seed: int):
        self._state = seed & MASK_64

    def next_u64(self) -> int:
        self._state = (self._state + GOLDEN_GAMMA) & MASK_64
        z = self._state
        z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & MASK_64
        z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & MASK_64
        return z ^ (z >> 31)

    def random_open(self) -> float:
        """Uniform float in the open interval (0, 1), safe for log()"""
        return ((self.next_u64() >> 11) + 0.5) * _DOUBLE_UNIT

    def randbelow(self, n: int) -> int:
        """Uniform integer in [0, n) without modulo bias (rejection sampling)"""
        if n <= 0:
            raise ValueError(f"randbelow() needs a positive bound, got {n}")
        limit = (1 << 64) - ((1 << 64) % n)
        while True:
            value = self.next_u64()
            if value < limit:
                return value % n

    def exponential(self) -> float:
        """Standard exponential variate, -ln(U) with U in (0, 1)"""
        return -math.log(self.random_open())


def seeded_shuffle(items: Sequence[T], seed: int) -> List[T]:
    """Fisher-Yates shuffle; returns a new list and leaves `items` untouched"""
    shuffled = list(items)
    rng = SeededRandom(seed)

    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randbelow(i + 1)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]

    return shuffled
