"""
Deterministic randomness for session parametrization.

Two processes given the same session identifiers must derive the same seed
and draw the same sequence, so everything here is plain integer arithmetic
with no dependency on ``random`` or platform hashing.
"""

import math

from chartsync_app.config import SEED_BUCKET_MS

# LCG constants (glibc-style), modulus 2^31
_LCG_A = 1103515245
_LCG_C = 12345
_LCG_MOD = 2 ** 31
_LCG_MAX = 2 ** 31 - 1


class SeededRandom:
    """Linear-congruential stream: same seed and same call sequence, same numbers."""

    def __init__(self, seed: int):
        if seed < 0:
            raise ValueError("seed must be >= 0")
        self._seed = int(seed)

    def next(self) -> float:
        self._seed = (self._seed * _LCG_A + _LCG_C) % _LCG_MOD
        return self._seed / _LCG_MAX

    def range(self, lo: float, hi: float) -> float:
        return lo + self.next() * (hi - lo)

    def int(self, lo: int, hi: int) -> int:
        """Inclusive integer draw in [lo, hi]."""
        return min(hi, math.floor(self.range(lo, hi + 1)))


def _to_int32(x: int) -> int:
    x &= 0xFFFFFFFF
    return x - 0x100000000 if x & 0x80000000 else x


def string_hash(text: str) -> int:
    """Rolling ``hash * 31 + code unit`` over UTF-16 code units, wrapped to signed 32-bit."""
    h = 0
    raw = text.encode("utf-16-le")
    for i in range(0, len(raw), 2):
        code_unit = raw[i] | (raw[i + 1] << 8)
        h = _to_int32(h * 31 + code_unit)
    return h


def generate_seed(session_state_id: str, token_mint: str, start_time: int) -> int:
    # Bucketed to the minute: rapid re-creation in the same minute reuses the parameters.
    bucket = int(start_time) // SEED_BUCKET_MS
    return abs(string_hash(f"{session_state_id}:{token_mint}:{bucket}"))
