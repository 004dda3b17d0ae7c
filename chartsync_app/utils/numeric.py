import math
from typing import Any


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def finite_or_zero(x: Any) -> float:
    """Return ``x`` as a float, or 0.0 when it is NaN/Infinity."""
    x = float(x)
    if math.isnan(x) or math.isinf(x):
        return 0.0
    return x
