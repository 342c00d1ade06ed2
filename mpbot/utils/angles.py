# mpbot/utils/angles.py
import math
from typing import Iterable


def normalize_deg(theta: float) -> float:
    """Wrap an angle into [0, 360)."""
    # python's % already lands in [0, 360) for a positive divisor
    wrapped = theta % 360.0
    # except that -1e-15 % 360 rounds to 360.0
    return 0.0 if wrapped >= 360 else wrapped


def circular_mean_deg(angles: Iterable[float]) -> float:
    """Mean direction of a set of angles in degrees, normalized to [0, 360).

    Averages unit vectors rather than raw values, so 350 and 10 give 0.
    """
    sum_sin = 0.0
    sum_cos = 0.0
    n = 0
    for a in angles:
        r = math.radians(a)
        sum_sin += math.sin(r)
        sum_cos += math.cos(r)
        n += 1
    if n == 0:
        raise ValueError("circular mean of no angles")
    return normalize_deg(math.degrees(math.atan2(sum_sin, sum_cos)))


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, int(value)))
