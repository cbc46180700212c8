import math
from typing import Any


def safe_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def round_half_up(value: float) -> int:
    return int(math.floor(float(value) + 0.5))


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def clamp_score(value: float) -> int:
    return int(clamp(round_half_up(value)))


def mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0
