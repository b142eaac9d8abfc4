import math


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves toward +infinity (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


def round_one_decimal(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def percentage(score: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(score / total * 100)
