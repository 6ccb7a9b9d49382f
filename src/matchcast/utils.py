"""Small numeric helpers shared across the prediction engine."""

from __future__ import annotations

import math
from typing import Iterable, List, Sequence

__all__ = [
    "clamp",
    "team_seed",
    "normalise_percentages",
    "shannon_entropy",
]


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp ``value`` into ``[lower, upper]``."""

    return max(lower, min(upper, value))


def team_seed(name: str) -> int:
    """Return a stable, non-negative seed derived from a team name.

    Uses the 32-bit ``31 * h + c`` string hash so the same name yields the
    same seed across processes (unlike the salted builtin :func:`hash`).
    """

    h = 0
    for char in name:
        h = (31 * h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def normalise_percentages(values: Sequence[float], digits: int = 2) -> List[float]:
    """Scale ``values`` to sum to 100 and round them to ``digits`` decimals.

    The rounding residual is absorbed by the largest entry so that the rounded
    values still add up to exactly 100.  Negative inputs are treated as zero;
    an all-zero input is split evenly.
    """

    cleaned = [max(0.0, float(value)) for value in values]
    if not cleaned:
        return []
    total = sum(cleaned)
    if total <= 0.0:
        cleaned = [1.0] * len(cleaned)
        total = float(len(cleaned))
    rounded = [round(value / total * 100.0, digits) for value in cleaned]
    residual = round(100.0 - sum(rounded), digits)
    if residual:
        largest = max(range(len(rounded)), key=lambda idx: rounded[idx])
        rounded[largest] = round(rounded[largest] + residual, digits)
    return rounded


def shannon_entropy(probabilities: Iterable[float]) -> float:
    """Entropy in bits, ignoring zero-probability states."""

    return -sum(p * math.log2(p) for p in probabilities if p > 0.0)
