"""Sweep value helpers used by the grid search and tests."""
from __future__ import annotations

from typing import Iterable, List, Sequence

import numpy as np


def generate_step_values(min_value: float, max_value: float, step: float, decimals: int = 2) -> List[float]:
    """Return an inclusive ``[min, max]`` ladder spaced by ``step``.

    Values are rounded to ``decimals`` so floating-point drift never produces
    keys like ``4.300000000001``. Degenerate ranges (``step <= 0`` or
    ``min > max``) yield an empty list.
    """

    if step <= 0 or min_value > max_value:
        return []

    count = int(round((max_value - min_value) / step))
    values = np.round(min_value + step * np.arange(count + 1), decimals)
    values = values[values <= max_value + 10 ** (-decimals) / 2]
    return [float(v) for v in values]


def normalize_sizes(values: Iterable[float], include_zero: bool = True) -> List[float]:
    """Return sorted, de-duplicated, non-negative sizes, optionally adding 0."""

    cleaned = set()
    for value in values:
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if np.isfinite(number) and number >= 0:
            cleaned.add(number)
    if include_zero:
        cleaned.add(0.0)
    return sorted(cleaned)


def validate_range(min_value: float, max_value: float, step: float, name: str) -> None:
    """Raise ValueError for a malformed sweep range."""

    if not np.isfinite(min_value) or not np.isfinite(max_value) or not np.isfinite(step):
        raise ValueError(f"{name} range must be finite")
    if min_value < 0:
        raise ValueError(f"{name} minimum must be non-negative")
    if min_value > max_value:
        raise ValueError(f"{name} minimum must not exceed maximum")
    if step <= 0:
        raise ValueError(f"{name} step must be positive")


def sizes_within(values: Sequence[float], upper: float) -> List[float]:
    return [float(v) for v in values if v <= upper]
