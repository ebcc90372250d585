"""Economic helpers shared by the evaluator, the selector and the API."""
from __future__ import annotations

import math
from typing import Sequence


def _ensure_non_negative_finite(value: float, name: str) -> None:
    """Raise ValueError when a numeric value is negative or non-finite."""

    if not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def payback_years(price: float, annual_benefits: Sequence[float]) -> float:
    """Return the (fractional) year in which cumulative benefit reaches ``price``.

    Benefit is assumed to accrue uniformly within a year, so a crossing inside
    year ``y`` returns ``(y - 1) + remaining / benefit_y``. Returns ``math.inf``
    when the first-year benefit is not positive or the price is never
    recovered within the series. A negative or non-finite price raises
    ValueError.
    """

    _ensure_non_negative_finite(price, "price")
    if not annual_benefits or not annual_benefits[0] > 0:
        return math.inf

    cumulative = 0.0
    for year_idx, benefit in enumerate(annual_benefits, start=1):
        previous = cumulative
        cumulative += benefit
        if cumulative >= price:
            remaining = price - previous
            fraction = remaining / benefit if benefit > 0 else 1.0
            return (year_idx - 1) + max(fraction, 0.0)
    return math.inf


def return_on_investment(net_profit: float, price: float) -> float:
    """Return ``net_profit / price``.

    A zero price has no meaningful ratio: positive profit maps to ``inf`` and
    anything else to ``nan``.
    """

    if price > 0:
        return net_profit / price
    if net_profit > 0:
        return math.inf
    return math.nan


def format_payback(payback: float, horizon_years: int) -> str:
    """Render payback for display, e.g. ``"7.4 years"`` or ``"> 15 years"``."""

    if math.isfinite(payback):
        return f"{payback:.1f} years"
    return f"> {horizon_years} years"
