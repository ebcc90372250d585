"""Electricity bill model for tiered and time-of-use plans.

Costs are computed for one month of usage and annualized, so a usage figure
passed to :func:`cost_for_usage` is the household's monthly consumption and
the return value is the yearly bill for twelve such months.
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple, Union

MONTHS_PER_YEAR = 12
USAGE_SEARCH_MAX_KWH = 20_000.0
USAGE_SEARCH_ITERATIONS = 40


@dataclass(frozen=True)
class FixedFee:
    """Monthly fixed charge picked by comparing the pre-fee monthly cost with ``threshold``."""

    low_fee: float
    high_fee: float
    threshold: float = math.inf

    def for_monthly_cost(self, pre_fee_cost: float) -> float:
        return self.high_fee if pre_fee_cost > self.threshold else self.low_fee


@dataclass(frozen=True)
class RateTier:
    upto_kwh: Optional[float]  # cumulative upper bound; None = unbounded
    rate_per_kwh: float


@dataclass(frozen=True)
class TieredPlan:
    """Progressive block tariff: lower tiers fill first, the last tier is unbounded."""

    tiers: Tuple[RateTier, ...]
    surcharge_per_kwh: float = 0.0
    fixed_fee: FixedFee = FixedFee(0.0, 0.0)


@dataclass(frozen=True)
class TimeOfUsePlan:
    """Day/night tariff. ``day_window`` is informational (start hour, end hour)."""

    day_rate: float
    night_rate: float
    day_window: Tuple[float, float] = (7.0, 23.0)
    surcharge_per_kwh: float = 0.0
    fixed_fee: FixedFee = FixedFee(0.0, 0.0)


BillingPlan = Union[TieredPlan, TimeOfUsePlan]


def flat_plan(unit_price: float, fixed_fee: float = 0.0) -> TieredPlan:
    """Single unbounded tier at ``unit_price`` with a constant monthly fee."""

    return TieredPlan(
        tiers=(RateTier(None, float(unit_price)),),
        fixed_fee=FixedFee(float(fixed_fee), float(fixed_fee)),
    )


def validate_tiers(tiers: Tuple[RateTier, ...]) -> None:
    """Raise ValueError unless tier bounds increase from 0 and only the last tier is unbounded."""

    if not tiers:
        raise ValueError("A tiered plan needs at least one tier")
    previous = 0.0
    for idx, tier in enumerate(tiers):
        if tier.upto_kwh is None:
            if idx != len(tiers) - 1:
                raise ValueError("Only the last tier may be unbounded")
            continue
        if tier.upto_kwh <= previous:
            raise ValueError(f"Tier {idx + 1} upper bound must exceed {previous}")
        previous = float(tier.upto_kwh)


def _tiered_energy_cost(tiers: Tuple[RateTier, ...], usage_kwh: float) -> float:
    remaining = max(usage_kwh, 0.0)
    lower = 0.0
    cost = 0.0
    for tier in tiers:
        if remaining <= 0:
            break
        width = math.inf if tier.upto_kwh is None else max(float(tier.upto_kwh) - lower, 0.0)
        billed = min(remaining, width)
        cost += billed * tier.rate_per_kwh
        remaining -= billed
        if tier.upto_kwh is not None:
            lower = float(tier.upto_kwh)
    if remaining > 0 and tiers:
        # Plans whose last tier is bounded bill the overflow at the last rate.
        cost += remaining * tiers[-1].rate_per_kwh
    return cost


def monthly_energy_cost(plan: BillingPlan, usage_kwh: float, day_fraction: float = 0.5) -> float:
    """Return the monthly energy charge plus surcharge, before the fixed fee."""

    usage_kwh = max(float(usage_kwh), 0.0)
    if isinstance(plan, TimeOfUsePlan):
        day_kwh = usage_kwh * day_fraction
        night_kwh = usage_kwh - day_kwh
        energy = day_kwh * plan.day_rate + night_kwh * plan.night_rate
    else:
        energy = _tiered_energy_cost(plan.tiers, usage_kwh)
    return energy + usage_kwh * plan.surcharge_per_kwh


def cost_for_usage(plan: BillingPlan, usage_kwh: float, day_fraction: float = 0.5) -> float:
    """Return the annual bill for ``usage_kwh`` consumed every month."""

    pre_fee = monthly_energy_cost(plan, usage_kwh, day_fraction)
    fee = plan.fixed_fee.for_monthly_cost(pre_fee)
    return (pre_fee + fee) * MONTHS_PER_YEAR


def annual_cost_for_load(plan: BillingPlan, annual_kwh: float, day_fraction: float = 0.5) -> float:
    """Return the annual bill for an annual load spread evenly over twelve months."""

    return cost_for_usage(plan, annual_kwh / MONTHS_PER_YEAR, day_fraction)


def usage_for_cost(plan: BillingPlan, annual_cost: float, day_fraction: float = 0.5) -> float:
    """Invert :func:`cost_for_usage` by bisection, returning monthly kWh to 0.1 kWh.

    The search domain is ``[0, USAGE_SEARCH_MAX_KWH]``; targets outside the
    billable range clamp to its ends. Requires a plan whose cost is
    non-decreasing in usage.
    """

    lo, hi = 0.0, USAGE_SEARCH_MAX_KWH
    if annual_cost <= cost_for_usage(plan, lo, day_fraction):
        return 0.0
    if annual_cost >= cost_for_usage(plan, hi, day_fraction):
        return hi

    for _ in range(USAGE_SEARCH_ITERATIONS):
        mid = (lo + hi) / 2.0
        if cost_for_usage(plan, mid, day_fraction) < annual_cost:
            lo = mid
        else:
            hi = mid
    return round((lo + hi) / 2.0, 1)
