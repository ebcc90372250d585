"""Multi-year economics for one evaluated configuration."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from services.billing import BillingPlan
from services.dispatch import (
    DispatchAssumptions,
    SimulationResult,
    SystemConfiguration,
    simulate_year,
)
from services.pricing import PriceBreakdown, PricingStrategy
from utils.economics import payback_years, return_on_investment


@dataclass(frozen=True)
class EvaluatedCandidate:
    config: SystemConfiguration
    price: PriceBreakdown
    simulation: SimulationResult
    annual_benefits: Tuple[float, ...]
    total_savings: float
    total_revenue: float
    total_benefit: float
    net_profit: float
    roi: float
    payback_years: float

    @property
    def key(self) -> Tuple[float, float]:
        return self.config.key

    @property
    def payback_is_finite(self) -> bool:
        return math.isfinite(self.payback_years)

    def to_record(self) -> Dict[str, Any]:
        """Flatten into one row for tabular output."""

        return {
            "pv_kw": self.config.pv_kw,
            "battery_kwh": self.config.battery_kwh,
            "price_median": self.price.median,
            "price_min": self.price.range_min,
            "price_max": self.price.range_max,
            "generation_kwh": self.simulation.generation_kwh,
            "self_consumed_kwh": self.simulation.self_consumed_kwh,
            "sold_kwh": self.simulation.sold_kwh,
            "annual_savings": self.simulation.annual_savings,
            "total_savings": self.total_savings,
            "total_revenue": self.total_revenue,
            "total_benefit": self.total_benefit,
            "net_profit": self.net_profit,
            "roi": self.roi,
            "payback_years": self.payback_years,
        }


def _rate_for(tariff_series: Sequence[float], year_idx: int) -> float:
    """Return the 1-indexed year's rate; years past the series reuse its last rate."""

    if not tariff_series:
        return 0.0
    if year_idx - 1 < len(tariff_series):
        return float(tariff_series[year_idx - 1])
    return float(tariff_series[-1])


def evaluate(
    config: SystemConfiguration,
    simulation: SimulationResult,
    price: PriceBreakdown,
    tariff_series: Sequence[float],
    evaluation_years: int,
    baseline: Optional[SimulationResult] = None,
) -> EvaluatedCandidate:
    """Project benefit over ``evaluation_years`` and derive profit, ROI and payback.

    Each year's benefit is the constant annual bill saving plus exported energy
    times that year's feed-in rate. With a ``baseline`` (an existing system),
    only the change relative to the baseline counts.
    """

    annual_savings = simulation.annual_savings
    sold_kwh = simulation.sold_kwh
    if baseline is not None:
        annual_savings -= baseline.annual_savings
        sold_kwh -= baseline.sold_kwh

    benefits = []
    total_savings = 0.0
    total_revenue = 0.0
    for year_idx in range(1, max(evaluation_years, 0) + 1):
        revenue = sold_kwh * _rate_for(tariff_series, year_idx)
        total_savings += annual_savings
        total_revenue += revenue
        benefits.append(annual_savings + revenue)

    total_benefit = total_savings + total_revenue
    quoted = price.quoted
    net_profit = total_benefit - quoted

    return EvaluatedCandidate(
        config=config,
        price=price,
        simulation=simulation,
        annual_benefits=tuple(benefits),
        total_savings=total_savings,
        total_revenue=total_revenue,
        total_benefit=total_benefit,
        net_profit=net_profit,
        roi=return_on_investment(net_profit, quoted),
        payback_years=payback_years(quoted, benefits),
    )


@dataclass(frozen=True)
class CandidateEvaluator:
    """Bind the household inputs so a configuration can be evaluated in one call.

    ``existing_pv_kw`` marks a battery-only retrofit: the existing array is
    simulated alongside the battery, only the battery is priced, and benefit
    is measured against the existing-PV-only baseline.
    """

    annual_load_kwh: float
    day_fraction: float
    plan: BillingPlan
    pricing: PricingStrategy
    tariff_series: Tuple[float, ...]
    evaluation_years: int
    assumptions: DispatchAssumptions = DispatchAssumptions()
    existing_pv_kw: float = 0.0

    def simulate(self, pv_kw: float, battery_kwh: float, need_logs: bool = False) -> SimulationResult:
        return simulate_year(
            self.annual_load_kwh,
            self.day_fraction,
            pv_kw,
            battery_kwh,
            self.plan,
            self.assumptions,
            need_logs=need_logs,
        )

    def baseline(self) -> Optional[SimulationResult]:
        if self.existing_pv_kw <= 0:
            return None
        return self.simulate(self.existing_pv_kw, 0.0)

    def __call__(
        self,
        config: SystemConfiguration,
        baseline: Optional[SimulationResult] = None,
    ) -> EvaluatedCandidate:
        simulation = self.simulate(config.pv_kw, config.battery_kwh)
        priced_pv = max(config.pv_kw - self.existing_pv_kw, 0.0)
        price = self.pricing.price(priced_pv, config.battery_kwh)
        if baseline is None and self.existing_pv_kw > 0:
            baseline = self.baseline()
        return evaluate(
            config,
            simulation,
            price,
            self.tariff_series,
            self.evaluation_years,
            baseline=baseline,
        )
