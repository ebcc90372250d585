"""Installed-price models for PV + battery quotes.

Two interchangeable strategies are provided. Both return a
:class:`PriceBreakdown` whose ``quoted`` value feeds the economics and whose
``range_min`` is compared against a customer's budget.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Protocol, Tuple


@dataclass(frozen=True)
class PriceBreakdown:
    base_median: float
    median: float
    range_width: float
    range_min: float
    range_max: float
    pv_cost: float = 0.0
    battery_cost: float = 0.0
    bundle_discount: float = 0.0
    strategy: str = ""

    @property
    def quoted(self) -> float:
        return self.median

    def rounded(self, unit: Optional[float]) -> "PriceBreakdown":
        """Return a copy with every amount rounded to the nearest ``unit``."""

        if not unit or unit <= 0:
            return self

        def _r(value: float) -> float:
            return round(value / unit) * unit

        return replace(
            self,
            base_median=_r(self.base_median),
            median=_r(self.median),
            range_width=_r(self.range_width),
            range_min=_r(self.range_min),
            range_max=_r(self.range_max),
            pv_cost=_r(self.pv_cost),
            battery_cost=_r(self.battery_cost),
            bundle_discount=_r(self.bundle_discount),
        )


class PricingStrategy(Protocol):
    name: str

    def price(self, pv_kw: float, battery_kwh: float) -> PriceBreakdown:
        ...


def _quadratic(coefficients: Tuple[float, float, float], x: float) -> float:
    c0, c1, c2 = coefficients
    return c0 + c1 * x + c2 * x * x


@dataclass(frozen=True)
class MedianRangePricing:
    """Bivariate quadratic median with a markup and a symmetric per-unit range.

    ``median_base = c + a1*x + b1*z + a2*x^2 + b2*z^2`` where x is PV kW and
    z is battery kWh; the quoted median applies ``markup_pct`` and the range
    is ``median +/- (x + z) * range_per_unit``.
    """

    intercept: float = 287_000.0
    pv_linear: float = 175_500.0
    battery_linear: float = 200_000.0
    pv_quadratic: float = -1_200.0
    battery_quadratic: float = -3_000.0
    markup_pct: float = 20.0
    range_per_unit: float = 25_000.0
    name: str = "median_range"

    def median_base(self, pv_kw: float, battery_kwh: float) -> float:
        x, z = max(pv_kw, 0.0), max(battery_kwh, 0.0)
        value = (
            self.intercept
            + self.pv_linear * x
            + self.battery_linear * z
            + self.pv_quadratic * x * x
            + self.battery_quadratic * z * z
        )
        return max(value, 0.0)

    def price(self, pv_kw: float, battery_kwh: float) -> PriceBreakdown:
        base = self.median_base(pv_kw, battery_kwh)
        median = base * (1.0 + self.markup_pct / 100.0)
        width = (max(pv_kw, 0.0) + max(battery_kwh, 0.0)) * self.range_per_unit
        return PriceBreakdown(
            base_median=base,
            median=median,
            range_width=width,
            range_min=max(median - width, 0.0),
            range_max=median + width,
            strategy=self.name,
        )


@dataclass(frozen=True)
class PolynomialTotalPricing:
    """Independent PV and battery quadratic curves with a bundling discount.

    A component with zero capacity costs nothing. When both are present the
    discount is ``bundle_fixed_discount`` plus ``bundle_discount_pct`` of the
    summed cost above the two curves' intercepts.
    """

    pv_coefficients: Tuple[float, float, float] = (150_000.0, 250_000.0, -2_000.0)
    battery_coefficients: Tuple[float, float, float] = (300_000.0, 120_000.0, -1_500.0)
    bundle_fixed_discount: float = 50_000.0
    bundle_discount_pct: float = 5.0
    name: str = "polynomial_total"

    def pv_cost(self, pv_kw: float) -> float:
        if pv_kw <= 0:
            return 0.0
        return max(_quadratic(self.pv_coefficients, pv_kw), 0.0)

    def battery_cost(self, battery_kwh: float) -> float:
        if battery_kwh <= 0:
            return 0.0
        return max(_quadratic(self.battery_coefficients, battery_kwh), 0.0)

    def price(self, pv_kw: float, battery_kwh: float) -> PriceBreakdown:
        pv = self.pv_cost(pv_kw)
        battery = self.battery_cost(battery_kwh)
        subtotal = pv + battery

        discount = 0.0
        if pv > 0 and battery > 0:
            baseline = self.pv_coefficients[0] + self.battery_coefficients[0]
            variable = max(subtotal - baseline, 0.0)
            discount = self.bundle_fixed_discount + variable * self.bundle_discount_pct / 100.0
            discount = min(discount, subtotal)

        total = subtotal - discount
        return PriceBreakdown(
            base_median=subtotal,
            median=total,
            range_width=0.0,
            range_min=total,
            range_max=total,
            pv_cost=pv,
            battery_cost=battery,
            bundle_discount=discount,
            strategy=self.name,
        )


PRICING_STRATEGIES = {
    MedianRangePricing.name: MedianRangePricing,
    PolynomialTotalPricing.name: PolynomialTotalPricing,
}


def build_pricing_strategy(name: str, **overrides) -> PricingStrategy:
    try:
        factory = PRICING_STRATEGIES[name]
    except KeyError as exc:
        raise ValueError(f"Unsupported pricing strategy: {name}") from exc
    return factory(**overrides)
