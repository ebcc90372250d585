"""End-to-end quote calculation: inputs -> grid search -> recommended candidates.

Every call recomputes from the request and the immutable settings; nothing is
cached between calls except the reference catalogs the caller passes in.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
import logging
from typing import List, Optional, Tuple

import pandas as pd

from services.billing import (
    MONTHS_PER_YEAR,
    BillingPlan,
    FixedFee,
    RateTier,
    TieredPlan,
    TimeOfUsePlan,
    flat_plan,
    usage_for_cost,
    validate_tiers,
)
from services.candidate_selector import SelectionResult, rank_candidates, select_candidates
from services.dispatch import DispatchAssumptions
from services.evaluator import CandidateEvaluator, EvaluatedCandidate
from services.grid_search import GridRange, GridSearchResult, SearchRanges, search
from services.pricing import MedianRangePricing, PricingStrategy
from services.tariff_schedule import TariffSchedule, default_tariff_schedule, tariff_series_for_horizon
from utils.io import DEFAULT_BATTERY_SIZES, ReferenceCatalogs
from utils.sweeps import normalize_sizes, validate_range

PLAN_TYPES = ("flat", "tiered", "tou")

DEFAULT_TIERED_PLAN = TieredPlan(
    tiers=(RateTier(120.0, 29.8), RateTier(300.0, 36.4), RateTier(None, 40.49)),
    surcharge_per_kwh=3.0,
    fixed_fee=FixedFee(low_fee=1_000.0, high_fee=1_500.0, threshold=5_000.0),
)

DEFAULT_TOU_PLAN = TimeOfUsePlan(
    day_rate=35.0,
    night_rate=27.0,
    day_window=(7.0, 23.0),
    surcharge_per_kwh=3.0,
    fixed_fee=FixedFee(low_fee=1_000.0, high_fee=1_500.0, threshold=5_000.0),
)


@dataclass(frozen=True)
class QuoteSettings:
    """Contractor-tunable assumptions shared by every request."""

    dispatch: DispatchAssumptions = DispatchAssumptions()
    pricing: PricingStrategy = MedianRangePricing()
    tariff: TariffSchedule = default_tariff_schedule()
    pv_range: GridRange = GridRange(1.0, 13.5, 0.1)
    battery_range: Optional[GridRange] = None
    battery_sizes: Tuple[float, ...] = DEFAULT_BATTERY_SIZES
    fixed_fee: float = 1_500.0
    default_unit_price: float = 34.0
    default_day_fraction: float = 0.30
    evaluation_years: int = 15
    tiered_plan: TieredPlan = DEFAULT_TIERED_PLAN
    tou_plan: TimeOfUsePlan = DEFAULT_TOU_PLAN
    presentation_rounding: Optional[float] = 10_000.0
    concurrency: Optional[str] = None
    max_workers: Optional[int] = None

    def with_catalogs(self, catalogs: ReferenceCatalogs) -> "QuoteSettings":
        """Return settings that use the loaded tariff segments and battery sizes."""

        return replace(
            self,
            tariff=replace(self.tariff, segments=tuple(catalogs.tariff_segments)),
            battery_sizes=tuple(normalize_sizes(catalogs.battery_sizes, include_zero=True)),
        )


@dataclass(frozen=True)
class QuoteRequest:
    """One household's inputs.

    Load is given either directly (``annual_load_kwh``) or as a monthly bill
    that is converted to usage through the selected plan.
    """

    annual_load_kwh: Optional[float] = None
    monthly_bill: Optional[float] = None
    unit_price: Optional[float] = None
    day_fraction: Optional[float] = None
    has_existing_pv: bool = False
    existing_pv_kw: float = 0.0
    plan_type: str = "flat"
    fit_start_year: Optional[int] = None
    fit_years_remaining: Optional[int] = None
    evaluation_years: Optional[int] = None
    budget: Optional[float] = None
    include_battery: bool = True


@dataclass(frozen=True)
class QuoteResult:
    mode: str
    plan: BillingPlan
    annual_load_kwh: float
    monthly_usage_kwh: float
    day_fraction: float
    evaluation_years: int
    tariff_series: Tuple[float, ...]
    search: GridSearchResult
    selection: SelectionResult
    ranks: pd.DataFrame
    messages: List[str] = field(default_factory=list)

    @property
    def best(self) -> Optional[EvaluatedCandidate]:
        return self.search.best


def validate_request(request: QuoteRequest, settings: QuoteSettings) -> None:
    """Raise ValueError for inputs the calculation cannot accept."""

    if request.plan_type not in PLAN_TYPES:
        raise ValueError(f"plan_type must be one of {PLAN_TYPES}")
    if request.annual_load_kwh is None:
        if request.monthly_bill is None or request.monthly_bill <= 0:
            raise ValueError("Provide a positive monthly_bill or annual_load_kwh")
    elif request.annual_load_kwh <= 0:
        raise ValueError("annual_load_kwh must be positive")
    if request.unit_price is not None and request.unit_price <= 0:
        raise ValueError("unit_price must be positive")
    if request.day_fraction is not None and not 0.0 <= request.day_fraction <= 1.0:
        raise ValueError("day_fraction must be between 0 and 1")
    if request.evaluation_years is not None and request.evaluation_years < 1:
        raise ValueError("evaluation_years must be at least 1")
    if request.fit_years_remaining is not None and request.fit_years_remaining < 0:
        raise ValueError("fit_years_remaining must be non-negative")
    if request.has_existing_pv and request.existing_pv_kw <= 0:
        raise ValueError("existing_pv_kw must be positive when has_existing_pv is set")

    validate_range(settings.pv_range.min_value, settings.pv_range.max_value, settings.pv_range.step, "PV")
    if settings.battery_range is not None:
        battery = settings.battery_range
        validate_range(battery.min_value, battery.max_value, battery.step, "Battery")
    if request.plan_type == "tiered":
        validate_tiers(settings.tiered_plan.tiers)


def resolve_plan(request: QuoteRequest, settings: QuoteSettings) -> BillingPlan:
    if request.plan_type == "tiered":
        return settings.tiered_plan
    if request.plan_type == "tou":
        return settings.tou_plan
    unit_price = request.unit_price if request.unit_price is not None else settings.default_unit_price
    return flat_plan(unit_price, settings.fixed_fee)


def resolve_search_mode(request: QuoteRequest) -> Optional[str]:
    """Return the grid mode, or None when there is nothing to optimize."""

    if request.has_existing_pv:
        return "battery_retrofit" if request.include_battery else None
    return "full" if request.include_battery else "pv_only"


def run_quote(request: QuoteRequest, settings: QuoteSettings = QuoteSettings()) -> QuoteResult:
    """Validate inputs, search the configuration grid and pick recommendations."""

    validate_request(request, settings)
    logger = logging.getLogger(__name__)
    messages: List[str] = []

    plan = resolve_plan(request, settings)
    day_fraction = settings.default_day_fraction if request.day_fraction is None else float(request.day_fraction)

    if request.annual_load_kwh is not None:
        annual_load = float(request.annual_load_kwh)
        monthly_usage = annual_load / MONTHS_PER_YEAR
    else:
        monthly_usage = usage_for_cost(plan, float(request.monthly_bill) * MONTHS_PER_YEAR, day_fraction)
        annual_load = monthly_usage * MONTHS_PER_YEAR
        if monthly_usage <= 0:
            messages.append("The bill does not exceed the fixed charges; estimated usage is 0 kWh.")

    evaluation_years = request.evaluation_years or settings.evaluation_years
    tariff_series = tariff_series_for_horizon(
        settings.tariff,
        evaluation_years,
        fit_start_year=request.fit_start_year,
        fit_years_remaining=request.fit_years_remaining,
    )

    mode = resolve_search_mode(request)
    existing_pv_kw = float(request.existing_pv_kw) if mode == "battery_retrofit" else 0.0
    evaluator = CandidateEvaluator(
        annual_load_kwh=annual_load,
        day_fraction=day_fraction,
        plan=plan,
        pricing=settings.pricing,
        tariff_series=tuple(tariff_series),
        evaluation_years=evaluation_years,
        assumptions=settings.dispatch,
        existing_pv_kw=existing_pv_kw,
    )

    if mode is None:
        messages.append("Existing PV with battery disabled: there is no configuration to add.")
        search_result = GridSearchResult(mode="none", candidates=[], best=None, skipped_infeasible=0)
    else:
        ranges = SearchRanges(
            pv=settings.pv_range,
            battery=settings.battery_range,
            battery_sizes=None if settings.battery_range is not None else settings.battery_sizes,
        )
        search_result = search(
            mode,
            ranges,
            evaluator,
            existing_pv_kw=existing_pv_kw,
            baseline=evaluator.baseline(),
            concurrency=settings.concurrency,
            max_workers=settings.max_workers,
        )

    selection = select_candidates(
        search_result.candidates,
        budget=request.budget,
        include_battery=request.include_battery,
    )
    messages.extend(selection.messages)

    logger.info(
        "Quote mode=%s load=%.1f kWh evaluated=%s picks=%s",
        search_result.mode,
        annual_load,
        len(search_result.candidates),
        len(selection.picks),
    )

    return QuoteResult(
        mode=search_result.mode,
        plan=plan,
        annual_load_kwh=annual_load,
        monthly_usage_kwh=monthly_usage,
        day_fraction=day_fraction,
        evaluation_years=evaluation_years,
        tariff_series=tuple(tariff_series),
        search=search_result,
        selection=selection,
        ranks=rank_candidates(search_result.candidates),
        messages=messages,
    )
