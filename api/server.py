from __future__ import annotations

import math
import os
from dataclasses import replace
from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional

import pandas as pd
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, validator

from services.billing import MONTHS_PER_YEAR, usage_for_cost
from services.candidate_selector import LabeledCandidate, top_candidates
from services.dispatch import DAYS_PER_YEAR, DispatchAssumptions, SystemConfiguration
from services.evaluator import CandidateEvaluator, EvaluatedCandidate
from services.grid_search import GridRange
from services.pricing import PRICING_STRATEGIES, build_pricing_strategy
from services.quote_pipeline import (
    PLAN_TYPES,
    QuoteRequest,
    QuoteResult,
    QuoteSettings,
    resolve_plan,
    run_quote,
    validate_request,
)
from services.tariff_schedule import (
    DEFAULT_HISTORICAL_RATES,
    DEFAULT_PHASED_RULE,
    PhasedRateRule,
    tariff_series_for_horizon,
)
from utils.economics import format_payback
from utils.io import ReferenceCatalogs, load_reference_catalogs
from utils.slots import describe_slots
from utils.sweeps import normalize_sizes

_DEFAULT_SETTINGS = QuoteSettings()


@lru_cache(maxsize=1)
def _catalogs() -> ReferenceCatalogs:
    return load_reference_catalogs()


def _finite_or_none(value: float) -> Optional[float]:
    return float(value) if math.isfinite(value) else None


class PhasedRulePayload(BaseModel):
    pivot_year: int = DEFAULT_PHASED_RULE.pivot_year
    first_years: int = DEFAULT_PHASED_RULE.first_years
    first_rate: float = DEFAULT_PHASED_RULE.first_rate
    second_years: int = DEFAULT_PHASED_RULE.second_years
    second_rate: float = DEFAULT_PHASED_RULE.second_rate

    @validator("first_years", "second_years", "first_rate", "second_rate")
    def _validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    def to_rule(self) -> PhasedRateRule:
        return PhasedRateRule(
            pivot_year=self.pivot_year,
            first_years=self.first_years,
            first_rate=self.first_rate,
            second_years=self.second_years,
            second_rate=self.second_rate,
        )


class SettingsPayload(BaseModel):
    """Optional overrides for :class:`QuoteSettings`; omitted fields keep defaults."""

    pricing_strategy: Literal["median_range", "polynomial_total"] = "median_range"
    markup_pct: Optional[float] = None
    fixed_fee: float = _DEFAULT_SETTINGS.fixed_fee
    default_unit_price: float = _DEFAULT_SETTINGS.default_unit_price
    default_day_fraction: float = _DEFAULT_SETTINGS.default_day_fraction
    pv_yield_per_kw_day: float = _DEFAULT_SETTINGS.dispatch.pv_yield_per_kw_year / DAYS_PER_YEAR
    round_trip_efficiency: float = _DEFAULT_SETTINGS.dispatch.round_trip_efficiency
    usable_fraction: float = _DEFAULT_SETTINGS.dispatch.usable_fraction
    pv_min_kw: float = _DEFAULT_SETTINGS.pv_range.min_value
    pv_max_kw: float = _DEFAULT_SETTINGS.pv_range.max_value
    pv_step_kw: float = _DEFAULT_SETTINGS.pv_range.step
    battery_sizes: Optional[List[float]] = None
    evaluation_years: int = _DEFAULT_SETTINGS.evaluation_years
    presentation_rounding: Optional[float] = _DEFAULT_SETTINGS.presentation_rounding
    post_incentive_rate: Optional[float] = _DEFAULT_SETTINGS.tariff.post_incentive_rate
    historical_rates: Dict[int, float] = Field(default_factory=lambda: dict(DEFAULT_HISTORICAL_RATES))
    # null disables the phased rule; calendar years then use the historical table.
    phased_rule: Optional[PhasedRulePayload] = Field(default_factory=PhasedRulePayload)

    @validator("post_incentive_rate")
    def _validate_post_incentive_rate(cls, value: Optional[float]) -> Optional[float]:
        if value is not None and value < 0:
            raise ValueError("must be non-negative")
        return value

    @validator("historical_rates")
    def _validate_historical_rates(cls, value: Dict[int, float]) -> Dict[int, float]:
        if any(rate < 0 for rate in value.values()):
            raise ValueError("historical rates must be non-negative")
        return value

    @validator("round_trip_efficiency", "usable_fraction")
    def _validate_fraction(cls, value: float) -> float:
        if not 0.0 < value <= 1.0:
            raise ValueError("must be in (0, 1]")
        return value

    @validator("default_day_fraction")
    def _validate_day_fraction(cls, value: float) -> float:
        if not 0.0 <= value <= 1.0:
            raise ValueError("must be between 0 and 1")
        return value

    @validator("fixed_fee", "pv_yield_per_kw_day")
    def _validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("must be non-negative")
        return value

    @validator("evaluation_years")
    def _validate_years(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be at least 1")
        return value

    def build(self, catalogs: ReferenceCatalogs) -> QuoteSettings:
        """Return a :class:`QuoteSettings` built on the loaded catalogs."""

        overrides: Dict[str, Any] = {}
        if self.markup_pct is not None and self.pricing_strategy == "median_range":
            overrides["markup_pct"] = self.markup_pct
        settings = _DEFAULT_SETTINGS.with_catalogs(catalogs)
        if self.battery_sizes is not None:
            settings = replace(settings, battery_sizes=tuple(normalize_sizes(self.battery_sizes)))
        tariff = replace(
            settings.tariff,
            post_incentive_rate=self.post_incentive_rate,
            historical_rates=dict(self.historical_rates),
            phased_rule=self.phased_rule.to_rule() if self.phased_rule is not None else None,
        )
        return replace(
            settings,
            tariff=tariff,
            pricing=build_pricing_strategy(self.pricing_strategy, **overrides),
            dispatch=DispatchAssumptions(
                pv_yield_per_kw_year=self.pv_yield_per_kw_day * DAYS_PER_YEAR,
                round_trip_efficiency=self.round_trip_efficiency,
                usable_fraction=self.usable_fraction,
            ),
            pv_range=GridRange(self.pv_min_kw, self.pv_max_kw, self.pv_step_kw),
            fixed_fee=self.fixed_fee,
            default_unit_price=self.default_unit_price,
            default_day_fraction=self.default_day_fraction,
            evaluation_years=self.evaluation_years,
            presentation_rounding=self.presentation_rounding,
        )


class HouseholdPayload(BaseModel):
    annual_load_kwh: Optional[float] = None
    monthly_bill: Optional[float] = None
    unit_price: Optional[float] = None
    day_fraction: Optional[float] = None
    has_existing_pv: bool = False
    existing_pv_kw: float = 0.0
    plan_type: Literal["flat", "tiered", "tou"] = "flat"
    fit_start_year: Optional[int] = None
    fit_years_remaining: Optional[int] = None
    evaluation_years: Optional[int] = None

    def to_request(self, budget: Optional[float] = None, include_battery: bool = True) -> QuoteRequest:
        return QuoteRequest(
            annual_load_kwh=self.annual_load_kwh,
            monthly_bill=self.monthly_bill,
            unit_price=self.unit_price,
            day_fraction=self.day_fraction,
            has_existing_pv=self.has_existing_pv,
            existing_pv_kw=self.existing_pv_kw,
            plan_type=self.plan_type,
            fit_start_year=self.fit_start_year,
            fit_years_remaining=self.fit_years_remaining,
            evaluation_years=self.evaluation_years,
            budget=budget,
            include_battery=include_battery,
        )


class QuotePayload(HouseholdPayload):
    budget: Optional[float] = None
    include_battery: bool = True
    top_n: int = 10
    settings: SettingsPayload = Field(default_factory=SettingsPayload)

    @validator("top_n")
    def _validate_top_n(cls, value: int) -> int:
        if value < 0:
            raise ValueError("top_n must be non-negative")
        return value


class EvaluatePayload(HouseholdPayload):
    pv_kw: float
    battery_kwh: float = 0.0
    settings: SettingsPayload = Field(default_factory=SettingsPayload)

    @validator("pv_kw", "battery_kwh")
    def _validate_capacity(cls, value: float) -> float:
        if value < 0:
            raise ValueError("capacity must be non-negative")
        return value


class UsagePayload(BaseModel):
    monthly_bill: float
    unit_price: Optional[float] = None
    plan_type: Literal["flat", "tiered", "tou"] = "flat"
    day_fraction: Optional[float] = None
    settings: SettingsPayload = Field(default_factory=SettingsPayload)

    @validator("monthly_bill")
    def _validate_bill(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("monthly_bill must be positive")
        return value


def _serialize_candidate(
    candidate: EvaluatedCandidate,
    horizon_years: int,
    rounding: Optional[float],
    label: Optional[str] = None,
) -> Dict[str, Any]:
    price = candidate.price.rounded(rounding)
    sim = candidate.simulation
    return {
        "label": label,
        "pv_kw": candidate.key[0],
        "battery_kwh": candidate.key[1],
        "price": {
            "strategy": price.strategy,
            "base_median": price.base_median,
            "median": price.median,
            "range_min": price.range_min,
            "range_max": price.range_max,
            "pv_cost": price.pv_cost,
            "battery_cost": price.battery_cost,
            "bundle_discount": price.bundle_discount,
        },
        "simulation": {
            "generation_kwh": sim.generation_kwh,
            "self_consumed_kwh": sim.self_consumed_kwh,
            "sold_kwh": sim.sold_kwh,
            "grid_import_kwh": sim.grid_import_kwh,
            "pre_install_cost": sim.pre_install_cost,
            "post_install_cost": sim.post_install_cost,
            "annual_savings": sim.annual_savings,
        },
        "total_savings": candidate.total_savings,
        "total_revenue": candidate.total_revenue,
        "total_benefit": candidate.total_benefit,
        "net_profit": candidate.net_profit,
        "roi": _finite_or_none(candidate.roi),
        "payback_years": _finite_or_none(candidate.payback_years),
        "payback_text": format_payback(candidate.payback_years, horizon_years),
    }


def _serialize_pick(pick: LabeledCandidate, result: QuoteResult, rounding: Optional[float]) -> Dict[str, Any]:
    return _serialize_candidate(pick.candidate, result.evaluation_years, rounding, label=pick.label)


def _serialize_quote(result: QuoteResult, rounding: Optional[float], top_n: int) -> Dict[str, Any]:
    stats = result.selection.stats
    tops = top_candidates(result.ranks, top_n) if top_n > 0 else {}
    return {
        "mode": result.mode,
        "annual_load_kwh": result.annual_load_kwh,
        "monthly_usage_kwh": result.monthly_usage_kwh,
        "day_fraction": result.day_fraction,
        "evaluation_years": result.evaluation_years,
        "tariff_series": list(result.tariff_series),
        "evaluated": len(result.search.candidates),
        "skipped_infeasible": result.search.skipped_infeasible,
        "picks": [_serialize_pick(pick, result, rounding) for pick in result.selection.picks],
        "slot_notes": describe_slots([pick.label for pick in result.selection.picks]),
        "messages": list(result.messages),
        "stats": {
            "best_profit": _finite_or_none(stats.best_profit),
            "best_roi": _finite_or_none(stats.best_roi),
            "best_payback": _finite_or_none(stats.best_payback),
        },
        "top": {name: _frame_records(frame) for name, frame in tops.items()},
    }


def _frame_records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Convert a ranking frame to JSON-safe records (non-finite floats become None)."""

    records = []
    for row in frame.to_dict(orient="records"):
        records.append(
            {
                key: _finite_or_none(value) if isinstance(value, float) else value
                for key, value in row.items()
            }
        )
    return records


app = FastAPI(
    title="PV Quote API",
    description="Sizing and price-range estimates for residential PV + battery quotes.",
    version="0.1.0",
)


_default_cors_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
_allowed_origins_env = os.getenv("PVQUOTE_CORS_ORIGINS", "")
_allowed_origins = [
    origin.strip()
    for origin in _allowed_origins_env.split(",")
    if origin.strip()
] or _default_cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health() -> Dict[str, str]:
    """Simple liveness probe for container orchestrators."""
    return {"status": "ok"}


@app.get("/catalogs")
def catalogs() -> Dict[str, Any]:
    """Return the reference catalogs the calculator is using."""

    loaded = _catalogs()
    return {
        "tariffs": [
            {"start_year": seg.start_year, "end_year": seg.end_year, "rate_per_kwh": seg.rate_per_kwh}
            for seg in loaded.tariff_segments
        ],
        "battery_sizes": list(loaded.battery_sizes),
        "pricing_strategies": sorted(PRICING_STRATEGIES),
        "plan_types": list(PLAN_TYPES),
        "warnings": list(loaded.warnings),
    }


@app.post("/quote")
def quote(payload: QuotePayload) -> Dict[str, Any]:
    """Run the grid search and return recommended configurations."""

    settings = payload.settings.build(_catalogs())
    request = payload.to_request(budget=payload.budget, include_battery=payload.include_battery)
    try:
        result = run_quote(request, settings)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    response = _serialize_quote(result, settings.presentation_rounding, payload.top_n)
    response["warnings"] = list(_catalogs().warnings)
    return response


@app.post("/evaluate")
def evaluate_configuration(payload: EvaluatePayload) -> Dict[str, Any]:
    """Evaluate a single PV/battery configuration for one household."""

    settings = payload.settings.build(_catalogs())
    request = payload.to_request()
    try:
        validate_request(request, settings)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if payload.pv_kw <= 0 and payload.battery_kwh > 0 and not payload.has_existing_pv:
        raise HTTPException(status_code=400, detail="A battery needs an existing or new PV array.")

    plan = resolve_plan(request, settings)
    day_fraction = settings.default_day_fraction if request.day_fraction is None else request.day_fraction
    if request.annual_load_kwh is not None:
        annual_load = request.annual_load_kwh
    else:
        annual_load = usage_for_cost(plan, request.monthly_bill * MONTHS_PER_YEAR, day_fraction) * MONTHS_PER_YEAR

    years = request.evaluation_years or settings.evaluation_years
    evaluator = CandidateEvaluator(
        annual_load_kwh=annual_load,
        day_fraction=day_fraction,
        plan=plan,
        pricing=settings.pricing,
        tariff_series=tuple(
            tariff_series_for_horizon(settings.tariff, years, request.fit_start_year, request.fit_years_remaining)
        ),
        evaluation_years=years,
        assumptions=settings.dispatch,
        existing_pv_kw=payload.existing_pv_kw if payload.has_existing_pv else 0.0,
    )
    pv_kw = payload.pv_kw + evaluator.existing_pv_kw
    candidate = evaluator(SystemConfiguration(pv_kw, payload.battery_kwh))
    return _serialize_candidate(candidate, years, settings.presentation_rounding)


@app.post("/billing/usage")
def billing_usage(payload: UsagePayload) -> Dict[str, Any]:
    """Convert a monthly bill into monthly and annual usage."""

    settings = payload.settings.build(_catalogs())
    request = QuoteRequest(
        monthly_bill=payload.monthly_bill,
        unit_price=payload.unit_price,
        day_fraction=payload.day_fraction,
        plan_type=payload.plan_type,
    )
    try:
        validate_request(request, settings)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    plan = resolve_plan(request, settings)
    day_fraction = settings.default_day_fraction if payload.day_fraction is None else payload.day_fraction
    monthly = usage_for_cost(plan, payload.monthly_bill * MONTHS_PER_YEAR, day_fraction)
    return {"monthly_usage_kwh": monthly, "annual_usage_kwh": monthly * MONTHS_PER_YEAR}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.server:app", host="0.0.0.0", port=8000, reload=False)
