import pytest

from services.billing import TimeOfUsePlan
from services.grid_search import GridRange
from services.quote_pipeline import (
    QuoteRequest,
    QuoteSettings,
    resolve_plan,
    resolve_search_mode,
    run_quote,
)
from services.tariff_schedule import TariffSegment
from utils.io import ReferenceCatalogs

SMALL = QuoteSettings(pv_range=GridRange(1.0, 3.0, 1.0), battery_sizes=(0.0, 5.0))


def test_monthly_bill_is_converted_to_usage() -> None:
    result = run_quote(QuoteRequest(monthly_bill=12_000.0), SMALL)

    # (12000 - 1500 fixed fee) / 34 per kWh
    assert result.monthly_usage_kwh == pytest.approx(308.8)
    assert result.annual_load_kwh == pytest.approx(308.8 * 12)
    assert result.day_fraction == SMALL.default_day_fraction


def test_full_mode_evaluates_whole_grid() -> None:
    result = run_quote(QuoteRequest(monthly_bill=12_000.0), SMALL)

    assert result.mode == "full"
    assert len(result.search.candidates) == 6
    assert 0 < len(result.selection.picks) <= 6
    assert result.best is not None
    assert len(result.tariff_series) == SMALL.evaluation_years
    assert len(result.ranks) == 6


def test_battery_toggle_off_runs_pv_only() -> None:
    result = run_quote(QuoteRequest(annual_load_kwh=4_800.0, include_battery=False), SMALL)

    assert result.mode == "pv_only"
    assert result.monthly_usage_kwh == pytest.approx(400.0)
    assert all(candidate.config.battery_kwh == 0.0 for candidate in result.search.candidates)


def test_existing_pv_searches_battery_only() -> None:
    request = QuoteRequest(annual_load_kwh=4_800.0, has_existing_pv=True, existing_pv_kw=4.5)
    result = run_quote(request, SMALL)

    assert result.mode == "battery_retrofit"
    assert [candidate.key for candidate in result.search.candidates] == [(4.5, 5.0)]


def test_existing_pv_without_battery_has_nothing_to_add() -> None:
    request = QuoteRequest(annual_load_kwh=4_800.0, has_existing_pv=True, existing_pv_kw=4.5, include_battery=False)
    result = run_quote(request, SMALL)

    assert result.mode == "none"
    assert result.selection.picks == []
    assert any("nothing" in message or "no configuration" in message for message in result.messages)


def test_fit_start_year_builds_calendar_series() -> None:
    request = QuoteRequest(annual_load_kwh=4_800.0, fit_start_year=2024, fit_years_remaining=3, evaluation_years=5)
    result = run_quote(request, SMALL)

    # 2024 comes from the historical table, 2025-2026 from the phased rule, then the post-incentive rate.
    assert result.tariff_series == (16.0, 24.0, 24.0, 8.5, 8.5)
    assert all(len(candidate.annual_benefits) == 5 for candidate in result.search.candidates)


def test_start_at_pivot_keeps_incentive_rates() -> None:
    dated = run_quote(
        QuoteRequest(annual_load_kwh=4_800.0, fit_start_year=2025, fit_years_remaining=10, evaluation_years=10),
        SMALL,
    )
    undated = run_quote(QuoteRequest(annual_load_kwh=4_800.0, evaluation_years=10), SMALL)

    assert list(dated.tariff_series) == [24.0] * 4 + [8.3] * 6
    assert dated.tariff_series == undated.tariff_series
    assert dated.best.total_revenue == pytest.approx(undated.best.total_revenue)


def test_budget_messages_are_surfaced() -> None:
    result = run_quote(QuoteRequest(annual_load_kwh=4_800.0, budget=1.0), SMALL)

    assert result.selection.picks == []
    assert any("within budget" in message for message in result.messages)


@pytest.mark.parametrize(
    "request_kwargs",
    [
        {},
        {"monthly_bill": -5.0},
        {"annual_load_kwh": 0.0},
        {"annual_load_kwh": 4_000.0, "plan_type": "seasonal"},
        {"annual_load_kwh": 4_000.0, "day_fraction": 1.5},
        {"annual_load_kwh": 4_000.0, "unit_price": 0.0},
        {"annual_load_kwh": 4_000.0, "has_existing_pv": True},
        {"annual_load_kwh": 4_000.0, "evaluation_years": 0},
    ],
)
def test_invalid_requests_raise(request_kwargs) -> None:
    with pytest.raises(ValueError):
        run_quote(QuoteRequest(**request_kwargs), SMALL)


def test_malformed_pv_range_raises() -> None:
    settings = QuoteSettings(pv_range=GridRange(5.0, 1.0, 0.5))
    with pytest.raises(ValueError):
        run_quote(QuoteRequest(annual_load_kwh=4_000.0), settings)


def test_plan_resolution() -> None:
    assert isinstance(resolve_plan(QuoteRequest(plan_type="tou"), SMALL), TimeOfUsePlan)
    flat = resolve_plan(QuoteRequest(unit_price=30.0), SMALL)
    assert flat.tiers[0].rate_per_kwh == 30.0
    assert flat.fixed_fee.low_fee == SMALL.fixed_fee
    assert resolve_search_mode(QuoteRequest()) == "full"
    assert resolve_search_mode(QuoteRequest(has_existing_pv=True, include_battery=False)) is None


def test_with_catalogs_replaces_reference_data() -> None:
    catalogs = ReferenceCatalogs(tariff_segments=(TariffSegment(1, 20, 10.0),), battery_sizes=(7.7,))
    settings = SMALL.with_catalogs(catalogs)

    assert settings.battery_sizes == (0.0, 7.7)
    assert settings.tariff.project_series(3) == [10.0, 10.0, 10.0]
    assert settings.pv_range == SMALL.pv_range
