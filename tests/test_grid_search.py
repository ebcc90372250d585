import pytest

from services.billing import flat_plan
from services.dispatch import SimulationResult, SystemConfiguration
from services.evaluator import CandidateEvaluator, evaluate
from services.grid_search import (
    GridRange,
    SearchRanges,
    is_feasible,
    iter_configurations,
    search,
    select_best,
)
from services.pricing import MedianRangePricing, PriceBreakdown


def _evaluator(existing_pv_kw: float = 0.0) -> CandidateEvaluator:
    return CandidateEvaluator(
        annual_load_kwh=4_500.0,
        day_fraction=0.3,
        plan=flat_plan(34.0, 1_500.0),
        pricing=MedianRangePricing(),
        tariff_series=(24.0,) * 4 + (8.3,) * 6 + (8.5,) * 5,
        evaluation_years=15,
        existing_pv_kw=existing_pv_kw,
    )


_FLAT_SIM = SimulationResult(
    annual_load_kwh=0.0,
    generation_kwh=0.0,
    self_consumed_kwh=0.0,
    sold_kwh=0.0,
    charged_kwh=0.0,
    discharged_kwh=0.0,
    grid_import_kwh=0.0,
    grid_import_day_kwh=0.0,
    grid_import_night_kwh=0.0,
    end_soc_kwh=0.0,
    pre_install_cost=0.0,
    post_install_cost=0.0,
    annual_savings=1_000.0,
)
_FLAT_PRICE = PriceBreakdown(base_median=100.0, median=100.0, range_width=0.0, range_min=100.0, range_max=100.0)


def _constant_evaluator(config, baseline=None):
    return evaluate(config, _FLAT_SIM, _FLAT_PRICE, (), 15)


def test_pv_only_grid_has_no_battery() -> None:
    ranges = SearchRanges(pv=GridRange(0.0, 10.0, 0.5), battery_sizes=(0.0, 5.0, 9.8))
    result = search("pv_only", ranges, _evaluator())

    assert len(result.candidates) == 21
    assert all(candidate.config.battery_kwh == 0.0 for candidate in result.candidates)
    assert result.best is not None
    assert result.best.net_profit == max(candidate.net_profit for candidate in result.candidates)


def test_bare_battery_is_skipped_without_existing_pv() -> None:
    ranges = SearchRanges(pv=GridRange(0.0, 1.0, 0.5), battery_sizes=(0.0, 5.0))
    result = search("full", ranges, _evaluator())

    keys = [candidate.key for candidate in result.candidates]
    assert (0.0, 5.0) not in keys
    assert result.skipped_infeasible == 1
    assert keys == [(0.0, 0.0), (0.5, 0.0), (0.5, 5.0), (1.0, 0.0), (1.0, 5.0)]


def test_feasibility_rule() -> None:
    assert not is_feasible(SystemConfiguration(0.0, 5.0))
    assert is_feasible(SystemConfiguration(0.0, 5.0), existing_pv_kw=3.0)
    assert is_feasible(SystemConfiguration(0.0, 0.0))


def test_ties_keep_first_enumerated() -> None:
    ranges = SearchRanges(pv=GridRange(1.0, 3.0, 1.0), battery_sizes=(0.0, 5.0))
    result = search("full", ranges, _constant_evaluator)
    assert result.best.key == (1.0, 0.0)
    assert select_best([]) is None


def test_battery_retrofit_fixes_pv() -> None:
    evaluator = _evaluator(existing_pv_kw=3.0)
    ranges = SearchRanges(pv=GridRange(1.0, 5.0, 1.0), battery_sizes=(0.0, 5.0, 6.5))
    result = search("battery_retrofit", ranges, evaluator, existing_pv_kw=3.0, baseline=evaluator.baseline())

    assert [candidate.key for candidate in result.candidates] == [(3.0, 5.0), (3.0, 6.5)]
    with pytest.raises(ValueError):
        search("battery_retrofit", ranges, evaluator, existing_pv_kw=0.0)


def test_thread_pool_preserves_order() -> None:
    ranges = SearchRanges(pv=GridRange(1.0, 4.0, 0.5), battery_sizes=(0.0, 5.0))
    serial = search("full", ranges, _evaluator())
    threaded = search("full", ranges, _evaluator(), concurrency="thread", max_workers=4)

    assert [c.key for c in threaded.candidates] == [c.key for c in serial.candidates]
    assert [c.net_profit for c in threaded.candidates] == [c.net_profit for c in serial.candidates]
    assert threaded.best.key == serial.best.key


def test_invalid_mode_and_concurrency() -> None:
    ranges = SearchRanges(pv=GridRange(1.0, 2.0, 1.0))
    with pytest.raises(ValueError):
        list(iter_configurations("battery_only", ranges))
    with pytest.raises(ValueError):
        search("pv_only", ranges, _evaluator(), concurrency="process")


def test_battery_range_ladder_and_empty_grid() -> None:
    ranges = SearchRanges(pv=GridRange(1.0, 1.0, 0.5), battery=GridRange(0.0, 2.0, 1.0))
    assert ranges.battery_values() == [0.0, 1.0, 2.0]

    empty = search("pv_only", SearchRanges(pv=GridRange(2.0, 1.0, 0.5)), _evaluator())
    assert empty.candidates == []
    assert empty.best is None
    assert empty.to_frame().empty
