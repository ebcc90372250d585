import math
import unittest

from services.candidate_selector import (
    MAX_PICKS,
    RANK_COLUMNS,
    rank_candidates,
    select_candidates,
    top_candidates,
)
from services.dispatch import SimulationResult, SystemConfiguration
from services.evaluator import EvaluatedCandidate
from services.pricing import PriceBreakdown

_SIM = SimulationResult(
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
    annual_savings=0.0,
)


def _candidate(
    pv_kw: float,
    battery_kwh: float,
    net_profit: float,
    payback: float,
    median: float,
    roi: float = 0.1,
) -> EvaluatedCandidate:
    price = PriceBreakdown(
        base_median=median,
        median=median,
        range_width=100_000.0,
        range_min=median - 100_000.0,
        range_max=median + 100_000.0,
    )
    return EvaluatedCandidate(
        config=SystemConfiguration(pv_kw, battery_kwh),
        price=price,
        simulation=_SIM,
        annual_benefits=(),
        total_savings=0.0,
        total_revenue=0.0,
        total_benefit=net_profit + median,
        net_profit=net_profit,
        roi=roi,
        payback_years=payback,
    )


def _grid():
    return [
        _candidate(5.0, 0.0, 100.0, 8.0, 1_000_000.0),
        _candidate(3.0, 0.0, 80.0, 6.0, 700_000.0),
        _candidate(5.0, 5.0, 120.0, 10.0, 2_000_000.0),
        _candidate(3.0, 5.0, 90.0, 9.0, 1_500_000.0),
    ]


class SelectCandidatesTests(unittest.TestCase):
    def test_slots_are_filled_and_deduplicated(self) -> None:
        result = select_candidates(_grid())

        labels = [pick.label for pick in result.picks]
        keys = [pick.key for pick in result.picks]
        self.assertEqual(
            labels,
            [
                "PV only: max net profit",
                "PV only: shortest payback",
                "With battery: max net profit",
                "With battery: shortest payback",
            ],
        )
        self.assertEqual(keys, [(5.0, 0.0), (3.0, 0.0), (5.0, 5.0), (3.0, 5.0)])
        self.assertEqual(len(set(keys)), len(keys))
        self.assertEqual(result.messages, [])

    def test_budget_filters_on_range_minimum(self) -> None:
        result = select_candidates(_grid(), budget=1_200_000.0)

        keys = [pick.key for pick in result.picks]
        self.assertEqual(keys, [(5.0, 0.0), (3.0, 0.0)])
        self.assertIn("With battery: no candidates within budget (lowest range minimum: 1,400,000)", result.messages)

    def test_budget_below_everything(self) -> None:
        result = select_candidates(_grid(), budget=100_000.0)

        self.assertEqual(result.picks, [])
        self.assertIn("PV only: no candidates within budget (lowest range minimum: 600,000)", result.messages)
        self.assertIn("Overall: no candidates within budget (max investment unavailable)", result.messages)

    def test_battery_toggle_off(self) -> None:
        result = select_candidates(_grid(), include_battery=False)

        self.assertTrue(all(pick.key[1] == 0.0 for pick in result.picks))
        self.assertFalse(any(message.startswith("With battery") for message in result.messages))

    def test_payback_slot_falls_back_to_next_profit(self) -> None:
        grid = [
            _candidate(5.0, 0.0, 100.0, 5.0, 1_000_000.0),
            _candidate(4.0, 0.0, 80.0, math.inf, 900_000.0),
            _candidate(2.0, 0.0, 60.0, math.inf, 500_000.0),
        ]
        result = select_candidates(grid, include_battery=False)

        self.assertEqual(result.picks[1].label, "PV only: shortest payback")
        self.assertEqual(result.picks[1].key, (4.0, 0.0))

    def test_single_candidate_is_not_repeated(self) -> None:
        result = select_candidates([_candidate(5.0, 0.0, 100.0, 5.0, 1_000_000.0)], include_battery=False)
        self.assertEqual([pick.key for pick in result.picks], [(5.0, 0.0)])

    def test_no_finite_payback_is_reported(self) -> None:
        grid = [_candidate(5.0, 0.0, -10.0, math.inf, 1_000_000.0)]
        result = select_candidates(grid, include_battery=False)
        self.assertIn("Overall: no candidate recovers its price within the horizon", result.messages)

    def test_empty_grid_never_raises(self) -> None:
        result = select_candidates([])
        self.assertEqual(result.picks, [])
        self.assertIn("PV only: no candidates", result.messages)
        self.assertIn("With battery: no candidates", result.messages)

    def test_overall_slots_use_distinct_objectives(self) -> None:
        grid = _grid() + [
            _candidate(8.0, 10.0, 50.0, 12.0, 3_000_000.0),
            _candidate(1.0, 5.0, 10.0, 4.0, 900_000.0),
        ]
        result = select_candidates(grid)

        by_label = {pick.label: pick.key for pick in result.picks}
        self.assertEqual(by_label["Full budget: max investment"], (8.0, 10.0))
        self.assertEqual(by_label["With battery: shortest payback"], (1.0, 5.0))
        self.assertLessEqual(len(result.picks), MAX_PICKS)

    def test_stats_cover_whole_grid(self) -> None:
        result = select_candidates(_grid(), budget=1.0)
        self.assertEqual(result.stats.best_profit, 120.0)
        self.assertEqual(result.stats.best_payback, 6.0)


def test_rank_candidates_orders_undefined_values_last() -> None:
    grid = [
        _candidate(1.0, 0.0, 50.0, math.inf, 500_000.0, roi=math.nan),
        _candidate(2.0, 0.0, 90.0, 7.0, 600_000.0, roi=0.2),
        _candidate(3.0, 0.0, 90.0, 6.0, 700_000.0, roi=0.3),
    ]
    ranked = rank_candidates(grid)

    assert list(ranked["profit_rank"]) == [3, 1, 2]
    assert list(ranked["roi_rank"]) == [3, 2, 1]
    assert list(ranked["payback_rank"]) == [3, 2, 1]

    tops = top_candidates(ranked, top_n=2)
    assert set(tops) == set(RANK_COLUMNS)
    assert list(tops["payback_rank"]["pv_kw"]) == [3.0, 2.0]


def test_rank_candidates_empty() -> None:
    ranked = rank_candidates([])
    assert ranked.empty
    assert set(RANK_COLUMNS).issubset(ranked.columns)
