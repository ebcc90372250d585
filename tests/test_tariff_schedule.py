import math
import unittest

from services.tariff_schedule import (
    DEFAULT_SEGMENTS,
    PhasedRateRule,
    TariffSchedule,
    TariffSegment,
    segments_from_records,
    tariff_series_for_horizon,
)


def _phased_schedule() -> TariffSchedule:
    return TariffSchedule(
        segments=(),
        post_incentive_rate=8.5,
        historical_rates={2022: 17.0, 2023: 16.0, 2024: 16.0},
        phased_rule=PhasedRateRule(pivot_year=2025, first_years=4, first_rate=24.0, second_years=6, second_rate=8.3),
    )


class ProjectYearTests(unittest.TestCase):
    def test_default_segments_cover_fifteen_years(self) -> None:
        series = TariffSchedule().project_series(15)
        self.assertEqual(series, [24.0] * 4 + [8.3] * 6 + [8.5] * 5)

    def test_years_past_last_segment_use_last_rate(self) -> None:
        schedule = TariffSchedule()
        self.assertEqual(schedule.rate_for_year(16), 8.5)
        self.assertEqual(schedule.rate_for_year(40), 8.5)

    def test_post_incentive_rate_overrides_fallback(self) -> None:
        schedule = TariffSchedule(post_incentive_rate=7.0)
        self.assertEqual(schedule.rate_for_year(16), 7.0)
        self.assertEqual(schedule.rate_for_year(2), 24.0)

    def test_empty_schedule_resolves_to_zero(self) -> None:
        schedule = TariffSchedule(segments=())
        self.assertEqual(schedule.rate_for_year(1), 0.0)

    def test_resolution_is_total(self) -> None:
        schedule = TariffSchedule()
        for year in range(1, 101):
            rate = schedule.rate_for_year(year)
            self.assertTrue(math.isfinite(rate))
            self.assertGreaterEqual(rate, 0.0)


class CalendarYearTests(unittest.TestCase):
    def test_build_series_switches_to_phased_rule_at_pivot(self) -> None:
        schedule = _phased_schedule()
        series = schedule.build_series(2023, 10)
        self.assertEqual(series, [16.0, 16.0, 24.0, 24.0, 24.0, 24.0, 8.3, 8.3, 8.3, 8.3])

    def test_series_starting_after_pivot_is_anchored_at_start(self) -> None:
        schedule = _phased_schedule()
        series = schedule.build_series(2027, 5)
        self.assertEqual(series, [24.0, 24.0, 24.0, 24.0, 8.3])

    def test_exhausted_phases_fall_back_to_post_incentive_rate(self) -> None:
        schedule = _phased_schedule()
        self.assertEqual(schedule.rate_for_calendar_year(2035), 8.5)
        self.assertEqual(schedule.rate_for_calendar_year(2010), 8.5)

    def test_build_series_length_matches_request(self) -> None:
        schedule = _phased_schedule()
        self.assertEqual(schedule.build_series(2020, 0), [])
        self.assertEqual(len(schedule.build_series(2020, 25)), 25)

    def test_calendar_resolution_is_total(self) -> None:
        schedule = _phased_schedule()
        for year in range(2000, 2101):
            self.assertTrue(math.isfinite(schedule.rate_for_calendar_year(year)))


def test_horizon_without_start_year_uses_project_segments() -> None:
    assert tariff_series_for_horizon(TariffSchedule(), 5) == [24.0] * 4 + [8.3]


def test_horizon_pads_remaining_years_with_fallback() -> None:
    series = tariff_series_for_horizon(_phased_schedule(), 6, fit_start_year=2025, fit_years_remaining=2)
    assert series == [24.0, 24.0, 8.5, 8.5, 8.5, 8.5]


def test_horizon_of_zero_years_is_empty() -> None:
    assert tariff_series_for_horizon(TariffSchedule(), 0) == []


def test_segments_from_records_accepts_catalog_keys() -> None:
    segments = segments_from_records(
        [
            {"startYear": 5, "endYear": 10, "yenPerKwh": 8.3},
            {"start_year": 1, "end_year": 4, "rate_per_kwh": 24},
        ]
    )
    assert segments == (TariffSegment(1, 4, 24.0), TariffSegment(5, 10, 8.3))
    assert segments[0].contains(4)
    assert not segments[0].contains(5)
    assert DEFAULT_SEGMENTS[0].rate_per_kwh == 24.0
