"""Feed-in tariff resolution for project years and calendar years."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class TariffSegment:
    """Rate paid for exported energy over an inclusive range of project years."""

    start_year: int
    end_year: int
    rate_per_kwh: float

    def contains(self, year: int) -> bool:
        return self.start_year <= year <= self.end_year

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "TariffSegment":
        rate = payload.get("rate_per_kwh", payload.get("yenPerKwh"))
        return cls(
            start_year=int(payload.get("start_year", payload.get("startYear"))),
            end_year=int(payload.get("end_year", payload.get("endYear"))),
            rate_per_kwh=float(rate),
        )


@dataclass(frozen=True)
class PhasedRateRule:
    """Two-phase rate that replaces the historical table from ``pivot_year``.

    The phases are anchored at the later of ``pivot_year`` and the first
    calendar year of the requested series: ``first_years`` at ``first_rate``
    followed by ``second_years`` at ``second_rate``.
    """

    pivot_year: int
    first_years: int
    first_rate: float
    second_years: int
    second_rate: float

    def rate_for_offset(self, offset: int) -> Optional[float]:
        """Return the phase rate ``offset`` years after the anchor, or None when exhausted."""

        if offset < 0:
            return None
        if offset < self.first_years:
            return self.first_rate
        if offset < self.first_years + self.second_years:
            return self.second_rate
        return None


DEFAULT_SEGMENTS: Tuple[TariffSegment, ...] = (
    TariffSegment(1, 4, 24.0),
    TariffSegment(5, 10, 8.3),
    TariffSegment(11, 15, 8.5),
)


DEFAULT_POST_INCENTIVE_RATE = 8.5

# Residential (<10 kW) feed-in rates by certification year, before the pivot.
DEFAULT_HISTORICAL_RATES: Dict[int, float] = {
    2019: 24.0,
    2020: 21.0,
    2021: 19.0,
    2022: 17.0,
    2023: 16.0,
    2024: 16.0,
}

DEFAULT_PHASED_RULE = PhasedRateRule(
    pivot_year=2025,
    first_years=4,
    first_rate=24.0,
    second_years=6,
    second_rate=8.3,
)


@dataclass(frozen=True)
class TariffSchedule:
    """Resolve feed-in rates by project year or by calendar year.

    ``segments`` are keyed by project year (1 = first year after install).
    ``historical_rates`` are keyed by calendar year and only apply before the
    phased rule's pivot year. Whatever neither source resolves falls back to
    ``post_incentive_rate`` so that resolution is total.
    """

    segments: Tuple[TariffSegment, ...] = DEFAULT_SEGMENTS
    post_incentive_rate: Optional[float] = None
    historical_rates: Dict[int, float] = field(default_factory=dict)
    phased_rule: Optional[PhasedRateRule] = None

    def fallback_rate(self) -> float:
        if self.post_incentive_rate is not None:
            return float(self.post_incentive_rate)
        if self.segments:
            return float(self.segments[-1].rate_per_kwh)
        return 0.0

    def rate_for_year(self, year: int) -> float:
        for segment in self.segments:
            if segment.contains(year):
                return float(segment.rate_per_kwh)
        return self.fallback_rate()

    def project_series(self, years: int) -> List[float]:
        """Return project-year rates for years ``1..years``."""

        return [self.rate_for_year(year) for year in range(1, max(years, 0) + 1)]

    def rate_for_calendar_year(self, calendar_year: int, anchor_year: Optional[int] = None) -> float:
        """Resolve the rate for one calendar year.

        ``anchor_year`` is the first calendar year the phased rule counts from;
        it defaults to the pivot year.
        """

        rule = self.phased_rule
        if rule is not None and calendar_year >= rule.pivot_year:
            anchor = rule.pivot_year if anchor_year is None else max(anchor_year, rule.pivot_year)
            phased = rule.rate_for_offset(calendar_year - anchor)
            if phased is not None:
                return float(phased)
            return self.fallback_rate()

        if calendar_year in self.historical_rates:
            return float(self.historical_rates[calendar_year])
        return self.fallback_rate()

    def build_series(self, start_year: int, years_remaining: int) -> List[float]:
        """Return exactly ``years_remaining`` rates for consecutive calendar years from ``start_year``."""

        if years_remaining <= 0:
            return []
        return [
            self.rate_for_calendar_year(start_year + offset, anchor_year=start_year)
            for offset in range(years_remaining)
        ]


def tariff_series_for_horizon(
    schedule: TariffSchedule,
    evaluation_years: int,
    fit_start_year: Optional[int] = None,
    fit_years_remaining: Optional[int] = None,
) -> List[float]:
    """Return one feed-in rate per evaluated year.

    Without a start year the project-year segments are used directly. With a
    start year, the calendar-year series covers the remaining FIT years and
    the rest of the horizon is padded with the fallback rate.
    """

    if evaluation_years <= 0:
        return []
    if fit_start_year is None:
        return schedule.project_series(evaluation_years)

    remaining = evaluation_years if fit_years_remaining is None else max(0, int(fit_years_remaining))
    series = schedule.build_series(fit_start_year, min(remaining, evaluation_years))
    series.extend([schedule.fallback_rate()] * (evaluation_years - len(series)))
    return series


def segments_from_records(records: Sequence[Dict[str, Any]]) -> Tuple[TariffSegment, ...]:
    """Parse catalog records, ordered by start year."""

    segments = [TariffSegment.from_dict(record) for record in records]
    return tuple(sorted(segments, key=lambda seg: (seg.start_year, seg.end_year)))


def default_tariff_schedule() -> TariffSchedule:
    """Project-year segments plus the calendar-year table and phased rule used for quotes."""

    return TariffSchedule(
        segments=DEFAULT_SEGMENTS,
        post_incentive_rate=DEFAULT_POST_INCENTIVE_RATE,
        historical_rates=dict(DEFAULT_HISTORICAL_RATES),
        phased_rule=DEFAULT_PHASED_RULE,
    )
