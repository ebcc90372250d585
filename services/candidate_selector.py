"""Pick a short, labeled list of recommended configurations from an evaluated grid."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from services.evaluator import EvaluatedCandidate
from utils.slots import PV_ONLY_PREFIX, WITH_BATTERY_PREFIX, slot_label

MAX_PICKS = 6


@dataclass(frozen=True)
class LabeledCandidate:
    label: str
    candidate: EvaluatedCandidate

    @property
    def key(self) -> Tuple[float, float]:
        return self.candidate.key


@dataclass(frozen=True)
class SelectionStats:
    """Best values across the whole, unfiltered grid."""

    best_profit: float
    best_roi: float
    best_payback: float


@dataclass(frozen=True)
class SelectionResult:
    picks: List[LabeledCandidate]
    messages: List[str]
    stats: SelectionStats
    budget: float = math.inf
    include_battery: bool = True


def _format_currency(value: float) -> str:
    return f"{round(value):,}"


def _max_by(items: Sequence[EvaluatedCandidate], metric: Callable[[EvaluatedCandidate], float]) -> EvaluatedCandidate:
    best = items[0]
    for item in items[1:]:
        if metric(item) > metric(best):
            best = item
    return best


def _min_by(items: Sequence[EvaluatedCandidate], metric: Callable[[EvaluatedCandidate], float]) -> EvaluatedCandidate:
    best = items[0]
    for item in items[1:]:
        if metric(item) < metric(best):
            best = item
    return best


def compute_stats(candidates: Sequence[EvaluatedCandidate]) -> SelectionStats:
    best_profit = -math.inf
    best_roi = -math.inf
    best_payback = math.inf
    for candidate in candidates:
        best_profit = max(best_profit, candidate.net_profit)
        if not math.isnan(candidate.roi):
            best_roi = max(best_roi, candidate.roi)
        if candidate.payback_is_finite:
            best_payback = min(best_payback, candidate.payback_years)
    return SelectionStats(best_profit=best_profit, best_roi=best_roi, best_payback=best_payback)


def _pick_profit_and_payback(
    group: Sequence[EvaluatedCandidate],
    prefix: str,
    within_budget: Callable[[EvaluatedCandidate], bool],
    budget: float,
    messages: List[str],
) -> List[LabeledCandidate]:
    """Return the group's profit winner and a distinct payback pick.

    The payback slot prefers the shortest finite payback that is not the
    profit winner, then the next most profitable distinct design, and only
    repeats the profit winner when nothing else exists (the repeat is then
    dropped as a duplicate).
    """

    eligible = [candidate for candidate in group if within_budget(candidate)]
    if not eligible:
        cheapest = min((candidate.price.range_min for candidate in group), default=math.inf)
        if math.isfinite(budget) and math.isfinite(cheapest):
            messages.append(
                f"{prefix}no candidates within budget (lowest range minimum: {_format_currency(cheapest)})"
            )
        else:
            messages.append(f"{prefix}no candidates")
        return []

    profit_winner = _max_by(eligible, lambda c: c.net_profit)
    winner_key = profit_winner.key
    finite_payback = [candidate for candidate in eligible if candidate.payback_is_finite]

    payback_pick: Optional[EvaluatedCandidate] = None
    if finite_payback:
        payback_winner = _min_by(finite_payback, lambda c: c.payback_years)
        if payback_winner.key != winner_key:
            payback_pick = payback_winner
        else:
            ordered = sorted(finite_payback, key=lambda c: c.payback_years)
            payback_pick = next((c for c in ordered if c.key != winner_key), None)
    if payback_pick is None:
        ordered = sorted(eligible, key=lambda c: c.net_profit, reverse=True)
        payback_pick = next((c for c in ordered if c.key != winner_key), profit_winner)

    picks = [LabeledCandidate(slot_label("max_profit", prefix), profit_winner)]
    if payback_pick.key != winner_key:
        picks.append(LabeledCandidate(slot_label("min_payback", prefix), payback_pick))
    return picks


def select_candidates(
    candidates: Sequence[EvaluatedCandidate],
    budget: Optional[float] = None,
    include_battery: bool = True,
) -> SelectionResult:
    """Return up to six de-duplicated recommendations plus diagnostics.

    Budget eligibility compares the lower end of each price range with
    ``budget``; ``None`` or a non-positive budget means unconstrained.
    """

    budget_value = float(budget) if budget is not None and budget > 0 else math.inf

    def within_budget(candidate: EvaluatedCandidate) -> bool:
        return math.isinf(budget_value) or candidate.price.range_min <= budget_value

    pv_only = [candidate for candidate in candidates if not candidate.config.has_battery]
    with_battery = [candidate for candidate in candidates if candidate.config.has_battery]
    eligible = list(candidates) if include_battery else pv_only

    messages: List[str] = []
    ordered: List[LabeledCandidate] = []
    ordered.extend(_pick_profit_and_payback(pv_only, PV_ONLY_PREFIX, within_budget, budget_value, messages))
    if include_battery:
        ordered.extend(
            _pick_profit_and_payback(with_battery, WITH_BATTERY_PREFIX, within_budget, budget_value, messages)
        )

    eligible_within = [candidate for candidate in eligible if within_budget(candidate)]
    if eligible_within:
        invest_max = _max_by(eligible_within, lambda c: c.price.median)
        ordered.append(LabeledCandidate(slot_label("max_investment"), invest_max))
    else:
        messages.append("Overall: no candidates within budget (max investment unavailable)")

    finite_within = [candidate for candidate in eligible_within if candidate.payback_is_finite]
    if finite_within:
        payback_min = _min_by(finite_within, lambda c: c.payback_years)
        ordered.append(LabeledCandidate(slot_label("overall_min_payback"), payback_min))
    elif eligible_within:
        messages.append("Overall: no candidate recovers its price within the horizon")

    seen = set()
    picks: List[LabeledCandidate] = []
    for item in ordered:
        if item.key in seen:
            continue
        seen.add(item.key)
        picks.append(item)
        if len(picks) >= MAX_PICKS:
            break

    return SelectionResult(
        picks=picks,
        messages=messages,
        stats=compute_stats(candidates),
        budget=budget_value,
        include_battery=include_battery,
    )


RANK_COLUMNS: Tuple[str, ...] = ("profit_rank", "roi_rank", "payback_rank")


def rank_candidates(candidates: Sequence[EvaluatedCandidate]) -> pd.DataFrame:
    """Rank every configuration by profit (desc), ROI (desc) and payback (asc).

    Ties keep enumeration order. Undefined ROI ranks last; infinite payback
    ranks after every finite payback.
    """

    if not candidates:
        return pd.DataFrame(columns=["pv_kw", "battery_kwh", "net_profit", "roi", "payback_years", *RANK_COLUMNS])

    df = pd.DataFrame(
        {
            "pv_kw": [c.key[0] for c in candidates],
            "battery_kwh": [c.key[1] for c in candidates],
            "net_profit": [c.net_profit for c in candidates],
            "roi": [c.roi for c in candidates],
            "payback_years": [c.payback_years for c in candidates],
        }
    )

    def _rank(column: str, ascending: bool, fill: float) -> pd.Series:
        order = df[column].fillna(fill).sort_values(ascending=ascending, kind="mergesort").index
        ranks = pd.Series(range(1, len(df) + 1), index=order)
        return ranks.reindex(df.index)

    df["profit_rank"] = _rank("net_profit", ascending=False, fill=-math.inf)
    df["roi_rank"] = _rank("roi", ascending=False, fill=-math.inf)
    df["payback_rank"] = _rank("payback_years", ascending=True, fill=math.inf)
    return df


def top_candidates(ranked: pd.DataFrame, top_n: int = 10) -> Dict[str, pd.DataFrame]:
    """Return the ``top_n`` rows for each rank column."""

    return {
        column: ranked.sort_values(column, kind="mergesort").head(top_n).reset_index(drop=True)
        for column in RANK_COLUMNS
    }
