"""Enumerate PV/battery configurations, evaluate them and pick the most profitable."""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
from typing import Callable, Iterator, List, Optional, Sequence

import pandas as pd

from services.dispatch import SimulationResult, SystemConfiguration
from services.evaluator import EvaluatedCandidate
from utils.sweeps import generate_step_values, sizes_within

SEARCH_MODES = ("pv_only", "full", "battery_retrofit")


@dataclass(frozen=True)
class GridRange:
    """Inclusive ``[min_value, max_value]`` ladder with spacing ``step``."""

    min_value: float
    max_value: float
    step: float

    def values(self, decimals: int = 2) -> List[float]:
        return generate_step_values(self.min_value, self.max_value, self.step, decimals)


@dataclass(frozen=True)
class SearchRanges:
    """PV ladder plus either a battery ladder or an explicit battery catalog.

    ``battery_sizes`` takes precedence over ``battery`` when both are set.
    """

    pv: GridRange
    battery: Optional[GridRange] = None
    battery_sizes: Optional[Sequence[float]] = None

    def battery_values(self) -> List[float]:
        if self.battery_sizes is not None:
            values = sorted({float(v) for v in self.battery_sizes if v >= 0})
            if self.battery is not None:
                values = sizes_within(values, self.battery.max_value)
            return values
        if self.battery is not None:
            return self.battery.values(decimals=2)
        return [0.0]


@dataclass(frozen=True)
class GridSearchResult:
    mode: str
    candidates: List[EvaluatedCandidate]
    best: Optional[EvaluatedCandidate]
    skipped_infeasible: int

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([candidate.to_record() for candidate in self.candidates])


def is_feasible(config: SystemConfiguration, existing_pv_kw: float = 0.0) -> bool:
    """A bare battery is only allowed next to an already installed array."""

    if config.pv_kw <= 0 and config.battery_kwh > 0:
        return existing_pv_kw > 0
    return True


def iter_configurations(
    mode: str,
    ranges: SearchRanges,
    existing_pv_kw: float = 0.0,
) -> Iterator[SystemConfiguration]:
    """Yield configurations in ascending PV, then ascending battery order."""

    if mode not in SEARCH_MODES:
        raise ValueError(f"mode must be one of {SEARCH_MODES}")

    if mode == "battery_retrofit":
        for battery_kwh in ranges.battery_values():
            if battery_kwh > 0:
                yield SystemConfiguration(float(existing_pv_kw), battery_kwh)
        return

    battery_values = [0.0] if mode == "pv_only" else ranges.battery_values()
    for pv_kw in ranges.pv.values(decimals=2):
        for battery_kwh in battery_values:
            yield SystemConfiguration(pv_kw, battery_kwh)


def select_best(candidates: Sequence[EvaluatedCandidate]) -> Optional[EvaluatedCandidate]:
    """Return the maximum net profit; ties keep the earliest candidate."""

    best: Optional[EvaluatedCandidate] = None
    for candidate in candidates:
        if best is None or candidate.net_profit > best.net_profit:
            best = candidate
    return best


def search(
    mode: str,
    ranges: SearchRanges,
    evaluator: Callable[..., EvaluatedCandidate],
    existing_pv_kw: float = 0.0,
    baseline: Optional[SimulationResult] = None,
    concurrency: Optional[str] = None,
    max_workers: Optional[int] = None,
) -> GridSearchResult:
    """Evaluate every feasible configuration of ``mode`` and keep enumeration order.

    ``evaluator`` is called as ``evaluator(config)`` or, when a ``baseline`` is
    given, ``evaluator(config, baseline)``. ``concurrency="thread"`` maps the
    evaluations over a thread pool; results are still returned in enumeration
    order so tie-breaking stays deterministic.
    """

    if mode == "battery_retrofit" and existing_pv_kw <= 0:
        raise ValueError("battery_retrofit mode requires existing_pv_kw > 0")

    feasible: List[SystemConfiguration] = []
    skipped = 0
    for config in iter_configurations(mode, ranges, existing_pv_kw):
        if is_feasible(config, existing_pv_kw if mode == "battery_retrofit" else 0.0):
            feasible.append(config)
        else:
            skipped += 1

    if not feasible:
        logging.getLogger(__name__).warning("Grid search in mode %s produced no feasible configurations.", mode)
        return GridSearchResult(mode=mode, candidates=[], best=None, skipped_infeasible=skipped)

    def _evaluate(config: SystemConfiguration) -> EvaluatedCandidate:
        if baseline is None:
            return evaluator(config)
        return evaluator(config, baseline)

    if concurrency is None:
        candidates = [_evaluate(config) for config in feasible]
    else:
        if concurrency != "thread":
            raise ValueError("concurrency must be one of: None, 'thread'.")
        logging.getLogger(__name__).debug(
            "Evaluating %s configurations on a thread pool (max_workers=%s).", len(feasible), max_workers
        )
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            candidates = list(executor.map(_evaluate, feasible))

    return GridSearchResult(
        mode=mode,
        candidates=candidates,
        best=select_best(candidates),
        skipped_infeasible=skipped,
    )
