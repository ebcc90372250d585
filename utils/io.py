"""Reference catalog loading for tariffs and battery sizes."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

from services.tariff_schedule import DEFAULT_SEGMENTS, TariffSegment, segments_from_records
from utils.sweeps import normalize_sizes

DEFAULT_BATTERY_SIZES: Tuple[float, ...] = (0.0, 5.0, 6.5, 7.7, 9.8, 12.7, 16.4)
DATA_DIR_ENV = "PVQUOTE_DATA_DIR"
_REPO_DATA_DIR = Path(__file__).resolve().parent.parent / "data"


@dataclass(frozen=True)
class ReferenceCatalogs:
    """Read-only reference data loaded once per process."""

    tariff_segments: Tuple[TariffSegment, ...]
    battery_sizes: Tuple[float, ...]
    warnings: Tuple[str, ...] = ()


def get_data_dir() -> Path:
    """Return the catalog directory (environment override, then the bundled ``data/``)."""

    override = os.environ.get(DATA_DIR_ENV)
    return Path(override) if override else _REPO_DATA_DIR


def _read_json_list(path_candidates: Sequence[Any]) -> List[Any]:
    last_err: Optional[Exception] = None
    for candidate in path_candidates:
        try:
            with open(candidate, encoding="utf-8") as handle:
                payload = json.load(handle)
            if not isinstance(payload, list) or not payload:
                raise ValueError(f"{candidate} must contain a non-empty JSON list")
            return payload
        except (OSError, ValueError) as e:
            last_err = e
    raise RuntimeError(f"Failed to read catalog. Looked for: {list(path_candidates)}. Last error: {last_err}")


def load_tariff_segments(path_candidates: Sequence[Any]) -> Tuple[TariffSegment, ...]:
    """Read ``[{startYear, endYear, yenPerKwh}]`` records, skipping malformed ones."""

    records = _read_json_list(path_candidates)
    valid = []
    for record in records:
        try:
            segment = segments_from_records([record])[0]
        except (KeyError, TypeError, ValueError, AttributeError):
            logging.getLogger(__name__).warning("Skipping malformed tariff record: %r", record)
            continue
        if segment.start_year >= 1 and segment.end_year >= segment.start_year and segment.rate_per_kwh >= 0:
            valid.append(segment)
    if not valid:
        raise ValueError("Tariff catalog contains no valid segments")
    return tuple(sorted(valid, key=lambda seg: (seg.start_year, seg.end_year)))


def load_battery_sizes(path_candidates: Sequence[Any]) -> Tuple[float, ...]:
    """Read a list of battery sizes; the result is sorted and always includes 0."""

    return tuple(normalize_sizes(_read_json_list(path_candidates), include_zero=True))


def load_reference_catalogs(data_dir: Optional[Path] = None) -> ReferenceCatalogs:
    """Load both catalogs, falling back to built-in defaults on failure."""

    data_dir = data_dir or get_data_dir()
    warnings: List[str] = []

    try:
        segments = load_tariff_segments([data_dir / "feed_in_tariffs.json"])
    except (RuntimeError, ValueError) as exc:
        logging.getLogger(__name__).warning("Using built-in tariff catalog: %s", exc)
        warnings.append("Using built-in feed-in tariff catalog.")
        segments = DEFAULT_SEGMENTS

    try:
        sizes = load_battery_sizes([data_dir / "battery_sizes.json"])
    except (RuntimeError, ValueError) as exc:
        logging.getLogger(__name__).warning("Using built-in battery catalog: %s", exc)
        warnings.append("Using built-in battery size catalog.")
        sizes = DEFAULT_BATTERY_SIZES

    return ReferenceCatalogs(tariff_segments=segments, battery_sizes=sizes, warnings=tuple(warnings))
