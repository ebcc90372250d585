"""Labels and descriptions for recommended-candidate slots."""

from __future__ import annotations

from typing import Dict, List

PV_ONLY_PREFIX = "PV only: "
WITH_BATTERY_PREFIX = "With battery: "

SLOT_DEFINITIONS: Dict[str, Dict[str, str]] = {
    "max_profit": {
        "label": "max net profit",
        "meaning": "Largest benefit minus price over the evaluation horizon.",
    },
    "min_payback": {
        "label": "shortest payback",
        "meaning": "Recovers the price soonest; falls back to the next most profitable design.",
    },
    "max_investment": {
        "label": "Full budget: max investment",
        "meaning": "Most expensive design whose price range still starts within budget.",
    },
    "overall_min_payback": {
        "label": "Overall: shortest payback",
        "meaning": "Shortest payback across every eligible design, with or without battery.",
    },
}


def slot_label(slot: str, prefix: str = "") -> str:
    return f"{prefix}{SLOT_DEFINITIONS[slot]['label']}"


def describe_slots(labels: List[str]) -> List[str]:
    """Return ``"label - meaning"`` lines for the given slot labels."""

    # Longest suffix first so "Overall: shortest payback" is not read as "shortest payback".
    ordered = sorted(SLOT_DEFINITIONS.values(), key=lambda meta: len(meta["label"]), reverse=True)
    lines: List[str] = []
    for label in labels:
        for meta in ordered:
            if label.endswith(meta["label"]):
                lines.append(f"{label} - {meta['meaning']}")
                break
    return lines
