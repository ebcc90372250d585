"""Helpers shared by the calculation services and the HTTP API."""

from utils.economics import format_payback, payback_years, return_on_investment
from utils.sweeps import generate_step_values, normalize_sizes, validate_range

__all__ = [
    "format_payback",
    "payback_years",
    "return_on_investment",
    "generate_step_values",
    "normalize_sizes",
    "validate_range",
]
