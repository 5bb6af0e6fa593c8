"""Frequency criteria exports."""

from .criteria_config import CriteriaConfig, HourWindow
from .evaluator import (
    CriteriaResult,
    RuleOutcome,
    evaluate_all_hours,
    evaluate_average,
    evaluate_criteria,
    evaluate_stop,
)

__all__ = [
    "CriteriaConfig",
    "CriteriaResult",
    "HourWindow",
    "RuleOutcome",
    "evaluate_all_hours",
    "evaluate_average",
    "evaluate_criteria",
    "evaluate_stop",
]
