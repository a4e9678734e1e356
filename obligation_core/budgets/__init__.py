"""
Budgets - derived progress, reflection and period renewal.
"""

from obligation_core.budgets import stats
from obligation_core.budgets.lifecycle import (
    FREQUENCY_BY_PATTERN,
    BudgetPeriodLifecycle,
)

__all__ = [
    "FREQUENCY_BY_PATTERN",
    "BudgetPeriodLifecycle",
    "stats",
]
