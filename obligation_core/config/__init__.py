"""Configuration package."""

from obligation_core.config.settings import (
    AmortizationSettings,
    AppSettings,
    BudgetSettings,
    SchedulingSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AmortizationSettings",
    "AppSettings",
    "BudgetSettings",
    "SchedulingSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
