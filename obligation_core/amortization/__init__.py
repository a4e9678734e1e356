"""
Amortization - level payments, schedules and schedule regeneration.
"""

from obligation_core.amortization.engine import (
    CENT,
    AmortizationEngine,
    add_periods,
    monthly_rate,
    months_between,
    period_rate,
    quantize,
)
from obligation_core.amortization.schedules import LiabilityScheduleService

__all__ = [
    "CENT",
    "AmortizationEngine",
    "LiabilityScheduleService",
    "add_periods",
    "monthly_rate",
    "months_between",
    "period_rate",
    "quantize",
]
