"""Payment tracking package."""

from obligation_core.tracking.dispatcher import PaymentTrackingDispatcher
from obligation_core.tracking.strategies import (
    STRATEGIES,
    BillTracking,
    DirectTransactionTracking,
    ManualTracking,
    ScheduledPaymentTracking,
    TrackingStrategy,
    strategy_for,
)

__all__ = [
    "BillTracking",
    "DirectTransactionTracking",
    "ManualTracking",
    "PaymentTrackingDispatcher",
    "STRATEGIES",
    "ScheduledPaymentTracking",
    "TrackingStrategy",
    "strategy_for",
]
