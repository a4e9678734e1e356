"""
Data Models Package

All values flowing through the obligation core are pydantic models.
Cycles, occurrences, installments and period summaries are computed
values; containers, artifacts, schedules and budgets are persisted.
"""

from obligation_core.models.recurrence import (
    Frequency,
    Occurrence,
    OccurrenceStatus,
    RecurrenceDefinition,
    TERMINAL_STATUSES,
)
from obligation_core.models.obligation import (
    AmountMode,
    ArtifactKind,
    BatchResult,
    Bill,
    ContainerStatus,
    Cycle,
    CycleOverride,
    CycleTracking,
    Direction,
    DirectTransaction,
    FundType,
    RecurringContainer,
    ScheduledPayment,
    TrackingArtifact,
    TrackingMethod,
    TrackingResult,
)
from obligation_core.models.liability import (
    AdjustmentPolicy,
    ExtraPaymentOption,
    ExtraPaymentStrategy,
    Installment,
    Liability,
    LiabilityChanges,
    LiabilitySchedule,
    PaymentBreakdown,
    PaymentImpact,
    RecalculationImpact,
    ScheduleStatus,
)
from obligation_core.models.budget import (
    Achievements,
    AlertKind,
    AlertSettings,
    Budget,
    BudgetAlert,
    BudgetMode,
    BudgetPeriodState,
    BudgetPeriodSummary,
    BudgetTransaction,
    BudgetType,
    CategoryChange,
    CategorySpend,
    ContinueDecision,
    DailyPace,
    ExtendDecision,
    PeriodComparison,
    PeriodRunResult,
    PeriodWindow,
    RecurrencePattern,
    RenewalDecision,
    RenewalOutcome,
    RepeatDecision,
)
from obligation_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Recurrence models
    "Frequency",
    "Occurrence",
    "OccurrenceStatus",
    "RecurrenceDefinition",
    "TERMINAL_STATUSES",
    # Obligation models
    "AmountMode",
    "ArtifactKind",
    "BatchResult",
    "Bill",
    "ContainerStatus",
    "Cycle",
    "CycleOverride",
    "CycleTracking",
    "Direction",
    "DirectTransaction",
    "FundType",
    "RecurringContainer",
    "ScheduledPayment",
    "TrackingArtifact",
    "TrackingMethod",
    "TrackingResult",
    # Liability models
    "AdjustmentPolicy",
    "ExtraPaymentOption",
    "ExtraPaymentStrategy",
    "Installment",
    "Liability",
    "LiabilityChanges",
    "LiabilitySchedule",
    "PaymentBreakdown",
    "PaymentImpact",
    "RecalculationImpact",
    "ScheduleStatus",
    # Budget models
    "Achievements",
    "AlertKind",
    "AlertSettings",
    "Budget",
    "BudgetAlert",
    "BudgetMode",
    "BudgetPeriodState",
    "BudgetPeriodSummary",
    "BudgetTransaction",
    "BudgetType",
    "CategoryChange",
    "CategorySpend",
    "ContinueDecision",
    "DailyPace",
    "ExtendDecision",
    "PeriodComparison",
    "PeriodRunResult",
    "PeriodWindow",
    "RecurrencePattern",
    "RenewalDecision",
    "RenewalOutcome",
    "RepeatDecision",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
