"""
Orchestrator for the Obligation Core

Wires the components together and defines the one unattended flow:
the daily job.

    DailyJob.run(today)
    1. Materialize tracking for every cycle inside its lead time
    2. Close and renew (or prepare reflection for) ended budget periods

DESIGN DECISION: Both steps share one correlation id, so everything one
run did can be pulled from the audit store together. Each step isolates
failures per container / per budget; the job as a whole does not raise
for them. Re-running the job for the same day is safe.
"""

from datetime import date
from typing import NamedTuple, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel

from obligation_core.amortization import AmortizationEngine, LiabilityScheduleService
from obligation_core.audit import AuditLogger, create_correlation_id
from obligation_core.budgets import BudgetPeriodLifecycle
from obligation_core.config import Settings, get_settings
from obligation_core.models.budget import PeriodRunResult
from obligation_core.models.obligation import BatchResult
from obligation_core.recurrence import CycleGenerator, RecurrenceClock
from obligation_core.services.clock import Clock, SystemClock
from obligation_core.services.storage import (
    AuditStorageInterface,
    InMemoryRepository,
    Repository,
)
from obligation_core.tracking import PaymentTrackingDispatcher
from obligation_core.validation import TrackingValidator


logger = structlog.get_logger(__name__)


class CoreComponents(NamedTuple):
    clock: Clock
    repository: Repository
    audit_logger: AuditLogger
    recurrence_clock: RecurrenceClock
    cycle_generator: CycleGenerator
    dispatcher: PaymentTrackingDispatcher
    amortization: AmortizationEngine
    schedules: LiabilityScheduleService
    budgets: BudgetPeriodLifecycle


class DailyRunReport(BaseModel):
    """Outcome of one daily job run."""
    run_date: date
    correlation_id: UUID
    tracking: BatchResult
    budgets: PeriodRunResult

    @property
    def has_errors(self) -> bool:
        return self.tracking.has_errors or self.budgets.has_errors


def create_core_components(
    repository: Optional[Repository] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
    clock: Optional[Clock] = None,
    settings: Optional[Settings] = None,
) -> CoreComponents:
    """
    Factory function to create all core components.

    Args:
        repository: Storage backend. Defaults to an in-memory repository.
        audit_storage: Audit persistence. If None, audit events are only logged.
        clock: Source of "today". Defaults to the system clock.
        settings: Settings. Defaults to get_settings().
    """
    settings = settings or get_settings()
    clock = clock or SystemClock()
    repository = repository or InMemoryRepository()
    audit_logger = AuditLogger(audit_storage)

    recurrence_clock = RecurrenceClock(settings=settings.scheduling, clock=clock)
    cycle_generator = CycleGenerator(recurrence_clock, settings=settings.scheduling)
    dispatcher = PaymentTrackingDispatcher(
        repository,
        cycle_generator=cycle_generator,
        validator=TrackingValidator(),
        audit_logger=audit_logger,
        clock=clock,
        settings=settings.app,
    )
    engine = AmortizationEngine(settings=settings.amortization)
    schedules = LiabilityScheduleService(
        repository,
        engine=engine,
        audit_logger=audit_logger,
        clock=clock,
        settings=settings.amortization,
        reminder_days=settings.scheduling.reminder_days_list,
    )
    budgets = BudgetPeriodLifecycle(
        repository,
        recurrence_clock=recurrence_clock,
        audit_logger=audit_logger,
        clock=clock,
        settings=settings.budget,
    )
    return CoreComponents(
        clock=clock,
        repository=repository,
        audit_logger=audit_logger,
        recurrence_clock=recurrence_clock,
        cycle_generator=cycle_generator,
        dispatcher=dispatcher,
        amortization=engine,
        schedules=schedules,
        budgets=budgets,
    )


class DailyJob:
    """
    The unattended daily run.
    """

    def __init__(self, components: CoreComponents):
        self._components = components

    async def run(self, today: Optional[date] = None) -> DailyRunReport:
        today = today or self._components.clock.today()
        correlation_id = create_correlation_id()
        logger.info("daily_job_started", run_date=today.isoformat(),
                    correlation_id=str(correlation_id))

        tracking = await self._components.dispatcher.process_due_today(today, correlation_id)
        budgets = await self._components.budgets.process_ended_periods(today, correlation_id)

        report = DailyRunReport(
            run_date=today,
            correlation_id=correlation_id,
            tracking=tracking,
            budgets=budgets,
        )
        if report.has_errors:
            await self._components.audit_logger.log_error(
                error_type="daily_job_partial_failure",
                error_message="; ".join(tracking.errors + budgets.errors),
                details={"run_date": today.isoformat()},
                correlation_id=correlation_id,
            )
        return report
