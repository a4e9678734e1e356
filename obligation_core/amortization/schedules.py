"""
Liability Schedule Service

Owns the repository side of amortization: replaces a liability's pending
installment rows with a freshly generated tail.

CRITICAL: Only PENDING rows are deleted. Completed and cancelled rows are
payment history; regeneration never reads, moves or rewrites them.

Order of work in regenerate_schedules:
1. Generate the new installments and load the liability (any error stops
   here, before anything is deleted)
2. Delete pending rows
3. Insert the new rows in batches
4. Point the liability's next due date at the first new installment
5. Audit
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from obligation_core.amortization.engine import AmortizationEngine, add_periods
from obligation_core.audit import AuditLogger
from obligation_core.config import AmortizationSettings, get_settings
from obligation_core.models.audit import AuditEventBuilder
from obligation_core.models.liability import (
    AdjustmentPolicy,
    Installment,
    Liability,
    LiabilityChanges,
    LiabilitySchedule,
    RecalculationImpact,
)
from obligation_core.models.recurrence import Frequency
from obligation_core.services.clock import Clock, SystemClock
from obligation_core.services.storage import LiabilityStorageInterface, NotFoundError


logger = structlog.get_logger(__name__)


class LiabilityScheduleService:
    """
    Regenerates persisted installment schedules.
    """

    def __init__(
        self,
        repository: LiabilityStorageInterface,
        engine: Optional[AmortizationEngine] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
        settings: Optional[AmortizationSettings] = None,
        reminder_days: Optional[list[int]] = None,
    ):
        """
        Args:
            repository: Liability and schedule storage
            engine: Amortization math (built from settings if None)
            audit_logger: Audit trail; None disables auditing
            clock: Source of "today"
            settings: Amortization settings (insert batch size)
            reminder_days: Reminder offsets stamped on each row
        """
        self._repository = repository
        self._settings = settings or get_settings().amortization
        self._engine = engine or AmortizationEngine(settings=self._settings)
        self._audit_logger = audit_logger
        self._clock = clock or SystemClock()
        if reminder_days is None:
            reminder_days = get_settings().scheduling.reminder_days_list
        self._reminder_days = list(reminder_days)

    @property
    def engine(self) -> AmortizationEngine:
        return self._engine

    async def _get_liability(self, liability_id: UUID) -> Liability:
        liability = await self._repository.get_liability(liability_id)
        if liability is None:
            raise NotFoundError(f"Liability {liability_id} not found")
        return liability

    def first_due_date(self, liability: Liability, today: Optional[date] = None) -> date:
        """
        Due date of the first installment still to come.

        The liability's next due date when it is today or later; otherwise
        the first date on or after today in the series anchored on it
        (or on the start date when no next due date is recorded).
        """
        today = today or self._clock.today()
        anchor = liability.next_due_date or liability.start_date
        if anchor >= today:
            return anchor
        periods = 1
        while add_periods(anchor, periods, liability.periodical_frequency) < today:
            periods += 1
        return add_periods(anchor, periods, liability.periodical_frequency)

    def _to_row(
        self,
        liability_id: UUID,
        installment: Installment,
        total: int,
    ) -> LiabilitySchedule:
        return LiabilitySchedule(
            liability_id=liability_id,
            due_date=installment.due_date,
            amount=installment.payment,
            reminder_days=list(self._reminder_days),
            metadata={
                "principal_component": str(installment.principal),
                "interest_component": str(installment.interest),
                "payment_number": installment.number,
                "total_payments": total,
                "remaining_balance": str(installment.remaining_balance),
            },
        )

    async def regenerate_schedules(
        self,
        liability_id: UUID,
        balance: Decimal,
        payment: Decimal,
        annual_rate: Decimal,
        start_date: date,
        end_date: Optional[date] = None,
        frequency: Frequency = Frequency.MONTH,
        correlation_id: Optional[UUID] = None,
    ) -> list[LiabilitySchedule]:
        """
        Replace the pending tail of a liability's schedule.

        Args:
            liability_id: Liability to regenerate
            balance: Balance the new tail retires
            payment: Installment amount
            annual_rate: Annual rate (percent)
            start_date: Due date of the first new installment
            end_date: Last allowed due date (the final row retires the rest)
            frequency: Installment frequency
            correlation_id: Ties the audit event to a user action

        Returns:
            The inserted rows, in due-date order

        Raises:
            ValidationError: The parameters don't produce a valid schedule
            NotFoundError: The liability doesn't exist
            StorageError: Repository failure
        """
        installments = self._engine.generate_schedule(
            balance, payment, annual_rate, start_date, end_date, frequency
        )
        rows = [self._to_row(liability_id, inst, len(installments)) for inst in installments]
        await self._get_liability(liability_id)

        deleted = await self._repository.delete_pending_schedules(liability_id)

        batch_size = max(1, self._settings.schedule_insert_batch_size)
        inserted = 0
        for offset in range(0, len(rows), batch_size):
            inserted += await self._repository.insert_schedules(rows[offset:offset + batch_size])

        next_due = rows[0].due_date if rows else None
        await self._repository.update_liability_next_due_date(liability_id, next_due)

        logger.info(
            "schedules_regenerated",
            liability_id=str(liability_id),
            deleted=deleted,
            inserted=inserted,
        )
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.schedules_regenerated(
                liability_id=liability_id,
                deleted_count=deleted,
                created_count=inserted,
                next_due_date=next_due,
                correlation_id=correlation_id,
            ))
        return rows

    async def preview_recalculation(
        self,
        liability_id: UUID,
        changes: LiabilityChanges,
        policy: AdjustmentPolicy,
        as_of: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> RecalculationImpact:
        """
        Impact of editing a stored liability. Writes nothing but the audit event.

        Raises:
            NotFoundError: The liability doesn't exist
            ValidationError: The edit is not allowed
        """
        liability = await self._get_liability(liability_id)
        as_of = as_of or self._clock.today()
        current_end = liability.targeted_payoff_date
        if current_end is None:
            term, _ = self._engine.current_terms(
                liability.current_balance,
                liability.periodical_payment,
                liability.annual_interest_rate,
            )
            if term is not None:
                current_end = self._add_months(as_of, term)

        impact = self._engine.recalculate(
            balance=liability.current_balance,
            annual_rate=liability.annual_interest_rate,
            current_payment=liability.periodical_payment,
            current_end_date=current_end,
            changes=changes,
            policy=policy,
            as_of=as_of,
        )
        if self._audit_logger:
            await self._audit_logger.log(AuditEventBuilder.liability_recalculated(
                liability_id=liability_id,
                policy=policy.value,
                old_payment=str(impact.old_payment),
                new_payment=str(impact.new_payment),
                term_change_months=impact.term_change_months,
                correlation_id=correlation_id,
            ))
        return impact

    async def apply_recalculation(
        self,
        liability_id: UUID,
        impact: RecalculationImpact,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[LiabilitySchedule]:
        """
        Regenerate the pending schedule from an accepted impact.

        Under HOLD_PAYMENT the schedule runs until the balance is retired;
        otherwise it is bounded by the impact's new end date.
        """
        liability = await self._get_liability(liability_id)
        first_due = self.first_due_date(liability, today)
        end_date = None
        if impact.policy != AdjustmentPolicy.HOLD_PAYMENT:
            end_date = impact.new_end_date
        return await self.regenerate_schedules(
            liability_id=liability_id,
            balance=impact.new_balance,
            payment=impact.new_payment,
            annual_rate=impact.new_annual_rate,
            start_date=first_due,
            end_date=end_date,
            frequency=liability.periodical_frequency,
            correlation_id=correlation_id,
        )

    @staticmethod
    def _add_months(start: date, months: int) -> date:
        return add_periods(start, months, Frequency.MONTH)
