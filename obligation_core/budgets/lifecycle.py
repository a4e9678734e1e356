"""
Budget Period Lifecycle

    active -> reflection_ready -> continue | repeat | extend

Flow for a period that has ended:
1. prepare_for_reflection: recompute, build the summary, cache it on the
   budget, flag reflection_ready (the budget stays active)
2. execute_renewal_decision: apply exactly one of continue/repeat/extend

CRITICAL: A closed period keeps the spent/remaining it had when it closed.
Repeat and extend deactivate it and open a NEW budget; nothing recomputes
or rewrites the old record's figures afterwards.

DESIGN DECISION: Recurring budgets renew automatically in
process_ended_periods (a repeat using the budget's own rollover flag).
Non-recurring budgets wait in reflection_ready for the user to decide.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from obligation_core.audit import AuditLogger, create_correlation_id
from obligation_core.budgets import stats
from obligation_core.config import BudgetSettings, get_settings
from obligation_core.errors import ValidationError
from obligation_core.models.audit import AuditEventBuilder
from obligation_core.models.budget import (
    Budget,
    BudgetAlert,
    BudgetPeriodState,
    BudgetPeriodSummary,
    BudgetTransaction,
    ContinueDecision,
    ExtendDecision,
    PeriodRunResult,
    PeriodWindow,
    RecurrencePattern,
    RenewalDecision,
    RenewalOutcome,
    RepeatDecision,
)
from obligation_core.models.recurrence import Frequency, RecurrenceDefinition
from obligation_core.recurrence.clock import RecurrenceClock
from obligation_core.services.clock import Clock, SystemClock
from obligation_core.services.storage import BudgetStorageInterface, NotFoundError


logger = structlog.get_logger(__name__)

FREQUENCY_BY_PATTERN = {
    RecurrencePattern.WEEKLY: Frequency.WEEK,
    RecurrencePattern.MONTHLY: Frequency.MONTH,
    RecurrencePattern.QUARTERLY: Frequency.QUARTER,
    RecurrencePattern.YEARLY: Frequency.YEAR,
    # Custom budgets renew monthly unless the user picks dates
    RecurrencePattern.CUSTOM: Frequency.MONTH,
}

# Metadata keys that describe one period and must not leak into the next
_PERIOD_ONLY_KEYS = ("period_summary",)


class BudgetPeriodLifecycle:
    """
    Keeps budget progress derived and walks periods through renewal.
    """

    def __init__(
        self,
        repository: BudgetStorageInterface,
        recurrence_clock: Optional[RecurrenceClock] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
        settings: Optional[BudgetSettings] = None,
    ):
        self._repository = repository
        self._clock = clock or SystemClock()
        self._recurrence = recurrence_clock or RecurrenceClock(clock=self._clock)
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().budget

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def _get_budget(self, budget_id: UUID) -> Budget:
        budget = await self._repository.get_budget(budget_id)
        if budget is None:
            raise NotFoundError(f"Budget {budget_id} not found")
        return budget

    # =========================================================================
    # Progress
    # =========================================================================

    async def recompute_progress(
        self,
        budget_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Re-derive spent/remaining from the linked transactions and save.

        Raises:
            NotFoundError: The budget doesn't exist
        """
        budget = await self._get_budget(budget_id)
        transactions = await self._repository.list_linked_transactions(budget_id)
        updated = stats.recompute(budget, transactions)
        updated.updated_at = datetime.utcnow()
        await self._repository.update_budget(updated)
        await self._audit(AuditEventBuilder.budget_progress_recomputed(
            budget_id=budget_id,
            spent=str(updated.spent_amount),
            remaining=str(updated.remaining_amount),
            correlation_id=correlation_id,
        ))
        return updated

    async def _find_linked(self, budget_id: UUID, transaction_id: UUID) -> BudgetTransaction:
        for linked in await self._repository.list_linked_transactions(budget_id):
            if linked.transaction_id == transaction_id:
                return linked
        raise NotFoundError(f"Transaction {transaction_id} is not linked to budget {budget_id}")

    async def exclude_transaction(
        self,
        budget_id: UUID,
        transaction_id: UUID,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """Stop counting a transaction toward the budget. Returns the recomputed budget."""
        linked = await self._find_linked(budget_id, transaction_id)
        linked.is_excluded = True
        linked.excluded_reason = reason
        linked.excluded_at = datetime.utcnow()
        await self._repository.update_linked_transaction(linked)
        await self._audit(AuditEventBuilder.transaction_exclusion_changed(
            budget_id=budget_id,
            transaction_id=transaction_id,
            excluded=True,
            reason=reason,
            correlation_id=correlation_id,
        ))
        return await self.recompute_progress(budget_id, correlation_id)

    async def include_transaction(
        self,
        budget_id: UUID,
        transaction_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """Count a previously excluded transaction again."""
        linked = await self._find_linked(budget_id, transaction_id)
        linked.is_excluded = False
        linked.excluded_reason = None
        linked.excluded_at = None
        await self._repository.update_linked_transaction(linked)
        await self._audit(AuditEventBuilder.transaction_exclusion_changed(
            budget_id=budget_id,
            transaction_id=transaction_id,
            excluded=False,
            correlation_id=correlation_id,
        ))
        return await self.recompute_progress(budget_id, correlation_id)

    # =========================================================================
    # Status and alerts
    # =========================================================================

    async def check_alerts(self, budget_id: UUID, today: Optional[date] = None) -> list[BudgetAlert]:
        budget = await self._get_budget(budget_id)
        return stats.check_alerts(
            budget,
            today or self._clock.today(),
            tolerance=self._settings.pace_tolerance,
            default_thresholds=self._settings.alert_thresholds_list,
        )

    async def snooze_alerts(self, budget_id: UUID, until: date) -> Budget:
        budget = await self._get_budget(budget_id)
        budget.alert_settings.snooze_until = until
        budget.updated_at = datetime.utcnow()
        return await self._repository.update_budget(budget)

    def period_status(self, budget: Budget, today: Optional[date] = None) -> BudgetPeriodState:
        return stats.period_status(budget, today or self._clock.today())

    def is_ending_soon(self, budget: Budget, today: Optional[date] = None) -> bool:
        return stats.is_ending_soon(
            budget, today or self._clock.today(), self._settings.ending_soon_days
        )

    # =========================================================================
    # Periods
    # =========================================================================

    @staticmethod
    def recurrence_for(pattern: RecurrencePattern, start_date: date) -> RecurrenceDefinition:
        """Recurrence rule for a budget pattern, anchored on start_date."""
        return RecurrenceDefinition(
            frequency=FREQUENCY_BY_PATTERN[pattern],
            interval=1,
            start_date=start_date,
        )

    @staticmethod
    def next_period_start(budget: Budget) -> date:
        """The next period starts the day after this one ends."""
        return budget.end_date + timedelta(days=1)

    def period_end_for(self, pattern: RecurrencePattern, start_date: date) -> date:
        """Last day of the period of `pattern` starting on start_date."""
        definition = self.recurrence_for(pattern, start_date)
        following = self._recurrence.next_occurrence(definition, start_date)
        return following - timedelta(days=1)

    def generate_budget_periods(
        self,
        budget: Budget,
        count: int,
        today: Optional[date] = None,
    ) -> list[PeriodWindow]:
        """
        The budget's first `count` periods from its start date.

        A non-recurring budget has exactly one period: itself.
        """
        today = today or self._clock.today()
        if not budget.is_recurring:
            return [PeriodWindow(
                start_date=budget.start_date,
                end_date=budget.end_date,
                state=stats.period_status(budget, today),
            )]

        definition = self.recurrence_for(budget.recurrence_pattern, budget.start_date)
        starts = []
        for occurrence in self._recurrence.iter_occurrences(definition):
            starts.append(occurrence)
            if len(starts) > count:
                break

        windows = []
        for start, following in zip(starts, starts[1:]):
            end = following - timedelta(days=1)
            if today < start:
                state = BudgetPeriodState.UPCOMING
            elif today <= end:
                state = BudgetPeriodState.ACTIVE
            else:
                state = BudgetPeriodState.EXPIRED
            windows.append(PeriodWindow(start_date=start, end_date=end, state=state))
        return windows

    # =========================================================================
    # Reflection
    # =========================================================================

    async def prepare_for_reflection(
        self,
        budget_id: UUID,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BudgetPeriodSummary:
        """
        Compute the period summary and flag the budget reflection_ready.

        IMPORTANT: The budget is NOT deactivated. The summary is cached in
        metadata["period_summary"] so it can be shown before a decision.

        Raises:
            NotFoundError: The budget doesn't exist
        """
        today = today or self._clock.today()
        budget = await self.recompute_progress(budget_id, correlation_id)
        transactions = await self._repository.list_linked_transactions(budget_id)
        history = await self._repository.list_budgets(budget.user_id)

        previous_transactions: list[BudgetTransaction] = []
        previous = stats.previous_period(budget, history)
        if previous is not None:
            previous_transactions = await self._repository.list_linked_transactions(previous.id)

        summary = stats.build_summary(
            budget,
            transactions,
            today,
            history=history,
            previous_transactions=previous_transactions,
            tolerance=self._settings.pace_tolerance,
        )

        budget.metadata["period_summary"] = summary.model_dump(mode="json")
        budget.reflection_ready = True
        budget.updated_at = datetime.utcnow()
        await self._repository.update_budget(budget)

        await self._audit(AuditEventBuilder.reflection_prepared(
            budget_id=budget_id,
            percentage_used=summary.percentage_used,
            streak_count=summary.achievements.streak_count,
            correlation_id=correlation_id,
        ))
        return summary

    # =========================================================================
    # Renewal
    # =========================================================================

    async def execute_renewal_decision(
        self,
        decision: RenewalDecision,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
        is_user_action: bool = True,
    ) -> RenewalOutcome:
        """
        Apply one renewal decision to a budget.

        Raises:
            NotFoundError: The budget doesn't exist
            ValidationError: The decision's dates are not usable
        """
        budget = await self._get_budget(decision.budget_id)
        today = today or self._clock.today()

        if isinstance(decision, ContinueDecision):
            return await self._continue(budget, decision, today, correlation_id)

        if isinstance(decision, ExtendDecision):
            budget.recurrence_pattern = decision.recurrence_pattern
            if decision.rollover is not None:
                budget.rollover_enabled = decision.rollover
            return await self._renew(
                budget,
                rollover=budget.rollover_enabled,
                correlation_id=correlation_id,
                extended=True,
                is_user_action=is_user_action,
            )

        return await self._renew(
            budget,
            rollover=budget.rollover_enabled if decision.rollover is None else decision.rollover,
            new_amount=decision.new_amount,
            new_start_date=decision.new_start_date,
            new_end_date=decision.new_end_date,
            correlation_id=correlation_id,
            is_user_action=is_user_action,
        )

    async def _continue(
        self,
        budget: Budget,
        decision: ContinueDecision,
        today: date,
        correlation_id: Optional[UUID],
    ) -> RenewalOutcome:
        if decision.new_end_date <= budget.end_date:
            raise ValidationError(
                f"New end date must be after the current end date ({budget.end_date.isoformat()})",
                field="new_end_date",
            )
        old_end = budget.end_date
        budget.end_date = decision.new_end_date
        budget.reflection_ready = False
        budget.is_active = True
        budget.metadata.pop("period_summary", None)
        if decision.reset_spent:
            # Only transactions linked after this moment count; older ones stay linked
            budget.spent_reset_at = datetime.utcnow()

        transactions = await self._repository.list_linked_transactions(budget.id)
        budget = stats.recompute(budget, transactions)
        budget.updated_at = datetime.utcnow()
        await self._repository.update_budget(budget)

        await self._audit(AuditEventBuilder.budget_continued(
            budget_id=budget.id,
            old_end_date=old_end,
            new_end_date=budget.end_date,
            reset_spent=decision.reset_spent,
            correlation_id=correlation_id,
        ))
        return RenewalOutcome(decision="continue", budget=budget)

    async def _renew(
        self,
        budget: Budget,
        rollover: bool,
        new_amount: Optional[Decimal] = None,
        new_start_date: Optional[date] = None,
        new_end_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
        extended: bool = False,
        is_user_action: bool = True,
    ) -> RenewalOutcome:
        """Close `budget` and open the period after it."""
        start = new_start_date or self.next_period_start(budget)
        if new_end_date is not None:
            end = new_end_date
        elif budget.recurrence_pattern is not None:
            end = self.period_end_for(budget.recurrence_pattern, start)
        else:
            end = start + timedelta(days=budget.duration_days)
        if end < start:
            raise ValidationError("New end date cannot be before the new start date", field="new_end_date")

        rollover_amount = budget.remaining_amount if rollover else Decimal("0")
        amount = (new_amount if new_amount is not None else budget.amount) + rollover_amount

        metadata = {k: v for k, v in budget.metadata.items() if k not in _PERIOD_ONLY_KEYS}
        metadata["renewed_from_budget_id"] = str(budget.id)
        metadata["rollover_amount"] = str(rollover_amount)

        new_budget = Budget(
            user_id=budget.user_id,
            name=budget.name,
            amount=amount,
            currency=budget.currency,
            budget_type=budget.budget_type,
            budget_mode=budget.budget_mode,
            start_date=start,
            end_date=end,
            recurrence_pattern=budget.recurrence_pattern,
            rollover_enabled=budget.rollover_enabled,
            category_id=budget.category_id,
            goal_id=budget.goal_id,
            account_ids=list(budget.account_ids),
            spent_amount=Decimal("0"),
            remaining_amount=amount,
            alert_settings=budget.alert_settings.model_copy(update={"snooze_until": None}),
            metadata=metadata,
        )

        # The closed period keeps its figures as they stand
        budget.is_active = False
        budget.reflection_ready = False
        budget.updated_at = datetime.utcnow()
        await self._repository.update_budget(budget)
        await self._repository.create_budget(new_budget)

        await self._audit(AuditEventBuilder.budget_renewed(
            budget_id=budget.id,
            new_budget_id=new_budget.id,
            rollover_amount=str(rollover_amount),
            recurrence_pattern=budget.recurrence_pattern.value if budget.recurrence_pattern else None,
            extended=extended,
            is_user_action=is_user_action,
            correlation_id=correlation_id,
        ))
        logger.info(
            "budget_renewed",
            budget_id=str(budget.id),
            new_budget_id=str(new_budget.id),
            start_date=start.isoformat(),
            end_date=end.isoformat(),
            rollover_amount=str(rollover_amount),
        )
        return RenewalOutcome(
            decision="extend" if extended else "repeat",
            budget=budget,
            new_budget=new_budget,
            rollover_amount=rollover_amount,
        )

    # =========================================================================
    # Daily job
    # =========================================================================

    async def process_ended_periods(
        self,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> PeriodRunResult:
        """
        Handle every active budget whose period ended before today.

        Recurring budgets are closed and renewed (catching up over any
        periods missed while the job did not run). Others are prepared for
        reflection once. A failing budget is recorded in `errors` and the
        run moves on.
        """
        today = today or self._clock.today()
        correlation_id = correlation_id or create_correlation_id()
        result = PeriodRunResult()

        for budget in await self._repository.list_active_budgets():
            if budget.end_date >= today:
                continue
            try:
                if budget.is_recurring:
                    await self._close_and_renew(budget, today, correlation_id, result)
                elif not budget.reflection_ready:
                    await self.prepare_for_reflection(budget.id, today, correlation_id)
                    result.reflected.append(budget.id)
            except Exception as e:
                result.errors.append(f"Budget {budget.name}: {e}")
                logger.error(
                    "budget_period_processing_failed",
                    budget_id=str(budget.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )

        logger.info(
            "ended_periods_processed",
            run_date=today.isoformat(),
            renewed=len(result.renewed),
            reflected=len(result.reflected),
            errors=len(result.errors),
        )
        return result

    async def _close_and_renew(
        self,
        budget: Budget,
        today: date,
        correlation_id: UUID,
        result: PeriodRunResult,
    ) -> None:
        current = await self.recompute_progress(budget.id, correlation_id)
        while current.end_date < today:
            await self._audit(AuditEventBuilder.budget_period_closed(
                budget_id=current.id,
                spent=str(current.spent_amount),
                remaining=str(current.remaining_amount),
                correlation_id=correlation_id,
            ))
            outcome = await self.execute_renewal_decision(
                RepeatDecision(budget_id=current.id),
                today=today,
                correlation_id=correlation_id,
                is_user_action=False,
            )
            result.renewed.append(outcome.new_budget.id)
            current = await self.recompute_progress(outcome.new_budget.id, correlation_id)
