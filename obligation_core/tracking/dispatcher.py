"""
Payment Tracking Dispatcher

Guarantees exactly one tracking artifact per (container, cycle), whatever
the configured strategy and however many times dispatch runs.

Per cycle the state machine is one-way:

    none -> bill | scheduled_transaction | direct | manual (no-op)

ensure_tracking:
1. VALIDATE - fund type, category id, linked account (fail fast, write nothing)
2. LOOK UP  - any artifact kind for (container_id, cycle_number)
3. CREATE   - through the container's strategy, create-or-fetch in storage

CRITICAL: Step 2 searches ALL artifact kinds. If a cycle was tracked as a
bill before the container switched to scheduled payments, the bill is
returned. Strategy changes apply to future cycles only.

DESIGN DECISION: Two layers keep "at most one artifact per cycle" true
under concurrency:
- an asyncio lock per container serializes dispatch inside this process
- the repository's create-or-fetch is the cross-process backstop
"""

import asyncio
import weakref
from datetime import date, timedelta
from typing import Optional
from uuid import UUID

import structlog

from obligation_core.audit import AuditLogger, create_correlation_id
from obligation_core.config import AppSettings, get_settings
from obligation_core.models.audit import AuditEventBuilder
from obligation_core.models.obligation import (
    ArtifactKind,
    BatchResult,
    Cycle,
    CycleTracking,
    RecurringContainer,
    TrackingArtifact,
    TrackingMethod,
    TrackingResult,
    manual_marker,
)
from obligation_core.recurrence.cycles import CycleGenerator, match_cycles_to_artifacts
from obligation_core.services.clock import Clock, SystemClock
from obligation_core.services.storage import Repository
from obligation_core.tracking.strategies import TrackingStrategy, strategy_for
from obligation_core.validation import TrackingValidator


logger = structlog.get_logger(__name__)

METHOD_BY_KIND = {
    ArtifactKind.BILL: TrackingMethod.BILL,
    ArtifactKind.SCHEDULED_PAYMENT: TrackingMethod.SCHEDULED_TRANSACTION,
    ArtifactKind.DIRECT_TRANSACTION: TrackingMethod.DIRECT,
}


class PaymentTrackingDispatcher:
    """
    Materializes tracking artifacts for container cycles.
    """

    def __init__(
        self,
        repository: Repository,
        cycle_generator: Optional[CycleGenerator] = None,
        validator: Optional[TrackingValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        clock: Optional[Clock] = None,
        settings: Optional[AppSettings] = None,
    ):
        """
        Args:
            repository: Where containers and artifacts live
            cycle_generator: Builds cycles for process_due_today
            validator: Precondition checks
            audit_logger: Audit trail; None disables auditing
            clock: Source of "today" for the daily job
            settings: App settings (storage retry attempts)
        """
        self._repository = repository
        self._cycles = cycle_generator or CycleGenerator()
        self._validator = validator or TrackingValidator()
        self._audit_logger = audit_logger
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings().app
        # A lock lives only while a dispatch holds or awaits it
        self._locks: weakref.WeakValueDictionary[UUID, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, container_id: UUID) -> asyncio.Lock:
        lock = self._locks.get(container_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[container_id] = lock
        return lock

    @staticmethod
    def strategy_for(container: RecurringContainer) -> TrackingStrategy:
        return strategy_for(container.payment_tracking_method)

    async def _audit(self, event) -> None:
        if self._audit_logger:
            await self._audit_logger.log(event)

    async def ensure_tracking(
        self,
        container: RecurringContainer,
        cycle: Cycle,
        correlation_id: Optional[UUID] = None,
    ) -> TrackingResult:
        """
        Make sure the cycle is tracked exactly once.

        Returns:
            TrackingResult with the artifact (existing or new), or the
            "cycle-{n}" marker when nothing is persisted (manual tracking,
            inactive container)

        Raises:
            ValidationError: Bad fund type or category id
            ConfigurationError: Strategy needs a linked account and there is none
            StorageError: Repository failure
        """
        strategy = self.strategy_for(container)

        # Paused and ended containers are never tracked, so they need no account
        fund_type = self._validator.validate(
            container,
            requires_account=strategy.requires_account and container.is_active,
            artifact_name=strategy.artifact_name,
        )

        if not container.is_active:
            await self._audit(AuditEventBuilder.tracking_skipped(
                container_id=container.id,
                cycle_number=cycle.cycle_number,
                reason=f"container is {container.status.value}",
                correlation_id=correlation_id,
            ))
            return TrackingResult(
                artifact_id=manual_marker(cycle.cycle_number),
                method=TrackingMethod.MANUAL,
            )

        async with self._lock_for(container.id):
            existing = await self._repository.find_artifact_by_cycle(
                container.id, cycle.cycle_number
            )
            if existing is not None:
                await self._audit(AuditEventBuilder.tracking_reused(
                    container_id=container.id,
                    cycle_number=cycle.cycle_number,
                    kind=existing.kind.value,
                    artifact_id=str(existing.id),
                    correlation_id=correlation_id,
                ))
                return TrackingResult(
                    artifact_id=str(existing.id),
                    method=METHOD_BY_KIND[existing.kind],
                    created=False,
                    artifact=existing,
                )

            result = await strategy.materialize(
                self._repository,
                container,
                cycle,
                fund_type,
                attempts=self._settings.storage_retry_attempts,
            )

        if result.created:
            await self._audit(AuditEventBuilder.tracking_created(
                container_id=container.id,
                cycle_number=cycle.cycle_number,
                method=result.method.value,
                artifact_id=result.artifact_id,
                correlation_id=correlation_id,
            ))
        elif not result.is_persisted:
            await self._audit(AuditEventBuilder.tracking_skipped(
                container_id=container.id,
                cycle_number=cycle.cycle_number,
                reason="manual tracking",
                correlation_id=correlation_id,
            ))
        return result

    async def get_tracking_for_cycle(
        self,
        container_id: UUID,
        cycle_number: int,
    ) -> Optional[TrackingArtifact]:
        """The artifact tracking one cycle, of whatever kind, if any."""
        return await self._repository.find_artifact_by_cycle(container_id, cycle_number)

    async def list_cycle_tracking(
        self,
        container: RecurringContainer,
        until: Optional[date] = None,
    ) -> list[CycleTracking]:
        """Every cycle of a container next to its artifact (or None)."""
        cycles = self._cycles.generate_cycles(container, until=until)
        artifacts = await self._repository.list_artifacts_for_container(container.id)
        return match_cycles_to_artifacts(cycles, artifacts)

    async def process_due_today(
        self,
        today: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> BatchResult:
        """
        The daily materialization job.

        For every active, auto-creating container: generate cycles, keep
        those inside the lead time, and ensure tracking for each.

        IMPORTANT: A failing container is recorded in `errors` and the run
        moves on. This method does not raise for per-container failures;
        call raise_for_errors() on the result if you want an exception.
        Safe to run any number of times per day.
        """
        today = today or self._clock.today()
        correlation_id = correlation_id or create_correlation_id()
        result = BatchResult()

        containers = await self._repository.list_auto_create_containers()
        for container in containers:
            if not (container.is_active and container.auto_create):
                continue
            result.processed += 1
            try:
                lead_days = self._cycles.lead_days_for(container)
                cycles = self._cycles.generate_cycles(
                    container, until=today + timedelta(days=lead_days)
                )
                due = self._cycles.cycles_needing_tracking_today(
                    container, cycles, today, lead_days
                )
                for cycle in due:
                    tracked = await self.ensure_tracking(container, cycle, correlation_id)
                    if tracked.created:
                        result.created += 1
                    elif tracked.is_persisted:
                        result.reused += 1
            except Exception as e:
                result.errors.append(f"Container {container.title}: {e}")
                logger.error(
                    "container_materialization_failed",
                    container_id=str(container.id),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._audit(AuditEventBuilder.batch_container_failed(
                    container_id=container.id,
                    title=container.title,
                    error_message=str(e),
                    correlation_id=correlation_id,
                ))

        logger.info(
            "daily_materialization_completed",
            run_date=today.isoformat(),
            processed=result.processed,
            created=result.created,
            reused=result.reused,
            errors=len(result.errors),
        )
        if self._audit_logger:
            await self._audit_logger.log_batch_completed(
                run_date=today,
                processed=result.processed,
                created=result.created,
                error_count=len(result.errors),
                correlation_id=correlation_id,
            )
        return result
