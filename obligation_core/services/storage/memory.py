"""
In-Memory Storage Implementation

DESIGN DECISION: A complete, dict-backed implementation of the storage
interfaces. It is used by the test-suite and by hosts that embed the core
without a database (previews, what-if calculations).

The tracking index mirrors what a relational backend would do with a
UNIQUE (container_id, cycle_number) constraint: one slot per cycle, shared
by all three artifact kinds, claimed under a lock.

TRADEOFFS:
- Nothing survives the process
- Single event loop only (asyncio.Lock, not a thread lock)
"""

import asyncio
from datetime import date
from typing import Optional
from uuid import UUID

from obligation_core.models.audit import AuditEvent
from obligation_core.models.budget import Budget, BudgetTransaction
from obligation_core.models.liability import Liability, LiabilitySchedule, ScheduleStatus
from obligation_core.models.obligation import (
    ArtifactKind,
    Bill,
    ContainerStatus,
    DirectTransaction,
    RecurringContainer,
    ScheduledPayment,
    TrackingArtifact,
)
from obligation_core.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    Repository,
)


class InMemoryRepository(Repository):
    """
    Dict-backed repository.

    Records are copied on the way in and on the way out, so callers can
    never mutate stored state by accident.
    """

    def __init__(self):
        self._containers: dict[UUID, RecurringContainer] = {}
        self._artifacts: dict[tuple[UUID, int], TrackingArtifact] = {}
        self._liabilities: dict[UUID, Liability] = {}
        self._schedules: dict[UUID, LiabilitySchedule] = {}
        self._budgets: dict[UUID, Budget] = {}
        self._budget_transactions: dict[UUID, BudgetTransaction] = {}
        self._tracking_lock = asyncio.Lock()

    # =========================================================================
    # Seeding helpers (not part of the interface)
    # =========================================================================

    def add_liability(self, liability: Liability) -> None:
        self._liabilities[liability.id] = liability.model_copy(deep=True)

    def add_schedules(self, schedules: list[LiabilitySchedule]) -> None:
        for schedule in schedules:
            self._schedules[schedule.id] = schedule.model_copy(deep=True)

    def add_budget_transaction(self, transaction: BudgetTransaction) -> None:
        self._budget_transactions[transaction.id] = transaction.model_copy(deep=True)

    @property
    def artifact_count(self) -> int:
        return len(self._artifacts)

    # =========================================================================
    # Containers
    # =========================================================================

    async def get_container(self, container_id: UUID) -> Optional[RecurringContainer]:
        container = self._containers.get(container_id)
        return container.model_copy(deep=True) if container else None

    async def save_container(self, container: RecurringContainer) -> bool:
        self._containers[container.id] = container.model_copy(deep=True)
        return True

    async def list_auto_create_containers(self) -> list[RecurringContainer]:
        return [
            c.model_copy(deep=True)
            for c in self._containers.values()
            if c.status == ContainerStatus.ACTIVE and c.auto_create
        ]

    # =========================================================================
    # Tracking artifacts
    # =========================================================================

    async def find_artifact_by_cycle(
        self,
        container_id: UUID,
        cycle_number: int,
        kind: Optional[ArtifactKind] = None,
    ) -> Optional[TrackingArtifact]:
        artifact = self._artifacts.get((container_id, cycle_number))
        if artifact is None:
            return None
        if kind is not None and artifact.kind != kind:
            return None
        return artifact.model_copy(deep=True)

    async def _create_or_fetch(
        self,
        artifact: TrackingArtifact,
    ) -> tuple[TrackingArtifact, bool]:
        key = (artifact.container_id, artifact.cycle_number)
        async with self._tracking_lock:
            existing = self._artifacts.get(key)
            if existing is not None:
                return existing.model_copy(deep=True), False
            self._artifacts[key] = artifact.model_copy(deep=True)
            return artifact, True

    async def create_bill(self, bill: Bill) -> tuple[TrackingArtifact, bool]:
        return await self._create_or_fetch(bill)

    async def create_scheduled_payment(
        self,
        payment: ScheduledPayment,
    ) -> tuple[TrackingArtifact, bool]:
        return await self._create_or_fetch(payment)

    async def create_direct_transaction(
        self,
        transaction: DirectTransaction,
    ) -> tuple[TrackingArtifact, bool]:
        return await self._create_or_fetch(transaction)

    async def list_artifacts_for_container(
        self,
        container_id: UUID,
    ) -> list[TrackingArtifact]:
        found = [
            a.model_copy(deep=True)
            for (cid, _), a in self._artifacts.items()
            if cid == container_id
        ]
        return sorted(found, key=lambda a: a.cycle_number)

    # =========================================================================
    # Liabilities
    # =========================================================================

    async def get_liability(self, liability_id: UUID) -> Optional[Liability]:
        liability = self._liabilities.get(liability_id)
        return liability.model_copy(deep=True) if liability else None

    async def list_schedules(self, liability_id: UUID) -> list[LiabilitySchedule]:
        rows = [
            s.model_copy(deep=True)
            for s in self._schedules.values()
            if s.liability_id == liability_id
        ]
        return sorted(rows, key=lambda s: s.due_date)

    async def list_pending_schedules(self, liability_id: UUID) -> list[LiabilitySchedule]:
        return [s for s in await self.list_schedules(liability_id) if s.is_pending]

    async def delete_pending_schedules(self, liability_id: UUID) -> int:
        doomed = [
            schedule_id
            for schedule_id, s in self._schedules.items()
            if s.liability_id == liability_id and s.status == ScheduleStatus.PENDING
        ]
        for schedule_id in doomed:
            del self._schedules[schedule_id]
        return len(doomed)

    async def insert_schedules(self, schedules: list[LiabilitySchedule]) -> int:
        for schedule in schedules:
            if schedule.id in self._schedules:
                raise DuplicateError(f"Schedule {schedule.id} already exists")
        for schedule in schedules:
            self._schedules[schedule.id] = schedule.model_copy(deep=True)
        return len(schedules)

    async def update_liability_next_due_date(
        self,
        liability_id: UUID,
        next_due_date: Optional[date],
    ) -> bool:
        liability = self._liabilities.get(liability_id)
        if liability is None:
            raise NotFoundError(f"Liability {liability_id} not found")
        self._liabilities[liability_id] = liability.model_copy(
            update={"next_due_date": next_due_date}
        )
        return True

    # =========================================================================
    # Budgets
    # =========================================================================

    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        return budget.model_copy(deep=True) if budget else None

    async def create_budget(self, budget: Budget) -> Budget:
        if budget.id in self._budgets:
            raise DuplicateError(f"Budget {budget.id} already exists")
        self._budgets[budget.id] = budget.model_copy(deep=True)
        return budget

    async def update_budget(self, budget: Budget) -> Budget:
        if budget.id not in self._budgets:
            raise NotFoundError(f"Budget {budget.id} not found")
        self._budgets[budget.id] = budget.model_copy(deep=True)
        return budget

    async def list_budgets(self, user_id: UUID) -> list[Budget]:
        found = [
            b.model_copy(deep=True)
            for b in self._budgets.values()
            if b.user_id == user_id
        ]
        return sorted(found, key=lambda b: b.start_date)

    async def list_active_budgets(self) -> list[Budget]:
        return [b.model_copy(deep=True) for b in self._budgets.values() if b.is_active]

    async def list_linked_transactions(
        self,
        budget_id: UUID,
        include_excluded: bool = True,
    ) -> list[BudgetTransaction]:
        rows = [
            t.model_copy(deep=True)
            for t in self._budget_transactions.values()
            if t.budget_id == budget_id and (include_excluded or not t.is_excluded)
        ]
        return sorted(rows, key=lambda t: t.occurred_on)

    async def update_linked_transaction(
        self,
        transaction: BudgetTransaction,
    ) -> BudgetTransaction:
        if transaction.id not in self._budget_transactions:
            raise NotFoundError(f"Budget transaction {transaction.id} not found")
        self._budget_transactions[transaction.id] = transaction.model_copy(deep=True)
        return transaction


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of audit events."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
