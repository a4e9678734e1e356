"""
Abstract Storage Interface

DESIGN DECISION: The core never talks to a database directly. It talks to
these interfaces. This allows us to:
1. Back the core with any relational store (or a hosted API)
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally narrow - just the operations the
scheduling core needs.

CRITICAL: The create_* methods for tracking artifacts are CREATE-OR-FETCH.
An implementation must enforce uniqueness of (container_id, cycle_number)
across ALL artifact kinds and, when the key is taken, return the existing
artifact with created=False instead of inserting a second row. This is the
race-safety backstop for concurrent dispatch.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Optional
from uuid import UUID

from obligation_core.models.audit import AuditEvent
from obligation_core.models.budget import Budget, BudgetTransaction
from obligation_core.models.liability import Liability, LiabilitySchedule
from obligation_core.models.obligation import (
    ArtifactKind,
    Bill,
    DirectTransaction,
    RecurringContainer,
    ScheduledPayment,
    TrackingArtifact,
)


class ContainerStorageInterface(ABC):
    """
    Abstract interface for recurring obligation containers.
    """

    @abstractmethod
    async def get_container(self, container_id: UUID) -> Optional[RecurringContainer]:
        """
        Retrieve a container by its ID.

        Returns:
            The container if found, None otherwise
        """
        pass

    @abstractmethod
    async def save_container(self, container: RecurringContainer) -> bool:
        """
        Insert or replace a container.

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def list_auto_create_containers(self) -> list[RecurringContainer]:
        """
        List containers the daily job should look at.

        Returns:
            Active containers with auto_create enabled
        """
        pass


class TrackingStorageInterface(ABC):
    """
    Abstract interface for tracking artifacts (bills, scheduled payments,
    direct transactions).
    """

    @abstractmethod
    async def find_artifact_by_cycle(
        self,
        container_id: UUID,
        cycle_number: int,
        kind: Optional[ArtifactKind] = None,
    ) -> Optional[TrackingArtifact]:
        """
        Look up the artifact for one cycle.

        Args:
            container_id: The container's ID
            cycle_number: 1-based cycle number
            kind: Restrict to one artifact kind; None searches all kinds

        Returns:
            The artifact if one exists, None otherwise
        """
        pass

    @abstractmethod
    async def create_bill(self, bill: Bill) -> tuple[TrackingArtifact, bool]:
        """
        Create-or-fetch a bill for its (container_id, cycle_number).

        Returns:
            (artifact, created) - the existing artifact and False when the
            cycle was already tracked, possibly by a different kind

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def create_scheduled_payment(
        self,
        payment: ScheduledPayment,
    ) -> tuple[TrackingArtifact, bool]:
        """
        Create-or-fetch a scheduled payment for its (container_id, cycle_number).

        Returns:
            (artifact, created)
        """
        pass

    @abstractmethod
    async def create_direct_transaction(
        self,
        transaction: DirectTransaction,
    ) -> tuple[TrackingArtifact, bool]:
        """
        Create-or-fetch a direct transaction for its (container_id, cycle_number).

        Returns:
            (artifact, created)
        """
        pass

    @abstractmethod
    async def list_artifacts_for_container(
        self,
        container_id: UUID,
    ) -> list[TrackingArtifact]:
        """
        List every artifact created for a container.

        Returns:
            Artifacts ordered by cycle number
        """
        pass


class LiabilityStorageInterface(ABC):
    """
    Abstract interface for liabilities and their installment schedules.

    IMPORTANT: Only pending schedules may be deleted.
    """

    @abstractmethod
    async def get_liability(self, liability_id: UUID) -> Optional[Liability]:
        """
        Retrieve a liability by its ID.

        Returns:
            The liability if found, None otherwise
        """
        pass

    @abstractmethod
    async def list_schedules(self, liability_id: UUID) -> list[LiabilitySchedule]:
        """
        List all schedules (any status) for a liability, ordered by due date.
        """
        pass

    @abstractmethod
    async def list_pending_schedules(self, liability_id: UUID) -> list[LiabilitySchedule]:
        """
        List pending schedules for a liability, ordered by due date.
        """
        pass

    @abstractmethod
    async def delete_pending_schedules(self, liability_id: UUID) -> int:
        """
        Delete pending schedules for a liability.

        Completed, cancelled and overdue rows are left untouched.

        Returns:
            Number of rows deleted
        """
        pass

    @abstractmethod
    async def insert_schedules(self, schedules: list[LiabilitySchedule]) -> int:
        """
        Insert a batch of schedules.

        Returns:
            Number of rows inserted

        Raises:
            StorageError: If the batch fails
        """
        pass

    @abstractmethod
    async def update_liability_next_due_date(
        self,
        liability_id: UUID,
        next_due_date: Optional[date],
    ) -> bool:
        """
        Set the liability's next due date.

        Raises:
            NotFoundError: If the liability doesn't exist
        """
        pass


class BudgetStorageInterface(ABC):
    """
    Abstract interface for budgets and their linked transactions.
    """

    @abstractmethod
    async def get_budget(self, budget_id: UUID) -> Optional[Budget]:
        """
        Retrieve a budget by its ID.

        Returns:
            The budget if found, None otherwise
        """
        pass

    @abstractmethod
    async def create_budget(self, budget: Budget) -> Budget:
        """
        Insert a new budget.

        Raises:
            DuplicateError: If a budget with the same ID exists
        """
        pass

    @abstractmethod
    async def update_budget(self, budget: Budget) -> Budget:
        """
        Replace an existing budget.

        Raises:
            NotFoundError: If the budget doesn't exist
        """
        pass

    @abstractmethod
    async def list_budgets(self, user_id: UUID) -> list[Budget]:
        """
        List all budgets (active or not) for a user, ordered by start date.
        """
        pass

    @abstractmethod
    async def list_active_budgets(self) -> list[Budget]:
        """
        List active budgets across all users.
        """
        pass

    @abstractmethod
    async def list_linked_transactions(
        self,
        budget_id: UUID,
        include_excluded: bool = True,
    ) -> list[BudgetTransaction]:
        """
        List transactions linked to a budget.

        Args:
            budget_id: The budget's ID
            include_excluded: Whether excluded rows are returned too
        """
        pass

    @abstractmethod
    async def update_linked_transaction(
        self,
        transaction: BudgetTransaction,
    ) -> BudgetTransaction:
        """
        Replace a linked transaction row.

        Raises:
            NotFoundError: If the row doesn't exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one daily run).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class Repository(
    ContainerStorageInterface,
    TrackingStorageInterface,
    LiabilityStorageInterface,
    BudgetStorageInterface,
):
    """Everything the core reads and writes, behind one object."""
    pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class StorageConnectionError(StorageError):
    """Could not reach the storage backend. Safe to retry idempotent writes."""
    pass
