"""
Audit Models

Every side effect the core performs (creating tracking, regenerating a
schedule, renewing a budget) leaves an audit event behind, as do the
unattended batch runs.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Payment tracking
    TRACKING_CREATED = "tracking_created"
    TRACKING_REUSED = "tracking_reused"
    TRACKING_SKIPPED = "tracking_skipped"

    # Daily materialization
    BATCH_COMPLETED = "batch_completed"
    BATCH_CONTAINER_FAILED = "batch_container_failed"

    # Liabilities
    LIABILITY_RECALCULATED = "liability_recalculated"
    SCHEDULES_REGENERATED = "schedules_regenerated"

    # Budgets
    BUDGET_PROGRESS_RECOMPUTED = "budget_progress_recomputed"
    TRANSACTION_EXCLUDED = "transaction_excluded"
    TRANSACTION_INCLUDED = "transaction_included"
    REFLECTION_PREPARED = "reflection_prepared"
    BUDGET_CONTINUED = "budget_continued"
    BUDGET_REPEATED = "budget_repeated"
    BUDGET_EXTENDED = "budget_extended"
    BUDGET_PERIOD_CLOSED = "budget_period_closed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'container', 'liability', 'budget')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one batch run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.tracking_created(container_id, 3, "bill", artifact_id)
        event = AuditEventBuilder.budget_renewed(old_id, new_id, "1500.00")
    """

    @staticmethod
    def tracking_created(
        container_id: UUID,
        cycle_number: int,
        method: str,
        artifact_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRACKING_CREATED,
            entity_type="container",
            entity_id=container_id,
            correlation_id=correlation_id,
            description=f"Created {method} for cycle {cycle_number}",
            details={
                "cycle_number": cycle_number,
                "method": method,
                "artifact_id": artifact_id,
            },
        )

    @staticmethod
    def tracking_reused(
        container_id: UUID,
        cycle_number: int,
        kind: str,
        artifact_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRACKING_REUSED,
            severity=AuditSeverity.DEBUG,
            entity_type="container",
            entity_id=container_id,
            correlation_id=correlation_id,
            description=f"Cycle {cycle_number} already tracked by {kind}",
            details={
                "cycle_number": cycle_number,
                "kind": kind,
                "artifact_id": artifact_id,
            },
        )

    @staticmethod
    def tracking_skipped(
        container_id: UUID,
        cycle_number: int,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRACKING_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="container",
            entity_id=container_id,
            correlation_id=correlation_id,
            description=f"No artifact for cycle {cycle_number}: {reason}",
            details={
                "cycle_number": cycle_number,
                "reason": reason,
            },
        )

    @staticmethod
    def batch_completed(
        run_date: date,
        processed: int,
        created: int,
        error_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_COMPLETED,
            severity=AuditSeverity.WARNING if error_count else AuditSeverity.INFO,
            entity_type="batch",
            correlation_id=correlation_id,
            description=(
                f"Daily run for {run_date.isoformat()}: {processed} containers, "
                f"{created} created, {error_count} failed"
            ),
            details={
                "run_date": run_date.isoformat(),
                "processed": processed,
                "created": created,
                "error_count": error_count,
            },
        )

    @staticmethod
    def batch_container_failed(
        container_id: UUID,
        title: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BATCH_CONTAINER_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="container",
            entity_id=container_id,
            correlation_id=correlation_id,
            description=f"Daily run failed for container: {title}",
            error_message=error_message,
        )

    @staticmethod
    def liability_recalculated(
        liability_id: UUID,
        policy: str,
        old_payment: str,
        new_payment: str,
        term_change_months: Optional[int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LIABILITY_RECALCULATED,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description=f"Recalculated with {policy}: payment {old_payment} -> {new_payment}",
            details={
                "policy": policy,
                "old_payment": old_payment,
                "new_payment": new_payment,
                "term_change_months": term_change_months,
            },
            is_user_action=True,
        )

    @staticmethod
    def schedules_regenerated(
        liability_id: UUID,
        deleted_count: int,
        created_count: int,
        next_due_date: Optional[date],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEDULES_REGENERATED,
            entity_type="liability",
            entity_id=liability_id,
            correlation_id=correlation_id,
            description=f"Replaced {deleted_count} pending installments with {created_count}",
            details={
                "deleted_count": deleted_count,
                "created_count": created_count,
                "next_due_date": next_due_date.isoformat() if next_due_date else None,
            },
        )

    @staticmethod
    def budget_progress_recomputed(
        budget_id: UUID,
        spent: str,
        remaining: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_PROGRESS_RECOMPUTED,
            severity=AuditSeverity.DEBUG,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget progress: spent {spent}, remaining {remaining}",
            details={"spent": spent, "remaining": remaining},
        )

    @staticmethod
    def transaction_exclusion_changed(
        budget_id: UUID,
        transaction_id: UUID,
        excluded: bool,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.TRANSACTION_EXCLUDED
            if excluded
            else AuditEventType.TRANSACTION_INCLUDED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Transaction {'excluded from' if excluded else 'included in'} budget",
            details={
                "transaction_id": str(transaction_id),
                "reason": reason,
            },
            is_user_action=True,
        )

    @staticmethod
    def reflection_prepared(
        budget_id: UUID,
        percentage_used: float,
        streak_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFLECTION_PREPARED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Period summary ready: {percentage_used:.0f}% used",
            details={
                "percentage_used": percentage_used,
                "streak_count": streak_count,
            },
        )

    @staticmethod
    def budget_continued(
        budget_id: UUID,
        old_end_date: date,
        new_end_date: date,
        reset_spent: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CONTINUED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget continued until {new_end_date.isoformat()}",
            details={
                "old_end_date": old_end_date.isoformat(),
                "new_end_date": new_end_date.isoformat(),
                "reset_spent": reset_spent,
            },
            is_user_action=True,
        )

    @staticmethod
    def budget_renewed(
        budget_id: UUID,
        new_budget_id: UUID,
        rollover_amount: str,
        recurrence_pattern: Optional[str] = None,
        extended: bool = False,
        is_user_action: bool = True,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.BUDGET_EXTENDED
            if extended
            else AuditEventType.BUDGET_REPEATED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description=f"Budget renewed into {new_budget_id}",
            details={
                "new_budget_id": str(new_budget_id),
                "rollover_amount": rollover_amount,
                "recurrence_pattern": recurrence_pattern,
            },
            is_user_action=is_user_action,
        )

    @staticmethod
    def budget_period_closed(
        budget_id: UUID,
        spent: str,
        remaining: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_PERIOD_CLOSED,
            entity_type="budget",
            entity_id=budget_id,
            correlation_id=correlation_id,
            description="Budget period closed",
            details={"final_spent": spent, "final_remaining": remaining},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
