"""
Recurring Obligation Models

A container is the user's template ("Rent, monthly, 25000 from HDFC").
Cycles are computed from it. Tracking artifacts are what actually gets
persisted, one per cycle at most.

CRITICAL: The pair (container_id, cycle_number) is the idempotency key for
every artifact kind. Nothing else identifies "the same cycle".

DESIGN DECISION: fund_type and category_id are stored as plain strings on
the container. They are checked at dispatch time, so a badly configured
container can still be loaded, listed and fixed.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from obligation_core.models.recurrence import RecurrenceDefinition
from obligation_core.errors import BatchPartialFailure


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Direction(str, Enum):
    """Money in or money out."""
    INCOME = "income"
    EXPENSE = "expense"


class AmountMode(str, Enum):
    """
    How the per-cycle amount is known.

    VARIABLE containers carry an estimate that individual cycles may override.
    """
    FIXED = "fixed"
    VARIABLE = "variable"


class ContainerStatus(str, Enum):
    """Lifecycle of a container. Only ACTIVE containers ever materialize tracking."""
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class TrackingMethod(str, Enum):
    """How a cycle's payment obligation is represented."""
    BILL = "bill"
    SCHEDULED_TRANSACTION = "scheduled_transaction"
    DIRECT = "direct"
    MANUAL = "manual"


class FundType(str, Enum):
    """Where the money for a payment comes from."""
    PERSONAL = "personal"
    BORROWED = "borrowed"
    LIABILITY = "liability"
    GOAL = "goal"


class ArtifactKind(str, Enum):
    """Persisted artifact kinds. MANUAL tracking has no kind - it persists nothing."""
    BILL = "bill"
    SCHEDULED_PAYMENT = "scheduled_payment"
    DIRECT_TRANSACTION = "direct_transaction"


# =============================================================================
# CONTAINER AND CYCLES
# =============================================================================

class CycleOverride(BaseModel):
    """
    Manual replacement for one cycle's expected values.

    Overrides replace amount and/or date. They NEVER renumber cycles.
    """
    expected_date: Optional[date] = None
    expected_amount: Optional[Decimal] = Field(default=None, ge=0)
    minimum_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = Field(default=None, max_length=500)


class RecurringContainer(BaseModel):
    """
    A user-level recurring obligation template.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    title: str = Field(..., min_length=1, max_length=200)
    direction: Direction = Direction.EXPENSE
    amount_mode: AmountMode = AmountMode.FIXED
    amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Fixed per-cycle amount"
    )
    estimated_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Estimate used when the amount varies"
    )
    currency: str = Field(default="INR", min_length=3, max_length=3)
    recurrence: RecurrenceDefinition
    linked_account_id: Optional[UUID] = Field(
        default=None,
        description="Account that pays (or receives) each cycle"
    )
    category_id: Optional[str] = Field(
        default=None,
        description="Category identifier, validated when tracking is created"
    )
    fund_type: str = Field(
        default=FundType.PERSONAL.value,
        description="Fund source, validated when tracking is created"
    )
    specific_fund_id: Optional[UUID] = None
    payment_tracking_method: TrackingMethod = TrackingMethod.SCHEDULED_TRANSACTION
    status: ContainerStatus = ContainerStatus.ACTIVE
    auto_create: bool = Field(
        default=True,
        description="Whether the daily job materializes tracking for this container"
    )
    auto_create_days_before: Optional[int] = Field(
        default=None,
        ge=0,
        description="Lead time in days before a cycle's expected date; None uses the configured default"
    )
    reminder_days: list[int] = Field(default_factory=lambda: [1, 3, 7])
    cycle_overrides: dict[int, CycleOverride] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def start_date(self) -> date:
        return self.recurrence.start_date

    @property
    def end_date(self) -> Optional[date]:
        return self.recurrence.end_date

    @property
    def is_active(self) -> bool:
        return self.status == ContainerStatus.ACTIVE

    @property
    def default_amount(self) -> Decimal:
        """Fixed amount, else the estimate, else zero."""
        if self.amount:
            return self.amount
        if self.estimated_amount:
            return self.estimated_amount
        return Decimal("0")


class Cycle(BaseModel):
    """
    One numbered occurrence of a container.

    Computed, never stored. cycle_number is 1-based and dense.
    """
    container_id: UUID
    cycle_number: int = Field(..., ge=1)
    start_date: date = Field(..., description="Start of the covering period")
    end_date: date = Field(..., description="End of the covering period")
    expected_date: date
    expected_amount: Decimal = Field(..., ge=0)
    minimum_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    is_overridden: bool = False


# =============================================================================
# TRACKING ARTIFACTS
# =============================================================================

class ArtifactBase(BaseModel):
    """Fields every tracking artifact carries."""
    id: UUID = Field(default_factory=uuid4)
    container_id: UUID
    cycle_number: int = Field(..., ge=1)
    title: str
    description: Optional[str] = None
    amount: Decimal
    currency: str = "INR"
    due_date: date
    linked_account_id: Optional[UUID] = None
    category_id: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)


class Bill(ArtifactBase):
    """A bill raised for one cycle."""
    kind: Literal[ArtifactKind.BILL] = ArtifactKind.BILL
    bill_type: str = Field(..., description="recurring_fixed or recurring_variable")
    status: str = "upcoming"
    recurrence_pattern: str
    recurrence_interval: int = 1


class ScheduledPayment(ArtifactBase):
    """A scheduled payment (or scheduled receipt) for one cycle."""
    kind: Literal[ArtifactKind.SCHEDULED_PAYMENT] = ArtifactKind.SCHEDULED_PAYMENT
    direction: Direction
    fund_type: FundType
    specific_fund_id: Optional[UUID] = None
    status: str = "scheduled"


class DirectTransaction(ArtifactBase):
    """
    A transaction posted directly for one cycle.

    amount is SIGNED: negative for expenses.
    """
    kind: Literal[ArtifactKind.DIRECT_TRANSACTION] = ArtifactKind.DIRECT_TRANSACTION
    direction: Direction
    fund_type: FundType
    auto_created: bool = True
    status: str = "completed"


TrackingArtifact = Annotated[
    Union[Bill, ScheduledPayment, DirectTransaction],
    Field(discriminator="kind"),
]


class TrackingResult(BaseModel):
    """
    Outcome of ensure_tracking for one cycle.

    IMPORTANT: For manual tracking (and inactive containers) artifact is None
    and artifact_id is the synthetic marker "cycle-{n}". That means
    "nothing was created", not an error.
    """
    artifact_id: str
    method: TrackingMethod
    created: bool = False
    artifact: Optional[TrackingArtifact] = None

    @property
    def is_persisted(self) -> bool:
        return self.artifact is not None


class CycleTracking(BaseModel):
    """A cycle paired with its artifact, if one exists."""
    cycle: Cycle
    artifact: Optional[TrackingArtifact] = None

    @property
    def has_artifact(self) -> bool:
        return self.artifact is not None


class BatchResult(BaseModel):
    """Summary of one daily materialization run."""
    processed: int = 0
    created: int = 0
    reused: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0

    def raise_for_errors(self) -> None:
        """Raise BatchPartialFailure if any container failed."""
        if self.errors:
            raise BatchPartialFailure(self.errors)


def manual_marker(cycle_number: int) -> str:
    """Synthetic id returned when no artifact is persisted."""
    return f"cycle-{cycle_number}"
