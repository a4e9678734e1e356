"""
Budget Period Models

CRITICAL: spent_amount and remaining_amount are DERIVED values.
They are recomputed from linked transactions on every touch and are never
edited by hand or incremented.

    remaining_amount = max(0, amount - spent_amount)
    spent_amount     = sum(amount_counted for non-excluded linked transactions)

DESIGN DECISION: Renewal decisions are a tagged union (continue / repeat /
extend). The lifecycle dispatches on the type once; nothing else branches
on a decision string.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class BudgetType(str, Enum):
    """Kind of budget, used to find earlier periods of the same kind."""
    MONTHLY = "monthly"
    CATEGORY = "category"
    GOAL_BASED = "goal_based"
    SMART = "smart"


class BudgetMode(str, Enum):
    """
    What amount means.

    SPEND_CAP: stay at or below amount.
    SAVE_TARGET: reach amount.
    """
    SPEND_CAP = "spend_cap"
    SAVE_TARGET = "save_target"


class RecurrencePattern(str, Enum):
    """How a recurring budget renews itself."""
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class BudgetPeriodState(str, Enum):
    """Where a budget period is relative to today."""
    UPCOMING = "upcoming"
    ACTIVE = "active"
    REFLECTION_READY = "reflection_ready"
    EXPIRED = "expired"


class AlertKind(str, Enum):
    THRESHOLD = "threshold"
    DAILY_PACE = "daily_pace"


# =============================================================================
# BUDGET AND TRANSACTIONS
# =============================================================================

class AlertSettings(BaseModel):
    """Per-budget alert preferences."""
    thresholds: list[int] = Field(default_factory=lambda: [50, 80, 100])
    snooze_until: Optional[date] = None
    daily_pace_enabled: bool = True


class Budget(BaseModel):
    """
    One budget period.

    A recurring budget is a chain of these, each renewed from the last.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., ge=0)
    currency: str = "INR"
    budget_type: BudgetType = BudgetType.MONTHLY
    budget_mode: BudgetMode = BudgetMode.SPEND_CAP
    start_date: date
    end_date: date
    recurrence_pattern: Optional[RecurrencePattern] = None
    rollover_enabled: bool = False
    category_id: Optional[str] = None
    goal_id: Optional[UUID] = None
    account_ids: list[UUID] = Field(default_factory=list)
    is_active: bool = True
    reflection_ready: bool = False
    spent_reset_at: Optional[datetime] = Field(
        default=None,
        description="Transactions linked at or before this moment are not counted (set by a continue-with-reset)"
    )
    spent_amount: Decimal = Decimal("0")
    remaining_amount: Decimal = Decimal("0")
    alert_settings: AlertSettings = Field(default_factory=AlertSettings)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @model_validator(mode='after')
    def validate_dates(self) -> 'Budget':
        if self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def is_recurring(self) -> bool:
        return self.recurrence_pattern is not None


class BudgetTransaction(BaseModel):
    """A transaction linked to a budget, with how much of it counts."""
    id: UUID = Field(default_factory=uuid4)
    budget_id: UUID
    transaction_id: UUID
    amount_counted: Decimal
    occurred_on: date
    linked_at: datetime = Field(default_factory=datetime.utcnow)
    category_id: Optional[str] = None
    category_name: Optional[str] = None
    is_excluded: bool = False
    excluded_reason: Optional[str] = None
    excluded_at: Optional[datetime] = None


class BudgetAlert(BaseModel):
    """An alert condition that currently holds."""
    kind: AlertKind
    threshold: Optional[int] = None
    percentage_used: float
    message: str


# =============================================================================
# PERIOD SUMMARY (computed, never stored as a row)
# =============================================================================

class CategorySpend(BaseModel):
    category_id: Optional[str] = None
    category_name: str = "Uncategorized"
    amount: Decimal
    transaction_count: int
    percentage: float


class DailyPace(BaseModel):
    """Ideal vs actual daily spend."""
    total_days: int
    days_elapsed: int
    days_remaining: int
    ideal_daily_spend: Decimal
    current_daily_average: Decimal
    on_track: bool


class CategoryChange(BaseModel):
    category_name: str
    previous_amount: Decimal
    current_amount: Decimal
    change_percentage: Optional[float] = None


class PeriodComparison(BaseModel):
    """This period against the previous period of the same kind."""
    previous_budget_id: UUID
    previous_spent: Decimal
    total_change_percentage: Optional[float] = None
    category_changes: list[CategoryChange] = Field(default_factory=list)


class Achievements(BaseModel):
    streak_count: int = 0
    achieved_goal: bool = False
    improvement_percentage: Optional[float] = None


class BudgetPeriodSummary(BaseModel):
    """Reflection report over a closed or nearly closed period."""
    budget_id: UUID
    period_start: date
    period_end: date
    amount: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal
    percentage_used: float
    transaction_count: int
    category_breakdown: list[CategorySpend] = Field(default_factory=list)
    daily_pace: DailyPace
    previous_period_comparison: Optional[PeriodComparison] = None
    achievements: Achievements = Field(default_factory=Achievements)
    consistency_score: float = Field(..., ge=0.0, le=1.0)
    generated_at: datetime = Field(default_factory=datetime.utcnow)


# =============================================================================
# RENEWAL DECISIONS
# =============================================================================

class ContinueDecision(BaseModel):
    """Keep the same budget running to a later end date."""
    decision: Literal["continue"] = "continue"
    budget_id: UUID
    new_end_date: date
    reset_spent: bool = False


class RepeatDecision(BaseModel):
    """Close this budget and open the next period."""
    decision: Literal["repeat"] = "repeat"
    budget_id: UUID
    new_amount: Optional[Decimal] = Field(default=None, ge=0)
    new_start_date: Optional[date] = None
    new_end_date: Optional[date] = None
    rollover: Optional[bool] = Field(
        default=None,
        description="Carry the unspent remainder forward; None means use the budget's flag"
    )


class ExtendDecision(BaseModel):
    """Turn this budget into a self-renewing recurring budget."""
    decision: Literal["extend"] = "extend"
    budget_id: UUID
    recurrence_pattern: RecurrencePattern
    rollover: Optional[bool] = None


RenewalDecision = Annotated[
    Union[ContinueDecision, RepeatDecision, ExtendDecision],
    Field(discriminator="decision"),
]


class RenewalOutcome(BaseModel):
    """What executing a renewal decision did."""
    decision: str
    budget: Budget = Field(..., description="The budget the decision was made on, as saved")
    new_budget: Optional[Budget] = None
    rollover_amount: Decimal = Decimal("0")


# =============================================================================
# PERIOD WINDOWS AND DAILY RUN
# =============================================================================

class PeriodWindow(BaseModel):
    """One period of a recurring budget: [start_date, end_date]."""
    start_date: date
    end_date: date
    state: BudgetPeriodState


class PeriodRunResult(BaseModel):
    """What process_ended_periods did."""
    renewed: list[UUID] = Field(default_factory=list)
    reflected: list[UUID] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return len(self.errors) > 0
