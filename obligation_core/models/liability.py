"""
Liability and Amortization Models

Money is always Decimal, quantized to paise/cents at every step so the
principal components of a schedule add back to the balance exactly.

CRITICAL: Only PENDING schedules are ever deleted or regenerated.
COMPLETED and CANCELLED schedules are history and are never touched.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, model_validator

from obligation_core.models.recurrence import Frequency


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ScheduleStatus(str, Enum):
    """Status of one generated installment row."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


class AdjustmentPolicy(str, Enum):
    """
    What stays fixed when a liability is edited mid-stream.

    HOLD_PAYMENT: the installment amount stays, the term moves.
    HOLD_END_DATE: the payoff date stays, the installment moves.
    CUSTOM: caller gives payment and/or end date, the engine fills the gap.
    """
    HOLD_PAYMENT = "hold_payment"
    HOLD_END_DATE = "hold_end_date"
    CUSTOM = "custom"


class ExtraPaymentStrategy(str, Enum):
    """What a one-off extra payment is used for."""
    REDUCE_PAYMENT = "reduce_payment"
    REDUCE_TERM = "reduce_term"
    SKIP_PAYMENTS = "skip_payments"
    REDUCE_PRINCIPAL = "reduce_principal"


# =============================================================================
# LIABILITY AND SCHEDULES
# =============================================================================

class Liability(BaseModel):
    """A loan, EMI or other debt being paid down in installments."""

    id: UUID = Field(default_factory=uuid4)
    user_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=200)
    original_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Total amount owed when the liability was taken"
    )
    current_balance: Decimal = Field(..., ge=0)
    annual_interest_rate: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Annual rate in percent (12 means 12%)"
    )
    periodical_payment: Decimal = Field(..., ge=0)
    periodical_frequency: Frequency = Frequency.MONTH
    start_date: date
    targeted_payoff_date: Optional[date] = None
    next_due_date: Optional[date] = None
    currency: str = "INR"

    @model_validator(mode='after')
    def validate_dates(self) -> 'Liability':
        if self.targeted_payoff_date and self.targeted_payoff_date < self.start_date:
            raise ValueError("Payoff date cannot be before start date")
        return self


class LiabilitySchedule(BaseModel):
    """
    One persisted installment row.

    metadata carries principal_component, interest_component,
    payment_number, total_payments and remaining_balance.
    """

    id: UUID = Field(default_factory=uuid4)
    liability_id: UUID
    due_date: date
    amount: Decimal = Field(..., ge=0)
    status: ScheduleStatus = ScheduleStatus.PENDING
    reminder_days: list[int] = Field(default_factory=lambda: [1, 3, 7])
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def principal_component(self) -> Decimal:
        return Decimal(str(self.metadata.get("principal_component", "0")))

    @property
    def interest_component(self) -> Decimal:
        return Decimal(str(self.metadata.get("interest_component", "0")))

    @property
    def remaining_balance(self) -> Decimal:
        return Decimal(str(self.metadata.get("remaining_balance", "0")))

    @property
    def is_pending(self) -> bool:
        return self.status == ScheduleStatus.PENDING


class Installment(BaseModel):
    """One computed installment. Pure value - not persisted."""
    number: int = Field(..., ge=1)
    due_date: date
    payment: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal


# =============================================================================
# RECALCULATION
# =============================================================================

class LiabilityChanges(BaseModel):
    """
    Proposed edits to a liability. Unset fields mean "unchanged".
    """
    new_total_owed: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="New amount owed; becomes the balance the schedule retires"
    )
    new_annual_rate: Optional[Decimal] = Field(default=None, ge=0)
    new_payment: Optional[Decimal] = Field(default=None, gt=0)
    new_end_date: Optional[date] = None


class RecalculationImpact(BaseModel):
    """
    Before/after comparison shown to the user BEFORE anything is regenerated.

    The old term, interest and end date are None when the current payment
    never retires the balance (zero, or below one period's interest).
    """
    policy: AdjustmentPolicy
    old_payment: Decimal
    new_payment: Decimal
    payment_change: Decimal
    old_term_months: Optional[int] = None
    new_term_months: int
    term_change_months: Optional[int] = None
    old_total_interest: Optional[Decimal] = None
    new_total_interest: Decimal
    interest_change: Optional[Decimal] = None
    old_end_date: Optional[date] = None
    new_end_date: date
    end_date_change_days: Optional[int] = None
    new_balance: Decimal
    new_annual_rate: Decimal


class PaymentBreakdown(BaseModel):
    """How a single payment splits between interest and principal."""
    payment: Decimal
    principal: Decimal
    interest: Decimal
    remaining_balance: Decimal
    is_payoff: bool = False


class ExtraPaymentOption(BaseModel):
    """One way of using an extra payment, with what it saves."""
    strategy: ExtraPaymentStrategy
    new_balance: Decimal
    new_payment: Decimal
    new_term_months: int
    skipped_payments: int = 0
    interest_saved: Decimal
    description: str


class PaymentImpact(BaseModel):
    """Effect of one actual payment on the liability."""
    principal_paid: Decimal
    new_balance: Decimal
    installments_before: int
    installments_after: int
    installments_reduced: int
    days_ahead: int = 0
    new_next_due_date: Optional[date] = None
