"""
Recurrence Models

A RecurrenceDefinition is a value object: it says HOW OFTEN something
repeats, never WHICH dates have already happened. Every concrete date is
derived on demand by the RecurrenceClock.

DESIGN DECISION: Storage tokens ("monthly", "weeks", ...) are normalised on
the way in, so the rest of the system only ever sees one vocabulary.
"""

from datetime import date
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Frequency(str, Enum):
    """How often a definition repeats."""
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    CUSTOM = "custom"


class OccurrenceStatus(str, Enum):
    """
    Status of a single occurrence relative to "today".

    The last five are terminal: once recorded, they are never recomputed.
    """
    UPCOMING = "upcoming"
    DUE_TODAY = "due_today"
    OVERDUE = "overdue"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"
    POSTPONED = "postponed"


TERMINAL_STATUSES = frozenset({
    OccurrenceStatus.PAID,
    OccurrenceStatus.COMPLETED,
    OccurrenceStatus.CANCELLED,
    OccurrenceStatus.SKIPPED,
    OccurrenceStatus.POSTPONED,
})

# Storage and UI tokens that mean the same thing as a Frequency value
_FREQUENCY_ALIASES = {
    "daily": "day",
    "days": "day",
    "weekly": "week",
    "weeks": "week",
    "monthly": "month",
    "months": "month",
    "quarterly": "quarter",
    "quarters": "quarter",
    "yearly": "year",
    "annually": "year",
    "annual": "year",
    "years": "year",
}

# Months covered by one step of each month-based unit
MONTHS_PER_UNIT = {
    Frequency.MONTH: 1,
    Frequency.QUARTER: 3,
    Frequency.YEAR: 12,
}


def normalize_frequency_token(value: str) -> str:
    """Map a storage/UI token (e.g. 'monthly') onto a Frequency value."""
    token = value.strip().lower()
    return _FREQUENCY_ALIASES.get(token, token)


# =============================================================================
# RECURRENCE DEFINITION
# =============================================================================

class RecurrenceDefinition(BaseModel):
    """
    Abstract repeat rule.

    Weekdays use Python's convention: Monday=0 ... Sunday=6.
    """
    model_config = ConfigDict(frozen=True)

    frequency: Frequency = Field(
        ...,
        description="Base frequency; CUSTOM defers to custom_unit"
    )
    interval: int = Field(
        default=1,
        ge=1,
        description="Repeat every N periods"
    )
    custom_unit: Optional[Frequency] = Field(
        default=None,
        description="Unit for CUSTOM frequency (day/week/month/quarter/year)"
    )
    custom_interval: Optional[int] = Field(
        default=None,
        description="Repeat every N custom units; missing or non-positive means 1"
    )
    weekdays: list[int] = Field(
        default_factory=list,
        description="Weekdays for week-based rules (0=Monday)"
    )
    day_of_month: Optional[int] = Field(
        default=None,
        ge=1,
        le=31,
        description="Day of month for month-based rules, clamped in shorter months"
    )
    start_date: date = Field(
        ...,
        description="First date the rule may produce"
    )
    end_date: Optional[date] = Field(
        default=None,
        description="Last date the rule may produce"
    )

    @field_validator('frequency', mode='before')
    @classmethod
    def normalize_frequency(cls, v):
        if isinstance(v, str):
            return normalize_frequency_token(v)
        return v

    @field_validator('custom_unit', mode='before')
    @classmethod
    def normalize_custom_unit(cls, v):
        """Accept singular/plural/storage spellings; unknown units fall back to month."""
        if v is None or isinstance(v, Frequency):
            return v
        token = normalize_frequency_token(str(v))
        if token not in {f.value for f in MONTHS_PER_UNIT} | {"day", "week"}:
            return Frequency.MONTH
        return token

    @field_validator('weekdays')
    @classmethod
    def validate_weekdays(cls, v: list[int]) -> list[int]:
        for day in v:
            if day < 0 or day > 6:
                raise ValueError(f"Weekday must be between 0 and 6, got {day}")
        return sorted(set(v))

    @model_validator(mode='after')
    def validate_rule(self) -> 'RecurrenceDefinition':
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        if self.frequency == Frequency.CUSTOM and self.custom_unit == Frequency.CUSTOM:
            raise ValueError("Custom unit cannot itself be custom")
        if self.unit == Frequency.WEEK and self.frequency == Frequency.CUSTOM and not self.weekdays:
            raise ValueError("Weekly custom recurrence needs at least one weekday")
        return self

    @property
    def unit(self) -> Frequency:
        """The concrete unit this rule steps in."""
        if self.frequency == Frequency.CUSTOM:
            return self.custom_unit or Frequency.MONTH
        return self.frequency

    @property
    def step(self) -> int:
        """How many units one step spans."""
        if self.frequency == Frequency.CUSTOM:
            if not self.custom_interval or self.custom_interval < 1:
                return 1
            return self.custom_interval
        return self.interval

    @property
    def anchor_day(self) -> int:
        """Day of month month-based rules aim for."""
        return self.day_of_month or self.start_date.day

    @property
    def uses_weekday_set(self) -> bool:
        return self.unit == Frequency.WEEK and bool(self.weekdays)


class Occurrence(BaseModel):
    """
    One computed date of a recurrence.

    Never persisted on its own - always derived from a definition and "today".
    """
    due_date: date
    status: OccurrenceStatus
    days_from_now: int = Field(
        ...,
        description="Signed days from today (negative = in the past)"
    )
