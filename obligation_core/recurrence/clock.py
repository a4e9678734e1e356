"""
Recurrence Clock

Pure date arithmetic over a RecurrenceDefinition: the next occurrence, the
ordered occurrences inside a window, and the status of a due date relative
to today.

DESIGN DECISION: Every date in a series is computed from the definition's
start date, never chained from the previous date. A monthly rule starting
on Jan 31 therefore produces Jan 31, Feb 29, Mar 31, Apr 30 - the short
month clamps, and the following month recovers the anchor day.

DESIGN DECISION: There is no cursor. Generating the same window twice gives
the same list.

IMPORTANT: calculate_status is the ONE place a due date is compared with
today. Bills, scheduled payments and budget periods all go through it.
"""

from datetime import date, timedelta
from typing import Iterator, Optional, Union

from dateutil.relativedelta import relativedelta

from obligation_core.config import SchedulingSettings, get_settings
from obligation_core.errors import ValidationError
from obligation_core.models.recurrence import (
    MONTHS_PER_UNIT,
    Frequency,
    Occurrence,
    OccurrenceStatus,
    RecurrenceDefinition,
    TERMINAL_STATUSES,
)
from obligation_core.services.clock import Clock, SystemClock


WEEKDAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def ordinal(n: int) -> str:
    """1 -> '1st', 22 -> '22nd', 13 -> '13th'."""
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


class RecurrenceClock:
    """
    Computes occurrence dates for recurrence definitions.

    Holds no per-definition state; one instance serves every container.
    """

    def __init__(
        self,
        settings: Optional[SchedulingSettings] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Args:
            settings: Scheduling settings (safety cap). Defaults to environment.
            clock: Source of "today" when a caller doesn't pass one.
        """
        self._settings = settings or get_settings().scheduling
        self._clock = clock or SystemClock()

    # =========================================================================
    # Series
    # =========================================================================

    def _nth_date(self, definition: RecurrenceDefinition, k: int) -> date:
        unit = definition.unit
        start = definition.start_date
        if unit == Frequency.DAY:
            return start + timedelta(days=k * definition.step)
        if unit == Frequency.WEEK:
            return start + timedelta(weeks=k * definition.step)
        months = k * definition.step * MONTHS_PER_UNIT[unit]
        # relativedelta clamps the absolute day to the target month's length
        return start + relativedelta(months=months, day=definition.anchor_day)

    def _first_index(self, definition: RecurrenceDefinition, from_date: date) -> int:
        """An index at or before the first series date >= from_date."""
        start = definition.start_date
        if from_date <= start:
            return 0
        unit = definition.unit
        if unit == Frequency.DAY:
            return (from_date - start).days // definition.step
        if unit == Frequency.WEEK:
            return (from_date - start).days // (7 * definition.step)
        months_apart = (from_date.year - start.year) * 12 + from_date.month - start.month
        return max(0, months_apart // (definition.step * MONTHS_PER_UNIT[unit]) - 1)

    def _iter_series(
        self,
        definition: RecurrenceDefinition,
        from_date: date,
    ) -> Iterator[date]:
        """Series dates >= from_date in ascending order, ignoring end_date."""
        start = definition.start_date
        lower = max(start, from_date)

        if definition.uses_weekday_set:
            first_monday = start - timedelta(days=start.weekday())
            block = max(0, (lower - first_monday).days // 7) // definition.step
            while True:
                monday = first_monday + timedelta(weeks=block * definition.step)
                for weekday in definition.weekdays:
                    candidate = monday + timedelta(days=weekday)
                    if candidate >= lower:
                        yield candidate
                block += 1
        else:
            k = self._first_index(definition, lower)
            while True:
                candidate = self._nth_date(definition, k)
                if candidate >= lower:
                    yield candidate
                k += 1

    def iter_occurrences(
        self,
        definition: RecurrenceDefinition,
        from_date: Optional[date] = None,
    ) -> Iterator[date]:
        """
        Series dates on or after from_date, stopping at the definition's end date.

        Open-ended definitions give an infinite iterator - bound it yourself.
        """
        for candidate in self._iter_series(definition, from_date or definition.start_date):
            if definition.end_date and candidate > definition.end_date:
                return
            yield candidate

    # =========================================================================
    # Public operations
    # =========================================================================

    def next_occurrence(
        self,
        definition: RecurrenceDefinition,
        from_date: date,
    ) -> Optional[date]:
        """
        The occurrence following from_date.

        For weekday-set rules the search includes from_date itself (a rule
        for Mondays asked on a Monday answers that Monday). For every other
        rule the result is strictly after from_date.

        Returns:
            The next date, or None once the definition's end date is passed
        """
        if definition.uses_weekday_set:
            search_from = from_date
        else:
            search_from = from_date + timedelta(days=1)
        return next(self.iter_occurrences(definition, search_from), None)

    def generate_schedule(
        self,
        definition: RecurrenceDefinition,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        current_date: Optional[date] = None,
        max_occurrences: Optional[int] = None,
        existing_statuses: Optional[dict[date, str]] = None,
    ) -> list[Occurrence]:
        """
        All occurrences in [start_date, end_date], each with its status.

        Args:
            definition: The rule
            start_date: Window start (defaults to the definition's start)
            end_date: Window end (defaults to the definition's end)
            current_date: "Today" for status computation (defaults to the clock)
            max_occurrences: Stop after this many occurrences
            existing_statuses: Recorded statuses by due date; terminal ones win

        Raises:
            ValidationError: If neither an end bound nor max_occurrences is given
        """
        window_end = end_date or definition.end_date
        if window_end is None and max_occurrences is None:
            raise ValidationError(
                "Either an end date or max_occurrences is required for an open-ended recurrence",
                field="end_date",
            )
        if definition.end_date and window_end and window_end > definition.end_date:
            window_end = definition.end_date

        today = current_date or self._clock.today()
        existing_statuses = existing_statuses or {}
        limit = self._settings.max_occurrences
        if max_occurrences is not None:
            limit = min(limit, max_occurrences)

        occurrences = []
        for due in self.iter_occurrences(definition, start_date):
            if window_end and due > window_end:
                break
            if len(occurrences) >= limit:
                break
            occurrences.append(Occurrence(
                due_date=due,
                status=self.calculate_status(due, today, existing_statuses.get(due)),
                days_from_now=self.get_days_until(due, today),
            ))
        return occurrences

    def count_occurrences_between(
        self,
        definition: RecurrenceDefinition,
        start_date: date,
        end_date: date,
    ) -> int:
        """Number of occurrences in [start_date, end_date]."""
        return len(self.generate_schedule(
            definition,
            start_date=start_date,
            end_date=end_date,
            current_date=start_date,
        ))

    @staticmethod
    def calculate_status(
        due_date: date,
        today: date,
        existing_status: Optional[Union[OccurrenceStatus, str]] = None,
    ) -> OccurrenceStatus:
        """
        Status of a due date relative to today.

        A terminal existing status (paid, completed, cancelled, skipped,
        postponed) is returned unchanged. Anything else is recomputed.
        """
        if existing_status is not None:
            try:
                recorded = OccurrenceStatus(existing_status)
            except ValueError:
                recorded = None
            if recorded in TERMINAL_STATUSES:
                return recorded

        if due_date < today:
            return OccurrenceStatus.OVERDUE
        if due_date == today:
            return OccurrenceStatus.DUE_TODAY
        return OccurrenceStatus.UPCOMING

    @staticmethod
    def get_days_until(target: date, today: date) -> int:
        """Signed days from today to target (negative when target is past)."""
        return (target - today).days

    def is_overdue(
        self,
        due_date: date,
        today: date,
        existing_status: Optional[Union[OccurrenceStatus, str]] = None,
    ) -> bool:
        return self.calculate_status(due_date, today, existing_status) == OccurrenceStatus.OVERDUE

    # =========================================================================
    # Reminder surface (which days deserve a reminder - never delivery)
    # =========================================================================

    @staticmethod
    def reminder_dates(due_date: date, reminder_days: list[int]) -> list[date]:
        """Dates on which a reminder for due_date is eligible, ascending."""
        offsets = sorted({d for d in reminder_days if d >= 0}, reverse=True)
        return [due_date - timedelta(days=d) for d in offsets]

    def is_reminder_due(
        self,
        due_date: date,
        today: date,
        reminder_days: list[int],
    ) -> bool:
        return self.get_days_until(due_date, today) in set(reminder_days)

    # =========================================================================
    # Description
    # =========================================================================

    def describe(self, definition: RecurrenceDefinition) -> str:
        """
        Human-readable summary, e.g. "Every 2 months on the 15th until Dec 31, 2025".
        """
        unit = definition.unit.value
        step = definition.step
        if step == 1:
            text = f"Every {unit}"
        else:
            text = f"Every {step} {unit}s"

        if definition.uses_weekday_set:
            names = [WEEKDAY_NAMES[d] for d in definition.weekdays]
            text += " on " + ", ".join(names)
        elif definition.unit in MONTHS_PER_UNIT:
            text += f" on the {ordinal(definition.anchor_day)}"

        if definition.end_date:
            text += f" until {definition.end_date.strftime('%b %d, %Y')}"
        return text
