"""
Cycle Generator

Turns a container's recurrence into numbered cycles. Cycle N covers the
period from the N-th occurrence up to the day before the next one.

DESIGN DECISION: Cycles are computed, never stored. What is stored per
cycle is only the optional override (on the container) and the tracking
artifact (in the repository), both keyed by cycle number.

CRITICAL: Overrides may move a cycle's date or change its amount, but cycle
numbers always come from the unmodified series. Renumbering would break the
idempotency key of every artifact already created.
"""

from datetime import date, timedelta
from typing import Iterable, Optional

from obligation_core.config import SchedulingSettings, get_settings
from obligation_core.errors import ValidationError
from obligation_core.models.obligation import (
    Cycle,
    CycleOverride,
    CycleTracking,
    RecurringContainer,
    TrackingArtifact,
)
from obligation_core.recurrence.clock import RecurrenceClock


class CycleGenerator:
    """
    Builds cycles for recurring containers.
    """

    def __init__(
        self,
        recurrence_clock: Optional[RecurrenceClock] = None,
        settings: Optional[SchedulingSettings] = None,
    ):
        self._settings = settings or get_settings().scheduling
        self._clock = recurrence_clock or RecurrenceClock(settings=self._settings)

    def generate_cycles(
        self,
        container: RecurringContainer,
        until: Optional[date] = None,
    ) -> list[Cycle]:
        """
        Generate the container's cycles with overrides applied.

        A container with an end date gets every cycle up to it. An open-ended
        container gets at least min_open_ended_cycles cycles, and every cycle
        whose occurrence falls on or before `until` when that is given.
        """
        definition = container.recurrence
        # The unbounded series supplies the boundary after the last cycle
        open_series = self._clock.iter_occurrences(
            definition.model_copy(update={"end_date": None})
        )
        cap = self._settings.max_occurrences
        minimum = self._settings.min_open_ended_cycles

        dates: list[date] = []
        for occurrence in open_series:
            if len(dates) > cap:
                break
            dates.append(occurrence)
            if definition.end_date is not None:
                if occurrence > definition.end_date:
                    break
            elif len(dates) > minimum and (until is None or occurrence > until):
                break

        cycles = []
        for index in range(len(dates) - 1):
            start = dates[index]
            if definition.end_date and start > definition.end_date:
                break
            cycle = Cycle(
                container_id=container.id,
                cycle_number=index + 1,
                start_date=start,
                end_date=dates[index + 1] - timedelta(days=1),
                expected_date=start,
                expected_amount=container.default_amount,
            )
            cycles.append(self._apply_override(cycle, container.cycle_overrides.get(index + 1)))
        return cycles

    @staticmethod
    def _apply_override(cycle: Cycle, override: Optional[CycleOverride]) -> Cycle:
        if override is None:
            return cycle
        update = {"is_overridden": True}
        if override.expected_date is not None:
            update["expected_date"] = override.expected_date
        if override.expected_amount is not None:
            update["expected_amount"] = override.expected_amount
        if override.minimum_amount is not None:
            update["minimum_amount"] = override.minimum_amount
        if override.notes is not None:
            update["notes"] = override.notes
        return cycle.model_copy(update=update)

    def cycles_needing_tracking_today(
        self,
        container: RecurringContainer,
        cycles: list[Cycle],
        today: date,
        lead_days: Optional[int] = None,
    ) -> list[Cycle]:
        """
        Cycles whose expected date, less the lead time, is on or before today.

        Containers that are not ACTIVE never yield anything. Whether a cycle
        already has an artifact is left to the dispatcher - it is idempotent.
        """
        if not container.is_active:
            return []
        if lead_days is None:
            lead_days = self.lead_days_for(container)
        lead = timedelta(days=lead_days)
        return [c for c in cycles if c.expected_date - lead <= today]

    def lead_days_for(self, container: RecurringContainer) -> int:
        if container.auto_create_days_before is not None:
            return container.auto_create_days_before
        return self._settings.default_lead_days

    def describe(self, container: RecurringContainer) -> str:
        return self._clock.describe(container.recurrence)


# =============================================================================
# OVERRIDES
# =============================================================================

def set_cycle_override(
    container: RecurringContainer,
    cycle_number: int,
    override: CycleOverride,
) -> RecurringContainer:
    """
    Register (or merge into) the override for one cycle.

    Fields left unset on `override` keep their previous override value.
    Returns an updated copy; the caller persists it.
    """
    if cycle_number < 1:
        raise ValidationError("Cycle number must be 1 or greater", field="cycle_number")
    overrides = dict(container.cycle_overrides)
    previous = overrides.get(cycle_number)
    if previous is not None:
        merged = previous.model_dump()
        merged.update(override.model_dump(exclude_none=True))
        override = CycleOverride(**merged)
    overrides[cycle_number] = override
    return container.model_copy(update={"cycle_overrides": overrides})


def remove_cycle_override(
    container: RecurringContainer,
    cycle_number: int,
) -> RecurringContainer:
    overrides = dict(container.cycle_overrides)
    overrides.pop(cycle_number, None)
    return container.model_copy(update={"cycle_overrides": overrides})


def match_cycles_to_artifacts(
    cycles: list[Cycle],
    artifacts: Iterable[TrackingArtifact],
) -> list[CycleTracking]:
    """Pair each cycle with the artifact carrying its cycle number, if any."""
    by_number = {a.cycle_number: a for a in artifacts}
    return [
        CycleTracking(cycle=c, artifact=by_number.get(c.cycle_number))
        for c in cycles
    ]
