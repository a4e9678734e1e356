"""Recurrence package: occurrence dates and numbered cycles."""

from obligation_core.recurrence.clock import RecurrenceClock, ordinal
from obligation_core.recurrence.cycles import (
    CycleGenerator,
    match_cycles_to_artifacts,
    remove_cycle_override,
    set_cycle_override,
)

__all__ = [
    "CycleGenerator",
    "RecurrenceClock",
    "match_cycles_to_artifacts",
    "ordinal",
    "remove_cycle_override",
    "set_cycle_override",
]
