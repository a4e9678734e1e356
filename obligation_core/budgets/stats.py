"""
Budget Statistics

Pure functions over a budget and its linked transactions. No storage, no
clock: "today" is always an argument.

CRITICAL: recompute() is the only way spent/remaining change. It is a
function of the transactions, so running it twice gives the same budget.
"""

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from obligation_core.amortization.engine import quantize
from obligation_core.models.budget import (
    Achievements,
    AlertKind,
    Budget,
    BudgetAlert,
    BudgetMode,
    BudgetPeriodState,
    BudgetPeriodSummary,
    BudgetTransaction,
    CategoryChange,
    CategorySpend,
    DailyPace,
    PeriodComparison,
)
from obligation_core.recurrence.clock import RecurrenceClock


ZERO = Decimal("0")
UNCATEGORIZED = "Uncategorized"


# =============================================================================
# PROGRESS
# =============================================================================

def counted_transactions(
    budget: Budget,
    transactions: Iterable[BudgetTransaction],
) -> list[BudgetTransaction]:
    """Transactions that count: not excluded, and linked after any spending reset."""
    return [
        t for t in transactions
        if not t.is_excluded
        and (budget.spent_reset_at is None or t.linked_at > budget.spent_reset_at)
    ]


def recompute(budget: Budget, transactions: Iterable[BudgetTransaction]) -> Budget:
    """
    Budget with spent_amount and remaining_amount derived from transactions.

        spent     = sum(amount_counted) over counted transactions
        remaining = max(0, amount - spent)
    """
    spent = sum((t.amount_counted for t in counted_transactions(budget, transactions)), ZERO)
    spent = quantize(spent)
    remaining = quantize(max(ZERO, budget.amount - spent))
    return budget.model_copy(update={"spent_amount": spent, "remaining_amount": remaining})


def percentage_used(budget: Budget) -> float:
    if budget.amount <= 0:
        return 0.0
    return float(budget.spent_amount / budget.amount * 100)


def achieved_goal(budget: Budget) -> bool:
    """A spend cap is met by staying at or under it, a save target by reaching it."""
    if budget.budget_mode == BudgetMode.SAVE_TARGET:
        return budget.spent_amount >= budget.amount
    return budget.spent_amount <= budget.amount


# =============================================================================
# PACE AND ALERTS
# =============================================================================

def daily_pace(budget: Budget, today: date, tolerance: float = 0.2) -> DailyPace:
    """
    Ideal vs actual daily spend.

    ideal   = remaining_amount / days_remaining
    average = spent_amount / days_elapsed
    on_track while average <= ideal * (1 + tolerance)
    """
    total_days = budget.duration_days
    elapsed = min(max(0, (today - budget.start_date).days), total_days)
    days_remaining = max(0, total_days - elapsed)

    ideal = ZERO
    if days_remaining > 0:
        ideal = quantize(budget.remaining_amount / days_remaining)
    average = ZERO
    if elapsed > 0:
        average = quantize(budget.spent_amount / elapsed)

    limit = ideal * (1 + Decimal(str(tolerance)))
    return DailyPace(
        total_days=total_days,
        days_elapsed=elapsed,
        days_remaining=days_remaining,
        ideal_daily_spend=ideal,
        current_daily_average=average,
        on_track=average <= limit,
    )


def check_alerts(
    budget: Budget,
    today: date,
    tolerance: float = 0.2,
    default_thresholds: Optional[list[int]] = None,
) -> list[BudgetAlert]:
    """
    Alert conditions that hold today.

    Nothing fires while alerts are snoozed (snooze_until after today).
    """
    settings = budget.alert_settings
    if settings.snooze_until and settings.snooze_until > today:
        return []

    used = percentage_used(budget)
    thresholds = settings.thresholds or default_thresholds or []
    alerts = []
    for threshold in sorted(thresholds):
        if used < threshold:
            continue
        if threshold >= 100 and budget.spent_amount > budget.amount:
            over = quantize(budget.spent_amount - budget.amount)
            message = f"Budget exceeded by {over} {budget.currency}: {budget.name}"
        elif threshold >= 100:
            message = f"Budget limit reached: {budget.name}"
        else:
            message = f"{threshold}% threshold reached: {budget.name}"
        alerts.append(BudgetAlert(
            kind=AlertKind.THRESHOLD,
            threshold=threshold,
            percentage_used=used,
            message=message,
        ))

    if settings.daily_pace_enabled and not daily_pace(budget, today, tolerance).on_track:
        alerts.append(BudgetAlert(
            kind=AlertKind.DAILY_PACE,
            percentage_used=used,
            message=f"Spending too fast: {budget.name}",
        ))
    return alerts


def period_status(budget: Budget, today: date) -> BudgetPeriodState:
    if budget.reflection_ready:
        return BudgetPeriodState.REFLECTION_READY
    if today < budget.start_date:
        return BudgetPeriodState.UPCOMING
    if today <= budget.end_date:
        return BudgetPeriodState.ACTIVE
    return BudgetPeriodState.EXPIRED


def is_ending_soon(budget: Budget, today: date, days_before: int = 3) -> bool:
    days_left = RecurrenceClock.get_days_until(budget.end_date, today)
    return 0 <= days_left <= days_before


# =============================================================================
# REFLECTION
# =============================================================================

def category_breakdown(transactions: Iterable[BudgetTransaction]) -> list[CategorySpend]:
    """Spend per category, largest first."""
    amounts: dict[Optional[str], Decimal] = defaultdict(lambda: ZERO)
    counts: dict[Optional[str], int] = defaultdict(int)
    names: dict[Optional[str], str] = {}
    for t in transactions:
        amounts[t.category_id] += t.amount_counted
        counts[t.category_id] += 1
        if t.category_name:
            names[t.category_id] = t.category_name

    total = sum(amounts.values(), ZERO)
    breakdown = []
    for category_id, amount in amounts.items():
        breakdown.append(CategorySpend(
            category_id=category_id,
            category_name=names.get(category_id, UNCATEGORIZED),
            amount=quantize(amount),
            transaction_count=counts[category_id],
            percentage=float(amount / total * 100) if total > 0 else 0.0,
        ))
    return sorted(breakdown, key=lambda c: c.amount, reverse=True)


def consistency_score(budget: Budget, transactions: Iterable[BudgetTransaction]) -> float:
    """Fraction of the period's days (inclusive) with at least one transaction."""
    period_days = budget.duration_days + 1
    active_days = {
        t.occurred_on for t in transactions
        if budget.start_date <= t.occurred_on <= budget.end_date
    }
    return min(1.0, len(active_days) / period_days)


def previous_period(budget: Budget, history: Iterable[Budget]) -> Optional[Budget]:
    """
    The period this one follows.

    The budget it was renewed from when that is recorded, otherwise a budget
    of the same type and category ending the day before this one starts.
    """
    history = [b for b in history if b.id != budget.id]
    renewed_from = budget.metadata.get("renewed_from_budget_id")
    if renewed_from:
        for candidate in history:
            if str(candidate.id) == str(renewed_from):
                return candidate

    day_before = budget.start_date - timedelta(days=1)
    for candidate in history:
        if (
            candidate.budget_type == budget.budget_type
            and candidate.category_id == budget.category_id
            and candidate.end_date == day_before
        ):
            return candidate
    return None


def streak_count(budget: Budget, history: Iterable[Budget]) -> int:
    """
    Consecutive periods, ending with this one, that met their goal.

    Walks backward through contiguous prior periods of the same type.
    """
    history = list(history)
    streak = 0
    current: Optional[Budget] = budget
    seen = set()
    while current is not None and current.id not in seen and achieved_goal(current):
        seen.add(current.id)
        streak += 1
        current = previous_period(current, history)
        if current is not None and current.budget_type != budget.budget_type:
            break
    return streak


def _change_percentage(previous: Decimal, current: Decimal) -> Optional[float]:
    if previous <= 0:
        return None
    return float((current - previous) / previous * 100)


def compare_periods(
    budget: Budget,
    transactions: list[BudgetTransaction],
    previous: Budget,
    previous_transactions: list[BudgetTransaction],
) -> PeriodComparison:
    current_by_name = {c.category_name: c.amount for c in category_breakdown(transactions)}
    previous_by_name = {
        c.category_name: c.amount for c in category_breakdown(previous_transactions)
    }
    changes = []
    for name in sorted(set(current_by_name) | set(previous_by_name)):
        before = previous_by_name.get(name, ZERO)
        after = current_by_name.get(name, ZERO)
        changes.append(CategoryChange(
            category_name=name,
            previous_amount=before,
            current_amount=after,
            change_percentage=_change_percentage(before, after),
        ))
    return PeriodComparison(
        previous_budget_id=previous.id,
        previous_spent=previous.spent_amount,
        total_change_percentage=_change_percentage(previous.spent_amount, budget.spent_amount),
        category_changes=changes,
    )


def build_summary(
    budget: Budget,
    transactions: list[BudgetTransaction],
    today: date,
    history: Optional[list[Budget]] = None,
    previous_transactions: Optional[list[BudgetTransaction]] = None,
    tolerance: float = 0.2,
) -> BudgetPeriodSummary:
    """
    Reflection summary for a period.

    Args:
        budget: The period, already recomputed
        transactions: Its linked transactions (excluded ones are ignored)
        today: Reference date for the pace
        history: The user's other budgets, for comparison and streak
        previous_transactions: Linked transactions of the previous period
        tolerance: Pace tolerance band
    """
    history = history or []
    counted = counted_transactions(budget, transactions)

    comparison = None
    previous = previous_period(budget, history)
    if previous is not None:
        prior_counted = counted_transactions(previous, previous_transactions or [])
        comparison = compare_periods(budget, counted, previous, prior_counted)

    improvement = None
    if comparison is not None and comparison.total_change_percentage is not None:
        improvement = -comparison.total_change_percentage
        if budget.budget_mode == BudgetMode.SAVE_TARGET:
            improvement = comparison.total_change_percentage

    return BudgetPeriodSummary(
        budget_id=budget.id,
        period_start=budget.start_date,
        period_end=budget.end_date,
        amount=budget.amount,
        spent_amount=budget.spent_amount,
        remaining_amount=budget.remaining_amount,
        percentage_used=percentage_used(budget),
        transaction_count=len(counted),
        category_breakdown=category_breakdown(counted),
        daily_pace=daily_pace(budget, today, tolerance),
        previous_period_comparison=comparison,
        achievements=Achievements(
            streak_count=streak_count(budget, history),
            achieved_goal=achieved_goal(budget),
            improvement_percentage=improvement,
        ),
        consistency_score=consistency_score(budget, counted),
    )
