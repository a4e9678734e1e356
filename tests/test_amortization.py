"""
Tests for the Amortization Engine and the Liability Schedule Service
"""

import re
import pytest
from datetime import date
from decimal import Decimal

from obligation_core.amortization import (
    AmortizationEngine,
    LiabilityScheduleService,
    months_between,
)
from obligation_core.audit import AuditLogger
from obligation_core.config import AmortizationSettings
from obligation_core.errors import ValidationError
from obligation_core.models.audit import AuditEventType
from obligation_core.models.liability import (
    AdjustmentPolicy,
    ExtraPaymentStrategy,
    Liability,
    LiabilityChanges,
    LiabilitySchedule,
    ScheduleStatus,
)
from obligation_core.services.clock import FixedClock
from obligation_core.services.storage import (
    InMemoryAuditStorage,
    InMemoryRepository,
    NotFoundError,
)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def engine():
    return AmortizationEngine(settings=AmortizationSettings())


def total_principal(installments) -> Decimal:
    return sum((i.principal for i in installments), Decimal("0"))


# =============================================================================
# Core formulas
# =============================================================================

class TestFormulas:
    """Tests for level payment, term and single-payment breakdown."""

    def test_level_payment(self, engine):
        """Test the standard EMI formula."""
        assert engine.level_payment(Decimal("100000"), Decimal("10"), 12) == Decimal("8791.59")

    def test_level_payment_zero_interest(self, engine):
        """Test that zero interest divides evenly."""
        assert engine.level_payment(Decimal("1200"), Decimal("0"), 12) == Decimal("100.00")

    def test_level_payment_needs_periods(self, engine):
        """Test that a zero term is rejected."""
        with pytest.raises(ValidationError):
            engine.level_payment(Decimal("1000"), Decimal("5"), 0)

    def test_remaining_term(self, engine):
        """Test the inverted formula."""
        assert engine.remaining_term(Decimal("120000"), Decimal("5000"), Decimal("12")) == 28
        assert engine.remaining_term(Decimal("1000"), Decimal("300"), Decimal("0")) == 4
        assert engine.remaining_term(Decimal("0"), Decimal("300"), Decimal("12")) == 0

    def test_remaining_term_round_trip(self, engine):
        """Test that a level payment retires the balance in its own term."""
        payment = engine.level_payment(Decimal("100000"), Decimal("10"), 12)
        assert engine.remaining_term(Decimal("100000"), payment, Decimal("10")) == 12

    def test_payment_below_interest_rejected(self, engine):
        """Test that a payment that never amortizes is rejected."""
        with pytest.raises(ValidationError, match="does not cover"):
            engine.remaining_term(Decimal("120000"), Decimal("1000"), Decimal("12"))

    def test_payment_breakdown(self, engine):
        """Test the first-installment split from the worked example."""
        breakdown = engine.payment_breakdown(Decimal("120000"), Decimal("12"), Decimal("5000"))
        assert breakdown.interest == Decimal("1200.00")
        assert breakdown.principal == Decimal("3800.00")
        assert breakdown.remaining_balance == Decimal("116200.00")
        assert not breakdown.is_payoff

    def test_payment_breakdown_payoff(self, engine):
        """Test that an oversized payment retires exactly the balance."""
        breakdown = engine.payment_breakdown(Decimal("1000"), Decimal("12"), Decimal("5000"))
        assert breakdown.is_payoff
        assert breakdown.payment == Decimal("1010.00")
        assert breakdown.remaining_balance == Decimal("0.00")

    def test_months_between(self):
        """Test whole-month distance, rounding partial months up."""
        assert months_between(date(2024, 1, 1), date(2025, 1, 1)) == 12
        assert months_between(date(2024, 1, 1), date(2024, 12, 31)) == 12
        assert months_between(date(2024, 1, 15), date(2024, 3, 15)) == 2
        assert months_between(date(2024, 5, 1), date(2024, 1, 1)) == 0


# =============================================================================
# Schedules
# =============================================================================

class TestGenerateSchedule:
    """Tests for generate_schedule."""

    def test_first_installment(self, engine):
        """Test the worked example's first row."""
        schedule = engine.generate_schedule(
            Decimal("120000"), Decimal("5000"), Decimal("12"), date(2024, 1, 31)
        )
        first = schedule[0]
        assert first.interest == Decimal("1200.00")
        assert first.principal == Decimal("3800.00")
        assert first.remaining_balance == Decimal("116200.00")

    def test_retires_balance_exactly(self, engine):
        """Test that principal sums to the balance and ends at zero."""
        schedule = engine.generate_schedule(
            Decimal("120000"), Decimal("5000"), Decimal("12"), date(2024, 1, 31)
        )
        assert len(schedule) == 28
        assert schedule[-1].remaining_balance == Decimal("0.00")
        assert total_principal(schedule) == Decimal("120000.00")
        assert schedule[-1].payment < Decimal("5000")
        assert all(i.remaining_balance >= 0 for i in schedule)

    def test_due_dates_anchor_on_first(self, engine):
        """Test month-end clamping of due dates."""
        schedule = engine.generate_schedule(
            Decimal("120000"), Decimal("5000"), Decimal("12"), date(2024, 1, 31)
        )
        assert [i.due_date for i in schedule[:3]] == [
            date(2024, 1, 31),
            date(2024, 2, 29),
            date(2024, 3, 31),
        ]

    def test_zero_interest(self, engine):
        """Test that zero-interest schedules are plain division."""
        schedule = engine.generate_schedule(
            Decimal("1000"), Decimal("300"), Decimal("0"), date(2024, 1, 1)
        )
        assert [i.payment for i in schedule] == [
            Decimal("300.00"), Decimal("300.00"), Decimal("300.00"), Decimal("100.00"),
        ]
        assert all(i.interest == 0 for i in schedule)

    def test_single_installment_payoff(self, engine):
        """Test that a payment covering everything gives one row."""
        schedule = engine.generate_schedule(
            Decimal("500"), Decimal("1000"), Decimal("12"), date(2024, 1, 1)
        )
        assert len(schedule) == 1
        assert schedule[0].payment == Decimal("505.00")
        assert schedule[0].remaining_balance == Decimal("0.00")

    def test_end_date_balloon(self, engine):
        """Test that the last row inside the end date retires the remainder."""
        schedule = engine.generate_schedule(
            Decimal("120000"),
            Decimal("5000"),
            Decimal("12"),
            date(2024, 1, 31),
            end_date=date(2024, 6, 30),
        )
        assert len(schedule) == 6
        assert schedule[-1].due_date == date(2024, 6, 30)
        assert schedule[-1].remaining_balance == Decimal("0.00")
        assert schedule[-1].payment > Decimal("5000")
        assert total_principal(schedule) == Decimal("120000.00")

    def test_first_due_after_end_rejected(self, engine):
        """Test that an empty window is an error."""
        with pytest.raises(ValidationError, match="First due date"):
            engine.generate_schedule(
                Decimal("1000"), Decimal("100"), Decimal("0"),
                date(2024, 6, 1), end_date=date(2024, 1, 1),
            )

    def test_max_installments(self):
        """Test the safety cap on schedule length."""
        engine = AmortizationEngine(settings=AmortizationSettings(max_installments=12))
        with pytest.raises(ValidationError, match="exceed"):
            engine.generate_schedule(
                Decimal("120000"), Decimal("1000"), Decimal("0"), date(2024, 1, 1)
            )

    def test_total_interest(self, engine):
        """Test interest totals."""
        assert engine.total_interest(Decimal("1000"), Decimal("300"), Decimal("0")) == 0
        schedule = engine.generate_schedule(
            Decimal("120000"), Decimal("5000"), Decimal("12"), date(2024, 1, 31)
        )
        expected = sum((i.interest for i in schedule), Decimal("0"))
        assert engine.total_interest(Decimal("120000"), Decimal("5000"), Decimal("12")) == expected

    def test_validate_schedule_date(self, engine):
        """Test due dates must sit inside the liability's bounds."""
        engine.validate_schedule_date(date(2024, 2, 1), date(2024, 1, 1), date(2025, 1, 1))
        with pytest.raises(ValidationError, match="before the liability start date"):
            engine.validate_schedule_date(date(2023, 12, 1), date(2024, 1, 1))
        with pytest.raises(ValidationError, match="after the payoff date"):
            engine.validate_schedule_date(date(2025, 2, 1), date(2024, 1, 1), date(2025, 1, 1))


# =============================================================================
# Recalculation
# =============================================================================

class TestRecalculate:
    """Tests for recalculate and validate_amount_update."""

    def test_hold_end_date(self, engine):
        """Test the worked example: payment recomputed for a fixed end date."""
        impact = engine.recalculate(
            balance=Decimal("100000"),
            annual_rate=Decimal("10"),
            current_payment=Decimal("5000"),
            current_end_date=date(2025, 1, 1),
            changes=LiabilityChanges(),
            policy=AdjustmentPolicy.HOLD_END_DATE,
            as_of=date(2024, 1, 1),
        )
        assert impact.new_payment == Decimal("8791.59")
        assert impact.payment_change == impact.new_payment - impact.old_payment
        assert impact.new_end_date == impact.old_end_date
        assert impact.new_term_months == 12

    def test_hold_payment(self, engine):
        """Test that a rate cut shortens the term at the same payment."""
        impact = engine.recalculate(
            balance=Decimal("120000"),
            annual_rate=Decimal("12"),
            current_payment=Decimal("5000"),
            current_end_date=date(2026, 5, 1),
            changes=LiabilityChanges(new_annual_rate=Decimal("10")),
            policy=AdjustmentPolicy.HOLD_PAYMENT,
            as_of=date(2024, 1, 1),
        )
        assert impact.new_payment == impact.old_payment
        assert impact.payment_change == 0
        assert impact.old_term_months == 28
        assert impact.new_term_months < impact.old_term_months
        assert impact.term_change_months == impact.new_term_months - impact.old_term_months
        assert impact.interest_change < 0
        assert impact.new_annual_rate == Decimal("10")

    def test_new_total_owed_becomes_balance(self, engine):
        """Test that a raised total is what the new payment retires."""
        impact = engine.recalculate(
            balance=Decimal("100000"),
            annual_rate=Decimal("10"),
            current_payment=Decimal("5000"),
            current_end_date=date(2025, 1, 1),
            changes=LiabilityChanges(new_total_owed=Decimal("110000")),
            policy=AdjustmentPolicy.HOLD_END_DATE,
            as_of=date(2024, 1, 1),
        )
        assert impact.new_balance == Decimal("110000.00")
        assert impact.new_payment > Decimal("8791.59")

    def test_total_below_balance_rejected(self, engine):
        """Test that debt can't be reduced by editing the total."""
        with pytest.raises(ValidationError, match="Cannot reduce total amount"):
            engine.recalculate(
                balance=Decimal("100000"),
                annual_rate=Decimal("10"),
                current_payment=Decimal("5000"),
                current_end_date=date(2025, 1, 1),
                changes=LiabilityChanges(new_total_owed=Decimal("90000")),
                policy=AdjustmentPolicy.HOLD_PAYMENT,
                as_of=date(2024, 1, 1),
            )

    def test_validate_amount_update_message(self, engine):
        """Test the wording of the amount check."""
        message = (
            "Cannot reduce total amount below current balance (50000.00). "
            "You must pay off at least 10000.00 first."
        )
        with pytest.raises(ValidationError, match=re.escape(message)):
            engine.validate_amount_update(Decimal("50000"), Decimal("40000"))
        engine.validate_amount_update(Decimal("50000"), Decimal("50000"))

    def test_custom_payment_only(self, engine):
        """Test that a custom payment derives the end date."""
        impact = engine.recalculate(
            balance=Decimal("1200"),
            annual_rate=Decimal("0"),
            current_payment=Decimal("100"),
            current_end_date=date(2025, 1, 1),
            changes=LiabilityChanges(new_payment=Decimal("200")),
            policy=AdjustmentPolicy.CUSTOM,
            as_of=date(2024, 1, 1),
        )
        assert impact.new_payment == Decimal("200.00")
        assert impact.new_term_months == 6
        assert impact.new_end_date == date(2024, 7, 1)

    def test_custom_end_date_only(self, engine):
        """Test that a custom end date derives the payment."""
        impact = engine.recalculate(
            balance=Decimal("1200"),
            annual_rate=Decimal("0"),
            current_payment=Decimal("100"),
            current_end_date=date(2025, 1, 1),
            changes=LiabilityChanges(new_end_date=date(2024, 7, 1)),
            policy=AdjustmentPolicy.CUSTOM,
            as_of=date(2024, 1, 1),
        )
        assert impact.new_payment == Decimal("200.00")
        assert impact.end_date_change_days == (date(2024, 7, 1) - date(2025, 1, 1)).days

    def test_custom_needs_something(self, engine):
        """Test that a custom edit must give a payment or an end date."""
        with pytest.raises(ValidationError, match="custom adjustment"):
            engine.recalculate(
                balance=Decimal("1200"),
                annual_rate=Decimal("0"),
                current_payment=Decimal("100"),
                current_end_date=date(2025, 1, 1),
                changes=LiabilityChanges(),
                policy=AdjustmentPolicy.CUSTOM,
                as_of=date(2024, 1, 1),
            )

    @pytest.mark.parametrize("current_payment", [Decimal("0"), Decimal("500")])
    def test_hold_end_date_repairs_stalled_loan(self, engine, current_payment):
        """Test that a payment which never retires the balance can be recalculated."""
        impact = engine.recalculate(
            balance=Decimal("100000"),
            annual_rate=Decimal("10"),
            current_payment=current_payment,
            current_end_date=date(2025, 1, 1),
            changes=LiabilityChanges(),
            policy=AdjustmentPolicy.HOLD_END_DATE,
            as_of=date(2024, 1, 1),
        )
        assert impact.new_payment == Decimal("8791.59")
        assert impact.new_term_months == 12
        assert impact.old_term_months is None
        assert impact.term_change_months is None
        assert impact.old_total_interest is None
        assert impact.interest_change is None
        assert impact.end_date_change_days == 0

    def test_custom_end_date_without_current_end(self, engine):
        """Test a custom payoff date for a loan with no current payoff date."""
        impact = engine.recalculate(
            balance=Decimal("100000"),
            annual_rate=Decimal("10"),
            current_payment=Decimal("0"),
            current_end_date=None,
            changes=LiabilityChanges(new_end_date=date(2025, 1, 1)),
            policy=AdjustmentPolicy.CUSTOM,
            as_of=date(2024, 1, 1),
        )
        assert impact.new_payment == Decimal("8791.59")
        assert impact.old_end_date is None
        assert impact.end_date_change_days is None

    def test_hold_payment_still_needs_amortizing_payment(self, engine):
        """Test that holding a payment below the interest is rejected."""
        with pytest.raises(ValidationError, match="does not cover the periodic interest"):
            engine.recalculate(
                balance=Decimal("100000"),
                annual_rate=Decimal("10"),
                current_payment=Decimal("500"),
                current_end_date=date(2025, 1, 1),
                changes=LiabilityChanges(),
                policy=AdjustmentPolicy.HOLD_PAYMENT,
                as_of=date(2024, 1, 1),
            )

    def test_hold_end_date_needs_end_date(self, engine):
        """Test that there must be a payoff date to hold."""
        with pytest.raises(ValidationError, match="no payoff date to hold"):
            engine.recalculate(
                balance=Decimal("100000"),
                annual_rate=Decimal("10"),
                current_payment=Decimal("0"),
                current_end_date=None,
                changes=LiabilityChanges(),
                policy=AdjustmentPolicy.HOLD_END_DATE,
                as_of=date(2024, 1, 1),
            )

    def test_current_terms(self, engine):
        """Test the tolerant current-term lookup."""
        term, interest = engine.current_terms(Decimal("120000"), Decimal("5000"), Decimal("12"))
        assert term == 28
        assert interest > 0
        assert engine.current_terms(Decimal("100000"), Decimal("0"), Decimal("10")) == (None, None)


# =============================================================================
# Extra payments and payment impact
# =============================================================================

class TestExtraPayments:
    """Tests for extra_payment_options and payment_impact."""

    def test_all_options_offered(self, engine):
        """Test the four ways to use an extra payment."""
        options = engine.extra_payment_options(
            balance=Decimal("120000"),
            annual_rate=Decimal("12"),
            payment=Decimal("5000"),
            remaining_installments=28,
            extra_amount=Decimal("10000"),
        )
        by_strategy = {o.strategy: o for o in options}
        assert set(by_strategy) == set(ExtraPaymentStrategy)
        assert by_strategy[ExtraPaymentStrategy.REDUCE_PAYMENT].new_payment < Decimal("5000")
        assert by_strategy[ExtraPaymentStrategy.REDUCE_TERM].new_term_months < 28
        assert by_strategy[ExtraPaymentStrategy.REDUCE_TERM].interest_saved > 0
        assert by_strategy[ExtraPaymentStrategy.SKIP_PAYMENTS].skipped_payments == 2
        assert by_strategy[ExtraPaymentStrategy.REDUCE_PRINCIPAL].new_balance == Decimal("110000.00")

    def test_extra_must_be_positive(self, engine):
        """Test that a zero extra payment is rejected."""
        with pytest.raises(ValidationError):
            engine.extra_payment_options(
                Decimal("1000"), Decimal("0"), Decimal("100"), 10, Decimal("0")
            )

    def test_payment_impact(self, engine):
        """Test the effect of paying double ahead of the due date."""
        impact = engine.payment_impact(
            balance=Decimal("120000"),
            annual_rate=Decimal("12"),
            scheduled_payment=Decimal("5000"),
            amount_paid=Decimal("10000"),
            interest_paid=Decimal("1200"),
            payment_date=date(2024, 1, 20),
            next_due_date=date(2024, 1, 31),
        )
        assert impact.principal_paid == Decimal("8800.00")
        assert impact.new_balance == Decimal("111200.00")
        assert impact.installments_before == 28
        assert impact.installments_reduced > 0
        assert impact.days_ahead == 11
        assert impact.new_next_due_date == date(2024, 2, 29)


# =============================================================================
# Schedule service
# =============================================================================

def make_liability(**kwargs) -> Liability:
    defaults = dict(
        name="Car loan",
        current_balance=Decimal("100000"),
        annual_interest_rate=Decimal("10"),
        periodical_payment=Decimal("5000"),
        start_date=date(2024, 1, 1),
        next_due_date=date(2024, 2, 1),
        targeted_payoff_date=date(2025, 1, 1),
    )
    defaults.update(kwargs)
    return Liability(**defaults)


class RecordingRepository(InMemoryRepository):
    """Remembers the size of each inserted batch."""

    def __init__(self):
        super().__init__()
        self.batches = []

    async def insert_schedules(self, schedules):
        self.batches.append(len(schedules))
        return await super().insert_schedules(schedules)


@pytest.fixture
def repository():
    return RecordingRepository()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def service(repository, audit_storage):
    return LiabilityScheduleService(
        repository,
        audit_logger=AuditLogger(audit_storage),
        clock=FixedClock(date(2024, 1, 15)),
        settings=AmortizationSettings(schedule_insert_batch_size=2),
        reminder_days=[1, 3, 7],
    )


class TestScheduleService:
    """Tests for LiabilityScheduleService."""

    @pytest.mark.asyncio
    async def test_regenerate_keeps_history(self, service, repository):
        """Test that only pending rows are replaced."""
        liability = make_liability()
        repository.add_liability(liability)
        history = [
            LiabilitySchedule(
                liability_id=liability.id,
                due_date=date(2023, 11, 1),
                amount=Decimal("5000"),
                status=ScheduleStatus.COMPLETED,
            ),
            LiabilitySchedule(
                liability_id=liability.id,
                due_date=date(2023, 12, 1),
                amount=Decimal("5000"),
                status=ScheduleStatus.CANCELLED,
            ),
        ]
        pending = [
            LiabilitySchedule(liability_id=liability.id, due_date=date(2024, m, 1), amount=Decimal("5000"))
            for m in (2, 3, 4)
        ]
        repository.add_schedules(history + pending)

        rows = await service.regenerate_schedules(
            liability.id,
            balance=Decimal("10000"),
            payment=Decimal("2000"),
            annual_rate=Decimal("0"),
            start_date=date(2024, 2, 1),
        )

        stored = await repository.list_schedules(liability.id)
        kept = [s for s in stored if not s.is_pending]
        assert len(rows) == 5
        assert {s.id for s in kept} == {s.id for s in history}
        assert len(await repository.list_pending_schedules(liability.id)) == 5
        assert repository.batches == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_rows_carry_breakdown(self, service, repository):
        """Test schedule row metadata and reminder days."""
        liability = make_liability()
        repository.add_liability(liability)

        rows = await service.regenerate_schedules(
            liability.id, Decimal("10000"), Decimal("2000"), Decimal("0"), date(2024, 2, 1)
        )

        first = rows[0]
        assert first.reminder_days == [1, 3, 7]
        assert first.principal_component == Decimal("2000.00")
        assert first.interest_component == Decimal("0.00")
        assert first.metadata["payment_number"] == 1
        assert first.metadata["total_payments"] == 5
        assert rows[-1].remaining_balance == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_next_due_date_updated(self, service, repository, audit_storage):
        """Test that the liability points at the first new installment."""
        liability = make_liability(next_due_date=None)
        repository.add_liability(liability)

        await service.regenerate_schedules(
            liability.id, Decimal("10000"), Decimal("2000"), Decimal("0"), date(2024, 3, 5)
        )

        stored = await repository.get_liability(liability.id)
        assert stored.next_due_date == date(2024, 3, 5)
        assert audit_storage.events[-1].event_type == AuditEventType.SCHEDULES_REGENERATED

    @pytest.mark.asyncio
    async def test_invalid_parameters_delete_nothing(self, service, repository):
        """Test that a failing generation leaves pending rows in place."""
        liability = make_liability()
        repository.add_liability(liability)
        repository.add_schedules([
            LiabilitySchedule(liability_id=liability.id, due_date=date(2024, 2, 1), amount=Decimal("5000"))
        ])

        with pytest.raises(ValidationError):
            await service.regenerate_schedules(
                liability.id, Decimal("100000"), Decimal("100"), Decimal("12"), date(2024, 2, 1)
            )
        assert len(await repository.list_pending_schedules(liability.id)) == 1

    @pytest.mark.asyncio
    async def test_unknown_liability(self, service, repository):
        """Test that a missing liability is reported before any write."""
        liability = make_liability()

        with pytest.raises(NotFoundError):
            await service.regenerate_schedules(
                liability.id, Decimal("1000"), Decimal("500"), Decimal("0"), date(2024, 2, 1)
            )
        assert repository.batches == []

    def test_first_due_date(self, service):
        """Test the first installment still to come."""
        upcoming = make_liability(next_due_date=date(2024, 2, 1))
        assert service.first_due_date(upcoming, date(2024, 1, 15)) == date(2024, 2, 1)

        lapsed = make_liability(next_due_date=date(2024, 1, 31))
        assert service.first_due_date(lapsed, date(2024, 3, 15)) == date(2024, 3, 31)
        assert service.first_due_date(lapsed, date(2024, 2, 29)) == date(2024, 2, 29)
        assert service.first_due_date(lapsed, date(2024, 2, 1)) == date(2024, 2, 29)

        never_due = make_liability(next_due_date=None, start_date=date(2023, 11, 30))
        assert service.first_due_date(never_due, date(2024, 1, 15)) == date(2024, 1, 30)

    @pytest.mark.asyncio
    async def test_preview_then_apply(self, service, repository, audit_storage):
        """Test the preview/apply flow under hold-end-date."""
        liability = make_liability()
        repository.add_liability(liability)

        impact = await service.preview_recalculation(
            liability.id,
            LiabilityChanges(),
            AdjustmentPolicy.HOLD_END_DATE,
            as_of=date(2024, 1, 1),
        )
        assert impact.new_payment == Decimal("8791.59")
        assert await repository.list_schedules(liability.id) == []
        assert audit_storage.events[-1].event_type == AuditEventType.LIABILITY_RECALCULATED

        rows = await service.apply_recalculation(liability.id, impact)

        assert rows[0].due_date == date(2024, 2, 1)
        assert rows[-1].due_date <= date(2025, 1, 1)
        assert rows[-1].remaining_balance == Decimal("0.00")
        assert sum((r.principal_component for r in rows), Decimal("0")) == Decimal("100000.00")

    @pytest.mark.asyncio
    async def test_preview_stalled_liability(self, service, repository, audit_storage):
        """Test previewing a liability whose payment never retires it."""
        liability = make_liability(
            periodical_payment=Decimal("0"),
            targeted_payoff_date=None,
        )
        repository.add_liability(liability)

        impact = await service.preview_recalculation(
            liability.id,
            LiabilityChanges(new_end_date=date(2025, 1, 1)),
            AdjustmentPolicy.CUSTOM,
            as_of=date(2024, 1, 1),
        )

        assert impact.new_payment == Decimal("8791.59")
        assert impact.old_term_months is None
        assert impact.old_end_date is None
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.LIABILITY_RECALCULATED
        assert event.details["term_change_months"] is None

    @pytest.mark.asyncio
    async def test_preview_unknown_liability(self, service):
        """Test that previewing a missing liability fails."""
        with pytest.raises(NotFoundError):
            await service.preview_recalculation(
                make_liability().id, LiabilityChanges(), AdjustmentPolicy.HOLD_PAYMENT
            )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
