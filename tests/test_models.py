"""
Tests for the Obligation Core models, settings and audit trail

Test strategy:
1. Unit tests for models (validation, derived properties)
2. Unit tests for settings and the audit builders
3. Everything in memory; no external services
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from pydantic import TypeAdapter

from obligation_core.audit import AuditLogger, create_correlation_id
from obligation_core.config import (
    AmortizationSettings,
    BudgetSettings,
    SchedulingSettings,
    validate_all_settings,
)
from obligation_core.errors import BatchPartialFailure, ConfigurationError, ValidationError
from obligation_core.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from obligation_core.models.budget import (
    Budget,
    ExtendDecision,
    RecurrencePattern,
    RenewalDecision,
    RepeatDecision,
)
from obligation_core.models.liability import Liability, LiabilitySchedule
from obligation_core.models.obligation import (
    BatchResult,
    RecurringContainer,
    TrackingMethod,
    TrackingResult,
    manual_marker,
)
from obligation_core.models.recurrence import Frequency, RecurrenceDefinition
from obligation_core.services.storage import InMemoryAuditStorage


class TestRecurrenceDefinition:
    """Tests for the recurrence value object."""

    def test_case_insensitive_tokens(self):
        """Test that storage tokens are matched regardless of case."""
        definition = RecurrenceDefinition(frequency=" Monthly ", start_date=date(2024, 1, 1))
        assert definition.frequency == Frequency.MONTH

    def test_plural_custom_unit(self):
        """Test that plural custom units are accepted."""
        weeks = RecurrenceDefinition(
            frequency="custom", custom_unit="weeks", weekdays=[0], start_date=date(2024, 1, 1)
        )
        assert weeks.unit == Frequency.WEEK

    def test_custom_weekly_needs_weekdays(self):
        """Test that a custom weekly rule must name its weekdays."""
        with pytest.raises(ValueError, match="at least one weekday"):
            RecurrenceDefinition(frequency="custom", custom_unit="week", start_date=date(2024, 1, 1))

    def test_weekdays_deduplicated_and_sorted(self):
        """Test weekday ordering."""
        definition = RecurrenceDefinition(
            frequency="week", weekdays=[4, 0, 4], start_date=date(2024, 1, 1)
        )
        assert definition.weekdays == [0, 4]

    def test_anchor_day(self):
        """Test the explicit day of month wins over the start date."""
        assert RecurrenceDefinition(frequency="month", start_date=date(2024, 1, 31)).anchor_day == 31
        explicit = RecurrenceDefinition(
            frequency="month", day_of_month=15, start_date=date(2024, 1, 31)
        )
        assert explicit.anchor_day == 15


class TestObligationModels:
    """Tests for containers and tracking results."""

    def test_container_defaults(self):
        """Test container defaults and whitespace stripping."""
        container = RecurringContainer(
            title="  Rent  ",
            amount=Decimal("25000"),
            recurrence=RecurrenceDefinition(frequency="month", start_date=date(2024, 1, 1)),
        )
        assert container.title == "Rent"
        assert container.is_active
        assert container.payment_tracking_method == TrackingMethod.SCHEDULED_TRANSACTION
        assert container.start_date == date(2024, 1, 1)
        assert container.end_date is None

    def test_container_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            RecurringContainer(
                title="Rent",
                amount=Decimal("-1"),
                recurrence=RecurrenceDefinition(frequency="month", start_date=date(2024, 1, 1)),
            )

    def test_manual_result_is_not_persisted(self):
        """Test the synthetic marker result."""
        result = TrackingResult(artifact_id=manual_marker(4), method=TrackingMethod.MANUAL)
        assert result.artifact_id == "cycle-4"
        assert not result.is_persisted
        assert not result.created

    def test_batch_result_raise_for_errors(self):
        """Test that collected errors can be raised on demand."""
        BatchResult(processed=3).raise_for_errors()
        result = BatchResult(processed=3, errors=["Container A: x", "Container B: y"])
        with pytest.raises(BatchPartialFailure, match="2 container\\(s\\) failed") as exc_info:
            result.raise_for_errors()
        assert exc_info.value.errors == result.errors


class TestLiabilityModels:
    """Tests for liability models."""

    def test_payoff_before_start_rejected(self):
        """Test the liability date order check."""
        with pytest.raises(ValueError, match="Payoff date cannot be before start date"):
            Liability(
                name="Loan",
                current_balance=Decimal("1000"),
                periodical_payment=Decimal("100"),
                start_date=date(2024, 1, 1),
                targeted_payoff_date=date(2023, 1, 1),
            )

    def test_schedule_metadata_properties(self):
        """Test that the installment breakdown reads back as Decimal."""
        row = LiabilitySchedule(
            liability_id=uuid4(),
            due_date=date(2024, 2, 1),
            amount=Decimal("5000"),
            metadata={
                "principal_component": "3800.00",
                "interest_component": "1200.00",
                "remaining_balance": "116200.00",
            },
        )
        assert row.principal_component == Decimal("3800.00")
        assert row.interest_component == Decimal("1200.00")
        assert row.remaining_balance == Decimal("116200.00")
        assert row.is_pending


class TestBudgetModels:
    """Tests for budget models."""

    def test_budget_dates(self):
        """Test date order and derived properties."""
        budget = Budget(
            user_id=uuid4(),
            name="Groceries",
            amount=Decimal("10000"),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
        )
        assert budget.duration_days == 30
        assert not budget.is_recurring
        with pytest.raises(ValueError, match="End date cannot be before start date"):
            Budget(
                user_id=uuid4(),
                name="Bad",
                amount=Decimal("1"),
                start_date=date(2024, 2, 1),
                end_date=date(2024, 1, 1),
            )

    def test_renewal_decision_discriminator(self):
        """Test that decisions parse into their own type."""
        adapter = TypeAdapter(RenewalDecision)
        budget_id = uuid4()
        extend = adapter.validate_python({
            "decision": "extend",
            "budget_id": str(budget_id),
            "recurrence_pattern": "monthly",
        })
        repeat = adapter.validate_python({"decision": "repeat", "budget_id": str(budget_id)})
        assert isinstance(extend, ExtendDecision)
        assert extend.recurrence_pattern == RecurrencePattern.MONTHLY
        assert isinstance(repeat, RepeatDecision)
        assert repeat.rollover is None
        with pytest.raises(ValueError):
            adapter.validate_python({"decision": "pause", "budget_id": str(budget_id)})


class TestErrors:
    """Tests for the error types."""

    def test_validation_error_is_value_error(self):
        """Test that callers catching ValueError see domain errors."""
        error = ValidationError("Bad amount", field="amount")
        assert isinstance(error, ValueError)
        assert error.field == "amount"
        assert str(error) == "Bad amount"

    def test_configuration_error_is_separate(self):
        """Test that configuration errors are not validation errors."""
        error = ConfigurationError("No account", container_id="abc")
        assert not isinstance(error, ValueError)
        assert error.container_id == "abc"


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_defaults(self):
        """Test the default tunables."""
        scheduling = SchedulingSettings()
        assert scheduling.default_lead_days == 3
        assert scheduling.min_open_ended_cycles == 6
        assert scheduling.reminder_days_list == [1, 3, 7]
        assert AmortizationSettings().max_installments == 600
        assert BudgetSettings().alert_thresholds_list == [50, 80, 100]

    def test_environment_override(self, monkeypatch):
        """Test that environment variables override defaults."""
        monkeypatch.setenv("OBLIGATION_BUDGET_ALERT_THRESHOLDS", "75, 100")
        monkeypatch.setenv("OBLIGATION_SCHEDULING_DEFAULT_LEAD_DAYS", "5")
        assert BudgetSettings().alert_thresholds_list == [75, 100]
        assert SchedulingSettings().default_lead_days == 5

    def test_negative_reminder_days_rejected(self):
        """Test reminder day validation."""
        with pytest.raises(ValueError):
            SchedulingSettings(default_reminder_days="1,-3")

    def test_validate_all_settings(self):
        """Test the startup check."""
        results = validate_all_settings()
        assert results["scheduling"] is True
        assert results["budget"] is True


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRACKING_CREATED,
            description="Created bill for cycle 1",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.is_user_action is False

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        container_id = uuid4()
        event = AuditEventBuilder.tracking_created(
            container_id=container_id,
            cycle_number=3,
            method="bill",
            artifact_id="abc",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "tracking_created"
        assert log_dict["entity_id"] == str(container_id)
        assert log_dict["details"]["cycle_number"] == 3
        assert log_dict["correlation_id"] is None

    def test_batch_completed_severity(self):
        """Test that a batch with failures is a warning."""
        clean = AuditEventBuilder.batch_completed(date(2024, 1, 1), 5, 2, 0)
        failed = AuditEventBuilder.batch_completed(date(2024, 1, 1), 5, 2, 1)
        assert clean.severity == AuditSeverity.INFO
        assert failed.severity == AuditSeverity.WARNING
        assert failed.details["run_date"] == "2024-01-01"

    def test_budget_renewed_event_type(self):
        """Test repeat and extend audit as different events."""
        old, new = uuid4(), uuid4()
        repeated = AuditEventBuilder.budget_renewed(old, new, "0", is_user_action=False)
        extended = AuditEventBuilder.budget_renewed(old, new, "0", "monthly", extended=True)
        assert repeated.event_type == AuditEventType.BUDGET_REPEATED
        assert repeated.is_user_action is False
        assert extended.event_type == AuditEventType.BUDGET_EXTENDED
        assert extended.details["recurrence_pattern"] == "monthly"

    def test_transaction_exclusion_changed(self):
        """Test exclude and include map to their own events."""
        excluded = AuditEventBuilder.transaction_exclusion_changed(uuid4(), uuid4(), True, "refund")
        included = AuditEventBuilder.transaction_exclusion_changed(uuid4(), uuid4(), False)
        assert excluded.event_type == AuditEventType.TRANSACTION_EXCLUDED
        assert excluded.details["reason"] == "refund"
        assert included.event_type == AuditEventType.TRANSACTION_INCLUDED

    def test_system_error(self):
        """Test AuditEventBuilder.system_error."""
        correlation_id = create_correlation_id()
        event = AuditEventBuilder.system_error(
            error_type="daily_job_partial_failure",
            error_message="Container Rent: boom",
            correlation_id=correlation_id,
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.correlation_id == correlation_id
        assert event.error_message == "Container Rent: boom"


class BrokenAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise RuntimeError("audit store unavailable")


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_persists_events(self):
        """Test that events reach the store."""
        storage = InMemoryAuditStorage()
        logger = AuditLogger(storage)
        correlation_id = create_correlation_id()

        await logger.log_batch_completed(date(2024, 1, 1), 2, 1, 0, correlation_id)
        await logger.log_error("boom", "it broke", correlation_id=correlation_id)

        events = await storage.get_events_by_correlation_id(correlation_id)
        assert [e.event_type for e in events] == [
            AuditEventType.BATCH_COMPLETED,
            AuditEventType.SYSTEM_ERROR,
        ]

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        """Test that a broken audit store never breaks the caller."""
        logger = AuditLogger(BrokenAuditStorage())
        event = AuditEventBuilder.system_error("x", "y")
        assert await logger.log(event) is False

    @pytest.mark.asyncio
    async def test_without_storage(self):
        """Test that logging without a store succeeds."""
        assert await AuditLogger().log(AuditEventBuilder.system_error("x", "y")) is True


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
