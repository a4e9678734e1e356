"""
Tracking Strategies

One class per way of representing a cycle's payment obligation:

    bill                   -> Bill
    scheduled_transaction  -> ScheduledPayment
    direct                 -> DirectTransaction (posted immediately)
    manual                 -> nothing (synthetic "cycle-{n}" marker)

DESIGN DECISION: The strategy is picked ONCE per container from a registry.
Nothing downstream branches on the tracking-method string.

Every persisted artifact carries the same metadata block binding it back to
(container_id, cycle_number), so any later lookup - by this strategy or a
different one - finds it.
"""

from abc import ABC, abstractmethod

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from obligation_core.models.obligation import (
    AmountMode,
    Bill,
    Cycle,
    Direction,
    DirectTransaction,
    FundType,
    RecurringContainer,
    ScheduledPayment,
    TrackingArtifact,
    TrackingMethod,
    TrackingResult,
    manual_marker,
)
from obligation_core.services.storage import (
    StorageConnectionError,
    TrackingStorageInterface,
)


def cycle_metadata(
    container: RecurringContainer,
    cycle: Cycle,
    method: TrackingMethod,
) -> dict:
    """The metadata block that ties an artifact to its cycle."""
    metadata = {
        "container_id": str(container.id),
        "cycle_number": cycle.cycle_number,
        "cycle_start_date": cycle.start_date.isoformat(),
        "cycle_end_date": cycle.end_date.isoformat(),
        "expected_date": cycle.expected_date.isoformat(),
        "payment_tracking_method": method.value,
    }
    if cycle.notes:
        metadata["notes"] = cycle.notes
    if cycle.minimum_amount is not None:
        metadata["minimum_amount"] = str(cycle.minimum_amount)
    return metadata


class TrackingStrategy(ABC):
    """Base for every tracking strategy."""

    method: TrackingMethod
    requires_account: bool = True
    artifact_name: str = "tracking"

    @abstractmethod
    async def materialize(
        self,
        repository: TrackingStorageInterface,
        container: RecurringContainer,
        cycle: Cycle,
        fund_type: FundType,
        attempts: int = 3,
    ) -> TrackingResult:
        """
        Produce the tracking for one cycle.

        Called only after validation passed and no artifact exists yet.
        """
        pass


class PersistedTracking(TrackingStrategy):
    """
    Strategies that write an artifact.

    The write goes through the repository's create-or-fetch, retried on
    connection errors only. Retrying is safe because the write is keyed by
    (container_id, cycle_number).
    """

    @abstractmethod
    def build(
        self,
        container: RecurringContainer,
        cycle: Cycle,
        fund_type: FundType,
    ) -> TrackingArtifact:
        pass

    @abstractmethod
    async def create(
        self,
        repository: TrackingStorageInterface,
        artifact: TrackingArtifact,
    ) -> tuple[TrackingArtifact, bool]:
        pass

    async def materialize(
        self,
        repository: TrackingStorageInterface,
        container: RecurringContainer,
        cycle: Cycle,
        fund_type: FundType,
        attempts: int = 3,
    ) -> TrackingResult:
        artifact = self.build(container, cycle, fund_type)
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=0.2, max=5),
            retry=retry_if_exception_type(StorageConnectionError),
            reraise=True,
        ):
            with attempt:
                stored, created = await self.create(repository, artifact)
        return TrackingResult(
            artifact_id=str(stored.id),
            method=self.method,
            created=created,
            artifact=stored,
        )


class BillTracking(PersistedTracking):
    method = TrackingMethod.BILL
    artifact_name = "bill"

    def build(
        self,
        container: RecurringContainer,
        cycle: Cycle,
        fund_type: FundType,
    ) -> Bill:
        if container.amount_mode == AmountMode.VARIABLE:
            bill_type = "recurring_variable"
        else:
            bill_type = "recurring_fixed"
        return Bill(
            container_id=container.id,
            cycle_number=cycle.cycle_number,
            title=container.title,
            description=f"{container.title} - Cycle {cycle.cycle_number}",
            amount=cycle.expected_amount,
            currency=container.currency,
            due_date=cycle.expected_date,
            linked_account_id=container.linked_account_id,
            category_id=container.category_id,
            bill_type=bill_type,
            recurrence_pattern=container.recurrence.unit.value,
            recurrence_interval=container.recurrence.step,
            metadata=cycle_metadata(container, cycle, self.method),
        )

    async def create(self, repository, artifact):
        return await repository.create_bill(artifact)


class ScheduledPaymentTracking(PersistedTracking):
    method = TrackingMethod.SCHEDULED_TRANSACTION
    artifact_name = "scheduled payment"

    def build(
        self,
        container: RecurringContainer,
        cycle: Cycle,
        fund_type: FundType,
    ) -> ScheduledPayment:
        # Payments against borrowed money are tracked as liability payments
        if fund_type == FundType.BORROWED:
            fund_type = FundType.LIABILITY
        return ScheduledPayment(
            container_id=container.id,
            cycle_number=cycle.cycle_number,
            title=container.title,
            description=f"{container.title} - Cycle {cycle.cycle_number}",
            amount=cycle.expected_amount,
            currency=container.currency,
            due_date=cycle.expected_date,
            linked_account_id=container.linked_account_id,
            category_id=container.category_id,
            direction=container.direction,
            fund_type=fund_type,
            specific_fund_id=container.specific_fund_id,
            metadata=cycle_metadata(container, cycle, self.method),
        )

    async def create(self, repository, artifact):
        return await repository.create_scheduled_payment(artifact)


class DirectTransactionTracking(PersistedTracking):
    method = TrackingMethod.DIRECT
    artifact_name = "transaction"

    def build(
        self,
        container: RecurringContainer,
        cycle: Cycle,
        fund_type: FundType,
    ) -> DirectTransaction:
        amount = cycle.expected_amount
        if container.direction == Direction.EXPENSE:
            amount = -amount
        return DirectTransaction(
            container_id=container.id,
            cycle_number=cycle.cycle_number,
            title=container.title,
            description=f"{container.title} - Cycle {cycle.cycle_number}",
            amount=amount,
            currency=container.currency,
            due_date=cycle.expected_date,
            linked_account_id=container.linked_account_id,
            category_id=container.category_id,
            direction=container.direction,
            fund_type=fund_type,
            metadata=cycle_metadata(container, cycle, self.method),
        )

    async def create(self, repository, artifact):
        return await repository.create_direct_transaction(artifact)


class ManualTracking(TrackingStrategy):
    """The user records payments themselves. Nothing is ever written."""

    method = TrackingMethod.MANUAL
    requires_account = False
    artifact_name = "manual tracking"

    async def materialize(
        self,
        repository: TrackingStorageInterface,
        container: RecurringContainer,
        cycle: Cycle,
        fund_type: FundType,
        attempts: int = 3,
    ) -> TrackingResult:
        return TrackingResult(
            artifact_id=manual_marker(cycle.cycle_number),
            method=self.method,
        )


STRATEGIES: dict[TrackingMethod, TrackingStrategy] = {
    TrackingMethod.BILL: BillTracking(),
    TrackingMethod.SCHEDULED_TRANSACTION: ScheduledPaymentTracking(),
    TrackingMethod.DIRECT: DirectTransactionTracking(),
    TrackingMethod.MANUAL: ManualTracking(),
}


def strategy_for(method: TrackingMethod) -> TrackingStrategy:
    return STRATEGIES[method]
