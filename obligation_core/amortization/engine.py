"""
Amortization Engine

Fixed-payment amortization over a declining balance. Pure Decimal math:
no storage, no clock, no logging.

    i = annual_rate / 1200                      (monthly rate, rate in percent)
    P = B * i * (1+i)^n / ((1+i)^n - 1)         (i > 0)
    P = B / n                                   (i == 0)

Each period:
    interest  = round(remaining * i, 2)
    principal = payment - interest
The final period is truncated so it retires exactly what is left:
    principal = remaining, payment = remaining + interest

CRITICAL: Amounts are quantized to 2 places (ROUND_HALF_UP) at every step.
The principal components of a schedule therefore sum to the starting
balance exactly, and the last remaining_balance is exactly 0.
"""

from datetime import date, timedelta
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Iterator, Optional

from dateutil.relativedelta import relativedelta

from obligation_core.config import AmortizationSettings, get_settings
from obligation_core.errors import ValidationError
from obligation_core.models.liability import (
    AdjustmentPolicy,
    ExtraPaymentOption,
    ExtraPaymentStrategy,
    Installment,
    LiabilityChanges,
    PaymentBreakdown,
    PaymentImpact,
    RecalculationImpact,
)
from obligation_core.models.recurrence import MONTHS_PER_UNIT, Frequency


CENT = Decimal("0.01")
ZERO = Decimal("0")

# Annual rate (percent) divided by this gives the per-period rate
_RATE_DIVISOR = {
    Frequency.DAY: Decimal("36500"),
    Frequency.WEEK: Decimal("5200"),
    Frequency.MONTH: Decimal("1200"),
    Frequency.QUARTER: Decimal("400"),
    Frequency.YEAR: Decimal("100"),
}


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def period_rate(annual_rate: Decimal, frequency: Frequency = Frequency.MONTH) -> Decimal:
    """Per-period rate for an annual percentage rate."""
    divisor = _RATE_DIVISOR.get(frequency, _RATE_DIVISOR[Frequency.MONTH])
    return Decimal(annual_rate) / divisor


def monthly_rate(annual_rate: Decimal) -> Decimal:
    return period_rate(annual_rate, Frequency.MONTH)


def add_periods(first: date, periods: int, frequency: Frequency = Frequency.MONTH) -> date:
    """
    The due date `periods` installments after `first`.

    Month-based dates are computed from `first` with its day as the anchor,
    so a Jan 31 schedule clamps to Feb 29 and recovers to Mar 31.
    """
    if frequency == Frequency.DAY:
        return first + timedelta(days=periods)
    if frequency == Frequency.WEEK:
        return first + timedelta(weeks=periods)
    months = periods * MONTHS_PER_UNIT.get(frequency, 1)
    return first + relativedelta(months=months, day=first.day)


def months_between(start: date, end: date) -> int:
    """Whole months from start to end, counting a partial month as one."""
    if end <= start:
        return 0
    delta = relativedelta(end, start)
    months = delta.years * 12 + delta.months
    if delta.days > 0:
        months += 1
    return months


class AmortizationEngine:
    """
    Level payments, terms, schedules and recalculation impacts.
    """

    def __init__(self, settings: Optional[AmortizationSettings] = None):
        self._settings = settings or get_settings().amortization

    # =========================================================================
    # Core formulas
    # =========================================================================

    @staticmethod
    def level_payment(
        balance: Decimal,
        annual_rate: Decimal,
        periods: int,
        frequency: Frequency = Frequency.MONTH,
    ) -> Decimal:
        """
        Installment that retires `balance` in exactly `periods` payments.

        Raises:
            ValidationError: If periods < 1
        """
        if periods < 1:
            raise ValidationError("Number of installments must be at least 1", field="periods")
        balance = Decimal(balance)
        if balance <= 0:
            return ZERO.quantize(CENT)
        i = period_rate(annual_rate, frequency)
        if i == 0:
            return quantize(balance / periods)
        factor = (1 + i) ** periods
        return quantize(balance * i * factor / (factor - 1))

    @staticmethod
    def remaining_term(
        balance: Decimal,
        payment: Decimal,
        annual_rate: Decimal,
        frequency: Frequency = Frequency.MONTH,
    ) -> int:
        """
        Number of installments of `payment` needed to retire `balance`.

        Raises:
            ValidationError: If the payment is not positive, or does not
                cover one period's interest (the balance would never shrink)
        """
        balance = Decimal(balance)
        payment = Decimal(payment)
        if balance <= 0:
            return 0
        if payment <= 0:
            raise ValidationError("Payment must be greater than zero", field="payment")

        i = period_rate(annual_rate, frequency)
        if i == 0:
            return int((balance / payment).to_integral_value(rounding=ROUND_CEILING))

        if payment <= balance * i:
            raise ValidationError(
                f"Payment {payment} does not cover the periodic interest "
                f"({quantize(balance * i)}); the balance would never be repaid",
                field="payment",
            )
        n = -(1 - balance * i / payment).ln() / (1 + i).ln()
        # Absorb float-like noise so an exact term is not rounded up
        return int((n - Decimal("1e-9")).to_integral_value(rounding=ROUND_CEILING))

    def _amortize(
        self,
        balance: Decimal,
        payment: Decimal,
        rate: Decimal,
        periods_limit: Optional[int] = None,
    ) -> Iterator[tuple[Decimal, Decimal, Decimal, Decimal]]:
        """
        Yields (payment, principal, interest, remaining) per period.

        When periods_limit is given, the installment at that position pays
        off whatever is left (a balloon). Without it the loop is bounded by
        max_installments.
        """
        remaining = quantize(Decimal(balance))
        payment = quantize(Decimal(payment))
        number = 0
        while remaining > 0:
            number += 1
            if periods_limit is None and number > self._settings.max_installments:
                raise ValidationError(
                    f"Schedule would exceed {self._settings.max_installments} installments",
                    field="payment",
                )
            interest = quantize(remaining * rate)
            if remaining + interest <= payment or number == periods_limit:
                principal = remaining
                amount = remaining + interest
            else:
                principal = payment - interest
                if principal <= 0:
                    raise ValidationError(
                        f"Payment {payment} does not cover the periodic interest ({interest})",
                        field="payment",
                    )
                amount = payment
            remaining -= principal
            yield amount, principal, interest, remaining

    # =========================================================================
    # Schedules
    # =========================================================================

    def generate_schedule(
        self,
        balance: Decimal,
        payment: Decimal,
        annual_rate: Decimal,
        first_due_date: date,
        end_date: Optional[date] = None,
        frequency: Frequency = Frequency.MONTH,
    ) -> list[Installment]:
        """
        Installments from first_due_date until the balance reaches zero.

        When end_date is given and the next due date would fall after it,
        the last installment inside the window retires the whole remainder.

        Raises:
            ValidationError: first_due_date after end_date, a payment that
                never amortizes, or a schedule longer than max_installments
        """
        periods_limit = None
        if end_date is not None:
            if first_due_date > end_date:
                raise ValidationError(
                    "First due date cannot be after the end date",
                    field="first_due_date",
                )
            periods_limit = 1
            while add_periods(first_due_date, periods_limit, frequency) <= end_date:
                periods_limit += 1
                if periods_limit > self._settings.max_installments:
                    raise ValidationError(
                        f"Schedule would exceed {self._settings.max_installments} installments",
                        field="end_date",
                    )

        rate = period_rate(annual_rate, frequency)
        installments = []
        rows = self._amortize(balance, payment, rate, periods_limit)
        for index, (amount, principal, interest, remaining) in enumerate(rows):
            installments.append(Installment(
                number=index + 1,
                due_date=add_periods(first_due_date, index, frequency),
                payment=amount,
                principal=principal,
                interest=interest,
                remaining_balance=remaining,
            ))
        return installments

    def total_interest(
        self,
        balance: Decimal,
        payment: Decimal,
        annual_rate: Decimal,
        frequency: Frequency = Frequency.MONTH,
    ) -> Decimal:
        """Sum of interest paid retiring `balance` with `payment` per period."""
        rate = period_rate(annual_rate, frequency)
        total = ZERO
        for _, _, interest, _ in self._amortize(balance, payment, rate):
            total += interest
        return quantize(total)

    def current_terms(
        self,
        balance: Decimal,
        payment: Decimal,
        annual_rate: Decimal,
    ) -> tuple[Optional[int], Optional[Decimal]]:
        """
        (remaining term, total interest) at the current payment.

        (None, None) when the payment never retires the balance, so a loan
        in that state can still be repaired by a recalculation.
        """
        try:
            term = self.remaining_term(balance, payment, annual_rate)
            return term, self.total_interest(balance, payment, annual_rate)
        except ValidationError:
            return None, None

    @staticmethod
    def validate_schedule_date(
        due_date: date,
        start_date: date,
        end_date: Optional[date] = None,
    ) -> None:
        """
        Raises:
            ValidationError: If due_date is outside [start_date, end_date]
        """
        if due_date < start_date:
            raise ValidationError(
                f"Due date {due_date.isoformat()} is before the liability start date "
                f"{start_date.isoformat()}",
                field="due_date",
            )
        if end_date is not None and due_date > end_date:
            raise ValidationError(
                f"Due date {due_date.isoformat()} is after the payoff date {end_date.isoformat()}",
                field="due_date",
            )

    # =========================================================================
    # Single payments
    # =========================================================================

    @staticmethod
    def payment_breakdown(
        balance: Decimal,
        annual_rate: Decimal,
        payment: Decimal,
        frequency: Frequency = Frequency.MONTH,
    ) -> PaymentBreakdown:
        """
        How one payment splits between interest and principal.

        A payment at or above balance + interest retires the balance and is
        capped at that amount.
        """
        balance = quantize(Decimal(balance))
        payment = quantize(Decimal(payment))
        interest = quantize(balance * period_rate(annual_rate, frequency))
        if payment >= balance + interest:
            return PaymentBreakdown(
                payment=balance + interest,
                principal=balance,
                interest=interest,
                remaining_balance=ZERO.quantize(CENT),
                is_payoff=True,
            )
        principal = payment - interest
        return PaymentBreakdown(
            payment=payment,
            principal=principal,
            interest=interest,
            remaining_balance=balance - principal,
        )

    def payment_impact(
        self,
        balance: Decimal,
        annual_rate: Decimal,
        scheduled_payment: Decimal,
        amount_paid: Decimal,
        interest_paid: Decimal,
        payment_date: date,
        fees_paid: Decimal = ZERO,
        next_due_date: Optional[date] = None,
        frequency: Frequency = Frequency.MONTH,
    ) -> PaymentImpact:
        """
        Effect of an actual payment on the balance and the schedule.

        Every whole extra installment's worth paid on top of the scheduled
        amount moves the next due date one period later.
        """
        balance = Decimal(balance)
        scheduled_payment = Decimal(scheduled_payment)
        amount_paid = Decimal(amount_paid)
        principal_paid = quantize(amount_paid - Decimal(interest_paid) - Decimal(fees_paid))
        new_balance = quantize(max(ZERO, balance - principal_paid))

        before = after = 0
        if scheduled_payment > 0:
            before = self.remaining_term(balance, scheduled_payment, annual_rate, frequency)
            after = self.remaining_term(new_balance, scheduled_payment, annual_rate, frequency)

        days_ahead = 0
        new_next_due_date = None
        if next_due_date is not None:
            days_ahead = max(0, (next_due_date - payment_date).days)
            if scheduled_payment > 0 and amount_paid > scheduled_payment:
                extra_installments = int((amount_paid - scheduled_payment) // scheduled_payment)
                if extra_installments > 0:
                    new_next_due_date = add_periods(next_due_date, extra_installments, frequency)

        return PaymentImpact(
            principal_paid=principal_paid,
            new_balance=new_balance,
            installments_before=before,
            installments_after=after,
            installments_reduced=max(0, before - after),
            days_ahead=days_ahead,
            new_next_due_date=new_next_due_date,
        )

    def extra_payment_options(
        self,
        balance: Decimal,
        annual_rate: Decimal,
        payment: Decimal,
        remaining_installments: int,
        extra_amount: Decimal,
    ) -> list[ExtraPaymentOption]:
        """
        The ways a one-off extra payment can be used.

        Options that would not help (a payment that does not drop, a term
        that does not shorten) are left out. reduce_principal is always offered.

        Raises:
            ValidationError: If extra_amount is not positive
        """
        extra_amount = Decimal(extra_amount)
        if extra_amount <= 0:
            raise ValidationError("Extra payment must be greater than zero", field="extra_amount")
        if remaining_installments < 1:
            return []

        payment = quantize(Decimal(payment))
        new_balance = quantize(max(ZERO, Decimal(balance) - extra_amount))
        old_interest = self.total_interest(balance, payment, annual_rate)
        options = []

        new_payment = self.level_payment(new_balance, annual_rate, remaining_installments)
        if new_payment < payment:
            options.append(ExtraPaymentOption(
                strategy=ExtraPaymentStrategy.REDUCE_PAYMENT,
                new_balance=new_balance,
                new_payment=new_payment,
                new_term_months=remaining_installments,
                interest_saved=old_interest - self.total_interest(
                    new_balance, new_payment, annual_rate
                ),
                description=f"Lower your payment to {new_payment} while keeping the same end date",
            ))

        new_term = self.remaining_term(new_balance, payment, annual_rate)
        if new_term < remaining_installments:
            saved = remaining_installments - new_term
            options.append(ExtraPaymentOption(
                strategy=ExtraPaymentStrategy.REDUCE_TERM,
                new_balance=new_balance,
                new_payment=payment,
                new_term_months=new_term,
                interest_saved=old_interest - self.total_interest(
                    new_balance, payment, annual_rate
                ),
                description=f"Finish {saved} installment(s) earlier",
            ))

        skipped = int(extra_amount // payment) if payment > 0 else 0
        if 0 < skipped < remaining_installments:
            options.append(ExtraPaymentOption(
                strategy=ExtraPaymentStrategy.SKIP_PAYMENTS,
                new_balance=new_balance,
                new_payment=payment,
                new_term_months=remaining_installments,
                skipped_payments=skipped,
                interest_saved=ZERO,
                description=f"Pre-pay the next {skipped} installment(s)",
            ))

        options.append(ExtraPaymentOption(
            strategy=ExtraPaymentStrategy.REDUCE_PRINCIPAL,
            new_balance=new_balance,
            new_payment=payment,
            new_term_months=remaining_installments,
            interest_saved=ZERO,
            description=f"Keep everything the same but owe {quantize(extra_amount)} less",
        ))
        return options

    # =========================================================================
    # Recalculation
    # =========================================================================

    @staticmethod
    def validate_amount_update(current_balance: Decimal, new_total: Decimal) -> None:
        """
        Raises:
            ValidationError: If new_total is below current_balance
        """
        current_balance = Decimal(current_balance)
        new_total = Decimal(new_total)
        if new_total < current_balance:
            shortfall = quantize(current_balance - new_total)
            raise ValidationError(
                f"Cannot reduce total amount below current balance "
                f"({quantize(current_balance)}). You must pay off at least {shortfall} first.",
                field="new_total_owed",
            )

    def recalculate(
        self,
        balance: Decimal,
        annual_rate: Decimal,
        current_payment: Decimal,
        current_end_date: Optional[date],
        changes: LiabilityChanges,
        policy: AdjustmentPolicy,
        as_of: date,
    ) -> RecalculationImpact:
        """
        Before/after impact of editing a liability. Nothing is persisted.

        Args:
            balance: Current outstanding balance
            annual_rate: Current annual rate (percent)
            current_payment: Current installment
            current_end_date: Current payoff date, None when the current
                payment never retires the balance
            changes: Proposed edits
            policy: What stays fixed
            as_of: Date the new schedule is measured from

        Raises:
            ValidationError: New total owed below the balance, a CUSTOM edit
                with neither payment nor end date, HOLD_END_DATE with no end
                date to hold, or a new payment that cannot retire the balance
        """
        balance = Decimal(balance)
        current_payment = quantize(Decimal(current_payment))

        new_balance = balance
        if changes.new_total_owed is not None:
            self.validate_amount_update(balance, changes.new_total_owed)
            new_balance = Decimal(changes.new_total_owed)
        new_rate = annual_rate if changes.new_annual_rate is None else changes.new_annual_rate

        old_term, old_interest = self.current_terms(balance, current_payment, annual_rate)

        if policy == AdjustmentPolicy.HOLD_PAYMENT:
            new_payment = current_payment
            new_term = self.remaining_term(new_balance, new_payment, new_rate)
            new_end_date = as_of + relativedelta(months=new_term)

        elif policy == AdjustmentPolicy.HOLD_END_DATE:
            if current_end_date is None:
                raise ValidationError(
                    "There is no payoff date to hold; give a new end date with a custom adjustment",
                    field="current_end_date",
                )
            new_end_date = current_end_date
            new_term = max(1, months_between(as_of, current_end_date))
            new_payment = self.level_payment(new_balance, new_rate, new_term)

        else:
            if changes.new_payment is None and changes.new_end_date is None:
                raise ValidationError(
                    "A custom adjustment needs a new payment, a new end date, or both",
                    field="new_payment",
                )
            if changes.new_payment is not None:
                new_payment = quantize(changes.new_payment)
                if changes.new_end_date is not None:
                    new_end_date = changes.new_end_date
                    new_term = max(1, months_between(as_of, new_end_date))
                else:
                    new_term = self.remaining_term(new_balance, new_payment, new_rate)
                    new_end_date = as_of + relativedelta(months=new_term)
            else:
                new_end_date = changes.new_end_date
                new_term = max(1, months_between(as_of, new_end_date))
                new_payment = self.level_payment(new_balance, new_rate, new_term)

        new_interest = self.total_interest(new_balance, new_payment, new_rate)

        return RecalculationImpact(
            policy=policy,
            old_payment=current_payment,
            new_payment=new_payment,
            payment_change=new_payment - current_payment,
            old_term_months=old_term,
            new_term_months=new_term,
            term_change_months=None if old_term is None else new_term - old_term,
            old_total_interest=old_interest,
            new_total_interest=new_interest,
            interest_change=None if old_interest is None else new_interest - old_interest,
            old_end_date=current_end_date,
            new_end_date=new_end_date,
            end_date_change_days=(
                None if current_end_date is None else (new_end_date - current_end_date).days
            ),
            new_balance=quantize(new_balance),
            new_annual_rate=Decimal(new_rate),
        )
