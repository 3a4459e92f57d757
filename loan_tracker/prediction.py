"""Payoff prediction from the recent payment trend.

The predictor assumes the borrower keeps paying the average of their recent
payments at their average cadence, and that the rate in force today stays in
force. It steps the balance forward one payment period at a time until it is
paid off.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Sequence

from .data_models import Loan, Payment, Prediction, ReferenceRate
from .rates import effective_rate, normalize_rates, normalize_reference_rates
from .utils import days_between, start_of_day

logger = logging.getLogger(__name__)

MAX_ITERATIONS = 600  # 50 years of monthly payments
HIGH_VARIATION_THRESHOLD = Decimal("0.3")
MIN_PAYMENTS = 3
HIGH_CONFIDENCE_PAYMENTS = 12
MEDIUM_CONFIDENCE_PAYMENTS = 6
RECENT_PAYMENTS = 12
DEFAULT_DAYS_BETWEEN_PAYMENTS = Decimal(30)
DAYS_PER_MONTH = Decimal(30)
DAYS_PER_YEAR = Decimal(365)
PAID_OFF_THRESHOLD = Decimal("0.01")

CONFIDENCE_LEVELS = ("low", "medium", "high")


def _recent_payments(payments: Iterable[Payment]) -> List[Payment]:
    """Return the most recent payments in chronological order.

    Payments sharing a day keep their recorded order, so the later-recorded
    ones survive the cut.
    """
    chronological = sorted(payments, key=lambda p: start_of_day(p.date))
    return chronological[-RECENT_PAYMENTS:]


def _average_gap(dates: Sequence[date]) -> Decimal:
    ordered = sorted(start_of_day(d) for d in dates)
    if len(ordered) < 2:
        return DEFAULT_DAYS_BETWEEN_PAYMENTS
    gaps = [days_between(a, b) for a, b in zip(ordered, ordered[1:])]
    return Decimal(sum(gaps)) / Decimal(len(gaps))


def coefficient_of_variation(amounts: Sequence[Decimal]) -> Decimal:
    """Population standard deviation of ``amounts`` divided by their mean."""
    if not amounts:
        return Decimal("0")
    mean = sum(amounts, Decimal("0")) / len(amounts)
    if mean == 0:
        return Decimal("0")
    variance = sum(((a - mean) ** 2 for a in amounts), Decimal("0")) / len(amounts)
    return variance.sqrt() / mean


def confidence_level(payment_count: int, variation: Decimal) -> str:
    """Rate how far the trend can be trusted.

    Twelve or more payments give ``high``, six or more ``medium``, fewer
    ``low``. Irregular amounts (coefficient of variation above 0.3) lower the
    rating by one level.
    """
    if payment_count >= HIGH_CONFIDENCE_PAYMENTS:
        level = 2
    elif payment_count >= MEDIUM_CONFIDENCE_PAYMENTS:
        level = 1
    else:
        level = 0
    if variation > HIGH_VARIATION_THRESHOLD:
        level = max(level - 1, 0)
    return CONFIDENCE_LEVELS[level]


def predict_payoff(
    loan: Loan,
    payments: Iterable[Payment],
    current_balance: Decimal,
    reference_rates: Iterable[ReferenceRate] = (),
    as_of: Optional[date] = None,
) -> Optional[Prediction]:
    """Estimate when the loan will be paid off.

    Returns ``None`` when there are fewer than three payments, when nothing is
    owed, or when the average payment does not cover the interest accruing
    over an average period (the loan would never be paid off at this trend).
    """
    payments = list(payments)
    if len(payments) < MIN_PAYMENTS or current_balance <= 0:
        return None

    as_of = start_of_day(as_of or date.today())
    recent = _recent_payments(payments)
    amounts = [p.amount for p in recent]
    average_payment = sum(amounts, Decimal("0")) / len(amounts)
    period_days = _average_gap([p.date for p in recent])

    current_rate = effective_rate(
        as_of, normalize_rates(loan.rates), normalize_reference_rates(reference_rates)
    )
    daily_rate = current_rate / DAYS_PER_YEAR / Decimal(100)

    balance = current_balance
    total_interest = Decimal("0")
    elapsed_days = Decimal("0")
    months = Decimal("0")
    iterations = 0
    while balance > PAID_OFF_THRESHOLD and iterations < MAX_ITERATIONS:
        period_interest = balance * daily_rate * period_days
        principal_payment = min(average_payment - period_interest, balance)
        if principal_payment <= 0:
            logger.debug(
                "Average payment %s does not cover interest %s; no payoff",
                average_payment,
                period_interest,
            )
            return None
        balance -= principal_payment
        total_interest += period_interest
        elapsed_days += period_days
        months += period_days / DAYS_PER_MONTH
        iterations += 1

    if balance > PAID_OFF_THRESHOLD:
        logger.debug("Payoff simulation stopped after %d periods", iterations)

    whole_days = int(elapsed_days.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return Prediction(
        average_payment=average_payment,
        estimated_months_left=int(months.quantize(Decimal("1"), rounding=ROUND_HALF_UP)),
        estimated_years_left=(months / 12).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP),
        estimated_payoff_date=as_of + timedelta(days=whole_days),
        total_estimated_interest=total_interest,
        confidence=confidence_level(len(recent), coefficient_of_variation(amounts)),
    )
