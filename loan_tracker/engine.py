"""Core calculation engine for the loan tracker.

This module builds the amortization ledger of a loan from its recorded
payments. Interest accrues daily between payments over a 365-day year, across
any rate changes within the period (see :mod:`loan_tracker.interest`), and
each payment settles outstanding interest before reducing the principal (see
:mod:`loan_tracker.allocator`). The ledger is a pure projection of its inputs
and is recomputed from scratch on every call.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, getcontext
from typing import Dict, Iterable, List, Optional, Sequence

from .allocator import allocate
from .data_models import Loan, LoanSummary, Payment, PaymentLog, ReferenceRate
from .interest import accrue
from .rates import RateCache, effective_rate, normalize_rates, normalize_reference_rates
from .utils import days_between, start_of_day

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

START_OF_LOAN_NOTE = "Start of Loan"


def _sort_payments(payments: Iterable[Payment]) -> List[Payment]:
    # sorted() is stable: payments on the same day keep their recorded order
    return sorted(payments, key=lambda p: start_of_day(p.date))


def calculate_loan_series(
    loan: Optional[Loan],
    payments: Iterable[Payment],
    reference_rates: Iterable[ReferenceRate] = (),
) -> List[PaymentLog]:
    """Compute the payment ledger for a loan.

    Parameters
    ----------
    loan: Loan or None
        The loan. ``None`` yields an empty ledger.
    payments: Iterable[Payment]
        The loan's payments in any order. Payments dated before the loan's
        start date are skipped.
    reference_rates: Iterable[ReferenceRate]
        Reference-rate observations used by floating rate segments.

    Returns
    -------
    List[PaymentLog]
        A synthetic "Start of Loan" entry followed by one entry per processed
        payment, in date order.
    """
    if loan is None:
        return []

    cache = RateCache()
    sorted_rates = normalize_rates(loan.rates)
    sorted_ref_rates = normalize_reference_rates(reference_rates)
    sorted_payments = _sort_payments(payments)

    current_principal = loan.principal
    last_date = start_of_day(loan.start_date)
    unpaid_interest = Decimal("0")

    logs: List[PaymentLog] = [
        PaymentLog(
            date=last_date,
            days_since_last=0,
            interest=Decimal("0"),
            principal_paid=Decimal("0"),
            remaining_principal=current_principal,
            amount=Decimal("0"),
            note=START_OF_LOAN_NOTE,
            is_payment=False,
            accrued_interest=Decimal("0"),
            rate_breakdown="",
        )
    ]

    for payment in sorted_payments:
        pay_date = start_of_day(payment.date)
        if pay_date < last_date:
            logger.debug(
                "Skipping payment %s dated %s before %s", payment.id, pay_date, last_date
            )
            continue

        days = days_between(last_date, pay_date)
        period = accrue(
            last_date,
            pay_date,
            current_principal,
            sorted_rates,
            sorted_ref_rates,
            cache=cache,
            loan_id=loan.id,
        )
        allocation = allocate(payment.amount, period.total_interest, unpaid_interest)

        current_principal -= allocation.principal_paid
        if current_principal < 0:
            current_principal = Decimal("0")
        unpaid_interest = allocation.unpaid_interest

        logs.append(
            PaymentLog(
                date=pay_date,
                days_since_last=days,
                interest=allocation.interest_paid,
                principal_paid=allocation.principal_paid,
                remaining_principal=current_principal,
                amount=payment.amount,
                note=payment.note,
                is_payment=True,
                accrued_interest=period.total_interest,
                rate_breakdown=period.rate_breakdown,
                payment_id=payment.id,
            )
        )
        last_date = pay_date

    logger.debug(
        "Built ledger for loan %s: %d entries, %d cached rate lookups",
        loan.id,
        len(logs),
        len(cache),
    )
    return logs


def rate_display(loan: Loan) -> str:
    """Describe the loan's initial rate, e.g. ``"5.0%"`` or ``"MRR +1.0% (Variable)"``."""
    if not loan.rates:
        return "N/A"
    first = normalize_rates(loan.rates)[0]
    if first.is_float:
        sign = "+" if first.value >= 0 else ""
        text = f"MRR {sign}{first.value}%"
    else:
        text = f"{first.value}%"
    return f"{text} (Variable)" if len(loan.rates) > 1 else text


def summarize(
    loan: Loan,
    ledger: Sequence[PaymentLog],
    reference_rates: Iterable[ReferenceRate] = (),
    as_of: Optional[date] = None,
) -> LoanSummary:
    """Aggregate a ledger into the figures shown on the summary cards.

    ``unpaid_interest`` is the interest accrued so far but not yet covered by
    payments. ``current_rate`` is the effective rate on ``as_of`` (today by
    default).
    """
    as_of = start_of_day(as_of or date.today())
    total_interest = sum((e.interest for e in ledger), Decimal("0"))
    total_accrued = sum((e.accrued_interest for e in ledger), Decimal("0"))
    total_principal = sum((e.principal_paid for e in ledger), Decimal("0"))
    total_paid = sum((e.amount for e in ledger), Decimal("0"))
    remaining = ledger[-1].remaining_principal if ledger else loan.principal
    current_rate = effective_rate(
        as_of,
        normalize_rates(loan.rates),
        normalize_reference_rates(reference_rates),
    )
    return LoanSummary(
        remaining_principal=remaining,
        total_interest_paid=total_interest,
        total_principal_paid=total_principal,
        total_paid=total_paid,
        payments_made=sum(1 for e in ledger if e.is_payment),
        unpaid_interest=total_accrued - total_interest,
        current_rate=current_rate,
        rate_display=rate_display(loan),
    )


def available_years(ledger: Iterable[PaymentLog]) -> List[int]:
    """Return the years present in the ledger, most recent first."""
    return sorted({e.date.year for e in ledger}, reverse=True)


def filter_by_year(ledger: Iterable[PaymentLog], year: Optional[int]) -> List[PaymentLog]:
    """Return the entries of ``year``; ``None`` keeps every entry."""
    if year is None:
        return list(ledger)
    return [e for e in ledger if e.date.year == year]


def balance_series(ledger: Iterable[PaymentLog]) -> List[Dict[str, object]]:
    """Convert ledger entries into JSON-serialisable points for the balance graph."""
    return [
        {
            "date": e.date.isoformat(),
            "balance": float(e.remaining_principal),
            "interest": float(e.interest),
            "principal": float(e.principal_paid),
        }
        for e in ledger
    ]
