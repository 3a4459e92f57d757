"""Output helpers for the loan tracker.

This module renders the payment ledger, the loan summary and the payoff
prediction in a tabular text format using built-in printing and string
formatting.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, Optional

from .data_models import LoanSummary, PaymentLog, Prediction
from .utils import format_date_for_display


def print_summary(name: str, principal: Decimal, summary: LoanSummary) -> None:
    """Print the loan summary in a human-readable format."""
    print(f"Summary: {name}")
    print("-" * 72)
    print(f"Original principal  : {principal:,.2f}")
    print(f"Remaining principal : {summary.remaining_principal:,.2f}")
    print(f"Interest paid       : {summary.total_interest_paid:,.2f}")
    print(f"Principal paid      : {summary.total_principal_paid:,.2f}")
    print(f"Total paid          : {summary.total_paid:,.2f}")
    print(f"Payments made       : {summary.payments_made}")
    if summary.unpaid_interest > 0:
        print(f"Unpaid interest     : {summary.unpaid_interest:,.2f}")
    print(f"Rate                : {summary.rate_display} / year")
    print(f"Current rate        : {summary.current_rate:.2f}%")
    print("-" * 72)


def print_ledger(ledger: Iterable[PaymentLog]) -> None:
    """Print the payment ledger as a simple table."""
    headers = [
        "Date",
        "Days",
        "Amount",
        "Interest",
        "Principal",
        "Remaining",
        "Accrued",
        "Rates",
        "Note",
    ]
    print("\t".join(headers))
    for entry in ledger:
        row = [
            format_date_for_display(entry.date),
            str(entry.days_since_last),
            f"{entry.amount:.2f}",
            f"{entry.interest:.2f}",
            f"{entry.principal_paid:.2f}",
            f"{entry.remaining_principal:.2f}",
            f"{entry.accrued_interest:.2f}",
            entry.rate_breakdown or "-",
            entry.note or "",
        ]
        print("\t".join(row))


def print_prediction(prediction: Optional[Prediction]) -> None:
    """Print the estimated payoff card.

    ``None`` means there is not enough history, or the payments do not keep
    up with the interest.
    """
    print("Estimated payoff")
    print("-" * 72)
    if prediction is None:
        print("Not enough payment history, or payments do not cover the interest.")
        print("-" * 72)
        return
    print(f"Average payment     : {prediction.average_payment:,.2f}")
    print(
        f"Time left           : {prediction.estimated_months_left} months "
        f"({prediction.estimated_years_left} years)"
    )
    print(f"Payoff date         : {format_date_for_display(prediction.estimated_payoff_date)}")
    print(f"Interest to come    : {prediction.total_estimated_interest:,.2f}")
    print(f"Confidence          : {prediction.confidence}")
    print("-" * 72)
