"""Allocation of a payment between interest and principal."""

from __future__ import annotations

from decimal import Decimal

from .data_models import PaymentAllocation


def allocate(
    payment_amount: Decimal, period_interest: Decimal, carried_unpaid_interest: Decimal
) -> PaymentAllocation:
    """Split a payment into interest and principal.

    Unpaid interest carried from earlier periods and the interest of the
    current period are paid first; only the remainder reduces the principal.
    A payment that does not cover all interest due goes entirely to interest
    and the shortfall is carried forward.
    """
    total_due = carried_unpaid_interest + period_interest
    if payment_amount >= total_due:
        return PaymentAllocation(
            interest_paid=total_due,
            principal_paid=payment_amount - total_due,
            unpaid_interest=Decimal("0"),
        )
    return PaymentAllocation(
        interest_paid=payment_amount,
        principal_paid=Decimal("0"),
        unpaid_interest=total_due - payment_amount,
    )
