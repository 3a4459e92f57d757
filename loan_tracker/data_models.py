"""Data models for the loan tracker.

This module defines dataclasses for the records the tracker works with: the
loan itself with its piecewise rate schedule, payments, reference-rate (MRR)
observations, and the values computed by the engine (ledger entries, interest
breakdowns, payment allocations, payoff predictions and summaries). Amounts
and rates are ``Decimal``; dates are ``datetime.date`` (``datetime`` values are
accepted on input and truncated to the day by the engine).
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import List, Optional

FIXED = "fixed"
FLOAT = "float"
RATE_TYPES = (FIXED, FLOAT)


@dataclass
class RateSegment:
    """A time-bounded piece of a loan's interest-rate schedule.

    Attributes
    ----------
    start_date: date
        The day the segment becomes active. It stays active until the next
        segment's start date; the last segment never ends.
    type: str
        ``"fixed"`` or ``"float"``.
    value: Decimal
        For ``fixed`` segments the absolute annual rate in percent. For
        ``float`` segments the spread (possibly negative) added to the
        prevailing reference rate.
    """

    start_date: date
    type: str
    value: Decimal

    @property
    def is_float(self) -> bool:
        return self.type == FLOAT


@dataclass
class ReferenceRate:
    """An observation of the floating reference rate (MRR).

    The rate applies from ``date`` until the next later observation.
    """

    date: date
    rate: Decimal  # annual rate in percent
    id: Optional[int] = None


@dataclass
class Loan:
    """A loan definition.

    ``principal`` is the original borrowed sum and interest starts accruing on
    ``start_date``. ``rates`` must hold at least one segment.
    """

    name: str
    principal: Decimal
    start_date: date
    rates: List[RateSegment]
    id: Optional[int] = None


@dataclass
class Payment:
    """A payment recorded against a loan."""

    loan_id: Optional[int]
    date: date
    amount: Decimal
    note: Optional[str] = None
    id: Optional[int] = None


@dataclass
class PaymentLog:
    """One entry of the computed ledger.

    The first entry of every ledger is a synthetic "Start of Loan" marker with
    ``is_payment`` set to False; every other entry corresponds to a payment.
    ``interest`` is the part of the payment that went to interest, while
    ``accrued_interest`` is what accrued during the period regardless of how it
    was paid.
    """

    date: date
    days_since_last: int
    interest: Decimal
    principal_paid: Decimal
    remaining_principal: Decimal
    amount: Decimal
    note: Optional[str]
    is_payment: bool
    accrued_interest: Decimal
    rate_breakdown: str  # e.g. "1.99%(30)" or "1.99%(15)/2.50%(15)"
    payment_id: Optional[int] = None


@dataclass
class InterestSegment:
    """Interest accrued over one constant-rate sub-interval."""

    rate: Decimal
    days: int
    interest: Decimal


@dataclass
class InterestResult:
    total_interest: Decimal
    segments: List[InterestSegment] = field(default_factory=list)
    rate_breakdown: str = ""


@dataclass
class PaymentAllocation:
    interest_paid: Decimal
    principal_paid: Decimal
    unpaid_interest: Decimal


@dataclass
class Prediction:
    """Estimated payoff based on the recent payment trend."""

    average_payment: Decimal
    estimated_months_left: int
    estimated_years_left: Decimal
    estimated_payoff_date: date
    total_estimated_interest: Decimal
    confidence: str  # "high", "medium" or "low"


@dataclass
class LoanSummary:
    """Aggregate figures shown on the loan summary cards."""

    remaining_principal: Decimal
    total_interest_paid: Decimal
    total_principal_paid: Decimal
    total_paid: Decimal
    payments_made: int
    unpaid_interest: Decimal
    current_rate: Decimal
    rate_display: str


@dataclass
class LoanBundle:
    """A loan together with its payments and the reference rates it uses.

    This is the unit exchanged with the CSV importer and the store.
    """

    loan: Loan
    payments: List[Payment] = field(default_factory=list)
    reference_rates: List[ReferenceRate] = field(default_factory=list)
