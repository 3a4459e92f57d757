"""Shared fixtures.

Fixture: 100,000 borrowed on 2024-01-01 at a fixed 5.0%, one payment of 5,000
on 2024-02-01 (31 days later).
"""

from datetime import date
from decimal import Decimal

import pytest

from loan_tracker.data_models import Loan, Payment, RateSegment, ReferenceRate
from loan_tracker.store import LoanStore

SAMPLE_CSV = """# LOAN DETAILS
Field,Value
Name,"My Home Loan"
Principal,500000
Start Date,2024-01-01

# RATE SEGMENTS
Start Date,Type,Value
2024-01-01,fixed,2.5
2025-01-01,float,0.5

# REFERENCE RATES
Date,Rate
2024-01-01,2.5
2024-07-01,2.75
2025-01-01,3.0

# PAYMENT HISTORY
Date,Amount,Note
2024-02-01,5000,
2024-03-01,5000,
2024-04-01,5000,"Bonus, extra"
"""


def make_payment(day: date, amount, payment_id=None, note=None) -> Payment:
    return Payment(loan_id=1, date=day, amount=Decimal(str(amount)), note=note, id=payment_id)


@pytest.fixture
def fixed_loan() -> Loan:
    """100K at a fixed 5% from 2024-01-01."""
    return Loan(
        id=1,
        name="Test Loan",
        principal=Decimal("100000"),
        start_date=date(2024, 1, 1),
        rates=[RateSegment(start_date=date(2024, 1, 1), type="fixed", value=Decimal("5.0"))],
    )


@pytest.fixture
def float_loan() -> Loan:
    """100K at MRR + 1.0% from 2024-01-01."""
    return Loan(
        id=2,
        name="Float Loan",
        principal=Decimal("100000"),
        start_date=date(2024, 1, 1),
        rates=[RateSegment(start_date=date(2024, 1, 1), type="float", value=Decimal("1.0"))],
    )


@pytest.fixture
def first_payment() -> Payment:
    return make_payment(date(2024, 2, 1), 5000, payment_id=1)


@pytest.fixture
def reference_rates() -> list:
    return [ReferenceRate(id=1, date=date(2024, 1, 1), rate=Decimal("4.0"))]


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'loans.sqlite3'}"


@pytest.fixture
def store(db_url) -> LoanStore:
    return LoanStore(db_url)
