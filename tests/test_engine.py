from dataclasses import replace
from datetime import date, datetime
from decimal import Decimal

import pytest

from conftest import make_payment
from loan_tracker.data_models import RateSegment, ReferenceRate
from loan_tracker.engine import (
    START_OF_LOAN_NOTE,
    available_years,
    balance_series,
    calculate_loan_series,
    filter_by_year,
    rate_display,
    summarize,
)

CENT = Decimal("0.01")
TOLERANCE = Decimal("1e-15")


def monthly_payments(amounts, start=date(2024, 2, 1)):
    payments = []
    for i, amount in enumerate(amounts):
        year = start.year + (start.month - 1 + i) // 12
        month = (start.month - 1 + i) % 12 + 1
        payments.append(make_payment(date(year, month, 1), amount, payment_id=i + 1))
    return payments


class TestCalculateLoanSeries:
    def test_no_loan(self, first_payment):
        assert calculate_loan_series(None, [first_payment]) == []

    def test_start_entry(self, fixed_loan):
        ledger = calculate_loan_series(fixed_loan, [])
        assert len(ledger) == 1
        start = ledger[0]
        assert start.date == date(2024, 1, 1)
        assert start.is_payment is False
        assert start.note == START_OF_LOAN_NOTE
        assert start.remaining_principal == Decimal("100000")
        assert start.amount == 0 and start.interest == 0 and start.accrued_interest == 0
        assert start.payment_id is None
        assert start.rate_breakdown == ""

    def test_single_fixed_rate_payment(self, fixed_loan, first_payment):
        ledger = calculate_loan_series(fixed_loan, [first_payment])
        entry = ledger[1]
        assert entry.is_payment is True
        assert entry.payment_id == 1
        assert entry.days_since_last == 31
        assert entry.interest.quantize(CENT) == Decimal("424.66")
        assert entry.principal_paid.quantize(CENT) == Decimal("4575.34")
        assert entry.remaining_principal.quantize(CENT) == Decimal("95424.66")
        assert entry.accrued_interest == entry.interest
        assert entry.rate_breakdown == "5.00%(31)"

    def test_float_rate_payment(self, float_loan, first_payment, reference_rates):
        ledger = calculate_loan_series(float_loan, [first_payment], reference_rates)
        assert ledger[1].rate_breakdown == "5.00%(31)"
        assert ledger[1].interest.quantize(CENT) == Decimal("424.66")

    def test_rate_change_mid_period(self, fixed_loan, first_payment):
        loan = replace(
            fixed_loan,
            rates=fixed_loan.rates + [RateSegment(start_date=date(2024, 1, 17), type="fixed", value=Decimal("4.0"))],
        )
        entry = calculate_loan_series(loan, [first_payment])[1]
        tokens = entry.rate_breakdown.split("/")
        assert tokens == ["5.00%(16)", "4.00%(15)"]
        assert sum(int(t.split("(")[1].rstrip(")")) for t in tokens) == entry.days_since_last
        expected = Decimal(100000) * Decimal("0.05") * 16 / 365 + Decimal(100000) * Decimal("0.04") * 15 / 365
        assert abs(entry.accrued_interest - expected) < Decimal("1e-15")

    def test_unpaid_interest_carryover(self, fixed_loan):
        payments = [
            make_payment(date(2024, 2, 1), 100, payment_id=1),
            make_payment(date(2024, 3, 1), 1000, payment_id=2),
        ]
        ledger = calculate_loan_series(fixed_loan, payments)
        short, catch_up = ledger[1], ledger[2]
        assert short.interest == Decimal("100")
        assert short.principal_paid == 0
        assert short.remaining_principal == Decimal("100000")
        carried = short.accrued_interest - Decimal("100")
        assert catch_up.days_since_last == 29
        assert catch_up.interest == carried + catch_up.accrued_interest
        assert catch_up.principal_paid == Decimal("1000") - catch_up.interest
        assert catch_up.principal_paid.quantize(CENT) == Decimal("278.08")

    def test_payment_before_start_is_skipped(self, fixed_loan, first_payment):
        early = make_payment(date(2023, 12, 1), 9999, payment_id=9)
        ledger = calculate_loan_series(fixed_loan, [early, first_payment])
        assert len(ledger) == 2
        assert [e.payment_id for e in ledger if e.is_payment] == [1]

    def test_payment_on_start_date(self, fixed_loan):
        ledger = calculate_loan_series(fixed_loan, [make_payment(date(2024, 1, 1), 1000, payment_id=1)])
        entry = ledger[1]
        assert entry.days_since_last == 0
        assert entry.accrued_interest == 0
        assert entry.rate_breakdown == ""
        assert entry.principal_paid == Decimal("1000")
        assert entry.remaining_principal == Decimal("99000")

    def test_unsorted_payments_processed_in_date_order(self, fixed_loan):
        payments = [
            make_payment(date(2024, 3, 1), 5000, payment_id=2),
            make_payment(date(2024, 2, 1), 5000, payment_id=1),
        ]
        ledger = calculate_loan_series(fixed_loan, payments)
        assert [e.payment_id for e in ledger[1:]] == [1, 2]
        assert ledger[2].days_since_last == 29

    def test_same_day_payments_keep_recorded_order(self, fixed_loan):
        payments = [
            make_payment(date(2024, 2, 1), 3000, payment_id=7),
            make_payment(date(2024, 2, 1), 2000, payment_id=3),
        ]
        ledger = calculate_loan_series(fixed_loan, payments)
        assert [e.payment_id for e in ledger[1:]] == [7, 3]
        assert ledger[2].days_since_last == 0
        assert ledger[2].accrued_interest == 0
        assert ledger[2].principal_paid == Decimal("2000")

    def test_time_of_day_is_ignored(self, fixed_loan):
        loan = replace(fixed_loan, start_date=datetime(2024, 1, 1, 18, 30))
        payment = make_payment(datetime(2024, 2, 1, 7, 15), 5000, payment_id=1)
        ledger = calculate_loan_series(loan, [payment])
        assert ledger[0].date == date(2024, 1, 1)
        assert ledger[1].date == date(2024, 2, 1)
        assert ledger[1].days_since_last == 31

    def test_overpayment_floors_balance_at_zero(self, fixed_loan):
        payments = [
            make_payment(date(2024, 2, 1), 200000, payment_id=1),
            make_payment(date(2024, 3, 1), 500, payment_id=2),
        ]
        ledger = calculate_loan_series(fixed_loan, payments)
        assert ledger[1].remaining_principal == 0
        assert ledger[2].remaining_principal == 0
        assert ledger[2].accrued_interest == 0

    def test_balance_monotonic_and_non_negative(self, fixed_loan):
        loan = replace(
            fixed_loan,
            rates=[
                RateSegment(start_date=date(2024, 1, 1), type="fixed", value=Decimal("5.0")),
                RateSegment(start_date=date(2024, 5, 15), type="float", value=Decimal("1.5")),
                RateSegment(start_date=date(2025, 2, 1), type="fixed", value=Decimal("3.25")),
            ],
        )
        refs = [
            ReferenceRate(date=date(2024, 1, 1), rate=Decimal("6.0")),
            ReferenceRate(date=date(2024, 8, 10), rate=Decimal("6.5")),
        ]
        payments = monthly_payments([300, 5000, 50, 12000, 800, 40000, 100, 60000, 2500, 10])
        ledger = calculate_loan_series(loan, payments, refs)
        balances = [e.remaining_principal for e in ledger]
        assert all(b >= 0 for b in balances)
        assert all(later <= earlier for earlier, later in zip(balances, balances[1:]))
        dates = [e.date for e in ledger]
        assert dates == sorted(dates)

    def test_conservation(self, fixed_loan):
        payments = monthly_payments([300, 5000, 50, 12000])
        ledger = calculate_loan_series(fixed_loan, payments)
        for entry in ledger[1:]:
            assert abs(entry.interest + entry.principal_paid - entry.amount) < TOLERANCE
            if entry.principal_paid == 0:
                assert entry.interest == entry.amount

    def test_idempotent(self, fixed_loan, first_payment, reference_rates):
        payments = [first_payment, make_payment(date(2024, 3, 1), 700, payment_id=2)]
        first = calculate_loan_series(fixed_loan, payments, reference_rates)
        second = calculate_loan_series(fixed_loan, payments, reference_rates)
        assert first == second

    def test_does_not_mutate_inputs(self, fixed_loan):
        payments = [
            make_payment(datetime(2024, 3, 1, 10), 5000, payment_id=2),
            make_payment(date(2024, 2, 1), 5000, payment_id=1),
        ]
        calculate_loan_series(fixed_loan, payments)
        assert [p.id for p in payments] == [2, 1]
        assert payments[0].date == datetime(2024, 3, 1, 10)

    def test_empty_rates_raise_on_accrual(self, fixed_loan, first_payment):
        loan = replace(fixed_loan, rates=[])
        with pytest.raises(ValueError):
            calculate_loan_series(loan, [first_payment])


class TestSummarize:
    def test_totals(self, fixed_loan):
        payments = monthly_payments([100, 5000])
        ledger = calculate_loan_series(fixed_loan, payments)
        summary = summarize(fixed_loan, ledger, as_of=date(2024, 6, 1))
        assert summary.payments_made == 2
        assert summary.total_paid == Decimal("5100")
        assert abs(summary.total_interest_paid + summary.total_principal_paid - Decimal("5100")) < TOLERANCE
        assert summary.remaining_principal == ledger[-1].remaining_principal
        assert abs(summary.unpaid_interest) < TOLERANCE
        assert summary.current_rate == Decimal("5.0")
        assert summary.rate_display == "5.0%"

    def test_unpaid_interest_outstanding(self, fixed_loan):
        ledger = calculate_loan_series(fixed_loan, [make_payment(date(2024, 2, 1), 100, payment_id=1)])
        summary = summarize(fixed_loan, ledger, as_of=date(2024, 2, 1))
        assert summary.unpaid_interest == ledger[1].accrued_interest - Decimal("100")

    def test_float_current_rate(self, float_loan, reference_rates):
        ledger = calculate_loan_series(float_loan, [], reference_rates)
        summary = summarize(float_loan, ledger, reference_rates, as_of=date(2024, 5, 1))
        assert summary.current_rate == Decimal("5.0")
        assert summary.rate_display == "MRR +1.0%"


class TestRateDisplay:
    def test_variable_schedule(self, fixed_loan):
        loan = replace(
            fixed_loan,
            rates=fixed_loan.rates + [RateSegment(start_date=date(2025, 1, 1), type="float", value=Decimal("0.5"))],
        )
        assert rate_display(loan) == "5.0% (Variable)"

    def test_negative_spread(self, float_loan):
        loan = replace(float_loan, rates=[RateSegment(start_date=date(2024, 1, 1), type="float", value=Decimal("-0.25"))])
        assert rate_display(loan) == "MRR -0.25%"

    def test_no_rates(self, fixed_loan):
        assert rate_display(replace(fixed_loan, rates=[])) == "N/A"


class TestLedgerViews:
    def test_years_and_filter(self, fixed_loan):
        payments = monthly_payments([1000] * 14)
        ledger = calculate_loan_series(fixed_loan, payments)
        assert available_years(ledger) == [2025, 2024]
        entries_2025 = filter_by_year(ledger, 2025)
        assert len(entries_2025) == 3
        assert all(e.date.year == 2025 for e in entries_2025)
        assert filter_by_year(ledger, None) == ledger

    def test_balance_series(self, fixed_loan, first_payment):
        series = balance_series(calculate_loan_series(fixed_loan, [first_payment]))
        assert series[0] == {"date": "2024-01-01", "balance": 100000.0, "interest": 0.0, "principal": 0.0}
        assert series[1]["date"] == "2024-02-01"
        assert series[1]["balance"] == pytest.approx(95424.66, abs=0.01)
