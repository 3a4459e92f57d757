"""Import and export of loan data.

Loans travel as a single sectioned CSV file holding the loan details, its rate
segments, the reference-rate history and the payment history::

    # LOAN DETAILS
    Field,Value
    Name,"My Home Loan"
    Principal,500000
    Start Date,2024-01-01

    # RATE SEGMENTS
    Start Date,Type,Value
    2024-01-01,fixed,2.5

    # REFERENCE RATES
    Date,Rate
    2024-01-01,2.5

    # PAYMENT HISTORY
    Date,Amount,Note
    2024-02-01,5000,

The computed ledger can also be exported to JSON (with the summary and
prediction) or to a flat CSV file.
"""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .data_models import (
    Loan,
    LoanBundle,
    LoanSummary,
    Payment,
    PaymentLog,
    Prediction,
    RateSegment,
    ReferenceRate,
)
from .engine import balance_series
from .utils import decimal_from_str, parse_date, parse_rate_type

logger = logging.getLogger(__name__)

SECTION_LOAN = "LOAN DETAILS"
SECTION_RATES = "RATE SEGMENTS"
SECTION_REFERENCE = "REFERENCE RATES"
SECTION_PAYMENTS = "PAYMENT HISTORY"
SECTIONS = (SECTION_LOAN, SECTION_RATES, SECTION_REFERENCE, SECTION_PAYMENTS)

SECTION_HEADERS = {
    SECTION_LOAN: ["Field", "Value"],
    SECTION_RATES: ["Start Date", "Type", "Value"],
    SECTION_REFERENCE: ["Date", "Rate"],
    SECTION_PAYMENTS: ["Date", "Amount", "Note"],
}


class CSVFormatError(ValueError):
    """Raised when a loan CSV file cannot be understood."""


def _normalize_field_name(value: str) -> str:
    return "".join(value.lower().split())


def _detect_section(text: str) -> Optional[str]:
    upper = text.upper()
    for section in SECTIONS:
        if section in upper:
            return section
    return None


def _is_header(row: List[str], section: Optional[str]) -> bool:
    if section is None:
        return False
    expected = [_normalize_field_name(h) for h in SECTION_HEADERS[section]]
    actual = [_normalize_field_name(f) for f in row[: len(expected)]]
    return actual == expected


def parse_loan_csv(text: str) -> LoanBundle:
    """Parse a sectioned loan CSV document.

    Raises
    ------
    CSVFormatError
        If a value cannot be parsed, a required loan field (name, principal,
        start date) is missing, or no rate segment is present.
    """
    section: Optional[str] = None
    name: Optional[str] = None
    principal = None
    start_date = None
    rates: List[RateSegment] = []
    reference_rates: List[ReferenceRate] = []
    payments: List[Payment] = []

    reader = csv.reader(io.StringIO(text))
    for row in reader:
        fields = [f.strip() for f in row]
        if not any(fields):
            continue
        if fields[0].startswith("#"):
            section = _detect_section(fields[0])
            continue
        if _is_header(fields, section):
            continue

        padded = fields + [""] * 3
        first, second, third = padded[0], padded[1], padded[2]
        try:
            if section == SECTION_LOAN:
                key = _normalize_field_name(first)
                if key == "name" and second:
                    name = second
                elif key == "principal" and second:
                    principal = decimal_from_str(second)
                elif key in ("startdate", "date") and second:
                    start_date = parse_date(second)
            elif section == SECTION_RATES and first and second and third:
                rates.append(
                    RateSegment(
                        start_date=parse_date(first),
                        type=parse_rate_type(second),
                        value=decimal_from_str(third),
                    )
                )
            elif section == SECTION_REFERENCE and first and second:
                reference_rates.append(
                    ReferenceRate(date=parse_date(first), rate=decimal_from_str(second))
                )
            elif section == SECTION_PAYMENTS and first and second:
                payments.append(
                    Payment(
                        loan_id=None,
                        date=parse_date(first),
                        amount=decimal_from_str(second),
                        # an unquoted note may itself contain commas
                        note=",".join(row[2:]).strip() or None,
                    )
                )
        except ValueError as exc:
            raise CSVFormatError(f"Line {reader.line_num}: {exc}") from exc

    if start_date is None and rates:
        start_date = rates[0].start_date
        logger.info("No loan start date given; using first rate start %s", start_date)

    missing = []
    if not name:
        missing.append("Name")
    if not principal:
        missing.append("Principal")
    if start_date is None:
        missing.append("Start Date")
    if missing:
        raise CSVFormatError(f"Missing required fields: {', '.join(missing)}")
    if not rates:
        raise CSVFormatError("At least one rate segment is required")

    loan = Loan(name=name, principal=principal, start_date=start_date, rates=rates)
    logger.debug(
        "Parsed loan %r: %d rates, %d reference rates, %d payments",
        name,
        len(rates),
        len(reference_rates),
        len(payments),
    )
    return LoanBundle(loan=loan, payments=payments, reference_rates=reference_rates)


def load_loan_csv(path: Path) -> LoanBundle:
    """Read and parse a loan CSV file."""
    with path.open("r", newline="", encoding="utf-8-sig") as f:
        return parse_loan_csv(f.read())


def export_loan_csv(
    path: Path,
    loan: Loan,
    payments: Iterable[Payment],
    reference_rates: Iterable[ReferenceRate],
) -> None:
    """Export a loan with its payments and reference rates to a sectioned CSV file."""
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, lineterminator="\n")
        writer.writerow([f"# {SECTION_LOAN}"])
        writer.writerow(SECTION_HEADERS[SECTION_LOAN])
        writer.writerow(["Name", loan.name])
        writer.writerow(["Principal", str(loan.principal)])
        writer.writerow(["Start Date", loan.start_date.isoformat()])
        writer.writerow([])

        writer.writerow([f"# {SECTION_RATES}"])
        writer.writerow(SECTION_HEADERS[SECTION_RATES])
        for rate in loan.rates:
            writer.writerow([rate.start_date.isoformat(), rate.type, str(rate.value)])
        writer.writerow([])

        writer.writerow([f"# {SECTION_REFERENCE}"])
        writer.writerow(SECTION_HEADERS[SECTION_REFERENCE])
        for ref in sorted(reference_rates, key=lambda r: r.date):
            writer.writerow([ref.date.isoformat(), str(ref.rate)])
        writer.writerow([])

        writer.writerow([f"# {SECTION_PAYMENTS}"])
        writer.writerow(SECTION_HEADERS[SECTION_PAYMENTS])
        for payment in sorted(payments, key=lambda p: p.date):
            writer.writerow([payment.date.isoformat(), str(payment.amount), payment.note or ""])


def _ledger_entry_to_dict(entry: PaymentLog) -> Dict[str, Any]:
    return {
        "date": entry.date.isoformat(),
        "days_since_last": entry.days_since_last,
        "amount": float(entry.amount),
        "interest": float(entry.interest),
        "principal_paid": float(entry.principal_paid),
        "remaining_principal": float(entry.remaining_principal),
        "accrued_interest": float(entry.accrued_interest),
        "rate_breakdown": entry.rate_breakdown,
        "note": entry.note,
        "is_payment": entry.is_payment,
        "payment_id": entry.payment_id,
    }


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if isinstance(value, (int, str, bool)) or value is None:
        return value
    return float(value)


def export_ledger_json(
    path: Path,
    ledger: List[PaymentLog],
    summary: Optional[LoanSummary] = None,
    prediction: Optional[Prediction] = None,
) -> None:
    """Export the ledger, summary and prediction to a JSON file.

    The payload also carries ``balance_series``, the per-entry balance and
    interest/principal split used for charting.
    """
    data = {
        "summary": _jsonable(asdict(summary)) if summary else None,
        "prediction": _jsonable(asdict(prediction)) if prediction else None,
        "ledger": [_ledger_entry_to_dict(e) for e in ledger],
        "balance_series": balance_series(ledger),
    }
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def export_ledger_csv(path: Path, ledger: List[PaymentLog]) -> None:
    """Export the ledger to a flat CSV file."""
    header = [
        "Date",
        "Days_Since_Last",
        "Amount",
        "Interest",
        "Principal_Paid",
        "Remaining_Principal",
        "Accrued_Interest",
        "Rate_Breakdown",
        "Note",
        "Is_Payment",
    ]
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        for e in ledger:
            writer.writerow(
                [
                    e.date.isoformat(),
                    e.days_since_last,
                    float(e.amount),
                    float(e.interest),
                    float(e.principal_paid),
                    float(e.remaining_principal),
                    float(e.accrued_interest),
                    e.rate_breakdown,
                    e.note or "",
                    e.is_payment,
                ]
            )
