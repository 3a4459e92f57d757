"""Command-line interface for the loan tracker.

This module uses the ``click`` library to implement a multi-command interface.
Users record loans, rate changes, reference rates and payments in the local
store, then print the payment ledger, a summary or a payoff estimate. Ledgers
can be exported to JSON/CSV files and whole loans moved in and out as
sectioned CSV files.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

import click

from .config import load_settings
from .csv_io import CSVFormatError, export_ledger_csv, export_ledger_json, export_loan_csv, load_loan_csv
from .data_models import RATE_TYPES, Loan, Payment, RateSegment, ReferenceRate
from .engine import available_years, calculate_loan_series, filter_by_year, summarize
from .formatter import print_ledger, print_prediction, print_summary
from .prediction import predict_payoff
from .store import LoanStore, create_store_from_env
from .utils import decimal_from_str, format_date_for_display, parse_date


def parse_amount(value: str) -> Decimal:
    """Parse a numeric string with optional suffixes.

    Accepts plain numbers ("500000", "500,000") and shorthand with ``k``/``m``
    suffixes (e.g., "500k" meaning 500_000).
    """
    value = value.strip().lower().replace(",", "")
    factor = Decimal(1)
    if value.endswith("k"):
        factor = Decimal(1_000)
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal(1_000_000)
        value = value[:-1]
    try:
        return decimal_from_str(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def parse_rate(value: str) -> Decimal:
    """Parse a percentage string (e.g. "2.5" or "2.5%"); negative spreads are allowed."""
    value = value.strip()
    if value.endswith("%"):
        value = value[:-1]
    try:
        return decimal_from_str(value)
    except ValueError:
        raise click.BadParameter(f"Invalid rate: {value}")


def parse_date_option(value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return parse_date(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def _store(ctx: click.Context) -> LoanStore:
    return ctx.obj["store"]


def _load_loan(store: LoanStore, loan_id: int) -> Loan:
    try:
        return store.get_loan(loan_id)
    except KeyError:
        raise click.ClickException(f"No loan with id {loan_id}")


@click.group()
@click.option("--db", "db_url", help="Database URL (defaults to LOAN_TRACKER_DATABASE_URL)")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, db_url: Optional[str], verbose: bool) -> None:
    """Track a loan's payments, interest and payoff."""
    settings = load_settings()
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["store"] = create_store_from_env(db_url)


@cli.command("add-loan")
@click.option("--name", "-n", "name", required=True, help="Display name of the loan")
@click.option("--principal", "-p", "principal", required=True, help="Borrowed amount")
@click.option("--start-date", "-s", "start_date", required=True, help="Date interest starts accruing (YYYY-MM-DD)")
@click.option("--rate-type", "rate_type", type=click.Choice(RATE_TYPES), default="fixed", help="Type of the initial rate")
@click.option("--rate", "-r", "rate", required=True, help="Initial annual rate (fixed) or spread over MRR (float), in percent")
@click.pass_context
def add_loan(ctx: click.Context, name: str, principal: str, start_date: str, rate_type: str, rate: str) -> None:
    """Create a loan with its initial rate segment."""
    start = parse_date_option(start_date)
    amount = parse_amount(principal)
    if amount <= 0:
        raise click.BadParameter("Principal must be positive")
    loan = Loan(
        name=name,
        principal=amount,
        start_date=start,
        rates=[RateSegment(start_date=start, type=rate_type, value=parse_rate(rate))],
    )
    loan_id = _store(ctx).add_loan(loan)
    click.echo(f"Loan {loan_id} created")


@cli.command("list-loans")
@click.pass_context
def list_loans(ctx: click.Context) -> None:
    """List stored loans."""
    for loan in _store(ctx).list_loans():
        click.echo(
            f"{loan.id}\t{loan.name}\t{loan.principal:,.2f}\t{format_date_for_display(loan.start_date)}"
        )


@cli.command("delete-loan")
@click.argument("loan_id", type=int)
@click.pass_context
def delete_loan(ctx: click.Context, loan_id: int) -> None:
    """Delete a loan and all of its payments."""
    try:
        _store(ctx).delete_loan(loan_id)
    except KeyError:
        raise click.ClickException(f"No loan with id {loan_id}")
    click.echo(f"Loan {loan_id} deleted")


@cli.command("add-rate")
@click.argument("loan_id", type=int)
@click.option("--start-date", "-s", "start_date", required=True, help="Date the rate takes effect (YYYY-MM-DD)")
@click.option("--type", "rate_type", type=click.Choice(RATE_TYPES), default="fixed", help="Rate type")
@click.option("--value", "value", required=True, help="Annual rate (fixed) or spread over MRR (float), in percent")
@click.pass_context
def add_rate(ctx: click.Context, loan_id: int, start_date: str, rate_type: str, value: str) -> None:
    """Add a rate change to a loan's schedule."""
    store = _store(ctx)
    _load_loan(store, loan_id)
    segment = RateSegment(start_date=parse_date_option(start_date), type=rate_type, value=parse_rate(value))
    store.add_rate_segment(loan_id, segment)
    click.echo(f"Rate segment added to loan {loan_id}")


@cli.command("add-payment")
@click.argument("loan_id", type=int)
@click.option("--date", "-d", "payment_date", required=True, help="Payment date (YYYY-MM-DD)")
@click.option("--amount", "-a", "amount", required=True, help="Amount paid")
@click.option("--note", "note", help="Optional note")
@click.pass_context
def add_payment(ctx: click.Context, loan_id: int, payment_date: str, amount: str, note: Optional[str]) -> None:
    """Record a payment."""
    store = _store(ctx)
    _load_loan(store, loan_id)
    value = parse_amount(amount)
    if value <= 0:
        raise click.BadParameter("Payment amount must be positive")
    payment_id = store.add_payment(
        Payment(loan_id=loan_id, date=parse_date_option(payment_date), amount=value, note=note)
    )
    click.echo(f"Payment {payment_id} recorded")


@cli.command("delete-payment")
@click.argument("payment_id", type=int)
@click.pass_context
def delete_payment(ctx: click.Context, payment_id: int) -> None:
    """Delete a payment."""
    try:
        _store(ctx).delete_payment(payment_id)
    except KeyError:
        raise click.ClickException(f"No payment with id {payment_id}")
    click.echo(f"Payment {payment_id} deleted")


@cli.command("update-payment")
@click.argument("payment_id", type=int)
@click.option("--date", "-d", "payment_date", help="New payment date (YYYY-MM-DD)")
@click.option("--amount", "-a", "amount", help="New amount")
@click.option("--note", "note", help="New note")
@click.pass_context
def update_payment(
    ctx: click.Context,
    payment_id: int,
    payment_date: Optional[str],
    amount: Optional[str],
    note: Optional[str],
) -> None:
    """Correct a recorded payment."""
    if payment_date is None and amount is None and note is None:
        raise click.UsageError("Nothing to update; pass --date, --amount or --note")
    value = parse_amount(amount) if amount is not None else None
    if value is not None and value <= 0:
        raise click.BadParameter("Payment amount must be positive")
    try:
        _store(ctx).update_payment(
            payment_id,
            payment_date=parse_date_option(payment_date),
            amount=value,
            note=note,
        )
    except KeyError:
        raise click.ClickException(f"No payment with id {payment_id}")
    click.echo(f"Payment {payment_id} updated")


@cli.command("add-reference-rate")
@click.option("--date", "-d", "rate_date", required=True, help="Date the rate takes effect (YYYY-MM-DD)")
@click.option("--rate", "-r", "rate", required=True, help="Reference rate (MRR) in percent")
@click.pass_context
def add_reference_rate(ctx: click.Context, rate_date: str, rate: str) -> None:
    """Record a reference rate (MRR) observation."""
    ref_id = _store(ctx).add_reference_rate(
        ReferenceRate(date=parse_date_option(rate_date), rate=parse_rate(rate))
    )
    click.echo(f"Reference rate {ref_id} recorded")


@cli.command("list-reference-rates")
@click.pass_context
def list_reference_rates(ctx: click.Context) -> None:
    """List reference rate observations."""
    for ref in _store(ctx).list_reference_rates():
        click.echo(f"{ref.id}\t{format_date_for_display(ref.date)}\t{ref.rate:.2f}%")


@cli.command("delete-reference-rate")
@click.argument("reference_rate_id", type=int)
@click.pass_context
def delete_reference_rate(ctx: click.Context, reference_rate_id: int) -> None:
    """Delete a reference rate observation."""
    try:
        _store(ctx).delete_reference_rate(reference_rate_id)
    except KeyError:
        raise click.ClickException(f"No reference rate with id {reference_rate_id}")
    click.echo(f"Reference rate {reference_rate_id} deleted")


@cli.command()
@click.argument("loan_id", type=int)
@click.option("--year", "year", type=int, help="Only show entries of this year")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
@click.pass_context
def ledger(ctx: click.Context, loan_id: int, year: Optional[int], output: Optional[str]) -> None:
    """Compute and print the payment ledger."""
    store = _store(ctx)
    loan = _load_loan(store, loan_id)
    reference_rates = store.list_reference_rates()
    payments = store.list_payments(loan_id)
    entries = calculate_loan_series(loan, payments, reference_rates)
    if year is not None and year not in available_years(entries):
        years = ", ".join(str(y) for y in available_years(entries))
        raise click.ClickException(f"No ledger entries in {year}; available years: {years}")
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            summary_data = summarize(loan, entries, reference_rates)
            prediction = predict_payoff(
                loan, payments, summary_data.remaining_principal, reference_rates
            )
            export_ledger_json(path, filter_by_year(entries, year), summary_data, prediction)
        elif path.suffix.lower() == ".csv":
            export_ledger_csv(path, filter_by_year(entries, year))
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Ledger exported to {path}")
    else:
        print_ledger(filter_by_year(entries, year))


@cli.command()
@click.argument("loan_id", type=int)
@click.option("--as-of", "as_of", help="Date the current rate is taken at (YYYY-MM-DD, default today)")
@click.pass_context
def summary(ctx: click.Context, loan_id: int, as_of: Optional[str]) -> None:
    """Print the loan summary."""
    store = _store(ctx)
    loan = _load_loan(store, loan_id)
    reference_rates = store.list_reference_rates()
    entries = calculate_loan_series(loan, store.list_payments(loan_id), reference_rates)
    print_summary(
        loan.name,
        loan.principal,
        summarize(loan, entries, reference_rates, as_of=parse_date_option(as_of)),
    )


@cli.command()
@click.argument("loan_id", type=int)
@click.option("--as-of", "as_of", help="Date the projection starts from (YYYY-MM-DD, default today)")
@click.pass_context
def predict(ctx: click.Context, loan_id: int, as_of: Optional[str]) -> None:
    """Estimate when the loan will be paid off."""
    store = _store(ctx)
    loan = _load_loan(store, loan_id)
    reference_rates = store.list_reference_rates()
    payments = store.list_payments(loan_id)
    entries = calculate_loan_series(loan, payments, reference_rates)
    prediction = predict_payoff(
        loan,
        payments,
        entries[-1].remaining_principal,
        reference_rates,
        as_of=parse_date_option(as_of),
    )
    print_prediction(prediction)


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--append", "append", is_flag=True, help="Keep existing loans and reference rates")
@click.option("--yes", "-y", "assume_yes", is_flag=True, help="Do not ask before replacing existing data")
@click.pass_context
def import_loan(ctx: click.Context, path: Path, append: bool, assume_yes: bool) -> None:
    """Import a loan from a sectioned CSV file, replacing all current data."""
    try:
        bundle = load_loan_csv(path)
    except CSVFormatError as exc:
        raise click.ClickException(f"Invalid CSV format: {exc}")
    if not append and not assume_yes:
        click.confirm("This will reset all current data. Continue?", abort=True)
    loan_id = _store(ctx).import_bundle(bundle, replace=not append)
    click.echo(
        f"Loan {loan_id} imported with {len(bundle.payments)} payments "
        f"and {len(bundle.reference_rates)} reference rates"
    )


@cli.command("export")
@click.argument("loan_id", type=int)
@click.argument("path", type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def export_loan(ctx: click.Context, loan_id: int, path: Path) -> None:
    """Export a loan to a sectioned CSV file."""
    store = _store(ctx)
    loan = _load_loan(store, loan_id)
    export_loan_csv(path, loan, store.list_payments(loan_id), store.list_reference_rates())
    click.echo(f"Loan exported to {path}")


if __name__ == "__main__":
    cli()
