"""Persistence layer for loans, payments and reference rates.

The store keeps the tracker's records in a relational database through
SQLAlchemy. It defaults to a local SQLite file but accepts any
SQLAlchemy-compatible URL. Rows are converted to and from the dataclasses in
:mod:`loan_tracker.data_models`, so the engine never sees ORM objects.

Amounts and rates are stored as decimal strings to keep them exact on every
backend.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import Column, Date, ForeignKey, Integer, String, Text, create_engine, select
from sqlalchemy.orm import declarative_base, relationship, sessionmaker
from sqlalchemy.types import TypeDecorator

from .config import load_settings
from .data_models import Loan, LoanBundle, Payment, RateSegment, ReferenceRate
from .utils import start_of_day

logger = logging.getLogger(__name__)

Base = declarative_base()


class DecimalString(TypeDecorator):
    """Stores ``Decimal`` values as their exact string representation."""

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else Decimal(value)


class LoanModel(Base):
    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    principal = Column(DecimalString, nullable=False)
    start_date = Column(Date, index=True, nullable=False)

    rates = relationship(
        "RateSegmentModel",
        cascade="all, delete-orphan",
        order_by="RateSegmentModel.position",
        lazy="selectin",
    )


class RateSegmentModel(Base):
    __tablename__ = "rate_segments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(Integer, ForeignKey("loans.id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    type = Column(String(16), nullable=False)
    value = Column(DecimalString, nullable=False)


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    loan_id = Column(Integer, ForeignKey("loans.id"), index=True, nullable=False)
    date = Column(Date, index=True, nullable=False)
    amount = Column(DecimalString, nullable=False)
    note = Column(Text, nullable=True)


class ReferenceRateModel(Base):
    __tablename__ = "reference_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    date = Column(Date, index=True, nullable=False)
    rate = Column(DecimalString, nullable=False)


class LoanStore:
    """Database-backed store for the tracker's records."""

    def __init__(self, url: str) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)

    # Loans

    def add_loan(self, loan: Loan) -> int:
        if not loan.rates:
            raise ValueError("A loan needs at least one rate segment")
        row = LoanModel(
            name=loan.name,
            principal=loan.principal,
            start_date=start_of_day(loan.start_date),
            rates=self._rate_rows(loan.rates),
        )
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            logger.info("Added loan %s (%s)", row.id, loan.name)
            return row.id

    def get_loan(self, loan_id: int) -> Loan:
        with self._session_factory() as session:
            return self._to_loan(self._loan_row(session, loan_id))

    def list_loans(self) -> List[Loan]:
        with self._session_factory() as session:
            rows = session.execute(select(LoanModel).order_by(LoanModel.id.asc())).scalars()
            return [self._to_loan(row) for row in rows]

    def update_loan(
        self,
        loan_id: int,
        *,
        name: Optional[str] = None,
        principal: Optional[Decimal] = None,
        start_date: Optional[date] = None,
        rates: Optional[List[RateSegment]] = None,
    ) -> Loan:
        if rates is not None and not rates:
            raise ValueError("A loan needs at least one rate segment")
        with self._session_factory() as session:
            row = self._loan_row(session, loan_id)
            if name is not None:
                row.name = name
            if principal is not None:
                row.principal = principal
            if start_date is not None:
                row.start_date = start_of_day(start_date)
            if rates is not None:
                row.rates = self._rate_rows(rates)
            session.commit()
            logger.info("Updated loan %s", loan_id)
            return self._to_loan(row)

    def add_rate_segment(self, loan_id: int, segment: RateSegment) -> Loan:
        """Append a segment to the loan's rate schedule."""
        loan = self.get_loan(loan_id)
        return self.update_loan(loan_id, rates=loan.rates + [segment])

    def delete_loan(self, loan_id: int) -> None:
        """Delete a loan together with its rate segments and payments."""
        with self._session_factory() as session:
            row = self._loan_row(session, loan_id)
            session.execute(PaymentModel.__table__.delete().where(PaymentModel.loan_id == loan_id))
            session.delete(row)
            session.commit()
            logger.info("Deleted loan %s", loan_id)

    # Payments

    def add_payment(self, payment: Payment) -> int:
        with self._session_factory() as session:
            self._loan_row(session, payment.loan_id)
            row = PaymentModel(
                loan_id=payment.loan_id,
                date=start_of_day(payment.date),
                amount=payment.amount,
                note=payment.note,
            )
            session.add(row)
            session.commit()
            logger.info("Added payment %s to loan %s", row.id, payment.loan_id)
            return row.id

    def update_payment(
        self,
        payment_id: int,
        *,
        payment_date: Optional[date] = None,
        amount: Optional[Decimal] = None,
        note: Optional[str] = None,
    ) -> Payment:
        with self._session_factory() as session:
            row = session.get(PaymentModel, payment_id)
            if row is None:
                raise KeyError(f"No payment with id {payment_id}")
            if payment_date is not None:
                row.date = start_of_day(payment_date)
            if amount is not None:
                row.amount = amount
            if note is not None:
                row.note = note
            session.commit()
            logger.info("Updated payment %s", payment_id)
            return self._to_payment(row)

    def delete_payment(self, payment_id: int) -> None:
        with self._session_factory() as session:
            row = session.get(PaymentModel, payment_id)
            if row is None:
                raise KeyError(f"No payment with id {payment_id}")
            session.delete(row)
            session.commit()
            logger.info("Deleted payment %s", payment_id)

    def list_payments(self, loan_id: int) -> List[Payment]:
        """Return the loan's payments in the order they were recorded."""
        with self._session_factory() as session:
            rows = session.execute(
                select(PaymentModel)
                .where(PaymentModel.loan_id == loan_id)
                .order_by(PaymentModel.id.asc())
            ).scalars()
            return [self._to_payment(row) for row in rows]

    # Reference rates

    def add_reference_rate(self, reference_rate: ReferenceRate) -> int:
        row = ReferenceRateModel(date=start_of_day(reference_rate.date), rate=reference_rate.rate)
        with self._session_factory() as session:
            session.add(row)
            session.commit()
            return row.id

    def delete_reference_rate(self, reference_rate_id: int) -> None:
        with self._session_factory() as session:
            row = session.get(ReferenceRateModel, reference_rate_id)
            if row is None:
                raise KeyError(f"No reference rate with id {reference_rate_id}")
            session.delete(row)
            session.commit()
            logger.info("Deleted reference rate %s", reference_rate_id)

    def list_reference_rates(self) -> List[ReferenceRate]:
        with self._session_factory() as session:
            rows = session.execute(
                select(ReferenceRateModel).order_by(
                    ReferenceRateModel.date.asc(), ReferenceRateModel.id.asc()
                )
            ).scalars()
            return [ReferenceRate(id=row.id, date=row.date, rate=row.rate) for row in rows]

    # Bulk operations

    def import_bundle(self, bundle: LoanBundle, replace: bool = True) -> int:
        """Store a loan with its payments and reference rates in one transaction.

        With ``replace`` (the default) every existing record is deleted first,
        in the same transaction, so re-importing an exported file does not
        duplicate the global reference rates.
        """
        loan = bundle.loan
        if not loan.rates:
            raise ValueError("A loan needs at least one rate segment")
        with self._session_factory() as session:
            if replace:
                self._delete_all(session)
            row = LoanModel(
                name=loan.name,
                principal=loan.principal,
                start_date=start_of_day(loan.start_date),
                rates=self._rate_rows(loan.rates),
            )
            session.add(row)
            session.flush()
            for payment in bundle.payments:
                session.add(
                    PaymentModel(
                        loan_id=row.id,
                        date=start_of_day(payment.date),
                        amount=payment.amount,
                        note=payment.note,
                    )
                )
            for ref in bundle.reference_rates:
                session.add(ReferenceRateModel(date=start_of_day(ref.date), rate=ref.rate))
            session.commit()
            logger.info(
                "Imported loan %s with %d payments and %d reference rates",
                row.id,
                len(bundle.payments),
                len(bundle.reference_rates),
            )
            return row.id

    def reset(self) -> None:
        """Delete every record."""
        with self._session_factory() as session:
            self._delete_all(session)
            session.commit()
            logger.info("Store reset")

    # Helpers

    @staticmethod
    def _delete_all(session) -> None:
        for model in (PaymentModel, RateSegmentModel, ReferenceRateModel, LoanModel):
            session.execute(model.__table__.delete())

    @staticmethod
    def _loan_row(session, loan_id: Optional[int]) -> LoanModel:
        row = session.get(LoanModel, loan_id) if loan_id is not None else None
        if row is None:
            raise KeyError(f"No loan with id {loan_id}")
        return row

    @staticmethod
    def _rate_rows(rates: Iterable[RateSegment]) -> List[RateSegmentModel]:
        return [
            RateSegmentModel(
                position=i,
                start_date=start_of_day(r.start_date),
                type=r.type,
                value=r.value,
            )
            for i, r in enumerate(rates)
        ]

    @staticmethod
    def _to_loan(row: LoanModel) -> Loan:
        return Loan(
            id=row.id,
            name=row.name,
            principal=row.principal,
            start_date=row.start_date,
            rates=[
                RateSegment(start_date=r.start_date, type=r.type, value=r.value)
                for r in row.rates
            ],
        )

    @staticmethod
    def _to_payment(row: PaymentModel) -> Payment:
        return Payment(
            id=row.id,
            loan_id=row.loan_id,
            date=row.date,
            amount=row.amount,
            note=row.note,
        )


def create_store_from_env(url: str | None = None) -> LoanStore:
    return LoanStore(url or load_settings().database_url)
