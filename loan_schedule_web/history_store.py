"""Persistence layer for the calculation history.

Saved calculations are stored as a parent record holding the loan parameters
and totals, with one child row per schedule entry. It defaults to SQLite for
local development, but accepts any SQLAlchemy-compatible URL (e.g.
PostgreSQL/MySQL). The engine never sees these models: the store alone turns
a ``ScheduleResult`` into rows and owns the cascade on delete.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    create_engine,
    select,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from loan_schedule.data_models import LoanParameters, ScheduleResult

from .payloads import params_from_json, params_to_json

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class CalculationRecord(Base):
    __tablename__ = "loan_calculations"

    id = Column(String(64), primary_key=True)
    user_token = Column(String(64), index=True, nullable=False)
    scheme = Column(String(16), nullable=False)
    currency = Column(String(8), nullable=False)
    principal = Column(Numeric(19, 2), nullable=False)
    rate = Column(Numeric(7, 4), nullable=False)
    duration = Column(Integer, nullable=False)
    disbursement_date = Column(Date, nullable=False)
    params_json = Column(Text, nullable=False)
    total_payment = Column(Numeric(19, 2), nullable=False)
    total_interest = Column(Numeric(19, 2), nullable=False)
    total_subsidy = Column(Numeric(19, 2), nullable=False)
    subsidized_payment = Column(Numeric(19, 2))
    full_payment = Column(Numeric(19, 2))
    balance_after_subsidy = Column(Numeric(19, 2))
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    rows = relationship(
        "ScheduleRowRecord",
        back_populates="calculation",
        cascade="all, delete-orphan",
        order_by="ScheduleRowRecord.position",
    )


class ScheduleRowRecord(Base):
    __tablename__ = "loan_schedule_rows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    calculation_id = Column(String(64), ForeignKey("loan_calculations.id"), index=True, nullable=False)
    position = Column(Integer, nullable=False)
    period = Column(Integer, nullable=False)
    payment_date = Column(Date, nullable=False)
    payment = Column(Numeric(19, 2), nullable=False)
    principal = Column(Numeric(19, 2), nullable=False)
    interest = Column(Numeric(19, 2), nullable=False)
    remaining = Column(Numeric(19, 2), nullable=False)
    subsidy = Column(Numeric(19, 2))
    early_payment = Column(Boolean, nullable=False, default=False)

    calculation = relationship("CalculationRecord", back_populates="rows")


@dataclass
class HistoryFilter:
    """Optional criteria for listing saved calculations."""

    from_date: Optional[date] = None
    to_date: Optional[date] = None
    scheme: Optional[str] = None
    currency: Optional[str] = None
    min_principal: Optional[Decimal] = None
    max_principal: Optional[Decimal] = None
    min_rate: Optional[Decimal] = None
    max_rate: Optional[Decimal] = None


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else f"{Decimal(value):.2f}"


class HistoryStore:
    """Database-backed calculation history."""

    def __init__(self, url: str, *, max_per_user: int = 50) -> None:
        self._engine = create_engine(url, future=True)
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False, future=True)
        self._max_per_user = max_per_user

    def save(self, user_token: str, params: LoanParameters, result: ScheduleResult) -> str:
        """Store a computed schedule and return the new record id."""
        record = CalculationRecord(
            id=uuid4().hex,
            user_token=user_token,
            scheme=params.scheme.value,
            currency=params.currency.value,
            principal=params.principal,
            rate=params.rate,
            duration=params.duration,
            disbursement_date=params.disbursement_date,
            params_json=json.dumps(params_to_json(params)),
            total_payment=result.total_payment,
            total_interest=result.total_interest,
            total_subsidy=result.total_subsidy,
            subsidized_payment=result.subsidized_payment,
            full_payment=result.full_payment,
            balance_after_subsidy=result.balance_after_subsidy,
        )
        record.rows = [
            ScheduleRowRecord(
                position=position,
                period=entry.period,
                payment_date=entry.date,
                payment=entry.payment,
                principal=entry.principal,
                interest=entry.interest,
                remaining=entry.remaining,
                subsidy=entry.subsidy,
                early_payment=entry.early_payment,
            )
            for position, entry in enumerate(result.entries)
        ]
        with self._session_factory() as session:
            session.add(record)
            session.commit()
        self._trim_user(user_token)
        return record.id

    def list_calculations(self, user_token: str, filters: Optional[HistoryFilter] = None) -> List[Dict[str, Any]]:
        if not user_token:
            return []
        query = select(CalculationRecord).where(CalculationRecord.user_token == user_token)
        f = filters or HistoryFilter()
        if f.from_date is not None:
            query = query.where(CalculationRecord.created_at >= datetime.combine(f.from_date, time.min))
        if f.to_date is not None:
            query = query.where(CalculationRecord.created_at <= datetime.combine(f.to_date, time.max))
        if f.scheme is not None:
            query = query.where(CalculationRecord.scheme == f.scheme)
        if f.currency is not None:
            query = query.where(CalculationRecord.currency == f.currency)
        if f.min_principal is not None:
            query = query.where(CalculationRecord.principal >= f.min_principal)
        if f.max_principal is not None:
            query = query.where(CalculationRecord.principal <= f.max_principal)
        if f.min_rate is not None:
            query = query.where(CalculationRecord.rate >= f.min_rate)
        if f.max_rate is not None:
            query = query.where(CalculationRecord.rate <= f.max_rate)
        query = query.order_by(CalculationRecord.created_at.desc())
        with self._session_factory() as session:
            return [self._to_summary(row) for row in session.execute(query).scalars()]

    def get(self, user_token: str, calculation_id: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as session:
            row = self._load(session, user_token, calculation_id)
            if row is None:
                return None
            data = self._to_summary(row)
            data["parameters"] = json.loads(row.params_json)
            data["schedule"] = [
                {
                    "period": r.period,
                    "date": r.payment_date.isoformat(),
                    "payment": _money(r.payment),
                    "principal": _money(r.principal),
                    "interest": _money(r.interest),
                    "remaining": _money(r.remaining),
                    "subsidy": _money(r.subsidy),
                    "early_payment": r.early_payment,
                }
                for r in row.rows
            ]
            return data

    def get_params(self, user_token: str, calculation_id: str) -> Optional[LoanParameters]:
        with self._session_factory() as session:
            row = self._load(session, user_token, calculation_id)
            if row is None:
                return None
            return params_from_json(json.loads(row.params_json))

    def delete(self, user_token: str, calculation_id: str) -> bool:
        with self._session_factory() as session:
            row = self._load(session, user_token, calculation_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    @staticmethod
    def _load(session, user_token: str, calculation_id: str) -> Optional[CalculationRecord]:
        if not user_token:
            return None
        row = session.get(CalculationRecord, calculation_id)
        if row is None or row.user_token != user_token:
            return None
        return row

    def _trim_user(self, user_token: str) -> None:
        if not self._max_per_user or self._max_per_user < 0:
            return
        with self._session_factory() as session:
            rows = session.execute(
                select(CalculationRecord)
                .where(CalculationRecord.user_token == user_token)
                .order_by(CalculationRecord.created_at.desc())
            ).scalars().all()
            if len(rows) <= self._max_per_user:
                return
            for row in rows[self._max_per_user :]:
                session.delete(row)
            session.commit()

    @staticmethod
    def _to_summary(row: CalculationRecord) -> Dict[str, Any]:
        return {
            "id": row.id,
            "scheme": row.scheme,
            "currency": row.currency,
            "principal": _money(row.principal),
            "rate": f"{Decimal(row.rate)}",
            "duration": row.duration,
            "disbursement_date": row.disbursement_date.isoformat(),
            "total_payment": _money(row.total_payment),
            "total_interest": _money(row.total_interest),
            "total_subsidy": _money(row.total_subsidy),
            "subsidized_payment": _money(row.subsidized_payment),
            "full_payment": _money(row.full_payment),
            "balance_after_subsidy": _money(row.balance_after_subsidy),
            "created_at": row.created_at.isoformat(),
        }


def create_store_from_env(url: str | None, max_per_user: int = 50) -> HistoryStore:
    return HistoryStore(url or "sqlite:///loan_history.sqlite3", max_per_user=max_per_user)
