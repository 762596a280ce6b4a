"""Settled (real) transaction model."""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Date, Numeric, String, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base
from planner.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin


class TransactionType(str, Enum):
    """Direction of money movement shared by real and planned transactions."""

    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Transaction(Base, UUIDMixin, UserOwnedMixin, TimestampMixin):
    """A settled bank transaction.

    Owned by the import/sync pipeline; this engine only reads it and writes the
    match linkage field when a match is confirmed.
    """

    __tablename__ = "transactions"

    account_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    category_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    type: Mapped[TransactionType] = mapped_column(SQLEnum(TransactionType), nullable=False)
    # Signed: outflows negative, inflows positive
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    txn_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    matched_occurrence_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
