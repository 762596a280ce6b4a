"""Recurring planned-transaction template model."""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base
from planner.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin
from planner.models.transaction import TransactionType


class PeriodType(str, Enum):
    """Recurrence period unit."""

    DAILY = "daily"
    WEEKLY = "weekly"
    FORTNIGHTLY = "fortnightly"
    MONTHLY = "monthly"
    ANNUALLY = "annually"


class DayOfMonthType(str, Enum):
    """Day-selection policy for monthly templates."""

    FIXED = "fixed"
    LAST_DAY = "last_day"
    FIRST_WEEKDAY = "first_weekday"
    LAST_WEEKDAY = "last_weekday"
    FIRST_OF_WEEK = "first_of_week"
    LAST_OF_WEEK = "last_of_week"


class PlannedTransactionTemplate(Base, UUIDMixin, UserOwnedMixin, TimestampMixin):
    """Recurrence definition that generates planned occurrences on demand."""

    __tablename__ = "planned_transaction_templates"

    account_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    account_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    category_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    category_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    is_transfer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    transfer_to_account_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    type: Mapped[TransactionType] = mapped_column(SQLEnum(TransactionType), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    # Recurrence
    period_type: Mapped[PeriodType] = mapped_column(SQLEnum(PeriodType), nullable=False)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    first_occurrence: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    day_of_month: Mapped[int | None] = mapped_column(Integer, nullable=True)
    day_of_month_type: Mapped[DayOfMonthType | None] = mapped_column(
        SQLEnum(DayOfMonthType), nullable=True
    )
    # 0=Sunday .. 6=Saturday
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Matching configuration
    auto_match_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    skip_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    match_tolerance: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    match_window_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
