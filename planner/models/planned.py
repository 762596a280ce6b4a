"""Persisted planned transactions: one-time entries and template overrides."""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Integer, Numeric, String, UniqueConstraint, Uuid
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base
from planner.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin
from planner.models.transaction import TransactionType
from planner.utils.occurrence_ids import virtual_occurrence_id


class PlannedKind(str, Enum):
    """What a persisted planned transaction represents."""

    ONE_TIME = "one_time"
    CUSTOMIZED = "customized"
    SKIPPED = "skipped"


class PlannedTransaction(Base, UUIDMixin, UserOwnedMixin, TimestampMixin):
    """A persisted occurrence.

    Template-linked rows replace the slot ``(template_id, occurrence_date)`` that
    the resolver would otherwise generate. ``expected_date`` is where the
    occurrence actually lands and may differ from the slot date.
    """

    __tablename__ = "planned_transactions"
    __table_args__ = (
        UniqueConstraint("template_id", "occurrence_date", name="uq_planned_template_slot"),
    )

    template_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("planned_transaction_templates.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    kind: Mapped[PlannedKind] = mapped_column(
        SQLEnum(PlannedKind), nullable=False, default=PlannedKind.ONE_TIME
    )
    occurrence_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expected_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

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

    auto_match_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    skip_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    match_tolerance: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    match_window_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)

    @property
    def occurrence_id(self) -> str:
        return str(self.id)

    @property
    def occurrence_key(self) -> str:
        """Slot identity shared with the virtual occurrence this row replaces."""
        if self.template_id is not None and self.occurrence_date is not None:
            return virtual_occurrence_id(self.template_id, self.occurrence_date)
        return str(self.id)

    @property
    def is_virtual(self) -> bool:
        return False

    @property
    def is_skipped(self) -> bool:
        return self.kind == PlannedKind.SKIPPED
