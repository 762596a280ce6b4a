"""Transaction-to-occurrence match models."""

from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Uuid, text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from planner.database import Base
from planner.models.base import TimestampMixin, UserOwnedMixin, UUIDMixin

# SQLEnum persists member names, so the partial index predicate uses them too.
ACTIVE_MATCH_PREDICATE = "status IN ('PENDING', 'CONFIRMED')"


class MatchStatus(str, Enum):
    """Lifecycle state of a match record."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"
    UNMATCHED = "unmatched"


class MatchMethod(str, Enum):
    """How a confirmed match came about."""

    AUTO = "auto"
    AUTO_REVIEWED = "auto_reviewed"
    MANUAL = "manual"


class DecisionAction(str, Enum):
    """Audit log action recorded for each lifecycle decision."""

    SUGGESTED = "suggested"
    CONFIRMED = "confirmed"
    AUTO_CONFIRMED = "auto_confirmed"
    DISMISSED = "dismissed"
    UNMATCHED = "unmatched"


ACTIVE_STATUSES = (MatchStatus.PENDING, MatchStatus.CONFIRMED)


class TransactionMatch(Base, UUIDMixin, UserOwnedMixin, TimestampMixin):
    """Link between a settled transaction and a planned occurrence."""

    __tablename__ = "transaction_matches"
    __table_args__ = (
        Index(
            "uq_active_match_transaction",
            "transaction_id",
            unique=True,
            sqlite_where=text(ACTIVE_MATCH_PREDICATE),
            postgresql_where=text(ACTIVE_MATCH_PREDICATE),
        ),
        Index(
            "uq_active_match_occurrence",
            "occurrence_key",
            unique=True,
            sqlite_where=text(ACTIVE_MATCH_PREDICATE),
            postgresql_where=text(ACTIVE_MATCH_PREDICATE),
        ),
    )

    transaction_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Persisted planned-transaction id or a virtual occurrence id
    occurrence_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    occurrence_key: Mapped[str] = mapped_column(String(100), nullable=False)
    template_id: Mapped[UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    expected_date: Mapped[date] = mapped_column(Date, nullable=False)
    planned_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reasons: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    method: Mapped[MatchMethod | None] = mapped_column(SQLEnum(MatchMethod), nullable=True)
    status: Mapped[MatchStatus] = mapped_column(
        SQLEnum(MatchStatus), nullable=False, default=MatchStatus.PENDING, index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class MatchDecision(Base):
    """Append-only record of a match lifecycle decision."""

    __tablename__ = "match_decisions"

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    match_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("transaction_matches.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    transaction_id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    occurrence_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[DecisionAction] = mapped_column(SQLEnum(DecisionAction), nullable=False)
    method: Mapped[MatchMethod | None] = mapped_column(SQLEnum(MatchMethod), nullable=True)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        index=True,
    )
