"""SQLAlchemy async implementations of the persistence ports."""

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from planner.logger import get_logger
from planner.models import (
    ACTIVE_STATUSES,
    MatchDecision,
    MatchStatus,
    PlannedTransaction,
    PlannedTransactionTemplate,
    Transaction,
    TransactionMatch,
)
from planner.services.errors import MatchConflict

logger = get_logger(__name__)


class SqlTemplateStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, user_id: UUID, template_id: UUID) -> PlannedTransactionTemplate | None:
        result = await self.db.execute(
            select(PlannedTransactionTemplate)
            .where(PlannedTransactionTemplate.id == template_id)
            .where(PlannedTransactionTemplate.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def list(
        self,
        user_id: UUID,
        *,
        active_only: bool = False,
        account_id: UUID | None = None,
    ) -> Sequence[PlannedTransactionTemplate]:
        query = select(PlannedTransactionTemplate).where(PlannedTransactionTemplate.user_id == user_id)
        if active_only:
            query = query.where(PlannedTransactionTemplate.is_active.is_(True))
        if account_id is not None:
            query = query.where(
                or_(
                    PlannedTransactionTemplate.account_id == account_id,
                    PlannedTransactionTemplate.transfer_to_account_id == account_id,
                )
            )
        result = await self.db.execute(
            query.order_by(PlannedTransactionTemplate.first_occurrence, PlannedTransactionTemplate.name)
        )
        return result.scalars().all()

    async def add(self, template: PlannedTransactionTemplate) -> PlannedTransactionTemplate:
        self.db.add(template)
        await self.db.flush()
        return template

    async def delete(self, template: PlannedTransactionTemplate) -> None:
        # Overrides are removed explicitly; SQLite does not enforce ON DELETE by default
        await self.db.execute(
            delete(PlannedTransaction)
            .where(PlannedTransaction.template_id == template.id)
            .where(PlannedTransaction.user_id == template.user_id)
        )
        await self.db.delete(template)
        await self.db.flush()


class SqlPlannedTransactionStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, user_id: UUID, planned_id: UUID) -> PlannedTransaction | None:
        result = await self.db.execute(
            select(PlannedTransaction)
            .where(PlannedTransaction.id == planned_id)
            .where(PlannedTransaction.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_for_slot(
        self, user_id: UUID, template_id: UUID, occurrence_date: date
    ) -> PlannedTransaction | None:
        result = await self.db.execute(
            select(PlannedTransaction)
            .where(PlannedTransaction.user_id == user_id)
            .where(PlannedTransaction.template_id == template_id)
            .where(PlannedTransaction.occurrence_date == occurrence_date)
        )
        return result.scalar_one_or_none()

    async def list_in_window(
        self,
        user_id: UUID,
        start_date: date,
        end_date: date,
        *,
        template_id: UUID | None = None,
        account_id: UUID | None = None,
    ) -> Sequence[PlannedTransaction]:
        # Match on either the slot date or the effective date so moved overrides
        # still suppress their slot and still appear where they landed.
        query = (
            select(PlannedTransaction)
            .where(PlannedTransaction.user_id == user_id)
            .where(
                or_(
                    PlannedTransaction.expected_date.between(start_date, end_date),
                    and_(
                        PlannedTransaction.occurrence_date.is_not(None),
                        PlannedTransaction.occurrence_date.between(start_date, end_date),
                    ),
                )
            )
        )
        if template_id is not None:
            query = query.where(PlannedTransaction.template_id == template_id)
        if account_id is not None:
            query = query.where(
                or_(
                    PlannedTransaction.account_id == account_id,
                    PlannedTransaction.transfer_to_account_id == account_id,
                )
            )
        result = await self.db.execute(query.order_by(PlannedTransaction.expected_date))
        return result.scalars().all()

    async def list_for_template(self, user_id: UUID, template_id: UUID) -> Sequence[PlannedTransaction]:
        result = await self.db.execute(
            select(PlannedTransaction)
            .where(PlannedTransaction.user_id == user_id)
            .where(PlannedTransaction.template_id == template_id)
            .order_by(PlannedTransaction.occurrence_date)
        )
        return result.scalars().all()

    async def add(self, planned: PlannedTransaction) -> PlannedTransaction:
        self.db.add(planned)
        await self.db.flush()
        return planned

    async def delete(self, planned: PlannedTransaction) -> None:
        await self.db.delete(planned)
        await self.db.flush()


class SqlTransactionStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, user_id: UUID, transaction_id: UUID, *, for_update: bool = False) -> Transaction | None:
        query = select(Transaction).where(Transaction.id == transaction_id).where(Transaction.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_unmatched_since(self, user_id: UUID, since: date, *, limit: int) -> Sequence[Transaction]:
        active = select(TransactionMatch.transaction_id).where(TransactionMatch.status.in_(ACTIVE_STATUSES))
        result = await self.db.execute(
            select(Transaction)
            .where(Transaction.user_id == user_id)
            .where(Transaction.txn_date >= since)
            .where(Transaction.id.not_in(active))
            .order_by(Transaction.txn_date, Transaction.id)
            .limit(limit)
        )
        return result.scalars().all()


class SqlMatchStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, user_id: UUID, match_id: UUID, *, for_update: bool = False) -> TransactionMatch | None:
        query = (
            select(TransactionMatch)
            .where(TransactionMatch.id == match_id)
            .where(TransactionMatch.user_id == user_id)
        )
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def active_for_transaction(self, user_id: UUID, transaction_id: UUID) -> TransactionMatch | None:
        result = await self.db.execute(
            select(TransactionMatch)
            .where(TransactionMatch.user_id == user_id)
            .where(TransactionMatch.transaction_id == transaction_id)
            .where(TransactionMatch.status.in_(ACTIVE_STATUSES))
        )
        return result.scalar_one_or_none()

    async def active_for_occurrence(self, user_id: UUID, occurrence_key: str) -> TransactionMatch | None:
        result = await self.db.execute(
            select(TransactionMatch)
            .where(TransactionMatch.user_id == user_id)
            .where(TransactionMatch.occurrence_key == occurrence_key)
            .where(TransactionMatch.status.in_(ACTIVE_STATUSES))
        )
        return result.scalar_one_or_none()

    async def find_pair(
        self,
        user_id: UUID,
        transaction_id: UUID,
        occurrence_key: str,
        status: MatchStatus,
    ) -> TransactionMatch | None:
        result = await self.db.execute(
            select(TransactionMatch)
            .where(TransactionMatch.user_id == user_id)
            .where(TransactionMatch.transaction_id == transaction_id)
            .where(TransactionMatch.occurrence_key == occurrence_key)
            .where(TransactionMatch.status == status)
            .order_by(TransactionMatch.created_at.desc())
            .limit(1)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def active_occurrence_keys(self, user_id: UUID, occurrence_keys: Iterable[str]) -> set[str]:
        keys = list(occurrence_keys)
        if not keys:
            return set()
        result = await self.db.execute(
            select(TransactionMatch.occurrence_key)
            .where(TransactionMatch.user_id == user_id)
            .where(TransactionMatch.occurrence_key.in_(keys))
            .where(TransactionMatch.status.in_(ACTIVE_STATUSES))
        )
        return set(result.scalars().all())

    async def dismissed_occurrence_keys(self, user_id: UUID, transaction_id: UUID) -> set[str]:
        result = await self.db.execute(
            select(TransactionMatch.occurrence_key)
            .where(TransactionMatch.user_id == user_id)
            .where(TransactionMatch.transaction_id == transaction_id)
            .where(TransactionMatch.status == MatchStatus.DISMISSED)
        )
        return set(result.scalars().all())

    async def list_by_status(
        self, user_id: UUID, status: MatchStatus, *, limit: int, offset: int
    ) -> tuple[Sequence[TransactionMatch], int]:
        base = (
            select(TransactionMatch)
            .where(TransactionMatch.user_id == user_id)
            .where(TransactionMatch.status == status)
        )
        total = await self.db.scalar(select(func.count()).select_from(base.subquery()))
        result = await self.db.execute(
            base.order_by(TransactionMatch.confidence.desc(), TransactionMatch.created_at)
            .limit(limit)
            .offset(offset)
        )
        return result.scalars().all(), total or 0

    async def add(self, match: TransactionMatch) -> TransactionMatch:
        self.db.add(match)
        await self._flush(match)
        return match

    async def save(self, match: TransactionMatch) -> TransactionMatch:
        await self._flush(match)
        return match

    async def _flush(self, match: TransactionMatch) -> None:
        try:
            await self.db.flush()
        except IntegrityError as exc:
            logger.warning(
                "Active match collision",
                transaction_id=str(match.transaction_id),
                occurrence_key=match.occurrence_key,
            )
            raise MatchConflict("Transaction or occurrence already has an active match") from exc


class SqlMatchHistoryStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def record(self, decision: MatchDecision) -> None:
        self.db.add(decision)
        await self.db.flush()

    async def list(
        self,
        user_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[MatchDecision], int]:
        base = select(MatchDecision).where(MatchDecision.user_id == user_id)
        if start is not None:
            base = base.where(MatchDecision.created_at >= start)
        if end is not None:
            base = base.where(MatchDecision.created_at <= end)
        total = await self.db.scalar(select(func.count()).select_from(base.subquery()))
        result = await self.db.execute(
            base.order_by(MatchDecision.created_at.desc()).limit(limit).offset(offset)
        )
        return result.scalars().all(), total or 0


class SqlUnitOfWork:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
