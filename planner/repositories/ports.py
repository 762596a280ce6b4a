"""Persistence ports used by the occurrence and matching services.

Services depend on these protocols only; ``planner.repositories.sql`` provides
the SQLAlchemy implementations and tests may substitute in-memory doubles.
"""

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from typing import Protocol
from uuid import UUID

from planner.models import (
    MatchDecision,
    MatchStatus,
    PlannedTransaction,
    PlannedTransactionTemplate,
    Transaction,
    TransactionMatch,
)


class TemplateStore(Protocol):
    async def get(self, user_id: UUID, template_id: UUID) -> PlannedTransactionTemplate | None: ...

    async def list(
        self,
        user_id: UUID,
        *,
        active_only: bool = False,
        account_id: UUID | None = None,
    ) -> Sequence[PlannedTransactionTemplate]: ...

    async def add(self, template: PlannedTransactionTemplate) -> PlannedTransactionTemplate: ...

    async def delete(self, template: PlannedTransactionTemplate) -> None: ...


class PlannedTransactionStore(Protocol):
    async def get(self, user_id: UUID, planned_id: UUID) -> PlannedTransaction | None: ...

    async def get_for_slot(
        self, user_id: UUID, template_id: UUID, occurrence_date: date
    ) -> PlannedTransaction | None: ...

    async def list_in_window(
        self,
        user_id: UUID,
        start_date: date,
        end_date: date,
        *,
        template_id: UUID | None = None,
        account_id: UUID | None = None,
    ) -> Sequence[PlannedTransaction]: ...

    async def list_for_template(self, user_id: UUID, template_id: UUID) -> Sequence[PlannedTransaction]: ...

    async def add(self, planned: PlannedTransaction) -> PlannedTransaction: ...

    async def delete(self, planned: PlannedTransaction) -> None: ...


class TransactionStore(Protocol):
    async def get(self, user_id: UUID, transaction_id: UUID, *, for_update: bool = False) -> Transaction | None: ...

    async def list_unmatched_since(self, user_id: UUID, since: date, *, limit: int) -> Sequence[Transaction]: ...


class MatchStore(Protocol):
    async def get(self, user_id: UUID, match_id: UUID, *, for_update: bool = False) -> TransactionMatch | None: ...

    async def active_for_transaction(self, user_id: UUID, transaction_id: UUID) -> TransactionMatch | None: ...

    async def active_for_occurrence(self, user_id: UUID, occurrence_key: str) -> TransactionMatch | None: ...

    async def find_pair(
        self,
        user_id: UUID,
        transaction_id: UUID,
        occurrence_key: str,
        status: MatchStatus,
    ) -> TransactionMatch | None: ...

    async def active_occurrence_keys(self, user_id: UUID, occurrence_keys: Iterable[str]) -> set[str]: ...

    async def dismissed_occurrence_keys(self, user_id: UUID, transaction_id: UUID) -> set[str]: ...

    async def list_by_status(
        self, user_id: UUID, status: MatchStatus, *, limit: int, offset: int
    ) -> tuple[Sequence[TransactionMatch], int]: ...

    async def add(self, match: TransactionMatch) -> TransactionMatch:
        """Persist a new match; raises ``MatchConflict`` on an active-match collision."""
        ...

    async def save(self, match: TransactionMatch) -> TransactionMatch: ...


class MatchHistoryStore(Protocol):
    async def record(self, decision: MatchDecision) -> None: ...

    async def list(
        self,
        user_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int,
        offset: int,
    ) -> tuple[Sequence[MatchDecision], int]: ...


class UnitOfWork(Protocol):
    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...
