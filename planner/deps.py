"""Common FastAPI dependencies for consistent type annotations.

Usage:
    from planner.deps import CurrentUserId, DbSession, ReconcilerDep

    async def my_endpoint(db: DbSession, user_id: CurrentUserId, reconciler: ReconcilerDep):
        ...

Authentication lives in front of this service; the caller's user id arrives
in the ``X-User-Id`` header.
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from planner.config import settings
from planner.database import get_db
from planner.repositories.sql import (
    SqlMatchHistoryStore,
    SqlMatchStore,
    SqlPlannedTransactionStore,
    SqlTemplateStore,
    SqlTransactionStore,
    SqlUnitOfWork,
)
from planner.services.match_scoring import load_matching_config
from planner.services.matching import MatchReconciler
from planner.services.occurrences import OccurrenceService
from planner.services.templates import TemplateService
from planner.utils.exceptions import raise_unauthorized


async def get_current_user_id(x_user_id: Annotated[str | None, Header()] = None) -> UUID:
    if not x_user_id:
        raise_unauthorized("Missing X-User-Id header")
    try:
        return UUID(x_user_id)
    except ValueError as exc:
        raise_unauthorized("Invalid X-User-Id header", cause=exc)


def build_occurrence_service(db: AsyncSession) -> OccurrenceService:
    return OccurrenceService(
        SqlTemplateStore(db),
        SqlPlannedTransactionStore(db),
        SqlMatchStore(db),
        SqlTransactionStore(db),
        max_window_days=settings.max_occurrence_window_days,
    )


def build_template_service(db: AsyncSession) -> TemplateService:
    return TemplateService(SqlTemplateStore(db), build_occurrence_service(db))


def build_match_reconciler(db: AsyncSession) -> MatchReconciler:
    return MatchReconciler(
        SqlTransactionStore(db),
        build_occurrence_service(db),
        SqlMatchStore(db),
        SqlMatchHistoryStore(db),
        SqlUnitOfWork(db),
        config=load_matching_config(),
        max_batch_size=settings.max_batch_size,
        pending_lookback_days=settings.pending_lookback_days,
    )


DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]


def get_occurrence_service(db: DbSession) -> OccurrenceService:
    return build_occurrence_service(db)


def get_template_service(db: DbSession) -> TemplateService:
    return build_template_service(db)


def get_match_reconciler(db: DbSession) -> MatchReconciler:
    return build_match_reconciler(db)


OccurrenceServiceDep = Annotated[OccurrenceService, Depends(get_occurrence_service)]
TemplateServiceDep = Annotated[TemplateService, Depends(get_template_service)]
ReconcilerDep = Annotated[MatchReconciler, Depends(get_match_reconciler)]

__all__ = [
    "CurrentUserId",
    "DbSession",
    "OccurrenceServiceDep",
    "ReconcilerDep",
    "TemplateServiceDep",
    "build_match_reconciler",
    "build_occurrence_service",
    "build_template_service",
]
