"""Planned occurrence API router.

Occurrence ids are either persisted planned-transaction UUIDs or virtual ids of
the form ``virtual_{templateId}_{YYYY-MM-DD}``.
"""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from planner.deps import CurrentUserId, DbSession, OccurrenceServiceDep
from planner.schemas import (
    OccurrenceListResponse,
    OccurrenceResponse,
    OccurrenceUpdate,
    OneTimeCreate,
    build_occurrence_list,
)
from planner.services.errors import PlannerError
from planner.utils.exceptions import raise_for_planner_error

router = APIRouter(prefix="/occurrences", tags=["occurrences"])


@router.get("", response_model=OccurrenceListResponse)
async def list_occurrences(
    user_id: CurrentUserId,
    occurrences: OccurrenceServiceDep,
    start_date: date = Query(...),
    end_date: date = Query(...),
    account_id: UUID | None = None,
    include_skipped: bool = Query(False),
) -> OccurrenceListResponse:
    """Effective planned transactions across all templates and one-time entries."""
    try:
        merged = await occurrences.list_planned(
            user_id,
            start_date,
            end_date,
            account_id=account_id,
            include_skipped=include_skipped,
        )
    except PlannerError as exc:
        raise_for_planner_error(exc)
    return build_occurrence_list(merged)


@router.post("", response_model=OccurrenceResponse, status_code=status.HTTP_201_CREATED)
async def create_one_time(
    payload: OneTimeCreate,
    db: DbSession,
    user_id: CurrentUserId,
    occurrences: OccurrenceServiceDep,
) -> OccurrenceResponse:
    planned = await occurrences.create_one_time(user_id, **payload.model_dump())
    await db.commit()
    return OccurrenceResponse.model_validate(planned)


@router.get("/{occurrence_id}", response_model=OccurrenceResponse)
async def get_occurrence(
    occurrence_id: str,
    user_id: CurrentUserId,
    occurrences: OccurrenceServiceDep,
) -> OccurrenceResponse:
    try:
        occurrence = await occurrences.get_occurrence(user_id, occurrence_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    return OccurrenceResponse.model_validate(occurrence)


@router.patch("/{occurrence_id}", response_model=OccurrenceResponse)
async def customize_occurrence(
    occurrence_id: str,
    payload: OccurrenceUpdate,
    db: DbSession,
    user_id: CurrentUserId,
    occurrences: OccurrenceServiceDep,
) -> OccurrenceResponse:
    """Customize one occurrence; a virtual occurrence is persisted as an override."""
    try:
        planned = await occurrences.customize_occurrence(
            user_id, occurrence_id, payload.model_dump(exclude_unset=True)
        )
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    return OccurrenceResponse.model_validate(planned)


@router.post("/{occurrence_id}/skip", response_model=OccurrenceResponse)
async def skip_occurrence(
    occurrence_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    occurrences: OccurrenceServiceDep,
) -> OccurrenceResponse:
    try:
        planned = await occurrences.skip_occurrence(user_id, occurrence_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    return OccurrenceResponse.model_validate(planned)


@router.delete("/{occurrence_id}", response_model=OccurrenceResponse | None)
async def restore_occurrence(
    occurrence_id: str,
    db: DbSession,
    user_id: CurrentUserId,
    occurrences: OccurrenceServiceDep,
) -> OccurrenceResponse | Response:
    """Drop a persisted occurrence.

    Template slots revert to their generated occurrence, which is returned.
    One-time entries are deleted (204).
    """
    try:
        restored = await occurrences.restore_occurrence(user_id, occurrence_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    if restored is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return OccurrenceResponse.model_validate(restored)
