"""Planned-transaction template API router."""

from datetime import date
from uuid import UUID

from fastapi import APIRouter, Query, status

from planner.deps import CurrentUserId, DbSession, OccurrenceServiceDep, TemplateServiceDep
from planner.logger import get_logger
from planner.schemas import (
    NextOccurrenceResponse,
    OccurrenceListResponse,
    OccurrenceResponse,
    TemplateCreate,
    TemplateListResponse,
    TemplateResponse,
    TemplateUpdate,
    build_occurrence_list,
)
from planner.services.errors import PlannerError
from planner.utils.exceptions import raise_for_planner_error

router = APIRouter(prefix="/templates", tags=["templates"])
logger = get_logger(__name__)


@router.post("", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    payload: TemplateCreate,
    db: DbSession,
    user_id: CurrentUserId,
    service: TemplateServiceDep,
) -> TemplateResponse:
    """Create a recurring template."""
    try:
        template = await service.create(user_id, **payload.model_dump())
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    return TemplateResponse.model_validate(template)


@router.get("", response_model=TemplateListResponse)
async def list_templates(
    user_id: CurrentUserId,
    service: TemplateServiceDep,
    active_only: bool = Query(False),
    account_id: UUID | None = None,
) -> TemplateListResponse:
    templates = await service.list(user_id, active_only=active_only, account_id=account_id)
    items = [TemplateResponse.model_validate(t) for t in templates]
    return TemplateListResponse(items=items, total=len(items))


@router.get("/{template_id}", response_model=TemplateResponse)
async def get_template(
    template_id: UUID,
    user_id: CurrentUserId,
    service: TemplateServiceDep,
) -> TemplateResponse:
    try:
        template = await service.get(user_id, template_id)
    except PlannerError as exc:
        logger.debug("Template not found", template_id=str(template_id))
        raise_for_planner_error(exc)
    return TemplateResponse.model_validate(template)


@router.patch("/{template_id}", response_model=TemplateResponse)
async def update_template(
    template_id: UUID,
    payload: TemplateUpdate,
    db: DbSession,
    user_id: CurrentUserId,
    service: TemplateServiceDep,
) -> TemplateResponse:
    """Update a template. Existing per-occurrence overrides are kept."""
    try:
        template = await service.update(user_id, template_id, payload.model_dump(exclude_unset=True))
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    return TemplateResponse.model_validate(template)


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
    service: TemplateServiceDep,
) -> None:
    """Delete a template together with its overrides."""
    try:
        await service.delete(user_id, template_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()


@router.get("/{template_id}/occurrences", response_model=OccurrenceListResponse)
async def list_template_occurrences(
    template_id: UUID,
    user_id: CurrentUserId,
    occurrences: OccurrenceServiceDep,
    start_date: date = Query(...),
    end_date: date = Query(...),
    include_skipped: bool = Query(False),
) -> OccurrenceListResponse:
    """Effective occurrences of one template inside a window."""
    try:
        merged = await occurrences.compute_occurrences(
            user_id, template_id, start_date, end_date, include_skipped=include_skipped
        )
    except PlannerError as exc:
        raise_for_planner_error(exc)
    return build_occurrence_list(merged)


@router.get("/{template_id}/next", response_model=NextOccurrenceResponse)
async def get_next_occurrence(
    template_id: UUID,
    user_id: CurrentUserId,
    service: TemplateServiceDep,
    as_of: date | None = None,
) -> NextOccurrenceResponse:
    try:
        occurrence = await service.next_occurrence(user_id, template_id, as_of or date.today())
    except PlannerError as exc:
        raise_for_planner_error(exc)
    if occurrence is None:
        return NextOccurrenceResponse(occurrence=None)
    return NextOccurrenceResponse(occurrence=OccurrenceResponse.model_validate(occurrence))
