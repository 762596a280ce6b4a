"""Common exception utilities for FastAPI routers."""

from typing import NoReturn

from fastapi import HTTPException, status

from planner.services.errors import InvalidMatchState, MatchConflict, NotFound, PlannerError


def raise_not_found(resource_name: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"{resource_name} not found",
    ) from cause


def raise_bad_request(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=detail,
    ) from cause


def raise_conflict(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=detail,
    ) from cause


def raise_unauthorized(detail: str, *, cause: Exception | None = None) -> NoReturn:
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
    ) from cause


def raise_for_planner_error(exc: PlannerError) -> NoReturn:
    """Translate a domain error into the matching HTTP error."""
    if isinstance(exc, NotFound):
        raise_not_found(exc.resource, cause=exc)
    if isinstance(exc, (MatchConflict, InvalidMatchState)):
        raise_conflict(str(exc), cause=exc)
    raise_bad_request(str(exc), cause=exc)
