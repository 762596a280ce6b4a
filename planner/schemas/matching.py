"""Pydantic schemas for transaction matching."""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, Field

from planner.models import DecisionAction, MatchMethod, MatchStatus
from planner.schemas.base import BaseResponse, ListResponse
from planner.schemas.occurrences import OccurrenceResponse


class MatchScoreResponse(BaseModel):
    score: int
    tier: str
    accepted: bool
    reasons: list[str]
    # Score components are 0-100 percentages, not monetary values.
    breakdown: dict[str, float]
    rejected_reason: str | None = None


class MatchCandidateResponse(BaseModel):
    occurrence: OccurrenceResponse
    score: int
    tier: str
    reasons: list[str]
    breakdown: dict[str, float]
    days_apart: int


MatchSuggestionsResponse = ListResponse[MatchCandidateResponse]


class MatchResponse(BaseResponse):
    id: UUID
    transaction_id: UUID
    occurrence_id: str
    occurrence_key: str
    template_id: UUID | None
    expected_date: date
    planned_amount: Decimal
    confidence: int
    reasons: list[str]
    method: MatchMethod | None
    status: MatchStatus
    version: int
    decided_at: datetime | None
    created_at: datetime
    updated_at: datetime


MatchListResponse = ListResponse[MatchResponse]


class MatchDecisionResponse(BaseResponse):
    id: UUID
    match_id: UUID
    transaction_id: UUID
    occurrence_id: str
    action: DecisionAction
    method: MatchMethod | None
    confidence: int
    created_at: datetime


MatchHistoryResponse = ListResponse[MatchDecisionResponse]


class MatchPairRequest(BaseModel):
    """Transaction and occurrence a lifecycle action applies to."""

    transaction_id: UUID
    occurrence_id: Annotated[str, Field(min_length=1, max_length=100)]


class ConfirmMatchRequest(MatchPairRequest):
    method: MatchMethod | None = None


class AutoMatchResponse(BaseModel):
    transaction_id: UUID
    outcome: str
    match: MatchResponse | None = None


class BatchAutoMatchRequest(BaseModel):
    """Transactions to auto-match; omit ids to process recent unmatched ones."""

    transaction_ids: list[UUID] | None = None
    as_of: date | None = None


class BatchItemErrorResponse(BaseModel):
    transaction_id: UUID
    error: str


class BatchAutoMatchResponse(BaseModel):
    processed: int
    matched: int
    pending: int
    skipped: int
    errors: list[BatchItemErrorResponse]
