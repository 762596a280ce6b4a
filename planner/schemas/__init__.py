"""Pydantic request and response schemas."""

from planner.schemas.base import BaseResponse, ListResponse
from planner.schemas.matching import (
    AutoMatchResponse,
    BatchAutoMatchRequest,
    BatchAutoMatchResponse,
    BatchItemErrorResponse,
    ConfirmMatchRequest,
    MatchCandidateResponse,
    MatchDecisionResponse,
    MatchHistoryResponse,
    MatchListResponse,
    MatchPairRequest,
    MatchResponse,
    MatchScoreResponse,
    MatchSuggestionsResponse,
)
from planner.schemas.occurrences import (
    NextOccurrenceResponse,
    build_occurrence_list,
    OccurrenceListResponse,
    OccurrenceResponse,
    OccurrenceUpdate,
    OneTimeCreate,
    RejectedOverrideResponse,
)
from planner.schemas.templates import (
    TemplateCreate,
    TemplateListResponse,
    TemplateResponse,
    TemplateUpdate,
)

__all__ = [
    "AutoMatchResponse",
    "BaseResponse",
    "BatchAutoMatchRequest",
    "BatchAutoMatchResponse",
    "BatchItemErrorResponse",
    "ConfirmMatchRequest",
    "ListResponse",
    "MatchCandidateResponse",
    "MatchDecisionResponse",
    "MatchHistoryResponse",
    "MatchListResponse",
    "MatchPairRequest",
    "MatchResponse",
    "MatchScoreResponse",
    "MatchSuggestionsResponse",
    "NextOccurrenceResponse",
    "OccurrenceListResponse",
    "OccurrenceResponse",
    "OccurrenceUpdate",
    "OneTimeCreate",
    "RejectedOverrideResponse",
    "TemplateCreate",
    "TemplateListResponse",
    "TemplateResponse",
    "TemplateUpdate",
    "build_occurrence_list",
]
