"""Transaction matching API router."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Query

from planner.deps import CurrentUserId, DbSession, ReconcilerDep
from planner.logger import get_logger
from planner.schemas import (
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
    OccurrenceResponse,
)
from planner.services.errors import PlannerError
from planner.services.match_scoring import MatchingConfig, MatchScore, confidence_tier
from planner.services.matching import MatchCandidate
from planner.utils.exceptions import raise_for_planner_error

router = APIRouter(prefix="/matching", tags=["matching"])
logger = get_logger(__name__)


def _build_candidate_response(candidate: MatchCandidate, config: MatchingConfig) -> MatchCandidateResponse:
    return MatchCandidateResponse(
        occurrence=OccurrenceResponse.model_validate(candidate.occurrence),
        score=candidate.score.score,
        tier=confidence_tier(candidate.score.score, config),
        reasons=candidate.score.reasons,
        breakdown=candidate.score.breakdown,
        days_apart=candidate.days_apart,
    )


def _build_score_response(result: MatchScore, config: MatchingConfig) -> MatchScoreResponse:
    return MatchScoreResponse(
        score=result.score,
        tier=confidence_tier(result.score, config),
        accepted=result.accepted,
        reasons=result.reasons,
        breakdown=result.breakdown,
        rejected_reason=result.rejected_reason,
    )


@router.get("/transactions/{transaction_id}/suggestions", response_model=MatchSuggestionsResponse)
async def suggest_matches(
    transaction_id: UUID,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
) -> MatchSuggestionsResponse:
    """Ranked occurrences the transaction could settle."""
    try:
        candidates = await reconciler.suggest_matches(user_id, transaction_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    items = [_build_candidate_response(c, reconciler.config) for c in candidates]
    return MatchSuggestionsResponse(items=items, total=len(items))


@router.get("/transactions/{transaction_id}/score/{occurrence_id}", response_model=MatchScoreResponse)
async def score_candidate(
    transaction_id: UUID,
    occurrence_id: str,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
) -> MatchScoreResponse:
    try:
        result = await reconciler.score_candidate(user_id, transaction_id, occurrence_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    return _build_score_response(result, reconciler.config)


@router.post("/transactions/{transaction_id}/auto", response_model=AutoMatchResponse)
async def auto_match(
    transaction_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
) -> AutoMatchResponse:
    try:
        result = await reconciler.auto_match(user_id, transaction_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    return AutoMatchResponse(
        transaction_id=result.transaction_id,
        outcome=result.outcome.value,
        match=MatchResponse.model_validate(result.match) if result.match else None,
    )


@router.post("/batch-auto", response_model=BatchAutoMatchResponse)
async def batch_auto_match(
    payload: BatchAutoMatchRequest,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
) -> BatchAutoMatchResponse:
    """Auto-match many transactions; each one is committed on its own."""
    try:
        summary = await reconciler.batch_auto_match(user_id, payload.transaction_ids, as_of=payload.as_of)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    return BatchAutoMatchResponse(
        processed=summary.processed,
        matched=summary.matched,
        pending=summary.pending,
        skipped=summary.skipped,
        errors=[BatchItemErrorResponse(transaction_id=e.transaction_id, error=e.error) for e in summary.errors],
    )


@router.get("/pending", response_model=MatchListResponse)
async def list_pending(
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> MatchListResponse:
    """Review queue of pending suggestions, highest confidence first."""
    matches, total = await reconciler.list_pending(user_id, limit=limit, offset=offset)
    return MatchListResponse(items=[MatchResponse.model_validate(m) for m in matches], total=total)


@router.get("/history", response_model=MatchHistoryResponse)
async def match_history(
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
) -> MatchHistoryResponse:
    decisions, total = await reconciler.match_history(user_id, start=start, end=end, limit=limit, offset=offset)
    return MatchHistoryResponse(items=[MatchDecisionResponse.model_validate(d) for d in decisions], total=total)


@router.post("/confirm", response_model=MatchResponse)
async def confirm_match(
    payload: ConfirmMatchRequest,
    db: DbSession,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
) -> MatchResponse:
    try:
        match = await reconciler.confirm_match(
            user_id, payload.transaction_id, payload.occurrence_id, method=payload.method
        )
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    return MatchResponse.model_validate(match)


@router.post("/manual", response_model=MatchResponse)
async def manual_match(
    payload: MatchPairRequest,
    db: DbSession,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
) -> MatchResponse:
    try:
        match = await reconciler.manual_match(user_id, payload.transaction_id, payload.occurrence_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    return MatchResponse.model_validate(match)


@router.post("/dismiss", response_model=MatchResponse)
async def dismiss_match(
    payload: MatchPairRequest,
    db: DbSession,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
) -> MatchResponse:
    try:
        match = await reconciler.dismiss_match(user_id, payload.transaction_id, payload.occurrence_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    return MatchResponse.model_validate(match)


@router.post("/{match_id}/unmatch", response_model=MatchResponse)
async def unmatch(
    match_id: UUID,
    db: DbSession,
    user_id: CurrentUserId,
    reconciler: ReconcilerDep,
) -> MatchResponse:
    try:
        match = await reconciler.unmatch(user_id, match_id)
    except PlannerError as exc:
        raise_for_planner_error(exc)
    await db.commit()
    logger.info("Match undone via API", match_id=str(match_id))
    return MatchResponse.model_validate(match)
