"""Reconciliation of settled transactions against planned occurrences.

Match lifecycle::

    (none) -> PENDING -> CONFIRMED -> UNMATCHED
                      -> DISMISSED

A transaction and an occurrence each take part in at most one active
(PENDING or CONFIRMED) match. Every decision is appended to the match history.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from uuid import UUID, uuid4

from planner.logger import get_logger, log_exception, log_timing
from planner.models import (
    DecisionAction,
    MatchDecision,
    MatchMethod,
    MatchStatus,
    Transaction,
    TransactionMatch,
)
from planner.repositories.ports import MatchHistoryStore, MatchStore, TransactionStore, UnitOfWork
from planner.services.errors import (
    BatchTooLarge,
    InvalidMatchState,
    MatchConflict,
    NotFound,
)
from planner.services.match_scoring import MatchingConfig, MatchScore, score_candidate
from planner.services.occurrences import Occurrence, OccurrenceService

logger = get_logger(__name__)

MANUAL_CONFIDENCE = 100


@dataclass
class MatchCandidate:
    """Ranked occurrence suggestion for a transaction."""

    occurrence: Occurrence
    score: MatchScore
    days_apart: int

    @property
    def occurrence_id(self) -> str:
        return self.occurrence.occurrence_id


class AutoMatchOutcome(str, Enum):
    CONFIRMED = "confirmed"
    PENDING = "pending"
    UNMATCHED = "unmatched"
    ALREADY_MATCHED = "already_matched"


@dataclass
class AutoMatchResult:
    transaction_id: UUID
    outcome: AutoMatchOutcome
    match: TransactionMatch | None = None


@dataclass
class BatchItemError:
    transaction_id: UUID
    error: str


@dataclass
class BatchMatchSummary:
    processed: int = 0
    matched: int = 0
    pending: int = 0
    skipped: int = 0
    errors: list[BatchItemError] = field(default_factory=list)


def _ranking_key(candidate: MatchCandidate) -> tuple[int, int, str]:
    # Highest score first, then nearest date, then lowest occurrence id
    return -candidate.score.score, candidate.days_apart, candidate.occurrence_id


class MatchReconciler:
    """Suggests, confirms and dismisses transaction/occurrence matches."""

    def __init__(
        self,
        transactions: TransactionStore,
        occurrences: OccurrenceService,
        matches: MatchStore,
        history: MatchHistoryStore,
        uow: UnitOfWork,
        *,
        config: MatchingConfig,
        max_batch_size: int,
        pending_lookback_days: int,
    ) -> None:
        self.transactions = transactions
        self.occurrences = occurrences
        self.matches = matches
        self.history = history
        self.uow = uow
        self.config = config
        self.max_batch_size = max_batch_size
        self.pending_lookback_days = pending_lookback_days

    async def _require_transaction(self, user_id: UUID, transaction_id: UUID, *, for_update: bool = False) -> Transaction:
        txn = await self.transactions.get(user_id, transaction_id, for_update=for_update)
        if txn is None:
            raise NotFound("Transaction", transaction_id)
        return txn

    async def _rank_candidates(self, user_id: UUID, txn: Transaction) -> list[MatchCandidate]:
        window = timedelta(days=self.config.search_window_days)
        merged = await self.occurrences.list_planned(user_id, txn.txn_date - window, txn.txn_date + window)
        occurrences = [o for o in merged.occurrences if not o.is_skipped]

        taken = await self.matches.active_occurrence_keys(user_id, (o.occurrence_key for o in occurrences))
        dismissed = await self.matches.dismissed_occurrence_keys(user_id, txn.id)

        ranked: list[MatchCandidate] = []
        for occurrence in occurrences:
            if occurrence.occurrence_key in taken or occurrence.occurrence_key in dismissed:
                continue
            result = score_candidate(txn, occurrence, self.config)
            if not result.accepted or result.score < self.config.review_min:
                continue
            ranked.append(
                MatchCandidate(
                    occurrence=occurrence,
                    score=result,
                    days_apart=abs((txn.txn_date - occurrence.expected_date).days),
                )
            )
        ranked.sort(key=_ranking_key)
        return ranked

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def suggest_matches(self, user_id: UUID, transaction_id: UUID) -> list[MatchCandidate]:
        """Rank the occurrences a transaction could settle."""
        txn = await self._require_transaction(user_id, transaction_id)
        ranked = await self._rank_candidates(user_id, txn)
        logger.info(
            "Suggested matches",
            transaction_id=str(transaction_id),
            candidates=len(ranked),
            top_score=ranked[0].score.score if ranked else None,
        )
        return ranked

    async def score_candidate(self, user_id: UUID, transaction_id: UUID, occurrence_id: str) -> MatchScore:
        txn = await self._require_transaction(user_id, transaction_id)
        occurrence = await self.occurrences.get_occurrence(user_id, occurrence_id)
        return score_candidate(txn, occurrence, self.config)

    async def list_pending(
        self, user_id: UUID, *, limit: int = 50, offset: int = 0
    ) -> tuple[Sequence[TransactionMatch], int]:
        return await self.matches.list_by_status(user_id, MatchStatus.PENDING, limit=limit, offset=offset)

    async def match_history(
        self,
        user_id: UUID,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[Sequence[MatchDecision], int]:
        return await self.history.list(user_id, start=start, end=end, limit=limit, offset=offset)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def auto_match(self, user_id: UUID, transaction_id: UUID) -> AutoMatchResult:
        """Confirm or propose the best candidate for one transaction.

        The top candidate is confirmed outright only when its occurrence opts in
        to auto-matching without review and the score reaches ``auto_confirm``;
        otherwise it becomes a pending suggestion.
        """
        txn = await self._require_transaction(user_id, transaction_id, for_update=True)
        existing = await self.matches.active_for_transaction(user_id, txn.id)
        if existing is not None:
            return AutoMatchResult(txn.id, AutoMatchOutcome.ALREADY_MATCHED, existing)

        ranked = await self._rank_candidates(user_id, txn)
        if not ranked:
            logger.info("No match candidates", transaction_id=str(txn.id))
            return AutoMatchResult(txn.id, AutoMatchOutcome.UNMATCHED)

        top = ranked[0]
        occurrence = top.occurrence
        if (
            occurrence.auto_match_enabled
            and occurrence.skip_review
            and top.score.score >= self.config.auto_confirm
        ):
            match = await self._create_match(
                user_id,
                txn,
                occurrence,
                status=MatchStatus.CONFIRMED,
                confidence=top.score.score,
                reasons=top.score.reasons,
                method=MatchMethod.AUTO,
                action=DecisionAction.AUTO_CONFIRMED,
            )
            return AutoMatchResult(txn.id, AutoMatchOutcome.CONFIRMED, match)

        match = await self._create_match(
            user_id,
            txn,
            occurrence,
            status=MatchStatus.PENDING,
            confidence=top.score.score,
            reasons=top.score.reasons,
            method=None,
            action=DecisionAction.SUGGESTED,
        )
        return AutoMatchResult(txn.id, AutoMatchOutcome.PENDING, match)

    async def confirm_match(
        self,
        user_id: UUID,
        transaction_id: UUID,
        occurrence_id: str,
        *,
        method: MatchMethod | None = None,
    ) -> TransactionMatch:
        """Confirm the pair, promoting a pending suggestion when one exists."""
        return await self._confirm(user_id, transaction_id, occurrence_id, method=method, manual=False)

    async def manual_match(self, user_id: UUID, transaction_id: UUID, occurrence_id: str) -> TransactionMatch:
        """Link a pair chosen by the user, bypassing scoring."""
        return await self._confirm(user_id, transaction_id, occurrence_id, method=MatchMethod.MANUAL, manual=True)

    async def _confirm(
        self,
        user_id: UUID,
        transaction_id: UUID,
        occurrence_id: str,
        *,
        method: MatchMethod | None,
        manual: bool,
    ) -> TransactionMatch:
        txn = await self._require_transaction(user_id, transaction_id, for_update=True)
        occurrence = await self.occurrences.get_occurrence(user_id, occurrence_id)
        if occurrence.is_skipped:
            raise InvalidMatchState("Cannot match a skipped occurrence")

        pending = await self.matches.find_pair(user_id, txn.id, occurrence.occurrence_key, MatchStatus.PENDING)
        if pending is not None:
            pending.status = MatchStatus.CONFIRMED
            pending.method = method or MatchMethod.AUTO_REVIEWED
            pending.occurrence_id = occurrence.occurrence_id
            if manual:
                pending.confidence = MANUAL_CONFIDENCE
            pending.version += 1
            pending.decided_at = datetime.now(UTC)
            await self.matches.save(pending)
            txn.matched_occurrence_id = occurrence.occurrence_id
            await self._record(pending, DecisionAction.CONFIRMED)
            logger.info(
                "Confirmed pending match",
                match_id=str(pending.id),
                transaction_id=str(txn.id),
                method=pending.method.value,
            )
            return pending

        if manual:
            confidence, reasons = MANUAL_CONFIDENCE, ["manual match"]
        else:
            result = score_candidate(txn, occurrence, self.config)
            confidence, reasons = result.score, result.reasons

        return await self._create_match(
            user_id,
            txn,
            occurrence,
            status=MatchStatus.CONFIRMED,
            confidence=confidence,
            reasons=reasons,
            method=method or MatchMethod.MANUAL,
            action=DecisionAction.CONFIRMED,
        )

    async def dismiss_match(self, user_id: UUID, transaction_id: UUID, occurrence_id: str) -> TransactionMatch:
        """Reject the pair so it is never suggested again.

        Raises:
            InvalidMatchState: If the pair is already confirmed.
        """
        txn = await self._require_transaction(user_id, transaction_id, for_update=True)
        occurrence = await self.occurrences.get_occurrence(user_id, occurrence_id)
        key = occurrence.occurrence_key

        pending = await self.matches.find_pair(user_id, txn.id, key, MatchStatus.PENDING)
        if pending is not None:
            pending.status = MatchStatus.DISMISSED
            pending.version += 1
            pending.decided_at = datetime.now(UTC)
            await self.matches.save(pending)
            await self._record(pending, DecisionAction.DISMISSED)
            logger.info("Dismissed pending match", match_id=str(pending.id), transaction_id=str(txn.id))
            return pending

        if await self.matches.find_pair(user_id, txn.id, key, MatchStatus.CONFIRMED) is not None:
            raise InvalidMatchState("Confirmed matches must be unmatched, not dismissed")

        dismissed = await self.matches.find_pair(user_id, txn.id, key, MatchStatus.DISMISSED)
        if dismissed is not None:
            return dismissed

        result = score_candidate(txn, occurrence, self.config)
        return await self._create_match(
            user_id,
            txn,
            occurrence,
            status=MatchStatus.DISMISSED,
            confidence=result.score,
            reasons=result.reasons,
            method=None,
            action=DecisionAction.DISMISSED,
        )

    async def unmatch(self, user_id: UUID, match_id: UUID) -> TransactionMatch:
        """Undo a confirmed match, keeping the record as UNMATCHED."""
        match = await self.matches.get(user_id, match_id, for_update=True)
        if match is None:
            raise NotFound("Match", match_id)
        if match.status != MatchStatus.CONFIRMED:
            raise InvalidMatchState(f"Only confirmed matches can be unmatched (status: {match.status.value})")

        match.status = MatchStatus.UNMATCHED
        match.version += 1
        match.decided_at = datetime.now(UTC)
        await self.matches.save(match)

        txn = await self.transactions.get(user_id, match.transaction_id, for_update=True)
        if txn is not None and txn.matched_occurrence_id == match.occurrence_id:
            txn.matched_occurrence_id = None
        await self._record(match, DecisionAction.UNMATCHED)
        logger.info("Unmatched", match_id=str(match.id), transaction_id=str(match.transaction_id))
        return match

    async def batch_auto_match(
        self,
        user_id: UUID,
        transaction_ids: Sequence[UUID] | None = None,
        *,
        as_of: date | None = None,
    ) -> BatchMatchSummary:
        """Auto-match many transactions, committing each one separately.

        Without explicit ids, unmatched transactions from the last
        ``pending_lookback_days`` are processed.

        Raises:
            BatchTooLarge: If more than ``max_batch_size`` ids are given.
        """
        if transaction_ids is None:
            since = (as_of or date.today()) - timedelta(days=self.pending_lookback_days)
            recent = await self.transactions.list_unmatched_since(user_id, since, limit=self.max_batch_size)
            transaction_ids = [txn.id for txn in recent]
        elif len(transaction_ids) > self.max_batch_size:
            raise BatchTooLarge(f"Batch of {len(transaction_ids)} exceeds limit of {self.max_batch_size}")

        summary = BatchMatchSummary()
        with log_timing("batch_auto_match", logger=logger, user_id=str(user_id), size=len(transaction_ids)) as ctx:
            for transaction_id in transaction_ids:
                summary.processed += 1
                try:
                    result = await self.auto_match(user_id, transaction_id)
                    await self.uow.commit()
                except Exception as exc:
                    await self.uow.rollback()
                    log_exception(
                        logger,
                        exc,
                        "Auto-match failed",
                        level="warning",
                        include_traceback=False,
                        transaction_id=str(transaction_id),
                    )
                    summary.errors.append(BatchItemError(transaction_id=transaction_id, error=str(exc)))
                    continue

                if result.outcome == AutoMatchOutcome.CONFIRMED:
                    summary.matched += 1
                elif result.outcome == AutoMatchOutcome.PENDING:
                    summary.pending += 1
                else:
                    summary.skipped += 1

            ctx["matched"] = summary.matched
            ctx["pending"] = summary.pending
            ctx["errors"] = len(summary.errors)
        return summary

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _ensure_no_conflict(self, user_id: UUID, transaction_id: UUID, occurrence_key: str) -> None:
        if await self.matches.active_for_transaction(user_id, transaction_id) is not None:
            raise MatchConflict("Transaction already has an active match")
        if await self.matches.active_for_occurrence(user_id, occurrence_key) is not None:
            raise MatchConflict("Occurrence already has an active match")

    async def _create_match(
        self,
        user_id: UUID,
        txn: Transaction,
        occurrence: Occurrence,
        *,
        status: MatchStatus,
        confidence: int,
        reasons: list[str],
        method: MatchMethod | None,
        action: DecisionAction,
    ) -> TransactionMatch:
        if status in (MatchStatus.PENDING, MatchStatus.CONFIRMED):
            await self._ensure_no_conflict(user_id, txn.id, occurrence.occurrence_key)

        match = TransactionMatch(
            id=uuid4(),
            user_id=user_id,
            transaction_id=txn.id,
            occurrence_id=occurrence.occurrence_id,
            occurrence_key=occurrence.occurrence_key,
            template_id=occurrence.template_id,
            expected_date=occurrence.expected_date,
            planned_amount=occurrence.amount,
            confidence=confidence,
            reasons=list(reasons),
            method=method,
            status=status,
            version=1,
            decided_at=None if status == MatchStatus.PENDING else datetime.now(UTC),
        )
        await self.matches.add(match)
        if status == MatchStatus.CONFIRMED:
            txn.matched_occurrence_id = occurrence.occurrence_id
        await self._record(match, action)
        logger.info(
            "Created match",
            match_id=str(match.id),
            transaction_id=str(txn.id),
            occurrence_id=occurrence.occurrence_id,
            status=status.value,
            confidence=confidence,
        )
        return match

    async def _record(self, match: TransactionMatch, action: DecisionAction) -> None:
        await self.history.record(
            MatchDecision(
                id=uuid4(),
                user_id=match.user_id,
                match_id=match.id,
                transaction_id=match.transaction_id,
                occurrence_id=match.occurrence_id,
                action=action,
                method=match.method,
                confidence=match.confidence,
                created_at=datetime.now(UTC),
            )
        )
