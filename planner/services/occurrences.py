"""Effective occurrence lists: virtual template slots merged with persisted overrides.

A template slot ``(template_id, occurrence_date)`` is in exactly one of three
states:

- generated: no override row, the virtual occurrence is effective;
- customized: a CUSTOMIZED row replaces the virtual occurrence;
- skipped: a SKIPPED row suppresses the slot.

One-time planned transactions have no template and are always effective.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Protocol
from uuid import UUID, uuid4

from planner.logger import get_logger, log_timing
from planner.models import (
    MatchStatus,
    PlannedKind,
    PlannedTransaction,
    PlannedTransactionTemplate,
    TransactionMatch,
    TransactionType,
)
from planner.repositories.ports import MatchStore, PlannedTransactionStore, TemplateStore, TransactionStore
from planner.services.errors import InvalidOccurrenceId, MatchConflict, NotFound, OutOfRangeWindow
from planner.services.recurrence import (
    RecurrenceRule,
    VirtualOccurrence,
    compute_occurrences,
    generate_virtual_occurrences,
    lookahead_days,
)
from planner.utils.occurrence_ids import parse_occurrence_id

logger = get_logger(__name__)

# Fields copied from a template (or virtual occurrence) onto an override row
OCCURRENCE_FIELDS = (
    "account_id",
    "account_name",
    "category_id",
    "category_name",
    "is_transfer",
    "transfer_to_account_id",
    "amount",
    "type",
    "name",
    "description",
    "notes",
    "auto_match_enabled",
    "skip_review",
    "match_tolerance",
    "match_window_days",
)


class Occurrence(Protocol):
    """Read-only view shared by virtual and persisted occurrences."""

    @property
    def occurrence_id(self) -> str: ...

    @property
    def occurrence_key(self) -> str: ...

    @property
    def is_virtual(self) -> bool: ...

    @property
    def is_skipped(self) -> bool: ...

    template_id: UUID | None
    expected_date: date
    amount: Decimal
    type: TransactionType
    account_id: UUID
    category_id: UUID | None
    is_transfer: bool
    transfer_to_account_id: UUID | None
    auto_match_enabled: bool
    skip_review: bool
    match_tolerance: Decimal | None
    match_window_days: int


@dataclass(frozen=True)
class RejectedOverride:
    """Persisted row excluded from a merge."""

    planned_id: UUID
    reason: str


@dataclass
class MergeResult:
    occurrences: list[Occurrence] = field(default_factory=list)
    rejected: list[RejectedOverride] = field(default_factory=list)


def _sort_key(occurrence: Occurrence) -> tuple[date, str]:
    return occurrence.expected_date, occurrence.occurrence_id


def _override_problem(override: PlannedTransaction) -> str | None:
    if override.template_id is not None and override.occurrence_date is None:
        return "template override without occurrence_date"
    if override.expected_date is None:
        return "missing expected_date"
    if override.amount is None:
        return "missing amount"
    return None


def merge_occurrences(
    virtual: Iterable[VirtualOccurrence],
    overrides: Iterable[PlannedTransaction],
    *,
    include_skipped: bool = False,
) -> MergeResult:
    """Combine virtual slots with persisted rows into one effective list.

    Overrides replace the virtual occurrence of their slot. Malformed rows are
    reported in ``rejected`` and never abort the merge.
    """
    result = MergeResult()
    slots: dict[tuple[UUID, date], PlannedTransaction] = {}
    persisted: list[PlannedTransaction] = []

    for override in overrides:
        problem = _override_problem(override)
        if problem is None and override.template_id is not None:
            slot = (override.template_id, override.occurrence_date)
            if slot in slots:
                problem = "duplicate override for slot"
            else:
                slots[slot] = override
        if problem is not None:
            logger.warning(
                "Skipping malformed override",
                planned_id=str(override.id),
                template_id=str(override.template_id) if override.template_id else None,
                reason=problem,
            )
            result.rejected.append(RejectedOverride(planned_id=override.id, reason=problem))
            continue
        persisted.append(override)

    effective: list[Occurrence] = [
        occurrence for occurrence in virtual if (occurrence.template_id, occurrence.occurrence_date) not in slots
    ]
    effective.extend(row for row in persisted if include_skipped or not row.is_skipped)
    effective.sort(key=_sort_key)
    result.occurrences = effective
    return result


class OccurrenceService:
    """Resolves, customizes and skips occurrences for one user at a time."""

    def __init__(
        self,
        templates: TemplateStore,
        planned: PlannedTransactionStore,
        matches: MatchStore,
        transactions: TransactionStore,
        *,
        max_window_days: int,
    ) -> None:
        self.templates = templates
        self.planned = planned
        self.matches = matches
        self.transactions = transactions
        self.max_window_days = max_window_days

    def _check_window(self, start_date: date, end_date: date) -> None:
        if start_date > end_date:
            raise OutOfRangeWindow(f"start_date {start_date} is after end_date {end_date}")
        if (end_date - start_date).days > self.max_window_days:
            raise OutOfRangeWindow(f"Date window exceeds {self.max_window_days} days")

    async def _require_template(self, user_id: UUID, template_id: UUID) -> PlannedTransactionTemplate:
        template = await self.templates.get(user_id, template_id)
        if template is None:
            raise NotFound("Template", template_id)
        return template

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def compute_occurrences(
        self,
        user_id: UUID,
        template_id: UUID,
        start_date: date,
        end_date: date,
        *,
        include_skipped: bool = False,
    ) -> MergeResult:
        """Effective occurrences of one template inside a window."""
        self._check_window(start_date, end_date)
        template = await self._require_template(user_id, template_id)
        virtual = generate_virtual_occurrences(template, start_date, end_date)
        overrides = await self.planned.list_in_window(user_id, start_date, end_date, template_id=template_id)
        merged = merge_occurrences(virtual, overrides, include_skipped=include_skipped)
        merged.occurrences = [o for o in merged.occurrences if start_date <= o.expected_date <= end_date]
        return merged

    async def list_planned(
        self,
        user_id: UUID,
        start_date: date,
        end_date: date,
        *,
        account_id: UUID | None = None,
        include_skipped: bool = False,
    ) -> MergeResult:
        """Effective occurrences of every active template plus one-time entries."""
        self._check_window(start_date, end_date)
        with log_timing(
            "list_planned",
            logger=logger,
            level="debug",
            user_id=str(user_id),
            start_date=start_date.isoformat(),
            end_date=end_date.isoformat(),
        ) as ctx:
            templates = await self.templates.list(user_id, active_only=True, account_id=account_id)
            virtual: list[VirtualOccurrence] = []
            for template in templates:
                virtual.extend(generate_virtual_occurrences(template, start_date, end_date))
            overrides = await self.planned.list_in_window(user_id, start_date, end_date, account_id=account_id)
            merged = merge_occurrences(virtual, overrides, include_skipped=include_skipped)
            merged.occurrences = [o for o in merged.occurrences if start_date <= o.expected_date <= end_date]
            ctx["count"] = len(merged.occurrences)
        return merged

    async def get_occurrence(self, user_id: UUID, occurrence_id: str) -> Occurrence:
        """Resolve an occurrence id to the effective occurrence it names.

        A virtual id whose slot has an override resolves to the override.

        Raises:
            InvalidOccurrenceId: If the id is malformed.
            NotFound: If the template, the slot or the row does not exist.
        """
        parsed = parse_occurrence_id(occurrence_id)
        if isinstance(parsed, UUID):
            planned = await self.planned.get(user_id, parsed)
            if planned is None:
                raise NotFound("Occurrence", occurrence_id)
            return planned

        template_id, occurrence_date = parsed
        override = await self.planned.get_for_slot(user_id, template_id, occurrence_date)
        if override is not None:
            return override
        return await self._virtual_slot(user_id, template_id, occurrence_date)

    async def _virtual_slot(self, user_id: UUID, template_id: UUID, occurrence_date: date) -> VirtualOccurrence:
        template = await self._require_template(user_id, template_id)
        if not template.is_active:
            raise NotFound("Occurrence", occurrence_date.isoformat())
        rule = RecurrenceRule.from_template(template)
        if occurrence_date not in compute_occurrences(rule, occurrence_date, occurrence_date):
            raise NotFound("Occurrence", occurrence_date.isoformat())
        return VirtualOccurrence.from_template(template, occurrence_date)

    async def next_occurrence(self, user_id: UUID, template_id: UUID, as_of: date) -> Occurrence | None:
        """First effective occurrence on or after ``as_of``, honouring overrides."""
        template = await self._require_template(user_id, template_id)
        if not template.is_active:
            return None
        if template.end_date is not None and as_of > template.end_date:
            return None

        rule = RecurrenceRule.from_template(template)
        span = lookahead_days(rule)
        # Past the last override the resolver alone decides, so the walk ends there.
        overrides_for_template = await self.planned.list_for_template(user_id, template_id)
        last_override = max(
            (max(row.expected_date, row.occurrence_date or row.expected_date) for row in overrides_for_template),
            default=None,
        )
        window_start = max(as_of, rule.first_occurrence)
        while True:
            window_end = window_start + timedelta(days=span)
            virtual = generate_virtual_occurrences(template, window_start, window_end)
            overrides = await self.planned.list_in_window(
                user_id, window_start, window_end, template_id=template_id
            )
            merged = merge_occurrences(virtual, overrides)
            upcoming = [o for o in merged.occurrences if o.expected_date >= as_of]
            if upcoming:
                return upcoming[0]
            if template.end_date is not None and window_end >= template.end_date:
                return None
            if not virtual and (last_override is None or window_start > last_override):
                return None
            window_start = window_end + timedelta(days=1)

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_one_time(self, user_id: UUID, **fields: Any) -> PlannedTransaction:
        """Persist a planned transaction that belongs to no template."""
        planned = PlannedTransaction(
            id=uuid4(),
            user_id=user_id,
            kind=PlannedKind.ONE_TIME,
            template_id=None,
            occurrence_date=None,
            **fields,
        )
        await self.planned.add(planned)
        logger.info("Created one-time planned transaction", planned_id=str(planned.id), user_id=str(user_id))
        return planned

    async def customize_occurrence(self, user_id: UUID, occurrence_id: str, changes: dict[str, Any]) -> PlannedTransaction:
        """Apply field changes to an occurrence, materializing an override if needed.

        An active match on the occurrence is re-pointed to the persisted row.
        """
        occurrence = await self.get_occurrence(user_id, occurrence_id)

        if isinstance(occurrence, VirtualOccurrence):
            planned = self._override_from_virtual(occurrence, PlannedKind.CUSTOMIZED)
            self._apply_changes(planned, changes)
            await self.planned.add(planned)
        else:
            planned = occurrence
            if planned.kind == PlannedKind.SKIPPED:
                planned.kind = PlannedKind.CUSTOMIZED
            self._apply_changes(planned, changes)
            await self.planned.add(planned)

        await self._repoint_active_match(user_id, planned)
        logger.info(
            "Customized occurrence",
            occurrence_id=occurrence_id,
            planned_id=str(planned.id),
            fields=sorted(changes),
        )
        return planned

    async def skip_occurrence(self, user_id: UUID, occurrence_id: str) -> PlannedTransaction:
        """Mark a template slot as skipped.

        Raises:
            InvalidOccurrenceId: For one-time entries, which are deleted instead.
            MatchConflict: If the occurrence has an active match.
        """
        occurrence = await self.get_occurrence(user_id, occurrence_id)
        if occurrence.template_id is None:
            raise InvalidOccurrenceId("One-time planned transactions cannot be skipped; delete them instead")

        active = await self.matches.active_for_occurrence(user_id, occurrence.occurrence_key)
        if active is not None:
            raise MatchConflict("Occurrence has an active match; unmatch or dismiss it before skipping")

        if isinstance(occurrence, VirtualOccurrence):
            planned = self._override_from_virtual(occurrence, PlannedKind.SKIPPED)
        else:
            planned = occurrence
            planned.kind = PlannedKind.SKIPPED
            planned.expected_date = planned.occurrence_date
        await self.planned.add(planned)
        logger.info("Skipped occurrence", occurrence_key=planned.occurrence_key, user_id=str(user_id))
        return planned

    async def restore_occurrence(self, user_id: UUID, occurrence_id: str) -> Occurrence | None:
        """Drop a persisted row.

        Template slots revert to their generated occurrence, which is returned.
        One-time entries are deleted and ``None`` is returned.
        """
        occurrence = await self.get_occurrence(user_id, occurrence_id)
        if isinstance(occurrence, VirtualOccurrence):
            return occurrence

        planned = occurrence
        active = await self.matches.active_for_occurrence(user_id, planned.occurrence_key)
        if planned.template_id is None:
            if active is not None:
                raise MatchConflict("Planned transaction has an active match; unmatch it before deleting")
            await self.planned.delete(planned)
            logger.info("Deleted one-time planned transaction", planned_id=str(planned.id))
            return None

        template_id, occurrence_date = planned.template_id, planned.occurrence_date
        await self.planned.delete(planned)
        try:
            virtual = await self._virtual_slot(user_id, template_id, occurrence_date)
        except NotFound as exc:
            # Slot no longer generated after a template edit
            if active is not None:
                raise MatchConflict("Override has an active match and no slot to fall back to") from exc
            return None
        if active is not None:
            await self._point_match_at(user_id, active, virtual)
        logger.info("Restored occurrence", occurrence_key=virtual.occurrence_key, user_id=str(user_id))
        return virtual

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _override_from_virtual(occurrence: VirtualOccurrence, kind: PlannedKind) -> PlannedTransaction:
        return PlannedTransaction(
            id=uuid4(),
            user_id=occurrence.user_id,
            template_id=occurrence.template_id,
            kind=kind,
            occurrence_date=occurrence.occurrence_date,
            expected_date=occurrence.occurrence_date,
            **{name: getattr(occurrence, name) for name in OCCURRENCE_FIELDS},
        )

    @staticmethod
    def _apply_changes(planned: PlannedTransaction, changes: dict[str, Any]) -> None:
        for name, value in changes.items():
            if name != "expected_date" and name not in OCCURRENCE_FIELDS:
                raise ValueError(f"Field {name!r} cannot be customized")
            setattr(planned, name, value)

    async def _point_match_at(self, user_id: UUID, match: TransactionMatch, occurrence: Occurrence) -> None:
        match.occurrence_id = occurrence.occurrence_id
        match.expected_date = occurrence.expected_date
        match.planned_amount = occurrence.amount
        if match.status == MatchStatus.CONFIRMED:
            txn = await self.transactions.get(user_id, match.transaction_id)
            if txn is not None:
                txn.matched_occurrence_id = occurrence.occurrence_id
        await self.matches.save(match)

    async def _repoint_active_match(self, user_id: UUID, planned: PlannedTransaction) -> None:
        active = await self.matches.active_for_occurrence(user_id, planned.occurrence_key)
        if active is None:
            return
        await self._point_match_at(user_id, active, planned)
        logger.info(
            "Re-pointed match to override",
            match_id=str(active.id),
            occurrence_id=planned.occurrence_id,
        )

