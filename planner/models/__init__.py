"""SQLAlchemy models package."""

from planner.models.match import (
    ACTIVE_STATUSES,
    DecisionAction,
    MatchDecision,
    MatchMethod,
    MatchStatus,
    TransactionMatch,
)
from planner.models.planned import PlannedKind, PlannedTransaction
from planner.models.template import DayOfMonthType, PeriodType, PlannedTransactionTemplate
from planner.models.transaction import Transaction, TransactionType

__all__ = [
    "ACTIVE_STATUSES",
    "DayOfMonthType",
    "DecisionAction",
    "MatchDecision",
    "MatchMethod",
    "MatchStatus",
    "PeriodType",
    "PlannedKind",
    "PlannedTransaction",
    "PlannedTransactionTemplate",
    "Transaction",
    "TransactionMatch",
    "TransactionType",
]
