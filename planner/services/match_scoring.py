"""Confidence scoring of a settled transaction against a planned occurrence."""

import os
from dataclasses import dataclass, field, replace
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any

import yaml

from planner.config import settings
from planner.logger import get_logger
from planner.models import TransactionType

logger = get_logger(__name__)


@dataclass(frozen=True)
class MatchingConfig:
    """Runtime configuration for match scoring and auto-matching."""

    weight_amount: Decimal
    weight_date: Decimal
    weight_category: Decimal
    weight_direction: Decimal
    auto_confirm: int
    review_min: int
    high_confidence: int
    medium_confidence: int
    amount_fallback_percent: Decimal
    search_window_days: int


DEFAULT_CONFIG = MatchingConfig(
    weight_amount=Decimal("0.50"),
    weight_date=Decimal("0.30"),
    weight_category=Decimal("0.10"),
    weight_direction=Decimal("0.10"),
    auto_confirm=90,
    review_min=50,
    high_confidence=90,
    medium_confidence=75,
    amount_fallback_percent=Decimal("0.10"),
    search_window_days=14,
)

_config_cache: MatchingConfig | None = None


def _config_from_yaml(config_path: Path, base: MatchingConfig) -> MatchingConfig:
    raw = yaml.safe_load(config_path.read_text()) or {}
    scoring = raw.get("scoring", {})
    weights = scoring.get("weights", {})
    thresholds = scoring.get("thresholds", {})
    tolerances = scoring.get("tolerances", {})

    return MatchingConfig(
        weight_amount=Decimal(str(weights.get("amount", base.weight_amount))),
        weight_date=Decimal(str(weights.get("date", base.weight_date))),
        weight_category=Decimal(str(weights.get("category", base.weight_category))),
        weight_direction=Decimal(str(weights.get("direction", base.weight_direction))),
        auto_confirm=int(thresholds.get("auto_confirm", base.auto_confirm)),
        review_min=int(thresholds.get("review_min", base.review_min)),
        high_confidence=int(thresholds.get("high_confidence", base.high_confidence)),
        medium_confidence=int(thresholds.get("medium_confidence", base.medium_confidence)),
        amount_fallback_percent=Decimal(
            str(tolerances.get("amount_fallback_percent", base.amount_fallback_percent))
        ),
        search_window_days=int(tolerances.get("search_window_days", base.search_window_days)),
    )


def load_matching_config(force_reload: bool = False, config_path: Path | None = None) -> MatchingConfig:
    """Load matching configuration from YAML if available.

    Environment variables ``MATCHING_AUTO_CONFIRM_THRESHOLD`` and
    ``MATCHING_REVIEW_THRESHOLD`` take precedence over the file. Caches the
    result to avoid repeated disk I/O.
    """
    global _config_cache
    if _config_cache is not None and not force_reload:
        return _config_cache

    config = DEFAULT_CONFIG
    path = config_path or settings.matching_config_path

    if path.exists():
        try:
            config = _config_from_yaml(path, config)
        except (OSError, yaml.YAMLError, ValueError, ArithmeticError, AttributeError) as e:
            logger.warning(
                "Failed to load matching config - using defaults",
                config_path=str(path),
                error=str(e),
                error_type=type(e).__name__,
            )

    auto_confirm_env = os.getenv("MATCHING_AUTO_CONFIRM_THRESHOLD")
    review_env = os.getenv("MATCHING_REVIEW_THRESHOLD")
    if auto_confirm_env:
        config = replace(config, auto_confirm=int(auto_confirm_env))
    if review_env:
        config = replace(config, review_min=int(review_env))

    _config_cache = config
    return config


@dataclass
class MatchScore:
    """Outcome of scoring one transaction/occurrence pair."""

    score: int
    reasons: list[str] = field(default_factory=list)
    # Component values are 0-100 percentages, not monetary values.
    breakdown: dict[str, float] = field(default_factory=dict)
    rejected_reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.rejected_reason is None


def _rejected(reason: str) -> MatchScore:
    return MatchScore(score=0, reasons=[reason], rejected_reason=reason)


def _account_matches(transaction: Any, occurrence: Any) -> bool:
    if transaction.account_id == occurrence.account_id:
        return True
    return bool(occurrence.is_transfer and transaction.account_id == occurrence.transfer_to_account_id)


def _direction_consistent(transaction: Any, occurrence: Any) -> bool:
    amount = transaction.amount
    if occurrence.type == TransactionType.EXPENSE:
        return amount < 0
    if occurrence.type == TransactionType.INCOME:
        return amount > 0
    if transaction.account_id == occurrence.account_id:
        return amount < 0
    return amount > 0


def score_candidate(transaction: Any, occurrence: Any, config: MatchingConfig = DEFAULT_CONFIG) -> MatchScore:
    """Score how likely ``transaction`` settles ``occurrence``.

    Pairs that fail a hard constraint (type, account, date window or amount
    tolerance) get score 0 and a ``rejected_reason``.
    """
    if transaction.type != occurrence.type:
        return _rejected("type mismatch")
    if not _account_matches(transaction, occurrence):
        return _rejected("account mismatch")

    days_apart = abs((transaction.txn_date - occurrence.expected_date).days)
    window = occurrence.match_window_days
    if days_apart > window:
        return _rejected(f"date {days_apart} days from expected, outside {window}-day window")

    planned = abs(occurrence.amount)
    amount_diff = abs(abs(transaction.amount) - planned)
    tolerance = occurrence.match_tolerance
    if tolerance is not None and amount_diff > tolerance:
        return _rejected(f"amount differs by {amount_diff}, above tolerance {tolerance}")

    normalizer = tolerance if tolerance is not None else config.amount_fallback_percent * planned
    if amount_diff == 0:
        amount_score = Decimal("1")
    elif normalizer > 0:
        amount_score = max(Decimal("0"), Decimal("1") - amount_diff / normalizer)
    else:
        amount_score = Decimal("0")

    date_score = Decimal("1") - Decimal(days_apart) / Decimal(window + 1)
    category_score = Decimal(
        int(occurrence.category_id is not None and transaction.category_id == occurrence.category_id)
    )
    direction_score = Decimal(int(_direction_consistent(transaction, occurrence)))

    total = (
        amount_score * config.weight_amount
        + date_score * config.weight_date
        + category_score * config.weight_category
        + direction_score * config.weight_direction
    )
    score = int((total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    score = min(100, max(0, score))

    reasons: list[str] = []
    if amount_diff == 0:
        reasons.append("exact amount")
    else:
        reasons.append(f"amount within {amount_diff}")
    if days_apart == 0:
        reasons.append("same day")
    else:
        reasons.append(f"{days_apart} days from expected")
    if category_score:
        reasons.append("same category")
    if direction_score:
        reasons.append("direction consistent")

    return MatchScore(
        score=score,
        reasons=reasons,
        breakdown={
            "amount": float(amount_score * 100),
            "date": float(date_score * 100),
            "category": float(category_score * 100),
            "direction": float(direction_score * 100),
        },
    )


def confidence_tier(score: int, config: MatchingConfig = DEFAULT_CONFIG) -> str:
    if score >= config.high_confidence:
        return "high"
    if score >= config.medium_confidence:
        return "medium"
    return "low"
