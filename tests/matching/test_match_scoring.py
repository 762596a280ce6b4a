from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from planner.models import TransactionType
from planner.services.match_scoring import (
    DEFAULT_CONFIG,
    confidence_tier,
    load_matching_config,
    score_candidate,
)
from tests.factories import PlannedTransactionFactory, TransactionFactory


def planned(**kwargs):
    defaults = {
        "amount": Decimal("-50.00"),
        "expected_date": date(2024, 2, 5),
        "match_window_days": 7,
        "match_tolerance": Decimal("5.00"),
    }
    defaults.update(kwargs)
    return PlannedTransactionFactory.build(**defaults)


def txn(**kwargs):
    defaults = {"amount": Decimal("-50.00"), "txn_date": date(2024, 2, 5)}
    defaults.update(kwargs)
    return TransactionFactory.build(**defaults)


def test_close_amount_and_date_is_accepted():
    result = score_candidate(txn(amount=Decimal("-52.30"), txn_date=date(2024, 2, 3)), planned())

    assert result.accepted
    # amount 0.54 * 50 + date 0.75 * 30 + direction 10
    assert result.score == 60
    assert result.score >= DEFAULT_CONFIG.review_min


def test_exact_match_scores_high():
    category_id = uuid4()

    result = score_candidate(txn(category_id=category_id), planned(category_id=category_id))

    assert result.score == 100
    assert "exact amount" in result.reasons
    assert confidence_tier(result.score) == "high"


def test_type_mismatch_rejected():
    result = score_candidate(txn(type=TransactionType.INCOME, amount=Decimal("50.00")), planned())

    assert not result.accepted
    assert result.score == 0
    assert result.rejected_reason == "type mismatch"


def test_account_mismatch_rejected():
    result = score_candidate(txn(account_id=uuid4()), planned())

    assert result.rejected_reason == "account mismatch"


def test_transfer_destination_account_is_accepted():
    destination = uuid4()
    transfer = planned(
        type=TransactionType.TRANSFER,
        is_transfer=True,
        transfer_to_account_id=destination,
        amount=Decimal("-200.00"),
    )
    incoming = txn(type=TransactionType.TRANSFER, account_id=destination, amount=Decimal("200.00"))

    result = score_candidate(incoming, transfer)

    assert result.accepted
    assert result.breakdown["direction"] == 100.0


def test_outside_date_window_rejected():
    result = score_candidate(txn(txn_date=date(2024, 2, 13)), planned())

    assert not result.accepted
    assert "window" in result.rejected_reason


def test_window_edge_is_inclusive():
    result = score_candidate(txn(txn_date=date(2024, 2, 12)), planned())

    assert result.accepted


def test_amount_outside_tolerance_rejected():
    result = score_candidate(txn(amount=Decimal("-55.01")), planned())

    assert not result.accepted
    assert "tolerance" in result.rejected_reason


def test_amount_compared_by_magnitude():
    # Planned amount stored as a positive expense still matches the outflow
    result = score_candidate(txn(amount=Decimal("-50.00")), planned(amount=Decimal("50.00")))

    assert result.accepted
    assert result.breakdown["amount"] == 100.0


def test_no_tolerance_uses_percentage_fallback():
    occurrence = planned(match_tolerance=None, amount=Decimal("-100.00"))

    near = score_candidate(txn(amount=Decimal("-105.00")), occurrence)
    far = score_candidate(txn(amount=Decimal("-150.00")), occurrence)

    assert near.accepted and far.accepted
    assert near.breakdown["amount"] == 50.0
    assert far.breakdown["amount"] == 0.0
    assert near.score > far.score


def test_direction_bonus_requires_consistent_sign():
    consistent = score_candidate(txn(amount=Decimal("-50.00")), planned())
    inconsistent = score_candidate(txn(amount=Decimal("50.00")), planned())

    assert consistent.score - inconsistent.score == 10


def test_score_non_increasing_in_amount_delta():
    occurrence = planned()
    scores = [
        score_candidate(txn(amount=Decimal("-50.00") - Decimal(cents) / 100), occurrence).score
        for cents in range(0, 501, 25)
    ]

    assert scores == sorted(scores, reverse=True)


def test_score_non_increasing_in_date_delta():
    occurrence = planned()
    scores = [
        score_candidate(txn(txn_date=occurrence.expected_date + timedelta(days=days)), occurrence).score
        for days in range(0, 8)
    ]

    assert scores == sorted(scores, reverse=True)
    assert all(0 <= s <= 100 for s in scores)


@pytest.mark.parametrize("score,tier", [(95, "high"), (90, "high"), (89, "medium"), (75, "medium"), (74, "low")])
def test_confidence_tiers(score, tier):
    assert confidence_tier(score) == tier


def test_config_reads_yaml(tmp_path):
    config_file = tmp_path / "matching.yaml"
    config_file.write_text(
        "scoring:\n"
        "  weights:\n"
        "    amount: 0.6\n"
        "  thresholds:\n"
        "    auto_confirm: 95\n"
        "  tolerances:\n"
        "    search_window_days: 10\n"
    )

    config = load_matching_config(force_reload=True, config_path=config_file)

    assert config.weight_amount == Decimal("0.6")
    assert config.weight_date == DEFAULT_CONFIG.weight_date
    assert config.auto_confirm == 95
    assert config.search_window_days == 10


def test_config_env_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("MATCHING_AUTO_CONFIRM_THRESHOLD", "80")
    monkeypatch.setenv("MATCHING_REVIEW_THRESHOLD", "40")

    config = load_matching_config(force_reload=True, config_path=tmp_path / "missing.yaml")

    assert config.auto_confirm == 80
    assert config.review_min == 40


def test_invalid_yaml_falls_back_to_defaults(tmp_path):
    config_file = tmp_path / "matching.yaml"
    config_file.write_text("scoring: [unclosed")

    config = load_matching_config(force_reload=True, config_path=config_file)

    assert config == DEFAULT_CONFIG


def test_config_is_cached(tmp_path):
    first = load_matching_config(force_reload=True, config_path=tmp_path / "missing.yaml")

    assert load_matching_config() is first


