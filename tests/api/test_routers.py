"""HTTP surface: status codes, payload shapes and error mapping."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from planner.services.recurrence import virtual_occurrence_id
from tests.factories import ACCOUNT_ID, PlannedTransactionFactory, TemplateFactory, TransactionFactory

TEMPLATE_PAYLOAD = {
    "name": "Gym",
    "account_id": str(ACCOUNT_ID),
    "amount": "-50.00",
    "type": "expense",
    "period_type": "monthly",
    "first_occurrence": "2024-01-01",
    "day_of_month_type": "first_of_week",
    "day_of_week": 1,
    "match_tolerance": "5.00",
}


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_user_header_is_unauthorized(client):
    response = await client.get("/templates", headers={"X-User-Id": ""})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_user_header_is_unauthorized(client):
    response = await client.get("/templates", headers={"X-User-Id": "someone"})

    assert response.status_code == 401


# =============================================================================
# Templates
# =============================================================================


@pytest.mark.asyncio
async def test_template_crud(client):
    created = await client.post("/templates", json=TEMPLATE_PAYLOAD)
    assert created.status_code == 201
    template_id = created.json()["id"]

    listed = await client.get("/templates")
    assert listed.json()["total"] == 1

    updated = await client.patch(f"/templates/{template_id}", json={"name": "Climbing gym"})
    assert updated.status_code == 200
    assert updated.json()["name"] == "Climbing gym"

    deleted = await client.delete(f"/templates/{template_id}")
    assert deleted.status_code == 204
    assert (await client.get(f"/templates/{template_id}")).status_code == 404


@pytest.mark.asyncio
async def test_template_occurrences_endpoint(client):
    template_id = (await client.post("/templates", json=TEMPLATE_PAYLOAD)).json()["id"]

    response = await client.get(
        f"/templates/{template_id}/occurrences",
        params={"start_date": "2024-01-01", "end_date": "2024-03-31"},
    )

    assert response.status_code == 200
    body = response.json()
    assert [item["expected_date"] for item in body["items"]] == ["2024-01-01", "2024-02-05", "2024-03-04"]
    assert body["items"][1]["occurrence_id"] == f"virtual_{template_id}_2024-02-05"
    assert all(item["is_virtual"] for item in body["items"])


@pytest.mark.asyncio
async def test_template_next_occurrence(client):
    template_id = (await client.post("/templates", json=TEMPLATE_PAYLOAD)).json()["id"]

    response = await client.get(f"/templates/{template_id}/next", params={"as_of": "2024-02-06"})

    assert response.json()["occurrence"]["expected_date"] == "2024-03-04"


@pytest.mark.asyncio
async def test_invalid_recurrence_is_bad_request(client):
    payload = {**TEMPLATE_PAYLOAD, "day_of_week": None}

    response = await client.post("/templates", json=payload)

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_inverted_window_is_bad_request(client):
    template_id = (await client.post("/templates", json=TEMPLATE_PAYLOAD)).json()["id"]

    response = await client.get(
        f"/templates/{template_id}/occurrences",
        params={"start_date": "2024-03-01", "end_date": "2024-01-01"},
    )

    assert response.status_code == 400


# =============================================================================
# Occurrences
# =============================================================================


@pytest.mark.asyncio
async def test_customize_skip_restore_over_http(client, db, user_id):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=date(2024, 1, 1))
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))

    customized = await client.patch(f"/occurrences/{slot_id}", json={"amount": "-42.00"})
    assert customized.status_code == 200
    assert customized.json()["is_virtual"] is False
    assert customized.json()["occurrence_key"] == slot_id

    fetched = await client.get(f"/occurrences/{slot_id}")
    assert Decimal(fetched.json()["amount"]) == Decimal("-42.00")

    skipped = await client.post(f"/occurrences/{slot_id}/skip")
    assert skipped.json()["is_skipped"] is True

    restored = await client.delete(f"/occurrences/{slot_id}")
    assert restored.status_code == 200
    assert restored.json()["is_virtual"] is True


@pytest.mark.asyncio
async def test_null_match_flags_are_rejected(client, db, user_id):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=date(2024, 1, 1))
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))

    on_slot = await client.patch(f"/occurrences/{slot_id}", json={"auto_match_enabled": None})
    assert on_slot.status_code == 422

    row_id = (await client.patch(f"/occurrences/{slot_id}", json={"amount": "-60.00"})).json()["occurrence_id"]
    on_row = await client.patch(f"/occurrences/{row_id}", json={"skip_review": None})
    assert on_row.status_code == 422

    fetched = await client.get(f"/occurrences/{row_id}")
    assert fetched.json()["skip_review"] is False


@pytest.mark.asyncio
async def test_inactive_template_slot_is_not_found(client, db, user_id):
    template = await TemplateFactory.create_async(
        db, user_id=user_id, first_occurrence=date(2024, 1, 1), is_active=False
    )

    response = await client.get(f"/occurrences/{virtual_occurrence_id(template.id, date(2024, 2, 1))}")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_one_time_create_list_delete(client):
    created = await client.post(
        "/occurrences",
        json={
            "name": "Dentist",
            "expected_date": "2024-02-14",
            "account_id": str(ACCOUNT_ID),
            "amount": "-180.00",
            "type": "expense",
        },
    )
    assert created.status_code == 201
    occurrence_id = created.json()["occurrence_id"]

    listed = await client.get("/occurrences", params={"start_date": "2024-02-01", "end_date": "2024-02-29"})
    assert [item["occurrence_id"] for item in listed.json()["items"]] == [occurrence_id]

    deleted = await client.delete(f"/occurrences/{occurrence_id}")
    assert deleted.status_code == 204


@pytest.mark.asyncio
async def test_malformed_occurrence_id_is_bad_request(client):
    response = await client.get("/occurrences/virtual_nope")

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_occurrence_is_not_found(client):
    response = await client.get(f"/occurrences/{uuid4()}")

    assert response.status_code == 404


# =============================================================================
# Matching
# =============================================================================


@pytest.mark.asyncio
async def test_suggest_and_confirm(client, db, user_id):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=date(2024, 1, 1))
    txn = await TransactionFactory.create_async(db, user_id=user_id, txn_date=date(2024, 2, 1))
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))

    suggestions = await client.get(f"/matching/transactions/{txn.id}/suggestions")
    assert suggestions.status_code == 200
    top = suggestions.json()["items"][0]
    assert top["occurrence"]["occurrence_id"] == slot_id
    assert top["score"] == 90
    assert top["tier"] == "high"

    confirmed = await client.post(
        "/matching/confirm", json={"transaction_id": str(txn.id), "occurrence_id": slot_id}
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"

    conflict = await client.post(
        "/matching/manual",
        json={"transaction_id": str(txn.id), "occurrence_id": slot_id},
    )
    assert conflict.status_code == 409

    unmatched = await client.post(f"/matching/{confirmed.json()['id']}/unmatch")
    assert unmatched.json()["status"] == "unmatched"


@pytest.mark.asyncio
async def test_score_endpoint_reports_rejection(client, db, user_id):
    planned = await PlannedTransactionFactory.create_async(db, user_id=user_id, expected_date=date(2024, 3, 1))
    txn = await TransactionFactory.create_async(db, user_id=user_id, txn_date=date(2024, 2, 1))

    response = await client.get(f"/matching/transactions/{txn.id}/score/{planned.id}")

    body = response.json()
    assert body["accepted"] is False
    assert body["score"] == 0
    assert "window" in body["rejected_reason"]


@pytest.mark.asyncio
async def test_auto_match_pending_review_queue(client, db, user_id):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=date(2024, 1, 1))
    txn = await TransactionFactory.create_async(db, user_id=user_id, txn_date=date(2024, 2, 1))

    auto = await client.post(f"/matching/transactions/{txn.id}/auto")
    assert auto.json()["outcome"] == "pending"

    pending = await client.get("/matching/pending")
    assert pending.json()["total"] == 1

    dismissed = await client.post(
        "/matching/dismiss",
        json={
            "transaction_id": str(txn.id),
            "occurrence_id": virtual_occurrence_id(template.id, date(2024, 2, 1)),
        },
    )
    assert dismissed.json()["status"] == "dismissed"

    history = await client.get("/matching/history")
    assert [item["action"] for item in history.json()["items"]] == ["dismissed", "suggested"]


@pytest.mark.asyncio
async def test_batch_auto_match_endpoint(client, db, user_id):
    await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=date(2024, 1, 1))
    txn = await TransactionFactory.create_async(db, user_id=user_id, txn_date=date(2024, 2, 1))
    await db.commit()

    response = await client.post(
        "/matching/batch-auto",
        json={"transaction_ids": [str(txn.id), str(uuid4())]},
    )

    body = response.json()
    assert body["processed"] == 2
    assert body["pending"] == 1
    assert len(body["errors"]) == 1


@pytest.mark.asyncio
async def test_batch_too_large_is_bad_request(client):
    response = await client.post(
        "/matching/batch-auto",
        json={"transaction_ids": [str(uuid4()) for _ in range(101)]},
    )

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_transaction_is_not_found(client):
    response = await client.get(f"/matching/transactions/{uuid4()}/suggestions")

    assert response.status_code == 404
