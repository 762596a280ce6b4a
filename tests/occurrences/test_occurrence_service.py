"""OccurrenceService against a real database session."""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from planner.deps import build_occurrence_service
from planner.models import MatchStatus, PeriodType, PlannedKind, TransactionType
from planner.repositories.sql import SqlPlannedTransactionStore
from planner.services.errors import InvalidOccurrenceId, MatchConflict, NotFound, OutOfRangeWindow
from planner.services.recurrence import VirtualOccurrence, virtual_occurrence_id
from tests.factories import (
    PlannedTransactionFactory,
    TemplateFactory,
    TransactionFactory,
    TransactionMatchFactory,
)

JAN_1 = date(2024, 1, 1)
MAR_31 = date(2024, 3, 31)


@pytest.fixture
def service(db):
    return build_occurrence_service(db)


@pytest.mark.asyncio
async def test_list_planned_merges_templates_and_one_time(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    one_time = await PlannedTransactionFactory.create_async(db, user_id=user_id, expected_date=date(2024, 2, 14))
    await TemplateFactory.create_async(db, user_id=uuid4(), first_occurrence=JAN_1)

    result = await service.list_planned(user_id, JAN_1, MAR_31)

    assert [o.expected_date for o in result.occurrences] == [
        date(2024, 1, 1),
        date(2024, 2, 1),
        date(2024, 2, 14),
        date(2024, 3, 1),
    ]
    assert result.occurrences[2].occurrence_id == str(one_time.id)
    assert all(o.template_id in (template.id, None) for o in result.occurrences)


@pytest.mark.asyncio
async def test_list_planned_skips_inactive_templates(db, user_id, service):
    await TemplateFactory.create_async(db, user_id=user_id, is_active=False)

    result = await service.list_planned(user_id, JAN_1, MAR_31)

    assert result.occurrences == []


@pytest.mark.asyncio
async def test_list_planned_rejects_wide_window(db, user_id, service):
    with pytest.raises(OutOfRangeWindow):
        await service.list_planned(user_id, JAN_1, JAN_1 + timedelta(days=service.max_window_days + 1))


@pytest.mark.asyncio
async def test_customize_virtual_creates_override(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))

    planned = await service.customize_occurrence(
        user_id, slot_id, {"amount": Decimal("-80.00"), "expected_date": date(2024, 2, 3)}
    )

    assert planned.kind == PlannedKind.CUSTOMIZED
    assert planned.occurrence_date == date(2024, 2, 1)
    assert planned.occurrence_key == slot_id
    assert planned.name == template.name

    result = await service.compute_occurrences(user_id, template.id, JAN_1, MAR_31)
    february = [o for o in result.occurrences if o.occurrence_key == slot_id]
    assert len(february) == 1
    assert february[0].amount == Decimal("-80.00")
    assert february[0].expected_date == date(2024, 2, 3)


@pytest.mark.asyncio
async def test_customize_twice_updates_same_row(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))

    first = await service.customize_occurrence(user_id, slot_id, {"amount": Decimal("-60.00")})
    second = await service.customize_occurrence(user_id, slot_id, {"notes": "split with flatmate"})

    assert first.id == second.id
    assert second.amount == Decimal("-60.00")
    overrides = await SqlPlannedTransactionStore(db).list_for_template(user_id, template.id)
    assert len(overrides) == 1


@pytest.mark.asyncio
async def test_customize_rejects_unknown_field(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id)

    with pytest.raises(ValueError):
        await service.customize_occurrence(
            user_id, virtual_occurrence_id(template.id, JAN_1), {"user_id": uuid4()}
        )


@pytest.mark.asyncio
async def test_customize_repoints_confirmed_match(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))
    txn = await TransactionFactory.create_async(db, user_id=user_id, matched_occurrence_id=slot_id)
    match = await TransactionMatchFactory.create_async(
        db,
        user_id=user_id,
        transaction_id=txn.id,
        template_id=template.id,
        expected_date=date(2024, 2, 1),
        status=MatchStatus.CONFIRMED,
    )

    planned = await service.customize_occurrence(user_id, slot_id, {"amount": Decimal("-55.00")})

    assert match.occurrence_id == str(planned.id)
    assert match.occurrence_key == slot_id
    assert match.planned_amount == Decimal("-55.00")
    assert txn.matched_occurrence_id == str(planned.id)


@pytest.mark.asyncio
async def test_skip_and_restore_cycle(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))

    skipped = await service.skip_occurrence(user_id, slot_id)
    assert skipped.kind == PlannedKind.SKIPPED

    visible = await service.list_planned(user_id, JAN_1, MAR_31)
    assert date(2024, 2, 1) not in [o.expected_date for o in visible.occurrences]
    with_skipped = await service.list_planned(user_id, JAN_1, MAR_31, include_skipped=True)
    assert any(o.is_skipped for o in with_skipped.occurrences)

    restored = await service.restore_occurrence(user_id, slot_id)
    assert isinstance(restored, VirtualOccurrence)
    assert restored.occurrence_id == slot_id

    visible = await service.list_planned(user_id, JAN_1, MAR_31)
    assert [o.expected_date for o in visible.occurrences] == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]


@pytest.mark.asyncio
async def test_skip_customized_resets_to_slot_date(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))
    await service.customize_occurrence(user_id, slot_id, {"expected_date": date(2024, 2, 9)})

    skipped = await service.skip_occurrence(user_id, slot_id)

    assert skipped.kind == PlannedKind.SKIPPED
    assert skipped.expected_date == date(2024, 2, 1)


@pytest.mark.asyncio
async def test_skip_with_active_match_conflicts(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    await TransactionMatchFactory.create_async(
        db, user_id=user_id, template_id=template.id, expected_date=date(2024, 2, 1)
    )

    with pytest.raises(MatchConflict):
        await service.skip_occurrence(user_id, virtual_occurrence_id(template.id, date(2024, 2, 1)))


@pytest.mark.asyncio
async def test_one_time_cannot_be_skipped(db, user_id, service):
    one_time = await PlannedTransactionFactory.create_async(db, user_id=user_id)

    with pytest.raises(InvalidOccurrenceId):
        await service.skip_occurrence(user_id, str(one_time.id))


@pytest.mark.asyncio
async def test_restore_one_time_deletes_it(db, user_id, service):
    one_time = await service.create_one_time(
        user_id,
        expected_date=date(2024, 1, 20),
        account_id=uuid4(),
        amount=Decimal("-120.00"),
        type=TransactionType.EXPENSE,
        name="Car service",
    )

    assert await service.restore_occurrence(user_id, str(one_time.id)) is None

    with pytest.raises(NotFound):
        await service.get_occurrence(user_id, str(one_time.id))


@pytest.mark.asyncio
async def test_get_occurrence_errors(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)

    with pytest.raises(InvalidOccurrenceId):
        await service.get_occurrence(user_id, "not-an-id")
    with pytest.raises(NotFound):
        await service.get_occurrence(user_id, str(uuid4()))
    with pytest.raises(NotFound):
        await service.get_occurrence(user_id, virtual_occurrence_id(uuid4(), JAN_1))
    with pytest.raises(NotFound):
        # Not a date this template produces
        await service.get_occurrence(user_id, virtual_occurrence_id(template.id, date(2024, 1, 2)))


@pytest.mark.asyncio
async def test_get_occurrence_is_scoped_to_user(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=uuid4(), first_occurrence=JAN_1)

    with pytest.raises(NotFound):
        await service.get_occurrence(user_id, virtual_occurrence_id(template.id, JAN_1))


@pytest.mark.asyncio
async def test_next_occurrence_passes_skipped_slot(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    await service.skip_occurrence(user_id, virtual_occurrence_id(template.id, date(2024, 2, 1)))

    result = await service.next_occurrence(user_id, template.id, date(2024, 1, 15))

    assert result.expected_date == date(2024, 3, 1)


@pytest.mark.asyncio
async def test_next_occurrence_returns_override(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1)
    override = await service.customize_occurrence(
        user_id, virtual_occurrence_id(template.id, date(2024, 2, 1)), {"expected_date": date(2024, 2, 6)}
    )

    result = await service.next_occurrence(user_id, template.id, date(2024, 1, 15))

    assert result is override


@pytest.mark.asyncio
async def test_next_occurrence_none_after_end(db, user_id, service):
    template = await TemplateFactory.create_async(
        db, user_id=user_id, first_occurrence=JAN_1, end_date=date(2024, 3, 1)
    )

    assert await service.next_occurrence(user_id, template.id, date(2024, 3, 2)) is None


@pytest.mark.asyncio
async def test_next_occurrence_walks_past_long_skip_run(db, user_id, service):
    template = await TemplateFactory.create_async(
        db, user_id=user_id, first_occurrence=JAN_1, period_type=PeriodType.DAILY
    )
    for offset in range(80):
        await service.skip_occurrence(user_id, virtual_occurrence_id(template.id, JAN_1 + timedelta(days=offset)))

    result = await service.next_occurrence(user_id, template.id, JAN_1)

    assert result.expected_date == date(2024, 3, 21)
    assert result.is_virtual


@pytest.mark.asyncio
async def test_next_occurrence_none_when_skips_reach_end(db, user_id, service):
    template = await TemplateFactory.create_async(
        db, user_id=user_id, first_occurrence=JAN_1, period_type=PeriodType.DAILY, end_date=date(2024, 1, 3)
    )
    for offset in range(3):
        await service.skip_occurrence(user_id, virtual_occurrence_id(template.id, JAN_1 + timedelta(days=offset)))

    assert await service.next_occurrence(user_id, template.id, JAN_1) is None


@pytest.mark.asyncio
async def test_inactive_template_slots_are_not_found(db, user_id, service):
    template = await TemplateFactory.create_async(db, user_id=user_id, first_occurrence=JAN_1, is_active=False)
    slot_id = virtual_occurrence_id(template.id, date(2024, 2, 1))

    with pytest.raises(NotFound):
        await service.get_occurrence(user_id, slot_id)
    with pytest.raises(NotFound):
        await service.customize_occurrence(user_id, slot_id, {"amount": Decimal("-60.00")})
