"""Tests for holiday-driven coverage recomputes."""

from datetime import date

from sqlalchemy import select

from swimschool.models import CoverageAuditReason, EnrolmentCoverageAudit
from swimschool.services.enrolment_context import load_enrolment
from swimschool.services.entitlements import apply_paid_invoice_to_enrolment
from swimschool.services.holidays import HolidayService
from swimschool.services.recompute import (
    ChangedRange,
    find_affected_enrolment_ids,
    recompute_enrolment_coverage,
    recompute_enrolments,
)


async def weekly_enrolment(db, factory, monday, level=None):
    level = level or await factory.level()
    template = await factory.template(level)
    plan = await factory.weekly_plan(level)
    student = await factory.student(level)
    enrolment = await factory.enrolment(student, plan, [template], monday)
    invoice = await factory.paid_invoice(
        enrolment, plan, coverage_start=monday, coverage_end=date(2026, 2, 23)
    )
    await apply_paid_invoice_to_enrolment(db, invoice.id)
    return enrolment.id, template, level


async def reload(db, enrolment_id):
    db.expire_all()
    return await load_enrolment(db, enrolment_id)


async def audit_reasons(db, enrolment_id):
    result = await db.execute(
        select(EnrolmentCoverageAudit.reason)
        .where(EnrolmentCoverageAudit.enrolment_id == enrolment_id)
        .order_by(EnrolmentCoverageAudit.id)
    )
    return list(result.scalars().all())


async def test_holiday_extends_paid_through(db, factory, monday):
    enrolment_id, _, _ = await weekly_enrolment(db, factory, monday)

    service = HolidayService(db)
    await service.create_holiday(
        name="Pool closed", start_date=date(2026, 2, 16), end_date=date(2026, 2, 16), actor="admin"
    )

    assert service.last_sweep.ok
    assert service.last_sweep.updated == 1
    enrolment = await reload(db, enrolment_id)
    assert enrolment.paid_through_date == date(2026, 3, 2)
    assert enrolment.paid_through_date_computed == date(2026, 2, 23)
    assert await audit_reasons(db, enrolment_id) == [
        CoverageAuditReason.INVOICE_APPLIED,
        CoverageAuditReason.HOLIDAY_ADDED,
    ]


async def test_recompute_is_idempotent(db, factory, monday):
    enrolment_id, _, _ = await weekly_enrolment(db, factory, monday)
    await HolidayService(db).create_holiday(
        name="Pool closed", start_date=date(2026, 2, 16), end_date=date(2026, 2, 16)
    )

    db.expire_all()
    first = await recompute_enrolment_coverage(db, enrolment_id)
    second = await recompute_enrolment_coverage(db, enrolment_id)

    assert first.paid_through_date == second.paid_through_date == date(2026, 3, 2)
    assert CoverageAuditReason.MANUAL not in await audit_reasons(db, enrolment_id)


async def test_removing_holiday_never_shortens(db, factory, monday):
    enrolment_id, _, _ = await weekly_enrolment(db, factory, monday)
    service = HolidayService(db)
    holiday = await service.create_holiday(
        name="Pool closed", start_date=date(2026, 2, 16), end_date=date(2026, 2, 16)
    )
    holiday_id = holiday.id

    await service.delete_holiday(holiday_id)

    enrolment = await reload(db, enrolment_id)
    assert enrolment.paid_through_date == date(2026, 3, 2)


async def test_moving_holiday_recomputes_old_and_new_range(db, factory, monday):
    enrolment_id, _, _ = await weekly_enrolment(db, factory, monday)
    service = HolidayService(db)
    holiday = await service.create_holiday(
        name="Pool closed", start_date=date(2026, 5, 4), end_date=date(2026, 5, 4)
    )
    holiday_id = holiday.id
    enrolment = await reload(db, enrolment_id)
    assert enrolment.paid_through_date == date(2026, 2, 23)

    await service.update_holiday(
        holiday_id, start_date=date(2026, 2, 9), end_date=date(2026, 2, 9)
    )

    enrolment = await reload(db, enrolment_id)
    assert enrolment.paid_through_date == date(2026, 3, 2)


async def test_out_of_scope_holiday_leaves_enrolment_alone(db, factory, monday):
    enrolment_id, _, _ = await weekly_enrolment(db, factory, monday)
    other_level = await factory.level("Dolphin")

    service = HolidayService(db)
    await service.create_holiday(
        name="Dolphin camp",
        start_date=date(2026, 2, 16),
        end_date=date(2026, 2, 16),
        level_id=other_level.id,
    )

    enrolment = await reload(db, enrolment_id)
    assert enrolment.paid_through_date == date(2026, 2, 23)


async def test_find_affected_matches_weekday_and_scope(db, factory, monday):
    enrolment_id, template, level = await weekly_enrolment(db, factory, monday)

    tuesday_only = ChangedRange(date(2026, 2, 17), date(2026, 2, 17))
    monday_range = ChangedRange(date(2026, 2, 16), date(2026, 2, 16))
    other_class = ChangedRange(date(2026, 2, 16), date(2026, 2, 16), template_id=template.id + 100)
    before_start = ChangedRange(date(2026, 1, 5), date(2026, 1, 26))

    assert await find_affected_enrolment_ids(db, [tuesday_only]) == []
    assert await find_affected_enrolment_ids(db, [monday_range]) == [enrolment_id]
    assert await find_affected_enrolment_ids(db, [other_class]) == []
    assert await find_affected_enrolment_ids(db, [before_start]) == []
    assert await find_affected_enrolment_ids(
        db, [ChangedRange(date(2026, 2, 16), date(2026, 2, 16), level_id=level.id)]
    ) == [enrolment_id]


def test_changed_range_weekdays():
    assert ChangedRange(date(2026, 2, 16), date(2026, 2, 17)).weekdays == {0, 1}
    assert ChangedRange(date(2026, 2, 16), date(2026, 3, 16)).weekdays == set(range(7))


async def test_recompute_runs_in_batches(db, factory, monday):
    level = await factory.level()
    ids = []
    for _ in range(3):
        enrolment_id, _, _ = await weekly_enrolment(db, factory, monday, level=level)
        ids.append(enrolment_id)

    result = await recompute_enrolments(ids, CoverageAuditReason.SWEEP)

    assert result.batches == 2
    assert result.processed == 3
    assert result.updated == 0
    assert result.ok
