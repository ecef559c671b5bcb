"""Tests for moving enrolments between classes and plans."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import select

from swimschool.core.exceptions import (
    CoverageWouldShortenError,
    PlanMismatchError,
    ValidationError,
)
from swimschool.models import (
    BillingType,
    CoverageAuditReason,
    CreditEventType,
    EnrolmentCoverageAudit,
    EnrolmentCreditEvent,
    Student,
)
from swimschool.services.credit_ledger import CreditLedger
from swimschool.services.enrolment_change import (
    change_enrolment,
    compute_paid_through_after_template_change,
    compute_prorated_paid_through,
    prorate_credits,
)
from swimschool.services.enrolment_context import load_enrolment
from swimschool.services.entitlements import apply_paid_invoice_to_enrolment
from swimschool.services.recompute import recompute_enrolment_coverage


def make_template(id, day_of_week):
    return SimpleNamespace(
        id=id, day_of_week=day_of_week, level_id=1, start_date=None, end_date=None
    )


def make_plan(
    price, billing_type=BillingType.PER_WEEK, sessions_per_week=1, block_class_count=None
):
    return SimpleNamespace(
        price=Decimal(price),
        billing_type=billing_type,
        sessions_per_week=sessions_per_week,
        block_class_count=block_class_count,
    )


OLD_MONDAY = make_template(1, 0)


class TestTemplateChange:
    @pytest.mark.parametrize(
        "new_day,expected",
        [(2, date(2026, 5, 13)), (1, date(2026, 5, 12))],
    )
    def test_same_session_count_on_new_weekday(self, new_day, expected):
        result = compute_paid_through_after_template_change(
            start_date=date(2026, 3, 2),
            old_paid_through_date=date(2026, 5, 11),
            old_templates=[OLD_MONDAY],
            new_templates=[make_template(2, new_day)],
        )
        assert result == expected

    def test_holiday_on_new_class_extends(self):
        holiday = SimpleNamespace(
            start_date=date(2026, 1, 27),
            end_date=date(2026, 1, 27),
            template_id=None,
            level_id=None,
        )
        result = compute_paid_through_after_template_change(
            start_date=date(2026, 1, 12),
            old_paid_through_date=date(2026, 2, 2),
            old_templates=[OLD_MONDAY],
            new_templates=[make_template(2, 1)],
            new_holidays=[holiday],
        )
        assert result == date(2026, 2, 10)

    def test_cancellation_on_new_class_extends(self):
        result = compute_paid_through_after_template_change(
            start_date=date(2026, 3, 2),
            old_paid_through_date=date(2026, 3, 23),
            old_templates=[OLD_MONDAY],
            new_templates=[make_template(2, 2)],
            new_cancellations=[(2, date(2026, 3, 18))],
        )
        assert result == date(2026, 4, 1)

    def test_past_paid_through_still_maps(self):
        result = compute_paid_through_after_template_change(
            start_date=date(2024, 2, 5),
            old_paid_through_date=date(2024, 3, 4),
            old_templates=[OLD_MONDAY],
            new_templates=[make_template(2, 3)],
        )
        assert result == date(2024, 3, 7)

    def test_nothing_covered(self):
        kwargs = dict(
            start_date=date(2026, 3, 2),
            old_templates=[OLD_MONDAY],
            new_templates=[make_template(2, 2)],
        )
        for paid_through in (None, date(2026, 2, 23)):
            result = compute_paid_through_after_template_change(
                old_paid_through_date=paid_through, **kwargs
            )
            assert result is None


class TestProration:
    def test_cheaper_plan_extends(self):
        result = compute_prorated_paid_through(
            effective_date=date(2026, 1, 1),
            old_paid_through_date=date(2026, 1, 15),
            old_plan=make_plan(200),
            new_plan=make_plan(100),
            destination_templates=[OLD_MONDAY],
        )
        assert result == date(2026, 1, 29)

    def test_dearer_plan_shortens(self):
        result = compute_prorated_paid_through(
            effective_date=date(2026, 1, 1),
            old_paid_through_date=date(2026, 1, 15),
            old_plan=make_plan(100),
            new_plan=make_plan(200),
        )
        assert result == date(2026, 1, 8)

    def test_per_class_lands_on_next_class(self):
        result = compute_prorated_paid_through(
            effective_date=date(2026, 1, 1),
            old_paid_through_date=date(2026, 1, 15),
            old_plan=make_plan(200, BillingType.PER_CLASS, None, 4),
            new_plan=make_plan(100, BillingType.PER_CLASS, None, 4),
            destination_templates=[OLD_MONDAY],
        )
        assert result == date(2026, 2, 2)

    def test_nothing_left_after_effective_date(self):
        result = compute_prorated_paid_through(
            effective_date=date(2026, 1, 20),
            old_paid_through_date=date(2026, 1, 15),
            old_plan=make_plan(200),
            new_plan=make_plan(100),
        )
        assert result == date(2026, 1, 15)

    def test_credits_round_down(self):
        old = make_plan(230, BillingType.PER_CLASS, None, 10)
        new = make_plan(100, BillingType.PER_CLASS, None, 5)
        assert prorate_credits(10, old, new) == 11
        assert prorate_credits(11, new, old) == 9
        assert prorate_credits(0, old, new) == 0


@pytest.fixture
async def classes(factory):
    level = await factory.level()
    return {
        "level": level,
        "monday": await factory.template(level, day_of_week=0),
        "wednesday": await factory.template(level, day_of_week=2),
        "student": await factory.student(level),
    }


async def plan_change_audits(db, enrolment_id):
    result = await db.execute(
        select(EnrolmentCoverageAudit).where(
            EnrolmentCoverageAudit.enrolment_id == enrolment_id,
            EnrolmentCoverageAudit.reason == CoverageAuditReason.PLAN_CHANGED,
        )
    )
    return list(result.scalars().all())


async def test_class_change_keeps_session_count(db, factory, classes, monday):
    plan = await factory.weekly_plan(classes["level"])
    enrolment = await factory.enrolment(classes["student"], plan, [classes["monday"]], monday)
    invoice = await factory.paid_invoice(
        enrolment, plan, coverage_start=monday, coverage_end=date(2026, 2, 23)
    )
    await apply_paid_invoice_to_enrolment(db, invoice.id, today=monday)
    enrolment_id, wednesday_id = enrolment.id, classes["wednesday"].id

    result = await change_enrolment(
        db, enrolment_id, template_ids=[wednesday_id], effective_date=monday, actor="admin"
    )

    assert result.previous_paid_through_date == date(2026, 2, 23)
    assert result.new_paid_through_date == date(2026, 2, 25)
    assert result.enrolment.template_id == wednesday_id
    assert [t.id for t in result.enrolment.assigned_templates] == [wednesday_id]
    assert result.enrolment.next_due_date_computed == date(2026, 3, 4)

    audits = await plan_change_audits(db, enrolment_id)
    assert len(audits) == 1
    assert audits[0].actor == "admin"
    assert audits[0].new_paid_through_date == date(2026, 2, 25)
    assert audits[0].context_json["new_template_ids"] == [wednesday_id]


async def test_shortening_needs_confirmation(db, factory, classes, monday):
    plan = await factory.weekly_plan(classes["level"])
    enrolment = await factory.enrolment(classes["student"], plan, [classes["wednesday"]], monday)
    invoice = await factory.paid_invoice(
        enrolment, plan, coverage_start=date(2026, 2, 4), coverage_end=date(2026, 2, 25)
    )
    await apply_paid_invoice_to_enrolment(db, invoice.id, today=monday)
    enrolment_id = enrolment.id
    monday_id, wednesday_id = classes["monday"].id, classes["wednesday"].id

    with pytest.raises(CoverageWouldShortenError):
        await change_enrolment(db, enrolment_id, template_ids=[monday_id], effective_date=monday)

    db.expire_all()
    enrolment = await load_enrolment(db, enrolment_id)
    assert enrolment.paid_through_date == date(2026, 2, 25)
    assert [t.id for t in enrolment.assigned_templates] == [wednesday_id]
    assert await plan_change_audits(db, enrolment_id) == []

    result = await change_enrolment(
        db, enrolment_id, template_ids=[monday_id], effective_date=monday, confirm_shorten=True
    )
    assert result.new_paid_through_date == date(2026, 2, 23)

    # Invoices applied before the change are not walked again on the new class
    enrolment = await recompute_enrolment_coverage(db, enrolment_id)
    assert enrolment.paid_through_date == date(2026, 2, 23)


async def test_cheaper_plan_prorates_paid_through(db, factory, classes, monday):
    plan = await factory.weekly_plan(classes["level"])
    cheaper = await factory.weekly_plan(classes["level"], price=Decimal("44.00"))
    enrolment = await factory.enrolment(classes["student"], plan, [classes["monday"]], monday)
    invoice = await factory.paid_invoice(
        enrolment, plan, coverage_start=monday, coverage_end=date(2026, 2, 23)
    )
    await apply_paid_invoice_to_enrolment(db, invoice.id, today=monday)
    enrolment_id, cheaper_id = enrolment.id, cheaper.id

    result = await change_enrolment(
        db, enrolment_id, plan_id=cheaper_id, effective_date=date(2026, 2, 9)
    )

    assert result.enrolment.plan_id == cheaper_id
    assert result.new_paid_through_date == date(2026, 3, 9)
    audits = await plan_change_audits(db, enrolment_id)
    assert audits[0].context_json["old_plan_id"] == plan.id
    assert audits[0].context_json["new_plan_id"] == cheaper_id


async def test_level_change_moves_student(db, factory, classes, monday):
    plan = await factory.weekly_plan(classes["level"])
    enrolment = await factory.enrolment(classes["student"], plan, [classes["monday"]], monday)
    invoice = await factory.paid_invoice(
        enrolment, plan, coverage_start=monday, coverage_end=date(2026, 2, 23)
    )
    await apply_paid_invoice_to_enrolment(db, invoice.id, today=monday)

    dolphin = await factory.level("Dolphin")
    dolphin_monday = await factory.template(dolphin, day_of_week=0)
    dolphin_plan = await factory.weekly_plan(dolphin)
    enrolment_id, student_id = enrolment.id, classes["student"].id
    dolphin_id, dolphin_monday_id, dolphin_plan_id = dolphin.id, dolphin_monday.id, dolphin_plan.id
    starfish_monday_id = classes["monday"].id

    with pytest.raises(PlanMismatchError):
        await change_enrolment(
            db, enrolment_id, template_ids=[starfish_monday_id], plan_id=dolphin_plan_id
        )

    result = await change_enrolment(
        db,
        enrolment_id,
        template_ids=[dolphin_monday_id],
        plan_id=dolphin_plan_id,
        effective_date=monday,
    )

    assert result.new_paid_through_date == date(2026, 2, 23)
    assert [t.id for t in result.enrolment.assigned_templates] == [dolphin_monday_id]
    student = await db.get(Student, student_id)
    assert student.level_id == dolphin_id


async def test_class_pack_plan_change_adjusts_credits(db, factory, classes, monday):
    pack = await factory.class_pack_plan(classes["level"])
    small_pack = await factory.class_pack_plan(
        classes["level"], block_class_count=5, price=Decimal("100.00")
    )
    enrolment = await factory.enrolment(classes["student"], pack, [classes["monday"]], monday)
    invoice = await factory.paid_invoice(enrolment, pack)
    await apply_paid_invoice_to_enrolment(db, invoice.id, today=monday)
    enrolment_id, small_pack_id = enrolment.id, small_pack.id

    result = await change_enrolment(
        db, enrolment_id, plan_id=small_pack_id, effective_date=monday, actor="admin"
    )

    assert result.credits_delta == 1
    assert await CreditLedger(db).balance(enrolment_id) == 11
    assert result.enrolment.credits_remaining == 11

    events = await db.execute(
        select(EnrolmentCreditEvent).where(
            EnrolmentCreditEvent.enrolment_id == enrolment_id,
            EnrolmentCreditEvent.type == CreditEventType.MANUAL_ADJUST,
        )
    )
    adjustments = list(events.scalars().all())
    assert [e.credits_delta for e in adjustments] == [1]
    assert adjustments[0].occurred_on == monday

    audits = await plan_change_audits(db, enrolment_id)
    assert audits[0].previous_credits == 10
    assert audits[0].new_credits == 11


async def test_class_pack_cannot_become_weekly(db, factory, classes, monday):
    pack = await factory.class_pack_plan(classes["level"])
    weekly = await factory.weekly_plan(classes["level"])
    enrolment = await factory.enrolment(classes["student"], pack, [classes["monday"]], monday)

    with pytest.raises(ValidationError):
        await change_enrolment(db, enrolment.id, plan_id=weekly.id)


async def test_nothing_to_change(db, factory, classes, monday):
    plan = await factory.weekly_plan(classes["level"])
    enrolment = await factory.enrolment(classes["student"], plan, [classes["monday"]], monday)

    with pytest.raises(ValidationError):
        await change_enrolment(db, enrolment.id)
