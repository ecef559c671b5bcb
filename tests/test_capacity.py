"""Tests for roster capacity and makeup availability."""

from datetime import date

import pytest

from swimschool.models import (
    Attendance,
    AttendanceStatus,
    AwayPeriod,
    ClassCancellation,
    Holiday,
    MakeupBooking,
    MakeupCredit,
)
from swimschool.services.capacity import (
    calculate_makeup_session_availability,
    check_capacity_for_template_range,
    compute_makeup_availabilities_for_occurrences,
    get_capacity_snapshot,
)

SESSION = date(2026, 2, 9)


def test_availability_formula():
    assert calculate_makeup_session_availability(10, 10, 2, 1) == 1


async def fill_class(factory, level, template, monday, count):
    plan = await factory.class_pack_plan(level)
    students = []
    for i in range(count):
        student = await factory.student(level, first_name=f"Swimmer{i}", last_name=f"Family{i}")
        await factory.enrolment(student, plan, [template], monday)
        students.append(student)
    return students


async def add_booking(db, factory, level, template, day):
    other = await factory.template(level, day_of_week=3)
    student = await factory.student(level, first_name="Makeup", last_name="Visitor")
    credit = MakeupCredit(
        student_id=student.id,
        earned_from_class_id=other.id,
        earned_from_session_date=date(2026, 2, 5),
        level_id=level.id,
        expires_on=date(2026, 5, 5),
    )
    db.add(credit)
    await db.flush()
    db.add(
        MakeupBooking(
            makeup_credit_id=credit.id,
            student_id=student.id,
            target_class_id=template.id,
            target_session_date=day,
        )
    )
    await db.commit()


@pytest.fixture
async def full_class(db, factory, monday):
    level = await factory.level()
    template = await factory.template(level, capacity=10)
    students = await fill_class(factory, level, template, monday, 10)
    return level, template, students


async def test_capacity_ten_scheduled_two_excused_one_booked(db, factory, full_class):
    level, template, students = full_class
    for student in students[:2]:
        db.add(
            Attendance(
                template_id=template.id,
                session_date=SESSION,
                student_id=student.id,
                status=AttendanceStatus.EXCUSED,
            )
        )
    await db.commit()
    await add_booking(db, factory, level, template, SESSION)

    key = (template.id, SESSION)
    availability = (await compute_makeup_availabilities_for_occurrences(db, [key]))[key]

    assert availability.capacity == 10
    assert availability.scheduled_count == 10
    assert availability.excused_scheduled_count == 2
    assert availability.booked_makeups_count == 1
    assert availability.available == 1


async def test_away_period_frees_a_seat(db, factory, full_class):
    _, template, students = full_class
    db.add(
        AwayPeriod(
            student_id=students[0].id,
            start_date=date(2026, 2, 7),
            end_date=date(2026, 2, 14),
        )
    )
    await db.commit()

    key = (template.id, SESSION)
    availability = (await compute_makeup_availabilities_for_occurrences(db, [key]))[key]
    assert availability.excused_scheduled_count == 1
    assert availability.available == 1


async def test_available_never_negative(db, factory, full_class):
    level, template, _ = full_class
    await add_booking(db, factory, level, template, SESSION)

    key = (template.id, SESSION)
    availability = (await compute_makeup_availabilities_for_occurrences(db, [key]))[key]
    assert availability.available == 0


async def test_holiday_and_cancelled_occurrences_have_no_seats(db, factory, full_class):
    _, template, _ = full_class
    db.add(Holiday(name="Closed", start_date=SESSION, end_date=SESSION))
    db.add(ClassCancellation(template_id=template.id, date=date(2026, 2, 16)))
    await db.commit()

    keys = [(template.id, SESSION), (template.id, date(2026, 2, 16)), (template.id, date(2026, 2, 23))]
    availabilities = await compute_makeup_availabilities_for_occurrences(db, keys)

    assert availabilities[keys[0]].cancelled
    assert availabilities[keys[0]].available == 0
    assert availabilities[keys[1]].cancelled
    assert not availabilities[keys[2]].cancelled
    assert availabilities[keys[2]].scheduled_count == 10


async def test_class_without_level_offers_nothing(db, factory, monday):
    level = await factory.level()
    template = await factory.template(level)
    template.level_id = None
    await db.commit()

    key = (template.id, SESSION)
    availability = (await compute_makeup_availabilities_for_occurrences(db, [key]))[key]
    assert availability.available == 0


async def test_capacity_snapshot_and_range_check(db, factory, monday):
    level = await factory.level()
    template = await factory.template(level, capacity=2)
    await fill_class(factory, level, template, monday, 2)

    snapshot = await get_capacity_snapshot(db, template, SESSION)
    assert snapshot.current_count == 2
    assert snapshot.projected_count == 3
    assert snapshot.exceeded

    details = await check_capacity_for_template_range(db, template, monday, date(2026, 2, 28))
    assert details is not None
    assert details.occurrence_date == monday


async def test_weekly_enrolment_off_roster_after_paid_through(db, factory, monday):
    level = await factory.level()
    template = await factory.template(level, capacity=5)
    plan = await factory.weekly_plan(level)
    student = await factory.student(level)
    await factory.enrolment(
        student, plan, [template], monday, paid_through_date=date(2026, 2, 9)
    )

    assert (await get_capacity_snapshot(db, template, SESSION)).current_count == 1
    assert (await get_capacity_snapshot(db, template, date(2026, 2, 16))).current_count == 0


async def test_dates_the_class_does_not_run_have_no_seats(db, factory, monday):
    level = await factory.level()
    template = await factory.template(level, capacity=5)
    ended = await factory.template(level, capacity=5, end_date=date(2026, 2, 20))
    paused = await factory.template(level, capacity=5, active=False)

    keys = [
        (template.id, date(2026, 2, 11)),
        (ended.id, date(2026, 3, 2)),
        (paused.id, SESSION),
        (template.id, SESSION),
    ]
    availabilities = await compute_makeup_availabilities_for_occurrences(db, keys)

    for key in keys[:3]:
        assert availabilities[key].available == 0
        assert not availabilities[key].cancelled
    assert availabilities[keys[3]].available == 5
