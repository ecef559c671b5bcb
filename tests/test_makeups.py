"""Tests for makeup credits and bookings."""

from datetime import date

import pytest

from swimschool.core.exceptions import BookingConflictError, NotFoundError
from swimschool.models import MakeupBookingStatus, MakeupCreditStatus
from swimschool.services.makeups import (
    MakeupUnavailableError,
    book_makeup,
    cancel_makeup_booking,
    grant_makeup_credit,
)

TODAY = date(2026, 2, 1)
TARGET = date(2026, 2, 12)


@pytest.fixture
async def setup(db, factory, monday):
    level = await factory.level()
    home = await factory.template(level, day_of_week=0)
    target = await factory.template(level, day_of_week=3, capacity=2)
    plan = await factory.class_pack_plan(level)
    regular = await factory.student(level, first_name="Regular", last_name="Swimmer")
    await factory.enrolment(regular, plan, [target], monday)
    first = await factory.student(level, first_name="Ava", last_name="Brown")
    second = await factory.student(level, first_name="Ben", last_name="Clark")
    return {
        "level": level,
        "level_id": level.id,
        "home": home,
        "target_id": target.id,
        "first_id": first.id,
        "second_id": second.id,
    }


async def test_grant_is_idempotent(db, setup):
    first = await grant_makeup_credit(db, setup["first_id"], setup["home"], date(2026, 2, 2))
    again = await grant_makeup_credit(db, setup["first_id"], setup["home"], date(2026, 2, 2))

    assert first.id == again.id
    assert first.expires_on == date(2026, 5, 3)
    assert first.level_id == setup["level_id"]


async def test_last_seat_goes_to_first_booking(db, setup):
    credit_a = await grant_makeup_credit(db, setup["first_id"], setup["home"], date(2026, 2, 2))
    credit_b = await grant_makeup_credit(db, setup["second_id"], setup["home"], date(2026, 2, 2))
    credit_a_id, credit_b_id = credit_a.id, credit_b.id

    booking = await book_makeup(db, credit_a_id, setup["target_id"], TARGET, "admin", today=TODAY)
    assert booking.status == MakeupBookingStatus.BOOKED
    assert credit_a.status == MakeupCreditStatus.RESERVED

    with pytest.raises(BookingConflictError) as exc_info:
        await book_makeup(db, credit_b_id, setup["target_id"], TARGET, "admin", today=TODAY)
    assert exc_info.value.code == "makeup_full"
    assert exc_info.value.status_code == 409


async def test_reserved_credit_cannot_be_reused(db, setup):
    credit = await grant_makeup_credit(db, setup["first_id"], setup["home"], date(2026, 2, 2))
    credit_id = credit.id
    await book_makeup(db, credit_id, setup["target_id"], TARGET, today=TODAY)

    with pytest.raises(MakeupUnavailableError):
        await book_makeup(db, credit_id, setup["target_id"], date(2026, 2, 19), today=TODAY)


async def test_booking_rejects_wrong_weekday_and_past(db, setup):
    credit = await grant_makeup_credit(db, setup["first_id"], setup["home"], date(2026, 2, 2))
    credit_id = credit.id

    with pytest.raises(MakeupUnavailableError):
        await book_makeup(db, credit_id, setup["target_id"], date(2026, 2, 13), today=TODAY)
    with pytest.raises(MakeupUnavailableError):
        await book_makeup(db, credit_id, setup["target_id"], TARGET, today=date(2026, 2, 20))
    with pytest.raises(NotFoundError):
        await book_makeup(db, credit_id + 999, setup["target_id"], TARGET, today=TODAY)


async def test_cancel_releases_credit(db, setup):
    credit = await grant_makeup_credit(db, setup["first_id"], setup["home"], date(2026, 2, 2))
    booking = await book_makeup(db, credit.id, setup["target_id"], TARGET, today=TODAY)

    cancelled = await cancel_makeup_booking(db, booking.id)

    assert cancelled.status == MakeupBookingStatus.CANCELLED
    assert credit.status == MakeupCreditStatus.AVAILABLE


async def test_booking_after_class_end_date_is_rejected(db, factory, setup):
    credit = await grant_makeup_credit(db, setup["first_id"], setup["home"], date(2026, 2, 2))
    credit_id = credit.id
    ending = await factory.template(setup["level"], day_of_week=3, end_date=date(2026, 2, 20))
    ending_id = ending.id

    with pytest.raises(MakeupUnavailableError):
        await book_makeup(db, credit_id, ending_id, date(2026, 3, 5), today=TODAY)

    booking = await book_makeup(db, credit_id, ending_id, TARGET, today=TODAY)
    assert booking.status == MakeupBookingStatus.BOOKED
