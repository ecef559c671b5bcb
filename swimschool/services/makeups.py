"""Makeup credits and bookings."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.core.exceptions import BookingConflictError, CoverageError, NotFoundError
from swimschool.core.settings import settings
from swimschool.models import (
    ClassTemplate,
    MakeupBooking,
    MakeupBookingStatus,
    MakeupCredit,
    MakeupCreditStatus,
)
from swimschool.services.capacity import compute_makeup_availabilities_for_occurrences
from swimschool.services.occurrences import is_scheduled_on
from swimschool.utils.timezone import add_days, today_day_key

logger = logging.getLogger(__name__)

SPOT_TAKEN_MESSAGE = "That makeup spot was just taken. Please refresh and choose another session."


class MakeupUnavailableError(CoverageError):
    code = "makeup_unavailable"


def _is_serialization_failure(error: DBAPIError) -> bool:
    sqlstate = getattr(error.orig, "sqlstate", None) or getattr(error.orig, "pgcode", None)
    return sqlstate == "40001" or "could not serialize" in str(error.orig).lower()


async def grant_makeup_credit(
    db: AsyncSession,
    student_id: int,
    template: ClassTemplate,
    session_date: date,
    enrolment_id: Optional[int] = None,
) -> MakeupCredit:
    """Issue a makeup credit for an excused session, once per session."""
    result = await db.execute(
        select(MakeupCredit).where(
            MakeupCredit.student_id == student_id,
            MakeupCredit.earned_from_class_id == template.id,
            MakeupCredit.earned_from_session_date == session_date,
        )
    )
    existing = result.scalar_one_or_none()
    if existing is not None:
        return existing

    credit = MakeupCredit(
        student_id=student_id,
        enrolment_id=enrolment_id,
        earned_from_class_id=template.id,
        earned_from_session_date=session_date,
        level_id=template.level_id,
        status=MakeupCreditStatus.AVAILABLE,
        expires_on=add_days(session_date, settings.makeup_credit_expiry_days),
    )
    db.add(credit)
    await db.commit()
    logger.info(f"Makeup credit {credit.id} granted to student {student_id} for {session_date}")
    return credit


async def book_makeup(
    db: AsyncSession,
    makeup_credit_id: int,
    target_class_id: int,
    target_session_date: date,
    booked_by: Optional[str] = None,
    today: Optional[date] = None,
) -> MakeupBooking:
    """Redeem a makeup credit into a specific occurrence.

    Runs under SERIALIZABLE isolation. Losing a race for the last seat, or
    booking the same occurrence twice, raises BookingConflictError; the caller
    decides whether to retry.
    """
    today = today or today_day_key()
    try:
        await db.connection(execution_options={"isolation_level": "SERIALIZABLE"})

        credit_result = await db.execute(
            select(MakeupCredit).where(MakeupCredit.id == makeup_credit_id).with_for_update()
        )
        credit = credit_result.scalar_one_or_none()
        if credit is None:
            raise NotFoundError(f"Makeup credit {makeup_credit_id} not found")
        if credit.status != MakeupCreditStatus.AVAILABLE:
            raise MakeupUnavailableError(f"Makeup credit is {credit.status.value.lower()}")
        if credit.expires_on < target_session_date:
            raise MakeupUnavailableError("Makeup credit expires before that session")

        template = await db.get(ClassTemplate, target_class_id)
        if template is None or not template.active:
            raise NotFoundError(f"Class {target_class_id} not found")
        if target_session_date < today:
            raise MakeupUnavailableError("Cannot book a makeup in the past")
        if not is_scheduled_on(template, target_session_date):
            raise MakeupUnavailableError("Class does not run on that date")
        if credit.level_id is not None and template.level_id != credit.level_id:
            raise MakeupUnavailableError("Class is not at the credit's level")

        key = (template.id, target_session_date)
        availability = (
            await compute_makeup_availabilities_for_occurrences(db, [key])
        )[key]
        if availability.available <= 0:
            raise BookingConflictError(
                "No makeup spots available for that session",
                code="makeup_full",
                details={"template_id": template.id, "session_date": target_session_date.isoformat()},
            )

        booking = MakeupBooking(
            makeup_credit_id=credit.id,
            student_id=credit.student_id,
            target_class_id=template.id,
            target_session_date=target_session_date,
            status=MakeupBookingStatus.BOOKED,
            booked_by=booked_by,
        )
        db.add(booking)
        credit.status = MakeupCreditStatus.RESERVED
        await db.flush()
        await db.commit()

        logger.info(
            f"Makeup booked: student {credit.student_id} into class {template.id} "
            f"on {target_session_date}"
        )
        return booking

    except IntegrityError as e:
        await db.rollback()
        logger.warning(f"Makeup booking conflict for credit {makeup_credit_id}: {e.orig}")
        raise BookingConflictError(SPOT_TAKEN_MESSAGE) from e
    except DBAPIError as e:
        await db.rollback()
        if _is_serialization_failure(e):
            logger.warning(f"Serialization failure booking credit {makeup_credit_id}")
            raise BookingConflictError(SPOT_TAKEN_MESSAGE) from e
        raise
    except Exception:
        await db.rollback()
        raise


async def cancel_makeup_booking(db: AsyncSession, booking_id: int) -> MakeupBooking:
    """Cancel a booking and release its credit."""
    try:
        booking = await db.get(MakeupBooking, booking_id)
        if booking is None:
            raise NotFoundError(f"Makeup booking {booking_id} not found")
        if booking.status != MakeupBookingStatus.BOOKED:
            return booking

        booking.status = MakeupBookingStatus.CANCELLED
        credit = await db.get(MakeupCredit, booking.makeup_credit_id)
        if credit is not None and credit.status == MakeupCreditStatus.RESERVED:
            credit.status = MakeupCreditStatus.AVAILABLE
        await db.commit()
        logger.info(f"Makeup booking {booking_id} cancelled")
        return booking
    except Exception:
        await db.rollback()
        raise
