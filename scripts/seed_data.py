"""Seed database with sample data."""

import asyncio
import logging
from datetime import date, time
from decimal import Decimal

from swimschool.core.database import AsyncSessionLocal, init_db
from swimschool.models import (
    BillingType,
    ClassTemplate,
    Enrolment,
    EnrolmentClassAssignment,
    EnrolmentPlan,
    EnrolmentType,
    Family,
    Holiday,
    Level,
    Student,
)

logger = logging.getLogger(__name__)


async def seed_data():
    """Seed database with sample data."""
    await init_db()

    async with AsyncSessionLocal() as db:
        # Levels
        levels = [
            Level(name="Starfish", sort_order=1),
            Level(name="Seahorse", sort_order=2),
            Level(name="Dolphin", sort_order=3),
        ]
        db.add_all(levels)
        await db.commit()

        starfish, seahorse, dolphin = levels

        # Weekly class slots
        templates = [
            ClassTemplate(
                name="Starfish Monday",
                day_of_week=0,
                start_time=time(16, 0),
                end_time=time(16, 30),
                level_id=starfish.id,
                capacity=6,
            ),
            ClassTemplate(
                name="Starfish Thursday",
                day_of_week=3,
                start_time=time(16, 0),
                end_time=time(16, 30),
                level_id=starfish.id,
                capacity=6,
            ),
            ClassTemplate(
                name="Seahorse Wednesday",
                day_of_week=2,
                start_time=time(17, 0),
                end_time=time(17, 30),
                level_id=seahorse.id,
                capacity=8,
            ),
            ClassTemplate(
                name="Dolphin Saturday",
                day_of_week=5,
                start_time=time(9, 0),
                end_time=time(9, 45),
                level_id=dolphin.id,
                capacity=10,
            ),
        ]
        db.add_all(templates)
        await db.commit()

        # Plans
        plans = [
            EnrolmentPlan(
                name="Starfish 4 weeks, 1x/week",
                level_id=starfish.id,
                billing_type=BillingType.PER_WEEK,
                enrolment_type=EnrolmentType.CLASS,
                price=Decimal("88.00"),
                duration_weeks=4,
                sessions_per_week=1,
            ),
            EnrolmentPlan(
                name="Starfish 4 weeks, 2x/week",
                level_id=starfish.id,
                billing_type=BillingType.PER_WEEK,
                enrolment_type=EnrolmentType.CLASS,
                price=Decimal("160.00"),
                duration_weeks=4,
                sessions_per_week=2,
            ),
            EnrolmentPlan(
                name="Seahorse 8 class block",
                level_id=seahorse.id,
                billing_type=BillingType.PER_CLASS,
                enrolment_type=EnrolmentType.BLOCK,
                price=Decimal("176.00"),
                block_class_count=8,
            ),
            EnrolmentPlan(
                name="Dolphin casual 10 pack",
                level_id=dolphin.id,
                billing_type=BillingType.PER_CLASS,
                enrolment_type=EnrolmentType.CLASS,
                price=Decimal("230.00"),
                block_class_count=10,
            ),
        ]
        db.add_all(plans)
        await db.commit()

        # Families and students
        families = [
            Family(name="Nguyen", email="nguyen@example.com"),
            Family(name="O'Connor", email="oconnor@example.com"),
        ]
        db.add_all(families)
        await db.commit()

        students = [
            Student(family_id=families[0].id, first_name="Lily", last_name="Nguyen",
                    birth_date=date(2019, 3, 14), level_id=starfish.id),
            Student(family_id=families[0].id, first_name="Minh", last_name="Nguyen",
                    birth_date=date(2017, 8, 2), level_id=seahorse.id),
            Student(family_id=families[1].id, first_name="Sean", last_name="O'Connor",
                    birth_date=date(2015, 11, 21), level_id=dolphin.id),
        ]
        db.add_all(students)
        await db.commit()

        # Enrolments
        enrolments = [
            Enrolment(student_id=students[0].id, plan_id=plans[1].id, start_date=date(2026, 1, 12)),
            Enrolment(student_id=students[1].id, plan_id=plans[2].id, start_date=date(2026, 2, 4)),
            Enrolment(student_id=students[2].id, plan_id=plans[3].id, start_date=date(2026, 2, 7)),
        ]
        db.add_all(enrolments)
        await db.commit()

        db.add_all([
            EnrolmentClassAssignment(enrolment_id=enrolments[0].id, template_id=templates[0].id),
            EnrolmentClassAssignment(enrolment_id=enrolments[0].id, template_id=templates[1].id),
            EnrolmentClassAssignment(enrolment_id=enrolments[1].id, template_id=templates[2].id),
            EnrolmentClassAssignment(enrolment_id=enrolments[2].id, template_id=templates[3].id),
        ])

        # Holidays
        db.add_all([
            Holiday(name="Easter", start_date=date(2026, 4, 3), end_date=date(2026, 4, 6)),
            Holiday(name="Pool maintenance", start_date=date(2026, 3, 4),
                    end_date=date(2026, 3, 4), template_id=templates[2].id),
        ])
        await db.commit()

        logger.info("Database seeded successfully!")
        logger.info(f"Created {len(levels)} levels")
        logger.info(f"Created {len(templates)} class templates")
        logger.info(f"Created {len(plans)} plans")
        logger.info(f"Created {len(students)} students")
        logger.info(f"Created {len(enrolments)} enrolments")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(seed_data())
