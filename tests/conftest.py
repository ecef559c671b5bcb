"""Shared fixtures: in-memory SQLite database and model factories."""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["ENV"] = "test"
os.environ["TZ"] = "Australia/Brisbane"
os.environ["RECOMPUTE_CONCURRENCY"] = "1"
os.environ["RECOMPUTE_BATCH_SIZE"] = "2"
os.environ["ADMIN_EMAIL"] = "admin@swimschool.test"
os.environ["ADMIN_PASSWORD"] = "test-password"

from datetime import date, time  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from swimschool.core.database import AsyncSessionLocal, Base, engine  # noqa: E402
from swimschool.models import (  # noqa: E402
    BillingType,
    ClassTemplate,
    Enrolment,
    EnrolmentClassAssignment,
    EnrolmentPlan,
    EnrolmentType,
    Family,
    Invoice,
    InvoiceLineItem,
    InvoiceLineItemKind,
    InvoiceStatus,
    Level,
    Student,
)
from swimschool.utils.timezone import now_utc  # noqa: E402


@pytest.fixture(autouse=True)
async def database():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def db(database):
    async with AsyncSessionLocal() as session:
        yield session


class Factory:
    """Creates committed rows for tests."""

    def __init__(self, db):
        self.db = db

    async def _save(self, obj):
        self.db.add(obj)
        await self.db.commit()
        return obj

    async def level(self, name="Starfish"):
        return await self._save(Level(name=name))

    async def template(self, level, day_of_week=0, capacity=10, name=None, **kwargs):
        return await self._save(
            ClassTemplate(
                name=name or f"{level.name} day {day_of_week}",
                day_of_week=day_of_week,
                start_time=time(16, 0),
                end_time=time(16, 30),
                level_id=level.id,
                capacity=capacity,
                **kwargs,
            )
        )

    async def weekly_plan(
        self, level, duration_weeks=4, sessions_per_week=1, price=Decimal("88.00")
    ):
        return await self._save(
            EnrolmentPlan(
                name=f"{duration_weeks} weeks x{sessions_per_week}",
                level_id=level.id,
                billing_type=BillingType.PER_WEEK,
                enrolment_type=EnrolmentType.CLASS,
                price=price,
                duration_weeks=duration_weeks,
                sessions_per_week=sessions_per_week,
            )
        )

    async def block_plan(self, level, block_class_count=8, price=Decimal("176.00")):
        return await self._save(
            EnrolmentPlan(
                name=f"Block of {block_class_count}",
                level_id=level.id,
                billing_type=BillingType.PER_CLASS,
                enrolment_type=EnrolmentType.BLOCK,
                price=price,
                block_class_count=block_class_count,
            )
        )

    async def class_pack_plan(self, level, block_class_count=10, price=Decimal("230.00")):
        return await self._save(
            EnrolmentPlan(
                name=f"{block_class_count} class pack",
                level_id=level.id,
                billing_type=BillingType.PER_CLASS,
                enrolment_type=EnrolmentType.CLASS,
                price=price,
                block_class_count=block_class_count,
            )
        )

    async def student(self, level, first_name="Lily", last_name="Nguyen"):
        family = await self._save(Family(name=last_name))
        return await self._save(
            Student(
                family_id=family.id,
                first_name=first_name,
                last_name=last_name,
                level_id=level.id,
            )
        )

    async def enrolment(self, student, plan, templates, start_date, **kwargs):
        enrolment = await self._save(
            Enrolment(
                student_id=student.id,
                plan_id=plan.id,
                start_date=start_date,
                **kwargs,
            )
        )
        for template in templates:
            self.db.add(
                EnrolmentClassAssignment(enrolment_id=enrolment.id, template_id=template.id)
            )
        await self.db.commit()
        return enrolment

    async def paid_invoice(
        self,
        enrolment,
        plan,
        quantity=1,
        coverage_start=None,
        coverage_end=None,
        status=InvoiceStatus.PAID,
        credits_purchased=None,
    ):
        invoice = Invoice(
            enrolment_id=enrolment.id,
            plan_id=plan.id,
            status=status,
            amount_total=plan.price * quantity,
            coverage_start=coverage_start,
            coverage_end=coverage_end,
            credits_purchased=credits_purchased,
            paid_at=now_utc() if status == InvoiceStatus.PAID else None,
        )
        invoice.line_items = [
            InvoiceLineItem(
                kind=InvoiceLineItemKind.ENROLMENT,
                description=plan.name,
                quantity=quantity,
                unit_price=plan.price,
                enrolment_id=enrolment.id,
                plan_id=plan.id,
            )
        ]
        return await self._save(invoice)


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def monday():
    return date(2026, 2, 2)
