"""Moving an enrolment to other classes or another plan.

Coverage already paid for survives a change. A class change keeps the number
of sessions covered on the old classes and walks that same number on the new
ones, skipping their holidays and cancellations. A plan change then rescales
what is left after the effective date by the ratio of the per-session prices:
paid-through moves for weekly and block plans, the credit balance for open
class packs.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from swimschool.core.exceptions import (
    CoverageWouldShortenError,
    NotFoundError,
    PlanMismatchError,
    ValidationError,
)
from swimschool.models import (
    BillingType,
    ClassTemplate,
    CoverageAuditReason,
    Enrolment,
    EnrolmentClassAssignment,
    EnrolmentPlan,
    EnrolmentStatus,
    EnrolmentType,
)
from swimschool.services.billing_status import refresh_billing_status
from swimschool.services.coverage import limit_weekly_templates, resolve_anchor_template
from swimschool.services.coverage_audit import log_coverage_change
from swimschool.services.credit_ledger import CreditLedger
from swimschool.services.enrolment_context import (
    load_cancellations,
    load_enrolment,
    resolve_templates,
)
from swimschool.services.holiday_scope import load_holidays_for_templates
from swimschool.services.occurrences import (
    count_scheduled_sessions,
    coverage_end_for_sessions,
    next_scheduled_day_key,
)
from swimschool.utils.timezone import add_days, now_utc, today_day_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EnrolmentChangeResult:
    enrolment: Enrolment
    previous_paid_through_date: Optional[date]
    new_paid_through_date: Optional[date]
    credits_delta: int = 0


def plan_unit_price(plan) -> Decimal:
    """Price of one session: per week divided by sessions, per class by block size."""
    price = Decimal(plan.price or 0)
    if plan.billing_type == BillingType.PER_WEEK:
        divisor = plan.sessions_per_week
    else:
        divisor = plan.block_class_count
    if not divisor or divisor <= 0:
        divisor = 1
    return price / divisor


def coverage_templates(plan, templates: Iterable) -> List:
    """Templates a plan's coverage is walked on."""
    if plan.billing_type == BillingType.PER_WEEK:
        return limit_weekly_templates(templates, plan.sessions_per_week)
    anchor = resolve_anchor_template(templates)
    return [anchor] if anchor is not None else []


def compute_paid_through_after_template_change(
    *,
    start_date: date,
    end_date: Optional[date] = None,
    old_paid_through_date: Optional[date],
    old_templates: Iterable,
    new_templates: Iterable,
    old_holidays: Iterable = (),
    new_holidays: Iterable = (),
    old_cancellations: Iterable = (),
    new_cancellations: Iterable = (),
) -> Optional[date]:
    """Paid-through on the new templates covering as many sessions as the old one did.

    Returns None when nothing was covered on the old templates or the new ones
    have no weekday.
    """
    old_templates = list(old_templates)
    new_templates = [t for t in new_templates if t.day_of_week is not None]
    if old_paid_through_date is None or not old_templates or not new_templates:
        return None
    if old_paid_through_date < start_date:
        return None

    sessions = count_scheduled_sessions(
        old_templates, start_date, old_paid_through_date, old_holidays, old_cancellations
    )
    if sessions <= 0:
        return None

    return coverage_end_for_sessions(
        new_templates, start_date, sessions, end_date, new_holidays, new_cancellations
    )


def compute_prorated_paid_through(
    *,
    effective_date: date,
    old_paid_through_date: Optional[date],
    old_plan,
    new_plan,
    destination_templates: Iterable = (),
) -> Optional[date]:
    """Rescale the days paid after ``effective_date`` by old over new session price.

    Per-class results land on the next scheduled class of the destination.
    """
    if old_paid_through_date is None:
        return None

    days = (old_paid_through_date - effective_date).days
    if days <= 0:
        return old_paid_through_date

    old_unit = plan_unit_price(old_plan)
    new_unit = plan_unit_price(new_plan)
    if old_unit <= 0 or new_unit <= 0:
        return old_paid_through_date

    scaled_days = int((days * old_unit / new_unit).to_integral_value(rounding=ROUND_FLOOR))
    prorated = add_days(effective_date, scaled_days)

    if new_plan.billing_type == BillingType.PER_CLASS:
        destination = [t for t in destination_templates if t.day_of_week is not None]
        if destination:
            return next_scheduled_day_key(destination, prorated) or prorated
    return prorated


def prorate_credits(credits: int, old_plan, new_plan) -> int:
    """Whole credits on the new plan worth the same as ``credits`` on the old one."""
    if credits <= 0:
        return credits
    old_unit = plan_unit_price(old_plan)
    new_unit = plan_unit_price(new_plan)
    if old_unit <= 0 or new_unit <= 0:
        return credits
    return int((credits * old_unit / new_unit).to_integral_value(rounding=ROUND_FLOOR))


def _is_class_pack(plan) -> bool:
    return (
        plan.billing_type == BillingType.PER_CLASS
        and plan.enrolment_type == EnrolmentType.CLASS
    )


async def _load_templates(db: AsyncSession, template_ids: List[int]) -> List[ClassTemplate]:
    unique_ids = list(dict.fromkeys(template_ids))
    if not unique_ids:
        raise ValidationError("An enrolment needs at least one class")

    result = await db.execute(select(ClassTemplate).where(ClassTemplate.id.in_(unique_ids)))
    by_id = {t.id: t for t in result.scalars().all()}
    missing = [template_id for template_id in unique_ids if template_id not in by_id]
    if missing:
        raise NotFoundError(
            f"Class templates {missing} not found", details={"template_ids": missing}
        )

    templates = [by_id[template_id] for template_id in unique_ids]
    inactive = [t.id for t in templates if not t.active]
    if inactive:
        raise ValidationError(
            f"Class templates {inactive} are not active", details={"template_ids": inactive}
        )
    return templates


def _check_levels(plan: EnrolmentPlan, templates: List[ClassTemplate]) -> None:
    if plan.level_id is None:
        return
    for template in templates:
        if template.level_id is not None and template.level_id != plan.level_id:
            raise PlanMismatchError(
                f"Template {template.id} level {template.level_id} does not match "
                f"plan {plan.id} level {plan.level_id}",
                details={"template_id": template.id, "plan_id": plan.id},
            )


def _reassign_templates(enrolment: Enrolment, templates: List[ClassTemplate]) -> None:
    """Replace assignments, keeping rows for classes the enrolment stays in."""
    wanted = {t.id: t for t in templates}
    kept = [a for a in enrolment.class_assignments if a.template_id in wanted]
    kept_ids = {a.template_id for a in kept}
    added = [
        EnrolmentClassAssignment(template_id=t.id, template=t)
        for t in templates
        if t.id not in kept_ids
    ]
    enrolment.class_assignments = kept + added

    anchor = resolve_anchor_template(templates) or templates[0]
    enrolment.template_id = anchor.id
    enrolment.template = anchor


async def _remap_paid_through(
    db: AsyncSession,
    enrolment: Enrolment,
    old_plan: EnrolmentPlan,
    new_plan: EnrolmentPlan,
    old_templates: List[ClassTemplate],
    new_templates: List[ClassTemplate],
    effective_date: date,
) -> Optional[date]:
    paid_through = enrolment.paid_through_date
    old_walk = coverage_templates(old_plan, old_templates)
    new_walk = coverage_templates(new_plan, new_templates)

    if paid_through is not None and [t.id for t in old_walk] != [t.id for t in new_walk]:
        old_holidays = await load_holidays_for_templates(db, old_walk, start=enrolment.start_date)
        new_holidays = await load_holidays_for_templates(db, new_walk, start=enrolment.start_date)
        old_cancellations = await load_cancellations(
            db, [t.id for t in old_walk], start=enrolment.start_date
        )
        new_cancellations = await load_cancellations(
            db, [t.id for t in new_walk], start=enrolment.start_date
        )
        mapped = compute_paid_through_after_template_change(
            start_date=enrolment.start_date,
            end_date=enrolment.end_date,
            old_paid_through_date=paid_through,
            old_templates=old_walk,
            new_templates=new_walk,
            old_holidays=old_holidays,
            new_holidays=new_holidays,
            old_cancellations=old_cancellations,
            new_cancellations=new_cancellations,
        )
        logger.debug(
            f"Enrolment {enrolment.id} paid-through {paid_through} maps to {mapped} "
            f"on templates {[t.id for t in new_walk]}"
        )
        paid_through = mapped

    if old_plan.id != new_plan.id:
        paid_through = compute_prorated_paid_through(
            effective_date=effective_date,
            old_paid_through_date=paid_through,
            old_plan=old_plan,
            new_plan=new_plan,
            destination_templates=new_walk,
        )
    return paid_through


async def change_enrolment(
    db: AsyncSession,
    enrolment_id: int,
    template_ids: Optional[List[int]] = None,
    plan_id: Optional[int] = None,
    effective_date: Optional[date] = None,
    actor: Optional[str] = None,
    confirm_shorten: bool = False,
) -> EnrolmentChangeResult:
    """Move an enrolment to new classes and/or a new plan in one transaction.

    Args:
        db: Database session, committed on success
        enrolment_id: Enrolment to change
        template_ids: New class templates, or None to keep the current ones
        plan_id: New plan, or None to keep the current one
        effective_date: Day proration starts from, defaults to today
        actor: Operator making the change
        confirm_shorten: Allow a change that moves paid-through backwards

    Raises:
        CoverageWouldShortenError: The change loses paid coverage and was not confirmed
        PlanMismatchError: Plan or classes are for another level
    """
    if template_ids is None and plan_id is None:
        raise ValidationError("Nothing to change: give template_ids and/or plan_id")

    try:
        enrolment = await load_enrolment(db, enrolment_id)
        if enrolment.status == EnrolmentStatus.CANCELLED:
            raise ValidationError(f"Enrolment {enrolment_id} is cancelled")
        if enrolment.plan is None:
            raise ValidationError(f"Enrolment {enrolment_id} has no plan")

        old_plan = enrolment.plan
        old_templates = resolve_templates(enrolment)
        new_plan = old_plan
        if plan_id is not None and plan_id != old_plan.id:
            new_plan = await db.get(EnrolmentPlan, plan_id)
            if new_plan is None:
                raise NotFoundError(f"Plan {plan_id} not found")
        new_templates = (
            await _load_templates(db, template_ids) if template_ids is not None else old_templates
        )

        if _is_class_pack(old_plan) != _is_class_pack(new_plan):
            raise ValidationError(
                "Moving between a class pack and a dated plan needs a new enrolment",
                details={"old_plan_id": old_plan.id, "new_plan_id": new_plan.id},
            )
        _check_levels(new_plan, new_templates)

        effective_date = effective_date or today_day_key()
        previous_paid_through = enrolment.paid_through_date
        previous_credits = enrolment.credits_balance_cached
        credits_delta = 0

        if _is_class_pack(new_plan):
            if new_plan.id != old_plan.id:
                ledger = CreditLedger(db)
                balance = await ledger.balance(enrolment.id)
                credits_delta = prorate_credits(balance, old_plan, new_plan) - balance
                if credits_delta < 0 and not confirm_shorten:
                    raise CoverageWouldShortenError(
                        f"Plan change would remove {-credits_delta} credits "
                        f"from enrolment {enrolment.id}",
                        details={"credits": balance, "credits_delta": credits_delta},
                    )
                if credits_delta:
                    await ledger.record_manual_adjustment(
                        enrolment.id,
                        credits_delta,
                        effective_date,
                        note=f"Plan change {old_plan.id} -> {new_plan.id}",
                    )
        else:
            new_paid_through = await _remap_paid_through(
                db, enrolment, old_plan, new_plan, old_templates, new_templates, effective_date
            )
            shortened = previous_paid_through is not None and (
                new_paid_through is None or new_paid_through < previous_paid_through
            )
            if shortened and not confirm_shorten:
                raise CoverageWouldShortenError(
                    f"Change would move enrolment {enrolment.id} paid-through from "
                    f"{previous_paid_through} to {new_paid_through}",
                    details={
                        "previous_paid_through_date": previous_paid_through.isoformat(),
                        "new_paid_through_date": (
                            new_paid_through.isoformat() if new_paid_through else None
                        ),
                    },
                )
            if new_paid_through != previous_paid_through:
                enrolment.paid_through_date = new_paid_through
                enrolment.paid_through_date_computed = new_paid_through

        if template_ids is not None:
            _reassign_templates(enrolment, new_templates)
        if new_plan.id != old_plan.id:
            enrolment.plan_id = new_plan.id
            enrolment.plan = new_plan
            student = enrolment.student
            if new_plan.level_id is not None and student.level_id != new_plan.level_id:
                logger.info(
                    f"Student {student.id} moves from level {student.level_id} "
                    f"to {new_plan.level_id}"
                )
                student.level_id = new_plan.level_id
        enrolment.coverage_rebased_at = now_utc()
        await db.flush()

        snapshot = await refresh_billing_status(db, enrolment.id)
        await log_coverage_change(
            db,
            enrolment.id,
            CoverageAuditReason.PLAN_CHANGED,
            previous_paid_through,
            enrolment.paid_through_date,
            previous_credits,
            snapshot.credits_remaining,
            actor=actor,
            context={
                "old_plan_id": old_plan.id,
                "new_plan_id": new_plan.id,
                "old_template_ids": [t.id for t in old_templates],
                "new_template_ids": [t.id for t in new_templates],
                "effective_date": effective_date.isoformat(),
                "credits_delta": credits_delta,
            },
            force=True,
        )

        await db.commit()
        logger.info(
            f"🔀 Changed enrolment {enrolment.id}: plan {old_plan.id} -> {new_plan.id}, "
            f"templates {[t.id for t in new_templates]}, "
            f"paid_through {previous_paid_through} -> {enrolment.paid_through_date}"
        )
        return EnrolmentChangeResult(
            enrolment=await load_enrolment(db, enrolment.id),
            previous_paid_through_date=previous_paid_through,
            new_paid_through_date=enrolment.paid_through_date,
            credits_delta=credits_delta,
        )

    except Exception as e:
        await db.rollback()
        logger.error(f"Error changing enrolment {enrolment_id}: {e}")
        raise
