"""Enrolment coverage and invoice entitlement endpoints."""

import logging
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Query
from pydantic import BaseModel

from swimschool.api.dependencies import AdminUser, DbSession
from swimschool.core.exceptions import ConfigurationError
from swimschool.models import CoverageAuditReason, EnrolmentStatus, InvoiceStatus
from swimschool.services.coverage import resolve_coverage_for_plan
from swimschool.services.coverage_audit import get_coverage_history
from swimschool.services.enrolment_change import change_enrolment
from swimschool.services.enrolment_context import load_coverage_context, load_enrolment
from swimschool.services.entitlements import apply_paid_invoice_to_enrolment
from swimschool.services.recompute import recompute_enrolment_coverage
from swimschool.utils.timezone import today_day_key

logger = logging.getLogger(__name__)

router = APIRouter(tags=["coverage"])


class CoveragePreviewResponse(BaseModel):
    """What the next purchase of the enrolment's plan would cover."""

    enrolment_id: int
    plan_id: int
    quantity: int
    coverage_start: Optional[date] = None
    coverage_end: Optional[date] = None
    coverage_end_base: Optional[date] = None
    periods: int
    credits_purchased: Optional[int] = None


class EnrolmentCoverageResponse(BaseModel):
    id: int
    status: EnrolmentStatus
    plan_id: Optional[int] = None
    start_date: date
    end_date: Optional[date] = None
    paid_through_date: Optional[date] = None
    paid_through_date_computed: Optional[date] = None
    next_due_date_computed: Optional[date] = None
    credits_remaining: Optional[int] = None

    class Config:
        from_attributes = True


class EnrolmentChangeRequest(BaseModel):
    """New classes and/or plan. Omitted fields stay as they are."""

    template_ids: Optional[List[int]] = None
    plan_id: Optional[int] = None
    effective_date: Optional[date] = None
    confirm_shorten: bool = False


class CoverageAuditResponse(BaseModel):
    id: int
    reason: CoverageAuditReason
    previous_paid_through_date: Optional[date] = None
    new_paid_through_date: Optional[date] = None
    previous_credits: Optional[int] = None
    new_credits: Optional[int] = None
    actor: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    id: int
    enrolment_id: Optional[int] = None
    status: InvoiceStatus
    coverage_start: Optional[date] = None
    coverage_end: Optional[date] = None
    credits_purchased: Optional[int] = None
    entitlements_applied_at: Optional[datetime] = None

    class Config:
        from_attributes = True


@router.get("/enrolments/{enrolment_id}/coverage", response_model=CoveragePreviewResponse)
async def preview_enrolment_coverage(
    enrolment_id: int,
    db: DbSession,
    admin: AdminUser,
    quantity: int = Query(1, ge=1, le=52),
    custom_block_length: Optional[int] = Query(None, ge=1),
) -> CoveragePreviewResponse:
    """Resolve the coverage window an invoice for this enrolment would buy."""
    enrolment = await load_enrolment(db, enrolment_id)
    if enrolment.plan is None:
        raise ConfigurationError(f"Enrolment {enrolment_id} has no plan")

    context = await load_coverage_context(db, enrolment)
    coverage = resolve_coverage_for_plan(
        plan=enrolment.plan,
        enrolment=enrolment,
        templates=context.templates,
        holidays=context.holidays,
        cancellations=context.cancellations,
        today=today_day_key(),
        quantity=quantity,
        custom_block_length=custom_block_length,
    )
    return CoveragePreviewResponse(
        enrolment_id=enrolment.id,
        plan_id=enrolment.plan.id,
        quantity=quantity,
        coverage_start=coverage.coverage_start,
        coverage_end=coverage.coverage_end,
        coverage_end_base=coverage.coverage_end_base,
        periods=coverage.periods,
        credits_purchased=coverage.credits_purchased,
    )


@router.get("/enrolments/{enrolment_id}", response_model=EnrolmentCoverageResponse)
async def get_enrolment_coverage(enrolment_id: int, db: DbSession, admin: AdminUser):
    return await load_enrolment(db, enrolment_id)


@router.post("/enrolments/{enrolment_id}/recompute", response_model=EnrolmentCoverageResponse)
async def recompute_enrolment(enrolment_id: int, db: DbSession, admin: AdminUser):
    """Re-derive coverage for one enrolment."""
    return await recompute_enrolment_coverage(
        db, enrolment_id, CoverageAuditReason.MANUAL, actor=admin.username
    )


@router.get(
    "/enrolments/{enrolment_id}/coverage-history",
    response_model=List[CoverageAuditResponse],
)
async def get_enrolment_coverage_history(
    enrolment_id: int,
    db: DbSession,
    admin: AdminUser,
    limit: int = Query(50, ge=1, le=500),
):
    await load_enrolment(db, enrolment_id)
    return await get_coverage_history(db, enrolment_id, limit)


@router.post("/invoices/{invoice_id}/apply", response_model=InvoiceResponse)
async def apply_invoice(invoice_id: int, db: DbSession, admin: AdminUser):
    """Apply a paid invoice to its enrolment. Repeat calls are no-ops."""
    return await apply_paid_invoice_to_enrolment(db, invoice_id, actor=admin.username)


@router.post("/enrolments/{enrolment_id}/change", response_model=EnrolmentCoverageResponse)
async def change_enrolment_classes_or_plan(
    enrolment_id: int,
    request: EnrolmentChangeRequest,
    db: DbSession,
    admin: AdminUser,
):
    """Move an enrolment to other classes or another plan, keeping paid coverage."""
    result = await change_enrolment(
        db,
        enrolment_id,
        template_ids=request.template_ids,
        plan_id=request.plan_id,
        effective_date=request.effective_date,
        actor=admin.username,
        confirm_shorten=request.confirm_shorten,
    )
    return result.enrolment
