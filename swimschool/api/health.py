"""Liveness and database checks."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import text

from swimschool.api.dependencies import DbSession
from swimschool.core.settings import settings
from swimschool.models import SWEEP_STATE_ID, CoverageSweepState

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    message: str


class SweepHealthResponse(BaseModel):
    """When the throttled coverage sweep last claimed a run."""

    last_run_at: Optional[datetime] = None
    interval_minutes: int
    scheduler_enabled: bool


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", message="Coverage engine is running")


@router.get("/db", response_model=HealthResponse)
async def health_check_db(db: DbSession) -> HealthResponse:
    try:
        result = await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return HealthResponse(status="error", message=f"Database unavailable: {e}")
    if result.scalar() != 1:
        return HealthResponse(status="error", message="Unexpected database response")
    return HealthResponse(status="ok", message="Database reachable")


@router.get("/sweep", response_model=SweepHealthResponse)
async def health_check_sweep(db: DbSession) -> SweepHealthResponse:
    state = await db.get(CoverageSweepState, SWEEP_STATE_ID)
    return SweepHealthResponse(
        last_run_at=state.last_run_at if state else None,
        interval_minutes=settings.coverage_sweep_interval_minutes,
        scheduler_enabled=settings.scheduler_enabled,
    )
