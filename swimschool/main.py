"""Coverage engine HTTP application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from swimschool.api import auth, classes, coverage, health, holidays, makeups
from swimschool.core.database import init_db
from swimschool.core.exceptions import register_exception_handlers
from swimschool.core.settings import settings
from swimschool.workers.coverage_scheduler import start_coverage_scheduler, stop_coverage_scheduler

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_ROUTERS = (coverage.router, holidays.router, classes.router, makeups.router)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    logger.info(f"🏊 Coverage engine started (tz={settings.timezone}, env={settings.env})")

    if settings.scheduler_enabled:
        await start_coverage_scheduler()
    else:
        logger.info("In-process sweep disabled; run swimschool-coverage-worker for periodic sweeps")

    yield

    if settings.scheduler_enabled:
        await stop_coverage_scheduler()
    logger.info("Coverage engine stopped")


app = FastAPI(
    title="Swim School Coverage Engine",
    description="Enrolment coverage, entitlements and makeup capacity for swim school classes",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(health.router)
app.include_router(auth.router)
for router in API_ROUTERS:
    app.include_router(router, prefix="/api")


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(
        "swimschool.main:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", 8000)),
        reload=settings.env == "dev",
    )
