# backend/lessonbook/main.py
"""
FastAPI application for lessonbook.

Routers live under /api/v1; health and metrics stay at the root for probes.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from . import __version__
from .core.config import is_running_tests, settings
from .errors import register_error_handlers
from .routes.v1 import (
    admin_background_jobs as admin_background_jobs_v1,
    availability as availability_v1,
    available_slots as available_slots_v1,
    health as health_v1,
    invoices as invoices_v1,
    lessons as lessons_v1,
    prometheus as prometheus_v1,
    recurring_slots as recurring_slots_v1,
)

logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

API_TITLE = "lessonbook API"
API_DESCRIPTION = "Lesson booking, conflict detection and invoicing for music teachers"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info("lessonbook API starting up...")
    logger.info(f"Environment: {settings.environment}, default timezone: {settings.default_timezone}")
    if is_running_tests():
        logger.info("Running under pytest (test mode active)")
    yield
    logger.info("lessonbook API shutting down...")


app = FastAPI(
    title=API_TITLE,
    description=API_DESCRIPTION,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
)
register_error_handlers(app)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(lessons_v1.router, prefix="/lessons")
api_v1.include_router(availability_v1.router, prefix="/teachers/me")
api_v1.include_router(available_slots_v1.router, prefix="/teachers")
api_v1.include_router(invoices_v1.router, prefix="/invoices")
api_v1.include_router(recurring_slots_v1.router, prefix="/recurring-slots")
api_v1.include_router(admin_background_jobs_v1.router, prefix="/admin/background-jobs")

app.include_router(api_v1)
app.include_router(health_v1.router)
app.include_router(prometheus_v1.router)
