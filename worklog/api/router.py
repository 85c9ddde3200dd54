"""Top-level API router."""

from fastapi import APIRouter

from worklog.api.routes.exports import router as exports_router
from worklog.api.routes.health import router as health_router
from worklog.api.routes.reference import routers as reference_routers
from worklog.api.routes.rollups import router as rollups_router
from worklog.api.routes.time_entries import router as time_entries_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(rollups_router)
api_router.include_router(time_entries_router)
for reference_router in reference_routers:
    api_router.include_router(reference_router)
api_router.include_router(exports_router)
