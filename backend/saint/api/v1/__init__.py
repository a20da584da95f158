"""API v1 module."""

from fastapi import APIRouter

from saint.api.v1.analytics import router as analytics_router
from saint.api.v1.execution import router as execution_router
from saint.api.v1.health import router as health_router
from saint.api.v1.results import router as results_router
from saint.api.v1.tests import router as tests_router

router = APIRouter()

router.include_router(health_router, tags=["Health"])
router.include_router(execution_router, prefix="/execute", tags=["Execution"])
router.include_router(tests_router, prefix="/tests", tags=["Tests"])
router.include_router(results_router, prefix="/results", tags=["Results"])
router.include_router(analytics_router, prefix="/analytics", tags=["Analytics"])
