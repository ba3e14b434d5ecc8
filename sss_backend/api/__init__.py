"""
API package for the SSS backend.

This package aggregates all API routers to be included in the FastAPI
application. The API is versioned under ``/api/v1``.
"""

from fastapi import APIRouter
from .v1.auth import router as auth_router
from .v1.health import router as health_router
from .v1.policies import router as policies_router
from .v1.blocklist import router as blocklist_router
from .v1.activity import (
    router as activity_router,
    categories_router as activity_categories_router,
    category_rules_router as activity_category_rules_router,
)
from .v1.commands import router as commands_router
from .v1.extension import router as extension_router
from .v1.live import router as live_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(health_router)
api_router.include_router(policies_router)
api_router.include_router(blocklist_router)
api_router.include_router(activity_router)
api_router.include_router(activity_categories_router)
api_router.include_router(activity_category_rules_router)
api_router.include_router(commands_router)
api_router.include_router(extension_router)
api_router.include_router(live_router)
