"""
API v1 router aggregating all endpoints.
"""
from fastapi import APIRouter

from agencyhub.api.v1.agencies import router as agencies_router
from agencyhub.api.v1.recommendations import router as recommendations_router
from agencyhub.api.v1.catalog import router as catalog_router
from agencyhub.api.v1.module_requests import router as module_requests_router
from agencyhub.api.v1.system import router as system_router

api_router = APIRouter()

api_router.include_router(agencies_router)
api_router.include_router(recommendations_router)
api_router.include_router(catalog_router)
api_router.include_router(module_requests_router)
api_router.include_router(system_router)
