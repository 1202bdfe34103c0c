"""
FastAPI application entry point for AgencyHub.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware

from agencyhub.api.v1.router import api_router
from agencyhub.config import settings
from agencyhub.core.deps import ConnectionManager
from agencyhub.core.exceptions import AgencyHubError, to_http_exception
from agencyhub.database import init_db
from agencyhub.services.database_admin import close_database_admin
from agencyhub.services.provisioning import close_provisioning_engine
from agencyhub.services.tenant_connections import (
    close_connection_manager,
    get_connection_manager,
)
from agencyhub.worker import celery_app

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    get_connection_manager().start()
    logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} started ({settings.ENVIRONMENT})")
    yield
    # In-flight provisioning finishes before tenant pools and admin connections close
    await close_provisioning_engine()
    await close_connection_manager()
    await close_database_admin()
    celery_app.close()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    docs_url=f"{settings.API_V1_STR}/docs",
    redoc_url=f"{settings.API_V1_STR}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.exception_handler(AgencyHubError)
async def agencyhub_error_handler(request: Request, exc: AgencyHubError):
    """Domain errors that escape an endpoint get the same mapping as handled ones."""
    return await http_exception_handler(request, to_http_exception(exc))


async def health_check(connections: ConnectionManager):
    return {
        "status": "healthy",
        "version": settings.VERSION,
        "tenant_pools": connections.stats()["pools"],
    }


app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
app.add_api_route(f"{settings.API_V1_STR}/health", health_check, methods=["GET"], tags=["Health"])
