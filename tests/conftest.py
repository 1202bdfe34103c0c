"""
Pytest configuration and fixtures for AgencyHub tests.
"""
import os
import tempfile
import uuid
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Settings are read at import time; configure them before importing the app
_TEST_DIR = tempfile.mkdtemp(prefix="agencyhub-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/central.db")
os.environ.setdefault("JWT_SECRET", "test-secret-key")
os.environ.setdefault("TENANT_SQLITE_DIRECTORY", f"{_TEST_DIR}/tenants")
os.environ.setdefault("PROVISIONING_LOCK_ENABLED", "false")

from agencyhub.core.deps import get_session_factory
from agencyhub.core.security import ROLE_AGENCY_ADMIN, ROLE_SUPER_ADMIN, create_access_token
from agencyhub.database import create_session_factory, get_db
from agencyhub.models.base import Base
from agencyhub.models.catalog import ModuleCatalogEntry, ModuleCategory, RecommendationRule, RuleWeight
from agencyhub.schemas.agency import AgencyCreate
from agencyhub.services.database_admin import SQLiteDatabaseAdmin
from agencyhub.services.provisioning import ProvisioningEngine, get_provisioning_engine
from agencyhub.services.recommendation_engine import CatalogModule, CatalogSnapshot, Rule
from agencyhub.services.tenant_connections import TenantConnectionManager, get_connection_manager


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a file-backed central registry database.

    A file (rather than :memory:) lets concurrent sessions see each
    other's commits, which the reservation tests depend on.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'central.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def database_admin(tmp_path) -> SQLiteDatabaseAdmin:
    """Tenant databases as SQLite files under the test's tmp dir."""
    return SQLiteDatabaseAdmin(tmp_path / "tenants")


@pytest.fixture
def tenant_files(database_admin):
    """Names of the tenant database files that currently exist."""

    def _files() -> list[str]:
        if not database_admin.directory.exists():
            return []
        return sorted(p.name for p in database_admin.directory.glob("*.db"))

    return _files


# ============================================================================
# Catalog Fixtures
# ============================================================================

CATALOG = [
    # path, title, category, base_cost, rules
    ("/dashboard", "Dashboard", ModuleCategory.DASHBOARD, "0.00", [
        {"weight": RuleWeight.REQUIRED, "priority": 10, "justification": "Core navigation"},
    ]),
    ("/settings", "Settings", ModuleCategory.SETTINGS, "0.00", [
        {"weight": RuleWeight.REQUIRED, "priority": 10},
    ]),
    ("/projects", "Projects", ModuleCategory.PROJECTS, "10.00", [
        {"weight": RuleWeight.RECOMMENDED, "industry": ["marketing"], "priority": 8,
         "business_goals": ["grow_clients"]},
    ]),
    ("/clients", "Clients", ModuleCategory.PROJECTS, "15.00", [
        {"weight": RuleWeight.RECOMMENDED, "primary_focus": ["client_services"], "priority": 6},
    ]),
    ("/invoices", "Invoices", ModuleCategory.FINANCE, "20.00", [
        {"weight": RuleWeight.RECOMMENDED, "industry": ["accounting"]},
    ]),
    ("/inventory", "Inventory", ModuleCategory.INVENTORY, "25.00", []),
]


@pytest_asyncio.fixture(scope="function")
async def catalog(session_factory) -> dict[str, uuid.UUID]:
    """Seed the module catalog. Returns path -> module id."""
    ids = {}
    async with session_factory() as session:
        for order, (path, title, category, cost, rules) in enumerate(CATALOG, start=1):
            module = ModuleCatalogEntry(
                id=uuid.uuid4(),
                path=path,
                title=title,
                category=category,
                base_cost=Decimal(cost),
                sort_order=order,
            )
            session.add(module)
            for rule in rules:
                session.add(RecommendationRule(
                    module_id=module.id,
                    industry=rule.get("industry", []),
                    company_size=rule.get("company_size", []),
                    primary_focus=rule.get("primary_focus", []),
                    business_goals=rule.get("business_goals", []),
                    weight=rule["weight"],
                    priority=rule.get("priority", 5),
                    justification=rule.get("justification"),
                ))
            ids[path] = module.id
        await session.commit()
    return ids


@pytest.fixture
def sample_snapshot() -> CatalogSnapshot:
    """In-memory catalog snapshot equivalent to CATALOG."""
    modules = []
    rules = []
    for order, (path, title, category, cost, module_rules) in enumerate(CATALOG, start=1):
        module = CatalogModule(
            id=uuid.uuid5(uuid.NAMESPACE_URL, path),
            path=path,
            title=title,
            category=category.value,
            base_cost=Decimal(cost),
            sort_order=order,
        )
        modules.append(module)
        for rule in module_rules:
            attrs = {k: v for k, v in rule.items() if k != "weight"}
            rules.append(Rule.build(module.id, rule["weight"], **attrs))
    return CatalogSnapshot(modules=tuple(modules), rules=tuple(rules))


@pytest.fixture
def marketing_profile() -> dict:
    return {
        "industry": "Marketing",
        "company_size": "small",
        "primary_focus": "client_services",
        "business_goals": ["grow_clients"],
    }


@pytest.fixture
def make_agency_request(marketing_profile):
    """Factory for provisioning requests."""

    def _make(domain: str = "acme", **overrides) -> AgencyCreate:
        data = {
            "name": f"{domain.title()} Agency",
            "domain": domain,
            "subscription_plan": "professional",
            "profile": marketing_profile,
            "selection": {"template": "standard"},
            "admin": {
                "email": f"owner@{domain}.example.com",
                "full_name": "Olivia Owner",
                "password": "correct-horse-battery",
            },
        }
        data.update(overrides)
        return AgencyCreate.model_validate(data)

    return _make


# ============================================================================
# Service Fixtures
# ============================================================================

@pytest_asyncio.fixture(scope="function")
async def provisioning_engine(session_factory, database_admin) -> AsyncGenerator[ProvisioningEngine, None]:
    engine = ProvisioningEngine(session_factory, database_admin=database_admin, max_concurrency=4)
    yield engine
    await engine.wait_inflight()


@pytest_asyncio.fixture(scope="function")
async def connection_manager(session_factory, database_admin) -> AsyncGenerator[TenantConnectionManager, None]:
    manager = TenantConnectionManager(
        session_factory,
        database_admin=database_admin,
        max_pools=3,
        max_connections_per_tenant=2,
        global_max_connections=10,
        idle_timeout_seconds=60,
        acquire_timeout_seconds=0.2,
    )
    yield manager
    await manager.stop()


# ============================================================================
# FastAPI App Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def app(session_factory, provisioning_engine, connection_manager) -> FastAPI:
    """Create test FastAPI application."""
    from agencyhub.main import app as main_app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_session_factory] = lambda: session_factory
    main_app.dependency_overrides[get_provisioning_engine] = lambda: provisioning_engine
    main_app.dependency_overrides[get_connection_manager] = lambda: connection_manager

    yield main_app

    main_app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ============================================================================
# Authentication Fixtures
# ============================================================================

@pytest.fixture
def super_admin_headers() -> dict:
    """Create authentication headers for a platform super admin."""
    token = create_access_token("ops@agencyhub.app", ROLE_SUPER_ADMIN)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def agency_headers():
    """Factory for headers of a user belonging to one agency."""

    def _headers(agency_id, role: str = ROLE_AGENCY_ADMIN) -> dict:
        token = create_access_token(f"admin-{agency_id}", role, agency_id=agency_id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ============================================================================
# Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_redis():
    """Mock Redis client for the provisioning lock."""
    mock = AsyncMock()
    mock.set = AsyncMock(return_value=True)
    mock.eval = AsyncMock(return_value=1)
    mock.close = AsyncMock()
    return mock


@pytest.fixture
def failing_database_admin(database_admin):
    """SQLite admin whose operations can be made to fail per test."""
    admin = MagicMock(wraps=database_admin)
    admin.directory = database_admin.directory
    admin.tenant_url = database_admin.tenant_url
    admin.path_for = database_admin.path_for
    admin.create_database = AsyncMock(side_effect=database_admin.create_database)
    admin.drop_database = AsyncMock(side_effect=database_admin.drop_database)
    admin.database_exists = AsyncMock(side_effect=database_admin.database_exists)
    return admin
