"""
Unit tests for the tenant schema runner and seed.
"""
import uuid

import pytest
import pytest_asyncio
from sqlalchemy import inspect, select
from sqlalchemy.ext.asyncio import create_async_engine

from agencyhub.core.exceptions import ErrorCode, ProvisioningStepError
from agencyhub.core.security import verify_password
from agencyhub.tenant_schema import (
    LATEST_VERSION,
    TENANT_MIGRATIONS,
    TenantMigration,
    TenantSchemaRunner,
    TenantSeed,
    seed_tenant,
)
from agencyhub.tenant_schema import tables as t
from agencyhub.tenant_schema.seed import DEFAULT_PERMISSIONS


@pytest_asyncio.fixture
async def tenant_engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'tenant.db'}")
    yield engine
    await engine.dispose()


async def _table_names(engine) -> set[str]:
    async with engine.connect() as conn:
        return set(await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names()))


class TestTenantSchemaRunner:
    """Test versioned schema application."""

    @pytest.mark.asyncio
    async def test_apply_all_migrations(self, tenant_engine):
        runner = TenantSchemaRunner(tenant_engine)

        applied = await runner.apply()

        assert applied == [m.version for m in TENANT_MIGRATIONS]
        assert await runner.current_version() == LATEST_VERSION
        names = await _table_names(tenant_engine)
        assert {"users", "enabled_modules", "invoices", "schema_migrations", "schema_info"} <= names

    @pytest.mark.asyncio
    async def test_apply_is_idempotent(self, tenant_engine):
        runner = TenantSchemaRunner(tenant_engine)
        await runner.apply()

        assert await runner.apply() == []
        assert len(await runner.applied_versions()) == len(TENANT_MIGRATIONS)

    @pytest.mark.asyncio
    async def test_partial_then_rest(self, tenant_engine):
        await TenantSchemaRunner(tenant_engine, TENANT_MIGRATIONS[:2]).apply()
        assert await TenantSchemaRunner(tenant_engine).current_version() == 2

        applied = await TenantSchemaRunner(tenant_engine).apply()

        assert applied == [3, 4, 5]

    @pytest.mark.asyncio
    async def test_checksum_mismatch_rejected(self, tenant_engine):
        await TenantSchemaRunner(tenant_engine, TENANT_MIGRATIONS[:1]).apply()
        edited = TenantMigration(
            version=1,
            description="Users (edited after release)",
            tables=TENANT_MIGRATIONS[0].tables,
        )

        with pytest.raises(ProvisioningStepError) as exc:
            await TenantSchemaRunner(tenant_engine, [edited]).apply()

        assert exc.value.code == ErrorCode.SCHEMA_MIGRATION_FAILED

    @pytest.mark.asyncio
    async def test_unreachable_database(self, tmp_path):
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'tenant.db'}")
        try:
            with pytest.raises(ProvisioningStepError) as exc:
                await TenantSchemaRunner(engine).apply()
        finally:
            await engine.dispose()

        assert exc.value.code == ErrorCode.SCHEMA_MIGRATION_FAILED

    def test_checksum_is_stable(self):
        assert TENANT_MIGRATIONS[0].checksum == TENANT_MIGRATIONS[0].checksum
        assert len({m.checksum for m in TENANT_MIGRATIONS}) == len(TENANT_MIGRATIONS)


class TestSeedTenant:
    """Test initial tenant data."""

    @pytest.mark.asyncio
    async def test_seed_inserts_admin_and_modules(self, tenant_engine):
        await TenantSchemaRunner(tenant_engine).apply()
        module_id = uuid.uuid4()
        seed = TenantSeed(
            agency_id=uuid.uuid4(),
            agency_name="Acme",
            domain="acme.agencyhub.app",
            subscription_plan="starter",
            max_users=5,
            admin_email="Owner@Acme.com",
            admin_full_name="Olivia Quinn Owner",
            admin_password="correct-horse-battery",
            modules=((module_id, "/dashboard", "Dashboard", "dashboard"),),
        )

        admin_id = await seed_tenant(tenant_engine, seed)

        async with tenant_engine.connect() as conn:
            user = (await conn.execute(select(t.users))).one()
            employee = (await conn.execute(select(t.employee_details))).one()
            permissions = (await conn.execute(select(t.permissions.c.name))).scalars().all()
            modules = (await conn.execute(select(t.enabled_modules.c.module_id))).scalars().all()
            settings_row = (await conn.execute(select(t.agency_settings))).one()

        assert user.id == admin_id
        assert user.email == "owner@acme.com"
        assert verify_password("correct-horse-battery", user.password_hash)
        assert employee.first_name == "Olivia"
        assert employee.last_name == "Quinn Owner"
        assert set(permissions) == set(DEFAULT_PERMISSIONS)
        assert modules == [module_id]
        assert settings_row.max_users == 5

    @pytest.mark.asyncio
    async def test_seed_is_atomic(self, tenant_engine):
        await TenantSchemaRunner(tenant_engine).apply()
        seed = TenantSeed(
            agency_id=uuid.uuid4(),
            agency_name="Acme",
            domain="acme.agencyhub.app",
            subscription_plan="starter",
            max_users=5,
            admin_email="owner@acme.com",
            admin_full_name="Olivia Owner",
            admin_password="correct-horse-battery",
            # duplicate primary key fails the last insert
            modules=(
                (uuid.UUID(int=1), "/dashboard", "Dashboard", "dashboard"),
                (uuid.UUID(int=1), "/dashboard", "Dashboard", "dashboard"),
            ),
        )

        with pytest.raises(Exception):
            await seed_tenant(tenant_engine, seed)

        async with tenant_engine.connect() as conn:
            assert (await conn.execute(select(t.users))).all() == []
