"""
Unit tests for the provisioning engine.

Tenant databases are SQLite files, so every test can check exactly which
physical databases exist after a workflow finishes.
"""
import asyncio
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import create_async_engine

from agencyhub.core.exceptions import ErrorCode, InvalidProfileError, ProvisioningStepError
from agencyhub.models.agency import Agency, ProvisioningStatus, ProvisioningStep
from agencyhub.models.assignment import AgencyModuleAssignment
from agencyhub.services.provisioning import GENERIC_FAILURE_MESSAGE, ProvisioningEngine
from agencyhub.services.tenant_registry import TenantRegistry
from agencyhub.tenant_schema import LATEST_VERSION, TenantSchemaRunner, seed_tenant
from agencyhub.tenant_schema import tables as t


async def _assignments(session_factory, agency_id) -> list[AgencyModuleAssignment]:
    async with session_factory() as session:
        result = await session.execute(
            select(AgencyModuleAssignment).where(AgencyModuleAssignment.agency_id == agency_id)
        )
        return list(result.unique().scalars().all())


async def _agency_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count(Agency.id)))


class TestProvisioningSuccess:
    """Test the happy path."""

    @pytest.mark.asyncio
    async def test_provision_creates_active_agency(
        self, provisioning_engine, session_factory, database_admin, catalog, make_agency_request, tenant_files
    ):
        result = await provisioning_engine.provision(make_agency_request("acme"), requested_by="signup")

        assert result.succeeded
        assert result.status == ProvisioningStatus.ACTIVE
        assert result.step == ProvisioningStep.ACTIVE
        assert result.domain == "acme.agencyhub.app"
        assert result.failure_reason is None

        agency = await TenantRegistry(session_factory).get_agency(result.agency_id)
        assert agency.provisioning_status == ProvisioningStatus.ACTIVE
        assert agency.is_active is True
        assert agency.database_name == result.database_name
        assert agency.owner_user_id is not None
        assert tenant_files() == [f"{result.database_name}.db"]

    @pytest.mark.asyncio
    async def test_tenant_database_is_seeded(
        self, provisioning_engine, database_admin, catalog, make_agency_request, tenant_files
    ):
        result = await provisioning_engine.provision(make_agency_request("acme"))

        engine = create_async_engine(database_admin.tenant_url(result.database_name))
        try:
            assert await TenantSchemaRunner(engine).current_version() == LATEST_VERSION
            async with engine.connect() as conn:
                emails = (await conn.execute(select(t.users.c.email))).scalars().all()
                roles = (await conn.execute(select(t.user_roles.c.role))).scalars().all()
                paths = (await conn.execute(select(t.enabled_modules.c.path))).scalars().all()
                employee = (await conn.execute(select(t.employee_details.c.employee_id))).scalar_one()
        finally:
            await engine.dispose()

        assert emails == ["owner@acme.example.com"]
        assert roles == ["super_admin"]
        assert sorted(paths) == ["/clients", "/dashboard", "/projects", "/settings"]
        assert employee == "EMP-0001"

    @pytest.mark.asyncio
    async def test_signup_cannot_set_module_prices(
        self, provisioning_engine, session_factory, catalog, make_agency_request
    ):
        request = make_agency_request(
            "acme",
            selection={
                "template": "standard",
                "cost_overrides": {str(catalog["/clients"]): "0.00"},
            },
        )

        result = await provisioning_engine.provision(request, requested_by="signup")

        assignments = {a.module_id: a for a in await _assignments(session_factory, result.agency_id)}
        assert set(assignments) == {
            catalog["/dashboard"], catalog["/settings"], catalog["/projects"], catalog["/clients"],
        }
        assert all(a.cost_override is None for a in assignments.values())
        assert assignments[catalog["/clients"]].assigned_by == "signup"

    @pytest.mark.asyncio
    async def test_domain_is_held_after_success(
        self, provisioning_engine, session_factory, catalog, make_agency_request
    ):
        await provisioning_engine.provision(make_agency_request("acme"))
        assert await TenantRegistry(session_factory).check_domain_availability("acme") is False


class TestProvisioningValidation:
    """Test rejections that happen before any side effect."""

    @pytest.mark.asyncio
    async def test_incomplete_profile_rejected(
        self, provisioning_engine, session_factory, database_admin, catalog, make_agency_request, tenant_files
    ):
        request = make_agency_request("acme", profile={"industry": "marketing"})

        with pytest.raises(InvalidProfileError):
            await provisioning_engine.provision(request)

        assert await _agency_count(session_factory) == 0
        assert await TenantRegistry(session_factory).check_domain_availability("acme") is True
        assert tenant_files() == []

    @pytest.mark.asyncio
    async def test_domain_taken(self, provisioning_engine, session_factory, catalog, make_agency_request):
        await TenantRegistry(session_factory).reserve_domain("acme")

        result = await provisioning_engine.provision(make_agency_request("acme"))

        assert result.succeeded is False
        assert result.failure_reason == ErrorCode.DOMAIN_TAKEN
        assert result.agency_id is None
        assert await _agency_count(session_factory) == 0


class TestProvisioningFailures:
    """Test that every failed step leaves no database and a free domain."""

    async def _assert_cleaned_up(self, result, session_factory, tenant_files, reason):
        assert result.succeeded is False
        assert result.failure_reason == reason
        assert result.step == ProvisioningStep.FAILED
        assert result.message == GENERIC_FAILURE_MESSAGE

        agency = await TenantRegistry(session_factory).get_agency(result.agency_id)
        assert agency.provisioning_status == ProvisioningStatus.FAILED
        assert agency.failure_reason == reason.value
        assert agency.is_active is False
        assert agency.cleanup_pending is False

        assert tenant_files() == []
        assert await _assignments(session_factory, result.agency_id) == []
        assert await TenantRegistry(session_factory).check_domain_availability("acme") is True

    @pytest.mark.asyncio
    async def test_database_create_failure(
        self, session_factory, failing_database_admin, database_admin, catalog, make_agency_request, tenant_files
    ):
        failing_database_admin.create_database.side_effect = OSError("disk full")
        engine = ProvisioningEngine(session_factory, database_admin=failing_database_admin)

        result = await engine.provision(make_agency_request("acme"))

        await self._assert_cleaned_up(result, session_factory, tenant_files, ErrorCode.DATABASE_CREATE_FAILED)
        failing_database_admin.drop_database.assert_not_called()

    @pytest.mark.asyncio
    async def test_schema_failure(
        self, provisioning_engine, session_factory, database_admin, catalog, make_agency_request, monkeypatch, tenant_files
    ):
        async def broken_apply(self):
            raise ProvisioningStepError(ErrorCode.SCHEMA_MIGRATION_FAILED, "syntax error")

        monkeypatch.setattr(TenantSchemaRunner, "apply", broken_apply)

        result = await provisioning_engine.provision(make_agency_request("acme"))

        await self._assert_cleaned_up(result, session_factory, tenant_files, ErrorCode.SCHEMA_MIGRATION_FAILED)

    @pytest.mark.asyncio
    async def test_seed_failure(self, session_factory, database_admin, catalog, make_agency_request, tenant_files):
        engine = ProvisioningEngine(
            session_factory,
            database_admin=database_admin,
            seeder=AsyncMock(side_effect=RuntimeError("duplicate key")),
        )

        result = await engine.provision(make_agency_request("acme"))

        await self._assert_cleaned_up(result, session_factory, tenant_files, ErrorCode.SEED_FAILED)
        agency = await TenantRegistry(session_factory).get_agency(result.agency_id)
        assert "duplicate key" in agency.failure_detail

    @pytest.mark.asyncio
    async def test_failed_drop_leaves_cleanup_pending(
        self, session_factory, failing_database_admin, database_admin, catalog, make_agency_request, tenant_files
    ):
        failing_database_admin.drop_database.side_effect = OSError("database is being accessed")
        engine = ProvisioningEngine(
            session_factory,
            database_admin=failing_database_admin,
            seeder=AsyncMock(side_effect=RuntimeError("boom")),
        )

        result = await engine.provision(make_agency_request("acme"))

        agency = await TenantRegistry(session_factory).get_agency(result.agency_id)
        assert agency.provisioning_status == ProvisioningStatus.FAILED
        assert agency.cleanup_pending is True
        assert tenant_files() == [f"{result.database_name}.db"]

    @pytest.mark.asyncio
    async def test_retry_uses_a_new_database(
        self, session_factory, database_admin, catalog, make_agency_request, tenant_files
    ):
        calls = {"n": 0}

        async def flaky_seeder(engine, seed):
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("transient")
            return await seed_tenant(engine, seed)

        engine = ProvisioningEngine(session_factory, database_admin=database_admin, seeder=flaky_seeder)

        first = await engine.provision(make_agency_request("acme"))
        second = await engine.provision(make_agency_request("acme"))

        assert first.succeeded is False
        assert second.succeeded is True
        assert first.database_name != second.database_name
        assert first.agency_id != second.agency_id
        assert tenant_files() == [f"{second.database_name}.db"]


class TestProvisioningConcurrency:
    """Test concurrent and abandoned requests."""

    @pytest.mark.asyncio
    async def test_same_domain_has_exactly_one_winner(
        self, provisioning_engine, database_admin, catalog, make_agency_request, tenant_files
    ):
        results = await asyncio.gather(
            *(provisioning_engine.provision(make_agency_request("acme")) for _ in range(3))
        )

        succeeded = [r for r in results if r.succeeded]
        taken = [r for r in results if r.failure_reason == ErrorCode.DOMAIN_TAKEN]
        assert len(succeeded) == 1
        assert len(taken) == 2
        assert tenant_files() == [f"{succeeded[0].database_name}.db"]

    @pytest.mark.asyncio
    async def test_different_domains_provision_in_parallel(
        self, provisioning_engine, database_admin, catalog, make_agency_request, tenant_files
    ):
        results = await asyncio.gather(
            provisioning_engine.provision(make_agency_request("acme")),
            provisioning_engine.provision(make_agency_request("globex")),
        )

        assert all(r.succeeded for r in results)
        assert len(tenant_files()) == 2

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_workflow(
        self, provisioning_engine, session_factory, catalog, make_agency_request
    ):
        caller = asyncio.create_task(provisioning_engine.provision(make_agency_request("acme")))
        await asyncio.sleep(0)
        caller.cancel()

        with pytest.raises(asyncio.CancelledError):
            await caller

        await provisioning_engine.wait_inflight()
        agencies, total = await TenantRegistry(session_factory).list_agencies()
        assert total == 1
        assert agencies[0].provisioning_status == ProvisioningStatus.ACTIVE


class TestDecommission:
    """Test deleting an agency and its database."""

    @pytest.mark.asyncio
    async def test_active_agency(
        self, provisioning_engine, session_factory, catalog, make_agency_request, tenant_files
    ):
        result = await provisioning_engine.provision(make_agency_request("acme"))
        agency = await TenantRegistry(session_factory).get_agency(result.agency_id)

        assert await provisioning_engine.decommission(agency) is True

        assert tenant_files() == []
        assert await _agency_count(session_factory) == 0
        assert await _assignments(session_factory, result.agency_id) == []
        assert await TenantRegistry(session_factory).check_domain_availability("acme") is True

    @pytest.mark.asyncio
    async def test_failed_agency_skips_missing_database(
        self, session_factory, failing_database_admin, catalog, make_agency_request
    ):
        failing_database_admin.create_database.side_effect = OSError("disk full")
        engine = ProvisioningEngine(session_factory, database_admin=failing_database_admin)
        result = await engine.provision(make_agency_request("acme"))
        agency = await TenantRegistry(session_factory).get_agency(result.agency_id)

        assert await engine.decommission(agency) is True

        failing_database_admin.database_exists.assert_awaited_once_with(agency.database_name)
        failing_database_admin.drop_database.assert_not_awaited()
        assert await _agency_count(session_factory) == 0
