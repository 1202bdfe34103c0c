"""
Unit tests for the tenant registry.
"""
import asyncio
import uuid
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from agencyhub.core.exceptions import DomainTakenError, ErrorCode, InvalidDomainError
from agencyhub.models.agency import ProvisioningStatus, ProvisioningStep
from agencyhub.models.assignment import AgencyModuleAssignment, AgencyModuleRequest
from agencyhub.models.base import utcnow
from agencyhub.services.tenant_registry import TenantRegistry


@pytest.fixture
def registry(session_factory) -> TenantRegistry:
    return TenantRegistry(session_factory)


class TestDomainReservation:
    """Test domain availability and reservation."""

    @pytest.mark.asyncio
    async def test_free_domain_is_available(self, registry):
        assert await registry.check_domain_availability("acme") is True

    @pytest.mark.asyncio
    async def test_reserved_domain_is_unavailable(self, registry):
        await registry.reserve_domain("acme")

        assert await registry.check_domain_availability("acme") is False
        assert await registry.check_domain_availability("ACME.agencyhub.app") is False

    @pytest.mark.asyncio
    async def test_second_reservation_fails(self, registry):
        await registry.reserve_domain("acme")

        with pytest.raises(DomainTakenError) as exc:
            await registry.reserve_domain("Acme")
        assert exc.value.code == ErrorCode.DOMAIN_TAKEN

    @pytest.mark.asyncio
    async def test_concurrent_reservations_have_one_winner(self, registry):
        results = await asyncio.gather(
            *(registry.reserve_domain("acme") for _ in range(5)),
            return_exceptions=True,
        )

        winners = [r for r in results if not isinstance(r, Exception)]
        losers = [r for r in results if isinstance(r, DomainTakenError)]
        assert len(winners) == 1
        assert len(losers) == 4

    @pytest.mark.asyncio
    async def test_release_frees_domain(self, registry):
        reservation = await registry.reserve_domain("acme")

        released = await registry.release_reservation(reservation.agency_id)

        assert released == 1
        assert await registry.check_domain_availability("acme") is True

    @pytest.mark.asyncio
    async def test_invalid_domain_rejected(self, registry):
        with pytest.raises(InvalidDomainError):
            await registry.check_domain_availability("x")


class TestAgencyLifecycle:
    """Test agency record transitions."""

    @pytest.mark.asyncio
    async def test_create_record_is_pending(self, registry, make_agency_request):
        request = make_agency_request("acme")
        reservation = await registry.reserve_domain(request.domain)

        agency = await registry.create_agency_record(request, reservation)

        assert agency.id == reservation.agency_id
        assert agency.domain == "acme.agencyhub.app"
        assert agency.provisioning_status == ProvisioningStatus.PENDING
        assert agency.provisioning_step == ProvisioningStep.DOMAIN_RESERVED
        assert agency.is_active is False
        assert agency.max_users == 25

    @pytest.mark.asyncio
    async def test_record_step_and_finalize(self, registry, make_agency_request):
        request = make_agency_request("acme")
        agency = await registry.create_agency_record(request, await registry.reserve_domain("acme"))

        await registry.record_step(agency.id, ProvisioningStep.DATABASE_CREATED, database_name="agency_acme_1")
        stored = await registry.get_agency(agency.id)
        assert stored.provisioning_status == ProvisioningStatus.PROVISIONING
        assert stored.database_name == "agency_acme_1"

        owner = uuid.uuid4()
        active = await registry.finalize_agency(agency.id, owner_user_id=owner)
        assert active.provisioning_status == ProvisioningStatus.ACTIVE
        assert active.is_active is True
        assert active.owner_user_id == owner
        assert active.activated_at is not None

    @pytest.mark.asyncio
    async def test_mark_failed(self, registry, make_agency_request):
        agency = await registry.create_agency_record(
            make_agency_request("acme"), await registry.reserve_domain("acme")
        )

        failed = await registry.mark_failed(
            agency.id, ErrorCode.SEED_FAILED, detail="boom", cleanup_pending=True
        )

        assert failed.provisioning_status == ProvisioningStatus.FAILED
        assert failed.failure_reason == "SEED_FAILED"
        assert failed.cleanup_pending is True
        assert [a.id for a in await registry.find_pending_cleanup()] == [agency.id]

    @pytest.mark.asyncio
    async def test_find_stale_provisioning(self, registry, make_agency_request):
        agency = await registry.create_agency_record(
            make_agency_request("acme"), await registry.reserve_domain("acme")
        )

        assert await registry.find_stale_provisioning(utcnow() - timedelta(minutes=5)) == []
        stale = await registry.find_stale_provisioning(utcnow() + timedelta(minutes=5))
        assert [a.id for a in stale] == [agency.id]

    @pytest.mark.asyncio
    async def test_list_agencies_filters_by_status(self, registry, make_agency_request):
        first = await registry.create_agency_record(
            make_agency_request("acme"), await registry.reserve_domain("acme")
        )
        await registry.create_agency_record(
            make_agency_request("globex"), await registry.reserve_domain("globex")
        )
        await registry.finalize_agency(first.id)

        agencies, total = await registry.list_agencies(status=ProvisioningStatus.ACTIVE)

        assert total == 1
        assert agencies[0].id == first.id

    @pytest.mark.asyncio
    async def test_assign_and_remove_modules(self, registry, make_agency_request, catalog):
        agency = await registry.create_agency_record(
            make_agency_request("acme"), await registry.reserve_domain("acme")
        )

        count = await registry.assign_modules(agency.id, [catalog["/dashboard"], catalog["/projects"]])
        assert count == 2
        assert await registry.remove_assignments(agency.id) == 2

    @pytest.mark.asyncio
    async def test_reassign_replaces_cost_override(self, registry, session_factory, make_agency_request, catalog):
        agency = await registry.create_agency_record(
            make_agency_request("acme"), await registry.reserve_domain("acme")
        )
        await registry.assign_modules(agency.id, [catalog["/projects"]], assigned_by="signup")

        await registry.assign_modules(
            agency.id,
            [catalog["/projects"], catalog["/projects"], catalog["/inventory"]],
            assigned_by="ops",
            cost_overrides={catalog["/projects"]: Decimal("4.50")},
        )

        async with session_factory() as session:
            result = await session.execute(
                select(AgencyModuleAssignment).where(AgencyModuleAssignment.agency_id == agency.id)
            )
            assignments = {a.module_id: a for a in result.unique().scalars().all()}
        assert set(assignments) == {catalog["/projects"], catalog["/inventory"]}
        assert assignments[catalog["/projects"]].cost_override == Decimal("4.50")
        assert assignments[catalog["/projects"]].assigned_by == "ops"
        assert assignments[catalog["/inventory"]].cost_override is None


class TestDeleteAgency:
    """Test removing an agency's central records."""

    @pytest.mark.asyncio
    async def test_delete_releases_domain(self, registry, session_factory, make_agency_request, catalog):
        agency = await registry.create_agency_record(
            make_agency_request("acme"), await registry.reserve_domain("acme")
        )
        await registry.assign_modules(agency.id, [catalog["/dashboard"]])
        async with session_factory() as session:
            session.add(AgencyModuleRequest(agency_id=agency.id, module_id=catalog["/inventory"]))
            await session.commit()

        assert await registry.delete_agency(agency.id) is True

        assert await registry.get_agency(agency.id) is None
        assert await registry.check_domain_availability("acme") is True
        assert await registry.remove_assignments(agency.id) == 0
        async with session_factory() as session:
            remaining = await session.scalar(
                select(func.count(AgencyModuleRequest.id)).where(AgencyModuleRequest.agency_id == agency.id)
            )
        assert remaining == 0

    @pytest.mark.asyncio
    async def test_delete_missing_agency(self, registry):
        assert await registry.delete_agency(uuid.uuid4()) is False
