"""
Integration tests for module request review and system endpoints.
"""
import uuid

import pytest
from fastapi import status

from agencyhub.services.module_request_service import ModuleRequestService
from agencyhub.services.tenant_registry import TenantRegistry


async def _pending_request(session_factory, catalog, make_agency_request, path="/inventory"):
    registry = TenantRegistry(session_factory)
    agency = await registry.create_agency_record(
        make_agency_request("acme"), await registry.reserve_domain("acme")
    )
    await registry.finalize_agency(agency.id)
    async with session_factory() as session:
        request = await ModuleRequestService(session).submit(agency.id, catalog[path])
        await session.commit()
    return agency.id, request.id


class TestModuleRequestsAPI:
    """Test reviewing module requests."""

    @pytest.mark.asyncio
    async def test_requires_super_admin(self, async_client, agency_headers):
        response = await async_client.get("/api/v1/module-requests", headers=agency_headers(uuid.uuid4()))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.asyncio
    async def test_list_pending(
        self, async_client, session_factory, catalog, make_agency_request, super_admin_headers
    ):
        _, request_id = await _pending_request(session_factory, catalog, make_agency_request)

        response = await async_client.get(
            "/api/v1/module-requests", params={"status": "pending"}, headers=super_admin_headers
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["total"] == 1
        assert response.json()["items"][0]["id"] == str(request_id)

    @pytest.mark.asyncio
    async def test_approve_once(
        self, async_client, session_factory, catalog, make_agency_request, super_admin_headers
    ):
        agency_id, request_id = await _pending_request(session_factory, catalog, make_agency_request)

        approved = await async_client.post(
            f"/api/v1/module-requests/{request_id}/approve",
            json={"cost_override": "18.00"},
            headers=super_admin_headers,
        )
        again = await async_client.post(
            f"/api/v1/module-requests/{request_id}/approve", headers=super_admin_headers
        )
        modules = await async_client.get(
            f"/api/v1/agencies/{agency_id}/modules", headers=super_admin_headers
        )

        assert approved.status_code == status.HTTP_200_OK
        assert approved.json()["status"] == "approved"
        assert approved.json()["reviewed_by"] == "ops@agencyhub.app"
        assert again.status_code == status.HTTP_409_CONFLICT
        assert again.json()["detail"]["code"] == "MODULE_REQUEST_CONFLICT"
        inventory = next(m for m in modules.json()["modules"] if m["path"] == "/inventory")
        assert inventory["effective_cost"] == "18.00"
        assert modules.json()["total_cost"] == "18.00"

    @pytest.mark.asyncio
    async def test_reject(
        self, async_client, session_factory, catalog, make_agency_request, super_admin_headers
    ):
        _, request_id = await _pending_request(session_factory, catalog, make_agency_request)

        response = await async_client.post(
            f"/api/v1/module-requests/{request_id}/reject",
            json={"reason": "Not on this plan"},
            headers=super_admin_headers,
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "rejected"
        assert response.json()["review_note"] == "Not on this plan"

    @pytest.mark.asyncio
    async def test_review_missing_request(self, async_client, super_admin_headers):
        response = await async_client.post(
            f"/api/v1/module-requests/{uuid.uuid4()}/approve", headers=super_admin_headers
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json()["detail"]["code"] == "MODULE_REQUEST_NOT_FOUND"


class TestSystemAPI:
    """Test operational endpoints."""

    @pytest.mark.asyncio
    async def test_pool_stats(self, async_client, super_admin_headers):
        response = await async_client.get("/api/v1/system/tenant-pools", headers=super_admin_headers)

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["pools"] == 0
        assert response.json()["max_pools"] == 3

    @pytest.mark.asyncio
    async def test_evict_idle(self, async_client, super_admin_headers):
        response = await async_client.post(
            "/api/v1/system/tenant-pools/evict-idle", headers=super_admin_headers
        )

        assert response.json() == {"evicted": []}

    @pytest.mark.asyncio
    async def test_health(self, async_client):
        response = await async_client.get("/health")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == "healthy"
