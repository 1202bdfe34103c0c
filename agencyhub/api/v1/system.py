"""
Operational endpoints for super admins.
"""
from fastapi import APIRouter

from agencyhub.core.deps import ConnectionManager, SuperAdmin

router = APIRouter(prefix="/system", tags=["System"])


@router.get("/tenant-pools")
async def tenant_pool_stats(
    _: SuperAdmin,
    connections: ConnectionManager,
):
    """Current tenant connection pool usage."""
    return connections.stats()


@router.post("/tenant-pools/evict-idle")
async def evict_idle_pools(
    _: SuperAdmin,
    connections: ConnectionManager,
):
    """Close tenant pools that have been idle past the timeout."""
    evicted = await connections.evict_idle()
    return {"evicted": [str(agency_id) for agency_id in evicted]}
