"""
Tenant Connection Manager

Keeps one small SQLAlchemy engine (connection pool) per active agency,
created on first use. Bounds:
- at most TENANT_POOL_MAX_POOLS pools; the least recently used idle pool
  is evicted to make room
- at most TENANT_POOL_MAX_CONNECTIONS_PER_TENANT connections per agency
- at most TENANT_POOL_GLOBAL_MAX_CONNECTIONS connections overall
Pools idle longer than TENANT_POOL_IDLE_TIMEOUT_SECONDS are disposed by a
periodic eviction task.
"""
import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from agencyhub.config import settings
from agencyhub.core.exceptions import PoolExhaustedError, TenantNotReadyError
from agencyhub.models.agency import ProvisioningStatus
from agencyhub.services.database_admin import DatabaseAdmin, get_database_admin
from agencyhub.services.tenant_registry import TenantRegistry

logger = logging.getLogger(__name__)


@dataclass
class TenantPool:
    """Connection pool for one agency database."""
    agency_id: UUID
    database_name: str
    engine: AsyncEngine
    semaphore: asyncio.Semaphore
    max_connections: int
    leases: int = 0  # checked out or about to be
    checked_out: int = 0
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)


class TenantConnection:
    """A checked-out connection to one agency database."""

    def __init__(
        self,
        agency_id: UUID,
        connection: AsyncConnection,
        pool: TenantPool,
        manager: "TenantConnectionManager",
    ):
        self.agency_id = agency_id
        self.connection = connection
        self._pool = pool
        self._manager = manager
        self.released = False

    async def execute(self, statement, parameters: Any = None):
        return await self.connection.execute(statement, parameters)

    async def commit(self) -> None:
        await self.connection.commit()

    async def release(self) -> None:
        await self._manager.release(self)


class TenantConnectionManager:
    """Pool-of-pools keyed by agency id."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        database_admin: DatabaseAdmin | None = None,
        max_pools: int | None = None,
        max_connections_per_tenant: int | None = None,
        global_max_connections: int | None = None,
        idle_timeout_seconds: float | None = None,
        eviction_interval_seconds: float | None = None,
        acquire_timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = TenantRegistry(session_factory)
        self.database_admin = database_admin or get_database_admin()
        self.max_pools = max_pools or settings.TENANT_POOL_MAX_POOLS
        self.max_connections_per_tenant = (
            max_connections_per_tenant or settings.TENANT_POOL_MAX_CONNECTIONS_PER_TENANT
        )
        self.global_max_connections = (
            global_max_connections or settings.TENANT_POOL_GLOBAL_MAX_CONNECTIONS
        )
        self.idle_timeout_seconds = idle_timeout_seconds or settings.TENANT_POOL_IDLE_TIMEOUT_SECONDS
        self.eviction_interval_seconds = (
            eviction_interval_seconds or settings.TENANT_POOL_EVICTION_INTERVAL_SECONDS
        )
        self.acquire_timeout_seconds = (
            acquire_timeout_seconds or settings.TENANT_POOL_ACQUIRE_TIMEOUT_SECONDS
        )
        self.clock = clock

        self._pools: OrderedDict[UUID, TenantPool] = OrderedDict()
        self._lock = asyncio.Lock()
        self._global = asyncio.Semaphore(self.global_max_connections)
        self._in_use = 0
        self._eviction_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Pools
    # ------------------------------------------------------------------

    def _create_engine(self, database_name: str) -> AsyncEngine:
        return create_async_engine(
            self.database_admin.tenant_url(database_name),
            poolclass=AsyncAdaptedQueuePool,
            pool_size=self.max_connections_per_tenant,
            max_overflow=0,
            pool_timeout=self.acquire_timeout_seconds,
            pool_pre_ping=True,
        )

    async def _evict_lru_locked(self) -> None:
        """Dispose the least recently used pool with nothing checked out."""
        for agency_id, pool in self._pools.items():
            if pool.leases == 0:
                del self._pools[agency_id]
                await pool.engine.dispose()
                logger.info(f"Evicted LRU tenant pool for agency {agency_id}")
                return
        raise PoolExhaustedError(
            f"All {self.max_pools} tenant pools have connections in use"
        )

    async def _lease_pool(self, agency_id: UUID) -> TenantPool:
        """Get (or open) the agency's pool and take a lease on it."""
        async with self._lock:
            pool = self._pools.get(agency_id)
            if pool is not None:
                self._pools.move_to_end(agency_id)
                pool.leases += 1
                return pool

        agency = await self.registry.get_agency(agency_id)
        if agency is None:
            raise TenantNotReadyError(agency_id, "unknown")
        if agency.provisioning_status != ProvisioningStatus.ACTIVE:
            raise TenantNotReadyError(agency_id, agency.provisioning_status.value)
        if not agency.is_active or not agency.database_name:
            raise TenantNotReadyError(agency_id, "inactive")

        async with self._lock:
            pool = self._pools.get(agency_id)
            if pool is None:
                if len(self._pools) >= self.max_pools:
                    await self._evict_lru_locked()
                now = self.clock()
                pool = TenantPool(
                    agency_id=agency_id,
                    database_name=agency.database_name,
                    engine=self._create_engine(agency.database_name),
                    semaphore=asyncio.Semaphore(self.max_connections_per_tenant),
                    max_connections=self.max_connections_per_tenant,
                    created_at=now,
                    last_used=now,
                )
                self._pools[agency_id] = pool
                logger.debug(f"Opened tenant pool for agency {agency_id}")
            else:
                self._pools.move_to_end(agency_id)
            pool.leases += 1
            return pool

    def _end_lease(self, pool: TenantPool) -> None:
        pool.leases -= 1
        pool.last_used = self.clock()

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def acquire(self, agency_id: UUID) -> TenantConnection:
        """Check out a connection to an active agency's database.

        Raises TenantNotReadyError immediately for agencies that are not
        active, and PoolExhaustedError if no connection frees up within
        the acquire timeout.
        """
        pool = await self._lease_pool(agency_id)
        tenant_slot = global_slot = False

        # BaseException: a caller cancelled while waiting must hand back its slots too
        try:
            try:
                await asyncio.wait_for(pool.semaphore.acquire(), self.acquire_timeout_seconds)
            except asyncio.TimeoutError:
                raise PoolExhaustedError(
                    f"Agency {agency_id} has all {pool.max_connections} connections in use"
                ) from None
            tenant_slot = True

            try:
                await asyncio.wait_for(self._global.acquire(), self.acquire_timeout_seconds)
            except asyncio.TimeoutError:
                raise PoolExhaustedError(
                    f"All {self.global_max_connections} tenant connections are in use"
                ) from None
            global_slot = True

            connection = await pool.engine.connect()
        except BaseException:
            if global_slot:
                self._global.release()
            if tenant_slot:
                pool.semaphore.release()
            self._end_lease(pool)
            raise

        self._in_use += 1
        pool.checked_out += 1
        pool.last_used = self.clock()
        return TenantConnection(agency_id, connection, pool, self)

    async def release(self, tenant_connection: TenantConnection) -> None:
        """Return a connection. Releasing twice is a no-op."""
        if tenant_connection.released:
            return
        tenant_connection.released = True

        pool = tenant_connection._pool
        try:
            await tenant_connection.connection.close()
        finally:
            self._in_use -= 1
            pool.checked_out -= 1
            self._global.release()
            pool.semaphore.release()
            self._end_lease(pool)

    @asynccontextmanager
    async def connection(self, agency_id: UUID) -> AsyncIterator[TenantConnection]:
        tenant_connection = await self.acquire(agency_id)
        try:
            yield tenant_connection
        finally:
            await self.release(tenant_connection)

    # ------------------------------------------------------------------
    # Eviction
    # ------------------------------------------------------------------

    async def invalidate(self, agency_id: UUID) -> bool:
        """Dispose an agency's pool, e.g. after deactivation."""
        async with self._lock:
            pool = self._pools.pop(agency_id, None)
        if pool is None:
            return False
        await pool.engine.dispose()
        logger.info(f"Invalidated tenant pool for agency {agency_id}")
        return True

    async def evict_idle(self) -> list[UUID]:
        """Dispose pools idle for longer than the idle timeout."""
        now = self.clock()
        evicted = []
        async with self._lock:
            for agency_id, pool in list(self._pools.items()):
                if pool.leases == 0 and now - pool.last_used >= self.idle_timeout_seconds:
                    del self._pools[agency_id]
                    await pool.engine.dispose()
                    evicted.append(agency_id)

        if evicted:
            logger.info(f"Evicted {len(evicted)} idle tenant pools")
        return evicted

    async def _eviction_loop(self) -> None:
        while True:
            await asyncio.sleep(self.eviction_interval_seconds)
            try:
                await self.evict_idle()
            except Exception:
                logger.error("Tenant pool eviction failed", exc_info=True)

    def start(self) -> None:
        """Start the periodic eviction task."""
        if self._eviction_task is None or self._eviction_task.done():
            self._eviction_task = asyncio.create_task(self._eviction_loop())

    async def stop(self) -> None:
        """Stop eviction and dispose every pool."""
        if self._eviction_task is not None:
            self._eviction_task.cancel()
            try:
                await self._eviction_task
            except asyncio.CancelledError:
                pass
            self._eviction_task = None
        await self.close_all()

    async def close_all(self) -> None:
        async with self._lock:
            pools = list(self._pools.values())
            self._pools.clear()
        for pool in pools:
            await pool.engine.dispose()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def has_pool(self, agency_id: UUID) -> bool:
        return agency_id in self._pools

    def stats(self) -> dict:
        now = self.clock()
        return {
            "pools": len(self._pools),
            "max_pools": self.max_pools,
            "utilization": round(len(self._pools) / self.max_pools * 100, 2),
            "connections_in_use": self._in_use,
            "global_max_connections": self.global_max_connections,
            "max_connections_per_tenant": self.max_connections_per_tenant,
            "tenants": [
                {
                    "agency_id": str(pool.agency_id),
                    "database_name": pool.database_name,
                    "checked_out": pool.checked_out,
                    "idle_seconds": round(now - pool.last_used, 1),
                }
                for pool in self._pools.values()
            ],
        }


_connection_manager: Optional[TenantConnectionManager] = None


def get_connection_manager() -> TenantConnectionManager:
    """Get the process-wide tenant connection manager."""
    global _connection_manager
    if _connection_manager is None:
        from agencyhub.database import AsyncSessionLocal

        _connection_manager = TenantConnectionManager(AsyncSessionLocal)
    return _connection_manager


async def close_connection_manager():
    global _connection_manager
    if _connection_manager:
        await _connection_manager.stop()
        _connection_manager = None
