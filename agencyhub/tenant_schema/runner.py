"""
Applies the tenant schema template to an agency database.
"""
import logging
from typing import Sequence

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from agencyhub.core.exceptions import ErrorCode, ProvisioningStepError
from agencyhub.tenant_schema.migrations import TENANT_MIGRATIONS, TenantMigration
from agencyhub.tenant_schema.tables import BOOKKEEPING_TABLES, metadata, schema_info, schema_migrations

logger = logging.getLogger(__name__)


class TenantSchemaRunner:
    """Brings a tenant database up to the latest template version.

    Every migration runs in its own transaction together with its
    ``schema_migrations`` row, so a failure leaves the database at the
    last fully applied version.
    """

    def __init__(
        self,
        engine: AsyncEngine,
        migrations: Sequence[TenantMigration] = TENANT_MIGRATIONS,
    ):
        self.engine = engine
        self.migrations = sorted(migrations, key=lambda m: m.version)

    async def _ensure_bookkeeping(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(
                lambda sync_conn: metadata.create_all(sync_conn, tables=list(BOOKKEEPING_TABLES))
            )

    async def applied_versions(self) -> dict[int, str]:
        """Applied version -> recorded checksum."""
        async with self.engine.connect() as conn:
            result = await conn.execute(
                select(schema_migrations.c.version, schema_migrations.c.checksum)
            )
            return {row.version: row.checksum for row in result}

    async def current_version(self) -> int:
        async with self.engine.connect() as conn:
            version = await conn.scalar(select(schema_info.c.schema_version).where(schema_info.c.id == 1))
        return version or 0

    async def _record(self, conn: AsyncConnection, migration: TenantMigration) -> None:
        await conn.execute(
            insert(schema_migrations).values(
                version=migration.version,
                description=migration.description,
                checksum=migration.checksum,
            )
        )
        updated = await conn.execute(
            update(schema_info)
            .where(schema_info.c.id == 1)
            .values(schema_version=migration.version)
        )
        if not updated.rowcount:
            await conn.execute(insert(schema_info).values(id=1, schema_version=migration.version))

    async def apply(self) -> list[int]:
        """Apply all pending migrations. Returns the versions applied."""
        try:
            await self._ensure_bookkeeping()
            applied = await self.applied_versions()
        except Exception as e:
            raise ProvisioningStepError(
                ErrorCode.SCHEMA_MIGRATION_FAILED,
                f"Could not read schema_migrations: {e}",
            ) from e

        newly_applied = []
        for migration in self.migrations:
            recorded = applied.get(migration.version)
            if recorded is not None:
                if recorded != migration.checksum:
                    raise ProvisioningStepError(
                        ErrorCode.SCHEMA_MIGRATION_FAILED,
                        f"Checksum mismatch for tenant schema version {migration.version}",
                    )
                continue

            try:
                async with self.engine.begin() as conn:
                    await conn.run_sync(
                        lambda sync_conn, m=migration: metadata.create_all(
                            sync_conn, tables=list(m.tables)
                        )
                    )
                    await self._record(conn, migration)
            except Exception as e:
                raise ProvisioningStepError(
                    ErrorCode.SCHEMA_MIGRATION_FAILED,
                    f"Tenant schema version {migration.version} ({migration.description}) failed: {e}",
                ) from e

            logger.debug(f"Applied tenant schema version {migration.version}: {migration.description}")
            newly_applied.append(migration.version)

        return newly_applied
