"""
Physical tenant database administration.

Creates and drops the per-agency databases. Database names are always
validated and quoted before they reach DDL.
"""
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from agencyhub.config import settings
from agencyhub.core.identifiers import quote_identifier, validate_database_name

logger = logging.getLogger(__name__)


class DatabaseAdmin(ABC):
    """Creates, drops and locates tenant databases."""

    backend: str = ""

    @abstractmethod
    async def create_database(self, name: str) -> None:
        """Create an empty database; fails if it already exists."""

    @abstractmethod
    async def drop_database(self, name: str) -> None:
        """Drop a database if it exists."""

    @abstractmethod
    async def database_exists(self, name: str) -> bool:
        ...

    @abstractmethod
    def tenant_url(self, name: str) -> URL | str:
        """Async connection URL for a tenant database."""

    async def close(self) -> None:
        pass


class PostgresDatabaseAdmin(DatabaseAdmin):
    """Tenant databases on the same PostgreSQL server as the registry."""

    backend = "postgresql"

    def __init__(self, server_url: str | None = None, maintenance_db: str | None = None):
        self._server_url = make_url(server_url or settings.async_database_url)
        self._admin_url = self._server_url.set(
            database=maintenance_db or settings.POSTGRES_MAINTENANCE_DB
        )
        self._engine: Optional[AsyncEngine] = None

    def _get_engine(self) -> AsyncEngine:
        # CREATE/DROP DATABASE cannot run inside a transaction block
        if self._engine is None:
            self._engine = create_async_engine(
                self._admin_url,
                isolation_level="AUTOCOMMIT",
                poolclass=NullPool,
            )
        return self._engine

    async def create_database(self, name: str) -> None:
        quoted = quote_identifier(name)
        async with self._get_engine().connect() as conn:
            await conn.execute(text(f"CREATE DATABASE {quoted}"))
        logger.info(f"Created tenant database {name}")

    async def drop_database(self, name: str) -> None:
        quoted = quote_identifier(name)
        async with self._get_engine().connect() as conn:
            await conn.execute(
                text(
                    "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                    "WHERE datname = :name AND pid <> pg_backend_pid()"
                ),
                {"name": name},
            )
            await conn.execute(text(f"DROP DATABASE IF EXISTS {quoted}"))
        logger.info(f"Dropped tenant database {name}")

    async def database_exists(self, name: str) -> bool:
        validate_database_name(name)
        async with self._get_engine().connect() as conn:
            result = await conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": name},
            )
            return result.scalar() is not None

    def tenant_url(self, name: str) -> URL:
        validate_database_name(name)
        return self._server_url.set(database=name)

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None


class SQLiteDatabaseAdmin(DatabaseAdmin):
    """Tenant databases as SQLite files in one directory."""

    backend = "sqlite"

    # Side files SQLite may leave next to a database
    SIDE_FILE_SUFFIXES = ("-journal", "-wal", "-shm")

    def __init__(self, directory: str | Path | None = None):
        self.directory = Path(directory or settings.TENANT_SQLITE_DIRECTORY)

    def path_for(self, name: str) -> Path:
        validate_database_name(name)
        return self.directory / f"{name}.db"

    async def create_database(self, name: str) -> None:
        path = self.path_for(name)
        self.directory.mkdir(parents=True, exist_ok=True)
        path.touch(exist_ok=False)
        logger.info(f"Created tenant database {path}")

    async def drop_database(self, name: str) -> None:
        path = self.path_for(name)
        path.unlink(missing_ok=True)
        for suffix in self.SIDE_FILE_SUFFIXES:
            Path(f"{path}{suffix}").unlink(missing_ok=True)
        logger.info(f"Dropped tenant database {path}")

    async def database_exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def tenant_url(self, name: str) -> str:
        return f"sqlite+aiosqlite:///{self.path_for(name)}"


_database_admin: Optional[DatabaseAdmin] = None


def get_database_admin() -> DatabaseAdmin:
    """Get the database admin for the configured tenant backend."""
    global _database_admin
    if _database_admin is None:
        if settings.tenant_backend == "sqlite":
            _database_admin = SQLiteDatabaseAdmin()
        else:
            _database_admin = PostgresDatabaseAdmin()
    return _database_admin


async def close_database_admin():
    global _database_admin
    if _database_admin:
        await _database_admin.close()
        _database_admin = None
