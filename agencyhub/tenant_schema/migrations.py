"""
Ordered, versioned template for agency databases.

Each migration names the tables it creates. Versions are append-only:
never edit a released migration, add a new one instead. The checksum
of an applied migration is compared on every run.
"""
import hashlib
from dataclasses import dataclass

from sqlalchemy import Table

from agencyhub.tenant_schema import tables as t


@dataclass(frozen=True)
class TenantMigration:
    version: int
    description: str
    tables: tuple[Table, ...]

    @property
    def checksum(self) -> str:
        digest = hashlib.sha256()
        digest.update(f"{self.version}:{self.description}".encode())
        for table in self.tables:
            digest.update(table.name.encode())
            for column in table.columns:
                digest.update(f"{column.name}:{column.type!r}:{column.nullable}".encode())
        return digest.hexdigest()


TENANT_MIGRATIONS: tuple[TenantMigration, ...] = (
    TenantMigration(
        version=1,
        description="Users, profiles, roles and permissions",
        tables=(t.users, t.profiles, t.user_roles, t.permissions, t.role_permissions),
    ),
    TenantMigration(
        version=2,
        description="Agency settings and enabled modules",
        tables=(t.agency_settings, t.enabled_modules),
    ),
    TenantMigration(
        version=3,
        description="Departments, employees, attendance and leave",
        tables=(t.departments, t.employee_details, t.attendance, t.leave_requests),
    ),
    TenantMigration(
        version=4,
        description="Clients, projects and tasks",
        tables=(t.clients, t.projects, t.tasks),
    ),
    TenantMigration(
        version=5,
        description="Invoices and payments",
        tables=(t.invoices, t.payments),
    ),
)

LATEST_VERSION = TENANT_MIGRATIONS[-1].version
