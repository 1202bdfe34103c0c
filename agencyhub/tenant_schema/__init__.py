"""
Schema template, migration runner and seed data for agency databases.
"""
from agencyhub.tenant_schema.migrations import LATEST_VERSION, TENANT_MIGRATIONS, TenantMigration
from agencyhub.tenant_schema.runner import TenantSchemaRunner
from agencyhub.tenant_schema.seed import TenantSeed, seed_tenant

__all__ = [
    "LATEST_VERSION",
    "TENANT_MIGRATIONS",
    "TenantMigration",
    "TenantSchemaRunner",
    "TenantSeed",
    "seed_tenant",
]
