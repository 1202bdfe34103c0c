"""
Initial data for a freshly materialized agency database.
"""
import uuid
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncEngine

from agencyhub.core.security import hash_password
from agencyhub.tenant_schema import tables as t

ADMIN_ROLE = "super_admin"
ADMIN_EMPLOYEE_ID = "EMP-0001"

# permission name -> category
DEFAULT_PERMISSIONS = {
    "users.manage": "users",
    "roles.manage": "users",
    "settings.manage": "settings",
    "employees.view": "hr",
    "employees.manage": "hr",
    "leave.approve": "hr",
    "attendance.view": "hr",
    "clients.view": "projects",
    "clients.manage": "projects",
    "projects.view": "projects",
    "projects.manage": "projects",
    "invoices.view": "finance",
    "invoices.manage": "finance",
    "reports.view": "reports",
}

DEFAULT_ROLE_PERMISSIONS = {
    "super_admin": list(DEFAULT_PERMISSIONS),
    "admin": [
        "users.manage", "settings.manage", "employees.view", "employees.manage",
        "leave.approve", "attendance.view", "clients.view", "clients.manage",
        "projects.view", "projects.manage", "invoices.view", "reports.view",
    ],
    "hr": ["employees.view", "employees.manage", "leave.approve", "attendance.view"],
    "finance_manager": ["invoices.view", "invoices.manage", "clients.view", "reports.view"],
    "employee": ["projects.view", "clients.view"],
}


@dataclass
class TenantSeed:
    """Everything the seed needs to know about the new agency."""
    agency_id: UUID
    agency_name: str
    domain: str
    subscription_plan: str
    max_users: int
    admin_email: str
    admin_full_name: str
    admin_password: str
    admin_phone: str | None = None
    industry: str | None = None
    company_size: str | None = None
    primary_focus: str | None = None
    business_goals: list[str] | None = None
    # (module_id, path, title, category) for every selected module
    modules: tuple[tuple[UUID, str, str, str], ...] = ()


def _split_name(full_name: str) -> tuple[str, str]:
    parts = full_name.strip().split()
    first = parts[0] if parts else ""
    last = " ".join(parts[1:]) or first
    return first, last


async def seed_tenant(engine: AsyncEngine, seed: TenantSeed) -> UUID:
    """Insert settings, the admin account and enabled modules in one transaction.

    Returns the admin user id.
    """
    admin_id = uuid.uuid4()
    first_name, last_name = _split_name(seed.admin_full_name)

    async with engine.begin() as conn:
        await conn.execute(insert(t.agency_settings).values(
            id=uuid.uuid4(),
            agency_id=seed.agency_id,
            agency_name=seed.agency_name,
            domain=seed.domain,
            industry=seed.industry,
            company_size=seed.company_size,
            primary_focus=seed.primary_focus,
            business_goals=seed.business_goals or [],
            subscription_plan=seed.subscription_plan,
            max_users=seed.max_users,
        ))

        await conn.execute(insert(t.users).values(
            id=admin_id,
            email=seed.admin_email.lower(),
            password_hash=hash_password(seed.admin_password),
            email_confirmed=True,
            is_active=True,
        ))
        await conn.execute(insert(t.profiles).values(
            id=uuid.uuid4(),
            user_id=admin_id,
            full_name=seed.admin_full_name,
            phone=seed.admin_phone,
            agency_id=seed.agency_id,
            is_active=True,
        ))
        await conn.execute(insert(t.employee_details).values(
            id=uuid.uuid4(),
            user_id=admin_id,
            employee_id=ADMIN_EMPLOYEE_ID,
            agency_id=seed.agency_id,
            first_name=first_name,
            last_name=last_name,
            employment_type="full_time",
            is_active=True,
        ))
        await conn.execute(insert(t.user_roles).values(
            id=uuid.uuid4(),
            user_id=admin_id,
            role=ADMIN_ROLE,
            agency_id=None,
        ))

        permission_ids = {name: uuid.uuid4() for name in DEFAULT_PERMISSIONS}
        await conn.execute(insert(t.permissions), [
            {"id": permission_ids[name], "name": name, "category": category}
            for name, category in DEFAULT_PERMISSIONS.items()
        ])
        await conn.execute(insert(t.role_permissions), [
            {"id": uuid.uuid4(), "role": role, "permission_id": permission_ids[name], "granted": True}
            for role, names in DEFAULT_ROLE_PERMISSIONS.items()
            for name in names
        ])

        if seed.modules:
            await conn.execute(insert(t.enabled_modules), [
                {"module_id": module_id, "path": path, "title": title, "category": category}
                for module_id, path, title, category in seed.modules
            ])

    return admin_id
