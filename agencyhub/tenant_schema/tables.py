"""
Tables that make up an agency's own database.
"""
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)

metadata = MetaData()


def _timestamps() -> list[Column]:
    return [
        Column("created_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
        Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    ]


# ============================================================================
# Bookkeeping
# ============================================================================

schema_migrations = Table(
    "schema_migrations",
    metadata,
    Column("version", Integer, primary_key=True),
    Column("description", String(255), nullable=False),
    Column("checksum", String(64), nullable=False),
    Column("applied_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

schema_info = Table(
    "schema_info",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("schema_version", Integer, nullable=False),
    Column("updated_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)

BOOKKEEPING_TABLES = (schema_migrations, schema_info)


# ============================================================================
# Auth
# ============================================================================

users = Table(
    "users",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("email_confirmed", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_sign_in_at", DateTime(timezone=True)),
    *_timestamps(),
)

profiles = Table(
    "profiles",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("user_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("full_name", String(255)),
    Column("phone", String(50)),
    Column("agency_id", Uuid(as_uuid=True)),
    Column("is_active", Boolean, nullable=False, default=True),
    *_timestamps(),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("user_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("role", String(50), nullable=False),
    Column("agency_id", Uuid(as_uuid=True)),
    Column("assigned_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
    UniqueConstraint("user_id", "role", "agency_id", name="uq_user_roles_user_role_agency"),
)

permissions = Table(
    "permissions",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("category", String(50), nullable=False),
    Column("description", Text),
    *_timestamps(),
)

role_permissions = Table(
    "role_permissions",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("role", String(50), nullable=False),
    Column("permission_id", Uuid(as_uuid=True), ForeignKey("permissions.id", ondelete="CASCADE"), nullable=False),
    Column("granted", Boolean, nullable=False, default=True),
    *_timestamps(),
    UniqueConstraint("role", "permission_id", name="uq_role_permissions_role_permission"),
)


# ============================================================================
# Agency settings and modules
# ============================================================================

agency_settings = Table(
    "agency_settings",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("agency_id", Uuid(as_uuid=True), nullable=False, unique=True),
    Column("agency_name", String(255), nullable=False),
    Column("domain", String(255), nullable=False),
    Column("industry", String(100)),
    Column("company_size", String(50)),
    Column("primary_focus", String(100)),
    Column("business_goals", JSON),
    Column("subscription_plan", String(50), nullable=False),
    Column("max_users", Integer, nullable=False),
    Column("currency", String(10), nullable=False, default="USD"),
    Column("timezone", String(64), nullable=False, default="UTC"),
    Column("date_format", String(20), nullable=False, default="MM/DD/YYYY"),
    Column("setup_complete", Boolean, nullable=False, default=False),
    *_timestamps(),
)

enabled_modules = Table(
    "enabled_modules",
    metadata,
    Column("module_id", Uuid(as_uuid=True), primary_key=True),
    Column("path", String(255), nullable=False, unique=True),
    Column("title", String(255), nullable=False),
    Column("category", String(50), nullable=False),
    Column("enabled_at", DateTime(timezone=True), server_default=func.now(), nullable=False),
)


# ============================================================================
# HR
# ============================================================================

departments = Table(
    "departments",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("parent_id", Uuid(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL")),
    Column("manager_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")),
    Column("is_active", Boolean, nullable=False, default=True),
    *_timestamps(),
)

employee_details = Table(
    "employee_details",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("user_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True),
    Column("employee_id", String(50), nullable=False, unique=True),
    Column("agency_id", Uuid(as_uuid=True)),
    Column("department_id", Uuid(as_uuid=True), ForeignKey("departments.id", ondelete="SET NULL")),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("employment_type", String(50), nullable=False, default="full_time"),
    Column("hire_date", Date),
    Column("is_active", Boolean, nullable=False, default=True),
    *_timestamps(),
)

attendance = Table(
    "attendance",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("employee_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("date", Date, nullable=False),
    Column("check_in_time", DateTime(timezone=True)),
    Column("check_out_time", DateTime(timezone=True)),
    Column("total_hours", Numeric(5, 2)),
    Column("status", String(20), nullable=False, default="present"),
    *_timestamps(),
    UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
)

leave_requests = Table(
    "leave_requests",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("employee_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("leave_type", String(50), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    Column("reason", Text),
    Column("status", String(20), nullable=False, default="pending"),
    Column("approved_by", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")),
    Column("approved_at", DateTime(timezone=True)),
    *_timestamps(),
)


# ============================================================================
# Clients and projects
# ============================================================================

clients = Table(
    "clients",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("client_number", String(50), unique=True),
    Column("name", String(255), nullable=False),
    Column("company_name", String(255)),
    Column("email", String(255)),
    Column("phone", String(50)),
    Column("status", String(20), nullable=False, default="active"),
    Column("created_by", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")),
    *_timestamps(),
)

projects = Table(
    "projects",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("client_id", Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL")),
    Column("status", String(20), nullable=False, default="planning"),
    Column("start_date", Date),
    Column("end_date", Date),
    Column("budget", Numeric(15, 2)),
    Column("created_by", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")),
    *_timestamps(),
)

tasks = Table(
    "tasks",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("project_id", Uuid(as_uuid=True), ForeignKey("projects.id", ondelete="CASCADE")),
    Column("title", String(255), nullable=False),
    Column("description", Text),
    Column("status", String(20), nullable=False, default="todo"),
    Column("priority", String(20), nullable=False, default="medium"),
    Column("assignee_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")),
    Column("due_date", Date),
    *_timestamps(),
)


# ============================================================================
# Finance
# ============================================================================

invoices = Table(
    "invoices",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("invoice_number", String(50), nullable=False, unique=True),
    Column("client_id", Uuid(as_uuid=True), ForeignKey("clients.id", ondelete="SET NULL")),
    Column("status", String(20), nullable=False, default="draft"),
    Column("issue_date", Date, nullable=False),
    Column("due_date", Date),
    Column("subtotal", Numeric(15, 2), nullable=False, default=0),
    Column("tax_amount", Numeric(15, 2), nullable=False, default=0),
    Column("total_amount", Numeric(15, 2), nullable=False, default=0),
    Column("created_by", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL")),
    *_timestamps(),
)

payments = Table(
    "payments",
    metadata,
    Column("id", Uuid(as_uuid=True), primary_key=True),
    Column("invoice_id", Uuid(as_uuid=True), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
    Column("amount", Numeric(15, 2), nullable=False),
    Column("payment_date", Date, nullable=False),
    Column("payment_method", String(50)),
    Column("reference", String(255)),
    *_timestamps(),
)
