"""Initial registry schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


provisioning_status = sa.Enum('PENDING', 'PROVISIONING', 'ACTIVE', 'FAILED', name='provisioningstatus')
provisioning_step = sa.Enum(
    'REQUESTED', 'DOMAIN_RESERVED', 'DATABASE_CREATED', 'SCHEMA_MATERIALIZED',
    'SEEDED', 'ACTIVE', 'FAILED',
    name='provisioningstep',
)
module_category = sa.Enum(
    'DASHBOARD', 'FINANCE', 'HR', 'PROJECTS', 'REPORTS', 'PERSONAL', 'SETTINGS',
    'SYSTEM', 'INVENTORY', 'PROCUREMENT', 'ASSETS', 'WORKFLOWS', 'AUTOMATION',
    'MANAGEMENT',
    name='modulecategory',
)
rule_weight = sa.Enum('REQUIRED', 'RECOMMENDED', 'OPTIONAL', name='ruleweight')
module_request_status = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='modulerequeststatus')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    # Agencies
    op.create_table(
        'agencies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('domain', sa.String(255), nullable=False),
        sa.Column('database_name', sa.String(63), unique=True),
        sa.Column('subscription_plan', sa.String(50), nullable=False, server_default='professional'),
        sa.Column('max_users', sa.Integer, nullable=False, server_default='25'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('provisioning_status', provisioning_status, nullable=False, server_default='PENDING'),
        sa.Column('provisioning_step', provisioning_step, nullable=False, server_default='REQUESTED'),
        sa.Column('failure_reason', sa.String(50)),
        sa.Column('failure_detail', sa.Text),
        sa.Column('cleanup_pending', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('industry', sa.String(100)),
        sa.Column('company_size', sa.String(50)),
        sa.Column('primary_focus', sa.String(100)),
        sa.Column('business_goals', sa.JSON),
        sa.Column('admin_email', sa.String(255)),
        sa.Column('owner_user_id', sa.Uuid()),
        sa.Column('status_changed_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('activated_at', sa.DateTime(timezone=True)),
        *_timestamps(),
    )
    op.create_index('ix_agencies_domain', 'agencies', ['domain'])
    op.create_index('ix_agencies_provisioning_status', 'agencies', ['provisioning_status'])

    # Domain reservations (uniqueness of the primary key serializes provisioning)
    op.create_table(
        'domain_reservations',
        sa.Column('domain', sa.String(63), primary_key=True),
        sa.Column('agency_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_domain_reservations_agency_id', 'domain_reservations', ['agency_id'])

    # Module catalog
    op.create_table(
        'module_catalog',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('path', sa.String(255), nullable=False, unique=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('icon', sa.String(100)),
        sa.Column('category', module_category, nullable=False),
        sa.Column('base_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('requires_approval', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
        *_timestamps(),
        sa.CheckConstraint('base_cost >= 0', name='ck_module_catalog_base_cost'),
    )
    op.create_index('ix_module_catalog_path', 'module_catalog', ['path'])
    op.create_index('ix_module_catalog_category', 'module_catalog', ['category'])
    op.create_index('ix_module_catalog_sort_order', 'module_catalog', ['sort_order'])

    op.create_table(
        'recommendation_rules',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('module_id', sa.Uuid(),
                  sa.ForeignKey('module_catalog.id', ondelete='CASCADE'), nullable=False),
        sa.Column('industry', sa.JSON),
        sa.Column('company_size', sa.JSON),
        sa.Column('primary_focus', sa.JSON),
        sa.Column('business_goals', sa.JSON),
        sa.Column('weight', rule_weight, nullable=False, server_default='RECOMMENDED'),
        sa.Column('priority', sa.Integer, nullable=False, server_default='5'),
        sa.Column('justification', sa.Text),
        *_timestamps(),
        sa.CheckConstraint('priority >= 1 AND priority <= 10', name='ck_recommendation_rules_priority'),
    )
    op.create_index('ix_recommendation_rules_module_id', 'recommendation_rules', ['module_id'])

    # Agency modules
    op.create_table(
        'agency_module_assignments',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('agency_id', sa.Uuid(),
                  sa.ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('module_id', sa.Uuid(),
                  sa.ForeignKey('module_catalog.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('cost_override', sa.Numeric(12, 2)),
        sa.Column('assigned_by', sa.String(255)),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('agency_id', 'module_id', name='uq_agency_module_assignment'),
    )
    op.create_index('ix_agency_module_assignments_agency_id', 'agency_module_assignments', ['agency_id'])
    op.create_index('ix_agency_module_assignments_module_id', 'agency_module_assignments', ['module_id'])

    op.create_table(
        'agency_module_requests',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('agency_id', sa.Uuid(),
                  sa.ForeignKey('agencies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('module_id', sa.Uuid(),
                  sa.ForeignKey('module_catalog.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', module_request_status, nullable=False, server_default='PENDING'),
        sa.Column('reason', sa.Text),
        sa.Column('requested_by', sa.String(255)),
        sa.Column('reviewed_by', sa.String(255)),
        sa.Column('reviewed_at', sa.DateTime(timezone=True)),
        sa.Column('cost_override', sa.Numeric(12, 2)),
        sa.Column('review_note', sa.Text),
        *_timestamps(),
    )
    op.create_index('ix_agency_module_requests_agency_id', 'agency_module_requests', ['agency_id'])
    op.create_index('ix_agency_module_requests_module_id', 'agency_module_requests', ['module_id'])
    op.create_index('ix_agency_module_requests_status', 'agency_module_requests', ['status'])


def downgrade() -> None:
    op.drop_table('agency_module_requests')
    op.drop_table('agency_module_assignments')
    op.drop_table('recommendation_rules')
    op.drop_table('module_catalog')
    op.drop_table('domain_reservations')
    op.drop_table('agencies')

    for enum in (module_request_status, rule_weight, module_category, provisioning_step, provisioning_status):
        enum.drop(op.get_bind(), checkfirst=True)
