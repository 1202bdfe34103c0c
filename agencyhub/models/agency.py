"""
Agency registry models.
"""
from enum import Enum as PyEnum

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from agencyhub.models.base import Base, BaseModel, utcnow


class ProvisioningStatus(str, PyEnum):
    PENDING = "pending"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    FAILED = "failed"


class ProvisioningStep(str, PyEnum):
    REQUESTED = "requested"
    DOMAIN_RESERVED = "domain_reserved"
    DATABASE_CREATED = "database_created"
    SCHEMA_MATERIALIZED = "schema_materialized"
    SEEDED = "seeded"
    ACTIVE = "active"
    FAILED = "failed"


class SubscriptionPlan(str, PyEnum):
    STARTER = "starter"
    PROFESSIONAL = "professional"
    ENTERPRISE = "enterprise"


class Agency(Base, BaseModel):
    """An agency (tenant) with its own physical database."""

    __tablename__ = "agencies"

    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False, index=True)
    database_name = Column(String(63), unique=True, nullable=True)
    subscription_plan = Column(String(50), default=SubscriptionPlan.PROFESSIONAL.value, nullable=False)
    max_users = Column(Integer, default=25, nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)

    provisioning_status = Column(
        Enum(ProvisioningStatus),
        default=ProvisioningStatus.PENDING,
        nullable=False,
        index=True,
    )
    provisioning_step = Column(
        Enum(ProvisioningStep),
        default=ProvisioningStep.REQUESTED,
        nullable=False,
    )
    failure_reason = Column(String(50), nullable=True)
    failure_detail = Column(Text, nullable=True)
    cleanup_pending = Column(Boolean, default=False, nullable=False)

    # Business profile used for recommendations
    industry = Column(String(100), nullable=True)
    company_size = Column(String(50), nullable=True)
    primary_focus = Column(String(100), nullable=True)
    business_goals = Column(JSON, default=list)

    admin_email = Column(String(255), nullable=True)
    owner_user_id = Column(Uuid(as_uuid=True), nullable=True)

    status_changed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    activated_at = Column(DateTime(timezone=True), nullable=True)

    module_assignments = relationship(
        "AgencyModuleAssignment",
        back_populates="agency",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Agency {self.name} ({self.domain})>"


class DomainReservation(Base):
    """Holds a subdomain for exactly one agency.

    The unique primary key on ``domain`` is what serializes concurrent
    provisioning attempts for the same name.
    """

    __tablename__ = "domain_reservations"

    domain = Column(String(63), primary_key=True)
    # Reserved before the agency row exists, so no foreign key.
    agency_id = Column(Uuid(as_uuid=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<DomainReservation {self.domain}>"
