"""
Agency module assignments and approval requests.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from agencyhub.models.base import Base, BaseModel, utcnow


class ModuleRequestStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AgencyModuleAssignment(Base, BaseModel):
    """A module enabled for an agency."""

    __tablename__ = "agency_module_assignments"
    __table_args__ = (
        UniqueConstraint("agency_id", "module_id", name="uq_agency_module_assignment"),
    )

    agency_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("agencies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("module_catalog.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    cost_override = Column(Numeric(12, 2), nullable=True)
    assigned_by = Column(String(255), nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    agency = relationship("Agency", back_populates="module_assignments")
    module = relationship("ModuleCatalogEntry", lazy="joined")

    def __repr__(self) -> str:
        return f"<AgencyModuleAssignment {self.agency_id} -> {self.module_id}>"


class AgencyModuleRequest(Base, BaseModel):
    """A request by an agency to enable an additional module."""

    __tablename__ = "agency_module_requests"

    agency_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("agencies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("module_catalog.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(
        Enum(ModuleRequestStatus),
        default=ModuleRequestStatus.PENDING,
        nullable=False,
        index=True,
    )
    reason = Column(Text, nullable=True)
    requested_by = Column(String(255), nullable=True)
    reviewed_by = Column(String(255), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    cost_override = Column(Numeric(12, 2), nullable=True)
    review_note = Column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<AgencyModuleRequest {self.agency_id} -> {self.module_id} ({self.status.value})>"
