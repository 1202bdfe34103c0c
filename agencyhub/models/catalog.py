"""
Module catalog and recommendation rule models.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from agencyhub.models.base import Base, BaseModel


class ModuleCategory(str, PyEnum):
    DASHBOARD = "dashboard"
    FINANCE = "finance"
    HR = "hr"
    PROJECTS = "projects"
    REPORTS = "reports"
    PERSONAL = "personal"
    SETTINGS = "settings"
    SYSTEM = "system"
    INVENTORY = "inventory"
    PROCUREMENT = "procurement"
    ASSETS = "assets"
    WORKFLOWS = "workflows"
    AUTOMATION = "automation"
    MANAGEMENT = "management"


class RuleWeight(str, PyEnum):
    REQUIRED = "required"
    RECOMMENDED = "recommended"
    OPTIONAL = "optional"


class ModuleCatalogEntry(Base, BaseModel):
    """An application module (page) that can be enabled for an agency."""

    __tablename__ = "module_catalog"
    __table_args__ = (
        CheckConstraint("base_cost >= 0", name="ck_module_catalog_base_cost"),
    )

    path = Column(String(255), unique=True, nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    icon = Column(String(100), nullable=True)
    category = Column(Enum(ModuleCategory), nullable=False, index=True)
    base_cost = Column(Numeric(12, 2), default=0, nullable=False)
    requires_approval = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    sort_order = Column(Integer, default=0, nullable=False, index=True)

    rules = relationship(
        "RecommendationRule",
        back_populates="module",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<ModuleCatalogEntry {self.path}>"


class RecommendationRule(Base, BaseModel):
    """Categorizes a module for business profiles matching its predicate.

    An empty attribute list leaves that attribute unconstrained.
    """

    __tablename__ = "recommendation_rules"
    __table_args__ = (
        CheckConstraint("priority >= 1 AND priority <= 10", name="ck_recommendation_rules_priority"),
    )

    module_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("module_catalog.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    industry = Column(JSON, default=list)
    company_size = Column(JSON, default=list)
    primary_focus = Column(JSON, default=list)
    business_goals = Column(JSON, default=list)
    weight = Column(Enum(RuleWeight), default=RuleWeight.RECOMMENDED, nullable=False)
    priority = Column(Integer, default=5, nullable=False)
    justification = Column(Text, nullable=True)

    module = relationship("ModuleCatalogEntry", back_populates="rules")

    def __repr__(self) -> str:
        return f"<RecommendationRule {self.weight.value} -> {self.module_id}>"
