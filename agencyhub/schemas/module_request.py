"""
Module request schemas.
"""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import Field

from agencyhub.models.assignment import ModuleRequestStatus
from agencyhub.schemas.common import BaseSchema, IDSchema, Money, TimestampSchema


class ModuleRequestCreate(BaseSchema):
    """Request an additional module for an agency."""

    module_id: UUID
    reason: str | None = Field(default=None, max_length=2000)


class ModuleRequestApprove(BaseSchema):
    cost_override: Money | None = None


class ModuleRequestReject(BaseSchema):
    reason: str | None = Field(default=None, max_length=2000)


class ModuleRequestResponse(IDSchema, TimestampSchema):
    """Module request response."""

    agency_id: UUID
    module_id: UUID
    status: ModuleRequestStatus
    reason: str | None = None
    requested_by: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    cost_override: Decimal | None = None
    review_note: str | None = None
