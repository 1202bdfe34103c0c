"""
Shared schema bases, money type and pagination envelope.
"""
from datetime import datetime
from decimal import Decimal
from math import ceil
from typing import Annotated, Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

T = TypeVar("T")

# Monthly amounts in the plan currency; serialized as strings ("12.50")
Money = Annotated[Decimal, Field(ge=0, max_digits=12, decimal_places=2)]


class BaseSchema(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class IDSchema(BaseSchema):
    id: UUID


class TimestampSchema(BaseSchema):
    created_at: datetime
    updated_at: datetime


class PaginatedResponse(BaseSchema, Generic[T]):
    """One page of a listing plus the totals needed to fetch the rest."""

    items: list[T]
    total: int
    page: int
    per_page: int

    @computed_field
    @property
    def pages(self) -> int:
        return ceil(self.total / self.per_page) if self.per_page else 0
