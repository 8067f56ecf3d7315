"""Shared response envelope, pagination and query-parameter schemas."""

import math
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Generic, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, Field, PlainSerializer

from eventhub.core.clock import as_naive_utc

T = TypeVar("T")

# Money stays Decimal inside the service and is rendered as a JSON number
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

# Incoming timestamps are stored as naive UTC
UtcDateTime = Annotated[datetime, AfterValidator(as_naive_utc)]


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope used by every endpoint."""
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


class FieldError(BaseModel):
    field: str
    message: str
    value: Any = None


class ErrorResponse(BaseModel):
    """Failure envelope: stable shape for every error path."""
    success: bool = False
    message: str
    errors: Optional[list[FieldError]] = None


class PageParams(BaseModel):
    page: int = Field(1, ge=1, description="1-based page number")
    limit: int = Field(10, ge=1, le=100, description="Page size")

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, params: PageParams, total: int) -> "Pagination":
        return cls(
            page=params.page,
            limit=params.limit,
            total=total,
            pages=math.ceil(total / params.limit),
        )


class DateRange(BaseModel):
    start_date: Optional[datetime] = Field(None, description="Filter: start of time range (inclusive)")
    end_date: Optional[datetime] = Field(None, description="Filter: end of time range (inclusive)")
