"""Shared query-parameter dependencies for list and report endpoints."""

from datetime import datetime
from typing import Optional

from fastapi import Query

from eventhub.core.clock import as_naive_utc
from eventhub.core.config import get_settings
from eventhub.core.exceptions import ValidationFailed
from eventhub.schemas.common import DateRange, PageParams

settings = get_settings()


def page_params(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(settings.DEFAULT_PAGE_LIMIT, ge=1, le=settings.MAX_PAGE_LIMIT, description="Page size"),
) -> PageParams:
    return PageParams(page=page, limit=limit)


def date_range_params(
    start_date: Optional[datetime] = Query(None, description="Filter: start of time range (ISO-8601)"),
    end_date: Optional[datetime] = Query(None, description="Filter: end of time range (ISO-8601)"),
) -> DateRange:
    # Stored timestamps are naive UTC
    start_date = as_naive_utc(start_date) if start_date else None
    end_date = as_naive_utc(end_date) if end_date else None
    if start_date and end_date and end_date <= start_date:
        raise ValidationFailed.for_field("end_date", "End date must be after start date", end_date.isoformat())
    return DateRange(start_date=start_date, end_date=end_date)
