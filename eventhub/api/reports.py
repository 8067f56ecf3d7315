"""
Reports API endpoints (admin only).
Dashboard overview and analytics over users, events, revenue and
memberships, plus JSON export of raw records.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventhub.api.deps import date_range_params
from eventhub.core.database import get_db
from eventhub.core.security import require_admin
from eventhub.models.user import User
from eventhub.schemas.common import ApiResponse, DateRange
from eventhub.schemas.report import (
    DashboardReport,
    EventReport,
    ExportData,
    MembershipReport,
    RevenueReport,
    UserReport,
)
from eventhub.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["Reports"], dependencies=[Depends(require_admin)])


@router.get("/dashboard", response_model=ApiResponse[DashboardReport])
async def get_dashboard(db: Session = Depends(get_db)):
    """Headline counts, last-year revenue and recent activity."""
    return ApiResponse(data=DashboardReport(**ReportService(db).dashboard()))


@router.get("/users", response_model=ApiResponse[UserReport])
async def get_user_report(
    dates: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
):
    return ApiResponse(data=UserReport(**ReportService(db).users(dates)))


@router.get("/events", response_model=ApiResponse[EventReport])
async def get_event_report(
    dates: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
):
    return ApiResponse(data=EventReport(**ReportService(db).events(dates)))


@router.get("/revenue", response_model=ApiResponse[RevenueReport])
async def get_revenue_report(
    dates: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
):
    return ApiResponse(data=RevenueReport(**ReportService(db).revenue(dates)))


@router.get("/memberships", response_model=ApiResponse[MembershipReport])
async def get_membership_report(
    dates: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
):
    return ApiResponse(data=MembershipReport(**ReportService(db).memberships(dates)))


@router.get("/export/{kind}", response_model=ApiResponse[ExportData])
async def export_data(
    kind: str,
    format: str = Query("json", pattern="^json$", description="Export format"),
    dates: DateRange = Depends(date_range_params),
    db: Session = Depends(get_db),
):
    """Export users, events, memberships or transactions created in the window."""
    export = ReportService(db).export(kind, dates, format)
    return ApiResponse(message=f"{kind} data exported successfully", data=ExportData(**export))
