"""Pydantic schemas for statistics and admin report payloads."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel

from eventhub.schemas.common import Money


class DateWindow(BaseModel):
    start_date: datetime
    end_date: datetime


class MonthBucket(BaseModel):
    year: int
    month: int
    count: int = 0
    revenue: Optional[Money] = None


# ─── Transaction statistics ────────────────────────────────────────

class TransactionOverview(BaseModel):
    total_transactions: int
    total_amount: Money
    completed_transactions: int
    completed_amount: Money
    failed_transactions: int
    refunded_amount: Money


class TransactionTypeStats(BaseModel):
    type: str
    count: int
    total_amount: Money
    completed_count: int
    completed_amount: Money


class PaymentMethodStats(BaseModel):
    payment_method: str
    count: int
    total_amount: Money


class DailyTransactionStats(BaseModel):
    year: int
    month: int
    day: int
    total_transactions: int
    total_amount: Money
    completed_transactions: int
    completed_amount: Money


class TransactionStats(BaseModel):
    overview: TransactionOverview
    by_type: list[TransactionTypeStats]
    by_payment_method: list[PaymentMethodStats]
    daily_stats: list[DailyTransactionStats]
    date_range: DateWindow


# ─── Dashboard ─────────────────────────────────────────────────────

class UserCounts(BaseModel):
    total: int
    active: int
    inactive: int
    new_this_month: int


class EventCounts(BaseModel):
    total: int
    published: int
    upcoming: int
    completed: int
    draft: int


class MembershipCounts(BaseModel):
    total: int
    active: int
    expiring: int


class RevenueSummary(BaseModel):
    total_revenue: Money
    monthly_revenue: Money
    transaction_count: int


class RecentEvent(BaseModel):
    id: str
    title: str
    status: str
    start_date: datetime
    current_attendees: int
    max_attendees: int
    organizer_name: Optional[str] = None


class RecentTransaction(BaseModel):
    transaction_id: str
    type: str
    amount: Money
    status: str
    created_at: datetime
    user_name: Optional[str] = None


class RecentActivity(BaseModel):
    events: list[RecentEvent]
    transactions: list[RecentTransaction]


class DashboardReport(BaseModel):
    users: UserCounts
    events: EventCounts
    memberships: MembershipCounts
    revenue: RevenueSummary
    recent_activity: RecentActivity


# ─── User analytics ────────────────────────────────────────────────

class RoleStats(BaseModel):
    role: str
    count: int
    active: int


class TopParticipant(BaseModel):
    user_id: str
    name: str
    email: str
    event_count: int


class UserReport(BaseModel):
    registration_trends: list[MonthBucket]
    users_by_role: list[RoleStats]
    top_active_users: list[TopParticipant]
    date_range: DateWindow


# ─── Event analytics ───────────────────────────────────────────────

class CategoryStats(BaseModel):
    category: str
    count: int
    total_attendees: int
    avg_attendees: float


class EventStatusStats(BaseModel):
    status: str
    count: int
    total_attendees: int


class TopEvent(BaseModel):
    id: str
    title: str
    category: str
    current_attendees: int
    max_attendees: int
    start_date: datetime
    status: str
    organizer_name: Optional[str] = None


class AttendanceStats(BaseModel):
    avg_attendance_rate: float
    total_capacity: int
    total_attendees: int


class EventReport(BaseModel):
    event_trends: list[MonthBucket]
    events_by_category: list[CategoryStats]
    events_by_status: list[EventStatusStats]
    top_events: list[TopEvent]
    attendance_stats: AttendanceStats
    date_range: DateWindow


# ─── Revenue analytics ─────────────────────────────────────────────

class RevenueByType(BaseModel):
    type: str
    revenue: Money
    transaction_count: int
    avg_transaction_value: Money


class RevenueByMethod(BaseModel):
    payment_method: str
    revenue: Money
    transaction_count: int


class MembershipRevenue(BaseModel):
    membership_type: str
    revenue: Money
    count: int


class OverallRevenue(BaseModel):
    total_revenue: Money
    total_transactions: int
    avg_transaction_value: Money
    max_transaction_value: Money
    min_transaction_value: Money


class RevenueReport(BaseModel):
    revenue_trends: list[MonthBucket]
    revenue_by_type: list[RevenueByType]
    revenue_by_payment_method: list[RevenueByMethod]
    membership_revenue: list[MembershipRevenue]
    overall_stats: OverallRevenue
    date_range: DateWindow


# ─── Membership analytics ──────────────────────────────────────────

class MembershipTypeReport(BaseModel):
    membership_type: str
    count: int
    revenue: Money
    active_count: int
    avg_duration: float


class MembershipStatusReport(BaseModel):
    status: str
    count: int
    revenue: Money


class RetentionAnalysis(BaseModel):
    total_users: int
    renewed_users: int
    avg_memberships_per_user: float
    avg_lifetime_value: Money


class MembershipReport(BaseModel):
    membership_trends: list[MonthBucket]
    memberships_by_type: list[MembershipTypeReport]
    memberships_by_status: list[MembershipStatusReport]
    retention_analysis: RetentionAnalysis
    date_range: DateWindow


# ─── Export ────────────────────────────────────────────────────────

class ExportData(BaseModel):
    export_type: str
    format: str = "json"
    count: int
    exported_at: datetime
    records: list[dict[str, Any]]
