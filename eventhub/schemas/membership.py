"""Pydantic schemas for the Membership API."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from eventhub.schemas.common import Money, Pagination, UtcDateTime
from eventhub.schemas.transaction import TransactionSummary

MembershipType = Literal["6months", "1year", "2years"]
MembershipStatus = Literal["active", "expired", "cancelled", "suspended"]
MembershipPaymentStatus = Literal["pending", "completed", "failed", "refunded"]
MembershipPaymentMethod = Literal["card", "bank_transfer", "cash", "online"]


class MembershipCreateRequest(BaseModel):
    """Self-service membership creation; payment is settled later."""
    membership_type: MembershipType = Field(..., description="Plan to purchase")
    payment_method: MembershipPaymentMethod = Field(..., description="How the member pays")
    start_date: Optional[UtcDateTime] = Field(None, description="Defaults to now")
    auto_renewal: bool = Field(False, description="Renew automatically at expiry")
    notes: Optional[str] = Field(None, max_length=500)


class MembershipPurchaseRequest(BaseModel):
    """Plan checkout: payment is captured immediately."""
    plan_id: Optional[str] = Field(None, description="Membership type, e.g. 1year")
    plan_name: Optional[str] = Field(None, description="Display name of the plan")
    duration: Optional[str] = Field(None, description='"6 months", "1 year" or "2 years"')
    amount: Optional[Money] = Field(None, ge=0, description="Overrides the plan price")
    payment_method: MembershipPaymentMethod = "card"


class AdminMembershipCreateRequest(MembershipPurchaseRequest):
    """Admin-created membership on a user's behalf."""
    user_id: str = Field(..., description="Member receiving the plan")
    payment_method: MembershipPaymentMethod = "cash"


class MembershipUpdateRequest(BaseModel):
    """Admin edit. Keys outside this allowlist are dropped, not rejected."""
    status: Optional[MembershipStatus] = None
    payment_status: Optional[MembershipPaymentStatus] = None
    auto_renewal: Optional[bool] = None
    notes: Optional[str] = Field(None, max_length=500)
    discount_percentage: Optional[Decimal] = Field(None, ge=0, le=100)

    model_config = {"extra": "ignore"}


class MembershipResponse(BaseModel):
    """Single membership record returned by the API."""
    id: str
    user_id: str
    membership_type: MembershipType
    start_date: datetime
    end_date: datetime
    status: MembershipStatus
    payment_status: MembershipPaymentStatus
    amount: Money
    payment_method: str
    transaction_id: Optional[str] = None
    benefits: list[str] = Field(default_factory=list)
    discount_percentage: Money = Decimal("0")
    renewal_date: Optional[datetime] = None
    auto_renewal: bool = False
    notes: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MembershipHistoryItem(MembershipResponse):
    """Membership plus read-time derived state."""
    is_active: bool
    remaining_days: int
    duration_in_days: int


class MembershipData(BaseModel):
    membership: MembershipResponse


class MembershipCreatedData(BaseModel):
    membership: MembershipResponse
    transaction: TransactionSummary


class MembershipListData(BaseModel):
    memberships: list[MembershipResponse]
    pagination: Pagination


class MembershipHistoryData(BaseModel):
    memberships: list[MembershipHistoryItem]
    pagination: Pagination


class PlanInfo(BaseModel):
    type: MembershipType
    price: Money
    benefits: list[str]
    duration: str


class PricingData(BaseModel):
    membership_info: list[PlanInfo]


class TypeBreakdown(BaseModel):
    membership_type: str
    count: int
    total_revenue: Money


class MembershipStats(BaseModel):
    total_memberships: int
    active_memberships: int
    expired_memberships: int
    cancelled_memberships: int
    suspended_memberships: int
    expiring_memberships: int
    recent_memberships: int
    total_revenue: Money
    monthly_revenue: Money
    memberships_by_type: list[TypeBreakdown]
