"""
Membership API endpoints.
Self-service purchase, current/history lookups, pricing catalog, and the
admin listing, edit and statistics views.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventhub.api.deps import page_params
from eventhub.core.database import get_db
from eventhub.core.security import get_current_user, require_admin
from eventhub.models.user import User
from eventhub.schemas.common import ApiResponse, PageParams, Pagination
from eventhub.schemas.membership import (
    MembershipCreatedData,
    MembershipCreateRequest,
    MembershipData,
    MembershipHistoryData,
    MembershipHistoryItem,
    MembershipListData,
    MembershipPaymentStatus,
    MembershipPurchaseRequest,
    MembershipResponse,
    MembershipStats,
    MembershipStatus,
    MembershipType,
    MembershipUpdateRequest,
    PlanInfo,
    PricingData,
)
from eventhub.schemas.transaction import TransactionSummary
from eventhub.services.membership_service import MembershipService

router = APIRouter(prefix="/memberships", tags=["Memberships"])


def _created(membership, transaction) -> MembershipCreatedData:
    return MembershipCreatedData(
        membership=MembershipResponse.model_validate(membership),
        transaction=TransactionSummary(**transaction.get_summary()),
    )


@router.get("", response_model=ApiResponse[MembershipListData])
async def list_memberships(
    status: Optional[MembershipStatus] = Query(None, description="Filter: membership status"),
    membership_type: Optional[MembershipType] = Query(None, description="Filter: plan"),
    payment_status: Optional[MembershipPaymentStatus] = Query(None, description="Filter: payment status"),
    page: PageParams = Depends(page_params),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """List all memberships (admin)."""
    memberships, total = MembershipService(db).search(page, status, membership_type, payment_status)
    return ApiResponse(data=MembershipListData(
        memberships=[MembershipResponse.model_validate(m) for m in memberships],
        pagination=Pagination.build(page, total),
    ))


@router.post("", response_model=ApiResponse[MembershipCreatedData], status_code=201)
async def create_membership(
    request: MembershipCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create a membership for the caller; payment stays pending."""
    membership, transaction = MembershipService(db).create(user, request)
    return ApiResponse(message="Membership created successfully", data=_created(membership, transaction))


@router.post("/purchase", response_model=ApiResponse[MembershipCreatedData], status_code=201)
async def purchase_membership(
    request: MembershipPurchaseRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Buy a plan by plan_id or duration; payment completes immediately."""
    membership, transaction = MembershipService(db).purchase(user, request)
    return ApiResponse(message="Membership purchased successfully", data=_created(membership, transaction))


@router.get("/current", response_model=ApiResponse[MembershipData])
async def get_current_membership(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The caller's active membership, or 404 when there is none."""
    membership = MembershipService(db).get_current(user)
    return ApiResponse(data=MembershipData(membership=MembershipResponse.model_validate(membership)))


@router.get("/history", response_model=ApiResponse[MembershipHistoryData])
async def get_membership_history(
    page: PageParams = Depends(page_params),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """All of the caller's memberships, newest first, with derived state."""
    memberships, total = MembershipService(db).history(user, page)
    return ApiResponse(data=MembershipHistoryData(
        memberships=[
            MembershipHistoryItem(
                **MembershipResponse.model_validate(m).model_dump(),
                is_active=m.is_active(),
                remaining_days=m.get_remaining_days(),
                duration_in_days=m.get_duration_in_days(),
            )
            for m in memberships
        ],
        pagination=Pagination.build(page, total),
    ))


@router.get("/pricing", response_model=ApiResponse[PricingData])
async def get_membership_pricing():
    """Public plan catalog: price, benefits and duration per plan."""
    catalog = MembershipService.pricing_catalog()
    return ApiResponse(data=PricingData(membership_info=[PlanInfo(**plan) for plan in catalog]))


@router.get("/stats", response_model=ApiResponse[MembershipStats])
async def get_membership_stats(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Counts by status and type, expiring soon, and revenue (admin)."""
    return ApiResponse(data=MembershipStats(**MembershipService(db).stats()))


@router.get("/{membership_id}", response_model=ApiResponse[MembershipData])
async def get_membership(
    membership_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a single membership (owner or admin)."""
    membership = MembershipService(db).get_for(user, membership_id)
    return ApiResponse(data=MembershipData(membership=MembershipResponse.model_validate(membership)))


@router.put("/{membership_id}", response_model=ApiResponse[MembershipData])
async def update_membership(
    membership_id: str,
    request: MembershipUpdateRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Admin edit of status, payment status, auto-renewal, notes and discount."""
    membership = MembershipService(db).update(admin, membership_id, request)
    return ApiResponse(
        message="Membership updated successfully",
        data=MembershipData(membership=MembershipResponse.model_validate(membership)),
    )


@router.delete("/{membership_id}", response_model=ApiResponse[MembershipData])
async def cancel_membership(
    membership_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cancel a membership (owner or admin). The end date is kept."""
    membership = MembershipService(db).cancel(user, membership_id)
    return ApiResponse(
        message="Membership cancelled successfully",
        data=MembershipData(membership=MembershipResponse.model_validate(membership)),
    )
