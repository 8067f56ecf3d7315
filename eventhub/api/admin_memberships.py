"""
Admin membership endpoints.
Create a paid membership on a member's behalf, or hard-delete one together
with its transactions.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from eventhub.core.database import get_db
from eventhub.core.security import require_admin
from eventhub.models.user import User
from eventhub.schemas.common import ApiResponse
from eventhub.schemas.membership import (
    AdminMembershipCreateRequest,
    MembershipCreatedData,
    MembershipResponse,
)
from eventhub.schemas.transaction import TransactionSummary
from eventhub.services.membership_service import MembershipService

router = APIRouter(prefix="/admin/memberships", tags=["Admin"])


@router.post("", response_model=ApiResponse[MembershipCreatedData], status_code=201)
async def admin_create_membership(
    request: AdminMembershipCreateRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    membership, transaction = MembershipService(db).admin_create(admin, request)
    return ApiResponse(
        message="Membership created successfully",
        data=MembershipCreatedData(
            membership=MembershipResponse.model_validate(membership),
            transaction=TransactionSummary(**transaction.get_summary()),
        ),
    )


@router.delete("/{membership_id}", response_model=ApiResponse[dict])
async def admin_delete_membership(
    membership_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Delete the membership and every transaction billed against it."""
    removed = MembershipService(db).delete(admin, membership_id)
    return ApiResponse(
        message="Membership deleted successfully",
        data={"membership_id": membership_id, "deleted_transactions": removed},
    )
