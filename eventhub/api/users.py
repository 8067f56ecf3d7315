"""
Users API endpoints.
Admin user listing, overview and deactivation; profile lookup and edits for
the caller or an admin; the caller's own event dashboard.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventhub.api.deps import page_params
from eventhub.core.database import get_db
from eventhub.core.security import ensure_owner_or_admin, get_current_user, require_admin
from eventhub.models.user import User
from eventhub.schemas.common import ApiResponse, PageParams, Pagination
from eventhub.schemas.event import EventCollectionData, EventResponse
from eventhub.schemas.user import (
    UserDashboardStats,
    UserData,
    UserListData,
    UserResponse,
    UserRole,
    UserStats,
    UserUpdateRequest,
)
from eventhub.services.user_service import UserService

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=ApiResponse[UserListData])
async def list_users(
    role: Optional[UserRole] = Query(None, description="Filter: role"),
    is_active: Optional[bool] = Query(None, description="Filter: activation state"),
    page: PageParams = Depends(page_params),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """List all users (admin), newest first."""
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))

    total = query.count()
    users = (
        query
        .order_by(User.created_at.desc())
        .offset(page.offset)
        .limit(page.limit)
        .all()
    )
    return ApiResponse(data=UserListData(
        users=[UserResponse.model_validate(u) for u in users],
        pagination=Pagination.build(page, total),
    ))


@router.get("/stats/overview", response_model=ApiResponse[UserStats])
async def get_user_stats(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Account counts by role and activation, plus sign-ups in the last 30 days."""
    return ApiResponse(data=UserStats(**UserService(db).stats()))


@router.get("/dashboard/stats", response_model=ApiResponse[UserDashboardStats])
async def get_dashboard_stats(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ApiResponse(data=UserDashboardStats(**UserService(db).dashboard(user)))


@router.get("/dashboard/upcoming-events", response_model=ApiResponse[EventCollectionData])
async def get_upcoming_events(
    limit: int = Query(5, ge=1, le=20, description="How many events to return"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Next events the caller organizes or attends."""
    events = UserService(db).upcoming_events(user, limit=limit)
    return ApiResponse(data=EventCollectionData(events=[EventResponse.model_validate(e) for e in events]))


@router.get("/{user_id}", response_model=ApiResponse[UserData])
async def get_user(
    user_id: str,
    caller: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a specific user by ID (self or admin)."""
    ensure_owner_or_admin(caller, user_id, "view")
    user = UserService(db).get(user_id)
    return ApiResponse(data=UserData(user=UserResponse.model_validate(user)))


@router.put("/{user_id}", response_model=ApiResponse[UserData])
async def update_user(
    user_id: str,
    request: UserUpdateRequest,
    caller: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit a profile (self or admin). Only admins may change role or activation."""
    user = UserService(db).update(caller, user_id, request)
    return ApiResponse(message="Profile updated successfully", data=UserData(user=UserResponse.model_validate(user)))


@router.delete("/{user_id}", response_model=ApiResponse[UserData])
async def deactivate_user(
    user_id: str,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Deactivate an account (admin). Its memberships and transactions are kept."""
    user = UserService(db).deactivate(admin, user_id)
    return ApiResponse(message="User deactivated successfully", data=UserData(user=UserResponse.model_validate(user)))
