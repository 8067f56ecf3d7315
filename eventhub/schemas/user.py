"""Pydantic schemas for User API requests and responses."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from eventhub.schemas.common import Pagination

UserRole = Literal["user", "admin"]


class UserResponse(BaseModel):
    """User data returned by the API."""
    user_id: str = Field(..., description="Unique user identifier")
    first_name: str = Field(..., description="Given name")
    last_name: str = Field(..., description="Family name")
    email: str = Field(..., description="User email address")
    phone: Optional[str] = Field(None, description="Contact phone number")
    role: UserRole = Field(..., description="user or admin")
    is_active: bool = Field(..., description="Whether the account may use the API")
    created_at: datetime = Field(..., description="Account registration date")

    model_config = {"from_attributes": True}


class UserUpdateRequest(BaseModel):
    """Profile edit. role and is_active are applied only for admins."""
    first_name: Optional[str] = Field(None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(None, min_length=1, max_length=50)
    email: Optional[str] = Field(None, max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
    phone: Optional[str] = Field(None, max_length=20)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None

    model_config = {"str_strip_whitespace": True}


class UserData(BaseModel):
    user: UserResponse


class UserListData(BaseModel):
    """Paginated list of users."""
    users: list[UserResponse]
    pagination: Pagination


class UserStats(BaseModel):
    total_users: int
    active_users: int
    inactive_users: int
    admin_users: int
    regular_users: int
    recent_users: int = Field(..., description="Registered in the last 30 days")


class UserDashboardStats(BaseModel):
    """The caller's own event activity."""
    events_created: int
    events_registered: int
    events_attended: int
    upcoming_events: int
