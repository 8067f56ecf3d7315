"""
Caller identity and role checks.

Authentication itself (passwords, tokens, sessions) happens upstream; this
service trusts the gateway-provided ``X-User-Id`` header and only resolves
it to an active user and enforces roles.
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from eventhub.core.database import get_db
from eventhub.core.exceptions import AuthenticationRequired, PermissionDenied
from eventhub.models.user import User


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> User:
    if not x_user_id:
        raise AuthenticationRequired()

    user = db.get(User, x_user_id)
    if user is None or not user.is_active:
        raise AuthenticationRequired("Invalid or inactive user")
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise PermissionDenied("Admin access required")
    return user


def ensure_owner_or_admin(actor: User, owner_id: str, action: str = "access") -> None:
    """Raise PermissionDenied unless the actor owns the record or is an admin."""
    if actor.is_admin or actor.user_id == owner_id:
        return
    raise PermissionDenied(f"Not authorized to {action} this resource")


def get_optional_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> Optional[User]:
    """Resolve the caller when a header is sent; anonymous requests get None."""
    if not x_user_id:
        return None
    return get_current_user(x_user_id, db)
