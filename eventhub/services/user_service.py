"""
User Service.

Profile edits, admin deactivation, the admin user overview and the
per-user dashboard counters. Accounts are deactivated rather than deleted
so memberships and transactions keep their owner.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.core.clock import utcnow
from eventhub.core.exceptions import CannotDeactivateSelf, EmailTaken, NotFound
from eventhub.core.security import ensure_owner_or_admin
from eventhub.models.event import Event, EventRegistration
from eventhub.models.user import User
from eventhub.schemas.user import UserUpdateRequest

logger = logging.getLogger(__name__)

ADMIN_ONLY_FIELDS = ("role", "is_active")


class UserService:

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> User:
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFound(f"User {user_id} not found")
        return user

    def update(self, actor: User, user_id: str, request: UserUpdateRequest) -> User:
        """Edit a profile (self or admin). Non-admins cannot change role or activation."""
        ensure_owner_or_admin(actor, user_id, "update")
        user = self.get(user_id)

        updates = request.model_dump(exclude_unset=True, exclude_none=True)
        if not actor.is_admin:
            for field in ADMIN_ONLY_FIELDS:
                updates.pop(field, None)

        if "email" in updates:
            updates["email"] = updates["email"].lower()
            if updates["email"] != user.email:
                taken = self.db.query(User).filter(User.email == updates["email"]).first()
                if taken is not None:
                    raise EmailTaken()

        for field, value in updates.items():
            setattr(user, field, value)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise EmailTaken()
        self.db.refresh(user)

        logger.info(f"User {user.user_id} updated by {actor.user_id}: {sorted(updates)}")
        return user

    def deactivate(self, admin: User, user_id: str) -> User:
        if admin.user_id == user_id:
            raise CannotDeactivateSelf()

        user = self.get(user_id)
        user.is_active = False
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"User {user_id} deactivated by admin {admin.user_id}")
        return user

    def stats(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        by_role = dict(self.db.query(User.role, func.count(User.user_id)).group_by(User.role).all())
        total = sum(by_role.values())
        active = self.db.query(func.count(User.user_id)).filter(User.is_active.is_(True)).scalar()
        recent = (
            self.db.query(func.count(User.user_id))
            .filter(User.created_at >= now - timedelta(days=30))
            .scalar()
        )
        return {
            "total_users": total,
            "active_users": active,
            "inactive_users": total - active,
            "admin_users": by_role.get("admin", 0),
            "regular_users": by_role.get("user", 0),
            "recent_users": recent,
        }

    def dashboard(self, user: User, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        registrations = self.db.query(func.count(EventRegistration.id)).filter(
            EventRegistration.user_id == user.user_id
        )
        return {
            "events_created": (
                self.db.query(func.count(Event.id)).filter(Event.organizer_id == user.user_id).scalar()
            ),
            "events_registered": registrations.scalar(),
            "events_attended": (
                registrations.filter(EventRegistration.attendance_status == "attended").scalar()
            ),
            "upcoming_events": (
                registrations
                .join(Event, Event.id == EventRegistration.event_id)
                .filter(Event.start_date >= now)
                .scalar()
            ),
        }

    def upcoming_events(self, user: User, now: Optional[datetime] = None, limit: int = 5) -> list[Event]:
        """Next events the user organizes or is registered for."""
        now = now or utcnow()
        registered = select(EventRegistration.event_id).where(EventRegistration.user_id == user.user_id)
        return (
            self.db.query(Event)
            .filter(
                or_(Event.organizer_id == user.user_id, Event.id.in_(registered)),
                Event.start_date >= now,
            )
            .order_by(Event.start_date)
            .limit(limit)
            .all()
        )
