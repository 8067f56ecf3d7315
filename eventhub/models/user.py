"""
User model. Credentials live with the upstream identity provider; this table
only carries profile, role and activation state.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.core.clock import utcnow
from eventhub.core.database import Base


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="Unique user identifier (UUID)"
    )
    first_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Given name"
    )
    last_name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        doc="Family name"
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        doc="User email address"
    )
    phone: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True,
        doc="Contact phone number"
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="user",
        doc="Role: user, admin"
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Deactivated users cannot call the API"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True,
        doc="Account registration timestamp"
    )

    memberships = relationship(
        "Membership",
        back_populates="user",
        foreign_keys="Membership.user_id",
        lazy="select",
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def __repr__(self) -> str:
        return f"<User(user_id={self.user_id}, email={self.email}, role={self.role})>"
