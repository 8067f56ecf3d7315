"""
Membership model: a user's paid, time-bounded access window.

Derived fields (end_date, renewal_date, default amount, benefits) are filled
by ``MembershipCalculator.normalize`` before writes, never by ORM hooks.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String, Boolean, DateTime, ForeignKey, Index, Integer, JSON, Numeric, text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.core.clock import utcnow
from eventhub.core.database import Base
from eventhub.services.membership_calculator import MembershipCalculator


# Only an active membership can change status; the rest are terminal.
# "suspended" has no exit: nothing in the API reactivates it.
STATUS_TRANSITIONS = {
    "active": {"expired", "cancelled", "suspended"},
    "expired": set(),
    "cancelled": set(),
    "suspended": set(),
}


class Membership(Base):
    __tablename__ = "memberships"
    __table_args__ = (
        # At most one active membership per user, enforced by the database
        Index(
            "uq_memberships_one_active_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("status = 'active'"),
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_memberships_user_status", "user_id", "status"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="Membership identifier (UUID)"
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.user_id"),
        nullable=False,
        index=True,
        doc="Owning user"
    )
    membership_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        doc="Plan: 6months, 1year, 2years"
    )
    start_date: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        default=utcnow,
        doc="Start of the access window"
    )
    end_date: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        index=True,
        doc="End of the access window, derived from plan and start date"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="active",
        doc="active, expired, cancelled, suspended"
    )
    payment_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        doc="pending, completed, failed, refunded"
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="Price paid; defaults to the plan price"
    )
    payment_method: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="card",
        doc="card, bank_transfer, cash, online"
    )
    transaction_id: Mapped[Optional[str]] = mapped_column(
        String(40),
        unique=True,
        nullable=True,
        doc="Public id of the paired purchase transaction"
    )
    benefits: Mapped[list] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Plan benefits captured at creation"
    )
    discount_percentage: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0"),
    )
    renewal_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        doc="Renewal reminder threshold"
    )
    auto_renewal: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    user = relationship("User", back_populates="memberships", foreign_keys=[user_id])

    def is_active(self, now: Optional[datetime] = None) -> bool:
        return MembershipCalculator.is_active(self.status, self.end_date, now)

    def is_expiring_soon(self, now: Optional[datetime] = None) -> bool:
        return MembershipCalculator.is_expiring_soon(self.end_date, now)

    def get_remaining_days(self, now: Optional[datetime] = None) -> int:
        return MembershipCalculator.remaining_days(self.end_date, now)

    def get_duration_in_days(self) -> int:
        return MembershipCalculator.duration_days(self.start_date, self.end_date)

    def can_transition_to(self, status: str) -> bool:
        return status == self.status or status in STATUS_TRANSITIONS.get(self.status, set())

    def __repr__(self) -> str:
        return (
            f"<Membership(id={self.id}, user={self.user_id}, "
            f"type={self.membership_type}, status={self.status})>"
        )
