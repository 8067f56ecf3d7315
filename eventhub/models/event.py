"""
Event and EventRegistration models.

``current_attendees`` mirrors the number of registration rows; both change in
the same database transaction, and the capacity check is a conditional
UPDATE so concurrent registrations cannot overshoot ``max_attendees``.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String, DateTime, ForeignKey, Integer, Numeric, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.core.clock import utcnow
from eventhub.core.database import Base


class Event(Base):
    __tablename__ = "events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    start_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    venue_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    event_type: Mapped[str] = mapped_column(String(20), nullable=False, default="offline")
    organizer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=False)
    registration_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    max_attendees: Mapped[int] = mapped_column(Integer, nullable=False)
    current_attendees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    organizer = relationship("User", foreign_keys=[organizer_id])
    registrations = relationship(
        "EventRegistration",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventRegistration.registration_date",
    )

    def is_user_registered(self, user_id: str) -> bool:
        return any(r.user_id == user_id for r in self.registrations)

    @property
    def attendance_rate(self) -> float:
        if not self.max_attendees:
            return 0.0
        return self.current_attendees / self.max_attendees * 100

    def __repr__(self) -> str:
        return f"<Event(id={self.id}, title={self.title}, {self.current_attendees}/{self.max_attendees})>"


class EventRegistration(Base):
    __tablename__ = "event_registrations"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_registrations_event_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=False, index=True)
    registration_date: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    attendance_status: Mapped[str] = mapped_column(String(20), nullable=False, default="registered")

    event = relationship("Event", back_populates="registrations")
    user = relationship("User")
