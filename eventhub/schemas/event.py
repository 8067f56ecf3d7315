"""Pydantic schemas for the Event API."""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator

from eventhub.schemas.common import Money, Pagination, UtcDateTime

EventCategory = Literal[
    "Conference", "Workshop", "Seminar", "Networking", "Training",
    "Social", "Sports", "Cultural", "Other",
]
EventStatus = Literal["draft", "published", "cancelled", "completed"]
EventType = Literal["online", "offline", "hybrid"]
RegistrationPaymentStatus = Literal["pending", "completed", "failed"]
AttendanceStatus = Literal["registered", "attended", "absent"]


class EventCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    category: EventCategory
    start_date: UtcDateTime
    end_date: UtcDateTime
    venue_name: Optional[str] = Field(None, max_length=200)
    event_type: EventType = "offline"
    registration_fee: Money = Field(Decimal("0"), ge=0)
    max_attendees: int = Field(..., ge=1)
    status: EventStatus = "draft"

    model_config = {"str_strip_whitespace": True}

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date <= self.start_date:
            raise ValueError("End date must be after start date")
        return self


class EventUpdateRequest(BaseModel):
    """Partial event edit; dates are re-checked against the stored values."""
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    category: Optional[EventCategory] = None
    start_date: Optional[UtcDateTime] = None
    end_date: Optional[UtcDateTime] = None
    venue_name: Optional[str] = Field(None, max_length=200)
    event_type: Optional[EventType] = None
    registration_fee: Optional[Money] = Field(None, ge=0)
    max_attendees: Optional[int] = Field(None, ge=1)
    status: Optional[EventStatus] = None

    model_config = {"str_strip_whitespace": True}


class EventResponse(BaseModel):
    id: str
    title: str
    description: str
    category: str
    start_date: datetime
    end_date: datetime
    venue_name: Optional[str] = None
    event_type: str
    organizer_id: str
    registration_fee: Money
    max_attendees: int
    current_attendees: int
    status: EventStatus
    created_at: datetime

    model_config = {"from_attributes": True}


class EventData(BaseModel):
    event: EventResponse


class EventListData(BaseModel):
    events: list[EventResponse]
    pagination: Pagination


class EventCollectionData(BaseModel):
    """Unpaginated event list (organized or upcoming events)."""
    events: list[EventResponse]


class RegistrationResult(BaseModel):
    event_id: str
    registration_date: datetime
    payment_required: bool
    current_attendees: int


class RegistrationInfo(BaseModel):
    """The caller's own registration row for an event."""
    registration_date: datetime
    payment_status: RegistrationPaymentStatus
    attendance_status: AttendanceStatus

    model_config = {"from_attributes": True}


class MyEventResponse(EventResponse):
    user_registration: RegistrationInfo


class MyEventsData(BaseModel):
    events: list[MyEventResponse]
