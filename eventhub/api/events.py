"""
Events API endpoints.
Public listing and lookup of published events; creating, editing and
deleting events, registration and the caller's own events require an
identified user.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventhub.api.deps import date_range_params, page_params
from eventhub.core.database import get_db
from eventhub.core.security import get_current_user, get_optional_user
from eventhub.models.user import User
from eventhub.schemas.common import ApiResponse, DateRange, PageParams, Pagination
from eventhub.schemas.event import (
    EventCategory,
    EventCollectionData,
    EventCreateRequest,
    EventData,
    EventListData,
    EventResponse,
    EventStatus,
    EventType,
    EventUpdateRequest,
    MyEventResponse,
    MyEventsData,
    RegistrationInfo,
    RegistrationResult,
)
from eventhub.services.event_service import EventService

router = APIRouter(prefix="/events", tags=["Events"])


@router.get("", response_model=ApiResponse[EventListData])
async def list_events(
    category: Optional[EventCategory] = Query(None, description="Filter: category"),
    event_type: Optional[EventType] = Query(None, description="Filter: format"),
    search: Optional[str] = Query(None, max_length=100, description="Match title or description"),
    status: Optional[EventStatus] = Query(None, description="Filter: status (admins only)"),
    dates: DateRange = Depends(date_range_params),
    page: PageParams = Depends(page_params),
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """List events by start date. Non-admins only see published events."""
    is_admin = user is not None and user.is_admin
    events, total = EventService(db).search(
        page,
        dates,
        category=category,
        event_type=event_type,
        search=search,
        status=status,
        include_unpublished=is_admin,
    )
    return ApiResponse(data=EventListData(
        events=[EventResponse.model_validate(e) for e in events],
        pagination=Pagination.build(page, total),
    ))


@router.post("", response_model=ApiResponse[EventData], status_code=201)
async def create_event(
    request: EventCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create an event organized by the caller."""
    event = EventService(db).create(user, request)
    return ApiResponse(message="Event created successfully", data=EventData(event=EventResponse.model_validate(event)))


@router.get("/mine", response_model=ApiResponse[MyEventsData])
async def get_my_events(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Events the caller is registered for, with their own registration row."""
    rows = EventService(db).my_events(user)
    return ApiResponse(data=MyEventsData(events=[
        MyEventResponse(
            **EventResponse.model_validate(event).model_dump(),
            user_registration=RegistrationInfo.model_validate(registration),
        )
        for event, registration in rows
    ]))


@router.get("/organized", response_model=ApiResponse[EventCollectionData])
async def get_organized_events(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Events organized by the caller, newest first, in every status."""
    events = EventService(db).organized(user)
    return ApiResponse(data=EventCollectionData(events=[EventResponse.model_validate(e) for e in events]))


@router.get("/{event_id}", response_model=ApiResponse[EventData])
async def get_event(
    event_id: str,
    user: Optional[User] = Depends(get_optional_user),
    db: Session = Depends(get_db),
):
    """Published events are public; drafts only reach their organizer and admins."""
    event = EventService(db).get_visible(event_id, user)
    return ApiResponse(data=EventData(event=EventResponse.model_validate(event)))


@router.put("/{event_id}", response_model=ApiResponse[EventData])
async def update_event(
    event_id: str,
    request: EventUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Edit an event (organizer or admin), including publishing or cancelling it."""
    event = EventService(db).update(user, event_id, request)
    return ApiResponse(message="Event updated successfully", data=EventData(event=EventResponse.model_validate(event)))


@router.delete("/{event_id}", response_model=ApiResponse[dict])
async def delete_event(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    EventService(db).delete(user, event_id)
    return ApiResponse(message="Event deleted successfully", data={"event_id": event_id})


@router.post("/{event_id}/register", response_model=ApiResponse[RegistrationResult])
async def register_for_event(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event, registration = EventService(db).register(user, event_id)
    return ApiResponse(
        message="Successfully registered for event",
        data=RegistrationResult(
            event_id=event.id,
            registration_date=registration.registration_date,
            payment_required=event.registration_fee > 0,
            current_attendees=event.current_attendees,
        ),
    )


@router.delete("/{event_id}/register", response_model=ApiResponse[EventData])
async def unregister_from_event(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cancel the caller's registration; closed within 24 hours of the start."""
    event = EventService(db).unregister(user, event_id)
    return ApiResponse(
        message="Successfully unregistered from event",
        data=EventData(event=EventResponse.model_validate(event)),
    )
