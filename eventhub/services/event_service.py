"""
Event Service.

Registration keeps ``Event.current_attendees`` equal to the number of
registration rows: the counter moves through a conditional UPDATE in the same
database transaction as the row insert/delete, so capacity holds under
concurrent requests.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.core.clock import utcnow
from eventhub.core.config import get_settings
from eventhub.core.exceptions import (
    AlreadyRegistered,
    EventFull,
    EventHasAttendees,
    EventLocked,
    EventNotOpen,
    NotFound,
    NotRegistered,
    UnregisterWindowClosed,
    ValidationFailed,
)
from eventhub.core.security import ensure_owner_or_admin
from eventhub.models.event import Event, EventRegistration
from eventhub.models.user import User
from eventhub.schemas.common import DateRange, PageParams
from eventhub.schemas.event import EventCreateRequest, EventUpdateRequest

logger = logging.getLogger(__name__)
settings = get_settings()

# Organizers may no longer edit events in these states; admins still can
LOCKED_STATUSES = ("completed", "cancelled")


class EventService:

    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str) -> Event:
        event = self.db.get(Event, event_id)
        if event is None:
            raise NotFound("Event not found")
        return event

    def create(self, organizer: User, request: EventCreateRequest) -> Event:
        event = Event(organizer_id=organizer.user_id, **request.model_dump())
        self.db.add(event)
        self.db.commit()
        self.db.refresh(event)

        logger.info(f"Event {event.id} '{event.title}' created by {organizer.user_id}")
        return event

    def get_visible(self, event_id: str, viewer: Optional[User] = None) -> Event:
        """Unpublished events exist only for their organizer and admins."""
        event = self.get(event_id)
        if event.status != "published":
            if viewer is None or not (viewer.is_admin or viewer.user_id == event.organizer_id):
                raise NotFound("Event not found")
        return event

    def update(self, actor: User, event_id: str, request: EventUpdateRequest) -> Event:
        """
        Edit an event (organizer or admin).

        Raises:
            EventLocked: a non-admin edits a completed or cancelled event.
            ValidationFailed: dates out of order, or capacity below the
                registrations already taken.
        """
        event = self.get(event_id)
        ensure_owner_or_admin(actor, event.organizer_id, "update")
        if not actor.is_admin and event.status in LOCKED_STATUSES:
            raise EventLocked()

        updates = request.model_dump(exclude_unset=True, exclude_none=True)
        start = updates.get("start_date", event.start_date)
        end = updates.get("end_date", event.end_date)
        if end <= start:
            raise ValidationFailed.for_field("end_date", "End date must be after start date", end.isoformat())

        max_attendees = updates.pop("max_attendees", None)
        if max_attendees is not None:
            # Guarded like registration so a concurrent signup cannot end up over capacity
            resized = self.db.execute(
                update(Event)
                .where(Event.id == event.id, Event.current_attendees <= max_attendees)
                .values(max_attendees=max_attendees)
                .execution_options(synchronize_session=False)
            )
            if resized.rowcount == 0:
                self.db.rollback()
                raise ValidationFailed.for_field(
                    "max_attendees", "Maximum attendees cannot be below current registrations", max_attendees
                )

        for field, value in updates.items():
            setattr(event, field, value)
        self.db.commit()
        self.db.refresh(event)

        changed = sorted(updates) + (["max_attendees"] if max_attendees is not None else [])
        logger.info(f"Event {event.id} updated by {actor.user_id}: {changed}")
        return event

    def delete(self, actor: User, event_id: str) -> None:
        """Delete an event and its registrations; organizers only while nobody is registered."""
        event = self.get(event_id)
        ensure_owner_or_admin(actor, event.organizer_id, "delete")
        if not actor.is_admin and event.registrations:
            raise EventHasAttendees()

        removed = len(event.registrations)
        self.db.delete(event)
        self.db.commit()

        logger.info(f"Event {event_id} deleted by {actor.user_id} with {removed} registration(s)")

    def organized(self, organizer: User) -> list[Event]:
        return (
            self.db.query(Event)
            .filter(Event.organizer_id == organizer.user_id)
            .order_by(Event.created_at.desc())
            .all()
        )

    def search(
        self,
        page: PageParams,
        dates: Optional[DateRange] = None,
        category: Optional[str] = None,
        event_type: Optional[str] = None,
        search: Optional[str] = None,
        status: Optional[str] = None,
        include_unpublished: bool = False,
    ) -> tuple[list[Event], int]:
        """
        Paginated event listing ordered by start date.

        Only published events are visible unless ``include_unpublished`` is
        set (admins), in which case ``status`` filters freely.
        """
        query = self.db.query(Event)
        if not include_unpublished:
            query = query.filter(Event.status == "published")
        elif status:
            query = query.filter(Event.status == status)

        if category:
            query = query.filter(Event.category == category)
        if event_type:
            query = query.filter(Event.event_type == event_type)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(Event.title.ilike(pattern), Event.description.ilike(pattern)))
        if dates and dates.start_date:
            query = query.filter(Event.start_date >= dates.start_date)
        if dates and dates.end_date:
            query = query.filter(Event.start_date <= dates.end_date)

        total = query.count()
        events = (
            query
            .order_by(Event.start_date)
            .offset(page.offset)
            .limit(page.limit)
            .all()
        )
        return events, total

    def register(self, user: User, event_id: str, now: Optional[datetime] = None) -> tuple[Event, EventRegistration]:
        """
        Register the user for a published, upcoming event.

        Raises:
            EventNotOpen: event is not published or already started.
            AlreadyRegistered: a registration row exists for this user.
            EventFull: no seat left at the moment of the update.
        """
        now = now or utcnow()
        event = self.get(event_id)

        if event.status != "published":
            raise EventNotOpen()
        if event.start_date < now:
            raise EventNotOpen("Cannot register for past events")
        if self._registration(event.id, user.user_id) is not None:
            raise AlreadyRegistered()

        registration = EventRegistration(
            event_id=event.id,
            user_id=user.user_id,
            registration_date=now,
            payment_status="pending" if event.registration_fee > 0 else "completed",
        )
        self.db.add(registration)
        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Duplicate registration rejected for user {user.user_id} on event {event_id}")
            raise AlreadyRegistered()

        seat = self.db.execute(
            update(Event)
            .where(Event.id == event.id, Event.current_attendees < Event.max_attendees)
            .values(current_attendees=Event.current_attendees + 1)
            .execution_options(synchronize_session=False)
        )
        if seat.rowcount == 0:
            self.db.rollback()
            logger.warning(f"Registration for user {user.user_id} rejected: event {event_id} is full")
            raise EventFull()

        self.db.commit()
        self.db.refresh(event)
        self.db.refresh(registration)

        logger.info(
            f"User {user.user_id} registered for event {event.id} "
            f"({event.current_attendees}/{event.max_attendees})"
        )
        return event, registration

    def unregister(self, user: User, event_id: str, now: Optional[datetime] = None) -> Event:
        now = now or utcnow()
        event = self.get(event_id)

        registration = self._registration(event.id, user.user_id)
        if registration is None:
            raise NotRegistered()
        if now > event.start_date - timedelta(hours=settings.UNREGISTER_CUTOFF_HOURS):
            raise UnregisterWindowClosed()

        # Only the request that actually removes the row may free the seat
        deleted = self.db.execute(
            delete(EventRegistration)
            .where(EventRegistration.id == registration.id)
            .execution_options(synchronize_session=False)
        ).rowcount
        if deleted != 1:
            self.db.rollback()
            logger.warning(f"Unregister for user {user.user_id} on event {event_id} lost to a concurrent request")
            raise NotRegistered()

        self.db.execute(
            update(Event)
            .where(Event.id == event.id, Event.current_attendees > 0)
            .values(current_attendees=Event.current_attendees - 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(event)

        logger.info(f"User {user.user_id} unregistered from event {event.id}")
        return event

    def my_events(self, user: User) -> list[tuple[Event, EventRegistration]]:
        rows = (
            self.db.query(Event, EventRegistration)
            .join(EventRegistration, EventRegistration.event_id == Event.id)
            .filter(EventRegistration.user_id == user.user_id)
            .order_by(Event.start_date)
            .all()
        )
        return [(event, registration) for event, registration in rows]

    def _registration(self, event_id: str, user_id: str) -> Optional[EventRegistration]:
        return (
            self.db.query(EventRegistration)
            .filter(EventRegistration.event_id == event_id, EventRegistration.user_id == user_id)
            .first()
        )
