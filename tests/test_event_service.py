"""
Tests for events: editing and visibility, registration capacity, duplicates,
the unregister cutoff and the attendee counter under concurrent requests.
"""
import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import make_event, make_user
from eventhub.core.clock import utcnow
from eventhub.core.exceptions import (
    AlreadyRegistered,
    EventFull,
    EventHasAttendees,
    EventLocked,
    EventNotOpen,
    NotFound,
    NotRegistered,
    PermissionDenied,
    UnregisterWindowClosed,
    ValidationFailed,
)
from eventhub.models.event import Event, EventRegistration
from eventhub.models.user import User
from eventhub.schemas.common import PageParams
from eventhub.schemas.event import EventCreateRequest, EventUpdateRequest
from eventhub.services.event_service import EventService


class TestCreateAndSearch:

    def test_create_sets_organizer(self, db_session, member):
        start = utcnow() + timedelta(days=3)
        event = EventService(db_session).create(member, EventCreateRequest(
            title="Data Workshop",
            description="Hands-on pandas",
            category="Workshop",
            start_date=start,
            end_date=start + timedelta(hours=2),
            max_attendees=20,
        ))

        assert event.organizer_id == member.user_id
        assert event.status == "draft"
        assert event.current_attendees == 0

    def test_end_must_follow_start(self):
        start = utcnow()
        with pytest.raises(ValueError):
            EventCreateRequest(
                title="Backwards", description="x", category="Other",
                start_date=start, end_date=start - timedelta(hours=1), max_attendees=5,
            )

    def test_unknown_format_rejected(self):
        start = utcnow()
        with pytest.raises(ValueError):
            EventCreateRequest(
                title="Stream", description="x", category="Other", event_type="virtual",
                start_date=start, end_date=start + timedelta(hours=1), max_attendees=5,
            )
        with pytest.raises(ValueError):
            EventUpdateRequest(status="archived")

    def test_public_search_hides_drafts(self, db_session, admin):
        make_event(db_session, admin, title="Open Day")
        make_event(db_session, admin, title="Planning", status="draft")
        service = EventService(db_session)

        public, public_total = service.search(PageParams())
        everything, total = service.search(PageParams(), include_unpublished=True)
        drafts, _ = service.search(PageParams(), status="draft", include_unpublished=True)

        assert [e.title for e in public] == ["Open Day"]
        assert (public_total, total) == (1, 2)
        assert [e.title for e in drafts] == ["Planning"]

    def test_search_matches_title_or_description(self, db_session, admin):
        make_event(db_session, admin, title="Python Night")
        make_event(db_session, admin, title="Board Games", description="Bring your python friends")
        make_event(db_session, admin, title="Yoga")

        events, total = EventService(db_session).search(PageParams(), search="python")
        assert total == 2


class TestRegister:

    def test_register_free_event(self, db_session, admin, member):
        event = make_event(db_session, admin)

        event, registration = EventService(db_session).register(member, event.id)

        assert event.current_attendees == 1
        assert registration.payment_status == "completed"
        assert registration.attendance_status == "registered"
        assert event.is_user_registered(member.user_id)

    def test_paid_event_leaves_payment_pending(self, db_session, admin, member):
        event = make_event(db_session, admin, registration_fee=Decimal("25"))
        _, registration = EventService(db_session).register(member, event.id)
        assert registration.payment_status == "pending"

    def test_duplicate_registration(self, db_session, admin, member):
        event = make_event(db_session, admin)
        service = EventService(db_session)
        service.register(member, event.id)

        with pytest.raises(AlreadyRegistered):
            service.register(member, event.id)

        db_session.refresh(event)
        assert event.current_attendees == 1

    def test_full_event(self, db_session, admin, member, other_member):
        event = make_event(db_session, admin, max_attendees=1)
        service = EventService(db_session)
        service.register(member, event.id)

        with pytest.raises(EventFull):
            service.register(other_member, event.id)

        db_session.refresh(event)
        assert event.current_attendees == 1
        assert db_session.query(EventRegistration).count() == 1

    def test_draft_event_is_closed(self, db_session, admin, member):
        event = make_event(db_session, admin, status="draft")
        with pytest.raises(EventNotOpen):
            EventService(db_session).register(member, event.id)

    def test_past_event_is_closed(self, db_session, admin, member):
        start = utcnow() - timedelta(days=1)
        event = make_event(db_session, admin, start_date=start, end_date=start + timedelta(hours=2))

        with pytest.raises(EventNotOpen) as exc_info:
            EventService(db_session).register(member, event.id)
        assert exc_info.value.message == "Cannot register for past events"

    def test_unknown_event(self, db_session, member):
        with pytest.raises(NotFound):
            EventService(db_session).register(member, "missing")


class TestConcurrentRegistration:

    def test_last_seat_goes_to_exactly_one(self, file_engine):
        Session = sessionmaker(bind=file_engine, autoflush=False)
        with Session() as db:
            organizer = make_user(db, "org.anizer@example.com", role="admin")
            event_id = make_event(db, organizer, max_attendees=1).id
            user_ids = [
                make_user(db, "first.racer@example.com").user_id,
                make_user(db, "second.racer@example.com").user_id,
            ]

        barrier = threading.Barrier(2)
        results = []

        def attempt(user_id):
            db = Session()
            try:
                user = db.get(User, user_id)
                db.commit()
                barrier.wait()
                EventService(db).register(user, event_id)
                results.append("ok")
            except EventFull:
                results.append("full")
            except Exception as e:
                results.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=attempt, args=(uid,)) for uid in user_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert sorted(map(str, results)) == ["full", "ok"]
        with Session() as db:
            event = db.get(Event, event_id)
            assert event.current_attendees == 1
            assert len(event.registrations) == 1

    def test_second_unregister_of_same_row_keeps_counter(self, db_session, admin, member, other_member,
                                                          monkeypatch):
        event = make_event(db_session, admin)
        service = EventService(db_session)
        _, registration = service.register(member, event.id)
        service.register(other_member, event.id)
        registration_id = registration.id

        service.unregister(member, event.id)

        # A second request read the same row before the first one deleted it
        stale = EventRegistration(id=registration_id, event_id=event.id, user_id=member.user_id)
        monkeypatch.setattr(EventService, "_registration", lambda self, event_id, user_id: stale)

        with pytest.raises(NotRegistered):
            service.unregister(member, event.id)

        db_session.refresh(event)
        assert event.current_attendees == 1
        assert [r.user_id for r in event.registrations] == [other_member.user_id]


class TestUnregister:

    def test_unregister_frees_the_seat(self, db_session, admin, member):
        event = make_event(db_session, admin)
        service = EventService(db_session)
        service.register(member, event.id)

        event = service.unregister(member, event.id)

        assert event.current_attendees == 0
        assert db_session.query(EventRegistration).count() == 0

    def test_not_registered(self, db_session, admin, member):
        event = make_event(db_session, admin)
        with pytest.raises(NotRegistered):
            EventService(db_session).unregister(member, event.id)

    def test_closed_within_a_day_of_start(self, db_session, admin, member):
        event = make_event(db_session, admin)
        service = EventService(db_session)
        service.register(member, event.id)

        late = event.start_date - timedelta(hours=12)
        with pytest.raises(UnregisterWindowClosed):
            service.unregister(member, event.id, now=late)

        db_session.refresh(event)
        assert event.current_attendees == 1

    def test_my_events(self, db_session, admin, member):
        first = make_event(db_session, admin, title="Later", start_date=utcnow() + timedelta(days=20),
                           end_date=utcnow() + timedelta(days=20, hours=2))
        second = make_event(db_session, admin, title="Sooner")
        make_event(db_session, admin, title="Skipped")
        service = EventService(db_session)
        service.register(member, first.id)
        service.register(member, second.id)

        rows = service.my_events(member)

        assert [event.title for event, _ in rows] == ["Sooner", "Later"]
        assert all(reg.user_id == member.user_id for _, reg in rows)


class TestEditEvents:

    def test_organizer_publishes_draft(self, db_session, member):
        event = make_event(db_session, member, status="draft")

        event = EventService(db_session).update(member, event.id, EventUpdateRequest(
            status="published", venue_name="Hall B",
        ))

        assert event.status == "published"
        assert event.venue_name == "Hall B"
        assert event.title == "Spring Meetup"

    def test_only_organizer_or_admin(self, db_session, member, other_member):
        event = make_event(db_session, member)
        with pytest.raises(PermissionDenied):
            EventService(db_session).update(other_member, event.id, EventUpdateRequest(title="Mine now"))

    def test_cancelled_event_locked_for_organizer(self, db_session, admin, member):
        event = make_event(db_session, member, status="cancelled")
        service = EventService(db_session)

        with pytest.raises(EventLocked):
            service.update(member, event.id, EventUpdateRequest(status="published"))

        event = service.update(admin, event.id, EventUpdateRequest(status="published"))
        assert event.status == "published"

    def test_capacity_cannot_drop_below_registrations(self, db_session, admin, member, other_member):
        event = make_event(db_session, admin, max_attendees=5)
        service = EventService(db_session)
        service.register(member, event.id)
        service.register(other_member, event.id)

        with pytest.raises(ValidationFailed) as exc_info:
            service.update(admin, event.id, EventUpdateRequest(max_attendees=1))
        assert exc_info.value.errors[0]["field"] == "max_attendees"
        db_session.refresh(event)
        assert event.max_attendees == 5

        event = service.update(admin, event.id, EventUpdateRequest(max_attendees=2))
        assert event.max_attendees == 2

    def test_dates_checked_against_stored_values(self, db_session, member):
        event = make_event(db_session, member)

        with pytest.raises(ValidationFailed) as exc_info:
            EventService(db_session).update(member, event.id, EventUpdateRequest(
                end_date=event.start_date - timedelta(hours=1),
            ))
        assert exc_info.value.errors[0]["field"] == "end_date"

    def test_organizer_cannot_delete_with_registrations(self, db_session, member, other_member):
        event = make_event(db_session, member)
        service = EventService(db_session)
        service.register(other_member, event.id)

        with pytest.raises(EventHasAttendees):
            service.delete(member, event.id)
        assert db_session.get(Event, event.id) is not None

    def test_organizer_deletes_empty_event(self, db_session, member):
        event = make_event(db_session, member)
        EventService(db_session).delete(member, event.id)
        assert db_session.query(Event).count() == 0

    def test_admin_delete_removes_registrations(self, db_session, admin, member, other_member):
        event = make_event(db_session, member)
        service = EventService(db_session)
        service.register(other_member, event.id)

        service.delete(admin, event.id)

        assert db_session.query(Event).count() == 0
        assert db_session.query(EventRegistration).count() == 0

    def test_organized_newest_first(self, db_session, admin, member):
        now = utcnow()
        make_event(db_session, member, title="Older", created_at=now - timedelta(days=2))
        make_event(db_session, member, title="Newer", status="draft", created_at=now - timedelta(days=1))
        make_event(db_session, admin, title="Someone else's")

        events = EventService(db_session).organized(member)

        assert [e.title for e in events] == ["Newer", "Older"]


class TestVisibility:

    def test_draft_hidden_from_everyone_but_owner_and_admin(self, db_session, admin, member, other_member):
        event = make_event(db_session, member, status="draft")
        service = EventService(db_session)

        for viewer in (None, other_member):
            with pytest.raises(NotFound):
                service.get_visible(event.id, viewer)
        assert service.get_visible(event.id, member).id == event.id
        assert service.get_visible(event.id, admin).id == event.id

    def test_published_is_public(self, db_session, admin):
        event = make_event(db_session, admin)
        assert EventService(db_session).get_visible(event.id).id == event.id
