"""
Tests for the membership lifecycle: purchase, cancel, admin edit/delete,
lazy expiry and the one-active-membership rule under concurrency.
"""
import threading
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from conftest import make_user
from eventhub.core.clock import utcnow
from eventhub.core.exceptions import (
    ConcurrentModificationError,
    DuplicateActiveMembership,
    InvalidMembershipType,
    InvalidStatusTransition,
    NotFound,
    PermissionDenied,
    ValidationFailed,
)
from eventhub.models.membership import Membership
from eventhub.models.transaction import EventRef, Transaction
from eventhub.models.user import User
from eventhub.schemas.common import PageParams
from eventhub.schemas.membership import (
    AdminMembershipCreateRequest,
    MembershipCreateRequest,
    MembershipPurchaseRequest,
    MembershipUpdateRequest,
)
from eventhub.services.membership_calculator import MembershipCalculator
from eventhub.services.membership_service import MembershipService
from eventhub.services.transaction_calculator import TransactionCalculator


def purchase(db, user, plan_id="1year", **kwargs):
    return MembershipService(db).purchase(user, MembershipPurchaseRequest(plan_id=plan_id, **kwargs))


def lapsed_membership(db, user) -> Membership:
    """An 'active' row whose end date passed two months ago."""
    membership = Membership(
        user_id=user.user_id,
        membership_type="6months",
        start_date=utcnow() - timedelta(days=240),
        status="active",
        payment_status="completed",
        payment_method="card",
    )
    MembershipCalculator.normalize(membership, is_new=True)
    db.add(membership)
    db.commit()
    return membership


class TestPurchase:

    def test_purchase_creates_membership_and_paired_transaction(self, db_session, member):
        membership, transaction = purchase(db_session, member)

        assert membership.status == "active"
        assert membership.payment_status == "completed"
        assert membership.amount == Decimal("499")
        assert membership.transaction_id == transaction.transaction_id
        assert membership.created_by == member.user_id

        assert transaction.type == "membership"
        assert transaction.related_item.id == membership.id
        assert transaction.status == "completed"
        assert transaction.net_amount == Decimal("499")
        assert transaction.receipt_number.startswith("RCP")
        assert transaction.processed_at is not None

    def test_purchase_by_duration_with_custom_amount(self, db_session, member):
        membership, transaction = MembershipService(db_session).purchase(
            member, MembershipPurchaseRequest(duration="6 months", amount=Decimal("250"), plan_name="Starter")
        )

        assert membership.membership_type == "6months"
        assert membership.amount == Decimal("250")
        assert transaction.description == "Starter membership purchase"

    def test_purchase_needs_plan_or_duration(self, db_session, member):
        with pytest.raises(ValidationFailed):
            MembershipService(db_session).purchase(member, MembershipPurchaseRequest())

    def test_unknown_plan_is_rejected(self, db_session, member):
        with pytest.raises(InvalidMembershipType):
            purchase(db_session, member, plan_id="lifetime")
        assert db_session.query(Membership).count() == 0

    def test_create_leaves_payment_pending(self, db_session, member):
        membership, transaction = MembershipService(db_session).create(
            member, MembershipCreateRequest(membership_type="2years", payment_method="bank_transfer")
        )

        assert membership.payment_status == "pending"
        assert membership.benefits == MembershipCalculator.get_benefits("2years")
        assert transaction.status == "pending"
        assert transaction.receipt_number is None

    def test_second_active_membership_is_rejected(self, db_session, member):
        purchase(db_session, member)

        with pytest.raises(DuplicateActiveMembership):
            purchase(db_session, member, plan_id="2years")

        assert db_session.query(Membership).count() == 1
        assert db_session.query(Transaction).count() == 1

    def test_racing_purchase_is_caught_by_unique_index(self, db_session, member, monkeypatch):
        """Simulate the losing side of a race: the pre-check saw no active membership."""
        purchase(db_session, member)
        monkeypatch.setattr(MembershipService, "active_for", lambda self, user_id: None)

        with pytest.raises(DuplicateActiveMembership):
            purchase(db_session, member, plan_id="2years")

        assert db_session.query(Membership).filter_by(user_id=member.user_id).count() == 1
        assert db_session.query(Transaction).count() == 1

    def test_new_purchase_allowed_after_cancel(self, db_session, member):
        first, _ = purchase(db_session, member)
        MembershipService(db_session).cancel(member, first.id)

        second, _ = purchase(db_session, member, plan_id="6months")
        assert second.status == "active"


class TestConcurrentPurchase:

    def test_two_threads_exactly_one_succeeds(self, file_engine):
        Session = sessionmaker(bind=file_engine, autoflush=False)
        with Session() as db:
            user_id = make_user(db, "race.runner@example.com").user_id

        barrier = threading.Barrier(2)
        results = []

        def attempt(plan_id):
            db = Session()
            try:
                user = db.get(User, user_id)
                db.commit()
                barrier.wait()
                purchase(db, user, plan_id=plan_id)
                results.append("ok")
            except DuplicateActiveMembership:
                results.append("duplicate")
            except Exception as e:
                results.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=attempt, args=(plan,)) for plan in ("1year", "2years")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert sorted(map(str, results)) == ["duplicate", "ok"]
        with Session() as db:
            assert db.query(Membership).filter_by(user_id=user_id, status="active").count() == 1
            assert db.query(Transaction).count() == 1


class TestAdminCreate:

    def test_admin_creates_for_user(self, db_session, admin, member):
        membership, transaction = MembershipService(db_session).admin_create(
            admin, AdminMembershipCreateRequest(user_id=member.user_id, duration="2 years")
        )

        assert membership.user_id == member.user_id
        assert membership.created_by == admin.user_id
        assert membership.payment_method == "cash"
        assert transaction.payment_gateway == "manual"
        assert transaction.status == "completed"

    def test_unknown_user(self, db_session, admin):
        with pytest.raises(NotFound):
            MembershipService(db_session).admin_create(
                admin, AdminMembershipCreateRequest(user_id="missing", plan_id="1year")
            )

    def test_user_with_active_membership(self, db_session, admin, member):
        purchase(db_session, member)
        with pytest.raises(DuplicateActiveMembership) as exc_info:
            MembershipService(db_session).admin_create(
                admin, AdminMembershipCreateRequest(user_id=member.user_id, plan_id="1year")
            )
        assert exc_info.value.message == "User already has an active membership"

    def test_invalid_duration(self, db_session, admin, member):
        with pytest.raises(ValidationFailed):
            MembershipService(db_session).admin_create(
                admin, AdminMembershipCreateRequest(user_id=member.user_id, duration="10 years")
            )


class TestCancel:

    def test_owner_cancels_and_end_date_is_kept(self, db_session, member):
        membership, _ = purchase(db_session, member)
        end_date = membership.end_date

        cancelled = MembershipService(db_session).cancel(member, membership.id)

        assert cancelled.status == "cancelled"
        assert cancelled.end_date == end_date
        assert cancelled.updated_by == member.user_id

    def test_cancel_is_irreversible(self, db_session, member):
        membership, _ = purchase(db_session, member)
        service = MembershipService(db_session)
        service.cancel(member, membership.id)

        with pytest.raises(InvalidStatusTransition):
            service.cancel(member, membership.id)

    def test_other_user_cannot_cancel(self, db_session, member, other_member):
        membership, _ = purchase(db_session, member)
        with pytest.raises(PermissionDenied):
            MembershipService(db_session).cancel(other_member, membership.id)

    def test_admin_can_cancel(self, db_session, member, admin):
        membership, _ = purchase(db_session, member)
        assert MembershipService(db_session).cancel(admin, membership.id).status == "cancelled"

    def test_missing_membership(self, db_session, member):
        with pytest.raises(NotFound):
            MembershipService(db_session).cancel(member, "nope")

    def test_stale_write_is_reported_as_conflict(self, file_engine):
        Session = sessionmaker(bind=file_engine, autoflush=False)
        Stale = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)

        with Session() as db:
            owner = make_user(db, "lock.owner@example.com")
            membership, _ = purchase(db, owner)
            membership_id, owner_id = membership.id, owner.user_id

        stale_db = Stale()
        stale_owner = stale_db.get(User, owner_id)
        stale_copy = stale_db.get(Membership, membership_id)
        stale_db.commit()

        with Session() as db:
            MembershipService(db).cancel(db.get(User, owner_id), membership_id)

        assert stale_copy.status == "active"
        with pytest.raises(ConcurrentModificationError):
            MembershipService(stale_db).cancel(stale_owner, membership_id)
        stale_db.close()


class TestAdminUpdate:

    def test_allowlisted_fields_only(self, db_session, member, admin):
        membership, _ = purchase(db_session, member)
        end_date = membership.end_date

        request = MembershipUpdateRequest(**{
            "notes": "Comped upgrade",
            "auto_renewal": True,
            "discount_percentage": Decimal("15"),
            "end_date": "2099-01-01T00:00:00",
            "amount": 1,
        })
        updated = MembershipService(db_session).update(admin, membership.id, request)

        assert updated.notes == "Comped upgrade"
        assert updated.auto_renewal is True
        assert updated.discount_percentage == Decimal("15")
        assert updated.end_date == end_date
        assert updated.amount == Decimal("499")
        assert updated.updated_by == admin.user_id

    def test_suspend_then_no_way_back(self, db_session, member, admin):
        membership, _ = purchase(db_session, member)
        service = MembershipService(db_session)

        assert service.update(admin, membership.id, MembershipUpdateRequest(status="suspended")).status == "suspended"
        with pytest.raises(InvalidStatusTransition):
            service.update(admin, membership.id, MembershipUpdateRequest(status="active"))

    def test_terminal_status_cannot_be_reopened(self, db_session, member, admin):
        membership, _ = purchase(db_session, member)
        service = MembershipService(db_session)
        service.cancel(member, membership.id)

        with pytest.raises(InvalidStatusTransition):
            service.update(admin, membership.id, MembershipUpdateRequest(status="active"))

        db_session.refresh(membership)
        assert membership.status == "cancelled"


class TestDelete:

    def test_delete_removes_related_transactions_only(self, db_session, member, admin):
        membership, _ = purchase(db_session, member)
        other = Transaction(
            user_id=member.user_id,
            type="event_registration",
            related_item=EventRef("event-1"),
            amount=Decimal("20"),
            payment_method="card",
            status="completed",
        )
        TransactionCalculator.normalize(other)
        db_session.add(other)
        db_session.commit()

        removed = MembershipService(db_session).delete(admin, membership.id)

        assert removed == 1
        assert db_session.query(Membership).count() == 0
        assert [t.type for t in db_session.query(Transaction).all()] == ["event_registration"]


class TestLazyExpiry:

    def test_current_lookup_expires_lapsed_membership(self, db_session, member):
        lapsed = lapsed_membership(db_session, member)

        with pytest.raises(NotFound) as exc_info:
            MembershipService(db_session).get_current(member)

        assert exc_info.value.message == "No active membership found"
        db_session.refresh(lapsed)
        assert lapsed.status == "expired"

    def test_purchase_allowed_once_previous_lapsed(self, db_session, member):
        lapsed = lapsed_membership(db_session, member)

        membership, _ = purchase(db_session, member)

        assert membership.status == "active"
        db_session.refresh(lapsed)
        assert lapsed.status == "expired"

    def test_expire_lapsed_leaves_current_rows_alone(self, db_session, member, other_member):
        lapsed_membership(db_session, member)
        current, _ = purchase(db_session, other_member)

        expired = MembershipService(db_session).expire_lapsed(now=utcnow())
        db_session.commit()

        assert expired == 1
        db_session.refresh(current)
        assert current.status == "active"


class TestQueries:

    def test_history_is_newest_first(self, db_session, member):
        service = MembershipService(db_session)
        first, _ = purchase(db_session, member, plan_id="6months")
        first.created_at = datetime(2023, 1, 1)
        db_session.commit()
        service.cancel(member, first.id)
        second, _ = purchase(db_session, member)

        rows, total = service.history(member, PageParams())

        assert total == 2
        assert [m.id for m in rows] == [second.id, first.id]

    def test_stats(self, db_session, member, other_member, admin):
        service = MembershipService(db_session)
        purchase(db_session, member)
        cancelled, _ = purchase(db_session, other_member, plan_id="6months")
        service.cancel(other_member, cancelled.id)

        stats = service.stats()

        assert stats["total_memberships"] == 2
        assert stats["active_memberships"] == 1
        assert stats["cancelled_memberships"] == 1
        assert stats["recent_memberships"] == 2
        assert stats["total_revenue"] == Decimal("499")
        assert stats["monthly_revenue"] == Decimal("499")
        assert {row["membership_type"] for row in stats["memberships_by_type"]} == {"1year", "6months"}

    def test_pricing_catalog_without_cache(self):
        catalog = MembershipService.pricing_catalog()
        assert [plan["price"] for plan in catalog] == [Decimal("299"), Decimal("499"), Decimal("899")]
