"""
Tests for transaction lookups, admin edits, refunds and statistics.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from eventhub.core.clock import utcnow
from eventhub.core.exceptions import NotFound, PermissionDenied, RefundNotAllowed
from eventhub.models.membership import Membership
from eventhub.models.transaction import EventRef, Transaction
from eventhub.schemas.common import DateRange, PageParams
from eventhub.schemas.membership import MembershipCreateRequest, MembershipPurchaseRequest
from eventhub.schemas.transaction import RefundRequest, TransactionUpdateRequest
from eventhub.services.membership_service import MembershipService
from eventhub.services.transaction_calculator import TransactionCalculator
from eventhub.services.transaction_service import TransactionService


@pytest.fixture
def paid_membership(db_session, member):
    return MembershipService(db_session).purchase(member, MembershipPurchaseRequest(plan_id="1year"))


def add_txn(db, user, created_at=None, **kwargs) -> Transaction:
    values = {
        "user_id": user.user_id,
        "type": "event_registration",
        "related_item": EventRef("event-1"),
        "amount": Decimal("40"),
        "payment_method": "card",
        "status": "completed",
    }
    values.update(kwargs)
    txn = Transaction(**values)
    if created_at:
        txn.created_at = created_at
    TransactionCalculator.normalize(txn, created_at)
    db.add(txn)
    db.commit()
    return txn


class TestLookup:

    def test_get_by_public_or_row_id(self, db_session, paid_membership):
        _, txn = paid_membership
        service = TransactionService(db_session)

        assert service.get(txn.transaction_id).id == txn.id
        assert service.get(txn.id).transaction_id == txn.transaction_id

    def test_unknown_transaction(self, db_session):
        with pytest.raises(NotFound):
            TransactionService(db_session).get("TXN000")

    def test_owner_or_admin_only(self, db_session, paid_membership, other_member, admin):
        _, txn = paid_membership
        service = TransactionService(db_session)

        with pytest.raises(PermissionDenied):
            service.get_for(other_member, txn.transaction_id)
        assert service.get_for(admin, txn.transaction_id).id == txn.id

    def test_search_filters(self, db_session, member, other_member):
        add_txn(db_session, member, payment_method="paypal")
        add_txn(db_session, member, status="failed")
        add_txn(db_session, other_member)
        service = TransactionService(db_session)

        assert service.search(PageParams(), payment_method="paypal")[1] == 1
        assert service.search(PageParams(), status="failed")[1] == 1
        assert service.search(PageParams(), user_id=other_member.user_id)[1] == 1
        assert service.history(member, PageParams())[1] == 2
        assert service.pending(PageParams())[1] == 0

    def test_search_by_date_range(self, db_session, member):
        add_txn(db_session, member, created_at=datetime(2024, 1, 10))
        add_txn(db_session, member, created_at=datetime(2024, 3, 10))

        dates = DateRange(start_date=datetime(2024, 3, 1), end_date=datetime(2024, 3, 31))
        rows, total = TransactionService(db_session).search(PageParams(), dates)

        assert total == 1
        assert rows[0].created_at == datetime(2024, 3, 10)


class TestUpdate:

    def test_status_change_runs_normalize(self, db_session, member, admin):
        _, txn = MembershipService(db_session).create(
            member, MembershipCreateRequest(membership_type="6months", payment_method="card")
        )
        assert txn.receipt_number is None

        updated = TransactionService(db_session).update(admin, txn.transaction_id, TransactionUpdateRequest(**{
            "status": "completed",
            "gateway_transaction_id": "ch_123",
            "net_amount": 1,
            "amount": 1,
        }))

        assert updated.status == "completed"
        assert updated.gateway_transaction_id == "ch_123"
        assert updated.receipt_number is not None
        assert updated.processed_at is not None
        assert updated.amount == Decimal("299")
        assert updated.net_amount == Decimal("299")
        assert updated.updated_by == admin.user_id


class TestRefund:

    def test_full_refund(self, db_session, paid_membership, admin):
        membership, txn = paid_membership

        original, refund = TransactionService(db_session).refund(
            admin, txn.transaction_id, RefundRequest(reason="Moved abroad")
        )

        assert original.status == "refunded"
        assert original.refund_details["refund_amount"] == Decimal("499")
        assert original.refund_details["refund_reason"] == "Moved abroad"
        assert original.updated_by == admin.user_id

        assert refund.type == "refund"
        assert refund.status == "completed"
        assert refund.amount == Decimal("499")
        assert refund.related_item == original.related_item
        assert refund.description == f"Refund for transaction {txn.transaction_id}"
        assert refund.extra == {"original_transaction_id": txn.transaction_id, "refund_reason": "Moved abroad"}

        db_session.refresh(membership)
        assert membership.payment_status == "refunded"

    def test_partial_refund_keeps_membership_paid(self, db_session, paid_membership, admin):
        membership, txn = paid_membership

        _, refund = TransactionService(db_session).refund(
            admin, txn.id, RefundRequest(refund_amount=Decimal("100"), reason="Goodwill")
        )

        assert refund.amount == Decimal("100")
        db_session.refresh(membership)
        assert membership.payment_status == "completed"

    def test_refund_is_capped(self, db_session, paid_membership, admin):
        _, txn = paid_membership
        original, refund = TransactionService(db_session).refund(
            admin, txn.id, RefundRequest(refund_amount=Decimal("5000"), reason="Typo")
        )
        assert refund.amount == Decimal("499")
        assert original.refund_amount == Decimal("499")

    def test_refund_twice_is_rejected(self, db_session, paid_membership, admin):
        _, txn = paid_membership
        service = TransactionService(db_session)
        service.refund(admin, txn.id, RefundRequest(reason="First"))

        with pytest.raises(RefundNotAllowed):
            service.refund(admin, txn.id, RefundRequest(reason="Second"))
        assert db_session.query(Transaction).filter_by(type="refund").count() == 1

    def test_pending_transaction_cannot_be_refunded(self, db_session, member, admin):
        txn = add_txn(db_session, member, status="pending")

        with pytest.raises(RefundNotAllowed):
            TransactionService(db_session).refund(admin, txn.id, RefundRequest(reason="nope"))

        db_session.refresh(txn)
        assert txn.refund_details is None
        assert txn.status == "pending"

    def test_refund_of_event_transaction(self, db_session, member, admin):
        txn = add_txn(db_session, member)
        original, refund = TransactionService(db_session).refund(admin, txn.id, RefundRequest(reason="Cancelled"))

        assert refund.related_item == EventRef("event-1")
        assert db_session.query(Membership).count() == 0


class TestStats:

    def test_stats_over_window(self, db_session, member):
        now = utcnow()
        add_txn(db_session, member, amount=Decimal("40"), created_at=now - timedelta(days=2))
        add_txn(db_session, member, amount=Decimal("60"), payment_method="cash", created_at=now - timedelta(days=1))
        add_txn(db_session, member, amount=Decimal("10"), status="failed", created_at=now - timedelta(days=1))
        add_txn(db_session, member, amount=Decimal("99"), created_at=now - timedelta(days=90))

        stats = TransactionService(db_session).stats(DateRange())

        overview = stats["overview"]
        assert overview["total_transactions"] == 3
        assert overview["completed_transactions"] == 2
        assert overview["completed_amount"] == Decimal("100")
        assert overview["failed_transactions"] == 1
        assert {row["payment_method"]: row["count"] for row in stats["by_payment_method"]} == {"card": 1, "cash": 1}
        assert sum(day["total_transactions"] for day in stats["daily_stats"]) == 3

    def test_recent_is_newest_first(self, db_session, member):
        older = add_txn(db_session, member, created_at=datetime(2024, 1, 1))
        newer = add_txn(db_session, member, created_at=datetime(2024, 2, 1))

        assert [t.id for t in TransactionService(db_session).recent(5)] == [newer.id, older.id]
