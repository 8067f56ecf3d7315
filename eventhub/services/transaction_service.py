"""
Transaction Service.

Admin listing and editing, member history, refunds and statistics.
A refund stamps refund details on the original transaction and creates a
sibling ``refund`` transaction in the same database transaction.
"""

import logging
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from eventhub.core.clock import utcnow
from eventhub.core.config import get_settings
from eventhub.core.database import commit_or_conflict
from eventhub.core.exceptions import NotFound, RefundNotAllowed
from eventhub.core.security import ensure_owner_or_admin
from eventhub.models.event import Event
from eventhub.models.membership import Membership
from eventhub.models.transaction import EventRef, MembershipRef, RelatedItem, Transaction
from eventhub.models.user import User
from eventhub.schemas.common import DateRange, PageParams
from eventhub.schemas.transaction import RefundRequest, TransactionUpdateRequest
from eventhub.services.transaction_calculator import TransactionCalculator

logger = logging.getLogger(__name__)
settings = get_settings()

ZERO = Decimal("0")


def resolve_related_item(db: Session, ref: RelatedItem):
    """Load the Membership or Event a transaction bills for, by tag."""
    if isinstance(ref, MembershipRef):
        return db.get(Membership, ref.id)
    if isinstance(ref, EventRef):
        return db.get(Event, ref.id)
    raise TypeError(f"Unsupported related item: {ref!r}")


class TransactionService:
    """Read and write paths for transactions outside membership purchase."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, identifier: str) -> Transaction:
        """Find by row id or public TXN id."""
        txn = (
            self.db.query(Transaction)
            .filter(or_(Transaction.id == identifier, Transaction.transaction_id == identifier))
            .first()
        )
        if txn is None:
            raise NotFound("Transaction not found")
        return txn

    def get_for(self, actor: User, identifier: str) -> Transaction:
        txn = self.get(identifier)
        ensure_owner_or_admin(actor, txn.user_id, "access")
        return txn

    def search(
        self,
        page: PageParams,
        dates: Optional[DateRange] = None,
        status: Optional[str] = None,
        type: Optional[str] = None,
        payment_method: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> tuple[list[Transaction], int]:
        query = self.db.query(Transaction)
        if status:
            query = query.filter(Transaction.status == status)
        if type:
            query = query.filter(Transaction.type == type)
        if payment_method:
            query = query.filter(Transaction.payment_method == payment_method)
        if user_id:
            query = query.filter(Transaction.user_id == user_id)
        if dates and dates.start_date:
            query = query.filter(Transaction.created_at >= dates.start_date)
        if dates and dates.end_date:
            query = query.filter(Transaction.created_at <= dates.end_date)

        total = query.count()
        transactions = (
            query
            .order_by(Transaction.created_at.desc())
            .offset(page.offset)
            .limit(page.limit)
            .all()
        )
        return transactions, total

    def history(
        self,
        user: User,
        page: PageParams,
        status: Optional[str] = None,
        type: Optional[str] = None,
    ) -> tuple[list[Transaction], int]:
        return self.search(page, status=status, type=type, user_id=user.user_id)

    def recent(self, limit: int = 10) -> list[Transaction]:
        return (
            self.db.query(Transaction)
            .order_by(Transaction.created_at.desc())
            .limit(limit)
            .all()
        )

    def pending(self, page: PageParams) -> tuple[list[Transaction], int]:
        return self.search(page, status="pending")

    # ─── Writes ─────────────────────────────────────────────────────

    def update(self, admin: User, identifier: str, request: TransactionUpdateRequest) -> Transaction:
        txn = self.get(identifier)
        updates = request.model_dump(exclude_unset=True, exclude_none=True)

        for field, value in updates.items():
            setattr(txn, field, value)
        txn.updated_by = admin.user_id

        TransactionCalculator.normalize(txn)
        commit_or_conflict(self.db)
        self.db.refresh(txn)

        logger.info(f"Transaction {txn.transaction_id} updated by admin {admin.user_id}: {sorted(updates)}")
        return txn

    def refund(self, admin: User, identifier: str, request: RefundRequest) -> tuple[Transaction, Transaction]:
        """
        Refund a completed transaction.

        Returns:
            (original transaction, new refund transaction)

        Raises:
            RefundNotAllowed: not completed, already refunded, or zero amount.
            ConcurrentModificationError: another request refunded or edited it first.
        """
        txn = self.get(identifier)
        if not txn.can_be_refunded():
            raise RefundNotAllowed()

        now = utcnow()
        details = TransactionCalculator.process_refund(txn, request.refund_amount, request.reason, now)
        txn.updated_by = admin.user_id
        TransactionCalculator.normalize(txn, now)

        refund_txn = Transaction(
            user_id=txn.user_id,
            type="refund",
            related_item=txn.related_item,
            amount=details["refund_amount"],
            currency=txn.currency,
            payment_method=txn.payment_method,
            status="completed",
            description=f"Refund for transaction {txn.transaction_id}",
            extra={
                "original_transaction_id": txn.transaction_id,
                "refund_reason": request.reason,
            },
            created_by=admin.user_id,
        )
        TransactionCalculator.normalize(refund_txn, now)
        self.db.add(refund_txn)

        # A full refund of a membership purchase also refunds the membership's payment
        item = resolve_related_item(self.db, txn.related_item)
        if isinstance(item, Membership) and details["refund_amount"] >= txn.net_amount:
            item.payment_status = "refunded"
            item.updated_by = admin.user_id

        commit_or_conflict(self.db)
        self.db.refresh(txn)
        self.db.refresh(refund_txn)

        logger.info(
            f"Refund {txn.refund_id} of {details['refund_amount']} issued on {txn.transaction_id} "
            f"by admin {admin.user_id} as {refund_txn.transaction_id}"
        )
        return txn, refund_txn

    # ─── Statistics ─────────────────────────────────────────────────

    def stats(self, dates: DateRange) -> dict:
        end = dates.end_date or utcnow()
        start = dates.start_date or end - timedelta(days=settings.TRANSACTION_STATS_WINDOW_DAYS)

        transactions = (
            self.db.query(Transaction)
            .filter(Transaction.created_at >= start, Transaction.created_at <= end)
            .order_by(Transaction.created_at)
            .all()
        )

        overview = {
            "total_transactions": 0,
            "total_amount": ZERO,
            "completed_transactions": 0,
            "completed_amount": ZERO,
            "failed_transactions": 0,
            "refunded_amount": ZERO,
        }
        by_type = defaultdict(lambda: {"count": 0, "total_amount": ZERO, "completed_count": 0, "completed_amount": ZERO})
        by_method = defaultdict(lambda: {"count": 0, "total_amount": ZERO})
        daily = defaultdict(lambda: {
            "total_transactions": 0, "total_amount": ZERO,
            "completed_transactions": 0, "completed_amount": ZERO,
        })

        for t in transactions:
            completed = t.status == "completed"
            day = (t.created_at.year, t.created_at.month, t.created_at.day)

            overview["total_transactions"] += 1
            overview["total_amount"] += t.net_amount
            by_type[t.type]["count"] += 1
            by_type[t.type]["total_amount"] += t.net_amount
            daily[day]["total_transactions"] += 1
            daily[day]["total_amount"] += t.net_amount

            if completed:
                overview["completed_transactions"] += 1
                overview["completed_amount"] += t.net_amount
                by_type[t.type]["completed_count"] += 1
                by_type[t.type]["completed_amount"] += t.net_amount
                by_method[t.payment_method]["count"] += 1
                by_method[t.payment_method]["total_amount"] += t.net_amount
                daily[day]["completed_transactions"] += 1
                daily[day]["completed_amount"] += t.net_amount
            elif t.status == "failed":
                overview["failed_transactions"] += 1

            if t.refund_amount is not None:
                overview["refunded_amount"] += t.refund_amount

        return {
            "overview": overview,
            "by_type": [{"type": k, **v} for k, v in by_type.items()],
            "by_payment_method": [{"payment_method": k, **v} for k, v in by_method.items()],
            "daily_stats": [
                {"year": y, "month": m, "day": d, **v} for (y, m, d), v in sorted(daily.items())
            ],
            "date_range": {"start_date": start, "end_date": end},
        }
