"""
Membership Lifecycle Service.

State machine over Membership.status:
    (none) -> active -> {expired | cancelled | suspended}

Purchase and admin-create write the membership, its paired ``membership``
transaction, and the back-reference in one database transaction. The
one-active-membership rule is checked up front for a clean error, and the
partial unique index catches the concurrent case.
"""

import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eventhub.core.clock import utcnow
from eventhub.core.config import get_settings
from eventhub.core.database import commit_or_conflict
from eventhub.core.exceptions import (
    DuplicateActiveMembership,
    InvalidStatusTransition,
    NotFound,
    ValidationFailed,
)
from eventhub.core.redis import cache_get, cache_set
from eventhub.core.security import ensure_owner_or_admin
from eventhub.models.membership import Membership
from eventhub.models.transaction import MembershipRef, Transaction
from eventhub.models.user import User
from eventhub.schemas.common import PageParams
from eventhub.schemas.membership import (
    AdminMembershipCreateRequest,
    MembershipCreateRequest,
    MembershipPurchaseRequest,
    MembershipUpdateRequest,
)
from eventhub.services.membership_calculator import MembershipCalculator
from eventhub.services.transaction_calculator import TransactionCalculator

logger = logging.getLogger(__name__)
settings = get_settings()

PRICING_CACHE_KEY = "memberships:pricing"


class MembershipService:
    """Orchestrates membership creation, status changes and deletion."""

    def __init__(self, db: Session):
        self.db = db

    # ─── Lookups ────────────────────────────────────────────────────

    def get(self, membership_id: str) -> Membership:
        membership = self.db.get(Membership, membership_id)
        if membership is None:
            raise NotFound("Membership not found")
        return membership

    def get_for(self, actor: User, membership_id: str) -> Membership:
        membership = self.get(membership_id)
        ensure_owner_or_admin(actor, membership.user_id, "access")
        return membership

    def active_for(self, user_id: str) -> Optional[Membership]:
        return (
            self.db.query(Membership)
            .filter(Membership.user_id == user_id, Membership.status == "active")
            .first()
        )

    def get_current(self, user: User) -> Membership:
        if self.expire_lapsed(user.user_id):
            self.db.commit()

        membership = self.active_for(user.user_id)
        if membership is None:
            raise NotFound("No active membership found")
        return membership

    def expire_lapsed(self, user_id: Optional[str] = None, now: Optional[datetime] = None) -> int:
        """
        Move active memberships whose end date has passed to ``expired``.

        Runs inside the caller's transaction; the caller commits.
        """
        now = now or utcnow()
        stmt = (
            update(Membership)
            .where(Membership.status == "active", Membership.end_date <= now)
            .values(status="expired", updated_at=now, version=Membership.version + 1)
            .execution_options(synchronize_session=False)
        )
        if user_id is not None:
            stmt = stmt.where(Membership.user_id == user_id)

        expired = self.db.execute(stmt).rowcount or 0
        if expired:
            logger.info(f"Expired {expired} lapsed membership(s) (user={user_id or 'all'})")
        return expired

    def search(
        self,
        page: PageParams,
        status: Optional[str] = None,
        membership_type: Optional[str] = None,
        payment_status: Optional[str] = None,
    ) -> tuple[list[Membership], int]:
        query = self.db.query(Membership)
        if status:
            query = query.filter(Membership.status == status)
        if membership_type:
            query = query.filter(Membership.membership_type == membership_type)
        if payment_status:
            query = query.filter(Membership.payment_status == payment_status)

        total = query.count()
        memberships = (
            query
            .order_by(Membership.created_at.desc())
            .offset(page.offset)
            .limit(page.limit)
            .all()
        )
        return memberships, total

    def history(self, user: User, page: PageParams) -> tuple[list[Membership], int]:
        query = self.db.query(Membership).filter(Membership.user_id == user.user_id)
        total = query.count()
        memberships = (
            query
            .order_by(Membership.created_at.desc())
            .offset(page.offset)
            .limit(page.limit)
            .all()
        )
        return memberships, total

    @staticmethod
    def pricing_catalog() -> list[dict]:
        cached = cache_get(PRICING_CACHE_KEY)
        if cached:
            return cached

        catalog = MembershipCalculator.catalog()
        cache_set(PRICING_CACHE_KEY, catalog, ttl=settings.PRICING_CACHE_TTL)
        return catalog

    # ─── Creation ───────────────────────────────────────────────────

    def create(self, user: User, request: MembershipCreateRequest) -> tuple[Membership, Transaction]:
        """Self-service creation; payment is left pending."""
        return self._open(
            user_id=user.user_id,
            actor_id=user.user_id,
            membership_type=request.membership_type,
            amount=None,
            payment_method=request.payment_method,
            start_date=request.start_date,
            auto_renewal=request.auto_renewal,
            notes=request.notes,
            paid=False,
            description=f"{request.membership_type} membership purchase",
        )

    def purchase(self, user: User, request: MembershipPurchaseRequest) -> tuple[Membership, Transaction]:
        """Plan checkout; payment is captured immediately."""
        membership_type = self.resolve_plan(request.plan_id, request.duration)
        return self._open(
            user_id=user.user_id,
            actor_id=user.user_id,
            membership_type=membership_type,
            amount=request.amount,
            payment_method=request.payment_method,
            paid=True,
            description=f"{request.plan_name or membership_type} membership purchase",
        )

    def admin_create(self, admin: User, request: AdminMembershipCreateRequest) -> tuple[Membership, Transaction]:
        if self.db.get(User, request.user_id) is None:
            raise NotFound("User not found")

        membership_type = self.resolve_plan(request.plan_id, request.duration)
        return self._open(
            user_id=request.user_id,
            actor_id=admin.user_id,
            membership_type=membership_type,
            amount=request.amount,
            payment_method=request.payment_method,
            paid=True,
            payment_gateway="manual",
            description=f"{request.plan_name or membership_type} membership created by admin",
            duplicate_message="User already has an active membership",
        )

    @staticmethod
    def resolve_plan(plan_id: Optional[str], duration: Optional[str]) -> str:
        if plan_id:
            return MembershipCalculator.validate_type(plan_id)
        if duration:
            return MembershipCalculator.type_for_duration(duration)
        raise ValidationFailed.for_field("plan_id", "Either plan_id or duration is required")

    def _open(
        self,
        *,
        user_id: str,
        actor_id: str,
        membership_type: str,
        amount: Optional[Decimal],
        payment_method: str,
        paid: bool,
        description: str,
        start_date: Optional[datetime] = None,
        auto_renewal: bool = False,
        notes: Optional[str] = None,
        payment_gateway: Optional[str] = None,
        duplicate_message: Optional[str] = None,
    ) -> tuple[Membership, Transaction]:
        now = utcnow()
        self.expire_lapsed(user_id, now)

        if self.active_for(user_id) is not None:
            self.db.commit()
            raise DuplicateActiveMembership(duplicate_message)

        membership = Membership(
            user_id=user_id,
            membership_type=membership_type,
            start_date=start_date or now,
            amount=amount,
            status="active",
            payment_status="completed" if paid else "pending",
            payment_method=payment_method,
            auto_renewal=auto_renewal,
            notes=notes,
            created_by=actor_id,
        )
        MembershipCalculator.normalize(membership, is_new=True)
        self.db.add(membership)

        try:
            self.db.flush()
        except IntegrityError:
            self.db.rollback()
            logger.warning(f"Concurrent purchase rejected for user {user_id}: active membership exists")
            raise DuplicateActiveMembership(duplicate_message)

        transaction = Transaction(
            user_id=user_id,
            type="membership",
            related_item=MembershipRef(membership.id),
            amount=membership.amount,
            currency=settings.DEFAULT_CURRENCY,
            status="completed" if paid else "pending",
            payment_method=payment_method,
            payment_gateway=payment_gateway,
            description=description,
            created_by=actor_id,
        )
        TransactionCalculator.normalize(transaction, now)
        self.db.add(transaction)
        self.db.flush()

        membership.transaction_id = transaction.transaction_id
        self.db.commit()
        self.db.refresh(membership)
        self.db.refresh(transaction)

        logger.info(
            f"Membership {membership.id} ({membership_type}) opened for user {user_id} "
            f"with transaction {transaction.transaction_id}"
        )
        return membership, transaction

    # ─── Status changes ─────────────────────────────────────────────

    def cancel(self, actor: User, membership_id: str) -> Membership:
        membership = self.get(membership_id)
        ensure_owner_or_admin(actor, membership.user_id, "cancel")

        if not membership.can_transition_to("cancelled"):
            raise InvalidStatusTransition(f"Cannot cancel a membership that is {membership.status}")

        membership.status = "cancelled"
        membership.updated_by = actor.user_id
        commit_or_conflict(self.db)
        self.db.refresh(membership)

        logger.info(f"Membership {membership.id} cancelled by {actor.user_id}")
        return membership

    def update(self, admin: User, membership_id: str, request: MembershipUpdateRequest) -> Membership:
        membership = self.get(membership_id)
        updates = request.model_dump(exclude_unset=True, exclude_none=True)

        new_status = updates.get("status")
        if new_status and not membership.can_transition_to(new_status):
            raise InvalidStatusTransition(
                f"Cannot change membership status from {membership.status} to {new_status}"
            )

        for field, value in updates.items():
            setattr(membership, field, value)
        membership.updated_by = admin.user_id

        MembershipCalculator.normalize(membership, changed=updates.keys())
        commit_or_conflict(self.db)
        self.db.refresh(membership)

        logger.info(f"Membership {membership.id} updated by admin {admin.user_id}: {sorted(updates)}")
        return membership

    def delete(self, admin: User, membership_id: str) -> int:
        """Hard-delete a membership and every transaction billed against it."""
        membership = self.get(membership_id)

        removed = (
            self.db.query(Transaction)
            .filter(
                Transaction.related_item_type == MembershipRef.kind,
                Transaction.related_item_id == membership.id,
            )
            .delete(synchronize_session=False)
        )
        self.db.delete(membership)
        commit_or_conflict(self.db)

        logger.info(
            f"Membership {membership_id} deleted by admin {admin.user_id} "
            f"along with {removed} transaction(s)"
        )
        return removed

    # ─── Statistics ─────────────────────────────────────────────────

    def stats(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        by_status = dict(
            self.db.query(Membership.status, func.count(Membership.id))
            .group_by(Membership.status)
            .all()
        )

        by_type = [
            {"membership_type": membership_type, "count": count, "total_revenue": revenue or Decimal("0")}
            for membership_type, count, revenue in (
                self.db.query(Membership.membership_type, func.count(Membership.id), func.sum(Membership.amount))
                .group_by(Membership.membership_type)
                .all()
            )
        ]

        expiring = (
            self.db.query(func.count(Membership.id))
            .filter(
                Membership.status == "active",
                Membership.end_date > now,
                Membership.end_date <= now + timedelta(days=settings.EXPIRING_SOON_DAYS),
            )
            .scalar()
        )
        recent = (
            self.db.query(func.count(Membership.id))
            .filter(Membership.created_at >= now - timedelta(days=30))
            .scalar()
        )

        earning = Membership.status.in_(("active", "expired"))
        total_revenue = self.db.query(func.sum(Membership.amount)).filter(earning).scalar()

        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        monthly_revenue = (
            self.db.query(func.sum(Membership.amount))
            .filter(earning, Membership.created_at >= month_start)
            .scalar()
        )

        return {
            "total_memberships": sum(by_status.values()),
            "active_memberships": by_status.get("active", 0),
            "expired_memberships": by_status.get("expired", 0),
            "cancelled_memberships": by_status.get("cancelled", 0),
            "suspended_memberships": by_status.get("suspended", 0),
            "expiring_memberships": expiring or 0,
            "recent_memberships": recent or 0,
            "total_revenue": total_revenue or Decimal("0"),
            "monthly_revenue": monthly_revenue or Decimal("0"),
            "memberships_by_type": by_type,
        }
