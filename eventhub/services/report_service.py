"""
Report Service.

Read-only aggregation for the admin dashboard and analytics pages. Every
report is recomputed on each call over an optional date window that defaults
to the last ``DEFAULT_REPORT_WINDOW_DAYS`` days. Grouping happens in Python
over the filtered rows so the same code runs on SQLite and PostgreSQL.
"""

import logging
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from eventhub.core.clock import utcnow
from eventhub.core.config import get_settings
from eventhub.core.exceptions import ValidationFailed
from eventhub.models.event import Event, EventRegistration
from eventhub.models.membership import Membership
from eventhub.models.transaction import MembershipRef, Transaction
from eventhub.models.user import User
from eventhub.schemas.common import DateRange
from eventhub.schemas.event import EventResponse
from eventhub.schemas.membership import MembershipResponse
from eventhub.schemas.transaction import TransactionResponse
from eventhub.schemas.user import UserResponse

logger = logging.getLogger(__name__)
settings = get_settings()

ZERO = Decimal("0")
EXPORT_KINDS = ("users", "events", "memberships", "transactions")


def month_buckets(rows, key, value=None) -> list[dict]:
    """Group rows by (year, month) of ``key(row)``; optionally sum ``value(row)``."""
    counts = Counter()
    sums = defaultdict(lambda: ZERO)
    for row in rows:
        stamp = key(row)
        bucket = (stamp.year, stamp.month)
        counts[bucket] += 1
        if value is not None:
            sums[bucket] += value(row)

    return [
        {"year": y, "month": m, "count": counts[(y, m)], "revenue": sums[(y, m)] if value else None}
        for (y, m) in sorted(counts)
    ]


def mean(values, default=0.0) -> float:
    values = list(values)
    if not values:
        return default
    return float(sum(values)) / len(values)


class ReportService:

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def window(dates: Optional[DateRange]) -> tuple[datetime, datetime]:
        end = dates.end_date if dates and dates.end_date else utcnow()
        start = (
            dates.start_date if dates and dates.start_date
            else end - timedelta(days=settings.DEFAULT_REPORT_WINDOW_DAYS)
        )
        return start, end

    # ─── Dashboard ──────────────────────────────────────────────────

    def dashboard(self, now: Optional[datetime] = None) -> dict:
        now = now or utcnow()
        thirty_days_ago = now - timedelta(days=30)
        one_year_ago = now - timedelta(days=365)

        total_users = self.db.query(func.count(User.user_id)).scalar()
        active_users = self.db.query(func.count(User.user_id)).filter(User.is_active.is_(True)).scalar()
        new_users = self.db.query(func.count(User.user_id)).filter(User.created_at >= thirty_days_ago).scalar()

        events_by_status = dict(
            self.db.query(Event.status, func.count(Event.id)).group_by(Event.status).all()
        )
        total_events = sum(events_by_status.values())
        upcoming = (
            self.db.query(func.count(Event.id))
            .filter(Event.status == "published", Event.start_date >= now)
            .scalar()
        )

        total_memberships = self.db.query(func.count(Membership.id)).scalar()
        active_memberships = (
            self.db.query(func.count(Membership.id)).filter(Membership.status == "active").scalar()
        )
        expiring = (
            self.db.query(func.count(Membership.id))
            .filter(
                Membership.status == "active",
                Membership.end_date > now,
                Membership.end_date <= now + timedelta(days=settings.EXPIRING_SOON_DAYS),
            )
            .scalar()
        )

        completed = (
            self.db.query(Transaction)
            .filter(Transaction.status == "completed", Transaction.created_at >= one_year_ago)
            .all()
        )
        revenue = {
            "total_revenue": sum((t.net_amount for t in completed), ZERO),
            "monthly_revenue": sum((t.net_amount for t in completed if t.created_at >= thirty_days_ago), ZERO),
            "transaction_count": len(completed),
        }

        recent_events = self.db.query(Event).order_by(Event.created_at.desc()).limit(5).all()
        recent_transactions = self.db.query(Transaction).order_by(Transaction.created_at.desc()).limit(5).all()
        names = self._names({e.organizer_id for e in recent_events} | {t.user_id for t in recent_transactions})

        published = events_by_status.get("published", 0)
        completed_events = events_by_status.get("completed", 0)
        return {
            "users": {
                "total": total_users,
                "active": active_users,
                "inactive": total_users - active_users,
                "new_this_month": new_users,
            },
            "events": {
                "total": total_events,
                "published": published,
                "upcoming": upcoming,
                "completed": completed_events,
                "draft": total_events - published - completed_events,
            },
            "memberships": {
                "total": total_memberships,
                "active": active_memberships,
                "expiring": expiring,
            },
            "revenue": revenue,
            "recent_activity": {
                "events": [
                    {
                        "id": e.id,
                        "title": e.title,
                        "status": e.status,
                        "start_date": e.start_date,
                        "current_attendees": e.current_attendees,
                        "max_attendees": e.max_attendees,
                        "organizer_name": names.get(e.organizer_id),
                    }
                    for e in recent_events
                ],
                "transactions": [
                    {
                        "transaction_id": t.transaction_id,
                        "type": t.type,
                        "amount": t.amount,
                        "status": t.status,
                        "created_at": t.created_at,
                        "user_name": names.get(t.user_id),
                    }
                    for t in recent_transactions
                ],
            },
        }

    # ─── Users ──────────────────────────────────────────────────────

    def users(self, dates: Optional[DateRange] = None) -> dict:
        start, end = self.window(dates)

        registered = (
            self.db.query(User)
            .filter(User.created_at >= start, User.created_at <= end)
            .all()
        )

        by_role = defaultdict(lambda: {"count": 0, "active": 0})
        for user in self.db.query(User).all():
            by_role[user.role]["count"] += 1
            by_role[user.role]["active"] += int(user.is_active)

        participation = (
            self.db.query(User, func.count(EventRegistration.id).label("event_count"))
            .join(EventRegistration, EventRegistration.user_id == User.user_id)
            .group_by(User.user_id)
            .order_by(func.count(EventRegistration.id).desc())
            .limit(10)
            .all()
        )

        return {
            "registration_trends": month_buckets(registered, key=lambda u: u.created_at),
            "users_by_role": [{"role": role, **counts} for role, counts in by_role.items()],
            "top_active_users": [
                {"user_id": u.user_id, "name": u.full_name, "email": u.email, "event_count": count}
                for u, count in participation
            ],
            "date_range": {"start_date": start, "end_date": end},
        }

    # ─── Events ─────────────────────────────────────────────────────

    def events(self, dates: Optional[DateRange] = None) -> dict:
        start, end = self.window(dates)

        created = (
            self.db.query(Event)
            .filter(Event.created_at >= start, Event.created_at <= end)
            .all()
        )

        by_category = defaultdict(list)
        for event in created:
            by_category[event.category].append(event.current_attendees)

        by_status = defaultdict(lambda: {"count": 0, "total_attendees": 0})
        for event in self.db.query(Event).all():
            by_status[event.status]["count"] += 1
            by_status[event.status]["total_attendees"] += event.current_attendees

        top = sorted(created, key=lambda e: e.current_attendees, reverse=True)[:10]
        names = self._names({e.organizer_id for e in top})
        with_capacity = [e for e in created if e.max_attendees > 0]

        return {
            "event_trends": month_buckets(created, key=lambda e: e.created_at),
            "events_by_category": sorted(
                (
                    {
                        "category": category,
                        "count": len(attendees),
                        "total_attendees": sum(attendees),
                        "avg_attendees": mean(attendees),
                    }
                    for category, attendees in by_category.items()
                ),
                key=lambda row: row["count"],
                reverse=True,
            ),
            "events_by_status": [{"status": status, **counts} for status, counts in by_status.items()],
            "top_events": [
                {
                    "id": e.id,
                    "title": e.title,
                    "category": e.category,
                    "current_attendees": e.current_attendees,
                    "max_attendees": e.max_attendees,
                    "start_date": e.start_date,
                    "status": e.status,
                    "organizer_name": names.get(e.organizer_id),
                }
                for e in top
            ],
            "attendance_stats": {
                "avg_attendance_rate": mean(e.attendance_rate for e in with_capacity),
                "total_capacity": sum(e.max_attendees for e in with_capacity),
                "total_attendees": sum(e.current_attendees for e in with_capacity),
            },
            "date_range": {"start_date": start, "end_date": end},
        }

    # ─── Revenue ────────────────────────────────────────────────────

    def revenue(self, dates: Optional[DateRange] = None) -> dict:
        start, end = self.window(dates)

        completed = (
            self.db.query(Transaction)
            .filter(
                Transaction.status == "completed",
                Transaction.created_at >= start,
                Transaction.created_at <= end,
            )
            .all()
        )

        by_type = defaultdict(list)
        by_method = defaultdict(list)
        for t in completed:
            by_type[t.type].append(t.net_amount)
            by_method[t.payment_method].append(t.net_amount)

        membership_ids = [
            t.related_item_id for t in completed
            if t.type == "membership" and t.related_item_type == MembershipRef.kind
        ]
        plan_of = dict(
            self.db.query(Membership.id, Membership.membership_type)
            .filter(Membership.id.in_(membership_ids))
            .all()
        ) if membership_ids else {}

        membership_revenue = defaultdict(lambda: {"revenue": ZERO, "count": 0})
        for t in completed:
            plan = plan_of.get(t.related_item_id) if t.type == "membership" else None
            if plan is None:
                continue
            membership_revenue[plan]["revenue"] += t.net_amount
            membership_revenue[plan]["count"] += 1

        amounts = [t.net_amount for t in completed]
        overall = {
            "total_revenue": sum(amounts, ZERO),
            "total_transactions": len(amounts),
            "avg_transaction_value": (sum(amounts, ZERO) / len(amounts)) if amounts else ZERO,
            "max_transaction_value": max(amounts, default=ZERO),
            "min_transaction_value": min(amounts, default=ZERO),
        }

        return {
            "revenue_trends": month_buckets(completed, key=lambda t: t.created_at, value=lambda t: t.net_amount),
            "revenue_by_type": sorted(
                (
                    {
                        "type": kind,
                        "revenue": sum(values, ZERO),
                        "transaction_count": len(values),
                        "avg_transaction_value": sum(values, ZERO) / len(values),
                    }
                    for kind, values in by_type.items()
                ),
                key=lambda row: row["revenue"],
                reverse=True,
            ),
            "revenue_by_payment_method": sorted(
                (
                    {"payment_method": method, "revenue": sum(values, ZERO), "transaction_count": len(values)}
                    for method, values in by_method.items()
                ),
                key=lambda row: row["revenue"],
                reverse=True,
            ),
            "membership_revenue": [
                {"membership_type": plan, **totals} for plan, totals in sorted(membership_revenue.items())
            ],
            "overall_stats": overall,
            "date_range": {"start_date": start, "end_date": end},
        }

    # ─── Memberships ────────────────────────────────────────────────

    def memberships(self, dates: Optional[DateRange] = None) -> dict:
        start, end = self.window(dates)

        created = (
            self.db.query(Membership)
            .filter(Membership.created_at >= start, Membership.created_at <= end)
            .all()
        )

        by_type = defaultdict(list)
        for m in created:
            by_type[m.membership_type].append(m)

        by_status = defaultdict(lambda: {"count": 0, "revenue": ZERO})
        for m in self.db.query(Membership).all():
            by_status[m.status]["count"] += 1
            by_status[m.status]["revenue"] += m.amount

        # Retention counts every member who ever held a paid-through plan
        per_user = defaultdict(list)
        for m in self.db.query(Membership).filter(Membership.status.in_(("active", "expired"))).all():
            per_user[m.user_id].append(m.amount)

        return {
            "membership_trends": month_buckets(created, key=lambda m: m.created_at, value=lambda m: m.amount),
            "memberships_by_type": sorted(
                (
                    {
                        "membership_type": plan,
                        "count": len(rows),
                        "revenue": sum((m.amount for m in rows), ZERO),
                        "active_count": sum(1 for m in rows if m.status == "active"),
                        "avg_duration": mean((m.end_date - m.start_date).total_seconds() / 86400 for m in rows),
                    }
                    for plan, rows in by_type.items()
                ),
                key=lambda row: row["count"],
                reverse=True,
            ),
            "memberships_by_status": [{"status": status, **totals} for status, totals in by_status.items()],
            "retention_analysis": {
                "total_users": len(per_user),
                "renewed_users": sum(1 for amounts in per_user.values() if len(amounts) > 1),
                "avg_memberships_per_user": mean(len(amounts) for amounts in per_user.values()),
                "avg_lifetime_value": (
                    sum((sum(a, ZERO) for a in per_user.values()), ZERO) / len(per_user) if per_user else ZERO
                ),
            },
            "date_range": {"start_date": start, "end_date": end},
        }

    # ─── Export ─────────────────────────────────────────────────────

    def export(self, kind: str, dates: Optional[DateRange] = None, format: str = "json") -> dict:
        if kind not in EXPORT_KINDS:
            raise ValidationFailed.for_field("type", "Invalid export type", kind)

        model, render = {
            "users": (User, lambda u: UserResponse.model_validate(u)),
            "events": (Event, lambda e: EventResponse.model_validate(e)),
            "memberships": (Membership, lambda m: MembershipResponse.model_validate(m)),
            "transactions": (Transaction, TransactionResponse.from_model),
        }[kind]

        query = self.db.query(model)
        if dates and dates.start_date:
            query = query.filter(model.created_at >= dates.start_date)
        if dates and dates.end_date:
            query = query.filter(model.created_at <= dates.end_date)

        records = [render(row).model_dump(mode="json") for row in query.order_by(model.created_at).all()]
        logger.info(f"Exported {len(records)} {kind} record(s)")
        return {
            "export_type": kind,
            "format": format,
            "count": len(records),
            "exported_at": utcnow(),
            "records": records,
        }

    def _names(self, user_ids: set[str]) -> dict[str, str]:
        if not user_ids:
            return {}
        users = self.db.query(User).filter(User.user_id.in_(user_ids)).all()
        return {u.user_id: u.full_name for u in users}
