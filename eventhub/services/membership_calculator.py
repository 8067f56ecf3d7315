"""
Membership Calculator Service.

Date and pricing derivations for membership plans:
  - end date: calendar-aware +6 months / +1 year / +2 years
  - renewal reminder: end date minus the reminder window (30 days)
  - default amount and benefits per plan

``normalize`` is the explicit prepare step the lifecycle service runs before
every membership write.
"""

import calendar
import math
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from eventhub.core.clock import utcnow
from eventhub.core.config import get_settings
from eventhub.core.exceptions import InvalidMembershipType, ValidationFailed

settings = get_settings()

# Plan length in calendar months
PLAN_MONTHS = {
    "6months": 6,
    "1year": 12,
    "2years": 24,
}

PLAN_LABELS = {
    "6months": "6 Months",
    "1year": "1 Year",
    "2years": "2 Years",
}

# Duration strings accepted by the checkout and admin-create flows
DURATION_TO_TYPE = {
    "6 months": "6months",
    "1 year": "1year",
    "2 years": "2years",
}

PLAN_BENEFITS = {
    "6months": (
        "Access to all events",
        "Basic member support",
        "Monthly newsletter",
        "10% discount on paid events",
    ),
    "1year": (
        "Access to all events",
        "Priority member support",
        "Monthly newsletter",
        "15% discount on paid events",
        "Access to member-only events",
        "Free workshop access",
    ),
    "2years": (
        "Access to all events",
        "Premium member support",
        "Monthly newsletter",
        "25% discount on paid events",
        "Access to member-only events",
        "Free workshop access",
        "VIP event access",
        "Personal event concierge",
    ),
}

SECONDS_PER_DAY = 24 * 60 * 60


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def ceil_days(delta: timedelta) -> int:
    return math.ceil(abs(delta.total_seconds()) / SECONDS_PER_DAY)


class MembershipCalculator:
    """Pure derivations over membership plans. No I/O, no shared state."""

    @staticmethod
    def validate_type(membership_type: str) -> str:
        if membership_type not in PLAN_MONTHS:
            raise InvalidMembershipType(membership_type)
        return membership_type

    @staticmethod
    def type_for_duration(duration: str) -> str:
        """Map a human duration ("1 year") onto a membership type ("1year")."""
        membership_type = DURATION_TO_TYPE.get((duration or "").strip().lower())
        if membership_type is None:
            raise ValidationFailed.for_field(
                "duration", "Duration must be one of: " + ", ".join(DURATION_TO_TYPE), duration
            )
        return membership_type

    @staticmethod
    def end_date_for(membership_type: str, start_date: datetime) -> datetime:
        months = PLAN_MONTHS[MembershipCalculator.validate_type(membership_type)]
        return add_months(start_date, months)

    @staticmethod
    def renewal_date_for(end_date: datetime) -> datetime:
        return end_date - timedelta(days=settings.RENEWAL_REMINDER_DAYS)

    @staticmethod
    def get_pricing() -> dict[str, Decimal]:
        return {plan: Decimal(price) for plan, price in settings.MEMBERSHIP_PRICING.items()}

    @staticmethod
    def get_price(membership_type: str) -> Decimal:
        MembershipCalculator.validate_type(membership_type)
        return Decimal(settings.MEMBERSHIP_PRICING[membership_type])

    @staticmethod
    def get_benefits(membership_type: str) -> list[str]:
        return list(PLAN_BENEFITS[MembershipCalculator.validate_type(membership_type)])

    @staticmethod
    def catalog() -> list[dict]:
        """Plan catalog for the public pricing page."""
        return [
            {
                "type": plan,
                "price": price,
                "benefits": MembershipCalculator.get_benefits(plan),
                "duration": PLAN_LABELS[plan],
            }
            for plan, price in MembershipCalculator.get_pricing().items()
        ]

    # ─── Derived state ──────────────────────────────────────────────

    @staticmethod
    def is_active(status: str, end_date: datetime, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return status == "active" and end_date > now

    @staticmethod
    def is_expiring_soon(end_date: datetime, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return now < end_date <= now + timedelta(days=settings.EXPIRING_SOON_DAYS)

    @staticmethod
    def remaining_days(end_date: datetime, now: Optional[datetime] = None) -> int:
        now = now or utcnow()
        if end_date < now:
            return 0
        return ceil_days(end_date - now)

    @staticmethod
    def duration_days(start_date: datetime, end_date: datetime) -> int:
        return ceil_days(end_date - start_date)

    # ─── Prepare step ───────────────────────────────────────────────

    @staticmethod
    def normalize(membership, changed: Iterable[str] = (), is_new: bool = False) -> None:
        """
        Fill derived fields on a membership before it is written.

        Derivation only runs for new records or when ``membership_type`` /
        ``start_date`` changed; edits to other fields never move the dates.

        Raises:
            InvalidMembershipType: membership_type is not a known plan.
        """
        changed = set(changed)
        if not (is_new or changed & {"membership_type", "start_date"}):
            return

        MembershipCalculator.validate_type(membership.membership_type)

        if membership.start_date is None:
            membership.start_date = utcnow()

        membership.end_date = MembershipCalculator.end_date_for(
            membership.membership_type, membership.start_date
        )
        membership.renewal_date = MembershipCalculator.renewal_date_for(membership.end_date)

        if membership.amount is None:
            membership.amount = MembershipCalculator.get_price(membership.membership_type)

        if is_new and not membership.benefits:
            membership.benefits = MembershipCalculator.get_benefits(membership.membership_type)
