"""
Database Seed Script.

Seeds a small demo tenant:
1. John Admin  – admin account for the back office
2. Jane Doe    – member with an active 1-year membership (paid by card)
3. Bob Smith   – regular user without a membership
4. Four events – published and draft, free and paid, across categories
"""

import logging
from datetime import timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from eventhub.core.clock import utcnow
from eventhub.core.config import get_settings
from eventhub.models.event import Event
from eventhub.models.membership import Membership
from eventhub.models.transaction import MembershipRef, Transaction
from eventhub.models.user import User
from eventhub.services.membership_calculator import MembershipCalculator
from eventhub.services.transaction_calculator import TransactionCalculator

logger = logging.getLogger(__name__)
settings = get_settings()

# Fixed UUIDs so the X-User-Id header is predictable in the demo
ADMIN_ID = "11111111-1111-1111-1111-111111111111"
MEMBER_ID = "22222222-2222-2222-2222-222222222222"
USER_ID = "33333333-3333-3333-3333-333333333333"

USERS = [
    {"user_id": ADMIN_ID, "first_name": "John", "last_name": "Admin",
     "email": "john.admin@example.com", "phone": "9876543210", "role": "admin", "days_ago": 400},
    {"user_id": MEMBER_ID, "first_name": "Jane", "last_name": "Doe",
     "email": "jane.user@example.com", "phone": "8765432109", "role": "user", "days_ago": 120},
    {"user_id": USER_ID, "first_name": "Bob", "last_name": "Smith",
     "email": "bob.user@example.com", "phone": "7654321098", "role": "user", "days_ago": 15},
]

EVENTS = [
    {"title": "Annual Tech Conference", "category": "Conference", "days_ahead": 30, "hours": 8,
     "venue_name": "Convention Center", "fee": "49.00", "max_attendees": 200, "status": "published"},
    {"title": "Python Workshop", "category": "Workshop", "days_ahead": 10, "hours": 3,
     "venue_name": None, "event_type": "online", "fee": "0", "max_attendees": 40, "status": "published"},
    {"title": "Founders Networking Night", "category": "Networking", "days_ahead": 5, "hours": 4,
     "venue_name": "Rooftop Lounge", "fee": "15.00", "max_attendees": 60, "status": "published"},
    {"title": "Community Sports Day", "category": "Sports", "days_ahead": 60, "hours": 6,
     "venue_name": "City Park", "fee": "0", "max_attendees": 150, "status": "draft"},
]


def seed_database(db: Session) -> None:
    """
    Seeds the database with demo users, one active membership and demo events.
    Skips seeding if users already exist.
    """
    existing = db.query(User).count()
    if existing > 0:
        logger.info(f"Database already has {existing} users, skipping seed")
        return

    logger.info(f"Seeding database with {len(USERS)} users and {len(EVENTS)} events...")
    now = utcnow()

    for config in USERS:
        db.add(User(
            user_id=config["user_id"],
            first_name=config["first_name"],
            last_name=config["last_name"],
            email=config["email"],
            phone=config["phone"],
            role=config["role"],
            created_at=now - timedelta(days=config["days_ago"]),
        ))
    db.flush()

    for config in EVENTS:
        start = now + timedelta(days=config["days_ahead"])
        db.add(Event(
            title=config["title"],
            description=f"{config['title']} hosted by the EventHub team.",
            category=config["category"],
            start_date=start,
            end_date=start + timedelta(hours=config["hours"]),
            venue_name=config["venue_name"],
            event_type=config.get("event_type", "offline"),
            organizer_id=ADMIN_ID,
            registration_fee=Decimal(config["fee"]),
            max_attendees=config["max_attendees"],
            status=config["status"],
        ))

    _seed_membership(db, MEMBER_ID, "1year", start_date=now - timedelta(days=90))

    db.commit()
    logger.info("Database seeded successfully")


def _seed_membership(db: Session, user_id: str, membership_type: str, start_date) -> None:
    """Create a paid membership and its completed purchase transaction."""
    membership = Membership(
        user_id=user_id,
        membership_type=membership_type,
        start_date=start_date,
        status="active",
        payment_status="completed",
        payment_method="card",
        created_by=user_id,
        created_at=start_date,
    )
    MembershipCalculator.normalize(membership, is_new=True)
    db.add(membership)
    db.flush()

    transaction = Transaction(
        user_id=user_id,
        type="membership",
        related_item=MembershipRef(membership.id),
        amount=membership.amount,
        currency=settings.DEFAULT_CURRENCY,
        status="completed",
        payment_method="card",
        description=f"{membership_type} membership purchase",
        created_by=user_id,
        created_at=start_date,
    )
    TransactionCalculator.normalize(transaction, start_date)
    db.add(transaction)
    db.flush()

    membership.transaction_id = transaction.transaction_id
