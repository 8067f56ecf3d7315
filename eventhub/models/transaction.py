"""
Transaction model: a financial event (purchase, registration, refund,
cancellation) billed against a Membership or an Event.

``related_item`` is a tagged union stored as (related_item_type,
related_item_id); resolve it by tag, never by probing both tables.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, ClassVar, Optional, Union

from sqlalchemy import String, DateTime, ForeignKey, Index, Integer, JSON, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eventhub.core.clock import utcnow
from eventhub.core.database import Base
from eventhub.services.transaction_calculator import TransactionCalculator


@dataclass(frozen=True)
class MembershipRef:
    kind: ClassVar[str] = "Membership"
    id: str


@dataclass(frozen=True)
class EventRef:
    kind: ClassVar[str] = "Event"
    id: str


RelatedItem = Union[MembershipRef, EventRef]

_REF_BY_KIND = {MembershipRef.kind: MembershipRef, EventRef.kind: EventRef}


def related_item_from(kind: str, item_id: str) -> RelatedItem:
    try:
        return _REF_BY_KIND[kind](item_id)
    except KeyError:
        raise ValueError(f"Unknown related item type: {kind}") from None


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_created", "user_id", "created_at"),
        Index("ix_transactions_status_created", "status", "created_at"),
        Index("ix_transactions_type_created", "type", "created_at"),
        Index("ix_transactions_related_item", "related_item_type", "related_item_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
        doc="Internal row identifier (UUID)"
    )
    transaction_id: Mapped[str] = mapped_column(
        String(40),
        unique=True,
        nullable=False,
        doc="Public identifier, TXN<epoch-ms><token>"
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.user_id"),
        nullable=False,
        doc="User who owns this transaction"
    )
    type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        doc="membership, event_registration, refund, cancellation"
    )
    related_item_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Tag of the billed item: Membership or Event"
    )
    related_item_id: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        doc="Id of the billed item in the table named by the tag"
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        doc="pending, completed, failed, cancelled, refunded"
    )
    payment_method: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_gateway: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    gateway_transaction_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    gateway_response: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    # "metadata" is reserved on declarative classes
    extra: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)

    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    tax_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    tax_type: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    discount_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False, default=Decimal("0"))
    coupon_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    net_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        doc="amount + tax_amount - discount_amount, recomputed before every write"
    )

    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failure_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    refund_id: Mapped[Optional[str]] = mapped_column(String(40), nullable=True)
    refund_amount: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    refund_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    refund_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    refund_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    receipt_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    receipt_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    receipt_issued_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    billing_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.user_id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    user = relationship("User", foreign_keys=[user_id])

    @property
    def related_item(self) -> RelatedItem:
        return related_item_from(self.related_item_type, self.related_item_id)

    @related_item.setter
    def related_item(self, ref: RelatedItem) -> None:
        self.related_item_type = ref.kind
        self.related_item_id = ref.id

    def can_be_refunded(self) -> bool:
        return TransactionCalculator.can_be_refunded(self)

    def process_refund(self, refund_amount: Any = None, reason: str = "") -> dict:
        return TransactionCalculator.process_refund(self, refund_amount, reason)

    def get_summary(self) -> dict:
        return TransactionCalculator.summary(self)

    @property
    def taxes(self) -> dict:
        return {"amount": self.tax_amount, "percentage": self.tax_percentage, "tax_type": self.tax_type}

    @property
    def discount(self) -> dict:
        return {"amount": self.discount_amount, "percentage": self.discount_percentage, "coupon_code": self.coupon_code}

    @property
    def receipt(self) -> Optional[dict]:
        if not self.receipt_number:
            return None
        return {"receipt_number": self.receipt_number, "receipt_url": self.receipt_url, "issued_at": self.receipt_issued_at}

    @property
    def refund_details(self) -> Optional[dict]:
        return TransactionCalculator.refund_details(self)

    def __repr__(self) -> str:
        return (
            f"<Transaction(id={self.transaction_id}, user={self.user_id}, "
            f"type={self.type}, net={self.net_amount}, status={self.status})>"
        )
