"""Pydantic schemas for Transaction API responses, filters and refunds."""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from eventhub.schemas.common import Money, Pagination

TransactionType = Literal["membership", "event_registration", "refund", "cancellation"]
TransactionStatus = Literal["pending", "completed", "failed", "cancelled", "refunded"]
TransactionPaymentMethod = Literal["card", "bank_transfer", "paypal", "stripe", "cash", "online"]


class MembershipItem(BaseModel):
    item_type: Literal["Membership"] = "Membership"
    item_id: str


class EventItem(BaseModel):
    item_type: Literal["Event"] = "Event"
    item_id: str


RelatedItemSchema = Annotated[Union[MembershipItem, EventItem], Field(discriminator="item_type")]


class Taxes(BaseModel):
    amount: Money = Decimal("0")
    percentage: Money = Decimal("0")
    tax_type: Optional[str] = None


class Discount(BaseModel):
    amount: Money = Decimal("0")
    percentage: Money = Decimal("0")
    coupon_code: Optional[str] = None


class Receipt(BaseModel):
    receipt_number: str
    receipt_url: Optional[str] = None
    issued_at: Optional[datetime] = None


class RefundDetails(BaseModel):
    refund_id: str
    refund_amount: Money
    refund_date: datetime
    refund_reason: Optional[str] = None
    refund_status: Optional[str] = None


class TransactionSummary(BaseModel):
    """Compact projection for lists and receipts."""
    id: str = Field(..., description="Public transaction id")
    amount: Money
    net_amount: Money
    status: TransactionStatus
    type: TransactionType
    payment_method: str
    date: Optional[datetime] = None
    receipt_number: Optional[str] = None


class TransactionResponse(BaseModel):
    """Single transaction record returned by the API."""
    id: str
    transaction_id: str
    user_id: str
    type: TransactionType
    related_item: RelatedItemSchema
    amount: Money
    currency: str
    status: TransactionStatus
    payment_method: str
    payment_gateway: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    description: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None
    taxes: Taxes
    discount: Discount
    net_amount: Money
    processed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    refund_details: Optional[RefundDetails] = None
    receipt: Optional[Receipt] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, txn) -> "TransactionResponse":
        return cls(
            id=txn.id,
            transaction_id=txn.transaction_id,
            user_id=txn.user_id,
            type=txn.type,
            related_item={"item_type": txn.related_item_type, "item_id": txn.related_item_id},
            amount=txn.amount,
            currency=txn.currency,
            status=txn.status,
            payment_method=txn.payment_method,
            payment_gateway=txn.payment_gateway,
            gateway_transaction_id=txn.gateway_transaction_id,
            description=txn.description,
            metadata=txn.extra,
            taxes=Taxes(**txn.taxes),
            discount=Discount(**txn.discount),
            net_amount=txn.net_amount,
            processed_at=txn.processed_at,
            failure_reason=txn.failure_reason,
            refund_details=txn.refund_details,
            receipt=txn.receipt,
            notes=txn.notes,
            created_by=txn.created_by,
            updated_by=txn.updated_by,
            created_at=txn.created_at,
            updated_at=txn.updated_at,
        )


class TransactionHistoryItem(TransactionResponse):
    summary: TransactionSummary


class TransactionUpdateRequest(BaseModel):
    """Admin edit. Keys outside this allowlist are dropped, not rejected."""
    status: Optional[TransactionStatus] = None
    payment_method: Optional[TransactionPaymentMethod] = None
    gateway_transaction_id: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=1000)
    failure_reason: Optional[str] = Field(None, max_length=500)

    model_config = {"extra": "ignore"}


class RefundRequest(BaseModel):
    """Refund input. Omitting refund_amount refunds the full net amount."""
    refund_amount: Optional[Money] = Field(None, gt=0)
    reason: str = Field(..., min_length=1, max_length=500, description="Why the refund is issued")

    model_config = {"str_strip_whitespace": True}


class TransactionData(BaseModel):
    transaction: TransactionResponse


class TransactionListData(BaseModel):
    transactions: list[TransactionResponse]
    pagination: Optional[Pagination] = None


class TransactionHistoryData(BaseModel):
    transactions: list[TransactionHistoryItem]
    pagination: Pagination


class RefundResult(BaseModel):
    original_transaction: TransactionResponse
    refund_transaction: TransactionSummary
