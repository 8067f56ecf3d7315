"""
Transaction Calculator Service.

Financial derivations for transactions:
  - public ids:      TXN<epoch-ms><6 chars>, RCP<YYYYMMDD><4 chars>, REF<epoch-ms><4 chars>
  - net amount:      amount + taxes - discount (no floor at zero)
  - receipt:         issued once, the first time status is completed
  - processed_at:    stamped once, on first entry to completed/failed
  - refund gate and refund computation
"""

import secrets
import string
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from eventhub.core.clock import utcnow
from eventhub.core.exceptions import RefundNotAllowed

TOKEN_ALPHABET = string.ascii_uppercase + string.digits
PROCESSED_STATUSES = ("completed", "failed")


def random_token(length: int) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def epoch_millis(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def as_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class TransactionCalculator:
    """Pure transaction derivations. Operates on any object with the model's attributes."""

    @staticmethod
    def generate_transaction_id(now: Optional[datetime] = None) -> str:
        return f"TXN{epoch_millis(now or utcnow())}{random_token(6)}"

    @staticmethod
    def generate_receipt_number(now: Optional[datetime] = None) -> str:
        return f"RCP{(now or utcnow()).strftime('%Y%m%d')}{random_token(4)}"

    @staticmethod
    def generate_refund_id(now: Optional[datetime] = None) -> str:
        return f"REF{epoch_millis(now or utcnow())}{random_token(4)}"

    @staticmethod
    def net_amount(amount: Any, tax_amount: Any = 0, discount_amount: Any = 0) -> Decimal:
        return as_decimal(amount) + as_decimal(tax_amount) - as_decimal(discount_amount)

    @staticmethod
    def normalize(txn, now: Optional[datetime] = None) -> None:
        """Fill id, net amount, receipt and processed_at before a write."""
        now = now or utcnow()

        if not txn.transaction_id:
            txn.transaction_id = TransactionCalculator.generate_transaction_id(now)

        txn.net_amount = TransactionCalculator.net_amount(
            txn.amount, txn.tax_amount, txn.discount_amount
        )

        if txn.status == "completed" and not txn.receipt_number:
            txn.receipt_number = TransactionCalculator.generate_receipt_number(now)
            txn.receipt_issued_at = now

        if txn.status in PROCESSED_STATUSES and txn.processed_at is None:
            txn.processed_at = now

    @staticmethod
    def can_be_refunded(txn) -> bool:
        return (
            txn.status == "completed"
            and not txn.refund_id
            and as_decimal(txn.amount) > 0
        )

    @staticmethod
    def process_refund(txn, requested_amount: Any = None, reason: str = "", now: Optional[datetime] = None) -> dict:
        """
        Stamp refund details onto the original transaction and mark it refunded.

        The refund amount is the requested amount capped at the net amount, or
        the full net amount when nothing is requested. Creating the sibling
        ``refund`` transaction is the caller's job.

        Raises:
            RefundNotAllowed: the transaction is not completed, already
                refunded, or has no positive amount.
        """
        if not TransactionCalculator.can_be_refunded(txn):
            raise RefundNotAllowed()

        now = now or utcnow()
        net = as_decimal(txn.net_amount)
        requested = as_decimal(requested_amount) if requested_amount else net

        txn.refund_id = TransactionCalculator.generate_refund_id(now)
        txn.refund_amount = min(requested, net)
        txn.refund_date = now
        txn.refund_reason = reason
        txn.refund_status = "pending"
        txn.status = "refunded"

        return TransactionCalculator.refund_details(txn)

    @staticmethod
    def refund_details(txn) -> Optional[dict]:
        if not txn.refund_id:
            return None
        return {
            "refund_id": txn.refund_id,
            "refund_amount": txn.refund_amount,
            "refund_date": txn.refund_date,
            "refund_reason": txn.refund_reason,
            "refund_status": txn.refund_status,
        }

    @staticmethod
    def summary(txn) -> dict:
        return {
            "id": txn.transaction_id,
            "amount": txn.amount,
            "net_amount": txn.net_amount,
            "status": txn.status,
            "type": txn.type,
            "payment_method": txn.payment_method,
            "date": txn.created_at,
            "receipt_number": txn.receipt_number,
        }
