from contextlib import contextmanager

from mcp.server.fastmcp import FastMCP

# Import standard app components
from eventhub.core.clock import utcnow
from eventhub.core.database import SessionLocal
from eventhub.models.membership import Membership
from eventhub.models.transaction import Transaction
from eventhub.models.user import User
from eventhub.services.membership_calculator import MembershipCalculator

# Create an MCP server instance
mcp = FastMCP("EventHub-Membership-Server")


@contextmanager
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@mcp.tool()
def get_membership_status(user_id: str) -> dict:
    """Current membership state for a user: plan, dates, remaining days and benefits."""
    with get_db() as db:
        user = db.query(User).filter(User.user_id == user_id).first()
        if not user:
            return {"error": "User not found"}

        membership = (
            db.query(Membership)
            .filter(Membership.user_id == user_id, Membership.status == "active")
            .first()
        )
        now = utcnow()
        if membership is None or not membership.is_active(now):
            return {"user_id": user_id, "has_active_membership": False}

        return {
            "user_id": user_id,
            "has_active_membership": True,
            "membership_id": membership.id,
            "membership_type": membership.membership_type,
            "start_date": membership.start_date.isoformat(),
            "end_date": membership.end_date.isoformat(),
            "remaining_days": membership.get_remaining_days(now),
            "expiring_soon": membership.is_expiring_soon(now),
            "payment_status": membership.payment_status,
            "benefits": list(membership.benefits or []),
        }


@mcp.tool()
def get_transaction_summary(transaction_id: str) -> dict:
    """Summary of a transaction by public TXN id, including any refund."""
    with get_db() as db:
        txn = db.query(Transaction).filter(Transaction.transaction_id == transaction_id).first()
        if not txn:
            return {"error": "Transaction not found"}

        summary = txn.get_summary()
        refund = txn.refund_details
        return {
            "transaction_id": summary["id"],
            "type": summary["type"],
            "status": summary["status"],
            "amount": float(summary["amount"]),
            "net_amount": float(summary["net_amount"]),
            "currency": txn.currency,
            "payment_method": summary["payment_method"],
            "date": summary["date"].isoformat() if summary["date"] else None,
            "receipt_number": summary["receipt_number"],
            "refund_amount": float(refund["refund_amount"]) if refund else None,
        }


@mcp.tool()
def get_membership_pricing() -> list[dict]:
    """Plan catalog: type, price, duration label and benefits."""
    return [
        {**plan, "price": float(plan["price"])}
        for plan in MembershipCalculator.catalog()
    ]


if __name__ == "__main__":
    # Start the standard streaming stdio server
    print("Starting EventHub Membership MCP Server on stdio...")
    mcp.run()
