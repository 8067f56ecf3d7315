"""
Transactions API endpoints.
Admin listing with filters, member history, statistics, edits and refunds.
Transactions are addressed by row id or by public TXN id.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from eventhub.api.deps import date_range_params, page_params
from eventhub.core.database import get_db
from eventhub.core.security import get_current_user, require_admin
from eventhub.models.user import User
from eventhub.schemas.common import ApiResponse, DateRange, PageParams, Pagination
from eventhub.schemas.report import TransactionStats
from eventhub.schemas.transaction import (
    RefundRequest,
    RefundResult,
    TransactionData,
    TransactionHistoryData,
    TransactionHistoryItem,
    TransactionListData,
    TransactionPaymentMethod,
    TransactionResponse,
    TransactionStatus,
    TransactionSummary,
    TransactionType,
    TransactionUpdateRequest,
)
from eventhub.services.transaction_service import TransactionService

router = APIRouter(prefix="/transactions", tags=["Transactions"])


@router.get("", response_model=ApiResponse[TransactionListData])
async def list_transactions(
    status: Optional[TransactionStatus] = Query(None, description="Filter: transaction status"),
    type: Optional[TransactionType] = Query(None, description="Filter: transaction type"),
    payment_method: Optional[TransactionPaymentMethod] = Query(None, description="Filter: payment method"),
    user_id: Optional[str] = Query(None, description="Filter: owning user"),
    dates: DateRange = Depends(date_range_params),
    page: PageParams = Depends(page_params),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    List transactions (admin), newest first.
    Supports status, type, payment method, user and created-at range filters.
    """
    transactions, total = TransactionService(db).search(
        page, dates, status=status, type=type, payment_method=payment_method, user_id=user_id
    )
    return ApiResponse(data=TransactionListData(
        transactions=[TransactionResponse.from_model(t) for t in transactions],
        pagination=Pagination.build(page, total),
    ))


@router.get("/history", response_model=ApiResponse[TransactionHistoryData])
async def get_transaction_history(
    status: Optional[TransactionStatus] = Query(None),
    type: Optional[TransactionType] = Query(None),
    page: PageParams = Depends(page_params),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """The caller's own transactions with a summary per row."""
    transactions, total = TransactionService(db).history(user, page, status=status, type=type)
    return ApiResponse(data=TransactionHistoryData(
        transactions=[
            TransactionHistoryItem(
                **TransactionResponse.from_model(t).model_dump(),
                summary=TransactionSummary(**t.get_summary()),
            )
            for t in transactions
        ],
        pagination=Pagination.build(page, total),
    ))


@router.get("/stats", response_model=ApiResponse[TransactionStats])
async def get_transaction_stats(
    dates: DateRange = Depends(date_range_params),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Overview, per-type, per-method and daily statistics (default last 30 days)."""
    return ApiResponse(data=TransactionStats(**TransactionService(db).stats(dates)))


@router.get("/recent", response_model=ApiResponse[TransactionListData])
async def get_recent_transactions(
    limit: int = Query(10, ge=1, le=100, description="Max results"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    transactions = TransactionService(db).recent(limit)
    return ApiResponse(data=TransactionListData(
        transactions=[TransactionResponse.from_model(t) for t in transactions],
    ))


@router.get("/pending", response_model=ApiResponse[TransactionListData])
async def get_pending_transactions(
    page: PageParams = Depends(page_params),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    transactions, total = TransactionService(db).pending(page)
    return ApiResponse(data=TransactionListData(
        transactions=[TransactionResponse.from_model(t) for t in transactions],
        pagination=Pagination.build(page, total),
    ))


@router.get("/{transaction_id}", response_model=ApiResponse[TransactionData])
async def get_transaction(
    transaction_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a single transaction (owner or admin)."""
    txn = TransactionService(db).get_for(user, transaction_id)
    return ApiResponse(data=TransactionData(transaction=TransactionResponse.from_model(txn)))


@router.put("/{transaction_id}", response_model=ApiResponse[TransactionData])
async def update_transaction(
    transaction_id: str,
    request: TransactionUpdateRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db).update(admin, transaction_id, request)
    return ApiResponse(
        message="Transaction updated successfully",
        data=TransactionData(transaction=TransactionResponse.from_model(txn)),
    )


@router.post("/{transaction_id}/refund", response_model=ApiResponse[RefundResult])
async def refund_transaction(
    transaction_id: str,
    request: RefundRequest,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Refund a completed transaction (admin).
    Omitting refund_amount refunds the full net amount; larger amounts are capped.
    """
    original, refund = TransactionService(db).refund(admin, transaction_id, request)
    return ApiResponse(
        message="Refund processed successfully",
        data=RefundResult(
            original_transaction=TransactionResponse.from_model(original),
            refund_transaction=TransactionSummary(**refund.get_summary()),
        ),
    )
