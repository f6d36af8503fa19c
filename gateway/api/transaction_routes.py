"""
Transaction Routes - History, summary and detail of ledger transactions.
"""

from fastapi import APIRouter, Depends, Query

from gateway.api.dependencies import admission, get_current_user, get_history_service
from gateway.models.api import (
    Counterparty,
    DirectionStats,
    Pagination,
    Party,
    TransactionDetailResponse,
    TransactionDirection,
    TransactionItem,
    TransactionListResponse,
    TransactionSummaryResponse,
)
from gateway.models.domain import AuthenticatedUser
from gateway.services.history import HistoryService

router = APIRouter(
    prefix="/api/transactions",
    tags=["transactions"],
    dependencies=[Depends(admission("general"))],
)


@router.get("/history", response_model=TransactionListResponse)
async def get_history(
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    type: TransactionDirection | None = Query(None),
    user: AuthenticatedUser = Depends(get_current_user),
    history: HistoryService = Depends(get_history_service),
) -> TransactionListResponse:
    """Paginated history, optionally filtered to sent or received."""
    page = await history.history(user.user_id, limit=limit, offset=offset, direction=type)
    return TransactionListResponse(
        transactions=[
            TransactionItem(
                id=record.transaction_id,
                type=record.direction,
                amount=float(record.amount),
                currency=record.currency,
                status=record.status,
                description=record.description,
                created_at=record.created_at,
                counterparty=Counterparty(
                    email=record.counterparty_email, name=record.counterparty_name
                ),
            )
            for record in page.records
        ],
        pagination=Pagination(total=page.total, limit=page.limit, offset=page.offset),
    )


# Declared before /{transaction_id} so "stats" is not captured as an id
@router.get("/stats/summary", response_model=TransactionSummaryResponse)
async def get_summary(
    user: AuthenticatedUser = Depends(get_current_user),
    history: HistoryService = Depends(get_history_service),
) -> TransactionSummaryResponse:
    summary = await history.summary(user.user_id)
    return TransactionSummaryResponse(
        sent=DirectionStats(count=summary.sent_count, total_amount=float(summary.sent_total)),
        received=DirectionStats(
            count=summary.received_count, total_amount=float(summary.received_total)
        ),
    )


@router.get("/{transaction_id}", response_model=TransactionDetailResponse)
async def get_transaction(
    transaction_id: str,
    user: AuthenticatedUser = Depends(get_current_user),
    history: HistoryService = Depends(get_history_service),
) -> TransactionDetailResponse:
    detail = await history.detail(user.user_id, transaction_id)
    return TransactionDetailResponse(
        id=detail.transaction_id,
        sender=Party(id=detail.sender_id, email=detail.sender_email, name=detail.sender_name),
        receiver=Party(
            id=detail.receiver_id, email=detail.receiver_email, name=detail.receiver_name
        ),
        amount=float(detail.amount),
        currency=detail.currency,
        status=detail.status,
        description=detail.description,
        created_at=detail.created_at,
        completed_at=detail.completed_at,
    )
