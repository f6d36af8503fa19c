"""
Wallet Routes - Balance, transfer and top-up endpoints.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from gateway.api.dependencies import (
    admission,
    get_balance_cache,
    get_current_user,
    get_db,
    get_transfer_orchestrator,
    get_wallet_service,
)
from gateway.models.api import (
    AddFundsRequest,
    AddFundsResponse,
    BalanceResponse,
    TransferRequest,
    TransferResponse,
    TransferTransaction,
)
from gateway.models.domain import AuthenticatedUser
from gateway.services.balance_cache import BalanceCache
from gateway.services.transfers import TransferOrchestrator
from gateway.services.wallets import WalletService

router = APIRouter(
    prefix="/api/wallet",
    tags=["wallet"],
    dependencies=[Depends(admission("general"))],
)


@router.get("/balance", response_model=BalanceResponse)
async def get_balance(
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
) -> BalanceResponse:
    """Current balance, served from cache when fresh."""
    reading = await cache.read(db, user.user_id)
    return BalanceResponse(
        balance=float(reading.balance),
        currency=reading.currency,
        cached=reading.from_cache,
    )


@router.post(
    "/transfer",
    response_model=TransferResponse,
    dependencies=[Depends(admission("transfer"))],
)
async def transfer(
    request: TransferRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    orchestrator: TransferOrchestrator = Depends(get_transfer_orchestrator),
) -> TransferResponse:
    """
    Send money to another user by email.

    The ledger executes the transfer; a 503 means the outcome is unknown and
    the response carries the idempotency key used.
    """
    receipt = await orchestrator.transfer(
        db,
        sender=user,
        receiver_email=request.receiver_email,
        amount=request.amount,
        description=request.description,
    )
    return TransferResponse(
        message="Transfer completed successfully",
        transaction=TransferTransaction(
            id=receipt.transaction_id,
            amount=float(receipt.amount),
            status=receipt.status,
            sender_balance=float(receipt.sender_balance),
            idempotency_key=receipt.idempotency_key,
        ),
    )


@router.post("/add-funds", response_model=AddFundsResponse)
async def add_funds(
    request: AddFundsRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    wallets: WalletService = Depends(get_wallet_service),
) -> AddFundsResponse:
    """Demo top-up; drops the cached balance before responding."""
    new_balance = await wallets.add_funds(user.user_id, request.amount)
    return AddFundsResponse(message="Funds added successfully", new_balance=float(new_balance))
