"""
Transfer Orchestrator - Validates a transfer and delegates it to the ledger.

The gateway never moves money itself. It resolves the receiver, rejects
transfers that cannot be valid, stamps a fresh idempotency key and hands the
intent to the ledger. Balances are neither written nor cached here; the
ledger invalidates both parties' cache entries after applying a transfer.
"""

import time
from collections.abc import Callable
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.db.models import User
from gateway.exceptions import (
    InvalidTransferError,
    LedgerRejectedError,
    LedgerUnavailableError,
    ReceiverNotFoundError,
    ValidationFailedError,
)
from gateway.models.domain import CENT, AuthenticatedUser, TransferIntent, TransferReceipt
from gateway.observability.metrics import metrics
from gateway.services.ledger_client import LedgerClient

logger = get_logger(__name__)


def new_idempotency_key() -> str:
    """Fresh key per transfer invocation."""
    return str(uuid4())


class TransferOrchestrator:
    """Coordinates receiver resolution and the ledger call for one transfer."""

    def __init__(
        self,
        ledger: LedgerClient,
        key_factory: Callable[[], str] = new_idempotency_key,
    ) -> None:
        self.ledger = ledger
        self.key_factory = key_factory

    async def transfer(
        self,
        session: AsyncSession,
        sender: AuthenticatedUser,
        receiver_email: str,
        amount: Decimal,
        description: str | None = None,
    ) -> TransferReceipt:
        """
        Execute a transfer from `sender` to the active user owning `receiver_email`.

        Every precondition is checked before the ledger is contacted, so a
        rejected request has no side effects anywhere.
        """
        if amount <= 0 or amount != amount.quantize(CENT):
            metrics.record_transfer("invalid")
            raise ValidationFailedError(
                "Amount must be greater than 0 with at most 2 decimal places"
            )

        receiver = await self._find_active_receiver(session, receiver_email)
        if receiver is None:
            metrics.record_transfer("receiver_not_found")
            logger.info("transfer_receiver_not_found", sender_id=sender.user_id)
            raise ReceiverNotFoundError()

        if receiver.id == sender.user_id:
            metrics.record_transfer("invalid")
            raise InvalidTransferError()

        intent = TransferIntent(
            sender_id=sender.user_id,
            receiver_id=receiver.id,
            amount=amount,
            description=description or "",
            idempotency_key=self.key_factory(),
        )

        logger.info(
            "transfer_submitted",
            sender_id=intent.sender_id,
            receiver_id=intent.receiver_id,
            amount=str(intent.amount),
            idempotency_key=intent.idempotency_key,
        )

        started = time.perf_counter()
        try:
            receipt = await self.ledger.transfer(intent)
        except LedgerRejectedError as e:
            metrics.record_transfer("rejected", time.perf_counter() - started)
            logger.info(
                "transfer_rejected",
                idempotency_key=intent.idempotency_key,
                error_code=e.error_code,
                status_code=e.status_code,
            )
            raise
        except LedgerUnavailableError:
            metrics.record_transfer("unknown", time.perf_counter() - started)
            raise

        metrics.record_transfer("completed", time.perf_counter() - started)
        logger.info(
            "transfer_completed",
            transaction_id=receipt.transaction_id,
            sender_id=intent.sender_id,
            receiver_id=intent.receiver_id,
            amount=str(receipt.amount),
            idempotency_key=intent.idempotency_key,
        )
        return receipt

    async def _find_active_receiver(self, session: AsyncSession, email: str) -> User | None:
        result = await session.execute(
            select(User).where(User.email == email.strip().lower(), User.is_active.is_(True))
        )
        return result.scalar_one_or_none()
