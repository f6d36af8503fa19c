"""
Ledger Client - HTTP client for the ledger service transfer endpoint.

Two failure shapes are kept apart on purpose:
- LedgerRejectedError: the ledger answered and refused (outcome known)
- LedgerUnavailableError: no usable answer (outcome unknown)
"""

from decimal import Decimal, InvalidOperation
from typing import Any

import httpx
from structlog import get_logger

from gateway.exceptions import LedgerRejectedError, LedgerUnavailableError
from gateway.models.domain import TransferIntent, TransferReceipt
from gateway.observability.tracing import trace_operation

logger = get_logger(__name__)

# Gateway/proxy statuses that carry no ledger verdict
UNAVAILABLE_STATUSES = frozenset({502, 503, 504})


class LedgerClient:
    """
    Calls `POST /transfer` on the ledger service.

    The httpx client is owned by the application lifespan and must be
    configured with the ledger base URL and timeout.
    """

    def __init__(self, http: httpx.AsyncClient) -> None:
        self.http = http

    async def transfer(self, intent: TransferIntent) -> TransferReceipt:
        """
        Submit a transfer. Never retried here.

        Raises:
            LedgerRejectedError: ledger returned an error status
            LedgerUnavailableError: timeout, connection failure or garbled reply
        """
        payload = {
            "sender_id": intent.sender_id,
            "receiver_id": intent.receiver_id,
            "amount": float(intent.amount),
            "description": intent.description,
            "idempotency_key": intent.idempotency_key,
        }

        with trace_operation(
            "ledger_transfer",
            sender_id=intent.sender_id,
            receiver_id=intent.receiver_id,
            idempotency_key=intent.idempotency_key,
        ) as span:
            try:
                response = await self.http.post("/transfer", json=payload)
            except httpx.HTTPError as e:
                logger.error(
                    "ledger_unreachable",
                    idempotency_key=intent.idempotency_key,
                    error_type=type(e).__name__,
                    error=str(e),
                )
                raise LedgerUnavailableError(intent.idempotency_key, type(e).__name__) from e
            span.set_attribute("http.status_code", response.status_code)

        if response.is_success:
            return self._parse_receipt(intent, response)
        raise self._error_for(intent, response)

    def _parse_receipt(
        self, intent: TransferIntent, response: httpx.Response
    ) -> TransferReceipt:
        try:
            data: dict[str, Any] = response.json()
            return TransferReceipt(
                transaction_id=str(data["transaction_id"]),
                amount=Decimal(str(data.get("amount", intent.amount))),
                status=str(data.get("status", "completed")),
                sender_balance=Decimal(str(data["sender_balance"])),
                idempotency_key=intent.idempotency_key,
            )
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            # The ledger may have applied the transfer; we just cannot read it
            logger.error(
                "ledger_response_unreadable",
                idempotency_key=intent.idempotency_key,
                status_code=response.status_code,
                error=str(e),
            )
            raise LedgerUnavailableError(intent.idempotency_key, "unreadable response") from e

    def _error_for(
        self, intent: TransferIntent, response: httpx.Response
    ) -> LedgerRejectedError | LedgerUnavailableError:
        if response.status_code < 400:
            # Redirects and informational answers are not followed; no verdict
            logger.error(
                "ledger_unexpected_status",
                idempotency_key=intent.idempotency_key,
                status_code=response.status_code,
            )
            return LedgerUnavailableError(intent.idempotency_key, f"HTTP {response.status_code}")

        body: Any = None
        try:
            body = response.json()
        except ValueError:
            body = None

        if isinstance(body, dict) and isinstance(body.get("error"), str):
            error_code = body["error"]
            message = str(body.get("message") or error_code)
            logger.warning(
                "ledger_rejected_transfer",
                idempotency_key=intent.idempotency_key,
                status_code=response.status_code,
                error_code=error_code,
            )
            return LedgerRejectedError(response.status_code, error_code, message)

        if response.status_code in UNAVAILABLE_STATUSES:
            logger.error(
                "ledger_unavailable_status",
                idempotency_key=intent.idempotency_key,
                status_code=response.status_code,
            )
            return LedgerUnavailableError(intent.idempotency_key, f"HTTP {response.status_code}")

        logger.warning(
            "ledger_transfer_failed",
            idempotency_key=intent.idempotency_key,
            status_code=response.status_code,
        )
        return LedgerRejectedError(response.status_code, "TRANSFER_FAILED", "Transfer failed")
