"""
Tests for the Ledger Client.

Rejected transfers (known outcome) must stay distinguishable from
unavailable ledgers (unknown outcome).
"""

from decimal import Decimal

import httpx
import pytest

from gateway.exceptions import LedgerRejectedError, LedgerUnavailableError
from gateway.models.domain import TransferIntent
from gateway.services.ledger_client import LedgerClient


@pytest.fixture
def intent() -> TransferIntent:
    return TransferIntent(
        sender_id=1,
        receiver_id=2,
        amount=Decimal("150.00"),
        description="Dinner",
        idempotency_key="6f1c2a52-6e4b-4a43-9d0f-0d7f3f1f8b1e",
    )


@pytest.fixture
def client(ledger_http) -> LedgerClient:
    return LedgerClient(ledger_http)


class TestSuccess:
    """Tests for 2xx responses."""

    async def test_receipt(self, client, intent, ledger_stub):
        """A completed transfer yields the ledger's receipt."""
        receipt = await client.transfer(intent)

        assert receipt.transaction_id == "0b7f5c3e-8a3c-4f36-9f5e-3d2b1c0a9e8d"
        assert receipt.status == "completed"
        assert receipt.amount == Decimal("150.0")
        assert receipt.sender_balance == Decimal("850.0")
        assert receipt.idempotency_key == intent.idempotency_key

    async def test_request_payload(self, client, intent, ledger_stub):
        """The ledger receives ids, amount, description and the idempotency key."""
        await client.transfer(intent)

        assert ledger_stub.requests == [
            {
                "sender_id": 1,
                "receiver_id": 2,
                "amount": 150.0,
                "description": "Dinner",
                "idempotency_key": intent.idempotency_key,
            }
        ]

    async def test_unreadable_success_body(self, client, intent, ledger_stub):
        """A 2xx we cannot parse leaves the outcome unknown."""
        ledger_stub.responder = lambda request: httpx.Response(200, text="<html>ok</html>")

        with pytest.raises(LedgerUnavailableError) as exc_info:
            await client.transfer(intent)

        assert exc_info.value.idempotency_key == intent.idempotency_key


class TestRejections:
    """Tests for application errors forwarded verbatim."""

    async def test_insufficient_funds_forwarded(self, client, intent, ledger_stub):
        ledger_stub.responder = lambda request: httpx.Response(
            400, json={"error": "INSUFFICIENT_FUNDS", "message": "Insufficient balance"}
        )

        with pytest.raises(LedgerRejectedError) as exc_info:
            await client.transfer(intent)

        assert exc_info.value.status_code == 400
        assert exc_info.value.error_code == "INSUFFICIENT_FUNDS"
        assert exc_info.value.message == "Insufficient balance"

    async def test_duplicate_forwarded_with_status(self, client, intent, ledger_stub):
        ledger_stub.responder = lambda request: httpx.Response(
            409, json={"error": "DUPLICATE_TRANSACTION", "message": "Already processed"}
        )

        with pytest.raises(LedgerRejectedError) as exc_info:
            await client.transfer(intent)

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "DUPLICATE_TRANSACTION"

    async def test_error_without_body(self, client, intent, ledger_stub):
        """Non-gateway errors without a body become TRANSFER_FAILED."""
        ledger_stub.responder = lambda request: httpx.Response(500)

        with pytest.raises(LedgerRejectedError) as exc_info:
            await client.transfer(intent)

        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "TRANSFER_FAILED"


class TestUnavailable:
    """Tests for failures where the outcome is unknown."""

    @pytest.mark.parametrize("status_code", [502, 503, 504])
    async def test_gateway_statuses_without_body(self, client, intent, ledger_stub, status_code):
        ledger_stub.responder = lambda request: httpx.Response(status_code, text="upstream down")

        with pytest.raises(LedgerUnavailableError):
            await client.transfer(intent)

    @pytest.mark.parametrize("status_code", [301, 302, 307])
    async def test_redirect_is_not_forwarded(self, client, intent, ledger_stub, status_code):
        """A redirect carries no verdict and is never passed through as-is."""
        ledger_stub.responder = lambda request: httpx.Response(
            status_code,
            headers={"Location": "http://elsewhere.test/transfer"},
            json={"error": "MOVED", "message": "moved"},
        )

        with pytest.raises(LedgerUnavailableError) as exc_info:
            await client.transfer(intent)

        assert exc_info.value.status_code == 503
        assert exc_info.value.to_body()["idempotency_key"] == intent.idempotency_key

    async def test_connection_refused(self, client, intent, ledger_stub):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        ledger_stub.responder = refuse

        with pytest.raises(LedgerUnavailableError) as exc_info:
            await client.transfer(intent)

        assert exc_info.value.status_code == 503
        assert exc_info.value.error_code == "SERVICE_UNAVAILABLE"
        assert exc_info.value.to_body()["idempotency_key"] == intent.idempotency_key

    async def test_timeout(self, client, intent, ledger_stub):
        def time_out(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        ledger_stub.responder = time_out

        with pytest.raises(LedgerUnavailableError):
            await client.transfer(intent)

    async def test_single_attempt(self, client, intent, ledger_stub):
        """Failures are never retried."""
        ledger_stub.responder = lambda request: httpx.Response(503)

        with pytest.raises(LedgerUnavailableError):
            await client.transfer(intent)

        assert len(ledger_stub.requests) == 1
