"""
Tests for the Transfer Orchestrator.
"""

from decimal import Decimal

import httpx
import pytest

from gateway.exceptions import (
    InvalidTransferError,
    LedgerRejectedError,
    LedgerUnavailableError,
    ReceiverNotFoundError,
    ValidationFailedError,
)
from gateway.models.domain import AuthenticatedUser
from gateway.services.ledger_client import LedgerClient
from gateway.services.transfers import TransferOrchestrator


@pytest.fixture
def orchestrator(ledger_http) -> TransferOrchestrator:
    keys = iter(["key-1", "key-2", "key-3"])
    return TransferOrchestrator(LedgerClient(ledger_http), key_factory=lambda: next(keys))


@pytest.fixture
async def parties(make_user):
    alice = await make_user(email="alice@example.com", full_name="Alice")
    bob = await make_user(email="bob@example.com", full_name="Bob")
    return AuthenticatedUser(alice.id, alice.email), bob


class TestPreconditions:
    """Rejected transfers never reach the ledger."""

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5.00"), Decimal("1.005")])
    async def test_invalid_amount(self, orchestrator, db_session, parties, ledger_stub, amount):
        sender, _ = parties

        with pytest.raises(ValidationFailedError):
            await orchestrator.transfer(db_session, sender, "bob@example.com", amount)

        assert ledger_stub.requests == []

    async def test_unknown_receiver(self, orchestrator, db_session, parties, ledger_stub):
        sender, _ = parties

        with pytest.raises(ReceiverNotFoundError) as exc_info:
            await orchestrator.transfer(db_session, sender, "nobody@example.com", Decimal("10"))

        assert exc_info.value.status_code == 404
        assert ledger_stub.requests == []

    async def test_inactive_receiver(self, orchestrator, db_session, parties, make_user, ledger_stub):
        """Inactive receivers look exactly like missing ones."""
        sender, _ = parties
        await make_user(email="carol@example.com", is_active=False)

        with pytest.raises(ReceiverNotFoundError):
            await orchestrator.transfer(db_session, sender, "carol@example.com", Decimal("10"))

        assert ledger_stub.requests == []

    async def test_self_transfer(self, orchestrator, db_session, parties, ledger_stub):
        sender, _ = parties

        with pytest.raises(InvalidTransferError) as exc_info:
            await orchestrator.transfer(db_session, sender, "ALICE@example.com", Decimal("10"))

        assert exc_info.value.error_code == "INVALID_TRANSFER"
        assert ledger_stub.requests == []


class TestLedgerDelegation:
    """Tests for the ledger call."""

    async def test_successful_transfer(self, orchestrator, db_session, parties, ledger_stub):
        sender, bob = parties

        receipt = await orchestrator.transfer(
            db_session, sender, "Bob@Example.com", Decimal("150.00"), "Dinner"
        )

        assert receipt.sender_balance == Decimal("850.0")
        assert ledger_stub.requests[0]["sender_id"] == sender.user_id
        assert ledger_stub.requests[0]["receiver_id"] == bob.id
        assert ledger_stub.requests[0]["idempotency_key"] == "key-1"

    async def test_fresh_key_per_invocation(self, orchestrator, db_session, parties, ledger_stub):
        """Each invocation gets its own idempotency key."""
        sender, _ = parties

        await orchestrator.transfer(db_session, sender, "bob@example.com", Decimal("1"))
        await orchestrator.transfer(db_session, sender, "bob@example.com", Decimal("1"))

        keys = [request["idempotency_key"] for request in ledger_stub.requests]
        assert keys == ["key-1", "key-2"]

    async def test_default_keys_are_uuid4(self, ledger_http, db_session, parties, ledger_stub):
        orchestrator = TransferOrchestrator(LedgerClient(ledger_http))
        sender, _ = parties

        await orchestrator.transfer(db_session, sender, "bob@example.com", Decimal("1"))
        await orchestrator.transfer(db_session, sender, "bob@example.com", Decimal("1"))

        first, second = (request["idempotency_key"] for request in ledger_stub.requests)
        assert first != second
        assert len(first) == 36

    async def test_no_cache_write(self, orchestrator, db_session, parties, fake_redis):
        """The gateway leaves cache maintenance after transfers to the ledger."""
        sender, _ = parties

        await orchestrator.transfer(db_session, sender, "bob@example.com", Decimal("1"))

        assert fake_redis.values == {}

    async def test_rejection_propagates(self, orchestrator, db_session, parties, ledger_stub):
        sender, _ = parties
        ledger_stub.responder = lambda request: httpx.Response(
            400, json={"error": "INSUFFICIENT_FUNDS", "message": "Insufficient balance"}
        )

        with pytest.raises(LedgerRejectedError) as exc_info:
            await orchestrator.transfer(db_session, sender, "bob@example.com", Decimal("5000"))

        assert exc_info.value.error_code == "INSUFFICIENT_FUNDS"

    async def test_unavailable_carries_key(self, orchestrator, db_session, parties, ledger_stub):
        sender, _ = parties
        ledger_stub.responder = lambda request: httpx.Response(503)

        with pytest.raises(LedgerUnavailableError) as exc_info:
            await orchestrator.transfer(db_session, sender, "bob@example.com", Decimal("5"))

        assert exc_info.value.idempotency_key == "key-1"
