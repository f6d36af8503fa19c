"""
Domain Models - Internal business logic models using dataclasses.

NO DICTIONARIES - All data structures are strongly typed immutable dataclasses.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from gateway.models.api import TransactionDirection

CENT = Decimal("0.01")


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity carried by a verified access token."""

    user_id: int
    email: str


@dataclass(frozen=True)
class RefreshClaims:
    """Claims of a cryptographically valid refresh token."""

    user_id: int
    email: str
    token_id: str
    expires_at: datetime


@dataclass(frozen=True)
class IssuedRefreshToken:
    """A freshly signed refresh token and the expiry stored with its record."""

    token: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    """Access + refresh token handed out at login/registration."""

    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class BalanceReading:
    """A wallet balance and where it was read from."""

    balance: Decimal
    currency: str
    from_cache: bool


@dataclass(frozen=True)
class TransferIntent:
    """Request-scoped transfer intent - never persisted by the gateway."""

    sender_id: int
    receiver_id: int
    amount: Decimal
    description: str
    idempotency_key: str

    def __post_init__(self) -> None:
        """Validate transfer constraints."""
        if self.amount <= 0:
            raise ValueError(f"Transfer amount must be positive: {self.amount}")
        if self.amount != self.amount.quantize(CENT):
            raise ValueError(f"Transfer amount has more than 2 decimal places: {self.amount}")
        if self.sender_id == self.receiver_id:
            raise ValueError("Sender and receiver must differ")
        if not self.idempotency_key:
            raise ValueError("idempotency_key cannot be empty")


@dataclass(frozen=True)
class TransferReceipt:
    """What the ledger reported for a completed transfer."""

    transaction_id: str
    amount: Decimal
    status: str
    sender_balance: Decimal
    idempotency_key: str


@dataclass(frozen=True)
class TransactionRecord:
    """A ledger transaction seen from one of its parties."""

    transaction_id: str
    direction: TransactionDirection
    amount: Decimal
    currency: str
    status: str
    description: str | None
    created_at: datetime
    counterparty_email: str
    counterparty_name: str


@dataclass(frozen=True)
class TransactionPage:
    """One page of a user's transaction history."""

    records: list[TransactionRecord]
    total: int
    limit: int
    offset: int


@dataclass(frozen=True)
class TransactionSummary:
    """Completed transfer totals for one user."""

    sent_count: int
    sent_total: Decimal
    received_count: int
    received_total: Decimal


@dataclass(frozen=True)
class TransactionDetail:
    """Full view of a single ledger transaction."""

    transaction_id: str
    sender_id: int
    sender_email: str
    sender_name: str
    receiver_id: int
    receiver_email: str
    receiver_name: str
    amount: Decimal
    currency: str
    status: str
    description: str | None
    created_at: datetime
    completed_at: datetime | None
