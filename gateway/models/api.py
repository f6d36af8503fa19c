"""
API Models - Pydantic models for request/response validation.

NO DICTIONARIES - All data structures are strongly typed.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, EmailStr, Field, field_validator


class TransactionDirection(str, Enum):
    """Direction of a transaction relative to the requesting user."""

    SENT = "sent"
    RECEIVED = "received"


def _normalize_email(value: str) -> str:
    return value.strip().lower()


# ============================================================================
# Auth Models
# ============================================================================


class RegisterRequest(BaseModel):
    """POST /api/auth/register request body."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    full_name: str = Field(..., min_length=1, max_length=255)
    phone: str | None = Field(None, pattern=r"^\+?[0-9 ()-]{7,20}$")

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are compared case-insensitively."""
        return _normalize_email(v)

    @field_validator("full_name")
    @classmethod
    def strip_full_name(cls, v: str) -> str:
        """Reject names that are only whitespace."""
        v = v.strip()
        if not v:
            raise ValueError("full_name cannot be blank")
        return v


class LoginRequest(BaseModel):
    """POST /api/auth/login request body."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are compared case-insensitively."""
        return _normalize_email(v)


class RefreshTokenRequest(BaseModel):
    """POST /api/auth/refresh and /api/auth/logout request body."""

    refresh_token: str = Field(..., min_length=1)


class UserSummary(BaseModel):
    """Public view of the authenticated user."""

    id: int
    email: str
    full_name: str
    created_at: datetime | None = None


class AuthResponse(BaseModel):
    """Tokens returned by login and registration."""

    message: str
    user: UserSummary
    access_token: str
    refresh_token: str
    token_type: str = "Bearer"


class AccessTokenResponse(BaseModel):
    """POST /api/auth/refresh response."""

    access_token: str
    token_type: str = "Bearer"


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str


# ============================================================================
# Wallet Models
# ============================================================================


class BalanceResponse(BaseModel):
    """GET /api/wallet/balance response."""

    balance: float
    currency: str
    cached: bool


class TransferRequest(BaseModel):
    """POST /api/wallet/transfer request body."""

    receiver_email: EmailStr
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    description: str | None = Field(None, max_length=500)

    @field_validator("receiver_email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        """Emails are compared case-insensitively."""
        return _normalize_email(v)

    @field_validator("description")
    @classmethod
    def strip_description(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else None


class TransferTransaction(BaseModel):
    """Transaction details reported by the ledger."""

    id: str
    amount: float
    status: str
    sender_balance: float
    idempotency_key: str


class TransferResponse(BaseModel):
    """POST /api/wallet/transfer response."""

    message: str
    transaction: TransferTransaction


class AddFundsRequest(BaseModel):
    """POST /api/wallet/add-funds request body."""

    amount: Decimal = Field(..., ge=1, le=10000, max_digits=7, decimal_places=2)


class AddFundsResponse(BaseModel):
    """POST /api/wallet/add-funds response."""

    message: str
    new_balance: float


# ============================================================================
# Transaction History Models
# ============================================================================


class Counterparty(BaseModel):
    """The other party of a transaction."""

    email: str
    name: str


class TransactionItem(BaseModel):
    """Single entry of the transaction history."""

    id: str
    type: TransactionDirection
    amount: float
    currency: str
    status: str
    description: str | None = None
    created_at: datetime
    counterparty: Counterparty


class Pagination(BaseModel):
    """Pagination metadata."""

    total: int
    limit: int
    offset: int


class TransactionListResponse(BaseModel):
    """GET /api/transactions/history response."""

    transactions: list[TransactionItem]
    pagination: Pagination


class Party(BaseModel):
    """One side of a transaction."""

    id: int
    email: str
    name: str


class TransactionDetailResponse(BaseModel):
    """GET /api/transactions/{transaction_id} response."""

    id: str
    sender: Party
    receiver: Party
    amount: float
    currency: str
    status: str
    description: str | None = None
    created_at: datetime
    completed_at: datetime | None = None


class DirectionStats(BaseModel):
    """Count and total for one direction."""

    count: int
    total_amount: float


class TransactionSummaryResponse(BaseModel):
    """GET /api/transactions/stats/summary response."""

    sent: DirectionStats
    received: DirectionStats
