"""
Exception Classes - Strongly typed exception hierarchy.

Every gateway error carries the error code and HTTP status it is rendered
with, so handlers never have to guess how a failure looks on the wire.
"""

from typing import Any


class GatewayError(Exception):
    """Base exception for all client-facing gateway errors."""

    error_code: str = "INTERNAL_ERROR"
    status_code: int = 500

    def __init__(self, message: str = "Internal server error") -> None:
        self.message = message
        super().__init__(message)

    def to_body(self) -> dict[str, Any]:
        """Render the error as a response body."""
        return {"error": self.error_code, "message": self.message}


# ============================================================================
# Authentication
# ============================================================================


class UnauthorizedError(GatewayError):
    """Raised when a protected route is called without a credential."""

    error_code = "UNAUTHORIZED"
    status_code = 401

    def __init__(self, message: str = "Access token is required") -> None:
        super().__init__(message)


class ForbiddenError(GatewayError):
    """Raised when an access token is present but cannot be used."""

    error_code = "FORBIDDEN"
    status_code = 403

    def __init__(self, message: str = "Invalid or expired token") -> None:
        super().__init__(message)


class InvalidTokenError(GatewayError):
    """Raised when a token fails signature, claim or record checks."""

    error_code = "INVALID_TOKEN"
    status_code = 401

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class TokenExpiredError(InvalidTokenError):
    """Raised when a token is correctly signed but past its expiry."""

    error_code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Token expired") -> None:
        super().__init__(message)


class InvalidCredentialsError(GatewayError):
    """Raised when email/password do not match an account."""

    error_code = "INVALID_CREDENTIALS"
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class AccountDisabledError(GatewayError):
    """Raised when a disabled account tries to log in."""

    error_code = "ACCOUNT_DISABLED"
    status_code = 403

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__("Your account has been disabled")


class UserExistsError(GatewayError):
    """Raised when registering an email that is already taken."""

    error_code = "USER_EXISTS"
    status_code = 400

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("User with this email already exists")


# ============================================================================
# Admission / validation
# ============================================================================


class ValidationFailedError(GatewayError):
    """Raised when input is malformed; no side effect has occurred."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str = "Invalid input data") -> None:
        super().__init__(message)


class RateLimitExceededError(GatewayError):
    """Raised when a client exhausts an admission budget."""

    error_code = "RATE_LIMIT_EXCEEDED"
    status_code = 429

    def __init__(self, policy: str, message: str, retry_after: int) -> None:
        self.policy = policy
        self.retry_after = retry_after
        super().__init__(message)


# ============================================================================
# Wallet / transfer
# ============================================================================


class WalletNotFoundError(GatewayError):
    """Raised when a user has no wallet row."""

    error_code = "WALLET_NOT_FOUND"
    status_code = 404

    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__("Wallet not found for this user")


class ReceiverNotFoundError(GatewayError):
    """Raised when the transfer counterparty is missing or inactive."""

    error_code = "RECEIVER_NOT_FOUND"
    status_code = 404

    def __init__(self) -> None:
        super().__init__("Receiver not found or account is inactive")


class InvalidTransferError(GatewayError):
    """Raised when a transfer breaks a business precondition."""

    error_code = "INVALID_TRANSFER"
    status_code = 400

    def __init__(self, message: str = "Cannot transfer to your own account") -> None:
        super().__init__(message)


class LedgerRejectedError(GatewayError):
    """
    Raised when the ledger answered with an application error.

    The outcome is known: the ledger refused the transfer. Code, message and
    status are forwarded exactly as the ledger sent them.
    """

    def __init__(self, status_code: int, error_code: str, message: str) -> None:
        self.status_code = status_code
        self.error_code = error_code
        super().__init__(message)


class LedgerUnavailableError(GatewayError):
    """
    Raised when the ledger could not be reached or gave no usable answer.

    The outcome is unknown: the transfer may have been applied on the ledger
    side. Never treat this as a failed transfer.
    """

    error_code = "SERVICE_UNAVAILABLE"
    status_code = 503

    def __init__(self, idempotency_key: str, reason: str) -> None:
        self.idempotency_key = idempotency_key
        self.reason = reason
        super().__init__(
            "Payment service is temporarily unavailable and the transfer outcome "
            "could not be confirmed. Check your transaction history before retrying."
        )

    def to_body(self) -> dict[str, Any]:
        body = super().to_body()
        body["idempotency_key"] = self.idempotency_key
        return body


class TransactionNotFoundError(GatewayError):
    """Raised when a transaction is absent or the user is not a party to it."""

    error_code = "TRANSACTION_NOT_FOUND"
    status_code = 404

    def __init__(self, transaction_id: str) -> None:
        self.transaction_id = transaction_id
        super().__init__("Transaction not found or you do not have access")
