"""
Account Service - Registration, login, token refresh and logout.

Passwords are hashed with Argon2id. Registration creates the user and the
wallet in a single database transaction.
"""

from dataclasses import dataclass
from decimal import Decimal

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.db.models import User, Wallet
from gateway.exceptions import (
    AccountDisabledError,
    GatewayError,
    InvalidCredentialsError,
    UserExistsError,
)
from gateway.models.domain import AuthenticatedUser, TokenPair
from gateway.observability.metrics import metrics
from gateway.services.tokens import TokenLifecycleManager

logger = get_logger(__name__)


@dataclass(frozen=True)
class AuthenticatedAccount:
    """A user row together with the tokens just issued for it."""

    user: User
    tokens: TokenPair


class AccountService:
    """Account lifecycle operations backed by the credential store."""

    def __init__(
        self,
        session: AsyncSession,
        tokens: TokenLifecycleManager,
        signup_bonus: Decimal = Decimal("1000.00"),
        currency: str = "USD",
        password_hasher: PasswordHasher | None = None,
    ) -> None:
        self.session = session
        self.tokens = tokens
        self.signup_bonus = signup_bonus
        self.currency = currency
        self.password_hasher = password_hasher or PasswordHasher()

    async def register(
        self,
        email: str,
        password: str,
        full_name: str,
        phone: str | None = None,
    ) -> AuthenticatedAccount:
        """
        Create a user with a funded wallet and sign them in.

        Raises:
            UserExistsError: email already registered (including a lost race)
        """
        email = email.strip().lower()

        existing = await self.session.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            metrics.record_auth_attempt("register", "user_exists")
            raise UserExistsError(email)

        user = User(
            email=email,
            password_hash=self.password_hasher.hash(password),
            full_name=full_name,
            phone=phone,
            is_active=True,
        )
        self.session.add(user)

        try:
            await self.session.flush()
            self.session.add(
                Wallet(user_id=user.id, balance=self.signup_bonus, currency=self.currency)
            )
            tokens = await self._issue_tokens(user)
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            logger.warning("user_registration_conflict", email=email, error=str(e.orig))
            metrics.record_auth_attempt("register", "user_exists")
            raise UserExistsError(email) from e

        metrics.record_auth_attempt("register", "success")
        logger.info("user_registered", user_id=user.id)
        return AuthenticatedAccount(user=user, tokens=tokens)

    async def login(self, email: str, password: str) -> AuthenticatedAccount:
        """
        Authenticate by email and password.

        Disabled accounts are reported before the password is checked.
        """
        email = email.strip().lower()
        result = await self.session.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()

        if user is None:
            metrics.record_auth_attempt("login", "invalid_credentials")
            logger.info("login_unknown_email")
            raise InvalidCredentialsError()

        if not user.is_active:
            metrics.record_auth_attempt("login", "account_disabled")
            logger.warning("login_account_disabled", user_id=user.id)
            raise AccountDisabledError(user.id)

        if not self._verify_password(user.password_hash, password):
            metrics.record_auth_attempt("login", "invalid_credentials")
            logger.info("login_bad_password", user_id=user.id)
            raise InvalidCredentialsError()

        tokens = await self._issue_tokens(user)
        await self.session.commit()

        metrics.record_auth_attempt("login", "success")
        logger.info("user_logged_in", user_id=user.id)
        return AuthenticatedAccount(user=user, tokens=tokens)

    async def refresh(self, refresh_token: str) -> str:
        """Mint a new access token. The refresh token itself is not rotated."""
        try:
            identity = await self.tokens.redeem_refresh_token(self.session, refresh_token)
        except GatewayError:
            metrics.record_auth_attempt("refresh", "rejected")
            raise
        metrics.record_auth_attempt("refresh", "success")
        return self.tokens.issue_access_token(identity)

    async def logout(self, refresh_token: str) -> None:
        """Revoke the refresh token; unknown tokens are ignored."""
        await self.tokens.revoke(self.session, refresh_token)

    async def _issue_tokens(self, user: User) -> TokenPair:
        identity = AuthenticatedUser(user_id=user.id, email=user.email)
        access_token = self.tokens.issue_access_token(identity)
        issued = self.tokens.issue_refresh_token(identity)
        await self.tokens.persist_refresh_token(self.session, user.id, issued)
        return TokenPair(access_token=access_token, refresh_token=issued.token)

    def _verify_password(self, password_hash: str, password: str) -> bool:
        try:
            return self.password_hasher.verify(password_hash, password)
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError) as e:
            logger.error("password_hash_unverifiable", error=str(e))
            return False
