"""
Token Lifecycle Manager - Issue, verify, persist and revoke tokens.

Access tokens are stateless: a valid signature and an unexpired `exp` are
enough. Refresh tokens are signed with a separate secret and are only usable
while their stored record is unrevoked and unexpired.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import jwt
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.config import Settings
from gateway.db.models import RefreshToken, User
from gateway.exceptions import InvalidTokenError, TokenExpiredError
from gateway.models.domain import AuthenticatedUser, IssuedRefreshToken, RefreshClaims

logger = get_logger(__name__)

REFRESH_TOKEN_TYPE = "refresh"


class TokenLifecycleManager:
    """
    Issues and validates access and refresh tokens.

    Usage:
        manager = TokenLifecycleManager.from_settings(settings)
        access = manager.issue_access_token(user)
        issued = manager.issue_refresh_token(user)
        await manager.persist_refresh_token(session, user.user_id, issued)
    """

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        algorithm: str = "HS256",
        access_ttl_seconds: int = 3600,
        refresh_ttl_days: int = 7,
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh tokens must use distinct secrets")
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.access_ttl = timedelta(seconds=access_ttl_seconds)
        self.refresh_ttl = timedelta(days=refresh_ttl_days)

    @classmethod
    def from_settings(cls, settings: Settings) -> "TokenLifecycleManager":
        return cls(
            access_secret=settings.jwt_secret,
            refresh_secret=settings.jwt_refresh_secret,
            algorithm=settings.jwt_algorithm,
            access_ttl_seconds=settings.access_token_ttl_seconds,
            refresh_ttl_days=settings.refresh_token_ttl_days,
        )

    # ========================================================================
    # Issuing
    # ========================================================================

    def issue_access_token(self, user: AuthenticatedUser) -> str:
        """Sign a short-lived access token carrying the user's identity."""
        now = datetime.now(UTC)
        payload = {
            "user_id": user.user_id,
            "email": user.email,
            "iat": now,
            "exp": now + self.access_ttl,
        }
        return jwt.encode(payload, self.access_secret, algorithm=self.algorithm)

    def issue_refresh_token(self, user: AuthenticatedUser) -> IssuedRefreshToken:
        """
        Sign a refresh token.

        The random `jti` keeps two tokens issued in the same second distinct,
        which the unique index on the stored token relies on.
        """
        now = datetime.now(UTC)
        expires_at = now + self.refresh_ttl
        payload = {
            "user_id": user.user_id,
            "email": user.email,
            "type": REFRESH_TOKEN_TYPE,
            "jti": uuid4().hex,
            "iat": now,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.refresh_secret, algorithm=self.algorithm)
        return IssuedRefreshToken(token=token, expires_at=expires_at)

    # ========================================================================
    # Verification
    # ========================================================================

    def _decode(self, token: str, secret: str, kind: str) -> dict[str, Any]:
        try:
            payload: dict[str, Any] = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat"]},
            )
        except jwt.ExpiredSignatureError as e:
            logger.info("token_expired", kind=kind)
            raise TokenExpiredError(f"{kind.capitalize()} token expired") from e
        except jwt.InvalidTokenError as e:
            logger.warning("token_invalid", kind=kind, error=str(e))
            raise InvalidTokenError(f"Invalid {kind} token") from e

        user_id = payload.get("user_id")
        email = payload.get("email")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or not isinstance(email, str):
            logger.warning("token_claims_malformed", kind=kind)
            raise InvalidTokenError(f"Invalid {kind} token")
        return payload

    def verify_access_token(self, token: str) -> AuthenticatedUser:
        """
        Verify an access token without touching storage.

        Raises:
            TokenExpiredError: signature valid but `exp` has passed
            InvalidTokenError: any other signature or claim problem
        """
        payload = self._decode(token, self.access_secret, "access")
        if payload.get("type") == REFRESH_TOKEN_TYPE:
            raise InvalidTokenError("Invalid access token")
        return AuthenticatedUser(user_id=payload["user_id"], email=payload["email"])

    def verify_refresh_token(self, token: str) -> RefreshClaims:
        """Verify a refresh token's signature, expiry and type claim."""
        payload = self._decode(token, self.refresh_secret, "refresh")
        if payload.get("type") != REFRESH_TOKEN_TYPE:
            logger.warning("refresh_token_wrong_type")
            raise InvalidTokenError("Invalid refresh token")
        return RefreshClaims(
            user_id=payload["user_id"],
            email=payload["email"],
            token_id=str(payload.get("jti", "")),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
        )

    # ========================================================================
    # Storage
    # ========================================================================

    async def persist_refresh_token(
        self, session: AsyncSession, user_id: int, issued: IssuedRefreshToken
    ) -> None:
        """Stage the refresh token record; the caller owns the commit."""
        session.add(
            RefreshToken(
                user_id=user_id,
                token=issued.token,
                expires_at=issued.expires_at,
                revoked=False,
            )
        )

    async def redeem_refresh_token(self, session: AsyncSession, token: str) -> AuthenticatedUser:
        """
        Exchange a refresh token for the identity it was issued to.

        The token must verify, its record must be unrevoked and unexpired, and
        the owning account must still be active. Every failure, expiry
        included, is reported as INVALID_TOKEN.
        """
        try:
            claims = self.verify_refresh_token(token)
        except TokenExpiredError as e:
            raise InvalidTokenError("Invalid or expired refresh token") from e

        result = await session.execute(
            select(User)
            .join(RefreshToken, RefreshToken.user_id == User.id)
            .where(
                RefreshToken.token == token,
                RefreshToken.revoked.is_(False),
                RefreshToken.expires_at > datetime.now(UTC),
            )
        )
        user = result.scalar_one_or_none()

        if user is None:
            logger.warning("refresh_token_not_redeemable", user_id=claims.user_id)
            raise InvalidTokenError("Refresh token is invalid or has been revoked")
        if user.id != claims.user_id:
            logger.error(
                "refresh_token_owner_mismatch", claimed=claims.user_id, stored=user.id
            )
            raise InvalidTokenError("Refresh token is invalid or has been revoked")
        if not user.is_active:
            logger.warning("refresh_token_inactive_user", user_id=user.id)
            raise InvalidTokenError("Refresh token is invalid or has been revoked")

        return AuthenticatedUser(user_id=user.id, email=user.email)

    async def revoke(self, session: AsyncSession, token: str) -> bool:
        """
        Mark a refresh token revoked. Idempotent.

        Returns True when a still-active record was revoked by this call.
        """
        result = await session.execute(
            update(RefreshToken)
            .where(RefreshToken.token == token, RefreshToken.revoked.is_(False))
            .values(revoked=True)
        )
        await session.commit()
        revoked = bool(result.rowcount)
        logger.info("refresh_token_revoked", changed=revoked)
        return revoked
