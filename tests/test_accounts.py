"""
Tests for the Account Service.
"""

from decimal import Decimal

import pytest
from argon2 import PasswordHasher
from sqlalchemy import func, select

from gateway.db.models import RefreshToken, User, Wallet
from gateway.exceptions import (
    AccountDisabledError,
    InvalidCredentialsError,
    InvalidTokenError,
    UserExistsError,
)
from gateway.services.accounts import AccountService

# Cheap parameters keep the suite fast; production uses argon2 defaults
FAST_HASHER = PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def accounts(db_session, token_manager) -> AccountService:
    return AccountService(db_session, token_manager, password_hasher=FAST_HASHER)


class TestRegister:
    """Tests for registration."""

    async def test_creates_user_wallet_and_refresh_record(self, accounts, db_session):
        account = await accounts.register("Dana@Example.com", "s3cret-pass", "Dana")

        assert account.user.email == "dana@example.com"
        wallet = (
            await db_session.execute(select(Wallet).where(Wallet.user_id == account.user.id))
        ).scalar_one()
        assert wallet.balance == Decimal("1000.00")
        assert wallet.currency == "USD"

        stored = (
            await db_session.execute(
                select(RefreshToken).where(RefreshToken.token == account.tokens.refresh_token)
            )
        ).scalar_one()
        assert stored.user_id == account.user.id
        assert stored.revoked is False

    async def test_password_is_hashed(self, accounts):
        account = await accounts.register("dana@example.com", "s3cret-pass", "Dana")

        assert account.user.password_hash != "s3cret-pass"
        assert account.user.password_hash.startswith("$argon2")

    async def test_tokens_identify_new_user(self, accounts, token_manager):
        account = await accounts.register("dana@example.com", "s3cret-pass", "Dana")

        identity = token_manager.verify_access_token(account.tokens.access_token)
        assert identity.user_id == account.user.id

    async def test_duplicate_email(self, accounts, db_session):
        await accounts.register("dana@example.com", "s3cret-pass", "Dana")

        with pytest.raises(UserExistsError) as exc_info:
            await accounts.register("DANA@example.com", "other-pass", "Impostor")

        assert exc_info.value.status_code == 400
        count = await db_session.scalar(select(func.count()).select_from(User))
        assert count == 1

    async def test_custom_signup_bonus(self, db_session, token_manager):
        service = AccountService(
            db_session, token_manager, signup_bonus=Decimal("25.00"), password_hasher=FAST_HASHER
        )

        account = await service.register("erin@example.com", "s3cret-pass", "Erin")

        balance = await db_session.scalar(
            select(Wallet.balance).where(Wallet.user_id == account.user.id)
        )
        assert balance == Decimal("25.00")


class TestLogin:
    """Tests for login."""

    async def test_valid_credentials(self, accounts):
        registered = await accounts.register("dana@example.com", "s3cret-pass", "Dana")

        account = await accounts.login("dana@example.com", "s3cret-pass")

        assert account.user.id == registered.user.id
        assert account.tokens.refresh_token != registered.tokens.refresh_token

    async def test_unknown_email(self, accounts):
        with pytest.raises(InvalidCredentialsError):
            await accounts.login("ghost@example.com", "whatever")

    async def test_wrong_password(self, accounts):
        await accounts.register("dana@example.com", "s3cret-pass", "Dana")

        with pytest.raises(InvalidCredentialsError) as exc_info:
            await accounts.login("dana@example.com", "wrong-pass")

        assert exc_info.value.status_code == 401

    async def test_disabled_account(self, accounts, db_session):
        """Disabled accounts are reported regardless of the password."""
        account = await accounts.register("dana@example.com", "s3cret-pass", "Dana")
        account.user.is_active = False
        await db_session.commit()

        with pytest.raises(AccountDisabledError) as exc_info:
            await accounts.login("dana@example.com", "wrong-pass")

        assert exc_info.value.status_code == 403
        assert exc_info.value.error_code == "ACCOUNT_DISABLED"


class TestRefreshAndLogout:
    """Tests for refresh and logout."""

    async def test_refresh_issues_access_token(self, accounts, token_manager):
        account = await accounts.register("dana@example.com", "s3cret-pass", "Dana")

        access_token = await accounts.refresh(account.tokens.refresh_token)

        assert token_manager.verify_access_token(access_token).user_id == account.user.id

    async def test_refresh_does_not_rotate(self, accounts):
        """The same refresh token can be used repeatedly until logout."""
        account = await accounts.register("dana@example.com", "s3cret-pass", "Dana")

        await accounts.refresh(account.tokens.refresh_token)
        await accounts.refresh(account.tokens.refresh_token)

    async def test_logout_then_refresh_fails(self, accounts):
        account = await accounts.register("dana@example.com", "s3cret-pass", "Dana")

        await accounts.logout(account.tokens.refresh_token)

        with pytest.raises(InvalidTokenError):
            await accounts.refresh(account.tokens.refresh_token)

    async def test_logout_unknown_token(self, accounts):
        """Logout never fails."""
        await accounts.logout("never-issued")
