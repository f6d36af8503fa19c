"""
Wallet Service - Gateway-side balance mutations.

The only balance the gateway writes is the demo top-up. Every write is
followed by a cache invalidation before the response is produced.
"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.db.models import Wallet, utc_now
from gateway.exceptions import ValidationFailedError, WalletNotFoundError
from gateway.services.balance_cache import BalanceCache

logger = get_logger(__name__)


class WalletService:
    """Top-ups against the wallets table."""

    def __init__(
        self,
        session: AsyncSession,
        cache: BalanceCache,
        min_amount: Decimal = Decimal("1"),
        max_amount: Decimal = Decimal("10000"),
    ) -> None:
        self.session = session
        self.cache = cache
        self.min_amount = min_amount
        self.max_amount = max_amount

    async def add_funds(self, user_id: int, amount: Decimal) -> Decimal:
        """
        Credit `amount` to the user's wallet and return the new balance.

        Raises:
            ValidationFailedError: amount outside the allowed top-up range
            WalletNotFoundError: the user has no wallet
        """
        if not self.min_amount <= amount <= self.max_amount:
            raise ValidationFailedError(
                f"Amount must be between {self.min_amount} and {self.max_amount}"
            )

        result = await self.session.execute(
            update(Wallet)
            .where(Wallet.user_id == user_id)
            .values(balance=Wallet.balance + amount, updated_at=utc_now())
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise WalletNotFoundError(user_id)

        balance_result = await self.session.execute(
            select(Wallet.balance).where(Wallet.user_id == user_id)
        )
        new_balance: Decimal = balance_result.scalar_one()
        await self.session.commit()

        await self.cache.invalidate(user_id)

        logger.info("wallet_funded", user_id=user_id, amount=str(amount))
        return new_balance
