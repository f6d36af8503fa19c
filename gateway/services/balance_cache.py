"""
Balance Cache - Read-through Redis cache in front of the wallets table.

Cache keys are `wallet:balance:{user_id}`. The cache is an accelerator only:
every Redis failure is logged and the read falls through to the database.
"""

import json
from decimal import Decimal, InvalidOperation

from redis.asyncio import Redis
from redis.exceptions import RedisError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.db.models import Wallet
from gateway.exceptions import WalletNotFoundError
from gateway.models.domain import BalanceReading
from gateway.observability.metrics import metrics

logger = get_logger(__name__)


def balance_cache_key(user_id: int) -> str:
    """Cache key shared with the ledger, which invalidates it after transfers."""
    return f"wallet:balance:{user_id}"


class BalanceCache:
    """Serves wallet balances from Redis, falling back to the database."""

    def __init__(self, redis: Redis, ttl_seconds: int = 300) -> None:
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    async def read(self, session: AsyncSession, user_id: int) -> BalanceReading:
        """
        Read a balance, preferring the cached value.

        Raises:
            WalletNotFoundError: no wallet row exists for the user
        """
        cached = await self._get(user_id)
        if cached is not None:
            metrics.record_cache_lookup("hit")
            return cached

        result = await session.execute(
            select(Wallet.balance, Wallet.currency).where(Wallet.user_id == user_id)
        )
        row = result.one_or_none()
        if row is None:
            raise WalletNotFoundError(user_id)

        reading = BalanceReading(balance=row.balance, currency=row.currency, from_cache=False)
        await self._set(user_id, reading)
        return reading

    async def invalidate(self, user_id: int) -> None:
        """Drop the cached balance; the next read goes to the database."""
        try:
            await self.redis.delete(balance_cache_key(user_id))
        except RedisError as e:
            logger.warning("balance_cache_invalidate_failed", user_id=user_id, error=str(e))

    async def _get(self, user_id: int) -> BalanceReading | None:
        try:
            raw = await self.redis.get(balance_cache_key(user_id))
        except RedisError as e:
            logger.warning("balance_cache_read_failed", user_id=user_id, error=str(e))
            metrics.record_cache_lookup("error")
            return None

        if raw is None:
            metrics.record_cache_lookup("miss")
            return None

        try:
            data = json.loads(raw)
            return BalanceReading(
                balance=Decimal(str(data["balance"])),
                currency=str(data["currency"]),
                from_cache=True,
            )
        except (ValueError, KeyError, TypeError, InvalidOperation):
            logger.warning("balance_cache_entry_corrupt", user_id=user_id)
            metrics.record_cache_lookup("miss")
            return None

    async def _set(self, user_id: int, reading: BalanceReading) -> None:
        payload = json.dumps({"balance": str(reading.balance), "currency": reading.currency})
        try:
            await self.redis.setex(balance_cache_key(user_id), self.ttl_seconds, payload)
        except RedisError as e:
            logger.warning("balance_cache_write_failed", user_id=user_id, error=str(e))
