"""
Admission Controller - Sliding-window request budgets per client.

Each policy keeps a Redis sorted set per client address whose members are
admitted requests scored by arrival time. A request is admitted when fewer
than `limit` members fall inside the trailing window.

If Redis is unreachable the request is admitted: losing the counters must
not take the whole gateway down.
"""

import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError
from structlog import get_logger

from gateway.config import Settings
from gateway.exceptions import RateLimitExceededError
from gateway.observability.metrics import metrics

logger = get_logger(__name__)

# KEYS[1] = window key; ARGV = now, window seconds, limit, member.
# Returns {1, ""} when admitted, {0, oldest_score} when the budget is spent.
# Scores come back as strings because Redis truncates Lua numbers to integers.
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
redis.call('ZREMRANGEBYSCORE', key, 0, now - window)
if redis.call('ZCARD', key) < limit then
    redis.call('ZADD', key, now, ARGV[4])
    redis.call('EXPIRE', key, window)
    return {1, ''}
end
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {0, oldest[2] or ''}
"""


@dataclass(frozen=True)
class AdmissionPolicy:
    """A named request budget."""

    name: str
    limit: int
    window_seconds: int
    message: str
    skip_successful: bool = False

    def __post_init__(self) -> None:
        if self.limit <= 0:
            raise ValueError(f"Policy {self.name} limit must be positive")
        if self.window_seconds <= 0:
            raise ValueError(f"Policy {self.name} window must be positive")


@dataclass(frozen=True)
class AdmissionTicket:
    """Handle for an admitted request, used to refund it later."""

    policy: AdmissionPolicy
    key: str
    member: str | None


@dataclass(frozen=True)
class AdmissionPolicies:
    """The three budgets the gateway enforces."""

    general: AdmissionPolicy
    auth: AdmissionPolicy
    transfer: AdmissionPolicy

    @classmethod
    def from_settings(cls, settings: Settings) -> "AdmissionPolicies":
        return cls(
            general=AdmissionPolicy(
                name="general",
                limit=settings.general_rate_limit,
                window_seconds=settings.general_rate_window_seconds,
                message="Too many requests from this IP, please try again later.",
            ),
            auth=AdmissionPolicy(
                name="auth",
                limit=settings.auth_rate_limit,
                window_seconds=settings.auth_rate_window_seconds,
                message="Too many authentication attempts, please try again later.",
                skip_successful=True,
            ),
            transfer=AdmissionPolicy(
                name="transfer",
                limit=settings.transfer_rate_limit,
                window_seconds=settings.transfer_rate_window_seconds,
                message="Too many transfer requests, please slow down.",
            ),
        )


class AdmissionController:
    """Enforces admission policies against shared Redis counters."""

    KEY_PREFIX = "ratelimit"

    def __init__(self, redis: Redis, clock: Callable[[], float] = time.time) -> None:
        self.redis = redis
        self.clock = clock

    def _key(self, policy: AdmissionPolicy, client_id: str) -> str:
        return f"{self.KEY_PREFIX}:{policy.name}:{client_id}"

    async def admit(self, policy: AdmissionPolicy, client_id: str) -> AdmissionTicket:
        """
        Count this request against the client's budget.

        Trimming, counting and recording happen in one server-side script, so
        concurrent requests never see a count inflated by a rejected one.

        Raises:
            RateLimitExceededError: the budget for the trailing window is spent
        """
        key = self._key(policy, client_id)
        now = self.clock()
        member = f"{now:.6f}:{uuid4().hex}"

        try:
            admitted, oldest = await self.redis.eval(
                SLIDING_WINDOW_SCRIPT,
                1,
                key,
                f"{now:.6f}",
                policy.window_seconds,
                policy.limit,
                member,
            )
        except RedisError as e:
            logger.warning(
                "admission_store_unavailable",
                policy=policy.name,
                client_id=client_id,
                error=str(e),
            )
            return AdmissionTicket(policy=policy, key=key, member=None)

        if int(admitted) == 1:
            return AdmissionTicket(policy=policy, key=key, member=member)

        retry_after = self._retry_after(oldest, policy, now)
        logger.warning(
            "rate_limit_exceeded",
            policy=policy.name,
            client_id=client_id,
            limit=policy.limit,
            retry_after=retry_after,
        )
        metrics.record_admission_rejection(policy.name)
        raise RateLimitExceededError(policy.name, policy.message, retry_after)

    @staticmethod
    def _retry_after(oldest: str | bytes, policy: AdmissionPolicy, now: float) -> int:
        """Seconds until the oldest counted request leaves the window."""
        if isinstance(oldest, bytes):
            oldest = oldest.decode()
        if not oldest:
            return policy.window_seconds
        return max(1, math.ceil(float(oldest) + policy.window_seconds - now))

    async def release(self, ticket: AdmissionTicket) -> None:
        """Refund an admitted request (used for successful auth attempts)."""
        if ticket.member is None:
            return
        try:
            await self.redis.zrem(ticket.key, ticket.member)
        except RedisError as e:
            logger.warning("admission_release_failed", policy=ticket.policy.name, error=str(e))
