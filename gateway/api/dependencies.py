"""
FastAPI Dependencies - Resources, authentication and admission control.

Connection resources are created in the application lifespan and stored on
`app.state`; the dependencies below only hand them out. Tests replace them
through `app.dependency_overrides`.
"""

from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession
from structlog import get_logger

from gateway.config import settings
from gateway.exceptions import ForbiddenError, InvalidTokenError, UnauthorizedError
from gateway.models.domain import AuthenticatedUser
from gateway.services.accounts import AccountService
from gateway.services.admission import (
    AdmissionController,
    AdmissionPolicies,
    AdmissionTicket,
)
from gateway.services.balance_cache import BalanceCache
from gateway.services.history import HistoryService
from gateway.services.ledger_client import LedgerClient
from gateway.services.tokens import TokenLifecycleManager
from gateway.services.transfers import TransferOrchestrator
from gateway.services.wallets import WalletService

logger = get_logger(__name__)

# Bearer token scheme; missing credentials are reported as UNAUTHORIZED by us
bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================================
# Connection resources
# ============================================================================


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    """Request-scoped credential store session."""
    async with request.app.state.database.session() as session:
        yield session


def get_redis(request: Request) -> Redis:
    redis: Redis = request.app.state.redis
    return redis


def get_ledger_http(request: Request) -> httpx.AsyncClient:
    client: httpx.AsyncClient = request.app.state.ledger_http
    return client


def get_token_manager(request: Request) -> TokenLifecycleManager:
    manager: TokenLifecycleManager = request.app.state.token_manager
    return manager


def get_admission_policies(request: Request) -> AdmissionPolicies:
    policies: AdmissionPolicies = request.app.state.admission_policies
    return policies


# ============================================================================
# Services
# ============================================================================


def get_admission_controller(redis: Redis = Depends(get_redis)) -> AdmissionController:
    return AdmissionController(redis)


def get_balance_cache(redis: Redis = Depends(get_redis)) -> BalanceCache:
    return BalanceCache(redis, ttl_seconds=settings.balance_cache_ttl_seconds)


def get_ledger_client(http: httpx.AsyncClient = Depends(get_ledger_http)) -> LedgerClient:
    return LedgerClient(http)


def get_transfer_orchestrator(
    ledger: LedgerClient = Depends(get_ledger_client),
) -> TransferOrchestrator:
    return TransferOrchestrator(ledger)


def get_account_service(
    db: AsyncSession = Depends(get_db),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
) -> AccountService:
    return AccountService(
        db,
        tokens,
        signup_bonus=settings.signup_bonus,
        currency=settings.default_currency,
    )


def get_wallet_service(
    db: AsyncSession = Depends(get_db),
    cache: BalanceCache = Depends(get_balance_cache),
) -> WalletService:
    return WalletService(
        db,
        cache,
        min_amount=settings.add_funds_min,
        max_amount=settings.add_funds_max,
    )


def get_history_service(db: AsyncSession = Depends(get_db)) -> HistoryService:
    return HistoryService(db)


# ============================================================================
# Authentication
# ============================================================================


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    tokens: TokenLifecycleManager = Depends(get_token_manager),
) -> AuthenticatedUser:
    """
    Resolve the caller from `Authorization: Bearer {access_token}`.

    Missing token → 401 UNAUTHORIZED; present but unusable → 403 FORBIDDEN.
    Only the signature and expiry are checked; the store is not consulted.
    """
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()

    try:
        return tokens.verify_access_token(credentials.credentials)
    except InvalidTokenError as e:
        raise ForbiddenError() from e


# ============================================================================
# Admission control
# ============================================================================


def client_address(request: Request) -> str:
    """Client identity used for admission budgets."""
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            first_hop = forwarded.split(",")[0].strip()
            if first_hop:
                return first_hop
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def admission(policy_name: str) -> Callable[..., Any]:
    """
    Build a dependency that enforces the named admission policy.

    Usage:
        @router.post("/transfer", dependencies=[Depends(admission("transfer"))])

    For success-exempt policies the request is refunded once the endpoint
    returns without raising.
    """

    async def enforce(
        request: Request,
        controller: AdmissionController = Depends(get_admission_controller),
        policies: AdmissionPolicies = Depends(get_admission_policies),
    ) -> AsyncIterator[AdmissionTicket]:
        policy = getattr(policies, policy_name)
        ticket = await controller.admit(policy, client_address(request))

        succeeded = False
        try:
            yield ticket
            succeeded = True
        finally:
            if succeeded and policy.skip_successful:
                await controller.release(ticket)

    enforce.__name__ = f"admission_{policy_name}"
    return enforce
