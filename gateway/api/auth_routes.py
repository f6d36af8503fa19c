"""
Auth Routes - Registration, login, token refresh and logout.

NO DICTIONARIES - All requests/responses use Pydantic models.
"""

from fastapi import APIRouter, Depends, status

from gateway.api.dependencies import admission, get_account_service
from gateway.models.api import (
    AccessTokenResponse,
    AuthResponse,
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    RegisterRequest,
    UserSummary,
)
from gateway.services.accounts import AccountService, AuthenticatedAccount

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _auth_response(message: str, account: AuthenticatedAccount) -> AuthResponse:
    return AuthResponse(
        message=message,
        user=UserSummary(
            id=account.user.id,
            email=account.user.email,
            full_name=account.user.full_name,
            created_at=account.user.created_at,
        ),
        access_token=account.tokens.access_token,
        refresh_token=account.tokens.refresh_token,
    )


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(admission("auth"))],
)
async def register(
    request: RegisterRequest,
    accounts: AccountService = Depends(get_account_service),
) -> AuthResponse:
    """Create an account with a funded wallet and return a token pair."""
    account = await accounts.register(
        email=request.email,
        password=request.password,
        full_name=request.full_name,
        phone=request.phone,
    )
    return _auth_response("User registered successfully", account)


@router.post(
    "/login",
    response_model=AuthResponse,
    dependencies=[Depends(admission("auth"))],
)
async def login(
    request: LoginRequest,
    accounts: AccountService = Depends(get_account_service),
) -> AuthResponse:
    """Exchange email and password for a token pair."""
    account = await accounts.login(email=request.email, password=request.password)
    return _auth_response("Login successful", account)


@router.post("/refresh", response_model=AccessTokenResponse)
async def refresh(
    request: RefreshTokenRequest,
    accounts: AccountService = Depends(get_account_service),
) -> AccessTokenResponse:
    """Mint a new access token from a live refresh token."""
    access_token = await accounts.refresh(request.refresh_token)
    return AccessTokenResponse(access_token=access_token)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: RefreshTokenRequest,
    accounts: AccountService = Depends(get_account_service),
) -> MessageResponse:
    """Revoke a refresh token. Succeeds whether or not the token is known."""
    await accounts.logout(request.refresh_token)
    return MessageResponse(message="Logged out successfully")
