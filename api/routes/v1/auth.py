"""
api/routes/v1/auth.py -- Session REST endpoints.

Routes:
  POST /api/v1/auth/register        -- create a CUSTOMER account and sign it in
  POST /api/v1/auth/login           -- password login; returns a token pair
  POST /api/v1/auth/refresh-token   -- rotate a refresh token into a new pair
  POST /api/v1/auth/logout          -- revoke one refresh token (requires auth)
  POST /api/v1/auth/logout-all      -- revoke every refresh token of the caller (requires auth)
  GET  /api/v1/auth/me              -- live identity of the caller (requires auth)

Failures raised by SessionService (auth.errors.AuthError subclasses) are
rendered by the handler in api/main.py: 401 for credential and token
failures, 404 for a vanished account, 409 for a duplicate email.

Security:
  login and refresh-token are rate-limited per client IP.
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter
from api.models import LoginRequest, MessageResponse, RefreshTokenRequest, RegisterRequest, SessionResponse, UserResponse
from auth.dependencies import get_current_user
from auth.models import PublicUser, SessionResult
from auth.service import SessionService
from core.config import get_settings

# Auth policy:
# - POST /api/v1/auth/register:       public
# - POST /api/v1/auth/login:          public, rate limited
# - POST /api/v1/auth/refresh-token:  public, rate limited -- the refresh token is the credential
# - POST /api/v1/auth/logout:         requires auth (get_current_user)
# - POST /api/v1/auth/logout-all:     requires auth (get_current_user)
# - GET  /api/v1/auth/me:             requires auth (get_current_user)
router = APIRouter()


def _session_response(result: SessionResult, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse.from_result(result).model_dump(mode="json"),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a CUSTOMER account and return a token pair for it."""
    service: SessionService = request.app.state.session_service
    result = service.register(
        body.email,
        body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return _session_response(result, status_code=201)


@limiter.limit(lambda: get_settings().login_rate_limit)
@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password.

    Unknown email and wrong password produce the same 401 body
    ("invalid_credentials") so the endpoint cannot be used to discover which
    emails are registered.
    """
    service: SessionService = request.app.state.session_service
    return _session_response(service.login(body.email, body.password))


@limiter.limit(lambda: get_settings().refresh_rate_limit)
@router.post("/auth/refresh-token", response_model=SessionResponse)
def refresh_token(request: Request, body: RefreshTokenRequest) -> JSONResponse:
    """Exchange a refresh token for a new pair. The presented token is spent."""
    service: SessionService = request.app.state.session_service
    return _session_response(service.refresh(body.refresh_token))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.post("/auth/logout", response_model=MessageResponse)
def logout(
    request: Request,
    body: RefreshTokenRequest,
    current_user: PublicUser = Depends(get_current_user),
) -> MessageResponse:
    """Revoke the given refresh token of the current user.

    Succeeds even if the token is unknown or belongs to someone else -- in the
    latter case nothing is deleted, because the store matches on both user id
    and token.
    """
    service: SessionService = request.app.state.session_service
    service.logout(current_user.id, body.refresh_token)
    return MessageResponse(message="Logged out successfully.")


@router.post("/auth/logout-all", response_model=MessageResponse)
def logout_all(
    request: Request,
    current_user: PublicUser = Depends(get_current_user),
) -> MessageResponse:
    """Revoke every refresh token of the current user ("sign out everywhere")."""
    service: SessionService = request.app.state.session_service
    service.logout_all(current_user.id)
    return MessageResponse(message="Logged out from all devices successfully.")


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: PublicUser = Depends(get_current_user)) -> UserResponse:
    """Return the live account behind the access token."""
    return UserResponse.from_public(current_user)
