"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

Requests authenticate with an access JWT in the Authorization: Bearer header.
Verification is two-step:
  1. TokenIssuer.decode_access_token() checks signature and expiry.
  2. SessionService.validate_session(sub) confirms the account still exists.
Any failure in either step means the request is unauthenticated.

try_get_current_user() is the soft variant (returns None on failure).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.
require_roles() wraps get_current_user() and raises HTTP 403 if the role is
not in the allowed set. Role checks are a capability check at the request
boundary; they read the role from the live account, not from the token.

Layer rule: may import from fastapi because this module is part of the FastAPI
dependency injection system. No imports from api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import HTTPException, Request

from auth.errors import UserNotFound
from auth.models import PublicUser, Role


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def try_get_current_user(request: Request) -> PublicUser | None:
    """Authenticate the request from its Bearer token.

    Returns the live PublicUser on success, None on any failure. Never raises
    for auth reasons -- callers that need a hard 401 use get_current_user().
    Store errors still propagate.
    """
    token = _bearer_token(request)
    if not token:
        return None
    claims = request.app.state.token_issuer.decode_access_token(token)
    if claims is None:
        return None
    try:
        return request.app.state.session_service.validate_session(claims["sub"])
    except UserNotFound:
        return None


def get_current_user(request: Request) -> PublicUser:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(user: PublicUser = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def require_roles(*roles: Role) -> Callable[[Request], PublicUser]:
    """Build a dependency that admits only the given roles.

    Use as a FastAPI dependency:
        @router.get("/admin-only")
        def route(user: PublicUser = Depends(require_roles(Role.ADMIN))): ...
    """
    allowed = frozenset(roles)

    def dependency(request: Request) -> PublicUser:
        user = get_current_user(request)
        if user.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail={"code": "forbidden", "message": "Insufficient role for this operation."},
            )
        return user

    return dependency
