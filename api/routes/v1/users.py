"""
api/routes/v1/users.py -- Account management endpoints.

Routes:
  GET    /api/v1/users                -- list all accounts (ADMIN)
  POST   /api/v1/users                -- create an account without signing it in (ADMIN)
  PATCH  /api/v1/users/me/password    -- change own password (requires auth)
  GET    /api/v1/users/{user_id}      -- fetch one account (ADMIN, STAFF)
  PATCH  /api/v1/users/{user_id}      -- update profile fields or role (ADMIN)
  DELETE /api/v1/users/{user_id}      -- delete an account and its sessions (ADMIN)

Role checks go through auth.dependencies.require_roles(), which reads the
role from the live account, so a demoted admin loses access immediately even
while holding an unexpired access token.

Guards:
  An admin cannot delete or demote their own account through these routes.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from api.models import MessageResponse, PasswordChange, UserCreate, UserPatch, UserResponse
from auth.dependencies import get_current_user, require_roles
from auth.errors import UserNotFound
from auth.models import PublicUser, Role, User
from auth.service import SessionService
from auth.store import UserStore
from auth.tokens import hash_password

logger = logging.getLogger("shopdesk.api")

router = APIRouter()


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    current_user: PublicUser = Depends(require_roles(Role.ADMIN)),
) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_public(u.public()) for u in user_store.list_users()]


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: PublicUser = Depends(require_roles(Role.ADMIN)),
) -> UserResponse:
    """Create an account with any role. No tokens are issued for it.

    A duplicate email surfaces as 409 via EmailInUse from the store.
    """
    user_store: UserStore = request.app.state.user_store
    user = user_store.create_user(
        User(
            email=body.email,
            hashed_password=hash_password(body.password),
            role=body.role,
            first_name=body.first_name,
            last_name=body.last_name,
        )
    )
    logger.info("Admin %s created user %s (role=%s)", current_user.id, user.id, user.role.value)
    return UserResponse.from_public(user.public())


@router.patch("/users/me/password", response_model=MessageResponse)
def change_password(
    request: Request,
    body: PasswordChange,
    current_user: PublicUser = Depends(get_current_user),
) -> MessageResponse:
    """Change the caller's password after verifying the current one."""
    if body.new_password != body.confirm_password:
        raise HTTPException(
            status_code=400,
            detail={"code": "password_confirmation", "message": "New password and confirmation do not match."},
        )
    service: SessionService = request.app.state.session_service
    service.change_password(current_user.id, body.current_password, body.new_password)
    return MessageResponse(message="Password updated successfully.")


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: str,
    current_user: PublicUser = Depends(require_roles(Role.ADMIN, Role.STAFF)),
) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    user = user_store.get_by_id(user_id)
    if user is None:
        raise UserNotFound()
    return UserResponse.from_public(user.public())


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: str,
    body: UserPatch,
    current_user: PublicUser = Depends(require_roles(Role.ADMIN)),
) -> UserResponse:
    """Update email, names or role. Admin only.

    A duplicate email surfaces as 409 via EmailInUse from the store.
    """
    updates = body.model_dump(exclude_unset=True, exclude_none=True)
    if not updates:
        raise HTTPException(
            status_code=400,
            detail={"code": "no_changes", "message": "No fields to update."},
        )
    if user_id == current_user.id and updates.get("role", Role.ADMIN) != Role.ADMIN:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_demotion", "message": "You cannot change your own role."},
        )
    user_store: UserStore = request.app.state.user_store
    updated = user_store.update_user(user_id, **updates)
    if updated is None:
        raise UserNotFound()
    return UserResponse.from_public(updated.public())


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: str,
    current_user: PublicUser = Depends(require_roles(Role.ADMIN)),
) -> MessageResponse:
    """Delete an account. Its refresh tokens are removed by the FK cascade."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=400,
            detail={"code": "self_deletion", "message": "You cannot delete your own account."},
        )
    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_user(user_id):
        raise UserNotFound()
    return MessageResponse(message="User deleted successfully.")
