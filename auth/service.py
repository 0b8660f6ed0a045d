"""
auth/service.py -- SessionService: login, registration, refresh rotation, logout.

State machine for a refresh token row:

    created (login / register / refresh)
        -> consumed by refresh      (row deleted, replaced by a new row)
        -> revoked by logout        (this row only)
        -> revoked by logout-all    (every row of the user)
        -> removed as expired       (on presentation, or by the sweep)

Rotation: every successful refresh deletes the presented row before issuing
a new pair. A stolen refresh token can therefore be redeemed at most once;
whichever of the thief and the legitimate client presents it second gets
InvalidRefreshToken, which surfaces the theft instead of tolerating it.

Race handling: two requests presenting the same token both find the row, but
only one of them gets rowcount == 1 back from RefreshTokenStore.delete(). The
delete matches the token value as well as the row id, so a late request cannot
hit the replacement row. The loser raises InvalidRefreshToken. There is no
check-then-delete window.

Nothing here retries. A store error during rotation propagates to the caller;
re-running a rotation whose delete may already have committed would make a
legitimate client look like a replayer.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from auth.errors import (
    InvalidCredentials,
    InvalidRefreshToken,
    PasswordMismatch,
    RefreshTokenExpired,
    UserNotFound,
)
from auth.models import PublicUser, Role, SessionResult, User
from auth.store import RefreshTokenStore, UserStore
from auth.tokens import Clock, TokenIssuer, burn_password_check, hash_password, utcnow, verify_password

logger = logging.getLogger("shopdesk.auth")


class SessionService:
    """Orchestrates the session lifecycle on top of the stores and the issuer.

    Usage:
        users = UserStore(db_url)
        tokens = RefreshTokenStore(users.engine)
        service = SessionService(users, tokens, TokenIssuer(tokens, secret_key))
        result = service.login("alice@example.com", "Secret123!")
        rotated = service.refresh(result.refresh_token)
    """

    def __init__(
        self,
        users: UserStore,
        refresh_tokens: RefreshTokenStore,
        issuer: TokenIssuer,
        clock: Clock = utcnow,
    ) -> None:
        self._users = users
        self._refresh_tokens = refresh_tokens
        self._issuer = issuer
        self._clock = clock

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    def register(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        role: Role = Role.CUSTOMER,
    ) -> SessionResult:
        """Create an account and sign it in. Raises EmailInUse on duplicate email."""
        user = self._users.create_user(
            User(
                email=email,
                hashed_password=hash_password(password),
                role=role,
                first_name=first_name,
                last_name=last_name,
            )
        )
        logger.info("Registered user %s (role=%s)", user.id, user.role.value)
        return self._start_session(user)

    def login(self, email: str, password: str) -> SessionResult:
        """Verify credentials and issue a new token pair.

        Unknown email and wrong password both raise InvalidCredentials with
        the same message. bcrypt runs in both cases so the two paths also take
        the same time.
        """
        user = self._users.get_by_email(email)
        if user is None:
            burn_password_check(password)
            logger.info("Login failed: unknown account")
            raise InvalidCredentials()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed for user %s", user.id)
            raise InvalidCredentials()
        logger.info("Login succeeded for user %s", user.id)
        return self._start_session(user)

    def refresh(self, presented_token: str) -> SessionResult:
        """Consume a refresh token and issue a fresh pair for its owner."""
        row = self._refresh_tokens.find_by_token(presented_token)
        if row is None:
            raise InvalidRefreshToken()

        if row.expires_at <= self._clock():
            self._refresh_tokens.delete(row.id, row.token)
            logger.info("Expired refresh token %s removed for user %s", row.id, row.user_id)
            raise RefreshTokenExpired()

        if not self._refresh_tokens.delete(row.id, row.token):
            # Another request consumed this row between our read and our delete.
            logger.warning("Refresh token %s already consumed for user %s", row.id, row.user_id)
            raise InvalidRefreshToken()

        user = self._users.get_by_id(row.user_id)
        if user is None:
            raise InvalidRefreshToken()
        logger.info("Rotated refresh token %s for user %s", row.id, user.id)
        return self._start_session(user)

    # ------------------------------------------------------------------
    # Sign-out
    # ------------------------------------------------------------------

    def logout(self, user_id: str, presented_token: str) -> None:
        """Revoke one session. Idempotent: an unknown token is not an error."""
        removed = self._refresh_tokens.delete_by_user_and_token(user_id, presented_token)
        logger.info("Logout for user %s (token_removed=%s)", user_id, removed)

    def logout_all(self, user_id: str) -> int:
        """Revoke every session of the user. Returns how many were removed."""
        removed = self._refresh_tokens.delete_all_for_user(user_id)
        logger.info("Logout-all for user %s removed %d session(s)", user_id, removed)
        return removed

    # ------------------------------------------------------------------
    # Identity checks
    # ------------------------------------------------------------------

    def validate_session(self, user_id: str) -> PublicUser:
        """Re-read the account behind a verified access token.

        Catches accounts deleted after the token was signed. Raises
        UserNotFound if the account no longer exists.
        """
        user = self._users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return user.public()

    def change_password(self, user_id: str, current_password: str, new_password: str) -> None:
        """Replace the password after checking the current one.

        Existing sessions are left alone; callers wanting to sign out other
        devices follow up with logout_all().
        """
        user = self._users.get_by_id(user_id)
        if user is None:
            raise UserNotFound()
        if not verify_password(current_password, user.hashed_password):
            raise PasswordMismatch()
        self._users.update_password(user_id, hash_password(new_password))
        logger.info("Password changed for user %s", user_id)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_expired_sessions(self) -> int:
        """Delete refresh tokens that expired without ever being presented."""
        removed = self._refresh_tokens.delete_expired(self._clock())
        if removed:
            logger.info("Purged %d expired refresh token(s)", removed)
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start_session(self, user: User) -> SessionResult:
        access_token, refresh_token = self._issuer.issue_pair(user)
        return SessionResult(user=user.public(), access_token=access_token, refresh_token=refresh_token)
