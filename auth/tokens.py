"""
auth/tokens.py -- Password hashing, duration parsing, and the TokenIssuer.

Security design decisions:
  Access tokens: python-jose with HS256. Tokens are signed with SECRET_KEY and
       carry sub (user id), email, role, iat, exp and type="access". They are
       verified by signature alone -- no store lookup. decode_access_token()
       returns None on any failure; the dependency layer turns that into a 401.

  Refresh tokens: opaque random strings minted by RefreshTokenStore.create().
       They are NOT JWTs -- their validity is whatever the refresh_tokens table
       says, which is what makes single-use rotation and revocation possible.

  Passwords: bcrypt directly (no passlib wrapper). The _DUMMY_HASH constant
       enables timing equalization in SessionService.login() so response time
       does not reveal whether an email is registered.

  Durations: configured as "<number><unit>" with unit s/m/h/d. Anything that
       does not parse falls back to 7 days instead of raising -- malformed
       configuration degrades the session length, it does not break login.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.models import Role

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import RefreshTokenStore
    from core.config import Settings

logger = logging.getLogger("shopdesk.auth")

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The API layer caps
    password length at 128 characters (Pydantic field).
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash is a mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("shopdesk_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded.

    Called when the email is unknown so that path costs the same as a wrong
    password.
    """
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Duration parsing
# ---------------------------------------------------------------------------

DEFAULT_DURATION = timedelta(days=7)

_DURATION_RE = re.compile(r"^(\d+)([smhd])$")

_UNITS = {
    "s": "seconds",
    "m": "minutes",
    "h": "hours",
    "d": "days",
}


def parse_duration(value: str | None) -> timedelta:
    """Parse "15m", "12h", "7d", "30s" into a timedelta.

    None, "", "bad", "10w" and anything else that does not match fall back to
    DEFAULT_DURATION (7 days). Never raises.
    """
    match = _DURATION_RE.match(value or "")
    if match is None:
        if value:
            logger.warning("Unparseable duration %r -- falling back to %s", value, DEFAULT_DURATION)
        return DEFAULT_DURATION
    amount, unit = match.groups()
    return timedelta(**{_UNITS[unit]: int(amount)})


# ---------------------------------------------------------------------------
# Clock
# ---------------------------------------------------------------------------

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Issuer
# ---------------------------------------------------------------------------


class TokenIssuer:
    """Mints access JWTs and persisted refresh tokens.

    Usage:
        issuer = TokenIssuer(refresh_store, secret_key, access_ttl="15m", refresh_ttl="7d")
        access, refresh = issuer.issue_pair(user)
        claims = issuer.decode_access_token(access)
    """

    def __init__(
        self,
        refresh_store: RefreshTokenStore,
        secret_key: str,
        access_ttl: str | None = "15m",
        refresh_ttl: str | None = "7d",
        clock: Clock = utcnow,
    ) -> None:
        self._refresh_store = refresh_store
        self._secret_key = secret_key
        self.access_ttl = parse_duration(access_ttl)
        self.refresh_ttl = parse_duration(refresh_ttl)
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings, refresh_store: RefreshTokenStore, clock: Clock = utcnow) -> TokenIssuer:
        return cls(
            refresh_store,
            settings.secret_key,
            access_ttl=settings.jwt_access_expiration,
            refresh_ttl=settings.jwt_refresh_expiration,
            clock=clock,
        )

    def issue_access_token(self, user_id: str, email: str, role: Role | str) -> str:
        """Encode a signed JWT carrying identity, role and an absolute expiry."""
        issued_at = self._clock()
        payload = {
            "sub": user_id,
            "email": email,
            "role": Role(role).value,
            "type": "access",
            "iat": issued_at,
            "exp": issued_at + self.access_ttl,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def issue_refresh_token(self, user_id: str) -> str:
        """Persist a new refresh token expiring refresh_ttl from now and return its value."""
        expires_at = self._clock() + self.refresh_ttl
        return self._refresh_store.create(user_id, expires_at)

    def issue_pair(self, user: User) -> tuple[str, str]:
        access = self.issue_access_token(user.id, user.email, user.role)
        refresh = self.issue_refresh_token(user.id)
        return access, refresh

    def decode_access_token(self, token: str) -> dict | None:
        """Verify signature and expiry. Returns the claims or None on any failure.

        Returning None (rather than raising) keeps the caller simple: any
        invalid token is treated as unauthenticated.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError:
            return None
        if payload.get("type") != "access" or not payload.get("sub") or "role" not in payload:
            return None
        return payload
