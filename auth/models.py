"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
session service do the work; these classes own domain shape only.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Account roles. Values match the strings stored in users.role."""

    ADMIN = "ADMIN"
    STAFF = "STAFF"
    CUSTOMER = "CUSTOMER"


@dataclass
class PublicUser:
    """A user record with the password hash stripped.

    Every SessionService operation returns this shape, never User, so the hash
    cannot leak into a response by accident.
    """

    id: str
    email: str
    role: Role
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class User:
    """A back-office account as stored in the users table.

    id is a UUID4 string assigned by UserStore.create_user().
    """

    email: str
    hashed_password: str
    role: Role = Role.CUSTOMER
    id: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def public(self) -> PublicUser:
        return PublicUser(
            id=self.id,
            email=self.email,
            role=self.role,
            first_name=self.first_name,
            last_name=self.last_name,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass
class RefreshToken:
    """A persisted, single-use refresh credential.

    token is an opaque random string (256 bits). The row is deleted the first
    time it is consumed: by a refresh, a logout, a logout-all, or on
    presentation after expires_at has passed.
    """

    token: str
    user_id: str
    expires_at: datetime
    id: int | None = None
    created_at: datetime | None = None


@dataclass
class SessionResult:
    """What register, login and refresh hand back to the HTTP layer."""

    user: PublicUser
    access_token: str
    refresh_token: str
