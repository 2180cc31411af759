"""
Bearer identity verification and role capabilities.

Tokens are issued by the external identity service; this module only
verifies them (HS256 JWT) and maps the ``role`` claim onto a closed
enumeration. Moderator-only behaviour is decided by ``can_moderate`` and
never by comparing role strings at call sites.

Expected claims:
    sub | userId   user id (required)
    role           "user" | "moderator" ("admin" is accepted as moderator)
    name           display name (optional)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from backend.app.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


class Role(str, Enum):
    """Actor roles."""
    USER      = "user"
    MODERATOR = "moderator"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Role":
        """Parse a role claim; unknown values raise ValueError."""
        if value is None:
            return cls.USER
        if not isinstance(value, str):
            raise ValueError(f"role must be a string, got {type(value).__name__}")
        normalised = value.strip().lower()
        if normalised == "admin":
            return cls.MODERATOR
        return cls(normalised)


_MODERATOR_ROLES = frozenset({Role.MODERATOR})


def can_moderate(role: Role) -> bool:
    """True if *role* may approve, reject or clear zones."""
    return role in _MODERATOR_ROLES


@dataclass(frozen=True)
class Identity:
    """The verified caller."""
    user_id: str
    role: Role = Role.USER
    name: Optional[str] = None

    @property
    def is_moderator(self) -> bool:
        return can_moderate(self.role)


class AuthContext:
    """Verifies bearer tokens into an Identity."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        self._secret = secret
        self._algorithm = algorithm

    def verify(self, token: Optional[str]) -> Identity:
        if not token:
            raise UnauthorizedError("No token, authorization denied")

        try:
            claims: Dict[str, Any] = jwt.decode(
                token, self._secret, algorithms=[self._algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise UnauthorizedError("Token has expired")
        except jwt.InvalidTokenError as exc:
            logger.info("Rejected bearer token: %s", exc)
            raise UnauthorizedError("Token is not valid")

        user_id = claims.get("sub") or claims.get("userId")
        if not user_id:
            raise UnauthorizedError("Token has no subject")

        try:
            role = Role.parse(claims.get("role"))
        except ValueError:
            raise UnauthorizedError(f"Unknown role '{claims.get('role')}'")

        return Identity(user_id=str(user_id), role=role, name=claims.get("name"))
