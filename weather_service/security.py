"""Roles, principals and the in-memory user store."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from .error_mapping import AuthFailedError, ConfigurationError, PermissionDeniedError


class Role(str, Enum):
    READER = "reader"
    ADMIN = "admin"


READ_ROLES = frozenset({Role.READER, Role.ADMIN})
ADMIN_ROLES = frozenset({Role.ADMIN})

# accepted spellings in SERVICE_USERS
_ROLE_ALIASES = {"reader": Role.READER, "user": Role.READER, "admin": Role.ADMIN}


@dataclass(frozen=True)
class Principal:
    name: str
    roles: frozenset[Role]

    def has_any(self, roles: Iterable[Role]) -> bool:
        return not self.roles.isdisjoint(roles)


@dataclass(frozen=True)
class UserCredential:
    name: str
    password: str = field(repr=False)
    role: Role = Role.READER


def require_role(principal: Principal | None, allowed: frozenset[Role]) -> Principal:
    """Return the principal if it holds one of ``allowed`` roles, else raise."""
    if principal is None:
        raise AuthFailedError("authentication required")
    if not principal.has_any(allowed):
        wanted = ", ".join(sorted(r.value for r in allowed))
        raise PermissionDeniedError(f"user '{principal.name}' lacks required role ({wanted})")
    return principal


class UserStore:
    """Username/password lookup with constant-time comparison."""

    def __init__(self, users: Iterable[UserCredential] = ()):
        self._users = {u.name: u for u in users}

    def __len__(self) -> int:
        return len(self._users)

    def authenticate(self, name: str, password: str) -> Principal:
        user = self._users.get(name)
        expected = user.password if user else ""
        # digest both sides so unknown users cost the same as a wrong password
        matches = hmac.compare_digest(
            hashlib.sha256(password.encode()).digest(),
            hashlib.sha256(expected.encode()).digest(),
        )
        if user is None or not matches:
            raise AuthFailedError("invalid username or password")
        return Principal(user.name, frozenset({user.role}))


def parse_users(raw: str | None) -> tuple[UserCredential, ...]:
    """Parse ``name:password:role`` entries separated by commas."""
    if not raw:
        return ()
    users = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) != 3 or not parts[0] or not parts[1]:
            raise ConfigurationError(f"malformed user entry, expected name:password:role: {parts[0]!r}")
        name, password, role_name = parts
        role = _ROLE_ALIASES.get(role_name.strip().lower())
        if role is None:
            raise ConfigurationError(f"unknown role {role_name!r} for user {name!r}")
        users.append(UserCredential(name, password, role))
    return tuple(users)
