"""
Demo session accounts standing in for the external auth service.

Each account maps a login onto the ``user_id`` the ranking and
recommendation endpoints personalise for.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

import bcrypt

Role = Literal["user", "admin"]


@dataclass(frozen=True)
class Account:
    username: str
    user_id: str
    role: Role
    password_hash: bytes

    def session_payload(self) -> dict[str, Any]:
        return {"username": self.username, "role": self.role, "user_id": self.user_id}


def _hash(plain: str) -> bytes:
    return bcrypt.hashpw(plain.encode(), bcrypt.gensalt())


_accounts: dict[str, Account] = {
    account.username: account
    for account in (
        Account("user", "u-demo", "user", _hash("user123")),
        Account("admin", "u-admin", "admin", _hash("admin123")),
    )
}


def authenticate(username: str, password: str) -> dict[str, Any] | None:
    """Verify credentials. Returns ``{username, role, user_id}`` or ``None``."""
    account = _accounts.get(username)
    if account is None or not bcrypt.checkpw(password.encode(), account.password_hash):
        return None
    return account.session_payload()
