from __future__ import annotations

import base64
import binascii
import hmac
from dataclasses import dataclass
from typing import Dict, Optional, Tuple


@dataclass(frozen=True)
class MockUser:
    name: str
    email: str
    role: str


# Demo accounts for local development; disabled with MOCK_USERS_ENABLED=0
_MOCK_USERS: Dict[str, Tuple[str, MockUser]] = {
    "admin@example.com": ("admin123", MockUser("Admin User", "admin@example.com", "admin")),
    "user@example.com": ("user123", MockUser("Regular User", "user@example.com", "user")),
}


def authenticate_mock_user(email: str | None, password: str | None) -> Optional[MockUser]:
    entry = _MOCK_USERS.get((email or "").strip().lower())
    if entry is None or password is None:
        return None
    expected, user = entry
    if not hmac.compare_digest(expected.encode("utf-8"), password.encode("utf-8")):
        return None
    return user


def basic_auth_header(username: str, password: str) -> str:
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def parse_basic_auth(header: str | None) -> Optional[Tuple[str, str]]:
    """
    Returns (username, password) for a well-formed ``Basic`` header, else None.
    The scheme is case-insensitive; the password may contain ':'.
    """
    if not header:
        return None
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "basic" or not token.strip():
        return None
    try:
        decoded = base64.b64decode(token.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, sep, password = decoded.partition(":")
    if not sep or not username:
        return None
    return username, password
