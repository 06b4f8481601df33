"""
Signed session cookies.

A token is `<user_id>.<issued_at>.<nonce>.<signature>` where the signature is
HMAC-SHA256 over the first three parts with config.SESSION_SECRET. The user id
is whatever the backend hands out (a UUID for the hosted backend, hex for the
local one); it is split off from the right so dots in it are harmless.
"""

from __future__ import annotations

import hmac
import secrets
import time
from hashlib import sha256
from typing import Optional

import config  # type: ignore[import]

SEP = "."


def _sign(payload: str) -> str:
    key = config.SESSION_SECRET.encode("utf-8")
    return hmac.new(key, payload.encode("utf-8"), sha256).hexdigest()


def create_session_token(user_id: str, issued_at: Optional[int] = None) -> str:
    if not user_id:
        raise ValueError("user_id is required")
    issued = int(time.time()) if issued_at is None else int(issued_at)
    payload = SEP.join((user_id, str(issued), secrets.token_hex(16)))
    return f"{payload}{SEP}{_sign(payload)}"


def parse_session_token(token: Optional[str], max_age_days: Optional[int] = None) -> Optional[str]:
    """
    Return the user id carried by a valid, unexpired token; None otherwise.
    """
    if not token:
        return None
    try:
        user_id, issued_str, nonce, sig = token.rsplit(SEP, 3)
        issued = int(issued_str)
    except ValueError:
        return None
    if not user_id:
        return None

    payload = SEP.join((user_id, issued_str, nonce))
    if not hmac.compare_digest(_sign(payload), sig):
        return None

    ttl_days = config.SESSION_TTL_DAYS if max_age_days is None else max_age_days
    if time.time() - issued > ttl_days * 86400:
        return None
    return user_id
