"""Utilities for issuing and validating signed-claims bearer tokens."""

from __future__ import annotations

import time
from typing import Any

import jwt

from ..config import Settings
from ..domain.account import Account

ALGORITHM = "HS256"


def issue_access_token(settings: Settings, account: Account) -> tuple[str, int]:
    """Create a signed JWT representing an authenticated account.

    Parameters
    ----------
    settings:
        Configuration carrying the signing secret, issuer and token lifetime.
    account:
        Account whose id and role are embedded in the ``sub`` and ``role`` claims.

    Returns
    -------
    tuple[str, int]
        A tuple containing the encoded JWT string and its TTL (in seconds).
    """

    now = int(time.time())
    expires_in = settings.jwt_ttl_seconds
    payload: dict[str, Any] = {
        "iss": settings.jwt_issuer,
        "sub": str(account.account_id),
        "role": account.role.value,
        "name": account.display_name,
        "iat": now,
        "exp": now + expires_in,
    }
    token = jwt.encode(payload, settings.jwt_secret, algorithm=ALGORITHM)
    return token, expires_in


def decode_access_token(settings: Settings, token: str) -> dict[str, Any]:
    """Decode and verify a JWT returning its payload.

    Raises
    ------
    jwt.PyJWTError
        Propagated when the token is malformed, expired, or signed by another issuer.
    """

    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[ALGORITHM],
        issuer=settings.jwt_issuer,
        options={"require": ["exp", "iat", "sub"]},
    )
