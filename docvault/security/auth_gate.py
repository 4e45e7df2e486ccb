"""Role-scoped authentication and authorization gate."""

from __future__ import annotations

import jwt

from .tokens import decode_access_token
from ..config import Settings
from ..domain.account import Identity, Role
from ..domain.reporting import NullReporter, Reporter
from ..errors import Forbidden, InvalidSession, Unauthenticated

BEARER_PREFIX = "bearer "


def extract_bearer_token(authorization: str | None) -> str | None:
    """Return the token part of an ``Authorization: Bearer`` header value."""
    if not authorization:
        return None
    if not authorization.lower().startswith(BEARER_PREFIX):
        return None
    token = authorization[len(BEARER_PREFIX):].strip()
    return token or None


class AuthGate:
    """Verifies bearer tokens and enforces per-route role requirements.

    Stateless per call; the only state is the configuration it was built with.
    """

    def __init__(self, settings: Settings, reporter: Reporter | None = None) -> None:
        self._settings = settings
        self._reporter = reporter or NullReporter()

    def authenticate(self, token: str | None) -> Identity:
        if not token:
            raise Unauthenticated("missing bearer token")
        try:
            claims = decode_access_token(self._settings, token)
        except jwt.ExpiredSignatureError as exc:
            self._reporter.event("auth.denied", reason="expired")
            raise InvalidSession("token has expired") from exc
        except jwt.PyJWTError as exc:
            self._reporter.event("auth.denied", reason="invalid")
            raise InvalidSession("token is not valid") from exc

        try:
            account_id = int(claims["sub"])
            role = Role(claims["role"])
        except (KeyError, TypeError, ValueError) as exc:
            self._reporter.event("auth.denied", reason="claims")
            raise InvalidSession("token claims are incomplete") from exc
        return Identity(account_id=account_id, role=role, display_name=claims.get("name", ""))

    def authorize(self, identity: Identity, required_role: Role) -> Identity:
        if identity.role is not required_role:
            self._reporter.event(
                "auth.denied",
                reason="role",
                account_id=identity.account_id,
                required=required_role.value,
            )
            raise Forbidden(f"{required_role.value} role required")
        return identity

    def require(self, token: str | None, required_role: Role) -> Identity:
        return self.authorize(self.authenticate(token), required_role)
