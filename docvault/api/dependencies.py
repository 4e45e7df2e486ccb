"""FastAPI dependencies resolving services and caller identity from application state."""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Header, Request

from ..domain.account import Identity, Role
from ..domain.service import WorkforceService
from ..security.auth_gate import AuthGate, extract_bearer_token


def get_service(request: Request) -> WorkforceService:
    """Resolve the `WorkforceService` stored on the FastAPI application state."""
    service: WorkforceService = request.app.state.workforce_service
    return service


def get_auth_gate(request: Request) -> AuthGate:
    gate: AuthGate = request.app.state.auth_gate
    return gate


def current_identity(
    authorization: str | None = Header(default=None),
    gate: AuthGate = Depends(get_auth_gate),
) -> Identity:
    """Authenticate the bearer token carried by the request."""
    return gate.authenticate(extract_bearer_token(authorization))


def require_role(role: Role) -> Callable[..., Identity]:
    """Build a dependency that authenticates the caller and requires ``role``."""

    def dependency(
        identity: Identity = Depends(current_identity),
        gate: AuthGate = Depends(get_auth_gate),
    ) -> Identity:
        return gate.authorize(identity, role)

    dependency.__name__ = f"require_{role.value}"
    return dependency
