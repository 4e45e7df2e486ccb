"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from .account import Role
from .document import ResourceKind


@dataclass(slots=True)
class CreateAccountInput:
    """Validated inputs required to provision an account.

    ``credential_secret`` holds the already-hashed credential; plaintext never
    reaches the repository.
    """

    external_login_id: str
    credential_secret: str
    display_name: str
    role: Role = Role.USER


@dataclass(slots=True)
class CreateDocumentInput:
    """Metadata for an artifact that has already been written to storage."""

    owner_account_id: int
    document_type: str
    storage_locator: str
    owner_display_name_snapshot: str
    resource_kind: ResourceKind
    expiration_date: date | None = None


@dataclass(slots=True)
class CreateCompanyDocumentInput:
    document_type: str
    storage_locator: str
    resource_kind: ResourceKind
    expiration_date: date | None = None
