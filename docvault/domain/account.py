from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    USER = "user"


@dataclass(slots=True)
class Account:
    """An employee or administrator in the active space."""

    account_id: int
    external_login_id: str
    credential_secret: str
    display_name: str
    role: Role
    created_at: datetime


@dataclass(slots=True)
class ArchivedAccount:
    """A former account; its id is minted on archival and never shared with the active space."""

    account_id: int
    external_login_id: str
    credential_secret: str
    display_name: str
    role: Role
    created_at: datetime
    archived_at: datetime


@dataclass(slots=True, frozen=True)
class Identity:
    """Caller identity established from a verified bearer token."""

    account_id: int
    role: Role
    display_name: str = ""
