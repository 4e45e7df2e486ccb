from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum


class ResourceKind(str, Enum):
    DOCUMENT_VIEWABLE = "document-viewable"
    RAW_BINARY = "raw-binary"


class DocumentSpace(str, Enum):
    """Which of the two owner-scoped document universes a request addresses."""

    ACTIVE = "active"
    ARCHIVED = "archived"


@dataclass(slots=True)
class Document:
    """An owner-scoped compliance document.

    The same shape is used for both spaces; ``space`` records which table the row
    came from, and ``owner_account_id`` refers to an account in that same space.
    """

    document_id: int
    owner_account_id: int
    document_type: str
    storage_locator: str
    owner_display_name_snapshot: str
    expiration_date: date | None
    resource_kind: ResourceKind
    uploaded_at: datetime
    space: DocumentSpace = DocumentSpace.ACTIVE


@dataclass(slots=True)
class CompanyDocument:
    """Organisation-wide document with no owner."""

    document_id: int
    document_type: str
    storage_locator: str
    expiration_date: date | None
    resource_kind: ResourceKind
    uploaded_at: datetime
