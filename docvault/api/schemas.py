"""Request and response models for the HTTP API."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field

from ..domain.account import Account, ArchivedAccount, Role
from ..domain.archival import ArchivalResult
from ..domain.document import CompanyDocument, Document, DocumentSpace, ResourceKind
from ..domain.statistics import WorkforceStatistics


class LoginRequest(BaseModel):
    """Credential pair submitted to obtain a bearer token."""

    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: Role
    display_name: str


class IdentityResponse(BaseModel):
    account_id: int
    role: Role
    display_name: str


class CreateAccountRequest(BaseModel):
    """Payload accepted when an administrator provisions an account."""

    external_login_id: str = Field(..., min_length=1, max_length=120)
    credential: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1, max_length=200)
    role: Role = Role.USER


class AccountResponse(BaseModel):
    """Serialised `Account`; the credential hash is never exposed."""

    account_id: int
    external_login_id: str
    display_name: str
    role: Role
    created_at: datetime

    @classmethod
    def from_domain(cls, account: Account) -> "AccountResponse":
        return cls(
            account_id=account.account_id,
            external_login_id=account.external_login_id,
            display_name=account.display_name,
            role=account.role,
            created_at=account.created_at,
        )


class ArchivedAccountResponse(AccountResponse):
    archived_at: datetime

    @classmethod
    def from_domain(cls, account: ArchivedAccount) -> "ArchivedAccountResponse":
        return cls(
            account_id=account.account_id,
            external_login_id=account.external_login_id,
            display_name=account.display_name,
            role=account.role,
            created_at=account.created_at,
            archived_at=account.archived_at,
        )


class DocumentResponse(BaseModel):
    document_id: int
    owner_account_id: int
    document_type: str
    storage_locator: str
    owner_display_name_snapshot: str
    expiration_date: date | None
    resource_kind: ResourceKind
    uploaded_at: datetime
    space: DocumentSpace

    @classmethod
    def from_domain(cls, document: Document) -> "DocumentResponse":
        return cls(
            document_id=document.document_id,
            owner_account_id=document.owner_account_id,
            document_type=document.document_type,
            storage_locator=document.storage_locator,
            owner_display_name_snapshot=document.owner_display_name_snapshot,
            expiration_date=document.expiration_date,
            resource_kind=document.resource_kind,
            uploaded_at=document.uploaded_at,
            space=document.space,
        )


class CompanyDocumentResponse(BaseModel):
    document_id: int
    document_type: str
    storage_locator: str
    expiration_date: date | None
    resource_kind: ResourceKind
    uploaded_at: datetime

    @classmethod
    def from_domain(cls, document: CompanyDocument) -> "CompanyDocumentResponse":
        return cls(
            document_id=document.document_id,
            document_type=document.document_type,
            storage_locator=document.storage_locator,
            expiration_date=document.expiration_date,
            resource_kind=document.resource_kind,
            uploaded_at=document.uploaded_at,
        )


class ArchiveResponse(BaseModel):
    source_account_id: int
    archived_account_id: int
    document_count: int

    @classmethod
    def from_domain(cls, result: ArchivalResult) -> "ArchiveResponse":
        return cls(
            source_account_id=result.source_account_id,
            archived_account_id=result.archived_account_id,
            document_count=result.document_count,
        )


class StatisticsResponse(BaseModel):
    active_account_count: int
    document_count_by_type: dict[str, int]
    archived_account_count: int
    company_document_count: int

    @classmethod
    def from_domain(cls, stats: WorkforceStatistics) -> "StatisticsResponse":
        return cls(
            active_account_count=stats.active_account_count,
            document_count_by_type=stats.document_count_by_type,
            archived_account_count=stats.archived_account_count,
            company_document_count=stats.company_document_count,
        )
