from __future__ import annotations

import copy
import itertools
import threading
from datetime import datetime, timezone
from typing import Any, Sequence

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from docvault.api.admin_routes import router as admin_router
from docvault.api.errors import install_error_handlers
from docvault.api.routes import router as public_router
from docvault.config import Settings
from docvault.domain.account import Account, ArchivedAccount, Role
from docvault.domain.classifier import ClassifierMode, DocumentClassifier
from docvault.domain.contracts import CreateAccountInput, CreateCompanyDocumentInput, CreateDocumentInput
from docvault.domain.document import CompanyDocument, Document, DocumentSpace
from docvault.domain.service import WorkforceService
from docvault.errors import Conflict, DocVaultError, NotFound, TransactionError, ValidationError
from docvault.security.auth_gate import AuthGate
from docvault.security.login_throttle import MemoryLoginThrottle


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FakeAtomicUnit:
    """AtomicUnit writing straight into the fake store; the store restores a snapshot on failure."""

    def __init__(self, store: "FakeRecordStore") -> None:
        self._store = store

    def _maybe_fail(self, operation: str) -> None:
        if self._store.fail_on == operation:
            raise RuntimeError(f"injected fault in {operation}")

    def lock_account(self, account_id: int) -> Account | None:
        self._maybe_fail("lock_account")
        return self._store.accounts.get(account_id)

    def insert_archived_account(self, account: Account, archived_at: datetime) -> int:
        self._maybe_fail("insert_archived_account")
        archived_id = next(self._store._archived_ids)
        self._store.archived_accounts[archived_id] = ArchivedAccount(
            account_id=archived_id,
            external_login_id=account.external_login_id,
            credential_secret=account.credential_secret,
            display_name=account.display_name,
            role=account.role,
            created_at=account.created_at,
            archived_at=archived_at,
        )
        return archived_id

    def list_active_documents(self, owner_account_id: int) -> list[Document]:
        self._maybe_fail("list_active_documents")
        rows = self._store.document_rows[DocumentSpace.ACTIVE].values()
        return [copy.copy(doc) for doc in rows if doc.owner_account_id == owner_account_id]

    def insert_archived_document(self, document: Document, archived_owner_id: int) -> int:
        self._maybe_fail("insert_archived_document")
        if archived_owner_id not in self._store.archived_accounts:
            raise RuntimeError("foreign key violation: archived owner missing")
        document_id = next(self._store._document_ids[DocumentSpace.ARCHIVED])
        archived = copy.copy(document)
        archived.document_id = document_id
        archived.owner_account_id = archived_owner_id
        archived.space = DocumentSpace.ARCHIVED
        self._store.document_rows[DocumentSpace.ARCHIVED][document_id] = archived
        return document_id

    def delete_active_documents(self, owner_account_id: int) -> int:
        self._maybe_fail("delete_active_documents")
        rows = self._store.document_rows[DocumentSpace.ACTIVE]
        doomed = [doc_id for doc_id, doc in rows.items() if doc.owner_account_id == owner_account_id]
        for doc_id in doomed:
            del rows[doc_id]
        return len(doomed)

    def delete_account(self, account_id: int) -> None:
        self._maybe_fail("delete_account")
        if any(doc.owner_account_id == account_id for doc in self._store.document_rows[DocumentSpace.ACTIVE].values()):
            raise RuntimeError("foreign key violation: account still owns documents")
        if self._store.accounts.pop(account_id, None) is None:
            raise NotFound(f"account {account_id} not found")


class FakeDocumentRepository:
    def __init__(self, store: "FakeRecordStore", space: DocumentSpace) -> None:
        self._store = store
        self.space = space

    @property
    def _rows(self) -> dict[int, Document]:
        return self._store.document_rows[self.space]

    def create(self, payload: CreateDocumentInput) -> Document:
        if self.space is not DocumentSpace.ACTIVE:
            raise ValidationError("archived documents are only created by archiving their owner")
        with self._store.lock:
            if payload.owner_account_id not in self._store.accounts:
                raise NotFound(f"account {payload.owner_account_id} not found")
            document_id = next(self._store._document_ids[self.space])
            document = Document(
                document_id=document_id,
                owner_account_id=payload.owner_account_id,
                document_type=payload.document_type,
                storage_locator=payload.storage_locator,
                owner_display_name_snapshot=payload.owner_display_name_snapshot,
                expiration_date=payload.expiration_date,
                resource_kind=payload.resource_kind,
                uploaded_at=_now(),
                space=self.space,
            )
            self._rows[document_id] = document
        return copy.copy(document)

    def get_by_id(self, document_id: int) -> Document | None:
        document = self._rows.get(document_id)
        return copy.copy(document) if document else None

    def list_by_owner(self, owner_account_id: int) -> list[Document]:
        return [copy.copy(doc) for doc in self._rows.values() if doc.owner_account_id == owner_account_id]

    def delete_by_id(self, document_id: int) -> None:
        with self._store.lock:
            if self._rows.pop(document_id, None) is None:
                raise NotFound(f"document {document_id} not found")

    def count(self) -> int:
        return len(self._rows)

    def count_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for doc in self._rows.values():
            counts[doc.document_type] = counts.get(doc.document_type, 0) + 1
        return dict(sorted(counts.items()))


class FakeRecordStore:
    """In-memory record store mimicking the Postgres-backed behaviours, including rollback."""

    def __init__(self) -> None:
        self.accounts: dict[int, Account] = {}
        self.archived_accounts: dict[int, ArchivedAccount] = {}
        self.document_rows: dict[DocumentSpace, dict[int, Document]] = {space: {} for space in DocumentSpace}
        self.company_documents: dict[int, CompanyDocument] = {}
        self._account_ids = itertools.count(1)
        self._archived_ids = itertools.count(100)
        self._document_ids = {space: itertools.count(1) for space in DocumentSpace}
        self._company_ids = itertools.count(1)
        self.lock = threading.RLock()
        self.fail_on: str | None = None
        self.atomic_runs = 0

    # helpers for assertions ----------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "accounts": self.accounts,
                "archived_accounts": self.archived_accounts,
                "document_rows": self.document_rows,
                "company_documents": self.company_documents,
            }
        )

    def _restore(self, snapshot: dict[str, Any]) -> None:
        self.accounts = snapshot["accounts"]
        self.archived_accounts = snapshot["archived_accounts"]
        self.document_rows = snapshot["document_rows"]
        self.company_documents = snapshot["company_documents"]

    def total_documents(self) -> int:
        return sum(len(rows) for rows in self.document_rows.values()) + len(self.company_documents)

    # accounts ---------------------------------------------------------------

    def create_account(self, payload: CreateAccountInput) -> Account:
        with self.lock:
            if any(a.external_login_id == payload.external_login_id for a in self.accounts.values()):
                raise Conflict(f"login {payload.external_login_id} already exists")
            account_id = next(self._account_ids)
            account = Account(
                account_id=account_id,
                external_login_id=payload.external_login_id,
                credential_secret=payload.credential_secret,
                display_name=payload.display_name,
                role=payload.role,
                created_at=_now(),
            )
            self.accounts[account_id] = account
        return copy.copy(account)

    def get_account(self, account_id: int) -> Account | None:
        return self.accounts.get(account_id)

    def get_account_by_login(self, external_login_id: str) -> Account | None:
        for account in self.accounts.values():
            if account.external_login_id == external_login_id:
                return account
        return None

    def list_accounts(self, role: Role | None = None) -> list[Account]:
        accounts = [a for a in self.accounts.values() if role is None or a.role is role]
        return sorted(accounts, key=lambda a: (a.display_name, a.account_id))

    def count_accounts(self, role: Role | None = None) -> int:
        return len(self.list_accounts(role))

    def get_archived_account(self, account_id: int) -> ArchivedAccount | None:
        return self.archived_accounts.get(account_id)

    def list_archived_accounts(self) -> list[ArchivedAccount]:
        return sorted(self.archived_accounts.values(), key=lambda a: a.account_id, reverse=True)

    def count_archived_accounts(self) -> int:
        return len(self.archived_accounts)

    # documents ------------------------------------------------------------

    def documents(self, space: DocumentSpace) -> FakeDocumentRepository:
        return FakeDocumentRepository(self, DocumentSpace(space))

    def create_company_document(self, payload: CreateCompanyDocumentInput) -> CompanyDocument:
        with self.lock:
            document_id = next(self._company_ids)
            document = CompanyDocument(
                document_id=document_id,
                document_type=payload.document_type,
                storage_locator=payload.storage_locator,
                expiration_date=payload.expiration_date,
                resource_kind=payload.resource_kind,
                uploaded_at=_now(),
            )
            self.company_documents[document_id] = document
        return document

    def get_company_document(self, document_id: int) -> CompanyDocument | None:
        return self.company_documents.get(document_id)

    def list_company_documents(self, document_type: str | None = None) -> list[CompanyDocument]:
        return [
            doc
            for doc in self.company_documents.values()
            if document_type is None or doc.document_type == document_type
        ]

    def delete_company_document(self, document_id: int) -> None:
        with self.lock:
            if self.company_documents.pop(document_id, None) is None:
                raise NotFound(f"company document {document_id} not found")

    def count_company_documents(self) -> int:
        return len(self.company_documents)

    # atomic units -----------------------------------------------------------

    def run_atomic(self, steps: Sequence) -> dict[str, Any]:
        with self.lock:
            self.atomic_runs += 1
            snapshot = self.snapshot()
            scratch: dict[str, Any] = {}
            try:
                unit = FakeAtomicUnit(self)
                for step in steps:
                    step(unit, scratch)
            except DocVaultError:
                self._restore(snapshot)
                raise
            except Exception as exc:
                self._restore(snapshot)
                raise TransactionError(f"atomic unit rolled back: {exc}", cause=exc) from exc
            return scratch


class MemoryArtifactStore:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    def put(self, canonical_name: str, content: bytes, content_type: str, storage_format: str | None) -> str:
        locator = f"memory://documents/{canonical_name}.{storage_format or 'bin'}"
        self.objects[locator] = content
        return locator

    def discard(self, locator: str) -> None:
        self.objects.pop(locator, None)


class RecordingReporter:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def event(self, name: str, **fields: Any) -> None:
        self.events.append((name, fields))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def settings() -> Settings:
    return Settings(
        jwt_secret="test-secret-with-enough-length-for-hs256",
        jwt_issuer="docvault-test",
        jwt_ttl_seconds=8 * 60 * 60,
        classifier_mode="strict",
        login_rate_limit_requests=3,
        login_rate_limit_window_seconds=60,
    )


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def artifacts() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def service(settings, store, artifacts, reporter) -> WorkforceService:
    return WorkforceService(
        settings,
        store,
        DocumentClassifier(ClassifierMode.STRICT),
        artifacts,
        MemoryLoginThrottle(
            max_attempts=settings.login_rate_limit_requests,
            window_seconds=settings.login_rate_limit_window_seconds,
        ),
        reporter,
    )


def build_app(settings: Settings, service: WorkforceService, reporter: RecordingReporter) -> FastAPI:
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(public_router)
    app.include_router(admin_router)
    app.state.workforce_service = service
    app.state.auth_gate = AuthGate(settings, reporter)
    return app


@pytest.fixture
def api_client(settings, service, reporter):
    """Provide a FastAPI test client with isolated state."""
    with TestClient(build_app(settings, service, reporter)) as client:
        yield client
