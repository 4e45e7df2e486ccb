"""Workforce service orchestrating provisioning, uploads, archival and reads."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date

from .account import Account, ArchivedAccount, Identity, Role
from .archival import ArchivalResult, ArchivalTransitionEngine
from .classifier import DocumentClassifier, StoragePlan
from .contracts import CreateAccountInput, CreateCompanyDocumentInput, CreateDocumentInput
from .document import CompanyDocument, Document, DocumentSpace
from .reporting import NullReporter, Reporter
from .statistics import StatisticsAggregator, WorkforceStatistics
from ..config import Settings
from ..errors import NotFound, RateLimited, Unauthenticated, ValidationError
from ..repository import RecordStore
from ..security.credentials import hash_credential, verify_credential
from ..security.login_throttle import LoginThrottle
from ..security.tokens import issue_access_token
from ..storage import ArtifactStore

MAX_DOCUMENT_TYPE_LENGTH = 120


@dataclass(slots=True)
class LoginResult:
    """Bearer token issued for a verified credential."""

    access_token: str
    expires_in: int
    account: Account


@dataclass(slots=True)
class UploadedArtifact:
    """Raw upload as received from the transport layer."""

    filename: str
    content_type: str
    content: bytes


class WorkforceService:
    """Handler-level workflows backed by the record store."""

    def __init__(
        self,
        settings: Settings,
        store: RecordStore,
        classifier: DocumentClassifier,
        artifacts: ArtifactStore,
        throttle: LoginThrottle,
        reporter: Reporter | None = None,
    ) -> None:
        """Store dependencies and build the archival engine and aggregator on the same store."""
        self._settings = settings
        self._store = store
        self._classifier = classifier
        self._artifacts = artifacts
        self._throttle = throttle
        self._reporter = reporter or NullReporter()
        self._archival = ArchivalTransitionEngine(store, self._reporter)
        self._statistics = StatisticsAggregator(store)

    @property
    def classifier(self) -> DocumentClassifier:
        return self._classifier

    # accounts ---------------------------------------------------------------

    def provision_account(
        self,
        *,
        external_login_id: str,
        credential: str,
        display_name: str,
        role: Role = Role.USER,
    ) -> Account:
        """Create an account; the credential is hashed before it reaches the store."""
        external_login_id = external_login_id.strip()
        display_name = display_name.strip()
        if not external_login_id:
            raise ValidationError("external_login_id is required")
        if not display_name:
            raise ValidationError("display_name is required")
        if not credential:
            raise ValidationError("credential is required")

        account = self._store.create_account(
            CreateAccountInput(
                external_login_id=external_login_id,
                credential_secret=hash_credential(credential),
                display_name=display_name,
                role=role,
            )
        )
        self._reporter.event("account.provisioned", account_id=account.account_id, role=account.role.value)
        return account

    def login(self, external_login_id: str, credential: str) -> LoginResult:
        """Verify a credential and issue a signed token.

        Unknown login ids and wrong credentials fail identically.
        """
        throttle_key = external_login_id.strip().lower()
        if not self._throttle.allow(throttle_key):
            self._reporter.event("login.rejected", reason="throttled")
            raise RateLimited("too many login attempts")

        account = self._store.get_account_by_login(external_login_id.strip())
        stored_hash = account.credential_secret if account else None
        if not verify_credential(stored_hash, credential) or account is None:
            self._reporter.event("login.rejected", reason="credentials")
            raise Unauthenticated("invalid credentials")

        self._throttle.reset(throttle_key)
        token, expires_in = issue_access_token(self._settings, account)
        self._reporter.event("login.succeeded", account_id=account.account_id)
        return LoginResult(access_token=token, expires_in=expires_in, account=account)

    def get_account(self, account_id: int) -> Account:
        account = self._store.get_account(account_id)
        if account is None:
            raise NotFound(f"account {account_id} not found")
        return account

    def list_employees(self) -> list[Account]:
        return self._store.list_accounts(role=Role.USER)

    def list_archived_employees(self) -> list[ArchivedAccount]:
        return self._store.list_archived_accounts()

    def archive_employee(self, account_id: int) -> ArchivalResult:
        return self._archival.archive_with_result(account_id)

    # documents -------------------------------------------------------------

    def _plan_upload(self, declared_type: str, artifact: UploadedArtifact) -> StoragePlan:
        declared_type = (declared_type or "").strip()
        if len(declared_type) > MAX_DOCUMENT_TYPE_LENGTH:
            raise ValidationError(f"document_type must be at most {MAX_DOCUMENT_TYPE_LENGTH} characters")
        if not artifact.content:
            raise ValidationError("uploaded file is empty")
        plan = self._classifier.classify(declared_type, artifact.content_type, artifact.filename)
        if not plan.accept:
            self._reporter.event("upload.rejected", reason=plan.reason, content_type=artifact.content_type)
        return plan.raise_for_rejection()

    def upload_document(
        self,
        owner: Identity,
        declared_type: str,
        artifact: UploadedArtifact,
        expiration_date: date | None = None,
    ) -> Document:
        """Classify, store and record a document owned by the caller.

        The artifact is written before the metadata insert and outside any
        transaction.
        """
        plan = self._plan_upload(declared_type, artifact)
        account = self.get_account(owner.account_id)
        locator = self._artifacts.put(plan.canonical_name, artifact.content, artifact.content_type, plan.storage_format)
        try:
            document = self._store.documents(DocumentSpace.ACTIVE).create(
                CreateDocumentInput(
                    owner_account_id=account.account_id,
                    document_type=declared_type.strip(),
                    storage_locator=locator,
                    owner_display_name_snapshot=account.display_name,
                    resource_kind=plan.resource_kind,
                    expiration_date=expiration_date,
                )
            )
        except Exception:
            self._discard_orphan(locator)
            raise
        self._reporter.event(
            "document.recorded",
            document_id=document.document_id,
            owner=account.account_id,
            kind=plan.resource_kind.value,
        )
        return document

    def _discard_orphan(self, locator: str) -> None:
        self._artifacts.discard(locator)
        self._reporter.event("upload.failed", locator=locator)

    def list_documents(self, account_id: int, space: DocumentSpace = DocumentSpace.ACTIVE) -> list[Document]:
        return self._store.documents(space).list_by_owner(account_id)

    def delete_document(self, document_id: int, space: DocumentSpace = DocumentSpace.ACTIVE) -> None:
        self._store.documents(space).delete_by_id(document_id)
        self._reporter.event("document.deleted", document_id=document_id, space=space.value)

    # company documents --------------------------------------------------------

    def upload_company_document(
        self,
        declared_type: str,
        artifact: UploadedArtifact,
        expiration_date: date | None = None,
    ) -> CompanyDocument:
        plan = self._plan_upload(declared_type, artifact)
        locator = self._artifacts.put(plan.canonical_name, artifact.content, artifact.content_type, plan.storage_format)
        try:
            document = self._store.create_company_document(
                CreateCompanyDocumentInput(
                    document_type=declared_type.strip(),
                    storage_locator=locator,
                    resource_kind=plan.resource_kind,
                    expiration_date=expiration_date,
                )
            )
        except Exception:
            self._discard_orphan(locator)
            raise
        self._reporter.event("company_document.recorded", document_id=document.document_id)
        return document

    def list_company_documents(self, document_type: str | None = None) -> list[CompanyDocument]:
        return self._store.list_company_documents(document_type)

    def get_company_document(self, document_id: int) -> CompanyDocument:
        document = self._store.get_company_document(document_id)
        if document is None:
            raise NotFound(f"company document {document_id} not found")
        return document

    def delete_company_document(self, document_id: int) -> None:
        self._store.delete_company_document(document_id)
        self._reporter.event("company_document.deleted", document_id=document_id)

    # statistics ------------------------------------------------------------

    def statistics(self) -> WorkforceStatistics:
        return self._statistics.aggregate()
