"""Postgres-backed record store for the active, archived and company record spaces."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator, Protocol, Sequence

import psycopg
from psycopg import errors as pg_errors
from psycopg import sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account, ArchivedAccount, Role
from .domain.contracts import CreateAccountInput, CreateCompanyDocumentInput, CreateDocumentInput
from .domain.document import CompanyDocument, Document, DocumentSpace, ResourceKind
from .errors import Conflict, DocVaultError, NotFound, PersistenceError, TransactionError, ValidationError

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

_ACCOUNT_COLUMNS = "account_id, external_login_id, credential_secret, display_name, role, created_at"
_DOCUMENT_COLUMNS = (
    "document_id, owner_account_id, document_type, storage_locator, "
    "owner_display_name_snapshot, expiration_date, resource_kind, uploaded_at"
)
_COMPANY_COLUMNS = "document_id, document_type, storage_locator, expiration_date, resource_kind, uploaded_at"

# The only two document tables; requests pick one through DocumentSpace, never by name.
_DOCUMENT_TABLES: dict[DocumentSpace, sql.Identifier] = {
    DocumentSpace.ACTIVE: sql.Identifier("documents"),
    DocumentSpace.ARCHIVED: sql.Identifier("archived_documents"),
}


def _map_account(row: tuple) -> Account:
    return Account(
        account_id=row[0],
        external_login_id=row[1],
        credential_secret=row[2],
        display_name=row[3],
        role=Role(row[4]),
        created_at=row[5],
    )


def _map_archived_account(row: tuple) -> ArchivedAccount:
    return ArchivedAccount(
        account_id=row[0],
        external_login_id=row[1],
        credential_secret=row[2],
        display_name=row[3],
        role=Role(row[4]),
        created_at=row[5],
        archived_at=row[6],
    )


def _map_document(row: tuple, space: DocumentSpace) -> Document:
    return Document(
        document_id=row[0],
        owner_account_id=row[1],
        document_type=row[2],
        storage_locator=row[3],
        owner_display_name_snapshot=row[4],
        expiration_date=row[5],
        resource_kind=ResourceKind(row[6]),
        uploaded_at=row[7],
        space=space,
    )


def _map_company_document(row: tuple) -> CompanyDocument:
    return CompanyDocument(
        document_id=row[0],
        document_type=row[1],
        storage_locator=row[2],
        expiration_date=row[3],
        resource_kind=ResourceKind(row[4]),
        uploaded_at=row[5],
    )


class AtomicUnit(Protocol):
    """Transaction-scoped operations available to the steps of :meth:`RecordStore.run_atomic`."""

    def lock_account(self, account_id: int) -> Account | None:
        ...

    def insert_archived_account(self, account: Account, archived_at: datetime) -> int:
        ...

    def list_active_documents(self, owner_account_id: int) -> list[Document]:
        ...

    def insert_archived_document(self, document: Document, archived_owner_id: int) -> int:
        ...

    def delete_active_documents(self, owner_account_id: int) -> int:
        ...

    def delete_account(self, account_id: int) -> None:
        ...


AtomicStep = Callable[[AtomicUnit, dict[str, Any]], None]


class PostgresAtomicUnit:
    """AtomicUnit bound to the cursor of one open transaction."""

    def __init__(self, cur: psycopg.Cursor) -> None:
        self._cur = cur

    def lock_account(self, account_id: int) -> Account | None:
        self._cur.execute(
            f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s FOR UPDATE",
            (account_id,),
        )
        row = self._cur.fetchone()
        return _map_account(row) if row else None

    def insert_archived_account(self, account: Account, archived_at: datetime) -> int:
        self._cur.execute(
            """
            INSERT INTO archived_accounts
                (external_login_id, credential_secret, display_name, role, created_at, archived_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING account_id
            """,
            (
                account.external_login_id,
                account.credential_secret,
                account.display_name,
                account.role.value,
                account.created_at,
                archived_at,
            ),
        )
        return self._cur.fetchone()[0]

    def list_active_documents(self, owner_account_id: int) -> list[Document]:
        self._cur.execute(
            f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE owner_account_id = %s ORDER BY document_id",
            (owner_account_id,),
        )
        return [_map_document(row, DocumentSpace.ACTIVE) for row in self._cur.fetchall()]

    def insert_archived_document(self, document: Document, archived_owner_id: int) -> int:
        self._cur.execute(
            """
            INSERT INTO archived_documents
                (owner_account_id, document_type, storage_locator, owner_display_name_snapshot,
                 expiration_date, resource_kind, uploaded_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING document_id
            """,
            (
                archived_owner_id,
                document.document_type,
                document.storage_locator,
                document.owner_display_name_snapshot,
                document.expiration_date,
                document.resource_kind.value,
                document.uploaded_at,
            ),
        )
        return self._cur.fetchone()[0]

    def delete_active_documents(self, owner_account_id: int) -> int:
        self._cur.execute("DELETE FROM documents WHERE owner_account_id = %s", (owner_account_id,))
        return self._cur.rowcount

    def delete_account(self, account_id: int) -> None:
        self._cur.execute("DELETE FROM accounts WHERE account_id = %s", (account_id,))
        if self._cur.rowcount != 1:
            raise NotFound(f"account {account_id} not found")


class DocumentRepository:
    """Document persistence for exactly one :class:`DocumentSpace`."""

    def __init__(self, store: "RecordStore", space: DocumentSpace) -> None:
        self._store = store
        self.space = space
        self._table = _DOCUMENT_TABLES[space]

    def create(self, payload: CreateDocumentInput) -> Document:
        """Insert an uploaded document; the archived space only receives rows through archival."""
        if self.space is not DocumentSpace.ACTIVE:
            raise ValidationError("archived documents are only created by archiving their owner")
        query = sql.SQL(
            """
            INSERT INTO {table}
                (owner_account_id, document_type, storage_locator, owner_display_name_snapshot,
                 expiration_date, resource_kind)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {columns}
            """
        ).format(table=self._table, columns=sql.SQL(_DOCUMENT_COLUMNS))
        try:
            with self._store.cursor() as cur:
                cur.execute(
                    query,
                    (
                        payload.owner_account_id,
                        payload.document_type,
                        payload.storage_locator,
                        payload.owner_display_name_snapshot,
                        payload.expiration_date,
                        payload.resource_kind.value,
                    ),
                )
                row = cur.fetchone()
        except pg_errors.ForeignKeyViolation as exc:
            raise NotFound(f"account {payload.owner_account_id} not found") from exc
        return _map_document(row, self.space)

    def get_by_id(self, document_id: int) -> Document | None:
        """Fetch a document of this space by identifier."""
        query = sql.SQL("SELECT {columns} FROM {table} WHERE document_id = %s").format(
            table=self._table, columns=sql.SQL(_DOCUMENT_COLUMNS)
        )
        with self._store.cursor() as cur:
            cur.execute(query, (document_id,))
            row = cur.fetchone()
        return _map_document(row, self.space) if row else None

    def list_by_owner(self, owner_account_id: int) -> list[Document]:
        """List the documents of this space owned by ``owner_account_id``."""
        query = sql.SQL(
            "SELECT {columns} FROM {table} WHERE owner_account_id = %s ORDER BY document_id"
        ).format(table=self._table, columns=sql.SQL(_DOCUMENT_COLUMNS))
        with self._store.cursor() as cur:
            cur.execute(query, (owner_account_id,))
            return [_map_document(row, self.space) for row in cur.fetchall()]

    def delete_by_id(self, document_id: int) -> None:
        """Delete a document of this space, raising NotFound when it does not exist."""
        query = sql.SQL("DELETE FROM {table} WHERE document_id = %s").format(table=self._table)
        with self._store.cursor() as cur:
            cur.execute(query, (document_id,))
            deleted = cur.rowcount
        if deleted == 0:
            raise NotFound(f"document {document_id} not found")

    def count(self) -> int:
        """Count documents in this space."""
        query = sql.SQL("SELECT count(*) FROM {table}").format(table=self._table)
        with self._store.cursor() as cur:
            cur.execute(query)
            return cur.fetchone()[0]

    def count_by_type(self) -> dict[str, int]:
        """Count documents in this space grouped by document type."""
        query = sql.SQL(
            "SELECT document_type, count(*) FROM {table} GROUP BY document_type ORDER BY document_type"
        ).format(table=self._table)
        with self._store.cursor() as cur:
            cur.execute(query)
            return {row[0]: row[1] for row in cur.fetchall()}


class RecordStore:
    """Persistence abstraction over the active, archived and company schemas."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool shared by every request."""
        self._pool = pool
        self._documents = {space: DocumentRepository(self, space) for space in DocumentSpace}

    @contextmanager
    def cursor(self) -> Iterator[psycopg.Cursor]:
        """Yield a cursor on a pooled connection, committing on success.

        Driver failures are translated into :class:`PersistenceError` (or
        :class:`Conflict` for unique-key collisions).
        """
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    yield cur
        except pg_errors.UniqueViolation as exc:
            raise Conflict(str(exc.diag.message_detail or exc)) from exc
        except pg_errors.ForeignKeyViolation:
            raise
        except psycopg.Error as exc:
            logger.exception("record store failure")
            raise PersistenceError(str(exc)) from exc

    def ensure_schema(self) -> None:
        """Apply the bundled idempotent DDL."""
        ddl = SCHEMA_PATH.read_text(encoding="utf-8")
        with self.cursor() as cur:
            cur.execute(ddl)
        logger.info("schema ensured from %s", SCHEMA_PATH.name)

    # accounts -----------------------------------------------------------------

    def create_account(self, payload: CreateAccountInput) -> Account:
        """Insert a new active account and return it."""
        with self.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO accounts (external_login_id, credential_secret, display_name, role)
                VALUES (%s, %s, %s, %s)
                RETURNING {_ACCOUNT_COLUMNS}
                """,
                (
                    payload.external_login_id,
                    payload.credential_secret,
                    payload.display_name,
                    payload.role.value,
                ),
            )
            row = cur.fetchone()
        return _map_account(row)

    def get_account(self, account_id: int) -> Account | None:
        """Fetch an active account by identifier."""
        with self.cursor() as cur:
            cur.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE account_id = %s", (account_id,))
            row = cur.fetchone()
        return _map_account(row) if row else None

    def get_account_by_login(self, external_login_id: str) -> Account | None:
        """Fetch an active account by its external login id."""
        with self.cursor() as cur:
            cur.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE external_login_id = %s",
                (external_login_id,),
            )
            row = cur.fetchone()
        return _map_account(row) if row else None

    def list_accounts(self, role: Role | None = None) -> list[Account]:
        """List active accounts, optionally filtered by role."""
        clauses: list[str] = []
        params: list[Any] = []
        if role is not None:
            clauses.append("role = %s")
            params.append(role.value)
        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self.cursor() as cur:
            cur.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts {where_sql} ORDER BY display_name, account_id",
                params,
            )
            return [_map_account(row) for row in cur.fetchall()]

    def count_accounts(self, role: Role | None = None) -> int:
        """Count active accounts, optionally filtered by role."""
        with self.cursor() as cur:
            if role is None:
                cur.execute("SELECT count(*) FROM accounts")
            else:
                cur.execute("SELECT count(*) FROM accounts WHERE role = %s", (role.value,))
            return cur.fetchone()[0]

    # archived accounts ------------------------------------------------------------

    def get_archived_account(self, account_id: int) -> ArchivedAccount | None:
        """Fetch an archived account by its archived identifier."""
        with self.cursor() as cur:
            cur.execute(
                f"SELECT {_ACCOUNT_COLUMNS}, archived_at FROM archived_accounts WHERE account_id = %s",
                (account_id,),
            )
            row = cur.fetchone()
        return _map_archived_account(row) if row else None

    def list_archived_accounts(self) -> list[ArchivedAccount]:
        """List archived accounts, most recently archived first."""
        with self.cursor() as cur:
            cur.execute(
                f"SELECT {_ACCOUNT_COLUMNS}, archived_at FROM archived_accounts "
                "ORDER BY archived_at DESC, account_id DESC"
            )
            return [_map_archived_account(row) for row in cur.fetchall()]

    def count_archived_accounts(self) -> int:
        """Count archived accounts."""
        with self.cursor() as cur:
            cur.execute("SELECT count(*) FROM archived_accounts")
            return cur.fetchone()[0]

    # documents ---------------------------------------------------------------------

    def documents(self, space: DocumentSpace) -> DocumentRepository:
        """Return the repository bound to ``space``."""
        return self._documents[DocumentSpace(space)]

    # company documents -------------------------------------------------------------

    def create_company_document(self, payload: CreateCompanyDocumentInput) -> CompanyDocument:
        """Insert an organisation-wide document and return it."""
        with self.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO company_documents (document_type, storage_locator, expiration_date, resource_kind)
                VALUES (%s, %s, %s, %s)
                RETURNING {_COMPANY_COLUMNS}
                """,
                (
                    payload.document_type,
                    payload.storage_locator,
                    payload.expiration_date,
                    payload.resource_kind.value,
                ),
            )
            row = cur.fetchone()
        return _map_company_document(row)

    def get_company_document(self, document_id: int) -> CompanyDocument | None:
        """Fetch a company document by identifier."""
        with self.cursor() as cur:
            cur.execute(
                f"SELECT {_COMPANY_COLUMNS} FROM company_documents WHERE document_id = %s",
                (document_id,),
            )
            row = cur.fetchone()
        return _map_company_document(row) if row else None

    def list_company_documents(self, document_type: str | None = None) -> list[CompanyDocument]:
        """List company documents, optionally filtered by document type."""
        clauses: list[str] = []
        params: list[Any] = []
        if document_type:
            clauses.append("document_type = %s")
            params.append(document_type)
        where_sql = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self.cursor() as cur:
            cur.execute(
                f"SELECT {_COMPANY_COLUMNS} FROM company_documents {where_sql} ORDER BY document_id",
                params,
            )
            return [_map_company_document(row) for row in cur.fetchall()]

    def delete_company_document(self, document_id: int) -> None:
        """Delete a company document, raising NotFound when it does not exist."""
        with self.cursor() as cur:
            cur.execute("DELETE FROM company_documents WHERE document_id = %s", (document_id,))
            deleted = cur.rowcount
        if deleted == 0:
            raise NotFound(f"company document {document_id} not found")

    def count_company_documents(self) -> int:
        """Count company documents."""
        with self.cursor() as cur:
            cur.execute("SELECT count(*) FROM company_documents")
            return cur.fetchone()[0]

    # atomic units ------------------------------------------------------------------

    def run_atomic(self, steps: Sequence[AtomicStep]) -> dict[str, Any]:
        """Execute ``steps`` inside one transaction and return the shared scratch dict.

        Every step receives the transaction-scoped :class:`AtomicUnit` and the
        scratch dict used to hand results to later steps. The transaction commits
        only after the last step returns. On any exception it is rolled back first;
        domain errors are then re-raised unchanged and everything else surfaces as
        :class:`TransactionError`.
        """
        scratch: dict[str, Any] = {}
        try:
            with self._pool.connection() as conn:
                with conn.transaction():
                    with conn.cursor(row_factory=tuple_row) as cur:
                        unit = PostgresAtomicUnit(cur)
                        for step in steps:
                            step(unit, scratch)
        except DocVaultError:
            raise
        except Exception as exc:
            logger.error("atomic unit rolled back: %s", exc)
            raise TransactionError(f"atomic unit rolled back: {exc}", cause=exc) from exc
        return scratch
