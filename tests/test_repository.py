"""Transaction-boundary behaviour of the Postgres record store, exercised with a stub pool."""

from __future__ import annotations

from contextlib import contextmanager

import psycopg
import pytest
from psycopg import errors as pg_errors
from psycopg import sql

from docvault.domain.archival import ArchivalTransitionEngine
from docvault.domain.contracts import CreateDocumentInput
from docvault.domain.document import DocumentSpace, ResourceKind
from docvault.errors import Conflict, NotFound, PersistenceError, TransactionError, ValidationError
from docvault.repository import SCHEMA_PATH, RecordStore


class StubCursor:
    def __init__(self, rows=None, rowcount: int = 1, error: Exception | None = None) -> None:
        self.executed: list[tuple[object, object]] = []
        self._rows = list(rows or [])
        self.rowcount = rowcount
        self._error = error

    def execute(self, query, params=None) -> None:
        self.executed.append((query, params))
        if self._error is not None:
            raise self._error

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


class StubConnection:
    def __init__(self, cursor: StubCursor) -> None:
        self.cursor_obj = cursor
        self.outcomes: list[str] = []

    @contextmanager
    def transaction(self):
        try:
            yield
        except BaseException:
            self.outcomes.append("rollback")
            raise
        else:
            self.outcomes.append("commit")

    def cursor(self, row_factory=None) -> StubCursor:
        return self.cursor_obj


class StubPool:
    def __init__(self, cursor: StubCursor) -> None:
        self.conn = StubConnection(cursor)

    @contextmanager
    def connection(self):
        yield self.conn


def make_store(**cursor_kwargs) -> tuple[RecordStore, StubPool]:
    pool = StubPool(StubCursor(**cursor_kwargs))
    return RecordStore(pool), pool


def test_run_atomic_commits_after_last_step():
    store, pool = make_store()
    calls = []

    scratch = store.run_atomic(
        [
            lambda unit, scratch: calls.append("first") or scratch.update(value=1),
            lambda unit, scratch: calls.append("second"),
        ]
    )

    assert calls == ["first", "second"]
    assert scratch == {"value": 1}
    assert pool.conn.outcomes == ["commit"]


def test_run_atomic_rolls_back_and_wraps_unexpected_failures():
    store, pool = make_store()

    def explode(unit, scratch):
        raise RuntimeError("disk full")

    with pytest.raises(TransactionError) as excinfo:
        store.run_atomic([explode, lambda unit, scratch: pytest.fail("later steps must not run")])

    assert isinstance(excinfo.value.cause, RuntimeError)
    assert pool.conn.outcomes == ["rollback"]


def test_run_atomic_lets_domain_errors_through_after_rollback():
    store, pool = make_store()

    def missing(unit, scratch):
        raise NotFound("account 9 not found")

    with pytest.raises(NotFound):
        store.run_atomic([missing])
    assert pool.conn.outcomes == ["rollback"]


def test_archival_locks_the_active_row_inside_the_transaction():
    store, pool = make_store(rows=[])

    with pytest.raises(NotFound):
        ArchivalTransitionEngine(store).archive(9)

    query, params = pool.conn.cursor_obj.executed[0]
    assert "FOR UPDATE" in query
    assert params == (9,)
    assert pool.conn.outcomes == ["rollback"]


def test_document_queries_use_the_table_of_the_selected_space():
    store, pool = make_store(rows=[])

    store.documents(DocumentSpace.ARCHIVED).list_by_owner(101)
    store.documents(DocumentSpace.ACTIVE).list_by_owner(7)

    (archived_query, _), (active_query, _) = pool.conn.cursor_obj.executed
    assert isinstance(archived_query, sql.Composed)
    assert sql.Identifier("archived_documents") in archived_query
    assert sql.Identifier("documents") in active_query


def test_archived_space_rejects_direct_inserts():
    store, pool = make_store()

    with pytest.raises(ValidationError):
        store.documents(DocumentSpace.ARCHIVED).create(
            CreateDocumentInput(
                owner_account_id=101,
                document_type="license",
                storage_locator="memory://x.pdf",
                owner_display_name_snapshot="A. Lopez",
                resource_kind=ResourceKind.DOCUMENT_VIEWABLE,
            )
        )
    assert pool.conn.cursor_obj.executed == []


def test_delete_of_missing_document_is_not_found():
    store, _ = make_store(rowcount=0)

    with pytest.raises(NotFound):
        store.documents(DocumentSpace.ACTIVE).delete_by_id(42)


def test_driver_failures_become_persistence_errors():
    store, _ = make_store(error=psycopg.OperationalError("server closed the connection"))

    with pytest.raises(PersistenceError):
        store.list_accounts()


def test_unique_violation_becomes_conflict():
    store, _ = make_store(error=pg_errors.UniqueViolation("duplicate key value"))

    with pytest.raises(Conflict):
        store.get_account_by_login("alopez")


def test_schema_declares_all_five_tables():
    ddl = SCHEMA_PATH.read_text(encoding="utf-8")

    for table in ("accounts", "archived_accounts", "documents", "archived_documents", "company_documents"):
        assert f"CREATE TABLE IF NOT EXISTS {table} (" in ddl
