"""Atomic migration of an employee and their documents into the archived space."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, Sequence

from .reporting import NullReporter, Reporter
from ..errors import DocVaultError, NotFound
from ..repository import AtomicStep, AtomicUnit


class AtomicRunner(Protocol):
    def run_atomic(self, steps: Sequence[AtomicStep]) -> dict[str, Any]:
        ...


@dataclass(slots=True, frozen=True)
class ArchivalResult:
    source_account_id: int
    archived_account_id: int
    document_count: int


class ArchivalTransitionEngine:
    """Moves an account from ``Active`` to the terminal ``Archived`` state.

    All five writes run as one list of steps handed to ``run_atomic``; the
    store commits only after the last step, so readers never see the account in
    both spaces or in neither. Failures are not retried here: a caller retrying
    after an unknown outcome gets ``NotFound`` if the earlier attempt committed.
    """

    def __init__(
        self,
        store: AtomicRunner,
        reporter: Reporter | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._reporter = reporter or NullReporter()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def archive(self, account_id: int) -> int:
        """Archive ``account_id`` and return the newly minted archived account id."""
        return self.archive_with_result(account_id).archived_account_id

    def archive_with_result(self, account_id: int) -> ArchivalResult:
        self._reporter.event("archive.started", account_id=account_id)
        try:
            scratch = self._store.run_atomic(self.steps(account_id))
        except DocVaultError as exc:
            self._reporter.event("archive.failed", account_id=account_id, error=exc.code)
            raise

        result = ArchivalResult(
            source_account_id=account_id,
            archived_account_id=scratch["archived_account_id"],
            document_count=len(scratch["documents"]),
        )
        self._reporter.event(
            "archive.completed",
            account_id=account_id,
            archived_account_id=result.archived_account_id,
            documents=result.document_count,
        )
        return result

    def steps(self, account_id: int) -> list[AtomicStep]:
        """Return the ordered steps of one archival."""
        archived_at = self._clock()

        def load_account(unit: AtomicUnit, scratch: dict[str, Any]) -> None:
            # re-read under a row lock so a concurrent archive of the same id waits, then misses
            account = unit.lock_account(account_id)
            if account is None:
                raise NotFound(f"account {account_id} not found")
            scratch["account"] = account

        def insert_archived_account(unit: AtomicUnit, scratch: dict[str, Any]) -> None:
            scratch["archived_account_id"] = unit.insert_archived_account(scratch["account"], archived_at)

        def copy_documents(unit: AtomicUnit, scratch: dict[str, Any]) -> None:
            documents = unit.list_active_documents(account_id)
            for document in documents:
                unit.insert_archived_document(document, scratch["archived_account_id"])
            scratch["documents"] = documents

        def delete_active_documents(unit: AtomicUnit, scratch: dict[str, Any]) -> None:
            deleted = unit.delete_active_documents(account_id)
            if deleted != len(scratch["documents"]):
                raise RuntimeError(
                    f"expected to delete {len(scratch['documents'])} documents for account {account_id}, "
                    f"deleted {deleted}"
                )

        def delete_account(unit: AtomicUnit, scratch: dict[str, Any]) -> None:
            unit.delete_account(account_id)

        return [
            load_account,
            insert_archived_account,
            copy_documents,
            delete_active_documents,
            delete_account,
        ]
