from __future__ import annotations

from dataclasses import dataclass, field

from .account import Role
from .document import DocumentSpace
from ..repository import RecordStore


@dataclass(slots=True)
class WorkforceStatistics:
    active_account_count: int
    document_count_by_type: dict[str, int] = field(default_factory=dict)
    archived_account_count: int = 0
    company_document_count: int = 0


class StatisticsAggregator:
    """Read-only counts over the current record store state; recomputed on every call."""

    def __init__(self, store: RecordStore) -> None:
        self._store = store

    def aggregate(self) -> WorkforceStatistics:
        return WorkforceStatistics(
            active_account_count=self._store.count_accounts(Role.USER),
            document_count_by_type=self._store.documents(DocumentSpace.ACTIVE).count_by_type(),
            archived_account_count=self._store.count_archived_accounts(),
            company_document_count=self._store.count_company_documents(),
        )
