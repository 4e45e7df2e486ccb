"""Upload classification: acceptance, canonical storage name and resource kind."""

from __future__ import annotations

import itertools
import re
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .document import ResourceKind
from ..errors import UnsupportedMediaType, ValidationError

PDF_MIME_TYPE = "application/pdf"

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^A-Za-z0-9_]")


class ClassifierMode(str, Enum):
    STRICT = "strict"
    PERMISSIVE = "permissive"


@dataclass(slots=True, frozen=True)
class StoragePlan:
    """Outcome of classifying one uploaded artifact."""

    canonical_name: str
    resource_kind: ResourceKind
    accept: bool
    storage_format: str | None = None
    reason: str | None = None

    def raise_for_rejection(self) -> "StoragePlan":
        """Return the plan unchanged, or raise ``UnsupportedMediaType`` if it was rejected."""
        if not self.accept:
            raise UnsupportedMediaType(self.reason and f"{self.reason}: only PDF uploads are accepted")
        return self


class DocumentClassifier:
    """Pure policy deciding how an uploaded artifact is stored.

    Parameters
    ----------
    mode:
        ``strict`` accepts PDFs only; ``permissive`` accepts anything and tags
        non-PDF content as raw binary.
    clock_ms:
        Millisecond clock used for the uniqueness suffix. Injected by tests.
    """

    def __init__(
        self,
        mode: ClassifierMode | str = ClassifierMode.STRICT,
        *,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        self._mode = ClassifierMode(mode)
        self._clock_ms = clock_ms or (lambda: int(time.time() * 1000))
        self._sequence = itertools.count(1)

    @property
    def mode(self) -> ClassifierMode:
        return self._mode

    def classify(self, declared_type: str, artifact_mime_type: str, original_filename: str) -> StoragePlan:
        if not declared_type or not declared_type.strip():
            raise ValidationError("document_type is required")

        mime_type = (artifact_mime_type or "").split(";", 1)[0].strip().lower()
        is_pdf = mime_type == PDF_MIME_TYPE
        canonical_name = self.canonical_name(original_filename)

        if is_pdf:
            return StoragePlan(
                canonical_name=canonical_name,
                resource_kind=ResourceKind.DOCUMENT_VIEWABLE,
                accept=True,
                storage_format="pdf",
            )
        if self._mode is ClassifierMode.STRICT:
            return StoragePlan(
                canonical_name=canonical_name,
                resource_kind=ResourceKind.RAW_BINARY,
                accept=False,
                reason=UnsupportedMediaType.__name__,
            )
        return StoragePlan(
            canonical_name=canonical_name,
            resource_kind=ResourceKind.RAW_BINARY,
            accept=True,
        )

    def canonical_name(self, original_filename: str) -> str:
        """Derive a collision-free storage name from the uploaded filename."""
        stem = (original_filename or "").split(".", 1)[0]
        stem = _WHITESPACE.sub("_", stem.strip())
        stem = _DISALLOWED.sub("", stem).lower() or "document"
        return f"{stem}_{self._clock_ms()}_{next(self._sequence)}"
