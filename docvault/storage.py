"""Artifact storage boundary.

Artifacts are written before any database transaction begins; the returned
locator is an opaque URI persisted alongside the document metadata. When the
metadata insert fails the caller discards the artifact again.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import urlparse
from urllib.request import url2pathname

from .errors import PersistenceError

logger = logging.getLogger(__name__)


class ArtifactStore(Protocol):
    def put(self, canonical_name: str, content: bytes, content_type: str, storage_format: str | None) -> str:
        ...

    def discard(self, locator: str) -> None:
        ...


class LocalArtifactStore:
    """Stores artifacts as files under a root directory and returns ``file://`` locators."""

    def __init__(self, root: str | Path, folder: str = "documents") -> None:
        self._root = Path(root) / folder

    def put(self, canonical_name: str, content: bytes, content_type: str, storage_format: str | None) -> str:
        suffix = f".{storage_format}" if storage_format else ".bin"
        target = self._root / f"{canonical_name}{suffix}"
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            # canonical names carry a uniqueness suffix, so never overwrite
            with target.open("xb") as handle:
                handle.write(content)
        except OSError as exc:
            logger.error("artifact write failed for %s: %s", target, exc)
            raise PersistenceError(f"could not store artifact {canonical_name}") from exc
        logger.debug("stored artifact %s (%s, %d bytes)", target.name, content_type, len(content))
        return target.resolve().as_uri()

    def discard(self, locator: str) -> None:
        """Remove an artifact written by :meth:`put`; unknown locators are ignored."""
        parsed = urlparse(locator)
        if parsed.scheme != "file":
            return
        target = Path(url2pathname(parsed.path))
        if target.parent != self._root.resolve():
            logger.warning("refusing to discard artifact outside %s: %s", self._root, locator)
            return
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("could not discard orphaned artifact %s: %s", target, exc)
