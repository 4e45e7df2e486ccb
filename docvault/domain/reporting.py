"""Reporting interface injected into business components.

Components describe what happened through :class:`Reporter`; where the event ends up
(log lines, Prometheus counters) is decided at wiring time.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from prometheus_client import Counter

EVENTS_TOTAL = Counter(
    "docvault_events_total",
    "Domain events emitted by docvault components.",
    ["event"],
)


class Reporter(Protocol):
    def event(self, name: str, **fields: Any) -> None:
        ...


class LoggingReporter:
    """Reporter that writes a log line and bumps the per-event counter."""

    _WARNING_SUFFIXES = (".failed", ".denied", ".rejected")

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("docvault.events")

    def event(self, name: str, **fields: Any) -> None:
        EVENTS_TOTAL.labels(event=name).inc()
        level = logging.WARNING if name.endswith(self._WARNING_SUFFIXES) else logging.INFO
        details = " ".join(f"{key}={value}" for key, value in sorted(fields.items()))
        self._logger.log(level, "%s %s", name, details)


class NullReporter:
    def event(self, name: str, **fields: Any) -> None:
        return None
