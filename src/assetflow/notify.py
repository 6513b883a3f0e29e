# notify.py
from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Protocol

from .model import AssetChanged

log = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, event: AssetChanged) -> None: ...


class NullSink:
    def notify(self, event: AssetChanged) -> None:
        pass


class LoggingSink:
    """Logs every changed asset at INFO."""

    def notify(self, event: AssetChanged) -> None:
        log.info("asset changed: %s (%s)", event.path, event.task)


class CollectingSink:
    """Keeps events in memory. Thread safe."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.events: List[AssetChanged] = []

    def notify(self, event: AssetChanged) -> None:
        with self._lock:
            self.events.append(event)

    def paths(self) -> List[str]:
        with self._lock:
            return [str(e.path) for e in self.events]


class FanoutSink:
    """Forwards to several sinks; one failing sink does not starve the rest."""

    def __init__(self, sinks: Iterable[NotificationSink]):
        self.sinks = list(sinks)

    def notify(self, event: AssetChanged) -> None:
        for sink in self.sinks:
            emit(sink, event)


def emit(sink: NotificationSink | None, event: AssetChanged) -> None:
    """Fire-and-forget delivery: sink failures are logged, never raised."""
    if sink is None:
        return
    try:
        sink.notify(event)
    except Exception:  # noqa: BLE001
        log.exception("notification sink %r failed for %s", sink, event.path)
