"""Debounced rebuilds driven by filesystem events.

The coordinator never touches the filesystem watcher directly: events arrive
on a queue, so the Idle -> Debouncing -> Running cycle can be driven by tests
with a fake clock.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .model import ExecutionRecord, FsEvent, WatchBinding
from .staleness import matches

log = logging.getLogger(__name__)

IDLE = "idle"
DEBOUNCING = "debouncing"
RUNNING = "running"

EVENT_KINDS = {"created", "modified", "deleted", "moved"}

_STOP = object()


class WatchCoordinator:
    """
    Turns bursts of filesystem events into single incremental runs.

    Idle        --event-->        Debouncing (deadline = now + debounce)
    Debouncing  --event-->        Debouncing (deadline reset, path added)
    Debouncing  --deadline-->     Running    (owning tasks + dependents)
    Running     --event-->        queued; Debouncing again once the run ends
    """

    def __init__(
        self,
        orchestrator,
        bindings: Optional[Iterable[WatchBinding]] = None,
        *,
        events: Optional["queue.Queue"] = None,
        debounce: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        on_run: Optional[Callable[[List[str], List[ExecutionRecord]], None]] = None,
        allowed: Optional[Iterable[str]] = None,
    ):
        self.orchestrator = orchestrator
        self.graph = orchestrator.graph
        self.bindings = list(bindings) if bindings is not None else self.graph.bindings()
        self.root = Path(orchestrator.root).resolve()
        self.events = events if events is not None else queue.Queue()
        self.debounce = orchestrator.config.debounce if debounce is None else debounce
        self.clock = clock
        self.on_run = on_run
        # rebuilds never reach past the watched selection
        self.allowed = set(allowed) if allowed is not None else None

        self._lock = threading.Lock()
        self._state = IDLE
        self._deadline: Optional[float] = None
        self._pending: Dict[str, None] = {}
        self._queued: Dict[str, None] = {}
        self._stopping = threading.Event()
        self.runs = 0

    @property
    def state(self) -> str:
        with self._lock:
            return self._state

    @property
    def pending(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    # ------------------------------------------------------------------
    # Path -> task resolution
    # ------------------------------------------------------------------

    def _relative(self, path: str) -> str:
        p = Path(path)
        if not p.is_absolute():
            return p.as_posix()
        try:
            return p.resolve().relative_to(self.root).as_posix()
        except ValueError:
            return p.as_posix()

    def owners(self, path: str) -> List[str]:
        """Tasks whose bound patterns match `path`, in binding order."""
        rel = self._relative(path)
        absolute = Path(path).as_posix()
        out: List[str] = []
        for b in self.bindings:
            target = absolute if Path(b.pattern).is_absolute() else rel
            if matches(target, b.pattern) and b.task not in out:
                out.append(b.task)
        return out

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def handle_event(self, event: FsEvent) -> bool:
        """Feed one event. Returns False if no binding claims it."""
        if not self.owners(event.path):
            log.debug("ignored %s %s", event.kind, event.path)
            return False

        with self._lock:
            if self._stopping.is_set():
                return False
            if self._state == RUNNING:
                self._queued[event.path] = None
                return True
            self._pending[event.path] = None
            self._deadline = self.clock() + self.debounce
            self._state = DEBOUNCING
        log.debug("%s %s (debouncing)", event.kind, event.path)
        return True

    def poll(self, now: Optional[float] = None) -> Optional[List[ExecutionRecord]]:
        """Run the pending batch if its debounce window has passed."""
        now = self.clock() if now is None else now
        with self._lock:
            if self._state != DEBOUNCING or self._deadline is None or now < self._deadline:
                return None
            paths = list(self._pending)
            self._pending.clear()
            self._deadline = None
            self._state = RUNNING
        return self._run(paths)

    def _run(self, paths: List[str]) -> List[ExecutionRecord]:
        owners: List[str] = []
        for p in paths:
            for t in self.owners(p):
                if t not in owners:
                    owners.append(t)
        targets = self.graph.dependents_of(owners)
        if self.allowed is not None:
            targets &= self.allowed
        names = [n for n in self.graph.names() if n in targets]
        log.info("rebuilding %s for %d changed path(s)", ", ".join(names), len(paths))

        records: List[ExecutionRecord] = []
        try:
            records = self.orchestrator.run(names)
        except Exception:  # noqa: BLE001
            log.exception("rebuild of %s failed", ", ".join(names))
        finally:
            with self._lock:
                self.runs += 1
                if self._queued and not self._stopping.is_set():
                    self._pending = self._queued
                    self._queued = {}
                    self._deadline = self.clock() + self.debounce
                    self._state = DEBOUNCING
                else:
                    self._queued = {}
                    self._state = IDLE

        if self.on_run is not None:
            self.on_run(paths, records)
        return records

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def serve_forever(self) -> None:
        """Consume the event queue until stop() is called."""
        while not self._stopping.is_set():
            with self._lock:
                timeout = None
                if self._state == DEBOUNCING and self._deadline is not None:
                    timeout = max(0.0, self._deadline - self.clock())
            try:
                item = self.events.get(timeout=timeout)
            except queue.Empty:
                item = None
            if item is _STOP:
                break
            if item is not None:
                self.handle_event(item)
            self.poll()

    def stop(self) -> None:
        """Drop any pending batch; an in-flight run is allowed to finish."""
        with self._lock:
            self._stopping.set()
            self._pending.clear()
            self._queued.clear()
            self._deadline = None
            if self._state == DEBOUNCING:
                self._state = IDLE
        self.events.put(_STOP)


# ----------------------------------------------------------------------
# watchdog adapter
# ----------------------------------------------------------------------

class _QueueHandler(FileSystemEventHandler):
    def __init__(self, events: "queue.Queue"):
        super().__init__()
        self.events = events

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in EVENT_KINDS:
            return
        self.events.put(FsEvent(event.event_type, os.fsdecode(event.src_path)))
        dest = getattr(event, "dest_path", None)
        if event.event_type == "moved" and dest:
            self.events.put(FsEvent("moved", os.fsdecode(dest)))


class WatchdogEventSource:
    """Schedules a watchdog observer on `paths` and feeds `events`."""

    def __init__(self, paths: Iterable[Path], events: "queue.Queue"):
        self.paths = [Path(p) for p in paths]
        self.events = events
        self._observer: Optional[Observer] = None

    def start(self) -> None:
        observer = Observer()
        handler = _QueueHandler(self.events)
        for p in self.paths:
            log.info("watching %s", p)
            observer.schedule(handler, str(p), recursive=True)
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None

    def __enter__(self) -> "WatchdogEventSource":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
