# model.py
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

SUCCESS = "success"
FAILED = "failed"
SKIPPED = "skipped"

UPSTREAM_FAILED = "upstreamFailed"
TIMEOUT = "timeout"

# transform(data, path) -> [(output name, output bytes), ...]
AssetTransform = Callable[[bytes, Path], List[tuple]]


@dataclass(frozen=True)
class Task:
    """
    A build task: source globs -> destination dir through one transform.

    `needs` lists the tasks that must reach a terminal state before this one.
    A task without sources is a pure aggregation point in the graph.
    """
    name: str
    sources: List[str] = field(default_factory=list)
    destination: Optional[str] = None
    transform: Optional[AssetTransform] = None
    needs: List[str] = field(default_factory=list)
    # extra files (partials, includes) whose changes make every output stale
    inputs: List[str] = field(default_factory=list)

    # glob prefix stripped from source paths (defaults to each glob's static prefix)
    base: Optional[str] = None
    # bind sources to the watch coordinator
    watch: bool = True


@dataclass
class ExecutionRecord:
    """Outcome of one task within one run. Never persisted."""
    task: str
    status: str
    started_at: float
    finished_at: float
    reason: Optional[str] = None
    outputs: List[Path] = field(default_factory=list)
    invoked: int = 0  # transform invocations

    @property
    def ok(self) -> bool:
        return self.status == SUCCESS

    @property
    def duration(self) -> float:
        return self.finished_at - self.started_at


@dataclass(frozen=True)
class WatchBinding:
    pattern: str
    task: str


@dataclass(frozen=True)
class AssetChanged:
    path: Path
    task: str


@dataclass(frozen=True)
class FsEvent:
    """A filesystem change. All kinds mean "recompute staleness"."""
    kind: str  # created | modified | deleted | moved
    path: str


def _default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


@dataclass(frozen=True)
class BuildConfig:
    """Immutable build settings handed to the orchestrator at construction."""
    root: Path = field(default_factory=Path.cwd)
    workers: int = field(default_factory=_default_workers)
    task_timeout: Optional[float] = None
    debounce: float = 0.2
    force: bool = False

    def resolve(self, p: str | Path) -> Path:
        p = Path(p).expanduser()
        return p if p.is_absolute() else Path(self.root) / p

    def with_options(self, **overrides: Any) -> "BuildConfig":
        values = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **values)


@dataclass
class Pipeline:
    """Tasks in declaration order plus named task groups (e.g. "default")."""
    tasks: List[Task]
    groups: Dict[str, List[str]] = field(default_factory=dict)
    source: Optional[Path] = None
