from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest

from assetflow.errors import TransformError
from assetflow.model import BuildConfig


class RecordingTransform:
    """Upper-cases its input and remembers every call; fails on chosen names."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, data: bytes, path: Path):
        with self._lock:
            self.calls.append(path.name)
        if path.name in self.fail_on:
            raise TransformError("boom", str(path))
        return [(path.name, data.upper())]


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SpyOrchestrator:
    """Stands in for Orchestrator in watch tests; records requested task sets."""

    def __init__(self, graph, root: Path, debounce: float = 0.2):
        self.graph = graph
        self.root = root
        self.config = BuildConfig(root=root, debounce=debounce)
        self.calls = []
        self.hook = None

    def run(self, names):
        self.calls.append(list(names))
        if self.hook is not None:
            self.hook()
        return []


def write(path: Path, text: str = "x", mtime: float | None = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def config(tmp_path):
    return BuildConfig(root=tmp_path, workers=4)


@pytest.fixture
def recorder():
    return RecordingTransform()
