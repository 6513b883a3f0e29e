# errors.py
from __future__ import annotations

from dataclasses import dataclass
from typing import List


class AssetflowError(Exception):
    """Base class for every error raised by assetflow."""


# ----------------------------------------------------------------------
# Configuration / graph errors (fatal, raised before any task runs)
# ----------------------------------------------------------------------

class ConfigError(AssetflowError):
    """Bad paths, missing required fields, malformed pipeline files."""


class GraphError(ConfigError):
    """The task graph cannot be built or ordered."""


class DuplicateTaskError(GraphError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Duplicate task name: {name}")


class InvalidDependencyError(GraphError):
    def __init__(self, task: str | None, dependency: str):
        self.task = task
        self.dependency = dependency
        if task is None:
            msg = f"Unknown task '{dependency}'"
        else:
            msg = f"Task '{task}' needs missing task '{dependency}'"
        super().__init__(msg)


class CycleError(GraphError):
    def __init__(self, cycle: List[str]):
        self.cycle = list(cycle)
        super().__init__("Dependency cycle: " + " -> ".join(self.cycle))


# ----------------------------------------------------------------------
# Transform errors (recovered per task)
# ----------------------------------------------------------------------

@dataclass
class TransformError(AssetflowError):
    """
    A transform could not turn its input into outputs.

    Recorded as the task's failure reason; never aborts sibling tasks.
    """
    detail: str
    path: str | None = None

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.detail}"
        return self.detail
