# src/assetflow/dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Union

from .model import AssetTransform, Pipeline, Task


def _as_list(value: Union[str, Iterable[str], None]) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return list(value)


# ---------------------------------------------------------------------
# Functional Task helper
# ---------------------------------------------------------------------

def task(
    name: str,
    sources: Union[str, Iterable[str], None] = None,
    dest: Optional[str] = None,
    transform: Optional[AssetTransform] = None,
    *,
    needs: Union[str, Iterable[str], None] = None,
    inputs: Union[str, Iterable[str], None] = None,
    base: Optional[str] = None,
    watch: bool = True,
) -> Task:
    """
    task("fonts", "dev/extra/fonts/*", "build/assets/fonts/", copy)
    task("package", needs=["styles", "views"])
    """
    return Task(
        name=name,
        sources=_as_list(sources),
        destination=dest,
        transform=transform,
        needs=_as_list(needs),
        inputs=_as_list(inputs),
        base=base,
        watch=watch,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class TaskBuilder:
    def __init__(self, name: str):
        self.name = name
        self._sources: list[str] = []
        self._dest: Optional[str] = None
        self._transform: Optional[AssetTransform] = None
        self._needs: list[str] = []
        self._inputs: list[str] = []
        self._base: Optional[str] = None
        self._watch: bool = True

    def source(self, *patterns: str):
        self._sources.extend(patterns)
        return self

    def to(self, dest: str):
        self._dest = dest
        return self

    def using(self, transform: AssetTransform):
        self._transform = transform
        return self

    def depends_on(self, *task_names: str):
        self._needs.extend(task_names)
        return self

    def with_inputs(self, *patterns: str):
        self._inputs.extend(patterns)
        return self

    def relative_to(self, base: str):
        self._base = base
        return self

    def unwatched(self):
        self._watch = False
        return self

    def build(self) -> Task:
        if self._sources and self._dest is None:
            raise ValueError(f"Task '{self.name}' has sources but no destination")
        return Task(
            name=self.name,
            sources=self._sources,
            destination=self._dest,
            transform=self._transform,
            needs=self._needs,
            inputs=self._inputs,
            base=self._base,
            watch=self._watch,
        )


def build(name: str) -> TaskBuilder:
    """Convenience: build('fonts').source(...).to(...).using(copy).build()"""
    return TaskBuilder(name)


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def declare(*tasks: Task, groups: Optional[Dict[str, Iterable[str]]] = None) -> Pipeline:
    """
    Pipeline definition helper. Named so it does not clash with the
    pipeline() function a pipeline file defines:

        from assetflow import declare, task, group

        def pipeline():
            return declare(task(...), task(...), groups={"default": group(...)})

    Or define TASKS = [task(...), ...] and GROUPS = {...} directly.
    """
    return Pipeline(
        tasks=list(tasks),
        groups={k: _as_list(v) for k, v in (groups or {}).items()},
    )


def group(*task_names: str) -> List[str]:
    """GROUPS = {"default": group("styles", "views")}"""
    return list(task_names)
