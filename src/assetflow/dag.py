# dag.py
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional, Set

from .errors import ConfigError, CycleError, DuplicateTaskError, InvalidDependencyError
from .model import Task, WatchBinding


class TaskGraph:
    """
    Registry of Tasks keyed by name, in declaration order.

    Edges point from a task to the tasks it `needs`. The graph is not
    mutated once the orchestrator owns it.
    """

    def __init__(self, tasks: Iterable[Task] = ()):
        self._tasks: Dict[str, Task] = {}
        for t in tasks:
            self.add_task(t)

    @classmethod
    def from_tasks(cls, tasks: Iterable[Task]) -> "TaskGraph":
        """
        Build a graph from a declaration list in any order.

        Unlike add_task(), a dependency may be declared after its dependent;
        cycles are therefore possible and reported by topological_order().
        """
        tasks = list(tasks)
        graph = cls()
        for t in tasks:
            if t.name in graph._tasks:
                raise DuplicateTaskError(t.name)
            graph._tasks[t.name] = t
        for t in tasks:
            for dep in t.needs:
                if dep not in graph._tasks:
                    raise InvalidDependencyError(t.name, dep)
        return graph

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def add_task(self, task: Task) -> None:
        if task.name in self._tasks:
            raise DuplicateTaskError(task.name)
        for dep in task.needs:
            if dep not in self._tasks:
                raise InvalidDependencyError(task.name, dep)
        self._tasks[task.name] = task

    def get(self, name: str) -> Task:
        try:
            return self._tasks[name]
        except KeyError:
            raise InvalidDependencyError(None, name) from None

    def names(self) -> List[str]:
        return list(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def __iter__(self) -> Iterator[Task]:
        return iter(self._tasks.values())

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------

    def topological_order(self, names: Optional[Iterable[str]] = None) -> List[List[str]]:
        """
        Group tasks into stages. Each stage holds every remaining task whose
        dependencies are all in earlier stages, so a stage can run in parallel.
        Within a stage, declaration order is kept.

        `names` restricts ordering to a subset; dependencies outside the
        subset are treated as already satisfied.
        """
        if names is None:
            selected = set(self._tasks)
        else:
            selected = set()
            for n in names:
                self.get(n)
                selected.add(n)

        order = [n for n in self._tasks if n in selected]
        dependents: Dict[str, Set[str]] = {n: set() for n in order}
        indeg: Dict[str, int] = {}
        for n in order:
            deps = {d for d in self._tasks[n].needs if d in selected}
            indeg[n] = len(deps)
            for d in deps:
                dependents[d].add(n)

        remaining = set(order)
        levels: List[List[str]] = []
        while remaining:
            level = [n for n in order if n in remaining and indeg[n] == 0]
            if not level:
                raise CycleError(self._find_cycle(order, remaining))
            for n in level:
                remaining.discard(n)
                for child in dependents[n]:
                    indeg[child] -= 1
            levels.append(level)
        return levels

    def _find_cycle(self, order: List[str], remaining: Set[str]) -> List[str]:
        # every remaining node still needs another remaining node, so walking
        # any chain of needs must revisit a node
        node = next(n for n in order if n in remaining)
        path: List[str] = []
        seen: Dict[str, int] = {}
        while node not in seen:
            seen[node] = len(path)
            path.append(node)
            node = next(d for d in self._tasks[node].needs if d in remaining)
        return path[seen[node]:] + [node]

    # ------------------------------------------------------------------
    # Closures
    # ------------------------------------------------------------------

    def dependencies_of(self, names: Iterable[str]) -> Set[str]:
        """The given tasks plus everything they transitively need."""
        out: Set[str] = set()
        stack = list(names)
        while stack:
            n = stack.pop()
            if n in out:
                continue
            task = self.get(n)
            out.add(n)
            stack.extend(task.needs)
        return out

    def dependents_of(self, names: Iterable[str]) -> Set[str]:
        """The given tasks plus everything that transitively needs them."""
        reverse: Dict[str, Set[str]] = {n: set() for n in self._tasks}
        for t in self._tasks.values():
            for dep in t.needs:
                reverse[dep].add(t.name)

        out: Set[str] = set()
        stack = list(names)
        while stack:
            n = stack.pop()
            if n in out:
                continue
            self.get(n)
            out.add(n)
            stack.extend(reverse[n])
        return out

    # ------------------------------------------------------------------
    # Watch bindings
    # ------------------------------------------------------------------

    def bindings(self) -> List[WatchBinding]:
        """
        One binding per watched pattern (sources and extra inputs).
        A pattern may belong to one task only.
        """
        owner: Dict[str, str] = {}
        out: List[WatchBinding] = []
        for t in self._tasks.values():
            if not t.watch:
                continue
            for pattern in list(t.sources) + list(t.inputs):
                prev = owner.get(pattern)
                if prev == t.name:
                    continue
                if prev is not None:
                    raise ConfigError(
                        f"Watch pattern '{pattern}' is claimed by both '{prev}' and '{t.name}'"
                    )
                owner[pattern] = t.name
                out.append(WatchBinding(pattern=pattern, task=t.name))
        return out
