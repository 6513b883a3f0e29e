# runner.py
from __future__ import annotations

import logging
import runpy
import threading
import time
from concurrent.futures import Future, TimeoutError as FuturesTimeout, as_completed
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional

from .dag import TaskGraph
from .errors import ConfigError, TransformError
from .model import (
    FAILED,
    SKIPPED,
    SUCCESS,
    TIMEOUT,
    UPSTREAM_FAILED,
    AssetChanged,
    BuildConfig,
    ExecutionRecord,
    Pipeline,
    Task,
)
from .notify import NotificationSink, emit
from .staleness import destination_dir, expand_sources, glob_base, is_glob, is_stale, newest, output_name, plan_pairs
from .transforms import bind, extra_inputs

log = logging.getLogger(__name__)

DEFAULT_PIPELINE = "assetflow_pipeline.py"


# ----------------------------------------------------------------------
# Pipeline loading (local file/module)
# ----------------------------------------------------------------------

def load_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a python file path.

    The file must define either:
      - pipeline() -> List[Task]
      - TASKS = [Task, ...]
    and may define:
      - GROUPS = {"default": ["styles", "views"], ...}
    """
    pl_path = Path(path).expanduser().resolve()
    if not pl_path.exists():
        raise ConfigError(f"Pipeline file not found: {pl_path}")
    if pl_path.suffix != ".py":
        raise ConfigError(f"Pipeline must be a .py file, got: {pl_path.name}")

    module_name = f"assetflow_pipeline_{pl_path.stem}"
    globals_dict = runpy.run_path(str(pl_path), run_name=module_name)

    tasks = None
    if "pipeline" in globals_dict and callable(globals_dict["pipeline"]):
        tasks = globals_dict["pipeline"]()
    elif "TASKS" in globals_dict:
        tasks = globals_dict["TASKS"]

    if isinstance(tasks, Pipeline):
        tasks.source = pl_path
        return tasks

    if not isinstance(tasks, list) or not all(isinstance(t, Task) for t in tasks):
        raise ConfigError(
            "Pipeline must return/define a List[Task]. "
            "Define pipeline() -> List[Task] or TASKS = [Task, ...]."
        )

    groups = globals_dict.get("GROUPS") or {}
    if not isinstance(groups, dict):
        raise ConfigError("GROUPS must be a dict of group name -> list of task names")
    groups = {str(k): list(v) for k, v in groups.items()}
    return Pipeline(tasks=tasks, groups=groups, source=pl_path)


def validate_pipeline(pipeline: Pipeline, root: str | Path) -> TaskGraph:
    """
    Check a pipeline before anything runs and return its task graph.

    Raises ConfigError (or a GraphError subclass) on the first problem.
    """
    root_p = Path(root)
    for t in pipeline.tasks:
        if not t.name or not t.name.strip():
            raise ConfigError("Task name must not be empty")
        if t.sources and t.destination is None:
            raise ConfigError(f"Task '{t.name}' has sources but no destination")
        if t.sources and t.transform is None:
            raise ConfigError(f"Task '{t.name}' has sources but no transform")
        if t.transform is not None and not callable(t.transform):
            raise ConfigError(f"Task '{t.name}' transform is not callable: {t.transform!r}")
        for pattern in list(t.sources) + list(t.inputs):
            if is_glob(pattern):
                continue
            p = Path(pattern)
            p = p if p.is_absolute() else root_p / p
            if not p.exists():
                raise ConfigError(f"Task '{t.name}' source not found: {pattern}")

    graph = TaskGraph.from_tasks(pipeline.tasks)
    graph.topological_order()
    graph.bindings()

    for group, names in pipeline.groups.items():
        for n in names:
            if n not in graph:
                raise ConfigError(f"Group '{group}' names unknown task '{n}'")
    return graph


# ----------------------------------------------------------------------
# Orchestrator
# ----------------------------------------------------------------------

class _StagePool:
    """
    Bounded set of daemon worker threads for one stage.

    ThreadPoolExecutor joins its workers at interpreter exit, so a transform
    that never returns would keep the process alive past its timeout.
    """

    def __init__(self, max_workers: int, name: str = "assetflow"):
        self._slots = threading.BoundedSemaphore(max(1, max_workers))
        self._name = name
        self._count = 0

    def submit(self, fn, *args) -> Future:
        fut: Future = Future()

        def work():
            with self._slots:
                if not fut.set_running_or_notify_cancel():
                    return
                try:
                    fut.set_result(fn(*args))
                except BaseException as e:
                    fut.set_exception(e)

        self._count += 1
        threading.Thread(target=work, name=f"{self._name}_{self._count}", daemon=True).start()
        return fut


class Orchestrator:
    """
    Runs tasks stage by stage. Tasks inside one stage share a thread pool;
    a stage starts only after every task of the previous stage is terminal.
    """

    def __init__(
        self,
        graph: TaskGraph,
        config: Optional[BuildConfig] = None,
        sink: Optional[NotificationSink] = None,
    ):
        self.graph = graph
        self.config = config or BuildConfig()
        self.sink = sink
        self.root = Path(self.config.root)
        self._transforms = {
            t.name: bind(t.transform, self.root) for t in graph if t.transform is not None
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, task_names: Optional[Iterable[str]] = None) -> List[ExecutionRecord]:
        """
        Run `task_names` (all tasks if None) plus everything they need.

        Transform failures end up in the returned records; graph errors
        are raised before any task starts.
        """
        requested = self.graph.names() if task_names is None else list(task_names)
        selected = self.graph.dependencies_of(requested)
        levels = self.graph.topological_order(selected)

        records: List[ExecutionRecord] = []
        status: Dict[str, str] = {}

        for level_idx, level in enumerate(levels):
            log.debug("stage %d: %s", level_idx + 1, level)
            pool = _StagePool(self.config.workers, name=f"assetflow-stage{level_idx + 1}")
            futures: Dict[Future, str] = {}
            for name in level:
                task = self.graph.get(name)
                blocked = [d for d in task.needs if status.get(d) != SUCCESS]
                if blocked:
                    now = time.time()
                    rec = ExecutionRecord(
                        task=name, status=SKIPPED, started_at=now, finished_at=now,
                        reason=UPSTREAM_FAILED,
                    )
                    log.info("skip %s: upstream %s did not succeed", name, ", ".join(blocked))
                    self._finish(rec, records, status)
                    continue
                futures[pool.submit(self._run_task, task)] = name

            if futures:
                self._collect(futures, records, status)

        return records

    def _collect(
        self,
        futures: Dict[Future, str],
        records: List[ExecutionRecord],
        status: Dict[str, str],
    ) -> None:
        """Wait for one stage; whatever is unfinished at the deadline times out."""
        try:
            for fut in as_completed(futures, timeout=self.config.task_timeout):
                self._finish(fut.result(), records, status)
        except FuturesTimeout:
            for fut, name in futures.items():
                if name in status:
                    continue
                # finished right at the deadline but not yet yielded
                if fut.done():
                    self._finish(fut.result(), records, status)
                    continue
                # a stalled transform cannot be interrupted; its thread is a daemon
                fut.cancel()
                now = time.time()
                log.error("task %s timed out after %ss", name, self.config.task_timeout)
                self._finish(
                    ExecutionRecord(
                        task=name, status=FAILED, started_at=now, finished_at=now,
                        reason=TIMEOUT,
                    ),
                    records,
                    status,
                )

    # ------------------------------------------------------------------
    # Execution primitives
    # ------------------------------------------------------------------

    def _finish(
        self,
        rec: ExecutionRecord,
        records: List[ExecutionRecord],
        status: Dict[str, str],
    ) -> None:
        records.append(rec)
        status[rec.task] = rec.status
        if rec.status == FAILED:
            log.warning("task %s failed: %s", rec.task, rec.reason)
        for out in rec.outputs:
            emit(self.sink, AssetChanged(path=out, task=rec.task))

    def _run_task(self, task: Task) -> ExecutionRecord:
        """Never raises: every failure becomes a FAILED record."""
        started = time.time()
        outputs: List[Path] = []
        invoked = 0
        try:
            transform = self._transforms.get(task.name)
            extra = newest(
                [p for p, _base in expand_sources(self.root, task.inputs)] + extra_inputs(transform)
            )

            # many-to-one transforms (sprites) get every source in one call
            combined = callable(getattr(transform, "combine", None))
            if combined:
                sources = [p for p, _base in expand_sources(self.root, task.sources, task.base)]
                dest_dir = destination_dir(task, self.root)
                jobs = [(sources, dest_dir / output_name(transform, sources[0]))] if sources else []
            else:
                jobs = [([src], dest) for src, dest in plan_pairs(task, self.root)]

            for srcs, dest in jobs:
                if not any(self._needs_build(src, dest, extra) for src in srcs):
                    continue
                if transform is None:
                    raise ConfigError(f"Task '{task.name}' has sources but no transform")
                log.debug("[%s] %s -> %s", task.name, srcs[0] if len(srcs) == 1 else f"{len(srcs)} files", dest)
                invoked += 1
                if combined:
                    produced = transform.combine([(src.read_bytes(), src) for src in srcs])
                else:
                    produced = transform(srcs[0].read_bytes(), srcs[0])
                for name, body in produced:
                    out = self._output_path(dest.parent, name, srcs[0])
                    out.parent.mkdir(parents=True, exist_ok=True)
                    out.write_bytes(body)
                    outputs.append(out)
        except TransformError as e:
            return ExecutionRecord(
                task=task.name, status=FAILED, started_at=started, finished_at=time.time(),
                reason=str(e), outputs=outputs, invoked=invoked,
            )
        except Exception as e:  # noqa: BLE001
            log.exception("task %s crashed", task.name)
            return ExecutionRecord(
                task=task.name, status=FAILED, started_at=started, finished_at=time.time(),
                reason=f"{type(e).__name__}: {e}", outputs=outputs, invoked=invoked,
            )

        return ExecutionRecord(
            task=task.name, status=SUCCESS, started_at=started, finished_at=time.time(),
            outputs=outputs, invoked=invoked,
        )

    def _needs_build(self, src: Path, dest: Path, extra: Optional[Path]) -> bool:
        if self.config.force:
            return True
        if is_stale(src, dest):
            return True
        return extra is not None and is_stale(extra, dest)

    @staticmethod
    def _output_path(dest_dir: Path, name: str, src: Path) -> Path:
        rel = PurePosixPath(str(name).replace("\\", "/"))
        if rel.is_absolute() or ".." in rel.parts or not rel.parts:
            raise TransformError(f"invalid output name {name!r}", str(src))
        return dest_dir.joinpath(*rel.parts)


# ----------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------

def summarize(records: Iterable[ExecutionRecord]) -> int:
    """Process exit code for a single-shot build: 0 only if every task succeeded."""
    return 0 if all(r.status == SUCCESS for r in records) else 1


def run_tasks(
    tasks: List[Task],
    names: Optional[Iterable[str]] = None,
    *,
    config: Optional[BuildConfig] = None,
    sink: Optional[NotificationSink] = None,
) -> List[ExecutionRecord]:
    """One-call build: validate, order and run."""
    config = config or BuildConfig()
    graph = validate_pipeline(Pipeline(tasks=list(tasks)), config.root)
    return Orchestrator(graph, config, sink).run(names)


def watch_roots(graph: TaskGraph, root: str | Path) -> List[Path]:
    """Existing directories that must be observed to see every bound pattern."""
    root_p = Path(root)
    dirs: List[Path] = []
    for b in graph.bindings():
        base = Path(glob_base(b.pattern)) if is_glob(b.pattern) else Path(b.pattern)
        base = base if base.is_absolute() else root_p / base
        if base.is_file():
            base = base.parent
        while not base.exists() and base != base.parent:
            base = base.parent
        if base not in dirs:
            dirs.append(base)
    # drop directories nested inside another watched one
    return [d for d in dirs if not any(o != d and o in d.parents for o in dirs)]
