# cli.py
from __future__ import annotations

import sys
import threading
import time
from pathlib import Path
from typing import List, Optional, Tuple

import click

from assetflow.dag import TaskGraph
from assetflow.errors import AssetflowError
from assetflow.log import configure_logging
from assetflow.model import BuildConfig, Pipeline
from assetflow.notify import FanoutSink, LoggingSink
from assetflow.runner import (
    DEFAULT_PIPELINE,
    Orchestrator,
    load_pipeline,
    summarize,
    validate_pipeline,
    watch_roots,
)
from assetflow.ui.console import Console, get_console, set_console


def find_pipeline_files() -> list[Path]:
    """
    Find all pipeline files in the current directory.

    Returns:
        List of Path objects for pipeline files
    """
    pipeline_files = []
    current_dir = Path(".")

    default_pipeline = current_dir / DEFAULT_PIPELINE
    if default_pipeline.exists():
        pipeline_files.append(default_pipeline)

    for path in current_dir.glob("*_pipeline.py"):
        if path != default_pipeline:
            pipeline_files.append(path)

    return sorted(pipeline_files)


def discover_pipeline(pipeline_arg: str | None) -> Path:
    """
    Discover pipeline file from argument or default.

    Raises:
        SystemExit: If no pipeline (or more than one) can be found
    """
    console = get_console()

    if pipeline_arg:
        pipeline_path = Path(pipeline_arg)
        if not pipeline_path.exists() and pipeline_path.suffix != ".py":
            pipeline_path = Path(str(pipeline_path) + ".py")
        if not pipeline_path.exists():
            console.print_error(
                "Pipeline file not found",
                f"Could not find pipeline file: {pipeline_arg}",
                suggestion="Create a pipeline file or specify a different path:\n  assetflow --pipeline site_pipeline.py build",
            )
            sys.exit(1)
        return pipeline_path

    pipeline_files = find_pipeline_files()

    if len(pipeline_files) == 0:
        console.print_error(
            "No pipeline file found",
            "Could not find any pipeline files.",
            details=["Looked for:", f"  {DEFAULT_PIPELINE}", "  *_pipeline.py"],
            suggestion=f"Create a pipeline file:\n  {DEFAULT_PIPELINE}",
        )
        sys.exit(1)

    if len(pipeline_files) > 1:
        console.print_error(
            "Multiple pipeline files found",
            "Found multiple pipeline files. Please specify which one to use:",
            details=[str(f) for f in pipeline_files],
            suggestion=f"Specify a pipeline explicitly:\n  assetflow --pipeline {DEFAULT_PIPELINE} build",
        )
        sys.exit(1)

    return pipeline_files[0]


def _load(ctx: click.Context) -> Tuple[Pipeline, TaskGraph, BuildConfig]:
    """Load and validate the pipeline; configuration errors exit with 1."""
    console = get_console()
    obj = ctx.obj
    pipeline_path = discover_pipeline(obj["pipeline"])
    try:
        pipeline = load_pipeline(pipeline_path)
        root = Path(obj["root"]) if obj["root"] else pipeline_path.resolve().parent
        config = BuildConfig(root=root.resolve()).with_options(**obj["overrides"])
        graph = validate_pipeline(pipeline, config.root)
        console.print_debug(
            f"pipeline={pipeline_path} root={config.root} workers={config.workers} "
            f"timeout={config.task_timeout} debounce={config.debounce}"
        )
    except AssetflowError as e:
        console.print_error(
            "Invalid pipeline",
            f"Could not load pipeline from {pipeline_path}",
            details=[str(e)],
        )
        if obj["debug"]:
            import traceback
            traceback.print_exc()
        sys.exit(1)
    except Exception as e:  # noqa: BLE001
        console.print_error("Could not load pipeline", str(pipeline_path), details=[f"{type(e).__name__}: {e}"])
        console.print_exception(e)
        sys.exit(1)
    return pipeline, graph, config


def _build(
    ctx: click.Context,
    names: Optional[List[str]],
    force: bool,
    loaded: Optional[Tuple[Pipeline, TaskGraph, BuildConfig]] = None,
) -> None:
    console = get_console()
    pipeline, graph, config = loaded or _load(ctx)
    if force:
        config = config.with_options(force=True)

    try:
        selected = graph.names() if not names else names
        console.print_run_started(pipeline=str(pipeline.source or "?"), tasks=list(selected))
        records = Orchestrator(graph, config, sink=LoggingSink()).run(selected)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except AssetflowError as e:
        console.print_error("Build aborted", str(e))
        sys.exit(1)

    for rec in records:
        console.print_record(rec)
    console.print_results(records)
    sys.exit(summarize(records))


@click.group()
@click.option("--pipeline", "pipeline_path", default=None, help=f"Pipeline file (defaults to {DEFAULT_PIPELINE} if present)")
@click.option("--root", default=None, type=click.Path(file_okay=False), help="Project root (defaults to the pipeline file's directory)")
@click.option("--workers", default=None, type=int, help="Number of parallel workers")
@click.option("--timeout", default=None, type=float, help="Per-stage task timeout in seconds")
@click.option("--debounce", default=None, type=float, help="Watch debounce window in seconds [default: 0.2]")
@click.option("--debug", is_flag=True, default=False, help="Enable debug mode (show stack traces and detailed output)")
@click.pass_context
def cli(ctx, pipeline_path, root, workers, timeout, debounce, debug):
    """assetflow: incremental static asset builds."""
    console = Console(debug=debug)
    set_console(console)
    configure_logging(debug=debug)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["pipeline"] = pipeline_path
    ctx.obj["root"] = root
    ctx.obj["overrides"] = {"workers": workers, "task_timeout": timeout, "debounce": debounce}


@cli.command("list")
@click.pass_context
def list_tasks(ctx):
    """List tasks, their stages and groups."""
    pipeline, graph, _config = _load(ctx)
    console = get_console()

    console.print_header("Tasks")
    for t in graph:
        line = f"- {t.name}"
        if t.sources:
            line += f": {', '.join(t.sources)} -> {t.destination}"
        if t.needs:
            line += f" (needs {', '.join(t.needs)})"
        console.print_info(line)

    console.print_header("Stages")
    for idx, level in enumerate(graph.topological_order()):
        console.print_info(f"{idx + 1}. {', '.join(level)}")

    if pipeline.groups:
        console.print_header("Groups")
        for name, members in pipeline.groups.items():
            console.print_info(f"- {name}: {', '.join(members)}")


@cli.command()
@click.argument("tasks", nargs=-1)
@click.option("--force", is_flag=True, default=False, help="Rebuild even if outputs are up to date")
@click.pass_context
def build(ctx, tasks, force):
    """Build TASKS (all tasks by default) once."""
    _build(ctx, list(tasks) or None, force)


@cli.command("run")
@click.argument("group")
@click.option("--force", is_flag=True, default=False, help="Rebuild even if outputs are up to date")
@click.pass_context
def run_group(ctx, group, force):
    """Build the tasks of a named GROUP once."""
    loaded = _load(ctx)
    pipeline = loaded[0]
    if group not in pipeline.groups:
        known = ", ".join(sorted(pipeline.groups)) or "(none)"
        get_console().print_error("Unknown group", f"No group named '{group}'", details=[f"Known groups: {known}"])
        sys.exit(1)
    _build(ctx, pipeline.groups[group], force, loaded)


@cli.command()
@click.argument("tasks", nargs=-1)
@click.option("--serve/--no-serve", default=True, show_default=True, help="Serve the build directory with live reload")
@click.option("--serve-dir", default="build", show_default=True, help="Directory to serve")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=5500, show_default=True, type=int)
@click.pass_context
def watch(ctx, tasks, serve, serve_dir, host, port):
    """Build, then rebuild TASKS (all by default) whenever their sources change."""
    import queue

    from assetflow.watch import WatchCoordinator, WatchdogEventSource

    console = get_console()
    _pipeline, graph, config = _load(ctx)

    try:
        selected = graph.dependencies_of(tasks) if tasks else set(graph.names())
    except AssetflowError as e:
        console.print_error("Invalid task selection", str(e))
        sys.exit(1)

    sinks = [LoggingSink()]
    reload_sink = None
    if serve:
        from assetflow.serve import LiveReloadSink

        reload_sink = LiveReloadSink(config.resolve(serve_dir), port=port, host=host)
        sinks.append(reload_sink)

    orchestrator = Orchestrator(graph, config, sink=FanoutSink(sinks))
    records = orchestrator.run([n for n in graph.names() if n in selected])
    for rec in records:
        console.print_record(rec)

    bindings = [b for b in graph.bindings() if b.task in selected]
    events: queue.Queue = queue.Queue()
    coordinator = WatchCoordinator(
        orchestrator,
        bindings,
        events=events,
        on_run=console.print_rebuild,
        allowed=selected if tasks else None,
    )
    roots = watch_roots(graph, config.root)
    source = WatchdogEventSource(roots, events)
    loop = threading.Thread(target=coordinator.serve_forever, name="assetflow-watch", daemon=True)

    console.print_watch_started([str(r) for r in roots], reload_sink.url if reload_sink else None)
    source.start()
    loop.start()
    try:
        if reload_sink is not None:
            reload_sink.serve()
        else:
            while loop.is_alive():
                time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        source.stop()
        coordinator.stop()
        loop.join()
        console.print_info("\nStopped.")


def main():  # pragma: no cover
    cli(auto_envvar_prefix="ASSETFLOW")


if __name__ == "__main__":  # pragma: no cover
    main()
