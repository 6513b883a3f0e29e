import queue
from pathlib import Path

from livereload.handlers import LiveReloadHandler
from watchdog.events import (
    DirModifiedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from assetflow.dag import TaskGraph
from assetflow.dsl import task
from assetflow.model import AssetChanged, FsEvent
from assetflow.notify import CollectingSink, FanoutSink
from assetflow.runner import watch_roots
from assetflow.serve import LiveReloadSink
from assetflow.transforms import copy
from assetflow.watch import _QueueHandler

from conftest import write


def _drain(events):
    out = []
    while not events.empty():
        out.append(events.get_nowait())
    return out


# ----------------------------------------------------------------------
# watchdog handler
# ----------------------------------------------------------------------

def test_file_events_are_queued_as_fs_events():
    events = queue.Queue()
    handler = _QueueHandler(events)
    handler.on_any_event(FileModifiedEvent("/site/dev/styles/index.scss"))
    handler.on_any_event(FileCreatedEvent("/site/dev/fonts/a.woff"))

    assert _drain(events) == [
        FsEvent("modified", "/site/dev/styles/index.scss"),
        FsEvent("created", "/site/dev/fonts/a.woff"),
    ]


def test_directory_and_unrelated_events_are_dropped():
    events = queue.Queue()
    handler = _QueueHandler(events)
    handler.on_any_event(DirModifiedEvent("/site/dev/styles"))
    handler.on_any_event(FileClosedEvent("/site/dev/styles/index.scss"))
    assert events.empty()


def test_move_reports_both_paths():
    events = queue.Queue()
    _QueueHandler(events).on_any_event(FileMovedEvent("/site/dev/views/.index.html.swp", "/site/dev/views/index.html"))
    assert _drain(events) == [
        FsEvent("moved", "/site/dev/views/.index.html.swp"),
        FsEvent("moved", "/site/dev/views/index.html"),
    ]


# ----------------------------------------------------------------------
# watch roots
# ----------------------------------------------------------------------

def test_watch_roots_drop_nested_directories(tmp_path):
    (tmp_path / "dev" / "styles" / "parts").mkdir(parents=True)
    (tmp_path / "dev" / "views").mkdir(parents=True)
    graph = TaskGraph([
        task("styles", "dev/styles/**/*.scss", "build/css", copy),
        task("parts", "dev/styles/parts/*.scss", "build/parts", copy),
        task("views", "dev/views/*.html", "build", copy),
    ])
    assert watch_roots(graph, tmp_path) == [tmp_path / "dev" / "styles", tmp_path / "dev" / "views"]


def test_watch_roots_walk_up_from_missing_directories(tmp_path):
    write(tmp_path / "dev" / "robots.txt")
    graph = TaskGraph([
        task("fonts", "dev/extra/fonts/*", "build/fonts", copy),
        task("root", "dev/robots.txt", "build", copy),
    ])
    assert watch_roots(graph, tmp_path) == [tmp_path / "dev"]


# ----------------------------------------------------------------------
# sinks
# ----------------------------------------------------------------------

class _StubLoop:
    def __init__(self):
        self.callbacks = []

    def add_callback(self, fn, *args):
        self.callbacks.append((fn, args))


def test_live_reload_drops_events_before_serving(tmp_path):
    sink = LiveReloadSink(tmp_path / "build", port=5600)
    sink.notify(AssetChanged(path=tmp_path / "build" / "index.html", task="views"))
    assert sink.url == "http://127.0.0.1:5600/"


def test_live_reload_paths_are_relative_to_served_root(tmp_path):
    sink = LiveReloadSink(tmp_path / "build")
    loop = _StubLoop()
    sink._loop = loop

    sink.notify(AssetChanged(path=tmp_path / "build" / "assets" / "css" / "styles.min.css", task="styles"))
    sink.notify(AssetChanged(path=tmp_path / "elsewhere" / "app.js", task="scripts"))

    assert loop.callbacks == [
        (LiveReloadHandler.reload_waiters, ("assets/css/styles.min.css",)),
        (LiveReloadHandler.reload_waiters, ("app.js",)),
    ]


class _ClosedSocketSink:
    def notify(self, event):
        raise RuntimeError("socket closed")


def test_fanout_keeps_delivering_after_a_sink_fails(caplog):
    good = CollectingSink()
    FanoutSink([_ClosedSocketSink(), good]).notify(AssetChanged(path=Path("build/a.css"), task="styles"))

    assert good.paths() == ["build/a.css"]
    assert "notification sink" in caplog.text
