# serve.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from livereload import Server
from livereload.handlers import LiveReloadHandler
from tornado.ioloop import IOLoop

from .model import AssetChanged

log = logging.getLogger(__name__)


class LiveReloadSink:
    """
    Serves the build directory and tells connected browsers to reload.

    notify() may be called from any thread; the reload is handed to the
    server's IO loop. Events before serve() starts are dropped.
    """

    def __init__(self, root: str | Path, *, port: int = 5500, host: str = "127.0.0.1"):
        self.root = Path(root)
        self.port = port
        self.host = host
        self.server = Server()
        self._loop: Optional[IOLoop] = None

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}/"

    def notify(self, event: AssetChanged) -> None:
        loop = self._loop
        if loop is None:
            log.debug("live reload not serving yet, dropped %s", event.path)
            return
        try:
            path = Path(event.path).resolve().relative_to(self.root.resolve()).as_posix()
        except ValueError:
            path = Path(event.path).name
        loop.add_callback(LiveReloadHandler.reload_waiters, path)

    def serve(self) -> None:
        """Blocks until the server shuts down (Ctrl+C)."""
        self.root.mkdir(parents=True, exist_ok=True)
        self._loop = IOLoop.current()
        try:
            self.server.serve(root=str(self.root), port=self.port, host=self.host)
        finally:
            self._loop = None
