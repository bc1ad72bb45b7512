"""Development server for Timug.

Serves the deployment folder with live reload while the source tree is
edited:
- A threaded HTTP server serves the built files and injects a reload
  script into HTML responses.
- A websocket server (HTTP port + 1) tells connected browsers to reload
  after every successful rebuild.
- A watchdog observer feeds file events into a queue; a single worker
  collapses each burst of events into exactly one rebuild.

Events under the deployment folder or any ``.git`` directory are ignored,
so the build's own writes never trigger another build.

Key classes:
- DevServer: Owns the build context, the builder and the three servers.
- RebuildScheduler: Debounced, single-worker rebuild queue.
- _ReloadHandler: HTTP request handler that injects the reload script.
- _ChangeHandler: File system event handler feeding the scheduler.
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import queue
import threading
import time
from collections.abc import Callable, Iterable
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import websockets
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from .build import SiteBuilder
from .config import DEFAULT_PORT
from .context import BuildContext
from .errors import BuildError
from .utils import is_within

logger = logging.getLogger(__name__)

BIND_ADDRESS = "0.0.0.0"
IGNORED_DIR_NAMES = (".git",)


def _inject(content: str, script: str) -> str:
    if "</body>" in content:
        return content.replace("</body>", f"{script}</body>")
    return content + script


class _ReloadHandler(SimpleHTTPRequestHandler):
    """HTTP request handler that injects live reload script into HTML pages.

    Attributes:
        reload_script: JavaScript code for WebSocket connection to trigger reloads.
    """

    reload_script_template = """
    <script>
    (() => {{
      const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}');
      ws.onmessage = (event) => {{
        const data = JSON.parse(event.data || '{{}}');
        if (data.type === 'reload') location.reload();
      }};
    }})();
    </script>
    """
    reload_script = reload_script_template.format(ws_port=DEFAULT_PORT + 1)

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)

    def list_directory(self, path):  # pragma: no cover - exercised via send_head
        return self._serve_404()

    def _send_html(self, status: int, content: str) -> None:
        encoded = _inject(content, self.reload_script).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(encoded)))
        self.end_headers()
        self.wfile.write(encoded)

    def _serve_404(self):
        """Serve 404.html (when present) with a 404 status."""
        error_page = Path(self.directory) / "404.html"
        if error_page.exists():
            self._send_html(404, error_page.read_text(encoding="utf-8"))
            return None
        self.send_error(404, "File not found")
        return None

    def send_head(self):
        path_obj = Path(self.translate_path(self.path))
        if path_obj.is_dir():
            path_obj = path_obj / "index.html"
        if not path_obj.is_file():
            return self._serve_404()

        if path_obj.suffix == ".html":
            self._send_html(200, path_obj.read_text(encoding="utf-8"))
            return None
        return super().send_head()


class RebuildScheduler:
    """Turns bursts of change notifications into single rebuilds.

    One worker blocks on the queue. When an event arrives it raises
    ``needs_rebuild``, waits ``debounce`` seconds, drains whatever else
    arrived in the meantime, clears the flag and calls ``rebuild`` once.
    A rebuild in progress is never cancelled; events arriving during it
    queue up and produce one more rebuild afterwards.

    Attributes:
        debounce: Seconds to wait for the rest of a burst.
        needs_rebuild: True between the first event of a burst and the
            start of its rebuild.
        rebuilds: Number of rebuilds run so far.
    """

    def __init__(self, rebuild: Callable[[], object], debounce: float = 0.05):
        self._rebuild = rebuild
        self.debounce = debounce
        self.needs_rebuild = False
        self.rebuilds = 0
        self._queue: queue.Queue[Path | None] = queue.Queue()
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def pending(self) -> int:
        """Number of queued, not yet processed events."""
        return self._queue.qsize()

    def notify(self, path: Path) -> None:
        self._queue.put(path)

    def _drain(self) -> int:
        drained = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return drained
            if item is None:
                self._stopped.set()
            drained += 1

    def process_next(self, timeout: float | None = None) -> bool:
        """Wait for one burst of events and rebuild once.

        Args:
            timeout: Seconds to wait for the first event; None blocks.

        Returns:
            True if a rebuild ran.
        """
        try:
            first = self._queue.get(timeout=timeout)
        except queue.Empty:
            return False
        if first is None:
            return False

        self.needs_rebuild = True
        if self.debounce:
            time.sleep(self.debounce)
        drained = self._drain()
        self.needs_rebuild = False
        logger.debug("Rebuilding after %d change(s), first: %s", drained + 1, first)
        self._rebuild()
        self.rebuilds += 1
        return True

    def run_forever(self) -> None:
        while not self._stopped.is_set():
            self.process_next()

    def start(self) -> threading.Thread:
        self._thread = threading.Thread(target=self.run_forever, daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        self._stopped.set()
        self._queue.put(None)
        if self._thread is not None:
            self._thread.join()
            self._thread = None


class DevServer:
    """Development server with live reload functionality.

    Attributes:
        project_root: Root directory of the project.
        context: The one build context of the process.
        builder: Builder reused for every rebuild.
        output_dir: Directory where the built site is served.
        http_port: Port for the HTTP server.
        ws_port: Port for WebSocket connections.
        scheduler: Rebuild queue fed by the file watcher.
    """

    def __init__(
        self,
        project_root: Path,
        http_port: int | None = None,
        ws_port: int | None = None,
        show_drafts: bool = False,
        debounce: float = 0.05,
    ):
        """Initialize the development server.

        Args:
            project_root: Root directory of the project.
            http_port: HTTP port; 8080 when None.
            ws_port: WebSocket port; HTTP port + 1 when None.
            show_drafts: Include drafts in every build.
            debounce: Seconds a burst of changes is collected for.

        Raises:
            ConfigError: If timug.yaml cannot be loaded.
        """
        self.project_root = Path(project_root).resolve()
        self.context = BuildContext.from_project(self.project_root, show_drafts=show_drafts)
        self.builder = SiteBuilder(self.context)
        self.output_dir = self.context.deployment_path
        self.http_port = int(http_port or DEFAULT_PORT)
        self.ws_port = ws_port if ws_port is not None else self.http_port + 1
        self._reload_script = _ReloadHandler.reload_script_template.format(ws_port=self.ws_port)
        self.scheduler = RebuildScheduler(self.rebuild, debounce=debounce)
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None
        self._ws_clients: set = set()
        self._loop = asyncio.new_event_loop()

    def ignored_paths(self) -> list[Path]:
        return [self.output_dir]

    def start(self) -> None:  # pragma: no cover - integration path
        """Build once, then serve and watch until interrupted.

        Raises:
            BuildError: If the initial build fails.
        """
        self.builder.run()
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self.scheduler.start()
        self._start_watcher()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            self.stop()

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        self.scheduler.stop()
        if self._httpd:
            self._httpd.shutdown()
            self._httpd = None
        self._loop.call_soon_threadsafe(self._loop.stop)

    def rebuild(self) -> bool:
        """Rebuild the site and notify browsers.

        A failed rebuild is logged and the server keeps running.

        Returns:
            True if the build succeeded.
        """
        logger.info("Change detected; rebuilding...")
        try:
            self.builder.run()
        except BuildError as exc:
            logger.error("Build failed: %s", exc)
            return False
        self._broadcast_reload()
        return True

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler_cls = type(
            "_ReloadHandlerWithPort",
            (_ReloadHandler,),
            {"reload_script": self._reload_script},
        )
        handler = functools.partial(handler_cls, directory=str(self.output_dir))
        self._httpd = ThreadingHTTPServer((BIND_ADDRESS, self.http_port), handler)
        logger.info("Serving %s at http://localhost:%d", self.output_dir, self.http_port)
        self._httpd.serve_forever()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        asyncio.set_event_loop(self._loop)
        try:
            self._loop.run_until_complete(self._run_ws_server())
        except OSError as exc:
            logger.error("WebSocket server failed to start (port %d): %s", self.ws_port, exc)

    async def _run_ws_server(self) -> None:  # pragma: no cover - integration path
        async with websockets.serve(self._ws_handler, BIND_ADDRESS, self.ws_port):
            await asyncio.Future()

    async def _ws_handler(self, websocket):
        self._ws_clients.add(websocket)
        try:
            await websocket.wait_closed()
        finally:
            self._ws_clients.discard(websocket)

    def _broadcast_reload(self):
        if not self._loop.is_running():
            return
        message = json.dumps({"type": "reload"})
        asyncio.run_coroutine_threadsafe(self._async_broadcast(message), self._loop)

    async def _async_broadcast(self, message: str):
        stale = set()
        for ws in self._ws_clients:
            try:
                await ws.send(message)
            except websockets.ConnectionClosed:
                stale.add(ws)
        for ws in stale:
            self._ws_clients.discard(ws)

    def _start_watcher(self) -> None:  # pragma: no cover - integration path
        handler = _ChangeHandler(self.scheduler, self.ignored_paths())
        observer = Observer()
        observer.schedule(handler, str(self.context.config.blog_path), recursive=True)
        observer.start()
        self._observer = observer


class _ChangeHandler(FileSystemEventHandler):
    """Forwards source changes to a RebuildScheduler."""

    def __init__(self, scheduler: RebuildScheduler, ignored: Iterable[Path]):
        super().__init__()
        self.scheduler = scheduler
        self.ignored = [Path(path) for path in ignored]

    def is_ignored(self, path: Path) -> bool:
        if any(part in IGNORED_DIR_NAMES for part in path.parts):
            return True
        return any(is_within(path, ignored) for ignored in self.ignored)

    def on_any_event(self, event):
        if event.is_directory:
            return
        if event.event_type in ("opened", "closed", "closed_no_write"):
            return
        path = Path(os.fsdecode(event.src_path))
        if self.is_ignored(path):
            return
        self.scheduler.notify(path)
