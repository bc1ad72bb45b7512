import asyncio
import io
import logging
import threading
from pathlib import Path

import websockets

from timug.errors import TemplateError
from timug.server import DevServer, RebuildScheduler, _ChangeHandler, _ReloadHandler


class DummyEvent:
    def __init__(self, path, is_directory=False, event_type="modified"):
        self.src_path = str(path)
        self.is_directory = is_directory
        self.event_type = event_type


def test_dev_server_ports(project):
    server = DevServer(project)
    assert server.http_port == 8080
    assert server.ws_port == 8081

    server = DevServer(project, http_port=5055)
    assert server.ws_port == 5056
    explicit = DevServer(project, http_port=5055, ws_port=6000)
    assert f":{explicit.ws_port}" in explicit._reload_script


def test_change_in_posts_triggers_exactly_one_rebuild(project, add_post):
    server = DevServer(project, debounce=0.01)
    calls = []
    scheduler = RebuildScheduler(lambda: calls.append("rebuild"), debounce=0.01)
    handler = _ChangeHandler(scheduler, server.ignored_paths())

    post = add_post(project, "new.md", title="New")
    handler.on_any_event(DummyEvent(post.resolve(), event_type="created"))
    handler.on_any_event(DummyEvent(post.resolve()))
    assert scheduler.pending == 2

    assert scheduler.process_next(timeout=1) is True
    assert calls == ["rebuild"]
    assert scheduler.pending == 0
    assert scheduler.process_next(timeout=0.01) is False
    assert calls == ["rebuild"]


def test_change_in_deployment_folder_is_ignored(project):
    server = DevServer(project)
    scheduler = RebuildScheduler(lambda: None)
    handler = _ChangeHandler(scheduler, server.ignored_paths())

    handler.on_any_event(DummyEvent(server.output_dir / "index.html"))
    handler.on_any_event(DummyEvent(server.output_dir / "2024" / "1" / "2" / "a.html"))
    handler.on_any_event(DummyEvent(project.resolve() / ".git" / "index"))
    handler.on_any_event(DummyEvent(project.resolve() / "posts", is_directory=True))
    handler.on_any_event(DummyEvent(project.resolve() / "posts" / "a.md", event_type="opened"))
    assert scheduler.pending == 0
    assert scheduler.process_next(timeout=0.01) is False


def test_needs_rebuild_is_raised_during_debounce():
    seen = []
    scheduler = RebuildScheduler(lambda: seen.append(scheduler.needs_rebuild), debounce=0)
    scheduler.notify(Path("a.md"))
    scheduler.process_next(timeout=1)
    # The flag is cleared before the rebuild runs.
    assert seen == [False]
    assert scheduler.rebuilds == 1


def test_scheduler_worker_stops(project):
    calls = []
    scheduler = RebuildScheduler(lambda: calls.append(1), debounce=0)
    thread = scheduler.start()
    scheduler.notify(Path("a.md"))
    scheduler.stop()
    assert not thread.is_alive()
    assert len(calls) <= 1


def test_rebuild_success_broadcasts_and_failure_is_logged(project, monkeypatch, caplog):
    caplog.set_level(logging.ERROR, logger="timug")
    server = DevServer(project)
    calls = []
    monkeypatch.setattr(server, "_broadcast_reload", lambda: calls.append("reload"))

    assert server.rebuild() is True
    assert calls == ["reload"]
    assert (server.output_dir / "index.html").exists()

    def broken(clean=False):
        raise TemplateError(Path("post.html"), "boom")

    monkeypatch.setattr(server.builder, "run", broken)
    assert server.rebuild() is False
    assert calls == ["reload"]
    assert "boom" in caplog.text


def test_async_broadcast_drops_closed_clients(project):
    server = DevServer(project)

    class GoodWS:
        def __init__(self):
            self.messages = []

        async def send(self, msg):
            self.messages.append(msg)

    class ClosedWS:
        async def send(self, msg):
            raise websockets.ConnectionClosed(None, None)

    good, closed = GoodWS(), ClosedWS()
    server._ws_clients = {good, closed}
    asyncio.run(server._async_broadcast("hello"))
    assert good.messages == ["hello"]
    assert closed not in server._ws_clients


def _handler_for(directory, path):
    handler = _ReloadHandler.__new__(_ReloadHandler)
    handler.directory = str(directory)
    handler.path = path
    handler.wfile = io.BytesIO()
    handler.request_version = "HTTP/1.1"
    handler.requestline = f"GET {path} HTTP/1.1"
    handler.command = "GET"
    handler.client_address = ("127.0.0.1", 0)
    handler._headers_buffer = []
    return handler


def test_reload_handler_injects_script(tmp_path):
    (tmp_path / "index.html").write_text("<html><body>hi</body></html>", encoding="utf-8")
    handler = _handler_for(tmp_path, "/")
    assert handler.send_head() is None
    body = handler.wfile.getvalue().decode("utf-8")
    assert "200" in body.splitlines()[0]
    assert "new WebSocket" in body
    assert body.index("new WebSocket") < body.index("</body>")


def test_reload_handler_serves_404_page(tmp_path):
    (tmp_path / "404.html").write_text("<p>missing</p>", encoding="utf-8")
    handler = _handler_for(tmp_path, "/nope.html")
    handler.send_head()
    body = handler.wfile.getvalue().decode("utf-8")
    assert "404" in body.splitlines()[0]
    assert "<p>missing</p>" in body


def test_scheduler_is_thread_safe_for_bursts():
    calls = []
    scheduler = RebuildScheduler(lambda: calls.append(1), debounce=0.05)

    def burst():
        for i in range(20):
            scheduler.notify(Path(f"{i}.md"))

    threads = [threading.Thread(target=burst) for _ in range(3)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    while scheduler.process_next(timeout=0.01):
        pass
    assert calls == [1]
