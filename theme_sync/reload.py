"""Live-reload channel.

A small threaded HTTP endpoint. Browsers load ``/reload.js`` from the
theme, which opens a Server-Sent Events stream on ``/events`` and
refreshes the page when a ``refresh`` event arrives.
"""

from __future__ import annotations

import logging
import queue
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

logger = logging.getLogger(__name__)

_KEEPALIVE_SECONDS = 15

CLIENT_SCRIPT = """\
(function () {
  var source = new EventSource("%(origin)s/events");
  source.addEventListener("refresh", function () { window.location.reload(); });
})();
"""


class _Handler(BaseHTTPRequestHandler):
    server: _ReloadHTTPServer

    def log_message(self, format, *args):  # noqa: A002
        logger.debug("reload %s - %s", self.address_string(), format % args)

    def do_GET(self) -> None:
        if self.path.startswith("/events"):
            self._stream()
        elif self.path.startswith("/reload.js"):
            host, port = self.server.server_address[:2]
            body = (CLIENT_SCRIPT % {"origin": f"http://{host}:{port}"}).encode()
            self.send_response(200)
            self.send_header("Content-Type", "application/javascript")
            self.send_header("Content-Length", str(len(body)))
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            self.wfile.write(body)
        else:
            self.send_error(404)

    def _stream(self) -> None:
        channel = self.server.channel
        q = channel.subscribe()
        try:
            self.send_response(200)
            self.send_header("Content-Type", "text/event-stream")
            self.send_header("Cache-Control", "no-cache")
            self.send_header("Access-Control-Allow-Origin", "*")
            self.end_headers()
            self.wfile.flush()
            while not channel.closed:
                try:
                    event = q.get(timeout=_KEEPALIVE_SECONDS)
                except queue.Empty:
                    self.wfile.write(b": keepalive\n\n")
                else:
                    if event is None:
                        break
                    self.wfile.write(f"event: {event}\ndata: {event}\n\n".encode())
                self.wfile.flush()
        except (BrokenPipeError, ConnectionResetError):
            logger.debug("Reload client went away.")
        finally:
            channel.unsubscribe(q)


class _ReloadHTTPServer(ThreadingHTTPServer):
    daemon_threads = True

    def __init__(self, address, channel: ReloadServer):
        self.channel = channel
        super().__init__(address, _Handler)


class ReloadServer:
    """Broadcasts reload notifications to every connected browser."""

    def __init__(self, host: str = "127.0.0.1", port: int = 3000):
        self.host = host
        self.port = port
        self._subscribers: set[queue.Queue] = set()
        self._lock = threading.Lock()
        self._httpd: _ReloadHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self.closed = False

    # ---- subscribers ----

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue()
        with self._lock:
            self._subscribers.add(q)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        with self._lock:
            self._subscribers.discard(q)

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def emit(self, event_name: str) -> None:
        """Fire-and-forget broadcast; a channel nobody listens to drops it."""
        with self._lock:
            subscribers = list(self._subscribers)
        for q in subscribers:
            q.put_nowait(event_name)
        logger.debug("Emitted %s to %d listener(s)", event_name, len(subscribers))

    # ---- lifecycle ----

    def start(self) -> None:
        """Bind the endpoint and serve it on a daemon thread."""
        self._httpd = _ReloadHTTPServer((self.host, self.port), self)
        self.port = self._httpd.server_address[1]
        self._thread = threading.Thread(
            target=self._httpd.serve_forever, daemon=True, name="ReloadServer"
        )
        self._thread.start()
        logger.info("Reload server listening on http://%s:%d", self.host, self.port)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        with self._lock:
            subscribers = list(self._subscribers)
        for q in subscribers:
            q.put_nowait(None)
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
        logger.debug("Reload server closed.")
