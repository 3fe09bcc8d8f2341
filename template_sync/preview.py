"""Preview cache and HTTP surface for Template Sync.

Holds the most recent rendered artifact and serves it to a browser
viewer that polls for changes:

    GET /latest   -> {"latest": <ms timestamp> | null}
    GET /preview  -> the artifact bytes, or 404 before the first render
    GET /*        -> the viewer page
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlparse

from template_sync.errors import ResourceMissingError
from template_sync.viewer_html import render_viewer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedArtifact:
    """Bytes returned by a preview request and when they were stored."""

    data: bytes
    generated_at: int  # milliseconds since the epoch


def should_refetch(last_seen: int | None, latest: int | None) -> bool:
    """Viewer rule: fetch the artifact when a new timestamp shows up.

    Mirrors the ``latest !== lastSeen`` check in the viewer script, which
    only advances ``lastSeen`` once the artifact was actually loaded.
    """
    return latest is not None and latest != last_seen


class PreviewCache:
    """Holds at most one :class:`RenderedArtifact`.

    ``store`` swaps a single reference, so readers on the server thread
    see either the old artifact or the new one, never a mix.
    """

    def __init__(self, poll_interval_ms: int = 1000):
        self._artifact: RenderedArtifact | None = None
        self._poll_interval_ms = poll_interval_ms

    def store(self, data: bytes) -> RenderedArtifact:
        """Install *data* as the latest artifact."""
        previous = self._artifact
        now = int(time.time() * 1000)
        if previous is not None and now <= previous.generated_at:
            now = previous.generated_at + 1
        artifact = RenderedArtifact(data=bytes(data), generated_at=now)
        self._artifact = artifact
        return artifact

    def latest(self) -> int | None:
        """Return the timestamp of the stored artifact, if any."""
        artifact = self._artifact
        return artifact.generated_at if artifact is not None else None

    def artifact(self) -> RenderedArtifact:
        """Return the stored artifact or raise :class:`ResourceMissingError`."""
        artifact = self._artifact
        if artifact is None:
            raise ResourceMissingError("No preview has been rendered yet")
        return artifact

    def viewer_document(self) -> str:
        return render_viewer(self._poll_interval_ms)


class PreviewHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the preview surface."""

    cache: PreviewCache | None = None

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002 - signature from BaseHTTPRequestHandler
        logger.debug("%s - %s", self.address_string(), format % args)

    def _send_body(self, status_code: int, content_type: str, body: bytes) -> None:
        self.send_response(status_code)
        self.send_header("Content-type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.send_header("Cache-Control", "no-cache")
        self.end_headers()
        self.wfile.write(body)

    def _send_json(self, status_code: int, payload: dict[str, Any]) -> None:
        self._send_body(status_code, "application/json", json.dumps(payload).encode())

    def do_GET(self) -> None:  # noqa: N802 - name from BaseHTTPRequestHandler
        path = urlparse(self.path).path
        cache = self.cache
        if cache is None:
            self._send_json(500, {"error": "no_cache"})
            return

        if path == "/latest":
            self._send_json(200, {"latest": cache.latest()})
        elif path == "/preview":
            try:
                artifact = cache.artifact()
            except ResourceMissingError:
                self._send_json(404, {"error": "not_found"})
                return
            self._send_body(200, "application/pdf", artifact.data)
        else:
            self._send_body(200, "text/html; charset=utf-8", cache.viewer_document().encode())


class PreviewServer:
    """Serves a :class:`PreviewCache` from a background thread.

    Usage:
        server = PreviewServer(cache, port=3000)
        server.start()
        ...
        server.stop()
    """

    def __init__(self, cache: PreviewCache, port: int = 3000, host: str = "127.0.0.1"):
        self.cache = cache
        self._host = host
        self._port = port
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """Return the bound port (resolved after start when 0 was given)."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._port

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self.port}/"

    def start(self) -> None:
        """Bind the socket and serve in a daemon thread."""
        # Bind the cache to a handler subclass
        handler_class = type("PreviewHandler", (PreviewHandler,), {"cache": self.cache})
        server = ThreadingHTTPServer((self._host, self._port), handler_class)
        server.daemon_threads = True
        self._server = server
        self._thread = threading.Thread(
            target=server.serve_forever, daemon=True, name="PreviewServer"
        )
        self._thread.start()
        logger.info("Preview available at %s", self.url)

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Preview server stopped.")
