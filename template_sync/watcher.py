"""File system watching for Template Sync.

Uses the watchdog library to watch individual files.  Watchdog's observer
thread only queues notifications; callbacks run serially on whichever
thread calls :meth:`WatchManager.dispatch_pending`.
"""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from watchdog.events import (
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


def _normalise(path: str | os.PathLike[str] | bytes) -> str:
    return os.path.normcase(os.path.abspath(os.fsdecode(path)))


@dataclass(frozen=True)
class WatchHandle:
    """Subscription to one absolute file path."""

    path: Path
    callback: Callable[[Path], None]
    watch: Any = None  # watchdog ObservedWatch for the parent directory


class _FileEventHandler(FileSystemEventHandler):
    """Watchdog handler that forwards events for a single file to a queue."""

    def __init__(self, path: Path, notify: Callable[[Path], None]):
        super().__init__()
        self._path = path
        self._key = _normalise(path)
        self._notify = notify

    def _forward(self, event_path: Any) -> None:
        if _normalise(event_path) == self._key:
            self._notify(self._path)

    def on_created(self, event: FileCreatedEvent) -> None:  # type: ignore[override]
        """Handle the file being (re)created."""
        if not event.is_directory:
            self._forward(event.src_path)

    def on_modified(self, event: FileModifiedEvent) -> None:  # type: ignore[override]
        """Handle an in-place write."""
        if not event.is_directory:
            self._forward(event.src_path)

    def on_moved(self, event: FileMovedEvent) -> None:  # type: ignore[override]
        """Handle editors that save by renaming a temp file over the target."""
        if not event.is_directory:
            self._forward(event.dest_path)


class WatchManager:
    """Owns every file subscription, keyed by absolute path.

    Registering a path twice returns the existing handle.  Notifications
    for the same path that arrive within *debounce_seconds* of each other
    are coalesced into a single callback.

    Usage:
        manager = WatchManager()
        manager.register(path, on_change)
        manager.start()
        while running:
            manager.dispatch_pending(timeout=1)
        manager.stop()
    """

    def __init__(self, debounce_seconds: float = 0.2, observer: Any | None = None):
        self._debounce_seconds = max(0.0, debounce_seconds)
        self._observer = observer if observer is not None else Observer()
        self._handles: dict[str, WatchHandle] = {}
        self._handlers: dict[str, _FileEventHandler] = {}
        self._events: queue.Queue[Path] = queue.Queue()
        self._lock = threading.Lock()
        self._started = False

    # ---- subscriptions ----

    def register(self, path: Path, callback: Callable[[Path], None]) -> WatchHandle:
        """Subscribe *callback* to changes of *path* (idempotent)."""
        path = Path(path).resolve()
        key = _normalise(path)
        with self._lock:
            existing = self._handles.get(key)
            if existing is not None:
                logger.debug("Already watching %s", path)
                return existing

            handler = _FileEventHandler(path, self.notify)
            watch = self._observer.schedule(handler, str(path.parent), recursive=False)
            handle = WatchHandle(path=path, callback=callback, watch=watch)
            self._handles[key] = handle
            self._handlers[key] = handler
        logger.info("Watching %s", path)
        return handle

    def unregister(self, path: Path) -> bool:
        """Drop the subscription for *path*; return False if there was none."""
        key = _normalise(Path(path).resolve())
        with self._lock:
            handle = self._handles.pop(key, None)
            handler = self._handlers.pop(key, None)
        if handle is None:
            return False
        # The parent directory watch may be shared with another file
        self._observer.remove_handler_for_watch(handler, handle.watch)
        logger.info("Stopped watching %s", handle.path)
        return True

    def is_watching(self, path: Path) -> bool:
        """Return whether *path* has an active subscription."""
        with self._lock:
            return _normalise(Path(path).resolve()) in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    # ---- events ----

    def notify(self, path: Path) -> None:
        """Queue a change notification for *path* (safe from any thread)."""
        self._events.put(Path(path))

    def dispatch_pending(self, timeout: float | None = None) -> int:
        """Wait up to *timeout* for events and run their callbacks serially.

        Returns the number of callbacks run.
        """
        try:
            first = self._events.get(timeout=timeout) if timeout else self._events.get_nowait()
        except queue.Empty:
            return 0

        # Ordered set of paths seen in this burst
        burst: dict[str, Path] = {_normalise(first): first}
        deadline = time.monotonic() + self._debounce_seconds
        while True:
            remaining = deadline - time.monotonic()
            try:
                if remaining > 0:
                    nxt = self._events.get(timeout=remaining)
                else:
                    nxt = self._events.get_nowait()
            except queue.Empty:
                break
            burst.setdefault(_normalise(nxt), nxt)

        dispatched = 0
        for key in burst:
            with self._lock:
                handle = self._handles.get(key)
            if handle is None:
                continue
            try:
                handle.callback(handle.path)
            except Exception:
                logger.exception("Error in watch callback for %s", handle.path)
            dispatched += 1
        return dispatched

    # ---- lifecycle ----

    def start(self) -> None:
        """Start the watchdog observer thread."""
        if not self._started:
            self._observer.start()
            self._started = True

    def stop(self) -> None:
        """Stop watching and release every subscription."""
        with self._lock:
            self._handles.clear()
            self._handlers.clear()
        if self._started:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._started = False
        logger.info("Watcher stopped.")

    @property
    def is_running(self) -> bool:
        """Return whether the observer is currently active."""
        return self._started and self._observer.is_alive()
