"""
Main application controller for Template Sync.

Ties together configuration, logging, file watching, request replay and
the optional preview server, and runs them in the foreground until
interrupted.
"""

import logging
import logging.handlers
import signal
import sys
import threading
from pathlib import Path

from template_sync import __app_name__, __version__
from template_sync.config import Config
from template_sync.orchestrator import FileWatchOrchestrator
from template_sync.preview import PreviewCache, PreviewServer
from template_sync.replay import RequestReplayEngine
from template_sync.watcher import WatchManager

logger = logging.getLogger(__name__)


class App:
    """Central orchestrator for one working directory."""

    def __init__(self, config: Config) -> None:
        self.config = config
        self.preview_cache: PreviewCache | None = None
        self.preview_server: PreviewServer | None = None
        self.watches = WatchManager(debounce_seconds=config.debounce_seconds)

        if config.preview_enabled:
            self.preview_cache = PreviewCache(poll_interval_ms=config.poll_interval_ms)
            self.preview_server = PreviewServer(self.preview_cache, port=config.preview_port)

        self.engine = RequestReplayEngine(
            preview_cache=self.preview_cache,
            artifact_path=config.artifact_path if config.preview_enabled else None,
            save_action=config.save_action,
            preview_action=config.preview_action,
            timeout=config.request_timeout,
        )
        self.orchestrator = FileWatchOrchestrator(
            capture_path=config.capture_path,
            template_path=config.template_path,
            watches=self.watches,
            engine=self.engine,
            write_default_template=config.write_default_template,
        )
        self._stop = threading.Event()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def run(self) -> None:
        """Start watching (and serving) and block until SIGINT/SIGTERM."""
        self._setup_logging()
        logger.info("%s %s starting in %s", __app_name__, __version__, self.config.workdir)

        signal.signal(signal.SIGINT, self._handle_signal)
        signal.signal(signal.SIGTERM, self._handle_signal)

        if self.preview_server is not None:
            try:
                self.preview_server.start()
            except OSError as exc:
                logger.error("Cannot start preview server: %s", exc)
                self.preview_server = None

        self.watches.start()
        try:
            self.orchestrator.start()
            self.orchestrator.run(self._stop)
        finally:
            self.shutdown()

    def stop(self) -> None:
        """Ask the run loop to exit."""
        self._stop.set()

    def shutdown(self) -> None:
        """Release the observer, preview server and HTTP client."""
        logger.info("Shutting down…")
        self.watches.stop()
        if self.preview_server is not None:
            self.preview_server.stop()
        self.engine.close()
        logger.info("Session summary: %s", self.engine.stats.summary())

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _handle_signal(self, sig, frame) -> None:
        self.stop()

    def _setup_logging(self) -> None:
        """Configure rotating file log and stderr handler."""
        log_path: Path = self.config.log_path
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

        # Rotating file handler
        max_bytes = self.config.max_log_size_mb * 1024 * 1024
        fh = logging.handlers.RotatingFileHandler(
            str(log_path),
            maxBytes=max_bytes,
            backupCount=self.config.log_backup_count,
            encoding="utf-8",
        )
        fh.setLevel(level)
        fh.setFormatter(fmt)
        root_logger.addHandler(fh)

        sh = logging.StreamHandler(sys.stderr)
        sh.setLevel(level)
        sh.setFormatter(fmt)
        root_logger.addHandler(sh)

        # httpx logs every request at INFO
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)
