"""Startup and reload sequencing for Template Sync.

Waits for a usable capture file, installs the parsed request template,
then keeps the template file under watch.  A later change to the capture
file re-enters the capture-ready step without touching the template
watch.
"""

from __future__ import annotations

import enum
import logging
import threading
from pathlib import Path

from template_sync import capture
from template_sync.errors import ParseError
from template_sync.replay import RequestReplayEngine
from template_sync.watcher import WatchManager

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = """<?xml version="1.0"?>
<!DOCTYPE pdf PUBLIC "-//big.faceless.org//report" "report-1.1.dtd">
<pdfset>
	<pdf>
		<head>
		</head>
		<body size="Letter">
			<h1>Hello World</h1>
		</body>
	</pdf>
</pdfset>
"""


class OrchestratorState(enum.Enum):
    AWAITING_CAPTURE = "awaiting_capture"
    CAPTURE_READY = "capture_ready"
    WATCHING_TEMPLATE = "watching_template"


class FileWatchOrchestrator:
    """Drives the capture -> template watch state machine.

    All handlers run on the thread that calls :meth:`run` (or
    :meth:`WatchManager.dispatch_pending` directly in tests).
    """

    def __init__(
        self,
        capture_path: Path,
        template_path: Path,
        watches: WatchManager,
        engine: RequestReplayEngine,
        write_default_template: bool = True,
    ):
        self.capture_path = Path(capture_path)
        self.template_path = Path(template_path)
        self._watches = watches
        self._engine = engine
        self._write_default_template = write_default_template
        self.state = OrchestratorState.AWAITING_CAPTURE

    # ---- lifecycle ----

    def start(self) -> None:
        """Create the capture file if needed and check whether it is ready."""
        if not self.capture_path.exists():
            self.capture_path.parent.mkdir(parents=True, exist_ok=True)
            self.capture_path.write_text("", encoding="utf-8")
            logger.info("%s file created", self.capture_path.name)

        self._watches.register(self.capture_path, self.on_capture_changed)

        text = self._read(self.capture_path)
        if text is not None and capture.is_capture_ready(text):
            self._enter_capture_ready(text)
        else:
            logger.info(
                "Waiting for a captured request in %s (paste a 'Copy as fetch' there)",
                self.capture_path,
            )

    def run(self, stop_event: threading.Event, poll_timeout: float = 0.5) -> None:
        """Dispatch watch events serially until *stop_event* is set."""
        while not stop_event.is_set():
            self._watches.dispatch_pending(timeout=poll_timeout)

    # ---- event handlers ----

    def on_capture_changed(self, path: Path) -> None:
        text = self._read(path)
        if text is None:
            return
        if not capture.is_capture_ready(text):
            logger.debug("%s changed but holds no fetch call yet", path.name)
            return
        logger.info("%s has changed", path.name)
        self._enter_capture_ready(text)

    def on_template_changed(self, path: Path) -> None:
        if self._engine.template is None:
            return
        logger.info("%s has changed", path.name)
        content = self._read(path)
        if content is None:
            return
        self._engine.send(content)

    # ---- transitions ----

    def _enter_capture_ready(self, text: str) -> None:
        try:
            template = capture.parse(text)
        except ParseError as exc:
            logger.error("Cannot use %s: %s", self.capture_path.name, exc)
            if self._engine.template is None:
                self.state = OrchestratorState.AWAITING_CAPTURE
            return

        self.state = OrchestratorState.CAPTURE_READY
        self._engine.install(template)
        self._ensure_template()
        self._watches.register(self.template_path, self.on_template_changed)
        self.state = OrchestratorState.WATCHING_TEMPLATE

    def _ensure_template(self) -> None:
        if self.template_path.exists() or not self._write_default_template:
            return
        try:
            self.template_path.parent.mkdir(parents=True, exist_ok=True)
            self.template_path.write_text(DEFAULT_TEMPLATE, encoding="utf-8")
        except OSError as exc:
            logger.error("Could not create %s: %s", self.template_path, exc)
            return
        logger.info("%s created", self.template_path.name)

    @staticmethod
    def _read(path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Could not read %s: %s", path, exc)
            return None
