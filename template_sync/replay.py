"""
Request replay engine for Template Sync.

Merges fresh template content into the captured base parameters,
dispatches the captured request through httpx, and classifies the
response as a transport failure, an application-level failure reported
inside a JSON envelope, or a success.  On success it can issue a second,
non-persisting preview request and hand the rendered bytes to the
preview cache.
Nothing is retried: every failure ends that send and is only logged.
"""

import enum
import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

import httpx

from template_sync.capture import Invocation, RequestTemplate, encode_parameters
from template_sync.errors import ApplicationError, TransportError
from template_sync.preview import PreviewCache

logger = logging.getLogger(__name__)

TEMPLATE_KEY = "template"
CLEARED_KEYS = ("source-template", "wysiwyg-template")
ERROR_FIELD = "errorMessage"


class Outcome(enum.Enum):
    SUCCESS = "success"
    TRANSPORT_ERROR = "transport_error"
    APPLICATION_ERROR = "application_error"


def build_parameters(base: dict[str, str], template_content: str) -> dict[str, str]:
    """Return a copy of *base* with the render-time keys forcibly overwritten."""
    params = base.copy()
    params[TEMPLATE_KEY] = template_content
    for key in CLEARED_KEYS:
        params[key] = ""
    return params


def swap_action(params: dict[str, str], save_action: str, preview_action: str) -> dict[str, str] | None:
    """Replace every *save_action* value with *preview_action*.

    Returns None when no value carries the save marker.
    """
    if save_action not in params.values():
        return None
    swapped = params.copy()
    for key, value in params.items():
        if value == save_action:
            swapped[key] = preview_action
    return swapped


def classify_response(status_code: int, content_type: str, body: bytes) -> Outcome:
    """
    Classify a completed HTTP exchange.

    A 2xx answer is a success unless it is a JSON envelope whose
    ``errorMessage`` field is non-empty.  Bodies that are not JSON count
    as success.
    """
    if not 200 <= status_code < 300:
        return Outcome.TRANSPORT_ERROR
    if _error_message(content_type, body):
        return Outcome.APPLICATION_ERROR
    return Outcome.SUCCESS


def _error_message(content_type: str, body: bytes) -> str:
    """Extract the remote ``errorMessage`` from a JSON body, if any."""
    stripped = body.lstrip()
    if "json" not in content_type.lower() and not stripped.startswith(b"{"):
        return ""
    try:
        envelope = json.loads(stripped.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return ""
    if not isinstance(envelope, dict):
        return ""
    message = envelope.get(ERROR_FIELD)
    return str(message) if message else ""


@dataclass
class SendRecord:
    """Record of a single template send."""
    outcome: Outcome | None = None
    status_code: int | None = None
    error: str = ""
    size_bytes: int = 0
    started: float = 0.0
    finished: float = 0.0
    preview_stored: bool = False

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def duration(self) -> float:
        if self.finished and self.started:
            return self.finished - self.started
        return 0.0

    @property
    def timestamp_str(self) -> str:
        """Human-readable timestamp of when the send finished."""
        if self.finished:
            return datetime.fromtimestamp(self.finished).strftime("%Y-%m-%d %H:%M:%S")
        return ""


@dataclass
class SendStats:
    """Aggregated send statistics."""
    total_sent: int = 0
    total_transport_errors: int = 0
    total_application_errors: int = 0
    total_previews: int = 0
    history: list[SendRecord] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def record(self, rec: SendRecord) -> None:
        with self._lock:
            self.history.append(rec)
            if rec.outcome is Outcome.SUCCESS:
                self.total_sent += 1
            elif rec.outcome is Outcome.APPLICATION_ERROR:
                self.total_application_errors += 1
            else:
                self.total_transport_errors += 1
            if rec.preview_stored:
                self.total_previews += 1
            # Keep last 1000 records
            if len(self.history) > 1000:
                self.history = self.history[-1000:]

    def summary(self) -> str:
        with self._lock:
            return (
                f"{self.total_sent} sent, {self.total_application_errors} rejected, "
                f"{self.total_transport_errors} failed, {self.total_previews} previews"
            )


class RequestReplayEngine:
    """
    Replays the captured request with the current template content.

    Parameters
    ----------
    client : httpx.Client, optional
        HTTP client used for every call; one is created if omitted.
    preview_cache : PreviewCache, optional
        When given, a successful send is followed by a preview fetch.
    artifact_path : Path, optional
        File the rendered preview bytes are also written to.
    save_action, preview_action : str
        Parameter value swapped to turn the save request into a preview.
    on_send_complete : callable, optional
        Callback invoked after each send with the SendRecord.
    timeout : float
        Timeout in seconds for the client created when none is given.
    """

    def __init__(
        self,
        client: httpx.Client | None = None,
        preview_cache: PreviewCache | None = None,
        artifact_path: Path | None = None,
        save_action: str = "SAVE_EDIT",
        preview_action: str = "PREVIEW",
        on_send_complete: Callable[[SendRecord], None] | None = None,
        timeout: float = 30.0,
    ):
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._preview_cache = preview_cache
        self._artifact_path = artifact_path
        self._save_action = save_action
        self._preview_action = preview_action
        self._on_send_complete = on_send_complete
        self._template: RequestTemplate | None = None
        self.stats = SendStats()

    @property
    def template(self) -> RequestTemplate | None:
        return self._template

    def install(self, template: RequestTemplate) -> None:
        """Replace the request template wholesale."""
        self._template = template
        logger.info("Request template installed (%s %s)", template.method, template.url)

    @property
    def preview_enabled(self) -> bool:
        return self._preview_cache is not None

    def close(self) -> None:
        self._client.close()

    # ---- sending ----

    def build_invocation(self, params: dict[str, str]) -> Invocation:
        """Encode *params* and substitute them into the template."""
        if self._template is None:
            raise RuntimeError("No request template installed")
        return self._template.render(encode_parameters(params))

    def send(self, template_content: str) -> SendRecord:
        """Push *template_content* to the remote service."""
        if self._template is None:
            raise RuntimeError("No request template installed")

        rec = SendRecord(started=time.time())
        params = build_parameters(self._template.base_parameters, template_content)
        try:
            response = self._dispatch(self.build_invocation(params))
            rec.status_code = response.status_code
            rec.size_bytes = len(response.content)
            self._check(response)
            rec.outcome = Outcome.SUCCESS
            logger.info("Template sent successfully (%d)", response.status_code)
        except TransportError as exc:
            rec.outcome = Outcome.TRANSPORT_ERROR
            rec.error = str(exc)
            logger.error("Error sending template: %s", exc)
        except ApplicationError as exc:
            rec.outcome = Outcome.APPLICATION_ERROR
            rec.error = exc.remote_message
            logger.error("Template rejected: %s", exc.remote_message)
        rec.finished = time.time()

        if rec.success and self._preview_cache is not None:
            rec.preview_stored = self._fetch_preview(params)

        self.stats.record(rec)
        if self._on_send_complete:
            try:
                self._on_send_complete(rec)
            except Exception:
                logger.exception("Error in on_send_complete callback")
        return rec

    def _dispatch(self, invocation: Invocation) -> httpx.Response:
        try:
            return self._client.request(
                invocation.method,
                invocation.url,
                headers=invocation.headers,
                content=invocation.body,
            )
        except httpx.HTTPError as exc:
            raise TransportError(f"{type(exc).__name__}: {exc}") from exc

    @staticmethod
    def _check(response: httpx.Response) -> None:
        """Raise the error matching the response classification."""
        content_type = response.headers.get("content-type", "")
        outcome = classify_response(response.status_code, content_type, response.content)
        if outcome is Outcome.TRANSPORT_ERROR:
            raise TransportError(f"HTTP {response.status_code}", response.status_code)
        if outcome is Outcome.APPLICATION_ERROR:
            raise ApplicationError(
                _error_message(content_type, response.content), response.status_code
            )

    def _fetch_preview(self, params: dict[str, str]) -> bool:
        """Request a rendering of *params* without saving; store the bytes."""
        preview_params = swap_action(params, self._save_action, self._preview_action)
        if preview_params is None:
            logger.warning(
                "No '%s' value in the captured request; skipping preview.",
                self._save_action,
            )
            return False

        try:
            response = self._dispatch(self.build_invocation(preview_params))
            self._check(response)
        except TransportError as exc:
            logger.error("Error fetching preview: %s", exc)
            return False
        except ApplicationError as exc:
            logger.error("Preview rejected: %s", exc.remote_message)
            return False

        if self._artifact_path is not None:
            try:
                self._artifact_path.write_bytes(response.content)
                logger.debug("Wrote %d bytes to %s", len(response.content), self._artifact_path)
            except OSError as exc:
                logger.error("Could not write %s: %s", self._artifact_path, exc)
        artifact = self._preview_cache.store(response.content)
        logger.info("Preview updated (%d bytes)", len(artifact.data))
        return True
