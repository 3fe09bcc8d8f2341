"""Captured request parsing for Template Sync.

Turns the text of a browser "Copy as fetch" capture into a reusable
:class:`RequestTemplate`: the capture with its body replaced by a
placeholder, plus the decoded form parameters of the original body.

The capture is never evaluated.  It is parsed into a method, URL and
headers and later dispatched through a normal HTTP client.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from urllib.parse import quote, unquote_plus

from template_sync.errors import ParseError

logger = logging.getLogger(__name__)

PLACEHOLDER = "%BODY%"
READY_MARKER = "fetch"

# Characters encodeURIComponent leaves alone (besides alphanumerics)
_COMPONENT_SAFE = "-_.!~*'()"

_BODY_FIELD_RE = re.compile(r'"body"\s*:\s*("(?:[^"\\]|\\.)*")')
_FETCH_CALL_RE = re.compile(
    r'^\s*(?:await\s+)?fetch\(\s*("(?:[^"\\]|\\.)*")\s*,\s*(\{.*\})\s*\)\s*;?\s*$',
    re.DOTALL,
)


@dataclass(frozen=True)
class Invocation:
    """A concrete request ready to hand to the HTTP client."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: str | None = None


@dataclass(frozen=True)
class RequestTemplate:
    """Parsed capture: invocation text with a body placeholder + base parameters.

    Never patched in place; a reparse produces a new instance.
    """

    invocation_template: str
    base_parameters: FormParameters
    method: str = "POST"
    url: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    def render(self, body: str) -> Invocation:
        """Substitute an encoded *body* into the placeholder."""
        return parse_invocation(self.invocation_template.replace(PLACEHOLDER, body))


def is_capture_ready(text: str) -> bool:
    """Return True when *text* looks like a captured fetch call."""
    return READY_MARKER in text


class FormParameters(dict):
    """Decoded form parameters that remember how each pair was encoded.

    ``raw`` maps a decoded key to ``(original pair text, decoded value)``.
    Copies share it, so untouched pairs are re-sent exactly as captured.
    """

    def __init__(self, *args: object, raw: dict[str, tuple[str, str]] | None = None, **kwargs: str):
        super().__init__(*args, **kwargs)
        self.raw: dict[str, tuple[str, str]] = dict(raw or {})

    def copy(self) -> FormParameters:
        return FormParameters(self, raw=self.raw)


def decode_parameters(body: str) -> FormParameters:
    """Decode an ``&``-joined ``key=value`` body into an ordered dict.

    Each pair is split on its first ``=`` only, so a value may carry
    encoded or literal ``=`` characters.  Empty segments are dropped and a
    segment without ``=`` maps to an empty value.
    """
    params = FormParameters()
    for pair in body.split("&"):
        if not pair:
            continue
        key, _, value = pair.partition("=")
        decoded_key, decoded_value = unquote_plus(key), unquote_plus(value)
        params[decoded_key] = decoded_value
        params.raw[decoded_key] = (pair, decoded_value)
    return params


def encode_component(value: str) -> str:
    """Percent-encode *value* the way encodeURIComponent does."""
    return quote(value, safe=_COMPONENT_SAFE)


def encode_parameters(params: dict[str, str]) -> str:
    """Encode *params* as an ``&``-joined body, preserving key order.

    Pairs whose value still matches what was captured keep their original
    text (``+`` for spaces, lowercase escapes); the rest are encoded.
    """
    raw = getattr(params, "raw", {})
    pairs = []
    for key, value in params.items():
        original = raw.get(key)
        if original is not None and original[1] == value:
            pairs.append(original[0])
        else:
            pairs.append(f"{encode_component(key)}={encode_component(value)}")
    return "&".join(pairs)


def parse_invocation(text: str) -> Invocation:
    """Parse ``fetch("<url>", {<options>})`` into an :class:`Invocation`.

    Raises :class:`ParseError` if the text is not a fetch call with a JSON
    options object.
    """
    match = _FETCH_CALL_RE.match(text)
    if not match:
        raise ParseError("Capture is not a fetch(url, options) call")
    try:
        url = json.loads(match.group(1))
        options = json.loads(match.group(2))
    except json.JSONDecodeError as exc:
        raise ParseError(f"Capture options are not valid JSON: {exc}") from exc
    if not isinstance(options, dict):
        raise ParseError("Capture options must be an object")

    raw_headers = options.get("headers")
    if raw_headers is None:
        raw_headers = {}
    if not isinstance(raw_headers, dict):
        raise ParseError("Capture headers must be an object")
    headers = {str(k): str(v) for k, v in raw_headers.items() if v is not None}

    referrer = options.get("referrer")
    if referrer and not any(k.lower() == "referer" for k in headers):
        headers["Referer"] = str(referrer)

    body = options.get("body")
    return Invocation(
        method=str(options.get("method") or "GET").upper(),
        url=url,
        headers=headers,
        body=None if body is None else str(body),
    )


def parse(raw_text: str) -> RequestTemplate:
    """Build a :class:`RequestTemplate` from captured request text.

    Raises :class:`ParseError` when no ``"body": "..."`` field is found or
    the surrounding call cannot be dispatched.
    """
    match = _BODY_FIELD_RE.search(raw_text)
    if not match:
        raise ParseError('No "body" field found in capture')

    try:
        original_body = json.loads(match.group(1))
    except json.JSONDecodeError as exc:
        raise ParseError(f"Body field is not a valid string: {exc}") from exc

    invocation_template = (
        raw_text[: match.start(1)] + f'"{PLACEHOLDER}"' + raw_text[match.end(1):]
    )
    if invocation_template.count(PLACEHOLDER) != 1:
        raise ParseError(f"Capture must contain exactly one {PLACEHOLDER} placeholder")

    # Validate the call shape up front so a broken capture never gets installed
    request = parse_invocation(invocation_template)

    base_parameters = decode_parameters(original_body)
    logger.debug(
        "Parsed capture: %s %s (%d base parameters)",
        request.method, request.url, len(base_parameters),
    )
    return RequestTemplate(
        invocation_template=invocation_template,
        base_parameters=base_parameters,
        method=request.method,
        url=request.url,
        headers=request.headers,
    )
