"""
Unit tests for captured request parsing.

Tests cover:
- Body decoding and encoding
- Placeholder substitution
- Structured request extraction (method, URL, headers)
- Parse errors for unusable captures
"""

import pytest

from template_sync.capture import (
    PLACEHOLDER,
    Invocation,
    decode_parameters,
    encode_component,
    encode_parameters,
    is_capture_ready,
    parse,
    parse_invocation,
)
from template_sync.errors import ParseError


class TestBodyCodec:
    """Tests for decode_parameters / encode_parameters."""

    def test_decode_preserves_order(self, capture_body: str) -> None:
        params = decode_parameters(capture_body)

        assert list(params) == [
            "action", "id", "name", "template", "source-template", "wysiwyg-template",
        ]
        assert params["name"] == "Invoice PDF"
        assert params["template"] == "<pdf>old</pdf>"

    def test_reencoding_reproduces_original_body(self, capture_body: str) -> None:
        assert encode_parameters(decode_parameters(capture_body)) == capture_body

    def test_split_on_first_equals_only(self) -> None:
        params = decode_parameters("expr=a=b=c&body=template%3Dold")

        assert params == {"expr": "a=b=c", "body": "template=old"}

    def test_pair_without_equals_has_empty_value(self) -> None:
        assert decode_parameters("flag&x=1") == {"flag": "", "x": "1"}

    def test_empty_segments_are_skipped(self) -> None:
        assert decode_parameters("a=1&&b=2&") == {"a": "1", "b": "2"}

    def test_plus_decodes_to_space(self) -> None:
        assert decode_parameters("name=My+Template") == {"name": "My Template"}

    def test_encode_matches_uri_component_rules(self) -> None:
        assert encode_component("a b+c/d?e=f&g") == "a%20b%2Bc%2Fd%3Fe%3Df%26g"
        assert encode_component("-_.!~*'()") == "-_.!~*'()"
        assert encode_component("é") == "%C3%A9"

    @pytest.mark.parametrize("body", [
        "action=SAVE_EDIT&name=Invoice+PDF",
        "t=%3cpdf%3e",
        "a+b=c+d&e=%c3%a9",
    ])
    def test_untouched_body_round_trips_exactly(self, body: str) -> None:
        assert encode_parameters(decode_parameters(body)) == body

    def test_plus_body_still_decodes_to_spaces(self) -> None:
        params = decode_parameters("action=SAVE_EDIT&name=Invoice+PDF")

        assert params == {"action": "SAVE_EDIT", "name": "Invoice PDF"}

    def test_changed_value_is_reencoded(self) -> None:
        params = decode_parameters("name=Invoice+PDF&t=%3cpdf%3e")
        params["t"] = "<new>"

        assert encode_parameters(params) == "name=Invoice+PDF&t=%3Cnew%3E"


class TestParse:
    """Tests for parse()."""

    def test_body_is_replaced_by_placeholder(self, capture_text: str) -> None:
        template = parse(capture_text)

        assert template.invocation_template.count(PLACEHOLDER) == 1
        assert f'"body": "{PLACEHOLDER}"' in template.invocation_template
        assert "SAVE_EDIT" not in template.invocation_template

    def test_base_parameters_decoded(self, capture_text: str) -> None:
        template = parse(capture_text)

        assert template.base_parameters["action"] == "SAVE_EDIT"
        assert template.base_parameters["id"] == "105"

    def test_request_structure(self, capture_text: str) -> None:
        template = parse(capture_text)

        assert template.method == "POST"
        assert template.url.endswith("/pdftemplate.nl")
        assert template.headers["x-requested-with"] == "XMLHttpRequest"
        assert template.headers["Referer"].endswith("?id=105")

    def test_render_substitutes_body(self, capture_text: str) -> None:
        template = parse(capture_text)

        invocation = template.render("a=1&b=2")

        assert isinstance(invocation, Invocation)
        assert invocation.body == "a=1&b=2"
        assert invocation.method == "POST"
        assert invocation.url == template.url

    def test_await_prefix_accepted(self, make_capture) -> None:
        template = parse("await " + make_capture("a=1"))

        assert template.base_parameters == {"a": "1"}

    def test_missing_body_field(self) -> None:
        with pytest.raises(ParseError, match="body"):
            parse('fetch("https://example.com/", {"method": "GET"});')

    def test_null_body_is_not_a_body_field(self) -> None:
        with pytest.raises(ParseError):
            parse('fetch("https://example.com/", {"body": null, "method": "GET"});')

    def test_not_a_fetch_call(self) -> None:
        with pytest.raises(ParseError, match="fetch"):
            parse('curl https://example.com --data "body": "a=1"')

    def test_options_must_be_json(self) -> None:
        with pytest.raises(ParseError, match="JSON"):
            parse("fetch(\"https://example.com/\", {\"body\": \"a=1\", method: 'POST'});")

    def test_existing_placeholder_rejected(self, make_capture) -> None:
        text = make_capture("a=1").replace('"mode": "cors"', f'"mode": "{PLACEHOLDER}"')

        with pytest.raises(ParseError, match="exactly one"):
            parse(text)


class TestParseInvocation:
    """Tests for parse_invocation()."""

    def test_method_defaults_to_get(self) -> None:
        invocation = parse_invocation('fetch("https://example.com/x", {})')

        assert invocation.method == "GET"
        assert invocation.body is None

    def test_explicit_referer_header_wins(self) -> None:
        invocation = parse_invocation(
            'fetch("https://example.com/", {"headers": {"Referer": "a"}, "referrer": "b"})'
        )

        assert invocation.headers == {"Referer": "a"}

    def test_headers_must_be_object(self) -> None:
        with pytest.raises(ParseError, match="headers"):
            parse_invocation('fetch("https://example.com/", {"headers": []})')


class TestReadiness:
    """Tests for is_capture_ready()."""

    def test_empty_file_not_ready(self) -> None:
        assert not is_capture_ready("")

    def test_fetch_marker_ready(self, capture_text: str) -> None:
        assert is_capture_ready(capture_text)
