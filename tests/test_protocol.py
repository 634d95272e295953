from __future__ import annotations

import pytest

from botdrop_ui.errors import ArgumentError, InputFormatError
from botdrop_ui.ipc.protocol import decode_response, encode_request, parse_request, render_response


@pytest.mark.parametrize("raw", [None, ""])
def test_missing_request(raw: str | None) -> None:
    with pytest.raises(ArgumentError, match="Missing request JSON argument"):
        parse_request(raw)


@pytest.mark.parametrize("raw", ["{not json", "[1,", "NaN", '{"a": Infinity}'])
def test_malformed_request(raw: str) -> None:
    with pytest.raises(InputFormatError, match="Invalid JSON"):
        parse_request(raw)


@pytest.mark.parametrize(
    "raw,expected",
    [
        ('{"op":"ping"}', {"op": "ping"}),
        ("[1, 2]", [1, 2]),
        ("42", 42),
        ('"tree"', "tree"),
        ("null", None),
        (" true ", True),
    ],
)
def test_any_json_value_is_a_request(raw: str, expected: object) -> None:
    assert parse_request(raw) == expected


def test_encode_request_is_compact_and_keeps_key_order() -> None:
    payload = {"op": "find", "selector": {"text": "Réglages"}, "maxNodes": 300}
    assert encode_request(payload) == '{"op":"find","selector":{"text":"Réglages"},"maxNodes":300}'.encode("utf-8")


def test_render_json_reply() -> None:
    assert render_response(b'{"ok":true}') == '{\n  "ok": true\n}\n'


def test_render_nested_reply_keeps_server_key_order() -> None:
    out = render_response(b'{"ok":true,"nodes":[{"id":"n1","bounds":[0,0,10,10]}],"count":1}')
    assert out.splitlines()[1] == '  "ok": true,'
    assert out.endswith('  "count": 1\n}\n')


def test_render_raw_reply() -> None:
    assert render_response(b"pong") == "pong\n"


def test_render_empty_reply() -> None:
    assert render_response(b"") == "\n"


def test_render_invalid_utf8_is_replaced() -> None:
    assert render_response(b"ab\xffcd") == "ab�cd\n"


def test_render_keeps_non_ascii() -> None:
    assert render_response('{"text":"Настройки"}'.encode("utf-8")) == '{\n  "text": "Настройки"\n}\n'


def test_server_error_shape() -> None:
    resp = decode_response(b'{"ok":false,"error":"SERVICE_DISABLED","message":"accessibility service not connected"}')
    assert resp.is_json
    assert resp.error == ("SERVICE_DISABLED", "accessibility service not connected")


@pytest.mark.parametrize("data", [b'{"ok":true}', b"pong", b"[false]", b"null"])
def test_non_error_replies(data: bytes) -> None:
    assert decode_response(data).error is None


def test_render_escapes_lone_surrogates() -> None:
    assert render_response(b'{"t":"\\ud800","u":"\xc3\xa9"}') == '{\n  "t": "\\ud800",\n  "u": "\xe9"\n}\n'
    assert render_response(b'["\\udfff"]') == '[\n  "\\udfff"\n]\n'


def test_encode_request_escapes_lone_surrogates() -> None:
    payload = parse_request('{"t":"\\ud800"}')
    assert encode_request(payload) == b'{"t":"\\ud800"}'
    # Undecodable argv bytes arrive as surrogateescape characters.
    assert encode_request({"t": "a\udcffb"}) == b'{"t":"a\\udcffb"}'


def test_encode_request_keeps_surrogate_pairs_as_text() -> None:
    assert encode_request(parse_request('"\\ud83d\\ude00"')) == '"\U0001f600"'.encode("utf-8")


@pytest.mark.parametrize("raw", ["1e400", '{"x":-1e999}'])
def test_overflowing_numbers_are_malformed(raw: str) -> None:
    with pytest.raises(InputFormatError, match="out of range"):
        parse_request(raw)


def test_overflowing_number_reply_is_printed_raw() -> None:
    assert render_response(b"[1e400]") == "[1e400]\n"
