from __future__ import annotations

from llm_path_proxy.headers import (
    EXCLUDED_REQUEST_HEADERS,
    EXCLUDED_RESPONSE_HEADERS,
    filter_request_headers,
    filter_response_headers,
    should_forward_request_header,
    should_forward_response_header,
)


def test_request_deny_set_is_case_insensitive() -> None:
    for name in EXCLUDED_REQUEST_HEADERS:
        assert should_forward_request_header(name) is False
        assert should_forward_request_header(name.upper()) is False
        assert should_forward_request_header(name.title()) is False
    assert should_forward_request_header(b"X-Forwarded-For") is False


def test_request_filter_keeps_application_headers() -> None:
    for name in ("authorization", "x-api-key", "anthropic-version", "content-type", "accept"):
        assert should_forward_request_header(name) is True


def test_response_deny_set_covers_encoding_and_hop_by_hop() -> None:
    for name in ("Content-Encoding", "transfer-encoding", "CONNECTION", "keep-alive"):
        assert should_forward_response_header(name) is False
    for name in ("content-type", "set-cookie", "x-request-id", "retry-after"):
        assert should_forward_response_header(name) is True
    assert all(name == name.lower() for name in EXCLUDED_RESPONSE_HEADERS)


def test_filter_request_headers_preserves_order_and_duplicates() -> None:
    headers = [
        ("Host", "proxy.example"),
        ("X-Custom", "one"),
        ("HOST", "again"),
        ("Authorization", "Bearer X"),
        ("x-custom", "two"),
        ("X-Forwarded-For", "10.0.0.1"),
        ("cf-ray", "abc"),
    ]

    assert filter_request_headers(headers) == [
        ("X-Custom", "one"),
        ("Authorization", "Bearer X"),
        ("x-custom", "two"),
    ]


def test_filter_request_headers_accepts_raw_asgi_pairs() -> None:
    raw = [
        (b"host", b"testserver"),
        (b"authorization", b"Bearer X"),
        (b"x-real-ip", b"10.0.0.2"),
    ]

    assert filter_request_headers(raw) == [(b"authorization", b"Bearer X")]


def test_filters_are_idempotent() -> None:
    headers = [
        ("Connection", "keep-alive"),
        ("Content-Type", "application/json"),
        ("Set-Cookie", "a=1"),
        ("Set-Cookie", "b=2"),
        ("Content-Encoding", "gzip"),
        ("True-Client-IP", "1.2.3.4"),
    ]

    once = filter_request_headers(headers)
    assert filter_request_headers(once) == once

    once = filter_response_headers(headers)
    assert filter_response_headers(once) == once
    assert once == [
        ("Content-Type", "application/json"),
        ("Set-Cookie", "a=1"),
        ("Set-Cookie", "b=2"),
        ("True-Client-IP", "1.2.3.4"),
    ]
