from __future__ import annotations

from collections.abc import Iterable
from typing import TypeVar

# Connection-level framing plus routing/client-IP metadata added by proxies and CDNs.
EXCLUDED_REQUEST_HEADERS = frozenset(
    {
        "host",
        "connection",
        "content-length",
        "transfer-encoding",
        "upgrade",
        "http2-settings",
        "keep-alive",
        "proxy-connection",
        "proxy-authenticate",
        "proxy-authorization",
        "te",
        "trailer",
        "x-vercel-id",
        "x-vercel-deployment-url",
        "x-vercel-forwarded-for",
        "x-real-ip",
        "x-forwarded-for",
        "x-forwarded-host",
        "x-forwarded-proto",
        "x-forwarded-port",
        "forwarded",
        "cf-connecting-ip",
        "cf-ray",
        "cf-visitor",
        "cf-ipcountry",
        "cdn-loop",
        "true-client-ip",
    }
)

# The relayed body is already decoded by the client and re-framed by the server.
EXCLUDED_RESPONSE_HEADERS = frozenset(
    {
        "connection",
        "keep-alive",
        "proxy-authenticate",
        "proxy-connection",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "content-encoding",
        "content-length",
    }
)

HeaderName = TypeVar("HeaderName", str, bytes)
HeaderItems = list[tuple[HeaderName, HeaderName]]


def _header_name(name: str | bytes) -> str:
    if isinstance(name, bytes):
        return name.decode("latin-1")
    return name


def should_forward_request_header(name: str | bytes) -> bool:
    return _header_name(name).lower() not in EXCLUDED_REQUEST_HEADERS


def should_forward_response_header(name: str | bytes) -> bool:
    return _header_name(name).lower() not in EXCLUDED_RESPONSE_HEADERS


def filter_request_headers(
    headers: Iterable[tuple[HeaderName, HeaderName]],
) -> HeaderItems[HeaderName]:
    """Drop denied request headers; repeated names and order are kept."""
    return [
        (name, value) for name, value in headers if should_forward_request_header(name)
    ]


def filter_response_headers(
    headers: Iterable[tuple[HeaderName, HeaderName]],
) -> HeaderItems[HeaderName]:
    return [
        (name, value)
        for name, value in headers
        if should_forward_response_header(name)
    ]
