from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx
from fastapi import status
from fastapi.responses import JSONResponse, Response, StreamingResponse

from llm_path_proxy.headers import filter_request_headers, filter_response_headers
from llm_path_proxy.routing import ModelRoute, build_backend_url

BODYLESS_METHODS = frozenset({"GET", "HEAD"})
DEFAULT_TIMEOUT_SECONDS = 300.0

logger = logging.getLogger("uvicorn.error")


class RequestState(str, Enum):
    RECEIVED = "received"
    ROUTED = "routed"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED_BEFORE_SEND = "failed_before_send"
    TRUNCATED = "truncated"


@dataclass(frozen=True, slots=True)
class BackendRequest:
    method: str
    url: str
    headers: list[tuple[bytes, bytes]] = field(default_factory=list)
    body: bytes | None = None


@dataclass(slots=True)
class ProxyExchange:
    """Lifecycle of a single proxied request."""

    model: str | None = None
    state: RequestState = RequestState.RECEIVED
    started_at: float = field(default_factory=time.perf_counter)
    bytes_relayed: int = 0

    @property
    def response_started(self) -> bool:
        return self.state in {
            RequestState.STREAMING,
            RequestState.COMPLETED,
            RequestState.TRUNCATED,
        }

    @property
    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000.0

    def fail_before_send(self) -> bool:
        """Mark the exchange failed; False once the response is committed."""
        if self.response_started:
            return False
        self.state = RequestState.FAILED_BEFORE_SEND
        return True


def build_backend_request(
    *,
    method: str,
    route: ModelRoute,
    query_string: str,
    headers: Iterable[tuple[bytes, bytes]],
    body: bytes | None,
) -> BackendRequest:
    normalized_method = method.upper()
    forwarded_body = None
    if normalized_method not in BODYLESS_METHODS and body:
        forwarded_body = body
    return BackendRequest(
        method=normalized_method,
        url=build_backend_url(route.origin, route.sub_path, query_string),
        headers=filter_request_headers(headers),
        body=forwarded_body,
    )


def _request_error_details(exc: httpx.RequestError) -> dict[str, Any]:
    error_repr = repr(exc)
    error_message = str(exc).strip() or error_repr
    error_type = exc.__class__.__name__.strip() or "RequestError"
    details: dict[str, Any] = {
        "error": error_message,
        "error_type": error_type,
        "is_timeout": isinstance(exc, httpx.TimeoutException),
    }
    try:
        request = exc.request
    except RuntimeError:
        request = None
    if isinstance(request, httpx.Request):
        details["request_method"] = request.method
        details["request_url"] = str(request.url)
    return details


def backend_connection_error_response(exc: httpx.RequestError) -> JSONResponse:
    details = _request_error_details(exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "Backend Connection Error",
            "message": details["error"],
            "code": details["error_type"],
        },
    )


def internal_error_response(exc: BaseException) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal Server Error",
            "message": str(exc).strip() or exc.__class__.__name__,
        },
    )


class BackendProxy:
    def __init__(
        self,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        connect_timeout_seconds: float | None = None,
        max_connections: int = 512,
        max_keepalive_connections: int = 128,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        timeout = max(0.1, float(timeout_seconds))
        connect_timeout = (
            max(0.1, float(connect_timeout_seconds))
            if connect_timeout_seconds is not None
            else timeout
        )
        self.timeout_seconds = timeout
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_keepalive_connections,
            ),
            follow_redirects=True,
            transport=transport,
        )

    async def close(self) -> None:
        await self.client.aclose()

    async def execute(
        self,
        backend_request: BackendRequest,
        *,
        exchange: ProxyExchange | None = None,
    ) -> Response:
        """Forward ``backend_request`` and relay the backend response.

        Transport failures before the response is committed become a 502 JSON
        body; failures while building the outbound request become a 500. Once
        headers have been sent, a failure only ends the body early.
        """
        if exchange is None:
            exchange = ProxyExchange(state=RequestState.ROUTED)

        try:
            request = self.client.build_request(
                method=backend_request.method,
                url=backend_request.url,
                headers=backend_request.headers,
                content=backend_request.body,
            )
        except Exception as exc:
            exchange.fail_before_send()
            logger.exception(
                "proxy_internal_error model=%s url=%s error=%s",
                exchange.model,
                backend_request.url,
                exc,
            )
            return internal_error_response(exc)

        exchange.state = RequestState.DISPATCHED
        logger.info(
            "proxy_request method=%s model=%s url=%s body_bytes=%d",
            backend_request.method,
            exchange.model,
            backend_request.url,
            len(backend_request.body or b""),
        )
        try:
            upstream = await self.client.send(request, stream=True)
        except httpx.RequestError as exc:
            exchange.fail_before_send()
            details = _request_error_details(exc)
            logger.warning(
                "proxy_request_error model=%s url=%s error_type=%s is_timeout=%s error=%s",
                exchange.model,
                backend_request.url,
                details["error_type"],
                details["is_timeout"],
                details["error"],
            )
            return backend_connection_error_response(exc)
        except Exception as exc:
            exchange.fail_before_send()
            logger.exception(
                "proxy_internal_error model=%s url=%s error=%s",
                exchange.model,
                backend_request.url,
                exc,
            )
            return internal_error_response(exc)

        logger.info(
            "proxy_response model=%s status=%d connect_ms=%.2f redirects=%d",
            exchange.model,
            upstream.status_code,
            exchange.elapsed_ms,
            len(upstream.history),
        )
        response = StreamingResponse(
            content=self._relay_body(upstream, exchange),
            status_code=upstream.status_code,
        )
        response.raw_headers.extend(
            (name.lower(), value)
            for name, value in filter_response_headers(upstream.headers.raw)
        )
        return response

    @staticmethod
    async def _relay_body(
        upstream: httpx.Response, exchange: ProxyExchange
    ) -> AsyncIterator[bytes]:
        exchange.state = RequestState.STREAMING
        try:
            async for chunk in upstream.aiter_bytes():
                exchange.bytes_relayed += len(chunk)
                yield chunk
            exchange.state = RequestState.COMPLETED
            logger.debug(
                "proxy_stream_complete model=%s bytes=%d elapsed_ms=%.2f",
                exchange.model,
                exchange.bytes_relayed,
                exchange.elapsed_ms,
            )
        except httpx.RequestError as exc:
            exchange.state = RequestState.TRUNCATED
            logger.warning(
                "proxy_upstream_stream_error model=%s bytes=%d error_type=%s error=%s",
                exchange.model,
                exchange.bytes_relayed,
                exc.__class__.__name__,
                str(exc).strip() or repr(exc),
            )
        finally:
            await upstream.aclose()
