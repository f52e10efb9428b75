from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from llm_path_proxy.config import BackendRegistry, load_backend_registry
from llm_path_proxy.errors import RequestBodyTooLargeError, RoutingError
from llm_path_proxy.proxy import (
    BackendProxy,
    ProxyExchange,
    RequestState,
    build_backend_request,
    internal_error_response,
)
from llm_path_proxy.routing import resolve_route
from llm_path_proxy.settings import get_settings

app = FastAPI(
    title="LLM Path Proxy",
    description="Path-routed reverse proxy for LLM provider APIs.",
    version="0.1.0",
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

logger = logging.getLogger("uvicorn.error")


def _raw_request_path(request: Request) -> str:
    raw_path = request.scope.get("raw_path")
    if isinstance(raw_path, bytes) and raw_path:
        return raw_path.decode("latin-1")
    return request.url.path


def _raw_query_string(request: Request) -> str:
    query_string = request.scope.get("query_string", b"")
    if isinstance(query_string, bytes):
        return query_string.decode("latin-1")
    return str(query_string)


async def _read_body(request: Request, limit_bytes: int) -> bytes:
    declared = request.headers.get("content-length", "").strip()
    if declared.isdigit() and int(declared) > limit_bytes:
        raise RequestBodyTooLargeError(limit_bytes)

    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit_bytes:
            raise RequestBodyTooLargeError(limit_bytes)
        chunks.append(chunk)
    return b"".join(chunks)


@app.on_event("startup")
async def startup() -> None:
    settings = get_settings()
    registry = load_backend_registry(settings.backend_registry_path)
    app.state.settings = settings
    app.state.backend_registry = registry
    app.state.backend_proxy = BackendProxy(
        timeout_seconds=settings.backend_timeout_seconds,
        connect_timeout_seconds=settings.backend_connect_timeout_seconds,
        max_connections=settings.max_connections,
        max_keepalive_connections=settings.max_keepalive_connections,
    )
    logger.info(
        (
            "startup complete backends=%s registry_path=%s timeout_s=%.1f "
            "max_request_body_bytes=%d"
        ),
        ",".join(registry.models()),
        settings.backend_registry_path,
        settings.backend_timeout_seconds,
        settings.max_request_body_bytes,
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    proxy: BackendProxy | None = getattr(app.state, "backend_proxy", None)
    if proxy is not None:
        await proxy.close()
    logger.info("shutdown complete")


async def proxy_request(request: Request) -> Response:
    exchange = ProxyExchange()
    registry: BackendRegistry = app.state.backend_registry
    proxy: BackendProxy = app.state.backend_proxy
    limit_bytes = int(app.state.settings.max_request_body_bytes)

    try:
        body = await _read_body(request, limit_bytes)
    except RequestBodyTooLargeError as exc:
        logger.info(
            "proxy_request_too_large method=%s limit_bytes=%d",
            request.method,
            exc.limit_bytes,
        )
        return JSONResponse(
            status_code=413,
            content={"error": "Payload Too Large", "message": str(exc)},
        )

    path = _raw_request_path(request)
    try:
        route = resolve_route(path, registry)
        exchange.model = route.model
        exchange.state = RequestState.ROUTED
        backend_request = build_backend_request(
            method=request.method,
            route=route,
            query_string=_raw_query_string(request),
            headers=request.headers.raw,
            body=body,
        )
    except RoutingError as exc:
        logger.info(
            "proxy_route_rejected method=%s path=%s status=%d reason=%s",
            request.method,
            path,
            exc.status_code,
            exc.detail,
        )
        return PlainTextResponse(exc.detail, status_code=exc.status_code)
    except Exception as exc:
        exchange.fail_before_send()
        logger.exception("proxy_internal_error method=%s path=%s", request.method, path)
        return internal_error_response(exc)

    return await proxy.execute(backend_request, exchange=exchange)


# No method restriction: every verb, including extension methods, is proxied.
app.add_route("/{full_path:path}", proxy_request, include_in_schema=False)
