from __future__ import annotations

INVALID_PATH_MESSAGE = "Invalid URL format. Expected: /v1/{model}"


class ProxyError(Exception):
    pass


class RoutingError(ProxyError):
    """Request rejected before any backend is contacted."""

    status_code = 400

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InvalidPathError(RoutingError):
    status_code = 400

    def __init__(self, path: str) -> None:
        super().__init__(INVALID_PATH_MESSAGE)
        self.path = path


class UnsupportedModelError(RoutingError):
    status_code = 404

    def __init__(self, model: str) -> None:
        super().__init__(f"Unsupported model: {model}")
        self.model = model


class RegistryConfigError(ProxyError, ValueError):
    pass


class RequestBodyTooLargeError(ProxyError):
    def __init__(self, limit_bytes: int) -> None:
        super().__init__(f"Request body exceeds the limit of {limit_bytes} bytes.")
        self.limit_bytes = limit_bytes
