from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import httpx
from fastapi.testclient import TestClient

from llm_path_proxy.main import app
from llm_path_proxy.proxy import BackendProxy
from llm_path_proxy.settings import get_settings

TEST_REGISTRY_PATH = Path(__file__).resolve().parent / "fixtures" / "backends.yaml"


def set_default_test_env(monkeypatch: Any) -> None:
    monkeypatch.delenv("BACKEND_REGISTRY_PATH", raising=False)
    monkeypatch.delenv("MAX_REQUEST_BODY_BYTES", raising=False)


def build_test_client(monkeypatch: Any, **env: Any) -> TestClient:
    set_default_test_env(monkeypatch)
    for key, value in env.items():
        monkeypatch.setenv(key, str(value))
    get_settings.cache_clear()
    return TestClient(app)


def install_mock_backend(
    client: TestClient, handler: Callable[[httpx.Request], Any]
) -> BackendProxy:
    """Swap the running app's proxy for one backed by ``handler``.

    Call inside an active ``TestClient`` context, after startup has run. The
    proxy created at startup is closed on the client's event loop first.
    """
    previous: BackendProxy | None = getattr(app.state, "backend_proxy", None)
    if previous is not None:
        client.portal.call(previous.close)
    proxy = BackendProxy(transport=httpx.MockTransport(handler))
    app.state.backend_proxy = proxy
    return proxy
