from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import unquote

from llm_path_proxy.config import BackendRegistry
from llm_path_proxy.errors import InvalidPathError, UnsupportedModelError

ROUTE_PREFIX = "/v1/"


@dataclass(frozen=True, slots=True)
class ModelRoute:
    model: str
    sub_path: str
    origin: str


def split_model_path(path: str) -> tuple[str, str]:
    """Split ``/v1/{model}/{rest}`` into the lowercased model and raw ``rest``.

    ``rest`` keeps its original percent-encoding and has no leading slash. It is
    empty for ``/v1/{model}`` and ``/v1/{model}/``.
    """
    if not path.startswith(ROUTE_PREFIX):
        raise InvalidPathError(path)
    remainder = path[len(ROUTE_PREFIX) :]
    raw_model, _, sub_path = remainder.partition("/")
    model = unquote(raw_model).lower()
    if not model:
        raise InvalidPathError(path)
    return model, sub_path


def resolve_route(path: str, registry: BackendRegistry) -> ModelRoute:
    model, sub_path = split_model_path(path)
    origin = registry.resolve(model)
    if origin is None:
        raise UnsupportedModelError(model)
    return ModelRoute(model=model, sub_path=sub_path, origin=origin)


def build_backend_url(origin: str, sub_path: str, query_string: str) -> str:
    url = f"{origin}/{sub_path}".rstrip("/")
    if query_string:
        if not query_string.startswith("?"):
            query_string = f"?{query_string}"
        url += query_string
    return url
