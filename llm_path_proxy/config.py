from __future__ import annotations

from collections.abc import Iterator, Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any
from urllib.parse import urlsplit

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from llm_path_proxy.errors import RegistryConfigError

DEFAULT_BACKENDS: Mapping[str, str] = MappingProxyType(
    {
        "grok": "https://api.x.ai",
        "claude": "https://api.anthropic.com",
        "openai": "https://api.openai.com",
        "chatgpt": "https://chatgpt.com",
        "gemini": "https://generativelanguage.googleapis.com",
    }
)


def _normalize_model_id(value: str) -> str:
    normalized = value.strip().lower()
    if not normalized or "/" in normalized:
        raise ValueError(f"Invalid model identifier: '{value}'.")
    return normalized


def _normalize_origin(value: str) -> str:
    normalized = value.strip().rstrip("/")
    parts = urlsplit(normalized)
    if parts.scheme not in {"http", "https"} or not parts.netloc:
        raise ValueError(f"Backend origin must be an absolute http(s) URL: '{value}'.")
    return normalized


class BackendRegistryDocument(BaseModel):
    backends: dict[str, str] = Field(default_factory=dict)

    @field_validator("backends")
    @classmethod
    def _normalize_backends(cls, value: dict[str, str]) -> dict[str, str]:
        normalized: dict[str, str] = {}
        for model_id, origin in value.items():
            normalized[_normalize_model_id(model_id)] = _normalize_origin(origin)
        return normalized


class BackendRegistry(Mapping[str, str]):
    """Read-only model identifier -> backend origin table.

    Keys are lowercase and origins carry no trailing slash. Lookups are
    case-sensitive; callers lowercase the identifier first.
    """

    def __init__(self, backends: Mapping[str, str] | None = None) -> None:
        source = DEFAULT_BACKENDS if backends is None else backends
        try:
            normalized = {
                _normalize_model_id(model_id): _normalize_origin(origin)
                for model_id, origin in source.items()
            }
        except ValueError as exc:
            raise RegistryConfigError(str(exc)) from exc
        self._backends: Mapping[str, str] = MappingProxyType(normalized)

    def resolve(self, model_id: str) -> str | None:
        return self._backends.get(model_id)

    def merged(self, overrides: Mapping[str, str]) -> BackendRegistry:
        return BackendRegistry({**self._backends, **overrides})

    def models(self) -> list[str]:
        return list(self._backends)

    def as_dict(self) -> dict[str, str]:
        return dict(self._backends)

    def __getitem__(self, model_id: str) -> str:
        return self._backends[model_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._backends)

    def __len__(self) -> int:
        return len(self._backends)

    def __repr__(self) -> str:
        return f"BackendRegistry({dict(self._backends)!r})"


def _read_registry_document(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise RegistryConfigError(f"Expected YAML object in '{path}'.")
    return raw


def load_backend_registry(config_path: str | Path | None = None) -> BackendRegistry:
    """Build the registry from the defaults, merged with an optional YAML file."""
    registry = BackendRegistry()
    if config_path is None:
        return registry

    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(
            f"Backend registry not found at '{config_path}'. "
            "Create it or unset BACKEND_REGISTRY_PATH."
        )

    raw = _read_registry_document(path)
    try:
        document = BackendRegistryDocument.model_validate(raw)
    except ValidationError as exc:
        raise RegistryConfigError(
            f"Invalid backend registry in '{config_path}': {exc}"
        ) from exc
    return registry.merged(document.backends)
