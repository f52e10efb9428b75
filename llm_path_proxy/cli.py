from __future__ import annotations

import argparse
from typing import Callable, cast

import yaml

from llm_path_proxy.config import load_backend_registry
from llm_path_proxy.routing import build_backend_url, resolve_route
from llm_path_proxy.settings import get_settings

APP_IMPORT_PATH = "llm_path_proxy.main:app"


def _add_registry_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--registry",
        default=None,
        help="YAML file with extra backends (defaults to BACKEND_REGISTRY_PATH).",
    )


def _registry_path(args: argparse.Namespace) -> str | None:
    if args.registry:
        return str(args.registry)
    return get_settings().backend_registry_path


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        APP_IMPORT_PATH,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=(args.log_level or settings.log_level).lower(),
        server_header=False,
        date_header=False,
    )
    return 0


def cmd_backends(args: argparse.Namespace) -> int:
    registry = load_backend_registry(_registry_path(args))
    print(yaml.safe_dump({"backends": registry.as_dict()}, sort_keys=False).rstrip())
    return 0


def cmd_resolve(args: argparse.Namespace) -> int:
    registry = load_backend_registry(_registry_path(args))
    path, _, query_string = str(args.path).partition("?")
    route = resolve_route(path, registry)
    print(build_backend_url(route.origin, route.sub_path, query_string))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="llm-path-proxy",
        description="Serve and inspect the path-routed LLM API proxy.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_cmd = subparsers.add_parser("serve", help="Run the proxy under uvicorn.")
    serve_cmd.add_argument("--host", default=None)
    serve_cmd.add_argument("--port", type=int, default=None)
    serve_cmd.add_argument("--log-level", default=None)
    serve_cmd.set_defaults(handler=cmd_serve)

    backends_cmd = subparsers.add_parser(
        "backends",
        help="Print the effective model -> backend origin table.",
    )
    _add_registry_argument(backends_cmd)
    backends_cmd.set_defaults(handler=cmd_backends)

    resolve_cmd = subparsers.add_parser(
        "resolve",
        help="Print the backend URL a request path would be forwarded to.",
    )
    resolve_cmd.add_argument("path", help="Request path, e.g. /v1/claude/v1/messages?x=1")
    _add_registry_argument(resolve_cmd)
    resolve_cmd.set_defaults(handler=cmd_resolve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = cast(Callable[[argparse.Namespace], int], args.handler)

    try:
        return handler(args)
    except Exception as exc:
        parser.exit(2, f"error: {exc}\n")


if __name__ == "__main__":
    raise SystemExit(main())
