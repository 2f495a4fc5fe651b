from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from .api.client import APIError, ApiClient
from .api.services import build_services
from .api.types import ArticleListParams, DigestListParams, SourceListParams
from .config import ConfigError, load_config
from .security.secrets import generate_secret_key
from .utils import configure_logging, json_dumps, log_event

ACCESS_TOKEN_ENV = "DATASCRAP_ACCESS_TOKEN"

LIST_RESOURCES = {
    "sources": SourceListParams,
    "articles": ArticleListParams,
    "digests": DigestListParams,
}


def _cmd_serve(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1

    import uvicorn

    if args.config:
        os.environ["DATASCRAP_CONFIG_PATH"] = args.config
    log_event(logger, logging.INFO, "serve_starting", host=args.host, port=args.port)
    uvicorn.run(
        "datascrap_web.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        proxy_headers=True,
    )
    return 0


def _cmd_check_config(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1
    print(json_dumps(config.describe(), indent=2))
    return 0


def _cmd_list(args: argparse.Namespace, logger: logging.Logger) -> int:
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1

    token = os.environ.get(ACCESS_TOKEN_ENV)
    if not token:
        log_event(logger, logging.ERROR, "missing_access_token", env=ACCESS_TOKEN_ENV)
        return 1

    params = LIST_RESOURCES[args.resource](page=args.page, page_size=args.page_size)
    try:
        page = asyncio.run(_fetch_page(config, args.resource, params, token))
    except APIError as exc:
        print(json_dumps(exc.to_dict(), indent=2), file=sys.stderr)
        return 1
    print(json_dumps(page, indent=2))
    return 0


async def _fetch_page(config, resource: str, params, token: str, transport=None):
    async def provide() -> str:
        return token

    async with ApiClient(
        base_url=config.api.base_url,
        timeout=config.api.timeout_seconds,
        transport=transport,
        token_provider=provide,
    ) as client:
        services = build_services(client)
        service = getattr(services, resource)
        return await service.list(params)


def _cmd_generate_session_key(args: argparse.Namespace, logger: logging.Logger) -> int:
    print(generate_secret_key())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="datascrap-web", description="DataScrap web dashboard")
    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help="Path to config.yml (defaults to DATASCRAP_CONFIG_PATH)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the dashboard under uvicorn")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=3000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve_parser.set_defaults(func=_cmd_serve)

    check_parser = subparsers.add_parser(
        "check-config", help="Print the resolved configuration with secrets masked"
    )
    check_parser.set_defaults(func=_cmd_check_config)

    list_parser = subparsers.add_parser(
        "list", help=f"List a backend resource using the token in {ACCESS_TOKEN_ENV}"
    )
    list_parser.add_argument("resource", choices=sorted(LIST_RESOURCES), help="Resource to list")
    list_parser.add_argument("--page", type=int, default=1, help="Page number")
    list_parser.add_argument("--page-size", type=int, default=50, help="Items per page")
    list_parser.set_defaults(func=_cmd_list)

    key_parser = subparsers.add_parser(
        "generate-session-key", help="Print a new value for DATASCRAP_SESSION_KEY"
    )
    key_parser.set_defaults(func=_cmd_generate_session_key)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = configure_logging("datascrap_web")
    return args.func(args, logger)


if __name__ == "__main__":
    raise SystemExit(main())
