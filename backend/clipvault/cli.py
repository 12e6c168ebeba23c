#!/usr/bin/env python3
"""
ClipVault CLI - Thin entrypoint for operator commands.

Commands:
- serve:   run the HTTP API (uvicorn)
- catalog: print the media catalog as JSON

Design Principles:
==================
- CLI is a dispatcher only
- Settings resolved once (env → CLIPVAULT_CONFIG file → defaults)
- Surface errors verbatim
- Exit non-zero on failure

Exit Codes:
===========
- 0: Success
- 1: Configuration error
- 2: Catalog error
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .catalog.store import JsonCatalogStore
from .config import ConfigError, Settings, load_settings
from .media.errors import StorageFailed
from .media.models import MediaRecord

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_CATALOG_ERROR = 2

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


def cmd_serve(settings: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    from .main import create_app

    host = args.host or settings.host
    port = args.port or settings.port

    app = create_app(settings=settings)
    print(f"Starting ClipVault on {host}:{port} (policy={settings.normalize_policy.value})")
    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())
    return EXIT_OK


def cmd_catalog(settings: Settings, args: argparse.Namespace) -> int:
    store = JsonCatalogStore(settings.catalog_path, MediaRecord)
    try:
        records = store.list()
    except StorageFailed as e:
        print(f"ERROR: {e.details}", file=sys.stderr)
        return EXIT_CATALOG_ERROR

    print(json.dumps(
        [r.model_dump(by_alias=True, mode="json") for r in records],
        indent=2,
    ))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clipvault",
        description="ClipVault short video ingestion service",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="JSON config file (overrides CLIPVAULT_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(handler=cmd_serve)

    catalog = subparsers.add_parser("catalog", help="Print the media catalog")
    catalog.set_defaults(handler=cmd_catalog)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(config_file=args.config)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    _configure_logging(settings.log_level)
    return args.handler(settings, args)


if __name__ == "__main__":
    sys.exit(main())
