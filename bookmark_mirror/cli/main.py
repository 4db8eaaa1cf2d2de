"""Command line entry point.

    bookmark-mirror serve            # read API plus background sync
    bookmark-mirror sync-once        # bootstrap if empty, else one diff cycle
    bookmark-mirror rebuild-tags     # recount every tag from the mirror
    bookmark-mirror audit-tags       # compare tag counts with upstream
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING

from bookmark_mirror.config import load_config
from bookmark_mirror.core.logging_utils import setup_json_logging
from bookmark_mirror.di.container import Container
from bookmark_mirror.domain.exceptions import ConfigError, MirrorError

if TYPE_CHECKING:
    from bookmark_mirror.config import AppConfig

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bookmark-mirror",
        description="Mirror an upstream bookmark collection into SQLite and serve it.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the read API and the sync loop")
    serve.add_argument("--host", default=None, help="Bind address (default: API_HOST)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (default: API_PORT)")
    serve.add_argument("--no-sync", action="store_true", help="Serve without syncing")

    subparsers.add_parser("sync-once", help="Run one bootstrap or diff cycle and exit")
    subparsers.add_parser("rebuild-tags", help="Recompute tag reference counts")

    audit = subparsers.add_parser("audit-tags", help="Compare tag counts with upstream")
    audit.add_argument("--repair", action="store_true", help="Rebuild counts when drift is found")
    return parser


async def _sync_once(cfg: AppConfig) -> int:
    container = Container(cfg)
    await container.start()
    try:
        engine = container.engine()
        result = await engine.bootstrap_if_empty()
        if result is None:
            result = await engine.run_cycle()
    finally:
        await container.aclose()

    print(json.dumps(result.model_dump(), indent=2, default=str))
    return 1 if result.aborted else 0


async def _rebuild_tags(cfg: AppConfig) -> int:
    container = Container(cfg)
    container.session_manager().migrate()
    try:
        count = await container.tag_counter().rebuild()
    finally:
        await container.aclose()
    print(f"Rebuilt {count} tag records")
    return 0


async def _audit_tags(cfg: AppConfig, *, repair: bool) -> int:
    container = Container(cfg)
    await container.start()
    try:
        report = await container.auditor().audit(repair=repair)
    finally:
        await container.aclose()

    print(json.dumps(report.model_dump(), indent=2, ensure_ascii=False))
    return 1 if report.has_drift and not report.repaired else 0


def _serve(cfg: AppConfig, args: argparse.Namespace) -> int:
    import uvicorn

    from bookmark_mirror.api.main import create_app

    app = create_app(Container(cfg), run_sync=not args.no_sync)
    uvicorn.run(
        app,
        host=args.host or cfg.runtime.api_host,
        port=args.port or cfg.runtime.api_port,
        log_config=None,
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        cfg = load_config()
    except ConfigError as exc:
        print(f"Configuration error: {exc.message}", file=sys.stderr)
        return 2

    setup_json_logging(cfg.runtime.log_level, cfg.runtime.log_file)

    try:
        if args.command == "serve":
            return _serve(cfg, args)
        if args.command == "sync-once":
            return asyncio.run(_sync_once(cfg))
        if args.command == "rebuild-tags":
            return asyncio.run(_rebuild_tags(cfg))
        return asyncio.run(_audit_tags(cfg, repair=args.repair))
    except MirrorError as exc:
        logger.error("command_failed", extra={"command": args.command, "error": exc.message})
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
