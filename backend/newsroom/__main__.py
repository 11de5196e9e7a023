"""Command line entry point: `python -m newsroom <command>`."""

import argparse
import asyncio
import json
import logging
import sys

from newsroom.config import Settings, get_settings
from newsroom.logging_config import configure_logging

logger = logging.getLogger("newsroom")


async def _run(settings: Settings, force: bool) -> int:
    from newsroom.db import async_session, init_db
    from newsroom.services.pipeline import open_pipeline

    await init_db()
    async with open_pipeline(settings, async_session) as pipeline:
        stats = await pipeline.run(force=force)
    print(json.dumps(stats.model_dump(mode="json"), indent=2))
    return 0


async def _sync_sources(path: str) -> int:
    from newsroom.db import async_session, init_db
    from newsroom.services.source_service import SourceService, load_sources_file

    entries = load_sources_file(path)
    await init_db()
    async with async_session() as session:
        report = await SourceService(session).sync_from_config(entries)
    print(json.dumps(report.model_dump(), indent=2))
    return 0


async def _cleanup() -> int:
    from newsroom.db import async_session
    from newsroom.services.maintenance import archive_expired_clusters

    archived = await archive_expired_clusters(async_session)
    print(json.dumps({"archived": archived}))
    return 0


def _serve(host: str, port: int) -> int:
    import uvicorn

    uvicorn.run("newsroom.main:app", host=host, port=port)
    return 0


async def _init_db() -> int:
    from newsroom.db import init_db

    await init_db()
    logger.info("Database tables initialized")
    return 0


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newsroom", description="News clustering and enrichment pipeline")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="run the pipeline once")
    run.add_argument("--force", action="store_true", help="ignore the minimum run interval")

    sync = commands.add_parser("sync-sources", help="load feed sources from YAML")
    sync.add_argument("--file", default=settings.sources_file, help="sources YAML (default: %(default)s)")

    commands.add_parser("cleanup", help="archive expired clusters")
    commands.add_parser("init-db", help="create database tables")
    serve = commands.add_parser("serve", help="serve the HTTP API")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    args = build_parser(settings).parse_args(argv)
    configure_logging(settings.log_level)

    if args.command == "run":
        return asyncio.run(_run(settings, args.force))
    if args.command == "sync-sources":
        return asyncio.run(_sync_sources(args.file))
    if args.command == "cleanup":
        return asyncio.run(_cleanup())
    if args.command == "serve":
        return _serve(args.host, args.port)
    return asyncio.run(_init_db())


if __name__ == "__main__":
    sys.exit(main())
