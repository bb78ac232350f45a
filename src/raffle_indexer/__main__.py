"""Command-line interface for the raffle indexer.

Usage:
    python -m raffle_indexer index pool --chain-id 84532 --address 0x...
    python -m raffle_indexer reconcile --chain-id 84532
    python -m raffle_indexer orchestrate
    python -m raffle_indexer tick
    python -m raffle_indexer init-db
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from redis.asyncio import Redis

from raffle_indexer.api import IndexerService
from raffle_indexer.artwork import ArtworkResolver
from raffle_indexer.chain.registry import ProviderRegistry
from raffle_indexer.config import Settings, get_settings
from raffle_indexer.indexer import INDEXER_TYPES
from raffle_indexer.storage.database import DatabaseManager

logger = logging.getLogger("raffle_indexer.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="raffle_indexer", description="NFT raffle chain indexer")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_chain(p: argparse.ArgumentParser, *, required: bool = True) -> None:
        p.add_argument("--chain-id", type=int, required=required, help="Chain id to index")

    def add_range(p: argparse.ArgumentParser) -> None:
        p.add_argument("--from-block", type=int, default=None, help="First block (default: sync cursor)")
        p.add_argument("--to-block", default=None, help="Last block or 'latest' (default: latest)")

    index_parser = subparsers.add_parser("index", help="Run one contract indexer")
    index_parser.add_argument("kind", choices=sorted(INDEXER_TYPES), help="Indexer to run")
    add_chain(index_parser)
    index_parser.add_argument("--address", default=None, help="Contract address (required for pool/collection)")
    add_range(index_parser)

    reconcile_parser = subparsers.add_parser("reconcile", help="Reconcile live pool states")
    add_chain(reconcile_parser)
    reconcile_parser.add_argument("--address", default=None, help="Reconcile a single pool")
    reconcile_parser.add_argument("--batch-size", type=int, default=None, help="Pools per run")

    refresh_parser = subparsers.add_parser("refresh-collections", help="Refresh external prize collections")
    add_chain(refresh_parser)
    refresh_parser.add_argument("--address", action="append", default=None, help="Collection address (repeatable)")
    refresh_parser.add_argument("--pool", default=None, help="Refresh the prize collection of one pool")
    refresh_parser.add_argument("--stale", action="store_true", help="Only collections not synced recently")

    orchestrate_parser = subparsers.add_parser("orchestrate", help="Run one full indexing pass")
    add_chain(orchestrate_parser, required=False)
    add_range(orchestrate_parser)

    tick_parser = subparsers.add_parser("tick", help="Run the orchestrator repeatedly with a sleep between runs")
    add_chain(tick_parser, required=False)

    subparsers.add_parser("init-db", help="Create all tables (development only; use alembic in production)")
    return parser


def _range_body(args: argparse.Namespace) -> dict[str, Any]:
    body: dict[str, Any] = {}
    if args.from_block is not None:
        body["fromBlock"] = args.from_block
    if args.to_block is not None:
        body["toBlock"] = args.to_block if args.to_block == "latest" else int(args.to_block)
    return body


async def _dispatch(service: IndexerService, args: argparse.Namespace) -> tuple[int, dict[str, Any]]:
    if args.command == "index":
        body = {"chainId": args.chain_id, "contractAddress": args.address, **_range_body(args)}
        return await service.index(args.kind, body)
    if args.command == "reconcile":
        return await service.reconcile(
            {"chainId": args.chain_id, "contractAddress": args.address, "batchSize": args.batch_size}
        )
    if args.command == "refresh-collections":
        return await service.refresh_collections(
            {
                "chainId": args.chain_id,
                "collectionAddresses": args.address,
                "poolAddress": args.pool,
                "refreshStale": args.stale,
            }
        )
    if args.command == "orchestrate":
        body = _range_body(args)
        if args.chain_id is not None:
            body["chainId"] = args.chain_id
        return await service.orchestrate(body)
    if args.command == "tick":
        return 200, await service.ticker(args.chain_id).run()
    raise ValueError(f"Unknown command {args.command!r}")


async def run(args: argparse.Namespace, settings: Settings) -> int:
    db = DatabaseManager(settings.database.url)
    if args.command == "init-db":
        try:
            await db.init_schema_async()
        finally:
            await db.dispose_async()
        return 0

    redis = Redis.from_url(settings.redis.url) if settings.redis.enabled else None
    registry = ProviderRegistry.from_settings(settings, redis=redis)
    artwork = ArtworkResolver.from_settings(settings.artwork)
    service = IndexerService(
        registry,
        db.session_factory,
        indexer_settings=settings.indexer,
        driver_settings=settings.driver,
        artwork=artwork,
    )
    try:
        status, payload = await _dispatch(service, args)
    finally:
        await artwork.aclose()
        await registry.aclose()
        if redis is not None:
            await redis.aclose()
        await db.dispose_async()

    print(json.dumps(payload, indent=2, default=str))
    return 0 if 200 <= status < 300 else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.debug("Settings: %s", settings.redacted_summary())

    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user, shutting down...")
        return 130


if __name__ == "__main__":
    sys.exit(main())
