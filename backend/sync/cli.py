"""
Operator CLI for the sync core.

    python -m sync.cli init-db
    python -m sync.cli league 128
    python -m sync.cli all
    python -m sync.cli date 2025-08-16
    python -m sync.cli live
    python -m sync.cli match 1035037 --league 39

Each command prints one JSON line per outcome and exits non-zero if any
provider call failed.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from datetime import date, datetime, timezone
from typing import Optional

from shared.config import Settings, get_settings
from shared.leagues import LeagueRegistry
from shared.utils.cache import ResponseCache
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, setup_logging
from shared.utils.redis_manager import RedisManager

from ingest.api_football import ApiFootballClient
from sync.engine import SyncEngine, SyncOutcome
from sync.policy import local_today

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="matchday-sync", description="Matchday sync operations")
    parser.add_argument("--no-cache", action="store_true", help="Skip Redis (no cache invalidation)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create missing tables")

    league = sub.add_parser("league", help="Bring one league up to date")
    league.add_argument("league_id", type=int)
    league.add_argument("--force", action="store_true", help="Resync even when fresh")

    sub.add_parser("all", help="Bring every active league up to date")

    day = sub.add_parser("date", help="Sync every configured fixture of a local day")
    day.add_argument("day", nargs="?", type=date.fromisoformat, default=None)

    sub.add_parser("live", help="Sync the fixtures in play right now")

    match = sub.add_parser("match", help="Re-fetch one fixture with events")
    match.add_argument("fixture_id", type=int)
    match.add_argument("--league", type=int, required=True)
    return parser


def _emit(outcome: SyncOutcome) -> None:
    print(json.dumps(outcome.as_dict(), default=str))


async def run(args: argparse.Namespace, settings: Settings) -> int:
    db = DatabaseManager(settings)
    await db.connect()

    if args.command == "init-db":
        try:
            await db.create_schema()
        finally:
            await db.disconnect()
        return 0

    redis: Optional[RedisManager] = None
    cache: Optional[ResponseCache] = None
    if not args.no_cache:
        redis = RedisManager(settings)
        await redis.connect()
        cache = ResponseCache(redis.client)

    client = ApiFootballClient.from_settings(settings, redis=redis)
    await client.start()
    engine = SyncEngine(db, client, LeagueRegistry(settings=settings), cache=cache, settings=settings)

    outcomes: list[SyncOutcome] = []
    try:
        if args.command == "league":
            config = engine.leagues.get(args.league_id)
            if config is None:
                logger.error("league_not_configured", league=args.league_id)
                return 2
            if args.force:
                league = await engine.ensure_league(config)
                report = await engine.resync_league(config, league.id)
                outcomes.append(SyncOutcome(target=f"league:{config.external_id}", report=report))
            else:
                outcomes.append(await engine.ensure_league_fresh(config))
        elif args.command == "all":
            outcomes.extend(await engine.sync_all())
        elif args.command == "date":
            day = args.day or local_today(datetime.now(timezone.utc), settings.timezone_offset_hours)
            outcomes.append(await engine.sync_date(day))
        elif args.command == "live":
            outcomes.append(await engine.sync_live())
        elif args.command == "match":
            outcomes.append(await engine.refresh_match(args.fixture_id, args.league))
    finally:
        await client.close()
        if redis:
            await redis.disconnect()
        await db.disconnect()

    for outcome in outcomes:
        _emit(outcome)
    return 1 if any(o.failed for o in outcomes) else 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    setup_logging("sync-cli", settings=settings)
    logger.info("sync_cli_started", command=args.command)
    return asyncio.run(run(args, settings))


if __name__ == "__main__":
    sys.exit(main())
