"""
harvester.cli — Operator command line (``harvester-cli``)
==========================================================

Subcommands::

    harvester-cli sync                   # ingest → recompute → role sync
    harvester-cli rebuild <identity_id>  # recompute one identity, sync once
    harvester-cli recompute-all          # rebuild every holdings snapshot
    harvester-cli ingest-assets <id...>  # re-ingest chosen assets, recompute owners
    harvester-cli backfill-owners        # re-attach owner identity to assets
    harvester-cli seed-roles             # upsert the role catalog from config

Each prints a JSON summary on stdout.  Exit status is 0 on success, 1 when
the run completed with failures, and 2 on missing configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from dotenv import load_dotenv

from harvester.config import HarvesterConfig, MissingConfigurationError, load_config
from harvester.database.engine import create_db_engine, init_db
from harvester.database.seed import seed_role_catalog
from harvester.services.aggregation_service import recompute_all
from harvester.services.eligibility_service import rebuild_many
from harvester.services.indexer_client import IndexerClient
from harvester.services.ingest_service import backfill_owner_identities
from harvester.services.role_sync_service import SyncContext
from harvester.services.sync_service import rebuild_identity, repair_assets, run_bulk_sync

logger = logging.getLogger("harvester")


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="harvester-cli", description="Harvester holdings & role maintenance",
    )
    parser.add_argument("--config", default="config.yaml", help="Path to config YAML")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sync", help="Ingest all collections and sync affected roles")
    rebuild = subparsers.add_parser("rebuild", help="Recompute one identity and sync its roles")
    rebuild.add_argument("identity_id", type=int)
    subparsers.add_parser("recompute-all", help="Rebuild every snapshot and entitlement set")
    ingest = subparsers.add_parser(
        "ingest-assets", help="Re-ingest chosen assets by ID and recompute their owners",
    )
    ingest.add_argument("asset_ids", nargs="+", metavar="asset_id")
    subparsers.add_parser("backfill-owners", help="Attach linked identities to owned assets")
    subparsers.add_parser("seed-roles", help="Upsert the role catalog from config")
    return parser.parse_args(argv)


async def _with_context(cfg: HarvesterConfig, engine, coro_factory):
    ctx = SyncContext.from_config(cfg, engine)
    try:
        return await coro_factory(ctx)
    finally:
        await ctx.discord.close()


def _run(args: argparse.Namespace) -> tuple[dict, bool]:
    cfg = load_config(args.config)
    engine = create_db_engine()
    init_db(engine)

    if args.command == "seed-roles":
        return seed_role_catalog(engine, cfg.roles), True

    if args.command == "ingest-assets":
        with IndexerClient.from_env(timeout=cfg.ingest.request_timeout) as indexer:
            summary = repair_assets(
                engine, indexer, cfg.collections, args.asset_ids,
                prefix=cfg.compressed_prefix,
            )
        ok = (
            summary["ingest"]["error"] is None
            and not summary["recompute_failed"]
            and not summary["entitlements_failed"]
        )
        return summary, ok

    if args.command == "backfill-owners":
        return backfill_owner_identities(engine), True

    if args.command == "recompute-all":
        recomputed = recompute_all(engine, prefix=cfg.compressed_prefix)
        rebuilt = rebuild_many(engine, recomputed["recomputed"])
        ok = not recomputed["failed"] and not rebuilt["failed"]
        return {
            "recomputed": len(recomputed["recomputed"]),
            "recompute_failed": recomputed["failed"],
            "entitlements_rebuilt": len(rebuilt["rebuilt"]),
            "entitlements_failed": rebuilt["failed"],
        }, ok

    if args.command == "rebuild":
        result = asyncio.run(_with_context(
            cfg, engine, lambda ctx: rebuild_identity(ctx, args.identity_id),
        ))
        return result.as_dict(), result.success

    report = asyncio.run(_with_context(
        cfg, engine, lambda ctx: run_bulk_sync(ctx, cfg.collections),
    ))
    ok = not report.failed_collections and not report.roles_failed
    return report.as_dict(), ok


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )
    load_dotenv()

    try:
        summary, ok = _run(args)
    except MissingConfigurationError as exc:
        logger.critical("%s", exc)
        return 2

    print(json.dumps(summary, indent=2, default=str))
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
