"""
harvester.services.sync_service — Bulk Sync & Manual Rebuild
==============================================================

The composite entrypoints shared by the bot, the API and the CLI.

**Bulk sync** (:func:`run_bulk_sync`)::

    ingest every collection
        → identities owning an affected wallet (old and new owners)
        → recompute their snapshots
        → rebuild their entitlements
        → sync their roles, one identity at a time

**Manual rebuild** (:func:`rebuild_identity`) runs the last three steps for
a single identity, regardless of whether anything was ingested.

**Asset repair** (:func:`repair_assets`) ingests hand-picked assets and
recomputes their owners without touching Discord.

Preconditions (role catalog present, indexer key, bot token) are checked
before anything is written; a missing one raises
:class:`MissingConfigurationError`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from sqlalchemy import Engine, select

from harvester.config import CollectionConfig, MissingConfigurationError
from harvester.constants import DEFAULT_COMPRESSED_PREFIX
from harvester.database.engine import get_session, run_db
from harvester.database.models import IdentityLink
from harvester.engine.eligibility import EntitlementSet
from harvester.engine.holdings import Holdings
from harvester.services.aggregation_service import (
    identities_for_wallets,
    recompute_holdings,
    recompute_many,
)
from harvester.services.eligibility_service import rebuild_entitlements, rebuild_many
from harvester.services.indexer_client import IndexerClient
from harvester.services.ingest_service import (
    CollectionIngestResult,
    ingest_assets,
    ingest_collections,
)
from harvester.services.role_sync_service import (
    RoleSyncResult,
    SyncContext,
    sync_identity_roles,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Manual rebuild
# ---------------------------------------------------------------------------
@dataclass
class RebuildResult:
    identity_id: int
    linked: bool
    holdings: Holdings | None = None
    entitlements: EntitlementSet | None = None
    synced: RoleSyncResult | None = None

    @property
    def success(self) -> bool:
        return self.synced is not None and self.synced.success

    def as_dict(self) -> dict:
        return {
            "identity_id": str(self.identity_id),
            "linked": self.linked,
            "holdings": self.holdings.as_dict() if self.holdings else None,
            "entitlements": sorted(self.entitlements.names) if self.entitlements else None,
            "synced": self.synced.as_dict() if self.synced else None,
            "success": self.success,
        }


def _recompute_identity(
    engine: Engine, identity_id: int, prefix: str,
) -> tuple[bool, Holdings | None, EntitlementSet | None]:
    with get_session(engine) as session:
        linked = session.scalar(
            select(IdentityLink.id).where(IdentityLink.identity_id == identity_id).limit(1)
        ) is not None
        if not linked:
            return False, None, None
        holdings = recompute_holdings(session, identity_id, prefix=prefix)
        entitlements = rebuild_entitlements(session, identity_id)
        return True, holdings, entitlements


async def rebuild_identity(ctx: SyncContext, identity_id: int) -> RebuildResult:
    """Recompute snapshot and entitlements for one identity, then sync once.

    An identity with no linked wallet is skipped (nothing recomputed, no
    Discord call).
    """
    linked, holdings, entitlements = await run_db(
        _recompute_identity, ctx.engine, identity_id, ctx.compressed_prefix,
    )
    result = RebuildResult(
        identity_id=identity_id, linked=linked,
        holdings=holdings, entitlements=entitlements,
    )
    if not linked:
        logger.info("Rebuild skipped: %d has no linked wallet", identity_id)
        return result

    result.synced = await sync_identity_roles(ctx, identity_id)
    logger.info(
        "Rebuild for %d: entitlements=%s synced=%s",
        identity_id, sorted(entitlements.names) if entitlements else None,
        result.synced.state.value,
    )
    return result


# ---------------------------------------------------------------------------
# Asset repair
# ---------------------------------------------------------------------------
def repair_assets(
    engine: Engine,
    indexer: IndexerClient,
    collections: Sequence[CollectionConfig],
    asset_ids: Iterable[str],
    *,
    prefix: str = DEFAULT_COMPRESSED_PREFIX,
) -> dict:
    """Ingest hand-picked assets, then recompute and rebuild their owners.

    No role sync: the next bulk pass or a manual rebuild applies the roles.
    """
    ingest = ingest_assets(engine, indexer, collections, asset_ids)
    identities = affected_identities(engine, ingest.affected_wallets)
    recomputed = recompute_many(engine, identities, prefix=prefix)
    rebuilt = rebuild_many(engine, recomputed["recomputed"])
    return {
        "ingest": ingest.as_dict(),
        "identities": [str(i) for i in identities],
        "recompute_failed": recomputed["failed"],
        "entitlements_rebuilt": len(rebuilt["rebuilt"]),
        "entitlements_failed": rebuilt["failed"],
    }


# ---------------------------------------------------------------------------
# Bulk sync
# ---------------------------------------------------------------------------
@dataclass
class BulkSyncReport:
    collections: list[CollectionIngestResult] = field(default_factory=list)
    identities: list[int] = field(default_factory=list)
    recompute_failed: list[int] = field(default_factory=list)
    without_entitlements: list[int] = field(default_factory=list)
    roles_synced: int = 0
    roles_failed: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None

    def _sum(self, attr: str) -> int:
        return sum(getattr(r, attr) for r in self.collections)

    @property
    def inserted(self) -> int:
        return self._sum("inserted")

    @property
    def updated(self) -> int:
        return self._sum("updated")

    @property
    def unchanged(self) -> int:
        return self._sum("unchanged")

    @property
    def skipped(self) -> int:
        return self._sum("skipped")

    @property
    def owners(self) -> int:
        return self._sum("owners")

    @property
    def failed_collections(self) -> list[str]:
        return [r.collection for r in self.collections if not r.ok]

    def as_dict(self) -> dict:
        return {
            "collections": [r.as_dict() for r in self.collections],
            "failed_collections": self.failed_collections,
            "inserted": self.inserted,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "owners": self.owners,
            "identities_recomputed": len(self.identities) - len(self.recompute_failed),
            "recompute_failed": len(self.recompute_failed),
            "without_entitlements": len(self.without_entitlements),
            "roles_synced": self.roles_synced,
            "roles_failed": self.roles_failed,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


def affected_identities(engine: Engine, wallets: Iterable[str]) -> list[int]:
    with get_session(engine) as session:
        return identities_for_wallets(session, wallets)


def _ingest(ctx: SyncContext, indexer: IndexerClient, collections: Sequence[CollectionConfig]):
    with indexer:
        return ingest_collections(ctx.engine, indexer, collections, settings=ctx.ingest)


async def run_bulk_sync(
    ctx: SyncContext, collections: Sequence[CollectionConfig],
) -> BulkSyncReport:
    """Ingest → recompute → rebuild → sync for every affected identity.

    Raises
    ------
    MissingConfigurationError
        Empty role catalog, no indexer key, or no bot token.  Raised before
        any write.
    """
    catalog = await run_db(ctx.catalog.get)
    if not catalog:
        raise MissingConfigurationError(
            "Role catalog is empty.  Run `harvester-cli seed-roles` first."
        )
    if not ctx.discord.has_credentials:
        raise MissingConfigurationError("DISCORD_TOKEN is not set.")
    if ctx.indexer_factory is not None:
        indexer = ctx.indexer_factory()
    else:
        indexer = IndexerClient.from_env(timeout=ctx.ingest.request_timeout)

    report = BulkSyncReport()
    report.collections = await run_db(_ingest, ctx, indexer, collections)

    wallets: set[str] = set()
    for result in report.collections:
        wallets |= result.affected_wallets
    report.identities = await run_db(affected_identities, ctx.engine, wallets)

    recomputed = await run_db(
        recompute_many, ctx.engine, report.identities, prefix=ctx.compressed_prefix,
    )
    report.recompute_failed = recomputed["failed"]

    rebuilt = await run_db(rebuild_many, ctx.engine, recomputed["recomputed"])
    report.without_entitlements = rebuilt["missing"] + rebuilt["failed"]

    for identity_id in rebuilt["rebuilt"]:
        outcome = await sync_identity_roles(ctx, identity_id)
        if outcome.success:
            report.roles_synced += 1
        else:
            report.roles_failed += 1

    report.finished_at = datetime.now(UTC)
    logger.info(
        "Bulk sync complete: collections=%d failed=%s inserted=%d updated=%d "
        "identities=%d synced=%d sync_failed=%d",
        len(report.collections), report.failed_collections, report.inserted,
        report.updated, len(report.identities), report.roles_synced, report.roles_failed,
    )
    return report
