"""
harvester.services.ingest_service — Collection Ingest Pipeline
===============================================================

Pulls every asset of each configured collection from the DAS indexer and
upserts it into the ``assets`` table.

How it works:
    1. Fetch *all* pages of one collection (``IndexerClient.fetch_collection``).
       A failure on any page aborts that collection before anything is
       written, so a half-read collection never replaces good data.
    2. Normalise each item (:func:`parse_indexed_asset`); items without an
       ID are skipped, and a duplicate ID within one fetch keeps the last
       occurrence.
    3. Upsert in a single transaction keyed by asset ID.  A row counts as
       ``updated`` only when a field actually changed, so re-ingesting an
       unchanged collection reports zero inserts and zero updates.
    4. Record every wallet whose holdings may have moved: the new owner of
       each touched asset *and* the previous owner of a transferred one.

Collections are processed sequentially with ``collection_delay`` seconds
between them.  One collection failing never stops the others.

:func:`ingest_assets` writes hand-picked assets (``getAsset``) through the
same upsert, for repairing rows a collection query missed.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import asdict, dataclass, field

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from harvester.config import CollectionConfig, IngestSettings
from harvester.database.engine import get_session
from harvester.database.models import Asset, IdentityLink
from harvester.services.indexer_client import (
    IndexedAsset,
    IndexerClient,
    IndexerError,
    collection_of,
    parse_indexed_asset,
)

logger = logging.getLogger(__name__)

# Max bound parameters per IN (...) lookup
_LOOKUP_CHUNK = 500


@dataclass
class CollectionIngestResult:
    """Counters for one collection's ingest pass."""

    collection: str
    fetched: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped: int = 0
    owners: int = 0
    affected_wallets: set[str] = field(default_factory=set)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def as_dict(self) -> dict:
        data = asdict(self)
        data["affected_wallets"] = sorted(self.affected_wallets)
        return data


# ---------------------------------------------------------------------------
# Upsert
# ---------------------------------------------------------------------------
def _chunks(items: Sequence[str], size: int) -> Iterable[Sequence[str]]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


def _load_existing(session: Session, ids: Sequence[str]) -> dict[str, Asset]:
    existing: dict[str, Asset] = {}
    for chunk in _chunks(ids, _LOOKUP_CHUNK):
        for row in session.scalars(select(Asset).where(Asset.id.in_(chunk))):
            existing[row.id] = row
    return existing


def _load_owner_links(session: Session, wallets: Iterable[str]) -> dict[str, IdentityLink]:
    """First link per wallet, used to attach owner identity opportunistically."""
    wanted = sorted({w for w in wallets if w})
    links: dict[str, IdentityLink] = {}
    for chunk in _chunks(wanted, _LOOKUP_CHUNK):
        rows = session.scalars(
            select(IdentityLink)
            .where(IdentityLink.wallet_address.in_(chunk))
            .order_by(IdentityLink.id)
        )
        for link in rows:
            links.setdefault(link.wallet_address, link)
    return links


def upsert_assets(
    session: Session,
    collection: CollectionConfig,
    assets: Sequence[IndexedAsset],
    result: CollectionIngestResult,
) -> None:
    """Insert or update *assets* inside the caller's transaction.

    ``image_url`` is only overwritten when the indexer supplied one.
    """
    existing = _load_existing(session, [a.id for a in assets])
    links = _load_owner_links(session, (a.owner for a in assets if a.owner))
    owners: set[str] = set()

    for asset in assets:
        link = links.get(asset.owner) if asset.owner else None
        if asset.owner:
            owners.add(asset.owner)
            result.affected_wallets.add(asset.owner)

        row = existing.get(asset.id)
        if row is None:
            session.add(Asset(
                id=asset.id,
                name=asset.name,
                classification=asset.classification,
                collection=collection.address,
                owner_wallet=asset.owner,
                owner_identity_id=link.identity_id if link else None,
                owner_name=link.display_name if link else None,
                image_url=asset.image_url,
                is_special=asset.is_special,
            ))
            result.inserted += 1
            continue

        if row.owner_wallet and row.owner_wallet != asset.owner:
            result.affected_wallets.add(row.owner_wallet)

        values = {
            "name": asset.name,
            "classification": asset.classification,
            "collection": collection.address,
            "owner_wallet": asset.owner,
            "is_special": asset.is_special,
        }
        if asset.image_url:
            values["image_url"] = asset.image_url
        if row.owner_wallet != asset.owner:
            values["owner_identity_id"] = link.identity_id if link else None
            values["owner_name"] = link.display_name if link else None
        elif link is not None and row.owner_identity_id is None:
            values["owner_identity_id"] = link.identity_id
            values["owner_name"] = link.display_name

        changed = False
        for column, value in values.items():
            if getattr(row, column) != value:
                setattr(row, column, value)
                changed = True
        if changed:
            result.updated += 1
        else:
            result.unchanged += 1

    result.owners = len(owners)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def ingest_collection(
    engine: Engine,
    client: IndexerClient,
    collection: CollectionConfig,
    *,
    page_size: int = 1000,
    page_delay: float = 0.5,
) -> CollectionIngestResult:
    """Fetch and upsert one collection.

    Never raises for indexer or database failures: they are logged and
    reported through ``result.error``.
    """
    result = CollectionIngestResult(collection=collection.name)

    try:
        items = client.fetch_collection(
            collection.address, page_size=page_size, page_delay=page_delay,
        )
    except IndexerError as exc:
        logger.error("Ingest of %s aborted: %s", collection.name, exc)
        result.error = str(exc)
        return result

    result.fetched = len(items)
    parsed: dict[str, IndexedAsset] = {}
    for item in items:
        asset = parse_indexed_asset(item, collection)
        if asset is None:
            result.skipped += 1
            continue
        if asset.id in parsed:
            result.skipped += 1
        parsed[asset.id] = asset

    try:
        with get_session(engine) as session:
            upsert_assets(session, collection, list(parsed.values()), result)
    except SQLAlchemyError as exc:
        logger.exception("Ingest of %s failed while writing", collection.name)
        result.error = f"database error: {exc.__class__.__name__}"
        result.inserted = result.updated = result.unchanged = 0
        result.affected_wallets.clear()
        return result

    logger.info(
        "Ingested %s: fetched=%d inserted=%d updated=%d unchanged=%d skipped=%d owners=%d",
        collection.name, result.fetched, result.inserted, result.updated,
        result.unchanged, result.skipped, result.owners,
    )
    return result


def ingest_collections(
    engine: Engine,
    client: IndexerClient,
    collections: Iterable[CollectionConfig],
    *,
    settings: IngestSettings | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> list[CollectionIngestResult]:
    """Ingest *collections* one after another, isolating failures."""
    settings = settings or IngestSettings()
    results: list[CollectionIngestResult] = []
    for index, collection in enumerate(collections):
        if index:
            sleep(settings.collection_delay)
        results.append(ingest_collection(
            engine, client, collection,
            page_size=settings.page_size,
            page_delay=settings.page_delay,
        ))
    return results


def ingest_assets(
    engine: Engine,
    client: IndexerClient,
    collections: Iterable[CollectionConfig],
    asset_ids: Iterable[str],
) -> CollectionIngestResult:
    """Fetch chosen assets one by one (``getAsset``) and upsert them.

    Repairs assets a collection query missed.  Each asset is matched to a
    configured collection by its ``collection`` grouping, then written with
    the same rules as :func:`upsert_assets`.  Unknown IDs, failed lookups and
    assets outside every configured collection are skipped.
    """
    by_address = {c.address: c for c in collections}
    result = CollectionIngestResult(collection="assets")
    grouped: dict[str, dict[str, IndexedAsset]] = {}

    for asset_id in dict.fromkeys(asset_ids):
        try:
            item = client.fetch_asset(asset_id)
        except IndexerError as exc:
            logger.warning("Asset %s lookup failed: %s", asset_id, exc)
            result.skipped += 1
            continue
        if item is None:
            logger.info("Asset %s not found by the indexer", asset_id)
            result.skipped += 1
            continue
        result.fetched += 1

        collection = by_address.get(collection_of(item))
        asset = parse_indexed_asset(item, collection) if collection else None
        if asset is None:
            logger.info("Asset %s is not in a configured collection; skipped", asset_id)
            result.skipped += 1
            continue
        grouped.setdefault(collection.address, {})[asset.id] = asset

    try:
        with get_session(engine) as session:
            for address, assets in grouped.items():
                upsert_assets(session, by_address[address], list(assets.values()), result)
    except SQLAlchemyError as exc:
        logger.exception("Asset ingest failed while writing")
        result.error = f"database error: {exc.__class__.__name__}"
        result.inserted = result.updated = result.unchanged = 0
        result.affected_wallets.clear()
        return result

    result.owners = len({
        a.owner for assets in grouped.values() for a in assets.values() if a.owner
    })
    logger.info(
        "Ingested assets: fetched=%d inserted=%d updated=%d unchanged=%d skipped=%d",
        result.fetched, result.inserted, result.updated, result.unchanged, result.skipped,
    )
    return result


def backfill_owner_identities(engine: Engine) -> dict:
    """Attach identity/display name to assets whose owner wallet is linked.

    Repairs rows ingested before their owner linked a wallet.  Returns
    ``{"checked": N, "updated": M}``.
    """
    checked = 0
    updated = 0
    with get_session(engine) as session:
        rows = session.scalars(
            select(Asset).where(Asset.owner_wallet.is_not(None))
        ).all()
        links = _load_owner_links(session, (r.owner_wallet for r in rows))
        for row in rows:
            checked += 1
            link = links.get(row.owner_wallet)
            if link is None:
                continue
            if (
                row.owner_identity_id != link.identity_id
                or row.owner_name != link.display_name
            ):
                row.owner_identity_id = link.identity_id
                row.owner_name = link.display_name
                updated += 1

    logger.info("Owner backfill: %d/%d assets updated", updated, checked)
    return {"checked": checked, "updated": updated}
