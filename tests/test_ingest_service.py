"""
tests/test_ingest_service.py — Collection ingest pipeline
==========================================================
The indexer is a MagicMock returning canned ``getAssetsByGroup`` items.
"""

from __future__ import annotations

from unittest.mock import MagicMock

from conftest import ALICE, WALLET_A, WALLET_B, add_link, das_item
from sqlalchemy.orm import Session

from harvester.config import CollectionConfig, IngestSettings
from harvester.database.models import Asset
from harvester.services.indexer_client import IndexerError
from harvester.services.ingest_service import (
    backfill_owner_identities,
    ingest_assets,
    ingest_collection,
    ingest_collections,
)

SEEDLINGS = CollectionConfig(name="Gold Seedlings", address="GoldAddr", classification="seedling_gold")
SILVER = CollectionConfig(name="Silver Seedlings", address="SilverAddr", classification="seedling_silver")


def _indexer(*responses):
    """A client whose fetch_collection returns (or raises) each response in turn."""
    client = MagicMock()
    client.fetch_collection.side_effect = list(responses)
    return client


def _asset(engine, asset_id: str) -> Asset | None:
    with Session(engine) as session:
        return session.get(Asset, asset_id)


class TestIngestCollection:
    def test_insert_then_idempotent(self, db_engine):
        items = [das_item("a1", WALLET_A), das_item("a2", WALLET_B)]
        first = ingest_collection(db_engine, _indexer(items), SEEDLINGS)
        assert (first.inserted, first.updated, first.unchanged) == (2, 0, 0)
        assert first.owners == 2

        second = ingest_collection(db_engine, _indexer(items), SEEDLINGS)
        assert (second.inserted, second.updated, second.unchanged) == (0, 0, 2)
        assert _asset(db_engine, "a1").classification == "seedling_gold"

    def test_empty_collection(self, db_engine):
        result = ingest_collection(db_engine, _indexer([]), SEEDLINGS)
        assert result.ok
        assert (result.fetched, result.inserted, result.updated) == (0, 0, 0)

    def test_items_without_id_are_skipped(self, db_engine):
        result = ingest_collection(
            db_engine, _indexer([das_item(None, WALLET_A), das_item("a1", WALLET_A)]), SEEDLINGS,
        )
        assert result.skipped == 1
        assert result.inserted == 1

    def test_duplicate_ids_last_wins(self, db_engine):
        result = ingest_collection(
            db_engine,
            _indexer([das_item("a1", WALLET_A), das_item("a1", WALLET_B)]),
            SEEDLINGS,
        )
        assert result.inserted == 1
        assert result.skipped == 1
        assert _asset(db_engine, "a1").owner_wallet == WALLET_B

    def test_missing_image_keeps_stored_image(self, db_engine):
        ingest_collection(db_engine, _indexer([das_item("a1", WALLET_A, image="https://img/1.png")]), SEEDLINGS)
        result = ingest_collection(db_engine, _indexer([das_item("a1", WALLET_A, image=None)]), SEEDLINGS)
        assert result.unchanged == 1
        assert _asset(db_engine, "a1").image_url == "https://img/1.png"

    def test_transfer_affects_previous_owner(self, db_engine):
        ingest_collection(db_engine, _indexer([das_item("a1", WALLET_A)]), SEEDLINGS)
        result = ingest_collection(db_engine, _indexer([das_item("a1", WALLET_B)]), SEEDLINGS)
        assert result.updated == 1
        assert result.affected_wallets == {WALLET_A, WALLET_B}
        assert _asset(db_engine, "a1").owner_wallet == WALLET_B

    def test_indexer_failure_writes_nothing(self, db_engine):
        result = ingest_collection(db_engine, _indexer(IndexerError("page 3 failed")), SEEDLINGS)
        assert not result.ok
        assert "page 3" in result.error
        with Session(db_engine) as session:
            assert session.query(Asset).count() == 0

    def test_owner_identity_attached_when_linked(self, db_engine):
        with Session(db_engine) as session:
            add_link(session, ALICE, WALLET_A, "alice")
            session.commit()
        ingest_collection(db_engine, _indexer([das_item("a1", WALLET_A)]), SEEDLINGS)
        asset = _asset(db_engine, "a1")
        assert asset.owner_identity_id == ALICE
        assert asset.owner_name == "alice"

    def test_owner_identity_cleared_on_transfer_to_unlinked(self, db_engine):
        with Session(db_engine) as session:
            add_link(session, ALICE, WALLET_A, "alice")
            session.commit()
        ingest_collection(db_engine, _indexer([das_item("a1", WALLET_A)]), SEEDLINGS)
        ingest_collection(db_engine, _indexer([das_item("a1", WALLET_B)]), SEEDLINGS)
        assert _asset(db_engine, "a1").owner_identity_id is None


class TestIngestCollections:
    def test_failure_isolated_to_one_collection(self, db_engine):
        sleeps: list = []
        results = ingest_collections(
            db_engine,
            _indexer(IndexerError("boom"), [das_item("s1", WALLET_A)]),
            [SEEDLINGS, SILVER],
            settings=IngestSettings(collection_delay=2.0),
            sleep=sleeps.append,
        )
        assert [r.ok for r in results] == [False, True]
        assert results[1].inserted == 1
        assert sleeps == [2.0]

    def test_result_dict_sorts_wallets(self, db_engine):
        [result] = ingest_collections(
            db_engine,
            _indexer([das_item("a1", WALLET_B), das_item("a2", WALLET_A)]),
            [SEEDLINGS],
            sleep=lambda _s: None,
        )
        assert result.as_dict()["affected_wallets"] == sorted([WALLET_A, WALLET_B])


class TestIngestAssets:
    def _indexer(self, answers: dict) -> MagicMock:
        client = MagicMock()

        def fetch_asset(asset_id):
            answer = answers.get(asset_id)
            if isinstance(answer, Exception):
                raise answer
            return answer

        client.fetch_asset.side_effect = fetch_asset
        return client

    def test_assets_routed_to_their_collection(self, db_engine):
        client = self._indexer({
            "g1": das_item("g1", WALLET_A, collection="GoldAddr"),
            "s1": das_item("s1", WALLET_B, collection="SilverAddr"),
        })
        result = ingest_assets(db_engine, client, [SEEDLINGS, SILVER], ["g1", "s1", "g1"])

        assert (result.fetched, result.inserted, result.skipped) == (2, 2, 0)
        assert result.affected_wallets == {WALLET_A, WALLET_B}
        assert _asset(db_engine, "g1").classification == "seedling_gold"
        assert _asset(db_engine, "s1").classification == "seedling_silver"
        assert client.fetch_asset.call_count == 2

    def test_unresolvable_assets_skipped(self, db_engine):
        client = self._indexer({
            "boom": IndexerError("down"),
            "other": das_item("other", WALLET_A, collection="ElsewhereAddr"),
            "loose": das_item("loose", WALLET_A),
            "g1": das_item("g1", WALLET_A, collection="GoldAddr"),
        })
        result = ingest_assets(
            db_engine, client, [SEEDLINGS], ["gone", "boom", "other", "loose", "g1"],
        )

        assert result.ok
        assert (result.fetched, result.inserted, result.skipped) == (3, 1, 4)
        assert _asset(db_engine, "other") is None
        assert _asset(db_engine, "g1") is not None

    def test_existing_row_updated_on_transfer(self, db_engine):
        ingest_collection(db_engine, _indexer([das_item("g1", WALLET_A)]), SEEDLINGS)
        client = self._indexer({"g1": das_item("g1", WALLET_B, collection="GoldAddr")})

        result = ingest_assets(db_engine, client, [SEEDLINGS], ["g1"])

        assert result.updated == 1
        assert result.affected_wallets == {WALLET_A, WALLET_B}
        assert _asset(db_engine, "g1").owner_wallet == WALLET_B


class TestBackfillOwners:
    def test_backfill_attaches_late_links(self, db_engine):
        ingest_collection(db_engine, _indexer([das_item("a1", WALLET_A)]), SEEDLINGS)
        with Session(db_engine) as session:
            add_link(session, ALICE, WALLET_A, "alice")
            session.commit()

        assert backfill_owner_identities(db_engine) == {"checked": 1, "updated": 1}
        assert _asset(db_engine, "a1").owner_identity_id == ALICE
        assert backfill_owner_identities(db_engine) == {"checked": 1, "updated": 0}
