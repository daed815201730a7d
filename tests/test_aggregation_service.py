"""
tests/test_aggregation_service.py — Holdings snapshot recompute
================================================================
"""

from __future__ import annotations

from conftest import ALICE, BOB, WALLET_A, WALLET_B, WALLET_C, add_asset, add_link
from sqlalchemy.orm import Session

from harvester.constants import Tier
from harvester.database.engine import get_session
from harvester.database.models import Asset, HoldingsSnapshot
from harvester.engine.holdings import Holdings
from harvester.services.aggregation_service import (
    compute_holdings_from_sources,
    identities_for_wallets,
    recompute_all,
    recompute_holdings,
    recompute_many,
)


def _populate(session: Session) -> None:
    add_link(session, ALICE, WALLET_A, "alice")
    add_link(session, ALICE, WALLET_B, "alice")
    add_link(session, BOB, WALLET_C, "bob")
    add_asset(session, "g1", WALLET_A, "gold")
    add_asset(session, "g2", WALLET_A, "gold")
    add_asset(session, "g3", WALLET_B, "gold", special=True)
    add_asset(session, "s1", WALLET_C, "silver")
    add_asset(session, "c1", WALLET_B, "seedling_gold")
    add_asset(session, "c2", WALLET_B, "seedling_gold")
    add_asset(session, "x1", WALLET_A, "bronze")
    add_asset(session, "u1", None, "gold")
    session.commit()


class TestRecomputeHoldings:
    def test_counts_across_linked_wallets(self, db_session):
        _populate(db_session)
        holdings = recompute_holdings(db_session, ALICE, "alice")
        db_session.commit()

        row = db_session.get(HoldingsSnapshot, ALICE)
        assert row.gold_count == 3
        assert row.og420_count == 1
        assert row.cnft_gold_count == 2
        assert row.total_count == 3
        assert row.cnft_total_count == 2
        assert row.display_name == "alice"
        assert holdings.total == 3

    def test_full_replace_after_transfer(self, db_session):
        _populate(db_session)
        recompute_holdings(db_session, ALICE)
        db_session.get(Asset, "g1").owner_wallet = WALLET_C
        db_session.flush()

        recompute_holdings(db_session, ALICE)
        recompute_holdings(db_session, BOB)
        assert db_session.get(HoldingsSnapshot, ALICE).gold_count == 2
        assert db_session.get(HoldingsSnapshot, BOB).gold_count == 1

    def test_unlinked_identity_gets_zero_snapshot(self, db_session):
        _populate(db_session)
        recompute_holdings(db_session, 424242)
        row = db_session.get(HoldingsSnapshot, 424242)
        assert row.total_count == 0
        assert row.cnft_total_count == 0

    def test_idempotent(self, db_session):
        _populate(db_session)
        first = recompute_holdings(db_session, ALICE)
        second = recompute_holdings(db_session, ALICE)
        assert first == second

    def test_reconstructible_from_sources(self, db_session):
        _populate(db_session)
        recompute_holdings(db_session, ALICE)
        recompute_holdings(db_session, BOB)
        db_session.commit()

        for identity_id in (ALICE, BOB):
            stored = Holdings.from_snapshot(db_session.get(HoldingsSnapshot, identity_id))
            assert stored == compute_holdings_from_sources(db_session, identity_id)

    def test_custom_prefix(self, db_session):
        add_link(db_session, ALICE, WALLET_A)
        add_asset(db_session, "p1", WALLET_A, "sprout_purple")
        db_session.flush()
        holdings = recompute_holdings(db_session, ALICE, prefix="sprout_")
        assert holdings.compressed_count(Tier.PURPLE) == 1
        assert holdings.total == 0


class TestBulkRecompute:
    def test_identities_for_wallets(self, db_session):
        _populate(db_session)
        assert identities_for_wallets(db_session, [WALLET_A, WALLET_B]) == [ALICE]
        assert identities_for_wallets(db_session, [WALLET_C, "unknown"]) == [BOB]
        assert identities_for_wallets(db_session, []) == []

    def test_recompute_many_and_all(self, db_engine):
        with get_session(db_engine) as session:
            _populate(session)

        result = recompute_many(db_engine, [ALICE])
        assert result == {"recomputed": [ALICE], "failed": []}

        result = recompute_all(db_engine)
        assert sorted(result["recomputed"]) == [ALICE, BOB]
        with Session(db_engine) as session:
            assert session.get(HoldingsSnapshot, BOB).silver_count == 1
