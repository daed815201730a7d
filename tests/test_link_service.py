"""
tests/test_link_service.py — Wallet link transaction
=====================================================
"""

from __future__ import annotations

from unittest.mock import patch

import pytest
from conftest import ALICE, WALLET_A, add_asset
from sqlalchemy import select
from sqlalchemy.orm import Session

from harvester.database.engine import get_session
from harvester.database.models import Asset, HoldingsSnapshot, IdentityLink
from harvester.services.link_service import (
    InvalidWalletError,
    link_wallet,
    validate_wallet,
)


class TestValidateWallet:
    @pytest.mark.parametrize("wallet", [
        "",
        "short",
        "0" * 44,                       # 0 is not base58
        "O" + WALLET_A[1:],             # O is not base58
        WALLET_A + "abc",               # too long
    ])
    def test_rejects(self, wallet):
        with pytest.raises(InvalidWalletError):
            validate_wallet(wallet)

    def test_strips_whitespace(self):
        assert validate_wallet(f"  {WALLET_A} ") == WALLET_A


class TestLinkWallet:
    def test_link_recomputes_snapshot(self, db_engine):
        with get_session(db_engine) as session:
            add_asset(session, "g1", WALLET_A, "gold")
            add_asset(session, "c1", WALLET_A, "seedling_silver")

        result = link_wallet(db_engine, ALICE, WALLET_A, "alice")
        assert result.created is True
        assert result.assets_attached == 2
        assert result.holdings.total == 1
        assert result.holdings.compressed_total == 1

        with Session(db_engine) as session:
            snap = session.get(HoldingsSnapshot, ALICE)
            assert snap.gold_count == 1
            assert snap.cnft_silver_count == 1
            assert snap.display_name == "alice"
            assert session.get(Asset, "g1").owner_identity_id == ALICE

    def test_relink_refreshes_name(self, db_engine):
        link_wallet(db_engine, ALICE, WALLET_A, "alice")
        result = link_wallet(db_engine, ALICE, WALLET_A, "alice2")
        assert result.created is False
        with Session(db_engine) as session:
            assert session.query(IdentityLink).count() == 1
            assert session.get(HoldingsSnapshot, ALICE).display_name == "alice2"

    def test_relink_without_name_keeps_stored_name(self, db_engine):
        with get_session(db_engine) as session:
            add_asset(session, "g1", WALLET_A, "gold")
        link_wallet(db_engine, ALICE, WALLET_A, "alice")

        link_wallet(db_engine, ALICE, WALLET_A)

        with Session(db_engine) as session:
            assert session.get(Asset, "g1").owner_name == "alice"
            assert session.scalar(select(IdentityLink.display_name)) == "alice"
            assert session.get(HoldingsSnapshot, ALICE).display_name == "alice"

    def test_recompute_failure_rolls_back_link(self, db_engine):
        with patch(
            "harvester.services.link_service.recompute_holdings",
            side_effect=RuntimeError("db went away"),
        ):
            with pytest.raises(RuntimeError):
                link_wallet(db_engine, ALICE, WALLET_A, "alice")

        with Session(db_engine) as session:
            assert session.query(IdentityLink).count() == 0
            assert session.get(HoldingsSnapshot, ALICE) is None

    def test_invalid_wallet_writes_nothing(self, db_engine):
        with pytest.raises(InvalidWalletError):
            link_wallet(db_engine, ALICE, "not-a-wallet")
        with Session(db_engine) as session:
            assert session.query(IdentityLink).count() == 0
