"""
tests/conftest.py — Shared Test Fixtures
=========================================
"""

from __future__ import annotations

import asyncio
import os

# ---------------------------------------------------------------------------
# harvester.api.deps validates JWT_SECRET at import time.
# ---------------------------------------------------------------------------
_TEST_JWT_SECRET = "test-secret-for-pytest-only-" + "x" * 40  # > 32 chars
os.environ.setdefault("JWT_SECRET", _TEST_JWT_SECRET)

import pytest  # noqa: E402
from sqlalchemy import Engine, create_engine  # noqa: E402

# ---------------------------------------------------------------------------
# Make JSONB columns work in SQLite for testing.
# ---------------------------------------------------------------------------
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from harvester.config import HarvesterConfig, RoleSeed  # noqa: E402
from harvester.database.models import (  # noqa: E402
    Asset,
    Base,
    IdentityLink,
)
from harvester.database.seed import seed_role_catalog  # noqa: E402

_jsonb_sqlite_registered = False


def _register_jsonb_sqlite_compat():
    """Register SQLite compilation for PG JSONB type (idempotent).

    Also maps BigInteger → INTEGER so autoincrement works on SQLite.
    """
    global _jsonb_sqlite_registered
    if _jsonb_sqlite_registered:
        return
    from sqlalchemy import BigInteger
    from sqlalchemy.ext.compiler import compiles

    @compiles(PG_JSONB, "sqlite")
    def _compile_jsonb_as_text(type_, compiler, **kw):
        return "TEXT"

    @compiles(BigInteger, "sqlite")
    def _compile_bigint_as_integer(type_, compiler, **kw):
        return "INTEGER"

    _jsonb_sqlite_registered = True


_register_jsonb_sqlite_compat()


# Wallets are valid base58, 44 chars
WALLET_A = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"
WALLET_B = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
WALLET_C = "HN7cABqLq46Es1jh92dQQisAq662SmxELLLsHHe4YWrH"

ALICE = 1001
BOB = 1002

ROLE_GOLD = 5001
ROLE_SILVER = 5002
ROLE_OG = 5003
ROLE_CNFT_GOLD = 5011
ROLE_CNFT_SILVER = 5012

CATALOG = (
    RoleSeed(role_id=ROLE_GOLD, name="gold_holder", display_name="Gold", classification="gold"),
    RoleSeed(role_id=ROLE_SILVER, name="silver_holder", display_name="Silver", classification="silver"),
    RoleSeed(role_id=ROLE_OG, name="og420_holder", display_name="OG420", classification="og420"),
    RoleSeed(
        role_id=ROLE_CNFT_GOLD, name="gold_harvester", display_name="Gold Harvester",
        classification="cnft_gold", kind="harvester",
    ),
    RoleSeed(
        role_id=ROLE_CNFT_SILVER, name="silver_harvester", display_name="Silver Harvester",
        classification="cnft_silver", kind="harvester",
    ),
)


def run(coro):
    """Drive a coroutine on a fresh event loop (no pytest-asyncio)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all Harvester tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    from sqlalchemy.pool import StaticPool

    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def db_session(db_engine: Engine):
    """Provide a transactional session that rolls back after each test."""
    with Session(db_engine) as session:
        yield session
        session.rollback()


@pytest.fixture
def seeded_catalog(db_engine: Engine):
    seed_role_catalog(db_engine, CATALOG)
    return CATALOG


@pytest.fixture
def cfg() -> HarvesterConfig:
    return HarvesterConfig(community_name="Test", guild_id=42, admin_role_id=7)


def add_asset(
    session: Session,
    asset_id: str,
    owner: str | None,
    classification: str | None,
    *,
    special: bool = False,
    name: str | None = None,
) -> Asset:
    asset = Asset(
        id=asset_id,
        name=name or f"Asset {asset_id}",
        classification=classification,
        owner_wallet=owner,
        is_special=special,
    )
    session.add(asset)
    return asset


def add_link(session: Session, identity_id: int, wallet: str, name: str = "tester") -> None:
    session.add(IdentityLink(identity_id=identity_id, wallet_address=wallet, display_name=name))


def das_item(
    asset_id: str | None,
    owner: str | None,
    *,
    name: str | None = "Plant",
    image: str | None = "https://img/x.png",
    attributes: list[dict] | None = None,
    leaf_id: int | None = None,
    collection: str | None = None,
) -> dict:
    """Build an indexer item the way ``getAssetsByGroup``/``getAsset`` return it."""
    item: dict = {
        "ownership": {"owner": owner},
        "content": {
            "metadata": {"name": name, "attributes": attributes or []},
            "links": {"image": image} if image else {},
            "files": [],
        },
    }
    if asset_id is not None:
        item["id"] = asset_id
    if leaf_id is not None:
        item["compression"] = {"leaf_id": leaf_id}
    if collection is not None:
        item["grouping"] = [{"group_key": "collection", "group_value": collection}]
    return item
