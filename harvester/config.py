"""
harvester.config — YAML Configuration Loader
=============================================

**Why this file exists:**
This module reads ``config.yaml`` for the settings that describe *what* the
engine reconciles: the Discord guild, the collections to ingest, the role
catalog to seed, and the ingest/sync tuning knobs.  Secrets (database URL,
bot token, indexer API key) never live here — they come from ``.env``.

Usage::

    from harvester.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.guild_id)              # 1248728576770048000
    print(cfg.collections[0].name)   # "Gold Seedlings"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from harvester.constants import ALL_HOLDING_KEYS, DEFAULT_COMPRESSED_PREFIX


class MissingConfigurationError(RuntimeError):
    """A credential, config file, or catalog entry required by an entrypoint is absent."""


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class CollectionConfig:
    """One on-chain collection the ingest pipeline pulls from the indexer.

    Either ``classification`` is fixed for every asset in the collection
    (the compressed seedling collections), or the tier is read from the
    ``tier_trait`` attribute of each asset (the main collection).
    """

    name: str
    address: str
    classification: str | None = None
    tier_trait: str | None = None
    special_trait: str | None = None


@dataclass(frozen=True, slots=True)
class RoleSeed:
    """A role catalog row declared in config and upserted by the seeder."""

    role_id: int
    name: str
    display_name: str
    classification: str
    kind: str = "holder"
    color: str | None = None
    emoji_url: str | None = None


@dataclass(frozen=True, slots=True)
class IngestSettings:
    page_size: int = 1000
    page_delay: float = 0.5        # seconds between indexer pages
    collection_delay: float = 1.0  # seconds between collections
    request_timeout: float = 10.0


@dataclass(frozen=True, slots=True)
class HarvesterConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str

    # Discord
    guild_id: int
    admin_role_id: int

    # Dashboard
    dashboard_port: int = 8000

    # Reconciliation
    compressed_prefix: str = DEFAULT_COMPRESSED_PREFIX
    role_catalog_ttl: float = 300.0
    discord_timeout: float = 10.0
    sync_interval_hours: float = 6.0
    ingest: IngestSettings = field(default_factory=IngestSettings)

    collections: tuple[CollectionConfig, ...] = ()
    roles: tuple[RoleSeed, ...] = ()


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> HarvesterConfig:
    """Read *path* and return a :class:`HarvesterConfig` instance.

    Raises
    ------
    MissingConfigurationError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    ValueError
        If a value is out of range (page size, unknown role classification).
    """
    config_path = Path(path)
    if not config_path.exists():
        raise MissingConfigurationError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return parse_config(raw)


def parse_config(raw: dict) -> HarvesterConfig:
    """Build a :class:`HarvesterConfig` from an already-parsed mapping."""
    ingest_raw = raw.get("ingest") or {}
    ingest = IngestSettings(
        page_size=int(ingest_raw.get("page_size", 1000)),
        page_delay=float(ingest_raw.get("page_delay", 0.5)),
        collection_delay=float(ingest_raw.get("collection_delay", 1.0)),
        request_timeout=float(ingest_raw.get("request_timeout", 10.0)),
    )
    if not 1 <= ingest.page_size <= 1000:
        raise ValueError(f"ingest.page_size must be 1..1000, got {ingest.page_size}")

    collections = tuple(
        CollectionConfig(
            name=c["name"],
            address=c["address"],
            classification=c.get("classification"),
            tier_trait=c.get("tier_trait"),
            special_trait=c.get("special_trait"),
        )
        for c in raw.get("collections") or []
    )

    roles: list[RoleSeed] = []
    for r in raw.get("roles") or []:
        if r["classification"] not in ALL_HOLDING_KEYS:
            raise ValueError(
                f"Role {r['name']!r} has unknown classification {r['classification']!r}"
            )
        roles.append(RoleSeed(
            role_id=int(r["role_id"]),
            name=r["name"],
            display_name=r.get("display_name") or r["name"],
            classification=r["classification"],
            kind=r.get("kind", "holder"),
            color=r.get("color"),
            emoji_url=r.get("emoji_url"),
        ))

    return HarvesterConfig(
        community_name=raw["community_name"],
        guild_id=int(raw["guild_id"]),
        admin_role_id=int(raw["admin_role_id"]),
        dashboard_port=int(raw.get("dashboard_port", 8000)),
        compressed_prefix=raw.get("compressed_prefix", DEFAULT_COMPRESSED_PREFIX),
        role_catalog_ttl=float(raw.get("role_catalog_ttl", 300)),
        discord_timeout=float(raw.get("discord_timeout", 10)),
        sync_interval_hours=float(raw.get("sync_interval_hours", 6)),
        ingest=ingest,
        collections=collections,
        roles=tuple(roles),
    )


def require_env(name: str) -> str:
    """Return the env var *name* or raise :class:`MissingConfigurationError`."""
    value = os.getenv(name, "").strip()
    if not value:
        raise MissingConfigurationError(
            f"{name} is not set.  Copy .env.example → .env and fill it in."
        )
    return value
