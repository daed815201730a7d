"""
Harvester — NFT Holdings → Discord Roles Reconciliation
=========================================================
Links wallet-held collectibles (regular NFTs and compressed "seedling"
cNFTs) to Discord identities, derives a daily yield and a set of role
entitlements from each identity's holdings, and keeps the live Discord
role state in line with those entitlements.

Package layout::

    harvester/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Tier enumeration, yield rate tables, column maps
    ├── cli.py             # harvester-cli: sync / rebuild / recompute / backfill
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # Assets, links, snapshots, catalog, entitlements
    │   └── seed.py        # Role catalog seeder
    ├── engine/
    │   ├── holdings.py    # Holdings value object + classification parsing
    │   ├── yields.py      # Yield calculator (pure)
    │   ├── eligibility.py # Entitlement resolution (pure)
    │   ├── role_diff.py   # Managed-role diff (pure)
    │   └── catalog.py     # TTL cache for the role catalog
    ├── services/
    │   ├── indexer_client.py      # DAS indexer pagination (httpx)
    │   ├── ingest_service.py      # Collection ingest + upsert
    │   ├── link_service.py        # Wallet link transaction
    │   ├── aggregation_service.py # Holdings snapshot recompute
    │   ├── eligibility_service.py # Entitlement state rebuild
    │   ├── discord_client.py      # Lazily created Discord client provider
    │   ├── role_sync_service.py   # Role synchronizer state machine
    │   ├── holdings_service.py    # Holdings read API
    │   ├── embeds.py              # Holdings embed + plain-text summary
    │   └── sync_service.py        # Bulk sync + manual rebuild entrypoints
    ├── bot/
    │   ├── core.py        # Bot subclass, cog loader
    │   └── cogs/
    │       ├── holdings.py # /holdings, /rebuild-roles, /sync-collections
    │       └── tasks.py    # Periodic bulk sync
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Engine/config/JWT dependencies
        ├── interactions.py # Signed Discord interactions endpoint
        └── routes/        # User + admin REST endpoints
"""

__version__ = "0.1.0"
