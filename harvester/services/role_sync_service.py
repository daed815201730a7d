"""
harvester.services.role_sync_service — Role Synchronizer
=========================================================

Brings one member's live Discord roles in line with their stored
entitlement set, touching only the roles the catalog manages.

State machine (one run per identity)::

    Idle → CatalogLoaded → IdentityResolved → Diffed → Applied → Done
      └──────────┴───────────────┴──────────────┴─────────┴──→ Failed

* No ``entitlement_states`` row → ``Failed`` immediately.  A missing row
  means "unknown", and acting on it would strip every managed role.
* Login, guild or member lookup failure → ``Failed``.  A connection-level
  error (also during add/remove) disposes an owned client so the next run
  logs in again.
* At most one add call and one remove call.  Each is attempted and logged
  independently; the run succeeds only if every attempted call succeeded.
* Every Discord call is bounded by ``SyncContext.discord.timeout``.

Per-identity failures never raise: they are reported through
:class:`RoleSyncResult`.  Only :class:`MissingConfigurationError` (no bot
token) escapes, because no identity can succeed without it.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import discord
from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError

from harvester.config import HarvesterConfig, IngestSettings
from harvester.constants import DEFAULT_COMPRESSED_PREFIX
from harvester.database.engine import run_db
from harvester.engine.catalog import RoleCatalogCache, managed_role_ids
from harvester.engine.role_diff import compute_role_diff
from harvester.services.discord_client import DiscordClientProvider
from harvester.services.eligibility_service import load_entitlements

if TYPE_CHECKING:
    from harvester.services.indexer_client import IndexerClient

logger = logging.getLogger(__name__)

AUDIT_REASON = "Harvester: holdings-based role sync"


class SyncState(enum.StrEnum):
    IDLE = "idle"
    CATALOG_LOADED = "catalog_loaded"
    IDENTITY_RESOLVED = "identity_resolved"
    DIFFED = "diffed"
    APPLIED = "applied"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------
@dataclass
class SyncContext:
    """Everything a sync run needs, passed explicitly instead of via globals."""

    engine: Engine
    guild_id: int
    catalog: RoleCatalogCache
    discord: DiscordClientProvider
    compressed_prefix: str = DEFAULT_COMPRESSED_PREFIX
    ingest: IngestSettings = field(default_factory=IngestSettings)
    indexer_factory: Callable[[], IndexerClient] | None = None

    @classmethod
    def from_config(
        cls,
        cfg: HarvesterConfig,
        engine: Engine,
        discord_provider: DiscordClientProvider | None = None,
    ) -> SyncContext:
        return cls(
            engine=engine,
            guild_id=cfg.guild_id,
            catalog=RoleCatalogCache(engine, ttl=cfg.role_catalog_ttl),
            discord=discord_provider or DiscordClientProvider.from_env(
                timeout=cfg.discord_timeout,
            ),
            compressed_prefix=cfg.compressed_prefix,
            ingest=cfg.ingest,
        )


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------
@dataclass
class RoleSyncResult:
    identity_id: int
    state: SyncState = SyncState.IDLE
    added: frozenset[int] = frozenset()
    removed: frozenset[int] = frozenset()
    add_failed: bool = False
    remove_failed: bool = False
    reason: str | None = None

    @property
    def success(self) -> bool:
        return self.state is SyncState.DONE

    def fail(self, reason: str) -> RoleSyncResult:
        self.state = SyncState.FAILED
        self.reason = reason
        return self

    def as_dict(self) -> dict:
        return {
            "identity_id": str(self.identity_id),
            "state": self.state.value,
            "success": self.success,
            "added": [str(r) for r in sorted(self.added)],
            "removed": [str(r) for r in sorted(self.removed)],
            "reason": self.reason,
        }


# ---------------------------------------------------------------------------
# Synchronizer
# ---------------------------------------------------------------------------
async def _apply(
    identity_id: int,
    call,
    role_ids: frozenset[int],
    *,
    action: str,
    timeout: float,
) -> tuple[bool, bool]:
    """Run one add/remove call.  Returns ``(ok, connection_lost)``.

    discord.py sends one request per role, so a failure part-way can leave
    earlier roles applied while the result reports none of them.  The next
    pass diffs against the live roles and settles the difference.
    """
    try:
        await asyncio.wait_for(
            call(*[discord.Object(id=r) for r in sorted(role_ids)], reason=AUDIT_REASON),
            timeout=timeout,
        )
    except (discord.HTTPException, TimeoutError):
        logger.warning(
            "Role %s failed for %d: %s", action, identity_id, sorted(role_ids),
            exc_info=True, extra={"identity_id": identity_id},
        )
        return False, False
    except (discord.DiscordException, OSError):
        logger.exception(
            "Discord connection error during role %s for %d", action, identity_id,
            extra={"identity_id": identity_id},
        )
        return False, True
    logger.info("Role %s for %d: %s", action, identity_id, sorted(role_ids))
    return True, False


async def sync_identity_roles(ctx: SyncContext, identity_id: int) -> RoleSyncResult:
    """Reconcile one identity's managed roles.  See module docstring."""
    result = RoleSyncResult(identity_id=identity_id)

    try:
        entitlements = await run_db(load_entitlements, ctx.engine, identity_id)
    except SQLAlchemyError:
        logger.exception("Entitlement read failed", extra={"identity_id": identity_id})
        return result.fail("entitlement_read_error")
    if entitlements is None:
        logger.info("No entitlement state for %d; skipping", identity_id)
        return result.fail("no_entitlement_state")

    try:
        catalog = await run_db(ctx.catalog.get)
    except SQLAlchemyError:
        logger.exception("Role catalog load failed")
        return result.fail("catalog_error")
    if not catalog:
        return result.fail("empty_catalog")
    result.state = SyncState.CATALOG_LOADED

    try:
        client = await ctx.discord.acquire()
    except (discord.DiscordException, OSError, TimeoutError):
        logger.exception("Discord login failed", extra={"identity_id": identity_id})
        return result.fail("discord_unavailable")
    timeout = ctx.discord.timeout
    try:
        guild = await asyncio.wait_for(client.fetch_guild(ctx.guild_id), timeout=timeout)
    except discord.NotFound:
        return result.fail("guild_not_found")
    except (discord.Forbidden, TimeoutError) as exc:
        logger.warning("Guild lookup failed for %d: %r", ctx.guild_id, exc)
        return result.fail("guild_lookup_failed")
    except (discord.DiscordException, OSError):
        logger.exception("Discord connection error during guild lookup")
        await ctx.discord.dispose()
        return result.fail("discord_connection_error")

    try:
        member = await asyncio.wait_for(guild.fetch_member(identity_id), timeout=timeout)
    except discord.NotFound:
        logger.info("Member %d not in guild; skipping", identity_id)
        return result.fail("member_not_found")
    except (discord.Forbidden, TimeoutError) as exc:
        logger.warning("Member lookup failed for %d: %r", identity_id, exc)
        return result.fail("member_lookup_failed")
    except (discord.DiscordException, OSError):
        logger.exception("Discord connection error during member lookup")
        await ctx.discord.dispose()
        return result.fail("discord_connection_error")
    result.state = SyncState.IDENTITY_RESOLVED

    diff = compute_role_diff(
        entitled=entitlements.role_ids(catalog),
        current=[role.id for role in member.roles],
        managed=managed_role_ids(catalog),
    )
    result.state = SyncState.DIFFED

    connection_lost = False
    if diff.to_add:
        ok, lost = await _apply(
            identity_id, member.add_roles, diff.to_add, action="add", timeout=timeout,
        )
        connection_lost |= lost
        if ok:
            result.added = diff.to_add
        else:
            result.add_failed = True
    if diff.to_remove:
        ok, lost = await _apply(
            identity_id, member.remove_roles, diff.to_remove, action="remove", timeout=timeout,
        )
        connection_lost |= lost
        if ok:
            result.removed = diff.to_remove
        else:
            result.remove_failed = True
    if connection_lost:
        await ctx.discord.dispose()

    result.state = SyncState.APPLIED
    if result.add_failed or result.remove_failed:
        return result.fail("role_update_failed")

    result.state = SyncState.DONE
    return result
