"""
harvester.bot.cogs.tasks — Periodic Bulk Sync
==============================================

Runs :func:`~harvester.services.sync_service.run_bulk_sync` on a
``discord.ext.tasks`` loop every ``sync_interval_hours`` (default 6).
A failed pass is logged; the next pass is the retry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from discord.ext import commands, tasks

from harvester.config import MissingConfigurationError
from harvester.services.sync_service import run_bulk_sync

if TYPE_CHECKING:
    from harvester.bot.core import HarvesterBot

logger = logging.getLogger(__name__)


class PeriodicTasks(commands.Cog):
    """Cog for the scheduled ingest → recompute → role sync pass."""

    def __init__(self, bot: HarvesterBot) -> None:
        self.bot = bot

    async def cog_load(self) -> None:
        self.bulk_sync_loop.change_interval(hours=self.bot.cfg.sync_interval_hours)
        self.bulk_sync_loop.start()

    async def cog_unload(self) -> None:
        self.bulk_sync_loop.cancel()

    @tasks.loop(hours=6)
    async def bulk_sync_loop(self):
        """Ingest every configured collection and resync affected members."""
        if not self.bot.cfg.collections:
            logger.debug("No collections configured; bulk sync skipped")
            return
        try:
            report = await run_bulk_sync(self.bot.sync_ctx, self.bot.cfg.collections)
        except MissingConfigurationError as exc:
            logger.error("Bulk sync not run: %s", exc, extra={"task": "bulk_sync"})
            return
        except Exception:
            logger.exception("Bulk sync task failed", extra={"task": "bulk_sync"})
            return
        logger.info(
            "Bulk sync task complete: inserted=%d updated=%d synced=%d failed=%d",
            report.inserted, report.updated, report.roles_synced, report.roles_failed,
        )

    @bulk_sync_loop.before_loop
    async def _wait_bulk_sync(self):
        await self.bot.wait_until_ready()


async def setup(bot: HarvesterBot) -> None:
    await bot.add_cog(PeriodicTasks(bot))
