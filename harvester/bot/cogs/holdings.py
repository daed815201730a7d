"""
harvester.bot.cogs.holdings — Holdings & Role Slash Commands
=============================================================

- /holdings         — show a member's counts and daily yield
- /rebuild-roles    — (admin) recompute one member and resync their roles
- /sync-collections — (admin) run a full bulk sync now

Admin commands require the configured ``admin_role_id``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from harvester.config import MissingConfigurationError
from harvester.database.engine import run_db
from harvester.services.embeds import build_holdings_embed
from harvester.services.holdings_service import get_holdings
from harvester.services.sync_service import rebuild_identity, run_bulk_sync

if TYPE_CHECKING:
    from harvester.bot.core import HarvesterBot

logger = logging.getLogger(__name__)


def is_admin():
    """Check that the invoking member has the configured admin role."""
    async def predicate(interaction: discord.Interaction) -> bool:
        bot: HarvesterBot = interaction.client  # type: ignore[assignment]
        if not interaction.user or not hasattr(interaction.user, "roles"):
            return False
        return any(role.id == bot.cfg.admin_role_id for role in interaction.user.roles)
    return app_commands.check(predicate)


class HoldingsCommands(commands.Cog, name="Holdings"):
    """Holdings lookups and role maintenance."""

    def __init__(self, bot: HarvesterBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /holdings
    # -------------------------------------------------------------------
    @app_commands.command(name="holdings", description="Show NFT holdings and daily yield.")
    @app_commands.describe(member="The member to look up (defaults to you)")
    async def holdings(
        self, interaction: discord.Interaction, member: discord.Member | None = None,
    ) -> None:
        target = member or interaction.user
        view = await run_db(
            get_holdings, self.bot.engine, target.id,
            prefix=self.bot.cfg.compressed_prefix,
        )
        if not view.wallets:
            await interaction.response.send_message(
                f"**{target.display_name}** has no linked wallet.", ephemeral=True,
            )
            return
        embed = build_holdings_embed(view, target.display_name, target.display_avatar.url)
        await interaction.response.send_message(embed=embed, ephemeral=True)

    # -------------------------------------------------------------------
    # /rebuild-roles
    # -------------------------------------------------------------------
    @app_commands.command(
        name="rebuild-roles",
        description="Recompute a member's holdings and resync their roles.",
    )
    @app_commands.describe(member="The member to rebuild")
    @is_admin()
    async def rebuild_roles(
        self, interaction: discord.Interaction, member: discord.Member,
    ) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)
        result = await rebuild_identity(self.bot.sync_ctx, member.id)

        if not result.linked:
            await interaction.followup.send(
                f"**{member.display_name}** has no linked wallet.", ephemeral=True,
            )
            return

        names = ", ".join(sorted(result.entitlements.names)) if result.entitlements else "none"
        synced = result.synced
        if synced is not None and synced.success:
            status = f"✅ Roles synced (+{len(synced.added)} / -{len(synced.removed)})"
        else:
            reason = synced.reason if synced else "not attempted"
            status = f"⚠️ Role sync failed: {reason}"
        await interaction.followup.send(
            f"**{member.display_name}**\nEntitlements: {names}\n{status}", ephemeral=True,
        )

    # -------------------------------------------------------------------
    # /sync-collections
    # -------------------------------------------------------------------
    @app_commands.command(
        name="sync-collections",
        description="Ingest all collections and resync affected members now.",
    )
    @is_admin()
    async def sync_collections(self, interaction: discord.Interaction) -> None:
        await interaction.response.defer(ephemeral=True, thinking=True)
        try:
            report = await run_bulk_sync(self.bot.sync_ctx, self.bot.cfg.collections)
        except MissingConfigurationError as exc:
            await interaction.followup.send(f"❌ {exc}", ephemeral=True)
            return

        failed = ", ".join(report.failed_collections) or "none"
        await interaction.followup.send(
            f"Ingested {len(report.collections)} collection(s): "
            f"+{report.inserted} new, {report.updated} updated, "
            f"{report.unchanged} unchanged, {report.skipped} skipped.\n"
            f"Failed collections: {failed}\n"
            f"Members recomputed: {len(report.identities)} | "
            f"roles synced: {report.roles_synced} | failed: {report.roles_failed}",
            ephemeral=True,
        )

    # -------------------------------------------------------------------
    # Error handler for missing admin role
    # -------------------------------------------------------------------
    async def cog_app_command_error(
        self, interaction: discord.Interaction, error: app_commands.AppCommandError
    ) -> None:
        if isinstance(error, app_commands.CheckFailure):
            await interaction.response.send_message(
                "🔒 You need the Admin role to use this command.",
                ephemeral=True,
            )
        else:
            raise error


async def setup(bot: HarvesterBot) -> None:
    await bot.add_cog(HoldingsCommands(bot))
