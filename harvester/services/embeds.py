"""
harvester.services.embeds — Holdings presentation
==================================================

Turns a :class:`~harvester.services.holdings_service.HoldingsView` into a
Discord embed (slash commands) or plain text (HTTP interactions endpoint).
"""

from __future__ import annotations

import discord

from harvester.constants import SPECIAL_KEY, TIER_EMOJI, TIER_LABELS, TIER_ORDER
from harvester.services.holdings_service import HoldingsView


def _tier_lines(view: HoldingsView, *, compressed: bool) -> list[str]:
    lines = []
    for tier in TIER_ORDER:
        if compressed:
            count = view.holdings.compressed_count(tier)
            earned = view.yields.compressed.get(tier, 0)
        else:
            count = view.holdings.regular_count(tier)
            earned = view.yields.regular.get(tier, 0)
        if count:
            lines.append(f"{TIER_EMOJI[tier]} {TIER_LABELS[tier]}: **{count}** ({earned}/day)")
    return lines


def holdings_summary_text(view: HoldingsView) -> str:
    """Compact plain-text summary, used for ephemeral interaction replies."""
    if not view.holdings.total and not view.holdings.compressed_total:
        return "No holdings found. Link a wallet to get started."
    parts = [f"NFTs: {view.holdings.total}", f"cNFTs: {view.holdings.compressed_total}"]
    if view.holdings.special:
        parts.append(f"{SPECIAL_KEY.upper()}: {view.holdings.special}")
    parts.append(f"Daily yield: {view.daily_yield}")
    return " | ".join(parts)


def build_holdings_embed(view: HoldingsView, display_name: str, avatar_url: str) -> discord.Embed:
    """Per-tier counts and yields for one identity."""
    embed = discord.Embed(
        title=f"\U0001f33f {display_name}'s Holdings",
        description=f"Daily yield: **{view.daily_yield}**",
        color=discord.Color.green(),
    )
    regular = _tier_lines(view, compressed=False)
    if view.holdings.special:
        regular.insert(
            0,
            f"⭐ {SPECIAL_KEY.upper()}: **{view.holdings.special}** "
            f"({view.yields.special}/day)",
        )
    embed.add_field(
        name=f"NFTs ({view.holdings.total})",
        value="\n".join(regular) or "None",
        inline=False,
    )
    embed.add_field(
        name=f"Seedlings ({view.holdings.compressed_total})",
        value="\n".join(_tier_lines(view, compressed=True)) or "None",
        inline=False,
    )
    if view.wallets:
        embed.set_footer(text=f"{len(view.wallets)} linked wallet(s)")
    embed.set_thumbnail(url=avatar_url)
    return embed
