"""
Shared embed builders for the scoreboard's Discord surface.
"""

import discord
from datetime import timezone
from typing import Callable, List, Optional

from scoreboard.constants import UIConstants
from scoreboard.data_models.leaderboard import LeaderboardSnapshot, ScoreAuditRecord, ScoreUpdateResult


def _default_name(user_id: str) -> str:
    return f"<@{user_id}>" if user_id.isdigit() else user_id


def build_leaderboard_embed(
    snapshot: LeaderboardSnapshot,
    name_resolver: Optional[Callable[[str], str]] = None,
    live: bool = False,
    empty_message: str = "No scores yet. Be the first!"
) -> discord.Embed:
    """
    Build the top-N table for one category.
    
    Args:
        snapshot: Snapshot served from the leaderboard store
        name_resolver: Maps a user id to a display name; mentions by default
        live: Marks embeds maintained by a live follow
        empty_message: Text shown for an empty board
    """
    resolve = name_resolver or _default_name
    prefix = f"{UIConstants.LIVE_EMOJI} " if live else f"{UIConstants.TROPHY_EMOJI} "
    embed = discord.Embed(
        title=f"{prefix}Leaderboard: {snapshot.category}",
        color=discord.Color.gold(),
        timestamp=snapshot.taken_at.replace(tzinfo=timezone.utc)
    )
    
    if not snapshot.entries:
        embed.description = empty_message
        return embed
    
    lines = []
    for position, entry in enumerate(snapshot.entries, start=1):
        marker = UIConstants.MEDALS[position - 1] if position <= len(UIConstants.MEDALS) else f"`#{position:<2}`"
        lines.append(f"{marker} {resolve(entry.user_id)} · **{entry.score:,}**")
    embed.description = "\n".join(lines)
    embed.set_footer(text=f"Top {len(snapshot.entries)}")
    return embed


def build_score_result_embed(result: ScoreUpdateResult) -> discord.Embed:
    """Confirmation shown after an accepted submission."""
    embed = discord.Embed(
        title="✅ Score Recorded",
        description=f"**{result.old_score:,}** → **{result.new_score:,}** in `{result.category}`",
        color=discord.Color.green()
    )
    if result.position is not None:
        embed.add_field(name="Position", value=f"#{result.position}", inline=True)
    if result.broadcast:
        embed.set_footer(text="The leaderboard has changed!")
    return embed


def build_score_history_embed(category: str, score: int, history: List[ScoreAuditRecord]) -> discord.Embed:
    """A user's current score and their most recent updates."""
    embed = discord.Embed(
        title=f"Your score in {category}",
        description=f"**{score:,}** points",
        color=UIConstants.DEFAULT_EMBED_COLOR
    )
    if history:
        lines = [
            f"`{record.created_at:%Y-%m-%d %H:%M}` +{record.delta:,} → {record.new_score:,}"
            for record in history
        ]
        embed.add_field(name="Recent updates", value="\n".join(lines), inline=False)
    return embed
