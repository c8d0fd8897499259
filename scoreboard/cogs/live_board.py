"""
Live board cog - real-time leaderboard push into Discord channels.

Each follow binds one channel to one category through a BroadcastHub
subscription. A background task per follow keeps a single message in the
channel up to date with the newest snapshot. A failing channel only affects
its own follower.
"""

import asyncio
import discord
from discord import app_commands
from discord.ext import commands
from typing import Dict, Tuple

from scoreboard.cogs.scoreboard import member_name_resolver
from scoreboard.constants import CategoryConstants, is_valid_category
from scoreboard.utils.embeds import build_leaderboard_embed
from scoreboard.utils.error_embeds import ErrorEmbeds
from scoreboard.utils.logger import setup_logger

logger = setup_logger(__name__)


class LiveBoardFollower:
    """Pumps snapshots from one subscription into one channel message."""

    def __init__(self, channel, subscription, name_resolver=None):
        self.channel = channel
        self.subscription = subscription
        self.name_resolver = name_resolver
        self.message = None
        self.delivered = 0

    async def render(self, snapshot):
        embed = build_leaderboard_embed(snapshot, self.name_resolver, live=True)
        if self.message is not None:
            try:
                await self.message.edit(embed=embed)
                self.delivered += 1
                return
            except discord.NotFound:
                # Message was deleted; post a fresh one below
                self.message = None
        self.message = await self.channel.send(embed=embed)
        self.delivered += 1

    async def run(self):
        async for snapshot in self.subscription:
            try:
                await self.render(snapshot)
            except discord.HTTPException as e:
                logger.warning(
                    f"Live board update failed for channel {getattr(self.channel, 'id', '?')} "
                    f"('{self.subscription.category}'): {e}"
                )


class LiveBoardCog(commands.Cog):
    """Commands to follow and unfollow live leaderboards."""

    def __init__(self, bot):
        self.bot = bot
        self.followers: Dict[Tuple[int, str], Tuple[LiveBoardFollower, asyncio.Task]] = {}

    def follow(self, channel, category: str) -> bool:
        """Start pushing a category into a channel; False if already followed."""
        key = (channel.id, category)
        if key in self.followers:
            return False

        subscription = self.bot.broadcaster.subscribe(category)
        follower = LiveBoardFollower(channel, subscription, member_name_resolver(getattr(channel, 'guild', None)))
        task = asyncio.create_task(follower.run(), name=f"live-board-{channel.id}-{category}")
        task.add_done_callback(lambda t, key=key: self._on_follower_done(key, t))
        self.followers[key] = (follower, task)
        logger.info(f"Channel {channel.id} now follows '{category}'")
        return True

    def unfollow(self, channel_id: int, category: str) -> bool:
        entry = self.followers.pop((channel_id, category), None)
        if entry is None:
            return False
        follower, task = entry
        self.bot.broadcaster.unsubscribe(follower.subscription)
        task.cancel()
        logger.info(f"Channel {channel_id} stopped following '{category}'")
        return True

    def _on_follower_done(self, key, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Live board follower {key} stopped: {error}", exc_info=error)
        entry = self.followers.pop(key, None)
        if entry is not None:
            self.bot.broadcaster.unsubscribe(entry[0].subscription)

    def cog_unload(self):
        for channel_id, category in list(self.followers):
            self.unfollow(channel_id, category)

    @app_commands.command(name="leaderboard-follow", description="Keep a live leaderboard in this channel")
    @app_commands.describe(category="Leaderboard category (default: global)")
    @app_commands.default_permissions(manage_channels=True)
    async def leaderboard_follow(self, interaction: discord.Interaction, category: str = CategoryConstants.DEFAULT_CATEGORY):
        """Subscribe this channel to a category's changes."""
        if not is_valid_category(category):
            await interaction.response.send_message(
                embed=ErrorEmbeds.invalid_input("Unknown category name."), ephemeral=True
            )
            return

        if self.follow(interaction.channel, category):
            await interaction.response.send_message(f"📡 This channel now shows live `{category}` standings.", ephemeral=True)
        else:
            await interaction.response.send_message(f"This channel already follows `{category}`.", ephemeral=True)

    @app_commands.command(name="leaderboard-unfollow", description="Stop the live leaderboard in this channel")
    @app_commands.describe(category="Leaderboard category (default: global)")
    @app_commands.default_permissions(manage_channels=True)
    async def leaderboard_unfollow(self, interaction: discord.Interaction, category: str = CategoryConstants.DEFAULT_CATEGORY):
        """Unsubscribe this channel from a category."""
        if self.unfollow(interaction.channel_id, category):
            await interaction.response.send_message(f"Stopped live `{category}` standings here.", ephemeral=True)
        else:
            await interaction.response.send_message(f"This channel does not follow `{category}`.", ephemeral=True)


async def setup(bot):
    await bot.add_cog(LiveBoardCog(bot))
