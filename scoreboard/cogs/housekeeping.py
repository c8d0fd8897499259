"""
Housekeeping Cog - Background Tasks & Admin Commands

Runs the periodic leaderboard reconciliation and action token sweep, and
gives the bot owner an on-demand reconciliation command.
"""

import discord
from discord import app_commands
from discord.ext import commands, tasks
from datetime import datetime, timezone

from scoreboard.config import Config
from scoreboard.utils.logger import setup_logger

logger = setup_logger(__name__)


class HousekeepingCog(commands.Cog):
    """Background maintenance tasks"""

    def __init__(self, bot):
        self.bot = bot
        self.logger = logger

    @commands.Cog.listener()
    async def on_ready(self):
        """Start background tasks once the bot is connected"""
        if not self.reconcile_leaderboards.is_running():
            self.reconcile_leaderboards.start()
        if not self.purge_expired_tokens.is_running():
            self.purge_expired_tokens.start()
        self.logger.info("HousekeepingCog: Background tasks started")

    def cog_unload(self):
        """Stop background tasks when cog is unloaded"""
        self.reconcile_leaderboards.cancel()
        self.purge_expired_tokens.cancel()
        self.logger.info("HousekeepingCog: Background tasks stopped")

    @tasks.loop(seconds=Config.RECONCILE_INTERVAL_SECONDS)
    async def reconcile_leaderboards(self):
        """Repair drift between the ledger and the in-memory leaderboards"""
        try:
            reports = await self.bot.synchronizer.reconcile_all()
            repaired = [report for report in reports if report.repaired]
            if repaired:
                self.logger.warning(f"Reconciliation repaired {len(repaired)} categories")
        except Exception as e:
            self.logger.error(f"Error in reconciliation task: {e}", exc_info=True)

    @reconcile_leaderboards.before_loop
    async def before_reconcile_task(self):
        """Wait for bot to be ready before starting reconciliation"""
        await self.bot.wait_until_ready()

    @tasks.loop(seconds=Config.TOKEN_TTL_SECONDS)
    async def purge_expired_tokens(self):
        """Drop expired token state from stores without native expiry"""
        try:
            count = await self.bot.token_service.purge_expired()
            if count > 0:
                self.logger.debug(f"Purged {count} expired action tokens")
        except Exception as e:
            self.logger.error(f"Error in token purge task: {e}", exc_info=True)

    @purge_expired_tokens.before_loop
    async def before_purge_task(self):
        await self.bot.wait_until_ready()

    @app_commands.command(
        name="admin-reconcile",
        description="Reconcile leaderboards with stored scores now (Owner only)"
    )
    async def admin_reconcile(self, interaction: discord.Interaction):
        """Run one reconciliation pass on demand"""
        if interaction.user.id != Config.OWNER_DISCORD_ID:
            await interaction.response.send_message(
                "❌ **Access Denied**\nThis command is restricted to the bot owner.",
                ephemeral=True
            )
            return

        await interaction.response.defer(ephemeral=True)
        reports = await self.bot.synchronizer.reconcile_all()

        embed = discord.Embed(
            title="✅ Reconciliation Complete",
            description=f"Checked **{len(reports)}** categories.",
            color=discord.Color.green(),
            timestamp=datetime.now(timezone.utc)
        )
        drifted = [report for report in reports if report.drifted]
        # Discord embeds hold at most 25 fields
        for report in drifted[:24]:
            status = "repaired" if report.repaired else "skipped, retrying next pass"
            embed.add_field(
                name=report.category,
                value=(
                    f"+{len(report.added)} / -{len(report.removed)} / "
                    f"~{len(report.rescored)} ({status})"
                ),
                inline=False
            )
        if not drifted:
            embed.description += "\nNo drift found."
            embed.color = discord.Color.blue()

        await interaction.followup.send(embed=embed, ephemeral=True)
        self.logger.info(
            f"Admin reconciliation executed by {interaction.user.id} ({interaction.user.name})"
        )


async def setup(bot):
    await bot.add_cog(HousekeepingCog(bot))
