"""
Scoreboard cog - token issuance, score submission and leaderboard queries.

The slash commands are the inbound surface of the scoreboard: they translate
interactions into UpdateCoordinator / LeaderboardStore / ScoreLedger calls and
render ScoreboardException.user_message on failure.
"""

import discord
from discord import app_commands
from discord.ext import commands
from typing import Optional

from scoreboard.constants import CategoryConstants, is_valid_category
from scoreboard.utils.embeds import build_leaderboard_embed, build_score_result_embed, build_score_history_embed
from scoreboard.utils.error_embeds import ErrorEmbeds
from scoreboard.utils.logger import setup_logger
from scoreboard.utils.scoreboard_exceptions import ScoreboardException, StorageUnavailableError

logger = setup_logger(__name__)


def member_name_resolver(guild: Optional[discord.Guild]):
    """Resolve user ids to guild display names, falling back to mentions."""
    def resolve(user_id: str) -> str:
        if guild is not None and user_id.isdigit():
            member = guild.get_member(int(user_id))
            if member is not None:
                return member.display_name
        return f"<@{user_id}>" if user_id.isdigit() else user_id
    return resolve


class ScoreboardCog(commands.Cog):
    """Score submission and leaderboard commands."""

    def __init__(self, bot):
        self.bot = bot

    @app_commands.command(name="score-token", description="Get a single-use token for your next scored action")
    @app_commands.describe(category="Leaderboard category (default: global)")
    @app_commands.checks.cooldown(rate=5, per=60.0, key=lambda i: i.user.id)
    async def score_token(self, interaction: discord.Interaction, category: str = CategoryConstants.DEFAULT_CATEGORY):
        """Issue an action token. Sent ephemerally so only the requester sees it."""
        if not is_valid_category(category):
            await interaction.response.send_message(
                embed=ErrorEmbeds.invalid_input("Category names are 1-64 letters, digits, '.', '_' or '-'."),
                ephemeral=True
            )
            return

        try:
            token = await self.bot.token_service.issue(str(interaction.user.id), category)
        except StorageUnavailableError as e:
            logger.error(f"Token store unavailable for {interaction.user.id}: {e}")
            await interaction.response.send_message(embed=ErrorEmbeds.from_exception(e), ephemeral=True)
            return

        minutes = max(1, self.bot.token_service.ttl_seconds // 60)
        await interaction.response.send_message(
            f"🎟️ Token for `{category}` (valid for {minutes} min, single use):\n```{token}```",
            ephemeral=True
        )

    @app_commands.command(name="score-submit", description="Submit a score increment with an action token")
    @app_commands.describe(
        token="Token from /score-token",
        delta="Points earned (default: the standard increment)",
        category="Leaderboard category (default: global)"
    )
    async def score_submit(
        self,
        interaction: discord.Interaction,
        token: str,
        delta: Optional[int] = None,
        category: str = CategoryConstants.DEFAULT_CATEGORY
    ):
        """Submit a token-authorized score increment."""
        await interaction.response.defer(ephemeral=True)

        try:
            result = await self.bot.coordinator.submit(str(interaction.user.id), category, token.strip(), delta)
            await interaction.followup.send(embed=build_score_result_embed(result), ephemeral=True)

        except StorageUnavailableError as e:
            logger.error(f"Storage unavailable for submission by {interaction.user.id}: {e}")
            await interaction.followup.send(embed=ErrorEmbeds.from_exception(e), ephemeral=True)

        except ScoreboardException as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_exception(e), ephemeral=True)

    @app_commands.command(name="leaderboard", description="View the current top scores")
    @app_commands.describe(category="Leaderboard category (default: global)")
    async def leaderboard(self, interaction: discord.Interaction, category: str = CategoryConstants.DEFAULT_CATEGORY):
        """Display a category's top-N straight from the in-memory store."""
        if not is_valid_category(category):
            await interaction.response.send_message(
                embed=ErrorEmbeds.invalid_input("Unknown category name."), ephemeral=True
            )
            return

        snapshot = self.bot.leaderboard_store.snapshot(category)
        embed = build_leaderboard_embed(snapshot, member_name_resolver(interaction.guild))
        await interaction.response.send_message(embed=embed)

    @app_commands.command(name="score", description="View your score and recent updates")
    @app_commands.describe(category="Leaderboard category (default: global)")
    async def score(self, interaction: discord.Interaction, category: str = CategoryConstants.DEFAULT_CATEGORY):
        """Show the caller's authoritative score and their latest audit entries."""
        await interaction.response.defer(ephemeral=True)

        user_id = str(interaction.user.id)
        try:
            history = await self.bot.ledger.audit_trail(user_id, category, limit=5)
            current = await self.bot.ledger.get_score(user_id, category)
            await interaction.followup.send(
                embed=build_score_history_embed(category, current, history), ephemeral=True
            )
        except ScoreboardException as e:
            await interaction.followup.send(embed=ErrorEmbeds.from_exception(e), ephemeral=True)


async def setup(bot):
    await bot.add_cog(ScoreboardCog(bot))
