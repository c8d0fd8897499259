import asyncio
import logging
import traceback
from typing import Optional

import discord
from discord.ext import commands
from discord import app_commands

from scoreboard.config import Config
from scoreboard.database.database import Database
from scoreboard.services.action_tokens import ActionTokenService, create_token_store
from scoreboard.services.broadcast import BroadcastHub
from scoreboard.services.leaderboard_store import LeaderboardStore
from scoreboard.services.score_ledger import ScoreLedger
from scoreboard.services.synchronizer import Synchronizer
from scoreboard.services.update_coordinator import UpdateCoordinator
from scoreboard.utils.logger import setup_logger
from scoreboard.utils.redis_utils import RedisUtils


class ScoreboardBot(commands.Bot):
    def __init__(self):
        intents = discord.Intents.default()
        intents.guilds = True
        intents.members = True

        super().__init__(
            command_prefix=Config.COMMAND_PREFIX,
            intents=intents,
            help_command=None
        )

        self.tree.on_error = self.on_app_command_error

        self.db: Optional[Database] = None
        self.token_service: Optional[ActionTokenService] = None
        self.leaderboard_store: Optional[LeaderboardStore] = None
        self.ledger: Optional[ScoreLedger] = None
        self.broadcaster: Optional[BroadcastHub] = None
        self.synchronizer: Optional[Synchronizer] = None
        self.coordinator: Optional[UpdateCoordinator] = None
        self.logger = setup_logger(__name__)

    async def setup_hook(self):
        """Called when the bot is starting up"""
        self.logger.info("Setting up Scoreboard Bot...")

        self.db = Database()
        await self.db.initialize()

        redis_client = await RedisUtils.create_redis_client()
        self.token_service = ActionTokenService(create_token_store(redis_client), Config.TOKEN_SECRET)

        self.leaderboard_store = LeaderboardStore()
        self.ledger = ScoreLedger(self.db.session_factory)
        self.broadcaster = BroadcastHub(self.leaderboard_store)
        self.synchronizer = Synchronizer(self.ledger, self.leaderboard_store, self.broadcaster)
        self.coordinator = UpdateCoordinator(
            self.token_service, self.ledger, self.leaderboard_store, self.broadcaster
        )

        # Commands only exist once cogs load, so no submission sees an unbuilt board
        await self.synchronizer.rebuild_all()

        await self.load_cogs()
        await self._sync_commands()

        self.logger.info("Scoreboard Bot setup complete!")

    async def load_cogs(self):
        """Load all cogs"""
        cogs_to_load = [
            'scoreboard.cogs.scoreboard',
            'scoreboard.cogs.live_board',
            'scoreboard.cogs.housekeeping',
        ]

        for cog in cogs_to_load:
            try:
                await self.load_extension(cog)
                self.logger.info(f"Loaded cog: {cog}")
            except Exception as e:
                self.logger.error(f"Failed to load cog {cog}: {e}", exc_info=True)

    async def _sync_commands(self):
        """Sync slash commands with Discord"""
        if not self.tree.get_commands():
            self.logger.warning("No application commands found to sync. Check for cog loading errors.")
            return

        try:
            guild_ids = Config.get_guild_ids()

            if guild_ids:
                # Guild-specific sync is instant
                total_synced = 0
                for guild_id in guild_ids:
                    try:
                        guild = discord.Object(id=guild_id)
                        self.tree.copy_global_to(guild=guild)
                        synced = await self.tree.sync(guild=guild)
                        self.logger.info(f"Successfully synced {len(synced)} command(s) to guild {guild_id}")
                        total_synced += len(synced)
                    except discord.errors.Forbidden:
                        self.logger.error(f"Permission error syncing to guild {guild_id}. Ensure the bot has the 'application.commands' scope.", exc_info=True)
                    except discord.errors.HTTPException as e:
                        self.logger.error(f"HTTP error syncing to guild {guild_id}. Status: {e.status}, Response: {e.text}", exc_info=True)

                self.logger.info(f"Multi-guild sync complete: {total_synced} total command instances deployed")
            else:
                self.logger.info("Attempting to sync commands globally... (Note: This can take up to an hour to propagate)")
                synced = await self.tree.sync()
                self.logger.info(f"Successfully synced {len(synced)} command(s) globally")
        except discord.errors.HTTPException as e:
            # Bot keeps working with previously synced commands
            self.logger.error(f"Failed to sync commands: {e}", exc_info=True)

    async def on_ready(self):
        """Called when the bot is ready"""
        self.logger.info(f'{self.user} has connected to Discord!')
        self.logger.info(f'Bot is in {len(self.guilds)} guilds')

        await self.change_presence(
            activity=discord.Game(name="Scoreboard | /leaderboard")
        )

    async def on_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        """Global error handler for slash commands"""
        command_name = interaction.command.name if interaction.command else 'Unknown'
        if isinstance(error, (app_commands.CheckFailure, app_commands.CommandOnCooldown)):
            self.logger.info(f"Command '{command_name}' refused for user {interaction.user}: {error}")
        else:
            self.logger.error(f"Error in app command '{command_name}': {error}", exc_info=True)

        if isinstance(error, app_commands.CommandOnCooldown):
            error_message = f"⏰ Slow down! Try again in {error.retry_after:.0f} seconds."
        elif isinstance(error, app_commands.CheckFailure):
            error_message = "❌ You don't have the required permissions to use this command."
        elif isinstance(error, app_commands.BotMissingPermissions):
            error_message = "❌ I don't have the required permissions to execute this command."
        else:
            error_message = "❌ An unexpected error occurred while processing your command."

        error_embed = discord.Embed(title=error_message, color=discord.Color.red())
        try:
            if interaction.response.is_done():
                await interaction.followup.send(embed=error_embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=error_embed, ephemeral=True)
        except discord.HTTPException as e:
            self.logger.error(f"Failed to send error response: {e}")

    async def close(self):
        """Cleanup when bot is shutting down"""
        self.logger.info("Shutting down Scoreboard Bot...")

        if self.broadcaster:
            self.broadcaster.close()
        if self.token_service:
            await self.token_service.close()
        if self.db:
            await self.db.close()

        await super().close()


async def main():
    """Main entry point"""
    Config.validate()

    bot = ScoreboardBot()

    try:
        await bot.start(Config.DISCORD_TOKEN)
    except KeyboardInterrupt:
        pass
    except Exception as e:
        logging.error(f"Fatal error: {e}")
        traceback.print_exc()
    finally:
        await bot.close()


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
