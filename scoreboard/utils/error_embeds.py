"""
Centralized error embeds for consistent error handling across the scoreboard bot.
"""

import discord

from scoreboard.utils.scoreboard_exceptions import ErrorKind, ScoreboardException

_TITLES = {
    ErrorKind.INVALID_REQUEST: "Invalid Submission",
    ErrorKind.FORBIDDEN: "Token Rejected",
    ErrorKind.CONFLICT: "Score Out of Range",
    ErrorKind.STORAGE_UNAVAILABLE: "Scores Unavailable",
    ErrorKind.NOT_FOUND: "Not Found",
}


class ErrorEmbeds:
    """Centralized error embed factory for consistent error handling."""
    
    @staticmethod
    def from_exception(error: ScoreboardException) -> discord.Embed:
        """Render a scoreboard error using only its user-safe message."""
        color = discord.Color.orange() if error.kind is ErrorKind.STORAGE_UNAVAILABLE else discord.Color.red()
        return discord.Embed(
            title=_TITLES[error.kind],
            description=error.user_message,
            color=color
        )
    
    @staticmethod
    def invalid_input(message: str) -> discord.Embed:
        """Create embed for invalid user input."""
        return discord.Embed(
            title="Invalid Input",
            description=message,
            color=discord.Color.red()
        )
