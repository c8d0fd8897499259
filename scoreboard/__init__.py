"""Scoreboard Arc: live top-N leaderboards with single-use action tokens."""

__version__ = "1.0.0"
