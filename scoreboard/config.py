import os
from dotenv import load_dotenv

load_dotenv()

_INSECURE_SECRETS = {'', 'change-me', 'changeme', 'secret'}


class Config:
    """Scoreboard configuration settings"""

    # Discord settings
    DISCORD_TOKEN = os.getenv('DISCORD_TOKEN')
    DISCORD_GUILD_ID = int(os.getenv('DISCORD_GUILD_ID', 0))
    DISCORD_GUILD_IDS = os.getenv('DISCORD_GUILD_IDS', '')  # Comma-separated for multi-guild support
    OWNER_DISCORD_ID = int(os.getenv('OWNER_DISCORD_ID', 0))

    # Storage settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///scoreboard.db')
    REDIS_URL = os.getenv('REDIS_URL', '')

    # Bot settings
    COMMAND_PREFIX = os.getenv('COMMAND_PREFIX', '!')
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', '')  # Console level name; empty follows DEBUG
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_FILE_PREFIX = os.getenv('LOG_FILE_PREFIX', 'scoreboard')
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'

    # Action tokens
    TOKEN_SECRET = os.getenv('TOKEN_SECRET', '')
    TOKEN_TTL_SECONDS = int(os.getenv('TOKEN_TTL_SECONDS', 300))
    TOKEN_CONSUMED_RETENTION_SECONDS = int(os.getenv('TOKEN_CONSUMED_RETENTION_SECONDS', 600))
    TOKEN_STORE_MAX_RETRIES = int(os.getenv('TOKEN_STORE_MAX_RETRIES', 3))

    # Scoring rules
    LEADERBOARD_SIZE = int(os.getenv('LEADERBOARD_SIZE', 10))
    MAX_SCORE = int(os.getenv('MAX_SCORE', 1_000_000))
    MAX_SCORE_DELTA = int(os.getenv('MAX_SCORE_DELTA', 1000))  # Anomaly guard per submission
    DEFAULT_SCORE_INCREMENT = int(os.getenv('DEFAULT_SCORE_INCREMENT', 10))

    # Synchronization and storage resilience
    RECONCILE_INTERVAL_SECONDS = int(os.getenv('RECONCILE_INTERVAL_SECONDS', 300))
    LEDGER_MAX_RETRIES = int(os.getenv('LEDGER_MAX_RETRIES', 3))
    LEDGER_RETRY_BASE_DELAY = float(os.getenv('LEDGER_RETRY_BASE_DELAY', 0.1))

    # Fan-out
    BROADCAST_QUEUE_SIZE = int(os.getenv('BROADCAST_QUEUE_SIZE', 8))

    @classmethod
    def get_guild_ids(cls):
        """Get list of guild IDs for command syncing"""
        if cls.DISCORD_GUILD_IDS:
            try:
                return [int(guild_id.strip()) for guild_id in cls.DISCORD_GUILD_IDS.split(',') if guild_id.strip()]
            except ValueError:
                raise ValueError("DISCORD_GUILD_IDS must be comma-separated integers")
        elif cls.DISCORD_GUILD_ID:
            return [cls.DISCORD_GUILD_ID]
        else:
            # Global sync
            return []

    @classmethod
    def validate(cls):
        """Validate that required configuration is present"""
        if not cls.DISCORD_TOKEN:
            raise ValueError("DISCORD_TOKEN is required")
        if not cls.OWNER_DISCORD_ID:
            raise ValueError("OWNER_DISCORD_ID is required")
        if cls.TOKEN_SECRET.lower() in _INSECURE_SECRETS or len(cls.TOKEN_SECRET) < 32:
            raise ValueError("TOKEN_SECRET must be set to a random string of at least 32 characters")
        if cls.LEADERBOARD_SIZE < 1:
            raise ValueError("LEADERBOARD_SIZE must be at least 1")
        if cls.MAX_SCORE_DELTA < 1 or cls.MAX_SCORE < 1:
            raise ValueError("MAX_SCORE and MAX_SCORE_DELTA must be positive")
