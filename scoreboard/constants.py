"""
Scoreboard-wide constants.

Values that are not deployment settings live here; tunables live in Config.
"""

import re


class CategoryConstants:
    """Constants for category names."""
    
    DEFAULT_CATEGORY = "global"
    NAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]{1,64}$')


class TokenConstants:
    """Constants for action tokens."""
    
    # Bytes of randomness in each nonce
    NONCE_BYTES = 16
    
    # Redis key namespace for token state
    REDIS_KEY_PREFIX = "scoreboard:token:"
    
    PENDING = "pending"
    CONSUMED = "consumed"


class UIConstants:
    """Constants for Discord UI elements."""
    
    DEFAULT_EMBED_COLOR = 0x3498db  # Blue
    
    MEDALS = ("🥇", "🥈", "🥉")
    TROPHY_EMOJI = "🏆"
    LIVE_EMOJI = "📡"


def is_valid_category(category) -> bool:
    return isinstance(category, str) and bool(CategoryConstants.NAME_PATTERN.match(category))
