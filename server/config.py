"""
Centralized configuration for the Spiller game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.timing.VALIDATION_DELAY_MS)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


@dataclass
class TimingConfig:
    """
    Delays for deferred work, in milliseconds.

    VALIDATION_DELAY_MS only needs to be long enough for clients to render
    an optimistic play before the authoritative verdict arrives.
    """
    VALIDATION_DELAY_MS: int = 400
    SING_WINDOW_MS: int = 10000
    SPADE_NAMING_MS: int = 7000

    @property
    def validation_delay(self) -> float:
        return self.VALIDATION_DELAY_MS / 1000

    @property
    def spade_naming_timeout(self) -> float:
        return self.SPADE_NAMING_MS / 1000


@dataclass
class GameLimits:
    """Bounds on room settings and dealing."""
    MIN_DECKS: int = 1
    MAX_DECKS: int = 33
    HAND_SIZE: int = 5
    RECENT_PLAYS_LIMIT: int = 10


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Room settings
    MAX_PLAYERS_PER_ROOM: int = 8
    ROOM_CODE_LENGTH: int = 6

    timing: TimingConfig = field(default_factory=TimingConfig)
    limits: GameLimits = field(default_factory=GameLimits)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            MAX_PLAYERS_PER_ROOM=get_env_int("MAX_PLAYERS_PER_ROOM", 8),
            ROOM_CODE_LENGTH=get_env_int("ROOM_CODE_LENGTH", 6),
            timing=TimingConfig(
                VALIDATION_DELAY_MS=get_env_int("VALIDATION_DELAY_MS", 400),
                SING_WINDOW_MS=get_env_int("SING_WINDOW_MS", 10000),
                SPADE_NAMING_MS=get_env_int("SPADE_NAMING_MS", 7000),
            ),
            limits=GameLimits(
                MIN_DECKS=get_env_int("MIN_DECKS", 1),
                MAX_DECKS=get_env_int("MAX_DECKS", 33),
                HAND_SIZE=get_env_int("HAND_SIZE", 5),
                RECENT_PLAYS_LIMIT=get_env_int("RECENT_PLAYS_LIMIT", 10),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
