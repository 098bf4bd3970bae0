"""Configuration management using Pydantic Settings.

Settings are loaded from environment variables and an optional ``.env`` file.
The configuration is organized into logical groups:
- DatabaseConfig: Match cache and run log storage
- LoggingConfig: Logging levels, files, and debugging options
- CredentialsConfig: Access tokens handed to catalog adapters
- MatchingConfig: Candidate scoring and auto-accept thresholds
- QuotaConfig: Target catalog write budget
- TransferConfig: Insert chunking and playlist naming
- RetryConfig: Backoff policy for external lookups
- LinkResolutionConfig: Cross-catalog link service settings
"""

from pathlib import Path
from typing import Any

from pydantic import BaseModel, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseConfig(BaseModel):
    """Match cache and run log database configuration."""

    url: str = "sqlite+aiosqlite:///data/tracklinker.db"
    echo: bool = False


class LoggingConfig(BaseModel):
    """Logging configuration for console and file output."""

    console_level: str = "INFO"
    file_level: str = "DEBUG"
    log_file: Path = Path("data/logs/tracklinker.log")
    real_time_debug: bool = True


class CredentialsConfig(BaseModel):
    """Pre-acquired credentials for the catalog adapters.

    Token acquisition itself happens outside this application; these values
    are only read and handed to the adapters.
    """

    spotify_access_token: str = ""
    youtube_access_token: str = ""
    odesli_api_key: str = ""


class MatchingConfig(BaseModel):
    """Candidate scoring and auto-accept thresholds.

    The thresholds are empirically chosen and meant to be tuned.
    """

    neutral_score: float = 0.4
    min_score: float = 0.05
    duration_floor_ms: int = 5000
    auto_accept_score: float = 0.85
    official_min_score: float = 0.6
    duration_delta_ms: int = 2000
    duration_min_score: float = 0.7
    isrc_min_score: float = 0.65
    preferred_channel_ids: list[str] = []


class QuotaConfig(BaseModel):
    """Target catalog daily write budget."""

    daily_limit: int = 10_000
    used_today: int = 0


class TransferConfig(BaseModel):
    """Insert phase configuration."""

    chunk_size: int = 20
    target_name_suffix: str = " • YouTube"


class RetryConfig(BaseModel):
    """Backoff policy applied to link resolution and catalog search."""

    attempts: int = 3
    base_delay: float = 0.5
    factor: float = 2.0
    max_delay: float = 30.0


class LinkResolutionConfig(BaseModel):
    """Cross-catalog link resolution (song.link / Odesli) settings."""

    enabled: bool = True
    base_url: str = "https://api.song.link/v1-alpha.1/links"
    user_country: str | None = None
    calls_per_minute: int = 10
    calls_per_minute_with_key: int = 60
    timeout: float = 10.0


# Flat key -> (group, field); a group of None is a top-level field
FLAT_KEYS: dict[str, tuple[str | None, str]] = {
    "DATABASE_URL": ("database", "url"),
    "DATABASE_ECHO": ("database", "echo"),
    "CONSOLE_LOG_LEVEL": ("logging", "console_level"),
    "FILE_LOG_LEVEL": ("logging", "file_level"),
    "LOG_FILE": ("logging", "log_file"),
    "LOG_REAL_TIME_DEBUG": ("logging", "real_time_debug"),
    "DATA_DIR": (None, "data_dir"),
    "SPOTIFY_ACCESS_TOKEN": ("credentials", "spotify_access_token"),
    "YOUTUBE_ACCESS_TOKEN": ("credentials", "youtube_access_token"),
    "ODESLI_API_KEY": ("credentials", "odesli_api_key"),
    "YOUTUBE_DAILY_QUOTA": ("quota", "daily_limit"),
    "TRANSFER_CHUNK_SIZE": ("transfer", "chunk_size"),
    "RETRY_ATTEMPTS": ("retry", "attempts"),
    "RETRY_BASE_DELAY": ("retry", "base_delay"),
    "RETRY_FACTOR": ("retry", "factor"),
    "RETRY_MAX_DELAY": ("retry", "max_delay"),
}


class Settings(BaseSettings):
    """Main application settings with environment variable support.

    Environment variables can be set using flat naming or nested naming:
    - Flat: DATABASE_URL, CONSOLE_LOG_LEVEL, ODESLI_API_KEY (see FLAT_KEYS)
    - Nested: DATABASE__URL, LOGGING__CONSOLE_LEVEL, MATCHING__AUTO_ACCEPT_SCORE
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    credentials: CredentialsConfig = CredentialsConfig()
    matching: MatchingConfig = MatchingConfig()
    quota: QuotaConfig = QuotaConfig()
    transfer: TransferConfig = TransferConfig()
    retry: RetryConfig = RetryConfig()
    link_resolution: LinkResolutionConfig = LinkResolutionConfig()

    data_dir: Path = Path("data")

    @model_validator(mode="before")
    @classmethod
    def transform_flat_env_vars(cls, data: Any) -> Any:
        """Map flat environment variables onto the nested structure.

        DATABASE_URL becomes database.url, SPOTIFY_ACCESS_TOKEN becomes
        credentials.spotify_access_token, and so on.
        """
        if not isinstance(data, dict):
            return data

        transformed: dict[str, dict[str, Any]] = {}

        for flat_key, (section, field_key) in FLAT_KEYS.items():
            env_key = flat_key.lower()
            if section is None or env_key not in data:
                continue
            transformed.setdefault(section, {})[field_key] = data.pop(env_key)

        for section, values in transformed.items():
            existing = data.get(section)
            if isinstance(existing, dict):
                data[section] = {**existing, **values}
            else:
                data[section] = values

        return data


settings = Settings()


def get_config(key: str, default=None):
    """Get configuration value by flat key with optional default.

    Example:
        >>> chunk_size = get_config("TRANSFER_CHUNK_SIZE", 20)
    """
    if key not in FLAT_KEYS:
        return default
    section, field_key = FLAT_KEYS[key]
    group = settings if section is None else getattr(settings, section)
    return getattr(group, field_key)
