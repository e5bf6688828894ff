from __future__ import annotations

import os
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field

_TRUE_VALUES = ("true", "1", "yes")


class ProvidersConfig(BaseModel):
    """Provider API configuration."""

    # API credentials (read from env vars if not provided)
    spotify_client_id: str | None = Field(default=None)
    spotify_client_secret: str | None = Field(default=None)
    discogs_api_key: str | None = Field(default=None)
    discogs_api_secret: str | None = Field(default=None)

    # Transport
    timeout_s: float = Field(default=10.0, gt=0)
    user_agent: str = Field(default="MusicSearch/1.0")
    search_limit: int = Field(default=10, ge=1, le=50)
    discogs_rate_limit: int = Field(default=60, ge=0)  # req/min, 0 disables

    # Fan out searches on a thread pool instead of sequentially
    parallel: bool = Field(default=False)

    def get(self, key: str) -> str | None:
        """Key/value lookup used by provider factories (e.g. "discogs_api_key")."""
        value = getattr(self, key, None)
        if value is None or value == "":
            return None
        return str(value)


class ContentConfig(BaseModel):
    """Content repository configuration."""

    database_path: Path = Field(default=Path("content.sqlite"))
    media_directory: Path = Field(default=Path("music_images"))
    genre_vocabulary: str = Field(default="music_genre")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="WARNING")  # DEBUG, INFO, WARNING, ERROR
    format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")


class Config(BaseModel):
    """
    Main configuration for music-search.

    Loads from TOML file with optional environment variable overrides.
    """

    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    content: ContentConfig = Field(default_factory=ContentConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> Config:
        """
        Load configuration from TOML file with environment variable overrides.

        Environment variables take precedence and follow the pattern:
        MUSIC_SEARCH_<SECTION>_<KEY> (e.g., MUSIC_SEARCH_PROVIDERS_TIMEOUT_S).
        Provider credentials are also read from their conventional names
        (SPOTIFY_CLIENT_ID, DISCOGS_API_KEY, ...).
        """
        config_dict: dict[str, object] = {}

        if config_path and config_path.exists():
            config_dict = tomllib.loads(config_path.read_text())

        config_dict = cls._merge_env_overrides(config_dict)
        return cls.model_validate(config_dict)

    @staticmethod
    def _section(config_dict: dict[str, object], name: str) -> dict[str, object]:
        section = config_dict.setdefault(name, {})
        if not isinstance(section, dict):
            section = {}
            config_dict[name] = section
        return section

    @classmethod
    def _merge_env_overrides(cls, config_dict: dict[str, object]) -> dict[str, object]:
        """
        Merge environment variable overrides into config dictionary.

        Returns a new dictionary with env vars applied, ready for Pydantic validation.
        """
        env_prefix = "MUSIC_SEARCH_"

        providers = cls._section(config_dict, "providers")

        # Credentials under their conventional names
        for key in (
            "spotify_client_id",
            "spotify_client_secret",
            "discogs_api_key",
            "discogs_api_secret",
        ):
            if value := os.getenv(key.upper()):
                providers[key] = value

        for key in (
            "spotify_client_id",
            "spotify_client_secret",
            "discogs_api_key",
            "discogs_api_secret",
            "timeout_s",
            "user_agent",
            "search_limit",
            "discogs_rate_limit",
        ):
            if value := os.getenv(f"{env_prefix}PROVIDERS_{key.upper()}"):
                providers[key] = value

        if parallel := os.getenv(f"{env_prefix}PROVIDERS_PARALLEL"):
            providers["parallel"] = parallel.lower() in _TRUE_VALUES

        content = cls._section(config_dict, "content")

        if db_path := os.getenv(f"{env_prefix}CONTENT_DATABASE_PATH"):
            content["database_path"] = db_path
        if media_dir := os.getenv(f"{env_prefix}CONTENT_MEDIA_DIRECTORY"):
            content["media_directory"] = media_dir
        if vocabulary := os.getenv(f"{env_prefix}CONTENT_GENRE_VOCABULARY"):
            content["genre_vocabulary"] = vocabulary

        logging_config = cls._section(config_dict, "logging")

        if log_level := os.getenv(f"{env_prefix}LOGGING_LEVEL"):
            logging_config["level"] = log_level
        if log_format := os.getenv(f"{env_prefix}LOGGING_FORMAT"):
            logging_config["format"] = log_format

        return config_dict


## Tests


def test_config_defaults():
    config = Config()
    assert config.providers.timeout_s == 10.0
    assert config.providers.search_limit == 10
    assert config.providers.parallel is False
    assert config.content.database_path == Path("content.sqlite")
    assert config.content.genre_vocabulary == "music_genre"


def test_config_from_dict():
    config = Config.model_validate(
        {
            "providers": {"discogs_api_key": "k", "timeout_s": 2.5},
            "content": {"media_directory": "/tmp/media"},
        }
    )
    assert config.providers.get("discogs_api_key") == "k"
    assert config.providers.get("discogs_api_secret") is None
    assert config.providers.timeout_s == 2.5
    assert config.content.media_directory == Path("/tmp/media")
