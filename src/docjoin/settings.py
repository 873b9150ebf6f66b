"""Shared settings loaded from environment / .env file."""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the docjoin REST API server and Mongo driver.

    Values are read from environment variables (prefixed ``DOCJOIN_``)
    and from a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCJOIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Shared
    log_level: str = "INFO"

    # REST API
    api_server_host: str = "localhost"
    api_server_port: int = 8000
    port: int | None = None  # a platform-injected port takes precedence over api_server_port
    max_body_bytes: int = 5_000_000

    @property
    def effective_port(self) -> int:
        """Return the port to listen on."""
        return self.port if self.port is not None else self.api_server_port

    # MongoDB
    mongo_url: str = "mongodb://localhost:27017"
    mongo_database: str = "docjoin"
    allow_disk_use: bool = True
