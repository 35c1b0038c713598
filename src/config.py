"""projectcalc configuration: server, logging and API surface settings."""

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from PROJECTCALC_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PROJECTCALC_",
        env_file=".env",
        extra="ignore",
    )

    app_title: str = "Project Calculation API"

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    reload: bool = False

    # Logging
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_file: Optional[str] = None  # None = console only

    # CORS (comma-separated origins)
    cors_origins: str = "*"

    # Expose the routes as MCP tools under /mcp
    mcp_enabled: bool = True

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
