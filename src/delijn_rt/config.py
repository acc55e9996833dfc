"""Application configuration via environment variables."""

from functools import lru_cache
from typing import List, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "De Lijn Realtime API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # De Lijn API
    dl_gtfsrt: str = Field(
        default="",
        validation_alias=AliasChoices("DL_GTFSRT", "DELIJN_API_KEY"),
    )
    gtfs_rt_url: str = Field(
        default=(
            "https://api.delijn.be/gtfs/v3/realtime"
            "?canceled=true&delay=true&position=true&vehicleid=true&tripid=true"
        ),
        validation_alias=AliasChoices("GTFS_RT_URL", "DELIJN_GTFS_RT_URL"),
    )

    # Fetching
    gtfs_rt_fetch_timeout_sec: int = 30
    gtfs_rt_max_retries: int = Field(default=3, ge=1, le=10)
    gtfs_rt_backoff_base: float = 2.0

    # Decoding
    gtfs_rt_schema_variant: str = "gtfs-realtime"
    error_preview_bytes: int = Field(default=32, ge=0, le=1024)
    introspect_max_depth: int = Field(default=8, ge=0, le=32)

    # CORS
    cors_allow_origins: List[str] = ["*"]

    @field_validator("gtfs_rt_schema_variant")
    @classmethod
    def _known_variant(cls, value: str) -> str:
        from delijn_rt.services.gtfs_rt.schema import schema_variant_names

        known = schema_variant_names()
        if value not in known:
            msg = f"Unknown schema variant {value!r}; known: {', '.join(known)}"
            raise ValueError(msg)
        return value

    def missing_required_env(self) -> list[str]:
        """Return required environment variables that are missing or empty."""
        missing: list[str] = []

        if not self.dl_gtfsrt:
            missing.append("DL_GTFSRT")

        return missing


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
