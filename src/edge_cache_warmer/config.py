"""Application settings loaded from environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from edge_cache_warmer.regions import (
    DEFAULT_ACCEPTABLE_CODES,
    DEFAULT_LOCATION_HINTS,
    DEFAULT_REGION_ORDER,
    DEFAULT_REPRESENTATIVE_CODES,
    RegionCatalog,
)

SECONDS_PER_DAY = 60 * 60 * 24


class Settings(BaseSettings):
    """Runtime configuration sourced from environment variables and .env.

    List and mapping settings (sitemaps, regions) are read as JSON values.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    DATABASE_URL: str = "sqlite+aiosqlite:///./data/edge_cache_warmer.db"
    HOST: str = "0.0.0.0"
    PORT: int = Field(default=8000, ge=1, le=65535)
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    LOG_FORMAT: Literal["json", "text"] = "text"
    LOG_FILE: Path | None = None
    LOG_FILE_MAX_BYTES: int = Field(default=10_485_760, ge=1)
    LOG_FILE_BACKUP_COUNT: int = Field(default=5, ge=1)
    SCHEDULER_ENABLED: bool = True
    SCHEDULER_JOBSTORE_URL: str = "sqlite:///./scheduler-jobs.sqlite"
    SCHEDULER_WARMING_INTERVAL_SECONDS: int = Field(default=21_600, ge=1)
    SCHEDULER_RETENTION_PURGE_INTERVAL_SECONDS: int = Field(default=3600, ge=1)
    SHUTDOWN_GRACE_PERIOD_SECONDS: int = Field(default=30, ge=1)

    MAX_URLS_PER_RUN: int = Field(default=50, ge=1)
    TEST_MODE_URL_COUNT: int = Field(default=5, ge=1)
    RATE_LIMIT_MS: int = Field(default=2000, ge=0)
    CACHE_TTL_SECONDS: int = Field(default=14_400, ge=0)
    NOT_FOUND_CACHE_TTL_SECONDS: int = Field(default=300, ge=0)
    REQUEST_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    OUTBOUND_HTTP_USER_AGENT: str = "EdgeCacheWarmer/1.0"

    SITEMAP_URLS: list[str] = Field(default_factory=list)
    SITEMAP_MAX_DEPTH: int = Field(default=5, ge=0)

    REGION_ORDER: list[str] = Field(default_factory=lambda: list(DEFAULT_REGION_ORDER))
    REGION_LOCATION_HINTS: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_LOCATION_HINTS)
    )
    REGION_REPRESENTATIVE_CODES: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_REPRESENTATIVE_CODES)
    )
    REGION_ACCEPTABLE_CODES: dict[str, list[str]] = Field(
        default_factory=lambda: {
            label: list(codes) for label, codes in DEFAULT_ACCEPTABLE_CODES.items()
        }
    )
    REGION_EGRESS_PROXIES: dict[str, str] = Field(default_factory=dict)

    RESULT_RETENTION_DAYS: int = Field(default=30, ge=1)
    ERROR_RETENTION_DAYS: int = Field(default=7, ge=1)

    @field_validator("LOG_FILE", mode="before")
    @classmethod
    def parse_log_file(cls, value: object) -> object:
        if value in (None, ""):
            return None
        return value

    @field_validator("REGION_ACCEPTABLE_CODES")
    @classmethod
    def normalize_acceptable_codes(
        cls, value: dict[str, list[str]]
    ) -> dict[str, list[str]]:
        return {
            label: [code.strip().upper() for code in codes if code.strip()]
            for label, codes in value.items()
        }

    @field_validator("REGION_REPRESENTATIVE_CODES")
    @classmethod
    def normalize_representative_codes(cls, value: dict[str, str]) -> dict[str, str]:
        return {label: code.strip().upper() for label, code in value.items()}

    @property
    def result_ttl_seconds(self) -> int:
        return self.RESULT_RETENTION_DAYS * SECONDS_PER_DAY

    @property
    def error_ttl_seconds(self) -> int:
        return self.ERROR_RETENTION_DAYS * SECONDS_PER_DAY

    def region_catalog(self) -> RegionCatalog:
        return RegionCatalog.from_mappings(
            order=self.REGION_ORDER,
            location_hints=self.REGION_LOCATION_HINTS,
            representative_codes=self.REGION_REPRESENTATIVE_CODES,
            acceptable_codes=self.REGION_ACCEPTABLE_CODES,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
