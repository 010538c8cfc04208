"""Centralized configuration for kvsearch using Pydantic Settings."""

from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kvsearch.adapters.index_store import AbstractIndexStore
from kvsearch.domain.search import BM25Options, SearchOptions


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``KVSEARCH_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="KVSEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Store settings
    index_table_name: str = Field(
        default="kvsearch-index",
        min_length=3,
        max_length=255,
        description="Name of the table holding postings and the metadata record",
    )
    store_backend: Literal["sqlite", "dynamodb"] = Field(default="sqlite", description="Index store implementation")
    sqlite_path: str = Field(default="kvsearch.db", description="SQLite database file (or ':memory:')")
    dynamodb_endpoint_url: str | None = Field(
        default=None, description="Override endpoint, e.g. http://localhost:8000 for DynamoDB Local"
    )
    aws_region: str | None = Field(default=None, description="AWS region for the DynamoDB client")

    # Search defaults
    default_max_items: int = Field(default=100, ge=0, description="Maximum hits returned when the caller sets none")
    default_min_score: float = Field(default=0.0, description="Minimum accumulated score for a hit")
    bm25_k1: float = Field(default=1.2, ge=0.0, description="BM25 term-frequency saturation")
    bm25_b: float = Field(default=0.75, ge=0.0, le=1.0, description="BM25 length normalization strength")

    # Observability
    log_level: str = Field(default="INFO", description="Root log level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")
    otlp_endpoint: str | None = Field(
        default=None, description="OTLP/HTTP collector endpoint for traces and metrics (disabled when unset)"
    )
    service_name: str = Field(default="kvsearch", description="service.name resource attribute")

    @model_validator(mode="after")
    def _check_log_level(self) -> "Settings":
        self.log_level = self.log_level.upper()
        if self.log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Invalid log level: {self.log_level}")
        return self

    def search_options(self) -> SearchOptions:
        """Default search options derived from these settings."""
        return SearchOptions(
            max_items=self.default_max_items,
            min_score=self.default_min_score,
            bm25=BM25Options(k1=self.bm25_k1, b=self.bm25_b),
        )


def create_store(settings: Settings) -> AbstractIndexStore:
    """Build the index store selected by ``settings.store_backend``."""

    if settings.store_backend == "dynamodb":
        from kvsearch.adapters.dynamodb_store import DynamoDBIndexStore

        return DynamoDBIndexStore(
            settings.index_table_name,
            endpoint_url=settings.dynamodb_endpoint_url,
            region_name=settings.aws_region,
        )

    from kvsearch.adapters.sqlite_store import SqliteIndexStore

    return SqliteIndexStore(settings.sqlite_path, settings.index_table_name)
