"""
Configuration Management using Pydantic Settings
Loads configuration from environment variables with validation
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Archive Ingestion Service", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment: development, staging, production")

    # API Settings
    api_v1_prefix: str = Field(default="/api/v1", description="API version 1 prefix")
    cors_origins: list[str] = Field(default=["*"], description="Allowed CORS origins")

    # Database - PostgreSQL (Local Docker)
    postgres_host: Optional[str] = Field(default=None, description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_user: str = Field(default="archive", description="PostgreSQL user")
    postgres_password: str = Field(default="archive_secret", description="PostgreSQL password")
    postgres_db: str = Field(default="archive_management", description="PostgreSQL database name")

    # Database - full URL (takes priority)
    database_url: Optional[str] = Field(default=None, description="Full database URL")
    db_pool_size: int = Field(default=5, description="Connection pool size")
    db_max_overflow: int = Field(default=5, description="Extra connections allowed under load")

    @property
    def database_url_resolved(self) -> str:
        """
        Construct the SQLAlchemy connection URL.
        Prioritizes DATABASE_URL over individual postgres settings,
        and falls back to a local SQLite file.
        """
        if self.database_url:
            url = self.database_url
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql://", 1)
            url = url.replace("postgresql+asyncpg://", "postgresql://")
            # psycopg2 expects sslmode, not ssl
            if "ssl=require" in url:
                url = url.replace("ssl=require", "sslmode=require")
            return url

        if self.postgres_host:
            return (
                f"postgresql://{self.postgres_user}:{self.postgres_password}"
                f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
            )

        return "sqlite:///./archives.db"

    # PDF Storage
    pdf_storage_path: str = Field(default="./public/pdfs", description="Directory for managed PDF files")
    pdf_url_prefix: str = Field(default="/pdfs", description="URL prefix for stored PDF files")

    # Ingestion
    import_concurrency: int = Field(default=3, description="Files processed concurrently per service")
    copy_small_threshold_mb: int = Field(default=10, description="Below this size use a fast local copy")
    copy_large_threshold_mb: int = Field(default=50, description="Above this size use rsync")
    copy_chunk_size: int = Field(default=1024 * 1024, description="Chunk size for streaming copy (bytes)")
    rsync_binary: str = Field(default="rsync", description="rsync executable for large files")

    # CSV Enrichment
    csv_key_column: str = Field(default="档号", description="CSV column holding the archive number")

    # Search Engine (Meilisearch)
    meilisearch_url: str = Field(default="http://localhost:7700", description="Search engine base URL")
    meili_master_key: Optional[str] = Field(default=None, description="Search engine API key")
    meilisearch_index_name: str = Field(default="archives", description="Search index name")
    search_timeout_seconds: float = Field(default=10.0, description="HTTP timeout for search engine calls")
    search_index_batch_size: int = Field(default=100, description="Documents per batch when bulk indexing")
    search_index_max_retries: int = Field(default=3, description="Attempts for single document indexing")
    search_index_backoff_ms: int = Field(default=100, description="Base backoff between indexing attempts")

    # Rate Limiting
    search_rate_limit: str = Field(default="100/minute", description="Rate limit for search endpoint")

    # Config cache
    config_cache_ttl_seconds: int = Field(default=60, description="Default TTL for cached runtime config")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()

    @field_validator("import_concurrency")
    @classmethod
    def validate_import_concurrency(cls, v: int) -> int:
        if not 1 <= v <= 10:
            raise ValueError("import_concurrency must be between 1 and 10")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Export settings instance for convenience
settings = get_settings()
