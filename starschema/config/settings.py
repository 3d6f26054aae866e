"""
Sales Star Schema
Centralized Configuration Management

Configuration for the schema contract, loaders and persistence layer using
Pydantic settings with environment variable support and validation.
"""

from functools import lru_cache
from typing import Optional
from pydantic import Field, field_validator, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Warehouse Database Configuration"""

    model_config = SettingsConfigDict(env_prefix="POSTGRES_")

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    db: str = Field(default="sales_warehouse", alias="database", description="Database name")
    user: str = Field(default="warehouse", description="Database user")
    password: SecretStr = Field(default="secure_password", description="Database password")
    echo: bool = Field(default=False, description="Echo SQL statements")
    url: Optional[str] = Field(default=None, description="Full async URL (overrides host/port)")

    @property
    def async_url(self) -> str:
        """Async database URL for asyncpg"""
        if self.url:
            return self.url
        return f"postgresql+asyncpg://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"

    @property
    def sync_url(self) -> str:
        """Sync database URL for psycopg2"""
        return f"postgresql+psycopg2://{self.user}:{self.password.get_secret_value()}@{self.host}:{self.port}/{self.db}"


class IngestionSettings(BaseSettings):
    """Bulk and Streaming Ingestion Configuration"""

    model_config = SettingsConfigDict(env_prefix="INGEST_")

    quarantine_path: str = Field(default="./data/quarantine", description="Quarantined rows output path")
    chunk_size: int = Field(default=10000, description="Rows processed per chunk")

    # Retry policy for references that do not resolve yet
    max_retries: int = Field(default=5, description="Max retries for unresolved references")
    retry_backoff_ms: int = Field(default=200, description="Initial retry backoff in milliseconds")
    backoff_multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")
    max_backoff_ms: int = Field(default=10000, description="Upper bound for a single backoff")

    # Calendar
    fiscal_year_start_month: int = Field(default=1, description="First month of the fiscal year")

    @field_validator("fiscal_year_start_month")
    @classmethod
    def validate_fiscal_month(cls, v: int) -> int:
        """Fiscal year must start on a calendar month"""
        if not 1 <= v <= 12:
            raise ValueError("fiscal_year_start_month must be between 1 and 12")
        return v


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="sales-star-schema", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")
    debug: bool = Field(default=False, alias="DEBUG", description="Debug mode")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.app_env == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
