"""Configuration settings for the application."""

from urllib.parse import quote

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database configuration
    postgres_user: str = "postgres"
    postgres_password: str = "postgres"
    postgres_db: str = "inventory"
    postgres_host: str = "localhost"
    postgres_port: int = 5432

    # Application settings
    debug: bool = False

    # Defaults applied when an item is created without these fields
    default_unit: str = "unit"
    default_category: str = "uncategorized"
    default_low_stock_threshold: float = 1.0

    # Audit record bounds
    audit_max_entries: int = 50
    audit_description_max_length: int = 500

    # View engine
    expiring_soon_days: int = 3
    fuzzy_max_query_length: int = 8

    @property
    def database_url(self) -> str:
        """Construct the database URL for async PostgreSQL connection."""
        base_url = (
            f"postgresql+asyncpg://{quote(self.postgres_user, safe='')}:{quote(self.postgres_password, safe='')}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )
        # Add SSL for Azure PostgreSQL
        if "azure" in self.postgres_host.lower() or "postgres.database" in self.postgres_host.lower():
            return f"{base_url}?ssl=require"
        return base_url


# Global settings instance
settings = Settings()
