"""
Configuration management using Pydantic Settings.
All parameters are loaded from environment variables with sensible defaults.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


APP_BASE_PATH = Path(os.environ.get(
    "BANKREC_BASE_PATH",
    os.environ.get("APP_BASE_PATH", Path.cwd())
))
ENV_FILE_PATH = APP_BASE_PATH / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application
    app_env: str = Field(default="development")
    app_debug: bool = Field(default=False)
    app_log_level: str = Field(default="INFO")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Database
    database_url: str = Field(
        default="sqlite:///./data/reconciliation.db"
    )
    database_echo: bool = Field(default=False)

    # Auto-match parameters
    default_date_tolerance_days: int = Field(default=3)
    default_description_match: bool = Field(default=False)
    description_similarity_threshold: float = Field(default=0.8)

    # Money tolerances (cents)
    amount_tolerance_cents: int = Field(default=1)
    balance_tolerance_cents: int = Field(default=1)

    # Import parameters
    # "all_rows": statement becomes Processed only if no row errored
    # "any_inserted": statement becomes Processed once any row was inserted
    import_processed_policy: str = Field(default="all_rows")
    import_date_formats: List[str] = Field(
        default_factory=lambda: ["%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y"]
    )

    # Pagination
    default_page_size: int = Field(default=20)
    max_page_size: int = Field(default=200)

    # Storage
    log_dir: Path = Field(default=Path("./data/logs"))
    reports_dir: Path = Field(default=Path("./data/reports"))

    def amounts_equal(self, left_cents: int, right_cents: int) -> bool:
        """Amount equality within the configured epsilon."""
        return abs(left_cents - right_cents) <= self.amount_tolerance_cents

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
