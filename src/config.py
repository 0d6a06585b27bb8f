"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file).

    Variables use the ``LIFEINDEX_`` prefix, e.g. ``LIFEINDEX_PROVIDER=apple_health``.
    """

    # --- App ---
    app_name: str = "LifeIndex"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Health data provider ---
    provider: str = "memory"  # memory | apple_health
    apple_health_export_path: str = ""  # path to export.xml

    # --- Scoring ---
    scoring_config_path: str = ""  # override for the bundled scoring_config.yaml

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_prefix": "LIFEINDEX_", "env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
