"""Application configuration loaded from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration is loaded from environment variables (or .env file)."""

    # --- App ---
    app_name: str = "Stride Sync"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: str = "INFO"
    environment: str = "development"  # development | staging | production

    # --- Step-estimation service ---
    upload_endpoint: str = "http://localhost:8080/Podometre_JEE/fs"
    upload_timeout_seconds: float | None = None  # None = use pipeline_config.yaml
    device_label: str = "stride-sync"

    # --- Sensor ---
    sensor_source: str = "simulated"  # simulated | none
    autostart: bool = False

    # --- CORS ---
    cors_origins: list[str] = ["http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    return Settings()
