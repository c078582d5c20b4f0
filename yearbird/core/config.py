"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or .env file."""
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Application
    app_name: str = "Yearbird"
    debug: bool = False

    # Server
    host: str = "127.0.0.1"  # Single-user service, local by default
    port: int = 8000
    allowed_origins: str = "*"  # Comma-separated origins, or "*" for all

    # Database (session slots)
    database_url: str = "sqlite:///./yearbird.db"

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/auth/callback"

    # Cloud sync
    cloud_config_file_name: str = "yearbird-config.json"
    cloud_sync_debounce_seconds: float = 2.0
    drive_request_timeout_seconds: float = 20.0
    device_id: str = ""  # Generated per process when empty
    offline: bool = False  # Drive access checks fail fast when true


settings = Settings()
