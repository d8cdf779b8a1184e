"""Configuration management for vidgate."""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with environment variable overrides.

    All settings can be overridden via environment variables
    prefixed with VIDGATE_ (e.g. VIDGATE_DATA_DIR, VIDGATE_PORT).
    """

    model_config = {"env_prefix": "VIDGATE_"}

    # Storage
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".vidgate",
        description="Root directory for all vidgate data",
    )

    # Server
    host: str = "127.0.0.1"
    port: int = 9094
    portal_url: str = "http://localhost:3000"

    # Media host
    media_base_url: str = "https://res.cloudinary.com/demo/video/upload"

    # Email sender
    email_endpoint: str = "http://localhost:3000/api/send-email"
    email_sender: str = "no-reply@vidgate.local"
    email_timeout: float = 10.0

    # Playback
    seek_tolerance: float = 1.0  # seconds a position may jump ahead per update

    # Users whose e-mail contains this marker are registered as admins
    admin_email_marker: str = "admin"

    @property
    def db_path(self) -> Path:
        """SQLite database path."""
        return self.data_dir / "vidgate.db"

    def ensure_dirs(self) -> None:
        """Create all required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)


# Module-level singleton: import this throughout the app
settings = Settings()
