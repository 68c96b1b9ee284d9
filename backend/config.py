"""Application configuration via environment variables."""

from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """ShareVault application settings loaded from environment variables."""

    # Required
    secret_key: str = "change-me-to-a-random-string"

    # Public URL for share and public file links
    base_url: str = "http://localhost:8080"

    # Data paths
    data_dir: Path = Path("/data")
    share_dir: Path = Path("/data/uploads/shares")
    db_path: Path = Path("/data/sharevault.db")

    # CORS (comma-separated extra origins, in addition to localhost defaults)
    cors_origins: str = ""

    log_level: str = "INFO"

    # Upload limits (0 disables the share size limit)
    max_chunk_size_mb: int = 10
    max_share_size_mb: int = 0

    # Longest allowed share lifetime in days, 0 allows "never"
    max_expiration_days: int = 0

    # Archive generation
    zip_compression_level: int = 9

    # Retention
    cleanup_interval_minutes: int = 60
    abandoned_share_hours: int = 24

    model_config = {
        "env_prefix": "SHAREVAULT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def max_chunk_size_bytes(self) -> int:
        return self.max_chunk_size_mb * 1024 * 1024

    @property
    def max_share_size_bytes(self) -> int:
        return self.max_share_size_mb * 1024 * 1024


# Singleton instance
settings = Settings()
