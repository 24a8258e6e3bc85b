"""Centralized application settings using pydantic settings."""

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file
# Look for .env in the backend directory or project root
env_path = Path(__file__).parent.parent.parent / ".env"
if not env_path.exists():
    env_path = Path(__file__).parent.parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path, override=False)

DEFAULT_CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000"]


class Settings(BaseSettings):
    """Environment-aware configuration (database, storage, ingestion limits)."""

    # Application settings
    app_name: str = "Tabular Ingest"
    log_level: str = "INFO"

    # Database settings
    database_url: str = Field(
        default="sqlite:///storage/workbench.sqlite",
        description="Database URL for dataset metadata and imported tables",
    )

    # Redis settings (only used by the redis import lock backend)
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # Storage settings
    uploads_dir: str = Field(
        default="storage/uploads",
        description="Directory for staged upload files (absolute or relative path)",
    )
    max_upload_bytes: int = Field(
        default=100 * 1024 * 1024,
        gt=0,
        description="Uploads larger than this are rejected",
    )

    # Ingestion settings
    preview_limit: int = Field(default=5, ge=0, description="Rows cached at upload time")
    default_preview_request_limit: int = Field(default=500, ge=1)
    max_preview_limit: int = Field(default=10_000, ge=1)
    import_batch_size: int = Field(default=200, ge=1, description="Rows per import transaction")
    max_json_element_bytes: int = Field(
        default=16 * 1024 * 1024,
        gt=0,
        description="Largest single JSON array element the decoder will buffer",
    )

    # Import locking
    import_lock_backend: Literal["local", "redis"] = "local"
    import_lock_timeout_seconds: int = Field(
        default=3600,
        gt=0,
        description="Expiry of a redis import lock if its holder dies",
    )

    # CORS settings - stored as string, converted to list by property
    cors_origins_raw: str | None = Field(
        default=None,
        validation_alias="CORS_ORIGINS",
        description="Comma-separated list of allowed CORS origins",
        exclude=True,
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def cors_origins(self) -> List[str]:
        """Parse CORS_ORIGINS from comma-separated string to list."""
        if self.cors_origins_raw is None or not self.cors_origins_raw.strip():
            return list(DEFAULT_CORS_ORIGINS)
        origins = [
            origin.strip().rstrip("/")
            for origin in self.cors_origins_raw.split(",")
            if origin.strip()
        ]
        return origins if origins else list(DEFAULT_CORS_ORIGINS)

    @field_validator("database_url", mode="before")
    @classmethod
    def fix_database_url(cls, v: str | None) -> str:
        """Fix Heroku DATABASE_URL format (postgres:// -> postgresql+psycopg://)."""
        if v is None:
            return "sqlite:///storage/workbench.sqlite"
        if isinstance(v, str) and v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql+psycopg://", 1)
        return v

    @field_validator("uploads_dir", mode="after")
    @classmethod
    def resolve_uploads_dir(cls, v: str) -> str:
        """Resolve uploads_dir to absolute path for consistency across processes."""
        path = Path(v)
        if not path.is_absolute():
            # Relative paths are anchored at the backend directory
            backend_dir = Path(__file__).parent.parent.parent
            path = (backend_dir / v).resolve()
        else:
            path = path.resolve()
        path.mkdir(parents=True, exist_ok=True)
        return str(path)


@lru_cache
def get_settings() -> Settings:
    """Provide singleton-like access for dependency injection."""
    return Settings()
