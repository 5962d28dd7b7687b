"""Configuration management for the document registry."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="DOCREGISTRY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Document source
    docs_root: Path = Field(default=Path("."))
    document_extensions: list[str] = Field(default_factory=lambda: [".md"])

    # Refresh behaviour
    refresh_timeout_seconds: Optional[float] = Field(default=None)
    refresh_wait: bool = Field(default=False)

    # Logging
    log_level: str = Field(default="INFO")

    @property
    def project_root(self) -> Path:
        """Get the project root directory."""
        return Path(__file__).parent.parent

    def resolve_path(self, path: Path) -> Path:
        """Resolve a path relative to the project root."""
        if path.is_absolute():
            return path
        return self.project_root / path


# Global settings instance
settings = Settings()
