"""Application configuration using pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables (prefix ``DRIVEVAULT_``)."""

    model_config = SettingsConfigDict(
        env_prefix="DRIVEVAULT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Application
    app_name: str = "drivevault"
    version: str = "0.3.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Remote roots
    folder_ids: str = Field(
        default="",
        description="Comma-separated Google Drive folder IDs to mirror",
    )
    validate_folders: bool = Field(
        default=True,
        description="Check that every root ID is an existing folder on open",
    )

    # Paths
    data_path: Path = Field(
        default=Path("./data"),
        description="Base directory for tokens, database and downloads",
    )
    token_path: Path | None = Field(
        default=None,
        description="OAuth authorized-user token file (default: <data>/driveToken.json)",
    )
    credentials_path: Path | None = Field(
        default=None,
        description="OAuth client secrets file (default: <data>/driveCredentials.json)",
    )
    database_path: Path | None = Field(
        default=None,
        description="SQLite database file (default: <data>/folderDatabase.sqlite)",
    )
    downloads_path: Path | None = Field(
        default=None,
        description="Directory for downloaded files (default: <data>/downloads)",
    )

    # Google Drive API
    scopes: list[str] = Field(
        default=["https://www.googleapis.com/auth/drive.readonly"],
        description="OAuth scopes requested for Drive access",
    )
    query_chunk_size: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Folder IDs per file-listing query",
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Items requested per page from files.list",
    )

    # Sync
    refresh_interval: int = Field(
        default=86400,
        ge=60,
        description="Seconds between scheduled refreshes (default: one day)",
    )

    # Downloads
    default_download_extension: str = Field(
        default="pdf",
        description="Extension used when the stored file name has none",
    )

    @property
    def root_folder_ids(self) -> list[str]:
        """Configured root folder IDs, whitespace stripped, empties dropped."""
        return [fid.strip() for fid in self.folder_ids.split(",") if fid.strip()]

    @property
    def resolved_token_path(self) -> Path:
        return self.token_path or self.data_path / "driveToken.json"

    @property
    def resolved_credentials_path(self) -> Path:
        return self.credentials_path or self.data_path / "driveCredentials.json"

    @property
    def resolved_database_path(self) -> Path:
        return self.database_path or self.data_path / "folderDatabase.sqlite"

    @property
    def resolved_downloads_path(self) -> Path:
        return self.downloads_path or self.data_path / "downloads"

    @property
    def database_url(self) -> str:
        """Get the async SQLite database URL."""
        return f"sqlite+aiosqlite:///{self.resolved_database_path}"


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
