"""
Vault Media Configuration
"""
from pydantic_settings import BaseSettings, NoDecode
from pydantic import Field, ConfigDict, field_validator
from pathlib import Path
from typing import Annotated, List
from dotenv import load_dotenv
import json
import logging

# Load .env before settings initialization
load_dotenv()


class Settings(BaseSettings):
    # API Configuration
    app_name: str = "Vault Media Service"
    app_version: str = "1.0.0"
    api_prefix: str = "/api/v1"
    host: str = Field(default="127.0.0.1", alias="VAULT_MEDIA_HOST")
    port: int = Field(default=8890, alias="VAULT_MEDIA_PORT")
    log_level: str = Field(default="INFO", alias="VAULT_MEDIA_LOG_LEVEL")

    # Vault layout
    vault_path: Path = Field(default=Path("."), alias="VAULT_MEDIA_VAULT_PATH")
    media_root_directory: str = Field(default="media", alias="VAULT_MEDIA_ROOT_DIRECTORY")

    # Batch filters
    included_file_regex: str = Field(default=".*", alias="VAULT_MEDIA_INCLUDED_FILE_REGEX")
    excluded_folders: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        alias="VAULT_MEDIA_EXCLUDED_FOLDERS",
        description="Vault-relative folder prefixes skipped by the batch run"
    )

    # Reference handling
    image_extensions: Annotated[List[str], NoDecode] = Field(
        default=["jpg", "jpeg", "png", "gif", "svg", "bmp", "tiff", "webp"],
        alias="VAULT_MEDIA_IMAGE_EXTENSIONS"
    )
    download_timeout: float = Field(default=30.0, alias="VAULT_MEDIA_DOWNLOAD_TIMEOUT")
    max_download_size: int = Field(default=50 * 1024 * 1024, alias="VAULT_MEDIA_MAX_DOWNLOAD")  # 50MB
    user_agent: str = Field(
        default="Mozilla/5.0 (X11; Linux x86_64) vault-media/1.0",
        alias="VAULT_MEDIA_USER_AGENT"
    )

    # Real-time ingest of pasted images
    realtime_update: bool = Field(default=True, alias="VAULT_MEDIA_REALTIME_UPDATE")
    pasted_image_prefix: str = Field(default="Pasted image ", alias="VAULT_MEDIA_PASTED_IMAGE_PREFIX")
    freshness_window_ms: int = Field(
        default=1000,
        alias="VAULT_MEDIA_FRESHNESS_WINDOW_MS",
        description="Creation events older than this are ignored"
    )
    use_wikilinks: bool = Field(default=True, alias="VAULT_MEDIA_USE_WIKILINKS")

    # Notices
    notice_timeout_ms: int = Field(default=10 * 1000, alias="VAULT_MEDIA_NOTICE_TIMEOUT_MS")

    model_config = ConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator('excluded_folders', 'image_extensions', mode='before')
    @classmethod
    def parse_string_list(cls, v):
        """Parse list settings from environment variable strings.

        Supports:
        - None or empty: []
        - Comma-separated: "Templates,Archive/2020" → ["Templates", "Archive/2020"]
        - JSON format: '["Templates"]' → ["Templates"]
        """
        if v is None or v == "" or v == "null":
            return []

        if isinstance(v, str):
            v = v.strip()

            if v.startswith('[') and v.endswith(']'):
                try:
                    parsed = json.loads(v)
                    if isinstance(parsed, list):
                        return [str(x) for x in parsed]
                except (json.JSONDecodeError, ValueError, TypeError):
                    pass

            return [x.strip() for x in v.split(',') if x.strip()]

        return v

    @field_validator('image_extensions')
    @classmethod
    def normalize_extensions(cls, v: List[str]) -> List[str]:
        """Store extensions lower-case and without the leading dot"""
        return [ext.lower().lstrip('.') for ext in v]

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)


# Settings instance - loads from .env and environment
settings = Settings()


def get_settings(**overrides) -> Settings:
    """Build a settings object with explicit overrides (tests, CLI flags)"""
    if not overrides:
        return settings
    return settings.model_copy(update=overrides)


__all__ = ["Settings", "settings", "get_settings"]
