"""
Configuration module for notebridge MCP Server.

Uses pydantic-settings for configuration management with environment variable support.
Settings are loaded once at start and passed around as immutable values.

Environment variables:
- OBSIDIAN_VAULT_PATH: Path to the Obsidian vault (required)
- OBSIDIAN_EXCLUDE_FOLDERS: Comma-separated folders excluded from walks
- OBSIDIAN_SKIP_HIDDEN: Skip dot-folders such as .obsidian and .trash (default: false)
- CACHE_ENABLED / CACHE_TTL: Optional tool result cache
- JIRA_BASE_URL, JIRA_TOKEN: Jira Cloud access
- CONFLUENCE_BASE_URL, CONFLUENCE_EMAIL, CONFLUENCE_TOKEN: Confluence access
- NOTEBRIDGE_LOG_LEVEL: Log level (default: INFO)
"""

from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import split_folder_list


class VaultSettings(BaseSettings):
    """Settings for the local Markdown vault."""

    vault_path: Path
    exclude_folders: str = ""
    skip_hidden: bool = False
    cache_enabled: bool = Field(
        default=False,
        validation_alias=AliasChoices("OBSIDIAN_CACHE_ENABLED", "CACHE_ENABLED", "cache_enabled"),
    )
    cache_ttl: int = Field(
        default=60,
        ge=0,
        validation_alias=AliasChoices("OBSIDIAN_CACHE_TTL", "CACHE_TTL", "cache_ttl"),
    )

    model_config = SettingsConfigDict(
        env_prefix="OBSIDIAN_",
        env_file=".env",
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    @field_validator("vault_path")
    @classmethod
    def _vault_must_exist(cls, value: Path) -> Path:
        value = value.expanduser()
        if not value.is_dir():
            raise ValueError(f"Vault path is not a directory: {value}")
        return value

    @property
    def excluded_folders(self) -> list[str]:
        return split_folder_list(self.exclude_folders)


class RemoteSettings(BaseSettings):
    """Shared settings for the remote content APIs."""

    base_url: str | None = None
    token: SecretStr | None = None
    timeout: float = 30.0
    max_retries: int = Field(default=2, ge=0)

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.token)


class JiraSettings(RemoteSettings):
    model_config = SettingsConfigDict(env_prefix="JIRA_", env_file=".env", extra="ignore", frozen=True)


class ConfluenceSettings(RemoteSettings):
    email: str | None = None

    model_config = SettingsConfigDict(env_prefix="CONFLUENCE_", env_file=".env", extra="ignore", frozen=True)

    @property
    def configured(self) -> bool:
        return super().configured and bool(self.email)


class ServerSettings(BaseSettings):
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_prefix="NOTEBRIDGE_", env_file=".env", extra="ignore", frozen=True)


class Settings(BaseModel):
    """Complete, immutable configuration for one server instance."""

    model_config = ConfigDict(frozen=True)

    vault: VaultSettings
    jira: JiraSettings = Field(default_factory=JiraSettings)
    confluence: ConfluenceSettings = Field(default_factory=ConfluenceSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)


def load_settings() -> Settings:
    """Read all settings from the environment (and .env).

    Raises:
        pydantic.ValidationError: If the vault path is missing or invalid
    """
    return Settings(
        vault=VaultSettings(),
        jira=JiraSettings(),
        confluence=ConfluenceSettings(),
        server=ServerSettings(),
    )
