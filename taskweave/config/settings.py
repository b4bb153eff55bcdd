"""Application settings using Pydantic."""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


ProviderType = Literal["memory", "todoist", "gitlab", "github", "ical", "caldav", "obsidian"]

# Connection fields each provider type cannot work without
_REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "memory": (),
    "todoist": ("api_key",),
    "gitlab": ("api_key",),
    "github": ("api_key", "repository"),
    "ical": ("url",),
    "caldav": ("url",),
    "obsidian": ("path",),
}


class ProviderConfig(BaseModel):
    """Connection settings for one provider."""

    name: str
    type: ProviderType
    id: Optional[str] = Field(default=None)
    disabled: bool = Field(default=False)

    api_key: Optional[SecretStr] = Field(default=None)
    base_url: Optional[str] = Field(default=None)
    repository: Optional[str] = Field(default=None)  # owner/name
    url: Optional[str] = Field(default=None)
    login: Optional[str] = Field(default=None)
    password: Optional[SecretStr] = Field(default=None)
    path: Optional[str] = Field(default=None)
    inbox_file: str = Field(default="Inbox.md")

    @property
    def provider_id(self) -> str:
        return self.id or self.name

    @model_validator(mode="after")
    def check_required_fields(self) -> "ProviderConfig":
        missing = [f for f in _REQUIRED_FIELDS[self.type] if getattr(self, f) is None]
        if missing:
            raise ValueError(
                f"provider {self.name!r} of type {self.type} needs: {', '.join(missing)}"
            )
        return self


class EngineSettings(BaseSettings):
    """Aggregation engine configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TASKWEAVE_ENGINE_",
        extra="ignore",
    )

    # Per-call bounds, in seconds
    network_timeout: float = Field(default=30.0, gt=0)
    local_timeout: float = Field(default=5.0, gt=0)
    # Days ahead that count as "soon"
    soon_days: int = Field(default=7, ge=0)


class AppSettings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TASKWEAVE_",
        extra="ignore",
    )

    debug: bool = Field(default=False)
    # JSON list of provider objects
    providers: list[ProviderConfig] = Field(default_factory=list)

    @field_validator("providers")
    @classmethod
    def check_unique_ids(cls, value: list[ProviderConfig]) -> list[ProviderConfig]:
        seen: set[str] = set()
        for config in value:
            if config.provider_id in seen:
                raise ValueError(f"duplicate provider id {config.provider_id!r}")
            seen.add(config.provider_id)
        return value

    @property
    def enabled_providers(self) -> list[ProviderConfig]:
        return [p for p in self.providers if not p.disabled]

    # Nested settings - manually create to avoid env prefix issues
    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()


@lru_cache
def get_settings() -> AppSettings:
    """Get cached application settings."""
    return AppSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
