"""Build provider adapters from configuration."""

from typing import Any, Optional

import httpx

from ..config.settings import ProviderConfig
from ..domain.due import DEFAULT_SOON_DAYS
from ..domain.protocols import TaskProvider
from .caldav import CalDavProvider
from .github import GitHubIssuesProvider
from .gitlab import GitLabTodoProvider
from .ical import ICalProvider
from .memory import InMemoryProvider
from .obsidian import ObsidianProvider
from .todoist import TodoistProvider


def _secret(value) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


def build_provider(
    config: ProviderConfig,
    *,
    soon_days: int = DEFAULT_SOON_DAYS,
    http_client: Optional[httpx.AsyncClient] = None,
) -> TaskProvider:
    """Create the adapter described by ``config``.

    Args:
        config: Provider configuration
        soon_days: Days ahead classified as "soon"
        http_client: Optional shared HTTP client for remote adapters

    Returns:
        A TaskProvider instance
    """
    common: dict[str, Any] = {"name": config.name, "soon_days": soon_days}
    http: dict[str, Any] = {**common, "http_client": http_client}
    if config.base_url:
        http["base_url"] = config.base_url

    if config.type == "memory":
        return InMemoryProvider(config.provider_id, **common)
    if config.type == "todoist":
        return TodoistProvider(config.provider_id, _secret(config.api_key), **http)
    if config.type == "gitlab":
        return GitLabTodoProvider(config.provider_id, _secret(config.api_key), **http)
    if config.type == "github":
        return GitHubIssuesProvider(
            config.provider_id, _secret(config.api_key), config.repository, **http
        )

    http.pop("base_url", None)
    if config.type == "ical":
        return ICalProvider(config.provider_id, config.url, **http)
    if config.type == "caldav":
        return CalDavProvider(
            config.provider_id,
            config.url,
            login=config.login,
            password=_secret(config.password),
            **http,
        )
    if config.type == "obsidian":
        return ObsidianProvider(
            config.provider_id, config.path, inbox_file=config.inbox_file, **common
        )
    raise ValueError(f"Unknown provider type: {config.type}")
