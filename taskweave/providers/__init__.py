"""Provider adapters."""

from .base import BaseProvider, HttpProvider, classify_status
from .caldav import CalDavProvider
from .factory import build_provider
from .github import GitHubIssuesProvider
from .gitlab import GitLabTodoProvider
from .ical import ICalProvider
from .memory import InMemoryProvider
from .obsidian import ObsidianProvider
from .todoist import TodoistProvider

__all__ = [
    "BaseProvider",
    "CalDavProvider",
    "GitHubIssuesProvider",
    "GitLabTodoProvider",
    "HttpProvider",
    "ICalProvider",
    "InMemoryProvider",
    "ObsidianProvider",
    "TodoistProvider",
    "build_provider",
    "classify_status",
]
