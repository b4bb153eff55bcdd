"""Dependency injection container."""

from dataclasses import dataclass
from typing import TypeVar, Generic, Callable, Optional, Any

from .domain.protocols import TaskProvider
from .services.aggregation_service import AggregationEngine


T = TypeVar("T")


class Lazy(Generic[T]):
    """Holds the provider set or the engine until get() first builds it."""

    def __init__(self, factory: Callable[[], T]) -> None:
        self._factory = factory
        self._value: Optional[T] = None

    @property
    def built(self) -> bool:
        return self._value is not None

    def get(self) -> T:
        if self._value is None:
            self._value = self._factory()
        return self._value

    def discard(self) -> None:
        """Drop the built value; the next get() calls the factory again."""
        self._value = None


@dataclass
class Container:
    """Dependency injection container.

    Owns the provider set and the engine; the engine itself is stateless
    and receives the provider set on every call.
    """

    _providers: Optional[Lazy[list[TaskProvider]]] = None
    _engine: Optional[Lazy[AggregationEngine]] = None

    # Settings cache
    _settings: Optional[Any] = None

    @property
    def is_configured(self) -> bool:
        return self._providers is not None

    @property
    def providers(self) -> list[TaskProvider]:
        """Get the configured provider set."""
        if self._providers is None:
            raise RuntimeError("Providers not configured")
        return self._providers.get()

    @property
    def engine(self) -> AggregationEngine:
        """Get the aggregation engine, built from settings unless configured."""
        if self._engine is None:
            self._engine = Lazy(
                lambda: AggregationEngine.from_settings(self.settings.engine)
            )
        return self._engine.get()

    @property
    def settings(self) -> Any:
        """Get application settings."""
        if self._settings is None:
            from .config.settings import get_settings

            self._settings = get_settings()
        return self._settings

    def provider(self, provider_id: str) -> TaskProvider:
        """Get one provider by id."""
        for provider in self.providers:
            if provider.provider_id == provider_id:
                return provider
        raise KeyError(provider_id)

    def configure_providers(
        self, factory: Callable[[], list[TaskProvider]]
    ) -> "Container":
        """Configure the provider set."""
        self._providers = Lazy(factory)
        return self

    def configure_engine(
        self, factory: Callable[[], AggregationEngine]
    ) -> "Container":
        """Configure the aggregation engine."""
        self._engine = Lazy(factory)
        return self

    def reset(self) -> None:
        """Forget built providers, engine and settings; factories are kept."""
        for holder in (self._providers, self._engine):
            if holder is not None and holder.built:
                holder.discard()
        self._settings = None


# Global container instance
container = Container()


def get_container() -> Container:
    """Get the global container instance."""
    return container


def reset_container() -> None:
    """Replace the global container with an unconfigured one."""
    global container
    container.reset()
    container = Container()
