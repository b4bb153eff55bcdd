"""Tests for the container that wires providers and the engine."""

import pytest

from taskweave.container import Container, Lazy, get_container, reset_container
from taskweave.providers.memory import InMemoryProvider
from taskweave.services.aggregation_service import AggregationEngine


def memory_providers():
    return [InMemoryProvider("a"), InMemoryProvider("b")]


class TestLazy:
    """Tests for the Lazy holder."""

    def test_builds_provider_set_once(self):
        built = []

        def factory():
            built.append(1)
            return memory_providers()

        holder = Lazy(factory)
        assert not holder.built

        first = holder.get()

        assert holder.built
        assert holder.get() is first
        assert len(built) == 1

    def test_discard_rebuilds(self):
        holder = Lazy(memory_providers)
        first = holder.get()

        holder.discard()

        assert not holder.built
        assert holder.get() is not first


class TestContainer:
    """Tests for Container."""

    @pytest.fixture
    def container(self) -> Container:
        return Container()

    def test_configure_providers(self, container):
        container.configure_providers(memory_providers)

        assert container.is_configured
        assert [p.provider_id for p in container.providers] == ["a", "b"]
        assert container.provider("b").provider_id == "b"

    def test_unknown_provider(self, container):
        container.configure_providers(memory_providers)

        with pytest.raises(KeyError):
            container.provider("missing")

    def test_providers_required_before_use(self, container):
        assert not container.is_configured
        with pytest.raises(RuntimeError, match="not configured"):
            _ = container.providers

    def test_configure_engine(self, container):
        engine = AggregationEngine(network_timeout=1.0)

        result = container.configure_engine(lambda: engine)

        assert result is container
        assert container.engine is engine

    def test_engine_built_from_settings(self, container):
        engine = container.engine

        assert isinstance(engine, AggregationEngine)
        assert engine.timeout_for(InMemoryProvider("a")) == container.settings.engine.local_timeout
        assert container.engine is engine

    def test_reset_rebuilds_providers(self, container):
        container.configure_providers(memory_providers)
        before = container.providers

        container.reset()

        assert container.is_configured
        assert container.providers is not before

    def test_settings_cached(self, container):
        assert container.settings is container.settings


class TestGlobalContainer:
    """Tests for get_container and reset_container."""

    def setup_method(self):
        reset_container()

    def teardown_method(self):
        reset_container()

    def test_same_instance(self):
        assert get_container() is get_container()

    def test_reset_drops_configuration(self):
        get_container().configure_providers(memory_providers)

        reset_container()

        assert not get_container().is_configured
