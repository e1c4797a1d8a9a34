"""
Tests for the connection registry.
"""
from unittest.mock import MagicMock

import pytest

from metabase_proxy.services.connections import ConnectionRegistry


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


class TestConnectionRegistry:

    def test_add_and_discard(self, registry):
        transport = MagicMock()
        
        registry.add(transport)
        assert transport in registry
        assert len(registry) == 1
        
        registry.discard(transport)
        assert transport not in registry
        assert len(registry) == 0

    def test_discard_unknown_is_noop(self, registry):
        registry.discard(MagicMock())
        assert len(registry) == 0

    def test_destroy_all_aborts_every_transport(self, registry):
        transports = [MagicMock(), MagicMock()]
        for transport in transports:
            registry.add(transport)
        
        assert registry.destroy_all() == 2
        
        for transport in transports:
            transport.abort.assert_called_once_with()
        assert len(registry) == 0

    def test_destroy_all_when_empty(self, registry):
        assert registry.destroy_all() == 0

    def test_iteration_is_a_snapshot(self, registry):
        first, second = MagicMock(), MagicMock()
        registry.add(first)
        registry.add(second)
        
        for transport in registry:
            registry.discard(transport)
        
        assert len(registry) == 0
