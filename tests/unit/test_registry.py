"""Unit tests for the storage provider registry"""

import pytest

from storage_kit.core.registry import StorageProviderRegistry
from storage_kit.models import FakeOptions, LocalOptions, StorageDescriptor


def _descriptor(name: str, is_default: bool = False, options=None) -> StorageDescriptor:
    return StorageDescriptor(name=name, provider_type="fake", is_default=is_default, options=options)


@pytest.mark.unit
class TestProviderLookup:
    """Test registration and default selection"""

    def test_empty_registry_has_no_default(self):
        registry = StorageProviderRegistry()

        assert registry.get_default() is None
        assert registry.get_all() == []

    def test_flagged_default_wins_over_first_registered(self):
        registry = StorageProviderRegistry()
        first = _descriptor("first")
        flagged = _descriptor("flagged", is_default=True)
        registry.register(first)
        registry.register(flagged)

        assert registry.get_default() is flagged

    def test_first_registered_when_none_flagged(self):
        registry = StorageProviderRegistry()
        first = _descriptor("first")
        registry.register(first)
        registry.register(_descriptor("second"))

        assert registry.get_default() is first

    def test_multiple_defaults_return_a_flagged_descriptor(self):
        registry = StorageProviderRegistry()
        registry.register(_descriptor("plain"))
        flagged = [_descriptor("a", is_default=True), _descriptor("b", is_default=True)]
        for descriptor in flagged:
            registry.register(descriptor)

        assert registry.get_default() in flagged

    def test_get_by_id(self):
        registry = StorageProviderRegistry()
        descriptor = _descriptor("one")
        registry.register(descriptor)

        assert registry.get_by_id(descriptor.id) is descriptor
        assert registry.get_by_id("missing") is None

    def test_register_same_id_replaces(self):
        registry = StorageProviderRegistry()
        original = _descriptor("one")
        replacement = StorageDescriptor(id=original.id, name="two", provider_type="fake")
        registry.register(original)
        registry.register(replacement)

        assert registry.get_all() == [replacement]


@pytest.mark.unit
class TestOptionsHotSwap:
    """Test options replacement and change notification"""

    def test_update_unknown_id_returns_false(self):
        registry = StorageProviderRegistry()
        notified = []
        registry.subscribe(notified.append)

        assert registry.try_update_options("missing", FakeOptions()) is False
        assert notified == []

    def test_update_replaces_options_and_notifies(self):
        registry = StorageProviderRegistry()
        descriptor = _descriptor("one", options=FakeOptions())
        registry.register(descriptor)
        notified = []
        registry.subscribe(notified.append)

        new_options = FakeOptions(operation_delay_ms=5)
        assert registry.try_update_options(descriptor.id, new_options) is True

        assert descriptor.options is new_options
        assert notified == [descriptor]

    def test_failing_listener_does_not_affect_result(self):
        registry = StorageProviderRegistry()
        descriptor = _descriptor("one")
        registry.register(descriptor)
        later = []

        def broken(_descriptor):
            raise RuntimeError("listener failed")

        registry.subscribe(broken)
        registry.subscribe(later.append)

        assert registry.try_update_options(descriptor.id, FakeOptions()) is True
        assert later == [descriptor]

    def test_replacing_descriptor_notifies_listeners(self):
        registry = StorageProviderRegistry()
        original = _descriptor("one")
        registry.register(original)
        notified = []
        registry.subscribe(notified.append)

        replacement = StorageDescriptor(id=original.id, name="one", provider_type="local")
        registry.register(replacement)

        assert notified == [replacement]

    def test_first_registration_and_same_object_do_not_notify(self):
        registry = StorageProviderRegistry()
        notified = []
        registry.subscribe(notified.append)
        descriptor = _descriptor("one")

        registry.register(descriptor)
        registry.register(descriptor)

        assert notified == []

    def test_typed_options_fetch(self):
        registry = StorageProviderRegistry()
        descriptor = _descriptor("one", options=FakeOptions(max_file_size_bytes=10))
        registry.register(descriptor)

        options = registry.try_get_options(descriptor.id, FakeOptions)
        assert options is not None
        assert options.max_file_size_bytes == 10

        assert registry.try_get_options(descriptor.id, LocalOptions) is None
        assert registry.try_get_options("missing", FakeOptions) is None
