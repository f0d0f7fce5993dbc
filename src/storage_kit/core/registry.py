"""
Storage Provider Registry

In-memory table of storage descriptors with runtime options hot-swap.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional, Type, TypeVar

from storage_kit.models.descriptor import StorageDescriptor

logger = logging.getLogger(__name__)

OptionsT = TypeVar("OptionsT")
OptionsListener = Callable[[StorageDescriptor], None]


class StorageProviderRegistry:
    """Registry of configured storage backends.

    Safe for concurrent use from several threads. Descriptors are never
    removed; their options payload may be replaced at any time.
    """

    def __init__(self):
        self._providers: Dict[str, StorageDescriptor] = {}
        self._listeners: List[OptionsListener] = []
        self._lock = threading.RLock()

    def register(self, descriptor: StorageDescriptor) -> None:
        """Register a descriptor, replacing any existing one with the same id.

        Listeners are notified when an existing descriptor is replaced.
        """
        with self._lock:
            previous = self._providers.get(descriptor.id)
            self._providers[descriptor.id] = descriptor
            listeners = list(self._listeners)

        if previous is None:
            logger.info(f"Registered storage provider {descriptor} [{descriptor.provider_type}]")
            return

        logger.info(f"Replaced storage provider {descriptor} [{descriptor.provider_type}]")
        if previous is not descriptor:
            self._notify(listeners, descriptor)

    def get_all(self) -> List[StorageDescriptor]:
        with self._lock:
            return list(self._providers.values())

    def get_by_id(self, provider_id: str) -> Optional[StorageDescriptor]:
        with self._lock:
            return self._providers.get(provider_id)

    def get_default(self) -> Optional[StorageDescriptor]:
        """A descriptor flagged default, else the first registered one, else None.

        When several descriptors are flagged default, which one is returned is
        unspecified.
        """
        with self._lock:
            descriptors = list(self._providers.values())

        for descriptor in descriptors:
            if descriptor.is_default:
                return descriptor
        return descriptors[0] if descriptors else None

    def subscribe(self, listener: OptionsListener) -> None:
        """Register a callback invoked after a descriptor is replaced or its options change."""
        with self._lock:
            self._listeners.append(listener)

    def try_update_options(self, provider_id: str, options: object) -> bool:
        """Replace the options payload of a registered descriptor.

        Listeners are notified best-effort; their failures are logged and do
        not affect the result.

        Returns:
            True if the descriptor exists and was updated, False otherwise
        """
        with self._lock:
            descriptor = self._providers.get(provider_id)
            if descriptor is None:
                return False
            descriptor.options = options
            listeners = list(self._listeners)

        logger.info(f"Updated options for storage provider {descriptor}")
        self._notify(listeners, descriptor)
        return True

    @staticmethod
    def _notify(listeners: List[OptionsListener], descriptor: StorageDescriptor) -> None:
        for listener in listeners:
            try:
                listener(descriptor)
            except Exception as e:
                logger.warning(f"Provider change notification failed for {descriptor}: {e}")

    def try_get_options(self, provider_id: str, options_type: Type[OptionsT]) -> Optional[OptionsT]:
        """Typed fetch of a descriptor's options.

        Returns:
            The options if the descriptor exists and its payload is an
            instance of options_type, None otherwise
        """
        descriptor = self.get_by_id(provider_id)
        if descriptor is not None and isinstance(descriptor.options, options_type):
            return descriptor.options
        return None
