"""
Storage Context

Composition root owning the provider registry and the executor resolver.
"""

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from storage_kit.core.registry import StorageProviderRegistry
from storage_kit.core.resolver import ExecutorFactory, ExecutorResolver
from storage_kit.exceptions import StorageConfigurationError
from storage_kit.models.descriptor import StorageDescriptor

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")


class StorageContext:
    """Process-wide storage state, constructed and passed explicitly.

    Wires the registry's hot-reload notifications into the resolver and
    closes every live executor on shutdown.

    Example:
        ```python
        context = StorageContext()
        register_default_executors(context.resolver)
        context.add_provider(StorageDescriptor(
            name="uploads", provider_type="local", is_default=True,
            options=LocalOptions(path="/data/uploads"),
        ))

        async with context:
            primary, variants = await context.run(
                context.registry.get_default(),
                lambda executor: executor.create_with_variants(upload, "Users", "Avatar"),
            )
        ```
    """

    def __init__(
        self,
        registry: Optional[StorageProviderRegistry] = None,
        resolver: Optional[ExecutorResolver] = None,
    ):
        self.registry = registry or StorageProviderRegistry()
        self.resolver = resolver or ExecutorResolver()
        self.registry.subscribe(self.resolver.apply_options)
        self._closed = False

    def register_executor(self, name: str, factory: ExecutorFactory, **kwargs: Any) -> None:
        self.resolver.register_executor(name, factory, **kwargs)

    def add_provider(self, descriptor: StorageDescriptor) -> StorageDescriptor:
        """Register a descriptor after checking an executor can serve it.

        Raises:
            StorageConfigurationError: If no executor registration matches
        """
        self.resolver.find_registration(descriptor)
        self.registry.register(descriptor)
        return descriptor

    def get_provider(self, provider_id: Optional[str] = None) -> StorageDescriptor:
        """Descriptor by id, or the default one when provider_id is None.

        Raises:
            StorageConfigurationError: If no matching descriptor is registered
        """
        if provider_id:
            descriptor = self.registry.get_by_id(provider_id)
            if descriptor is None:
                raise StorageConfigurationError(f"Unknown storage provider: {provider_id}")
            return descriptor

        descriptor = self.registry.get_default()
        if descriptor is None:
            raise StorageConfigurationError("No storage provider is registered.")
        return descriptor

    async def run(
        self,
        descriptor: StorageDescriptor,
        action: Callable[[Any], Awaitable[ResultT]],
    ) -> ResultT:
        if self._closed:
            raise StorageConfigurationError("Storage context is closed.")
        return await self.resolver.with_executor(descriptor, action)

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self.resolver.aclose()
        logger.info("Storage context closed")

    async def __aenter__(self) -> "StorageContext":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
