"""
Executor Resolver

Maps storage descriptors to concrete executors through a static registration
table and serializes operations per descriptor.
"""

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, ClassVar, Dict, List, Optional, Protocol, TypeVar, runtime_checkable

from storage_kit.exceptions import StorageConfigurationError
from storage_kit.models.descriptor import StorageDescriptor

if TYPE_CHECKING:
    from storage_kit.infrastructure.storage.provider import StorageExecutor

logger = logging.getLogger(__name__)

ResultT = TypeVar("ResultT")
ExecutorFactory = Callable[[StorageDescriptor], "StorageExecutor"]

MATCH_FIELDS = ("id", "name", "provider_type")

LOCK_POLL_MIN_SECONDS = 0.001
LOCK_POLL_MAX_SECONDS = 0.05


@runtime_checkable
class ConfigurableExecutor(Protocol):
    """Executors that accept options hot-swaps of a declared type."""

    options_type: ClassVar[type]

    def update_options(self, options: Any) -> None:
        ...


@dataclass(frozen=True)
class ExecutorRegistration:
    """One row of the static executor table."""

    name: str
    factory: ExecutorFactory
    match_field: str
    match_value: str

    def matches(self, descriptor: StorageDescriptor, field: str) -> bool:
        if self.match_field != field:
            return False
        value = getattr(descriptor, field, None)
        return bool(value) and str(value).casefold() == self.match_value.casefold()


@dataclass
class _LiveExecutor:
    descriptor: StorageDescriptor
    registration: ExecutorRegistration
    executor: "StorageExecutor"

    def serves(self, descriptor: StorageDescriptor, registration: ExecutorRegistration) -> bool:
        return self.descriptor is descriptor and self.registration is registration


class ProviderLock:
    """Mutual exclusion for one provider id, usable from any event loop or thread.

    Tasks on the same loop queue on a loop-local asyncio.Lock. The task at
    the head of each loop's queue then takes the shared threading.Lock,
    polling so its loop is never blocked.
    """

    def __init__(self):
        self._shared = threading.Lock()
        self._guard = threading.Lock()
        self._loop_locks: Dict[asyncio.AbstractEventLoop, asyncio.Lock] = {}

    def _loop_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        with self._guard:
            for closed in [known for known in self._loop_locks if known.is_closed()]:
                del self._loop_locks[closed]
            lock = self._loop_locks.get(loop)
            if lock is None:
                lock = self._loop_locks[loop] = asyncio.Lock()
            return lock

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        async with self._loop_lock():
            delay = LOCK_POLL_MIN_SECONDS
            while not self._shared.acquire(blocking=False):
                await asyncio.sleep(delay)
                delay = min(delay * 2, LOCK_POLL_MAX_SECONDS)
            try:
                yield
            finally:
                self._shared.release()


class ExecutorResolver:
    """Resolves and caches one executor per descriptor id.

    Every action run through with_executor() holds the descriptor's lock, so
    at most one action is in flight per descriptor id while actions against
    different ids run concurrently. The lock holds across event loops and
    threads.

    A cached executor is only reused for the descriptor object and the
    registration it was built from. Re-registering an id, or a registration
    change that redirects the descriptor, retires the old executor; it is
    closed under the provider lock before the next action runs.
    """

    def __init__(self):
        self._registrations: Dict[str, ExecutorRegistration] = {}
        self._executors: Dict[str, _LiveExecutor] = {}
        self._retired: Dict[str, List["StorageExecutor"]] = {}
        self._locks: Dict[str, ProviderLock] = {}
        self._guard = threading.Lock()

    def register_executor(
        self,
        name: str,
        factory: ExecutorFactory,
        *,
        match_field: str = "provider_type",
        match_value: Optional[str] = None,
    ) -> ExecutorRegistration:
        """Add an executor factory to the registration table.

        Args:
            name: Unique registration name (usable as a descriptor's executor_binding)
            factory: Callable building an executor from a descriptor
            match_field: Descriptor field matched against match_value (id, name or provider_type)
            match_value: Value to match, defaults to name

        Raises:
            StorageConfigurationError: On duplicate names, non-callable
                factories or unknown match fields
        """
        if not name or not name.strip():
            raise StorageConfigurationError("Executor registration name is required.")
        if not callable(factory):
            raise StorageConfigurationError(f"Executor factory for '{name}' is not callable.")
        if match_field not in MATCH_FIELDS:
            raise StorageConfigurationError(
                f"Unknown match field '{match_field}' for executor '{name}' "
                f"(expected one of: {', '.join(MATCH_FIELDS)})"
            )

        registration = ExecutorRegistration(
            name=name,
            factory=factory,
            match_field=match_field,
            match_value=match_value or name,
        )
        with self._guard:
            if name in self._registrations:
                raise StorageConfigurationError(f"Executor '{name}' is already registered.")
            self._registrations[name] = registration

        logger.debug(f"Registered executor '{name}' matching {match_field}={registration.match_value}")
        return registration

    @property
    def known_executors(self) -> List[str]:
        with self._guard:
            return list(self._registrations)

    def find_registration(self, descriptor: StorageDescriptor) -> ExecutorRegistration:
        """Find the registration serving a descriptor.

        Order: explicit executor_binding, then registrations matching the
        descriptor's id, name and provider_type (in that order), then the
        sole registration if exactly one exists.

        Raises:
            StorageConfigurationError: If nothing matches or a match is ambiguous
        """
        if descriptor is None:
            raise StorageConfigurationError("Storage descriptor is required.")

        with self._guard:
            registrations = list(self._registrations.values())

        if descriptor.executor_binding:
            for registration in registrations:
                if registration.name == descriptor.executor_binding:
                    return registration

        for field in MATCH_FIELDS:
            matches = [r for r in registrations if r.matches(descriptor, field)]
            if len(matches) == 1:
                return matches[0]
            if len(matches) > 1:
                raise StorageConfigurationError(
                    f"Ambiguous executor for provider '{descriptor}': "
                    f"{', '.join(r.name for r in matches)} all match {field}"
                )

        if len(registrations) == 1:
            return registrations[0]

        known = ", ".join(r.name for r in registrations) or "none"
        raise StorageConfigurationError(
            f"No executor found for provider '{descriptor}' "
            f"[{descriptor.provider_type}] (known executors: {known})"
        )

    def resolve_executor(self, descriptor: StorageDescriptor) -> "StorageExecutor":
        """Return the cached executor for the descriptor or create it.

        The cached executor is rebuilt when it was created for another
        descriptor object with the same id, or by another registration.
        """
        registration = self.find_registration(descriptor)

        with self._guard:
            live = self._executors.get(descriptor.id)
        if live is not None and live.serves(descriptor, registration):
            return live.executor

        try:
            created = registration.factory(descriptor)
        except StorageConfigurationError:
            raise
        except Exception as e:
            raise StorageConfigurationError(
                f"Executor '{registration.name}' could not be created for provider '{descriptor}': {e}"
            ) from e

        with self._guard:
            live = self._executors.get(descriptor.id)
            if live is not None and live.serves(descriptor, registration):
                # Lost a creation race; keep the executor already cached
                self._retired.setdefault(descriptor.id, []).append(created)
                return live.executor
            if live is not None:
                self._retired.setdefault(descriptor.id, []).append(live.executor)
            self._executors[descriptor.id] = _LiveExecutor(descriptor, registration, created)

        if live is not None:
            logger.info(f"Rebuilt executor '{registration.name}' for provider {descriptor}")
        else:
            logger.info(f"Created executor '{registration.name}' for provider {descriptor}")
        return created

    def get_live_executor(self, provider_id: str) -> Optional["StorageExecutor"]:
        with self._guard:
            live = self._executors.get(provider_id)
        return live.executor if live is not None else None

    def _lock_for(self, provider_id: str) -> ProviderLock:
        with self._guard:
            lock = self._locks.get(provider_id)
            if lock is None:
                lock = self._locks[provider_id] = ProviderLock()
            return lock

    async def with_executor(
        self,
        descriptor: StorageDescriptor,
        action: Callable[["StorageExecutor"], Awaitable[ResultT]],
    ) -> ResultT:
        """Run an action against the descriptor's executor under its lock.

        The lock is not reentrant: an action must not call with_executor()
        for the same descriptor.
        """
        if descriptor is None:
            raise StorageConfigurationError("Storage descriptor is required.")

        async with self._lock_for(descriptor.id).hold():
            executor = self.resolve_executor(descriptor)
            await self._close_retired(descriptor.id)
            return await action(executor)

    def apply_options(self, descriptor: StorageDescriptor) -> None:
        """Registry listener: react to a descriptor's options or registration changing.

        When the descriptor object differs from the one the live executor was
        built for, the id was re-registered and the executor is retired.
        Otherwise the new options are delivered, provided the executor
        declares an options_type the payload is an instance of.
        """
        with self._guard:
            live = self._executors.get(descriptor.id)
            if live is not None and live.descriptor is not descriptor:
                del self._executors[descriptor.id]
                self._retired.setdefault(descriptor.id, []).append(live.executor)
                logger.info(f"Provider {descriptor} was re-registered, retiring its executor")
                return
        if live is None:
            return

        executor = live.executor
        if not isinstance(executor, ConfigurableExecutor):
            logger.warning(f"Skipping options hot-reload for {descriptor}: executor is not configurable")
            return

        if not isinstance(descriptor.options, executor.options_type):
            logger.warning(
                f"Skipping options hot-reload for {descriptor}: expected "
                f"{executor.options_type.__name__}, got {type(descriptor.options).__name__}"
            )
            return

        executor.update_options(descriptor.options)
        logger.info(f"Applied new options to executor for {descriptor}")

    async def _close_retired(self, provider_id: str) -> None:
        with self._guard:
            retired = self._retired.pop(provider_id, [])
        await self._close_all(provider_id, retired)

    @staticmethod
    async def _close_all(provider_id: str, executors: List["StorageExecutor"]) -> None:
        for executor in executors:
            try:
                await executor.close()
            except Exception as e:
                logger.error(f"Failed to close executor for provider {provider_id}: {e}")

    async def aclose(self) -> None:
        """Close every live and retired executor and forget them."""
        with self._guard:
            live = [(provider_id, entry.executor) for provider_id, entry in self._executors.items()]
            retired = [
                (provider_id, executor)
                for provider_id, executors in self._retired.items()
                for executor in executors
            ]
            self._executors.clear()
            self._retired.clear()

        for provider_id, executor in retired + live:
            await self._close_all(provider_id, [executor])
