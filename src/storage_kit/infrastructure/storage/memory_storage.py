"""In-Memory Storage Implementation

Fake backend keeping files in a dict, for tests and local development.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional, Tuple

from storage_kit.core.uploads import CHUNK_SIZE
from storage_kit.exceptions import StorageValidationError
from storage_kit.infrastructure.storage.provider import StorageExecutor
from storage_kit.models.descriptor import ProviderType
from storage_kit.models.file_entry import FileEntry, utcnow
from storage_kit.models.options import FakeOptions

logger = logging.getLogger(__name__)


@dataclass
class FakeStoredFile:
    """One stored file: its bytes and, once known, the entry describing it.

    Archived files stay in place but are hidden from reads, exists and delete.
    """

    location: str
    content: bytes
    content_type: str
    created_at: datetime = field(default_factory=utcnow)
    entry: Optional[FileEntry] = None
    is_archived: bool = False


class InMemoryStorage(StorageExecutor):
    """In-memory storage executor.

    Honours max_file_size_bytes and simulates latency with operation_delay_ms.
    """

    provider_type = ProviderType.FAKE
    options_type = FakeOptions
    invalid_name_chars = "/\\"

    def __init__(self, options: Optional[FakeOptions] = None, name: Optional[str] = None):
        super().__init__(options, name)
        self._files: Dict[str, FakeStoredFile] = {}

    async def _delay(self) -> None:
        if self.options.operation_delay_ms:
            await asyncio.sleep(self.options.operation_delay_ms / 1000)

    @staticmethod
    def _key(location: str) -> str:
        if not location or not location.strip():
            raise StorageValidationError("Storage location is required.")
        return location.replace("\\", "/").lstrip("/")

    async def _run(
        self,
        upload,
        category: str,
        entity_type,
        entity: Any,
        generate_variants: bool
    ) -> Tuple[FileEntry, List[FileEntry]]:
        primary, variants = await super()._run(upload, category, entity_type, entity, generate_variants)

        for entry in [primary, *variants]:
            stored = self._files.get(entry.location)
            if stored is not None:
                stored.entry = entry

        return primary, variants

    async def write_stream(
        self,
        location: str,
        chunks: AsyncIterator[bytes],
        content_type: str
    ) -> int:
        key = self._key(location)
        await self._delay()

        limit = self.options.max_file_size_bytes
        buffer = bytearray()
        async for chunk in chunks:
            buffer.extend(chunk)
            if limit is not None and len(buffer) > limit:
                raise StorageValidationError(
                    f"File exceeds maximum size of {limit} bytes: {location}"
                )

        self._files[key] = FakeStoredFile(location=key, content=bytes(buffer), content_type=content_type)
        logger.info(f"Stored {len(buffer)} bytes in memory: {key}")
        return len(buffer)

    async def download_stream(self, location: str) -> AsyncGenerator[bytes, None]:
        key = self._key(location)
        await self._delay()

        stored = self._live(key)
        if stored is None:
            raise self._not_found(location)

        for start in range(0, len(stored.content), CHUNK_SIZE):
            yield stored.content[start:start + CHUNK_SIZE]

    async def delete(self, location: str) -> bool:
        key = self._key(location)
        await self._delay()

        if self._live(key) is None:
            logger.warning(f"File not found for deletion: {location}")
            return False
        del self._files[key]

        logger.info(f"Deleted file from memory: {key}")
        return True

    async def file_exists(self, location: str) -> bool:
        key = self._key(location)
        await self._delay()
        return self._live(key) is not None

    def _live(self, key: str) -> Optional[FakeStoredFile]:
        stored = self._files.get(key)
        return None if stored is None or stored.is_archived else stored

    async def archive(self, location: str) -> bool:
        key = self._key(location)
        await self._delay()

        stored = self._live(key)
        if stored is None:
            logger.warning(f"File not found for archiving: {location}")
            return False

        stored.is_archived = True
        logger.info(f"Archived file in memory: {key}")
        return True

    async def unarchive(self, location: str) -> bool:
        key = self._key(location)
        await self._delay()

        stored = self._files.get(key)
        if stored is None or not stored.is_archived:
            logger.warning(f"No archived copy to restore for: {location}")
            return False

        stored.is_archived = False
        logger.info(f"Restored archived file in memory: {key}")
        return True

    async def generate_url(self, location: str, expiration: Optional[int] = None) -> str:
        return f"memory://{self.provider_name}/{self._key(location)}"

    async def health_check(self) -> bool:
        return True

    def list_files(self) -> List[FakeStoredFile]:
        return list(self._files.values())

    def get_file(self, location: str) -> Optional[FakeStoredFile]:
        return self._files.get(self._key(location))

    def clear(self) -> None:
        self._files.clear()
