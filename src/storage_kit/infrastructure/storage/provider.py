"""Storage Executor Interface

Abstract base class defining the contract for file storage backends.
Every backend implements a handful of byte-level primitives; uploads,
entity attachment and image renditions are shared through the variant
pipeline.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, AsyncGenerator, AsyncIterator, ClassVar, List, Optional, Tuple, Type

from pydantic import BaseModel, ValidationError

from storage_kit.core.pipeline import EntityType, VariantPipeline
from storage_kit.core.uploads import UploadedFile
from storage_kit.exceptions import StorageConfigurationError, StorageNotFoundError, StorageValidationError
from storage_kit.models.descriptor import StorageDescriptor
from storage_kit.models.file_entry import FileEntry
from storage_kit.models.options import ImageProcessingOptions

logger = logging.getLogger(__name__)

ARCHIVE_FOLDER = "archive"


def coerce_options(options_type: Type[BaseModel], payload: Any) -> BaseModel:
    """Turn a descriptor's options payload into an options model.

    Args:
        options_type: Options model the backend expects
        payload: Model instance, mapping, or None for defaults

    Returns:
        Validated options model

    Raises:
        StorageConfigurationError: If the payload has the wrong type or fails validation
    """
    if isinstance(payload, options_type):
        return payload

    try:
        if payload is None:
            return options_type()
        if isinstance(payload, Mapping):
            return options_type.model_validate(dict(payload))
    except ValidationError as e:
        raise StorageConfigurationError(f"Invalid {options_type.__name__}: {e}") from e

    raise StorageConfigurationError(
        f"Expected {options_type.__name__} options, got {type(payload).__name__}"
    )


def archive_location(location: str) -> str:
    """Location a file is moved to when archived: archive/{location}.

    Raises:
        StorageValidationError: If the location is empty
    """
    if not location or not location.strip():
        raise StorageValidationError("Storage location is required.")
    relative = location.replace("\\", "/").lstrip("/")
    return f"{ARCHIVE_FOLDER}/{relative}"


async def _single_chunk(data: bytes) -> AsyncIterator[bytes]:
    yield data


class StorageExecutor(ABC):
    """Abstract storage executor bound to one configured backend.

    Subclasses declare their options model in ``options_type`` and the
    characters their medium cannot hold in file names in
    ``invalid_name_chars``.
    """

    provider_type: ClassVar[str] = "storage"
    options_type: ClassVar[Type[BaseModel]]
    invalid_name_chars: ClassVar[str] = '<>:"/\\|?*'

    def __init__(self, options: BaseModel, name: Optional[str] = None):
        self.options = coerce_options(self.options_type, options)
        self.provider_name = name or self.provider_type

    @classmethod
    def from_descriptor(cls, descriptor: StorageDescriptor) -> "StorageExecutor":
        """Executor factory used by the resolver's registration table."""
        return cls(descriptor.options, name=descriptor.name)

    @property
    def image_options(self) -> Optional[ImageProcessingOptions]:
        return getattr(self.options, "image_processing", None)

    def update_options(self, options: BaseModel) -> None:
        """Swap in a new options payload of this executor's options_type.

        Raises:
            StorageConfigurationError: If options has the wrong type
        """
        if not isinstance(options, self.options_type):
            raise StorageConfigurationError(
                f"{type(self).__name__} expects {self.options_type.__name__}, "
                f"got {type(options).__name__}"
            )
        self.options = options
        logger.info(f"Options updated for {self.provider_name}")

    # ------------------------------------------------------------------
    # Upload operations
    # ------------------------------------------------------------------

    async def create(
        self,
        upload: UploadedFile,
        category: str,
        entity_type: EntityType = None
    ) -> FileEntry:
        """Store an upload without renditions.

        Args:
            upload: Uploaded file
            category: Logical partition (e.g. "Users")
            entity_type: Entity tag used in the address, default "General"

        Returns:
            Primary FileEntry
        """
        primary, _ = await self._run(upload, category, entity_type, None, generate_variants=False)
        return primary

    async def create_for_entity(
        self,
        entity: Any,
        upload: UploadedFile,
        category: str,
        entity_type: EntityType = None
    ) -> FileEntry:
        """Store an upload and link it to an entity.

        Raises:
            StorageValidationError: If the entity has no usable identifier
        """
        if entity is None:
            raise StorageValidationError("Entity instance must be provided to link file entries.")
        primary, _ = await self._run(upload, category, entity_type, entity, generate_variants=False)
        return primary

    async def create_with_variants(
        self,
        upload: UploadedFile,
        category: str,
        entity_type: EntityType = None,
        entity: Any = None
    ) -> Tuple[FileEntry, List[FileEntry]]:
        """Store an upload and, for images, its resized renditions.

        Returns:
            Tuple of (primary entry, variant entries)
        """
        return await self._run(upload, category, entity_type, entity, generate_variants=True)

    async def _run(
        self,
        upload: UploadedFile,
        category: str,
        entity_type: EntityType,
        entity: Any,
        generate_variants: bool
    ) -> Tuple[FileEntry, List[FileEntry]]:
        pipeline = VariantPipeline(self, self.image_options)
        return await pipeline.run(
            upload,
            category,
            entity_type=entity_type,
            entity=entity,
            generate_variants=generate_variants,
        )

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def write_stream(
        self,
        location: str,
        chunks: AsyncIterator[bytes],
        content_type: str
    ) -> int:
        """Persist a stream of bytes at a location.

        Args:
            location: Address relative to the backend root
            chunks: Async iterator of byte chunks, consumed once
            content_type: MIME type

        Returns:
            Number of bytes written

        Raises:
            StorageSecurityError: If the location escapes the backend root
            StorageError: If the write fails
        """
        pass

    async def write_bytes(self, location: str, data: bytes, content_type: str) -> int:
        return await self.write_stream(location, _single_chunk(data), content_type)

    @abstractmethod
    async def download_stream(self, location: str) -> AsyncGenerator[bytes, None]:
        """Stream file content as bytes.

        Args:
            location: Address returned in a FileEntry

        Yields:
            Chunks of file bytes

        Raises:
            StorageNotFoundError: If nothing is stored at the location
        """
        pass

    async def read(self, location: str) -> bytes:
        """Read a whole file into memory.

        Raises:
            StorageNotFoundError: If nothing is stored at the location
        """
        return b"".join([chunk async for chunk in self.download_stream(location)])

    @abstractmethod
    async def delete(self, location: str) -> bool:
        """Delete a file.

        Returns:
            True if deleted, False if nothing was stored at the location
        """
        pass

    @abstractmethod
    async def file_exists(self, location: str) -> bool:
        """Check if a file exists at the location."""
        pass

    @abstractmethod
    async def archive(self, location: str) -> bool:
        """Move a file into the archive area at archive_location(location).

        An earlier archived copy at the same address is replaced.

        Returns:
            True if moved, False if nothing was stored at the location
        """
        pass

    @abstractmethod
    async def unarchive(self, location: str) -> bool:
        """Move an archived file back to its original location.

        Args:
            location: The file's location before it was archived

        Returns:
            True if restored, False if no archived copy exists
        """
        pass

    @abstractmethod
    async def generate_url(self, location: str, expiration: Optional[int] = None) -> str:
        """URL the file can be fetched from directly.

        Args:
            location: Address returned in a FileEntry
            expiration: Lifetime in seconds, for backends that sign URLs

        Returns:
            URL string
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the backend is reachable and writable.

        Returns:
            True if healthy, False otherwise
        """
        pass

    async def close(self) -> None:
        """Release connections and sessions held by the executor."""
        return None

    def _not_found(self, location: str) -> StorageNotFoundError:
        logger.warning(f"File not found in {self.provider_name}: {location}")
        return StorageNotFoundError(f"File not found: {location}")
