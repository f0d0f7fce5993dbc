"""
Storage Manager

Application-facing facade: picks a provider, applies upload limits and runs
each operation through the resolver under the provider's lock.
"""

import logging
from collections.abc import Mapping
from contextlib import asynccontextmanager
from pathlib import PurePosixPath
from typing import Any, AsyncIterator, List, Optional, Tuple

from storage_kit.config.settings import Settings
from storage_kit.core.context import StorageContext
from storage_kit.core.pipeline import EntityType
from storage_kit.core.uploads import AsyncReader, UploadedFile
from storage_kit.exceptions import StorageConfigurationError, StorageNotFoundError, StorageValidationError
from storage_kit.infrastructure.storage import coerce_options, get_options_type
from storage_kit.models.descriptor import StorageDescriptor
from storage_kit.models.file_entry import FileEntry

logger = logging.getLogger(__name__)


class _LimitedReader:
    def __init__(self, reader: AsyncReader, limit: int, file_name: str):
        self._reader = reader
        self._limit = limit
        self._file_name = file_name
        self._read = 0

    async def read(self, size: int = -1) -> bytes:
        chunk = await self._reader.read(size)
        self._read += len(chunk)
        if self._read > self._limit:
            raise StorageValidationError(
                f"File too large: {self._file_name} exceeds {self._limit} bytes"
            )
        return chunk


class _LimitedUpload:
    """Wraps an upload whose declared length cannot be trusted."""

    def __init__(self, upload: UploadedFile, limit: int):
        self._upload = upload
        self._limit = limit
        self.file_name = upload.file_name
        self.length = upload.length
        self.content_type = upload.content_type

    @asynccontextmanager
    async def open_read_stream(self) -> AsyncIterator[AsyncReader]:
        async with self._upload.open_read_stream() as reader:
            yield _LimitedReader(reader, self._limit, self.file_name)


class StorageManager:
    """Business logic for file storage"""

    def __init__(self, context: StorageContext, settings: Optional[Settings] = None):
        self.context = context
        self.settings = settings

    def get_provider(self, provider_id: Optional[str] = None) -> StorageDescriptor:
        """
        Descriptor by id, or the default one

        Raises:
            StorageNotFoundError: If provider_id is unknown
            StorageConfigurationError: If no provider is registered
        """
        if provider_id:
            descriptor = self.context.registry.get_by_id(provider_id)
            if descriptor is None:
                raise StorageNotFoundError(f"Storage provider not found: {provider_id}")
            return descriptor
        return self.context.get_provider()

    def _validate_upload(self, upload: UploadedFile) -> UploadedFile:
        """
        Validate an upload against the configured limits

        Args:
            upload: Uploaded file

        Returns:
            The upload, wrapped so its stream enforces the size limit

        Raises:
            StorageValidationError: If validation fails
        """
        if upload is None:
            raise StorageValidationError("File is required.")
        if self.settings is None:
            return upload

        # Check file extension
        allowed = self.settings.allowed_extensions
        extension = PurePosixPath(upload.file_name or "").suffix.lower()
        if allowed and extension not in allowed:
            raise StorageValidationError(
                f"File type not allowed: {extension or '(none)'} (allowed: {', '.join(allowed)})"
            )

        # Check file size
        limit = self.settings.max_file_size_bytes
        if upload.length is not None and upload.length > limit:
            raise StorageValidationError(
                f"File too large: {upload.length} bytes (max: {self.settings.max_file_size_mb}MB)"
            )

        return _LimitedUpload(upload, limit)

    async def upload(
        self,
        upload: UploadedFile,
        category: str,
        entity_type: EntityType = None,
        entity: Any = None,
        generate_variants: bool = True,
        provider_id: Optional[str] = None
    ) -> Tuple[FileEntry, List[FileEntry]]:
        """
        Upload a file, with renditions for images

        Args:
            upload: Uploaded file
            category: Logical partition (e.g. "Users")
            entity_type: Entity tag used in the address
            entity: Optional entity to link the file to
            generate_variants: Derive image renditions
            provider_id: Target provider (default provider when None)

        Returns:
            Tuple of (primary entry, variant entries)

        Raises:
            StorageValidationError: If the upload or category is invalid
        """
        upload = self._validate_upload(upload)
        descriptor = self.get_provider(provider_id)

        if generate_variants:
            primary, variants = await self.context.run(
                descriptor,
                lambda executor: executor.create_with_variants(upload, category, entity_type, entity)
            )
        elif entity is not None:
            primary = await self.context.run(
                descriptor,
                lambda executor: executor.create_for_entity(entity, upload, category, entity_type)
            )
            variants = []
        else:
            primary = await self.context.run(
                descriptor,
                lambda executor: executor.create(upload, category, entity_type)
            )
            variants = []

        logger.info(
            f"Uploaded {primary.location} to {descriptor} "
            f"({primary.size} bytes, {len(variants)} variants)"
        )
        return primary, variants

    async def upload_for_entity(
        self,
        entity: Any,
        upload: UploadedFile,
        category: str,
        entity_type: EntityType = None,
        provider_id: Optional[str] = None
    ) -> FileEntry:
        """Upload a file and link it to an entity, without renditions."""
        if entity is None:
            raise StorageValidationError("Entity instance must be provided to link file entries.")
        primary, _ = await self.upload(
            upload,
            category,
            entity_type=entity_type,
            entity=entity,
            generate_variants=False,
            provider_id=provider_id,
        )
        return primary

    async def read(self, location: str, provider_id: Optional[str] = None) -> bytes:
        descriptor = self.get_provider(provider_id)
        return await self.context.run(descriptor, lambda executor: executor.read(location))

    async def open_stream(self, location: str, provider_id: Optional[str] = None) -> AsyncIterator[bytes]:
        """
        Stream a file's content

        Existence is checked under the provider's lock; the returned chunks
        are read afterwards, outside it.

        Raises:
            StorageNotFoundError: If nothing is stored at the location
        """
        descriptor = self.get_provider(provider_id)

        async def prepare(executor):
            if not await executor.file_exists(location):
                raise StorageNotFoundError(f"File not found: {location}")
            return executor.download_stream(location)

        return await self.context.run(descriptor, prepare)

    async def delete(self, location: str, provider_id: Optional[str] = None) -> bool:
        descriptor = self.get_provider(provider_id)
        deleted = await self.context.run(descriptor, lambda executor: executor.delete(location))

        if deleted:
            logger.info(f"Deleted {location} from {descriptor}")
        return deleted

    async def archive(self, location: str, provider_id: Optional[str] = None) -> bool:
        """
        Move a file into the provider's archive area

        Returns:
            True if moved, False if nothing was stored at the location
        """
        descriptor = self.get_provider(provider_id)
        archived = await self.context.run(descriptor, lambda executor: executor.archive(location))

        if archived:
            logger.info(f"Archived {location} in {descriptor}")
        return archived

    async def unarchive(self, location: str, provider_id: Optional[str] = None) -> bool:
        descriptor = self.get_provider(provider_id)
        restored = await self.context.run(descriptor, lambda executor: executor.unarchive(location))

        if restored:
            logger.info(f"Restored {location} from the archive of {descriptor}")
        return restored

    async def exists(self, location: str, provider_id: Optional[str] = None) -> bool:
        descriptor = self.get_provider(provider_id)
        return await self.context.run(descriptor, lambda executor: executor.file_exists(location))

    async def generate_url(
        self,
        location: str,
        expiration: Optional[int] = None,
        provider_id: Optional[str] = None
    ) -> str:
        descriptor = self.get_provider(provider_id)
        return await self.context.run(
            descriptor,
            lambda executor: executor.generate_url(location, expiration)
        )

    async def health_check(self, provider_id: Optional[str] = None) -> bool:
        descriptor = self.get_provider(provider_id)
        return await self.context.run(descriptor, lambda executor: executor.health_check())

    def list_providers(self) -> List[StorageDescriptor]:
        return self.context.registry.get_all()

    def update_provider_options(self, provider_id: str, payload: Any) -> StorageDescriptor:
        """
        Replace a provider's options at runtime

        Args:
            provider_id: Provider to update
            payload: Options model, or a mapping validated against the
                options model of the provider's type

        Returns:
            The updated descriptor

        Raises:
            StorageNotFoundError: If provider_id is unknown
            StorageValidationError: If the payload does not validate
        """
        descriptor = self.get_provider(provider_id)
        options_type = get_options_type(descriptor.provider_type)

        if options_type is not None:
            try:
                options = coerce_options(options_type, payload)
            except StorageConfigurationError as e:
                raise StorageValidationError(str(e)) from e
        elif isinstance(payload, Mapping):
            options = dict(payload)
        else:
            options = payload

        self.context.registry.try_update_options(descriptor.id, options)
        return descriptor
