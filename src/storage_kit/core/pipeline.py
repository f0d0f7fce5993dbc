"""
Variant Pipeline

Backend-agnostic upload algorithm: classify the upload, build its address,
stream the original bytes through the backend's write primitive and derive
resized JPEG renditions for images.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from tempfile import SpooledTemporaryFile
from typing import Any, AsyncIterator, BinaryIO, List, Optional, Protocol, Tuple, Union
from uuid import uuid4

from PIL import Image

from storage_kit.core.imaging import (
    IMAGES_FOLDER,
    RENDITION_CONTENT_TYPE,
    RENDITION_EXTENSION,
    create_resized_jpeg,
    get_file_type_folder,
    load_image,
)
from storage_kit.core.linking import (
    FileAttachable,
    copy_relations_from,
    entity_type_name,
    link_to_entity,
    resolve_entity_identifier,
)
from storage_kit.core.uploads import AsyncReader, UploadedFile, guess_content_type, iter_chunks
from storage_kit.exceptions import StorageValidationError
from storage_kit.models.file_entry import FileEntry, VariantType
from storage_kit.models.options import ImageProcessingOptions

logger = logging.getLogger(__name__)

DEFAULT_ENTITY_TYPE = "General"
SPOOL_MAX_SIZE = 8 * 1024 * 1024

COMPRESSED_FOLDER = "compressed"
THUMBNAILS_FOLDER = "thumbnails"

COMPRESSED_PATH_KEY = "CompressedPath"
THUMBNAIL_PATH_KEY = "ThumbnailPath"
VARIANTS_KEY = "Variants"
VARIANTS_SEPARATOR = ";"

_CONTROL_CHARS = "".join(chr(i) for i in range(32)) + "\x7f"

EntityType = Union[str, type, None]


class ByteSink(Protocol):
    """Write side of a storage backend used by the pipeline."""

    provider_name: str
    invalid_name_chars: str

    async def write_stream(
        self,
        location: str,
        chunks: AsyncIterator[bytes],
        content_type: str
    ) -> int:
        ...

    async def write_bytes(self, location: str, data: bytes, content_type: str) -> int:
        ...


@dataclass(frozen=True)
class RenditionSpec:
    variant_type: str
    folder: str
    max_width: int
    max_height: int
    quality: int


def build_renditions(options: Optional[ImageProcessingOptions]) -> List[RenditionSpec]:
    """Renditions enabled by the image processing options, in creation order."""
    if options is None or not options.enabled:
        return []

    renditions = []
    if options.create_compressed:
        renditions.append(RenditionSpec(
            variant_type=VariantType.COMPRESSED.value,
            folder=COMPRESSED_FOLDER,
            max_width=options.compressed_max_width,
            max_height=options.compressed_max_height,
            quality=options.quality,
        ))
    if options.create_thumbnail:
        renditions.append(RenditionSpec(
            variant_type=VariantType.THUMBNAIL.value,
            folder=THUMBNAILS_FOLDER,
            max_width=options.thumbnail_max_width,
            max_height=options.thumbnail_max_height,
            quality=options.quality,
        ))
    for size in options.additional_sizes:
        if not size.name:
            continue
        renditions.append(RenditionSpec(
            variant_type=size.name,
            folder=size.name,
            max_width=size.max_width,
            max_height=size.max_height,
            quality=size.quality,
        ))
    return renditions


def resolve_entity_type(entity_type: EntityType, entity: Any = None) -> str:
    if isinstance(entity_type, type):
        return entity_type.__name__
    if entity_type and entity_type.strip():
        return entity_type.strip()
    if entity is not None:
        return entity_type_name(entity)
    return DEFAULT_ENTITY_TYPE


def sanitize_stem(stem: str, invalid_chars: str) -> str:
    """Strip characters the target medium cannot store in a file name."""
    stripped = stem.translate({ord(c): None for c in invalid_chars + _CONTROL_CHARS})
    return stripped.strip(" .") or "file"


def build_folder(category: str, entity_type: str, folder_class: str) -> str:
    return "/".join(part.strip("/") for part in (category, entity_type, folder_class))


class VariantPipeline:
    """Runs one upload against a backend's write primitive.

    Stateless between calls; concurrent uploads to different addresses share
    nothing.
    """

    def __init__(self, sink: ByteSink, image_options: Optional[ImageProcessingOptions] = None):
        self.sink = sink
        self.image_options = image_options

    async def run(
        self,
        upload: UploadedFile,
        category: str,
        entity_type: EntityType = None,
        entity: Any = None,
        generate_variants: bool = True,
    ) -> Tuple[FileEntry, List[FileEntry]]:
        """Store the upload and, for images, its renditions.

        Args:
            upload: Uploaded file (single-pass stream)
            category: Caller-supplied partition (required)
            entity_type: Logical entity tag used in the address
            entity: Optional entity to attach and link the primary entry to
            generate_variants: Derive renditions for image uploads

        Returns:
            Tuple of (primary entry, created variant entries)

        Raises:
            StorageValidationError: If the upload or category is missing
        """
        if upload is None:
            raise StorageValidationError("File is required.")
        if not category or not category.strip():
            raise StorageValidationError("Category is required.")
        if entity is not None:
            resolve_entity_identifier(entity)

        file_name = re.split(r"[\\/]", upload.file_name or "")[-1]
        extension = PurePosixPath(file_name).suffix.lower()
        folder_class = get_file_type_folder(extension)
        tag = resolve_entity_type(entity_type, entity)

        file_id = uuid4().hex
        stem = sanitize_stem(PurePosixPath(file_name).stem, self.sink.invalid_name_chars)
        generated_stem = f"{file_id}-{stem}"
        folder = build_folder(category, tag, folder_class)
        location = f"{folder}/{generated_stem}{extension}"
        content_type = upload.content_type or guess_content_type(file_name)

        renditions = build_renditions(self.image_options) if generate_variants else []
        spool = None
        if renditions and folder_class == IMAGES_FOLDER:
            spool = SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE)

        try:
            async with upload.open_read_stream() as reader:
                size = await self.sink.write_stream(location, self._tee(reader, spool), content_type)

            primary = FileEntry(
                id=file_id,
                file_name=file_name,
                original_file_name=upload.file_name,
                location=location,
                category=category,
                size=size,
                content_type=content_type,
                file_extension=extension,
                variant_type=VariantType.ORIGINAL.value,
                storage_provider=self.sink.provider_name,
            )
            logger.info(f"Stored {primary.location} via {self.sink.provider_name} ({size} bytes)")

            if entity is not None:
                attach_to_entity(entity, primary)

            variants: List[FileEntry] = []
            if spool is not None:
                variants = await self._create_variants(primary, spool, renditions, folder, generated_stem)
        finally:
            if spool is not None:
                spool.close()

        return primary, variants

    async def _tee(self, reader: AsyncReader, spool: Optional[BinaryIO]) -> AsyncIterator[bytes]:
        spooled = 0
        async for chunk in iter_chunks(reader):
            if spool is not None:
                spooled += len(chunk)
                if spooled > SPOOL_MAX_SIZE:
                    # Past the in-memory limit the spool writes to disk
                    await asyncio.to_thread(spool.write, chunk)
                else:
                    spool.write(chunk)
            yield chunk

    async def _create_variants(
        self,
        primary: FileEntry,
        spool: BinaryIO,
        renditions: List[RenditionSpec],
        folder: str,
        generated_stem: str,
    ) -> List[FileEntry]:
        try:
            image = await asyncio.to_thread(load_image, spool)
        except Exception as e:
            logger.error(f"Could not decode image {primary.location}, skipping renditions: {e}")
            return []

        variants = []
        try:
            for spec in renditions:
                variant = await self._create_rendition(primary, image, spec, folder, generated_stem)
                if variant is not None:
                    variants.append(variant)
        finally:
            image.close()

        custom_paths = []
        for variant in variants:
            if variant.variant_type == VariantType.COMPRESSED.value:
                primary.metadata[COMPRESSED_PATH_KEY] = variant.location
            elif variant.variant_type == VariantType.THUMBNAIL.value:
                primary.metadata[THUMBNAIL_PATH_KEY] = variant.location
            else:
                custom_paths.append(variant.location)
        if custom_paths:
            primary.metadata[VARIANTS_KEY] = VARIANTS_SEPARATOR.join(custom_paths)

        return variants

    async def _create_rendition(
        self,
        primary: FileEntry,
        image: Image.Image,
        spec: RenditionSpec,
        folder: str,
        generated_stem: str,
    ) -> Optional[FileEntry]:
        location = f"{folder}/{spec.folder}/{generated_stem}{RENDITION_EXTENSION}"
        try:
            data = await asyncio.to_thread(
                create_resized_jpeg, image, spec.max_width, spec.max_height, spec.quality
            )
            size = await self.sink.write_bytes(location, data, RENDITION_CONTENT_TYPE)
        except Exception as e:
            logger.error(f"Failed to create {spec.variant_type} rendition at {location}: {e}")
            return None

        variant = FileEntry(
            file_name=f"{generated_stem}{RENDITION_EXTENSION}",
            original_file_name=primary.original_file_name,
            location=location,
            category=primary.category,
            size=size,
            content_type=RENDITION_CONTENT_TYPE,
            file_extension=RENDITION_EXTENSION,
            variant_type=spec.variant_type,
            storage_provider=primary.storage_provider,
        )
        copy_relations_from(variant, primary)
        logger.info(f"Created {spec.variant_type} rendition {location} ({size} bytes)")
        return variant


def attach_to_entity(entity: Any, primary: FileEntry) -> None:
    """Record the entity relation on the primary entry and hand it to the entity."""
    link_to_entity(primary, entity)
    if isinstance(entity, FileAttachable):
        entity.add_file_attachment(primary)
