"""Data models for Storage Kit"""

from .descriptor import ProviderType, StorageDescriptor
from .file_entry import EntityRelation, FileEntry, VariantType
from .options import (
    FakeOptions,
    ImageProcessingOptions,
    ImageSizeOption,
    LocalOptions,
    S3Options,
    SftpOptions,
)
from .requests import (
    ArchiveResponse,
    DeleteResponse,
    ProviderListResponse,
    ProviderResponse,
    UpdateOptionsRequest,
    UploadResponse,
    UrlResponse,
)

__all__ = [
    "ProviderType",
    "StorageDescriptor",
    "EntityRelation",
    "FileEntry",
    "VariantType",
    "FakeOptions",
    "ImageProcessingOptions",
    "ImageSizeOption",
    "LocalOptions",
    "S3Options",
    "SftpOptions",
    "ArchiveResponse",
    "DeleteResponse",
    "ProviderListResponse",
    "ProviderResponse",
    "UpdateOptionsRequest",
    "UploadResponse",
    "UrlResponse",
]
