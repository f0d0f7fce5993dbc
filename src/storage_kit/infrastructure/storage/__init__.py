"""Storage infrastructure module.

Provides backend-agnostic file storage via the StorageExecutor interface.
"""

from storage_kit.infrastructure.storage.factory import (
    EXECUTOR_TYPES,
    OPTIONS_TYPES,
    build_default_descriptor,
    build_storage_context,
    get_options_type,
    register_default_executors,
)
from storage_kit.infrastructure.storage.provider import ARCHIVE_FOLDER, StorageExecutor, archive_location, coerce_options
from storage_kit.infrastructure.storage.local_storage import LocalStorage
from storage_kit.infrastructure.storage.memory_storage import FakeStoredFile, InMemoryStorage
from storage_kit.infrastructure.storage.s3_storage import S3Storage
from storage_kit.infrastructure.storage.sftp_storage import SftpStorage

__all__ = [
    "EXECUTOR_TYPES",
    "OPTIONS_TYPES",
    "build_default_descriptor",
    "build_storage_context",
    "get_options_type",
    "register_default_executors",
    "ARCHIVE_FOLDER",
    "StorageExecutor",
    "archive_location",
    "coerce_options",
    "LocalStorage",
    "InMemoryStorage",
    "FakeStoredFile",
    "S3Storage",
    "SftpStorage",
]
