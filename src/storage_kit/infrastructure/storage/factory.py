"""Storage Executor Factory

Static executor registration table and construction of the storage context
from service settings.
"""

import logging
from typing import Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from storage_kit.config.settings import Settings
from storage_kit.core.context import StorageContext
from storage_kit.core.resolver import ExecutorResolver
from storage_kit.exceptions import StorageConfigurationError
from storage_kit.infrastructure.storage.local_storage import LocalStorage
from storage_kit.infrastructure.storage.memory_storage import InMemoryStorage
from storage_kit.infrastructure.storage.provider import StorageExecutor
from storage_kit.infrastructure.storage.s3_storage import S3Storage
from storage_kit.infrastructure.storage.sftp_storage import SftpStorage
from storage_kit.models.descriptor import ProviderType, StorageDescriptor
from storage_kit.models.options import (
    FakeOptions,
    ImageProcessingOptions,
    LocalOptions,
    S3Options,
    SftpOptions,
)

logger = logging.getLogger(__name__)

EXECUTOR_TYPES: Dict[str, Type[StorageExecutor]] = {
    ProviderType.LOCAL: LocalStorage,
    ProviderType.S3: S3Storage,
    ProviderType.SFTP: SftpStorage,
    ProviderType.FAKE: InMemoryStorage,
}

OPTIONS_TYPES: Dict[str, Type[BaseModel]] = {
    provider_type: executor_type.options_type
    for provider_type, executor_type in EXECUTOR_TYPES.items()
}


def get_options_type(provider_type: str) -> Optional[Type[BaseModel]]:
    return OPTIONS_TYPES.get((provider_type or "").lower())


def register_default_executors(resolver: ExecutorResolver) -> None:
    """Install the built-in executors, matched on the descriptor's provider_type."""
    for provider_type, executor_type in EXECUTOR_TYPES.items():
        resolver.register_executor(provider_type, executor_type.from_descriptor)


def _image_options(settings: Settings) -> ImageProcessingOptions:
    return ImageProcessingOptions(
        enabled=settings.image_processing_enabled,
        create_thumbnail=settings.image_create_thumbnail,
        thumbnail_max_width=settings.image_thumbnail_max_width,
        thumbnail_max_height=settings.image_thumbnail_max_height,
        create_compressed=settings.image_create_compressed,
        compressed_max_width=settings.image_compressed_max_width,
        compressed_max_height=settings.image_compressed_max_height,
        quality=settings.image_quality,
    )


def build_default_descriptor(settings: Settings) -> StorageDescriptor:
    """Build the bootstrap descriptor selected by STORAGE_PROVIDER.

    Environment Variables:
        STORAGE_PROVIDER: "local", "s3", "sftp" or "fake" (default: "local")

        For local storage:
            STORAGE_LOCAL_PATH: Base directory (default: "./data/uploads")

        For S3 storage:
            S3_BUCKET_NAME: S3 bucket name (required)
            S3_REGION: AWS region (default: "us-east-1")
            S3_ENDPOINT_URL: Custom endpoint for MinIO/LocalStack (optional)

        For SFTP storage:
            SFTP_HOST: Remote host (required)
            SFTP_USERNAME / SFTP_PASSWORD: Credentials

    Example:
        ```python
        # Self-hosted deployment (docker-compose)
        STORAGE_PROVIDER=local
        STORAGE_LOCAL_PATH=/data/uploads

        # MinIO
        STORAGE_PROVIDER=s3
        S3_BUCKET_NAME=uploads
        S3_ENDPOINT_URL=http://minio:9000
        S3_ENSURE_BUCKET_EXISTS=true
        ```

    Raises:
        StorageConfigurationError: On an unknown provider type or invalid options
    """
    provider_type = settings.storage_provider.lower()
    image_processing = _image_options(settings)

    logger.info(f"Configuring default storage provider: {provider_type}")

    try:
        if provider_type == ProviderType.S3:
            options = S3Options(
                bucket_name=settings.s3_bucket_name or "",
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
                access_key_id=settings.s3_access_key_id,
                secret_access_key=settings.s3_secret_access_key,
                prefix=settings.s3_prefix,
                ensure_bucket_exists=settings.s3_ensure_bucket_exists,
                use_server_side_encryption=settings.s3_use_server_side_encryption,
                kms_key_id=settings.s3_kms_key_id,
                storage_class=settings.s3_storage_class,
                canned_acl=settings.s3_canned_acl,
                presigned_url_expiration_seconds=settings.s3_presigned_url_expiration_seconds,
                image_processing=image_processing,
            )
        elif provider_type == ProviderType.SFTP:
            options = SftpOptions(
                host=settings.sftp_host or "",
                port=settings.sftp_port,
                username=settings.sftp_username,
                password=settings.sftp_password,
                client_keys=settings.sftp_client_keys,
                known_hosts=settings.sftp_known_hosts,
                remote_path=settings.sftp_remote_path,
                image_processing=image_processing,
            )
        elif provider_type == ProviderType.FAKE:
            options = FakeOptions(
                max_file_size_bytes=settings.max_file_size_bytes,
                image_processing=image_processing,
            )
        elif provider_type == ProviderType.LOCAL:
            options = LocalOptions(
                path=settings.storage_local_path,
                public_base_url=settings.storage_public_base_url,
                image_processing=image_processing,
            )
        else:
            raise StorageConfigurationError(
                f"Unknown STORAGE_PROVIDER '{settings.storage_provider}' "
                f"(expected one of: {', '.join(EXECUTOR_TYPES)})"
            )
    except ValidationError as e:
        raise StorageConfigurationError(f"Invalid {provider_type} storage settings: {e}") from e

    return StorageDescriptor(
        name=settings.storage_provider_name,
        provider_type=provider_type,
        is_default=True,
        options=options,
    )


def build_storage_context(settings: Settings) -> StorageContext:
    """Create a storage context with the built-in executors and the bootstrap provider.

    Further providers can be added with StorageContext.add_provider().
    """
    context = StorageContext()
    register_default_executors(context.resolver)
    descriptor = context.add_provider(build_default_descriptor(settings))

    logger.info(f"Storage context initialized with default provider {descriptor} [{descriptor.provider_type}]")
    return context
