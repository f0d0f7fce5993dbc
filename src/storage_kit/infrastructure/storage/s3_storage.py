"""S3/MinIO Storage Implementation

S3-compatible storage using aioboto3 for non-blocking async I/O.
Supports AWS S3 and self-hosted MinIO/LocalStack via endpoint_url.
"""

import logging
from typing import Any, AsyncGenerator, AsyncIterator, Dict, List, Optional
from uuid import uuid4

import aioboto3
from botocore.exceptions import ClientError

from storage_kit.exceptions import StorageError, StorageValidationError
from storage_kit.infrastructure.storage.provider import StorageExecutor, archive_location
from storage_kit.models.descriptor import ProviderType
from storage_kit.models.options import S3Options

logger = logging.getLogger(__name__)

MULTIPART_THRESHOLD = 8 * 1024 * 1024
MULTIPART_PART_SIZE = 8 * 1024 * 1024

NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
NO_BUCKET_CODES = {"NoSuchBucket", "404", "NotFound"}


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "Unknown")


class S3Storage(StorageExecutor):
    """S3/MinIO storage executor.

    Locations are stored under ``{prefix}/{location}`` in the configured
    bucket. Streams shorter than MULTIPART_THRESHOLD go up with a single
    put_object; longer ones use a multipart upload.
    """

    provider_type = ProviderType.S3
    options_type = S3Options

    def __init__(self, options: S3Options, name: Optional[str] = None):
        """Initialize S3 storage executor.

        Args:
            options: S3Options (bucket_name is required)
            name: Display name recorded on created entries

        Raises:
            StorageConfigurationError: If options are missing or invalid
        """
        super().__init__(options, name)
        self._configure()

    def _configure(self) -> None:
        # Credentials fall back to the default boto3 chain when not set
        self.session = aioboto3.Session(
            aws_access_key_id=self.options.access_key_id,
            aws_secret_access_key=self.options.secret_access_key,
            region_name=self.options.region
        )
        self._bucket_checked = False

        logger.info(
            f"S3 storage initialized - bucket: {self.options.bucket_name}, "
            f"region: {self.options.region}, "
            f"endpoint: {self.options.endpoint_url or 'AWS'}"
        )

    def update_options(self, options: S3Options) -> None:
        super().update_options(options)
        self._configure()

    def _client(self):
        return self.session.client(
            "s3",
            region_name=self.options.region,
            endpoint_url=self.options.endpoint_url
        )

    def _build_key(self, location: str) -> str:
        """Build the object key for a location.

        Structure: {prefix}/{location}, or {location} without a prefix

        Raises:
            StorageValidationError: If the location is empty
        """
        if not location or not location.strip():
            raise StorageValidationError("Storage location is required.")

        location = location.replace("\\", "/").lstrip("/")
        prefix = (self.options.prefix or "").strip("/")
        return f"{prefix}/{location}" if prefix else location

    def _extra_args(self, content_type: str) -> Dict[str, Any]:
        """Object parameters applied to every write."""
        return {"ContentType": content_type, **self._object_args()}

    def _object_args(self) -> Dict[str, Any]:
        """Encryption, storage class and ACL settings, shared by writes and copies."""
        args: Dict[str, Any] = {}

        if self.options.use_server_side_encryption:
            if self.options.kms_key_id:
                args["ServerSideEncryption"] = "aws:kms"
                args["SSEKMSKeyId"] = self.options.kms_key_id
            else:
                args["ServerSideEncryption"] = "AES256"
        if self.options.storage_class:
            args["StorageClass"] = self.options.storage_class
        if self.options.canned_acl:
            args["ACL"] = self.options.canned_acl

        return args

    async def _ensure_bucket(self, s3) -> None:
        """Create the bucket on first write when ensure_bucket_exists is set.

        Best-effort: failures are logged and the write goes ahead.
        """
        if self._bucket_checked or not self.options.ensure_bucket_exists:
            return
        self._bucket_checked = True

        bucket = self.options.bucket_name
        try:
            await s3.head_bucket(Bucket=bucket)
            return
        except ClientError as e:
            if _error_code(e) not in NO_BUCKET_CODES:
                logger.warning(f"Could not check S3 bucket {bucket}: {e}")
                return

        try:
            params: Dict[str, Any] = {"Bucket": bucket}
            if self.options.region and self.options.region != "us-east-1":
                params["CreateBucketConfiguration"] = {"LocationConstraint": self.options.region}
            await s3.create_bucket(**params)
            logger.info(f"Created S3 bucket: {bucket}")
        except Exception as e:
            logger.warning(f"Could not create S3 bucket {bucket}: {e}")

    async def write_stream(
        self,
        location: str,
        chunks: AsyncIterator[bytes],
        content_type: str
    ) -> int:
        key = self._build_key(location)
        extra_args = self._extra_args(content_type)

        try:
            async with self._client() as s3:
                await self._ensure_bucket(s3)

                buffer = bytearray()
                async for chunk in chunks:
                    buffer.extend(chunk)
                    if len(buffer) >= MULTIPART_THRESHOLD:
                        size = await self._multipart_upload(s3, key, buffer, chunks, extra_args)
                        break
                else:
                    size = len(buffer)
                    await s3.put_object(
                        Bucket=self.options.bucket_name,
                        Key=key,
                        Body=bytes(buffer),
                        **extra_args
                    )

        except ClientError as e:
            error_code = _error_code(e)
            logger.error(f"S3 upload failed for {key} (error: {error_code}): {e}")
            raise StorageError(f"S3 upload failed: {error_code}") from e

        logger.info(f"Uploaded {size} bytes to S3: s3://{self.options.bucket_name}/{key}")
        return size

    async def _multipart_upload(
        self,
        s3,
        key: str,
        buffer: bytearray,
        chunks: AsyncIterator[bytes],
        extra_args: Dict[str, Any]
    ) -> int:
        bucket = self.options.bucket_name
        response = await s3.create_multipart_upload(Bucket=bucket, Key=key, **extra_args)
        upload_id = response["UploadId"]
        parts: List[Dict[str, Any]] = []
        size = 0

        async def upload_part(data: bytes) -> None:
            part_number = len(parts) + 1
            result = await s3.upload_part(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data
            )
            parts.append({"ETag": result["ETag"], "PartNumber": part_number})

        try:
            while True:
                while len(buffer) >= MULTIPART_PART_SIZE:
                    await upload_part(bytes(buffer[:MULTIPART_PART_SIZE]))
                    size += MULTIPART_PART_SIZE
                    del buffer[:MULTIPART_PART_SIZE]

                chunk = await anext(chunks, None)
                if chunk is None:
                    break
                buffer.extend(chunk)

            if buffer or not parts:
                await upload_part(bytes(buffer))
                size += len(buffer)

            await s3.complete_multipart_upload(
                Bucket=bucket,
                Key=key,
                UploadId=upload_id,
                MultipartUpload={"Parts": parts}
            )

        except BaseException:
            try:
                await s3.abort_multipart_upload(Bucket=bucket, Key=key, UploadId=upload_id)
            except Exception as e:
                logger.warning(f"Could not abort multipart upload {upload_id} for {key}: {e}")
            raise

        return size

    async def download_stream(self, location: str) -> AsyncGenerator[bytes, None]:
        key = self._build_key(location)

        async with self._client() as s3:
            try:
                response = await s3.get_object(Bucket=self.options.bucket_name, Key=key)
            except ClientError as e:
                error_code = _error_code(e)
                if error_code in NOT_FOUND_CODES:
                    raise self._not_found(location) from e
                logger.error(f"S3 download failed (error: {error_code}): {e}")
                raise StorageError(f"S3 download failed: {error_code}") from e

            async for chunk in response["Body"].iter_chunks(chunk_size=65536):  # 64KB chunks
                yield chunk

            logger.debug(f"Streamed file from S3: s3://{self.options.bucket_name}/{key}")

    async def delete(self, location: str) -> bool:
        """Delete an object from S3.

        Returns:
            True if deleted, False if the object does not exist
        """
        key = self._build_key(location)

        async with self._client() as s3:
            if not await self._head(s3, key):
                logger.warning(f"File not found for deletion: {key}")
                return False

            try:
                await s3.delete_object(Bucket=self.options.bucket_name, Key=key)
            except ClientError as e:
                error_code = _error_code(e)
                logger.error(f"S3 delete failed for {key} (error: {error_code}): {e}")
                raise StorageError(f"S3 delete failed: {error_code}") from e

        logger.info(f"Deleted file from S3: s3://{self.options.bucket_name}/{key}")
        return True

    async def _head(self, s3, key: str) -> bool:
        try:
            await s3.head_object(Bucket=self.options.bucket_name, Key=key)
            return True
        except ClientError as e:
            error_code = _error_code(e)
            if error_code in NOT_FOUND_CODES:
                return False
            logger.error(f"Error checking file existence for {key}: {e}")
            raise StorageError(f"S3 head failed: {error_code}") from e

    async def file_exists(self, location: str) -> bool:
        key = self._build_key(location)
        async with self._client() as s3:
            return await self._head(s3, key)

    async def archive(self, location: str) -> bool:
        """Copy the object to its archive key, then delete the original.

        Note:
            Relies on a single copy_object call, so objects above 5GB cannot be archived
        """
        return await self._move(
            self._build_key(location),
            self._build_key(archive_location(location)),
            "archive"
        )

    async def unarchive(self, location: str) -> bool:
        return await self._move(
            self._build_key(archive_location(location)),
            self._build_key(location),
            "unarchive"
        )

    async def _move(self, source: str, target: str, action: str) -> bool:
        bucket = self.options.bucket_name

        async with self._client() as s3:
            if not await self._head(s3, source):
                logger.warning(f"File not found for {action}: {source}")
                return False

            try:
                await s3.copy_object(
                    Bucket=bucket,
                    Key=target,
                    CopySource={"Bucket": bucket, "Key": source},
                    MetadataDirective="COPY",
                    **self._object_args()
                )
                await s3.delete_object(Bucket=bucket, Key=source)
            except ClientError as e:
                error_code = _error_code(e)
                logger.error(f"S3 {action} failed for {source} (error: {error_code}): {e}")
                raise StorageError(f"S3 {action} failed: {error_code}") from e

        logger.info(f"S3 {action}: s3://{bucket}/{source} -> {target}")
        return True

    async def generate_url(self, location: str, expiration: Optional[int] = None) -> str:
        """Generate presigned GET URL for direct file access.

        Args:
            location: Storage location
            expiration: URL lifetime in seconds (default: presigned_url_expiration_seconds)
        """
        key = self._build_key(location)
        expiration = expiration or self.options.presigned_url_expiration_seconds

        try:
            async with self._client() as s3:
                url = await s3.generate_presigned_url(
                    "get_object",
                    Params={"Bucket": self.options.bucket_name, "Key": key},
                    ExpiresIn=expiration
                )
        except ClientError as e:
            logger.error(f"Failed to generate presigned URL for {key}: {e}")
            raise StorageError(f"Could not generate signed URL: {_error_code(e)}") from e

        logger.debug(f"Generated presigned URL for {key} (expires in {expiration}s)")
        return url

    async def health_check(self) -> bool:
        """Check S3 health by putting and deleting a marker object."""
        key = self._build_key(f".health_check/{uuid4().hex}")

        try:
            async with self._client() as s3:
                await s3.put_object(Bucket=self.options.bucket_name, Key=key, Body=b"ok")
                try:
                    await s3.delete_object(Bucket=self.options.bucket_name, Key=key)
                except Exception as e:
                    logger.warning(f"Could not remove S3 health check object {key}: {e}")

        except Exception as e:
            logger.error(f"S3 health check failed: {e}")
            return False

        logger.debug(f"S3 health check passed for bucket: {self.options.bucket_name}")
        return True
