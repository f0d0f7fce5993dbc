"""Local Filesystem Storage Implementation

Async local file storage for development and self-hosted deployments.
Uses aiofiles for non-blocking I/O.
"""

import logging
import os
from pathlib import Path
from typing import AsyncGenerator, AsyncIterator, Optional
from urllib.parse import quote
from uuid import uuid4

import aiofiles

from storage_kit.core.uploads import CHUNK_SIZE
from storage_kit.exceptions import StorageError, StorageSecurityError, StorageValidationError
from storage_kit.infrastructure.storage.provider import StorageExecutor, archive_location
from storage_kit.models.descriptor import ProviderType
from storage_kit.models.options import LocalOptions

logger = logging.getLogger(__name__)


class LocalStorage(StorageExecutor):
    """Local filesystem storage executor.

    Every location resolves under the configured base path; anything that
    would escape it is rejected before touching the disk.
    """

    provider_type = ProviderType.LOCAL
    options_type = LocalOptions

    def __init__(self, options: Optional[LocalOptions] = None, name: Optional[str] = None):
        """Initialize local storage executor.

        Args:
            options: LocalOptions (defaults to ./Files)
            name: Display name recorded on created entries
        """
        super().__init__(options, name)
        self._configure()

    def _configure(self) -> None:
        self.base_path = Path(self.options.path).resolve()

        if self.options.ensure_base_path_exists:
            self.base_path.mkdir(parents=True, exist_ok=True)

        logger.info(f"Local storage initialized at: {self.base_path}")

    def update_options(self, options: LocalOptions) -> None:
        super().update_options(options)
        self._configure()

    def _get_path(self, location: str) -> Path:
        """Get full filesystem path from a storage location.

        Args:
            location: Storage location (relative path)

        Returns:
            Resolved absolute path

        Raises:
            StorageValidationError: If the location is empty
            StorageSecurityError: If the path escapes the base path
        """
        if not location or not location.strip():
            raise StorageValidationError("Storage location is required.")

        # Prevent directory traversal (e.g. "../../etc/passwd" or absolute paths)
        safe_path = (self.base_path / location.replace("\\", "/")).resolve()

        if safe_path == self.base_path or not safe_path.is_relative_to(self.base_path):
            logger.error(f"Path traversal attempt detected: {location}")
            raise StorageSecurityError(f"Location escapes the storage root: {location}")

        return safe_path

    async def write_stream(
        self,
        location: str,
        chunks: AsyncIterator[bytes],
        content_type: str
    ) -> int:
        file_path = self._get_path(location)
        size = 0

        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)

            async with aiofiles.open(file_path, "wb") as out_file:
                async for chunk in chunks:
                    await out_file.write(chunk)
                    size += len(chunk)

        except OSError as e:
            logger.error(f"Local write failed for {location}: {e}")
            self._discard_partial(file_path)
            raise StorageError(f"Local write failed: {e}") from e
        except BaseException:
            self._discard_partial(file_path)
            raise

        logger.info(f"Wrote {size} bytes to local storage: {file_path}")
        return size

    def _discard_partial(self, file_path: Path) -> None:
        try:
            file_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove partial file {file_path}: {e}")

    async def download_stream(self, location: str) -> AsyncGenerator[bytes, None]:
        file_path = self._get_path(location)

        if not file_path.is_file():
            raise self._not_found(location)

        try:
            async with aiofiles.open(file_path, "rb") as in_file:
                while chunk := await in_file.read(CHUNK_SIZE):
                    yield chunk

        except OSError as e:
            logger.error(f"Local read failed for {location}: {e}")
            raise StorageError(f"Local read failed: {e}") from e

        logger.debug(f"Streamed file from local storage: {file_path}")

    async def delete(self, location: str) -> bool:
        """Delete file from local filesystem.

        Note:
            Empty parent directories up to the base path are removed best-effort
        """
        file_path = self._get_path(location)

        if not file_path.is_file():
            logger.warning(f"File not found for deletion: {location}")
            return False

        try:
            os.remove(file_path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Failed to delete file {location}: {e}")
            raise StorageError(f"Local delete failed: {e}") from e

        logger.info(f"Deleted file from local storage: {file_path}")
        self._prune_empty_dirs(file_path.parent)
        return True

    def _prune_empty_dirs(self, directory: Path) -> None:
        while directory != self.base_path and directory.is_relative_to(self.base_path):
            try:
                directory.rmdir()
            except OSError:
                # Not empty
                return
            directory = directory.parent

    async def file_exists(self, location: str) -> bool:
        return self._get_path(location).is_file()

    async def archive(self, location: str) -> bool:
        """Move a file under the archive folder of the base path.

        Note:
            Replaces an earlier archived copy; empty source directories are pruned
        """
        source = self._get_path(location)

        if not source.is_file():
            logger.warning(f"File not found for archiving: {location}")
            return False

        target = self._archived_path(source)
        self._move(source, target, location, "archive")
        logger.info(f"Archived file in local storage: {target}")
        return True

    async def unarchive(self, location: str) -> bool:
        target = self._get_path(location)
        source = self._archived_path(target)

        if not source.is_file():
            logger.warning(f"No archived copy to restore for: {location}")
            return False

        self._move(source, target, location, "unarchive")
        logger.info(f"Restored archived file in local storage: {target}")
        return True

    def _archived_path(self, file_path: Path) -> Path:
        return self._get_path(archive_location(file_path.relative_to(self.base_path).as_posix()))

    def _move(self, source: Path, target: Path, location: str, action: str) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            logger.error(f"Local {action} failed for {location}: {e}")
            raise StorageError(f"Local {action} failed: {e}") from e

        self._prune_empty_dirs(source.parent)

    async def generate_url(self, location: str, expiration: Optional[int] = None) -> str:
        """URL under the public base path the storage root is served from.

        The expiration is ignored; local files are served unsigned.
        """
        relative = self._get_path(location).relative_to(self.base_path).as_posix()
        url = f"{self.options.public_base_url.rstrip('/')}/{quote(relative)}"

        logger.debug(f"Generated local URL for {location}: {url}")
        return url

    async def health_check(self) -> bool:
        """Check local storage health by writing and removing a marker file."""
        marker = self.base_path / f".health_check_{uuid4().hex}"

        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(marker, "wb") as out_file:
                await out_file.write(b"ok")
        except OSError as e:
            logger.error(f"Local storage health check failed: {e}")
            return False

        try:
            marker.unlink()
        except OSError as e:
            logger.warning(f"Could not remove health check file {marker}: {e}")

        logger.debug(f"Local storage health check passed: {self.base_path}")
        return True
