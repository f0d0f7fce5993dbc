"""SFTP Storage Implementation

Remote file transfer over SSH using asyncssh.
"""

import logging
import posixpath
from typing import AsyncGenerator, AsyncIterator, Optional
from uuid import uuid4

import asyncssh

from storage_kit.core.uploads import CHUNK_SIZE
from storage_kit.exceptions import StorageError, StorageSecurityError, StorageValidationError
from storage_kit.infrastructure.storage.provider import StorageExecutor, archive_location
from storage_kit.models.descriptor import ProviderType
from storage_kit.models.options import SftpOptions

logger = logging.getLogger(__name__)


class SftpStorage(StorageExecutor):
    """SFTP storage executor.

    The SSH connection is opened lazily on first use and dropped whenever
    the options change, so the next operation reconnects with the new
    settings.
    """

    provider_type = ProviderType.SFTP
    options_type = SftpOptions

    def __init__(self, options: SftpOptions, name: Optional[str] = None):
        super().__init__(options, name)
        self._connection: Optional[asyncssh.SSHClientConnection] = None
        self._sftp: Optional[asyncssh.SFTPClient] = None

    @property
    def base_path(self) -> str:
        return posixpath.normpath(self.options.remote_path.replace("\\", "/"))

    def update_options(self, options: SftpOptions) -> None:
        super().update_options(options)
        self._disconnect()

    def _remote_path(self, location: str) -> str:
        """Remote path for a location, confined to remote_path.

        Raises:
            StorageValidationError: If the location is empty
            StorageSecurityError: If the path escapes remote_path
        """
        if not location or not location.strip():
            raise StorageValidationError("Storage location is required.")

        base = self.base_path
        path = posixpath.normpath(posixpath.join(base, location.replace("\\", "/")))

        if base == ".":
            escaped = posixpath.isabs(path) or path == "." or path.split("/")[0] == ".."
        else:
            escaped = path == base or not path.startswith(base.rstrip("/") + "/")

        if escaped:
            logger.error(f"Path traversal attempt detected: {location}")
            raise StorageSecurityError(f"Location escapes the storage root: {location}")

        return path

    async def _get_sftp(self) -> asyncssh.SFTPClient:
        if self._sftp is not None:
            return self._sftp

        options = self.options
        try:
            self._connection = await asyncssh.connect(
                options.host,
                port=options.port,
                username=options.username,
                password=options.password,
                client_keys=options.client_keys or None,
                known_hosts=options.known_hosts
            )
            self._sftp = await self._connection.start_sftp_client()
        except (OSError, asyncssh.Error) as e:
            self._disconnect()
            logger.error(f"SFTP connection to {options.host}:{options.port} failed: {e}")
            raise StorageError(f"SFTP connection failed: {e}") from e

        logger.info(f"SFTP connected to {options.host}:{options.port}")
        return self._sftp

    def _disconnect(self) -> None:
        if self._sftp is not None:
            self._sftp.exit()
            self._sftp = None
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    async def write_stream(
        self,
        location: str,
        chunks: AsyncIterator[bytes],
        content_type: str
    ) -> int:
        path = self._remote_path(location)
        sftp = await self._get_sftp()
        size = 0

        try:
            if self.options.ensure_remote_path_exists:
                await sftp.makedirs(posixpath.dirname(path), exist_ok=True)

            async with sftp.open(path, "wb") as remote_file:
                async for chunk in chunks:
                    await remote_file.write(chunk)
                    size += len(chunk)

        except (OSError, asyncssh.Error) as e:
            logger.error(f"SFTP upload failed for {location}: {e}")
            await self._discard_partial(sftp, path)
            raise StorageError(f"SFTP upload failed: {e}") from e
        except BaseException:
            await self._discard_partial(sftp, path)
            raise

        logger.info(f"Uploaded {size} bytes via SFTP: {self.options.host}:{path}")
        return size

    async def _discard_partial(self, sftp: asyncssh.SFTPClient, path: str) -> None:
        try:
            await sftp.remove(path)
        except (OSError, asyncssh.Error) as e:
            logger.warning(f"Could not remove partial SFTP file {path}: {e}")

    async def download_stream(self, location: str) -> AsyncGenerator[bytes, None]:
        path = self._remote_path(location)
        sftp = await self._get_sftp()

        try:
            async with sftp.open(path, "rb") as remote_file:
                while chunk := await remote_file.read(CHUNK_SIZE):
                    yield chunk

        except asyncssh.SFTPNoSuchFile as e:
            raise self._not_found(location) from e
        except (OSError, asyncssh.Error) as e:
            logger.error(f"SFTP download failed for {location}: {e}")
            raise StorageError(f"SFTP download failed: {e}") from e

    async def delete(self, location: str) -> bool:
        path = self._remote_path(location)
        sftp = await self._get_sftp()

        try:
            if not await sftp.isfile(path):
                logger.warning(f"File not found for deletion: {location}")
                return False
            await sftp.remove(path)

        except (OSError, asyncssh.Error) as e:
            logger.error(f"SFTP delete failed for {location}: {e}")
            raise StorageError(f"SFTP delete failed: {e}") from e

        logger.info(f"Deleted file via SFTP: {self.options.host}:{path}")
        await self._prune_empty_dirs(sftp, posixpath.dirname(path))
        return True

    async def _prune_empty_dirs(self, sftp: asyncssh.SFTPClient, directory: str) -> None:
        base = self.base_path
        while directory and directory != base and directory.startswith(base.rstrip("/") + "/"):
            try:
                await sftp.rmdir(directory)
            except asyncssh.SFTPError:
                # Not empty
                return
            directory = posixpath.dirname(directory)

    async def file_exists(self, location: str) -> bool:
        path = self._remote_path(location)
        sftp = await self._get_sftp()

        try:
            return await sftp.isfile(path)
        except (OSError, asyncssh.Error) as e:
            logger.error(f"Error checking file existence for {location}: {e}")
            raise StorageError(f"SFTP stat failed: {e}") from e

    async def archive(self, location: str) -> bool:
        source = self._remote_path(location)
        return await self._move(source, self._archived_path(source), location, "archive")

    async def unarchive(self, location: str) -> bool:
        target = self._remote_path(location)
        return await self._move(self._archived_path(target), target, location, "unarchive")

    def _archived_path(self, path: str) -> str:
        return self._remote_path(archive_location(posixpath.relpath(path, self.base_path)))

    async def _move(self, source: str, target: str, location: str, action: str) -> bool:
        """Rename source to target, replacing any file already at target."""
        sftp = await self._get_sftp()

        try:
            if not await sftp.isfile(source):
                logger.warning(f"File not found for {action}: {location}")
                return False

            await sftp.makedirs(posixpath.dirname(target), exist_ok=True)
            if await sftp.isfile(target):
                await sftp.remove(target)
            await sftp.rename(source, target)

        except (OSError, asyncssh.Error) as e:
            logger.error(f"SFTP {action} failed for {location}: {e}")
            raise StorageError(f"SFTP {action} failed: {e}") from e

        logger.info(f"SFTP {action}: {self.options.host}:{source} -> {target}")
        await self._prune_empty_dirs(sftp, posixpath.dirname(source))
        return True

    async def generate_url(self, location: str, expiration: Optional[int] = None) -> str:
        """sftp:// URL of the remote file; SFTP has no signed URLs."""
        path = self._remote_path(location)
        if not path.startswith("/"):
            path = f"/{path}"
        return f"sftp://{self.options.host}:{self.options.port}{path}"

    async def health_check(self) -> bool:
        """Check SFTP health by writing and removing a marker file."""
        try:
            path = self._remote_path(f".health_check_{uuid4().hex}")
            sftp = await self._get_sftp()
            await sftp.makedirs(self.base_path, exist_ok=True)
            async with sftp.open(path, "wb") as remote_file:
                await remote_file.write(b"ok")
        except (StorageError, OSError, asyncssh.Error) as e:
            logger.error(f"SFTP health check failed: {e}")
            return False

        try:
            await sftp.remove(path)
        except (OSError, asyncssh.Error) as e:
            logger.warning(f"Could not remove SFTP health check file {path}: {e}")

        logger.debug(f"SFTP health check passed: {self.options.host}:{self.base_path}")
        return True

    async def close(self) -> None:
        connection = self._connection
        self._disconnect()
        if connection is not None:
            await connection.wait_closed()
            logger.info(f"SFTP connection to {self.options.host} closed")
