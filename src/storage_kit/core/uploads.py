"""
Uploaded File Abstractions

An uploaded file exposes its name, declared length, content type and a
single-pass async read stream.
"""

import io
import mimetypes
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncContextManager, AsyncIterator, Optional, Protocol, runtime_checkable

import aiofiles
from fastapi import UploadFile

CHUNK_SIZE = 65536  # 64KB


@runtime_checkable
class AsyncReader(Protocol):
    async def read(self, size: int = -1) -> bytes:
        ...


@runtime_checkable
class UploadedFile(Protocol):
    """Uploaded file contract consumed by the variant pipeline.

    The stream returned by open_read_stream() is read once, front to back;
    implementations are not required to support seeking.
    """

    file_name: str
    length: Optional[int]
    content_type: Optional[str]

    def open_read_stream(self) -> AsyncContextManager[AsyncReader]:
        ...


def guess_content_type(file_name: str) -> str:
    content_type, _ = mimetypes.guess_type(file_name)
    return content_type or "application/octet-stream"


class _BytesReader:
    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


class BytesUpload:
    """Upload backed by an in-memory byte string."""

    def __init__(self, file_name: str, data: bytes, content_type: Optional[str] = None):
        self.file_name = file_name
        self.data = data
        self.length = len(data)
        self.content_type = content_type or guess_content_type(file_name)

    @asynccontextmanager
    async def open_read_stream(self) -> AsyncIterator[AsyncReader]:
        yield _BytesReader(self.data)


class PathUpload:
    """Upload read from a file on the local disk via aiofiles."""

    def __init__(self, path: str, file_name: Optional[str] = None, content_type: Optional[str] = None):
        self.path = Path(path)
        self.file_name = file_name or self.path.name
        self.length = os.path.getsize(self.path)
        self.content_type = content_type or guess_content_type(self.file_name)

    @asynccontextmanager
    async def open_read_stream(self) -> AsyncIterator[AsyncReader]:
        async with aiofiles.open(self.path, "rb") as stream:
            yield stream


class FormUpload:
    """Adapter for FastAPI's multipart UploadFile."""

    def __init__(self, upload: UploadFile):
        self.upload = upload
        self.file_name = upload.filename or "upload"
        self.length = upload.size
        self.content_type = upload.content_type or guess_content_type(self.file_name)

    @asynccontextmanager
    async def open_read_stream(self) -> AsyncIterator[AsyncReader]:
        await self.upload.seek(0)
        yield self.upload


async def iter_chunks(reader: AsyncReader, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    while chunk := await reader.read(chunk_size):
        yield chunk
