import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Set

import aiofiles
import aiofiles.os

import config
from filedrop.errors import IOFailure, NotFound, SizeLimitExceeded
from logger_config import setup_logger

logger = setup_logger()

STORED_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9._-]+$')
MAX_EXTENSION_LENGTH = 16


@dataclass
class StoredBlob:
    stored_name: str
    size: int


class BlobReader:
    """An opened blob. Iterating it streams the content and closes the file."""

    def __init__(self, handle, size: int, chunk_size: int):
        self._handle = handle
        self._chunk_size = chunk_size
        self._closed = False
        self.size = size

    async def __aiter__(self):
        try:
            while chunk := await self._handle.read(self._chunk_size):
                yield chunk
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        chunks = [chunk async for chunk in self]
        return b"".join(chunks)

    async def aclose(self):
        if not self._closed:
            self._closed = True
            await self._handle.close()


class BlobStore:
    def __init__(self, data_dir: Path, temp_dir: Path,
                 max_size: int = config.MAX_UPLOAD_SIZE, chunk_size: int = config.CHUNK_SIZE):
        self.data_dir = data_dir
        self.temp_dir = temp_dir
        self.max_size = max_size
        self.chunk_size = chunk_size

    async def initialize(self):
        """Create the storage directories and drop partial writes left by a crash."""
        logger.info("Initializing blob store...")

        self.data_dir.mkdir(exist_ok=True, parents=True)
        self.temp_dir.mkdir(exist_ok=True, parents=True)
        logger.debug(f"Storage directories created/verified: {self.data_dir}, {self.temp_dir}")

        files_removed = 0
        for file in self.temp_dir.glob("*"):
            if file.is_file():
                await aiofiles.os.unlink(file)
                files_removed += 1
        logger.info(f"Cleaned temporary directory, removed {files_removed} files")

    @staticmethod
    def new_stored_name(original_name: str) -> str:
        """Random name for a new blob, keeping a plain extension of the original."""
        stored_name = uuid.uuid4().hex
        extension = os.path.splitext(original_name)[1][1:].lower()
        if extension.isascii() and extension.isalnum() and len(extension) <= MAX_EXTENSION_LENGTH:
            stored_name = f"{stored_name}.{extension}"
        return stored_name

    def get_blob_path(self, stored_name: str) -> Path:
        """Path of a blob, sharded by the first two characters of its name."""
        if not STORED_NAME_PATTERN.match(stored_name) or stored_name.startswith("."):
            raise NotFound(f"Invalid stored name: {stored_name!r}")
        return self.data_dir / stored_name[:2] / stored_name

    async def put(self, stream, suggested_name: str) -> StoredBlob:
        """Stream ``stream`` into a new blob.

        Args:
            stream: Object with an async ``read(size)`` returning ``b""`` at the end
            suggested_name: The client's original filename

        Returns:
            StoredBlob: The generated stored name and the number of bytes written

        Raises:
            SizeLimitExceeded: The stream holds more than ``max_size`` bytes
            IOFailure: The blob could not be written
        """
        stored_name = self.new_stored_name(suggested_name)
        blob_path = self.get_blob_path(stored_name)
        temp_path = self.temp_dir / f"{stored_name}.part"

        size = 0
        try:
            # Exclusive create: a name clash fails instead of overwriting
            async with aiofiles.open(temp_path, 'xb') as f:
                while chunk := await stream.read(self.chunk_size):
                    size += len(chunk)
                    if size > self.max_size:
                        raise SizeLimitExceeded(f"Upload exceeds maximum allowed size ({self.max_size} bytes)")
                    await f.write(chunk)

            await aiofiles.os.makedirs(blob_path.parent, exist_ok=True)
            await aiofiles.os.rename(str(temp_path), str(blob_path))
        except SizeLimitExceeded:
            logger.info(f"Rejected upload of {suggested_name!r}: larger than {self.max_size} bytes")
            await self._discard(temp_path)
            raise
        except OSError as e:
            logger.error(f"Error writing blob for {suggested_name!r}: {str(e)}", exc_info=True)
            await self._discard(temp_path)
            raise IOFailure(f"Error writing blob: {str(e)}", cause=e) from e

        logger.debug(f"Stored {size} bytes as {stored_name}")
        return StoredBlob(stored_name=stored_name, size=size)

    async def _discard(self, temp_path: Path):
        try:
            if await aiofiles.os.path.exists(temp_path):
                await aiofiles.os.unlink(temp_path)
        except OSError as e:
            logger.error(f"Could not remove partial blob {temp_path}: {str(e)}")

    async def open(self, stored_name: str) -> BlobReader:
        """Open a blob for reading.

        The file is opened before this returns, so a later unlink does not cut
        the stream short.
        """
        blob_path = self.get_blob_path(stored_name)
        try:
            handle = await aiofiles.open(blob_path, 'rb')
        except FileNotFoundError:
            raise NotFound(f"Blob {stored_name} not found")
        except OSError as e:
            logger.error(f"Error opening blob {stored_name}: {str(e)}", exc_info=True)
            raise IOFailure(f"Error opening blob: {str(e)}", cause=e) from e

        size = os.fstat(handle.fileno()).st_size
        return BlobReader(handle, size, self.chunk_size)

    async def delete(self, stored_name: str) -> bool:
        """Remove a blob. Returns False if there was nothing to remove."""
        try:
            blob_path = self.get_blob_path(stored_name)
            await aiofiles.os.unlink(blob_path)
        except (NotFound, FileNotFoundError):
            logger.warning(f"Blob {stored_name} already absent")
            return False
        except OSError as e:
            logger.error(f"Error deleting blob {stored_name}: {str(e)}", exc_info=True)
            raise IOFailure(f"Error deleting blob: {str(e)}", cause=e) from e

        logger.debug(f"Deleted blob {stored_name}")
        return True

    def stored_names(self) -> Set[str]:
        """Names of every blob currently in the store."""
        names = set()
        for _, _, files in os.walk(self.data_dir):
            names.update(files)
        return names
