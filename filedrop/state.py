from pathlib import Path

from starlette.concurrency import run_in_threadpool

import config
from filedrop.repository.file_repository import FileRepository
from filedrop.services.blob_store import BlobStore
from filedrop.services.file_service import FileService
from filedrop.services.keyed_lock import KeyedLock
from filedrop.services.upload_coordinator import UploadCoordinator
from logger_config import setup_logger

logger = setup_logger()


class FileDropState:
    """Storage handles shared by every request of one process."""

    def __init__(self, data_dir: Path, temp_dir: Path, database_url: str, max_upload_size: int):
        self.blob_store = BlobStore(data_dir, temp_dir, max_size=max_upload_size)
        self.repository = FileRepository(database_url)
        self.locks = KeyedLock()
        self.uploads = UploadCoordinator(self.blob_store, self.repository)
        self.files = FileService(self.blob_store, self.repository, self.locks)

    @classmethod
    def from_config(cls) -> 'FileDropState':
        return cls(
            data_dir=Path(config.DATA_DIR),
            temp_dir=Path(config.TEMP_DIR),
            database_url=config.DATABASE_URL,
            max_upload_size=config.MAX_UPLOAD_SIZE,
        )

    async def open(self):
        await self.blob_store.initialize()
        await run_in_threadpool(self.repository.initialize)
        logger.info(f"Maximum upload size: {self.blob_store.max_size / (1024*1024):.2f} MB")

    async def close(self):
        await run_in_threadpool(self.repository.close)
        logger.info("Storage closed")
