from starlette.concurrency import run_in_threadpool

from filedrop.errors import IndexFailure, IOFailure, MetadataCommitFailed, UploadFailed
from filedrop.models.file_record import FileRecord, NewFileRecord
from filedrop.models.upload import UploadPayload
from filedrop.repository.file_repository import FileRepository
from filedrop.services.blob_store import BlobStore
from logger_config import setup_logger

logger = setup_logger()


class UploadCoordinator:
    """Runs one upload: write the blob, then commit its index record.

    A failed blob write leaves nothing behind. A failed index write leaves
    the blob in place as an orphan and raises MetadataCommitFailed; the blob
    is not rolled back, so ``FileService.audit`` is what cleans it up.
    """

    def __init__(self, blob_store: BlobStore, repository: FileRepository):
        self.blob_store = blob_store
        self.repository = repository

    async def upload(self, payload: UploadPayload) -> FileRecord:
        logger.info(f"Receiving upload of {payload.original_name!r} ({payload.media_type})")

        try:
            blob = await self.blob_store.put(payload.stream, payload.original_name)
        except IOFailure as e:
            raise UploadFailed(f"Error uploading {payload.original_name}", cause=e) from e

        new_record = NewFileRecord(
            stored_name=blob.stored_name,
            original_name=payload.original_name,
            media_type=payload.media_type,
            size=blob.size,
        )
        try:
            record = await run_in_threadpool(self.repository.insert, new_record)
        except IndexFailure as e:
            logger.error(
                f"Blob {blob.stored_name} stored but its record was not committed; "
                f"left as an orphan blob"
            )
            raise MetadataCommitFailed(
                f"Error saving metadata for {payload.original_name}",
                stored_name=blob.stored_name,
                cause=e,
            ) from e

        logger.info(f"File {record.id} saved: {record.original_name!r} as {record.stored_name}, {record.size} bytes")
        return record
