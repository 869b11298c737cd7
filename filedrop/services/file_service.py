from dataclasses import dataclass, field
from typing import List, Tuple

from starlette.concurrency import run_in_threadpool

from filedrop.errors import BlobMissing, NotFound
from filedrop.models.file_record import FileRecord
from filedrop.repository.file_repository import FileRepository
from filedrop.services.blob_store import BlobReader, BlobStore
from filedrop.services.keyed_lock import KeyedLock
from logger_config import setup_logger

logger = setup_logger()


@dataclass
class AuditReport:
    orphan_blobs: List[str] = field(default_factory=list)
    dangling_records: List[int] = field(default_factory=list)
    purged_blobs: List[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return not self.orphan_blobs and not self.dangling_records


class FileService:
    """Listing, download and deletion of committed files.

    Downloads and deletes of the same id are serialized so a download either
    opens the blob before the delete removes it or fails with NotFound.
    """

    def __init__(self, blob_store: BlobStore, repository: FileRepository, locks: KeyedLock):
        self.blob_store = blob_store
        self.repository = repository
        self.locks = locks

    async def list_files(self) -> List[FileRecord]:
        return await run_in_threadpool(self.repository.list_all)

    async def open_download(self, file_id: int) -> Tuple[FileRecord, BlobReader]:
        """Resolve a record and open its blob for streaming.

        Raises:
            NotFound: No record with this id
            BlobMissing: The record exists but its blob does not
        """
        async with self.locks.hold(file_id):
            record = await run_in_threadpool(self.repository.find_by_id, file_id)
            try:
                reader = await self.blob_store.open(record.stored_name)
            except NotFound as e:
                logger.error(f"File {file_id} is indexed but blob {record.stored_name} is missing")
                raise BlobMissing(f"Content of file {file_id} is missing", cause=e) from e

        logger.info(f"Serving file {file_id} ({reader.size} bytes)")
        return record, reader

    async def delete_file(self, file_id: int) -> FileRecord:
        """Remove the blob, then the record.

        A crash between the two steps leaves a dangling record, which
        downloads report as BlobMissing, rather than an unindexed blob.
        """
        async with self.locks.hold(file_id):
            record = await run_in_threadpool(self.repository.find_by_id, file_id)
            await self.blob_store.delete(record.stored_name)
            await run_in_threadpool(self.repository.delete, file_id)

        logger.info(f"Deleted file {file_id} ({record.stored_name})")
        return record

    async def audit(self, purge_orphans: bool = False) -> AuditReport:
        """Compare blobs on disk with index records.

        Records are never removed here; orphan blobs are removed only when
        ``purge_orphans`` is set.
        """
        records = await run_in_threadpool(self.repository.list_all)
        blob_names = await run_in_threadpool(self.blob_store.stored_names)
        indexed_names = {record.stored_name for record in records}

        report = AuditReport(
            orphan_blobs=sorted(blob_names - indexed_names),
            dangling_records=sorted(record.id for record in records if record.stored_name not in blob_names),
        )

        for stored_name in report.orphan_blobs:
            logger.warning(f"Orphan blob without index record: {stored_name}")
        for file_id in report.dangling_records:
            logger.warning(f"Index record {file_id} has no blob")

        if purge_orphans:
            for stored_name in report.orphan_blobs:
                if await self.blob_store.delete(stored_name):
                    report.purged_blobs.append(stored_name)
            logger.info(f"Purged {len(report.purged_blobs)} orphan blobs")

        return report
