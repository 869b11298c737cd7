from contextlib import contextmanager
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import DateTime, Integer, String, create_engine, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from filedrop.errors import IndexFailure, NotFound
from filedrop.models.file_record import FileRecord, NewFileRecord
from logger_config import setup_logger

logger = setup_logger()

# Largest id an SQLite INTEGER column can hold
MAX_FILE_ID = 2**63 - 1


def _utcnow() -> datetime:
    # SQLite has no timezone support, timestamps are stored as naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class FileRow(Base):
    __tablename__ = "files"
    # AUTOINCREMENT keeps ids from being reused after the newest row is deleted
    __table_args__ = {"sqlite_autoincrement": True}

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stored_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    media_type: Mapped[Optional[str]] = mapped_column(String(255))
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    upload_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True, default=_utcnow)

    def __repr__(self):
        return f"<FileRow(id={self.id}, stored_name={self.stored_name})>"


def _to_record(row: FileRow) -> FileRecord:
    return FileRecord(
        id=row.id,
        stored_name=row.stored_name,
        original_name=row.original_name,
        media_type=row.media_type,
        size=row.size,
        upload_timestamp=row.upload_timestamp.replace(tzinfo=timezone.utc),
    )


class FileRepository:
    """Durable index of committed uploads, backed by SQLAlchemy."""

    def __init__(self, database_url: str):
        connect_args = {}
        if database_url.startswith("sqlite"):
            # Calls arrive from the threadpool, not the thread that opened the connection
            connect_args["check_same_thread"] = False
        self.engine = create_engine(database_url, connect_args=connect_args)
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)

    @contextmanager
    def _session(self, action: str):
        try:
            with self._sessions.begin() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Metadata index {action} failed: {str(e)}", exc_info=True)
            raise IndexFailure(f"Metadata index {action} failed", cause=e) from e

    def initialize(self):
        """Create the schema if absent and add any columns an older table lacks.

        Existing tables and rows are never dropped or rewritten.
        """
        try:
            Base.metadata.create_all(self.engine)
            self._add_missing_columns()
        except SQLAlchemyError as e:
            logger.error(f"Metadata index initialization failed: {str(e)}", exc_info=True)
            raise IndexFailure("Metadata index initialization failed", cause=e) from e
        logger.info(f"Metadata index ready at {self.engine.url}")

    def _add_missing_columns(self):
        table = FileRow.__table__
        existing = {column["name"] for column in inspect(self.engine).get_columns(table.name)}
        missing = [column for column in table.columns if column.name not in existing]
        if not missing:
            return

        with self.engine.begin() as conn:
            for column in missing:
                column_type = column.type.compile(dialect=self.engine.dialect)
                conn.execute(text(f'ALTER TABLE {table.name} ADD COLUMN {column.name} {column_type}'))
                logger.warning(f"Added missing column {table.name}.{column.name} ({column_type})")

    def close(self):
        self.engine.dispose()

    def insert(self, new_record: NewFileRecord) -> FileRecord:
        """Persist a record; the index assigns its id and, if absent, its timestamp."""
        row = FileRow(
            stored_name=new_record.stored_name,
            original_name=new_record.original_name,
            media_type=new_record.media_type,
            size=new_record.size,
            upload_timestamp=_to_naive_utc(new_record.upload_timestamp or _utcnow()),
        )
        with self._session("insert") as session:
            session.add(row)
            session.flush()
            record = _to_record(row)
        logger.debug(f"Indexed file {record.id} as {record.stored_name}")
        return record

    def find_by_id(self, file_id: int) -> FileRecord:
        if not 0 < file_id <= MAX_FILE_ID:
            raise NotFound(f"File {file_id} not found")
        with self._session("lookup") as session:
            row = session.get(FileRow, file_id)
            if row is None:
                raise NotFound(f"File {file_id} not found")
            return _to_record(row)

    def list_all(self) -> List[FileRecord]:
        """All records, newest upload first."""
        query = select(FileRow).order_by(FileRow.upload_timestamp.desc(), FileRow.id.desc())
        with self._session("listing") as session:
            return [_to_record(row) for row in session.scalars(query)]

    def delete(self, file_id: int):
        if not 0 < file_id <= MAX_FILE_ID:
            raise NotFound(f"File {file_id} not found")
        with self._session("delete") as session:
            row = session.get(FileRow, file_id)
            if row is None:
                raise NotFound(f"File {file_id} not found")
            session.delete(row)
        logger.debug(f"Removed index record {file_id}")
