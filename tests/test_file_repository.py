import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, inspect, text

from filedrop.errors import IndexFailure, NotFound
from filedrop.models.file_record import NewFileRecord
from filedrop.repository.file_repository import FileRepository


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'index.sqlite'}"


@pytest.fixture
def repository(database_url):
    repo = FileRepository(database_url)
    repo.initialize()
    yield repo
    repo.close()


def new_record(original_name="report.pdf", size=5, **kwargs):
    return NewFileRecord(
        stored_name=f"{uuid.uuid4().hex}.pdf",
        original_name=original_name,
        media_type="application/pdf",
        size=size,
        **kwargs
    )


def test_insert_assigns_id_and_timestamp(repository):
    before = datetime.now(timezone.utc)

    record = repository.insert(new_record())

    assert record.id == 1
    assert record.original_name == "report.pdf"
    assert record.size == 5
    assert record.upload_timestamp.tzinfo is not None
    assert record.upload_timestamp >= before - timedelta(milliseconds=1)
    assert repository.find_by_id(record.id) == record


def test_ids_increase_and_are_not_reused(repository):
    first = repository.insert(new_record())
    second = repository.insert(new_record())
    repository.delete(second.id)

    third = repository.insert(new_record())

    assert first.id < second.id < third.id


def test_list_all_newest_first(repository):
    now = datetime.now(timezone.utc)
    older = repository.insert(new_record("older.txt", upload_timestamp=now - timedelta(hours=1)))
    newest = repository.insert(new_record("newest.txt", upload_timestamp=now))
    oldest = repository.insert(new_record("oldest.txt", upload_timestamp=now - timedelta(days=1)))

    assert [r.id for r in repository.list_all()] == [newest.id, older.id, oldest.id]


def test_list_all_breaks_timestamp_ties_by_id(repository):
    moment = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    first = repository.insert(new_record(upload_timestamp=moment))
    second = repository.insert(new_record(upload_timestamp=moment))

    assert [r.id for r in repository.list_all()] == [second.id, first.id]


def test_find_missing_record(repository):
    with pytest.raises(NotFound):
        repository.find_by_id(42)


def test_ids_outside_the_integer_range_are_not_found(repository):
    for file_id in (0, -1, 2**63, 10**20):
        with pytest.raises(NotFound):
            repository.find_by_id(file_id)
        with pytest.raises(NotFound):
            repository.delete(file_id)


def test_delete(repository):
    record = repository.insert(new_record())

    repository.delete(record.id)

    assert repository.list_all() == []
    with pytest.raises(NotFound):
        repository.find_by_id(record.id)
    with pytest.raises(NotFound):
        repository.delete(record.id)


def test_duplicate_stored_name_is_an_index_failure(repository):
    record = repository.insert(new_record())

    with pytest.raises(IndexFailure):
        repository.insert(NewFileRecord(stored_name=record.stored_name, original_name="other.pdf", size=1))


def test_records_survive_restart(database_url, repository):
    record = repository.insert(new_record())
    repository.close()

    reopened = FileRepository(database_url)
    reopened.initialize()
    try:
        assert reopened.list_all() == [record]
    finally:
        reopened.close()


def test_initialize_is_additive(database_url):
    engine = create_engine(database_url)
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE files ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "stored_name VARCHAR(255) NOT NULL UNIQUE, "
            "original_name VARCHAR(255) NOT NULL, "
            "size INTEGER NOT NULL, "
            "upload_timestamp DATETIME NOT NULL)"
        ))
        conn.execute(text(
            "INSERT INTO files (stored_name, original_name, size, upload_timestamp) "
            "VALUES ('abc.txt', 'old.txt', 3, '2024-01-01 10:00:00.000000')"
        ))
    engine.dispose()

    repo = FileRepository(database_url)
    repo.initialize()
    try:
        columns = {column["name"] for column in inspect(repo.engine).get_columns("files")}
        assert "media_type" in columns

        [record] = repo.list_all()
        assert record.original_name == "old.txt"
        assert record.media_type is None
        assert record.upload_timestamp == datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

        assert repo.insert(new_record()).id == 2
    finally:
        repo.close()


def test_new_record_validation():
    with pytest.raises(ValueError):
        NewFileRecord(stored_name="a.pdf", original_name="a.pdf", size=-1)
    with pytest.raises(ValueError):
        NewFileRecord(stored_name="", original_name="a.pdf", size=1)
    assert NewFileRecord(stored_name="a", original_name="a", size=0, media_type=" ").media_type is None
