import io
import os
import sys
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from starlette.datastructures import Headers, UploadFile

# Add the parent directory to sys.path so we can import main
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

# Keep test logs out of the working directory; must happen before any logger is built
import config
config.LOG_DIR = os.path.join(tempfile.gettempdir(), "filedrop-test-logs")

from filedrop.state import FileDropState


def make_upload(content: bytes, filename: str = "report.pdf", content_type: str = "application/pdf") -> UploadFile:
    """An in-memory upload, as the multipart parser would hand it over."""
    return UploadFile(
        file=io.BytesIO(content),
        filename=filename,
        headers=Headers({"content-type": content_type}),
    )


@pytest.fixture
def storage_config(tmp_path, monkeypatch):
    """Point the service at isolated directories and database."""
    data_dir = tmp_path / "data"
    temp_dir = tmp_path / "temp"
    monkeypatch.setattr(config, "DATA_DIR", str(data_dir))
    monkeypatch.setattr(config, "TEMP_DIR", str(temp_dir))
    monkeypatch.setattr(config, "DATABASE_URL", f"sqlite:///{tmp_path / 'index.sqlite'}")
    return {"data_dir": data_dir, "temp_dir": temp_dir}


@pytest.fixture
def client(storage_config):
    from main import app

    # Entering the client runs the lifespan, which opens storage from config
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def state(storage_config):
    file_drop_state = FileDropState(
        data_dir=Path(config.DATA_DIR),
        temp_dir=Path(config.TEMP_DIR),
        database_url=config.DATABASE_URL,
        max_upload_size=1024,
    )
    await file_drop_state.open()
    yield file_drop_state
    await file_drop_state.close()
