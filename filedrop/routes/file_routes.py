import mimetypes
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

import config
from filedrop.errors import ContentLengthRequired, InvalidContentLength, NotFound, SizeLimitExceeded
from filedrop.models.file_record import FileRecord
from filedrop.models.upload import UploadPayload
from filedrop.repository.file_repository import MAX_FILE_ID
from filedrop.state import FileDropState
from logger_config import setup_logger

logger = setup_logger()

router = APIRouter()


def get_state(request: Request) -> FileDropState:
    return request.app.state.filedrop


def check_content_length(request: Request):
    """Reject bodies that are unsized or declare more than the upload limit.

    The server never reads past the declared length, so this bounds what the
    multipart parser can spool before the streamed write counts bytes.
    """
    content_length = request.headers.get("content-length")
    if content_length is None:
        raise ContentLengthRequired("Missing Content-Length header")

    try:
        content_length_value = int(content_length)
    except ValueError:
        raise InvalidContentLength("Invalid Content-Length header")

    if content_length_value > config.MAX_UPLOAD_SIZE + config.MULTIPART_OVERHEAD:
        logger.info(f"Rejected upload declaring {content_length_value} bytes")
        raise SizeLimitExceeded(f"Upload exceeds maximum allowed size ({config.MAX_UPLOAD_SIZE} bytes)")


def parse_file_id(file_id: str) -> int:
    """Path ids that cannot name a record are reported like any unknown id."""
    usable = (
        file_id.isascii()
        and file_id.isdigit()
        and len(file_id) <= len(str(MAX_FILE_ID))
        and 0 < int(file_id) <= MAX_FILE_ID
    )
    if not usable:
        raise NotFound(f"File {file_id[:32]} not found")
    return int(file_id)


def content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


@router.post("/upload")
async def upload_file(request: Request, state: FileDropState = Depends(get_state)):
    """Store the file sent in the ``filedata`` multipart field."""
    check_content_length(request)

    form = await request.form()
    try:
        payload = UploadPayload.from_form(form)
        record = await state.uploads.upload(payload)
    finally:
        await form.close()

    return {"success": True, "message": "File saved", "file": record}


@router.get("/files", response_model=List[FileRecord])
async def list_files(state: FileDropState = Depends(get_state)):
    return await state.files.list_files()


@router.get("/download/{file_id}")
async def download_file(file_id: str, state: FileDropState = Depends(get_state)):
    record, reader = await state.files.open_download(parse_file_id(file_id))

    media_type = record.media_type
    if not media_type:
        guessed_type, _ = mimetypes.guess_type(record.original_name)
        media_type = guessed_type or "application/octet-stream"

    headers = {
        "content-disposition": content_disposition(record.original_name),
        "content-length": str(reader.size),
    }
    return StreamingResponse(reader, media_type=media_type, headers=headers)


@router.delete("/file/{file_id}")
async def delete_file(file_id: str, state: FileDropState = Depends(get_state)):
    record = await state.files.delete_file(parse_file_id(file_id))
    return {"success": True, "message": f"File {record.id} deleted"}
