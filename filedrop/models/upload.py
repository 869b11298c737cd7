from dataclasses import dataclass
from pathlib import PureWindowsPath
from typing import Optional

from starlette.datastructures import FormData, UploadFile

import config
from filedrop.errors import NoFilePayload


def clean_original_name(name: str) -> str:
    """Strip any directory components a client put in the filename."""
    # PureWindowsPath splits on both '/' and '\'
    return PureWindowsPath(name).name.strip()


@dataclass
class UploadPayload:
    original_name: str
    media_type: Optional[str]
    stream: UploadFile

    @classmethod
    def from_form(cls, form: FormData, field: str = config.UPLOAD_FIELD) -> 'UploadPayload':
        """Build the payload from a parsed multipart form."""
        part = form.get(field)
        if not isinstance(part, UploadFile):
            raise NoFilePayload(f"Request has no file in field '{field}'")

        original_name = clean_original_name(part.filename or "")
        if not original_name:
            raise NoFilePayload(f"File in field '{field}' has no filename")

        return cls(
            original_name=original_name,
            media_type=part.content_type or None,
            stream=part,
        )
