from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class NewFileRecord(BaseModel):
    stored_name: str = Field(min_length=1)
    original_name: str = Field(min_length=1)
    media_type: Optional[str] = None
    size: int = Field(ge=0)
    upload_timestamp: Optional[datetime] = None

    @field_validator('media_type')
    @classmethod
    def blank_media_type_is_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class FileRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stored_name: str
    original_name: str
    media_type: Optional[str] = None
    size: int
    upload_timestamp: datetime
