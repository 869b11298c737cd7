from filedrop.models.file_record import FileRecord, NewFileRecord
from filedrop.models.upload import UploadPayload

__all__ = ["FileRecord", "NewFileRecord", "UploadPayload"]
