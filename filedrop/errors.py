"""Failures raised by the blob store, the metadata index and the services above them.

Every failure carries the HTTP status it is reported with and a stable
``code`` (the class name) so clients can tell ``NotFound`` from
``BlobMissing`` without parsing messages.
"""
from typing import Optional


class FileDropError(Exception):
    status_code = 500

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    @property
    def code(self) -> str:
        return type(self).__name__


class NoFilePayload(FileDropError):
    """The upload request carried no file part."""
    status_code = 400


class ContentLengthRequired(FileDropError):
    """The upload body was sent without a Content-Length."""
    status_code = 411


class InvalidContentLength(FileDropError):
    status_code = 400


class SizeLimitExceeded(FileDropError):
    """The streamed payload grew past the configured maximum."""
    status_code = 413


class IOFailure(FileDropError):
    """Writing, reading or removing a blob failed at the filesystem level."""
    status_code = 500


class UploadFailed(FileDropError):
    status_code = 500


class MetadataCommitFailed(FileDropError):
    """The blob was stored but its index record could not be written.

    The blob is left in place as an orphan; ``FileService.audit`` finds it.
    """
    status_code = 500

    def __init__(self, message: str, stored_name: str, cause: Optional[BaseException] = None):
        super().__init__(message, cause)
        self.stored_name = stored_name


class IndexFailure(FileDropError):
    """The metadata index could not be read or written."""
    status_code = 500


class NotFound(FileDropError):
    status_code = 404


class BlobMissing(FileDropError):
    """A record exists but its blob does not: the store is inconsistent."""
    status_code = 404
