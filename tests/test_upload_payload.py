import pytest
from starlette.datastructures import FormData

from conftest import make_upload
from filedrop.errors import NoFilePayload
from filedrop.models.upload import UploadPayload, clean_original_name


def test_payload_from_form():
    part = make_upload(b"HELLO", "report.pdf", "application/pdf")

    payload = UploadPayload.from_form(FormData([("filedata", part)]))

    assert payload.original_name == "report.pdf"
    assert payload.media_type == "application/pdf"
    assert payload.stream is part


@pytest.mark.parametrize("form", [
    FormData(),
    FormData([("filedata", "plain text field")]),
    FormData([("attachment", make_upload(b"HELLO"))]),
    FormData([("filedata", make_upload(b"HELLO", filename=""))]),
])
def test_payload_requires_a_named_file(form):
    with pytest.raises(NoFilePayload):
        UploadPayload.from_form(form)


def test_clean_original_name():
    assert clean_original_name("report.pdf") == "report.pdf"
    assert clean_original_name("../../etc/passwd") == "passwd"
    assert clean_original_name("C:\\Users\\me\\report.pdf") == "report.pdf"
    assert clean_original_name("  spaced.txt ") == "spaced.txt"
