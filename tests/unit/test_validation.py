from pydantic import ValidationError

from anesguardian.errors import FileUploadError, InvalidInputError
from anesguardian.validation import (
    MAX_RICH_TEXT_LENGTH,
    RichTextPayload,
    check_upload,
    validate_contact,
)


def _upload_payload() -> dict:
    return {
        "filename": "../../scan.png",
        "contentType": "image/PNG",
        "size": 2048,
    }


def test_check_upload_returns_safe_filename() -> None:
    checked = check_upload(_upload_payload())
    assert checked.safe_filename == "__scan.png"
    assert checked.original_filename == "../../scan.png"
    assert checked.content_type == "image/png"
    assert checked.size == 2048


def test_check_upload_rejects_disallowed_type_and_size() -> None:
    payload = _upload_payload()
    payload["contentType"] = "application/x-msdownload"
    payload["size"] = 10 * 1024 * 1024 + 1

    try:
        check_upload(payload)
    except FileUploadError as exc:
        fields = {error["field"] for error in exc.errors}
        assert fields == {"contentType", "size"}
        assert exc.code == "FILE_UPLOAD_ERROR"
        assert exc.status_code == 400
        return
    assert False, "Expected FileUploadError for executable upload"


def test_check_upload_honours_custom_allow_list() -> None:
    payload = _upload_payload()
    payload["contentType"] = "application/pdf"
    checked = check_upload(payload, allowed_types=["application/pdf"], max_size=4096)
    assert checked.content_type == "application/pdf"


def test_check_upload_rejects_filename_that_sanitizes_to_nothing() -> None:
    payload = _upload_payload()
    payload["filename"] = "...."

    try:
        check_upload(payload)
    except FileUploadError as exc:
        assert [error["field"] for error in exc.errors] == ["filename"]
        return
    assert False, "Expected FileUploadError for empty sanitized filename"


def test_check_upload_reports_missing_fields() -> None:
    try:
        check_upload({"filename": "a.png"})
    except FileUploadError as exc:
        fields = {error["field"] for error in exc.errors}
        assert {"contentType", "size"} <= fields
        return
    assert False, "Expected FileUploadError for incomplete metadata"


def test_validate_contact_accepts_valid_fields() -> None:
    contact = validate_contact({"email": " doctor@hospital.cn ", "phone": "13800138000"})
    assert contact.email == "doctor@hospital.cn"
    assert contact.phone == "13800138000"

    empty = validate_contact({})
    assert empty.email is None
    assert empty.phone is None


def test_validate_contact_rejects_invalid_phone() -> None:
    try:
        validate_contact({"email": "doctor@hospital.cn", "phone": "12345"})
    except InvalidInputError as exc:
        assert [error["field"] for error in exc.errors] == ["phone"]
        assert exc.code == "VALIDATION_ERROR"
        return
    assert False, "Expected InvalidInputError for short phone number"


def test_rich_text_payload_caps_length() -> None:
    assert RichTextPayload(html="<p>ok</p>").html == "<p>ok</p>"

    try:
        RichTextPayload(html="x" * (MAX_RICH_TEXT_LENGTH + 1))
    except ValidationError as exc:
        assert [error["loc"] for error in exc.errors()] == [("html",)]
        return
    assert False, "Expected ValidationError for oversized rich text"
