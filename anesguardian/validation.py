"""Upload metadata and contact field validation built on the sanitizer predicates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from anesguardian.errors import FileUploadError, invalid_input_from_pydantic
from anesguardian.sanitization import (
    DEFAULT_ALLOWED_FILE_TYPES,
    DEFAULT_MAX_FILE_SIZE,
    is_allowed_file_type,
    is_valid_email,
    is_valid_file_size,
    is_valid_phone,
    sanitize_filename,
)

MAX_RAW_FILENAME_LENGTH = 1024
MAX_EMAIL_LENGTH = 320
MAX_RICH_TEXT_LENGTH = 100_000


class UploadMetadata(BaseModel):
    """Client-declared metadata for a file about to be uploaded."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    filename: str = Field(min_length=1, max_length=MAX_RAW_FILENAME_LENGTH)
    content_type: str = Field(alias="contentType", min_length=1)
    size: int


class ContactDetails(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str | None = Field(default=None, max_length=MAX_EMAIL_LENGTH)
    phone: str | None = None

    @field_validator("email")
    @classmethod
    def _validate_email(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_email(value):
            raise ValueError("Invalid email address")
        return value

    @field_validator("phone")
    @classmethod
    def _validate_phone(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_phone(value):
            raise ValueError("Invalid mobile phone number")
        return value


class RichTextPayload(BaseModel):
    """Staff-authored rich text, e.g. a guideline summary."""

    html: str = Field(max_length=MAX_RICH_TEXT_LENGTH)


@dataclass(slots=True)
class CheckedUpload:
    """Upload metadata that passed the type and size checks."""

    original_filename: str
    safe_filename: str
    content_type: str
    size: int


def check_upload(
    payload: dict[str, Any],
    *,
    allowed_types: tuple[str, ...] | list[str] = DEFAULT_ALLOWED_FILE_TYPES,
    max_size: int = DEFAULT_MAX_FILE_SIZE,
) -> CheckedUpload:
    """
    Validate upload metadata and derive a storage-safe filename.

    Raises:
        FileUploadError: when the payload is malformed, the MIME type is not
            allowed, or the size is outside ``(0, max_size]``.
    """

    try:
        metadata = UploadMetadata.model_validate(payload)
    except ValidationError as exc:
        raise FileUploadError(errors=invalid_input_from_pydantic(exc).errors) from exc

    errors: list[dict[str, str]] = []
    if not is_allowed_file_type(metadata.content_type, allowed_types):
        errors.append(
            {
                "field": "contentType",
                "message": f"File type {metadata.content_type} is not allowed",
                "type": "value_error.file_type",
            }
        )
    if not is_valid_file_size(metadata.size, max_size):
        errors.append(
            {
                "field": "size",
                "message": f"File size must be between 1 and {max_size} bytes",
                "type": "value_error.file_size",
            }
        )

    safe_filename = sanitize_filename(metadata.filename)
    if not safe_filename:
        errors.append(
            {
                "field": "filename",
                "message": "Filename is empty after sanitization",
                "type": "value_error.filename",
            }
        )
    if errors:
        raise FileUploadError(errors=errors)

    return CheckedUpload(
        original_filename=metadata.filename,
        safe_filename=safe_filename,
        content_type=metadata.content_type.lower(),
        size=metadata.size,
    )


def validate_contact(payload: dict[str, Any]) -> ContactDetails:
    """
    Validate email and phone fields.

    Raises:
        InvalidInputError: when a provided field has the wrong shape.
    """

    try:
        return ContactDetails.model_validate(payload)
    except ValidationError as exc:
        raise invalid_input_from_pydantic(exc) from exc
