"""Upload validation for files attached to a chat turn.

The declared content type of an upload is not trusted; the type is sniffed
from the file's leading bytes and must be JPEG, PNG or PDF.
"""

from __future__ import annotations

from typing import Optional

import structlog
from pydantic import BaseModel, Field

from api.errors import FileTooLarge, InvalidFileType

logger = structlog.get_logger(__name__)

_SIGNATURES = (
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"%PDF-", "application/pdf"),
)


class UploadedFile(BaseModel):
    """An attached file, read fully into memory."""

    filename: str = ""
    declared_type: Optional[str] = None
    data: bytes = Field(default=b"", repr=False)
    mime_type: Optional[str] = Field(default=None, description="Sniffed MIME type, set by validation")


def sniff_mime_type(data: bytes) -> Optional[str]:
    for signature, mime_type in _SIGNATURES:
        if data.startswith(signature):
            return mime_type
    return None


def validate_upload(upload: UploadedFile, max_bytes: int) -> UploadedFile:
    """
    Check size and sniffed type of an upload.

    Returns:
        A copy of the upload with ``mime_type`` set

    Raises:
        FileTooLarge: If the file exceeds ``max_bytes``
        InvalidFileType: If the sniffed type is not JPEG, PNG or PDF
    """
    if len(upload.data) > max_bytes:
        raise FileTooLarge(detail=f"{len(upload.data)} bytes > {max_bytes}")

    mime_type = sniff_mime_type(upload.data)
    if mime_type is None:
        logger.warning(
            "Rejected upload",
            filename=upload.filename,
            declared_type=upload.declared_type,
            size=len(upload.data),
        )
        raise InvalidFileType(detail=f"declared {upload.declared_type!r}, content not JPEG/PNG/PDF")

    if upload.declared_type and upload.declared_type != mime_type:
        logger.info("Upload type mismatch", declared_type=upload.declared_type, sniffed_type=mime_type)
    return upload.model_copy(update={"mime_type": mime_type})
