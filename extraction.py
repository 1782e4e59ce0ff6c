"""Plain-text extraction for uploaded resumes (PDF, DOCX/DOC, TXT)."""
import io
import re
from typing import Optional

import fitz
import structlog
from docx import Document

from errors import (
    DocumentParseError,
    EmptyDocumentError,
    FileTooLargeError,
    UnsupportedTypeError,
)
from settings import get_settings

logger = structlog.get_logger(__name__)

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
DOC = "application/msword"
TEXT = "text/plain"

ALLOWED_CONTENT_TYPES = (PDF, DOCX, DOC, TEXT)

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
_HORIZONTAL_WS = re.compile(r"[^\S\n]+")
_SPACE_AROUND_NEWLINE = re.compile(r" *\n *")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


def normalize_text(text: str) -> str:
    """Strip control characters, collapse whitespace runs and blank-line runs."""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CONTROL_CHARS.sub("", text)
    text = _HORIZONTAL_WS.sub(" ", text)
    # Single line breaks survive so section and bullet structure reaches the prompt
    text = _SPACE_AROUND_NEWLINE.sub("\n", text)
    text = _EXCESS_NEWLINES.sub("\n\n", text)
    return text.strip()


def _extract_pdf(content: bytes) -> str:
    with fitz.open(stream=content, filetype="pdf") as doc:
        return "\n".join(page.get_text() for page in doc)


def _extract_docx(content: bytes) -> str:
    doc = Document(io.BytesIO(content))
    parts = [para.text for para in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            parts.append(" ".join(cell.text for cell in row.cells))
    return "\n".join(parts)


def _decode_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("latin-1")


def validate_upload(content_type: str, size: int, max_size_bytes: Optional[int] = None) -> None:
    """Reject disallowed MIME types and oversized payloads before any parsing."""
    if content_type not in ALLOWED_CONTENT_TYPES:
        raise UnsupportedTypeError(
            f"Unsupported file type: {content_type}. Allowed types: PDF, DOCX, DOC, TXT"
        )
    limit = max_size_bytes if max_size_bytes is not None else get_settings().max_upload_size_bytes
    if size > limit:
        raise FileTooLargeError(
            f"File size exceeds maximum allowed size of {limit // (1024 * 1024)}MB",
            extra={"max_size_bytes": limit},
        )


def extract_text(
    content: bytes,
    content_type: str,
    max_size_bytes: Optional[int] = None,
    min_length: Optional[int] = None,
) -> str:
    """Convert an uploaded document into normalized plain text.

    Raises UnsupportedTypeError, FileTooLargeError, DocumentParseError when the
    parser library cannot read the payload, and EmptyDocumentError when the
    result is shorter than the minimum length (image-only or corrupted files).
    """
    validate_upload(content_type, len(content), max_size_bytes)
    if min_length is None:
        min_length = get_settings().min_document_text_length

    try:
        if content_type == PDF:
            raw = _extract_pdf(content)
        elif content_type in (DOCX, DOC):
            raw = _extract_docx(content)
        else:
            raw = _decode_text(content)
    except Exception as exc:
        logger.warning("Document parsing failed", content_type=content_type, exc=str(exc))
        raise DocumentParseError(f"Failed to parse {content_type} document") from exc

    text = normalize_text(raw)
    if len(text) < min_length:
        raise EmptyDocumentError(
            "Document appears to be empty or contains very little text. "
            "It might be image-based or corrupted."
        )

    logger.info("Extracted document text", content_type=content_type, chars=len(text))
    return text
