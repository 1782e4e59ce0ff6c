import io

import fitz
import pytest
from docx import Document

import extraction
from errors import (
    DocumentParseError,
    EmptyDocumentError,
    FileTooLargeError,
    UnsupportedTypeError,
)

LONG_TEXT = "Senior Python engineer with eight years building APIs and data pipelines."


def _docx_bytes(paragraphs, table_rows=()) -> bytes:
    doc = Document()
    for text in paragraphs:
        doc.add_paragraph(text)
    if table_rows:
        table = doc.add_table(rows=len(table_rows), cols=len(table_rows[0]))
        for row, values in zip(table.rows, table_rows):
            for cell, value in zip(row.cells, values):
                cell.text = value
    buffer = io.BytesIO()
    doc.save(buffer)
    return buffer.getvalue()


def _pdf_bytes(lines) -> bytes:
    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((72, y), line)
        y += 18
    data = doc.tobytes()
    doc.close()
    return data


def test_plain_text_is_extracted():
    text = extraction.extract_text(LONG_TEXT.encode("utf-8"), extraction.TEXT)
    assert text == LONG_TEXT


def test_plain_text_with_bom_and_latin1():
    assert extraction.extract_text(b"\xef\xbb\xbf" + LONG_TEXT.encode(), extraction.TEXT) == LONG_TEXT
    latin = ("Caf\xe9 owner. " + LONG_TEXT).encode("latin-1")
    assert extraction.extract_text(latin, extraction.TEXT).startswith("Caf\xe9 owner.")


def test_docx_paragraphs_and_tables():
    content = _docx_bytes(
        ["Jane Doe", "Senior Python Engineer at Acme Corp since 2018"],
        table_rows=[("Skills", "Python, FastAPI, SQLAlchemy")],
    )
    text = extraction.extract_text(content, extraction.DOCX)
    assert "Jane Doe" in text
    assert "Senior Python Engineer at Acme Corp since 2018" in text
    assert "Skills Python, FastAPI, SQLAlchemy" in text


def test_pdf_text_is_extracted():
    content = _pdf_bytes(["Jane Doe", "Senior Python Engineer at Acme Corp since 2018"])
    text = extraction.extract_text(content, extraction.PDF)
    assert "Jane Doe" in text
    assert "Acme Corp" in text


def test_unsupported_type_rejected_before_parsing():
    with pytest.raises(UnsupportedTypeError) as exc_info:
        extraction.extract_text(b"\x89PNG....", "image/png")
    assert exc_info.value.status_code == 415


def test_oversized_file_rejected():
    content = ("x" * 200).encode()
    with pytest.raises(FileTooLargeError) as exc_info:
        extraction.extract_text(content, extraction.TEXT, max_size_bytes=100)
    assert exc_info.value.status_code == 413
    assert exc_info.value.extra["max_size_bytes"] == 100


def test_file_at_exact_size_limit_is_accepted():
    content = LONG_TEXT.encode()
    assert extraction.extract_text(content, extraction.TEXT, max_size_bytes=len(content)) == LONG_TEXT


def test_short_text_is_empty_document():
    with pytest.raises(EmptyDocumentError):
        extraction.extract_text(b"   hi   \n\n", extraction.TEXT)


def test_min_length_is_configurable():
    assert extraction.extract_text(b"hello world", extraction.TEXT, min_length=5) == "hello world"


def test_corrupted_pdf_raises_parse_error():
    with pytest.raises(DocumentParseError):
        extraction.extract_text(b"%PDF-1.4 this is not really a pdf", extraction.PDF)


def test_legacy_doc_binary_raises_parse_error():
    # OLE compound file header; python-docx only reads the OOXML container
    with pytest.raises(DocumentParseError):
        extraction.extract_text(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 512, extraction.DOC)


def test_normalize_text_collapses_whitespace_and_strips_controls():
    raw = "  Jane\tDoe\x00\x07  \r\n\r\n\r\n\r\nPython   Engineer \n  \n\n\nAWS  "
    assert extraction.normalize_text(raw) == "Jane Doe\n\nPython Engineer\n\nAWS"


def test_normalize_text_keeps_single_line_breaks():
    assert extraction.normalize_text("line one\nline two") == "line one\nline two"


def test_validate_upload_uses_settings_limit(monkeypatch):
    class _Settings:
        max_upload_size_bytes = 10

    monkeypatch.setattr(extraction, "get_settings", lambda: _Settings())
    with pytest.raises(FileTooLargeError):
        extraction.validate_upload(extraction.PDF, 11)
    extraction.validate_upload(extraction.PDF, 10)
