"""Tests for document reading and safe writing."""

from __future__ import annotations

import docx
import openpyxl
import pptx

from prosemerge.services.file_io import (
    FileIOService,
    LineEnding,
    detect_line_ending,
    normalize_newlines,
)


def test_reads_utf8_text(tmp_path) -> None:
    path = tmp_path / "doc.md"
    path.write_text("Grüße aus Köln. Schön!\n", encoding="utf-8")

    result = FileIOService().read_file(path)

    assert result.success
    assert result.content.content == "Grüße aus Köln. Schön!\n"
    assert result.content.line_ending == LineEnding.LF
    assert not result.content.bom
    assert not result.content.extracted


def test_crlf_is_normalized_but_remembered(tmp_path) -> None:
    path = tmp_path / "doc.txt"
    path.write_bytes(b"One.\r\nTwo.\r\n")

    result = FileIOService().read_file(path)
    raw = FileIOService().read_file(path, normalize_line_endings=False)

    assert result.content.content == "One.\nTwo.\n"
    assert result.content.line_ending == LineEnding.CRLF
    assert raw.content.content == "One.\r\nTwo.\r\n"


def test_utf8_bom_is_stripped(tmp_path) -> None:
    path = tmp_path / "bom.txt"
    path.write_bytes(b"\xef\xbb\xbfText.")

    result = FileIOService().read_file(path)

    assert result.content.content == "Text."
    assert result.content.bom


def test_utf16_with_bom(tmp_path) -> None:
    path = tmp_path / "wide.txt"
    path.write_bytes(b"\xff\xfe" + "Wide text.".encode("utf-16-le"))

    result = FileIOService().read_file(path)

    assert result.success
    assert result.content.content == "Wide text."


def test_explicit_encoding_wins_over_bom(tmp_path) -> None:
    path = tmp_path / "forced.txt"
    path.write_bytes(b"\xef\xbb\xbfText.")

    result = FileIOService().read_file(path, encoding="latin-1")

    assert result.content.encoding == "latin-1"
    assert result.content.content == "\xef\xbb\xbfText."
    assert not result.content.bom


def test_missing_file(tmp_path) -> None:
    result = FileIOService().read_file(tmp_path / "absent.txt")

    assert not result.success
    assert result.error.startswith("File not found")


def test_directory_is_not_a_file(tmp_path) -> None:
    result = FileIOService().read_file(tmp_path)
    assert result.error.startswith("Not a file")


def test_binary_file_is_rejected(tmp_path) -> None:
    path = tmp_path / "blob.bin"
    path.write_bytes(b"\x00\x01\x02\x03binary")

    result = FileIOService().read_file(path)

    assert not result.success
    assert result.is_binary


def test_size_limit(tmp_path) -> None:
    path = tmp_path / "big.txt"
    path.write_text("x" * 100, encoding="utf-8")

    result = FileIOService().read_file(path, max_size=10)

    assert not result.success
    assert result.error.startswith("File too large")


def test_extracts_docx_paragraphs(tmp_path) -> None:
    path = tmp_path / "doc.docx"
    document = docx.Document()
    document.add_paragraph("First paragraph.")
    document.add_paragraph("")
    document.add_paragraph("Second paragraph.")
    document.save(path)

    result = FileIOService().read_file(path)

    assert result.success
    assert result.content.extracted
    assert result.content.content == "First paragraph.\n\nSecond paragraph."


def test_extracts_xlsx_rows(tmp_path) -> None:
    path = tmp_path / "sheet.xlsx"
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(["Name", "Count"])
    sheet.append(["apples", 3])
    workbook.save(path)

    result = FileIOService().read_file(path)

    assert result.content.content == "Name Count\napples 3"


def test_extracts_pptx_text(tmp_path) -> None:
    path = tmp_path / "deck.pptx"
    presentation = pptx.Presentation()
    slide = presentation.slides.add_slide(presentation.slide_layouts[5])
    slide.shapes.title.text = "Quarterly summary"
    presentation.save(path)

    result = FileIOService().read_file(path)

    assert result.success
    assert "Quarterly summary" in result.content.content


def test_broken_pdf_reports_failure(tmp_path) -> None:
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf")

    result = FileIOService().read_file(path)

    assert not result.success
    assert result.error.startswith("Failed to extract text from PDF")


def test_write_creates_parents_and_backup(tmp_path) -> None:
    path = tmp_path / "out" / "merged.md"
    service = FileIOService()

    first = service.write_file(path, "Old text.\n")
    second = service.write_file(path, "New text.\n", create_backup=True)

    assert first.success and first.backup_path is None
    assert second.backup_path == path.with_name("merged.md.orig")
    assert second.backup_path.read_text(encoding="utf-8") == "Old text.\n"
    assert path.read_text(encoding="utf-8") == "New text.\n"
    assert [p.name for p in path.parent.iterdir() if p.name.startswith(".")] == []


def test_write_converts_line_endings(tmp_path) -> None:
    path = tmp_path / "crlf.txt"

    result = FileIOService().write_file(path, "a\nb\n", line_ending=LineEnding.CRLF)

    assert path.read_bytes() == b"a\r\nb\r\n"
    assert result.bytes_written == 6


def test_write_reports_unencodable_text(tmp_path) -> None:
    result = FileIOService().write_file(tmp_path / "x.txt", "ü", encoding="ascii")
    assert not result.success
    assert "Cannot encode" in result.error


def test_line_ending_helpers() -> None:
    assert detect_line_ending("a\nb\n") == LineEnding.LF
    assert detect_line_ending("a\r\nb\n") == LineEnding.MIXED
    assert detect_line_ending("a\rb") == LineEnding.CR
    assert detect_line_ending("single") == LineEnding.NONE
    assert normalize_newlines("a\r\nb\rc") == "a\nb\nc"
