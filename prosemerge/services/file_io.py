"""
File I/O service for reading documents and writing results safely.

Handles:
- Encoding detection and byte-order marks
- Text extraction from PDF, Word, Excel and PowerPoint documents
- Line ending normalization
- Atomic writes with optional backups
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Callable, Optional

import chardet
import docx
import openpyxl
import pptx
import pypdf


logger = logging.getLogger(__name__)

DEFAULT_MAX_SIZE = 50 * 1024 * 1024  # 50MB

BOMS = (
    (b'\xef\xbb\xbf', 'utf-8-sig'),
    (b'\xff\xfe', 'utf-16'),
    (b'\xfe\xff', 'utf-16'),
)


class LineEnding(Enum):
    """Line ending style."""
    LF = auto()      # Unix: \n
    CRLF = auto()    # Windows: \r\n
    CR = auto()      # Old Mac: \r
    MIXED = auto()   # Mixed endings
    NONE = auto()    # Single line

    @property
    def separator(self) -> str:
        if self == LineEnding.CRLF:
            return '\r\n'
        elif self == LineEnding.CR:
            return '\r'
        return '\n'


@dataclass
class FileContent:
    """Text read from a file, with how it was stored."""
    content: str
    encoding: str
    line_ending: LineEnding
    bom: bool
    size: int
    extracted: bool = False  # Text came from a document format

    @property
    def line_count(self) -> int:
        return len(self.content.splitlines())


@dataclass
class ReadResult:
    """Result of a file read operation."""
    success: bool
    content: Optional[FileContent] = None
    error: Optional[str] = None
    is_binary: bool = False


@dataclass
class WriteResult:
    """Result of a file write operation."""
    success: bool
    bytes_written: int = 0
    backup_path: Optional[Path] = None
    error: Optional[str] = None


# =============================================================================
# Document Extraction
# =============================================================================

def extract_pdf_text(path: Path) -> str:
    reader = pypdf.PdfReader(path)
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def extract_docx_text(path: Path) -> str:
    document = docx.Document(str(path))
    return "\n\n".join(p.text for p in document.paragraphs if p.text.strip())


def extract_xlsx_text(path: Path) -> str:
    workbook = openpyxl.load_workbook(path, read_only=True, data_only=True)
    blocks: list[str] = []
    try:
        for sheet in workbook.worksheets:
            rows = []
            for row in sheet.iter_rows(values_only=True):
                cells = [str(value) for value in row if value is not None]
                if cells:
                    rows.append(" ".join(cells))
            if rows:
                blocks.append("\n".join(rows))
    finally:
        workbook.close()
    return "\n\n".join(blocks)


def extract_pptx_text(path: Path) -> str:
    presentation = pptx.Presentation(str(path))
    blocks: list[str] = []
    for slide in presentation.slides:
        texts = [
            shape.text_frame.text
            for shape in slide.shapes
            if shape.has_text_frame and shape.text_frame.text.strip()
        ]
        if texts:
            blocks.append("\n\n".join(texts))
    return "\n\n".join(blocks)


EXTRACTORS: dict[str, Callable[[Path], str]] = {
    '.pdf': extract_pdf_text,
    '.docx': extract_docx_text,
    '.xlsx': extract_xlsx_text,
    '.pptx': extract_pptx_text,
}


class FileIOService:
    """Service for safe file I/O operations."""

    def __init__(
        self,
        default_encoding: str = 'utf-8',
        fallback_encoding: str = 'latin-1',
        binary_check_size: int = 8192
    ):
        self.default_encoding = default_encoding
        self.fallback_encoding = fallback_encoding
        self.binary_check_size = binary_check_size

    def read_file(
        self,
        path: Path | str,
        encoding: Optional[str] = None,
        normalize_line_endings: bool = True,
        max_size: int = DEFAULT_MAX_SIZE
    ) -> ReadResult:
        """
        Read a document as text.

        Args:
            path: Path to the file
            encoding: Force specific encoding (auto-detect if None)
            normalize_line_endings: Convert all line endings to \\n
            max_size: Maximum file size in bytes

        Returns:
            ReadResult with content or error information
        """
        path = Path(path)

        if not path.exists():
            return ReadResult(success=False, error=f"File not found: {path}")
        if not path.is_file():
            return ReadResult(success=False, error=f"Not a file: {path}")

        try:
            size = path.stat().st_size
        except OSError as e:
            return ReadResult(success=False, error=f"Could not check file size: {e}")
        if size > max_size:
            return ReadResult(
                success=False,
                error=f"File too large ({size / 1024 / 1024:.2f} MB, "
                      f"max {max_size / 1024 / 1024:.2f} MB): {path}"
            )

        extractor = EXTRACTORS.get(path.suffix.lower())
        if extractor is not None:
            return self._read_document(path, extractor, normalize_line_endings)

        try:
            raw = path.read_bytes()
        except PermissionError:
            return ReadResult(success=False, error=f"Permission denied: {path}")
        except OSError as e:
            return ReadResult(success=False, error=f"OS error: {e}")

        if self._is_binary(raw[:self.binary_check_size]):
            return ReadResult(success=False, is_binary=True,
                              error=f"File appears to be binary: {path}")

        detected = encoding
        bom = False
        if detected is None:
            for marker, bom_encoding in BOMS:
                if raw.startswith(marker):
                    bom = True
                    detected = bom_encoding
                    break
            else:
                detected = self._detect_encoding(raw)

        try:
            content = raw.decode(detected)
        except (UnicodeDecodeError, LookupError):
            content = raw.decode(self.fallback_encoding, errors='replace')
            detected = self.fallback_encoding

        line_ending = detect_line_ending(content)
        if normalize_line_endings:
            content = normalize_newlines(content)

        return ReadResult(
            success=True,
            content=FileContent(
                content=content,
                encoding=detected,
                line_ending=line_ending,
                bom=bom,
                size=len(raw),
            )
        )

    def _read_document(
        self,
        path: Path,
        extractor: Callable[[Path], str],
        normalize_line_endings: bool
    ) -> ReadResult:
        """Extract the text of a PDF or Office document."""
        kind = path.suffix.lower().lstrip('.').upper()
        try:
            text = extractor(path)
        except Exception as e:
            logger.error(f"Error extracting text from {kind} {path}: {e}")
            return ReadResult(success=False, error=f"Failed to extract text from {kind}: {path}")

        line_ending = detect_line_ending(text)
        if normalize_line_endings:
            text = normalize_newlines(text)
        return ReadResult(
            success=True,
            content=FileContent(
                content=text,
                encoding='utf-8',
                line_ending=line_ending,
                bom=False,
                size=len(text.encode('utf-8')),
                extracted=True,
            )
        )

    def write_file(
        self,
        path: Path | str,
        content: str,
        encoding: str = 'utf-8',
        line_ending: LineEnding = LineEnding.LF,
        atomic: bool = True,
        create_backup: bool = False,
        backup_extension: str = '.orig'
    ) -> WriteResult:
        """
        Write text to a file.

        Args:
            path: Path to write to
            content: Text with \\n line endings
            encoding: Encoding to use
            line_ending: Line ending style to write
            atomic: Write to a temp file in the target directory, then move
            create_backup: Copy an existing file aside first
            backup_extension: Suffix appended to the backup's name

        Returns:
            WriteResult with success status
        """
        path = Path(path)
        if line_ending.separator != '\n':
            content = content.replace('\n', line_ending.separator)

        try:
            encoded = content.encode(encoding)
        except (UnicodeEncodeError, LookupError) as e:
            return WriteResult(success=False, error=f"Cannot encode as {encoding}: {e}")

        backup_path = None
        try:
            if create_backup and path.exists():
                backup_path = path.with_name(path.name + backup_extension)
                shutil.copy2(path, backup_path)

            path.parent.mkdir(parents=True, exist_ok=True)
            if atomic:
                fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
                try:
                    with os.fdopen(fd, 'wb') as f:
                        f.write(encoded)
                    os.replace(temp_path, path)
                except BaseException:
                    if os.path.exists(temp_path):
                        os.unlink(temp_path)
                    raise
            else:
                path.write_bytes(encoded)

            return WriteResult(success=True, bytes_written=len(encoded), backup_path=backup_path)

        except PermissionError:
            return WriteResult(success=False, error=f"Permission denied: {path}")
        except OSError as e:
            return WriteResult(success=False, error=f"OS error: {e}")

    def _is_binary(self, chunk: bytes) -> bool:
        """Check if leading bytes look like a binary file."""
        if not chunk:
            return False
        if any(chunk.startswith(marker) for marker, _ in BOMS):
            return False
        if b'\x00' in chunk:
            return True
        non_text = sum(1 for b in chunk if b < 9 or 13 < b < 32)
        return non_text / len(chunk) > 0.3

    def _detect_encoding(self, content: bytes) -> str:
        """Detect encoding of content."""
        if not content:
            return self.default_encoding

        result = chardet.detect(content)
        if result['encoding'] and result['confidence'] > 0.7:
            encoding = result['encoding'].lower()
            if encoding == 'ascii':
                return 'utf-8'  # ASCII is subset of UTF-8
            return encoding

        return self.default_encoding


def detect_line_ending(content: str) -> LineEnding:
    """Detect line ending style in content."""
    crlf_count = content.count('\r\n')
    lf_count = content.count('\n') - crlf_count
    cr_count = content.count('\r') - crlf_count

    total = crlf_count + lf_count + cr_count
    if total == 0:
        return LineEnding.NONE
    if crlf_count == total:
        return LineEnding.CRLF
    elif lf_count == total:
        return LineEnding.LF
    elif cr_count == total:
        return LineEnding.CR
    return LineEnding.MIXED


def normalize_newlines(content: str) -> str:
    return content.replace('\r\n', '\n').replace('\r', '\n')
