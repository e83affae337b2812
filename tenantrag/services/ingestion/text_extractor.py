"""Raw-bytes to text conversion for uploaded documents.

Dispatches on a closed :class:`FileFormat` enum, one handler per format:

- ``txt`` / ``csv`` / ``json`` -- UTF-8 decode, undecodable bytes replaced.
- ``pdf`` -- PyMuPDF (``fitz``), page text concatenated in page order.
- ``docx`` -- python-docx, paragraph text followed by table cell text.
- ``xlsx`` -- openpyxl in read-only / values-only mode, one
  ``Sheet: <name>`` header per sheet and ``" | "``-joined row values.

Every failure is an :class:`ExtractionError` with a reason code.  The
output is a pure function of the input bytes, so callers never retry.
"""

from __future__ import annotations

import io
from collections.abc import Callable
from enum import Enum

import docx
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import openpyxl
import structlog

from tenantrag.utils.errors import ExtractionError, ExtractionReason

logger = structlog.get_logger(logger_name=__name__)

# Extracted text shorter than this (after stripping) is rejected.
MIN_CONTENT_LENGTH = 10


class FileFormat(str, Enum):  # noqa: UP042
    """Formats the extractor knows how to read."""

    PDF = "pdf"
    DOCX = "docx"
    XLSX = "xlsx"
    CSV = "csv"
    TXT = "txt"
    JSON = "json"


def validate_text(text: str, source: str = "document") -> str:
    """Reject empty or near-empty text; return *text* unchanged otherwise.

    Shared by file extraction and the in-memory URL / Q&A flows.
    """
    stripped = text.strip() if text else ""
    if not stripped:
        raise ExtractionError(
            message=f"No text content could be extracted from {source}",
            reason=ExtractionReason.EMPTY_CONTENT,
        )
    if len(stripped) < MIN_CONTENT_LENGTH:
        raise ExtractionError(
            message=(
                f"Extracted content is too short ({len(stripped)} characters, "
                f"minimum {MIN_CONTENT_LENGTH})"
            ),
            reason=ExtractionReason.CONTENT_TOO_SHORT,
        )
    return text


class TextExtractor:
    """Converts raw document bytes into plain text."""

    def __init__(self) -> None:
        self._handlers: dict[FileFormat, Callable[[bytes], str]] = {
            FileFormat.PDF: self._extract_pdf,
            FileFormat.DOCX: self._extract_docx,
            FileFormat.XLSX: self._extract_xlsx,
            FileFormat.CSV: self._decode_utf8,
            FileFormat.TXT: self._decode_utf8,
            FileFormat.JSON: self._decode_utf8,
        }

    def extract(self, raw: bytes, format_tag: str | FileFormat) -> str:
        """Return the text content of *raw*, interpreted as *format_tag*.

        Parameters
        ----------
        raw:
            The document bytes exactly as uploaded.
        format_tag:
            One of the :class:`FileFormat` values (case-insensitive).

        Raises
        ------
        ExtractionError
            ``UNSUPPORTED_FORMAT`` for unknown tags, ``PARSE_FAILED`` when
            the parser rejects the bytes, ``EMPTY_CONTENT`` or
            ``CONTENT_TOO_SHORT`` when nothing usable comes out.
        """
        file_format = self._resolve_format(format_tag)
        handler = self._handlers[file_format]

        try:
            text = handler(raw)
        except ExtractionError:
            raise
        except Exception as exc:
            logger.warning(
                "extraction_parse_failed",
                format=file_format.value,
                size=len(raw),
                error=str(exc),
            )
            raise ExtractionError(
                message=f"Failed to parse {file_format.value.upper()} file: {exc}",
                reason=ExtractionReason.PARSE_FAILED,
            ) from exc

        validate_text(text, source=f"{file_format.value.upper()} file")
        logger.info(
            "text_extracted",
            format=file_format.value,
            bytes=len(raw),
            chars=len(text),
        )
        return text

    # ------------------------------------------------------------------
    # Format handlers
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_format(format_tag: str | FileFormat) -> FileFormat:
        if isinstance(format_tag, FileFormat):
            return format_tag
        try:
            return FileFormat(str(format_tag).strip().lower())
        except ValueError:
            raise ExtractionError(
                message=f"Unsupported file type: {format_tag}",
                reason=ExtractionReason.UNSUPPORTED_FORMAT,
            ) from None

    @staticmethod
    def _decode_utf8(raw: bytes) -> str:
        return raw.decode("utf-8", errors="replace")

    @staticmethod
    def _extract_pdf(raw: bytes) -> str:
        pdf = fitz.open(stream=raw, filetype="pdf")
        try:
            pages = [page.get_text() for page in pdf]
        finally:
            pdf.close()
        return "\n".join(pages)

    @staticmethod
    def _extract_docx(raw: bytes) -> str:
        document = docx.Document(io.BytesIO(raw))
        lines = [paragraph.text for paragraph in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
                if cells:
                    lines.append(" | ".join(cells))
        return "\n".join(lines)

    @staticmethod
    def _extract_xlsx(raw: bytes) -> str:
        workbook = openpyxl.load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
        lines: list[str] = []
        try:
            for sheet in workbook.worksheets:
                lines.append(f"Sheet: {sheet.title}")
                for row in sheet.iter_rows(values_only=True):
                    values = [
                        str(cell).strip()
                        for cell in row
                        if cell is not None and str(cell).strip()
                    ]
                    if values:
                        lines.append(" | ".join(values))
                lines.append("")
        finally:
            workbook.close()
        return "\n".join(lines)
