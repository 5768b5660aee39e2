import csv
import io
import re
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import PyPDF2
from PyPDF2.errors import PdfReadError

from docchat.config import settings
from docchat.exceptions import (
    MalformedTable,
    ProcessingTimeout,
    UnreadableDocument,
    UnsupportedFileType,
)
from docchat.models.file import FileType

logger = logging.getLogger(__name__)

# Script ranges used for best-effort language detection
LANGUAGE_PATTERNS = {
    "english": re.compile(r"[a-zA-Z]"),
    "chinese": re.compile(r"[\u4e00-\u9fff]"),
    "japanese": re.compile(r"[\u3040-\u309f\u30a0-\u30ff]"),
    "korean": re.compile(r"[\uac00-\ud7af]"),
    "arabic": re.compile(r"[\u0600-\u06ff]"),
    "cyrillic": re.compile(r"[\u0400-\u04ff]"),
}


def detect_language(text: str) -> str:
    """Name of the dominant script, or "unknown" below 10% of the text"""
    if not text or len(text) < 10:
        return "unknown"
    scores = {lang: len(pattern.findall(text)) for lang, pattern in LANGUAGE_PATTERNS.items()}
    best = max(scores, key=scores.get)
    return best if scores[best] > len(text) * 0.1 else "unknown"


@dataclass
class ProcessingResult:
    extracted_text: str
    metadata: Dict[str, Any] = field(default_factory=dict)


class FileProcessor:
    """Turns raw document bytes into text plus structural metadata.

    Processing is a pure function of the bytes and the declared type. It never
    touches storage, so it can be retried freely; the caller persists the outcome.
    """

    def __init__(self, preview_rows: Optional[int] = None):
        self.preview_rows = settings.CSV_PREVIEW_ROWS if preview_rows is None else preview_rows
        self._strategies: Dict[FileType, Callable[[bytes], ProcessingResult]] = {
            FileType.PDF: self._process_pdf,
            FileType.CSV: self._process_csv,
            FileType.OTHER: self._reject_other,
        }

    def process(self, raw_bytes: bytes, declared_type) -> ProcessingResult:
        """Extract text and metadata for the declared file type"""
        try:
            file_type = FileType(declared_type)
        except ValueError:
            raise UnsupportedFileType(f"Unsupported file type: {declared_type}")
        logger.info(f"Processing {len(raw_bytes)} bytes as {file_type.value}")
        return self._strategies[file_type](raw_bytes)

    def process_with_timeout(self, raw_bytes: bytes, declared_type, timeout_s: float) -> ProcessingResult:
        """Same as process() but gives up after timeout_s seconds"""
        executor = ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.process, raw_bytes, declared_type)
        try:
            return future.result(timeout=timeout_s)
        except FutureTimeout:
            logger.warning(f"File processing exceeded {timeout_s}s")
            raise ProcessingTimeout(f"File processing timed out after {timeout_s} seconds")
        finally:
            # Do not block on a parser that is still running
            executor.shutdown(wait=False)

    def _process_pdf(self, raw_bytes: bytes) -> ProcessingResult:
        try:
            pdf_reader = PyPDF2.PdfReader(io.BytesIO(raw_bytes))
            pages = []
            for page in pdf_reader.pages:
                pages.append(page.extract_text() or "")
            page_count = len(pdf_reader.pages)
        except PdfReadError as e:
            raise UnreadableDocument(f"PDF processing failed: {str(e)}")
        except Exception as e:
            logger.error(f"Error reading PDF: {str(e)}")
            raise UnreadableDocument(f"PDF processing failed: {str(e)}")

        text = "\n".join(pages).strip()
        return ProcessingResult(
            extracted_text=text,
            metadata={"pages": page_count, "language": detect_language(text)},
        )

    def _process_csv(self, raw_bytes: bytes) -> ProcessingResult:
        try:
            content = raw_bytes.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedTable(f"CSV processing failed: file is not valid UTF-8 ({str(e)})")

        try:
            reader = csv.reader(io.StringIO(content, newline=""), strict=True)
            columns: List[str] = []
            rows: List[List[str]] = []
            for record in reader:
                if not record:
                    continue
                if not columns:
                    columns = [name.strip() for name in record]
                    continue
                if len(record) != len(columns):
                    raise MalformedTable(
                        f"CSV processing failed: row {reader.line_num} has {len(record)} "
                        f"fields, expected {len(columns)}"
                    )
                rows.append(record)
        except csv.Error as e:
            raise MalformedTable(f"CSV processing failed: {str(e)}")

        text = self._csv_digest(rows, columns)
        return ProcessingResult(
            extracted_text=text,
            metadata={
                "rows": len(rows),
                "columns": columns,
                "encoding": "utf-8",
                "language": detect_language(text),
            },
        )

    def _csv_digest(self, rows: List[List[str]], columns: List[str]) -> str:
        if not rows:
            return "Empty CSV file"

        lines = [
            f"CSV Data with {len(columns)} columns and {len(rows)} rows:",
            "",
            f"Columns: {', '.join(columns)}",
            "",
        ]
        for index, row in enumerate(rows[:self.preview_rows], start=1):
            cells = ", ".join(f"{col}: {value}" for col, value in zip(columns, row))
            lines.append(f"Row {index}: {cells}")

        text = "\n".join(lines)
        remaining = len(rows) - self.preview_rows
        if remaining > 0:
            text += f"\n\n... and {remaining} more rows"
        return text

    def _reject_other(self, raw_bytes: bytes) -> ProcessingResult:
        raise UnsupportedFileType(f"Unsupported file type: {FileType.OTHER.value}")
