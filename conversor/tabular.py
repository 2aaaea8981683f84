# conversor/tabular.py

"""
Tabular ingestion for accounting exports.

This module turns raw file bytes (spreadsheet workbooks or delimited text)
into a cell grid: a tuple of rows, each a tuple of text cells, with blank
cells as empty strings. Every format parser in this package works on that
grid, so all the "what does this export look like on disk" concerns live here.

Key functionalities:
- Encoding detection for delimited text (UTF-8 first, Latin-1 when the UTF-8
  decode shows replacement characters or double-encoding artifacts).
- Sheet selection and merged-region expansion for workbooks (openpyxl).
- Locale-aware helpers for Brazilian numbers ("1.234,56") and dates
  ("DD/MM/YYYY").
"""

import csv
import io
import logging
import re
import unicodedata
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Tuple, Union
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from conversor import config

logger = logging.getLogger(__name__)

Grid = Tuple[Tuple[str, ...], ...]
# (first_row, first_col, last_row, last_col), zero-based and inclusive
MergedRegion = Tuple[int, int, int, int]

XLSX_MAGIC = b"PK\x03\x04"
XLS_MAGIC = b"\xd0\xcf\x11\xe0"

DATE_BR_PATTERN = re.compile(r'(\d{2})/(\d{2})/(\d{4})')
THOUSANDS_DOT_PATTERN = re.compile(r'\.(?=\d{3}(?!\d))')
LEADING_NUMBER_PATTERN = re.compile(r'-?(?:\d+\.?\d*|\.\d+)')
MOJIBAKE_PATTERN = re.compile('[\u00c2\u00c3][\u0080-\u00bf]')


class UnreadableInputError(ValueError):
    """Raised when a file cannot be read at all (as opposed to being empty)."""


def strip_diacritics(text: str) -> str:
    """Removes combining marks: 'Descrição' -> 'Descricao'."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_key(value) -> str:
    """
    Normalizes a cell for header comparison.

    Lowercase, diacritics stripped, everything except [a-z0-9] removed.
    Example: "Cta.C.Part." -> "ctacpart"
    """
    text = "" if value is None else str(value)
    return re.sub(r'[^a-z0-9]', '', strip_diacritics(text.lower()))


def cell_text(row: Sequence[str], idx: int) -> str:
    """Returns the trimmed cell at ``idx`` or "" when the index is absent."""
    if idx < 0 or idx >= len(row):
        return ""
    value = row[idx]
    return "" if value is None else str(value).strip()


def clean_cpf_cnpj(value: str) -> str:
    """Strips masks and asterisks, keeping only digits."""
    return re.sub(r'\D', '', value or "")


def parse_valor_br(value) -> float:
    """
    Parses a Brazilian-formatted number.

    Keeps digits, comma, dot and minus; drops dots that sit before exactly
    three digits (thousands separators); turns the remaining comma into the
    decimal point. Never raises.

    Examples:
        "1.234,56" -> 1234.56
        "R$ 10,00" -> 10.0
        "" / "abc" -> 0.0
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
        return number if number == number else 0.0

    cleaned = re.sub(r'[^\d,.\-]', '', str(value))
    cleaned = THOUSANDS_DOT_PATTERN.sub('', cleaned)
    cleaned = cleaned.replace(',', '.', 1)

    match = LEADING_NUMBER_PATTERN.match(cleaned)
    if not match:
        return 0.0
    try:
        return float(match.group(0))
    except ValueError:
        return 0.0


def parse_data_br(value: str) -> str:
    """Rewrites DD/MM/YYYY to YYYY-MM-DD; any other input is returned unchanged."""
    if not value:
        return ""
    match = DATE_BR_PATTERN.search(value)
    if match:
        return f"{match.group(3)}-{match.group(2)}-{match.group(1)}"
    return value


def render_cell(value) -> str:
    """
    Converts a workbook cell value to grid text.

    Dates become DD/MM/YYYY and non-integral numbers use a decimal comma, so
    that ``parse_valor_br`` reads them back exactly.
    """
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%d/%m/%Y")
    if isinstance(value, bool):
        return str(value).upper()
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value != value:
            return ""
        if value.is_integer():
            return str(int(value))
        text = repr(value)
        if "e" in text or "E" in text:
            text = f"{value:.10f}".rstrip("0")
        return text.replace(".", ",")
    return str(value).strip()


def expand_merged_cells(rows: Sequence[Sequence[str]], regions: Iterable[MergedRegion]) -> List[List[str]]:
    """
    Copies each merged region's top-left value into the blank cells of the region.

    Args:
        rows: Grid rows (not modified)
        regions: Merged regions as zero-based inclusive (first_row, first_col, last_row, last_col)

    Returns:
        A new list of rows with the merged regions filled in
    """
    out = [list(row) for row in rows]

    for first_row, first_col, last_row, last_col in regions:
        if first_row >= len(out) or first_col >= len(out[first_row]):
            continue
        anchor = out[first_row][first_col]
        if anchor is None or str(anchor).strip() == "":
            continue

        for r in range(first_row, min(last_row, len(out) - 1) + 1):
            row = out[r]
            if len(row) <= last_col:
                row.extend([""] * (last_col + 1 - len(row)))
            for c in range(first_col, last_col + 1):
                if row[c] is None or str(row[c]).strip() == "":
                    row[c] = anchor

    return out


def _freeze(rows: Iterable[Sequence[str]]) -> Grid:
    """Drops fully blank rows and makes the grid immutable."""
    return tuple(
        tuple(row)
        for row in rows
        if any(str(cell).strip() for cell in row)
    )


def decode_text(data: bytes) -> Tuple[str, str]:
    """
    Decodes delimited-text bytes, falling back to Latin-1 on mojibake.

    Returns:
        Tuple of (text, encoding used)
    """
    text = data.decode("utf-8", errors="replace")
    if "\ufffd" in text or MOJIBAKE_PATTERN.search(text):
        logger.debug("UTF-8 decode produced artifacts, re-decoding as latin-1")
        return data.decode("latin-1"), "latin-1"
    if text.startswith("\ufeff"):
        return text[1:], "utf-8-sig"
    return text, "utf-8"


def decode_csv_buffer(data: bytes) -> str:
    return decode_text(data)[0]


def detect_delimiter(text: str) -> str:
    """Uses ';' when the first non-blank line contains it, else ','."""
    for line in text.splitlines():
        if line.strip():
            return ";" if ";" in line else ","
    return ","


def parse_csv_content(text: str, delimiter: Optional[str] = None) -> Grid:
    """
    Splits delimited text into a grid, skipping blank lines.

    Args:
        text: Decoded file content
        delimiter: Field separator; inferred with ``detect_delimiter`` when omitted
    """
    sep = delimiter or detect_delimiter(text)
    lines = [line for line in re.split(r'\r?\n', text) if line.strip()]
    if not lines:
        return ()
    reader = csv.reader(lines, delimiter=sep)
    return _freeze([cell.strip() for cell in row] for row in reader)


def _sheet_has_values(worksheet) -> bool:
    for row in worksheet.iter_rows(values_only=True):
        if any(v is not None and str(v).strip() != "" for v in row):
            return True
    return False


def read_workbook(data: bytes) -> Grid:
    """
    Reads the first non-empty sheet of a workbook into a grid.

    Merged regions are expanded before blank rows are dropped, so that
    column-index based access never sees spurious blanks inside a merge.

    Raises:
        UnreadableInputError: The bytes are not a readable workbook
    """
    try:
        workbook = load_workbook(io.BytesIO(data), data_only=True)
    except (BadZipFile, InvalidFileException, KeyError, OSError, ValueError) as e:
        raise UnreadableInputError(f"Could not open workbook: {e}") from e

    if not workbook.worksheets:
        return ()

    worksheet = next(
        (ws for ws in workbook.worksheets if _sheet_has_values(ws)),
        workbook.worksheets[0],
    )
    logger.debug(f"Reading sheet '{worksheet.title}' ({worksheet.max_row} rows)")

    rows = [[render_cell(v) for v in row] for row in worksheet.iter_rows(values_only=True)]
    regions = [
        (rng.min_row - 1, rng.min_col - 1, rng.max_row - 1, rng.max_col - 1)
        for rng in worksheet.merged_cells.ranges
    ]
    return _freeze(expand_merged_cells(rows, regions))


def read_grid(data: bytes, filename: Union[str, Path] = "") -> Grid:
    """
    Reads raw file bytes into a grid, dispatching on extension and magic bytes.

    Args:
        data: File content
        filename: Original file name, used for the extension

    Returns:
        The cell grid (empty for an empty file)

    Raises:
        UnreadableInputError: Legacy .xls files or corrupt workbooks
    """
    suffix = Path(str(filename)).suffix.lower()

    if data.startswith(XLS_MAGIC) or suffix == ".xls":
        raise UnreadableInputError(f"Legacy .xls workbooks are not supported: {filename}")

    if suffix in config.WORKBOOK_SUFFIXES or data.startswith(XLSX_MAGIC):
        return read_workbook(data)

    return parse_csv_content(decode_csv_buffer(data))
