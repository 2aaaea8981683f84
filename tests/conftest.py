# tests/conftest.py

"""Shared helpers: in-memory workbooks and fixed-layout CSV lines."""

import io

import pytest
from openpyxl import Workbook


def build_xlsx(rows, merges=(), leading_empty_sheet=False) -> bytes:
    """
    Builds an .xlsx file in memory.

    Args:
        rows: Sheet rows (lists of cell values)
        merges: openpyxl range strings to merge, e.g. "A1:C1"
        leading_empty_sheet: Put an empty sheet before the data sheet
    """
    workbook = Workbook()
    sheet = workbook.active
    if leading_empty_sheet:
        sheet.title = "Capa"
        sheet = workbook.create_sheet("Dados")

    for row in rows:
        sheet.append(list(row))
    for cell_range in merges:
        sheet.merge_cells(cell_range)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def fixed_line(cells, width=36, sep=";") -> str:
    """Builds a sparse delimited line from {column index: value}."""
    values = [""] * width
    for idx, value in cells.items():
        values[idx] = value
    return sep.join(values)


@pytest.fixture
def xlsx_bytes():
    return build_xlsx
