# conversor/sped_ajustes.py

"""
Adjustment table reader for the SPED Fiscal rewriter.

The adjustment table is prepared outside this package (usually a spreadsheet
saved as CSV) with one row per returned invoice:

    NF;DT_VENC;DT_PAG;DT_DOC_ENTRADA;VL_AJ_APUR;ICMS_PROPRIO;ICMS_ST;
    NUM_NF_ENTRADA;AUTENTICACAO;COD_PART;SERIE;SUBSERIE;CHAVE_NFE

Column names are matched case-insensitively; missing columns read as blank.
Monetary values are parsed here; dates and the partner code are kept as text
and validated by the rewriter, so that one bad row only fails its own document.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Optional, Union

import pandas as pd

from conversor.tabular import Grid, LEADING_NUMBER_PATTERN, parse_csv_content, parse_valor_br

logger = logging.getLogger(__name__)

COLUMNS = (
    "NF",
    "DT_VENC",
    "DT_PAG",
    "DT_DOC_ENTRADA",
    "VL_AJ_APUR",
    "ICMS_PROPRIO",
    "ICMS_ST",
    "NUM_NF_ENTRADA",
    "AUTENTICACAO",
    "COD_PART",
    "SERIE",
    "SUBSERIE",
    "CHAVE_NFE",
)

NF_PREFIX_PATTERN = re.compile(r'^NF\s*', re.IGNORECASE)
BR_DECIMAL_PATTERN = re.compile(r',\d{1,2}$')

DateValue = Union[str, date]


@dataclass(frozen=True)
class AjusteSped:
    """One adjustment row, keyed by invoice number."""
    nf: str
    dt_venc: DateValue = ""
    dt_pag: DateValue = ""
    dt_doc_entrada: DateValue = ""
    vl_aj_apur: float = 0.0
    icms_proprio: float = 0.0
    icms_st: float = 0.0
    num_nf_entrada: str = ""
    autenticacao: str = ""
    cod_part: str = ""
    serie: str = ""
    subserie: str = ""
    chave_nfe: str = ""

    @property
    def nf_key(self) -> str:
        """Invoice number as it appears in C100 NUM_DOC ("NF 123" -> "123")."""
        return normalize_nf_key(self.nf)


def normalize_nf_key(nf) -> str:
    return NF_PREFIX_PATTERN.sub("", str(nf or "").strip()).strip()


def parse_numero(value) -> Optional[float]:
    """
    Parses a number written in scientific, Brazilian or US notation.

    Examples:
        "1.23E+05" -> 123000.0
        "1.234,56" -> 1234.56
        "1,234.56" -> 1234.56
        "abc"      -> None

    Returns:
        The number, or None when the value is blank or not numeric
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if pd.isna(value) else float(value)

    text = str(value).strip().replace("R$", "").replace(" ", "")
    if not text:
        return None

    if "e" in text or "E" in text:
        try:
            return float(text)
        except ValueError:
            return None

    if "," in text:
        if BR_DECIMAL_PATTERN.search(text):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")

    match = LEADING_NUMBER_PATTERN.match(text)
    if not match:
        return None
    return float(match.group(0))


def parse_numero_seguro(value) -> float:
    """Like ``parse_numero`` but returns 0.0 instead of None."""
    number = parse_numero(value)
    return 0.0 if number is None else number


def _text(record: dict, column: str) -> str:
    value = record.get(column, "")
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def ajustes_from_frame(df: pd.DataFrame, parse_money: Callable[[str], float] = parse_numero_seguro) -> List[AjusteSped]:
    """
    Converts an adjustment DataFrame to AjusteSped records.

    Rows without an invoice number are skipped.

    Args:
        df: Adjustment table, one row per invoice
        parse_money: Parser for the monetary columns
    """
    df = df.rename(columns=lambda c: str(c).strip().upper())
    missing = [c for c in COLUMNS if c not in df.columns]
    if missing:
        logger.warning(f"Adjustment table is missing columns: {', '.join(missing)}")

    ajustes: List[AjusteSped] = []
    for row_number, record in enumerate(df.to_dict(orient="records"), start=2):
        nf = _text(record, "NF")
        if not nf:
            logger.debug(f"Adjustment row {row_number} skipped: no NF")
            continue

        ajustes.append(AjusteSped(
            nf=nf,
            dt_venc=_text(record, "DT_VENC"),
            dt_pag=_text(record, "DT_PAG"),
            dt_doc_entrada=_text(record, "DT_DOC_ENTRADA"),
            vl_aj_apur=parse_money(_text(record, "VL_AJ_APUR")),
            icms_proprio=parse_money(_text(record, "ICMS_PROPRIO")),
            icms_st=parse_money(_text(record, "ICMS_ST")),
            num_nf_entrada=_text(record, "NUM_NF_ENTRADA"),
            autenticacao=_text(record, "AUTENTICACAO"),
            cod_part=_text(record, "COD_PART"),
            serie=_text(record, "SERIE"),
            subserie=_text(record, "SUBSERIE"),
            chave_nfe=_text(record, "CHAVE_NFE"),
        ))

    logger.info(f"Loaded {len(ajustes)} SPED adjustments")
    return ajustes


def detect_separator(text: str) -> str:
    """';' or tab when the header line has one, else ','."""
    header = next((line for line in text.splitlines() if line.strip()), "")
    if ";" in header:
        return ";"
    if "\t" in header:
        return "\t"
    return ","


def parse_ajustes_csv(text: str) -> List[AjusteSped]:
    """
    Reads the adjustment table from delimited text.

    Rows are split with the grid reader rather than ``pd.read_csv`` so that
    ragged rows (a trailing separator, an unquoted decimal comma in a
    comma-separated file) are cut to the header width instead of aborting
    the whole table. Monetary cells may be in any notation ``parse_numero``
    accepts.

    Args:
        text: Decoded file content; first non-blank line is the header

    Returns:
        List of AjusteSped in file order ([] for a header-only or empty file)
    """
    if not text.strip():
        return []

    grid = parse_csv_content(text, detect_separator(text))
    return ajustes_from_grid(grid, parse_money=parse_numero_seguro)


def ajustes_from_grid(grid: Grid, parse_money: Callable[[str], float] = parse_valor_br) -> List[AjusteSped]:
    """
    Reads the adjustment table from a cell grid; row 0 is the header.

    Workbook grids render numbers with a decimal comma (see ``render_cell``),
    so monetary cells are read with ``parse_valor_br`` by default.
    """
    if len(grid) < 2:
        return []

    header = list(grid[0])
    width = len(header)
    rows = []
    for row_number, row in enumerate(grid[1:], start=2):
        extra = [cell for cell in row[width:] if str(cell).strip()]
        if extra:
            logger.warning(f"Adjustment row {row_number} has {len(extra)} cells beyond the header, ignored")
        rows.append(list(row[:width]) + [""] * (width - len(row)))
    return ajustes_from_frame(pd.DataFrame(rows, columns=header), parse_money=parse_money)


def index_ajustes(ajustes: Iterable[AjusteSped]) -> dict:
    """NF key -> adjustment. A later row for the same invoice replaces the earlier one."""
    index = {}
    for ajuste in ajustes:
        key = ajuste.nf_key
        if key in index:
            logger.warning(f"Duplicate adjustment for NF {key}, keeping the last one")
        index[key] = ajuste
    return index
