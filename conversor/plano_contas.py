# conversor/plano_contas.py

"""
Chart-of-accounts (Plano de Contas) parser.

Reads the account list exported by the bookkeeping system (workbook or
delimited text) into PlanoContasItem records, in file order. The header row
is located by keyword scoring; when none qualifies the first non-blank row is
taken as header and columns A-D are assumed (descrição, código,
classificação, CNPJ).
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Union

from conversor import config
from conversor.header_locator import ColumnMap, HeaderRule, first_non_blank_row, locate_header
from conversor.tabular import Grid, UnreadableInputError, clean_cpf_cnpj, read_grid

logger = logging.getLogger(__name__)

HEADER_RULES = (
    HeaderRule("classificacao", fragments=("classifica",)),
    HeaderRule("codigo", fragments=("codigo", "conta"), exact=("cod",)),
    HeaderRule("descricao", fragments=("descricao", "descri")),
    HeaderRule("cnpj", fragments=("cnpj",)),
)
REQUIRED_FIELDS = ("classificacao", "codigo", "descricao")

DEFAULT_COLUMNS = ColumnMap({
    "descricao": 0,
    "codigo": 1,
    "classificacao": 2,
    "cnpj": 3,
})


@dataclass(frozen=True)
class PlanoContasItem:
    """One account of the chart. ``cnpj`` is 14 digits, all zeros when absent."""
    codigo: str
    descricao: str
    classificacao: str
    cnpj: str = config.CNPJ_ZERO

    def to_dict(self) -> dict:
        return asdict(self)


def _normalize_cnpj(raw: str) -> str:
    digits = clean_cpf_cnpj(raw)
    if not digits:
        return config.CNPJ_ZERO
    return digits.zfill(14)


def parse_plano_contas_from_rows(grid: Grid) -> List[PlanoContasItem]:
    """
    Extracts chart-of-accounts records from a cell grid.

    Args:
        grid: Cell grid from ``read_grid``

    Returns:
        List of PlanoContasItem in file order
    """
    if not grid:
        return []

    header = locate_header(
        grid,
        HEADER_RULES,
        max_scan=config.PLANO_HEADER_SCAN,
        min_hits=config.PLANO_MIN_HITS,
        required=REQUIRED_FIELDS,
    )

    if header:
        header_row, columns = header.row_index, header.columns
    else:
        header_row, columns = first_non_blank_row(grid), DEFAULT_COLUMNS
        if header_row < 0:
            return []
        logger.warning(f"Chart-of-accounts header not found, assuming columns A-D after row {header_row}")

    items: List[PlanoContasItem] = []
    for row in grid[header_row + 1:]:
        if not row:
            continue

        descricao = columns.text(row, "descricao")
        codigo = columns.text(row, "codigo")
        classificacao = columns.text(row, "classificacao")
        cnpj_raw = columns.text(row, "cnpj")

        all_blank = (
            not descricao
            and not codigo
            and not classificacao
            and cnpj_raw in ("", "0", config.CNPJ_ZERO)
        )
        if all_blank:
            continue

        if not descricao and not codigo:
            continue

        items.append(PlanoContasItem(
            codigo=codigo,
            descricao=descricao,
            classificacao=classificacao,
            cnpj=_normalize_cnpj(cnpj_raw),
        ))

    logger.info(f"Parsed {len(items)} chart-of-accounts records")
    return items


def parse_plano_contas_from_bytes(data: bytes, filename: Union[str, Path] = "", strict: bool = False) -> List[PlanoContasItem]:
    """
    Reads a chart-of-accounts file (workbook or delimited text).

    Args:
        data: Raw file content
        filename: Original name, used to pick the reader
        strict: Re-raise UnreadableInputError instead of returning []
    """
    try:
        grid = read_grid(data, filename)
    except UnreadableInputError as e:
        if strict:
            raise
        logger.error(f"Could not read chart of accounts {filename}: {e}")
        return []
    return parse_plano_contas_from_rows(grid)
