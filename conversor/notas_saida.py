# conversor/notas_saida.py

"""
Outbound invoice listing parser ("Relação de Notas de Saída").

Fixed layout after the header row, with blank cells interleaved:
0 emissão, 7 estado (destination state), 10 documento, 13 acumulador,
15 valor contábil, 17 CFOP. The report metadata sits in the first two rows.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Union

from conversor import config
from conversor.tabular import Grid, UnreadableInputError, cell_text, normalize_key, parse_valor_br, read_grid

logger = logging.getLogger(__name__)

COL_EMISSAO = 0
COL_ESTADO = 7
COL_DOCUMENTO = 10
COL_ACUMULADOR = 13
COL_VALOR = 15
COL_CFOP = 17

HEADER_MARKER = "emiss"
DATE_PATTERN = re.compile(r'^\d{2}/\d{2}/\d{4}$')
NF_PREFIX_PATTERN = re.compile(r'^NF\s*', re.IGNORECASE)


@dataclass(frozen=True)
class NotaSaidaRow:
    emissao: str
    estado: str
    documento: str
    documento_numero: str
    acumulador: str
    valor_contabil: float
    cfop: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class NotasSaidaParsed:
    empresa: str = ""
    cnpj: str = ""
    data_emissao_relatorio: str = ""
    notas: List[NotaSaidaRow] = field(default_factory=list)

    @property
    def total_valor(self) -> float:
        return sum(n.valor_contabil for n in self.notas)


def normalize_nf(documento: str) -> str:
    """
    Canonical invoice label.

    Examples:
        "6591"     -> "NF 6591"
        "NF6591"   -> "NF 6591"
        "nf  6591" -> "NF 6591"
    """
    numero = NF_PREFIX_PATTERN.sub("", (documento or "").strip())
    return f"NF {numero}"


def find_header_row(grid: Grid) -> int:
    """Index of the first row (among the first few) with a cell mentioning "Emissão", or -1."""
    for r, row in enumerate(grid[:config.NOTAS_HEADER_SCAN]):
        if any(HEADER_MARKER in normalize_key(cell) for cell in row):
            return r
    return -1


def parse_notas_saida_from_rows(grid: Grid) -> NotasSaidaParsed:
    """
    Extracts outbound invoices from a cell grid.

    Args:
        grid: Cell grid from ``read_grid``

    Returns:
        NotasSaidaParsed; ``notas`` is empty when no header row is found
    """
    parsed = NotasSaidaParsed()
    if not grid:
        return parsed

    parsed.empresa = cell_text(grid[0], 3)
    if len(grid) > 1:
        parsed.cnpj = cell_text(grid[1], 3)
        parsed.data_emissao_relatorio = cell_text(grid[1], 20) or cell_text(grid[1], 19)

    header_row = find_header_row(grid)
    if header_row < 0:
        logger.warning("Invoice listing header not found, no records extracted")
        return parsed

    for row in grid[header_row + 1:]:
        emissao = cell_text(row, COL_EMISSAO)
        if not DATE_PATTERN.match(emissao):
            continue

        numero = cell_text(row, COL_DOCUMENTO)
        if not numero:
            continue

        parsed.notas.append(NotaSaidaRow(
            emissao=emissao,
            estado=cell_text(row, COL_ESTADO),
            documento=normalize_nf(numero),
            documento_numero=numero,
            acumulador=cell_text(row, COL_ACUMULADOR),
            valor_contabil=parse_valor_br(cell_text(row, COL_VALOR)),
            cfop=cell_text(row, COL_CFOP),
        ))

    logger.info(f"Parsed {len(parsed.notas)} outbound invoices, total {parsed.total_valor:.2f}")
    return parsed


def parse_notas_saida_from_bytes(data: bytes, filename: Union[str, Path] = "", strict: bool = False) -> NotasSaidaParsed:
    try:
        grid = read_grid(data, filename)
    except UnreadableInputError as e:
        if strict:
            raise
        logger.error(f"Could not read invoice listing {filename}: {e}")
        return NotasSaidaParsed()
    return parse_notas_saida_from_rows(grid)
