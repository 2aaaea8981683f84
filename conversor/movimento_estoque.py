# conversor/movimento_estoque.py

"""
Inventory movement report parser ("Movimento Individual do Produto").

Unlike the other reports this one is not header-driven: the exporter writes a
fixed, sparse layout (one ';' per cell, most of them empty) and the values are
read from fixed column positions:

     0  Data                   18  Saída quantidade
     5  Documento              20  Saída valor unitário
    10  Entrada quantidade     24  Saída valor total
    12  Entrada valor unitário 27  Saldo físico
    16  Entrada valor total    30  Saldo valor médio
                               35  Saldo valor total

A different exporter version with shifted columns is misread silently.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from conversor.tabular import Grid, UnreadableInputError, cell_text, parse_valor_br, read_grid

logger = logging.getLogger(__name__)

COL_DATA = 0
COL_DOCUMENTO = 5
COL_ENTRADA_QTD = 10
COL_ENTRADA_UNIT = 12
COL_ENTRADA_TOTAL = 16
COL_SAIDA_QTD = 18
COL_SAIDA_UNIT = 20
COL_SAIDA_TOTAL = 24
COL_SALDO_FISICO = 27
COL_SALDO_MEDIO = 30
COL_SALDO_TOTAL = 35

# Report metadata: (row, column)
EMPRESA_CELL = (0, 5)
PERIODO_INICIO_CELL = (1, 5)
PERIODO_FIM_CELL = (1, 10)
PRODUTO_CELL = (2, 5)

OPENING_BALANCE_MARKER = "saldo anterior"
SKIP_DOCUMENTS = ("saldo anterior", "transporte da folha anterior", "totais")
DATE_PATTERN = re.compile(r'^\d{2}/\d{2}/\d{4}$')
NF_PATTERN = re.compile(r'NF\s*(\d+)', re.IGNORECASE)

ENTRADA = "entrada"
SAIDA = "saida"


@dataclass(frozen=True)
class MovimentoEstoqueRow:
    data: str
    documento: str
    nf_numero: Optional[str]
    tipo: str
    quantidade: float
    valor_unitario: float
    valor_total: float
    saldo_fisico: float
    saldo_valor_medio: float
    saldo_valor_total: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class MovimentoEstoqueParsed:
    """Parsed report: header metadata, opening balance, movements and totals."""
    empresa: str = ""
    produto: str = ""
    periodo: str = ""
    saldo_anterior_qtd: float = 0.0
    saldo_anterior_valor_medio: float = 0.0
    saldo_anterior_valor_total: float = 0.0
    movimentos: List[MovimentoEstoqueRow] = field(default_factory=list)

    @property
    def total_entradas(self) -> float:
        return sum(m.quantidade for m in self.movimentos if m.tipo == ENTRADA)

    @property
    def total_saidas(self) -> float:
        return sum(m.quantidade for m in self.movimentos if m.tipo == SAIDA)

    @property
    def total_entrada_valor(self) -> float:
        return sum(m.valor_total for m in self.movimentos if m.tipo == ENTRADA)

    @property
    def total_saida_valor(self) -> float:
        return sum(m.valor_total for m in self.movimentos if m.tipo == SAIDA)


def extract_nf_numero(documento: str) -> Optional[str]:
    """'NF 16460' -> '16460'; None when the document carries no invoice number."""
    match = NF_PATTERN.search(documento or "")
    return match.group(1) if match else None


def _cell(grid: Grid, position) -> str:
    row, col = position
    if row >= len(grid):
        return ""
    return cell_text(grid[row], col)


def _is_skipped_document(documento: str) -> bool:
    lowered = documento.lower()
    return any(marker in lowered for marker in SKIP_DOCUMENTS)


def _movement(row, tipo: str, data: str, documento: str) -> MovimentoEstoqueRow:
    if tipo == ENTRADA:
        qtd, unit, total = COL_ENTRADA_QTD, COL_ENTRADA_UNIT, COL_ENTRADA_TOTAL
    else:
        qtd, unit, total = COL_SAIDA_QTD, COL_SAIDA_UNIT, COL_SAIDA_TOTAL

    return MovimentoEstoqueRow(
        data=data,
        documento=documento,
        nf_numero=extract_nf_numero(documento),
        tipo=tipo,
        quantidade=parse_valor_br(cell_text(row, qtd)),
        valor_unitario=parse_valor_br(cell_text(row, unit)),
        valor_total=parse_valor_br(cell_text(row, total)),
        saldo_fisico=parse_valor_br(cell_text(row, COL_SALDO_FISICO)),
        saldo_valor_medio=parse_valor_br(cell_text(row, COL_SALDO_MEDIO)),
        saldo_valor_total=parse_valor_br(cell_text(row, COL_SALDO_TOTAL)),
    )


def parse_movimento_estoque_from_rows(grid: Grid) -> MovimentoEstoqueParsed:
    """
    Extracts inventory movements from a cell grid.

    A line with both entry and exit quantities yields two rows, entry first.
    The opening-balance line fills the ``saldo_anterior_*`` fields instead of
    producing a movement.

    Args:
        grid: Cell grid from ``read_grid``

    Returns:
        MovimentoEstoqueParsed (empty when the grid is empty)
    """
    parsed = MovimentoEstoqueParsed()
    if not grid:
        return parsed

    parsed.empresa = _cell(grid, EMPRESA_CELL)
    parsed.periodo = f"{_cell(grid, PERIODO_INICIO_CELL)} até {_cell(grid, PERIODO_FIM_CELL)}"
    parsed.produto = _cell(grid, PRODUTO_CELL)

    for row in grid:
        data = cell_text(row, COL_DATA)
        documento = cell_text(row, COL_DOCUMENTO)
        if not data and not documento:
            continue

        if OPENING_BALANCE_MARKER in documento.lower():
            parsed.saldo_anterior_qtd = parse_valor_br(cell_text(row, COL_SALDO_FISICO))
            parsed.saldo_anterior_valor_medio = parse_valor_br(cell_text(row, COL_SALDO_MEDIO))
            parsed.saldo_anterior_valor_total = parse_valor_br(cell_text(row, COL_SALDO_TOTAL))
            continue

        if _is_skipped_document(documento) or cell_text(row, 1).lower() == "totais":
            continue

        if not DATE_PATTERN.match(data):
            continue

        if parse_valor_br(cell_text(row, COL_ENTRADA_QTD)) > 0:
            parsed.movimentos.append(_movement(row, ENTRADA, data, documento))
        if parse_valor_br(cell_text(row, COL_SAIDA_QTD)) > 0:
            parsed.movimentos.append(_movement(row, SAIDA, data, documento))

    logger.info(
        f"Parsed {len(parsed.movimentos)} inventory movements for '{parsed.produto}' "
        f"(in: {parsed.total_entradas}, out: {parsed.total_saidas})"
    )
    return parsed


def parse_movimento_estoque_from_bytes(data: bytes, filename: Union[str, Path] = "", strict: bool = False) -> MovimentoEstoqueParsed:
    try:
        grid = read_grid(data, filename)
    except UnreadableInputError as e:
        if strict:
            raise
        logger.error(f"Could not read inventory report {filename}: {e}")
        return MovimentoEstoqueParsed()
    return parse_movimento_estoque_from_rows(grid)
