# conversor/itau_report.py

"""
Bank payment report parser (Itaú SISPAG "Relatório de Pagamentos").

The report's layout changes between bank releases, so there is no default
column layout: when no header row qualifies, the result is empty.
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Union

from conversor import config
from conversor.header_locator import HeaderRule, locate_header
from conversor.tabular import Grid, UnreadableInputError, clean_cpf_cnpj, parse_data_br, read_grid

logger = logging.getLogger(__name__)

HEADER_RULES = (
    HeaderRule("favorecido", fragments=("favorecido", "beneficiario")),
    HeaderRule("cpf_cnpj", fragments=("cpfcnpj", "cpf", "cnpj")),
    HeaderRule("tipo_pagamento", fragments=("tipodepagamento", "tipo")),
    HeaderRule("referencia", fragments=("referencia",)),
    HeaderRule("data_pagamento", fragments=("datadopagamento", "data")),
    HeaderRule("valor", fragments=("valor",)),
    HeaderRule("status", fragments=("status",)),
)
REQUIRED_FIELDS = ("favorecido", "valor")


@dataclass(frozen=True)
class ItauPagamentoItem:
    favorecido: str
    cpf_cnpj: str
    tipo_pagamento: str
    referencia: str
    data_pagamento: str
    valor: float
    status: str

    def to_dict(self) -> dict:
        return asdict(self)


def parse_itau_report_from_rows(grid: Grid) -> List[ItauPagamentoItem]:
    """
    Extracts payment records from a cell grid.

    Dates are rewritten to YYYY-MM-DD and CPF/CNPJ values keep digits only
    (the bank masks part of a CPF with asterisks).
    """
    if not grid:
        return []

    header = locate_header(
        grid,
        HEADER_RULES,
        max_scan=config.ITAU_HEADER_SCAN,
        min_hits=config.ITAU_MIN_HITS,
        required=REQUIRED_FIELDS,
    )
    if header is None:
        logger.warning("Payment report header not found, no records extracted")
        return []

    columns = header.columns
    items: List[ItauPagamentoItem] = []
    for row in grid[header.row_index + 1:]:
        if not row:
            continue

        favorecido = columns.text(row, "favorecido")
        valor = columns.valor(row, "valor")
        if not favorecido and not valor:
            continue

        items.append(ItauPagamentoItem(
            favorecido=favorecido,
            cpf_cnpj=clean_cpf_cnpj(columns.text(row, "cpf_cnpj")),
            tipo_pagamento=columns.text(row, "tipo_pagamento"),
            referencia=columns.text(row, "referencia"),
            data_pagamento=parse_data_br(columns.text(row, "data_pagamento")),
            valor=valor,
            status=columns.text(row, "status"),
        ))

    logger.info(f"Parsed {len(items)} payment records")
    return items


def parse_itau_report_from_bytes(data: bytes, filename: Union[str, Path] = "", strict: bool = False) -> List[ItauPagamentoItem]:
    try:
        grid = read_grid(data, filename)
    except UnreadableInputError as e:
        if strict:
            raise
        logger.error(f"Could not read payment report {filename}: {e}")
        return []
    return parse_itau_report_from_rows(grid)
