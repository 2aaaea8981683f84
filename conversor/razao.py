# conversor/razao.py

"""
General ledger (Razão Contábil) parser.

The ledger export lists postings grouped under account header lines
("Conta: 5 | 1.1.1.01.00001 | CAIXA"), each group followed by dated rows:

    Data | Lote | Histórico ... | Cta.C.Part. | Débito | Crédito | ... | Saldo

Key functionalities:
- Column detection from the table header, with a fixed default layout when
  the header is absent.
- An explicit two-state machine (NoAccount / InAccount) carried through a
  single pass over the rows; rows seen before any account header are dropped.
- Skipping of opening-balance, totals and report metadata lines.
"""

import logging
import re
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union

from conversor import config
from conversor.header_locator import ColumnMap, HeaderRule, locate_header
from conversor.tabular import Grid, UnreadableInputError, cell_text, parse_valor_br, read_grid, strip_diacritics

logger = logging.getLogger(__name__)

HEADER_RULES = (
    HeaderRule("data", exact=("data",)),
    HeaderRule("lote", fragments=("lote",)),
    HeaderRule("historico", fragments=("histor",)),
    HeaderRule("cta_c_part", fragments=("ctacpart", "cpart", "contrapartida")),
    HeaderRule("debito", fragments=("debito", "deb")),
    HeaderRule("credito", fragments=("credito", "cred")),
)
REQUIRED_FIELDS = ("data", "debito")

DEFAULT_LAYOUT = {
    "data": 0,
    "lote": 1,
    "historico": 2,
    "cta_c_part": 7,
    "debito": 8,
    "credito": 9,
}

ACCOUNT_MARKER = "conta"
ACCOUNT_CODE_PATTERN = re.compile(r'\d+(?:\.\d+)+')
DATE_PATTERN = re.compile(r'^\d{1,2}/\d{1,2}/(?:\d{2}|\d{4})$')
CONTRA_ACCOUNT_PATTERN = re.compile(r'\d+')

# Matched (lowercase, substring) against the first cell
FIRST_CELL_SKIP = (
    "saldo anterior",
    "total",
    "razão",
    "razao",
    "empresa:",
    "c.n.p.j",
    "período",
    "periodo",
    "consolidado",
    "página",
    "pagina",
)
# Matched (uppercase, diacritics stripped) against the historico
HISTORICO_SKIP = ("SALDO ANTERIOR", "TOTAIS")


@dataclass(frozen=True)
class NoAccount:
    """No account header seen yet: data rows are dropped."""


@dataclass(frozen=True)
class InAccount:
    code: str
    description: str


LedgerState = Union[NoAccount, InAccount]


@dataclass(frozen=True)
class RazaoEntry:
    """One posting of the general ledger, tagged with its account."""
    conta_codigo: str
    conta_descricao: str
    data: str
    lote: str
    historico: str
    cta_c_part: str
    debito: float
    credito: float
    saldo: float
    linha: int

    def to_dict(self) -> dict:
        return asdict(self)


def detect_columns(grid: Grid) -> Tuple[ColumnMap, int]:
    """
    Finds the ledger's column layout.

    A header row needs an exact "Data" cell and a debit column. Historico and
    contra-account keep their default position when the header lacks them, a
    missing credit column is assumed to sit right after the debit column, and
    a missing Lote column reads as blank.

    Returns:
        Tuple of (column map, header row index or -1 when the defaults are used)
    """
    header = locate_header(
        grid,
        HEADER_RULES,
        max_scan=config.RAZAO_HEADER_SCAN,
        min_hits=config.RAZAO_MIN_HITS,
        required=REQUIRED_FIELDS,
    )
    if header is None:
        logger.debug("Ledger header not found, using default column layout")
        return ColumnMap(dict(DEFAULT_LAYOUT)), -1

    found = header.columns
    indices = dict(DEFAULT_LAYOUT)
    indices["data"] = found.index("data")
    indices["lote"] = found.index("lote")
    indices["debito"] = found.index("debito")
    if found.has("historico"):
        indices["historico"] = found.index("historico")
    if found.has("cta_c_part"):
        indices["cta_c_part"] = found.index("cta_c_part")
    indices["credito"] = found.index("credito") if found.has("credito") else indices["debito"] + 1

    return ColumnMap(indices), header.row_index


def parse_conta_header(row) -> Optional[InAccount]:
    """
    Extracts the account from a "Conta" marker row.

    The code is the first dotted-numeric token in the row; the description is
    whatever follows it, ignoring bare numbers (the reduced account code).

    Examples:
        ("Conta: 1.1.1.01.00001 CAIXA",)          -> InAccount("1.1.1.01.00001", "CAIXA")
        ("Conta:", "5", "1.1.1.01.00001", "CAIXA") -> InAccount("1.1.1.01.00001", "CAIXA")

    Returns:
        InAccount, or None when no account code is present
    """
    first = re.sub(r'^conta\s*:?\s*', '', cell_text(row, 0), flags=re.IGNORECASE)
    cells = [first] + [cell_text(row, j) for j in range(1, len(row))]
    tokens = " ".join(c for c in cells if c).replace("|", " ").split()

    for i, token in enumerate(tokens):
        if ACCOUNT_CODE_PATTERN.fullmatch(token):
            rest = tokens[i + 1:]
            while rest and (rest[0].isdigit() or rest[0] in ("-", "|")):
                rest = rest[1:]
            return InAccount(code=token, description=" ".join(rest))

    return None


def _is_skipped_first_cell(first_cell: str) -> bool:
    lowered = first_cell.lower()
    if lowered == "data":
        return True
    return any(marker in lowered for marker in FIRST_CELL_SKIP)


def _historico_and_contra(row, columns: ColumnMap) -> Tuple[str, str]:
    """
    History text and contra-account of a data row.

    The history may span every column from ``historico`` up to the
    contra-account (merged in the workbook, separate cells in CSV exports);
    the non-empty cells are joined, repeats from an expanded merge collapsed.
    A contra-account that is not a plain number belongs to the history.
    """
    start = columns.index("historico")
    stop = columns.index("cta_c_part")
    parts: List[str] = []
    if start >= 0:
        end = stop if stop > start else start + 1
        for j in range(start, end):
            value = cell_text(row, j)
            if value and (not parts or parts[-1] != value):
                parts.append(value)

    cta_c_part = columns.text(row, "cta_c_part")
    if cta_c_part and not CONTRA_ACCOUNT_PATTERN.fullmatch(cta_c_part):
        parts.append(cta_c_part)
        cta_c_part = ""

    return " ".join(parts), cta_c_part


def _saldo(row, columns: ColumnMap) -> float:
    """Right-most numeric cell past the credit column."""
    for j in range(len(row) - 1, columns.index("credito"), -1):
        value = cell_text(row, j)
        if value and re.search(r'\d', value):
            return parse_valor_br(value)
    return 0.0


def step(state: LedgerState, row_index: int, row, columns: ColumnMap) -> Tuple[LedgerState, Optional[RazaoEntry]]:
    """
    Advances the ledger state machine by one row.

    Args:
        state: Current account context
        row_index: Zero-based index of the row in the grid
        row: Grid row
        columns: Ledger column layout

    Returns:
        Tuple of (next state, entry emitted by this row or None)
    """
    first_cell = cell_text(row, 0)

    if first_cell.lower().startswith(ACCOUNT_MARKER):
        account = parse_conta_header(row)
        if account is None:
            return state, None
        return account, None

    if not isinstance(state, InAccount):
        return state, None

    if _is_skipped_first_cell(first_cell) or not DATE_PATTERN.match(first_cell):
        return state, None

    historico, cta_c_part = _historico_and_contra(row, columns)
    if any(marker in strip_diacritics(historico.upper()) for marker in HISTORICO_SKIP):
        return state, None

    debito = columns.valor(row, "debito")
    credito = columns.valor(row, "credito")
    if not cta_c_part and debito == 0 and credito == 0:
        return state, None

    entry = RazaoEntry(
        conta_codigo=state.code,
        conta_descricao=state.description,
        data=first_cell,
        lote=columns.text(row, "lote"),
        historico=historico,
        cta_c_part=cta_c_part,
        debito=debito,
        credito=credito,
        saldo=_saldo(row, columns),
        linha=row_index + 1,
    )
    return state, entry


def iter_razao_entries(grid: Grid) -> Iterator[RazaoEntry]:
    columns, header_row = detect_columns(grid)
    state: LedgerState = NoAccount()

    for row_index, row in enumerate(grid):
        if row_index == header_row or not row:
            continue
        state, entry = step(state, row_index, row, columns)
        if entry is not None:
            yield entry


def parse_razao_from_rows(grid: Grid) -> List[RazaoEntry]:
    """
    Extracts ledger postings from a cell grid.

    Args:
        grid: Cell grid from ``read_grid``

    Returns:
        List of RazaoEntry in file order
    """
    entries = list(iter_razao_entries(grid))
    accounts = len({e.conta_codigo for e in entries})
    logger.info(f"Parsed {len(entries)} ledger entries across {accounts} accounts")
    return entries


def parse_razao_from_bytes(data: bytes, filename: Union[str, Path] = "", strict: bool = False) -> List[RazaoEntry]:
    """
    Reads a general ledger file (workbook or delimited text).

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
        logger.error(f"Could not read ledger {filename}: {e}")
        return []
    return parse_razao_from_rows(grid)
