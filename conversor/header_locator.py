# conversor/header_locator.py

"""
Heuristic header detection for loosely-structured exports.

Exports from bookkeeping and banking systems put a variable number of
title/metadata lines above the actual table. Instead of a rigid schema, each
parser describes the columns it expects as keyword fragments, and this module
scans the first rows of the grid for the first row that scores enough hits.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence

from conversor.tabular import Grid, cell_text, normalize_key, parse_valor_br

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HeaderRule:
    """Expected column: normalized cell must contain a fragment or equal an exact token."""
    name: str
    fragments: Sequence[str] = ()
    exact: Sequence[str] = ()

    def matches(self, normalized_cell: str) -> bool:
        if not normalized_cell:
            return False
        if normalized_cell in self.exact:
            return True
        return any(fragment in normalized_cell for fragment in self.fragments)


@dataclass(frozen=True)
class ColumnMap:
    """Logical field -> column index. Missing fields read as "" / 0.0."""
    indices: Mapping[str, int] = field(default_factory=dict)

    def index(self, name: str) -> int:
        return self.indices.get(name, -1)

    def has(self, name: str) -> bool:
        return self.index(name) >= 0

    def text(self, row: Sequence[str], name: str) -> str:
        return cell_text(row, self.index(name))

    def valor(self, row: Sequence[str], name: str) -> float:
        return parse_valor_br(self.text(row, name))

    def as_dict(self) -> Dict[str, int]:
        return dict(self.indices)


@dataclass(frozen=True)
class HeaderMatch:
    row_index: int
    columns: ColumnMap


def score_row(row: Sequence[str], rules: Sequence[HeaderRule]) -> Dict[str, int]:
    """
    Finds, per rule, the first cell index that matches it.

    Returns:
        Field -> column index, with -1 for fields that were not found
    """
    normalized = [normalize_key(cell) for cell in row]
    found: Dict[str, int] = {}
    for rule in rules:
        found[rule.name] = next(
            (i for i, cell in enumerate(normalized) if rule.matches(cell)),
            -1,
        )
    return found


def locate_header(
    grid: Grid,
    rules: Sequence[HeaderRule],
    max_scan: int,
    min_hits: int,
    required: Sequence[str] = (),
) -> Optional[HeaderMatch]:
    """
    Returns the first row among the first ``max_scan`` that qualifies as header.

    A row qualifies when at least ``min_hits`` rules found a column and every
    field listed in ``required`` is among them.

    Args:
        grid: Cell grid
        rules: Expected columns
        max_scan: Number of leading rows to inspect
        min_hits: Minimum number of fields found
        required: Fields that must be found

    Returns:
        HeaderMatch, or None when no row qualifies
    """
    for r, row in enumerate(grid[:max_scan]):
        if not row:
            continue

        found = score_row(row, rules)
        hits = sum(1 for idx in found.values() if idx >= 0)
        if hits >= min_hits and all(found.get(name, -1) >= 0 for name in required):
            logger.debug(f"Header found at row {r} ({hits} hits): {found}")
            return HeaderMatch(row_index=r, columns=ColumnMap(found))

    logger.debug(f"No header row among the first {min(len(grid), max_scan)} rows")
    return None


def first_non_blank_row(grid: Grid) -> int:
    """Index of the first row with any non-blank cell, or -1."""
    return next(
        (r for r, row in enumerate(grid) if any(str(c).strip() for c in row)),
        -1,
    )
