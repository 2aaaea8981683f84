# conversor/report_generator.py

"""
CSV export of parsed records and rewrite results.

Files are written with ';' as separator and a decimal comma, the format
Brazilian spreadsheet tools open directly, in utf-8-sig for Excel.
"""

import logging
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from conversor.movimento_estoque import MovimentoEstoqueParsed
from conversor.notas_saida import NotasSaidaParsed
from conversor.sped_rewriter import RewriteResult

logger = logging.getLogger(__name__)

CSV_OPTIONS = {"sep": ";", "decimal": ",", "index": False, "encoding": "utf-8-sig"}


def _format_amount(value: float) -> str:
    return f"{value:.2f}".replace(".", ",")


def records_to_frame(records: Iterable, columns: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """
    Builds a DataFrame from dataclass records (or plain dicts).

    Args:
        records: Parsed records
        columns: Column order for an empty result, so the CSV keeps its header
    """
    rows = [asdict(r) if is_dataclass(r) else dict(r) for r in records]
    if not rows:
        return pd.DataFrame(columns=list(columns or []))
    return pd.DataFrame(rows)


def generate_records_report(records: Iterable, output_path: Path, columns: Optional[Sequence[str]] = None) -> Path:
    """
    Writes parsed records to a CSV file.

    Args:
        records: Parsed records
        output_path: Destination CSV
        columns: Header to write when there are no records

    Returns:
        The output path
    """
    df = records_to_frame(records, columns)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, **CSV_OPTIONS)
    logger.info(f"Saved {len(df)} rows to {output_path}")
    return output_path


def generate_movimento_report(parsed: MovimentoEstoqueParsed, output_path: Path) -> Path:
    """Writes the inventory movements plus a summary file next to them."""
    generate_records_report(parsed.movimentos, output_path)

    summary_rows = [
        {"Campo": "Empresa", "Valor": parsed.empresa},
        {"Campo": "Produto", "Valor": parsed.produto},
        {"Campo": "Período", "Valor": parsed.periodo},
        {"Campo": "Saldo anterior (qtd)", "Valor": _format_amount(parsed.saldo_anterior_qtd)},
        {"Campo": "Saldo anterior (valor total)", "Valor": _format_amount(parsed.saldo_anterior_valor_total)},
        {"Campo": "Total entradas (qtd)", "Valor": _format_amount(parsed.total_entradas)},
        {"Campo": "Total saídas (qtd)", "Valor": _format_amount(parsed.total_saidas)},
        {"Campo": "Total entradas (valor)", "Valor": _format_amount(parsed.total_entrada_valor)},
        {"Campo": "Total saídas (valor)", "Valor": _format_amount(parsed.total_saida_valor)},
    ]
    summary_path = output_path.with_name(f"{output_path.stem}_resumo.csv")
    pd.DataFrame(summary_rows).to_csv(summary_path, **CSV_OPTIONS)
    logger.info(f"Inventory summary saved to {summary_path}")
    return output_path


def generate_notas_report(parsed: NotasSaidaParsed, output_path: Path) -> Path:
    generate_records_report(parsed.notas, output_path)
    logger.info(
        f"{parsed.empresa or 'Unknown company'} ({parsed.cnpj or '-'}): "
        f"{len(parsed.notas)} invoices, total {_format_amount(parsed.total_valor)}"
    )
    return output_path


def generate_lookup_report(lookup: Dict[str, str], key_column: str, output_path: Path) -> Path:
    """Writes a key -> account lookup as a two-column CSV."""
    rows: List[dict] = [{key_column: key, "conta_debito": conta} for key, conta in lookup.items()]
    return generate_records_report(rows, output_path, columns=[key_column, "conta_debito"])


def generate_rewrite_errors_report(result: RewriteResult, output_path: Path) -> Optional[Path]:
    """
    Writes the rewriter's per-document errors.

    Returns:
        The output path, or None when the rewrite had no errors
    """
    if result.success:
        logger.info("No rewrite errors to report")
        return None

    df = records_to_frame(result.errors)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output_path, **CSV_OPTIONS)
    logger.info(f"Rewrite errors saved to {output_path}")
    for error in result.errors:
        logger.warning(f"  - {error}")
    return output_path
