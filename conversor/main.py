from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path
from typing import Callable, Dict, List, Tuple

from tqdm import tqdm

from conversor import config
from conversor.itau_report import parse_itau_report_from_bytes
from conversor.logger import get_logger, log_processing_summary
from conversor.lookups import build_centro_debito_lookup, build_fornecedor_debito_lookup
from conversor.matcher import buscar_fornecedor_no_plano, verificar_inconsistencia_fornecedor
from conversor.movimento_estoque import parse_movimento_estoque_from_bytes
from conversor.notas_saida import parse_notas_saida_from_bytes
from conversor.plano_contas import parse_plano_contas_from_bytes
from conversor.razao import parse_razao_from_bytes
from conversor.report_generator import (
    generate_lookup_report,
    generate_movimento_report,
    generate_notas_report,
    generate_records_report,
    generate_rewrite_errors_report,
)
from conversor.sped_ajustes import ajustes_from_grid, parse_ajustes_csv
from conversor.sped_rewriter import rewrite_sped_text
from conversor.tabular import UnreadableInputError, decode_csv_buffer, decode_text, read_grid

logger = get_logger(__name__)

# command -> (parser, report writer)
PARSERS: Dict[str, Tuple[Callable, Callable]] = {
    "plano": (parse_plano_contas_from_bytes, generate_records_report),
    "razao": (parse_razao_from_bytes, generate_records_report),
    "itau": (parse_itau_report_from_bytes, generate_records_report),
    "estoque": (parse_movimento_estoque_from_bytes, generate_movimento_report),
    "notas": (parse_notas_saida_from_bytes, generate_notas_report),
}


def _ensure_dirs() -> None:
    config.PARSED_DIR.mkdir(parents=True, exist_ok=True)
    config.SPED_OUTPUT_DIR.mkdir(parents=True, exist_ok=True)
    config.REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    config.LOGS_DIR.mkdir(parents=True, exist_ok=True)


def _record_count(parsed) -> int:
    if hasattr(parsed, "movimentos"):
        return len(parsed.movimentos)
    if hasattr(parsed, "notas"):
        return len(parsed.notas)
    return len(parsed)


def cmd_setup(_: argparse.Namespace) -> int:
    _ensure_dirs()

    logger.info("Base dir: %s", config.BASE_DIR)
    logger.info("Data dir: %s", config.DATA_DIR)
    logger.info("Output dir: %s", config.OUTPUT_DIR)
    logger.info("Logs dir: %s", config.LOGS_DIR)

    if not config.INPUT_DIR.exists():
        logger.error("Missing expected input path: %s", config.INPUT_DIR)
        return 2

    logger.info("Setup OK")
    return 0


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse each input file with the parser for ``args.command`` and write one CSV per file."""
    parse, write_report = PARSERS[args.command]
    output_dir = Path(args.output_dir) if args.output_dir else config.PARSED_DIR
    output_dir.mkdir(parents=True, exist_ok=True)

    stats = {"files": 0, "records": 0, "failed": 0, "missing": 0}
    start_time = time.time()

    with tqdm(args.files, desc=f"Parsing {args.command}", unit="file") as pbar:
        for name in pbar:
            path = Path(name)
            if not path.is_file():
                logger.error(f"File not found: {path}")
                stats["missing"] += 1
                continue

            try:
                parsed = parse(path.read_bytes(), path.name, strict=True)
            except UnreadableInputError as e:
                logger.error(f"Failed to read {path.name}: {e}")
                stats["failed"] += 1
                continue

            count = _record_count(parsed)
            output_path = output_dir / f"{path.stem}_{args.command}.csv"
            write_report(parsed, output_path)

            stats["files"] += 1
            stats["records"] += count
            logger.debug(f"{path.name}: {count} records")

    stats["processing_time"] = f"{time.time() - start_time:.2f}s"
    log_processing_summary(stats, title=f"Parse summary: {args.command}", filename=f"{args.command}_summary.txt")
    logger.info(f"Parsed {stats['records']} records from {stats['files']} files")

    if stats["failed"] or stats["missing"]:
        logger.warning(f"{stats['failed'] + stats['missing']} files could not be parsed")
        return 1
    return 0


def cmd_lookups(args: argparse.Namespace) -> int:
    """Build the supplier and cost-center debit lookups from a ledger file."""
    path = Path(args.razao_file)
    if not path.is_file():
        logger.error(f"File not found: {path}")
        return 2

    entries = parse_razao_from_bytes(path.read_bytes(), path.name)
    if not entries:
        logger.warning(f"No ledger entries in {path.name}")
        return 1

    output_dir = Path(args.output_dir) if args.output_dir else config.PARSED_DIR
    fornecedor = build_fornecedor_debito_lookup(entries)
    centro = build_centro_debito_lookup(entries)

    generate_lookup_report(fornecedor, "historico", output_dir / f"{path.stem}_lookup_fornecedor.csv")
    generate_lookup_report(centro, "centro", output_dir / f"{path.stem}_lookup_centro.csv")
    logger.info(f"Lookups built: {len(fornecedor)} suppliers, {len(centro)} cost centers")
    return 0


def cmd_match(args: argparse.Namespace) -> int:
    """Look a supplier name up in a chart of accounts."""
    path = Path(args.plano)
    if not path.is_file():
        logger.error(f"File not found: {path}")
        return 2

    plano = parse_plano_contas_from_bytes(path.read_bytes(), path.name)
    if not plano:
        logger.error(f"No accounts in {path.name}")
        return 2

    result = buscar_fornecedor_no_plano(args.name, plano, args.threshold)
    if not result.encontrou:
        logger.info(f"No account found for '{args.name}'")
        return 1

    logger.info(f"'{args.name}' -> {result.conta_plano} {result.descricao_plano} (score {result.score:.2f})")

    if args.conta_debito:
        mismatch = verificar_inconsistencia_fornecedor(args.conta_debito, args.name, plano, args.threshold)
        if mismatch:
            logger.warning(
                f"Debit account {mismatch.conta_debito} differs from the supplier's account "
                f"{mismatch.conta_esperada} ({mismatch.descricao_esperada})"
            )
            return 1
        logger.info(f"Debit account {args.conta_debito} is consistent")
    return 0


def _load_ajustes(path: Path) -> List:
    data = path.read_bytes()
    if path.suffix.lower() in config.WORKBOOK_SUFFIXES:
        return ajustes_from_grid(read_grid(data, path.name))
    return parse_ajustes_csv(decode_csv_buffer(data))


def cmd_sped(args: argparse.Namespace) -> int:
    """Splice the adjustment registers into a SPED Fiscal file."""
    sped_path = Path(args.sped_file)
    ajustes_path = Path(args.ajustes_file)
    for path in (sped_path, ajustes_path):
        if not path.is_file():
            logger.error(f"File not found: {path}")
            return 2

    try:
        ajustes = _load_ajustes(ajustes_path)
    except UnreadableInputError as e:
        logger.error(f"Failed to read adjustments {ajustes_path.name}: {e}")
        return 2
    if not ajustes:
        logger.error(f"No adjustments in {ajustes_path.name}")
        return 2

    text, encoding = decode_text(sped_path.read_bytes())
    logger.info(f"Read {sped_path.name} ({encoding}), {len(ajustes)} adjustments")

    result = rewrite_sped_text(text, ajustes, gerar_ambos_c197=args.ambos_c197)

    try:
        payload = result.content.encode(encoding)
    except UnicodeEncodeError as e:
        bad_char = e.object[e.start:e.end]
        logger.error(
            f"Adjusted SPED cannot be written as {encoding}: character {bad_char!r} "
            f"from the adjustment table is not representable, fix the table and rerun"
        )
        return 2

    output_path = Path(args.output) if args.output else config.SPED_OUTPUT_DIR / f"{sped_path.stem}_ajustado{sped_path.suffix}"
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(payload)
    logger.info(f"Adjusted SPED saved to {output_path} ({result.documents_processed} documents)")

    generate_rewrite_errors_report(result, config.REPORTS_DIR / f"{sped_path.stem}_erros.csv")
    log_processing_summary(
        {
            "sped_file": sped_path.name,
            "encoding": encoding,
            "adjustments": len(ajustes),
            "documents_processed": result.documents_processed,
            "errors": len(result.errors),
        },
        title=f"SPED rewrite summary: {sped_path.name}",
        filename=f"{sped_path.stem}_summary.txt",
    )

    return 0 if result.success else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="conversor")
    sub = parser.add_subparsers(dest="command", required=True)

    setup = sub.add_parser("setup", help="Create output folders and verify data paths")
    setup.set_defaults(func=cmd_setup)

    descriptions = {
        "plano": "Parse chart-of-accounts files",
        "razao": "Parse general ledger files",
        "itau": "Parse Itaú SISPAG payment reports",
        "estoque": "Parse inventory movement reports",
        "notas": "Parse outbound invoice listings",
    }
    for name, help_text in descriptions.items():
        p = sub.add_parser(name, help=help_text)
        p.add_argument("files", nargs="+", help="Input files (.xlsx, .xlsm, .csv, .txt)")
        p.add_argument("--output-dir", help=f"Output folder (default: {config.PARSED_DIR})")
        p.set_defaults(func=cmd_parse)

    lookups = sub.add_parser("lookups", help="Build debit-account lookups from a ledger file")
    lookups.add_argument("razao_file")
    lookups.add_argument("--output-dir", help=f"Output folder (default: {config.PARSED_DIR})")
    lookups.set_defaults(func=cmd_lookups)

    match_cmd = sub.add_parser("match", help="Find a supplier's account in the chart of accounts")
    match_cmd.add_argument("name", help="Supplier name")
    match_cmd.add_argument("--plano", required=True, help="Chart-of-accounts file")
    match_cmd.add_argument("--threshold", type=float, default=config.MATCH_THRESHOLD,
                           help=f"Minimum score (default: {config.MATCH_THRESHOLD})")
    match_cmd.add_argument("--conta-debito", help="Also check this debit account against the match")
    match_cmd.set_defaults(func=cmd_match)

    sped = sub.add_parser("sped", help="Apply ICMS-ST adjustments to a SPED Fiscal file")
    sped.add_argument("sped_file")
    sped.add_argument("ajustes_file", help="Adjustment table (.csv or .xlsx)")
    sped.add_argument("--ambos-c197", action="store_true", help="Always write both C197 lines")
    sped.add_argument("--output", help="Output file (default: SPED output folder)")
    sped.set_defaults(func=cmd_sped)

    return parser


def main(argv: list[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
