# conversor/sped_rewriter.py

"""
SPED Fiscal rewriter: splices ICMS-ST refund adjustment registers into C100 blocks.

For every C100 (document) whose NUM_DOC has a pending adjustment, the whole
document block is replaced by:

    C100  original document line
    C101  original tax-detail line(s), or a zero-valued one
    C110  complementary information
    C112  payment document (due/payment dates, authentication, value)
    C113  referenced entry document (partner FOR<6 digits>, series, key)
    C190  original tax-summary line(s), when present
    C195  observation
    C197  one or two tax-adjustment lines (own ICMS / ICMS-ST)

Every other line is copied unchanged. An adjustment that cannot be formatted
leaves its block untouched and is reported in the result's error list.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from conversor import config
from conversor.sped_ajustes import AjusteSped, index_ajustes, parse_numero, parse_numero_seguro

logger = logging.getLogger(__name__)

C101_ZERO = f"|{config.SPED_TAX_DETAIL_RECORD}|0,00|0,00|0,00|"
C110 = "|C110|4||"
C195 = "|C195|3||"
C197_TEXT = "Credito proporcional referente a devolucao de ICMS-ST conforme art. 16 da Resolucao SEFAZ-RJ"
C197_ICMS_PROPRIO = "RJ10000000"
C197_ICMS_ST = "RJ11100000"

C_RECORD_PATTERN = re.compile(r'^C(\d{3})$')
DATE_BR_PATTERN = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{4})$')
DATE_ISO_PATTERN = re.compile(r'^(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?$')
DATE_SPED_PATTERN = re.compile(r'^(\d{2})(\d{2})(\d{4})$')


@dataclass(frozen=True)
class RewriteError:
    document_number: str
    message: str

    def __str__(self) -> str:
        return f"NF {self.document_number}: {self.message}"


@dataclass
class RewriteResult:
    """Edited lines plus the per-document errors met along the way."""
    lines: List[str]
    documents_processed: int = 0
    errors: List[RewriteError] = field(default_factory=list)
    newline: str = "\n"

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def content(self) -> str:
        return self.newline.join(self.lines)


def format_brl(value) -> str:
    """
    Formats a monetary value for SPED: two decimals, decimal comma, no thousands separator.

    Examples:
        19943.73   -> "19943,73"
        "1.234,5"  -> "1234,50"
        None / ""  -> ""
    """
    number = parse_numero(value)
    if number is None:
        return ""
    return f"{number:.2f}".replace(".", ",")


def _to_date(value) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return None if pd.isna(value) else value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    try:
        match = DATE_BR_PATTERN.match(text)
        if match:
            return date(int(match.group(3)), int(match.group(2)), int(match.group(1)))
        match = DATE_ISO_PATTERN.match(text)
        if match:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        match = DATE_SPED_PATTERN.match(text)
        if match:
            return date(int(match.group(3)), int(match.group(2)), int(match.group(1)))
    except ValueError:
        return None
    return None


def format_date_sped(value) -> str:
    """
    Formats a date as DDMMYYYY.

    Accepts date/datetime objects and DD/MM/YYYY, YYYY-MM-DD or DDMMYYYY
    text. Anything else (including impossible dates) gives "".
    """
    parsed = _to_date(value)
    if parsed is None:
        return ""
    return f"{parsed.day:02d}{parsed.month:02d}{parsed.year:04d}"


def record_type(line: str) -> str:
    """'|C100|0|1|...' -> 'C100'; '' for lines without a record field."""
    fields = line.split("|")
    return fields[1] if len(fields) > 1 else ""


def _is_block_boundary(line: str) -> bool:
    rec = record_type(line)
    if rec == config.SPED_DOCUMENT_RECORD:
        return True
    if not rec.startswith("C"):
        return True
    match = C_RECORD_PATTERN.match(rec)
    return bool(match) and int(match.group(1)) >= 200


def find_block_end(lines: Sequence[str], start: int) -> int:
    """
    Returns the index just past the document block that starts at ``start``.

    The block ends before the next C100, any C register numbered 200 or above
    (C990 included), any register of another block, or a line without a
    register code.
    """
    end = start + 1
    while end < len(lines) and not _is_block_boundary(lines[end]):
        end += 1
    return end


def _document_number(line: str) -> Optional[str]:
    fields = line.split("|")
    if len(fields) > config.SPED_NUM_DOC_FIELD and fields[1] == config.SPED_DOCUMENT_RECORD:
        return fields[config.SPED_NUM_DOC_FIELD].strip()
    return None


def _required_date(value, name: str) -> str:
    """Blank stays blank; a non-blank value that is not a date raises ValueError."""
    if value is None or str(value).strip() == "":
        return ""
    formatted = format_date_sped(value)
    if not formatted:
        raise ValueError(f"invalid date in {name}: '{value}'")
    return formatted


def _cod_part(value) -> str:
    text = str(value if value is not None else "").strip()
    if not text:
        return "000000"
    match = re.fullmatch(r'(\d+)(?:\.0+)?', text)
    if not match:
        raise ValueError(f"non-numeric COD_PART: '{value}'")
    return f"{int(match.group(1)):06d}"


def _field(value) -> str:
    """Text for a register field; None and NaN are blank."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    return str(value).strip()


def build_c197_lines(ajuste: AjusteSped, gerar_ambos_c197: bool) -> List[str]:
    """
    C197 lines for an adjustment.

    With ``gerar_ambos_c197`` both lines are always written; otherwise only
    the ones whose value is strictly positive.
    """
    lines = []
    for code, value in ((C197_ICMS_PROPRIO, ajuste.icms_proprio), (C197_ICMS_ST, ajuste.icms_st)):
        if gerar_ambos_c197 or parse_numero_seguro(value) > 0:
            lines.append(f"|C197|{code}|{C197_TEXT}||||{format_brl(value)}||")
    return lines


def build_adjusted_block(block: Sequence[str], ajuste: AjusteSped, gerar_ambos_c197: bool = False) -> List[str]:
    """
    Builds the replacement for a document block.

    Args:
        block: Original block, C100 line first
        ajuste: Adjustment for the block's document
        gerar_ambos_c197: Always write both C197 lines

    Returns:
        The new block lines

    Raises:
        ValueError: A date or the partner code cannot be formatted
    """
    num_nf_entrada = _field(ajuste.num_nf_entrada)
    venc = _required_date(ajuste.dt_venc, "DT_VENC")
    pag = _required_date(ajuste.dt_pag, "DT_PAG")
    entrada = _required_date(ajuste.dt_doc_entrada, "DT_DOC_ENTRADA")
    cod_part = _cod_part(ajuste.cod_part)
    vl_aj = format_brl(ajuste.vl_aj_apur)

    body = block[1:]
    tax_detail = [line for line in body if record_type(line) == config.SPED_TAX_DETAIL_RECORD]
    tax_summary = [line for line in body if record_type(line) == config.SPED_TAX_SUMMARY_RECORD]

    return [
        block[0],
        *(tax_detail or [C101_ZERO]),
        C110,
        f"|C112|0|{config.SPED_UF}|{num_nf_entrada}|{_field(ajuste.autenticacao)}|{vl_aj}|{venc}|{pag}|",
        f"|C113|0|1|FOR{cod_part}|55|{_field(ajuste.serie)}|{_field(ajuste.subserie)}|{num_nf_entrada}|{entrada}|{_field(ajuste.chave_nfe)}|",
        *tax_summary,
        C195,
        *build_c197_lines(ajuste, gerar_ambos_c197),
    ]


def rewrite_sped_lines(
    lines: Sequence[str],
    ajustes: Iterable[AjusteSped],
    gerar_ambos_c197: bool = False,
) -> RewriteResult:
    """
    Rewrites a SPED file, one forward pass over its lines.

    Args:
        lines: SPED lines without line terminators
        ajustes: Adjustments; matched to C100 NUM_DOC by invoice number
        gerar_ambos_c197: Always write both C197 lines

    Returns:
        RewriteResult with the edited lines and any per-document errors
    """
    pending: Dict[str, AjusteSped] = index_ajustes(ajustes)
    result = RewriteResult(lines=[])

    i = 0
    while i < len(lines):
        line = lines[i]
        numero = _document_number(line)
        ajuste = pending.get(numero) if numero else None

        if ajuste is None:
            result.lines.append(line)
            i += 1
            continue

        end = find_block_end(lines, i)
        block = lines[i:end]
        try:
            result.lines.extend(build_adjusted_block(block, ajuste, gerar_ambos_c197))
            result.documents_processed += 1
            logger.debug(f"NF {numero}: block of {len(block)} lines replaced")
        except Exception as e:
            logger.error(f"NF {numero}: adjustment not applied ({e})")
            result.errors.append(RewriteError(document_number=numero, message=str(e)))
            result.lines.extend(block)
        i = end

    logger.info(
        f"SPED rewrite: {result.documents_processed} documents adjusted, "
        f"{len(result.errors)} errors, {len(pending)} adjustments loaded"
    )
    return result


def rewrite_sped_text(text: str, ajustes: Iterable[AjusteSped], gerar_ambos_c197: bool = False) -> RewriteResult:
    """Same as ``rewrite_sped_lines`` for a whole file; the line terminator style is kept in ``newline``."""
    newline = "\r\n" if "\r\n" in text else "\n"
    result = rewrite_sped_lines(re.split(r'\r?\n', text), ajustes, gerar_ambos_c197)
    result.newline = newline
    return result
