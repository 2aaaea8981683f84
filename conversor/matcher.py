# conversor/matcher.py

"""
Supplier name matching against the chart of accounts.

Supplier names in bank reports and ledger history rarely match the chart's
account descriptions character for character ("ACME IND. E COM. LTDA" vs
"ACME INDUSTRIA E COMERCIO"). This module:
1. Normalizes both sides (case, accents, punctuation, whitespace)
2. Returns an exact normalized match immediately with score 1.0
3. Otherwise scores each account by the share of the supplier's significant
   words found in its description (equal, substring or superstring)
4. Flags postings whose debit account differs from the supplier's account
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from conversor import config
from conversor.plano_contas import PlanoContasItem
from conversor.tabular import strip_diacritics

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset({
    "ltda", "sa", "me", "epp", "eireli", "ss", "cia",
    "de", "do", "da", "dos", "das", "e", "em", "com", "para", "por",
    "s", "a", "o", "no", "na", "ao", "as", "os",
    "industria", "comercio", "servicos", "distribuidora", "filial",
})
PUNCTUATION_PATTERN = re.compile(r'[.\-/,;:\'"()]')


@dataclass(frozen=True)
class MatchResult:
    """Outcome of a supplier lookup. Only ``encontrou`` is set when there is no match."""
    encontrou: bool
    conta_plano: Optional[str] = None
    descricao_plano: Optional[str] = None
    score: Optional[float] = None


NO_MATCH = MatchResult(encontrou=False)


@dataclass(frozen=True)
class SupplierMismatch:
    """A posting debited to an account other than the supplier's own account."""
    conta_debito: str
    conta_esperada: str
    descricao_esperada: str
    fornecedor_nome: str
    score: float


def normalizar_nome(nome: str) -> str:
    """'Açúcar-União S/A' -> 'ACUCAR UNIAO S A'"""
    text = strip_diacritics((nome or "").upper())
    text = PUNCTUATION_PATTERN.sub(" ", text)
    return re.sub(r'\s+', " ", text).strip()


def palavras_significativas(nome_normalizado: str) -> List[str]:
    """Words longer than one character that are not stop words."""
    return [
        w for w in nome_normalizado.split(" ")
        if len(w) > 1 and w.lower() not in STOP_WORDS
    ]


def _word_hit(word: str, candidates: Sequence[str]) -> bool:
    return any(c == word or word in c or c in word for c in candidates)


def buscar_fornecedor_no_plano(
    fornecedor_nome: str,
    plano_contas: Sequence[PlanoContasItem],
    threshold: float = config.MATCH_THRESHOLD,
) -> MatchResult:
    """
    Finds the chart account whose description best matches a supplier name.

    Accounts are scanned in order; on equal scores the earlier account wins.

    Args:
        fornecedor_nome: Free-text supplier name
        plano_contas: Chart of accounts
        threshold: Minimum share of significant words that must be found

    Returns:
        MatchResult for the best account, or NO_MATCH below the threshold
    """
    if not fornecedor_nome or not plano_contas:
        return NO_MATCH

    fornecedor_norm = normalizar_nome(fornecedor_nome)
    palavras_fornecedor = palavras_significativas(fornecedor_norm)
    if not palavras_fornecedor:
        return NO_MATCH

    melhor_score = 0.0
    melhor_conta: Optional[PlanoContasItem] = None

    for conta in plano_contas:
        desc_norm = normalizar_nome(conta.descricao)

        if desc_norm == fornecedor_norm:
            logger.debug(f"Exact match for '{fornecedor_nome}': {conta.codigo}")
            return MatchResult(
                encontrou=True,
                conta_plano=conta.codigo,
                descricao_plano=conta.descricao,
                score=1.0,
            )

        palavras_desc = palavras_significativas(desc_norm)
        if not palavras_desc:
            continue

        hits = sum(1 for p in palavras_fornecedor if _word_hit(p, palavras_desc))
        score = hits / len(palavras_fornecedor)
        if score > melhor_score:
            melhor_score = score
            melhor_conta = conta

    if melhor_conta is not None and melhor_score >= threshold:
        logger.debug(f"Matched '{fornecedor_nome}' to {melhor_conta.codigo} (score {melhor_score:.2f})")
        return MatchResult(
            encontrou=True,
            conta_plano=melhor_conta.codigo,
            descricao_plano=melhor_conta.descricao,
            score=melhor_score,
        )

    logger.debug(f"No account for '{fornecedor_nome}' (best score {melhor_score:.2f})")
    return NO_MATCH


def _strip_leading_zeros(code: str) -> str:
    return code.lstrip("0") or "0"


def verificar_inconsistencia_fornecedor(
    conta_debito: str,
    fornecedor_nome: str,
    plano_contas: Sequence[PlanoContasItem],
    threshold: float = config.MATCH_THRESHOLD,
) -> Optional[SupplierMismatch]:
    """
    Checks a posting's debit account against the supplier's chart account.

    Codes are compared ignoring leading zeros ("0010055" == "10055").

    Returns:
        SupplierMismatch when the supplier is found under a different account,
        None when the accounts agree or the supplier is not in the chart
    """
    if not conta_debito or not fornecedor_nome or not plano_contas:
        return None

    match = buscar_fornecedor_no_plano(fornecedor_nome, plano_contas, threshold)
    if not match.encontrou or not match.conta_plano:
        return None

    if _strip_leading_zeros(conta_debito) == _strip_leading_zeros(match.conta_plano):
        return None

    logger.info(f"Supplier '{fornecedor_nome}' debited to {conta_debito}, expected {match.conta_plano}")
    return SupplierMismatch(
        conta_debito=conta_debito,
        conta_esperada=match.conta_plano,
        descricao_esperada=match.descricao_plano or "",
        fornecedor_nome=fornecedor_nome,
        score=match.score or 0.0,
    )
