# conversor/lookups.py

"""
Debit-account lookups inferred from ledger history.

When a supplier is paid, the ledger shows a credit posting whose
contra-account (Cta.C.Part.) is the account that was debited. These builders
turn past postings into lookups that suggest the debit account for new ones.
"""

import logging
import re
from collections import Counter, defaultdict
from typing import Dict, Iterable

from conversor.razao import RazaoEntry
from conversor.tabular import strip_diacritics

logger = logging.getLogger(__name__)

CENTRO_PATTERN = re.compile(r'CENTRO\s+(\d[\d.]*)', re.IGNORECASE)


def normalize_historico(text: str) -> str:
    return strip_diacritics((text or "").upper()).strip()


def build_fornecedor_debito_lookup(entries: Iterable[RazaoEntry]) -> Dict[str, str]:
    """
    Maps normalized historico text to the contra-account of the first credit posting carrying it.

    Only entries with a positive credit and a contra-account are considered;
    later occurrences of the same text never overwrite the first one.
    """
    lookup: Dict[str, str] = {}
    for entry in entries:
        if entry.credito <= 0 or not entry.cta_c_part:
            continue
        key = normalize_historico(entry.historico)
        if key and key not in lookup:
            lookup[key] = entry.cta_c_part

    logger.debug(f"Supplier lookup built with {len(lookup)} keys")
    return lookup


def build_centro_debito_lookup(entries: Iterable[RazaoEntry]) -> Dict[str, str]:
    """
    Maps each cost-center code to its most frequent contra-account.

    Every "CENTRO <code>" occurrence in an entry's historico casts one vote for
    that entry's contra-account. Ties go to the account seen first.
    """
    votes: Dict[str, Counter] = defaultdict(Counter)
    for entry in entries:
        if not entry.cta_c_part:
            continue
        for match in CENTRO_PATTERN.finditer(entry.historico or ""):
            votes[match.group(1).strip()][entry.cta_c_part] += 1

    # most_common keeps insertion order among equal counts
    lookup = {centro: counter.most_common(1)[0][0] for centro, counter in votes.items()}
    logger.debug(f"Cost-center lookup built with {len(lookup)} keys")
    return lookup
