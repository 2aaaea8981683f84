from __future__ import annotations

from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent


def _pick_data_dir(base_dir: Path) -> Path:
    data_dir = base_dir / "Data"
    if data_dir.exists():
        return data_dir
    return base_dir / "data"


DATA_DIR = _pick_data_dir(BASE_DIR)

# Input paths (READ-ONLY)
INPUT_DIR = DATA_DIR / "Input"

# Output paths
OUTPUT_DIR = DATA_DIR / "Output"
PARSED_DIR = OUTPUT_DIR / "parsed"
SPED_OUTPUT_DIR = OUTPUT_DIR / "sped"
REPORTS_DIR = OUTPUT_DIR / "reports"

# Log paths
LOGS_DIR = BASE_DIR / "logs"
MAIN_LOG = LOGS_DIR / "conversor.log"
ERROR_LOG = LOGS_DIR / "conversor_errors.log"

# Ingestion settings
WORKBOOK_SUFFIXES = (".xlsx", ".xlsm")
CNPJ_ZERO = "00000000000000"

# Header scan limits (rows)
PLANO_HEADER_SCAN = 80
RAZAO_HEADER_SCAN = 30
ITAU_HEADER_SCAN = 50
NOTAS_HEADER_SCAN = 15

# Header hit thresholds
PLANO_MIN_HITS = 3
RAZAO_MIN_HITS = 2
ITAU_MIN_HITS = 4

# Matching settings
MATCH_THRESHOLD = 0.6

# SPED settings
SPED_DOCUMENT_RECORD = "C100"
SPED_TAX_DETAIL_RECORD = "C101"
SPED_TAX_SUMMARY_RECORD = "C190"
SPED_NUM_DOC_FIELD = 8
SPED_UF = "RJ"
