import argparse
from unittest.mock import patch

import pandas as pd
import pytest

from conversor import main

PLANO_CSV = """Descrição;Código;Classificação;CNPJ
CAIXA;5;1.1.1.01.00001;
ACME PECAS LTDA;10060;2.1.1.01.00012;12.345.678/0001-90
"""

SPED_TEXT = "\r\n".join([
    "|0000|017|0|01012024|31012024|MODELO INDUSTRIA LTDA|",
    "|C001|0|",
    "|C100|1|0|FOR000123|55|00|001|100|chave100|05012024|05012024|1000,00|",
    "|C170|1|PROD01|PARAFUSO|",
    "|C990|4|",
    "|9999|6|",
]) + "\r\n"


@pytest.fixture
def mock_config(tmp_path):
    """Mock the config module imported in conversor.main."""
    with patch("conversor.main.config") as mock, patch("conversor.main.log_processing_summary") as summary:
        mock.BASE_DIR = tmp_path
        mock.DATA_DIR = tmp_path / "data"
        mock.INPUT_DIR = tmp_path / "data" / "Input"
        mock.OUTPUT_DIR = tmp_path / "data" / "Output"
        mock.PARSED_DIR = mock.OUTPUT_DIR / "parsed"
        mock.SPED_OUTPUT_DIR = mock.OUTPUT_DIR / "sped"
        mock.REPORTS_DIR = mock.OUTPUT_DIR / "reports"
        mock.LOGS_DIR = tmp_path / "logs"
        mock.WORKBOOK_SUFFIXES = (".xlsx", ".xlsm")
        mock.summary = summary
        yield mock


def test_cmd_setup_creates_directories(mock_config):
    """Verify setup command creates output directories when inputs exist."""
    # Arrange
    mock_config.INPUT_DIR.mkdir(parents=True)

    # Act
    result = main.cmd_setup(argparse.Namespace(command="setup"))

    # Assert
    assert result == 0
    assert mock_config.PARSED_DIR.exists()
    assert mock_config.SPED_OUTPUT_DIR.exists()
    assert mock_config.REPORTS_DIR.exists()
    assert mock_config.LOGS_DIR.exists()


def test_cmd_setup_fails_missing_input(mock_config):
    """Verify setup command fails if the input directory is missing."""
    # Act
    result = main.cmd_setup(argparse.Namespace(command="setup"))

    # Assert
    assert result == 2


def test_parse_plano_writes_csv(mock_config, tmp_path):
    """Verify the plano command writes one CSV per input file."""
    # Arrange
    plano_file = tmp_path / "plano.csv"
    plano_file.write_bytes(PLANO_CSV.encode("latin-1"))

    # Act
    result = main.main(["plano", str(plano_file)])

    # Assert
    assert result == 0
    output = mock_config.PARSED_DIR / "plano_plano.csv"
    df = pd.read_csv(output, sep=";", dtype=str, encoding="utf-8-sig")
    assert list(df["codigo"]) == ["5", "10060"]
    assert df.loc[1, "cnpj"] == "12345678000190"
    stats = mock_config.summary.call_args[0][0]
    assert stats["files"] == 1
    assert stats["records"] == 2


def test_parse_reports_missing_files(mock_config, tmp_path):
    """Verify a missing input file makes the command fail without stopping the others."""
    # Arrange
    plano_file = tmp_path / "plano.csv"
    plano_file.write_bytes(PLANO_CSV.encode("utf-8"))

    # Act
    result = main.main(["plano", str(tmp_path / "nao_existe.csv"), str(plano_file), "--output-dir", str(tmp_path / "out")])

    # Assert
    assert result == 1
    assert (tmp_path / "out" / "plano_plano.csv").exists()
    assert mock_config.summary.call_args[0][0]["missing"] == 1


def test_lookups_command(mock_config, tmp_path):
    """Verify the lookups command writes both lookup tables next to each other."""
    # Arrange
    razao_file = tmp_path / "razao.csv"
    razao_file.write_text(
        "Conta: 2.1.1.01.00010 FORNECEDORES;;;;;;;;;\n"
        "03/01/2025;11;PAGTO ACME (CENTRO 1.2);;;;;10060;;150,00\n",
        encoding="utf-8",
    )

    # Act
    result = main.main(["lookups", str(razao_file), "--output-dir", str(tmp_path / "out")])

    # Assert
    assert result == 0
    fornecedor = pd.read_csv(tmp_path / "out" / "razao_lookup_fornecedor.csv", sep=";", dtype=str, encoding="utf-8-sig")
    centro = pd.read_csv(tmp_path / "out" / "razao_lookup_centro.csv", sep=";", dtype=str, encoding="utf-8-sig")
    assert fornecedor.to_dict(orient="records") == [{"historico": "PAGTO ACME (CENTRO 1.2)", "conta_debito": "10060"}]
    assert centro.to_dict(orient="records") == [{"centro": "1.2", "conta_debito": "10060"}]


def test_match_command(mock_config, tmp_path):
    """Verify the match command exit codes for a match, a mismatch and no match."""
    # Arrange
    plano_file = tmp_path / "plano.csv"
    plano_file.write_bytes(PLANO_CSV.encode("utf-8"))

    # Act / Assert
    assert main.main(["match", "Acme Peças Ltda", "--plano", str(plano_file)]) == 0
    assert main.main(["match", "Acme Peças Ltda", "--plano", str(plano_file), "--conta-debito", "0010060"]) == 0
    assert main.main(["match", "Acme Peças Ltda", "--plano", str(plano_file), "--conta-debito", "4001"]) == 1
    assert main.main(["match", "Fornecedor Desconhecido", "--plano", str(plano_file)]) == 1
    assert main.main(["match", "Acme", "--plano", str(tmp_path / "nao_existe.csv")]) == 2


def test_sped_command_writes_adjusted_file(mock_config, tmp_path):
    """Verify the sped command rewrites the file and keeps its line endings."""
    # Arrange
    sped_file = tmp_path / "sped.txt"
    sped_file.write_bytes(SPED_TEXT.encode("latin-1"))
    ajustes_file = tmp_path / "ajustes.csv"
    ajustes_file.write_text("NF;DT_VENC;ICMS_ST;COD_PART\nNF 100;05/03/2024;150,50;123\n", encoding="utf-8")

    # Act
    result = main.main(["sped", str(sped_file), str(ajustes_file)])

    # Assert
    assert result == 0
    output = (mock_config.SPED_OUTPUT_DIR / "sped_ajustado.txt").read_bytes().decode("latin-1")
    assert "|C170|" not in output
    assert "|C113|0|1|FOR000123|55||||||\r\n" in output
    assert "|C197|RJ11100000|" in output
    assert output.endswith("|9999|6|\r\n")
    assert not (mock_config.REPORTS_DIR / "sped_erros.csv").exists()


def test_sped_command_reports_document_errors(mock_config, tmp_path):
    """Verify a bad adjustment row gives exit code 1, an unchanged block and an error report."""
    # Arrange
    sped_file = tmp_path / "sped.txt"
    sped_file.write_text(SPED_TEXT, encoding="utf-8")
    ajustes_file = tmp_path / "ajustes.csv"
    ajustes_file.write_text("NF;DT_VENC\n100;31/02/2024\n", encoding="utf-8")
    output_file = tmp_path / "saida.txt"

    # Act
    result = main.main(["sped", str(sped_file), str(ajustes_file), "--output", str(output_file)])

    # Assert
    assert result == 1
    assert output_file.read_bytes().decode("utf-8") == SPED_TEXT
    errors = pd.read_csv(mock_config.REPORTS_DIR / "sped_erros.csv", sep=";", dtype=str, encoding="utf-8-sig")
    assert list(errors["document_number"]) == ["100"]


def test_sped_command_without_adjustments(mock_config, tmp_path):
    """Verify an empty adjustment table stops the command before touching the SPED file."""
    # Arrange
    sped_file = tmp_path / "sped.txt"
    sped_file.write_text(SPED_TEXT, encoding="utf-8")
    ajustes_file = tmp_path / "ajustes.csv"
    ajustes_file.write_text("NF;DT_VENC\n", encoding="utf-8")

    # Act
    result = main.main(["sped", str(sped_file), str(ajustes_file)])

    # Assert
    assert result == 2
    assert not mock_config.SPED_OUTPUT_DIR.exists()


def test_sped_command_with_workbook_adjustments(mock_config, tmp_path, xlsx_bytes):
    """Verify workbook amounts with more than two decimals are rounded, not inflated."""
    # Arrange
    sped_file = tmp_path / "sped.txt"
    sped_file.write_text(SPED_TEXT, encoding="utf-8")
    ajustes_file = tmp_path / "ajustes.xlsx"
    ajustes_file.write_bytes(xlsx_bytes([
        ["NF", "VL_AJ_APUR", "ICMS_ST", "COD_PART"],
        ["100", 1234.5678, 12.3456, 123],
    ]))

    # Act
    result = main.main(["sped", str(sped_file), str(ajustes_file)])

    # Assert
    assert result == 0
    output = (mock_config.SPED_OUTPUT_DIR / "sped_ajustado.txt").read_bytes().decode("utf-8")
    assert "|C112|0|RJ|||1234,57|||\r\n" in output
    assert "||||12,35||\r\n" in output


def test_sped_command_tolerates_ragged_adjustment_rows(mock_config, tmp_path):
    """Verify a trailing separator on a data row does not abort the command."""
    # Arrange
    sped_file = tmp_path / "sped.txt"
    sped_file.write_text(SPED_TEXT, encoding="utf-8")
    ajustes_file = tmp_path / "ajustes.csv"
    ajustes_file.write_text("NF;VL_AJ_APUR;ICMS_ST\n100;10,00;1,00;\n", encoding="utf-8")

    # Act
    result = main.main(["sped", str(sped_file), str(ajustes_file)])

    # Assert
    assert result == 0
    output = (mock_config.SPED_OUTPUT_DIR / "sped_ajustado.txt").read_bytes().decode("utf-8")
    assert "|C112|0|RJ|||10,00|||\r\n" in output


def test_sped_command_rejects_characters_the_file_encoding_cannot_hold(mock_config, tmp_path):
    """Verify a Latin-1 SPED file is not written when an adjustment adds a non-Latin-1 character."""
    # Arrange
    sped_file = tmp_path / "sped.txt"
    sped_file.write_bytes(SPED_TEXT.replace("MODELO", "AÇO MODELO").encode("latin-1"))
    ajustes_file = tmp_path / "ajustes.csv"
    ajustes_file.write_text("NF;AUTENTICACAO\n100;AUT€1\n", encoding="utf-8")

    # Act
    result = main.main(["sped", str(sped_file), str(ajustes_file)])

    # Assert
    assert result == 2
    assert not (mock_config.SPED_OUTPUT_DIR / "sped_ajustado.txt").exists()


def test_summaries_are_named_after_the_run(mock_config, tmp_path):
    """Verify each command writes its own summary file."""
    # Arrange
    plano_file = tmp_path / "plano.csv"
    plano_file.write_bytes(PLANO_CSV.encode("utf-8"))
    sped_file = tmp_path / "sped.txt"
    sped_file.write_text(SPED_TEXT, encoding="utf-8")
    ajustes_file = tmp_path / "ajustes.csv"
    ajustes_file.write_text("NF;ICMS_ST\n100;1,00\n", encoding="utf-8")

    # Act
    main.main(["plano", str(plano_file)])
    parse_kwargs = mock_config.summary.call_args[1]
    main.main(["sped", str(sped_file), str(ajustes_file)])
    sped_call = mock_config.summary.call_args

    # Assert
    assert parse_kwargs["filename"] == "plano_summary.txt"
    assert sped_call[1]["filename"] == "sped_summary.txt"
    assert sped_call[0][0]["encoding"] == "utf-8"
    assert sped_call[0][0]["documents_processed"] == 1
