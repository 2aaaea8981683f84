# tests/test_movimento_estoque.py

"""
Tests for the fixed-layout inventory movement report parser.
"""

import pytest

from conversor.movimento_estoque import (
    ENTRADA,
    SAIDA,
    extract_nf_numero,
    parse_movimento_estoque_from_bytes,
    parse_movimento_estoque_from_rows,
)
from conversor.tabular import parse_csv_content

from conftest import fixed_line


def movement(data, documento, entrada=None, saida=None, saldo=("", "", "")):
    cells = {0: data, 5: documento, 27: saldo[0], 30: saldo[1], 35: saldo[2]}
    if entrada:
        cells.update({10: entrada[0], 12: entrada[1], 16: entrada[2]})
    if saida:
        cells.update({18: saida[0], 20: saida[1], 24: saida[2]})
    return fixed_line(cells)


REPORT_LINES = [
    fixed_line({0: "Empresa:", 5: "MODELO INDUSTRIA LTDA"}),
    fixed_line({0: "Período:", 5: "01/01/2025", 10: "31/01/2025"}),
    fixed_line({0: "Produto:", 5: "PARAFUSO 10MM"}),
    fixed_line({0: "Data", 5: "Documento", 10: "Entradas", 18: "Saídas", 27: "Saldo"}),
    movement("", "Saldo Anterior", saldo=("1.919,000", "6,50", "12.473,50")),
    movement("05/01/2025", "NF 16460", entrada=("100,000", "6,00", "600,00"), saldo=("2.019,000", "6,47", "13.073,50")),
    movement("10/01/2025", "NF 6591", saida=("19,000", "6,47", "122,93"), saldo=("2.000,000", "6,47", "12.950,57")),
    movement("15/01/2025", "AJUSTE", entrada=("5,000", "6,47", "32,35"), saida=("2,000", "6,47", "12,94"),
             saldo=("2.003,000", "6,47", "12.969,98")),
    movement("", "Transporte da folha anterior", saldo=("2.003,000", "6,47", "12.969,98")),
    fixed_line({1: "TOTAIS", 10: "105,000", 18: "21,000"}),
    movement("20/01/2025", "NF 16470", saldo=("2.003,000", "6,47", "12.969,98")),
]
REPORT_CSV = "\n".join(REPORT_LINES)


@pytest.fixture
def parsed():
    return parse_movimento_estoque_from_rows(parse_csv_content(REPORT_CSV))


def test_metadata(parsed):
    assert parsed.empresa == "MODELO INDUSTRIA LTDA"
    assert parsed.periodo == "01/01/2025 até 31/01/2025"
    assert parsed.produto == "PARAFUSO 10MM"


def test_opening_balance_is_captured_not_emitted(parsed):
    assert parsed.saldo_anterior_qtd == pytest.approx(1919.0)
    assert parsed.saldo_anterior_valor_medio == pytest.approx(6.5)
    assert parsed.saldo_anterior_valor_total == pytest.approx(12473.5)
    assert all("saldo" not in m.documento.lower() for m in parsed.movimentos)


def test_movements(parsed):
    """Entry and exit on the same line yield two rows; zero-quantity lines yield none."""
    assert [(m.documento, m.tipo) for m in parsed.movimentos] == [
        ("NF 16460", ENTRADA),
        ("NF 6591", SAIDA),
        ("AJUSTE", ENTRADA),
        ("AJUSTE", SAIDA),
    ]

    first = parsed.movimentos[0]
    assert first.nf_numero == "16460"
    assert first.quantidade == pytest.approx(100.0)
    assert first.valor_unitario == pytest.approx(6.0)
    assert first.valor_total == pytest.approx(600.0)
    assert first.saldo_fisico == pytest.approx(2019.0)
    assert first.saldo_valor_total == pytest.approx(13073.5)

    assert parsed.movimentos[2].nf_numero is None
    assert parsed.movimentos[3].valor_total == pytest.approx(12.94)


def test_totals(parsed):
    assert parsed.total_entradas == pytest.approx(105.0)
    assert parsed.total_saidas == pytest.approx(21.0)
    assert parsed.total_entrada_valor == pytest.approx(632.35)
    assert parsed.total_saida_valor == pytest.approx(135.87)


def test_extract_nf_numero():
    assert extract_nf_numero("NF 16460") == "16460"
    assert extract_nf_numero("nf16460-1") == "16460"
    assert extract_nf_numero("Requisição 10") is None


def test_from_bytes_latin1():
    parsed = parse_movimento_estoque_from_bytes(REPORT_CSV.encode("latin-1"), "movimento.csv")

    assert len(parsed.movimentos) == 4
    assert parsed.periodo == "01/01/2025 até 31/01/2025"


def test_empty_input():
    parsed = parse_movimento_estoque_from_rows(())

    assert parsed.movimentos == []
    assert parsed.total_entradas == 0
