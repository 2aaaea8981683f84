# tests/test_tabular.py

"""
Tests for tabular ingestion: decoding, workbook reading and locale parsing.
"""

from datetime import datetime

import pytest

from conversor.tabular import (
    UnreadableInputError,
    clean_cpf_cnpj,
    decode_text,
    detect_delimiter,
    expand_merged_cells,
    normalize_key,
    parse_csv_content,
    parse_data_br,
    parse_valor_br,
    read_grid,
    render_cell,
)


@pytest.mark.parametrize("raw, expected", [
    ("1.234,56", 1234.56),
    ("R$ 10,00", 10.0),
    ("-1.234,56", -1234.56),
    ("127.702,48", 127702.48),
    ("1.919,000", 1919.0),
    ("10", 10.0),
    ("", 0.0),
    ("abc", 0.0),
    (None, 0.0),
    (12.5, 12.5),
])
def test_parse_valor_br(raw, expected):
    """Brazilian numbers parse to floats and garbage parses to zero."""
    assert parse_valor_br(raw) == pytest.approx(expected)


def test_parse_data_br():
    """DD/MM/YYYY becomes ISO; anything else is returned unchanged."""
    assert parse_data_br("05/03/2024") == "2024-03-05"
    assert parse_data_br("2024-03-05") == "2024-03-05"
    assert parse_data_br("sem data") == "sem data"
    assert parse_data_br("") == ""


def test_normalize_key_strips_case_accents_and_punctuation():
    assert normalize_key("Cta.C.Part.") == "ctacpart"
    assert normalize_key("Descrição") == "descricao"
    assert normalize_key("  CLASSIFICAÇÃO ") == "classificacao"
    assert normalize_key(None) == ""


def test_clean_cpf_cnpj_keeps_digits_only():
    assert clean_cpf_cnpj("12.345.678/0001-90") == "12345678000190"
    assert clean_cpf_cnpj("***.456.789-**") == "456789"


def test_expand_merged_cells_fills_region():
    """A 1x3 merged region anchored at "X" yields "X" in all three cells."""
    rows = [["X", "", ""], ["a", "b", "c"]]

    expanded = expand_merged_cells(rows, [(0, 0, 0, 2)])

    assert expanded[0] == ["X", "X", "X"]
    assert expanded[1] == ["a", "b", "c"]
    assert rows[0] == ["X", "", ""], "input rows must not be modified"


def test_expand_merged_cells_keeps_existing_values_and_pads_short_rows():
    rows = [["X"], ["", "kept"]]

    expanded = expand_merged_cells(rows, [(0, 0, 1, 1)])

    assert expanded == [["X", "X"], ["X", "kept"]]


def test_decode_text_falls_back_to_latin1():
    """Latin-1 bytes decode without replacement characters."""
    data = "Descrição;Código\nÁgua;1".encode("latin-1")

    text, encoding = decode_text(data)

    assert encoding == "latin-1"
    assert "\ufffd" not in text
    assert text.startswith("Descrição")


def test_decode_text_detects_double_encoding():
    data = "Descrição".encode("utf-8").decode("latin-1").encode("utf-8")

    _, encoding = decode_text(data)

    assert encoding == "latin-1"


def test_decode_text_keeps_plain_utf8():
    """Upper-case words like SÃO are valid UTF-8 and must not trigger the fallback."""
    text, encoding = decode_text("SÃO PAULO;Município".encode("utf-8"))

    assert encoding == "utf-8"
    assert text == "SÃO PAULO;Município"


def test_decode_text_strips_bom():
    text, encoding = decode_text("\ufeffNF;VALOR".encode("utf-8"))

    assert encoding == "utf-8-sig"
    assert text == "NF;VALOR"


def test_detect_delimiter():
    assert detect_delimiter("\n\na;b;c\n1,2") == ";"
    assert detect_delimiter("a,b,c\n1;2") == ","
    assert detect_delimiter("") == ","


def test_parse_csv_content_skips_blank_lines_and_trims():
    grid = parse_csv_content("a ; b\n\n ; \n1;2\r\n")

    assert grid == (("a", "b"), ("1", "2"))


def test_render_cell():
    assert render_cell(None) == ""
    assert render_cell(datetime(2024, 3, 5, 10, 30)) == "05/03/2024"
    assert render_cell(1234.0) == "1234"
    assert render_cell(1234.5) == "1234,5"
    assert render_cell(42) == "42"
    assert render_cell("  texto ") == "texto"


def test_read_grid_workbook_expands_merges_and_renders_values(xlsx_bytes):
    data = xlsx_bytes(
        [
            ["Relatório", None, None],
            ["Data", "Valor", "Qtd"],
            [datetime(2024, 3, 5), 1234.56, 3],
        ],
        merges=["A1:C1"],
    )

    grid = read_grid(data, "relatorio.xlsx")

    assert grid[0] == ("Relatório", "Relatório", "Relatório")
    assert grid[2] == ("05/03/2024", "1234,56", "3")
    assert parse_valor_br(grid[2][1]) == pytest.approx(1234.56)


def test_read_grid_picks_first_sheet_with_values(xlsx_bytes):
    data = xlsx_bytes([["Código", "Descrição"], ["1", "CAIXA"]], leading_empty_sheet=True)

    grid = read_grid(data, "plano.xlsx")

    assert grid == (("Código", "Descrição"), ("1", "CAIXA"))


def test_read_grid_is_idempotent(xlsx_bytes):
    data = xlsx_bytes([["a", 1.5], ["b", 2]])

    assert read_grid(data, "x.xlsx") == read_grid(data, "x.xlsx")


def test_read_grid_rejects_legacy_xls():
    with pytest.raises(UnreadableInputError):
        read_grid(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 64, "antigo.xls")


def test_read_grid_rejects_corrupt_workbook():
    with pytest.raises(UnreadableInputError):
        read_grid(b"PK\x03\x04 not really a zip", "quebrado.xlsx")


def test_read_grid_empty_text_file():
    assert read_grid(b"", "vazio.csv") == ()


def test_read_grid_delimited_text():
    grid = read_grid("Código;Descrição\n1;CAIXA\n".encode("latin-1"), "plano.csv")

    assert grid == (("Código", "Descrição"), ("1", "CAIXA"))
