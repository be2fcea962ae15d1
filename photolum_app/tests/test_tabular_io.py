import numpy as np
import pytest
from openpyxl import Workbook

from photolum_app.engine.errors import IngestionError
from photolum_app.io.tabular import parse_rows, read_spectrum, sniff_locale


def test_sniff_locale_variants():
    assert sniff_locale("Wavelength,Intensity\n500.0,0.1\n502.0,0.3") == {
        "decimal": ".",
        "delimiter": ",",
    }
    assert sniff_locale("500;0,1\n502;0,3") == {"decimal": ",", "delimiter": ";"}
    assert sniff_locale("500\t0.1\n502\t0.3")["delimiter"] == "\t"
    assert sniff_locale("500.0   0.1\n502.0   0.3") == {"decimal": ".", "delimiter": " "}
    # integer CSV keeps the comma as delimiter
    assert sniff_locale("500,10\n502,30") == {"decimal": ".", "delimiter": ","}


def test_parse_rows_skips_header_and_invalid_rows_then_sorts():
    rows = [
        ["Wavelength (nm)", "Intensity"],
        ["504", "0.9"],
        ["500", "0.1"],
        ["502"],
        ["n/a", "0.4"],
        ["506", ""],
        ["502", "0.3", ""],
    ]
    spec = parse_rows(rows)
    assert spec.wavelength.tolist() == [500.0, 502.0, 504.0]
    assert spec.intensity.tolist() == [0.1, 0.3, 0.9]


def test_parse_rows_without_header_keeps_first_row():
    spec = parse_rows([[500.0, 0.1], [502.0, 0.3]])
    assert len(spec) == 2
    assert spec.wavelength[0] == 500.0


def test_parse_rows_without_numeric_data_fails():
    with pytest.raises(IngestionError, match="No valid spectral data found in file"):
        parse_rows([["Wavelength", "Intensity"], ["a", "b"]])
    with pytest.raises(IngestionError):
        parse_rows([])


def test_read_csv_with_header(tmp_path):
    path = tmp_path / "quantum_dots.csv"
    path.write_text("Wavelength (nm),Intensity (a.u.)\n502.0,0.3\n500.0,0.1\n504.0,0.9\n", encoding="utf-8")
    spec = read_spectrum(path)
    assert spec.wavelength.tolist() == [500.0, 502.0, 504.0]
    assert spec.meta["sample_id"] == "quantum_dots"
    assert spec.meta["technique"] == "photoluminescence"
    assert spec.meta["source_file"] == str(path)


def test_read_semicolon_decimal_comma_text(tmp_path):
    path = tmp_path / "film.txt"
    path.write_text("Wellenlaenge;Intensitaet\n500;0,125\n502,5;0,75\n", encoding="utf-8")
    spec = read_spectrum(path, sample_id="film-A")
    assert np.allclose(spec.wavelength, [500.0, 502.5])
    assert np.allclose(spec.intensity, [0.125, 0.75])
    assert spec.meta["sample_id"] == "film-A"


def test_read_whitespace_separated_text(tmp_path):
    path = tmp_path / "scan.txt"
    path.write_text("500.0  0.1\n502.0  0.3\n\n504.0  0.9\n", encoding="utf-8")
    spec = read_spectrum(path)
    assert spec.intensity.tolist() == [0.1, 0.3, 0.9]


def test_read_excel_first_sheet(tmp_path):
    wb = Workbook()
    ws = wb.active
    ws.append(["Wavelength", "Intensity"])
    ws.append([510.0, 0.4])
    ws.append([505.0, 0.2])
    ws.append([515.0, None])
    path = tmp_path / "perovskite.xlsx"
    wb.save(path)

    spec = read_spectrum(path)
    assert spec.wavelength.tolist() == [505.0, 510.0]
    assert spec.intensity.tolist() == [0.2, 0.4]
    assert spec.meta["sample_id"] == "perovskite"


def test_unsupported_or_empty_files_are_rejected(tmp_path):
    other = tmp_path / "scan.spc"
    other.write_text("500,0.1\n", encoding="utf-8")
    with pytest.raises(IngestionError):
        read_spectrum(other)

    empty = tmp_path / "empty.csv"
    empty.write_text("Wavelength,Intensity\n", encoding="utf-8")
    with pytest.raises(IngestionError, match="empty.csv"):
        read_spectrum(empty)
