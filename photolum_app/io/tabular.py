"""Two-column (wavelength, intensity) readers for CSV/TXT and Excel exports."""

from __future__ import annotations

import io
import logging
import math
import re
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from photolum_app.engine.errors import IngestionError
from photolum_app.engine.plugin_api import Spectrum

TEXT_SUFFIXES = {".csv", ".txt"}
EXCEL_SUFFIXES = {".xlsx", ".xls"}
SUPPORTED_SUFFIXES = TEXT_SUFFIXES | EXCEL_SUFFIXES

logger = logging.getLogger(__name__)


def sniff_locale(sample: str) -> Dict[str, str]:
    """Infer delimiter and decimal separator from a text sample.

    Spectrometer exports pair decimal commas with ``;`` or tab delimiters.
    A comma is only taken as the decimal separator when one of those
    delimiters is present.
    """

    if not sample:
        return {"decimal": ".", "delimiter": ","}

    lines = [ln for ln in sample.splitlines() if ln.strip()]
    trimmed = "\n".join(lines)

    dot_matches = re.findall(r"\d\.\d", trimmed)
    comma_matches = re.findall(r"\d,\d", trimmed)
    has_alt_delimiter = ";" in trimmed or "\t" in trimmed
    decimal = "," if has_alt_delimiter and len(comma_matches) > len(dot_matches) else "."

    counts = {sep: trimmed.count(sep) for sep in (";", "\t", ",")}
    if decimal == ",":
        counts[","] = 0
    delimiter = max(counts, key=counts.get)
    if counts[delimiter] == 0:
        # whitespace separated columns
        delimiter = " " if re.search(r"\d[ ]+[-+.\d]", trimmed) else ","

    return {"decimal": decimal, "delimiter": delimiter}


def _to_float(cell: Any, decimal: str = ".") -> Optional[float]:
    if cell is None:
        return None
    if isinstance(cell, (int, float, np.integer, np.floating)) and not isinstance(cell, bool):
        value = float(cell)
        return value if not math.isnan(value) else None
    text = str(cell).strip()
    if not text:
        return None
    if decimal == ",":
        text = text.replace(",", ".")
    try:
        value = float(text)
    except ValueError:
        return None
    return value if not math.isnan(value) else None


def _trim_row(row: Sequence[Any]) -> List[Any]:
    cells = list(row)
    while cells and _is_blank(cells[-1]):
        cells.pop()
    return cells


def _is_blank(cell: Any) -> bool:
    if cell is None:
        return True
    if isinstance(cell, float) and math.isnan(cell):
        return True
    return isinstance(cell, str) and not cell.strip()


def parse_rows(rows: Iterable[Sequence[Any]], *, decimal: str = ".") -> Spectrum:
    """Turn tabulated rows into a wavelength-sorted spectrum.

    A first row whose first cell is not numeric is treated as a header.
    Rows with fewer than two cells or non-numeric values are dropped.
    """

    table = [_trim_row(row) for row in rows]
    start = 0
    if table and table[0] and _to_float(table[0][0], decimal) is None:
        start = 1

    wavelengths: List[float] = []
    intensities: List[float] = []
    dropped = 0
    for row in table[start:]:
        if len(row) < 2:
            dropped += 1
            continue
        wl = _to_float(row[0], decimal)
        inten = _to_float(row[1], decimal)
        if wl is None or inten is None:
            dropped += 1
            continue
        wavelengths.append(wl)
        intensities.append(inten)

    if not wavelengths:
        raise IngestionError("No valid spectral data found in file")
    if dropped:
        logger.debug("Dropped %d unparseable rows", dropped)

    wl_arr = np.asarray(wavelengths, dtype=float)
    order = np.argsort(wl_arr, kind="stable")
    return Spectrum(
        wavelength=wl_arr[order],
        intensity=np.asarray(intensities, dtype=float)[order],
        meta={},
    )


def _read_text_rows(path: Path) -> tuple[List[List[str]], str]:
    text = path.read_text(encoding="utf-8", errors="ignore")
    locale = sniff_locale(text[:4000])
    delimiter = locale["delimiter"]
    lines = [ln for ln in text.splitlines() if ln.strip()]
    if not lines:
        return [], locale["decimal"]

    if delimiter == " ":
        lines = [ln.strip() for ln in lines]
        sep = r"\s+"
        width = max(len(ln.split()) for ln in lines)
    else:
        sep = delimiter
        width = max(ln.count(delimiter) for ln in lines) + 1

    # cells stay strings so the sniffed decimal separator is applied per cell
    frame = pd.read_csv(
        io.StringIO("\n".join(lines)),
        sep=sep,
        header=None,
        names=list(range(width)),
        dtype=str,
        keep_default_na=False,
        engine="python",
    )
    return frame.to_numpy(dtype=object).tolist(), locale["decimal"]


def _read_excel_rows(path: Path) -> List[List[Any]]:
    frame = pd.read_excel(path, sheet_name=0, header=None)
    return frame.to_numpy(dtype=object).tolist()


def read_spectrum(path: str | Path, *, sample_id: Optional[str] = None) -> Spectrum:
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in TEXT_SUFFIXES:
        rows, decimal = _read_text_rows(path)
    elif suffix in EXCEL_SUFFIXES:
        rows, decimal = _read_excel_rows(path), "."
    else:
        raise IngestionError(f"Unsupported spectrum file type: {suffix or path.name}")

    try:
        spectrum = parse_rows(rows, decimal=decimal)
    except IngestionError as exc:
        raise IngestionError(f"{path.name}: {exc}") from exc

    spectrum.meta.update(
        {
            "source_file": str(path),
            "sample_id": sample_id or path.stem,
            "technique": "photoluminescence",
        }
    )
    logger.info("Loaded %d points from %s", len(spectrum), path.name)
    return spectrum
