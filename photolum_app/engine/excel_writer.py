from __future__ import annotations

import csv
import json
import math
import os
from pathlib import Path
from typing import Any, Dict, List, Tuple

import numpy as np
from openpyxl import Workbook

from photolum_app.engine.analysis import AnalysisOutcome
from photolum_app.engine.plugin_api import Spectrum

SPECTRUM_HEADER = ["Wavelength (nm)", "Intensity (a.u.)"]

_STAGE_CHANNEL_ORDER: Tuple[str, ...] = (
    "outlier_filtered",
    "smoothed",
    "baseline",
    "baseline_corrected",
    "normalized",
)


def _ensure_parent(path: Path) -> None:
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


def _clean_value(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        value = value.tolist()
    elif isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return value
    if isinstance(value, (list, tuple, set)):
        return json.dumps([_clean_value(v) for v in value])
    if isinstance(value, dict):
        return json.dumps({str(k): _clean_value(v) for k, v in value.items()})
    if isinstance(value, (Path, os.PathLike)):
        value = os.fspath(value)
    if isinstance(value, str):
        if value and value[0] in "=+-@" and not value.startswith("'"):
            return "'" + value
        return value
    return value


def _flatten_dict(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        safe_key = str(key).replace(" ", "_").replace("/", "_")
        new_key = safe_key if not prefix else f"{prefix}.{safe_key}"
        if isinstance(value, dict):
            flat.update(_flatten_dict(value, new_key))
        else:
            flat[new_key] = _clean_value(value)
    return flat


def _iter_channels(spec: Spectrum) -> List[Tuple[str, np.ndarray]]:
    wavelengths = np.asarray(spec.wavelength, dtype=float)
    channels: List[Tuple[str, np.ndarray]] = [
        ("processed", np.asarray(spec.intensity, dtype=float))
    ]
    extra = (spec.meta or {}).get("channels") or {}
    ordered = [name for name in _STAGE_CHANNEL_ORDER if name in extra]
    ordered.extend(name for name in extra if name not in ordered)
    for name in ordered:
        arr = np.asarray(extra[name], dtype=float)
        if arr.shape != wavelengths.shape:
            continue
        channels.append((str(name), arr))
    return channels


def write_spectrum_csv(out_path: str | Path, spectrum: Spectrum) -> Path:
    """Write ``spectrum`` as a two-column CSV and return the emitted path."""

    csv_path = Path(out_path)
    _ensure_parent(csv_path)
    with csv_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(SPECTRUM_HEADER)
        for point in spectrum.points():
            writer.writerow([_clean_value(point.wavelength), _clean_value(point.intensity)])
    return csv_path


def write_spectrum_workbook(out_path: str | Path, spectrum: Spectrum) -> Path:
    workbook_path = Path(out_path)
    _ensure_parent(workbook_path)

    wb = Workbook()
    ws = wb.active
    ws.title = "Spectral Data"
    ws.append(SPECTRUM_HEADER)
    for point in spectrum.points():
        ws.append([_clean_value(point.wavelength), _clean_value(point.intensity)])
    wb.save(workbook_path)
    return workbook_path


def _write_dict_rows(ws, rows: List[Dict[str, Any]], headers: List[str] | None = None) -> None:
    if not rows:
        if headers:
            ws.append(headers)
        return
    headers = headers or sorted({key for row in rows for key in row.keys()})
    ws.append(headers)
    for row in rows:
        ws.append([_clean_value(row.get(header)) for header in headers])


def write_analysis_workbook(out_path: str | Path, outcome: AnalysisOutcome) -> Path:
    """Export one analysis run to an ``.xlsx`` workbook."""

    workbook_path = Path(out_path)
    _ensure_parent(workbook_path)

    wb = Workbook()
    ws_processed = wb.active
    ws_processed.title = "Processed_Spectrum"
    channels = _iter_channels(outcome.processed)
    ws_processed.append(["wavelength"] + [label for label, _ in channels])
    wavelengths = np.asarray(outcome.processed.wavelength, dtype=float)
    for idx, wavelength in enumerate(wavelengths):
        ws_processed.append(
            [_clean_value(float(wavelength))]
            + [_clean_value(float(data[idx])) for _, data in channels]
        )

    ws_fit = wb.create_sheet("Fitted_Curve")
    ws_fit.append(["wavelength", "observed", "fitted", "residual"])
    if outcome.fitting is not None:
        observed = np.asarray(outcome.processed.intensity, dtype=float)
        fitted = np.asarray(outcome.fitting.fitted_data.intensity, dtype=float)
        for wl, obs, fit in zip(wavelengths, observed, fitted):
            ws_fit.append([_clean_value(float(v)) for v in (wl, obs, fit, obs - fit)])

    ws_peaks = wb.create_sheet("Peaks")
    _write_dict_rows(
        ws_peaks,
        [peak.to_dict() for peak in outcome.peaks],
        headers=["position", "amplitude", "fwhm", "area", "prominence"],
    )

    ws_stats = wb.create_sheet("Statistics")
    ws_stats.append(["metric", "value"])
    summary = outcome.summary_row()
    for key, value in summary.items():
        ws_stats.append([key, _clean_value(value)])

    ws_pre = wb.create_sheet("Preprocessing")
    ws_pre.append(["parameter", "value"])
    params = {
        "preprocessing": outcome.config.to_dict(),
        "detection": outcome.detection.to_dict(),
        "fitting": {"model": outcome.model},
    }
    for key, value in _flatten_dict(params).items():
        ws_pre.append([key, value])

    ws_audit = wb.create_sheet("Audit_Log")
    ws_audit.append(["Index", "Entry"])
    for idx, entry in enumerate(outcome.audit or [], start=1):
        ws_audit.append([idx, _clean_value(entry)])

    wb.save(workbook_path)
    return workbook_path
