"""Local-maximum peak detection for emission spectra."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Mapping, Tuple

import numpy as np

from photolum_app.engine.numerics import trapezoid_area
from photolum_app.engine.plugin_api import Spectrum

__all__ = [
    "Peak",
    "half_max_bounds",
    "calculate_fwhm",
    "calculate_peak_area",
    "find_candidate_indices",
    "detect_peaks",
    "dominant_peak",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Peak:
    position: float
    amplitude: float
    fwhm: float
    area: float
    prominence: float

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Peak":
        return cls(
            position=float(payload["position"]),
            amplitude=float(payload["amplitude"]),
            fwhm=float(payload["fwhm"]),
            area=float(payload["area"]),
            prominence=float(payload["prominence"]),
        )


def half_max_bounds(y: np.ndarray, idx: int) -> Tuple[int, int]:
    """Indices of the first points at or below half of ``y[idx]`` on each side.

    The walk stops at the spectrum edges; there is no interpolation.
    """

    half = y[idx] / 2.0
    left = idx
    while left > 0 and y[left] > half:
        left -= 1
    right = idx
    while right < y.size - 1 and y[right] > half:
        right += 1
    return left, right


def calculate_fwhm(x: np.ndarray, y: np.ndarray, idx: int) -> float:
    left, right = half_max_bounds(y, idx)
    return float(x[right] - x[left])


def calculate_peak_area(x: np.ndarray, y: np.ndarray, idx: int, fwhm: float) -> float:
    center = x[idx]
    window = (x >= center - fwhm) & (x <= center + fwhm)
    return trapezoid_area(x[window], y[window])


def find_candidate_indices(y: np.ndarray, min_height: float) -> np.ndarray:
    """Interior points strictly above both neighbours and at least ``min_height``."""

    y = np.asarray(y, dtype=float)
    if y.size < 3:
        return np.empty(0, dtype=int)
    core = y[1:-1]
    mask = (core > y[:-2]) & (core > y[2:]) & (core >= min_height)
    return np.flatnonzero(mask) + 1


def detect_peaks(
    spectrum: Spectrum,
    prominence_threshold: float = 0.1,
    min_height: float = 0.05,
) -> List[Peak]:
    """Detect peaks in wavelength order.

    Each candidate gets its full descriptor (FWHM, area, simple prominence)
    before the prominence filter is applied.  Prominence is the height above
    the lower of the two immediate neighbours.
    """

    x = np.asarray(spectrum.wavelength, dtype=float)
    y = np.asarray(spectrum.intensity, dtype=float)

    candidates: List[Peak] = []
    for idx in find_candidate_indices(y, min_height):
        idx = int(idx)
        fwhm = calculate_fwhm(x, y, idx)
        area = calculate_peak_area(x, y, idx, fwhm)
        prominence = float(y[idx] - min(y[idx - 1], y[idx + 1]))
        candidates.append(
            Peak(
                position=float(x[idx]),
                amplitude=float(y[idx]),
                fwhm=fwhm,
                area=area,
                prominence=prominence,
            )
        )

    peaks = [peak for peak in candidates if peak.prominence >= prominence_threshold]
    logger.debug(
        "Peak scan: %d local maxima, %d above prominence %.4g",
        len(candidates),
        len(peaks),
        prominence_threshold,
    )
    return peaks


def dominant_peak(peaks: List[Peak]) -> Peak | None:
    if not peaks:
        return None
    return max(peaks, key=lambda peak: peak.amplitude)
