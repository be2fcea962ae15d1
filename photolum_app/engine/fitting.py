"""Curve synthesis from detected peaks and goodness-of-fit scoring.

No parameters are optimised here: every peak contributes a profile built
directly from its detected position, amplitude and FWHM, and the profiles
are summed over the sample's wavelength grid.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np

from photolum_app.engine.errors import DimensionMismatch, InvalidInput
from photolum_app.engine.numerics import gaussian, lorentzian
from photolum_app.engine.peak_detection import Peak
from photolum_app.engine.plugin_api import Spectrum

__all__ = [
    "FWHM_TO_SIGMA",
    "MODEL_CAPABILITIES",
    "FittingResult",
    "fit_curve",
    "calculate_r_squared",
    "calculate_rmse",
    "fit_spectrum",
]

logger = logging.getLogger(__name__)

# FWHM = 2 * sqrt(2 * ln 2) * sigma for a Gaussian.
FWHM_TO_SIGMA = 2.355

MODEL_CAPABILITIES: Dict[str, str] = {
    "gaussian": "native",
    "lorentzian": "native",
    "voigt": "approximated_by_gaussian",
}


@dataclass(frozen=True)
class FittingResult:
    model: str
    peaks: List[Peak]
    r_squared: float
    rmse: float
    fitted_data: Spectrum

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "peaks": [peak.to_dict() for peak in self.peaks],
            "r_squared": self.r_squared,
            "rmse": self.rmse,
            "fitted_data": [
                {"wavelength": point.wavelength, "intensity": point.intensity}
                for point in self.fitted_data.points()
            ],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "FittingResult":
        fitted = Spectrum.from_points(
            (row["wavelength"], row["intensity"]) for row in payload.get("fitted_data") or []
        )
        return cls(
            model=str(payload["model"]),
            peaks=[Peak.from_dict(row) for row in payload.get("peaks") or []],
            r_squared=float(payload["r_squared"]),
            rmse=float(payload["rmse"]),
            fitted_data=fitted,
        )


def _profile(model: str, x: np.ndarray, peak: Peak) -> np.ndarray:
    if model == "lorentzian":
        return np.asarray(lorentzian(x, peak.amplitude, peak.position, peak.fwhm / 2.0))
    # gaussian, and voigt until a true Voigt profile exists
    sigma = peak.fwhm / FWHM_TO_SIGMA
    return np.asarray(gaussian(x, peak.amplitude, peak.position, sigma))


def fit_curve(spectrum: Spectrum, peaks: Sequence[Peak], model: str = "gaussian") -> Spectrum:
    """Superpose one profile per peak on the wavelength grid of ``spectrum``."""

    model = (model or "").lower()
    if model not in MODEL_CAPABILITIES:
        raise InvalidInput(f"Unsupported fitting model: {model}")
    if model == "voigt":
        logger.info("Voigt profile is approximated by a Gaussian of the same FWHM")

    x = np.asarray(spectrum.wavelength, dtype=float)
    fitted = np.zeros_like(x)
    for peak in peaks:
        fitted = fitted + _profile(model, x, peak)

    return Spectrum(
        wavelength=x.copy(),
        intensity=fitted,
        meta={"model": model, "peak_count": len(peaks)},
    )


def _aligned(observed: Sequence[float], predicted: Sequence[float]):
    obs = np.asarray(observed, dtype=float).reshape(-1)
    pred = np.asarray(predicted, dtype=float).reshape(-1)
    if obs.size != pred.size:
        raise DimensionMismatch(obs.size, pred.size)
    return obs, pred


def calculate_r_squared(observed: Sequence[float], predicted: Sequence[float]) -> float:
    obs, pred = _aligned(observed, predicted)
    if obs.size == 0:
        return 0.0
    ss_total = float(np.sum((obs - np.mean(obs)) ** 2))
    if ss_total == 0.0:
        return 0.0
    ss_residual = float(np.sum((obs - pred) ** 2))
    return 1.0 - ss_residual / ss_total


def calculate_rmse(observed: Sequence[float], predicted: Sequence[float]) -> float:
    obs, pred = _aligned(observed, predicted)
    if obs.size == 0:
        return 0.0
    return float(np.sqrt(np.mean((obs - pred) ** 2)))


def fit_spectrum(spectrum: Spectrum, peaks: Sequence[Peak], model: str = "gaussian") -> FittingResult:
    """Synthesize the model curve for ``peaks`` and score it against ``spectrum``."""

    if not peaks:
        raise InvalidInput("Curve fitting requires at least one peak")
    fitted = fit_curve(spectrum, peaks, model)
    r_squared = calculate_r_squared(spectrum.intensity, fitted.intensity)
    rmse = calculate_rmse(spectrum.intensity, fitted.intensity)
    if not (np.isfinite(r_squared) and np.isfinite(rmse)):
        raise InvalidInput("Goodness-of-fit is not finite; check peak widths and intensities")
    return FittingResult(
        model=(model or "").lower(),
        peaks=list(peaks),
        r_squared=r_squared,
        rmse=rmse,
        fitted_data=fitted,
    )
