"""Photoluminescence preprocessing stages.

Stages run in a fixed order (outlier removal, noise reduction, baseline
correction, normalization).  Each one takes a :class:`Spectrum` and returns a
new one; the input arrays are never modified.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

import numpy as np
from scipy.ndimage import uniform_filter1d

from photolum_app.engine.audit import log_step
from photolum_app.engine.errors import ConfigError
from photolum_app.engine.numerics import evaluate_polynomial, fit_polynomial, trapezoid_area
from photolum_app.engine.plugin_api import Spectrum
from photolum_app.engine.recipe_model import PreprocessingConfig

__all__ = [
    "remove_outliers",
    "smooth_spectrum",
    "apply_baseline",
    "normalize_spectrum",
    "preprocess_spectrum",
]

logger = logging.getLogger(__name__)


def _update_channel(meta: Dict[str, object], name: str, values: np.ndarray) -> None:
    """Store a processing channel in ``meta`` preserving existing ones."""

    channels = dict(meta.get("channels") or {})
    channels[name] = np.asarray(values, dtype=float).copy()
    meta["channels"] = channels


def _record_stage(meta: Dict[str, object], stage: str) -> None:
    stages = list(meta.get("preprocessing") or [])
    stages.append(stage)
    meta["preprocessing"] = stages


def remove_outliers(spec: Spectrum, threshold: float = 3.0) -> Spectrum:
    """Keep points whose z-score (population std) is within ``threshold``."""

    y = np.asarray(spec.intensity, dtype=float)
    if y.size == 0:
        return spec.replace(y)

    std = float(np.std(y))
    if std == 0.0:
        logger.debug("Outlier removal skipped: intensities have zero spread")
        return spec.replace(y)

    mean = float(np.mean(y))
    keep = np.abs(y - mean) <= float(threshold) * std

    meta = dict(spec.meta)
    channels = dict(meta.get("channels") or {})
    meta["channels"] = {
        name: np.asarray(values, dtype=float)[keep].copy()
        for name, values in channels.items()
        if np.asarray(values).shape == y.shape
    }
    meta["outliers_removed"] = int(y.size - np.count_nonzero(keep))
    _update_channel(meta, "outlier_filtered", y[keep])
    logger.debug("Outlier removal dropped %d of %d points", meta["outliers_removed"], y.size)
    return Spectrum(
        wavelength=np.asarray(spec.wavelength, dtype=float)[keep].copy(),
        intensity=y[keep].copy(),
        meta=meta,
    )


def smooth_spectrum(
    spec: Spectrum,
    *,
    window_length: int,
    polynomial_order: int = 2,
) -> Spectrum:
    """Centered moving average registered under the Savitzky-Golay stage name.

    Even windows are bumped to the next odd size.  Boundary points average
    only the neighbours that exist (no padding).  ``polynomial_order`` is
    recorded but does not change the result.
    """

    y = np.asarray(spec.intensity, dtype=float)
    window = int(window_length)
    if window % 2 == 0:
        window += 1
    window = max(window, 1)

    if y.size == 0:
        smoothed = y.copy()
    else:
        totals = uniform_filter1d(y, size=window, mode="constant", cval=0.0)
        counts = uniform_filter1d(np.ones_like(y), size=window, mode="constant", cval=0.0)
        smoothed = totals / counts

    meta = dict(spec.meta)
    meta["smoothing_algorithm"] = "moving_average"
    meta["smoothing_window"] = window
    meta["smoothing_polyorder"] = int(polynomial_order)
    _update_channel(meta, "smoothed", smoothed)
    return spec.replace(smoothed, meta)


def apply_baseline(
    spec: Spectrum,
    method: str,
    *,
    polynomial_degree: int = 2,
) -> Spectrum:
    """Baseline correction entry point.

    ``"polynomial"`` fits the intensities against the point index, subtracts
    the fit and clamps the result at zero.  ``"als"`` is accepted and leaves
    the spectrum unchanged.
    """

    y = np.asarray(spec.intensity, dtype=float)
    method = (method or "").lower()
    meta = dict(spec.meta)

    if method == "als":
        logger.info("Baseline method 'als' is not implemented; spectrum left unchanged")
        meta["baseline_skipped"] = "als"
        return spec.replace(y, meta)
    if method != "polynomial":
        raise ConfigError([f"Unsupported baseline method: {method}"])
    if y.size == 0:
        return spec.replace(y, meta)

    index = np.arange(y.size, dtype=float)
    coeffs = fit_polynomial(index, y, polynomial_degree)
    baseline = np.asarray(evaluate_polynomial(coeffs, index), dtype=float)
    corrected = np.maximum(y - baseline, 0.0)

    meta["baseline"] = method
    meta["baseline_coefficients"] = [float(c) for c in coeffs]
    _update_channel(meta, "baseline", baseline)
    _update_channel(meta, "baseline_corrected", corrected)
    return spec.replace(corrected, meta)


def normalize_spectrum(spec: Spectrum, method: str) -> Spectrum:
    y = np.asarray(spec.intensity, dtype=float)
    method = (method or "").lower()
    if method == "max":
        scale = float(np.max(y)) if y.size else 0.0
    elif method == "area":
        scale = trapezoid_area(spec.wavelength, y)
    else:
        raise ConfigError([f"Unsupported normalization method: {method}"])

    meta = dict(spec.meta)
    if scale == 0.0:
        logger.debug("Normalization '%s' skipped: scale is zero", method)
        return spec.replace(y, meta)

    normalized = y / scale
    meta["normalization"] = method
    meta["normalization_scale"] = scale
    _update_channel(meta, "normalized", normalized)
    return spec.replace(normalized, meta)


def preprocess_spectrum(
    spec: Spectrum,
    config: PreprocessingConfig,
    *,
    audit: Optional[List[str]] = None,
) -> Spectrum:
    working = spec.replace(spec.intensity)
    audit = audit if audit is not None else []

    outlier_cfg = config.outlier_removal
    if outlier_cfg is not None and outlier_cfg.enabled:
        before = len(working)
        working = remove_outliers(working, outlier_cfg.threshold)
        _record_stage(working.meta, "outlier_removal")
        log_step(audit, "Outlier removal (z<=%g): %d -> %d points",
                 outlier_cfg.threshold, before, len(working))

    noise_cfg = config.noise_reduction
    if noise_cfg is not None:
        working = smooth_spectrum(
            working,
            window_length=noise_cfg.window_length,
            polynomial_order=noise_cfg.polynomial_order,
        )
        _record_stage(working.meta, "noise_reduction")
        log_step(audit, "Noise reduction: moving average, window=%d",
                 working.meta["smoothing_window"])

    baseline_cfg = config.baseline_correction
    if baseline_cfg is not None:
        working = apply_baseline(
            working,
            baseline_cfg.method,
            polynomial_degree=baseline_cfg.polynomial_degree,
        )
        _record_stage(working.meta, "baseline_correction")
        if working.meta.get("baseline_skipped"):
            log_step(audit, "Baseline correction: '%s' not applied", baseline_cfg.method)
        else:
            log_step(audit, "Baseline correction: polynomial degree %d",
                     baseline_cfg.polynomial_degree)

    norm_cfg = config.normalization
    if norm_cfg is not None:
        working = normalize_spectrum(working, norm_cfg.method)
        _record_stage(working.meta, "normalization")
        log_step(audit, "Normalization: %s", norm_cfg.method)

    return working
