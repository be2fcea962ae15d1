"""Before/after comparison of two analyses of the same material."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Union

import numpy as np

from photolum_app.engine.analysis import AnalysisOutcome, AnalysisResult
from photolum_app.engine.peak_detection import Peak, dominant_peak
from photolum_app.engine.stats import Statistics


@dataclass(frozen=True)
class ComparisonResult:
    spectral_shift: float
    intensity_ratio: float
    peak_broadening: float
    quenching_factor: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


AnalysisLike = Union[AnalysisOutcome, AnalysisResult]


def _peaks_and_stats(analysis: AnalysisLike) -> tuple[List[Peak], Statistics]:
    if isinstance(analysis, AnalysisOutcome):
        return analysis.peaks, analysis.statistics
    return analysis.detected_peaks, analysis.statistics


def _emission_maximum(analysis: AnalysisLike, peak: Optional[Peak]) -> Optional[float]:
    """Dominant peak position, else the wavelength of the processed maximum."""

    if peak is not None:
        return peak.position
    if isinstance(analysis, AnalysisOutcome) and len(analysis.processed):
        idx = int(np.argmax(analysis.processed.intensity))
        return float(analysis.processed.wavelength[idx])
    return None


def compare_analyses(before: AnalysisLike, after: AnalysisLike) -> ComparisonResult:
    before_peaks, before_stats = _peaks_and_stats(before)
    after_peaks, after_stats = _peaks_and_stats(after)

    ref = dominant_peak(before_peaks)
    mod = dominant_peak(after_peaks)
    if ref is not None and mod is not None:
        broadening = mod.fwhm - ref.fwhm
    else:
        broadening = 0.0

    ref_position = _emission_maximum(before, ref)
    mod_position = _emission_maximum(after, mod)
    if ref_position is not None and mod_position is not None:
        shift = mod_position - ref_position
    else:
        shift = 0.0

    if before_stats.max_intensity != 0:
        ratio = after_stats.max_intensity / before_stats.max_intensity
    else:
        ratio = 0.0

    quenching = None
    if before_stats.total_area != 0:
        quenching = 1.0 - after_stats.total_area / before_stats.total_area

    return ComparisonResult(
        spectral_shift=float(shift),
        intensity_ratio=float(ratio),
        peak_broadening=float(broadening),
        quenching_factor=quenching,
    )
