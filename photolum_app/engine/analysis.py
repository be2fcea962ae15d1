"""Analysis orchestration: preprocessing, detection, fitting and statistics.

``analyze`` runs the stages strictly in order for one spectrum.  Independent
spectra can be analysed concurrently with ``analyze_batch``; nothing inside a
single run is parallelised.
"""

from __future__ import annotations

from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import multiprocessing
import os
from typing import Any, Dict, List, Mapping, Optional, Sequence

from photolum_app.engine.audit import log_step, start_audit
from photolum_app.engine.errors import InvalidInput
from photolum_app.engine.fitting import MODEL_CAPABILITIES, FittingResult, fit_spectrum
from photolum_app.engine.peak_detection import Peak, detect_peaks
from photolum_app.engine.pipeline import preprocess_spectrum
from photolum_app.engine.plugin_api import Spectrum
from photolum_app.engine.recipe_model import DetectionParams, PreprocessingConfig, Recipe
from photolum_app.engine.stats import Statistics, calculate_statistics

__all__ = [
    "STATUS_FITTED",
    "STATUS_NO_PEAKS",
    "AnalysisOutcome",
    "AnalysisResult",
    "BatchItem",
    "analyze",
    "analyze_recipe",
    "analyze_batch",
]

logger = logging.getLogger(__name__)

STATUS_FITTED = "fitted"
STATUS_NO_PEAKS = "no_peaks"


@dataclass(frozen=True)
class AnalysisResult:
    """Storage-facing record of one analysis run."""

    sample_id: Optional[str]
    preprocessing_params: PreprocessingConfig
    detected_peaks: List[Peak]
    fitting_results: Optional[FittingResult]
    statistics: Statistics
    created_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_id": self.sample_id,
            "preprocessing_params": self.preprocessing_params.to_dict(),
            "detected_peaks": [peak.to_dict() for peak in self.detected_peaks],
            "fitting_results": self.fitting_results.to_dict() if self.fitting_results else None,
            "statistics": self.statistics.to_dict(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AnalysisResult":
        fitting_payload = payload.get("fitting_results")
        return cls(
            sample_id=payload.get("sample_id"),
            preprocessing_params=PreprocessingConfig.from_mapping(payload.get("preprocessing_params")),
            detected_peaks=[Peak.from_dict(row) for row in payload.get("detected_peaks") or []],
            fitting_results=FittingResult.from_dict(fitting_payload) if fitting_payload else None,
            statistics=Statistics.from_dict(payload.get("statistics") or {}),
            created_at=str(payload.get("created_at") or datetime.now(timezone.utc).isoformat()),
        )


@dataclass
class AnalysisOutcome:
    processed: Spectrum
    peaks: List[Peak]
    fitting: Optional[FittingResult]
    statistics: Statistics
    status: str
    config: PreprocessingConfig
    detection: DetectionParams
    model: str
    sample_id: Optional[str] = None
    audit: List[str] = field(default_factory=list)

    @property
    def has_fit(self) -> bool:
        return self.status == STATUS_FITTED

    def to_result(self) -> AnalysisResult:
        return AnalysisResult(
            sample_id=self.sample_id,
            preprocessing_params=self.config,
            detected_peaks=list(self.peaks),
            fitting_results=self.fitting,
            statistics=self.statistics,
        )

    def summary_row(self) -> Dict[str, Any]:
        return {
            "sample_id": self.sample_id,
            "status": self.status,
            "points": len(self.processed),
            "peaks": len(self.peaks),
            "model": self.model,
            "r_squared": self.fitting.r_squared if self.fitting else None,
            "rmse": self.fitting.rmse if self.fitting else None,
            **self.statistics.to_dict(),
        }


def _coerce_config(config: PreprocessingConfig | Mapping[str, Any] | None) -> PreprocessingConfig:
    if isinstance(config, PreprocessingConfig):
        return config
    return PreprocessingConfig.from_mapping(config)


def _coerce_detection(params: DetectionParams | Mapping[str, Any] | None) -> DetectionParams:
    if isinstance(params, DetectionParams):
        return params
    return DetectionParams.from_mapping(params)


def analyze(
    raw: Spectrum,
    preprocessing_config: PreprocessingConfig | Mapping[str, Any] | None = None,
    detection_params: DetectionParams | Mapping[str, Any] | None = None,
    model: str = "gaussian",
    *,
    sample_id: Optional[str] = None,
) -> AnalysisOutcome:
    """Run the full analysis for one spectrum.

    A run that finds no peaks returns ``status == "no_peaks"`` with
    ``fitting=None``; failures inside any stage propagate to the caller.
    """

    config = _coerce_config(preprocessing_config)
    detection = _coerce_detection(detection_params)
    model = (model or "gaussian").lower()
    if model not in MODEL_CAPABILITIES:
        raise InvalidInput(f"Unsupported fitting model: {model}")
    sample_id = sample_id or (raw.meta or {}).get("sample_id")

    if len(raw) == 0:
        raise InvalidInput("Cannot analyze an empty spectrum")

    audit = start_audit(sample_id)
    log_step(audit, "Raw spectrum: %d points", len(raw))

    processed = preprocess_spectrum(raw, config, audit=audit)
    if len(processed) == 0:
        raise InvalidInput("Preprocessing removed every point from the spectrum")

    peaks = detect_peaks(processed, detection.prominence, detection.min_height)
    log_step(audit, "Peak detection (prominence>=%g, height>=%g): %d peaks",
             detection.prominence, detection.min_height, len(peaks))

    fitting: Optional[FittingResult] = None
    if peaks:
        fitting = fit_spectrum(processed, peaks, model)
        status = STATUS_FITTED
        log_step(audit, "Curve fit (%s, %s): R2=%.4f RMSE=%.4g",
                 model, MODEL_CAPABILITIES[model], fitting.r_squared, fitting.rmse)
    else:
        status = STATUS_NO_PEAKS
        logger.info("No peaks detected for sample %s; fitting skipped", sample_id or "<unnamed>")
        log_step(audit, "Curve fit skipped: no peaks detected")

    statistics = calculate_statistics(processed)
    log_step(audit, "Statistics: mean=%.4g max=%.4g area=%.4g",
             statistics.mean_intensity, statistics.max_intensity, statistics.total_area)

    return AnalysisOutcome(
        processed=processed,
        peaks=peaks,
        fitting=fitting,
        statistics=statistics,
        status=status,
        config=config,
        detection=detection,
        model=model,
        sample_id=sample_id,
        audit=audit,
    )


def analyze_recipe(raw: Spectrum, recipe: Recipe, *, sample_id: Optional[str] = None) -> AnalysisOutcome:
    return analyze(
        raw,
        recipe.preprocessing,
        recipe.detection,
        recipe.model,
        sample_id=sample_id,
    )


@dataclass(frozen=True)
class BatchItem:
    index: int
    sample_id: Optional[str]
    outcome: Optional[AnalysisOutcome] = None
    error: Optional[str] = None


def _default_workers() -> int:
    return max(1, min(4, os.cpu_count() or 1))


def _analyze_task(index: int, spec: Spectrum, recipe: Recipe) -> BatchItem:
    sample_id = (spec.meta or {}).get("sample_id")
    try:
        outcome = analyze_recipe(spec, recipe)
        return BatchItem(index=index, sample_id=sample_id, outcome=outcome)
    except Exception as exc:
        return BatchItem(index=index, sample_id=sample_id, error=f"{type(exc).__name__}: {exc}")


def analyze_batch(
    spectra: Sequence[Spectrum],
    recipe: Recipe,
    *,
    workers: Optional[int] = 1,
) -> List[BatchItem]:
    """Analyze independent spectra; one failure never aborts the batch."""

    specs = list(spectra)
    if workers is None or workers < 1:
        workers = _default_workers()

    if workers > 1 and len(specs) > 1:
        ctx = multiprocessing.get_context("spawn")
        results: List[Optional[BatchItem]] = [None for _ in specs]
        with ProcessPoolExecutor(mp_context=ctx, max_workers=workers) as executor:
            future_map = {
                executor.submit(_analyze_task, idx, spec, recipe): idx
                for idx, spec in enumerate(specs)
            }
            for future in as_completed(future_map):
                idx = future_map[future]
                try:
                    results[idx] = future.result()
                except Exception as exc:
                    logger.exception("Analysis task crashed for spectrum %s", idx)
                    results[idx] = BatchItem(
                        index=idx,
                        sample_id=(specs[idx].meta or {}).get("sample_id"),
                        error=f"{type(exc).__name__}: {exc}",
                    )
        items = [item for item in results if item is not None]
    else:
        items = [_analyze_task(idx, spec, recipe) for idx, spec in enumerate(specs)]

    for item in items:
        if item.error:
            logger.error("Analysis failed for spectrum %s (%s): %s",
                         item.index, item.sample_id or "<unnamed>", item.error)
    return items
