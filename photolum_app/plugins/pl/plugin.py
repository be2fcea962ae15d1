from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from photolum_app.engine.analysis import AnalysisOutcome, analyze_recipe
from photolum_app.engine.audit import log_step, start_audit
from photolum_app.engine.pipeline import preprocess_spectrum
from photolum_app.engine.plugin_api import BatchResult, SpectroscopyPlugin, Spectrum
from photolum_app.engine.recipe_model import Recipe
from photolum_app.io.tabular import SUPPORTED_SUFFIXES, read_spectrum

logger = logging.getLogger(__name__)


def _as_recipe(recipe: Recipe | Mapping[str, Any] | None) -> Recipe:
    if isinstance(recipe, Recipe):
        return recipe
    return Recipe.from_mapping(recipe)


class PhotoluminescencePlugin(SpectroscopyPlugin):
    id = "pl"
    label = "Photoluminescence"
    xlabel = "Wavelength (nm)"

    def __init__(self) -> None:
        self._outcomes: List[AnalysisOutcome] = []

    def detect(self, paths: Iterable[str]) -> bool:
        return any(Path(p).suffix.lower() in SUPPORTED_SUFFIXES for p in paths)

    def load(self, paths: Iterable[str]) -> List[Spectrum]:
        return [read_spectrum(p) for p in paths]

    def validate(self, specs: List[Spectrum], recipe: Dict[str, Any]) -> List[str]:
        errs = _as_recipe(recipe).validate()
        for idx, spec in enumerate(specs):
            if len(spec) == 0:
                label = spec.meta.get("sample_id") or f"spectrum {idx}"
                errs.append(f"{label} contains no points")
        return errs

    def preprocess(self, specs: List[Spectrum], recipe: Dict[str, Any]) -> List[Spectrum]:
        config = _as_recipe(recipe).preprocessing
        return [preprocess_spectrum(spec, config) for spec in specs]

    def analyze(self, specs: List[Spectrum], recipe: Dict[str, Any]) -> Tuple[List[Spectrum], List[Dict[str, Any]]]:
        parsed = _as_recipe(recipe)
        self._outcomes = [analyze_recipe(spec, parsed) for spec in specs]
        processed = [outcome.processed for outcome in self._outcomes]
        return processed, [outcome.summary_row() for outcome in self._outcomes]

    def export(self, specs: List[Spectrum], summary: List[Dict[str, Any]], recipe: Dict[str, Any]) -> BatchResult:
        audit = start_audit()
        log_step(audit, "Recipe: %s", _as_recipe(recipe).to_dict())
        for outcome in self._outcomes:
            audit.extend(outcome.audit)
        fitted = sum(1 for outcome in self._outcomes if outcome.has_fit)
        report = f"{len(self._outcomes)} spectra analysed, {fitted} with fitted peaks"
        logger.info(report)
        return BatchResult(
            processed=specs,
            summary_table=summary,
            outcomes=list(self._outcomes),
            audit=audit,
            report_text=report,
        )
