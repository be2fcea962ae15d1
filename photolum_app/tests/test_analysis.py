import json

import numpy as np
import pytest

from photolum_app.engine.analysis import (
    STATUS_FITTED,
    STATUS_NO_PEAKS,
    AnalysisResult,
    analyze,
    analyze_batch,
    analyze_recipe,
)
from photolum_app.engine.errors import InvalidInput
from photolum_app.engine.plugin_api import Spectrum
from photolum_app.engine.recipe_model import DetectionParams, PreprocessingConfig, Recipe


def _triangle(sample_id="S1"):
    return Spectrum.from_points(
        [(500.0, 0.1), (502.0, 0.3), (504.0, 0.9), (506.0, 0.3), (508.0, 0.1)],
        meta={"sample_id": sample_id},
    )


def _emission_band():
    x = np.linspace(400.0, 700.0, 301)
    y = 0.2 + 0.001 * (x - 400.0) + np.exp(-0.5 * ((x - 550.0) / 10.0) ** 2)
    return Spectrum(wavelength=x, intensity=y, meta={"sample_id": "band"})


def test_raw_spectrum_fits_single_peak():
    outcome = analyze(_triangle(), None, {"prominence": 0.1, "min_height": 0.05}, "gaussian")
    assert outcome.status == STATUS_FITTED
    assert outcome.has_fit
    assert len(outcome.peaks) == 1
    assert outcome.peaks[0].position == pytest.approx(504.0)
    assert outcome.fitting.model == "gaussian"
    assert np.isfinite(outcome.fitting.r_squared)
    assert outcome.fitting.r_squared <= 1.0
    assert outcome.statistics.max_intensity == pytest.approx(0.9)
    assert outcome.sample_id == "S1"
    assert any("Peak detection" in entry for entry in outcome.audit)


def test_monotonic_spectrum_reports_no_peaks():
    spec = Spectrum.from_points([(500.0 + i, 0.1 * i) for i in range(10)])
    outcome = analyze(spec, PreprocessingConfig(), DetectionParams())
    assert outcome.status == STATUS_NO_PEAKS
    assert outcome.fitting is None
    assert not outcome.has_fit
    assert outcome.statistics.max_intensity == pytest.approx(0.9)
    row = outcome.summary_row()
    assert row["r_squared"] is None
    assert row["peaks"] == 0


def test_empty_spectrum_is_invalid_input():
    with pytest.raises(InvalidInput):
        analyze(Spectrum.from_points([]))


def test_preprocessing_that_removes_everything_is_invalid_input():
    spec = Spectrum.from_points([(500.0, 0.0), (502.0, 1.0)])
    with pytest.raises(InvalidInput):
        analyze(spec, {"outlier_removal": {"enabled": True, "threshold": 1e-9}})


def test_unknown_model_is_invalid_input():
    with pytest.raises(InvalidInput):
        analyze(_triangle(), None, None, "pearson7")


def test_analysis_does_not_mutate_input():
    spec = _emission_band()
    before = spec.intensity.copy()
    analyze(spec, {"noise_reduction": {"window_length": 5}, "normalization": {"method": "max"}})
    assert np.array_equal(spec.intensity, before)
    assert spec.meta == {"sample_id": "band"}


def test_full_preprocessing_chain_finds_emission_band():
    config = {
        "noise_reduction": {"window_length": 5, "polynomial_order": 2},
        "baseline_correction": {"method": "polynomial", "polynomial_degree": 2},
        "normalization": {"method": "max"},
    }
    outcome = analyze(_emission_band(), config, {"prominence": 0.001, "min_height": 0.5}, "lorentzian")
    assert outcome.status == STATUS_FITTED
    assert len(outcome.peaks) == 1
    assert outcome.peaks[0].position == pytest.approx(550.0, abs=2.0)
    assert np.max(outcome.processed.intensity) == pytest.approx(1.0)
    assert outcome.fitting.model == "lorentzian"
    assert np.isfinite(outcome.fitting.rmse)


def test_result_record_serialises_and_restores():
    outcome = analyze(_triangle(), {"normalization": {"method": "area"}}, None, "voigt")
    result = outcome.to_result()
    payload = json.loads(json.dumps(result.to_dict()))
    assert payload["preprocessing_params"] == {"normalization": {"method": "area"}}
    assert payload["fitting_results"]["model"] == "voigt"

    restored = AnalysisResult.from_dict(payload)
    assert restored.sample_id == "S1"
    assert restored.detected_peaks == outcome.peaks
    assert restored.statistics == outcome.statistics
    assert restored.created_at == result.created_at
    assert restored.preprocessing_params == outcome.config


def test_analyze_recipe_uses_recipe_model():
    recipe = Recipe(model="lorentzian")
    outcome = analyze_recipe(_triangle(), recipe)
    assert outcome.model == "lorentzian"
    assert outcome.fitting.model == "lorentzian"


def test_batch_keeps_order_and_isolates_failures():
    recipe = Recipe()
    items = analyze_batch([_triangle("a"), Spectrum.from_points([], meta={"sample_id": "b"}), _triangle("c")], recipe)
    assert [item.index for item in items] == [0, 1, 2]
    assert [item.sample_id for item in items] == ["a", "b", "c"]
    assert items[0].outcome.status == STATUS_FITTED
    assert items[1].outcome is None
    assert items[1].error.startswith("InvalidInput")
    assert items[2].error is None


def test_result_record_keeps_degree_zero_baseline():
    config = {"baseline_correction": {"method": "polynomial", "polynomial_degree": 0}}
    result = analyze(_triangle(), config).to_result()
    restored = AnalysisResult.from_dict(json.loads(json.dumps(result.to_dict())))
    assert restored.preprocessing_params == result.preprocessing_params
    assert restored.preprocessing_params.baseline_correction.polynomial_degree == 0


def test_parallel_batch_matches_serial_run():
    recipe = Recipe(model="lorentzian")
    spectra = [
        _triangle("a"),
        Spectrum.from_points([], meta={"sample_id": "b"}),
        _emission_band(),
        _triangle("d"),
    ]
    serial = analyze_batch(spectra, recipe, workers=1)
    parallel = analyze_batch(spectra, recipe, workers=2)

    assert [item.index for item in parallel] == [0, 1, 2, 3]
    assert [item.sample_id for item in parallel] == ["a", "b", "band", "d"]
    assert parallel[1].outcome is None
    assert parallel[1].error == serial[1].error
    for fast, slow in zip(parallel, serial):
        if slow.outcome is None:
            continue
        assert fast.error is None
        assert fast.outcome.status == slow.outcome.status
        assert fast.outcome.peaks == slow.outcome.peaks
        assert fast.outcome.statistics == slow.outcome.statistics
        assert np.array_equal(fast.outcome.processed.intensity, slow.outcome.processed.intensity)
