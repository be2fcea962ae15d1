from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

from photolum_app.engine.errors import ConfigError

BASELINE_METHODS = ("polynomial", "als")
NORMALIZATION_METHODS = ("max", "area")
FIT_MODELS = ("gaussian", "lorentzian", "voigt")

PRESET_DIR = Path(__file__).resolve().parent.parent / "config" / "presets"
DEFAULT_PRESET = PRESET_DIR / "pl_default.yaml"


def _section(mapping: Mapping[str, Any], key: str) -> Optional[Mapping[str, Any]]:
    value = mapping.get(key)
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ConfigError([f"'{key}' must be a mapping"])
    return value


@dataclass(frozen=True)
class OutlierRemovalConfig:
    enabled: bool = True
    threshold: float = 3.0

    def to_dict(self) -> Dict[str, Any]:
        return {"enabled": self.enabled, "threshold": self.threshold}


@dataclass(frozen=True)
class NoiseReductionConfig:
    # polynomial_order is carried for compatibility; smoothing is a moving average.
    window_length: int = 5
    polynomial_order: int = 2
    method: str = "savitzky-golay"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "window_length": self.window_length,
            "polynomial_order": self.polynomial_order,
        }


@dataclass(frozen=True)
class BaselineCorrectionConfig:
    method: str = "polynomial"
    polynomial_degree: int = 2
    lam: Optional[float] = None
    p: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "method": self.method,
            "polynomial_degree": self.polynomial_degree,
        }
        if self.lam is not None:
            payload["lambda"] = self.lam
        if self.p is not None:
            payload["p"] = self.p
        return payload


@dataclass(frozen=True)
class NormalizationConfig:
    method: str = "max"

    def to_dict(self) -> Dict[str, Any]:
        return {"method": self.method}


@dataclass(frozen=True)
class PreprocessingConfig:
    """Optional per-stage settings; ``None`` skips the stage."""

    outlier_removal: Optional[OutlierRemovalConfig] = None
    noise_reduction: Optional[NoiseReductionConfig] = None
    baseline_correction: Optional[BaselineCorrectionConfig] = None
    normalization: Optional[NormalizationConfig] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "PreprocessingConfig":
        if not mapping:
            return cls()

        outlier = None
        outlier_cfg = _section(mapping, "outlier_removal")
        if outlier_cfg is not None:
            outlier = OutlierRemovalConfig(
                enabled=bool(outlier_cfg.get("enabled", True)),
                threshold=float(outlier_cfg.get("threshold", 3.0)),
            )

        noise = None
        noise_cfg = _section(mapping, "noise_reduction")
        if noise_cfg is not None:
            noise = NoiseReductionConfig(
                window_length=int(noise_cfg.get("window_length", 5)),
                polynomial_order=int(noise_cfg.get("polynomial_order", 2)),
                method=str(noise_cfg.get("method", "savitzky-golay")),
            )

        baseline = None
        baseline_cfg = _section(mapping, "baseline_correction")
        if baseline_cfg is not None:
            lam = baseline_cfg.get("lambda", baseline_cfg.get("lam"))
            p = baseline_cfg.get("p")
            degree = baseline_cfg.get("polynomial_degree")
            baseline = BaselineCorrectionConfig(
                method=str(baseline_cfg.get("method", "polynomial")).strip().lower(),
                polynomial_degree=int(degree) if degree is not None else 2,
                lam=float(lam) if lam is not None else None,
                p=float(p) if p is not None else None,
            )

        normalization = None
        norm_cfg = _section(mapping, "normalization")
        if norm_cfg is not None:
            normalization = NormalizationConfig(
                method=str(norm_cfg.get("method", "max")).strip().lower()
            )

        return cls(
            outlier_removal=outlier,
            noise_reduction=noise,
            baseline_correction=baseline,
            normalization=normalization,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        if self.outlier_removal is not None:
            payload["outlier_removal"] = self.outlier_removal.to_dict()
        if self.noise_reduction is not None:
            payload["noise_reduction"] = self.noise_reduction.to_dict()
        if self.baseline_correction is not None:
            payload["baseline_correction"] = self.baseline_correction.to_dict()
        if self.normalization is not None:
            payload["normalization"] = self.normalization.to_dict()
        return payload

    def validate(self) -> List[str]:
        errs: List[str] = []
        if self.outlier_removal is not None and self.outlier_removal.enabled:
            if self.outlier_removal.threshold <= 0:
                errs.append("Outlier z-score threshold must be positive")
        if self.noise_reduction is not None:
            if self.noise_reduction.window_length < 3:
                errs.append("Smoothing window must be at least 3 points")
            if self.noise_reduction.polynomial_order < 0:
                errs.append("Smoothing polynomial order must be non-negative")
        if self.baseline_correction is not None:
            if self.baseline_correction.method not in BASELINE_METHODS:
                errs.append(
                    f"Unsupported baseline method: {self.baseline_correction.method}"
                )
            if self.baseline_correction.polynomial_degree < 0:
                errs.append("Baseline polynomial degree must be non-negative")
        if self.normalization is not None:
            if self.normalization.method not in NORMALIZATION_METHODS:
                errs.append(
                    f"Unsupported normalization method: {self.normalization.method}"
                )
        return errs


@dataclass(frozen=True)
class DetectionParams:
    prominence: float = 0.1
    min_height: float = 0.05

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "DetectionParams":
        mapping = mapping or {}
        return cls(
            prominence=float(mapping.get("prominence", 0.1)),
            min_height=float(mapping.get("min_height", 0.05)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"prominence": self.prominence, "min_height": self.min_height}


@dataclass
class Recipe:
    module: str = "photoluminescence"
    preprocessing: PreprocessingConfig = field(default_factory=PreprocessingConfig)
    detection: DetectionParams = field(default_factory=DetectionParams)
    model: str = "gaussian"
    version: str = "0.1.0"

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "Recipe":
        mapping = mapping or {}
        params = mapping.get("params", mapping)
        if not isinstance(params, Mapping):
            raise ConfigError(["'params' must be a mapping"])
        fitting = params.get("fitting") or {}
        return cls(
            module=str(mapping.get("module", "photoluminescence")),
            preprocessing=PreprocessingConfig.from_mapping(params.get("preprocessing")),
            detection=DetectionParams.from_mapping(params.get("detection")),
            model=str(fitting.get("model", params.get("model", "gaussian"))).strip().lower(),
            version=str(mapping.get("version", "0.1.0")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "version": self.version,
            "params": {
                "preprocessing": self.preprocessing.to_dict(),
                "detection": self.detection.to_dict(),
                "fitting": {"model": self.model},
            },
        }

    def validate(self) -> List[str]:
        errs = self.preprocessing.validate()
        if self.detection.prominence < 0:
            errs.append("Peak prominence threshold must be non-negative")
        if self.model not in FIT_MODELS:
            errs.append(f"Unsupported fitting model: {self.model}")
        return errs

    def ensure_valid(self) -> "Recipe":
        errs = self.validate()
        if errs:
            raise ConfigError(errs)
        return self


def load_recipe(path: str | Path) -> Recipe:
    path = Path(path)
    with path.open("r", encoding="utf-8") as handle:
        try:
            content = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError([f"Could not parse recipe {path.name}: {exc}"]) from exc
    if not isinstance(content, Mapping):
        raise ConfigError([f"Recipe {path.name} must contain a mapping"])
    return Recipe.from_mapping(content)


def dump_recipe(recipe: Recipe, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(recipe.to_dict(), handle, sort_keys=False)
    return path


def default_recipe() -> Recipe:
    return load_recipe(DEFAULT_PRESET)
