from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple

import numpy as np


class SpectralPoint(NamedTuple):
    wavelength: float
    intensity: float


@dataclass
class Spectrum:
    wavelength: np.ndarray          # nm, ascending
    intensity: np.ndarray           # counts / a.u.
    meta: Dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return int(np.asarray(self.wavelength).size)

    @classmethod
    def from_points(
        cls,
        points: Iterable[Tuple[float, float]],
        meta: Optional[Dict[str, Any]] = None,
    ) -> "Spectrum":
        pairs = [(float(wl), float(val)) for wl, val in points]
        if pairs:
            wl_arr, inten_arr = (np.asarray(col, dtype=float) for col in zip(*pairs))
        else:
            wl_arr = np.empty(0, dtype=float)
            inten_arr = np.empty(0, dtype=float)
        return cls(wavelength=wl_arr, intensity=inten_arr, meta=dict(meta or {}))

    def points(self) -> List[SpectralPoint]:
        return [
            SpectralPoint(float(wl), float(val))
            for wl, val in zip(np.asarray(self.wavelength), np.asarray(self.intensity))
        ]

    def replace(self, intensity: np.ndarray, meta: Optional[Dict[str, Any]] = None) -> "Spectrum":
        """Copy of this spectrum on the same grid with new intensities."""

        return Spectrum(
            wavelength=np.asarray(self.wavelength, dtype=float).copy(),
            intensity=np.asarray(intensity, dtype=float).copy(),
            meta=dict(self.meta if meta is None else meta),
        )


@dataclass
class BatchResult:
    processed: List[Spectrum]
    summary_table: List[Dict[str, Any]]
    outcomes: List[Any]
    audit: List[str]
    report_text: Optional[str] = None


class SpectroscopyPlugin:
    id: str = "base"
    label: str = "Base"
    xlabel: str = "x"

    def detect(self, paths: Iterable[str]) -> bool:
        return False

    def load(self, paths: Iterable[str]) -> List[Spectrum]:
        raise NotImplementedError

    def validate(self, specs: List[Spectrum], recipe: Dict[str, Any]) -> List[str]:
        return []

    def preprocess(self, specs: List[Spectrum], recipe: Dict[str, Any]) -> List[Spectrum]:
        return specs

    def analyze(self, specs: List[Spectrum], recipe: Dict[str, Any]) -> Tuple[List[Spectrum], List[Dict[str, Any]]]:
        return specs, []

    def export(self, specs: List[Spectrum], summary: List[Dict[str, Any]], recipe: Dict[str, Any]) -> BatchResult:
        return BatchResult(processed=specs, summary_table=summary, outcomes=[], audit=[])
