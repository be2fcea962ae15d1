"""Summary statistics for a processed spectrum."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping

import numpy as np

from photolum_app.engine.numerics import integrate_trapezoidal
from photolum_app.engine.plugin_api import Spectrum


@dataclass(frozen=True)
class Statistics:
    mean_intensity: float = 0.0
    std_intensity: float = 0.0
    max_intensity: float = 0.0
    min_intensity: float = 0.0
    total_area: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Statistics":
        return cls(**{key: float(payload.get(key, 0.0)) for key in cls.__dataclass_fields__})


def calculate_statistics(spectrum: Spectrum) -> Statistics:
    """Population statistics of the intensities; all zeros for an empty spectrum."""

    y = np.asarray(spectrum.intensity, dtype=float)
    if y.size == 0:
        return Statistics()
    return Statistics(
        mean_intensity=float(np.mean(y)),
        std_intensity=float(np.std(y)),
        max_intensity=float(np.max(y)),
        min_intensity=float(np.min(y)),
        total_area=integrate_trapezoidal(spectrum),
    )
