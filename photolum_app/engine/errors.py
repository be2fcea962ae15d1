"""Exception taxonomy shared by the analysis engine and its collaborators."""

from __future__ import annotations


class SpectralAnalysisError(ValueError):
    """Base class for every failure raised by ``photolum_app``."""


class InvalidInput(SpectralAnalysisError):
    """Raised when a spectrum is empty or too small for the requested operation."""


class DimensionMismatch(SpectralAnalysisError):
    """Raised when observed/predicted series are not index-aligned."""

    def __init__(self, observed: int, predicted: int):
        self.observed = observed
        self.predicted = predicted
        super().__init__(
            f"Observed and predicted lengths differ ({observed} != {predicted})"
        )


class SingularMatrix(SpectralAnalysisError):
    """Raised when a least-squares system has no usable pivot."""


class IngestionError(SpectralAnalysisError):
    """Raised when a spectrum file yields no usable points."""


class ConfigError(SpectralAnalysisError):
    """Raised when a recipe fails validation."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
