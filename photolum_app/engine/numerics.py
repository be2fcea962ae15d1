"""Numeric kernels used by the preprocessing, detection and fitting stages.

Everything here is a pure function over numpy arrays.  The polynomial fit
solves the normal equations with Gaussian elimination and partial pivoting;
a degenerate system raises :class:`SingularMatrix`.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np
from scipy.integrate import trapezoid

from photolum_app.engine.errors import DimensionMismatch, InvalidInput, SingularMatrix
from photolum_app.engine.plugin_api import Spectrum

__all__ = [
    "PIVOT_TOLERANCE",
    "trapezoid_area",
    "integrate_trapezoidal",
    "fit_polynomial",
    "evaluate_polynomial",
    "gaussian",
    "lorentzian",
]

logger = logging.getLogger(__name__)

# Relative to the largest entry of the pivot column before elimination.
PIVOT_TOLERANCE = 1e-14


def trapezoid_area(x: np.ndarray, y: np.ndarray) -> float:
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.size < 2:
        return 0.0
    return float(trapezoid(y, x))


def integrate_trapezoidal(spectrum: Spectrum) -> float:
    """Sum of ``dx * mean(y)`` over adjacent point pairs, in stored order."""

    return trapezoid_area(spectrum.wavelength, spectrum.intensity)


def _solve_partial_pivot(A: np.ndarray, B: np.ndarray) -> np.ndarray:
    A = np.array(A, dtype=float)
    B = np.array(B, dtype=float)
    n = B.size
    col_scale = np.max(np.abs(A), axis=0) if A.size else np.zeros(n)

    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(A[col:, col])))
        pivot = A[pivot_row, col]
        tolerance = PIVOT_TOLERANCE * float(col_scale[col])
        if not np.isfinite(pivot) or pivot == 0.0 or abs(pivot) <= tolerance:
            raise SingularMatrix(
                f"No usable pivot in column {col} (|pivot|={abs(pivot):.3e}, tolerance={tolerance:.3e})"
            )
        if pivot_row != col:
            A[[col, pivot_row], col:] = A[[pivot_row, col], col:]
            B[[col, pivot_row]] = B[[pivot_row, col]]

        for row in range(col + 1, n):
            factor = A[row, col] / A[col, col]
            A[row, col] = 0.0
            A[row, col + 1:] -= factor * A[col, col + 1:]
            B[row] -= factor * B[col]

    coeffs = np.zeros(n, dtype=float)
    for row in range(n - 1, -1, -1):
        tail = float(np.dot(A[row, row + 1:], coeffs[row + 1:]))
        coeffs[row] = (B[row] - tail) / A[row, row]

    if not np.all(np.isfinite(coeffs)):
        raise SingularMatrix("Polynomial fit produced non-finite coefficients")
    return coeffs


def fit_polynomial(xs: Sequence[float], ys: Sequence[float], degree: int) -> np.ndarray:
    """Least-squares polynomial coefficients in ascending powers.

    Builds ``A[r][c] = sum(x**(r+c))`` and ``B[r] = sum(y * x**r)`` for
    ``r, c`` in ``0..degree`` and solves ``A @ coeffs = B``.
    """

    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if x.size != y.size:
        raise DimensionMismatch(x.size, y.size)
    degree = int(degree)
    if degree < 0:
        raise InvalidInput(f"Polynomial degree must be non-negative, got {degree}")

    k = degree + 1
    powers = np.vander(x, 2 * degree + 1, increasing=True) if x.size else np.zeros((0, 2 * degree + 1))
    power_sums = powers.sum(axis=0)
    rows = np.arange(k)
    A = power_sums[rows[:, None] + rows[None, :]]
    B = powers[:, :k].T @ y if x.size else np.zeros(k)
    logger.debug("Solving %dx%d normal equations over %d points", k, k, x.size)
    return _solve_partial_pivot(A, B)


def evaluate_polynomial(coeffs: Sequence[float], x):
    coeffs = np.asarray(coeffs, dtype=float)
    x_arr = np.asarray(x, dtype=float)
    result = np.zeros_like(x_arr, dtype=float)
    for power, coeff in enumerate(coeffs):
        result = result + coeff * x_arr ** power
    if result.ndim == 0:
        return float(result)
    return result


def _scalar_or_array(values: np.ndarray):
    if values.ndim == 0:
        return float(values)
    return values


def gaussian(x, amplitude: float, center: float, sigma: float):
    x_arr = np.asarray(x, dtype=float)
    if sigma == 0:
        return _scalar_or_array(np.zeros_like(x_arr))
    return _scalar_or_array(amplitude * np.exp(-((x_arr - center) ** 2) / (2 * sigma ** 2)))


def lorentzian(x, amplitude: float, center: float, half_width: float):
    x_arr = np.asarray(x, dtype=float)
    if half_width == 0:
        return _scalar_or_array(np.zeros_like(x_arr))
    return _scalar_or_array(amplitude / (1 + ((x_arr - center) / half_width) ** 2))
