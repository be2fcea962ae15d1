import numpy as np
import pytest

from photolum_app.engine.errors import DimensionMismatch, SingularMatrix
from photolum_app.engine.numerics import (
    evaluate_polynomial,
    fit_polynomial,
    gaussian,
    integrate_trapezoidal,
    lorentzian,
)
from photolum_app.engine.plugin_api import Spectrum


def test_trapezoidal_integration_handles_irregular_spacing():
    spec = Spectrum.from_points([(0.0, 0.0), (1.0, 2.0), (3.0, 2.0)])
    assert integrate_trapezoidal(spec) == pytest.approx(5.0)


def test_trapezoidal_integration_needs_two_points():
    assert integrate_trapezoidal(Spectrum.from_points([])) == 0.0
    assert integrate_trapezoidal(Spectrum.from_points([(500.0, 3.0)])) == 0.0


def test_fit_polynomial_recovers_exact_quadratic():
    x = np.arange(6, dtype=float)
    y = 1.0 + 2.0 * x + 3.0 * x ** 2
    coeffs = fit_polynomial(x, y, 2)
    assert coeffs.shape == (3,)
    assert np.allclose(coeffs, [1.0, 2.0, 3.0], atol=1e-6)


def test_fit_polynomial_degree_zero_is_the_mean():
    coeffs = fit_polynomial([0.0, 1.0, 2.0, 3.0], [1.0, 2.0, 4.0, 5.0], 0)
    assert coeffs[0] == pytest.approx(3.0)


def test_fit_polynomial_least_squares_line_through_noisy_points():
    x = np.linspace(0.0, 99.0, 100)
    rng = np.random.default_rng(7)
    y = 0.5 - 0.02 * x + rng.normal(0.0, 0.01, size=x.size)
    coeffs = fit_polynomial(x, y, 1)
    expected = np.polynomial.polynomial.polyfit(x, y, 1)
    assert np.allclose(coeffs, expected, rtol=1e-6, atol=1e-9)


def test_fit_polynomial_raises_on_repeated_abscissa():
    with pytest.raises(SingularMatrix):
        fit_polynomial([2.0, 2.0, 2.0], [1.0, 2.0, 3.0], 1)


def test_fit_polynomial_raises_when_underdetermined():
    with pytest.raises(SingularMatrix):
        fit_polynomial([0.0, 1.0], [1.0, 3.0], 2)
    with pytest.raises(SingularMatrix):
        fit_polynomial([], [], 2)


def test_fit_polynomial_rejects_mismatched_lengths():
    with pytest.raises(DimensionMismatch):
        fit_polynomial([0.0, 1.0, 2.0], [1.0, 2.0], 1)


def test_evaluate_polynomial_scalar_and_array():
    assert evaluate_polynomial([1.0, 2.0, 3.0], 2.0) == pytest.approx(17.0)
    values = evaluate_polynomial([1.0, 2.0, 3.0], np.array([0.0, 1.0]))
    assert np.allclose(values, [1.0, 6.0])


def test_gaussian_peak_and_zero_width():
    assert gaussian(550.0, 2.0, 550.0, 5.0) == pytest.approx(2.0)
    assert gaussian(560.0, 2.0, 550.0, 10.0) == pytest.approx(2.0 * np.exp(-0.5))
    assert gaussian(550.0, 2.0, 550.0, 0.0) == 0.0
    zeros = gaussian(np.array([1.0, 2.0]), 2.0, 1.0, 0.0)
    assert np.array_equal(zeros, [0.0, 0.0])


def test_lorentzian_half_height_at_half_width_and_zero_width():
    assert lorentzian(552.0, 4.0, 550.0, 2.0) == pytest.approx(2.0)
    assert lorentzian(550.0, 4.0, 550.0, 0.0) == 0.0
    curve = lorentzian(np.array([548.0, 550.0, 552.0]), 4.0, 550.0, 2.0)
    assert np.allclose(curve, [2.0, 4.0, 2.0])


def test_fit_polynomial_degree_five_over_index_grid_is_solvable():
    x = np.arange(1000, dtype=float)
    y = 0.2 + 1e-3 * x - 2e-9 * x ** 3 + np.sin(x / 50.0)
    coeffs = fit_polynomial(x, y, 5)
    expected = np.polynomial.polynomial.polyfit(x, y, 5)
    assert np.allclose(evaluate_polynomial(coeffs, x), np.polynomial.polynomial.polyval(x, expected), atol=1e-6)
