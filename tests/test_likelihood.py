"""Tests for the Poisson log-likelihood and its score."""
import numpy as np
import pytest
from scipy.stats import poisson

from latent_fib.likelihood import (
    censored_log_likelihood,
    column_log_likelihood,
    linear_predictor,
    log_likelihood,
    pack_params,
    score,
    unpack_params,
)


def _random_problem(n=8, p=3, d=2, seed=0):
    rng = np.random.default_rng(seed)
    codes = np.arange(n) % d
    alpha = rng.normal(1.0, 0.3, size=(d, p))
    beta = rng.uniform(0.5, 1.5, size=p)
    gamma = rng.normal(1.0, 0.3, size=n)
    mu = np.exp(linear_predictor(alpha, beta, gamma, codes))
    data = rng.poisson(mu).astype(float)
    return data, pack_params(alpha, beta, gamma), codes


def test_param_layout_is_event_major():
    alpha = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    beta = np.array([7.0, 8.0, 9.0])
    gamma = np.array([10.0, 11.0])
    params = pack_params(alpha, beta, gamma)

    assert params.size == 2 * 3 + 3 + 2
    # alpha[1, 0] sits after the whole first event row
    assert params[3] == 4.0
    assert params[6] == 7.0
    assert params[-1] == 11.0

    a, b, g = unpack_params(params, n_events=2, n_categories=3, n_obs=2)
    np.testing.assert_array_equal(a, alpha)
    np.testing.assert_array_equal(b, beta)
    np.testing.assert_array_equal(g, gamma)


def test_unpack_rejects_wrong_length():
    with pytest.raises(ValueError, match="length"):
        unpack_params(np.zeros(5), n_events=2, n_categories=3, n_obs=2)


def test_log_likelihood_matches_poisson_logpmf():
    data, params, codes = _random_problem()
    a, b, g = unpack_params(params, 2, 3, 8)
    mu = np.exp(linear_predictor(a, b, g, codes))

    expected = poisson.logpmf(data, mu).sum()
    assert log_likelihood(data, params, codes) == pytest.approx(expected, rel=1e-10)


def test_column_log_likelihood_sums_to_total():
    data, params, codes = _random_problem()
    cols = column_log_likelihood(data, params, codes)
    assert cols.shape == (3,)
    assert cols.sum() == pytest.approx(log_likelihood(data, params, codes))


def test_missing_cells_are_skipped():
    data, params, codes = _random_problem()
    a, b, g = unpack_params(params, 2, 3, 8)
    mu = np.exp(linear_predictor(a, b, g, codes))

    holed = data.copy()
    holed[2, 1] = np.nan
    expected = poisson.logpmf(data, mu).sum() - poisson.logpmf(data[2, 1], mu[2, 1])
    assert log_likelihood(holed, params, codes) == pytest.approx(expected, rel=1e-10)
    assert np.all(np.isfinite(score(holed, params, codes)))


def test_overflowing_mean_gives_minus_inf():
    data = np.array([[3.0, 4.0]])
    params = pack_params(np.array([[800.0, 0.0]]), np.ones(2), np.ones(1))
    assert log_likelihood(data, params, np.array([0])) == -np.inf


def test_score_matches_finite_differences():
    data, params, codes = _random_problem(seed=3)
    grad = score(data, params, codes)

    h = 1e-6
    numeric = np.empty_like(params)
    for k in range(params.size):
        up = params.copy()
        down = params.copy()
        up[k] += h
        down[k] -= h
        numeric[k] = (log_likelihood(data, up, codes) - log_likelihood(data, down, codes)) / (2 * h)

    np.testing.assert_allclose(grad, numeric, rtol=1e-4, atol=1e-4)


def test_score_zero_for_specific_intercepts():
    data, params, codes = _random_problem()
    specific = np.array([False, True, False])
    grad = score(data, params, codes, specific=specific)
    grad_alpha, _, _ = unpack_params(grad, 2, 3, 8)

    np.testing.assert_array_equal(grad_alpha[:, 1], 0.0)
    assert np.all(grad_alpha[:, [0, 2]] != 0.0)


def test_score_vanishes_at_sample_mean_intercept():
    # With beta = 0 the intercept MLE of a single event is log(mean)
    y = np.array([[3.0], [5.0], [7.0], [5.0]])
    params = pack_params(np.array([[np.log(5.0)]]), np.zeros(1), np.zeros(4))
    grad = score(y, params, np.zeros(4, dtype=int))
    assert grad[0] == pytest.approx(0.0, abs=1e-10)


def test_censored_log_likelihood_uses_cdf_for_censored_cells():
    raw = np.array([[0.0, 30.0], [12.0, 0.0]])
    censored = np.array([[True, False], [False, True]])
    min_detect = np.array([1.0, 25.0])
    codes = np.array([0, 0])
    params = pack_params(np.array([[1.0, 2.0]]), np.array([0.5, 1.0]), np.array([1.0, 1.2]))

    a, b, g = unpack_params(params, 1, 2, 2)
    mu = np.exp(linear_predictor(a, b, g, codes))
    expected = (
        poisson.logcdf(1, mu[0, 0])
        + poisson.logpmf(30, mu[0, 1])
        + poisson.logpmf(12, mu[1, 0])
        + poisson.logcdf(25, mu[1, 1])
    )
    got = censored_log_likelihood(raw, censored, min_detect, params, codes)
    assert got == pytest.approx(expected, rel=1e-10)
