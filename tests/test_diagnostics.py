"""Tests for model diagnostics."""
import numpy as np
import pytest

from latent_fib.diagnostics import (
    category_summary,
    censored_fraction,
    pearson_residuals,
    poisson_overdispersion_test,
)


def test_overdispersion_ratio():
    y = np.array([10, 20, 5, 15, 8])
    mu = np.array([12, 18, 7, 14, 9])
    expected = (4 / 12 + 4 / 18 + 4 / 7 + 1 / 14 + 1 / 9) / 3
    assert poisson_overdispersion_test(y, mu, df_resid=3) == pytest.approx(expected)


def test_overdispersion_skips_missing():
    y = np.array([10.0, np.nan])
    mu = np.array([10.0, 5.0])
    assert poisson_overdispersion_test(y, mu, df_resid=0) == 0.0


def test_pearson_residuals_mask_censored(fitted):
    resid = pearson_residuals(fitted)
    cens = fitted.censored.to_numpy()
    assert resid.shape == fitted.data.shape
    assert np.all(np.isnan(resid.to_numpy()[cens]))
    assert np.all(np.isfinite(resid.to_numpy()[~cens]))


def test_censored_fraction(fitted):
    frac = censored_fraction(fitted)
    assert list(frac.index) == list(fitted.data.columns)
    assert np.all((frac >= 0.0) & (frac <= 1.0))
    assert 0.0 < frac["HF183"] < 1.0


def test_category_summary(fitted):
    summary = category_summary(fitted)
    assert list(summary.index) == list(fitted.data.columns)
    assert list(summary.columns) == [
        "specific", "min_detect", "beta", "censored_fraction", "log_likelihood", "dispersion",
    ]
    assert summary.loc["HF183", "specific"]
    assert summary["log_likelihood"].sum() == pytest.approx(fitted.log_likelihood)
    assert np.all(summary["dispersion"] >= 0.0)
