"""
Model diagnostics for fitted latent contamination models.

This module provides functions for assessing how well the Poisson latent
model describes the data and how much of each category was censored.

Functions
---------
pearson_residuals
    Pearson residuals of the observed (uncensored) cells.
poisson_overdispersion_test
    Pearson chi-square over residual degrees of freedom.
censored_fraction
    Fraction of censored cells per category.
category_summary
    Per-category table of fitted parameters and fit statistics.
"""
from __future__ import annotations

import numpy as np
import pandas as pd

from .latent import LatentFitResult
from .likelihood import column_log_likelihood


def pearson_residuals(result: LatentFitResult) -> pd.DataFrame:
    """Pearson residuals (y - mu) / sqrt(mu) for observed cells.

    Censored and missing cells are NaN, since their values are imputed
    rather than measured.

    Parameters
    ----------
    result : LatentFitResult
        Fitted model.

    Returns
    -------
    pd.DataFrame
        Residuals with the shape and labels of ``result.data``.
    """
    mu = result.fitted_means()
    resid = (result.data - mu) / np.sqrt(mu.clip(lower=1e-9))
    return resid.mask(result.censored)


def poisson_overdispersion_test(y: np.ndarray, mu: np.ndarray, df_resid: int) -> float:
    """Test for overdispersion relative to Poisson model.

    Computes the Pearson chi-square statistic divided by residual degrees
    of freedom. Under Poisson assumptions, this ratio should be approximately 1.
    Values significantly greater than 1 indicate overdispersion.

    Parameters
    ----------
    y : np.ndarray
        Observed counts.
    mu : np.ndarray
        Fitted mean values.
    df_resid : int
        Residual degrees of freedom (n_obs - n_params).

    Returns
    -------
    float
        Dispersion ratio (Pearson chi-square / df_resid).
        Values > 1 suggest overdispersion.

    Examples
    --------
    >>> y = np.array([10, 20, 5, 15, 8])
    >>> mu = np.array([12, 18, 7, 14, 9])
    >>> ratio = poisson_overdispersion_test(y, mu, df_resid=3)
    """
    y = np.asarray(y, dtype=float)
    mu = np.asarray(mu, dtype=float)
    ok = np.isfinite(y) & np.isfinite(mu)
    pearson = np.sum((y[ok] - mu[ok]) ** 2 / np.clip(mu[ok], 1e-9, None))
    return pearson / max(df_resid, 1)


def censored_fraction(result: LatentFitResult) -> pd.Series:
    """Fraction of censored cells in each category.

    Examples
    --------
    >>> censored_fraction(result)
    mei          0.10
    Bac.human    0.45
    dtype: float64
    """
    return result.censored.mean(axis=0)


def category_summary(result: LatentFitResult) -> pd.DataFrame:
    """Per-category table of fitted parameters and fit statistics.

    Parameters
    ----------
    result : LatentFitResult
        Fitted model.

    Returns
    -------
    pd.DataFrame
        One row per category with columns:
        - specific: human-specific flag
        - min_detect: detection limit
        - beta: fitted sensitivity
        - censored_fraction: share of censored cells
        - log_likelihood: category's contribution to the log-likelihood
        - dispersion: Pearson chi-square / observed cells for the category
    """
    mu = result.fitted_means()
    observed = ~result.censored & result.data.notna()

    dispersion = {}
    for c in result.data.columns:
        mask = observed[c].to_numpy()
        dispersion[c] = poisson_overdispersion_test(
            result.data[c].to_numpy()[mask], mu[c].to_numpy()[mask], int(mask.sum())
        )

    col_ll = column_log_likelihood(
        result.data.to_numpy(dtype=float),
        result.params,
        result.event_codes,
        n_events=result.alpha.shape[0],
    )

    return pd.DataFrame(
        {
            "specific": result.specific,
            "min_detect": result.min_detect.to_numpy(),
            "beta": result.beta.to_numpy(),
            "censored_fraction": censored_fraction(result).to_numpy(),
            "log_likelihood": col_ll,
            "dispersion": pd.Series(dispersion).reindex(result.data.columns).to_numpy(),
        },
        index=result.data.columns,
    )
