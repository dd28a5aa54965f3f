"""
Poisson log-likelihood and score for the latent contamination model.

Model:
    y_ij ~ Poisson(mu_ij)
    log(mu_ij) = alpha_e(i),j + beta_j * gamma_i

where:
    - i indexes observations, j indexes categories (indicator species)
    - e(i) is the event that observation i belongs to
    - alpha_e,j is the intercept of category j in event e (0 for specific categories)
    - beta_j is the sensitivity of category j to the latent index
    - gamma_i is the latent contamination index of observation i

All parameters travel as one flat vector laid out as
``[alpha (event-major, category-minor), beta, gamma]``.

Functions
---------
pack_params, unpack_params
    Convert between the flat parameter vector and its three blocks.
linear_predictor
    Compute eta = alpha[event] + outer(gamma, beta).
log_likelihood
    Complete-data Poisson log-likelihood.
column_log_likelihood
    Per-category contributions to the log-likelihood.
score
    Analytic gradient of the log-likelihood.
censored_log_likelihood
    Observed-data log-likelihood with censored cells entering via the CDF.
"""
from __future__ import annotations

from typing import Optional, Tuple

import numpy as np
from scipy.special import gammaln
from scipy.stats import poisson


def _n_events(event_codes: np.ndarray, n_events: Optional[int]) -> int:
    if n_events is not None:
        return int(n_events)
    return int(np.max(event_codes)) + 1


def pack_params(alpha: np.ndarray, beta: np.ndarray, gamma: np.ndarray) -> np.ndarray:
    """Flatten parameter blocks into ``[alpha (row-major), beta, gamma]``."""
    return np.concatenate([
        np.asarray(alpha, dtype=float).ravel(),
        np.asarray(beta, dtype=float).ravel(),
        np.asarray(gamma, dtype=float).ravel(),
    ])


def unpack_params(
    params: np.ndarray,
    n_events: int,
    n_categories: int,
    n_obs: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Split a flat parameter vector into (alpha, beta, gamma).

    Parameters
    ----------
    params : np.ndarray
        Flat vector of length ``n_events * n_categories + n_categories + n_obs``.
    n_events, n_categories, n_obs : int
        Block dimensions.

    Returns
    -------
    alpha : np.ndarray
        Intercepts, shape (n_events, n_categories).
    beta : np.ndarray
        Sensitivities, shape (n_categories,).
    gamma : np.ndarray
        Latent indices, shape (n_obs,).
    """
    n_alpha = n_events * n_categories
    expected = n_alpha + n_categories + n_obs
    if params.shape != (expected,):
        raise ValueError(f"params must have length {expected}, got {params.size}.")
    alpha = params[:n_alpha].reshape(n_events, n_categories)
    beta = params[n_alpha:n_alpha + n_categories]
    gamma = params[n_alpha + n_categories:]
    return alpha, beta, gamma


def linear_predictor(
    alpha: np.ndarray,
    beta: np.ndarray,
    gamma: np.ndarray,
    event_codes: np.ndarray,
) -> np.ndarray:
    """Compute the log-mean matrix, shape (n_obs, n_categories)."""
    return alpha[event_codes, :] + np.outer(gamma, beta)


def _cell_log_likelihood(data: np.ndarray, eta: np.ndarray) -> np.ndarray:
    # Missing cells contribute zero; overflow of exp(eta) gives -inf
    observed = ~np.isnan(data)
    y = np.where(observed, data, 0.0)
    with np.errstate(over="ignore", invalid="ignore"):
        ll = y * eta - np.exp(eta) - gammaln(y + 1.0)
    return np.where(observed, ll, 0.0)


def column_log_likelihood(
    data: np.ndarray,
    params: np.ndarray,
    event_codes: np.ndarray,
    n_events: Optional[int] = None,
) -> np.ndarray:
    """Per-category contributions to :func:`log_likelihood`, shape (n_categories,)."""
    n_obs, n_cat = data.shape
    alpha, beta, gamma = unpack_params(params, _n_events(event_codes, n_events), n_cat, n_obs)
    eta = linear_predictor(alpha, beta, gamma, event_codes)
    return _cell_log_likelihood(data, eta).sum(axis=0)


def log_likelihood(
    data: np.ndarray,
    params: np.ndarray,
    event_codes: np.ndarray,
    n_events: Optional[int] = None,
) -> float:
    """Compute the complete-data Poisson log-likelihood.

    The current contents of ``data`` are taken as ground truth, including
    values imputed by a previous E-step. Non-integer values are handled
    through ``gammaln(y + 1)``.

    Parameters
    ----------
    data : np.ndarray
        Observation matrix, shape (n_obs, n_categories). NaN cells are skipped.
    params : np.ndarray
        Flat parameter vector (see :func:`unpack_params`).
    event_codes : np.ndarray
        Integer event code per observation.
    n_events : int, optional
        Number of events. Inferred from ``event_codes`` if omitted.

    Returns
    -------
    float
        Log-likelihood. ``-inf`` when the mean overflows.
    """
    return float(np.sum(column_log_likelihood(data, params, event_codes, n_events)))


def score(
    data: np.ndarray,
    params: np.ndarray,
    event_codes: np.ndarray,
    specific: Optional[np.ndarray] = None,
    n_events: Optional[int] = None,
) -> np.ndarray:
    """Analytic gradient of :func:`log_likelihood` with respect to ``params``.

    With residuals ``r = y - mu``:

    - d/d alpha_e,j = sum over observations of event e of r_ij
    - d/d beta_j = sum_i r_ij * gamma_i
    - d/d gamma_i = sum_j r_ij * beta_j

    Intercept components of specific categories are identically zero, which
    keeps those intercepts at their starting value of zero.

    Parameters
    ----------
    data : np.ndarray
        Observation matrix, shape (n_obs, n_categories).
    params : np.ndarray
        Flat parameter vector.
    event_codes : np.ndarray
        Integer event code per observation.
    specific : np.ndarray of bool, optional
        Human-specific flag per category.
    n_events : int, optional
        Number of events. Inferred from ``event_codes`` if omitted.

    Returns
    -------
    np.ndarray
        Gradient vector with the same layout as ``params``.
    """
    n_obs, n_cat = data.shape
    d = _n_events(event_codes, n_events)
    alpha, beta, gamma = unpack_params(params, d, n_cat, n_obs)

    eta = linear_predictor(alpha, beta, gamma, event_codes)
    observed = ~np.isnan(data)
    with np.errstate(over="ignore", invalid="ignore"):
        resid = np.where(observed, np.where(observed, data, 0.0) - np.exp(eta), 0.0)

    grad_alpha = np.zeros((d, n_cat))
    np.add.at(grad_alpha, event_codes, resid)
    if specific is not None:
        grad_alpha[:, np.asarray(specific, dtype=bool)] = 0.0

    grad_beta = resid.T @ gamma
    grad_gamma = resid @ beta

    return pack_params(grad_alpha, grad_beta, grad_gamma)


def censored_log_likelihood(
    raw_data: np.ndarray,
    censored: np.ndarray,
    min_detect: np.ndarray,
    params: np.ndarray,
    event_codes: np.ndarray,
    n_events: Optional[int] = None,
) -> float:
    """Observed-data log-likelihood that treats censored cells as intervals.

    Observed cells contribute the Poisson log-pmf; censored cells contribute
    ``log P(Y <= floor(min_detect_j))``.

    Parameters
    ----------
    raw_data : np.ndarray
        Observation matrix as recorded (before imputation).
    censored : np.ndarray of bool
        Censoring mask, same shape as ``raw_data``.
    min_detect : np.ndarray
        Detection limit per category.
    params : np.ndarray
        Flat parameter vector.
    event_codes : np.ndarray
        Integer event code per observation.
    n_events : int, optional
        Number of events.

    Returns
    -------
    float
        Observed-data log-likelihood.
    """
    n_obs, n_cat = raw_data.shape
    alpha, beta, gamma = unpack_params(params, _n_events(event_codes, n_events), n_cat, n_obs)
    eta = linear_predictor(alpha, beta, gamma, event_codes)

    ll = _cell_log_likelihood(np.where(censored, np.nan, raw_data), eta)
    bound = np.broadcast_to(np.floor(min_detect), raw_data.shape)
    with np.errstate(over="ignore"):
        mu = np.exp(eta)
    ll_cens = poisson.logcdf(bound[censored], mu[censored])
    return float(np.sum(ll) + np.sum(ll_cens))
