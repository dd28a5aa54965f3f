"""
Left-censoring utilities and the imputation (E) step.

A cell is censored when its recorded value is at or below the detection
limit of its category. Its true value is only known to lie in
``0, 1, ..., floor(min_detect)``; between optimization rounds it is replaced
by the conditional mean of the fitted Poisson distribution restricted to
that range.

Functions
---------
censored_mask
    Boolean mask of censored cells.
truncated_poisson_mean
    E[Y | Y <= floor(bound)] for Poisson Y.
e_step
    Impute every censored cell under the current fit.
relative_change
    Normalized squared change between two data matrices.
"""
from __future__ import annotations

import numpy as np
from scipy.special import gammaln, logsumexp
from scipy.stats import poisson

from .likelihood import linear_predictor

# Support points kept when the CDF ratio underflows (mu far above the bound)
_TAIL_WINDOW = 256


def censored_mask(data: np.ndarray, min_detect: np.ndarray) -> np.ndarray:
    """Mask of cells at or below their category's detection limit.

    Missing (NaN) cells are never censored.
    """
    data = np.asarray(data, dtype=float)
    with np.errstate(invalid="ignore"):
        return ~np.isnan(data) & (data <= np.asarray(min_detect, dtype=float)[np.newaxis, :])


def _tail_mean(mu: np.ndarray, k: np.ndarray) -> np.ndarray:
    # E[Y | Y <= k] from the top of the support, in log space
    lo = np.maximum(k - _TAIL_WINDOW + 1, 0)
    offsets = np.arange(_TAIL_WINDOW)
    support = lo[:, None] + offsets[None, :]
    log_mu = np.log(np.clip(mu, np.finfo(float).tiny, np.finfo(float).max))[:, None]
    logw = support * log_mu - gammaln(support + 1.0)
    logw = np.where(support <= k[:, None], logw, -np.inf)
    w = np.exp(logw - logsumexp(logw, axis=1, keepdims=True))
    return np.sum(w * support, axis=1)


def truncated_poisson_mean(mu: np.ndarray, bound: np.ndarray) -> np.ndarray:
    """Conditional mean of a Poisson variable given it is at most ``bound``.

    Uses ``E[Y | Y <= k] = mu * P(Y <= k - 1) / P(Y <= k)`` with
    ``k = floor(bound)``, falling back to a log-space sum over the top of the
    support where the CDF ratio underflows.

    Parameters
    ----------
    mu : np.ndarray
        Poisson means.
    bound : np.ndarray
        Upper bounds (detection limits), broadcastable to ``mu``.

    Returns
    -------
    np.ndarray
        Conditional means. Zero where ``bound < 1``; strictly below ``bound``
        elsewhere.

    Examples
    --------
    >>> truncated_poisson_mean(np.array([2.0]), np.array([0.5]))
    array([0.])
    """
    mu = np.asarray(mu, dtype=float)
    bound = np.broadcast_to(np.asarray(bound, dtype=float), mu.shape)
    k = np.floor(bound)

    out = np.zeros(mu.shape, dtype=float)
    pos = k >= 1
    if not np.any(pos):
        return out

    mu_p, k_p = mu[pos], k[pos]
    with np.errstate(divide="ignore", invalid="ignore"):
        log_ratio = poisson.logcdf(k_p - 1, mu_p) - poisson.logcdf(k_p, mu_p)
        mean = mu_p * np.exp(log_ratio)

    bad = ~np.isfinite(mean)
    if np.any(bad):
        mean[bad] = _tail_mean(mu_p[bad], k_p[bad].astype(np.int64))

    # Conditional mean lies strictly below the bound
    ceiling = np.nextafter(bound[pos], 0.0)
    out[pos] = np.clip(mean, 0.0, ceiling)
    return out


def e_step(
    alpha: np.ndarray,
    beta: np.ndarray,
    gamma: np.ndarray,
    data: np.ndarray,
    min_detect: np.ndarray,
    event_codes: np.ndarray,
    censored: np.ndarray,
) -> np.ndarray:
    """Impute censored cells by their conditional expectation.

    Parameters
    ----------
    alpha : np.ndarray
        Intercepts, shape (n_events, n_categories).
    beta : np.ndarray
        Sensitivities, shape (n_categories,).
    gamma : np.ndarray
        Latent indices, shape (n_obs,).
    data : np.ndarray
        Current data matrix, shape (n_obs, n_categories).
    min_detect : np.ndarray
        Detection limit per category.
    event_codes : np.ndarray
        Integer event code per observation.
    censored : np.ndarray of bool
        Censoring mask computed from the recorded data.

    Returns
    -------
    np.ndarray
        New data matrix. Censored cells hold E[Y | Y <= floor(min_detect_j)]
        under the fitted means; all other cells are copied unchanged.
    """
    new = np.array(data, dtype=float, copy=True)
    if not np.any(censored):
        return new

    eta = linear_predictor(alpha, beta, gamma, event_codes)
    with np.errstate(over="ignore"):
        mu = np.exp(eta)
    bound = np.broadcast_to(np.asarray(min_detect, dtype=float)[np.newaxis, :], new.shape)
    new[censored] = truncated_poisson_mean(mu[censored], bound[censored])
    return new


def relative_change(new: np.ndarray, old: np.ndarray) -> float:
    """Sum of squared differences divided by the sum of squares of ``old``.

    NaN entries are excluded from both sums.
    """
    num = float(np.nansum((np.asarray(new) - np.asarray(old)) ** 2))
    den = float(np.nansum(np.asarray(old) ** 2))
    if den == 0.0:
        return 0.0 if num == 0.0 else np.inf
    return num / den
