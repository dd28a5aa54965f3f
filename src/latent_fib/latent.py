"""
Latent contamination model fitting for censored indicator counts.

Each observation (a water sample) carries counts for several indicator
categories. The counts are modeled as Poisson with

    log(mu_ij) = alpha_e(i),j + beta_j * gamma_i

where gamma_i is a latent contamination index shared by all categories
of observation i. Counts at or below a category's detection limit are
censored. Parameters are estimated by maximum likelihood using conjugate
gradient ascent, and an EM loop re-imputes the censored cells between
optimization rounds until both the parameters and the imputed data settle.

Classes
-------
LatentConfig
    Convergence schedule and optimizer settings.
LatentFitResult
    Container for fitted model results.

Functions
---------
initial_params
    Neutral starting point for the flat parameter vector.
fit_latent
    Fit the model to a count table.
"""
from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .censoring import e_step, relative_change
from .data import LatentData, prepare_latent_data
from .likelihood import (
    censored_log_likelihood,
    linear_predictor,
    log_likelihood,
    pack_params,
    score,
    unpack_params,
)
from .optimize import LatentFitError, conjugate_gradient_ascent

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LatentConfig:
    """Convergence schedule for :func:`fit_latent`.

    The inner tolerance starts at ``tol_init`` and is multiplied by
    ``tol_decay`` whenever the imputed data stop changing appreciably,
    down to ``tol_floor``. The fit ends once a round at the floor shows
    no appreciable change, or after ``max_rounds`` rounds.
    """

    #: Starting relative tolerance for the conjugate gradient loop.
    tol_init: float = 1e-5
    #: Smallest tolerance; reaching it and settling ends the fit.
    tol_floor: float = float(np.sqrt(np.finfo(float).eps))
    #: Factor applied to the tolerance at each tightening.
    tol_decay: float = 0.5
    #: Maximum number of EM rounds.
    max_rounds: int = 500
    #: Maximum conjugate gradient restart cycles per EM round.
    max_restarts: int = 1000
    #: Line search shrink factor.
    shrink: float = 0.8
    #: Optional cap on line search shrinks per step.
    max_backtracks: Optional[int] = None

    def __post_init__(self):
        if not (0 < self.tol_floor <= self.tol_init):
            raise ValueError("Need 0 < tol_floor <= tol_init.")
        if not (0 < self.tol_decay < 1):
            raise ValueError("tol_decay must be in (0, 1).")
        if not (0 < self.shrink < 1):
            raise ValueError("shrink must be in (0, 1).")
        if self.max_rounds < 1 or self.max_restarts < 1:
            raise ValueError("max_rounds and max_restarts must be at least 1.")
        if self.max_backtracks is not None and self.max_backtracks < 0:
            raise ValueError("max_backtracks must be non-negative.")


@dataclass
class LatentFitResult:
    """Container for a fitted latent contamination model.

    Attributes
    ----------
    data : pd.DataFrame
        Final data, with censored cells replaced by their imputed values.
    min_detect : pd.Series
        Detection limit per category (copied from the input).
    event : np.ndarray
        Event label per observation (copied from the input).
    specific : np.ndarray
        Human-specific flag per category (copied from the input).
    alpha : pd.DataFrame
        Intercepts, one row per event (first-appearance order) and one
        column per category. Zero in specific columns.
    beta : pd.Series
        Sensitivity of each category to the contamination index.
    gamma : pd.Series
        Contamination index of each observation.
    censored : pd.DataFrame
        Boolean mask of censored cells.
    log_likelihood : float
        Complete-data log-likelihood at the final parameters and data.
    observed_log_likelihood : float
        Log-likelihood with censored cells entering through the Poisson CDF.
    converged : bool
        Whether the EM schedule finished before ``max_rounds``.
    n_rounds : int
        Number of EM rounds run.
    tol : float
        Inner tolerance in force at the end.
    history : pd.DataFrame
        One row per round: log_likelihood, change, tol, cg_cycles.
    """
    data: pd.DataFrame
    min_detect: pd.Series
    event: np.ndarray
    specific: np.ndarray
    alpha: pd.DataFrame
    beta: pd.Series
    gamma: pd.Series
    censored: pd.DataFrame
    log_likelihood: float
    observed_log_likelihood: float
    converged: bool
    n_rounds: int
    tol: float
    history: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def params(self) -> np.ndarray:
        """Flat parameter vector ``[alpha (row-major), beta, gamma]``."""
        return pack_params(self.alpha.to_numpy(), self.beta.to_numpy(), self.gamma.to_numpy())

    @property
    def event_codes(self) -> np.ndarray:
        codes, _ = pd.factorize(pd.Series(self.event), sort=False)
        return np.asarray(codes, dtype=int)

    def fitted_means(self) -> pd.DataFrame:
        """Fitted Poisson means exp(alpha[event] + beta * gamma)."""
        eta = linear_predictor(
            self.alpha.to_numpy(), self.beta.to_numpy(), self.gamma.to_numpy(), self.event_codes
        )
        return pd.DataFrame(np.exp(eta), index=self.data.index, columns=self.data.columns)


def initial_params(n_events: int, specific: np.ndarray, n_obs: int) -> np.ndarray:
    """Neutral starting point for the flat parameter vector.

    Intercepts are 1 (0 for specific categories) in every event, and all
    sensitivities and latent indices are 1.
    """
    specific = np.asarray(specific, dtype=bool)
    alpha = np.tile((~specific).astype(float), (n_events, 1))
    beta = np.ones(specific.size)
    gamma = np.ones(n_obs)
    return pack_params(alpha, beta, gamma)


def _run_em(ld: LatentData, config: LatentConfig, verbose: bool):
    level = logging.INFO if verbose else logging.DEBUG
    n, p, d = ld.n_obs, ld.n_categories, ld.n_events

    params = initial_params(d, ld.specific, n)
    work = ld.counts.copy()
    tol = config.tol_init
    check = np.inf
    converged = False
    rows = []

    n_rounds = 0
    while n_rounds < config.max_rounds:
        n_rounds += 1

        def objective(x, _data=work):
            return log_likelihood(_data, x, ld.event_codes, d)

        def gradient(x, _data=work):
            return score(_data, x, ld.event_codes, ld.specific, d)

        cg = conjugate_gradient_ascent(
            objective,
            gradient,
            params,
            tol=tol,
            max_cycles=config.max_restarts,
            shrink=config.shrink,
            max_backtracks=config.max_backtracks,
            verbose=verbose,
        )
        params = cg.x

        alpha, beta, gamma = unpack_params(params, d, p, n)
        data_new = e_step(alpha, beta, gamma, work, ld.min_detect, ld.event_codes, ld.censored)
        if not np.all(np.isfinite(data_new[ld.censored])):
            raise LatentFitError("Imputed values are not finite.")

        check_old = check
        check = relative_change(data_new, work)
        work = data_new

        rows.append({
            "round": n_rounds,
            "log_likelihood": cg.value,
            "change": check,
            "tol": tol,
            "cg_cycles": cg.n_cycles,
        })

        if check_old - check < (abs(check_old) + tol) * tol:
            if tol <= config.tol_floor:
                converged = True
                break
            tol = max(tol * config.tol_decay, config.tol_floor)
            logger.log(level, f"Iterating with tol={tol}")

    return params, work, tol, converged, n_rounds, pd.DataFrame(rows).set_index("round")


def fit_latent(
    data,
    min_detect,
    event: Sequence,
    specific: Optional[Sequence[bool]] = None,
    verbose: bool = False,
    config: Optional[LatentConfig] = None,
) -> LatentFitResult:
    """Fit the latent contamination model by maximum likelihood with EM imputation.

    Alternates two steps until the imputed data stop changing at the
    tightest tolerance:

    1. Maximize the Poisson log-likelihood over (alpha, beta, gamma) by
       conjugate gradient ascent, warm-started from the previous round.
    2. Replace every censored cell by its expected value given that it lies
       at or below the detection limit (see :func:`latent_fib.censoring.e_step`).

    Parameters
    ----------
    data : pd.DataFrame or array-like
        Observed counts, rows are observations and columns are indicator
        categories. NaN marks a missing cell.
    min_detect : pd.Series or array-like
        Minimum detection limit for each category; values at or below it
        are censored.
    event : array-like
        Event label for each row of ``data``.
    specific : array-like of bool, optional
        Flags marking human-specific categories, whose intercepts are fixed
        at zero. Defaults to all False.
    verbose : bool, default False
        Log the log-likelihood after each restart cycle and the tolerance
        after each tightening at INFO level.
    config : LatentConfig, optional
        Convergence schedule. Defaults to ``LatentConfig()``.

    Returns
    -------
    LatentFitResult
        Fitted parameters, imputed data and convergence information.

    Raises
    ------
    ValueError
        If the inputs are malformed.
    LatentFitError
        If the log-likelihood or score becomes non-finite at an accepted point.

    Examples
    --------
    >>> fib = pd.DataFrame({"mei": [...], "FC": [...], "Bac.human": [...]})
    >>> min_detect = pd.Series({"mei": 1, "FC": 1, "Bac.human": 225})
    >>> result = fit_latent(fib, min_detect, event=events,
    ...                     specific=[False, False, True], verbose=True)
    >>> result.alpha
    """
    config = config or LatentConfig()
    ld = prepare_latent_data(data, min_detect, event, specific)
    logger.debug(
        f"Fitting latent model: {ld.n_obs} observations, {ld.n_categories} categories, "
        f"{ld.n_events} events, {int(ld.censored.sum())} censored cells"
    )

    params, work, tol, converged, n_rounds, history = _run_em(ld, config, verbose)

    if not converged:
        warnings.warn(
            f"EM loop did not converge within {config.max_rounds} rounds (tol={tol:.3g}).",
            RuntimeWarning,
        )

    d, p, n = ld.n_events, ld.n_categories, ld.n_obs
    alpha, beta, gamma = unpack_params(params, d, p, n)
    ll = log_likelihood(work, params, ld.event_codes, d)
    obs_ll = censored_log_likelihood(
        ld.counts, ld.censored, ld.min_detect, params, ld.event_codes, d
    )

    columns = pd.Index(ld.category_names)
    return LatentFitResult(
        data=pd.DataFrame(work, index=ld.obs_index, columns=columns),
        min_detect=pd.Series(ld.min_detect, index=columns),
        event=ld.event,
        specific=ld.specific,
        alpha=pd.DataFrame(alpha.copy(), index=pd.Index(ld.event_labels, name="event"), columns=columns),
        beta=pd.Series(beta.copy(), index=columns, name="beta"),
        gamma=pd.Series(gamma.copy(), index=ld.obs_index, name="gamma"),
        censored=pd.DataFrame(ld.censored, index=ld.obs_index, columns=columns),
        log_likelihood=ll,
        observed_log_likelihood=obs_ll,
        converged=converged,
        n_rounds=n_rounds,
        tol=tol,
        history=history,
    )
