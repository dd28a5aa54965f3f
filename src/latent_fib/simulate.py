from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


def simulate_latent_data(
    n_obs: int = 60,
    n_events: int = 3,
    categories: Sequence[str] = ("mei", "modmtec", "FC", "Bac.human", "Lachno.2"),
    specific: Optional[Sequence[bool]] = None,
    min_detect: Optional[Sequence[float]] = None,
    alpha_mean: float = 2.0,
    alpha_sd: float = 0.5,
    beta_range: Tuple[float, float] = (0.5, 1.5),
    gamma_sd: float = 0.5,
    seed: int = 42,
) -> Tuple[pd.DataFrame, np.ndarray, pd.Series, np.ndarray, Dict]:
    """Generate synthetic censored counts from the latent contamination model.

    Parameters
    ----------
    n_obs : int
        Number of observations (rows).
    n_events : int
        Number of events; observations are assigned to events in contiguous
        blocks of near-equal size.
    categories : sequence of str
        Category (column) names.
    specific : sequence of bool, optional
        Human-specific flags. Defaults to the last two categories when there
        are more than two, otherwise none.
    min_detect : sequence of float, optional
        Detection limits. Defaults to 1 for non-specific and 225 for
        specific categories.
    alpha_mean, alpha_sd : float
        Mean and SD of the non-specific intercepts.
    beta_range : tuple of float
        Uniform range for the sensitivities.
    gamma_sd : float
        SD of the latent indices, which are centered at 2.
    seed : int
        Random seed.

    Returns
    -------
    data : pd.DataFrame
        Recorded counts; values at or below the detection limit are set to 0.
    event : np.ndarray
        Event label per observation ("E1", "E2", ...).
    min_detect : pd.Series
        Detection limit per category.
    specific : np.ndarray
        Human-specific flags.
    truth : dict
        Ground-truth ``alpha``, ``beta``, ``gamma``, ``mu`` and uncensored ``counts``.
    """
    rng = np.random.default_rng(seed)
    categories = list(categories)
    n_cat = len(categories)

    if specific is None:
        specific = np.zeros(n_cat, dtype=bool)
        if n_cat > 2:
            specific[-2:] = True
    specific = np.asarray(specific, dtype=bool)

    if min_detect is None:
        min_detect = np.where(specific, 225.0, 1.0)
    min_detect = pd.Series(np.asarray(min_detect, dtype=float), index=categories, name="min_detect")

    event_codes = np.repeat(np.arange(n_events), int(np.ceil(n_obs / n_events)))[:n_obs]
    event = np.array([f"E{c + 1}" for c in event_codes])

    alpha = rng.normal(alpha_mean, alpha_sd, size=(n_events, n_cat))
    alpha[:, specific] = 0.0
    beta = rng.uniform(beta_range[0], beta_range[1], size=n_cat)
    # Specific categories carry their signal through beta * gamma only
    beta[specific] *= 2.5
    gamma = rng.normal(2.0, gamma_sd, size=n_obs)

    mu = np.exp(alpha[event_codes, :] + np.outer(gamma, beta))
    counts = rng.poisson(mu).astype(float)

    recorded = counts.copy()
    recorded[recorded <= min_detect.to_numpy()[np.newaxis, :]] = 0.0

    data = pd.DataFrame(recorded, columns=categories)
    truth = {
        "alpha": alpha,
        "beta": beta,
        "gamma": gamma,
        "mu": mu,
        "counts": counts,
    }
    return data, event, min_detect, specific, truth
