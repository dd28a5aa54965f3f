# tests/conftest.py
import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from latent_fib import LatentConfig, fit_latent, simulate_latent_data


@pytest.fixture(autouse=True)
def fixed_seed():
    """Deterministic numpy global RNG for every test."""
    np.random.seed(1234)
    yield


@pytest.fixture
def small_counts():
    """Three observations, two categories, two events; one censored cell."""
    data = pd.DataFrame({"FC": [12.0, 0.0, 40.0], "HF183": [300.0, 250.0, 900.0]})
    min_detect = pd.Series({"FC": 1.0, "HF183": 225.0})
    event = np.array(["a", "a", "b"])
    specific = np.array([False, True])
    return data, min_detect, event, specific


@pytest.fixture(scope="module")
def simulated():
    return simulate_latent_data(
        n_obs=24,
        n_events=2,
        categories=("FC", "ENT", "HF183"),
        specific=[False, False, True],
        min_detect=[1.0, 1.0, 100.0],
        beta_range=(0.9, 1.1),
        seed=7,
    )


@pytest.fixture(scope="module")
def fitted(simulated):
    data, event, min_detect, specific, _ = simulated
    return fit_latent(
        data, min_detect, event, specific=specific,
        config=LatentConfig(max_rounds=40, max_restarts=50),
    )
