"""
latent-fib: Latent variable model for censored fecal indicator counts.

This package estimates a Poisson latent variable model for counts of
several fecal indicator bacteria (FIB) measured on the same water samples.
Each count depends on an event-specific intercept and a per-sample
contamination index scaled by a per-indicator sensitivity. Counts at or
below the assay's detection limit are censored and imputed by an EM loop.

Modules
-------
data
    Input validation and the array-backed data container.
likelihood
    Poisson log-likelihood, score and censored-data likelihood.
censoring
    Censoring mask, truncated Poisson means and the E-step.
optimize
    Backtracking line search and conjugate gradient ascent.
latent
    EM fitting loop, configuration and result container.
io
    Data loading and result export.
simulate
    Synthetic data generation.
diagnostics
    Residuals, dispersion and censoring summaries.
plots
    Contamination index and sensitivity figures.

Example
-------
>>> import latent_fib as lf
>>> data, event, min_detect, specific, truth = lf.simulate_latent_data(seed=1)
>>> result = lf.fit_latent(data, min_detect, event, specific=specific)
>>> result.alpha
"""

__version__ = "0.1.0"

# censoring
from .censoring import (
    censored_mask,
    e_step,
    relative_change,
    truncated_poisson_mean,
)

# data
from .data import (
    LatentData,
    prepare_latent_data,
)

# diagnostics
from .diagnostics import (
    category_summary,
    censored_fraction,
    pearson_residuals,
    poisson_overdispersion_test,
)

# io
from .io import (
    load_fib_table,
    load_min_detect,
    write_fit_result,
)

# latent
from .latent import (
    LatentConfig,
    LatentFitResult,
    fit_latent,
    initial_params,
)

# likelihood
from .likelihood import (
    censored_log_likelihood,
    column_log_likelihood,
    linear_predictor,
    log_likelihood,
    pack_params,
    score,
    unpack_params,
)

# optimize
from .optimize import (
    CGResult,
    LatentFitError,
    LineSearchResult,
    LineSearchStatus,
    backtracking_line_search,
    conjugate_gradient_ascent,
)

# plots
from .plots import (
    contamination_index_plot,
    sensitivity_plot,
)

# simulate
from .simulate import (
    simulate_latent_data,
)

__all__ = [
    # censoring
    "censored_mask",
    "e_step",
    "relative_change",
    "truncated_poisson_mean",
    # data
    "LatentData",
    "prepare_latent_data",
    # diagnostics
    "category_summary",
    "censored_fraction",
    "pearson_residuals",
    "poisson_overdispersion_test",
    # io
    "load_fib_table",
    "load_min_detect",
    "write_fit_result",
    # latent
    "LatentConfig",
    "LatentFitResult",
    "fit_latent",
    "initial_params",
    # likelihood
    "censored_log_likelihood",
    "column_log_likelihood",
    "linear_predictor",
    "log_likelihood",
    "pack_params",
    "score",
    "unpack_params",
    # optimize
    "CGResult",
    "LatentFitError",
    "LineSearchResult",
    "LineSearchStatus",
    "backtracking_line_search",
    "conjugate_gradient_ascent",
    # plots
    "contamination_index_plot",
    "sensitivity_plot",
    # simulate
    "simulate_latent_data",
]
