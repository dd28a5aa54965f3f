"""
Input containers and validation for the latent contamination model.

The fitting engine works on plain numpy arrays with integer event codes.
This module turns the user-facing inputs (a count table, per-category
detection limits, event labels and human-specific flags) into that form
and rejects malformed inputs before any optimization begins.

Classes
-------
LatentData
    Validated, array-backed view of one dataset.

Functions
---------
prepare_latent_data
    Validate and normalize raw inputs into a :class:`LatentData`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from .censoring import censored_mask


@dataclass
class LatentData:
    """Container for data in the format needed by the fitting engine.

    Attributes
    ----------
    counts : np.ndarray
        Observation matrix of shape (n_obs, n_categories). Missing cells are NaN.
    min_detect : np.ndarray
        Minimum detection limit per category, shape (n_categories,).
    event_codes : np.ndarray
        Integer event code for each observation, shape (n_obs,). Codes follow
        the order of first appearance of each event label.
    event_labels : np.ndarray
        Distinct event labels, indexed by event code.
    specific : np.ndarray
        Boolean flag per category; True means the category has no intercept.
    censored : np.ndarray
        Boolean mask of censored cells, fixed from the recorded counts.
    category_names : list of str
        Column labels of the observation matrix.
    obs_index : pd.Index
        Row labels of the observation matrix.
    event : np.ndarray
        Event labels as supplied, one per observation.
    """
    counts: np.ndarray
    min_detect: np.ndarray
    event_codes: np.ndarray
    event_labels: np.ndarray
    specific: np.ndarray
    censored: np.ndarray
    category_names: list
    obs_index: pd.Index
    event: np.ndarray

    @property
    def n_obs(self) -> int:
        return self.counts.shape[0]

    @property
    def n_categories(self) -> int:
        return self.counts.shape[1]

    @property
    def n_events(self) -> int:
        return len(self.event_labels)

    @property
    def n_params(self) -> int:
        return (self.n_events + 1) * self.n_categories + self.n_obs


def prepare_latent_data(
    data,
    min_detect,
    event: Sequence,
    specific: Optional[Sequence[bool]] = None,
) -> LatentData:
    """Validate and normalize inputs for :func:`latent_fib.fit_latent`.

    Parameters
    ----------
    data : pd.DataFrame or array-like
        Observed counts, one row per observation and one column per
        category. NaN marks a missing (not censored) cell.
    min_detect : pd.Series or array-like
        Minimum detection limit for each category. A Series is aligned
        to the data columns by label and must hold every column label.
    event : array-like
        Event label for each row of ``data``. Any hashable labels work.
    specific : array-like of bool, optional
        One flag per category marking human-specific indicators. Defaults
        to all False.

    Returns
    -------
    LatentData
        Validated data with censoring mask and integer event codes.

    Raises
    ------
    ValueError
        If any input is malformed or dimensions disagree.

    Examples
    --------
    >>> counts = pd.DataFrame({"FC": [12, 0, 40], "HF183": [300, 0, 900]})
    >>> ld = prepare_latent_data(counts, [1, 225], event=[1, 1, 2],
    ...                          specific=[False, True])
    >>> ld.n_events
    2
    """
    if isinstance(data, pd.DataFrame):
        frame = data
    else:
        arr = np.asarray(data, dtype=float)
        if arr.ndim != 2:
            raise ValueError(f"data must be 2-dimensional, got {arr.ndim} dimension(s).")
        frame = pd.DataFrame(arr, columns=[f"V{j + 1}" for j in range(arr.shape[1])])

    n_obs, n_cat = frame.shape
    if n_obs == 0 or n_cat == 0:
        raise ValueError(f"data must have at least one row and one column, got shape {frame.shape}.")

    try:
        counts = frame.to_numpy(dtype=float, copy=True)
    except (TypeError, ValueError) as e:
        raise ValueError(f"data must be numeric: {e}") from e

    observed = ~np.isnan(counts)
    if np.any(np.isinf(counts)):
        raise ValueError("data must not contain infinite values.")
    if np.any(counts[observed] < 0):
        raise ValueError("data must contain non-negative counts.")

    category_names = [str(c) for c in frame.columns]

    # Detection limits, aligned by label when given as a Series
    if isinstance(min_detect, pd.Series):
        missing = [c for c in frame.columns if c not in min_detect.index]
        if missing:
            raise ValueError(f"min_detect missing categories: {missing}")
        min_detect = min_detect.reindex(frame.columns)
    thresholds = np.asarray(min_detect, dtype=float).ravel()
    if thresholds.shape != (n_cat,):
        raise ValueError(
            f"min_detect must have one entry per column ({n_cat}), got {thresholds.size}."
        )
    if not np.all(np.isfinite(thresholds)) or np.any(thresholds < 0):
        raise ValueError("min_detect must be finite and non-negative.")

    event_arr = np.asarray(event)
    if event_arr.ndim != 1 or event_arr.shape[0] != n_obs:
        raise ValueError(
            f"event must have one label per row of data ({n_obs}), got shape {event_arr.shape}."
        )
    codes, labels = pd.factorize(pd.Series(event_arr), sort=False)
    if np.any(codes < 0):
        raise ValueError("event labels must not be missing.")

    if specific is None:
        specific_arr = np.zeros(n_cat, dtype=bool)
    else:
        specific_arr = np.asarray(specific, dtype=bool).ravel()
        if specific_arr.shape != (n_cat,):
            raise ValueError(
                f"specific must have one flag per column ({n_cat}), got {specific_arr.size}."
            )

    return LatentData(
        counts=counts,
        min_detect=thresholds,
        event_codes=np.asarray(codes, dtype=int),
        event_labels=np.asarray(labels),
        specific=specific_arr,
        censored=censored_mask(counts, thresholds),
        category_names=category_names,
        obs_index=frame.index.copy(),
        event=event_arr.copy(),
    )
