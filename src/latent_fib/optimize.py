"""
Conjugate gradient ascent with backtracking line search.

The optimizer maximizes a smooth objective given callables for the
objective and its gradient. Search directions are unit-normalized
gradients combined with the previous step through a Polak-Ribiere style
coefficient, and the conjugacy is reset at the start of every cycle.

Classes
-------
LineSearchStatus
    Outcome of a line search.
LineSearchResult
    Step length, point and objective value returned by a line search.
CGResult
    Container for the result of a conjugate gradient run.
LatentFitError
    Raised when the objective or gradient becomes non-finite.

Functions
---------
backtracking_line_search
    Shrink a trial step until the sufficient-ascent test holds.
conjugate_gradient_ascent
    Climb the objective to a local maximum with periodic restarts.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

logger = logging.getLogger(__name__)

# Below this step length 1/(2t) is no longer representable
MIN_STEP = 0.5 / np.finfo(float).max


class LatentFitError(RuntimeError):
    """Raised when fitting hits a non-finite objective or gradient."""
    pass


class LineSearchStatus(Enum):
    ACCEPTED = "accepted"
    NO_IMPROVING_STEP = "no_improving_step"
    NUMERICAL_LIMIT = "numerical_limit"


@dataclass
class LineSearchResult:
    """Outcome of :func:`backtracking_line_search`.

    Attributes
    ----------
    status : LineSearchStatus
        ACCEPTED when the sufficient-ascent test held.
    step : float
        Accepted step multiplier (last tried multiplier otherwise).
    point : np.ndarray
        Candidate point ``x + step * direction``; the starting point when
        no step was accepted.
    value : float
        Objective value at ``point``.
    n_evaluations : int
        Number of objective evaluations spent.
    """
    status: LineSearchStatus
    step: float
    point: np.ndarray
    value: float
    n_evaluations: int = 0

    @property
    def accepted(self) -> bool:
        return self.status is LineSearchStatus.ACCEPTED


@dataclass
class CGResult:
    """Container for a conjugate gradient ascent run.

    Attributes
    ----------
    x : np.ndarray
        Final committed point.
    value : float
        Objective value at ``x``.
    converged : bool
        Whether a convergence criterion was met before ``max_cycles``.
    n_cycles : int
        Number of restart cycles run.
    reason : str
        Which criterion ended the run.
    history : list of float
        Committed objective value at the end of each cycle.
    """
    x: np.ndarray
    value: float
    converged: bool
    n_cycles: int
    reason: str
    history: List[float] = field(default_factory=list)


def backtracking_line_search(
    objective: Callable[[np.ndarray], float],
    x: np.ndarray,
    f: float,
    direction: np.ndarray,
    gradient_dir: np.ndarray,
    step: float = 1.0,
    shrink: float = 0.8,
    max_backtracks: Optional[int] = None,
) -> LineSearchResult:
    """Find a step length along ``direction`` passing a sufficient-ascent test.

    A multiplier ``t`` is accepted once::

        objective(x + t * s) >= f + t * (s . dir) + 1 / (2 t) * ||t * s||^2

    Otherwise ``t`` is multiplied by ``shrink`` and the test repeated.
    Trial points with a non-finite objective are rejected.

    Parameters
    ----------
    objective : callable
        Objective to maximize, ``objective(x) -> float``.
    x : np.ndarray
        Current point.
    f : float
        Objective value at ``x``.
    direction : np.ndarray
        Search direction ``s`` (possibly conjugate).
    gradient_dir : np.ndarray
        Normalized gradient ``dir`` used to build ``direction``.
    step : float, default 1.0
        Starting multiplier.
    shrink : float, default 0.8
        Factor applied to the multiplier after each failed test.
    max_backtracks : int, optional
        Cap on the number of shrinks. None means shrink until the step
        length reaches the floating point limit.

    Returns
    -------
    LineSearchResult
        ACCEPTED with the candidate point, or NO_IMPROVING_STEP /
        NUMERICAL_LIMIT with the starting point unchanged.
    """
    t = float(step)
    slope = float(direction @ gradient_dir)
    sq_norm = float(direction @ direction)
    n_eval = 0
    n_back = 0

    while True:
        if t < MIN_STEP:
            return LineSearchResult(LineSearchStatus.NUMERICAL_LIMIT, t, x, f, n_eval)

        candidate = x + t * direction
        value = objective(candidate)
        n_eval += 1

        # (1 / (2t)) * ||t s||^2 == (t / 2) * ||s||^2
        if np.isfinite(value) and value >= f + t * slope + 0.5 * t * sq_norm:
            return LineSearchResult(LineSearchStatus.ACCEPTED, t, candidate, float(value), n_eval)

        if max_backtracks is not None and n_back >= max_backtracks:
            return LineSearchResult(LineSearchStatus.NO_IMPROVING_STEP, t, x, f, n_eval)

        t *= shrink
        n_back += 1


def _require_finite(value, what: str) -> None:
    if not np.all(np.isfinite(value)):
        raise LatentFitError(
            f"{what} is not finite; parameters drifted into a degenerate region."
        )


def conjugate_gradient_ascent(
    objective: Callable[[np.ndarray], float],
    gradient: Callable[[np.ndarray], np.ndarray],
    x0: np.ndarray,
    tol: float = 1e-5,
    max_cycles: int = 1000,
    shrink: float = 0.8,
    max_backtracks: Optional[int] = None,
    verbose: bool = False,
) -> CGResult:
    """Maximize ``objective`` by conjugate gradient ascent with restarts.

    Each cycle starts from the raw gradient direction and then builds
    conjugate steps with::

        conj = (||dir_new||^2 + dir_new . dir_old) / ||dir_old||^2
        s_new = dir_new + conj * s_old

    A proposed point is committed only when it improves on the committed
    objective, so committed values never decrease. A cycle ends when the
    proposed objective stops improving, after as many iterations as there
    are parameters, or when the line search finds no acceptable step.

    The run is converged when the line search reports NO_IMPROVING_STEP or
    NUMERICAL_LIMIT, when the gradient vanishes, or when a whole cycle
    improves the objective by less than ``tol`` relative to its start.

    Parameters
    ----------
    objective : callable
        ``objective(x) -> float`` to maximize.
    gradient : callable
        ``gradient(x) -> np.ndarray``, same shape as ``x``.
    x0 : np.ndarray
        Starting point.
    tol : float, default 1e-5
        Relative improvement per cycle below which the run stops.
    max_cycles : int, default 1000
        Maximum number of restart cycles.
    shrink : float, default 0.8
        Line search shrink factor; successful steps are grown by
        ``1 / shrink**2`` for the next iteration.
    max_backtracks : int, optional
        Passed to :func:`backtracking_line_search`.
    verbose : bool, default False
        Log the objective after each cycle at INFO instead of DEBUG.

    Returns
    -------
    CGResult
        Final point, objective and convergence information.

    Raises
    ------
    LatentFitError
        If the objective or gradient at a committed point is not finite.

    Examples
    --------
    >>> f = lambda x: -np.sum((x - 3.0) ** 2)
    >>> g = lambda x: -2.0 * (x - 3.0)
    >>> res = conjugate_gradient_ascent(f, g, np.zeros(2))
    """
    level = logging.INFO if verbose else logging.DEBUG

    x = np.array(x0, dtype=float, copy=True)
    f_current = float(objective(x))
    _require_finite(f_current, "Log-likelihood at the starting point")

    n_params = x.size
    converged = False
    reason = "max_cycles"
    history: List[float] = []
    n_cycles = 0

    while not converged and n_cycles < max_cycles:
        n_cycles += 1

        # Restart conjugacy from the committed point
        f_outer = f_current
        f_old = -np.inf
        f_new = f_current
        t = 1.0
        dir_old = None
        s_old = None
        i = 0

        while f_new > f_old and i < n_params:
            i += 1

            grad = np.asarray(gradient(x), dtype=float)
            _require_finite(grad, "Score")
            norm = float(np.sqrt(np.sum(grad ** 2)))
            if norm == 0.0:
                converged = True
                reason = "zero_gradient"
                break
            dir_new = grad / norm

            if dir_old is None:
                s_new = dir_new
            else:
                conj = (np.sum(dir_new ** 2) + np.sum(dir_new * dir_old)) / np.sum(dir_old ** 2)
                s_new = dir_new + conj * s_old

            ls = backtracking_line_search(
                objective, x, f_current, s_new, dir_new,
                step=t, shrink=shrink, max_backtracks=max_backtracks,
            )
            if not ls.accepted:
                converged = True
                reason = ls.status.value
                break

            # Let the next iteration try a larger step
            t = ls.step / shrink / shrink

            dir_old = dir_new
            s_old = s_new

            f_proposed = ls.value
            if f_proposed > f_current:
                x = ls.point
                f_current = f_proposed
            f_old = f_new
            f_new = f_proposed

        history.append(f_current)
        logger.log(level, f"Likelihood objective: {f_current}")

        if not converged and (f_current - f_outer) <= tol * abs(f_outer):
            converged = True
            reason = "tolerance"

    if not converged:
        logger.warning(f"Conjugate gradient ascent stopped after {n_cycles} cycles without converging")

    return CGResult(
        x=x,
        value=f_current,
        converged=converged,
        n_cycles=n_cycles,
        reason=reason,
        history=history,
    )
