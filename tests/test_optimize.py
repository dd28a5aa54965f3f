"""Tests for the backtracking line search and conjugate gradient ascent."""
import logging

import numpy as np
import pytest

from latent_fib import optimize
from latent_fib.optimize import (
    MIN_STEP,
    LatentFitError,
    LineSearchResult,
    LineSearchStatus,
    backtracking_line_search,
    conjugate_gradient_ascent,
)


def _quadratic(center, scale=1000.0):
    center = np.asarray(center, dtype=float)

    def f(x):
        return -scale * float(np.sum((x - center) ** 2))

    def g(x):
        return -2.0 * scale * (x - center)

    return f, g


class TestLineSearch:

    def test_accepts_full_step(self):
        f = lambda x: -float((x[0] - 10.0) ** 2)
        x = np.zeros(1)
        d = np.ones(1)
        res = backtracking_line_search(f, x, f(x), d, d)

        assert res.status is LineSearchStatus.ACCEPTED
        assert res.accepted
        assert res.step == 1.0
        np.testing.assert_array_equal(res.point, [1.0])
        assert res.value == pytest.approx(-81.0)
        assert res.n_evaluations == 1

    def test_shrinks_until_sufficient_ascent(self):
        # t = 1 overshoots the peak at 0.5; t = 0.8 passes
        f = lambda x: -100.0 * float((x[0] - 0.5) ** 2)
        x = np.zeros(1)
        d = np.ones(1)
        res = backtracking_line_search(f, x, f(x), d, d, shrink=0.8)

        assert res.accepted
        assert res.step == pytest.approx(0.8)
        assert res.n_evaluations == 2

    def test_cap_on_backtracks(self):
        f = lambda x: 0.0
        x = np.zeros(2)
        d = np.array([1.0, 0.0])
        res = backtracking_line_search(f, x, 0.0, d, d, max_backtracks=5)

        assert res.status is LineSearchStatus.NO_IMPROVING_STEP
        assert not res.accepted
        assert res.n_evaluations == 6
        assert res.point is x
        assert res.value == 0.0

    def test_numerical_limit_on_flat_objective(self):
        f = lambda x: 0.0
        x = np.zeros(1)
        d = np.ones(1)
        res = backtracking_line_search(f, x, 0.0, d, d, step=1e-300, shrink=0.5)

        assert res.status is LineSearchStatus.NUMERICAL_LIMIT
        assert res.step < MIN_STEP
        assert res.point is x

    def test_non_finite_trial_is_rejected(self):
        def f(x):
            return -np.inf if x[0] > 0.6 else 2.0 * float(x[0])

        x = np.zeros(1)
        d = np.ones(1)
        res = backtracking_line_search(f, x, 0.0, d, d, step=1.0, shrink=0.5)
        # t = 1 lands on -inf, t = 0.5 passes
        assert res.accepted
        assert np.isfinite(res.value)
        assert res.point[0] <= 0.6


class TestConjugateGradient:

    def test_poisson_mean_recovers_log_mean(self):
        rng = np.random.default_rng(0)
        y = rng.poisson(5.0, size=200).astype(float)
        total, n = y.sum(), y.size

        def f(a):
            return float(total * a[0] - n * np.exp(a[0]))

        def g(a):
            return np.array([total - n * np.exp(a[0])])

        res = conjugate_gradient_ascent(f, g, np.zeros(1))

        assert res.converged
        assert res.x[0] == pytest.approx(np.log(y.mean()), abs=0.01)
        assert res.value == pytest.approx(f(res.x))

    def test_history_never_decreases(self):
        f, g = _quadratic([1.0, -2.0, 0.5])
        res = conjugate_gradient_ascent(f, g, np.zeros(3))

        hist = np.asarray(res.history)
        assert hist.size == res.n_cycles
        assert np.all(np.diff(hist) >= 0.0)
        assert res.value >= f(np.zeros(3))
        assert res.value == hist[-1]

    def test_committed_values_never_decrease_on_ill_conditioned_quadratic(self):
        # Conjugate steps overshoot along the stiff axis
        center = np.array([1.0, -2.0, 0.5])
        weights = np.array([400.0, 1.0, 20.0])

        def f(x):
            return -float(np.sum(weights * (x - center) ** 2)) - 10.0

        # The gradient is only evaluated at committed points
        committed = []

        def g(x):
            committed.append(f(x))
            return -2.0 * weights * (x - center)

        res = conjugate_gradient_ascent(f, g, np.zeros(3))

        values = np.asarray(committed)
        assert values.size > res.n_cycles
        assert np.all(np.diff(values) >= 0.0)
        assert res.value >= values[-1]
        assert res.value > f(np.zeros(3))

    def test_rejected_proposal_keeps_committed_point(self, monkeypatch):
        f, g = _quadratic([1.0, 1.0], scale=1.0)
        gradient_points = []
        directions = []

        def g_recording(x):
            gradient_points.append(np.array(x, copy=True))
            return g(x)

        # Scripted line search: improve, then land on a worse point, then give up
        def scripted(objective, x, f_x, direction, gradient_dir, step=1.0, shrink=0.8,
                     max_backtracks=None):
            directions.append(np.array(direction, copy=True))
            n = len(directions)
            if n == 1:
                return LineSearchResult(LineSearchStatus.ACCEPTED, 0.5,
                                        x + 0.5 * direction, f_x + 1.0, 1)
            if n == 2:
                return LineSearchResult(LineSearchStatus.ACCEPTED, 1.0,
                                        x + 10.0 * direction, f_x - 0.5, 1)
            return LineSearchResult(LineSearchStatus.NUMERICAL_LIMIT, 0.0, x, f_x, 1)

        monkeypatch.setattr(optimize, "backtracking_line_search", scripted)
        x0 = np.zeros(2)
        res = conjugate_gradient_ascent(f, g_recording, x0)

        first = x0 + 0.5 * directions[0]
        assert len(directions) == 3
        # The worse proposal is dropped and the next cycle restarts from the first commit
        np.testing.assert_allclose(res.x, first)
        np.testing.assert_allclose(gradient_points[2], first)
        assert res.value == pytest.approx(f(x0) + 1.0)
        assert res.history == pytest.approx([f(x0) + 1.0, f(x0) + 1.0])
        assert res.reason == "numerical_limit"
        # Second step was conjugate; the restart went back to the unit gradient
        assert np.linalg.norm(directions[1]) == pytest.approx(3.0)
        assert np.linalg.norm(directions[2]) == pytest.approx(1.0)

    def test_starting_at_optimum_stops_on_zero_gradient(self):
        f, g = _quadratic([2.0, 3.0])
        res = conjugate_gradient_ascent(f, g, np.array([2.0, 3.0]))

        assert res.converged
        assert res.reason == "zero_gradient"
        np.testing.assert_array_equal(res.x, [2.0, 3.0])

    def test_does_not_mutate_start(self):
        f, g = _quadratic([1.0, 1.0])
        x0 = np.zeros(2)
        conjugate_gradient_ascent(f, g, x0)
        np.testing.assert_array_equal(x0, 0.0)

    def test_cycle_cap(self):
        f, g = _quadratic([5.0, -5.0], scale=1.0)
        res = conjugate_gradient_ascent(f, g, np.zeros(2), tol=0.0, max_cycles=1)
        assert res.n_cycles == 1

    def test_non_finite_start_raises(self):
        with pytest.raises(LatentFitError):
            conjugate_gradient_ascent(lambda x: np.nan, lambda x: x, np.zeros(2))

    def test_non_finite_gradient_raises(self):
        with pytest.raises(LatentFitError, match="Score"):
            conjugate_gradient_ascent(
                lambda x: 0.0, lambda x: np.full_like(x, np.inf), np.zeros(2)
            )

    def test_verbose_logs_objective_at_info(self, caplog):
        f, g = _quadratic([1.0])
        with caplog.at_level(logging.INFO, logger="latent_fib.optimize"):
            conjugate_gradient_ascent(f, g, np.zeros(1), verbose=True)
        assert any("Likelihood objective" in r.message for r in caplog.records)

    def test_quiet_by_default(self, caplog):
        f, g = _quadratic([1.0])
        with caplog.at_level(logging.INFO, logger="latent_fib.optimize"):
            conjugate_gradient_ascent(f, g, np.zeros(1))
        assert not any("Likelihood objective" in r.message for r in caplog.records)
