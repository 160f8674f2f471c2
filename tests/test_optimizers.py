"""Tests for the CG, IRLS and IGD optimizer steps.

Hand-computed single-row scenarios pin the exact arithmetic of each
step; statsmodels ``Logit`` and scikit-learn ``LogisticRegression``
serve as reference oracles for full fits.
"""

from __future__ import annotations

import math
import warnings

import numpy as np
import pytest
import statsmodels.api as sm
from scipy.special import expit
from sklearn.linear_model import LogisticRegression

from logit_aggregates import (
    ConjugateGradientAggregate,
    IncrementalGradientAggregate,
    IRLSAggregate,
    PackedState,
    Status,
    fit_logistic,
)
from logit_aggregates._aggregates.cg import CG_LAYOUT

# ------------------------------------------------------------------ #
# Shared fixtures
# ------------------------------------------------------------------ #

_SEED = 42


@pytest.fixture()
def rng():
    return np.random.default_rng(_SEED)


@pytest.fixture()
def logistic_data(rng):
    """Binary y with an intercept column and 2 features."""
    n = 400
    X = np.column_stack([np.ones(n), rng.standard_normal((n, 2))])
    beta = np.array([-0.5, 1.0, -0.8])
    y = (rng.random(n) < expit(X @ beta)).astype(int)
    return X, y


@pytest.fixture()
def sm_fit(logistic_data):
    X, y = logistic_data
    return sm.Logit(y, X).fit(disp=0)


def _scan(aggregate, X, y, previous=None):
    state = None
    for label, row in zip(y, X):
        state = aggregate.transition(state, label, row, previous)
    return state


# ------------------------------------------------------------------ #
# Conjugate gradient
# ------------------------------------------------------------------ #


class TestConjugateGradient:
    def test_single_row_accumulation(self):
        aggregate = ConjugateGradientAggregate()
        state = aggregate.transition(None, True, [1.0, 2.0])
        np.testing.assert_allclose(state.view("grad_new"), [0.5, 1.0])
        np.testing.assert_allclose(
            state.view("X_transp_AX"), 0.25 * np.array([[1.0, 2.0], [2.0, 4.0]])
        )
        assert state["log_likelihood"] == pytest.approx(-math.log(2.0))
        assert state.num_rows == 1

    def test_single_row_first_step(self):
        aggregate = ConjugateGradientAggregate()
        state = aggregate.finalize(aggregate.transition(None, True, [1.0, 2.0]))
        np.testing.assert_allclose(state.view("dir"), [0.5, 1.0])
        np.testing.assert_allclose(state.view("grad"), [0.5, 1.0])
        # alpha = (g·d) / (dᵀ H d) = 1.25 / 1.5625 = 0.8
        np.testing.assert_allclose(state.view("coef"), [0.4, 0.8])
        assert state["iteration"] == 1
        assert state["beta"] == 0.0

    def test_hestenes_stiefel_step(self, logistic_data):
        X, y = logistic_data
        aggregate = ConjugateGradientAggregate()
        previous = aggregate.finalize(_scan(aggregate, X, y))
        state = _scan(aggregate, X, y, previous)

        g_new = state.view("grad_new").copy()
        H = state.view("X_transp_AX").copy()
        g = previous.view("grad")
        d = previous.view("dir")
        delta = g_new - g
        beta = (g_new @ delta) / (d @ delta)
        if not (g_new @ delta) / (g @ g) > np.finfo(float).smallest_subnormal:
            beta = 0.0
        d_new = g_new - beta * d
        alpha = (g_new @ d_new) / (d_new @ H @ d_new)
        expected_coef = previous.view("coef") + alpha * d_new

        out = aggregate.finalize(state)
        assert out["beta"] == pytest.approx(beta, rel=1e-12)
        np.testing.assert_allclose(out.view("dir"), d_new, rtol=1e-12)
        np.testing.assert_allclose(out.view("coef"), expected_coef, rtol=1e-12)
        assert out["iteration"] == 2

    def test_powell_restart(self):
        state = PackedState.allocate(CG_LAYOUT, 2)
        state["iteration"] = 1
        state["grad"] = [1.0, 0.0]
        state["dir"] = [1.0, 0.0]
        state["grad_new"] = [0.5, 0.0]  # g·Δg = -0.25 < 0
        state["X_transp_AX"] = np.eye(2)
        state.num_rows = 1

        out = ConjugateGradientAggregate().finalize(state)
        assert out["beta"] == 0.0
        np.testing.assert_allclose(out.view("dir"), [0.5, 0.0])
        np.testing.assert_allclose(out.view("coef"), [0.5, 0.0])

    def test_zero_curvature_leaves_coefficients(self):
        state = PackedState.allocate(CG_LAYOUT, 2)
        state["grad_new"] = [1.0, 1.0]
        state.num_rows = 1
        out = ConjugateGradientAggregate().finalize(state)
        np.testing.assert_array_equal(out.view("coef"), [0.0, 0.0])
        assert out["iteration"] == 1

    def test_matches_statsmodels(self, logistic_data, sm_fit):
        X, y = logistic_data
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            result = fit_logistic(X, y, method="cg", max_iter=200, tolerance=1e-12)
        np.testing.assert_allclose(result.coef, sm_fit.params, atol=1e-4)
        np.testing.assert_allclose(result.std_err, sm_fit.bse, rtol=1e-3)


# ------------------------------------------------------------------ #
# IRLS
# ------------------------------------------------------------------ #


class TestIRLS:
    def test_first_newton_step(self):
        aggregate = IRLSAggregate()
        state = _scan(aggregate, [[1.0, 0.0]] * 4, [1, 1, 1, 0])
        # At c = 0: a = 1/4, aᵢzᵢ = yᵢ / 2
        np.testing.assert_allclose(state.view("X_transp_Az"), [1.0, 0.0])
        np.testing.assert_allclose(state.view("X_transp_AX"), [[1.0, 0.0], [0.0, 0.0]])

        out = aggregate.finalize(state)
        np.testing.assert_allclose(out.view("coef"), [1.0, 0.0])
        np.testing.assert_allclose(out.view("inverse_diag"), [1.0, 0.0])
        assert out["condition_no"] == np.inf

    def test_degenerate_feature_converges_to_mle(self):
        X = np.array([[1.0, 0.0]] * 4)
        y = np.array([1, 1, 1, 0])
        result = fit_logistic(X, y, method="irls", max_iter=50, tolerance=1e-12)
        np.testing.assert_allclose(result.coef, [math.log(3.0), 0.0], atol=1e-8)
        assert result.log_likelihood == pytest.approx(
            3 * math.log(0.75) + math.log(0.25), rel=1e-10
        )
        assert result.condition_no > 1e12
        assert result.status is Status.COMPLETED
        assert result.context.converged is True
        assert result.context.iterations < 10

    def test_matches_statsmodels(self, logistic_data, sm_fit):
        X, y = logistic_data
        result = fit_logistic(X, y, method="irls", tolerance=1e-12)
        np.testing.assert_allclose(result.coef, sm_fit.params, atol=1e-6)
        np.testing.assert_allclose(result.std_err, sm_fit.bse, rtol=1e-4)
        np.testing.assert_allclose(result.z_stats, sm_fit.tvalues, rtol=1e-4)
        np.testing.assert_allclose(result.p_values, sm_fit.pvalues, rtol=1e-2, atol=1e-12)
        assert result.log_likelihood == pytest.approx(sm_fit.llf, rel=1e-8)

    def test_matches_sklearn(self, logistic_data):
        X, y = logistic_data
        model = LogisticRegression(C=np.inf, fit_intercept=False, tol=1e-10, max_iter=1000)
        model.fit(X, y)
        result = fit_logistic(X, y, method="irls", tolerance=1e-12)
        np.testing.assert_allclose(result.coef, model.coef_.ravel(), atol=1e-4)

    def test_odds_ratios(self, logistic_data):
        X, y = logistic_data
        result = fit_logistic(X, y, method="irls")
        np.testing.assert_allclose(result.odds_ratios, np.exp(result.coef))

    def test_result_reuses_stored_diagnostics(self, logistic_data):
        X, y = logistic_data
        aggregate = IRLSAggregate()
        state = aggregate.finalize(_scan(aggregate, X, y))
        state["inverse_diag"] = [4.0, 9.0, 16.0]
        result = aggregate.result(state)
        np.testing.assert_allclose(result.std_err, [2.0, 3.0, 4.0])


# ------------------------------------------------------------------ #
# IGD
# ------------------------------------------------------------------ #


class TestIncrementalGradient:
    def test_first_row_starts_from_initial_coef(self):
        aggregate = IncrementalGradientAggregate()
        state = aggregate.transition(None, 1, [1.0, 2.0])
        xc = 0.3
        expected = 0.1 + 0.01 * expit(-xc) * np.array([1.0, 2.0])
        np.testing.assert_allclose(state.view("coef"), expected)
        assert state["stepsize"] == 0.01
        a = expit(xc) * expit(-xc)
        np.testing.assert_allclose(
            state.view("X_transp_AX"), a * np.array([[1.0, 2.0], [2.0, 4.0]])
        )
        assert state["log_likelihood"] == pytest.approx(-math.log1p(math.exp(-xc)))

    def test_custom_parameters(self):
        aggregate = IncrementalGradientAggregate(stepsize=0.5, initial_coef=0.0)
        state = aggregate.transition(None, 0, [2.0])
        # xc = 0, step = 0.5 · σ(0) · (−1) · 2
        np.testing.assert_allclose(state.view("coef"), [-0.5])
        assert state["stepsize"] == 0.5

    def test_hessian_and_likelihood_use_previous_coef(self):
        aggregate = IncrementalGradientAggregate()
        previous = aggregate.finalize(aggregate.transition(None, 1, [1.0, -1.0]))
        c_prev = previous.view("coef").copy()

        rows = [np.array([1.0, 2.0]), np.array([0.5, -1.0])]
        labels = [1, 0]
        state = _scan(aggregate, rows, labels, previous)

        xc = [r @ c_prev for r in rows]
        expected_ll = -(math.log1p(math.exp(-xc[0])) + math.log1p(math.exp(xc[1])))
        assert state["log_likelihood"] == pytest.approx(expected_ll, rel=1e-12)
        expected_H = sum(
            expit(v) * expit(-v) * np.outer(r, r) for v, r in zip(xc, rows)
        )
        np.testing.assert_allclose(state.view("X_transp_AX"), expected_H, rtol=1e-12)
        np.testing.assert_array_equal(previous.view("coef"), c_prev)

    def test_merge_is_row_weighted_average(self, rng):
        aggregate = IncrementalGradientAggregate()
        a = _scan(aggregate, rng.standard_normal((1, 2)), [1])
        b = _scan(aggregate, rng.standard_normal((3, 2)), [0, 1, 1])
        expected = (1 * a.view("coef") + 3 * b.view("coef")) / 4
        merged = aggregate.merge(a, b)
        np.testing.assert_allclose(merged.view("coef"), expected, rtol=1e-12)
        assert merged.num_rows == 4

    def test_finalize_is_pass_through(self, rng):
        aggregate = IncrementalGradientAggregate()
        state = _scan(aggregate, rng.standard_normal((5, 2)), [1, 0, 1, 1, 0])
        before = state.buffer.copy()
        out = aggregate.finalize(state)
        np.testing.assert_array_equal(out.buffer, before)

    def test_approaches_mle(self, logistic_data, sm_fit):
        X, y = logistic_data
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            first = fit_logistic(X, y, method="igd", max_iter=1, stepsize=0.002)
            result = fit_logistic(
                X, y, method="igd", max_iter=60, tolerance=1e-9, stepsize=0.002
            )
        err_first = np.abs(first.coef - sm_fit.params).max()
        err_last = np.abs(result.coef - sm_fit.params).max()
        assert err_last < err_first
        assert err_last < 0.1
        assert result.context.log_likelihoods[-1] > result.context.log_likelihoods[0]
