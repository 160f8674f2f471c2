"""Tests for the eigen pseudo-inverse, condition number and sandwich product."""

from __future__ import annotations

import numpy as np
import pytest

from logit_aggregates._linalg import condition_number, sandwich, symmetric_pinv


@pytest.fixture()
def rng():
    return np.random.default_rng(42)


class TestSymmetricPinv:
    def test_matches_inverse_for_full_rank(self, rng):
        B = rng.standard_normal((4, 4))
        H = B @ B.T + np.eye(4)
        pinv, cond = symmetric_pinv(H)
        np.testing.assert_allclose(pinv, np.linalg.inv(H), rtol=1e-10, atol=1e-12)
        np.testing.assert_allclose(cond, np.linalg.cond(H), rtol=1e-8)

    def test_identity(self):
        pinv, cond = symmetric_pinv(np.eye(3))
        np.testing.assert_allclose(pinv, np.eye(3))
        assert cond == pytest.approx(1.0)

    def test_singular_diagonal(self):
        H = np.diag([2.0, 0.0, 0.5])
        pinv, cond = symmetric_pinv(H)
        np.testing.assert_allclose(pinv, np.diag([0.5, 0.0, 2.0]), atol=1e-15)
        assert cond == np.inf

    def test_all_zero_matrix(self):
        pinv, cond = symmetric_pinv(np.zeros((2, 2)))
        np.testing.assert_array_equal(pinv, np.zeros((2, 2)))
        assert cond == np.inf

    def test_reads_lower_triangle_only(self, rng):
        B = rng.standard_normal((3, 3))
        H = B @ B.T + np.eye(3)
        lower = np.tril(H)
        np.testing.assert_allclose(
            symmetric_pinv(lower)[0], symmetric_pinv(H)[0], rtol=1e-12
        )

    def test_empty_matrix(self):
        pinv, cond = symmetric_pinv(np.zeros((0, 0)))
        assert pinv.shape == (0, 0)
        assert np.isnan(cond)

    def test_rejects_non_square(self):
        with pytest.raises(ValueError, match="square"):
            symmetric_pinv(np.zeros((2, 3)))

    def test_rejects_non_finite(self):
        H = np.eye(2)
        H[1, 0] = np.nan
        with pytest.raises(ValueError):
            symmetric_pinv(H)


class TestConditionNumber:
    def test_ratio(self):
        assert condition_number(np.array([0.5, 1.0, 4.0])) == pytest.approx(8.0)

    def test_negative_smallest_is_clamped(self):
        assert condition_number(np.array([-1e-18, 3.0])) == np.inf

    def test_non_positive_largest(self):
        assert condition_number(np.array([0.0, 0.0])) == np.inf


class TestSandwich:
    def test_meat_equal_to_hessian_gives_bread(self, rng):
        B = rng.standard_normal((3, 3))
        H = B @ B.T + np.eye(3)
        bread, _ = symmetric_pinv(H)
        np.testing.assert_allclose(sandwich(bread, H), bread, rtol=1e-9, atol=1e-12)

    def test_identity_meat(self):
        bread = np.diag([2.0, 3.0])
        np.testing.assert_array_equal(sandwich(bread, np.eye(2)), np.diag([4.0, 9.0]))
