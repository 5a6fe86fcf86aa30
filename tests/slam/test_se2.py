"""Unit tests for gnc.slam.se2 module.

Tests SE(2) operations used by the pose graph factors, including the
analytic Jacobians of the relative pose.
"""

import numpy as np
import pytest

from gnc.estimators.factor_graph import numerical_jacobians
from gnc.slam import (
    se2_between_jacobians,
    se2_compose,
    se2_inverse,
    se2_relative,
    wrap_angle,
)


class TestWrapAngle:
    """Test suite for wrap_angle function."""

    def test_wrap_zero(self):
        assert np.isclose(wrap_angle(0.0), 0.0, atol=1e-10)

    def test_wrap_large_positive(self):
        """3π wraps to ±π."""
        assert np.isclose(abs(wrap_angle(3 * np.pi)), np.pi, atol=1e-10)

    def test_wrap_slightly_over_pi(self):
        result = wrap_angle(np.pi + 0.1)
        assert result < 0
        assert np.isclose(result, -np.pi + 0.1, atol=1e-10)

    def test_wrap_stays_in_range(self):
        angles = np.array([0, np.pi, -np.pi, 2 * np.pi, -2 * np.pi, 3 * np.pi / 2, 17.0])
        wrapped = np.array([wrap_angle(a) for a in angles])
        assert np.all(wrapped >= -np.pi)
        assert np.all(wrapped <= np.pi)


class TestCompositionAndInverse:
    """Test suite for se2_compose, se2_inverse and se2_relative."""

    def test_identity_composition(self):
        p = np.array([1.0, 2.0, np.pi / 4])
        assert np.allclose(se2_compose(np.zeros(3), p), p)
        assert np.allclose(se2_compose(p, np.zeros(3)), p)

    def test_rotation_then_translation(self):
        result = se2_compose(np.array([0.0, 0.0, np.pi / 2]), np.array([1.0, 0.0, 0.0]))
        assert np.allclose(result, [0.0, 1.0, np.pi / 2], atol=1e-10)

    def test_inverse_cancels(self):
        p = np.array([1.0, 2.0, 0.7])
        assert np.allclose(se2_compose(p, se2_inverse(p)), np.zeros(3), atol=1e-10)
        assert np.allclose(se2_compose(se2_inverse(p), p), np.zeros(3), atol=1e-10)

    def test_relative_then_compose_recovers_pose(self):
        a = np.array([1.0, -2.0, 2.5])
        b = np.array([-3.0, 0.5, -2.9])
        rel = se2_relative(a, b)
        recovered = se2_compose(a, rel)
        assert np.allclose(recovered[:2], b[:2], atol=1e-10)
        assert np.isclose(wrap_angle(recovered[2] - b[2]), 0.0, atol=1e-10)

    def test_relative_same_pose_is_identity(self):
        p = np.array([1.0, 2.0, np.pi / 4])
        assert np.allclose(se2_relative(p, p), np.zeros(3), atol=1e-10)

    def test_rejects_bad_shape(self):
        with pytest.raises(ValueError, match="shape"):
            se2_compose(np.zeros(2), np.zeros(3))
        with pytest.raises(ValueError, match="shape"):
            se2_inverse(np.zeros(4))


class TestBetweenJacobians:
    """Analytic Jacobians match finite differences away from the ±π seam."""

    @pytest.mark.parametrize(
        "a, b",
        [
            (np.array([0.0, 0.0, 0.0]), np.array([1.0, 0.0, 0.0])),
            (np.array([1.0, -2.0, 0.3]), np.array([2.5, 1.0, 1.1])),
            (np.array([-1.0, 4.0, -1.2]), np.array([0.5, 3.0, -0.4])),
        ],
    )
    def test_against_finite_differences(self, a, b):
        H_from, H_to = se2_between_jacobians(a, b)
        J_num = numerical_jacobians(lambda x: se2_relative(x[0], x[1]), [a, b])

        np.testing.assert_allclose(H_from, J_num[0], atol=1e-5)
        np.testing.assert_allclose(H_to, J_num[1], atol=1e-5)
