"""Unit tests for gnc.slam.factors module.

Tests odometry, loop closure and prior factors, and pose graph assembly.
"""

import numpy as np
import pytest

from gnc.estimators import (
    GaussianNoiseModel,
    GaussNewtonOptimizer,
    GemanMcClure,
    RobustNoiseModel,
)
from gnc.estimators.factor_graph import numerical_jacobians
from gnc.slam import (
    create_between_factor,
    create_loop_closure_factor,
    create_odometry_factor,
    create_pose_graph,
    create_prior_factor,
    create_vector_prior_factor,
    se2_compose,
)


class TestBetweenFactor:
    """Test suite for odometry / loop closure factors."""

    def test_aliases(self):
        assert create_odometry_factor is create_between_factor
        assert create_loop_closure_factor is create_between_factor

    def test_zero_error_at_measurement(self):
        p0 = np.array([1.0, 2.0, 0.5])
        rel = np.array([1.0, 0.5, np.pi / 6])
        p1 = se2_compose(p0, rel)

        factor = create_odometry_factor(0, 1, rel)
        assert factor.variable_ids == [0, 1]
        assert np.isclose(factor.error({0: p0, 1: p1}), 0.0, atol=1e-12)

    def test_nonzero_error(self):
        factor = create_odometry_factor(0, 1, np.array([1.0, 0.0, 0.0]))
        values = {0: np.zeros(3), 1: np.array([1.5, 0.0, 0.0])}
        # ½ · 0.5²
        assert np.isclose(factor.error(values), 0.125)

    def test_yaw_residual_is_wrapped(self):
        factor = create_odometry_factor(0, 1, np.array([0.0, 0.0, np.pi - 0.1]))
        values = {0: np.zeros(3), 1: np.array([0.0, 0.0, -np.pi + 0.1])}
        r = factor.residual(values)
        assert np.isclose(r[2], -0.2, atol=1e-10)

    def test_analytic_jacobians(self):
        factor = create_between_factor(0, 1, np.array([1.0, 0.2, 0.3]))
        values = {0: np.array([0.5, -1.0, 0.4]), 1: np.array([1.7, 0.1, 0.9])}
        _, jacobians = factor.linearize(values)
        numeric = numerical_jacobians(factor.residual_func, [values[0], values[1]])

        np.testing.assert_allclose(jacobians[0], numeric[0], atol=1e-5)
        np.testing.assert_allclose(jacobians[1], numeric[1], atol=1e-5)

    def test_accepts_noise_model(self):
        noise = RobustNoiseModel(GemanMcClure(1.0), GaussianNoiseModel.from_sigmas([0.1, 0.1, 0.05]))
        factor = create_loop_closure_factor(3, 0, np.zeros(3), noise)
        assert factor.noise_model is noise

    def test_rejects_bad_measurement(self):
        with pytest.raises(ValueError, match="shape"):
            create_between_factor(0, 1, np.zeros(2))


class TestPriorFactors:
    """Test suite for prior factors."""

    def test_pose_prior(self):
        factor = create_prior_factor(0, np.array([1.0, 2.0, 0.0]), np.diag([1e6, 1e6, 1e6]))
        assert np.isclose(factor.error({0: np.array([1.0, 2.0, 0.0])}), 0.0)
        r, jacobians = factor.linearize({0: np.array([1.0, 2.0, 2 * np.pi])})
        assert np.allclose(r, 0.0, atol=1e-10)
        np.testing.assert_array_equal(jacobians[0], -np.eye(3))

    def test_strong_prior_anchors_pose(self):
        graph, values = create_pose_graph(
            [np.array([0.3, -0.2, 0.1]), np.array([1.4, 0.1, 0.0])],
            [(0, 1, np.array([1.0, 0.0, 0.0]))],
        )
        result = GaussNewtonOptimizer(graph, values).optimize()
        np.testing.assert_allclose(result[0], np.zeros(3), atol=1e-6)
        np.testing.assert_allclose(result[1], [1.0, 0.0, 0.0], atol=1e-6)

    def test_vector_prior(self):
        factor = create_vector_prior_factor("p", np.array([1.0, 0.0]), GaussianNoiseModel.isotropic(2, 0.1))
        assert np.isclose(factor.error({"p": np.zeros(2)}), 50.0)
        _, jacobians = factor.linearize({"p": np.zeros(2)})
        np.testing.assert_array_equal(jacobians[0], -np.eye(2))

    def test_vector_prior_default_noise_is_identity(self):
        factor = create_vector_prior_factor(0, [2.0, 0.0, 0.0])
        np.testing.assert_array_equal(factor.information, np.eye(3))


class TestPoseGraphCreation:
    """Test suite for create_pose_graph."""

    def test_slot_layout(self):
        poses = [np.array([float(i), 0.0, 0.0]) for i in range(4)]
        odom = [(i, i + 1, np.array([1.0, 0.0, 0.0])) for i in range(3)]
        loops = [(3, 0, np.array([-3.0, 0.0, 0.0]))]

        graph, values = create_pose_graph(poses, odom, loops)

        assert len(graph) == 1 + 3 + 1
        assert graph[0].variable_ids == [0]
        assert graph[1].variable_ids == [0, 1]
        assert graph[4].variable_ids == [3, 0]
        assert sorted(values) == [0, 1, 2, 3]
        assert graph.keys() == {0, 1, 2, 3}

    def test_initial_values_are_copies(self):
        poses = [np.zeros(3), np.array([1.0, 0.0, 0.0])]
        _, values = create_pose_graph(poses, [(0, 1, np.array([1.0, 0.0, 0.0]))])
        values[1][0] = 5.0
        assert poses[1][0] == 1.0

    def test_loop_closure_reduces_drift(self):
        """Drifted square trajectory is corrected by a loop closure."""
        steps = [np.array([1.0, 0.0, np.pi / 2])] * 4
        true_poses = [np.zeros(3)]
        for step in steps:
            true_poses.append(se2_compose(true_poses[-1], step))

        drifted = [np.zeros(3)]
        for step in steps:
            drifted.append(se2_compose(drifted[-1], step + np.array([0.05, 0.02, 0.03])))

        odom = [(i, i + 1, steps[i]) for i in range(4)]
        loops = [(4, 0, np.zeros(3))]
        info = np.diag([100.0, 100.0, 400.0])

        graph, values = create_pose_graph(drifted, odom, loops, odometry_noise=info, loop_noise=info)
        optimizer = GaussNewtonOptimizer(graph, values)
        result = optimizer.optimize()

        before = np.linalg.norm(drifted[4][:2] - true_poses[4][:2])
        after = np.linalg.norm(result[4][:2] - true_poses[4][:2])
        assert after < before
        assert after < 1e-3
        assert optimizer.error_history[-1] < optimizer.error_history[0]
