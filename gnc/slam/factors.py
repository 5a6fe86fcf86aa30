"""Factor graph factors for 2D pose graphs.

Factors connect poses in a graph and encode constraints from:
    - Odometry: consecutive pose relationships from dead-reckoning
    - Loop closures: non-consecutive pose relationships (the usual source
      of gross outliers)
    - Priors: absolute pose or point measurements

Every constructor accepts a NoiseModel or a raw information matrix; a
robust noise model (e.g. ``RobustNoiseModel(GemanMcClure(), ...)``) turns
the factor into an M-estimator term for plain IRLS, and is stripped back
to its Gaussian model by GncOptimizer.
"""

from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from ..estimators.factor_graph import Factor, FactorGraph
from ..estimators.noise_models import NoiseModel
from .se2 import se2_between_jacobians, se2_relative, wrap_angle

NoiseArg = Union[NoiseModel, np.ndarray, None]


def create_between_factor(
    pose_id_from: int,
    pose_id_to: int,
    relative_pose: np.ndarray,
    noise_model: NoiseArg = None,
) -> Factor:
    """
    Create a factor constraining the relative pose between two poses.

    Residual:
        r = relative_measured - (pose_from⁻¹ ⊕ pose_to),  yaw wrapped to [-π, π]

    Args:
        pose_id_from: Variable ID of the starting pose.
        pose_id_to: Variable ID of the ending pose.
        relative_pose: Measured relative pose [Δx, Δy, Δyaw], shape (3,),
            expressed in the frame of pose_from.
        noise_model: NoiseModel or information matrix (3, 3). If None,
            uses identity.

    Returns:
        Factor with analytic Jacobians.

    Examples:
        >>> cov = np.diag([0.01, 0.04, 0.001])
        >>> factor = create_between_factor(0, 1, np.array([1.0, 0.5, np.pi/6]),
        ...                                np.linalg.inv(cov))
    """
    relative_pose = np.asarray(relative_pose, dtype=np.float64)
    if relative_pose.shape != (3,):
        raise ValueError(f"relative_pose must have shape (3,), got {relative_pose.shape}")
    if noise_model is None:
        noise_model = np.eye(3)

    def residual_func(x_vars):
        residual = relative_pose - se2_relative(x_vars[0], x_vars[1])
        residual[2] = wrap_angle(residual[2])
        return residual

    def jacobian_func(x_vars):
        H_from, H_to = se2_between_jacobians(x_vars[0], x_vars[1])
        return [-H_from, -H_to]

    return Factor([pose_id_from, pose_id_to], residual_func, jacobian_func, noise_model)


create_odometry_factor = create_between_factor
create_loop_closure_factor = create_between_factor


def create_prior_factor(
    pose_id: int,
    prior_pose: np.ndarray,
    noise_model: NoiseArg = None,
) -> Factor:
    """
    Create prior factor anchoring a pose to a known value.

    Residual:
        r = prior_pose - pose,  yaw wrapped to [-π, π]

    Args:
        pose_id: Variable ID of the pose to constrain.
        prior_pose: Prior pose value [x, y, yaw], shape (3,).
        noise_model: NoiseModel or information matrix (3, 3). If None,
            uses identity.

    Notes:
        At least one prior is needed to remove the gauge freedom of a pose
        graph (the whole trajectory sliding and rotating).
    """
    prior_pose = np.asarray(prior_pose, dtype=np.float64)
    if prior_pose.shape != (3,):
        raise ValueError(f"prior_pose must have shape (3,), got {prior_pose.shape}")
    if noise_model is None:
        noise_model = np.eye(3)

    def residual_func(x_vars):
        residual = prior_pose - x_vars[0]
        residual[2] = wrap_angle(residual[2])
        return residual

    def jacobian_func(x_vars):
        return [-np.eye(3)]

    return Factor([pose_id], residual_func, jacobian_func, noise_model)


def create_vector_prior_factor(
    variable_id,
    prior: np.ndarray,
    noise_model: NoiseArg = None,
) -> Factor:
    """
    Create prior factor on a vector-valued variable (e.g. a 2D point).

    Residual:
        r = prior - x

    Args:
        variable_id: Variable ID.
        prior: Measured value, shape (d,).
        noise_model: NoiseModel or information matrix (d, d). If None,
            uses identity.
    """
    prior = np.atleast_1d(np.asarray(prior, dtype=np.float64))
    if prior.ndim != 1:
        raise ValueError(f"prior must be a vector, got shape {prior.shape}")
    dim = prior.shape[0]
    if noise_model is None:
        noise_model = np.eye(dim)

    def residual_func(x_vars):
        return prior - x_vars[0]

    def jacobian_func(x_vars):
        return [-np.eye(dim)]

    return Factor([variable_id], residual_func, jacobian_func, noise_model)


def create_pose_graph(
    poses: Sequence[np.ndarray],
    odometry_measurements: List[Tuple[int, int, np.ndarray]],
    loop_closures: Optional[List[Tuple[int, int, np.ndarray]]] = None,
    prior_pose: Optional[np.ndarray] = None,
    odometry_noise: NoiseArg = None,
    loop_noise: NoiseArg = None,
    prior_noise: NoiseArg = None,
) -> Tuple[FactorGraph, Dict[int, np.ndarray]]:
    """
    Create a complete pose graph from trajectory data.

    Slot layout: slot 0 is the prior on pose 0, followed by the odometry
    factors in the given order, followed by the loop closures.

    Args:
        poses: Initial pose estimates [x, y, yaw], one per timestep.
        odometry_measurements: (from_id, to_id, relative_pose) tuples.
        loop_closures: Optional (from_id, to_id, relative_pose) tuples.
        prior_pose: Prior for the first pose. If None, the origin.
        odometry_noise: Noise for all odometry factors. If None, identity.
        loop_noise: Noise for all loop closures. If None, identity.
        prior_noise: Noise for the prior. If None, strong prior (1e6 * I).

    Returns:
        Tuple (graph, initial_values) ready for optimization.

    Examples:
        >>> poses = [np.array([0, 0, 0]), np.array([1, 0, 0]), np.array([2, 0, 0])]
        >>> odom = [(0, 1, np.array([1, 0, 0])), (1, 2, np.array([1, 0, 0]))]
        >>> graph, values = create_pose_graph(poses, odom)
        >>> len(graph)
        3
    """
    values = {i: np.array(pose, dtype=np.float64) for i, pose in enumerate(poses)}

    if prior_pose is None:
        prior_pose = np.zeros(3)
    if prior_noise is None:
        prior_noise = np.diag([1e6, 1e6, 1e6])

    graph = FactorGraph()
    graph.add_factor(create_prior_factor(0, prior_pose, prior_noise))

    for from_id, to_id, rel_pose in odometry_measurements:
        graph.add_factor(create_odometry_factor(from_id, to_id, rel_pose, odometry_noise))

    for from_id, to_id, rel_pose in loop_closures or []:
        graph.add_factor(create_loop_closure_factor(from_id, to_id, rel_pose, loop_noise))

    return graph, values
