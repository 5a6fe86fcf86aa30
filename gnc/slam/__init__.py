"""SE(2) geometry and pose graph factors.

This is NOT a full SLAM framework. It provides just enough to build 2D
pose graphs whose loop closures may contain gross outliers:
    - SE(2) operations (compose, inverse, relative pose, Jacobians)
    - Factor constructors for odometry, loop closures and priors

The solvers live in gnc/estimators (Gauss-Newton / LM / GNC).

Example usage:
    >>> from gnc.slam import create_pose_graph
    >>> from gnc.estimators import GncOptimizer
    >>> graph, values = create_pose_graph(poses, odometry, loop_closures)
    >>> result = GncOptimizer(graph, values).optimize()
"""

from .factors import (
    create_between_factor,
    create_loop_closure_factor,
    create_odometry_factor,
    create_pose_graph,
    create_prior_factor,
    create_vector_prior_factor,
)
from .se2 import (
    se2_between_jacobians,
    se2_compose,
    se2_inverse,
    se2_relative,
    wrap_angle,
)

__all__ = [
    # SE(2) operations
    "se2_compose",
    "se2_inverse",
    "se2_relative",
    "se2_between_jacobians",
    "wrap_angle",
    # Pose graph factors
    "create_between_factor",
    "create_odometry_factor",
    "create_loop_closure_factor",
    "create_prior_factor",
    "create_vector_prior_factor",
    "create_pose_graph",
]
