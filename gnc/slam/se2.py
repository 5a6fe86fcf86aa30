"""SE(2) operations for 2D pose graphs.

Poses are NumPy arrays [x, y, yaw] of shape (3,). The pose graph factors
in ``gnc.slam.factors`` are built from these operations.

Key functions:
    - wrap_angle: Normalize angle to [-π, π]
    - se2_compose: Compose two poses (p1 ⊕ p2)
    - se2_inverse: Invert a pose (p⁻¹)
    - se2_relative: Relative pose p_from⁻¹ ⊕ p_to
    - se2_between_jacobians: Analytic Jacobians of se2_relative
"""

from typing import Tuple

import numpy as np


def wrap_angle(theta: float) -> float:
    """
    Normalize angle to the range [-π, π].

    Args:
        theta: Angle in radians (can be any real value).

    Returns:
        Normalized angle in [-π, π].

    Examples:
        >>> wrap_angle(0.0)
        0.0
        >>> wrap_angle(np.pi + 0.1)  # Wraps to negative side
        -3.0415926535897927

    Notes:
        Uses θ_wrapped = atan2(sin(θ), cos(θ)), which is continuous
        everywhere except at the ±π seam.
    """
    return np.arctan2(np.sin(theta), np.cos(theta))


def _as_pose(p: np.ndarray, name: str) -> np.ndarray:
    p = np.asarray(p, dtype=np.float64)
    if p.shape != (3,):
        raise ValueError(f"{name} must have shape (3,), got {p.shape}")
    return p


def se2_compose(p1: np.ndarray, p2: np.ndarray) -> np.ndarray:
    """
    Compose two SE(2) poses: p_result = p1 ⊕ p2.

    The composition formula for SE(2):
        x_result = x1 + x2*cos(yaw1) - y2*sin(yaw1)
        y_result = y1 + x2*sin(yaw1) + y2*cos(yaw1)
        yaw_result = yaw1 + yaw2  (wrapped to [-π, π])

    Args:
        p1: First pose [x1, y1, yaw1].
        p2: Second pose [x2, y2, yaw2], expressed in the frame of p1.

    Returns:
        Composed pose as array [x, y, yaw] of shape (3,).

    Raises:
        ValueError: If poses do not have shape (3,).

    Examples:
        >>> p1 = np.array([0, 0, np.pi/2])  # 90° rotation
        >>> p2 = np.array([1, 0, 0])  # 1m forward
        >>> np.allclose(se2_compose(p1, p2), [0, 1, np.pi/2])
        True
    """
    x1, y1, yaw1 = _as_pose(p1, "p1")
    x2, y2, yaw2 = _as_pose(p2, "p2")

    cos_yaw1 = np.cos(yaw1)
    sin_yaw1 = np.sin(yaw1)

    x_result = x1 + x2 * cos_yaw1 - y2 * sin_yaw1
    y_result = y1 + x2 * sin_yaw1 + y2 * cos_yaw1
    yaw_result = wrap_angle(yaw1 + yaw2)

    return np.array([x_result, y_result, yaw_result], dtype=np.float64)


def se2_inverse(p: np.ndarray) -> np.ndarray:
    """
    Compute the inverse of an SE(2) pose, so that p ⊕ p⁻¹ = identity.

    Raises:
        ValueError: If pose does not have shape (3,).
    """
    x, y, yaw = _as_pose(p, "p")

    cos_yaw = np.cos(yaw)
    sin_yaw = np.sin(yaw)

    x_inv = -(x * cos_yaw + y * sin_yaw)
    y_inv = -(-x * sin_yaw + y * cos_yaw)
    yaw_inv = wrap_angle(-yaw)

    return np.array([x_inv, y_inv, yaw_inv], dtype=np.float64)


def se2_relative(p_from: np.ndarray, p_to: np.ndarray) -> np.ndarray:
    """
    Relative pose p_from⁻¹ ⊕ p_to, i.e. p_to expressed in the frame of p_from.

    Examples:
        >>> rel = se2_relative(np.array([0, 0, 0]), np.array([1, 1, np.pi/2]))
        >>> np.allclose(rel, [1, 1, np.pi/2])
        True
    """
    return se2_compose(se2_inverse(p_from), p_to)


def se2_between_jacobians(
    p_from: np.ndarray, p_to: np.ndarray
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Jacobians of h(a, b) = se2_relative(a, b) w.r.t. both poses.

    With h = [Rᵀ(θa)(t_b - t_a), θb - θa] and c = cos θa, s = sin θa:

        ∂h/∂a = [[-c, -s,  h_y],
                 [ s, -c, -h_x],
                 [ 0,  0,   -1]]

        ∂h/∂b = [[ c,  s, 0],
                 [-s,  c, 0],
                 [ 0,  0, 1]]

    Jacobians are taken in the ambient [x, y, yaw] coordinates, matching
    the additive update x ← x + δ of the optimizers.

    Args:
        p_from: Pose a.
        p_to: Pose b.

    Returns:
        Tuple (H_from, H_to), each of shape (3, 3).
    """
    p_from = _as_pose(p_from, "p_from")
    p_to = _as_pose(p_to, "p_to")
    c = np.cos(p_from[2])
    s = np.sin(p_from[2])
    dx, dy = p_to[:2] - p_from[:2]
    h_x = c * dx + s * dy
    h_y = -s * dx + c * dy

    H_from = np.array(
        [[-c, -s, h_y], [s, -c, -h_x], [0.0, 0.0, -1.0]], dtype=np.float64
    )
    H_to = np.array([[c, s, 0.0], [-s, c, 0.0], [0.0, 0.0, 1.0]], dtype=np.float64)
    return H_from, H_to
