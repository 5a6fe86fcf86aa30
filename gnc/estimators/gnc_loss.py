"""
Continuation policies of Graduated Non-Convexity.

GNC replaces a non-convex robust loss ρ by a family ρ_μ parameterized by a
continuation parameter μ. For large μ the surrogate is convex; as μ moves
towards its final value the surrogate morphs back into ρ.

Geman-McClure (GM) surrogate, with c̄² the inlier threshold:

    ρ_μ(r) = μ c̄² r² / (μ c̄² + r²)

    μ₀       = 2 r²_max / c̄²
    w(u²)    = (μ c̄² / (u² + μ c̄²))²
    μ_next   = max(1, μ / μ_step)
    converged when |μ - 1| < 1e-9

Truncated least squares (TLS) is declared in GncLossType but has no policy
here; every function raises UnsupportedLossTypeError for it.
"""

from typing import Union

import numpy as np

from .gnc_params import GncLossType

MU_CONVERGENCE_TOL = 1e-9


class UnsupportedLossTypeError(ValueError):
    """Raised when a GNC policy is requested for a loss type without one."""

    def __init__(self, loss_type: GncLossType, policy: str):
        super().__init__(f"{policy}: loss type {loss_type!r} is not supported")
        self.loss_type = loss_type
        self.policy = policy


def initial_mu(loss_type: GncLossType, rmax_sq: float, barc_sq: float) -> float:
    """
    Initial continuation parameter.

    Args:
        loss_type: Robust loss being approximated.
        rmax_sq: Largest factor error at the starting estimate.
        barc_sq: Inlier threshold.

    Returns:
        μ₀ (2 r²_max / c̄² for GM).
    """
    if loss_type is GncLossType.GM:
        return 2.0 * rmax_sq / barc_sq
    raise UnsupportedLossTypeError(loss_type, "initial_mu")


def weight_of(
    loss_type: GncLossType,
    u2: Union[float, np.ndarray],
    mu: float,
    barc_sq: float,
) -> Union[float, np.ndarray]:
    """
    IRLS weight of a factor with error ``u2`` at continuation ``mu``.

    Works element-wise when ``u2`` is an array. A factor with zero error
    at mu = 0 gets weight 1.

    Examples:
        >>> weight_of(GncLossType.GM, 50.0, 1.0, 1.0) == (1.0 / 51.0) ** 2
        True
    """
    if loss_type is GncLossType.GM:
        mu_barc_sq = mu * barc_sq
        denominator = u2 + mu_barc_sq
        if np.ndim(denominator) == 0:
            # Zero error at mu = 0 saturates to weight 1
            return 1.0 if denominator == 0 else (mu_barc_sq / denominator) ** 2
        ratio = np.divide(
            mu_barc_sq, denominator, out=np.ones_like(denominator, dtype=float), where=denominator != 0
        )
        return ratio ** 2
    raise UnsupportedLossTypeError(loss_type, "weight_of")


def next_mu(loss_type: GncLossType, mu: float, mu_step: float) -> float:
    """GM: mu shrinks geometrically and is clamped at 1."""
    if loss_type is GncLossType.GM:
        return max(1.0, mu / mu_step)
    raise UnsupportedLossTypeError(loss_type, "next_mu")


def is_converged(loss_type: GncLossType, mu: float) -> bool:
    if loss_type is GncLossType.GM:
        return abs(mu - 1.0) < MU_CONVERGENCE_TOL
    raise UnsupportedLossTypeError(loss_type, "is_converged")
