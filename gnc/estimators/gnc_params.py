"""
Parameters for Graduated Non-Convexity (GNC) optimization.

GNC wraps an inner nonlinear least squares solver in an outer loop that
reweights every factor. The parameters below control the outer loop; the
inner solver is configured through ``base_optimizer_params`` and its type
selects which solver runs (Gauss-Newton or Levenberg-Marquardt).

References:
    Yang, Antonante, Tzoumas, Carlone, "Graduated Non-Convexity for Robust
    Spatial Perception: From Non-Minimal Solvers to Global Outlier
    Rejection", IEEE RA-L, 2020.
"""

import copy
import warnings
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List

import numpy as np

from .optimizers import GaussNewtonParams, NonlinearOptimizerParams


class GncLossType(Enum):
    """Robust loss approximated by the GNC continuation."""

    GM = "geman_mcclure"
    TLS = "truncated_least_squares"


class GncVerbosity(Enum):
    """How much the GNC loop reports through logging."""

    SILENT = 0
    SUMMARY = 1
    VALUES = 2


@dataclass
class GncParams:
    """
    Outer-loop configuration of the GNC optimizer.

    Attributes:
        base_optimizer_params: Inner solver parameters, forwarded unchanged
            to every inner solve.
        loss_type: Robust loss to approximate (only GM has a continuation
            policy).
        max_iterations: Maximum number of outer (reweighting) iterations.
        barc_sq: Inlier threshold. A factor whose error is below this value
            is considered an inlier.
        mu_step: Factor by which mu shrinks at every outer iteration (> 1).
        verbosity: Logging level of the outer loop.
        known_inliers: Factor slot indices pinned to weight 1. Kept sorted
            and unique.

    Examples:
        >>> params = GncParams()
        >>> params.set_mu_step(2.0)
        >>> params.set_known_inliers([3, 0, 3])
        >>> params.known_inliers
        [0, 3]
    """

    base_optimizer_params: NonlinearOptimizerParams = field(default_factory=GaussNewtonParams)
    loss_type: GncLossType = GncLossType.GM
    max_iterations: int = 100
    barc_sq: float = 1.0
    mu_step: float = 1.4
    verbosity: GncVerbosity = GncVerbosity.SILENT
    known_inliers: List[int] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not isinstance(self.base_optimizer_params, NonlinearOptimizerParams):
            raise ValueError(
                "base_optimizer_params must be NonlinearOptimizerParams, "
                f"got {type(self.base_optimizer_params).__name__}"
            )
        self._validate_loss_type(self.loss_type)
        self._validate_max_iterations(self.max_iterations)
        self._validate_barc_sq(self.barc_sq)
        self._validate_mu_step(self.mu_step)
        self._validate_verbosity(self.verbosity)
        self.known_inliers = self._normalize_inliers([], self.known_inliers)

    @staticmethod
    def _validate_loss_type(loss_type) -> None:
        if not isinstance(loss_type, GncLossType):
            raise ValueError(f"loss_type must be a GncLossType, got {loss_type!r}")

    @staticmethod
    def _validate_max_iterations(max_iterations) -> None:
        if (
            isinstance(max_iterations, bool)
            or not isinstance(max_iterations, (int, np.integer))
            or max_iterations < 1
        ):
            raise ValueError(f"max_iterations must be a positive integer, got {max_iterations}")

    @staticmethod
    def _validate_barc_sq(barc_sq) -> None:
        if not np.isfinite(barc_sq) or barc_sq <= 0:
            raise ValueError(f"inlier threshold must be positive and finite, got {barc_sq}")

    @staticmethod
    def _validate_mu_step(mu_step) -> None:
        if not np.isfinite(mu_step) or mu_step <= 1.0:
            raise ValueError(f"mu_step must be greater than 1, got {mu_step}")

    @staticmethod
    def _validate_verbosity(verbosity) -> None:
        if not isinstance(verbosity, GncVerbosity):
            raise ValueError(f"verbosity must be a GncVerbosity, got {verbosity!r}")

    @staticmethod
    def _normalize_inliers(current: Iterable[int], new: Iterable[int]) -> List[int]:
        merged = set(current)
        for index in new:
            if isinstance(index, bool) or not isinstance(index, (int, np.integer)) or index < 0:
                raise ValueError(f"known inlier indices must be non-negative integers, got {index!r}")
            merged.add(int(index))
        return sorted(merged)

    def set_loss_type(self, loss_type: GncLossType) -> None:
        self._validate_loss_type(loss_type)
        self.loss_type = loss_type

    def set_max_iterations(self, max_iterations: int) -> None:
        """
        Set the outer iteration budget.

        Warns:
            UserWarning: Always; GNC accuracy depends on letting mu reach 1.
        """
        self._validate_max_iterations(max_iterations)
        warnings.warn(
            "changing the maximum number of GNC iterations may lead to less "
            "accurate solutions and is not recommended",
            UserWarning,
            stacklevel=2,
        )
        self.max_iterations = int(max_iterations)

    def set_inlier_threshold(self, barc_sq: float) -> None:
        self._validate_barc_sq(barc_sq)
        self.barc_sq = float(barc_sq)

    def set_mu_step(self, mu_step: float) -> None:
        self._validate_mu_step(mu_step)
        self.mu_step = float(mu_step)

    def set_verbosity(self, verbosity: GncVerbosity) -> None:
        self._validate_verbosity(verbosity)
        self.verbosity = verbosity

    def set_known_inliers(self, known_inliers: Iterable[int]) -> None:
        """Add slot indices to the pinned inliers (existing ones are kept)."""
        self.known_inliers = self._normalize_inliers(self.known_inliers, known_inliers)

    def copy(self) -> "GncParams":
        return copy.deepcopy(self)

    def equals(self, other: "GncParams", tol: float = 1e-9) -> bool:
        """Field-wise comparison with a tolerance on the real-valued fields."""
        if not isinstance(other, GncParams):
            return False
        return (
            self.base_optimizer_params.equals(other.base_optimizer_params, tol)
            and self.loss_type == other.loss_type
            and self.max_iterations == other.max_iterations
            and abs(self.barc_sq - other.barc_sq) <= tol
            and abs(self.mu_step - other.mu_step) <= tol
            and self.verbosity == other.verbosity
            and self.known_inliers == other.known_inliers
        )

    def summary(self) -> str:
        lines = [
            "GncParams:",
            f"  loss type:        {self.loss_type.name}",
            f"  max iterations:   {self.max_iterations}",
            f"  inlier threshold: {self.barc_sq}",
            f"  mu step:          {self.mu_step}",
            f"  verbosity:        {self.verbosity.name}",
            f"  known inliers:    {self.known_inliers}",
            f"  inner optimizer:  {type(self.base_optimizer_params).__name__}",
        ]
        return "\n".join(lines)
