"""
Nonlinear least squares optimizers over a factor graph.

Given a FactorGraph and initial Values, the optimizers minimize the total
graph error Σ errorᵢ(X) by repeatedly linearizing every factor and solving
the normal equations.

Implements:
    - Gauss-Newton: (JᵀΛJ) δx = -JᵀΛr,  x ← x + δx
    - Levenberg-Marquardt: (JᵀΛJ + λI) δx = -JᵀΛr with gain-ratio damping
      g = (f(x) - f(x + δx)) / (L(0) - L(δx))
    - IRLS for robust noise models: Λ is replaced by w(‖r‖_Λ) Λ at every
      linearization

Both optimizers copy the initial values and never mutate the caller's
dictionary or graph.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Tuple

import numpy as np

from .factor_graph import FactorGraph, Values, copy_values

logger = logging.getLogger("gnc.optimizers")


@dataclass
class NonlinearOptimizerParams:
    """
    Stopping criteria shared by all inner optimizers.

    Attributes:
        max_iterations: Maximum number of linearize-and-solve iterations.
        relative_error_tol: Stop when (f_prev - f_new) / f_prev falls below this.
        absolute_error_tol: Stop when f_prev - f_new falls below this.
        error_tol: Stop when the total error falls below this.
        verbose: Log the error after every iteration (DEBUG level).
    """

    max_iterations: int = 100
    relative_error_tol: float = 1e-5
    absolute_error_tol: float = 1e-5
    error_tol: float = 0.0
    verbose: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.max_iterations, (int, np.integer)) or self.max_iterations < 1:
            raise ValueError(f"max_iterations must be a positive integer, got {self.max_iterations}")
        for name in ("relative_error_tol", "absolute_error_tol", "error_tol"):
            value = getattr(self, name)
            if not np.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be non-negative, got {value}")

    def equals(self, other: "NonlinearOptimizerParams", tol: float = 1e-9) -> bool:
        if type(self) is not type(other):
            return False
        for name, value in vars(self).items():
            other_value = getattr(other, name)
            if isinstance(value, float):
                if abs(value - other_value) > tol:
                    return False
            elif value != other_value:
                return False
        return True


@dataclass
class GaussNewtonParams(NonlinearOptimizerParams):
    """Parameters for GaussNewtonOptimizer."""


@dataclass
class LevenbergMarquardtParams(NonlinearOptimizerParams):
    """
    Parameters for LevenbergMarquardtOptimizer.

    Attributes:
        initial_lambda: Initial damping λ.
        lambda_upper_bound: Give up once λ exceeds this value.
    """

    initial_lambda: float = 1e-3
    lambda_upper_bound: float = 1e10

    def __post_init__(self) -> None:
        super().__post_init__()
        if not np.isfinite(self.initial_lambda) or self.initial_lambda <= 0:
            raise ValueError(f"initial_lambda must be positive, got {self.initial_lambda}")
        if self.lambda_upper_bound <= self.initial_lambda:
            raise ValueError("lambda_upper_bound must exceed initial_lambda")


class NonlinearOptimizer:
    """
    Base class: owns a graph, a private copy of the values, and the error history.

    Attributes:
        graph: Factor graph being optimized.
        values: Current estimate (a private copy).
        params: Stopping criteria.
        error_history: Total error before the first and after every iteration.
        iterations: Number of iterations performed by the last optimize().
    """

    params_class = NonlinearOptimizerParams

    def __init__(
        self,
        graph: FactorGraph,
        initial_values: Values,
        params: Optional[NonlinearOptimizerParams] = None,
    ):
        missing = graph.keys() - set(initial_values.keys())
        if missing:
            raise ValueError(f"Variables {sorted(missing, key=repr)} not in initial values")
        self.graph = graph
        self.values = copy_values(initial_values)
        self.params = params if params is not None else self.params_class()
        self.error_history: List[float] = []
        self.iterations = 0

        try:
            self._var_ids = sorted(self.values.keys())
        except TypeError:
            # Mixed key types
            self._var_ids = sorted(self.values.keys(), key=repr)
        self._var_indices: Dict[Hashable, Tuple[int, int]] = {}
        current_idx = 0
        for vid in self._var_ids:
            dim = self.values[vid].shape[0]
            self._var_indices[vid] = (current_idx, current_idx + dim)
            current_idx += dim
        self._total_dim = current_idx

    def error(self) -> float:
        """Total graph error at the current values."""
        return self.graph.error(self.values)

    def optimize(self) -> Values:
        raise NotImplementedError

    def _build_linearized_system(self) -> Tuple[np.ndarray, np.ndarray]:
        """
        Build linearized system Hδx = b.

        H = JᵀΛJ (Hessian approximation)
        b = -JᵀΛr (negative gradient)

        Returns:
            Tuple of (H, b) for solving Hδx = b.
        """
        H = np.zeros((self._total_dim, self._total_dim))
        b = np.zeros(self._total_dim)

        for factor in self.graph:
            if factor is None:
                continue
            r, jacobians = factor.linearize(self.values)
            Lambda = factor.noise_model.effective_information(r)

            for i, vid_i in enumerate(factor.variable_ids):
                J_i = jacobians[i]
                start_i, end_i = self._var_indices[vid_i]

                b[start_i:end_i] -= J_i.T @ Lambda @ r

                for j, vid_j in enumerate(factor.variable_ids):
                    J_j = jacobians[j]
                    start_j, end_j = self._var_indices[vid_j]
                    H[start_i:end_i, start_j:end_j] += J_i.T @ Lambda @ J_j

        return H, b

    @staticmethod
    def _solve(H: np.ndarray, b: np.ndarray) -> np.ndarray:
        try:
            return np.linalg.solve(H, b)
        except np.linalg.LinAlgError:
            # Singular system (e.g. unconstrained variable): minimum-norm step
            return np.linalg.lstsq(H, b, rcond=None)[0]

    def _update_variables(self, delta_x: np.ndarray) -> None:
        """
        Update all variables by adding delta.

        Args:
            delta_x: Stacked update vector for all variables.
        """
        for vid in self._var_ids:
            start, end = self._var_indices[vid]
            self.values[vid] = self.values[vid] + delta_x[start:end]

    def _check_convergence(self, current_error: float, new_error: float) -> bool:
        if new_error <= self.params.error_tol:
            return True
        absolute_decrease = current_error - new_error
        relative_decrease = absolute_decrease / current_error if current_error > 0 else 0.0
        if absolute_decrease < 0 and self.params.verbose:
            logger.debug("stopping: error increased from %.6e to %.6e", current_error, new_error)
        return (
            absolute_decrease <= self.params.absolute_error_tol
            or relative_decrease <= self.params.relative_error_tol
        )


class GaussNewtonOptimizer(NonlinearOptimizer):
    """
    Gauss-Newton optimization.

    Solves the linearized system (JᵀΛJ) δx = -JᵀΛr at each iteration
    and updates x ← x + δx.

    Example:
        >>> optimizer = GaussNewtonOptimizer(graph, {0: np.array([5.0, 5.0])})
        >>> result = optimizer.optimize()
    """

    params_class = GaussNewtonParams

    def optimize(self) -> Values:
        """
        Run Gauss-Newton until a stopping criterion is met.

        Returns:
            Copy of the optimized values.
        """
        current_error = self.error()
        self.error_history = [current_error]
        self.iterations = 0

        if current_error <= self.params.error_tol:
            return copy_values(self.values)

        for iteration in range(self.params.max_iterations):
            H, b = self._build_linearized_system()
            delta_x = self._solve(H, b)
            self._update_variables(delta_x)

            new_error = self.error()
            self.error_history.append(new_error)
            self.iterations = iteration + 1
            if self.params.verbose:
                logger.debug("GN iteration %d: error %.6e", self.iterations, new_error)

            if self._check_convergence(current_error, new_error):
                break
            current_error = new_error

        return copy_values(self.values)


class LevenbergMarquardtOptimizer(NonlinearOptimizer):
    """
    Levenberg-Marquardt optimization.

    The damping λ interpolates between gradient descent (large λ) and
    Gauss-Newton (small λ) based on the gain ratio g of actual to predicted
    error reduction.
    """

    params_class = LevenbergMarquardtParams

    def optimize(self) -> Values:
        """
        Run Levenberg-Marquardt until a stopping criterion is met.

        Returns:
            Copy of the optimized values.
        """
        current_error = self.error()
        self.error_history = [current_error]
        self.iterations = 0

        if current_error <= self.params.error_tol:
            return copy_values(self.values)

        lam = self.params.initial_lambda
        nu = 2.0
        identity = np.eye(self._total_dim)

        for iteration in range(self.params.max_iterations):
            H, b = self._build_linearized_system()
            self.iterations = iteration + 1
            accepted = False

            while lam <= self.params.lambda_upper_bound:
                d_lm = self._solve(H + lam * identity, b)

                old_values = copy_values(self.values)
                self._update_variables(d_lm)
                new_error = self.error()

                # L(0) - L(d) = ½ dᵀ(λd + b) since b = -JᵀΛr
                actual_reduction = current_error - new_error
                predicted_reduction = 0.5 * float(d_lm @ (lam * d_lm + b))
                g = actual_reduction / predicted_reduction if predicted_reduction > 0 else 0.0

                if g > 0:
                    lam *= max(1.0 / 3.0, 1.0 - (2.0 * g - 1.0) ** 3)
                    nu = 2.0
                    accepted = True
                    break

                self.values = old_values
                lam *= nu
                nu *= 2.0

            if not accepted:
                if self.params.verbose:
                    logger.debug("LM stopping: lambda exceeded %.1e", self.params.lambda_upper_bound)
                break

            self.error_history.append(new_error)
            if self.params.verbose:
                logger.debug(
                    "LM iteration %d: error %.6e, lambda %.3e", self.iterations, new_error, lam
                )

            if self._check_convergence(current_error, new_error):
                break
            current_error = new_error

        return copy_values(self.values)


def make_optimizer(
    graph: FactorGraph,
    initial_values: Values,
    params: Optional[NonlinearOptimizerParams] = None,
) -> NonlinearOptimizer:
    """
    Build the inner optimizer selected by the params type.

    Args:
        graph: Factor graph to optimize.
        initial_values: Starting point.
        params: GaussNewtonParams or LevenbergMarquardtParams. None means
            Gauss-Newton with default parameters.

    Returns:
        An optimizer ready to ``optimize()``.

    Raises:
        ValueError: If the params type does not name an optimizer.
    """
    if params is None or isinstance(params, GaussNewtonParams):
        return GaussNewtonOptimizer(graph, initial_values, params)
    if isinstance(params, LevenbergMarquardtParams):
        return LevenbergMarquardtOptimizer(graph, initial_values, params)
    raise ValueError(f"Unknown optimizer params type: {type(params).__name__}")
