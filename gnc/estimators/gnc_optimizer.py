"""
Graduated Non-Convexity (GNC) robust optimizer.

GNC solves a robust estimation problem without an initial guess of which
measurements are outliers. It alternates between

    1. a weighted nonlinear least squares solve (variable update), and
    2. a closed-form weight update per factor (outlier process),

while a continuation parameter μ shrinks a convex surrogate of the
Geman-McClure loss back into the original non-convex loss.

Algorithm:
    x ← argmin Σ errorᵢ(x)                      (unweighted solve)
    μ ← 2 max errorᵢ(x) / c̄²
    repeat:
        wᵢ ← (μ c̄² / (errorᵢ(x) + μ c̄²))²      (pinned inliers: wᵢ = 1)
        x  ← argmin Σ wᵢ errorᵢ(x)              (restarted from x₀)
        stop if μ = 1
        μ  ← max(1, μ / μ_step)

Robust noise models in the input graph are replaced by their underlying
Gaussian models: robustness comes from the GNC weights alone.

References:
    Yang, Antonante, Tzoumas, Carlone, "Graduated Non-Convexity for Robust
    Spatial Perception: From Non-Minimal Solvers to Global Outlier
    Rejection", IEEE RA-L, 2020.
"""

import logging
from typing import Optional

import numpy as np

from .factor_graph import FactorGraph, Values, copy_values
from .gnc_loss import initial_mu, is_converged, next_mu, weight_of
from .gnc_params import GncParams, GncVerbosity
from .noise_models import GaussianNoiseModel, InvalidNoiseModelError, RobustNoiseModel
from .optimizers import make_optimizer

logger = logging.getLogger("gnc.gnc_optimizer")


class GncOptimizer:
    """
    Robust optimizer based on Graduated Non-Convexity.

    Attributes:
        iterations: Number of outer iterations run by the last optimize().
        mu: Last continuation parameter used by optimize().

    Examples:
        >>> optimizer = GncOptimizer(graph, initial_values)
        >>> result = optimizer.optimize()
        >>> weights = optimizer.get_weights()  # ≈ 0 for outliers, ≈ 1 for inliers
    """

    def __init__(
        self,
        graph: FactorGraph,
        initial_values: Values,
        params: Optional[GncParams] = None,
    ):
        """
        Initialize GncOptimizer.

        Args:
            graph: Factor graph, possibly with robust noise models.
            initial_values: Starting estimate for every variable in the graph.
            params: GNC parameters. A private copy is kept.

        Raises:
            InvalidNoiseModelError: If a factor's noise model is neither
                Gaussian nor a robust wrapper of a Gaussian.
            ValueError: If a variable has no initial value or a known inlier
                index does not address a slot of the graph.
        """
        self._params = params.copy() if params is not None else GncParams()
        self._nfg = self._sanitize(graph)

        missing = self._nfg.keys() - set(initial_values.keys())
        if missing:
            raise ValueError(f"Variables {sorted(missing, key=repr)} not in initial values")
        for index in self._params.known_inliers:
            if index >= len(self._nfg):
                raise ValueError(
                    f"known inlier index {index} out of range for graph of size {len(self._nfg)}"
                )

        self._initial_values = copy_values(initial_values)
        self._state = copy_values(initial_values)
        self._weights: Optional[np.ndarray] = None
        self.iterations = 0
        self.mu: Optional[float] = None

    @staticmethod
    def _sanitize(graph: FactorGraph) -> FactorGraph:
        """Copy of ``graph`` with every robust model replaced by its Gaussian."""
        sanitized = FactorGraph()
        for factor in graph:
            if factor is None:
                sanitized.push_back(None)
            elif isinstance(factor.noise_model, GaussianNoiseModel):
                sanitized.push_back(factor)
            elif isinstance(factor.noise_model, RobustNoiseModel):
                sanitized.push_back(factor.with_noise_model(factor.noise_model.unwrap()))
            else:
                raise InvalidNoiseModelError(
                    f"unsupported noise model {type(factor.noise_model).__name__}"
                )
        return sanitized

    def get_factors(self) -> FactorGraph:
        """Sanitized (all-Gaussian) copy of the input graph."""
        return self._nfg.clone()

    get_graph = get_factors

    def get_state(self) -> Values:
        """Initial values before optimize(), final values afterwards."""
        return copy_values(self._state)

    def get_params(self) -> GncParams:
        return self._params.copy()

    def get_weights(self) -> np.ndarray:
        """
        Final factor weights.

        Raises:
            RuntimeError: If optimize() has not been run.
        """
        if self._weights is None:
            raise RuntimeError("weights are only available after optimize()")
        return self._weights.copy()

    def initialize_mu(self, values: Optional[Values] = None) -> float:
        """
        Initial continuation parameter from the largest factor error.

        Args:
            values: Estimate at which factor errors are evaluated. Defaults
                to the initial values.

        Returns:
            μ₀; 0 for a graph with no factors.
        """
        if values is None:
            values = self._initial_values
        rmax_sq = 0.0
        for factor in self._nfg:
            if factor is not None:
                rmax_sq = max(rmax_sq, factor.error(values))
        return initial_mu(self._params.loss_type, rmax_sq, self._params.barc_sq)

    def calculate_weights(self, values: Values, mu: float) -> np.ndarray:
        """
        GNC weight of every factor slot at the given estimate.

        Empty slots and known inliers get weight 1.

        Args:
            values: Current estimate.
            mu: Continuation parameter.

        Returns:
            Array of length ``len(graph)``.
        """
        weights = np.ones(len(self._nfg))
        known = set(self._params.known_inliers)
        for k, factor in enumerate(self._nfg):
            if factor is None or k in known:
                continue
            u2 = factor.error(values)
            weights[k] = weight_of(self._params.loss_type, u2, mu, self._params.barc_sq)
        return weights

    def make_weighted_graph(self, weights: np.ndarray) -> FactorGraph:
        """
        Copy of the sanitized graph with every information matrix scaled.

        Raises:
            ValueError: If ``weights`` does not have one entry per slot.
            InvalidNoiseModelError: If a factor is not Gaussian.
        """
        weights = np.asarray(weights, dtype=float).ravel()
        if weights.shape[0] != len(self._nfg):
            raise ValueError(
                f"expected {len(self._nfg)} weights, got {weights.shape[0]}"
            )
        weighted = FactorGraph()
        for k, factor in enumerate(self._nfg):
            if factor is None:
                weighted.push_back(None)
                continue
            if not factor.noise_model.is_gaussian():
                raise InvalidNoiseModelError(
                    f"factor {k} has non-Gaussian noise model {factor.noise_model!r}"
                )
            information = factor.noise_model.as_gaussian_information()
            weighted.push_back(
                factor.with_noise_model(
                    GaussianNoiseModel.from_information(weights[k] * information)
                )
            )
        return weighted

    def update_mu(self, mu: float) -> float:
        return next_mu(self._params.loss_type, mu, self._params.mu_step)

    def check_mu_convergence(self, mu: float) -> bool:
        return is_converged(self._params.loss_type, mu)

    def _solve(self, graph: FactorGraph) -> Values:
        optimizer = make_optimizer(
            graph, self._initial_values, self._params.base_optimizer_params
        )
        return optimizer.optimize()

    def optimize(self) -> Values:
        """
        Run GNC until mu reaches its final value or the budget runs out.

        Running out of iterations is not an error: the last estimate is
        returned and ``iterations`` equals ``max_iterations``.

        Returns:
            Final values (a copy).
        """
        params = self._params
        weights = np.ones(len(self._nfg))
        result = self._solve(self._nfg)
        mu = self.initialize_mu(result)

        iterations = 0
        mu_used = mu
        for iteration in range(params.max_iterations):
            iterations = iteration + 1
            if params.verbosity is GncVerbosity.VALUES:
                logger.info("iteration %d: mu = %.6g", iteration, mu)

            weights = self.calculate_weights(result, mu)
            mu_used = mu
            if params.verbosity is GncVerbosity.VALUES:
                logger.info("iteration %d: weights = %s", iteration, weights)

            result = self._solve(self.make_weighted_graph(weights))
            if params.verbosity is GncVerbosity.VALUES:
                logger.info("iteration %d: values = %s", iteration, result)

            if self.check_mu_convergence(mu):
                break
            mu = self.update_mu(mu)

        if params.verbosity in (GncVerbosity.SUMMARY, GncVerbosity.VALUES):
            logger.info("GNC finished after %d iterations, final mu = %.6g", iterations, mu_used)
            logger.info("final weights: %s", weights)
        if params.verbosity is GncVerbosity.VALUES:
            logger.info("final values: %s", result)

        self._state = result
        self._weights = weights
        self.iterations = iterations
        self.mu = mu_used
        return copy_values(result)
