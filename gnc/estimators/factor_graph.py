"""
Factors and factor graphs for batch nonlinear least squares.

A factor graph here is the measurement side of a MAP problem: an ordered
list of factor slots, each factor constraining a few variables. Variable
values live outside the graph in a plain dictionary (``Values``) so the
same graph can be optimized from different starting points and the same
values can be scored against different graphs.

Implements:
    - MAP estimation as minimization of Σ errorᵢ(X)
    - Factor error ½ rᵀ Λ r for Gaussian noise, ρ(‖r‖_Λ) for robust noise
    - Slot-stable graph copies (empty slots survive every copy)
"""

from typing import Callable, Dict, Hashable, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np

from .noise_models import NoiseModel, as_noise_model

Values = Dict[Hashable, np.ndarray]

ResidualFunc = Callable[[List[np.ndarray]], np.ndarray]
JacobianFunc = Callable[[List[np.ndarray]], List[np.ndarray]]


def copy_values(values: Values) -> Values:
    """Deep copy of a values dictionary as 1-D float arrays."""
    return {key: np.array(np.atleast_1d(value), dtype=float) for key, value in values.items()}


def numerical_jacobians(
    residual_func: ResidualFunc,
    x_vars: List[np.ndarray],
    epsilon: float = 1e-7,
) -> List[np.ndarray]:
    """
    Forward-difference Jacobians of a residual w.r.t. each variable.

    Args:
        residual_func: Residual r(x_vars).
        x_vars: Variable values the residual depends on.
        epsilon: Perturbation step.

    Returns:
        List of Jacobians [∂r/∂x₁, ∂r/∂x₂, ...].
    """
    r_base = np.atleast_1d(np.asarray(residual_func(x_vars), dtype=float))
    jacobians = []
    for k, x_k in enumerate(x_vars):
        J_k = np.zeros((r_base.shape[0], x_k.shape[0]))
        for i in range(x_k.shape[0]):
            x_plus = [x.copy() for x in x_vars]
            x_plus[k][i] += epsilon
            r_plus = np.atleast_1d(np.asarray(residual_func(x_plus), dtype=float))
            J_k[:, i] = (r_plus - r_base) / epsilon
        jacobians.append(J_k)
    return jacobians


class Factor:
    """
    Factor in a factor graph representing a constraint or measurement.

    A factor encodes a probabilistic constraint on a subset of variables.
    For Gaussian noise this is a squared residual weighted by the
    information matrix; for robust noise the squared residual is passed
    through an M-estimator loss.

    Factors are never mutated once built. Reweighting goes through
    ``with_noise_model``, which returns a new factor sharing the residual
    model and keys.

    Attributes:
        variable_ids: Variable keys this factor connects.
        residual_func: Function computing residual r(x_vars).
        jacobian_func: Function computing [∂r/∂x₁, ...], or None for
            finite differences.
        noise_model: Gaussian or robust noise model.
    """

    def __init__(
        self,
        variable_ids: Sequence[Hashable],
        residual_func: ResidualFunc,
        jacobian_func: Optional[JacobianFunc] = None,
        noise_model: Union[NoiseModel, np.ndarray, None] = None,
    ):
        """
        Initialize Factor.

        Args:
            variable_ids: Variable keys connected by this factor.
            residual_func: Function computing residual r(x_vars) where x_vars
                is a list of variable values in ``variable_ids`` order.
            jacobian_func: Function computing Jacobians [∂r/∂x₁, ∂r/∂x₂, ...].
                If None, forward finite differences are used.
            noise_model: A NoiseModel, or an information matrix Λ which is
                wrapped in a GaussianNoiseModel. For scalar residual: [[1/σ²]].

        Raises:
            ValueError: If no variables are given or no noise model is given.
        """
        if len(variable_ids) == 0:
            raise ValueError("factor must connect at least one variable")
        if noise_model is None:
            raise ValueError("factor requires a noise model or information matrix")
        self.variable_ids = list(variable_ids)
        self.residual_func = residual_func
        self.jacobian_func = jacobian_func
        self.noise_model = as_noise_model(noise_model)

    @property
    def information(self) -> np.ndarray:
        """Information matrix of the (unwrapped) Gaussian noise model."""
        if self.noise_model.is_gaussian():
            return self.noise_model.as_gaussian_information()
        return self.noise_model.unwrap().as_gaussian_information()

    def _gather(self, values: Values) -> List[np.ndarray]:
        try:
            return [values[vid] for vid in self.variable_ids]
        except KeyError as exc:
            raise ValueError(f"Variable {exc.args[0]} has no value") from exc

    def residual(self, values: Values) -> np.ndarray:
        """Raw (unwhitened) residual at the given values."""
        r = np.atleast_1d(np.asarray(self.residual_func(self._gather(values)), dtype=float))
        if r.shape[0] != self.noise_model.dim:
            raise ValueError(
                f"residual has dimension {r.shape[0]}, noise model expects {self.noise_model.dim}"
            )
        return r

    def error(self, values: Values) -> float:
        """
        Scalar error of this factor.

        Gaussian noise: ½ rᵀ Λ r. Robust noise: ρ(sqrt(rᵀ Λ r)).

        Args:
            values: Dictionary mapping variable key to value.

        Returns:
            Non-negative error.
        """
        r = self.residual(values)
        return self.noise_model.loss(self.noise_model.squared_mahalanobis(r))

    def linearize(self, values: Values) -> Tuple[np.ndarray, List[np.ndarray]]:
        """
        Linearize the factor around current variable values.

        Args:
            values: Dictionary mapping variable key to value.

        Returns:
            Tuple of (residual, jacobians) where jacobians is a list
            of Jacobian matrices for each connected variable.
        """
        x_vars = self._gather(values)
        r = self.residual(values)
        if self.jacobian_func is None:
            J = numerical_jacobians(self.residual_func, x_vars)
        else:
            J = [np.atleast_2d(np.asarray(J_k, dtype=float)) for J_k in self.jacobian_func(x_vars)]
        return r, J

    def with_noise_model(self, noise_model: Union[NoiseModel, np.ndarray]) -> "Factor":
        """Clone of this factor carrying a different noise model."""
        return Factor(self.variable_ids, self.residual_func, self.jacobian_func, noise_model)

    def equals(self, other: "Factor", tol: float = 1e-9) -> bool:
        """Same residual model, same keys, and equal noise models."""
        return (
            isinstance(other, Factor)
            and self.variable_ids == other.variable_ids
            and self.residual_func is other.residual_func
            and self.jacobian_func is other.jacobian_func
            and self.noise_model.equals(other.noise_model, tol)
        )

    def __repr__(self) -> str:
        return f"Factor({self.variable_ids}, {self.noise_model!r})"


class FactorGraph:
    """
    Ordered collection of factor slots.

    Slot indices are stable: a slot may hold None (an empty slot), and
    copies preserve the emptiness pattern, so an index keeps addressing the
    same measurement across every copy of the graph.

    Examples:
        >>> graph = FactorGraph()
        >>> graph.add_factor(Factor([0], lambda x: x[0] - 1.0, None, np.eye(1)))
        >>> graph.resize(3)
        >>> len(graph), graph[2] is None
        (3, True)
    """

    def __init__(self, factors: Optional[Sequence[Optional[Factor]]] = None):
        self._factors: List[Optional[Factor]] = []
        if factors is not None:
            for factor in factors:
                self.push_back(factor)

    def add_factor(self, factor: Optional[Factor]) -> None:
        """
        Append a factor (or an empty slot) to the graph.

        Raises:
            TypeError: If ``factor`` is neither a Factor nor None.
        """
        if factor is not None and not isinstance(factor, Factor):
            raise TypeError(f"expected Factor or None, got {type(factor).__name__}")
        self._factors.append(factor)

    push_back = add_factor

    def resize(self, size: int) -> None:
        """Grow with empty slots or truncate to ``size`` slots."""
        if size < 0:
            raise ValueError(f"size must be non-negative, got {size}")
        if size < len(self._factors):
            del self._factors[size:]
        else:
            self._factors.extend([None] * (size - len(self._factors)))

    def size(self) -> int:
        return len(self._factors)

    def __len__(self) -> int:
        return len(self._factors)

    def __getitem__(self, index: int) -> Optional[Factor]:
        return self._factors[index]

    def __setitem__(self, index: int, factor: Optional[Factor]) -> None:
        if factor is not None and not isinstance(factor, Factor):
            raise TypeError(f"expected Factor or None, got {type(factor).__name__}")
        self._factors[index] = factor

    def __iter__(self) -> Iterator[Optional[Factor]]:
        return iter(self._factors)

    def keys(self) -> set:
        """All variable keys referenced by non-empty slots."""
        keys = set()
        for factor in self._factors:
            if factor is not None:
                keys.update(factor.variable_ids)
        return keys

    def error(self, values: Values) -> float:
        """
        Total error over all non-empty slots.

        Returns:
            Σ errorᵢ(values).
        """
        total_error = 0.0
        for factor in self._factors:
            if factor is not None:
                total_error += factor.error(values)
        return total_error

    def clone(self) -> "FactorGraph":
        """Shallow copy: new slot list, same (immutable) factors."""
        return FactorGraph(self._factors)

    def equals(self, other: "FactorGraph", tol: float = 1e-9) -> bool:
        if not isinstance(other, FactorGraph) or len(other) != len(self):
            return False
        for mine, theirs in zip(self._factors, other._factors):
            if mine is None or theirs is None:
                if mine is not theirs:
                    return False
            elif not mine.equals(theirs, tol):
                return False
        return True

    def __repr__(self) -> str:
        n_empty = sum(1 for factor in self._factors if factor is None)
        return f"FactorGraph(size={len(self)}, empty={n_empty})"
