"""
Noise models for factor graph residuals.

A noise model turns a raw residual r into a scalar error. Two kinds exist:

    - GaussianNoiseModel: stores the information matrix Λ (inverse covariance).
      The error of a residual is ½ rᵀ Λ r.
    - RobustNoiseModel: wraps a Gaussian model with an M-estimator loss ρ.
      The error is ρ(e) where e = sqrt(rᵀ Λ r) is the whitened residual norm.

Robust losses (IRLS weight functions w(e) = ρ'(e) / e):
    - Huber:        quadratic near zero, linear in the tails
    - Cauchy:       logarithmic tails, gradual down-weighting
    - GemanMcClure: bounded loss, strong outlier rejection
    - Tukey:        hard rejection beyond the threshold

The GNC optimizer only works with Gaussian models: robust wrappers are
stripped on construction and robustness comes from the GNC weights instead.
"""

from typing import Optional, Sequence

import numpy as np


class InvalidNoiseModelError(TypeError):
    """Raised when a factor carries a noise model GNC cannot handle."""


class RobustLoss:
    """Base class for M-estimator losses ρ(e) of a whitened residual norm e."""

    name = "robust"

    def __init__(self, threshold: float):
        if not np.isfinite(threshold) or threshold <= 0:
            raise ValueError(f"{self.name} threshold must be positive, got {threshold}")
        self.threshold = float(threshold)

    def loss(self, e: float) -> float:
        raise NotImplementedError

    def weight(self, e: float) -> float:
        raise NotImplementedError

    def equals(self, other: "RobustLoss", tol: float = 1e-9) -> bool:
        return type(self) is type(other) and abs(self.threshold - other.threshold) <= tol

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.threshold})"


class Huber(RobustLoss):
    """Huber loss: ρ(e) = e²/2 for |e| ≤ k, else k|e| - k²/2."""

    name = "huber"

    def __init__(self, threshold: float = 1.345):
        super().__init__(threshold)

    def loss(self, e: float) -> float:
        k = self.threshold
        abs_e = abs(e)
        if abs_e <= k:
            return 0.5 * e * e
        return k * abs_e - 0.5 * k * k

    def weight(self, e: float) -> float:
        abs_e = abs(e)
        if abs_e <= self.threshold:
            return 1.0
        return self.threshold / abs_e


class Cauchy(RobustLoss):
    """Cauchy loss: ρ(e) = k²/2 · log(1 + e²/k²)."""

    name = "cauchy"

    def __init__(self, threshold: float = 0.1):
        super().__init__(threshold)

    def loss(self, e: float) -> float:
        k_sq = self.threshold**2
        return 0.5 * k_sq * np.log1p(e * e / k_sq)

    def weight(self, e: float) -> float:
        k_sq = self.threshold**2
        return k_sq / (k_sq + e * e)


class GemanMcClure(RobustLoss):
    """
    Geman-McClure loss.

    ρ(e) = c² e² / (2 (c² + e²)),   w(e) = c⁴ / (c² + e²)²

    The loss saturates at c²/2, so a gross outlier contributes a bounded cost
    and almost zero weight. The price is non-convexity: started far from the
    solution, plain IRLS with this loss can lock onto outliers.
    """

    name = "geman_mcclure"

    def __init__(self, threshold: float = 1.0):
        super().__init__(threshold)

    def loss(self, e: float) -> float:
        c_sq = self.threshold**2
        e_sq = e * e
        return 0.5 * c_sq * e_sq / (c_sq + e_sq)

    def weight(self, e: float) -> float:
        c_sq = self.threshold**2
        return c_sq * c_sq / (c_sq + e * e) ** 2


class Tukey(RobustLoss):
    """Tukey biweight: zero weight beyond the threshold c."""

    name = "tukey"

    def __init__(self, threshold: float = 4.6851):
        super().__init__(threshold)

    def loss(self, e: float) -> float:
        c = self.threshold
        if abs(e) <= c:
            return c * c / 6.0 * (1.0 - (1.0 - (e / c) ** 2) ** 3)
        return c * c / 6.0

    def weight(self, e: float) -> float:
        if abs(e) <= self.threshold:
            return (1.0 - (e / self.threshold) ** 2) ** 2
        return 0.0


class NoiseModel:
    """Common interface of Gaussian and robust noise models."""

    def is_gaussian(self) -> bool:
        raise NotImplementedError

    def as_gaussian_information(self) -> np.ndarray:
        raise NotImplementedError

    @property
    def dim(self) -> int:
        raise NotImplementedError

    def squared_mahalanobis(self, r: np.ndarray) -> float:
        raise NotImplementedError

    def loss(self, squared_distance: float) -> float:
        raise NotImplementedError

    def effective_information(self, r: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def equals(self, other: "NoiseModel", tol: float = 1e-9) -> bool:
        raise NotImplementedError


class GaussianNoiseModel(NoiseModel):
    """
    Gaussian noise model parameterized by its information matrix.

    Attributes:
        information: Information matrix Λ = Σ⁻¹, shape (d, d).

    Examples:
        >>> model = GaussianNoiseModel.isotropic(2, sigma=0.1)
        >>> model.information
        array([[100.,   0.],
               [  0., 100.]])
        >>> model.squared_mahalanobis(np.array([1.0, 0.0]))
        100.0
    """

    def __init__(self, information: np.ndarray):
        information = np.atleast_2d(np.asarray(information, dtype=float))
        if information.ndim != 2 or information.shape[0] != information.shape[1]:
            raise ValueError(
                f"information must be a square matrix, got shape {information.shape}"
            )
        if not np.all(np.isfinite(information)):
            raise ValueError("information must contain only finite values")
        if not np.allclose(information, information.T, rtol=1e-9, atol=1e-12):
            raise ValueError("information must be symmetric")
        self._information = information.copy()

    @classmethod
    def from_information(cls, information: np.ndarray) -> "GaussianNoiseModel":
        return cls(information)

    @classmethod
    def from_covariance(cls, covariance: np.ndarray) -> "GaussianNoiseModel":
        covariance = np.atleast_2d(np.asarray(covariance, dtype=float))
        try:
            information = np.linalg.inv(covariance)
        except np.linalg.LinAlgError as exc:
            raise ValueError("covariance must be invertible") from exc
        return cls(0.5 * (information + information.T))

    @classmethod
    def from_sigmas(cls, sigmas: Sequence[float]) -> "GaussianNoiseModel":
        sigmas = np.asarray(sigmas, dtype=float).ravel()
        if np.any(sigmas <= 0) or not np.all(np.isfinite(sigmas)):
            raise ValueError(f"sigmas must be positive and finite, got {sigmas}")
        return cls(np.diag(1.0 / sigmas**2))

    @classmethod
    def isotropic(cls, dim: int, sigma: float) -> "GaussianNoiseModel":
        return cls.from_sigmas(np.full(dim, float(sigma)))

    @property
    def information(self) -> np.ndarray:
        return self._information.copy()

    @property
    def dim(self) -> int:
        return self._information.shape[0]

    def is_gaussian(self) -> bool:
        return True

    def as_gaussian_information(self) -> np.ndarray:
        return self.information

    def sigmas(self) -> np.ndarray:
        """Standard deviations of a diagonal model."""
        diag = np.diag(self._information)
        with np.errstate(divide="ignore"):
            return 1.0 / np.sqrt(diag)

    def squared_mahalanobis(self, r: np.ndarray) -> float:
        """Whitened squared residual rᵀ Λ r."""
        r = np.asarray(r, dtype=float).ravel()
        if r.shape[0] != self.dim:
            raise ValueError(f"residual has dimension {r.shape[0]}, expected {self.dim}")
        return float(r @ self._information @ r)

    def loss(self, squared_distance: float) -> float:
        return 0.5 * squared_distance

    def effective_information(self, r: np.ndarray) -> np.ndarray:
        return self._information

    def equals(self, other: NoiseModel, tol: float = 1e-9) -> bool:
        if not isinstance(other, GaussianNoiseModel) or other.dim != self.dim:
            return False
        return bool(np.allclose(self._information, other._information, rtol=0.0, atol=tol))

    def __repr__(self) -> str:
        return f"GaussianNoiseModel(dim={self.dim})"


class RobustNoiseModel(NoiseModel):
    """
    Robust adapter: a Gaussian model plus an M-estimator loss.

    Used by the inner optimizers as plain IRLS: at every linearization the
    information matrix is scaled by w(e) with e the whitened residual norm.

    Args:
        loss: Robust loss applied to the whitened residual norm.
        noise: Underlying Gaussian noise model.

    Raises:
        InvalidNoiseModelError: If ``noise`` is not a GaussianNoiseModel.
    """

    def __init__(self, loss: RobustLoss, noise: NoiseModel):
        if not isinstance(noise, GaussianNoiseModel):
            raise InvalidNoiseModelError(
                f"robust noise model must wrap a Gaussian model, got {type(noise).__name__}"
            )
        self.robust_loss = loss
        self.noise = noise

    @classmethod
    def create(cls, loss: RobustLoss, noise: GaussianNoiseModel) -> "RobustNoiseModel":
        return cls(loss, noise)

    @property
    def dim(self) -> int:
        return self.noise.dim

    def is_gaussian(self) -> bool:
        return False

    def unwrap(self) -> GaussianNoiseModel:
        return self.noise

    def as_gaussian_information(self) -> np.ndarray:
        raise InvalidNoiseModelError("robust noise model has no plain Gaussian information")

    def squared_mahalanobis(self, r: np.ndarray) -> float:
        return self.noise.squared_mahalanobis(r)

    def loss(self, squared_distance: float) -> float:
        return float(self.robust_loss.loss(np.sqrt(squared_distance)))

    def effective_information(self, r: np.ndarray) -> np.ndarray:
        e = np.sqrt(self.noise.squared_mahalanobis(r))
        return self.robust_loss.weight(e) * self.noise.effective_information(r)

    def equals(self, other: NoiseModel, tol: float = 1e-9) -> bool:
        return (
            isinstance(other, RobustNoiseModel)
            and self.robust_loss.equals(other.robust_loss, tol)
            and self.noise.equals(other.noise, tol)
        )

    def __repr__(self) -> str:
        return f"RobustNoiseModel({self.robust_loss!r}, {self.noise!r})"


def as_noise_model(model: Optional[object], dim: Optional[int] = None) -> NoiseModel:
    """
    Coerce a noise model argument.

    Accepts a NoiseModel, a raw information matrix, or None (identity of
    dimension ``dim``).
    """
    if isinstance(model, NoiseModel):
        return model
    if model is None:
        if dim is None:
            raise ValueError("dim is required when no noise model is given")
        return GaussianNoiseModel(np.eye(dim))
    if isinstance(model, (np.ndarray, list, tuple, float, int)):
        return GaussianNoiseModel.from_information(np.asarray(model, dtype=float))
    raise InvalidNoiseModelError(
        f"expected a NoiseModel or information matrix, got {type(model).__name__}"
    )
