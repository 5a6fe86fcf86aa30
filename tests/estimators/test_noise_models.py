"""Unit tests for gnc.estimators.noise_models.

Tests Gaussian noise models (information matrix, constructors, validation),
robust losses (Huber, Cauchy, Geman-McClure, Tukey) and the robust adapter
used for IRLS.
"""

import numpy as np
import pytest

from gnc.estimators import (
    Cauchy,
    GaussianNoiseModel,
    GemanMcClure,
    Huber,
    InvalidNoiseModelError,
    RobustNoiseModel,
    Tukey,
)
from gnc.estimators.noise_models import as_noise_model


class TestGaussianNoiseModel:
    """Test suite for GaussianNoiseModel."""

    def test_isotropic_information(self):
        model = GaussianNoiseModel.isotropic(2, sigma=0.1)
        np.testing.assert_allclose(model.information, 100.0 * np.eye(2))
        assert model.dim == 2
        assert model.is_gaussian()

    def test_from_sigmas_round_trip(self):
        model = GaussianNoiseModel.from_sigmas([0.1, 0.5, 2.0])
        np.testing.assert_allclose(model.sigmas(), [0.1, 0.5, 2.0])

    def test_from_covariance(self):
        cov = np.diag([0.01, 0.04])
        model = GaussianNoiseModel.from_covariance(cov)
        np.testing.assert_allclose(model.information, np.diag([100.0, 25.0]))

    def test_information_is_a_copy(self):
        model = GaussianNoiseModel(np.eye(2))
        info = model.information
        info[0, 0] = 42.0
        assert model.information[0, 0] == 1.0

    def test_squared_mahalanobis_and_loss(self):
        """Error convention: ½ rᵀΛr."""
        model = GaussianNoiseModel.isotropic(2, sigma=0.1)
        d2 = model.squared_mahalanobis(np.array([1.0, 0.0]))
        assert np.isclose(d2, 100.0)
        assert np.isclose(model.loss(d2), 50.0)

    def test_zero_information_allowed(self):
        """Weighted graphs may scale information down to zero."""
        model = GaussianNoiseModel.from_information(0.0 * np.eye(3))
        assert model.squared_mahalanobis(np.ones(3)) == 0.0

    def test_rejects_non_square(self):
        with pytest.raises(ValueError, match="square"):
            GaussianNoiseModel(np.ones((2, 3)))

    def test_rejects_non_symmetric(self):
        with pytest.raises(ValueError, match="symmetric"):
            GaussianNoiseModel(np.array([[1.0, 2.0], [0.0, 1.0]]))

    def test_rejects_non_finite(self):
        with pytest.raises(ValueError, match="finite"):
            GaussianNoiseModel(np.array([[np.nan]]))

    def test_rejects_bad_sigmas(self):
        with pytest.raises(ValueError):
            GaussianNoiseModel.from_sigmas([0.1, 0.0])

    def test_residual_dimension_checked(self):
        model = GaussianNoiseModel.isotropic(3, 1.0)
        with pytest.raises(ValueError, match="dimension"):
            model.squared_mahalanobis(np.zeros(2))

    def test_equals(self):
        a = GaussianNoiseModel.isotropic(2, 0.1)
        b = GaussianNoiseModel.from_information(100.0 * np.eye(2))
        c = GaussianNoiseModel.isotropic(2, 0.2)
        assert a.equals(b)
        assert not a.equals(c)
        assert not a.equals(GaussianNoiseModel.isotropic(3, 0.1))


class TestRobustLosses:
    """Test suite for M-estimator losses."""

    def test_huber_quadratic_and_linear_regions(self):
        huber = Huber()
        assert np.isclose(huber.loss(0.5), 0.125)
        assert huber.weight(0.5) == 1.0
        assert np.isclose(huber.loss(2.0), 1.345 * 2.0 - 0.5 * 1.345**2)
        assert np.isclose(huber.weight(2.0), 1.345 / 2.0)

    def test_cauchy(self):
        cauchy = Cauchy(0.1)
        assert np.isclose(cauchy.weight(0.1), 0.5)
        assert np.isclose(cauchy.loss(0.1), 0.005 * np.log(2.0))

    def test_geman_mcclure(self):
        gm = GemanMcClure(1.0)
        assert np.isclose(gm.loss(10.0), 0.5 * 100.0 / 101.0)
        assert np.isclose(gm.weight(10.0), 1.0 / 101.0**2)
        # Bounded loss
        assert gm.loss(1e6) < 0.5

    def test_tukey_rejects_beyond_threshold(self):
        tukey = Tukey()
        c = tukey.threshold
        assert tukey.weight(c + 1.0) == 0.0
        assert np.isclose(tukey.loss(c + 1.0), c * c / 6.0)
        assert np.isclose(tukey.loss(c), c * c / 6.0)
        assert tukey.weight(0.0) == 1.0

    @pytest.mark.parametrize("loss_class", [Huber, Cauchy, GemanMcClure, Tukey])
    def test_rejects_non_positive_threshold(self, loss_class):
        with pytest.raises(ValueError, match="threshold"):
            loss_class(0.0)

    def test_loss_equality(self):
        assert GemanMcClure(1.0).equals(GemanMcClure(1.0))
        assert not GemanMcClure(1.0).equals(GemanMcClure(2.0))
        assert not GemanMcClure(1.0).equals(Cauchy(1.0))


class TestRobustNoiseModel:
    """Test suite for the robust adapter."""

    def test_loss_uses_whitened_norm(self):
        model = RobustNoiseModel(GemanMcClure(1.0), GaussianNoiseModel.isotropic(2, 0.1))
        d2 = model.squared_mahalanobis(np.array([1.0, 0.0]))
        assert np.isclose(model.loss(d2), 0.5 * 100.0 / 101.0)
        assert not model.is_gaussian()

    def test_effective_information_is_irls_weighted(self):
        gaussian = GaussianNoiseModel.isotropic(2, 0.1)
        model = RobustNoiseModel.create(GemanMcClure(1.0), gaussian)
        info = model.effective_information(np.array([1.0, 0.0]))
        np.testing.assert_allclose(info, 100.0 / 101.0**2 * np.eye(2))

    def test_unwrap_returns_gaussian(self):
        gaussian = GaussianNoiseModel.isotropic(2, 0.1)
        model = RobustNoiseModel(Huber(), gaussian)
        assert model.unwrap() is gaussian

    def test_has_no_plain_information(self):
        model = RobustNoiseModel(Huber(), GaussianNoiseModel.isotropic(2, 0.1))
        with pytest.raises(InvalidNoiseModelError):
            model.as_gaussian_information()

    def test_must_wrap_gaussian(self):
        inner = RobustNoiseModel(Huber(), GaussianNoiseModel.isotropic(2, 0.1))
        with pytest.raises(InvalidNoiseModelError):
            RobustNoiseModel(Cauchy(), inner)

    def test_invalid_noise_model_is_type_error(self):
        assert issubclass(InvalidNoiseModelError, TypeError)


class TestAsNoiseModel:
    """Test suite for noise model coercion."""

    def test_information_matrix_is_wrapped(self):
        model = as_noise_model(np.diag([4.0, 9.0]))
        assert isinstance(model, GaussianNoiseModel)
        np.testing.assert_allclose(model.sigmas(), [0.5, 1.0 / 3.0])

    def test_noise_model_passes_through(self):
        model = GaussianNoiseModel.isotropic(2, 1.0)
        assert as_noise_model(model) is model

    def test_none_needs_dimension(self):
        np.testing.assert_allclose(as_noise_model(None, dim=3).information, np.eye(3))
        with pytest.raises(ValueError, match="dim"):
            as_noise_model(None)

    def test_rejects_unknown_type(self):
        with pytest.raises(InvalidNoiseModelError):
            as_noise_model("sigma=0.1")
