"""
Robust nonlinear least squares estimation.

Available estimators:
    - Gauss-Newton and Levenberg-Marquardt over a factor graph
    - IRLS with M-estimator losses (Huber, Cauchy, Geman-McClure, Tukey)
    - Graduated Non-Convexity (GNC) with the Geman-McClure loss
"""

from gnc.estimators.noise_models import (
    Cauchy,
    GaussianNoiseModel,
    GemanMcClure,
    Huber,
    InvalidNoiseModelError,
    NoiseModel,
    RobustLoss,
    RobustNoiseModel,
    Tukey,
)
from gnc.estimators.factor_graph import Factor, FactorGraph, Values, copy_values
from gnc.estimators.optimizers import (
    GaussNewtonOptimizer,
    GaussNewtonParams,
    LevenbergMarquardtOptimizer,
    LevenbergMarquardtParams,
    NonlinearOptimizer,
    NonlinearOptimizerParams,
    make_optimizer,
)
from gnc.estimators.gnc_params import GncLossType, GncParams, GncVerbosity
from gnc.estimators.gnc_loss import UnsupportedLossTypeError
from gnc.estimators.gnc_optimizer import GncOptimizer

__all__ = [
    # Noise models
    "NoiseModel",
    "GaussianNoiseModel",
    "RobustNoiseModel",
    "RobustLoss",
    "Huber",
    "Cauchy",
    "GemanMcClure",
    "Tukey",
    # Factor graph
    "Factor",
    "FactorGraph",
    "Values",
    "copy_values",
    # Inner optimizers
    "NonlinearOptimizerParams",
    "GaussNewtonParams",
    "LevenbergMarquardtParams",
    "NonlinearOptimizer",
    "GaussNewtonOptimizer",
    "LevenbergMarquardtOptimizer",
    "make_optimizer",
    # GNC
    "GncLossType",
    "GncVerbosity",
    "GncParams",
    "GncOptimizer",
    # Errors
    "InvalidNoiseModelError",
    "UnsupportedLossTypeError",
]
