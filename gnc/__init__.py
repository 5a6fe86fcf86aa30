"""Graduated Non-Convexity robust estimation over factor graphs.

This package contains:
- estimators: noise models, factor graphs, Gauss-Newton and
  Levenberg-Marquardt solvers, and the GNC robust optimizer
- slam: SE(2) geometry and pose-graph factors
"""

__version__ = "0.1.0"
