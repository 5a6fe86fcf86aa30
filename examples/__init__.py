"""Examples for robust estimation with Graduated Non-Convexity.

Examples:
    - example_gnc_pose_graph.py: 2D pose graph with wrong loop closures,
      Gauss-Newton versus GNC

Dependencies:
    - gnc.slam: SE(2) operations and pose graph factors
    - gnc.estimators: Gauss-Newton and GNC optimizers
    - matplotlib: Visualization
    - numpy: Numerical operations
"""

__all__ = []
