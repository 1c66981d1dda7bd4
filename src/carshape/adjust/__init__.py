"""
Residual construction and least-squares adjusters for the four problem files.

The solver is `scipy.optimize.least_squares`; problems are only read.
"""

from carshape.adjust.ground_plane import GroundPlaneAdjustmentResult, adjust_ground_plane, ground_plane_residuals
from carshape.adjust.multiview import MultiViewAdjustmentResult, adjust_multiview_shape_and_pose, multiview_residuals
from carshape.adjust.pose import PoseAdjustmentResult, adjust_pose, pose_residuals
from carshape.adjust.shape import ShapeAdjustmentResult, adjust_shape, shape_residuals

__all__ = [
    "PoseAdjustmentResult",
    "ShapeAdjustmentResult",
    "GroundPlaneAdjustmentResult",
    "MultiViewAdjustmentResult",
    "adjust_pose",
    "adjust_shape",
    "adjust_ground_plane",
    "adjust_multiview_shape_and_pose",
    "pose_residuals",
    "shape_residuals",
    "ground_plane_residuals",
    "multiview_residuals",
]
