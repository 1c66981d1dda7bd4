from carshape.adjust import adjust_ground_plane, adjust_multiview_shape_and_pose, adjust_pose, adjust_shape
from carshape.api import load_result, save_result
from carshape.config import ConfigValidationError, SolverConfig, load_solver_config
from carshape.parsing import ParseError, ParseErrorKind
from carshape.problems import (
    GroundPlaneProblem,
    MultiViewShapeAndPoseProblem,
    PoseProblem,
    ShapeProblem,
    load_problem,
)

__all__ = [
    "PoseProblem",
    "GroundPlaneProblem",
    "ShapeProblem",
    "MultiViewShapeAndPoseProblem",
    "load_problem",
    "ParseError",
    "ParseErrorKind",
    "SolverConfig",
    "ConfigValidationError",
    "load_solver_config",
    "adjust_pose",
    "adjust_shape",
    "adjust_ground_plane",
    "adjust_multiview_shape_and_pose",
    "save_result",
    "load_result",
]
