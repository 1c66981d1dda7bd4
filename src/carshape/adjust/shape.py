from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from carshape.adjust.common import (
    effective_weights,
    params_to_pose,
    pose_to_params,
    rms_pixel_error,
    run_least_squares,
)
from carshape.config import SolverConfig
from carshape.core.projection import weighted_reprojection_residual
from carshape.problems.shape import ShapeProblem


@dataclass(frozen=True, eq=False)
class ShapeAdjustmentResult:
    lambdas: np.ndarray  # (numVec,)
    R: np.ndarray  # (3,3)
    t: np.ndarray  # (3,)
    diagnostics: dict[str, float]


def shape_residuals(
    problem: ShapeProblem,
    lambdas: np.ndarray,
    R: np.ndarray | None = None,
    t: np.ndarray | None = None,
    *,
    min_weight: float = 0.0,
) -> np.ndarray:
    """Reprojection blocks for the given lambdas; the stored pose unless R/t are passed."""
    R = problem.rotation if R is None else R
    t = problem.translation if t is None else t
    X = problem.deformed_keypoints(lambdas)
    w = effective_weights(problem.observation_weights, min_weight)
    return weighted_reprojection_residual(problem.intrinsics.matrix, R, t, X, problem.keypoints.uv[0], w)


def adjust_shape(problem: ShapeProblem, *, config: SolverConfig | None = None) -> ShapeAdjustmentResult:
    """
    Fit the deformation coefficients of one view, with the pose from a previous
    pose solve held fixed (or refined too with `config.refine_pose`).
    """
    config = SolverConfig() if config is None else config
    if problem.num_pts == 0:
        raise ValueError("shape problem has no keypoints")

    n_vec = problem.num_vec
    refine_pose = bool(config.refine_pose)
    pose0 = pose_to_params(problem.rotation, problem.translation)
    p0 = np.array(problem.lambdas, dtype=np.float64)
    if refine_pose:
        p0 = np.concatenate([p0, pose0], axis=0)
    prior = np.sqrt(float(config.shape_prior_weight))
    R_fixed = np.asarray(problem.rotation, dtype=np.float64)
    t_fixed = np.asarray(problem.translation, dtype=np.float64)

    def fun(p: np.ndarray) -> np.ndarray:
        lam = p[:n_vec]
        if refine_pose:
            R, t = params_to_pose(p[n_vec : n_vec + 6])
        else:
            R, t = R_fixed, t_fixed
        r = shape_residuals(problem, lam, R, t, min_weight=config.min_weight)
        if prior > 0:
            r = np.concatenate([r, prior * lam], axis=0)
        return r

    p, diag = run_least_squares(fun, p0, config=config, label="shape adjustment")
    lambdas = p[:n_vec].copy()
    if refine_pose:
        R, t = params_to_pose(p[n_vec : n_vec + 6])
    else:
        R, t = R_fixed.copy(), t_fixed.copy()
    diag["weighted_rms_px"] = rms_pixel_error(shape_residuals(problem, lambdas, R, t, min_weight=config.min_weight))
    return ShapeAdjustmentResult(lambdas=lambdas, R=R, t=t, diagnostics=diag)
