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
from carshape.problems.pose import PoseProblem


@dataclass(frozen=True, eq=False)
class PoseAdjustmentResult:
    R: np.ndarray  # (3,3)
    t: np.ndarray  # (3,)
    lambdas: np.ndarray  # (numVec,)
    diagnostics: dict[str, float]


def pose_residuals(
    problem: PoseProblem,
    R: np.ndarray,
    t: np.ndarray,
    lambdas: np.ndarray | None = None,
    *,
    min_weight: float = 0.0,
) -> np.ndarray:
    """One 2-vector block per keypoint, in keypoint order."""
    X = problem.deformed_keypoints(lambdas)
    w = effective_weights(problem.observation_weights, min_weight)
    return weighted_reprojection_residual(problem.intrinsics.matrix, R, t, X, problem.keypoints.uv[0], w)


def initial_pose(problem: PoseProblem) -> tuple[np.ndarray, np.ndarray]:
    """Identity rotation, car placed at its center estimate."""
    return np.eye(3, dtype=np.float64), np.array(problem.car_center, dtype=np.float64)


def adjust_pose(
    problem: PoseProblem,
    *,
    config: SolverConfig | None = None,
    R0: np.ndarray | None = None,
    t0: np.ndarray | None = None,
) -> PoseAdjustmentResult:
    """
    Fit the camera pose (R, t) of a single view, and the lambdas as well when
    `config.refine_lambdas` is set:

      min sum_j rho(|w_j (pi(K, R, t, X_bar_j + sum_i lambda_i V_ij) - x_j)|^2)
    """
    config = SolverConfig() if config is None else config
    if problem.num_pts == 0:
        raise ValueError("pose problem has no keypoints")

    R_init, t_init = initial_pose(problem)
    if R0 is not None:
        R_init = np.asarray(R0, dtype=np.float64).reshape(3, 3)
    if t0 is not None:
        t_init = np.asarray(t0, dtype=np.float64).reshape(3)

    refine_lambdas = bool(config.refine_lambdas)
    n_vec = problem.num_vec
    lambdas0 = np.array(problem.lambdas, dtype=np.float64)
    p0 = pose_to_params(R_init, t_init)
    if refine_lambdas:
        p0 = np.concatenate([p0, lambdas0], axis=0)
    prior = np.sqrt(float(config.shape_prior_weight))

    def fun(p: np.ndarray) -> np.ndarray:
        R, t = params_to_pose(p[:6])
        lam = p[6 : 6 + n_vec] if refine_lambdas else lambdas0
        r = pose_residuals(problem, R, t, lam, min_weight=config.min_weight)
        if refine_lambdas and prior > 0:
            r = np.concatenate([r, prior * lam], axis=0)
        return r

    p, diag = run_least_squares(fun, p0, config=config, label="pose adjustment")
    R, t = params_to_pose(p[:6])
    lambdas = p[6 : 6 + n_vec].copy() if refine_lambdas else lambdas0
    diag["weighted_rms_px"] = rms_pixel_error(pose_residuals(problem, R, t, lambdas, min_weight=config.min_weight))
    return PoseAdjustmentResult(R=R, t=t, lambdas=lambdas, diagnostics=diag)
