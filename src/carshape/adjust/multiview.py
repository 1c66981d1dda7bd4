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
from carshape.problems.multiview import MultiViewShapeAndPoseProblem


@dataclass(frozen=True, eq=False)
class MultiViewAdjustmentResult:
    lambdas: np.ndarray  # (numVec,), shared by every view
    Rs: np.ndarray  # (numViews,3,3)
    ts: np.ndarray  # (numViews,3)
    diagnostics: dict[str, float]


def _check_keypoint_correspondence(problem: MultiViewShapeAndPoseProblem) -> None:
    if problem.num_obs != problem.num_pts:
        raise ValueError(
            f"observation j must be keypoint j: numObs={problem.num_obs} but the basis has numPts={problem.num_pts}"
        )


def multiview_residuals(
    problem: MultiViewShapeAndPoseProblem,
    lambdas: np.ndarray,
    Rs: np.ndarray,
    ts: np.ndarray,
    *,
    min_weight: float = 0.0,
) -> np.ndarray:
    """
    View-major reprojection blocks: for view v and observation j,
      w_vj * (pi(K, R_v, t_v, X_bar_vj + sum_i lambda_i V_vij) - x_vj)
    """
    _check_keypoint_correspondence(problem)
    K = problem.intrinsics.matrix
    Rs = np.asarray(Rs, dtype=np.float64).reshape(problem.num_views, 3, 3)
    ts = np.asarray(ts, dtype=np.float64).reshape(problem.num_views, 3)
    weights = problem.keypoints.weight_matrix
    parts = []
    for v in range(problem.num_views):
        X = problem.deformed_keypoints(v, lambdas)
        w = effective_weights(weights[v], min_weight)
        parts.append(weighted_reprojection_residual(K, Rs[v], ts[v], X, problem.keypoints.uv[v], w))
    if not parts:
        return np.zeros((0,), dtype=np.float64)
    return np.concatenate(parts, axis=0)


def _jacobian_sparsity(problem: MultiViewShapeAndPoseProblem, *, with_prior: bool):
    from scipy.sparse import lil_matrix  # type: ignore

    n_views, n_obs, n_vec = problem.num_views, problem.num_obs, problem.num_vec
    n_rows = 2 * n_obs * n_views + (n_vec if with_prior else 0)
    A = lil_matrix((n_rows, n_vec + 6 * n_views), dtype=int)
    for v in range(n_views):
        rows = slice(2 * n_obs * v, 2 * n_obs * (v + 1))
        if n_vec:
            A[rows, :n_vec] = 1
        A[rows, n_vec + 6 * v : n_vec + 6 * v + 6] = 1
    if with_prior:
        base = 2 * n_obs * n_views
        for i in range(n_vec):
            A[base + i, i] = 1
    return A


def adjust_multiview_shape_and_pose(
    problem: MultiViewShapeAndPoseProblem,
    *,
    config: SolverConfig | None = None,
) -> MultiViewAdjustmentResult:
    """
    Joint adjustment of the shared lambdas and every view's pose.

    Parameter layout: [lambda (numVec), rvec_0, t_0, rvec_1, t_1, ...]. The
    shape is rigidly shared, poses are independent, observations tie them.
    """
    config = SolverConfig() if config is None else config
    _check_keypoint_correspondence(problem)
    if problem.num_views == 0 or problem.num_obs == 0:
        raise ValueError("multi-view problem has no observations")

    n_views, n_vec = problem.num_views, problem.num_vec
    prior = np.sqrt(float(config.shape_prior_weight))
    p0 = np.concatenate(
        [np.array(problem.lambdas, dtype=np.float64)]
        + [pose_to_params(problem.poses.rotation(v), problem.poses.translation(v)) for v in range(n_views)],
        axis=0,
    )

    def unpack(p: np.ndarray) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        lam = p[:n_vec]
        Rs = np.empty((n_views, 3, 3), dtype=np.float64)
        ts = np.empty((n_views, 3), dtype=np.float64)
        for v in range(n_views):
            Rs[v], ts[v] = params_to_pose(p[n_vec + 6 * v : n_vec + 6 * v + 6])
        return lam, Rs, ts

    def fun(p: np.ndarray) -> np.ndarray:
        lam, Rs, ts = unpack(p)
        r = multiview_residuals(problem, lam, Rs, ts, min_weight=config.min_weight)
        if prior > 0 and n_vec:
            r = np.concatenate([r, prior * lam], axis=0)
        return r

    sparsity = _jacobian_sparsity(problem, with_prior=prior > 0 and n_vec > 0)
    p, diag = run_least_squares(fun, p0, config=config, label="multi-view shape and pose adjustment", jac_sparsity=sparsity)
    lambdas, Rs, ts = unpack(p)
    reproj = multiview_residuals(problem, lambdas, Rs, ts, min_weight=config.min_weight)
    diag["weighted_rms_px"] = rms_pixel_error(reproj)
    for v in range(n_views):
        diag[f"view{v}_weighted_rms_px"] = rms_pixel_error(reproj[2 * problem.num_obs * v : 2 * problem.num_obs * (v + 1)])
    return MultiViewAdjustmentResult(lambdas=lambdas.copy(), Rs=Rs, ts=ts, diagnostics=diag)
