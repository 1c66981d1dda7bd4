from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from carshape.adjust.common import rms_pixel_error, run_least_squares
from carshape.config import SolverConfig
from carshape.core.projection import weighted_reprojection_residual
from carshape.core.types import plane_signed_distance
from carshape.problems.ground_plane import GroundPlaneProblem


@dataclass(frozen=True, eq=False)
class GroundPlaneAdjustmentResult:
    points3d: np.ndarray  # (numPoints,3)
    plane: np.ndarray  # (4,), unit normal when refined
    diagnostics: dict[str, float]


def ground_plane_residuals(
    problem: GroundPlaneProblem,
    points3d: np.ndarray,
    plane: np.ndarray | None = None,
    *,
    plane_weight: float = 1.0,
) -> np.ndarray:
    """
    Residual layout: view-major reprojection blocks (2 per point per view),
    then one point-to-plane distance per point scaled by sqrt(plane_weight).
    """
    X = np.asarray(points3d, dtype=np.float64).reshape(problem.num_pts, 3)
    K = problem.intrinsics.matrix
    ones = np.ones((problem.num_pts,), dtype=np.float64)
    parts = [
        weighted_reprojection_residual(K, problem.poses.rotation(v), problem.poses.translation(v), X, problem.observations.uv[v], ones)
        for v in range(problem.num_views)
    ]
    if plane_weight > 0:
        coeffs = problem.plane_parameters if plane is None else plane
        parts.append(np.sqrt(plane_weight) * plane_signed_distance(coeffs, X))
    if not parts:
        return np.zeros((0,), dtype=np.float64)
    return np.concatenate(parts, axis=0)


def _jacobian_sparsity(problem: GroundPlaneProblem, *, with_plane_rows: bool, refine_plane: bool):
    from scipy.sparse import lil_matrix  # type: ignore

    n_pts = problem.num_pts
    n_views = problem.num_views
    n_rows = 2 * n_pts * n_views + (n_pts if with_plane_rows else 0)
    n_cols = 3 * n_pts + (4 if refine_plane else 0)
    A = lil_matrix((n_rows, n_cols), dtype=int)
    for v in range(n_views):
        for j in range(n_pts):
            row = 2 * (v * n_pts + j)
            A[row : row + 2, 3 * j : 3 * j + 3] = 1
    if with_plane_rows:
        base = 2 * n_pts * n_views
        for j in range(n_pts):
            A[base + j, 3 * j : 3 * j + 3] = 1
            if refine_plane:
                A[base + j, 3 * n_pts :] = 1
    return A


def adjust_ground_plane(problem: GroundPlaneProblem, *, config: SolverConfig | None = None) -> GroundPlaneAdjustmentResult:
    """
    Refine the shared 3D points (and the plane with `config.refine_plane`)
    against their reprojections in every view, pulling points toward the plane.
    Poses stay fixed.
    """
    config = SolverConfig() if config is None else config
    if problem.num_pts == 0:
        raise ValueError("ground-plane problem has no points")
    if problem.num_views == 0 and config.plane_weight <= 0:
        raise ValueError("ground-plane problem has no views and no plane term")

    n_pts = problem.num_pts
    refine_plane = bool(config.refine_plane)
    plane_weight = float(config.plane_weight)
    plane0 = np.array(problem.plane_parameters, dtype=np.float64)
    p0 = np.array(problem.points3d, dtype=np.float64)
    if refine_plane:
        p0 = np.concatenate([p0, plane0], axis=0)

    def fun(p: np.ndarray) -> np.ndarray:
        plane = p[3 * n_pts :] if refine_plane else plane0
        return ground_plane_residuals(problem, p[: 3 * n_pts], plane, plane_weight=plane_weight)

    sparsity = _jacobian_sparsity(problem, with_plane_rows=plane_weight > 0, refine_plane=refine_plane)
    p, diag = run_least_squares(fun, p0, config=config, label="ground-plane adjustment", jac_sparsity=sparsity)

    points3d = p[: 3 * n_pts].reshape(n_pts, 3).copy()
    if refine_plane:
        plane = p[3 * n_pts :].copy()
        plane /= np.linalg.norm(plane[:3])
    else:
        plane = plane0
    reproj = ground_plane_residuals(problem, points3d, plane, plane_weight=0.0)
    diag["rms_px"] = rms_pixel_error(reproj)
    diag["mean_abs_plane_distance"] = float(np.mean(np.abs(plane_signed_distance(plane, points3d))))
    return GroundPlaneAdjustmentResult(points3d=points3d, plane=plane, diagnostics=diag)
