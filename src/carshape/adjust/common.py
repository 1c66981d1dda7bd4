from __future__ import annotations

import logging
from typing import Any, Callable

import numpy as np

from carshape.config import SolverConfig

logger = logging.getLogger(__name__)


def effective_weights(weights: np.ndarray, min_weight: float) -> np.ndarray:
    """Keypoint weights with entries <= min_weight zeroed (the block stays, contributing 0)."""
    w = np.array(weights, dtype=np.float64).reshape(-1)
    if min_weight > 0.0:
        w[w <= min_weight] = 0.0
    return w


def pose_to_params(R: np.ndarray, t: np.ndarray) -> np.ndarray:
    """(rvec(3), t(3)); R is projected onto SO(3) if it is not exactly orthonormal."""
    from scipy.spatial.transform import Rotation as Rot  # type: ignore

    rvec = Rot.from_matrix(np.asarray(R, dtype=np.float64).reshape(3, 3)).as_rotvec()
    return np.concatenate([rvec, np.asarray(t, dtype=np.float64).reshape(3)], axis=0)


def params_to_pose(p: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    from scipy.spatial.transform import Rotation as Rot  # type: ignore

    p = np.asarray(p, dtype=np.float64).reshape(6)
    return Rot.from_rotvec(p[:3]).as_matrix(), p[3:].copy()


def run_least_squares(
    fun: Callable[[np.ndarray], np.ndarray],
    p0: np.ndarray,
    *,
    config: SolverConfig,
    label: str,
    jac_sparsity: Any = None,
) -> tuple[np.ndarray, dict[str, float]]:
    """
    Minimize 0.5*sum(rho(fun(p)^2)) from p0 and return (p, diagnostics).

    An empty parameter vector is returned unchanged with the initial cost.
    """
    from scipy.optimize import least_squares  # type: ignore

    p0 = np.asarray(p0, dtype=np.float64).reshape(-1)
    r0 = fun(p0)
    initial_cost = 0.5 * float(r0 @ r0)
    if p0.size == 0:
        logger.info("%s: nothing to optimize (cost %.6g)", label, initial_cost)
        return p0.copy(), {
            "initial_cost": initial_cost,
            "final_cost": initial_cost,
            "nfev": 0.0,
            "success": 1.0,
            "n_residuals": float(r0.size),
            "n_params": 0.0,
        }

    logger.info("%s: %d parameters, %d residuals, initial cost %.6g", label, p0.size, r0.size, initial_cost)
    kwargs: dict[str, Any] = {}
    if jac_sparsity is not None:
        kwargs["jac_sparsity"] = jac_sparsity
    sol = least_squares(
        fun,
        p0,
        method="trf",
        loss=config.loss,
        f_scale=float(config.f_scale_px),
        max_nfev=int(config.max_nfev),
        **kwargs,
    )
    r = fun(sol.x)
    final_cost = 0.5 * float(r @ r)
    logger.info("%s: final cost %.6g after %d evaluations (%s)", label, final_cost, sol.nfev, sol.message)
    diag = {
        "initial_cost": initial_cost,
        "final_cost": final_cost,
        "robust_cost": float(sol.cost),
        "nfev": float(sol.nfev),
        "success": float(bool(sol.success)),
        "n_residuals": float(r.size),
        "n_params": float(p0.size),
    }
    return sol.x.copy(), diag


def rms_pixel_error(residuals: np.ndarray) -> float:
    r = np.asarray(residuals, dtype=np.float64).reshape(-1, 2)
    if r.shape[0] == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.sum(r * r, axis=1))))
