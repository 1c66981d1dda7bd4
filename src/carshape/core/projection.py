from __future__ import annotations

import numpy as np


def transform_points(R: np.ndarray, t: np.ndarray, X: np.ndarray) -> np.ndarray:
    """X_cam = R X + t for points shaped (N,3)."""
    R = np.asarray(R, dtype=np.float64).reshape(3, 3)
    t = np.asarray(t, dtype=np.float64).reshape(1, 3)
    X = np.asarray(X, dtype=np.float64).reshape(-1, 3)
    return X @ R.T + t


def project_points(K: np.ndarray, R: np.ndarray, t: np.ndarray, X: np.ndarray) -> np.ndarray:
    """
    Pinhole projection pi(K, R, t, X) -> (N,2) pixels.

    Points with |Z| ~ 0 in the camera frame project to NaN.
    """
    K = np.asarray(K, dtype=np.float64).reshape(3, 3)
    P = transform_points(R, t, X) @ K.T
    uv = np.full((P.shape[0], 2), np.nan, dtype=np.float64)
    z = P[:, 2]
    good = np.isfinite(z) & (np.abs(z) > 1e-12)
    uv[good] = P[good, :2] / z[good, None]
    return uv


def weighted_reprojection_residual(
    K: np.ndarray,
    R: np.ndarray,
    t: np.ndarray,
    X: np.ndarray,
    uv_obs: np.ndarray,
    weights: np.ndarray,
) -> np.ndarray:
    """
    Flat residual w_j * (pi(K, R, t, X_j) - x_j), two entries per keypoint.

    Points behind the camera plane give NaN projections; their residual is
    replaced by a large constant so the solver steps away from them.
    """
    uv = project_points(K, R, t, X)
    r = uv - np.asarray(uv_obs, dtype=np.float64).reshape(-1, 2)
    r = np.where(np.isfinite(r), r, 1e6)
    return (r * np.asarray(weights, dtype=np.float64).reshape(-1, 1)).reshape(-1)
