"""
Synthetic problem files with known ground truth.

A box-like car of 14 keypoints is deformed by a random basis, placed in front
of a KITTI-like camera and projected. Used by the tests and by `carshape synth`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from carshape.core.projection import project_points
from carshape.core.types import CameraIntrinsics, CarDimensions, GroundPlane, ObservationSet, PoseSet, ShapeBasis
from carshape.problems import GroundPlaneProblem, MultiViewShapeAndPoseProblem, PoseProblem, ShapeProblem

KITTI_LIKE_K = np.array([[721.5, 0.0, 609.6], [0.0, 721.5, 172.9], [0.0, 0.0, 1.0]], dtype=np.float64)


@dataclass(frozen=True, eq=False)
class SyntheticCar:
    dimensions: CarDimensions
    mean: np.ndarray  # (N,3)
    basis: np.ndarray  # (numVec,N,3)
    lambdas: np.ndarray  # (numVec,)

    @property
    def keypoints(self) -> np.ndarray:
        return self.mean + np.einsum("i,ijk->jk", self.lambdas, self.basis)


def _rotation(rng: np.random.Generator, max_deg: float) -> np.ndarray:
    from scipy.spatial.transform import Rotation as Rot  # type: ignore

    axis = rng.normal(size=3)
    axis /= np.linalg.norm(axis)
    angle = np.deg2rad(rng.uniform(-max_deg, max_deg))
    return Rot.from_rotvec(angle * axis).as_matrix()


def make_car(rng: np.random.Generator, *, num_pts: int = 14, num_vec: int = 5, deformation: float = 0.05) -> SyntheticCar:
    h, w, l = 1.5, 1.7, 4.2
    # Box corners first (bottom then top), then points jittered over the box.
    corners = np.array(
        [[sx * l / 2, sy * h / 2, sz * w / 2] for sy in (1, -1) for sx in (1, -1) for sz in (1, -1)],
        dtype=np.float64,
    )
    extra = rng.uniform(-0.5, 0.5, size=(max(num_pts - 8, 0), 3)) * np.array([l, h, w])
    mean = np.concatenate([corners, extra], axis=0)[:num_pts]
    basis = rng.normal(scale=1.0, size=(num_vec, num_pts, 3))
    lambdas = rng.normal(scale=deformation, size=(num_vec,))
    return SyntheticCar(dimensions=CarDimensions(height=h, width=w, length=l), mean=mean, basis=basis, lambdas=lambdas)


def _observe(
    rng: np.random.Generator, R: np.ndarray, t: np.ndarray, X: np.ndarray, noise_px: float
) -> tuple[np.ndarray, np.ndarray]:
    uv = project_points(KITTI_LIKE_K, R, t, X)
    if noise_px > 0:
        uv = uv + rng.normal(scale=noise_px, size=uv.shape)
    weights = rng.uniform(0.5, 1.0, size=(X.shape[0],))
    return uv, weights


def _car_pose(rng: np.random.Generator, max_deg: float = 10.0) -> tuple[np.ndarray, np.ndarray]:
    t = np.array([rng.uniform(-3.0, 3.0), rng.uniform(0.5, 1.5), rng.uniform(12.0, 20.0)])
    return _rotation(rng, max_deg), t


def _single_view_fields(
    rng: np.random.Generator, car: SyntheticCar, R: np.ndarray, t: np.ndarray, noise_px: float, lambdas: np.ndarray
) -> dict[str, Any]:
    uv, weights = _observe(rng, R, t, car.keypoints, noise_px)
    n = car.mean.shape[0]
    return {
        "car_center": t + rng.normal(scale=0.1, size=3),
        "dimensions": car.dimensions,
        "intrinsics": CameraIntrinsics.from_matrix(KITTI_LIKE_K),
        "keypoints": ObservationSet(num_views=1, num_obs=n, points=uv.reshape(-1), weights=weights),
        "shape": ShapeBasis(
            num_views=1, num_pts=n, num_mean=n, num_vec=car.basis.shape[0], mean=car.mean.reshape(-1), vectors=car.basis.reshape(-1)
        ),
        "lambdas": lambdas,
    }


def synth_pose_problem(
    seed: int = 0, *, num_pts: int = 14, num_vec: int = 5, noise_px: float = 0.0
) -> tuple[PoseProblem, dict[str, Any]]:
    """Pose problem whose stored lambdas are the true ones; truth holds R, t."""
    rng = np.random.default_rng(seed)
    car = make_car(rng, num_pts=num_pts, num_vec=num_vec)
    R, t = _car_pose(rng)
    problem = PoseProblem(**_single_view_fields(rng, car, R, t, noise_px, car.lambdas))
    return problem, {"R": R, "t": t, "lambdas": car.lambdas}


def synth_shape_problem(
    seed: int = 0, *, num_pts: int = 14, num_vec: int = 5, noise_px: float = 0.0
) -> tuple[ShapeProblem, dict[str, Any]]:
    """Shape problem with the true pose stored and lambdas initialized to zero."""
    rng = np.random.default_rng(seed)
    car = make_car(rng, num_pts=num_pts, num_vec=num_vec)
    R, t = _car_pose(rng)
    fields = _single_view_fields(rng, car, R, t, noise_px, np.zeros((num_vec,)))
    problem = ShapeProblem(pose=PoseSet.from_matrices(R[None], t[None]), **fields)
    return problem, {"R": R, "t": t, "lambdas": car.lambdas}


def synth_ground_plane_problem(
    seed: int = 0, *, num_pts: int = 20, num_views: int = 3, noise_px: float = 0.0, init_noise: float = 0.05
) -> tuple[GroundPlaneProblem, dict[str, Any]]:
    """
    Points on the road plane y = 1.65 (camera height), seen from a camera
    driving forward; stored 3D points are perturbed by `init_noise` meters.
    """
    rng = np.random.default_rng(seed)
    plane = np.array([0.0, 1.0, 0.0, -1.65])
    X = np.stack(
        [rng.uniform(-4.0, 4.0, num_pts), np.full(num_pts, 1.65), rng.uniform(8.0, 25.0, num_pts)], axis=-1
    )
    Rs = np.stack([_rotation(rng, 2.0) for _ in range(num_views)]) if num_views else np.zeros((0, 3, 3))
    # World -> camera v: camera moved forward by 1.5 m per view.
    ts = np.stack([np.array([0.0, 0.0, -1.5 * v]) for v in range(num_views)]) if num_views else np.zeros((0, 3))
    uv = np.stack([project_points(KITTI_LIKE_K, Rs[v], ts[v], X) for v in range(num_views)]) if num_views else np.zeros((0, num_pts, 2))
    if noise_px > 0:
        uv = uv + rng.normal(scale=noise_px, size=uv.shape)
    X0 = X + rng.normal(scale=init_noise, size=X.shape)
    problem = GroundPlaneProblem(
        intrinsics=CameraIntrinsics.from_matrix(KITTI_LIKE_K),
        points3d=X0.reshape(-1),
        poses=PoseSet.from_matrices(Rs, ts),
        observations=ObservationSet(num_views=num_views, num_obs=num_pts, points=uv.reshape(-1)),
        plane=GroundPlane(coeffs=plane),
    )
    return problem, {"points3d": X, "plane": plane}


def synth_multiview_problem(
    seed: int = 0,
    *,
    num_views: int = 3,
    num_pts: int = 14,
    num_vec: int = 5,
    noise_px: float = 0.0,
    pose_noise_deg: float = 2.0,
    pose_noise_m: float = 0.2,
) -> tuple[MultiViewShapeAndPoseProblem, dict[str, Any]]:
    """
    One car seen from `num_views` poses. Every view carries the same mean and
    basis; stored lambdas are zero and stored poses are perturbed.
    """
    rng = np.random.default_rng(seed)
    car = make_car(rng, num_pts=num_pts, num_vec=num_vec)
    Rs, ts, Rs0, ts0, uvs, ws = [], [], [], [], [], []
    for _ in range(num_views):
        R, t = _car_pose(rng, max_deg=30.0)
        uv, w = _observe(rng, R, t, car.keypoints, noise_px)
        Rs.append(R)
        ts.append(t)
        Rs0.append(_rotation(rng, pose_noise_deg) @ R)
        ts0.append(t + rng.normal(scale=pose_noise_m, size=3))
        uvs.append(uv)
        ws.append(w)
    Rs_true = np.asarray(Rs).reshape(num_views, 3, 3)
    ts_true = np.asarray(ts).reshape(num_views, 3)
    problem = MultiViewShapeAndPoseProblem(
        dimensions=car.dimensions,
        intrinsics=CameraIntrinsics.from_matrix(KITTI_LIKE_K),
        car_center=ts_true.reshape(-1),
        keypoints=ObservationSet(
            num_views=num_views,
            num_obs=num_pts,
            points=np.asarray(uvs).reshape(-1),
            weights=np.asarray(ws).reshape(-1),
        ),
        shape=ShapeBasis(
            num_views=num_views,
            num_pts=num_pts,
            num_mean=num_pts,
            num_vec=num_vec,
            mean=np.tile(car.mean.reshape(-1), num_views),
            vectors=np.tile(car.basis.reshape(-1), num_views),
        ),
        lambdas=np.zeros((num_vec,)),
        poses=PoseSet.from_matrices(np.asarray(Rs0).reshape(num_views, 3, 3), np.asarray(ts0).reshape(num_views, 3)),
    )
    return problem, {"lambdas": car.lambdas, "Rs": Rs_true, "ts": ts_true}


SYNTHESIZERS = {
    "pose": synth_pose_problem,
    "shape": synth_shape_problem,
    "ground-plane": synth_ground_plane_problem,
    "multiview": synth_multiview_problem,
}
