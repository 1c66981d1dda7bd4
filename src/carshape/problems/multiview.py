from __future__ import annotations

from dataclasses import dataclass
from typing import cast

import numpy as np

from carshape.core.types import CameraIntrinsics, CarDimensions, ObservationSet, PoseSet, ShapeBasis
from carshape.parsing import TokenReader, format_floats, readonly
from carshape.problems.base import ProblemFile


@dataclass(frozen=True, eq=False)
class MultiViewShapeAndPoseProblem(ProblemFile):
    """
    Joint shape and pose adjustment over several views.

    File order:
      numViews, numPts, numObs, h w l, K (9),
      car center (3*numViews),
      observations (2*numObs*numViews), weights (numObs*numViews),
      X_bar (3*numObs*numViews), numVec,
      V (numViews*numVec*3*numPts; view, vector, keypoint, coordinate),
      lambdas (numVec), rotations (9*numViews, column-major), translations (3*numViews)

    The mean shape and basis are stored per view, but there is a single
    lambda vector shared by all views: one car explained by every view.
    """

    kind = "multiview"

    dimensions: CarDimensions
    intrinsics: CameraIntrinsics
    car_center: np.ndarray  # flat (numViews*3,)
    keypoints: ObservationSet
    shape: ShapeBasis
    lambdas: np.ndarray  # (numVec,)
    poses: PoseSet

    def __post_init__(self) -> None:
        nv = self.keypoints.num_views
        if self.shape.num_views != nv or self.poses.num_views != nv:
            raise ValueError(
                f"inconsistent view counts: observations {nv}, shape {self.shape.num_views}, poses {self.poses.num_views}"
            )
        if not self.keypoints.weighted:
            raise ValueError("multi-view problem needs observation weights")
        if self.shape.num_mean != self.keypoints.num_obs:
            raise ValueError(
                f"mean shape has {self.shape.num_mean} points per view but there are {self.keypoints.num_obs} observations"
            )
        object.__setattr__(self, "car_center", readonly(self.car_center, 3 * nv, "car centers"))
        object.__setattr__(self, "lambdas", readonly(self.lambdas, self.shape.num_vec, "lambdas"))

    @classmethod
    def read(cls, reader: TokenReader) -> "MultiViewShapeAndPoseProblem":
        num_views = reader.read_count("numViews")
        num_pts = reader.read_count("numPts")
        num_obs = reader.read_count("numObs")
        dimensions = CarDimensions.read(reader)
        intrinsics = CameraIntrinsics.read(reader)
        car_center = reader.read_floats(3 * num_views, "car_center")
        keypoints = ObservationSet.read(reader, num_views=num_views, num_obs=num_obs)
        shape = ShapeBasis.read(reader, num_views=num_views, num_pts=num_pts, num_mean=num_obs)
        lambdas = reader.read_floats(shape.num_vec, "lambdas")
        poses = PoseSet.read(reader, num_views=num_views)
        return cls(
            dimensions=dimensions,
            intrinsics=intrinsics,
            car_center=car_center,
            keypoints=keypoints,
            shape=shape,
            lambdas=lambdas,
            poses=poses,
        )

    # Dimensions

    @property
    def num_views(self) -> int:
        return self.keypoints.num_views

    @property
    def num_pts(self) -> int:
        return self.shape.num_pts

    @property
    def num_obs(self) -> int:
        return self.keypoints.num_obs

    @property
    def num_vec(self) -> int:
        return self.shape.num_vec

    @property
    def car_height(self) -> float:
        return self.dimensions.height

    @property
    def car_width(self) -> float:
        return self.dimensions.width

    @property
    def car_length(self) -> float:
        return self.dimensions.length

    # Flat buffers, file order

    @property
    def K(self) -> np.ndarray:
        return self.intrinsics.values

    @property
    def car_centers(self) -> np.ndarray:
        """(numViews, 3) view of `car_center`."""
        return self.car_center.reshape(self.num_views, 3)

    @property
    def observations(self) -> np.ndarray:
        return self.keypoints.points

    @property
    def observation_weights(self) -> np.ndarray:
        # __post_init__ rejects unweighted keypoints.
        return cast(np.ndarray, self.keypoints.weights)

    @property
    def X_bar(self) -> np.ndarray:
        return self.shape.mean

    @property
    def V(self) -> np.ndarray:
        return self.shape.vectors

    @property
    def rotations(self) -> np.ndarray:
        return self.poses.rotations

    @property
    def translations(self) -> np.ndarray:
        return self.poses.translations

    def basis_offset(self, view: int, vec: int, pt: int, coord: int) -> int:
        """Flat index of V[view, vec, pt, coord]."""
        return self.shape.offset(view, vec, pt, coord)

    def deformed_keypoints(self, view: int, lambdas: np.ndarray | None = None) -> np.ndarray:
        return self.shape.deform(self.lambdas if lambdas is None else lambdas, view=view)

    def summary(self) -> dict[str, int]:
        return {"num_views": self.num_views, "num_pts": self.num_pts, "num_obs": self.num_obs, "num_vec": self.num_vec}

    def format_lines(self) -> list[str]:
        lines = [f"{self.num_views} {self.num_pts} {self.num_obs}"]
        lines += self.dimensions.format_lines()
        lines += self.intrinsics.format_lines()
        lines += [format_floats(c) for c in self.car_centers]
        lines += self.keypoints.format_lines()
        lines += self.shape.format_lines()
        lines.append(format_floats(self.lambdas))
        lines += self.poses.format_lines()
        return lines
