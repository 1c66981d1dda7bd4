from __future__ import annotations

from dataclasses import dataclass
from typing import Any, cast

import numpy as np

from carshape.core.types import CameraIntrinsics, CarDimensions, ObservationSet, ShapeBasis
from carshape.parsing import TokenReader, format_floats, readonly
from carshape.problems.base import ProblemFile


def read_single_view_fields(reader: TokenReader) -> dict[str, Any]:
    """
    Fields common to the single-view pose and shape files, in file order:

      numPts, car center (3), h w l, K (9), observations (2*numPts),
      weights (numPts), X_bar (3*numPts), numVec, V (numVec*3*numPts),
      lambdas (numVec)
    """
    num_pts = reader.read_count("numPts")
    car_center = reader.read_floats(3, "car_center")
    dimensions = CarDimensions.read(reader)
    intrinsics = CameraIntrinsics.read(reader)
    keypoints = ObservationSet.read(reader, num_views=1, num_obs=num_pts)
    shape = ShapeBasis.read(reader, num_views=1, num_pts=num_pts, num_mean=num_pts)
    lambdas = reader.read_floats(shape.num_vec, "lambdas")
    return {
        "car_center": car_center,
        "dimensions": dimensions,
        "intrinsics": intrinsics,
        "keypoints": keypoints,
        "shape": shape,
        "lambdas": lambdas,
    }


@dataclass(frozen=True, eq=False)
class PoseProblem(ProblemFile):
    """
    Single-view pose adjustment problem.

    Unknowns downstream are the camera pose (R, t), optionally lambdas; the
    residual for keypoint j is
      w_j * (pi(K, R, t, X_bar_j + sum_i lambda_i V_ij) - x_j)
    """

    kind = "pose"

    car_center: np.ndarray  # (3,)
    dimensions: CarDimensions
    intrinsics: CameraIntrinsics
    keypoints: ObservationSet
    shape: ShapeBasis
    lambdas: np.ndarray  # (numVec,)

    def __post_init__(self) -> None:
        object.__setattr__(self, "car_center", readonly(self.car_center, 3, "car center"))
        if self.keypoints.num_views != 1 or self.shape.num_views != 1:
            raise ValueError("single-view problem needs exactly one view")
        if not self.keypoints.weighted:
            raise ValueError("single-view problem needs observation weights")
        if self.shape.num_pts != self.keypoints.num_obs or self.shape.num_mean != self.keypoints.num_obs:
            raise ValueError(
                f"shape has {self.shape.num_pts} keypoints but there are {self.keypoints.num_obs} observations"
            )
        object.__setattr__(self, "lambdas", readonly(self.lambdas, self.shape.num_vec, "lambdas"))

    @classmethod
    def read(cls, reader: TokenReader) -> "PoseProblem":
        return cls(**read_single_view_fields(reader))

    # Dimensions

    @property
    def num_pts(self) -> int:
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

    def deformed_keypoints(self, lambdas: np.ndarray | None = None) -> np.ndarray:
        """(num_pts,3) keypoints for the given (default: stored) lambdas."""
        return self.shape.deform(self.lambdas if lambdas is None else lambdas)

    def summary(self) -> dict[str, int]:
        return {"num_pts": self.num_pts, "num_vec": self.num_vec}

    def format_lines(self) -> list[str]:
        lines = [str(self.num_pts), format_floats(self.car_center)]
        lines += self.dimensions.format_lines()
        lines += self.intrinsics.format_lines()
        lines += self.keypoints.format_lines()
        lines += self.shape.format_lines()
        lines.append(format_floats(self.lambdas))
        return lines
