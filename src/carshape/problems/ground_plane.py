from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from carshape.core.types import CameraIntrinsics, GroundPlane, ObservationSet, PoseSet
from carshape.parsing import TokenReader, format_floats, readonly
from carshape.problems.base import ProblemFile


@dataclass(frozen=True, eq=False)
class GroundPlaneProblem(ProblemFile):
    """
    Multi-view ground-plane adjustment problem.

    File order: numViews, numPoints, K (9), X (3*numPoints), R (9*numViews),
    t (3*numViews), x (2*numPoints*numViews, view-major), plane (4).

    The 3D points are one shared estimate refined by every view; poses and 2D
    observations are per view.
    """

    kind = "ground-plane"

    intrinsics: CameraIntrinsics
    points3d: np.ndarray  # flat (numPoints*3,)
    poses: PoseSet
    observations: ObservationSet
    plane: GroundPlane

    def __post_init__(self) -> None:
        if self.observations.weighted:
            raise ValueError("ground-plane observations carry no weights")
        if self.poses.num_views != self.observations.num_views:
            raise ValueError(
                f"{self.poses.num_views} poses but observations for {self.observations.num_views} views"
            )
        num_pts = self.observations.num_obs
        object.__setattr__(self, "points3d", readonly(self.points3d, 3 * num_pts, "3D points"))

    @classmethod
    def read(cls, reader: TokenReader) -> "GroundPlaneProblem":
        num_views = reader.read_count("numViews")
        num_pts = reader.read_count("numPoints")
        intrinsics = CameraIntrinsics.read(reader)
        points3d = reader.read_floats(3 * num_pts, "Xs")
        poses = PoseSet.read(reader, num_views=num_views)
        observations = ObservationSet.read(reader, num_views=num_views, num_obs=num_pts, weighted=False)
        plane = GroundPlane.read(reader)
        return cls(intrinsics=intrinsics, points3d=points3d, poses=poses, observations=observations, plane=plane)

    @property
    def num_views(self) -> int:
        return self.poses.num_views

    @property
    def num_pts(self) -> int:
        return self.observations.num_obs

    @property
    def K(self) -> np.ndarray:
        return self.intrinsics.values

    @property
    def Xs(self) -> np.ndarray:
        """(numPoints, 3) view of `points3d`."""
        return self.points3d.reshape(self.num_pts, 3)

    @property
    def Rs(self) -> np.ndarray:
        return self.poses.rotations

    @property
    def ts(self) -> np.ndarray:
        return self.poses.translations

    @property
    def xs(self) -> np.ndarray:
        return self.observations.points

    @property
    def plane_parameters(self) -> np.ndarray:
        return self.plane.coeffs

    def summary(self) -> dict[str, int]:
        return {"num_views": self.num_views, "num_pts": self.num_pts}

    def format_lines(self) -> list[str]:
        lines = [f"{self.num_views} {self.num_pts}"]
        lines += self.intrinsics.format_lines()
        lines += [format_floats(p) for p in self.Xs]
        lines += self.poses.format_lines()
        lines += self.observations.format_lines()
        lines += self.plane.format_lines()
        return lines
