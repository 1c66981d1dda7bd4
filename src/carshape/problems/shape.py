from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from carshape.core.types import PoseSet
from carshape.parsing import TokenReader
from carshape.problems.pose import PoseProblem, read_single_view_fields


@dataclass(frozen=True, eq=False)
class ShapeProblem(PoseProblem):
    """
    Single-view shape adjustment problem.

    Same fields as `PoseProblem`, followed in the file by the rotation
    (9 values, column-major) and translation (3 values) of a previous pose
    solve. The pose is given data here; the unknowns are the lambdas, with an
    optional pose refinement decided by the caller.
    """

    kind = "shape"

    pose: PoseSet

    def __post_init__(self) -> None:
        super().__post_init__()
        if self.pose.num_views != 1:
            raise ValueError("single-view shape problem needs exactly one pose")

    @classmethod
    def read(cls, reader: TokenReader) -> "ShapeProblem":
        fields = read_single_view_fields(reader)
        pose = PoseSet.read(reader, num_views=1)
        return cls(pose=pose, **fields)

    @property
    def rot(self) -> np.ndarray:
        """Flat column-major rotation, as stored."""
        return self.pose.rotations

    @property
    def trans(self) -> np.ndarray:
        return self.pose.translations

    @property
    def rotation(self) -> np.ndarray:
        return self.pose.rotation(0)

    @property
    def translation(self) -> np.ndarray:
        return self.pose.translation(0)

    def format_lines(self) -> list[str]:
        return super().format_lines() + self.pose.format_lines()
