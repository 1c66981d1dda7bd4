from __future__ import annotations

from pathlib import Path

from carshape.problems.base import ProblemFile
from carshape.problems.ground_plane import GroundPlaneProblem
from carshape.problems.multiview import MultiViewShapeAndPoseProblem
from carshape.problems.pose import PoseProblem
from carshape.problems.shape import ShapeProblem

PROBLEM_TYPES: dict[str, type[ProblemFile]] = {
    PoseProblem.kind: PoseProblem,
    GroundPlaneProblem.kind: GroundPlaneProblem,
    ShapeProblem.kind: ShapeProblem,
    MultiViewShapeAndPoseProblem.kind: MultiViewShapeAndPoseProblem,
}


def load_problem(kind: str, path: str | Path) -> ProblemFile:
    try:
        cls = PROBLEM_TYPES[kind]
    except KeyError:
        raise ValueError(f"unknown problem kind {kind!r} (expected one of {sorted(PROBLEM_TYPES)})") from None
    return cls.load(path)


__all__ = [
    "PROBLEM_TYPES",
    "ProblemFile",
    "PoseProblem",
    "GroundPlaneProblem",
    "ShapeProblem",
    "MultiViewShapeAndPoseProblem",
    "load_problem",
]
