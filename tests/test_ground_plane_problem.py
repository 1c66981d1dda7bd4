from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from carshape.parsing import ParseError, ParseErrorKind
from carshape.problems import GroundPlaneProblem
from carshape.sim.synthetic import synth_ground_plane_problem


def _ground_plane_text(num_views: int, num_pts: int) -> str:
    """Each value encodes where it sits so that misplaced reads are visible."""
    toks: list[str] = [str(num_views), str(num_pts)]
    toks += ["700", "0", "600", "0", "700", "180", "0", "0", "1"]
    toks += [f"{1000 + 10 * j + c}" for j in range(num_pts) for c in range(3)]
    toks += [f"{2000 + 10 * v + k}" for v in range(num_views) for k in range(9)]
    toks += [f"{3000 + 10 * v + k}" for v in range(num_views) for k in range(3)]
    toks += [f"{4000 + 100 * v + 10 * j + c}" for v in range(num_views) for j in range(num_pts) for c in range(2)]
    toks += ["0", "1", "0", "-1.65"]
    return " ".join(toks) + "\n"


def test_single_view_single_point_sizes() -> None:
    p = GroundPlaneProblem.loads(_ground_plane_text(1, 1))
    assert p.num_views == 1 and p.num_pts == 1
    assert p.Rs.size == 9
    assert p.ts.size == 3
    assert p.xs.size == 2
    assert p.points3d.size == 3
    assert p.plane_parameters.size == 4
    assert p.plane_parameters.tolist() == [0.0, 1.0, 0.0, -1.65]


@pytest.mark.parametrize("num_views,num_pts", [(3, 5), (1, 7), (4, 1)])
def test_sizes_and_view_major_layout(num_views: int, num_pts: int) -> None:
    p = GroundPlaneProblem.loads(_ground_plane_text(num_views, num_pts))
    assert p.points3d.size == 3 * num_pts
    assert p.Rs.size == 9 * num_views
    assert p.ts.size == 3 * num_views
    assert p.xs.size == 2 * num_pts * num_views
    assert p.plane_parameters.size == 4

    # 3D points are shared, poses and observations are per view.
    assert p.Xs[num_pts - 1, 2] == 1000 + 10 * (num_pts - 1) + 2
    for v in range(num_views):
        assert p.poses.translation(v)[1] == 3000 + 10 * v + 1
        assert p.poses.rotations[9 * v + 4] == 2000 + 10 * v + 4
        for j in range(num_pts):
            assert p.observations.uv[v, j, 1] == 4000 + 100 * v + 10 * j + 1
            assert p.xs[v * 2 * num_pts + 2 * j] == 4000 + 100 * v + 10 * j


def test_every_truncation_point_fails() -> None:
    tokens = _ground_plane_text(2, 3).split()
    for k in range(len(tokens)):
        with pytest.raises(ParseError) as ei:
            GroundPlaneProblem.loads(" ".join(tokens[:k]))
        assert ei.value.kind is ParseErrorKind.PREMATURE_EOF


def test_missing_file(tmp_path: Path) -> None:
    assert GroundPlaneProblem.try_load(tmp_path / "missing.txt") is None


def test_roundtrip_through_file(tmp_path: Path) -> None:
    problem, _ = synth_ground_plane_problem(seed=5, num_pts=6, num_views=2)
    again = GroundPlaneProblem.load(problem.save(tmp_path / "gp.txt"))
    for name in ("K", "points3d", "Rs", "ts", "xs", "plane_parameters"):
        assert np.array_equal(getattr(again, name), getattr(problem, name)), name


def test_writer_keeps_token_order() -> None:
    text = _ground_plane_text(2, 3)
    written = GroundPlaneProblem.loads(text).dumps()
    assert [float(t) for t in written.split()] == [float(t) for t in text.split()]


def test_extra_token_after_plane_is_rejected() -> None:
    with pytest.raises(ParseError) as ei:
        GroundPlaneProblem.loads(_ground_plane_text(1, 2) + " 7")
    assert ei.value.kind is ParseErrorKind.DIMENSION_MISMATCH
