from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from carshape.parsing import ParseError, ParseErrorKind
from carshape.problems import MultiViewShapeAndPoseProblem
from carshape.sim.synthetic import synth_multiview_problem


def _v_sentinel(view: int, vec: int, pt: int, coord: int) -> float:
    return 100000.0 * (view + 1) + 1000.0 * vec + 10.0 * pt + coord


def _multiview_text(num_views: int, num_pts: int, num_obs: int, num_vec: int) -> str:
    toks: list[str] = [str(num_views), str(num_pts), str(num_obs), "1.5", "1.7", "4.2"]
    toks += ["700", "0", "600", "0", "700", "180", "0", "0", "1"]
    toks += [f"{10 * v + c}" for v in range(num_views) for c in range(3)]
    toks += [f"{-(1000 * v + 10 * j + c)}" for v in range(num_views) for j in range(num_obs) for c in range(2)]
    toks += [f"{0.5 + 0.001 * (100 * v + j)}" for v in range(num_views) for j in range(num_obs)]
    toks += [f"{7000 + 1000 * v + 10 * j + c}" for v in range(num_views) for j in range(num_obs) for c in range(3)]
    toks.append(str(num_vec))
    toks += [
        repr(_v_sentinel(v, i, j, c))
        for v in range(num_views)
        for i in range(num_vec)
        for j in range(num_pts)
        for c in range(3)
    ]
    toks += [f"{0.1 * (i + 1)}" for i in range(num_vec)]
    toks += [f"{9000 + 10 * v + k}" for v in range(num_views) for k in range(9)]
    toks += [f"{8000 + 10 * v + k}" for v in range(num_views) for k in range(3)]
    return " ".join(toks) + "\n"


def test_sizes_follow_declared_dimensions() -> None:
    nv, npts, nobs, nvec = 3, 4, 4, 2
    p = MultiViewShapeAndPoseProblem.loads(_multiview_text(nv, npts, nobs, nvec))
    assert (p.num_views, p.num_pts, p.num_obs, p.num_vec) == (nv, npts, nobs, nvec)
    assert (p.car_height, p.car_width, p.car_length) == (1.5, 1.7, 4.2)
    assert p.K.size == 9
    assert p.car_center.size == 3 * nv
    assert p.observations.size == 2 * nobs * nv
    assert p.observation_weights.size == nobs * nv
    assert p.X_bar.size == 3 * nobs * nv
    assert p.V.size == nv * nvec * 3 * npts
    assert p.lambdas.size == nvec
    assert p.rotations.size == 9 * nv
    assert p.translations.size == 3 * nv


def test_basis_offset_retrieves_sentinels() -> None:
    nv, npts, nvec = 2, 5, 3
    p = MultiViewShapeAndPoseProblem.loads(_multiview_text(nv, npts, npts, nvec))
    seen = set()
    for v in range(nv):
        for i in range(nvec):
            for j in range(npts):
                for c in range(3):
                    off = p.basis_offset(v, i, j, c)
                    assert off == v * 3 * nvec * npts + i * 3 * npts + 3 * j + c
                    assert p.V[off] == _v_sentinel(v, i, j, c)
                    assert p.shape.basis[v, i, j, c] == _v_sentinel(v, i, j, c)
                    seen.add(off)
    assert seen == set(range(p.V.size))


def test_per_view_fields_stay_with_their_view() -> None:
    nv, nobs = 3, 2
    p = MultiViewShapeAndPoseProblem.loads(_multiview_text(nv, 4, nobs, 1))
    for v in range(nv):
        assert p.car_centers[v].tolist() == [10.0 * v, 10.0 * v + 1, 10.0 * v + 2]
        assert p.translations[3 * v + 2] == 8000 + 10 * v + 2
        assert p.rotations[9 * v + 8] == 9000 + 10 * v + 8
        for j in range(nobs):
            assert p.keypoints.uv[v, j, 1] == -(1000 * v + 10 * j + 1)
            assert p.keypoints.weight_matrix[v, j] == pytest.approx(0.5 + 0.001 * (100 * v + j))
            assert p.shape.mean_shape[v, j, 2] == 7000 + 1000 * v + 10 * j + 2
    # One set of lambdas for every view.
    assert p.lambdas.tolist() == [0.1]


def test_observation_count_may_differ_from_keypoint_count() -> None:
    p = MultiViewShapeAndPoseProblem.loads(_multiview_text(2, 5, 3, 2))
    assert p.X_bar.size == 2 * 3 * 3
    assert p.V.size == 2 * 2 * 3 * 5


def test_every_truncation_point_fails() -> None:
    tokens = _multiview_text(2, 3, 3, 2).split()
    for k in range(len(tokens)):
        with pytest.raises(ParseError) as ei:
            MultiViewShapeAndPoseProblem.loads(" ".join(tokens[:k]))
        assert ei.value.kind is ParseErrorKind.PREMATURE_EOF


def test_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ParseError) as ei:
        MultiViewShapeAndPoseProblem.load(tmp_path / "missing.txt")
    assert ei.value.kind is ParseErrorKind.FILE_NOT_FOUND


def test_writer_keeps_token_order() -> None:
    text = _multiview_text(2, 3, 3, 2)
    written = MultiViewShapeAndPoseProblem.loads(text).dumps()
    assert [float(t) for t in written.split()] == [float(t) for t in text.split()]


def test_roundtrip_synthetic(tmp_path: Path) -> None:
    problem, _ = synth_multiview_problem(seed=6, num_views=2, num_pts=10, num_vec=3, noise_px=0.5)
    again = MultiViewShapeAndPoseProblem.load(problem.save(tmp_path / "mv.txt"))
    for name in ("K", "car_center", "observations", "observation_weights", "X_bar", "V", "lambdas", "rotations", "translations"):
        assert np.array_equal(getattr(again, name), getattr(problem, name)), name


def test_malformed_basis_token() -> None:
    tokens = _multiview_text(1, 2, 2, 1).split()
    # numViews, numPts, numObs, hwl, K, center, obs, weights, X_bar, numVec -> first V token.
    first_v = 3 + 3 + 9 + 3 + 4 + 2 + 6 + 1
    assert float(tokens[first_v]) == _v_sentinel(0, 0, 0, 0)
    tokens[first_v] = "1.0.0"
    with pytest.raises(ParseError) as ei:
        MultiViewShapeAndPoseProblem.loads(" ".join(tokens))
    assert ei.value.kind is ParseErrorKind.UNEXPECTED_TOKEN
    assert ei.value.field == "V"
