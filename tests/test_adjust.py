from __future__ import annotations

import dataclasses

import numpy as np
import pytest

from carshape.adjust import (
    adjust_ground_plane,
    adjust_multiview_shape_and_pose,
    adjust_pose,
    adjust_shape,
    ground_plane_residuals,
    multiview_residuals,
    pose_residuals,
    shape_residuals,
)
from carshape.config import SolverConfig
from carshape.core.types import ObservationSet
from carshape.sim.synthetic import (
    synth_ground_plane_problem,
    synth_multiview_problem,
    synth_pose_problem,
    synth_shape_problem,
)

LINEAR = SolverConfig(loss="linear", shape_prior_weight=0.0, max_nfev=500)


def test_pose_residuals_vanish_at_truth() -> None:
    problem, truth = synth_pose_problem(seed=0)
    r = pose_residuals(problem, truth["R"], truth["t"])
    assert r.shape == (2 * problem.num_pts,)
    assert np.max(np.abs(r)) < 1e-8


def test_adjust_pose_recovers_truth() -> None:
    problem, truth = synth_pose_problem(seed=1)
    result = adjust_pose(problem, config=LINEAR)
    assert np.max(np.abs(result.R - truth["R"])) < 1e-4
    assert np.max(np.abs(result.t - truth["t"])) < 1e-3
    assert result.diagnostics["final_cost"] < 1e-6
    assert np.array_equal(result.lambdas, problem.lambdas)


def test_adjust_pose_with_lambdas_lowers_cost() -> None:
    problem, _ = synth_pose_problem(seed=2, noise_px=0.5)
    cfg = dataclasses.replace(LINEAR, refine_lambdas=True, shape_prior_weight=1.0)
    result = adjust_pose(problem, config=cfg)
    assert result.lambdas.shape == (problem.num_vec,)
    assert result.diagnostics["final_cost"] <= result.diagnostics["initial_cost"]


def test_adjust_shape_recovers_lambdas() -> None:
    problem, truth = synth_shape_problem(seed=3, num_pts=14, num_vec=4)
    assert np.all(problem.lambdas == 0.0)
    result = adjust_shape(problem, config=LINEAR)
    assert np.max(np.abs(result.lambdas - truth["lambdas"])) < 1e-4
    # Pose is given data unless refinement is requested.
    assert np.array_equal(result.R, problem.rotation)
    assert np.array_equal(result.t, problem.translation)


def test_adjust_shape_with_pose_refinement() -> None:
    problem, _ = synth_shape_problem(seed=4, num_vec=3)
    result = adjust_shape(problem, config=dataclasses.replace(LINEAR, refine_pose=True))
    assert np.max(np.abs(shape_residuals(problem, result.lambdas, result.R, result.t))) < 1e-3
    assert result.diagnostics["n_params"] == 3 + 6


def test_zero_weight_keypoint_is_ignored() -> None:
    problem, truth = synth_shape_problem(seed=5, num_vec=3)
    uv = np.array(problem.keypoints.uv[0])
    w = np.array(problem.observation_weights)
    uv[0] += 250.0
    w[0] = 0.0
    corrupted = dataclasses.replace(
        problem,
        keypoints=ObservationSet(num_views=1, num_obs=problem.num_pts, points=uv.reshape(-1), weights=w),
    )
    r = shape_residuals(corrupted, truth["lambdas"])
    assert r.shape == (2 * problem.num_pts,)
    assert r[0] == 0.0 and r[1] == 0.0
    result = adjust_shape(corrupted, config=LINEAR)
    assert np.max(np.abs(result.lambdas - truth["lambdas"])) < 1e-4


def test_min_weight_zeroes_low_confidence_blocks() -> None:
    problem, _ = synth_shape_problem(seed=6)
    r = shape_residuals(problem, np.zeros(problem.num_vec), min_weight=0.99)
    w = problem.observation_weights
    blocks = r.reshape(-1, 2)
    assert np.all(blocks[w <= 0.99] == 0.0)


def test_ground_plane_residual_layout() -> None:
    problem, truth = synth_ground_plane_problem(seed=7, num_pts=5, num_views=2)
    r = ground_plane_residuals(problem, truth["points3d"], plane_weight=1.0)
    assert r.shape == (2 * 5 * 2 + 5,)
    assert np.max(np.abs(r)) < 1e-8
    assert ground_plane_residuals(problem, truth["points3d"], plane_weight=0.0).shape == (2 * 5 * 2,)


def test_adjust_ground_plane_recovers_points() -> None:
    problem, truth = synth_ground_plane_problem(seed=8, num_pts=12, num_views=3)
    assert np.max(np.abs(problem.Xs - truth["points3d"])) > 1e-3
    result = adjust_ground_plane(problem, config=LINEAR)
    assert result.points3d.shape == (12, 3)
    assert np.max(np.abs(result.points3d - truth["points3d"])) < 1e-3
    assert np.array_equal(result.plane, problem.plane_parameters)
    assert result.diagnostics["mean_abs_plane_distance"] < 1e-3


def test_adjust_ground_plane_refines_plane() -> None:
    problem, _ = synth_ground_plane_problem(seed=9, num_pts=10, num_views=2)
    result = adjust_ground_plane(problem, config=dataclasses.replace(LINEAR, refine_plane=True))
    assert result.plane.shape == (4,)
    assert np.linalg.norm(result.plane[:3]) == pytest.approx(1.0)
    assert result.diagnostics["final_cost"] <= result.diagnostics["initial_cost"]


def test_multiview_residuals_vanish_at_truth() -> None:
    problem, truth = synth_multiview_problem(seed=10, num_views=2)
    r = multiview_residuals(problem, truth["lambdas"], truth["Rs"], truth["ts"])
    assert r.shape == (2 * problem.num_obs * problem.num_views,)
    assert np.max(np.abs(r)) < 1e-8


def test_adjust_multiview_recovers_shared_lambdas_and_poses() -> None:
    problem, truth = synth_multiview_problem(seed=11, num_views=3, num_pts=14, num_vec=4)
    result = adjust_multiview_shape_and_pose(problem, config=LINEAR)
    assert result.lambdas.shape == (4,)
    assert result.Rs.shape == (3, 3, 3)
    assert np.max(np.abs(result.lambdas - truth["lambdas"])) < 1e-3
    assert np.max(np.abs(result.Rs - truth["Rs"])) < 1e-3
    assert np.max(np.abs(result.ts - truth["ts"])) < 1e-2
    assert "view2_weighted_rms_px" in result.diagnostics


def test_multiview_needs_one_observation_per_keypoint() -> None:
    problem, _ = synth_multiview_problem(seed=12, num_views=2, num_pts=10, num_vec=2)
    # Drop the last observation of every view: numObs=9 while the basis keeps 10 keypoints.
    obs = ObservationSet(
        num_views=2,
        num_obs=9,
        points=problem.keypoints.uv[:, :9].reshape(-1),
        weights=problem.keypoints.weight_matrix[:, :9].reshape(-1),
    )
    shape = dataclasses.replace(problem.shape, num_mean=9, mean=problem.shape.mean_shape[:, :9].reshape(-1))
    short = dataclasses.replace(problem, keypoints=obs, shape=shape)
    with pytest.raises(ValueError, match="numObs"):
        adjust_multiview_shape_and_pose(short)


def test_adjusters_reject_empty_problems() -> None:
    problem, _ = synth_pose_problem(seed=13, num_pts=3, num_vec=1)
    empty = dataclasses.replace(
        problem,
        keypoints=ObservationSet(num_views=1, num_obs=0, points=np.zeros(0), weights=np.zeros(0)),
        shape=dataclasses.replace(problem.shape, num_pts=0, num_mean=0, mean=np.zeros(0), vectors=np.zeros(0)),
    )
    with pytest.raises(ValueError):
        adjust_pose(empty)
