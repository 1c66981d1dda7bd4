from __future__ import annotations


def test_public_api_exports() -> None:
    import carshape as cs

    for name in (
        "PoseProblem",
        "GroundPlaneProblem",
        "ShapeProblem",
        "MultiViewShapeAndPoseProblem",
        "load_problem",
        "ParseError",
        "ParseErrorKind",
        "SolverConfig",
        "adjust_pose",
        "adjust_shape",
        "adjust_ground_plane",
        "adjust_multiview_shape_and_pose",
        "save_result",
        "load_result",
    ):
        assert hasattr(cs, name), name
