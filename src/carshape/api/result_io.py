from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import numpy as np

from carshape.adjust import (
    GroundPlaneAdjustmentResult,
    MultiViewAdjustmentResult,
    PoseAdjustmentResult,
    ShapeAdjustmentResult,
)
from carshape.config import SolverConfig, solver_config_to_dict

SCHEMA_VERSION = "carshape.result.v0"

AdjustmentResult = PoseAdjustmentResult | ShapeAdjustmentResult | GroundPlaneAdjustmentResult | MultiViewAdjustmentResult


def _as_list(x: np.ndarray) -> list:
    return np.asarray(x, dtype=np.float64).tolist()


def result_to_dict(kind: str, result: AdjustmentResult) -> dict[str, Any]:
    if isinstance(result, (PoseAdjustmentResult, ShapeAdjustmentResult)):
        params: dict[str, Any] = {
            "R": _as_list(result.R),
            "t": _as_list(result.t.reshape(3)),
            "lambdas": _as_list(result.lambdas),
        }
    elif isinstance(result, GroundPlaneAdjustmentResult):
        params = {"points3d": _as_list(result.points3d), "plane": _as_list(result.plane)}
    elif isinstance(result, MultiViewAdjustmentResult):
        params = {"lambdas": _as_list(result.lambdas), "Rs": _as_list(result.Rs), "ts": _as_list(result.ts)}
    else:
        raise TypeError(f"unsupported result type: {type(result).__name__}")
    return {
        "schema_version": SCHEMA_VERSION,
        "kind": kind,
        "parameters": params,
        "diagnostics": {k: float(v) for k, v in result.diagnostics.items()},
    }


def save_result(path: Path, kind: str, result: AdjustmentResult, *, config: SolverConfig | None = None) -> Path:
    """Write an adjustment result as JSON (fitted parameters + diagnostics)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = result_to_dict(kind, result)
    if config is not None:
        data["solver"] = solver_config_to_dict(config)
    path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
    return path


def load_result(path: Path) -> dict[str, Any]:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if str(data.get("schema_version")) != SCHEMA_VERSION:
        raise ValueError("unsupported result schema")
    return data
