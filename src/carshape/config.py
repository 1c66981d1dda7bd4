from __future__ import annotations

import json
import math
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Literal

SCHEMA_VERSION = "carshape.solver.v0"

Loss = Literal["linear", "huber", "soft_l1", "cauchy", "arctan"]
_LOSSES = ("linear", "huber", "soft_l1", "cauchy", "arctan")


class ConfigValidationError(ValueError):
    pass


@dataclass(frozen=True)
class SolverConfig:
    """
    Settings handed to `scipy.optimize.least_squares` and the residual builders.

    - `f_scale_px`: robust loss soft threshold, in pixels
    - `shape_prior_weight`: weight of the sqrt(w)*lambda prior (0 disables)
    - `plane_weight`: weight of the point-to-plane residuals
    - `min_weight`: keypoints with weight <= min_weight contribute a zero residual
    """

    loss: Loss = "huber"
    f_scale_px: float = 2.0
    max_nfev: int = 200
    shape_prior_weight: float = 1e-2
    plane_weight: float = 1.0
    refine_pose: bool = False
    refine_plane: bool = False
    refine_lambdas: bool = False
    min_weight: float = 0.0


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigValidationError(msg)


def load_solver_config(path: Path) -> SolverConfig:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigValidationError(f"cannot read solver config {path}: {e.strerror}") from e
    except UnicodeDecodeError as e:
        raise ConfigValidationError(f"solver config {path} is not UTF-8") from e
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"solver config {path} is not valid JSON: {e}") from e
    return parse_solver_config(data)


def _number(data: dict[str, Any], name: str, default: float) -> float:
    v = data.get(name, default)
    _require(isinstance(v, (int, float)) and not isinstance(v, bool), f"{name} must be a number")
    try:
        x = float(v)
    except OverflowError:
        x = math.inf
    _require(math.isfinite(x), f"{name} must be finite")
    return x


def parse_solver_config(data: dict[str, Any]) -> SolverConfig:
    _require(isinstance(data, dict), "solver config must be a JSON object")
    schema_version = data.get("schema_version", SCHEMA_VERSION)
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    known = {f.name for f in fields(SolverConfig)}
    unknown = sorted(set(data) - known - {"schema_version"})
    _require(not unknown, f"unknown solver config keys: {unknown}")

    defaults = SolverConfig()

    loss = data.get("loss", defaults.loss)
    _require(isinstance(loss, str) and loss in _LOSSES, f"loss must be one of {list(_LOSSES)}")

    f_scale = _number(data, "f_scale_px", defaults.f_scale_px)
    _require(f_scale > 0.0, "f_scale_px must be > 0")

    max_nfev = data.get("max_nfev", defaults.max_nfev)
    _require(isinstance(max_nfev, int) and not isinstance(max_nfev, bool), "max_nfev must be an integer")
    _require(max_nfev >= 1, "max_nfev must be >= 1")

    prior = _number(data, "shape_prior_weight", defaults.shape_prior_weight)
    _require(prior >= 0.0, "shape_prior_weight must be >= 0")

    plane_weight = _number(data, "plane_weight", defaults.plane_weight)
    _require(plane_weight >= 0.0, "plane_weight must be >= 0")

    min_weight = _number(data, "min_weight", defaults.min_weight)
    _require(0.0 <= min_weight < 1.0, "min_weight must be in [0, 1)")

    flags = {}
    for name in ("refine_pose", "refine_plane", "refine_lambdas"):
        v = data.get(name, getattr(defaults, name))
        _require(isinstance(v, bool), f"{name} must be true or false")
        flags[name] = v

    return SolverConfig(
        loss=loss,  # type: ignore[arg-type]
        f_scale_px=f_scale,
        max_nfev=int(max_nfev),
        shape_prior_weight=prior,
        plane_weight=plane_weight,
        min_weight=min_weight,
        **flags,
    )


def solver_config_to_dict(config: SolverConfig) -> dict[str, Any]:
    return {"schema_version": SCHEMA_VERSION, **asdict(config)}
