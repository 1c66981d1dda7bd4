"""
Value types shared by the problem files.

Every array is stored flat, in file order, and read-only. Shaped accessors
decode that single buffer; nothing is reordered on load, so writing the
buffers back reproduces the input token order.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from carshape.parsing import TokenReader, format_floats, readonly


def _check_index(name: str, value: int, size: int) -> int:
    value = int(value)
    if not 0 <= value < size:
        raise IndexError(f"{name} index {value} out of range [0, {size})")
    return value


@dataclass(frozen=True, eq=False)
class CameraIntrinsics:
    """
    Pinhole intrinsics, 9 values in file order, read as a row-major 3x3:

      [[fx, s, cx], [0, fy, cy], [0, 0, 1]]
    """

    values: np.ndarray  # (9,)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", readonly(self.values, 9, "intrinsics"))

    @classmethod
    def read(cls, reader: TokenReader) -> "CameraIntrinsics":
        return cls(values=reader.read_floats(9, "K"))

    @classmethod
    def from_matrix(cls, K: np.ndarray) -> "CameraIntrinsics":
        return cls(values=np.asarray(K, dtype=np.float64).reshape(3, 3).reshape(-1))

    @property
    def matrix(self) -> np.ndarray:
        return self.values.reshape(3, 3)

    @property
    def fx(self) -> float:
        return float(self.values[0])

    @property
    def fy(self) -> float:
        return float(self.values[4])

    @property
    def cx(self) -> float:
        return float(self.values[2])

    @property
    def cy(self) -> float:
        return float(self.values[5])

    def format_lines(self) -> list[str]:
        return [format_floats(self.values)]


@dataclass(frozen=True)
class CarDimensions:
    height: float
    width: float
    length: float

    @classmethod
    def read(cls, reader: TokenReader) -> "CarDimensions":
        hwl = reader.read_floats(3, "car_dimensions")
        return cls(height=float(hwl[0]), width=float(hwl[1]), length=float(hwl[2]))

    def as_array(self) -> np.ndarray:
        return np.array([self.height, self.width, self.length], dtype=np.float64)

    def format_lines(self) -> list[str]:
        return [format_floats(self.as_array())]


@dataclass(frozen=True, eq=False)
class ObservationSet:
    """
    2D keypoint observations for `num_views` views with `num_obs` each.

    - `points`: flat (num_views*num_obs*2,), index view*2*num_obs + 2*obs + coord
    - `weights`: flat (num_views*num_obs,), index view*num_obs + obs, or None
      when the file carries no confidences (every weight is then 1)
    """

    num_views: int
    num_obs: int
    points: np.ndarray
    weights: np.ndarray | None = None

    def __post_init__(self) -> None:
        nv, no = int(self.num_views), int(self.num_obs)
        if nv < 0 or no < 0:
            raise ValueError("num_views and num_obs must be >= 0")
        object.__setattr__(self, "num_views", nv)
        object.__setattr__(self, "num_obs", no)
        object.__setattr__(self, "points", readonly(self.points, nv * no * 2, "observations"))
        if self.weights is not None:
            object.__setattr__(self, "weights", readonly(self.weights, nv * no, "observation weights"))

    @classmethod
    def read(cls, reader: TokenReader, *, num_views: int, num_obs: int, weighted: bool = True) -> "ObservationSet":
        points = reader.read_floats(num_views * num_obs * 2, "observations")
        weights = reader.read_floats(num_views * num_obs, "observation_weights") if weighted else None
        return cls(num_views=num_views, num_obs=num_obs, points=points, weights=weights)

    @property
    def weighted(self) -> bool:
        return self.weights is not None

    @property
    def uv(self) -> np.ndarray:
        """(num_views, num_obs, 2) view of `points`."""
        return self.points.reshape(self.num_views, self.num_obs, 2)

    @property
    def weight_matrix(self) -> np.ndarray:
        """(num_views, num_obs) weights; ones when the set is unweighted."""
        if self.weights is None:
            return np.ones((self.num_views, self.num_obs), dtype=np.float64)
        return self.weights.reshape(self.num_views, self.num_obs)

    def point_offset(self, view: int, obs: int, coord: int) -> int:
        view = _check_index("view", view, self.num_views)
        obs = _check_index("observation", obs, self.num_obs)
        coord = _check_index("coordinate", coord, 2)
        return view * 2 * self.num_obs + 2 * obs + coord

    def view(self, view: int) -> tuple[np.ndarray, np.ndarray]:
        """Return (uv (num_obs,2), weights (num_obs,)) for one view."""
        view = _check_index("view", view, self.num_views)
        return self.uv[view], self.weight_matrix[view]

    def format_lines(self) -> list[str]:
        lines = [format_floats(p) for p in self.points.reshape(-1, 2)]
        if self.weights is not None and self.num_obs:
            lines.extend(format_floats(w) for w in self.weights.reshape(self.num_views, self.num_obs))
        return lines


@dataclass(frozen=True, eq=False)
class ShapeBasis:
    """
    Linear deformable shape: mean keypoints plus `num_vec` basis vectors.

    - `mean`: flat (num_views*num_mean*3,), index view*3*num_mean + 3*pt + coord
    - `vectors`: flat (num_views*num_vec*num_pts*3,), index
      view*3*num_vec*num_pts + vec*3*num_pts + 3*pt + coord

    Single-view problems use num_views=1 and num_mean=num_pts. Basis vectors
    keep the order they were written in (descending explained variance).
    """

    num_views: int
    num_pts: int
    num_mean: int
    num_vec: int
    mean: np.ndarray
    vectors: np.ndarray

    def __post_init__(self) -> None:
        for name in ("num_views", "num_pts", "num_mean", "num_vec"):
            v = int(getattr(self, name))
            if v < 0:
                raise ValueError(f"{name} must be >= 0")
            object.__setattr__(self, name, v)
        object.__setattr__(self, "mean", readonly(self.mean, self.num_views * self.num_mean * 3, "mean shape"))
        object.__setattr__(
            self,
            "vectors",
            readonly(self.vectors, self.num_views * self.num_vec * self.num_pts * 3, "shape basis"),
        )

    @classmethod
    def read(cls, reader: TokenReader, *, num_views: int, num_pts: int, num_mean: int) -> "ShapeBasis":
        mean = reader.read_floats(num_views * num_mean * 3, "X_bar")
        num_vec = reader.read_count("numVec")
        vectors = reader.read_floats(num_views * num_vec * num_pts * 3, "V")
        return cls(num_views=num_views, num_pts=num_pts, num_mean=num_mean, num_vec=num_vec, mean=mean, vectors=vectors)

    @property
    def mean_shape(self) -> np.ndarray:
        """(num_views, num_mean, 3) view of `mean`."""
        return self.mean.reshape(self.num_views, self.num_mean, 3)

    @property
    def basis(self) -> np.ndarray:
        """(num_views, num_vec, num_pts, 3) view of `vectors`."""
        return self.vectors.reshape(self.num_views, self.num_vec, self.num_pts, 3)

    def offset(self, view: int, vec: int, pt: int, coord: int) -> int:
        view = _check_index("view", view, self.num_views)
        vec = _check_index("vector", vec, self.num_vec)
        pt = _check_index("keypoint", pt, self.num_pts)
        coord = _check_index("coordinate", coord, 3)
        return view * 3 * self.num_vec * self.num_pts + vec * 3 * self.num_pts + 3 * pt + coord

    def mean_offset(self, view: int, pt: int, coord: int) -> int:
        view = _check_index("view", view, self.num_views)
        pt = _check_index("keypoint", pt, self.num_mean)
        coord = _check_index("coordinate", coord, 3)
        return view * 3 * self.num_mean + 3 * pt + coord

    def deform(self, lambdas: np.ndarray, view: int = 0) -> np.ndarray:
        """
        Deformed keypoints X_bar_j + sum_i lambda_i V_ij for one view, shape (num_pts,3).
        """
        if self.num_mean != self.num_pts:
            raise ValueError(f"mean shape has {self.num_mean} points but basis has {self.num_pts}")
        view = _check_index("view", view, self.num_views)
        lam = np.asarray(lambdas, dtype=np.float64).reshape(-1)
        if lam.size != self.num_vec:
            raise ValueError(f"expected {self.num_vec} deformation coefficients, got {lam.size}")
        return self.mean_shape[view] + np.einsum("i,ijk->jk", lam, self.basis[view])

    def format_lines(self) -> list[str]:
        lines = [format_floats(p) for p in self.mean.reshape(-1, 3)]
        lines.append(str(self.num_vec))
        if self.num_pts:
            lines.extend(format_floats(v) for v in self.vectors.reshape(-1, 3 * self.num_pts))
        return lines


@dataclass(frozen=True, eq=False)
class PoseSet:
    """
    Per-view rotations (9 values each, column-major 3x3) and translations.

    File order is all rotations, then all translations. Rotations are taken as
    written; no orthogonalization happens here.
    """

    num_views: int
    rotations: np.ndarray  # flat (num_views*9,)
    translations: np.ndarray  # flat (num_views*3,)

    def __post_init__(self) -> None:
        n = int(self.num_views)
        if n < 0:
            raise ValueError("num_views must be >= 0")
        object.__setattr__(self, "num_views", n)
        object.__setattr__(self, "rotations", readonly(self.rotations, n * 9, "rotations"))
        object.__setattr__(self, "translations", readonly(self.translations, n * 3, "translations"))

    @classmethod
    def read(cls, reader: TokenReader, *, num_views: int) -> "PoseSet":
        rotations = reader.read_floats(num_views * 9, "R")
        translations = reader.read_floats(num_views * 3, "t")
        return cls(num_views=num_views, rotations=rotations, translations=translations)

    @classmethod
    def from_matrices(cls, Rs: np.ndarray, ts: np.ndarray) -> "PoseSet":
        Rs = np.asarray(Rs, dtype=np.float64).reshape(-1, 3, 3)
        ts = np.asarray(ts, dtype=np.float64).reshape(-1, 3)
        if Rs.shape[0] != ts.shape[0]:
            raise ValueError("need one translation per rotation")
        # Column-major per matrix.
        return cls(num_views=Rs.shape[0], rotations=Rs.transpose(0, 2, 1).reshape(-1), translations=ts.reshape(-1))

    @property
    def R(self) -> np.ndarray:
        """(num_views, 3, 3) rotation matrices decoded from column-major storage."""
        return self.rotations.reshape(self.num_views, 3, 3).transpose(0, 2, 1)

    @property
    def t(self) -> np.ndarray:
        """(num_views, 3) view of `translations`."""
        return self.translations.reshape(self.num_views, 3)

    def rotation(self, view: int) -> np.ndarray:
        view = _check_index("view", view, self.num_views)
        return self.rotations[9 * view : 9 * view + 9].reshape(3, 3, order="F")

    def translation(self, view: int) -> np.ndarray:
        view = _check_index("view", view, self.num_views)
        return self.translations[3 * view : 3 * view + 3]

    def format_lines(self) -> list[str]:
        lines = [format_floats(r) for r in self.rotations.reshape(-1, 9)]
        lines.extend(format_floats(t) for t in self.translations.reshape(-1, 3))
        return lines


@dataclass(frozen=True, eq=False)
class GroundPlane:
    """Plane a*x + b*y + c*z + d = 0."""

    coeffs: np.ndarray  # (4,)

    def __post_init__(self) -> None:
        object.__setattr__(self, "coeffs", readonly(self.coeffs, 4, "plane parameters"))

    @classmethod
    def read(cls, reader: TokenReader) -> "GroundPlane":
        return cls(coeffs=reader.read_floats(4, "plane"))

    @property
    def normal(self) -> np.ndarray:
        return self.coeffs[:3]

    @property
    def offset(self) -> float:
        return float(self.coeffs[3])

    def unit_normal(self) -> np.ndarray:
        n = float(np.linalg.norm(self.normal))
        if n < 1e-12:
            raise ValueError("degenerate plane: zero normal")
        return self.normal / n

    def signed_distance(self, points: np.ndarray) -> np.ndarray:
        return plane_signed_distance(self.coeffs, points)

    def format_lines(self) -> list[str]:
        return [format_floats(self.coeffs)]


def plane_signed_distance(coeffs: np.ndarray, points: np.ndarray) -> np.ndarray:
    coeffs = np.asarray(coeffs, dtype=np.float64).reshape(4)
    P = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    n = float(np.linalg.norm(coeffs[:3]))
    if n < 1e-12:
        raise ValueError("degenerate plane: zero normal")
    return (P @ coeffs[:3] + coeffs[3]) / n
