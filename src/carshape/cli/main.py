from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from carshape.adjust import adjust_ground_plane, adjust_multiview_shape_and_pose, adjust_pose, adjust_shape
from carshape.api.result_io import save_result
from carshape.config import ConfigValidationError, SolverConfig, load_solver_config
from carshape.parsing import ParseError
from carshape.problems import PROBLEM_TYPES, load_problem
from carshape.sim.synthetic import SYNTHESIZERS

KINDS = sorted(PROBLEM_TYPES)

_ADJUSTERS = {
    "pose": adjust_pose,
    "shape": adjust_shape,
    "ground-plane": adjust_ground_plane,
    "multiview": adjust_multiview_shape_and_pose,
}


def _print_summary(kind: str, path: Path) -> None:
    problem = load_problem(kind, path)
    print(f"{path}: {kind} problem")
    for key, value in problem.summary().items():
        print(f"  {key}: {value}")
    if hasattr(problem, "dimensions"):
        d = problem.dimensions
        print(f"  car h/w/l: {d.height:g} {d.width:g} {d.length:g}")
    intr = problem.intrinsics
    print(f"  fx fy cx cy: {intr.fx:g} {intr.fy:g} {intr.cx:g} {intr.cy:g}")


def _synth(kind: str, out: Path, *, seed: int, num_pts: int | None, num_vec: int | None, num_views: int | None, noise_px: float) -> Path:
    kwargs: dict[str, object] = {"noise_px": noise_px}
    if num_pts is not None:
        kwargs["num_pts"] = num_pts
    if num_vec is not None and kind != "ground-plane":
        kwargs["num_vec"] = num_vec
    if num_views is not None and kind in ("ground-plane", "multiview"):
        kwargs["num_views"] = num_views
    problem, _truth = SYNTHESIZERS[kind](seed, **kwargs)
    return problem.save(out)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="carshape")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for INFO, -vv for DEBUG logging.")
    # Subcommands take -v too; SUPPRESS leaves the top-level count alone when it is absent there.
    verbosity = argparse.ArgumentParser(add_help=False)
    verbosity.add_argument("-v", "--verbose", action="count", default=argparse.SUPPRESS, help="-v for INFO, -vv for DEBUG logging.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    insp = sub.add_parser("inspect", parents=[verbosity], help="Load a problem file and print its dimensions.")
    insp.add_argument("kind", choices=KINDS)
    insp.add_argument("path", type=Path)

    synth = sub.add_parser("synth", parents=[verbosity], help="Write a synthetic problem file with known ground truth.")
    synth.add_argument("kind", choices=KINDS)
    synth.add_argument("--out", type=Path, required=True)
    synth.add_argument("--seed", type=int, default=0)
    synth.add_argument("--num-pts", type=int, default=None)
    synth.add_argument("--num-vec", type=int, default=None, help="Basis vectors (ignored for ground-plane).")
    synth.add_argument("--num-views", type=int, default=None, help="Views (ground-plane and multiview only).")
    synth.add_argument("--noise-px", type=float, default=0.0, help="Gaussian pixel noise on observations.")

    adj = sub.add_parser("adjust", parents=[verbosity], help="Solve a problem file with scipy least_squares and write a JSON result.")
    adj.add_argument("kind", choices=KINDS)
    adj.add_argument("path", type=Path)
    adj.add_argument("--config", type=Path, default=None, help="Solver config JSON (carshape.solver.v0).")
    adj.add_argument("--out", type=Path, default=None, help="Result JSON (default: <path>.result.json).")

    args = parser.parse_args(argv)

    level = logging.WARNING if args.verbose <= 0 else (logging.INFO if args.verbose == 1 else logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    try:
        if args.cmd == "inspect":
            _print_summary(args.kind, args.path)
            return 0

        if args.cmd == "synth":
            out = _synth(
                args.kind,
                args.out,
                seed=args.seed,
                num_pts=args.num_pts,
                num_vec=args.num_vec,
                num_views=args.num_views,
                noise_px=args.noise_px,
            )
            print(f"Wrote {out}")
            return 0

        if args.cmd == "adjust":
            config = load_solver_config(args.config) if args.config is not None else SolverConfig()
            problem = load_problem(args.kind, args.path)
            try:
                result = _ADJUSTERS[args.kind](problem, config=config)
            except ValueError as e:
                print(f"error: cannot adjust {args.path}: {e}", file=sys.stderr)
                return 1
            out = args.out if args.out is not None else args.path.with_name(args.path.name + ".result.json")
            save_result(out, args.kind, result, config=config)
            print(f"final cost {result.diagnostics['final_cost']:.6g} ({int(result.diagnostics['nfev'])} evaluations)")
            print(f"Wrote {out}")
            return 0
    except (ParseError, ConfigValidationError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
