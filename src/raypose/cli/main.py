from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from raypose.api.correspondence_io import load_correspondences, save_correspondences, save_solutions, solutions_to_dict
from raypose.eval.synthetic_eval import run_noise_sweep, run_synthetic_eval
from raypose.meta import GroundTruthPose
from raypose.sim.synthetic import generate_synthetic_scene
from raypose.upnp.eigen import GeneralEigenSolver, SymmetricEigenSolver
from raypose.upnp.solver import solve_upnp


def _eigen_solver(name: str):
    if name == "symmetric":
        return SymmetricEigenSolver()
    if name == "general":
        return GeneralEigenSolver()
    raise ValueError(f"Unknown eigen solver: {name}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="raypose")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="cmd", required=True)

    gen = sub.add_parser("generate-scene", help="Write a synthetic ray/point correspondence set with its true pose.")
    gen.add_argument("--out", type=Path, required=True)
    gen.add_argument("--points", type=int, default=20)
    gen.add_argument("--cameras", type=int, default=1, help="Number of rig cameras (1 = central camera).")
    gen.add_argument("--noise-rad", type=float, default=0.0, help="Angular noise on ray directions (radians).")
    gen.add_argument("--seed", type=int, default=0)

    solve = sub.add_parser("solve", help="Solve the absolute pose of a correspondence set.")
    solve.add_argument("corr_dir", type=Path)
    solve.add_argument("--out-json", type=Path, default=None, help="Write candidate poses to this JSON file.")
    solve.add_argument("--solver", type=str, default="symmetric", choices=["symmetric", "general"])

    ev = sub.add_parser("eval-synthetic", help="Solve random synthetic scenes and report pose errors.")
    ev.add_argument("--trials", type=int, default=50)
    ev.add_argument("--points", type=int, default=20)
    ev.add_argument("--cameras", type=int, default=1)
    ev.add_argument("--noise-rad", type=float, default=0.0)
    ev.add_argument("--seed", type=int, default=0)
    ev.add_argument("--solver", type=str, default="symmetric", choices=["symmetric", "general"])
    ev.add_argument("--out-json", type=Path, default=None)

    sweep = sub.add_parser("sweep-noise", help="Run eval-synthetic over several noise levels.")
    sweep.add_argument("--out-json", type=Path, required=True)
    sweep.add_argument(
        "--noise-levels",
        type=str,
        default="0,1e-4,5e-4,1e-3,2e-3,5e-3",
        help="Comma-separated angular noise levels (radians).",
    )
    sweep.add_argument("--trials", type=int, default=50)
    sweep.add_argument("--points", type=int, default=20)
    sweep.add_argument("--cameras", type=int, default=1)
    sweep.add_argument("--seed", type=int, default=0)

    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] [%(name)s] %(message)s")

    if args.cmd == "generate-scene":
        scene = generate_synthetic_scene(
            args.points, n_cameras=args.cameras, noise_rad=args.noise_rad, seed=args.seed
        )
        json_path = save_correspondences(
            args.out,
            scene.ray_origins,
            scene.ray_directions,
            scene.world_points,
            ground_truth=GroundTruthPose(
                rotation_wxyz=tuple(float(c) for c in scene.rotation_wxyz),
                translation=tuple(float(c) for c in scene.translation),
            ),
        )
        print(f"Wrote {json_path}")
        return 0

    if args.cmd == "solve":
        corr = load_correspondences(args.corr_dir)
        solutions = solve_upnp(
            corr.ray_origins, corr.ray_directions, corr.world_points, eigen_solver=_eigen_solver(args.solver)
        )
        if args.out_json:
            save_solutions(args.out_json, solutions)
            print(f"Wrote {args.out_json}")
        else:
            print(json.dumps(solutions_to_dict(solutions), indent=2, sort_keys=True))
        return 0

    if args.cmd == "eval-synthetic":
        stats = run_synthetic_eval(
            args.trials,
            args.points,
            n_cameras=args.cameras,
            noise_rad=args.noise_rad,
            seed=args.seed,
            eigen_solver=_eigen_solver(args.solver),
        )
        print(json.dumps(stats, indent=None, sort_keys=True))
        if args.out_json:
            args.out_json.parent.mkdir(parents=True, exist_ok=True)
            args.out_json.write_text(json.dumps(stats, indent=2, sort_keys=True), encoding="utf-8")
            print(f"Wrote {args.out_json}")
        return 0

    if args.cmd == "sweep-noise":
        levels = [float(s) for s in args.noise_levels.split(",") if s.strip()]
        report_path = run_noise_sweep(
            args.out_json, levels, trials=args.trials, n_points=args.points, n_cameras=args.cameras, seed=args.seed
        )
        print(f"Wrote {report_path}")
        return 0

    raise AssertionError(f"Unhandled cmd: {args.cmd}")
