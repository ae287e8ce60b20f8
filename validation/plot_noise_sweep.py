#!/usr/bin/env python3
"""
Plot best-candidate rotation/translation errors against direction noise.

Input: the JSON report written by `raypose sweep-noise --out-json ...`.
Output: a two-panel PNG figure.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser()
    ap.add_argument("--in-json", type=Path, default=Path("validation/out/noise_sweep.json"))
    ap.add_argument("--out-fig", type=Path, default=Path("validation/out/noise_sweep.png"))
    args = ap.parse_args(argv)

    report = json.loads(args.in_json.read_text(encoding="utf-8"))
    cases = sorted(report["cases"], key=lambda c: float(c["noise_rad"]))
    if not cases:
        raise SystemExit(f"No cases in {args.in_json}")

    noise_mrad = [1e3 * float(c["noise_rad"]) for c in cases]

    import matplotlib.pyplot as plt  # type: ignore

    fig, axes = plt.subplots(1, 2, figsize=(9.0, 3.8), dpi=150)
    for key, label in (("rot_err_median_deg", "median"), ("rot_err_p95_deg", "p95")):
        axes[0].plot(noise_mrad, [float(c[key]) for c in cases], marker="o", linewidth=2.0, label=label)
    for key, label in (("trans_err_median", "median"), ("trans_err_p95", "p95")):
        axes[1].plot(noise_mrad, [float(c[key]) for c in cases], marker="o", linewidth=2.0, label=label)

    axes[0].set_ylabel("rotation error (deg)")
    axes[1].set_ylabel("translation error")
    for ax in axes:
        ax.set_xlabel("direction noise (mrad)")
        ax.grid(True, alpha=0.25)
        ax.legend(fontsize=8)
    fig.suptitle(f"UPnP, {int(report['n_points'])} points, {int(report['n_cameras'])} camera(s)")
    fig.tight_layout()

    args.out_fig.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(args.out_fig)
    plt.close(fig)
    print(f"Wrote {args.out_fig}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
