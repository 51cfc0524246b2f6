#!/usr/bin/env python3
"""
Plot tank level series with the L1/L2 thresholds:
- out/tank_level.jsonl  (written by sim/tank_sim.py)
- a live /api/history fetch from the control unit (optional)

Each JSONL line is expected as:
{"topic": "tank/level", "payload": {"ts": "...", "level_cm": 23.4, ...}}

Usage:
  python build_graphics.py --jsonl out/tank_level.jsonl --api http://127.0.0.1:8080 --outdir out/plots

Notes:
- Uses matplotlib only (no seaborn).
- No fixed colors.
"""

import argparse
import json
import os
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import matplotlib.pyplot as plt
import requests


# ----------------------------
# Helpers
# ----------------------------
def parse_ts(ts: str) -> Optional[datetime]:
    # expects ISO like "2026-01-04T13:38:53.134046+00:00"
    try:
        return datetime.fromisoformat(ts)
    except ValueError:
        return None


def is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def load_jsonl(path: str) -> List[Tuple[datetime, float]]:
    points: List[Tuple[datetime, float]] = []
    if not path or not os.path.exists(path):
        return points

    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                continue
            payload = obj.get("payload") if isinstance(obj, dict) else None
            if not isinstance(payload, dict):
                continue

            ts_raw = payload.get("ts")
            ts = parse_ts(ts_raw) if isinstance(ts_raw, str) else None
            level = payload.get("level_cm")
            if ts is None or not is_number(level):
                continue
            points.append((ts, float(level)))

    points.sort(key=lambda p: p[0])
    return points


def fetch_history(base_url: str) -> List[Tuple[float, float]]:
    """(seconds relative to the newest reading, level_cm) from the unit's /api/history."""
    try:
        r = requests.get(f"{base_url.rstrip('/')}/api/history", timeout=3.0)
        r.raise_for_status()
        data: Dict[str, Any] = r.json()
    except (requests.RequestException, ValueError) as e:
        print(f"History fetch failed: {e}")
        return []

    rows = [x for x in data.get("readings", []) if is_number(x.get("ts_ms")) and is_number(x.get("level_cm"))]
    if not rows:
        return []
    newest = max(x["ts_ms"] for x in rows)
    return [((x["ts_ms"] - newest) / 1000.0, float(x["level_cm"])) for x in rows]


def downsample(points: List[Any], max_points: int) -> List[Any]:
    if len(points) <= max_points:
        return points
    step = max(1, len(points) // max_points)
    return points[::step]


def plot_level(xs: List[Any], ys: List[float], l1: float, l2: float, title: str, xlabel: str, outpath: str) -> None:
    plt.figure()
    plt.plot(xs, ys, label="level_cm")
    plt.axhline(l1, linestyle="--", label=f"L1 = {l1:g} cm")
    plt.axhline(l2, linestyle=":", label=f"L2 = {l2:g} cm")
    plt.title(title)
    plt.xlabel(xlabel)
    plt.ylabel("level (cm)")
    plt.legend()
    plt.tight_layout()
    plt.savefig(outpath, dpi=150)
    plt.close()


# ----------------------------
# Main
# ----------------------------
def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--jsonl", default="out/tank_level.jsonl", help="Simulator JSONL path")
    ap.add_argument("--api", default="", help="Control unit base URL for /api/history (optional)")
    ap.add_argument("--l1", type=float, default=20.0, help="L1 threshold (cm)")
    ap.add_argument("--l2", type=float, default=40.0, help="L2 threshold (cm)")
    ap.add_argument("--outdir", default="out/plots", help="Where to save PNG plots")
    ap.add_argument("--max-points", type=int, default=5000, help="Cap points per plot (simple downsample)")
    args = ap.parse_args()

    os.makedirs(args.outdir, exist_ok=True)
    made = 0

    sim_pts = downsample(load_jsonl(args.jsonl), args.max_points)
    if sim_pts:
        plot_level(
            [p[0] for p in sim_pts],
            [p[1] for p in sim_pts],
            args.l1,
            args.l2,
            "Simulated sensor level",
            "time",
            os.path.join(args.outdir, "sim_level.png"),
        )
        made += 1

    if args.api:
        hist = downsample(fetch_history(args.api), args.max_points)
        if hist:
            plot_level(
                [p[0] for p in hist],
                [p[1] for p in hist],
                args.l1,
                args.l2,
                "Control unit level history",
                "seconds before last reading",
                os.path.join(args.outdir, "unit_history.png"),
            )
            made += 1

    if not made:
        print("No data found. Check the JSONL path or the API URL.")
        return

    print(f"Plots saved to: {os.path.abspath(args.outdir)} ({made} plots)")


if __name__ == "__main__":
    main()
