"""Offline checkpoint evaluation on the cart-pole simulator."""

from __future__ import annotations

import argparse
import csv
import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import matplotlib
import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from cartpole_sim.engine import CartPoleEngine

from .checkpoint import CheckpointManager, checkpoint_dir_for_width

matplotlib.use("Agg")


@dataclass
class EvalMetrics:
    mode: str
    episodes: int
    max_episode_steps: int
    success_count: int
    success_rate: float
    steps_min: float
    steps_mean: float
    steps_max: float
    eval_time_sec: float
    episodes_per_sec: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _aggregate_metrics(
    mode: str,
    steps: np.ndarray,
    max_episode_steps: int,
    eval_time_sec: float,
) -> EvalMetrics:
    steps = np.asarray(steps, dtype=np.int64)
    episodes = int(steps.size)
    # An episode that lasts the full cap counts as balanced.
    success_count = int(np.sum(steps >= max_episode_steps))
    return EvalMetrics(
        mode=mode,
        episodes=episodes,
        max_episode_steps=int(max_episode_steps),
        success_count=success_count,
        success_rate=float(success_count / episodes) if episodes > 0 else 0.0,
        steps_min=float(np.min(steps)) if episodes > 0 else 0.0,
        steps_mean=float(np.mean(steps)) if episodes > 0 else 0.0,
        steps_max=float(np.max(steps)) if episodes > 0 else 0.0,
        eval_time_sec=float(eval_time_sec),
        episodes_per_sec=float(episodes / max(eval_time_sec, 1e-9)),
    )


def _print_row(m: EvalMetrics) -> None:
    print("mode   | success_rate | balanced/total | steps(min/mean/max) | eps/s", flush=True)
    steps = f"{m.steps_min:.0f}/{m.steps_mean:.2f}/{m.steps_max:.0f}"
    print(
        f"{m.mode:6s} | "
        f"{m.success_rate:12.4f} | "
        f"{m.success_count:6d}/{m.episodes:<7d} | "
        f"{steps:19s} | "
        f"{m.episodes_per_sec:7.1f}",
        flush=True,
    )


def _plot_steps(steps: np.ndarray, m: EvalMetrics, output_dir: Path, prefix: str) -> Path:
    fig = plt.figure(figsize=(9, 5))
    ax = fig.add_subplot(111)
    bins = min(50, max(1, int(np.unique(steps).size)))
    ax.hist(steps, bins=bins, color="tab:blue", alpha=0.8)
    ax.axvline(m.steps_mean, color="tab:orange", linestyle="--", linewidth=1.5, label=f"mean={m.steps_mean:.1f}")
    ax.set_title(f"Checkpoint Evaluation: Episode Length ({m.mode})")
    ax.set_xlabel("Steps balanced")
    ax.set_ylabel("Episodes")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best")
    path = output_dir / f"{prefix}_steps_hist.png"
    fig.tight_layout()
    fig.savefig(path, dpi=160)
    plt.close(fig)
    return path


def _save_reports(
    m: EvalMetrics,
    steps: np.ndarray,
    output_dir: Path,
    prefix: str,
    args: argparse.Namespace,
    checkpoint_path: Path,
    loaded_episode: int,
) -> tuple[Path, Path]:
    csv_path = output_dir / f"{prefix}_episodes.csv"
    json_path = output_dir / f"{prefix}_metrics.json"

    with csv_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=["episode", "steps"])
        writer.writeheader()
        for i, s in enumerate(steps, start=1):
            writer.writerow({"episode": i, "steps": int(s)})

    payload = {
        "config": {
            "checkpoint_dir": args.checkpoint_dir,
            "hidden_size": int(args.hidden_size),
            "checkpoint_path": str(checkpoint_path),
            "loaded_episode": loaded_episode,
            "episodes": int(args.episodes),
            "max_episode_steps": int(args.max_episode_steps),
            "mode": args.mode,
            "seed": args.seed,
        },
        "metrics": m.to_dict(),
    }
    with json_path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)

    return csv_path, json_path


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Offline checkpoint evaluation on the cart-pole simulator")
    p.add_argument("--checkpoint-dir", default="checkpoints")
    p.add_argument("--checkpoint-path", default=None, help="Optional explicit .npz checkpoint path")
    p.add_argument("--hidden-size", type=int, default=16, help="Hidden width whose checkpoint subdirectory is searched")
    p.add_argument("--episodes", type=int, default=100)
    p.add_argument("--max-episode-steps", type=int, default=500)
    p.add_argument("--mode", default="sample", choices=["sample", "greedy"])
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--output-dir", default="eval_reports")
    p.add_argument("--output-prefix", default="checkpoint_eval")
    p.add_argument("--progress", default="on", choices=["on", "off"])
    return p


def run_evaluation(args: argparse.Namespace) -> dict[str, Any]:
    if args.episodes < 1:
        raise ValueError("--episodes must be >= 1")
    if args.max_episode_steps < 1:
        raise ValueError("--max-episode-steps must be >= 1")

    ckpt = CheckpointManager(checkpoint_dir_for_width(args.checkpoint_dir, args.hidden_size))
    if args.checkpoint_path:
        checkpoint_path = Path(args.checkpoint_path)
    else:
        checkpoint_path = ckpt.latest_path()
        if checkpoint_path is None:
            raise RuntimeError(f"No checkpoint found in '{ckpt.dir}'")
    agent, loaded_episode = ckpt.load(checkpoint_path, seed=args.seed)

    env = CartPoleEngine(seed=None if args.seed is None else args.seed + 1)
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    print(
        "evaluation_init "
        f"checkpoint={checkpoint_path} loaded_episode={loaded_episode} "
        f"hidden_size={agent.hidden_size} episodes={args.episodes} "
        f"max_episode_steps={args.max_episode_steps} mode={args.mode}",
        flush=True,
    )

    select = agent.policy.greedy_action if args.mode == "greedy" else agent.policy.sample_action
    n = int(args.episodes)
    steps_out = np.zeros((n,), dtype=np.int64)
    episode_iter = range(n)
    if args.progress == "on":
        episode_iter = tqdm(episode_iter, desc=f"eval {args.mode}", unit="ep", mininterval=1.0, leave=False)

    t0 = time.perf_counter()
    for i in episode_iter:
        state = env.reset()
        steps = 0
        for _ in range(int(args.max_episode_steps)):
            action, _ = select(state)
            state, _, done = env.step(action)
            steps += 1
            if done:
                break
        steps_out[i] = steps
    elapsed = time.perf_counter() - t0

    m = _aggregate_metrics(args.mode, steps_out, int(args.max_episode_steps), elapsed)
    _print_row(m)

    hist_path = _plot_steps(steps_out, m, output_dir, args.output_prefix)
    csv_path, json_path = _save_reports(m, steps_out, output_dir, args.output_prefix, args, checkpoint_path, loaded_episode)
    print(
        "evaluation_summary "
        f"success_rate={m.success_rate:.4f} steps_mean={m.steps_mean:.2f} "
        f"hist_plot={hist_path} csv={csv_path} json={json_path}",
        flush=True,
    )

    return {
        "metrics": m,
        "steps": steps_out,
        "hist_plot": hist_path,
        "csv": csv_path,
        "json": json_path,
        "checkpoint_path": checkpoint_path,
        "loaded_episode": loaded_episode,
    }


def main() -> None:
    args = build_parser().parse_args()
    run_evaluation(args)


if __name__ == "__main__":
    main()
