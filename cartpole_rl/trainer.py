"""REINFORCE training loop for the cart-pole agent."""

from __future__ import annotations

import argparse
from collections import deque
from datetime import datetime
from pathlib import Path

import numpy as np
import yaml
from torch.utils.tensorboard import SummaryWriter
from tqdm import tqdm

from cartpole_sim.engine import CartPoleEngine

from .agent import PolicyGradientAgent
from .checkpoint import CheckpointManager, checkpoint_dir_for_width
from .types import EpisodeResult, TrainingMetrics

AVG_SCORE_DECAY = 0.9


def load_config(path: str | Path) -> dict:
    """Load YAML config. Returns dict with 'policy' and 'training' keys."""
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def next_metrics(history: list[TrainingMetrics], episode: int, score: int) -> TrainingMetrics:
    if not history:
        return TrainingMetrics(episode=episode, score=score, best_score=score, avg_score=float(score))
    prev = history[-1]
    return TrainingMetrics(
        episode=episode,
        score=score,
        best_score=max(prev.best_score, score),
        avg_score=prev.avg_score * AVG_SCORE_DECAY + score * (1.0 - AVG_SCORE_DECAY),
    )


class ReinforceTrainer:
    def __init__(self, args: argparse.Namespace):
        self.args = args
        if args.episodes < 1:
            raise ValueError("--episodes must be >= 1")
        if args.max_episode_steps < 1:
            raise ValueError("--max-episode-steps must be >= 1")
        if args.save_every < 1:
            raise ValueError("--save-every must be >= 1")

        self._episode_bar: tqdm | None = None
        self.ckpt = CheckpointManager(checkpoint_dir_for_width(args.checkpoint_dir, args.hidden_size))
        self.agent, self.start_episode = self._load_or_init_agent()
        self.env = CartPoleEngine(seed=None if args.seed is None else args.seed + 1)
        self.env.reset()
        self.history: list[TrainingMetrics] = []
        self._recent_scores: deque[int] = deque(maxlen=args.stats_window)

        self.run_timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.tb_writer: SummaryWriter | None = None
        self.tb_logdir: str | None = None
        if getattr(args, "tensorboard_logdir", None):
            self.tb_logdir = str(Path(args.tensorboard_logdir) / f"run_{self.run_timestamp}")
            self.tb_writer = SummaryWriter(log_dir=self.tb_logdir)

        self._log(
            "trainer_init "
            f"episodes={args.episodes} max_episode_steps={args.max_episode_steps} "
            f"hidden_size={self.agent.hidden_size} lr={self.agent.learning_rate} gamma={self.agent.gamma} "
            f"seed={args.seed} tensorboard_logdir={self.tb_logdir} checkpoint_dir={self.ckpt.dir}"
        )
        if self.start_episode == 0:
            self._log("checkpoint_status no checkpoint found, initialized random policy")
        else:
            self._log(f"checkpoint_status resumed from episode={self.start_episode}")

    def _load_or_init_agent(self) -> tuple[PolicyGradientAgent, int]:
        loaded, episode = self.ckpt.load_latest(seed=self.args.seed, log=self._log)
        if loaded is not None and loaded.hidden_size == self.args.hidden_size:
            loaded.learning_rate = self.args.lr
            loaded.gamma = self.args.gamma
            return loaded, episode
        if loaded is not None:
            self._log(
                "checkpoint_status ignoring checkpoint with "
                f"hidden_size={loaded.hidden_size} (requested {self.args.hidden_size})"
            )
        agent = PolicyGradientAgent(
            hidden_size=self.args.hidden_size,
            learning_rate=self.args.lr,
            gamma=self.args.gamma,
            seed=self.args.seed,
        )
        return agent, 0

    def _log(self, message: str) -> None:
        ts = datetime.now().strftime("%H:%M:%S")
        text = f"[{ts}] {message}"
        if self._episode_bar is not None:
            self._episode_bar.write(text)
        else:
            print(text, flush=True)

    def update_hyperparameters(self, lr: float | None = None, gamma: float | None = None) -> None:
        """Hot-swap learning rate and/or discount factor; the network is kept."""
        if lr is not None:
            self.agent.learning_rate = lr
            self.args.lr = self.agent.learning_rate
        if gamma is not None:
            self.agent.gamma = gamma
            self.args.gamma = self.agent.gamma
        self._log(f"hyperparameters_update lr={self.agent.learning_rate} gamma={self.agent.gamma}")

    def rebuild(self, hidden_size: int) -> None:
        """Replace agent and environment episode for a new hidden width; metrics restart.

        Checkpoints for the new width go to their own subdirectory and episode
        numbering continues after any checkpoint already there.
        """
        agent = PolicyGradientAgent(
            hidden_size=hidden_size,
            learning_rate=self.agent.learning_rate,
            gamma=self.agent.gamma,
            seed=self.args.seed,
        )
        self.agent = agent
        self.args.hidden_size = agent.hidden_size
        self.ckpt = CheckpointManager(checkpoint_dir_for_width(self.args.checkpoint_dir, agent.hidden_size))
        self.env.reset()
        self.history = []
        self._recent_scores.clear()
        self.start_episode = self.ckpt.latest_episode()
        self._log(
            f"rebuild hidden_size={agent.hidden_size} checkpoint_dir={self.ckpt.dir} start_episode={self.start_episode}"
        )

    def run_episode(self) -> EpisodeResult:
        state = self.env.reset()
        self.agent.reset_memory()
        done = False
        total_return = 0.0
        for _ in range(self.args.max_episode_steps):
            action, acts = self.agent.predict(state)
            state, reward, done = self.env.step(action)
            self.agent.store_step(acts, action, reward)
            total_return += reward
            if done:
                break

        steps = self.agent.episode_length
        stats = self.agent.train()
        episode = self.start_episode + len(self.history) + 1
        self.history.append(next_metrics(self.history, episode, steps))
        self._recent_scores.append(steps)
        return EpisodeResult(
            episode=episode,
            steps=steps,
            terminated=bool(done),
            total_return=total_return,
            train_stats=stats,
        )

    def _write_scalars(self, result: EpisodeResult) -> None:
        if self.tb_writer is None:
            return
        m = self.history[-1]
        step = result.episode
        self.tb_writer.add_scalar("train/score", m.score, step)
        self.tb_writer.add_scalar("train/best_score", m.best_score, step)
        self.tb_writer.add_scalar("train/avg_score", m.avg_score, step)
        if result.train_stats is not None:
            self.tb_writer.add_scalar("train/return_std", result.train_stats.return_std, step)
            self.tb_writer.add_scalar("train/grad_norm", result.train_stats.grad_norm, step)
        self.tb_writer.add_scalar("train/lr", self.agent.learning_rate, step)
        self.tb_writer.add_scalar("train/gamma", self.agent.gamma, step)

    def _maybe_log_interval_stats(self, result: EpisodeResult) -> None:
        if self.args.log_interval <= 0 or result.episode % self.args.log_interval != 0:
            return
        m = self.history[-1]
        recent = float(np.mean(self._recent_scores)) if self._recent_scores else 0.0
        self._log(
            "episode_stats "
            f"episode={m.episode} score={m.score} best_score={m.best_score} "
            f"avg_score={m.avg_score:.2f} mean_score_recent={recent:.2f} "
            f"terminated={result.terminated}"
        )

    def run(self) -> list[TrainingMetrics]:
        total_to_run = int(self.args.episodes)

        try:
            self._episode_bar = tqdm(
                total=total_to_run,
                desc="REINFORCE episodes",
                unit="ep",
                mininterval=1.0,
                maxinterval=5.0,
                disable=not getattr(self.args, "progress", True),
            )

            for _ in range(total_to_run):
                result = self.run_episode()
                self._write_scalars(result)
                self._maybe_log_interval_stats(result)

                m = self.history[-1]
                self._episode_bar.update(1)
                self._episode_bar.set_postfix({"score": m.score, "best": m.best_score, "avg": f"{m.avg_score:.1f}"})

                if result.episode % self.args.save_every == 0:
                    metadata = {
                        "episode": result.episode,
                        "hidden_size": self.agent.hidden_size,
                        "lr": self.agent.learning_rate,
                        "gamma": self.agent.gamma,
                        "max_episode_steps": self.args.max_episode_steps,
                        "best_score": m.best_score,
                        "avg_score": m.avg_score,
                    }
                    path = self.ckpt.save(self.agent, episode=result.episode, metadata=metadata)
                    self._log(f"checkpoint_saved episode={result.episode} path={path}")

        finally:
            if self.tb_writer is not None:
                self.tb_writer.flush()
                self.tb_writer.close()
            if self._episode_bar is not None:
                self._episode_bar.close()
                self._episode_bar = None

        return self.history


def build_parser(defaults: dict | None = None) -> argparse.ArgumentParser:
    d = defaults or {}
    train = d.get("training", {})
    pol = d.get("policy", {})
    p = argparse.ArgumentParser(description="Train a REINFORCE policy on cart-pole")
    p.add_argument("--config", type=str, default=None, help="Path to YAML config (training + policy params)")
    p.add_argument("--episodes", type=int, default=train.get("episodes", 1000))
    p.add_argument("--max-episode-steps", type=int, default=train.get("max_episode_steps", 500))
    p.add_argument("--gamma", type=float, default=train.get("gamma", 0.99))
    p.add_argument("--lr", type=float, default=train.get("lr", 0.01))
    p.add_argument("--save-every", type=int, default=train.get("save_every", 100))
    p.add_argument("--checkpoint-dir", type=str, default=train.get("checkpoint_dir", "checkpoints"))
    p.add_argument("--tensorboard-logdir", default=train.get("tensorboard_logdir", "runs/cartpole_reinforce"))
    p.add_argument("--seed", type=int, default=train.get("seed"))
    p.add_argument("--log-interval", type=int, default=train.get("log_interval", 50))
    p.add_argument("--stats-window", type=int, default=train.get("stats_window", 100))
    p.add_argument("--progress", action=argparse.BooleanOptionalAction, default=train.get("progress", True))
    p.add_argument(
        "--hidden-size",
        type=int,
        default=pol.get("hidden_size", 16),
        dest="hidden_size",
        help="Policy hidden layer width",
    )
    return p


def main() -> None:
    # Pre-parse to get --config
    pre = argparse.ArgumentParser(add_help=False)
    pre.add_argument("--config", type=str, default=None)
    pre_args, _ = pre.parse_known_args()

    defaults = {}
    if pre_args.config:
        defaults = load_config(pre_args.config)

    args = build_parser(defaults).parse_args()
    trainer = ReinforceTrainer(args)
    trainer.run()


if __name__ == "__main__":
    main()
