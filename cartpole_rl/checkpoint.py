"""Checkpoint management for numpy policy weights."""

from __future__ import annotations

import json
import re
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import numpy as np

from .agent import PolicyGradientAgent
from .types import NetworkParameters

_REQUIRED_KEYS = ("W1", "b1", "W2", "b2")


def checkpoint_dir_for_width(root: str | Path, hidden_size: int) -> Path:
    """Checkpoints of different hidden widths live in separate subdirectories."""
    return Path(root) / f"h{int(hidden_size)}"


def _print_log(message: str) -> None:
    ts = datetime.now().strftime("%H:%M:%S")
    print(f"[{ts}] {message}", flush=True)


class CheckpointManager:
    FILE_PATTERN = re.compile(r"policy_ep(\d+)\.npz$")

    def __init__(self, checkpoint_dir: str = "checkpoints"):
        self.dir = Path(checkpoint_dir)
        self.dir.mkdir(parents=True, exist_ok=True)

    def _path_for_episode(self, episode: int) -> Path:
        return self.dir / f"policy_ep{episode:07d}.npz"

    def save(
        self,
        agent: PolicyGradientAgent,
        episode: int,
        metadata: dict[str, Any] | None = None,
    ) -> Path:
        path = self._path_for_episode(episode)
        params = agent.get_parameters()
        np.savez(
            path,
            W1=params.W1,
            b1=params.b1,
            W2=params.W2,
            b2=params.b2,
            episode=np.asarray([int(episode)], dtype=np.int64),
            learning_rate=np.asarray([agent.learning_rate], dtype=np.float64),
            gamma=np.asarray([agent.gamma], dtype=np.float64),
            metadata=np.asarray(json.dumps(metadata or {})),
        )
        return path

    def _sorted_paths(self) -> list[tuple[int, Path]]:
        found: list[tuple[int, Path]] = []
        for p in self.dir.glob("policy_ep*.npz"):
            m = self.FILE_PATTERN.search(p.name)
            if not m:
                continue
            found.append((int(m.group(1)), p))
        found.sort(key=lambda item: item[0], reverse=True)
        return found

    def latest_path(self) -> Path | None:
        found = self._sorted_paths()
        return found[0][1] if found else None

    def latest_episode(self) -> int:
        found = self._sorted_paths()
        return found[0][0] if found else 0

    def load(self, path: str | Path, seed: int | None = None) -> tuple[PolicyGradientAgent, int]:
        path = Path(path)
        try:
            data = np.load(path, allow_pickle=False)
        except (OSError, EOFError, ValueError, zipfile.BadZipFile) as exc:
            raise ValueError(f"Checkpoint {path} is not a readable .npz archive") from exc

        with data:
            missing = [k for k in _REQUIRED_KEYS if k not in data]
            if missing:
                raise ValueError(f"Checkpoint {path} is missing policy weights: {', '.join(missing)}")
            try:
                params = NetworkParameters(
                    W1=np.asarray(data["W1"], dtype=np.float64),
                    b1=np.asarray(data["b1"], dtype=np.float64),
                    W2=np.asarray(data["W2"], dtype=np.float64),
                    b2=np.asarray(data["b2"], dtype=np.float64),
                )
                episode = int(np.asarray(data["episode"]).reshape(-1)[0]) if "episode" in data else 0
                lr = float(np.asarray(data["learning_rate"]).reshape(-1)[0]) if "learning_rate" in data else 0.01
                gamma = float(np.asarray(data["gamma"]).reshape(-1)[0]) if "gamma" in data else 0.99
            except (OSError, EOFError, zipfile.BadZipFile) as exc:
                raise ValueError(f"Checkpoint {path} has a truncated archive member") from exc

        agent = PolicyGradientAgent.from_parameters(params, learning_rate=lr, gamma=gamma, seed=seed)
        return agent, episode

    def load_metadata(self, path: str | Path) -> dict[str, Any]:
        with np.load(Path(path), allow_pickle=False) as data:
            if "metadata" not in data:
                return {}
            return json.loads(str(data["metadata"]))

    def load_latest(
        self,
        seed: int | None = None,
        log: Callable[[str], None] | None = None,
    ) -> tuple[PolicyGradientAgent | None, int]:
        log = log or _print_log
        for _, path in self._sorted_paths():
            try:
                return self.load(path, seed=seed)
            except ValueError as exc:
                log(f"checkpoint_skipped path={path} reason={exc}")
        return None, 0
