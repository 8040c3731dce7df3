"""Shared dataclasses for RL pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np


@dataclass
class Activations:
    input: np.ndarray  # shape (4,)
    hidden: np.ndarray  # shape (H,), after tanh
    output: np.ndarray  # shape (2,), action probabilities


@dataclass
class NetworkParameters:
    W1: np.ndarray  # shape (4, H)
    b1: np.ndarray  # shape (H,)
    W2: np.ndarray  # shape (H, 2)
    b2: np.ndarray  # shape (2,)

    def copy(self) -> NetworkParameters:
        return NetworkParameters(W1=self.W1.copy(), b1=self.b1.copy(), W2=self.W2.copy(), b2=self.b2.copy())


@dataclass
class EpisodeBuffer:
    """Five index-aligned per-step sequences of one episode."""

    inputs: list[np.ndarray] = field(default_factory=list)
    hiddens: list[np.ndarray] = field(default_factory=list)
    probs: list[np.ndarray] = field(default_factory=list)
    actions: list[int] = field(default_factory=list)
    rewards: list[float] = field(default_factory=list)

    def append(self, activations: Activations, action: int, reward: float) -> None:
        self.inputs.append(np.array(activations.input, dtype=np.float64, copy=True))
        self.hiddens.append(np.array(activations.hidden, dtype=np.float64, copy=True))
        self.probs.append(np.array(activations.output, dtype=np.float64, copy=True))
        self.actions.append(int(action))
        self.rewards.append(float(reward))

    def clear(self) -> None:
        self.inputs = []
        self.hiddens = []
        self.probs = []
        self.actions = []
        self.rewards = []

    def __len__(self) -> int:
        return len(self.rewards)


@dataclass
class TrainStats:
    steps: int
    total_reward: float
    return_mean: float
    return_std: float
    grad_norm: float


@dataclass
class EpisodeResult:
    episode: int
    steps: int
    terminated: bool
    total_return: float
    train_stats: TrainStats | None = None


@dataclass
class TrainingMetrics:
    episode: int
    score: int
    best_score: int
    avg_score: float
