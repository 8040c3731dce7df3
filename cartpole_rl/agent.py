"""REINFORCE agent: action sampling, episode memory and the per-episode update."""

from __future__ import annotations

import math

import numpy as np

from .policy import TanhSoftmaxPolicy
from .types import Activations, EpisodeBuffer, NetworkParameters, TrainStats


def discounted_returns(rewards: np.ndarray, gamma: float) -> np.ndarray:
    returns = np.zeros_like(rewards, dtype=np.float64)
    running = 0.0
    for i in range(len(rewards) - 1, -1, -1):
        running = float(rewards[i]) + gamma * running
        returns[i] = running
    return returns


def normalize_returns(returns: np.ndarray) -> np.ndarray:
    """Zero-mean, unit-scale returns; population std, with 0 replaced by 1."""
    returns = np.asarray(returns, dtype=np.float64)
    mean = float(np.mean(returns))
    std = float(np.sqrt(np.mean((returns - mean) ** 2)))
    if std == 0.0:
        std = 1.0
    return (returns - mean) / std


def _check_learning_rate(value: float) -> float:
    lr = float(value)
    if not math.isfinite(lr) or lr <= 0.0:
        raise ValueError(f"learning_rate must be a finite positive number, got {value!r}")
    return lr


def _check_gamma(value: float) -> float:
    gamma = float(value)
    if not (0.0 < gamma <= 1.0):
        raise ValueError(f"gamma must be in (0, 1], got {value!r}")
    return gamma


class PolicyGradientAgent:
    """Stochastic 4 -> H -> 2 policy trained once per episode with REINFORCE.

    ``hidden_size`` is fixed for the lifetime of the agent; ``learning_rate``
    and ``gamma`` may be changed between episodes.
    """

    def __init__(
        self,
        hidden_size: int = 16,
        learning_rate: float = 0.01,
        gamma: float = 0.99,
        seed: int | None = None,
        policy: TanhSoftmaxPolicy | None = None,
    ):
        self._learning_rate = _check_learning_rate(learning_rate)
        self._gamma = _check_gamma(gamma)
        if policy is None:
            policy = TanhSoftmaxPolicy(seed=seed, hidden_dim=hidden_size)
        elif policy.HIDDEN_DIM != hidden_size:
            raise ValueError(f"policy hidden size {policy.HIDDEN_DIM} does not match hidden_size={hidden_size}")
        self.policy = policy
        self.memory = EpisodeBuffer()

    @classmethod
    def from_parameters(
        cls,
        params: NetworkParameters,
        learning_rate: float = 0.01,
        gamma: float = 0.99,
        seed: int | None = None,
    ) -> PolicyGradientAgent:
        policy = TanhSoftmaxPolicy(W1=params.W1, b1=params.b1, W2=params.W2, b2=params.b2, seed=seed)
        return cls(
            hidden_size=policy.HIDDEN_DIM,
            learning_rate=learning_rate,
            gamma=gamma,
            policy=policy,
        )

    @property
    def hidden_size(self) -> int:
        return self.policy.HIDDEN_DIM

    @property
    def learning_rate(self) -> float:
        return self._learning_rate

    @learning_rate.setter
    def learning_rate(self, value: float) -> None:
        self._learning_rate = _check_learning_rate(value)

    @property
    def gamma(self) -> float:
        return self._gamma

    @gamma.setter
    def gamma(self, value: float) -> None:
        self._gamma = _check_gamma(value)

    @property
    def episode_length(self) -> int:
        return len(self.memory)

    def reset_memory(self) -> None:
        self.memory.clear()

    def predict(self, state) -> tuple[int, Activations]:
        return self.policy.sample_action(state)

    def store_step(self, activations: Activations, action: int, reward: float) -> None:
        self.memory.append(activations, action, reward)

    def get_parameters(self) -> NetworkParameters:
        return self.policy.parameters.copy()

    def train(self) -> TrainStats | None:
        n = len(self.memory)
        if n == 0:
            return None

        rewards = np.asarray(self.memory.rewards, dtype=np.float64)
        returns = discounted_returns(rewards, self._gamma)
        advantages = normalize_returns(returns)

        dW1, db1, dW2, db2 = self.policy.loss_gradients(
            inputs=np.stack(self.memory.inputs),
            hiddens=np.stack(self.memory.hiddens),
            probs=np.stack(self.memory.probs),
            actions=np.asarray(self.memory.actions, dtype=np.int64),
            advantages=advantages,
        )
        grad_norm = float(np.sqrt(sum(float(np.sum(g * g)) for g in (dW1, db1, dW2, db2))))
        self.policy.apply_gradients(dW1, db1, dW2, db2, lr=self._learning_rate)

        stats = TrainStats(
            steps=n,
            total_reward=float(np.sum(rewards)),
            return_mean=float(np.mean(returns)),
            return_std=float(np.std(returns)),
            grad_norm=grad_norm,
        )
        self.memory.clear()
        return stats
