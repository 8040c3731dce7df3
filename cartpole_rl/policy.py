"""Numpy-only MLP policy with manual REINFORCE gradients."""

from __future__ import annotations

import numpy as np

from .types import Activations, NetworkParameters


def box_muller_normal(
    rng: np.random.Generator,
    size: tuple[int, ...],
    mean: float = 0.0,
    std: float = 1.0,
) -> np.ndarray:
    """Gaussian samples from two independent uniform draws (Box-Muller)."""
    u = 1.0 - rng.random(size)  # (0, 1], keeps log finite
    v = rng.random(size)
    z = np.sqrt(-2.0 * np.log(u)) * np.cos(2.0 * np.pi * v)
    return z * std + mean


class TanhSoftmaxPolicy:
    """Two-layer policy: x(4) -> linear -> tanh -> linear(H->2) -> softmax."""

    INPUT_DIM = 4
    HIDDEN_DIM = 16
    ACTION_DIM = 2

    def __init__(
        self,
        W1: np.ndarray | None = None,
        b1: np.ndarray | None = None,
        W2: np.ndarray | None = None,
        b2: np.ndarray | None = None,
        seed: int | None = None,
        hidden_dim: int | None = None,
        init_scale: float = 0.1,
        rng: np.random.Generator | None = None,
    ):
        if hidden_dim is not None:
            if isinstance(hidden_dim, bool) or not isinstance(hidden_dim, (int, np.integer)) or hidden_dim < 1:
                raise ValueError(f"hidden_dim must be a positive integer, got {hidden_dim!r}")
            self.HIDDEN_DIM = int(hidden_dim)
        elif W1 is not None:
            if np.ndim(W1) != 2:
                raise ValueError(f"W1 must be 2-D, got shape {np.shape(W1)}")
            self.HIDDEN_DIM = int(np.shape(W1)[1])
        self._init_scale = float(init_scale)
        self.rng = rng if rng is not None else np.random.default_rng(seed)
        if W1 is None:
            W1 = box_muller_normal(self.rng, (self.INPUT_DIM, self.HIDDEN_DIM), std=self._init_scale)
        if b1 is None:
            b1 = np.zeros((self.HIDDEN_DIM,), dtype=np.float64)
        if W2 is None:
            W2 = box_muller_normal(self.rng, (self.HIDDEN_DIM, self.ACTION_DIM), std=self._init_scale)
        if b2 is None:
            b2 = np.zeros((self.ACTION_DIM,), dtype=np.float64)
        self.W1 = np.array(W1, dtype=np.float64)
        self.b1 = np.array(b1, dtype=np.float64)
        self.W2 = np.array(W2, dtype=np.float64)
        self.b2 = np.array(b2, dtype=np.float64)
        self._validate_shapes()

    def _validate_shapes(self) -> None:
        if self.W1.shape != (self.INPUT_DIM, self.HIDDEN_DIM):
            raise ValueError(f"W1 must have shape {(self.INPUT_DIM, self.HIDDEN_DIM)}, got {self.W1.shape}")
        if self.b1.shape != (self.HIDDEN_DIM,):
            raise ValueError(f"b1 must have shape {(self.HIDDEN_DIM,)}, got {self.b1.shape}")
        if self.W2.shape != (self.HIDDEN_DIM, self.ACTION_DIM):
            raise ValueError(f"W2 must have shape {(self.HIDDEN_DIM, self.ACTION_DIM)}, got {self.W2.shape}")
        if self.b2.shape != (self.ACTION_DIM,):
            raise ValueError(f"b2 must have shape {(self.ACTION_DIM,)}, got {self.b2.shape}")

    @property
    def parameters(self) -> NetworkParameters:
        return NetworkParameters(W1=self.W1, b1=self.b1, W2=self.W2, b2=self.b2)

    @staticmethod
    def build_observation(state) -> np.ndarray:
        if hasattr(state, "as_array"):
            arr = state.as_array()
        else:
            arr = np.asarray(state, dtype=np.float64).reshape(-1)
        if arr.shape != (TanhSoftmaxPolicy.INPUT_DIM,):
            raise ValueError(f"state must have shape ({TanhSoftmaxPolicy.INPUT_DIM},), got {arr.shape}")
        return arr.astype(np.float64, copy=True)

    @staticmethod
    def softmax(logits: np.ndarray) -> np.ndarray:
        z = logits - np.max(logits, axis=-1, keepdims=True)
        exp = np.exp(z)
        return exp / np.sum(exp, axis=-1, keepdims=True)

    @staticmethod
    def tanh_prime_from_output(h: np.ndarray) -> np.ndarray:
        return 1.0 - h * h

    def forward(self, x: np.ndarray) -> Activations:
        h = np.tanh(x @ self.W1 + self.b1)
        logits = h @ self.W2 + self.b2
        probs = self.softmax(logits)
        return Activations(input=x, hidden=h, output=probs)

    def action_probs(self, state) -> np.ndarray:
        return self.forward(self.build_observation(state)).output

    def sample_action(self, state) -> tuple[int, Activations]:
        acts = self.forward(self.build_observation(state))
        action = 0 if self.rng.random() < acts.output[0] else 1
        return action, acts

    def greedy_action(self, state) -> tuple[int, Activations]:
        acts = self.forward(self.build_observation(state))
        return int(np.argmax(acts.output)), acts

    def loss_gradients(
        self,
        inputs: np.ndarray,
        hiddens: np.ndarray,
        probs: np.ndarray,
        actions: np.ndarray,
        advantages: np.ndarray,
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Gradients of sum_t -advantage[t] * log pi(a_t | s_t), summed over the episode.

        ``inputs`` (N, 4), ``hiddens`` (N, H) and ``probs`` (N, 2) are the
        activations recorded at sampling time; ``actions`` and ``advantages``
        have shape (N,).
        """
        actions = np.asarray(actions, dtype=np.int64)
        if np.any((actions < 0) | (actions >= self.ACTION_DIM)):
            raise ValueError(f"actions must be in range 0..{self.ACTION_DIM - 1}")
        one_hot = np.zeros_like(probs)
        one_hot[np.arange(actions.size), actions] = 1.0

        delta = (probs - one_hot) * advantages[:, None]  # d loss / d logits
        dW2 = hiddens.T @ delta
        db2 = delta.sum(axis=0)
        dh = (delta @ self.W2.T) * self.tanh_prime_from_output(hiddens)
        dW1 = inputs.T @ dh
        db1 = dh.sum(axis=0)
        return dW1, db1, dW2, db2

    def apply_gradients(
        self,
        dW1: np.ndarray,
        db1: np.ndarray,
        dW2: np.ndarray,
        db2: np.ndarray,
        lr: float,
    ) -> None:
        self.W1 -= lr * np.asarray(dW1, dtype=np.float64)
        self.b1 -= lr * np.asarray(db1, dtype=np.float64)
        self.W2 -= lr * np.asarray(dW2, dtype=np.float64)
        self.b2 -= lr * np.asarray(db2, dtype=np.float64)
