"""Core cart-pole simulator engine."""

from __future__ import annotations

import threading

import numpy as np

from .physics import RESET_HIGH, RESET_LOW, STATE_DIM, euler_step, out_of_bounds
from .state_codec import PhysicsState, validate_action, validate_state

STEP_REWARD = 1.0


def is_terminal(state: PhysicsState) -> bool:
    return out_of_bounds(state.x, state.theta)


class CartPoleEngine:
    """Thread-safe cart-pole simulator with 2 actions and a seeded reset generator."""

    def __init__(self, seed: int | None = None, initial_state: PhysicsState | list[float] | None = None):
        self._lock = threading.RLock()
        self._rng = np.random.default_rng(seed)
        self.step_count = 0
        self.episode_steps = 0
        if initial_state is None:
            self._state = self._sample_initial_state()
        else:
            self._state = validate_state(initial_state)

    def _sample_initial_state(self) -> PhysicsState:
        values = self._rng.uniform(RESET_LOW, RESET_HIGH, size=STATE_DIM)
        return PhysicsState(*(float(v) for v in values))

    @property
    def state(self) -> PhysicsState:
        with self._lock:
            return self._state

    def reseed(self, seed: int | None) -> None:
        with self._lock:
            self._rng = np.random.default_rng(seed)

    def reset(self, state: PhysicsState | list[float] | None = None) -> PhysicsState:
        with self._lock:
            if state is None:
                self._state = self._sample_initial_state()
            else:
                self._state = validate_state(state)
            self.episode_steps = 0
            return self._state

    def step(self, action: int) -> tuple[PhysicsState, float, bool]:
        action = validate_action(action)

        with self._lock:
            s = self._state
            self._state = PhysicsState(*euler_step(s.x, s.x_dot, s.theta, s.theta_dot, action))
            self.step_count += 1
            self.episode_steps += 1
            return self._state, STEP_REWARD, is_terminal(self._state)

