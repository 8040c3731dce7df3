"""State validation and codec helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np

from .physics import N_ACTIONS, STATE_DIM


class StateValidationError(ValueError):
    """Raised when an input state is invalid."""


class ActionValidationError(StateValidationError):
    """Raised when an action is outside {0, 1}."""


@dataclass(frozen=True)
class PhysicsState:
    x: float
    x_dot: float
    theta: float
    theta_dot: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.x_dot, self.theta, self.theta_dot], dtype=np.float64)

    def to_dict(self) -> dict[str, float]:
        return {
            "x": self.x,
            "x_dot": self.x_dot,
            "theta": self.theta,
            "theta_dot": self.theta_dot,
        }


def validate_state(state: PhysicsState | dict[str, Any] | list[float] | np.ndarray) -> PhysicsState:
    """Validate state and return a canonical PhysicsState of 4 finite floats."""
    if isinstance(state, PhysicsState):
        arr = state.as_array()
    elif isinstance(state, dict):
        missing = [k for k in ("x", "x_dot", "theta", "theta_dot") if k not in state]
        if missing:
            raise StateValidationError(f"State dict is missing keys: {', '.join(missing)}")
        state = [state["x"], state["x_dot"], state["theta"], state["theta_dot"]]

    if not isinstance(state, PhysicsState):
        try:
            arr = np.asarray(state, dtype=np.float64).reshape(-1)
        except (TypeError, ValueError) as exc:
            raise StateValidationError(f"State must be numeric, got {state!r}") from exc

    if arr.size != STATE_DIM:
        raise StateValidationError(f"State must have {STATE_DIM} values, got {arr.size}")
    if not np.all(np.isfinite(arr)):
        raise StateValidationError("State must contain only finite values")
    return PhysicsState(*(float(v) for v in arr))


def validate_action(action: Any) -> int:
    # bool is an int subclass; True/False are not accepted as actions.
    if isinstance(action, (bool, np.bool_)) or not isinstance(action, (int, np.integer)):
        raise ActionValidationError(f"Action must be an integer in range 0..{N_ACTIONS - 1}, got {action!r}")
    if action < 0 or action >= N_ACTIONS:
        raise ActionValidationError(f"Action must be an integer in range 0..{N_ACTIONS - 1}, got {action}")
    return int(action)
