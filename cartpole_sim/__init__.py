"""Cart-pole simulator package."""

from .engine import CartPoleEngine, is_terminal
from .state_codec import ActionValidationError, PhysicsState, StateValidationError

__all__ = [
    "CartPoleEngine",
    "is_terminal",
    "PhysicsState",
    "StateValidationError",
    "ActionValidationError",
]
