"""REINFORCE training/inference package for cart-pole."""

from .agent import PolicyGradientAgent
from .checkpoint import CheckpointManager
from .policy import TanhSoftmaxPolicy

__all__ = [
    "PolicyGradientAgent",
    "TanhSoftmaxPolicy",
    "CheckpointManager",
]
