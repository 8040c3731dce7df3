"""Cart-pole constants and the pure Euler integration step."""

from __future__ import annotations

import math

GRAVITY = 9.8
MASS_CART = 1.0
MASS_POLE = 0.1
TOTAL_MASS = MASS_CART + MASS_POLE
LENGTH = 0.5  # half the pole length
POLE_MASS_LENGTH = MASS_POLE * LENGTH
FORCE_MAG = 10.0
TAU = 0.02  # seconds between state updates

X_THRESHOLD = 2.4
THETA_THRESHOLD_RAD = 12.0 * math.pi / 180.0

RESET_LOW = -0.025
RESET_HIGH = 0.025

# Action index -> horizontal force sign
ACTION_FORCE_SIGN = (-1.0, +1.0)
N_ACTIONS = 2
STATE_DIM = 4


def accelerations(theta: float, theta_dot: float, force: float) -> tuple[float, float]:
    """Return (x_acc, theta_acc) from the Barto-Sutton-Anderson equations of motion."""
    costheta = math.cos(theta)
    sintheta = math.sin(theta)
    temp = (force + POLE_MASS_LENGTH * theta_dot * theta_dot * sintheta) / TOTAL_MASS
    theta_acc = (GRAVITY * sintheta - costheta * temp) / (
        LENGTH * (4.0 / 3.0 - MASS_POLE * costheta * costheta / TOTAL_MASS)
    )
    x_acc = temp - POLE_MASS_LENGTH * theta_acc * costheta / TOTAL_MASS
    return x_acc, theta_acc


def euler_step(
    x: float,
    x_dot: float,
    theta: float,
    theta_dot: float,
    action: int,
) -> tuple[float, float, float, float]:
    force = ACTION_FORCE_SIGN[action] * FORCE_MAG
    x_acc, theta_acc = accelerations(theta, theta_dot, force)
    # Positions advance with the pre-step velocities.
    return (
        x + TAU * x_dot,
        x_dot + TAU * x_acc,
        theta + TAU * theta_dot,
        theta_dot + TAU * theta_acc,
    )


def out_of_bounds(x: float, theta: float) -> bool:
    return x < -X_THRESHOLD or x > X_THRESHOLD or theta < -THETA_THRESHOLD_RAD or theta > THETA_THRESHOLD_RAD
