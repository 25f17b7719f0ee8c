"""Easing curves and interpolation helpers for marker animation."""

from typing import Callable, Tuple

Position = Tuple[float, float]

EasingFunction = Callable[[float], float]


def ease_in_out_cubic(t: float) -> float:
    """Cubic ease-in-out on [0, 1]; inputs outside the range are clamped."""
    t = min(1.0, max(0.0, t))
    if t < 0.5:
        return 4 * t * t * t
    return 1 - (-2 * t + 2) ** 3 / 2


def linear(t: float) -> float:
    return min(1.0, max(0.0, t))


def lerp_position(start: Position, end: Position, fraction: float) -> Position:
    """Interpolate between two lat/lon positions."""
    return (
        start[0] + (end[0] - start[0]) * fraction,
        start[1] + (end[1] - start[1]) * fraction,
    )
