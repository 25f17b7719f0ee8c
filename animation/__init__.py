"""
Marker animation between discrete fixes.
"""

from animation.easing import Position, ease_in_out_cubic, lerp_position, linear
from animation.interpolator import AnimationState, MotionInterpolator
from animation.scheduler import AsyncioFrameScheduler, FrameHandle, FrameScheduler

__all__ = [
    "Position",
    "ease_in_out_cubic",
    "lerp_position",
    "linear",
    "AnimationState",
    "MotionInterpolator",
    "AsyncioFrameScheduler",
    "FrameHandle",
    "FrameScheduler",
]
