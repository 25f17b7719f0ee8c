"""
Marker motion interpolation.

Instead of snapping the marker to every new fix, MotionInterpolator glides
it from the last rendered position to the new target over a fixed duration
with an ease-in-out curve. Each frame only emits the marker coordinate, the
rest of the view is untouched.

Retargeting while an animation is in flight cancels it and starts the new
animation from the last rendered position, so the marker never jumps back
to where the cancelled animation started.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from animation.easing import EasingFunction, Position, ease_in_out_cubic, lerp_position
from animation.scheduler import AsyncioFrameScheduler, FrameHandle, FrameScheduler

logger = logging.getLogger(__name__)

FrameCallback = Callable[[Position], Awaitable[None]]

DEFAULT_DURATION_MS = 700


@dataclass(frozen=True)
class AnimationState:
    """
    One marker glide.

    Attributes:
        start: Position the glide starts from
        end: Target position
        started_at: Clock value when the glide started
        duration: Glide duration in seconds
        easing: Easing curve applied to the elapsed fraction
    """
    start: Position
    end: Position
    started_at: float
    duration: float
    easing: EasingFunction = ease_in_out_cubic

    def position_at(self, now: float) -> Tuple[Position, bool]:
        """
        Compute the marker position at a clock value.

        Returns:
            The interpolated position and whether the glide is finished
        """
        elapsed = now - self.started_at
        if self.duration <= 0 or elapsed >= self.duration:
            return self.end, True
        fraction = self.easing(max(0.0, elapsed) / self.duration)
        return lerp_position(self.start, self.end, fraction), False


class MotionInterpolator:
    """
    Animates the active marker between successive fixes.

    Example:
        async def on_frame(position):
            await manager.broadcast_marker(position)

        interpolator = MotionInterpolator(on_frame)
        await interpolator.move_to((29.8660, 77.8905))
    """

    def __init__(
        self,
        on_frame: FrameCallback,
        scheduler: Optional[FrameScheduler] = None,
        duration_ms: int = DEFAULT_DURATION_MS,
        easing: EasingFunction = ease_in_out_cubic,
    ):
        """
        Initialize the interpolator.

        Args:
            on_frame: Async callback receiving the marker position each frame
            scheduler: Frame scheduler (asyncio at 60 Hz if not provided)
            duration_ms: Glide duration in milliseconds
            easing: Easing curve for the glide
        """
        self._on_frame = on_frame
        self._scheduler = scheduler or AsyncioFrameScheduler()
        self.duration = duration_ms / 1000.0
        self.easing = easing
        self._rendered: Optional[Position] = None
        self._animation: Optional[AnimationState] = None
        self._handle: Optional[FrameHandle] = None

    @property
    def rendered(self) -> Optional[Position]:
        """Last position emitted to the view."""
        return self._rendered

    @property
    def animation(self) -> Optional[AnimationState]:
        """The glide in flight, if any."""
        return self._animation

    @property
    def is_animating(self) -> bool:
        return self._animation is not None

    async def move_to(self, target: Position) -> bool:
        """
        Move the marker toward a new target.

        The first target ever seen is placed directly. A target equal to the
        last rendered position starts nothing; a target equal to the glide
        already in flight leaves that glide running.

        Args:
            target: New (lat, lon) of the marker

        Returns:
            True if a new glide was started
        """
        target = (float(target[0]), float(target[1]))

        if self._rendered is None:
            await self.jump_to(target)
            return False

        if self._animation is not None and self._animation.end == target:
            return False

        self._cancel()
        if target == self._rendered:
            return False

        state = AnimationState(
            start=self._rendered,
            end=target,
            started_at=self._scheduler.clock(),
            duration=self.duration,
            easing=self.easing,
        )
        self._animation = state
        self._handle = self._scheduler.start(lambda now: self._step(state, now))
        return True

    async def jump_to(self, position: Position) -> None:
        """Place the marker without animating, cancelling any glide."""
        self._cancel()
        self._rendered = (float(position[0]), float(position[1]))
        await self._emit(self._rendered)

    async def reset(self) -> None:
        """Cancel any glide and forget the rendered position."""
        self._cancel()
        self._rendered = None

    def _cancel(self) -> None:
        if self._handle is not None and not self._handle.done():
            self._handle.cancel()
        self._handle = None
        self._animation = None

    async def _step(self, state: AnimationState, now: float) -> bool:
        # A superseded glide must not emit
        if self._animation is not state:
            return False

        position, finished = state.position_at(now)
        self._rendered = position
        if finished:
            self._animation = None
            self._handle = None
        await self._emit(position)
        return not finished

    async def _emit(self, position: Position) -> None:
        try:
            await self._on_frame(position)
        except Exception as e:
            logger.warning(
                f"Marker frame callback failed: {e}",
                extra={"extra_data": {"error": str(e)}}
            )
