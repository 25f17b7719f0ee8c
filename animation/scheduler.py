"""
Frame scheduling for time-based animations.

A FrameScheduler runs a frame step repeatedly at the host's refresh rate
until the step reports it is finished. start() returns a handle that can be
cancelled, which is how an in-flight animation is superseded.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Protocol

logger = logging.getLogger(__name__)

# A frame step receives the frame time and returns True to keep running
FrameStep = Callable[[float], Awaitable[bool]]


class FrameHandle(Protocol):
    """Handle of a running frame loop."""

    def cancel(self) -> bool: ...

    def done(self) -> bool: ...


class FrameScheduler(ABC):
    """Runs frame steps against a monotonic clock."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock

    @abstractmethod
    def start(self, step: FrameStep) -> FrameHandle:
        """
        Start calling step once per frame until it returns False.

        Args:
            step: Async frame step, called with the current clock value

        Returns:
            A cancellable handle for the frame loop
        """


class AsyncioFrameScheduler(FrameScheduler):
    """
    Frame scheduler driven by the running asyncio event loop.

    Attributes:
        frame_interval: Seconds between frames
    """

    def __init__(self, frame_rate_hz: int = 60, clock: Callable[[], float] = time.monotonic):
        super().__init__(clock)
        self.frame_interval = 1.0 / frame_rate_hz

    def start(self, step: FrameStep) -> asyncio.Task:
        return asyncio.create_task(self._run(step), name="marker-frames")

    async def _run(self, step: FrameStep) -> None:
        while await step(self.clock()):
            await asyncio.sleep(self.frame_interval)
