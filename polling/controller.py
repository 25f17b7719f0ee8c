"""
Polling controller for the active device.

The controller runs refresh cycles against the tracking service and exposes
the result to the view layer as an immutable ControllerState snapshot.

State machine:
    IDLE -> LOADING -> READY | FAILED, and back to LOADING on a manual
    refresh or a timer tick.

One cycle, for the active device:
1. Enter LOADING and clear the displayed fix and trajectory.
2. Fetch the latest fix and the history concurrently; both must complete.
3. If the history is empty, fall back to the cached trajectory.
4. Clean the points into a trajectory.
5. Save the trajectory to the cache.
6. Without a latest fix, synthesize one from the trajectory's last point.
7. Commit READY, or FAILED with an error message and nothing else.

Each cycle captures a token (active device and cycle sequence) when it
starts. A cycle whose token no longer matches at commit time is stale and
its result is discarded, so the view never shows a late answer for a device
that is no longer selected. Failed cycles are not retried; the next timer
tick is the only recovery.
"""

import asyncio
import logging
import time
from contextlib import nullcontext
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from animation.interpolator import MotionInterpolator
from cache.store import TrajectoryCache
from errors.exceptions import AppException, validation_error
from polling.client import TrackingApiClient
from telemetry.service import TelemetryService, correlation_context
from tracking.cleaner import TrajectoryCleaner
from tracking.models import Fix, Trajectory

logger = logging.getLogger(__name__)

MIN_REFRESH_INTERVAL_MS = 2000
MAX_REFRESH_INTERVAL_MS = 30000
DEFAULT_REFRESH_INTERVAL_MS = 5000

BLANK_DEVICE_MESSAGE = "Please enter a device ID"


class CycleStatus(str, Enum):
    """Status of the controller as seen by the view."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class ControllerState:
    """
    Snapshot of everything the view displays.

    Attributes:
        status: Current cycle status
        device_id: Active device identifier
        fix: Current fix, if any
        trajectory: Current cleaned trajectory
        error: Error description when status is FAILED
        auto_refresh: Whether timer-driven refresh is enabled
        refresh_interval_ms: Interval between timer-driven refreshes
    """
    status: CycleStatus = CycleStatus.IDLE
    device_id: Optional[str] = None
    fix: Optional[Fix] = None
    trajectory: Trajectory = ()
    error: Optional[str] = None
    auto_refresh: bool = False
    refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "status": self.status.value,
            "device_id": self.device_id,
            "fix": self.fix.model_dump() if self.fix else None,
            "trajectory": [point.to_dict() for point in self.trajectory],
            "error": self.error,
            "auto_refresh": self.auto_refresh,
            "refresh_interval_ms": self.refresh_interval_ms,
            "updated_at": self.updated_at,
        }


StateListener = Callable[[ControllerState], Awaitable[None]]


@dataclass(frozen=True)
class _CycleToken:
    device_id: str
    seq: int


class PollingController:
    """
    Drives refresh cycles for the active device.

    Attributes:
        client: Tracking service client
        cache: Local trajectory cache
        cleaner: Trajectory cleaner
    """

    def __init__(
        self,
        client: TrackingApiClient,
        cache: TrajectoryCache,
        cleaner: Optional[TrajectoryCleaner] = None,
        interpolator: Optional[MotionInterpolator] = None,
        telemetry: Optional[TelemetryService] = None,
        refresh_interval_ms: int = DEFAULT_REFRESH_INTERVAL_MS,
    ):
        """
        Initialize the controller.

        Args:
            client: Tracking service client
            cache: Local trajectory cache
            cleaner: Trajectory cleaner (default options if not provided)
            interpolator: Optional marker interpolator fed with each new fix
            telemetry: Optional telemetry service for per-cycle records
            refresh_interval_ms: Initial auto-refresh interval
        """
        _check_interval(refresh_interval_ms)
        self.client = client
        self.cache = cache
        self.cleaner = cleaner or TrajectoryCleaner()
        self._interpolator = interpolator
        self._telemetry = telemetry
        self._state = ControllerState(refresh_interval_ms=refresh_interval_ms)
        self._active_device: Optional[str] = None
        self._cycle_seq = 0
        self._in_flight = 0
        self._listeners: list[StateListener] = []
        self._timer: Optional[asyncio.Task] = None

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def active_device(self) -> Optional[str]:
        return self._active_device

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register an async listener called with every committed state.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def set_active_device(self, device_id: Optional[str]) -> ControllerState:
        """
        Select the device to track and refresh it immediately.

        Cycles still in flight for the previous device become stale.

        Args:
            device_id: Device identifier; blank ids put the controller in FAILED

        Returns:
            The state committed by the refresh
        """
        device_id = (device_id or "").strip() or None
        if device_id != self._active_device:
            logger.info(
                f"Active device changed to {device_id!r}",
                extra={"extra_data": {"previous": self._active_device, "device_id": device_id}}
            )
            self._active_device = device_id
            if self._interpolator is not None:
                await self._interpolator.reset()
        return await self.refresh_now()

    async def refresh_now(self) -> ControllerState:
        """
        Run one refresh cycle for the active device.

        Returns:
            The current state after the cycle (unchanged by a stale cycle)
        """
        self._cycle_seq += 1
        token = _CycleToken(self._active_device or "", self._cycle_seq)

        with correlation_context(f"cycle-{token.seq}"):
            if not token.device_id:
                await self._commit(self._snapshot(CycleStatus.FAILED, error=BLANK_DEVICE_MESSAGE))
                return self._state

            self._in_flight += 1
            try:
                with self._span(token):
                    await self._run_cycle(token)
            finally:
                self._in_flight -= 1
        return self._state

    async def set_auto_refresh(self, enabled: bool, interval_ms: Optional[int] = None) -> ControllerState:
        """
        Enable or disable timer-driven refresh.

        Args:
            enabled: Whether the timer runs
            interval_ms: New interval, keeps the current one if not provided

        Returns:
            The state with the new auto-refresh settings

        Raises:
            AppException: If the interval is outside 2000-30000 ms
        """
        interval = self._state.refresh_interval_ms if interval_ms is None else interval_ms
        _check_interval(interval)

        await self._stop_timer()
        if enabled:
            self._timer = asyncio.create_task(self._auto_refresh_loop(interval / 1000.0), name="auto-refresh")

        await self._commit(replace(self._state, auto_refresh=enabled, refresh_interval_ms=interval))
        return self._state

    async def clear_local_data(self, device_id: str) -> None:
        """
        Remove the cached trajectory of a device.

        Only the local cache is touched, nothing is deleted upstream.
        """
        await self.cache.clear(device_id)
        logger.info(f"Cleared local data for {device_id}", extra={"extra_data": {"device_id": device_id}})

    async def close(self) -> None:
        """Stop the timer and any marker animation."""
        await self._stop_timer()
        if self._interpolator is not None:
            await self._interpolator.reset()

    def _span(self, token: _CycleToken):
        if self._telemetry is None:
            return nullcontext()
        return self._telemetry.create_span(
            "refresh_cycle", {"device_id": token.device_id, "cycle": token.seq}
        )

    def _is_stale(self, token: _CycleToken) -> bool:
        return token.device_id != self._active_device or token.seq != self._cycle_seq

    def _snapshot(self, status: CycleStatus, **changes: Any) -> ControllerState:
        return replace(
            self._state,
            status=status,
            device_id=self._active_device,
            fix=changes.get("fix"),
            trajectory=changes.get("trajectory", ()),
            error=changes.get("error"),
            updated_at=time.time(),
        )

    async def _run_cycle(self, token: _CycleToken) -> None:
        device_id = token.device_id
        started = time.perf_counter()

        await self._commit(self._snapshot(CycleStatus.LOADING))

        try:
            latest, history, trajectory, used_cache = await self._load(device_id)
        except (AppException, ValueError) as e:
            message = e.message if isinstance(e, AppException) else str(e)
            await self._finish_failed(token, f"Failed to load data: {message}", started)
            return
        except Exception as e:
            logger.error(
                f"Unexpected error in refresh cycle for {device_id}: {e}",
                exc_info=True,
                extra={"extra_data": {"device_id": device_id, "error_type": type(e).__name__}}
            )
            await self._finish_failed(token, f"Failed to load data: {e}", started)
            return

        fix = latest
        if fix is None and trajectory:
            fix = Fix.from_track_point(device_id, trajectory[-1])

        duration_ms = (time.perf_counter() - started) * 1000
        if self._is_stale(token):
            logger.debug(f"Discarding stale refresh cycle for {device_id}")
            self._log_cycle(device_id, "stale", duration_ms, len(history), len(trajectory), used_cache)
            return

        await self._commit(self._snapshot(CycleStatus.READY, fix=fix, trajectory=trajectory))
        self._log_cycle(device_id, "ready", duration_ms, len(history), len(trajectory), used_cache)

        if fix is not None and self._interpolator is not None:
            await self._interpolator.move_to(fix.position)

    async def _load(self, device_id: str) -> tuple[Optional[Fix], list[Any], Trajectory, bool]:
        """Fetch, fall back to the cache, clean and save. Steps 2 to 5 of a cycle."""
        latest, history = await asyncio.gather(
            self.client.get_latest(device_id),
            self.client.get_history(device_id),
        )

        raw_points: Any = history
        used_cache = False
        if not history:
            raw_points = await self.cache.load(device_id)
            used_cache = bool(raw_points)

        trajectory = self.cleaner.clean(raw_points)
        await self.cache.save(device_id, trajectory)
        return latest, history, trajectory, used_cache

    async def _finish_failed(self, token: _CycleToken, message: str, started: float) -> None:
        duration_ms = (time.perf_counter() - started) * 1000
        if self._is_stale(token):
            logger.debug(f"Discarding stale failed cycle for {token.device_id}")
            self._log_cycle(token.device_id, "stale", duration_ms, error=message)
            return
        await self._commit(self._snapshot(CycleStatus.FAILED, error=message))
        self._log_cycle(token.device_id, "failed", duration_ms, error=message)

    def _log_cycle(
        self,
        device_id: str,
        status: str,
        duration_ms: float,
        history_points: int = 0,
        trajectory_points: int = 0,
        used_cache: bool = False,
        error: Optional[str] = None,
    ) -> None:
        if self._telemetry is not None:
            self._telemetry.log_cycle(
                device_id, status, duration_ms,
                history_points=history_points,
                trajectory_points=trajectory_points,
                used_cache=used_cache,
                error=error,
            )
        elif status == "failed":
            logger.warning(f"Refresh cycle failed for {device_id}: {error}")

    async def _commit(self, state: ControllerState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                await listener(state)
            except Exception as e:
                logger.warning(
                    f"State listener failed: {e}",
                    extra={"extra_data": {"error": str(e), "status": state.status.value}}
                )

    async def _auto_refresh_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            if self._in_flight:
                logger.debug("Skipping timer tick, a refresh cycle is still in flight")
                continue
            try:
                await self.refresh_now()
            except Exception as e:
                logger.error(f"Timer-driven refresh failed: {e}", exc_info=True)

    async def _stop_timer(self) -> None:
        timer, self._timer = self._timer, None
        if timer is None or timer.done():
            return
        timer.cancel()
        try:
            await timer
        except asyncio.CancelledError:
            pass


def _check_interval(interval_ms: int) -> None:
    if not MIN_REFRESH_INTERVAL_MS <= interval_ms <= MAX_REFRESH_INTERVAL_MS:
        raise validation_error(
            f"Refresh interval must be between {MIN_REFRESH_INTERVAL_MS} and "
            f"{MAX_REFRESH_INTERVAL_MS} ms",
            details={"field": "interval_ms", "value": interval_ms},
        )
