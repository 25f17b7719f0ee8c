import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from animation.interpolator import MotionInterpolator
from animation.scheduler import AsyncioFrameScheduler
from cache import create_trajectory_cache
from cache.store import TrajectoryCache
from config.settings import Settings, get_settings, validate_startup
from errors.exceptions import validation_error
from errors.handlers import register_exception_handlers
from health.service import HealthCheckService
from middleware.request_id import RequestIDMiddleware
from polling.client import TrackingApiClient
from polling.controller import PollingController
from telemetry.service import initialize_telemetry
from tracking.cleaner import CleanerOptions, TrajectoryCleaner
from websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

SERVICE_NAME = "fixtrail"
SERVICE_VERSION = "1.0.0"


class DeviceRequest(BaseModel):
    device_id: str = Field(default="", max_length=100)


class AutoRefreshRequest(BaseModel):
    enabled: bool
    interval_ms: Optional[int] = None


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[TrackingApiClient] = None,
    cache: Optional[TrajectoryCache] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Application settings (loaded from the environment if not provided)
        client: Tracking service client (built from the settings if not provided)
        cache: Trajectory cache (built from the settings if not provided)
    """
    settings = settings or get_settings()
    telemetry_service = initialize_telemetry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {SERVICE_NAME} backend...")
        validate_startup(settings)

        manager = ConnectionManager()
        trajectory_cache = cache or await create_trajectory_cache(settings)
        tracking_client = client or TrackingApiClient.from_settings(settings)
        interpolator = MotionInterpolator(
            on_frame=manager.broadcast_marker,
            scheduler=AsyncioFrameScheduler(frame_rate_hz=settings.animation_frame_rate_hz),
            duration_ms=settings.animation_duration_ms,
        )
        cleaner = TrajectoryCleaner(CleanerOptions(
            min_year=settings.cleaner_min_year,
            jump_km_threshold=settings.cleaner_jump_km_threshold,
            max_future_sec=settings.cleaner_max_future_sec,
        ))
        controller = PollingController(
            client=tracking_client,
            cache=trajectory_cache,
            cleaner=cleaner,
            interpolator=interpolator,
            telemetry=telemetry_service,
            refresh_interval_ms=settings.refresh_interval_ms,
        )
        controller.subscribe(manager.broadcast_state)

        app.state.settings = settings
        app.state.connection_manager = manager
        app.state.controller = controller
        app.state.health_check_service = HealthCheckService(
            tracking_client=tracking_client,
            cache=trajectory_cache,
            check_timeout=5.0,
        )

        await controller.set_active_device(settings.default_device_id)
        if settings.auto_refresh_enabled:
            await controller.set_auto_refresh(True, settings.refresh_interval_ms)

        yield

        logger.info(f"Shutting down {SERVICE_NAME} backend...")
        await controller.close()
        if client is None:
            await tracking_client.close()
        if cache is None:
            await trajectory_cache.close()

    app = FastAPI(title="fixtrail live tracking API", version=SERVICE_VERSION, lifespan=lifespan)

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Accept", "Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )
    app.add_middleware(RequestIDMiddleware)

    _register_routes(app)
    return app


def _controller(request: Request) -> PollingController:
    return request.app.state.controller


def _register_routes(app: FastAPI) -> None:

    @app.get("/tracking/state")
    async def get_state(request: Request):
        """Current status, fix and trajectory of the active device."""
        return _controller(request).state.to_dict()

    @app.put("/tracking/device")
    async def set_device(body: DeviceRequest, request: Request):
        """Select the active device and refresh it."""
        state = await _controller(request).set_active_device(body.device_id)
        return state.to_dict()

    @app.post("/tracking/refresh")
    async def refresh(request: Request):
        """Run one refresh cycle for the active device."""
        state = await _controller(request).refresh_now()
        return state.to_dict()

    @app.put("/tracking/auto-refresh")
    async def set_auto_refresh(body: AutoRefreshRequest, request: Request):
        """Enable or disable timer-driven refresh."""
        state = await _controller(request).set_auto_refresh(body.enabled, body.interval_ms)
        return state.to_dict()

    @app.delete("/tracking/cache/{device_id}")
    async def clear_cache(device_id: str, request: Request):
        """Remove the locally cached trajectory of a device."""
        if not device_id.strip():
            raise validation_error("Device ID must not be blank", details={"field": "device_id"})
        await _controller(request).clear_local_data(device_id)
        return {"device_id": device_id, "cleared": True}

    @app.websocket("/ws/tracking")
    async def tracking_websocket(websocket: WebSocket):
        """
        Live updates of the tracking view.

        Message types sent to clients:
        - connection: confirmation sent on connect
        - state: every committed controller state, replayed on connect
        - marker: ``{"type": "marker", "lat": ..., "lon": ...}`` per animation frame
        - pong: answer to a ``{"type": "ping"}`` message
        """
        manager: ConnectionManager = websocket.app.state.connection_manager
        await manager.connect(websocket)
        try:
            while True:
                data = await websocket.receive_text()
                try:
                    message = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"Received non-JSON WebSocket message: {data[:100]}")
                    continue
                if isinstance(message, dict) and message.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})
        except WebSocketDisconnect:
            pass
        finally:
            await manager.disconnect(websocket)

    @app.get("/health")
    async def health_basic(request: Request):
        """Returns 200 OK when the service is accepting requests."""
        result = await request.app.state.health_check_service.check_health()
        return {
            "status": result["status"],
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "timestamp": result["timestamp"],
        }

    @app.get("/health/ready")
    async def health_ready(request: Request):
        """
        Readiness check of the tracking service and the cache.

        Returns 503 when the tracking service is unreachable, 200 otherwise
        (including "degraded" when only the cache is unavailable).
        """
        health_status = await request.app.state.health_check_service.check_readiness()
        response_data = {"service": SERVICE_NAME, "version": SERVICE_VERSION, **health_status.to_dict()}

        if health_status.status == "unhealthy":
            response_data["failure_reasons"] = [
                {"dependency": dep.name, "error": dep.error}
                for dep in health_status.dependencies if not dep.healthy
            ]
            return JSONResponse(status_code=503, content=response_data)

        return response_data


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
