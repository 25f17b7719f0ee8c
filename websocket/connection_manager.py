"""
WebSocket connection manager for the live tracking view.

This module provides the ConnectionManager class which keeps track of the
connected map views and pushes two kinds of messages to them:

- ``{"type": "state", ...}`` whenever the polling controller commits a state
- ``{"type": "marker", "lat": ..., "lon": ...}`` on every animation frame

Marker frames only carry the coordinate so that a view can move the marker
without re-rendering the trajectory.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Set, Tuple

from fastapi import WebSocket

from polling.controller import ControllerState

logger = logging.getLogger(__name__)


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ConnectionManager:
    """
    Manager for WebSocket connections of the tracking view.

    Attributes:
        active_connections: Set of currently connected WebSocket clients
        _lock: Asyncio lock guarding the connection set
    """

    def __init__(self):
        """Initialize the ConnectionManager with empty connection set."""
        self.active_connections: Set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._last_state: Optional[dict[str, Any]] = None

    async def connect(self, websocket: WebSocket) -> None:
        """
        Accept a new WebSocket connection and send it the current state.

        Args:
            websocket: The WebSocket connection to accept
        """
        await websocket.accept()
        async with self._lock:
            self.active_connections.add(websocket)

        logger.info(
            f"WebSocket client connected. Total connections: {len(self.active_connections)}",
            extra={"extra_data": {
                "total_connections": len(self.active_connections),
                "client_host": websocket.client.host if websocket.client else "unknown"
            }}
        )

        await self._send_to_client(websocket, {
            "type": "connection",
            "status": "connected",
            "message": "Connected to live tracking updates",
            "timestamp": _utc_timestamp()
        })
        if self._last_state is not None:
            await self._send_to_client(websocket, self._last_state)

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a WebSocket connection from active connections."""
        async with self._lock:
            self.active_connections.discard(websocket)

        logger.info(
            f"WebSocket client disconnected. Total connections: {len(self.active_connections)}",
            extra={"extra_data": {"total_connections": len(self.active_connections)}}
        )

    async def _send_to_client(self, websocket: WebSocket, data: dict) -> bool:
        try:
            await websocket.send_json(data)
            return True
        except Exception as e:
            logger.warning(
                f"Failed to send to WebSocket client: {e}",
                extra={"extra_data": {"error": str(e)}}
            )
            return False

    async def broadcast(self, message: dict) -> int:
        """
        Broadcast a message to all connected WebSocket clients.

        Clients that fail to receive the message are dropped.

        Args:
            message: The message dictionary to broadcast as JSON

        Returns:
            Number of clients that successfully received the message
        """
        if not self.active_connections:
            return 0

        async with self._lock:
            connections = list(self.active_connections)

        results = await asyncio.gather(
            *(self._send_to_client(websocket, message) for websocket in connections),
            return_exceptions=True
        )

        successful_sends = 0
        disconnected_clients: List[WebSocket] = []
        for websocket, result in zip(connections, results):
            if result is True:
                successful_sends += 1
            else:
                disconnected_clients.append(websocket)

        if disconnected_clients:
            async with self._lock:
                for websocket in disconnected_clients:
                    self.active_connections.discard(websocket)

            logger.info(
                f"Removed {len(disconnected_clients)} disconnected clients",
                extra={"extra_data": {
                    "removed_count": len(disconnected_clients),
                    "remaining_connections": len(self.active_connections)
                }}
            )

        return successful_sends

    async def broadcast_state(self, state: ControllerState) -> int:
        """
        Broadcast a committed controller state.

        The message is remembered and replayed to clients that connect later.

        Returns:
            Number of clients that successfully received the state
        """
        message = {"type": "state", **state.to_dict(), "timestamp": _utc_timestamp()}
        self._last_state = message
        return await self.broadcast(message)

    async def broadcast_marker(self, position: Tuple[float, float]) -> int:
        """
        Broadcast one animation frame of the marker.

        Args:
            position: (lat, lon) of the rendered marker

        Returns:
            Number of clients that successfully received the frame
        """
        lat, lon = position
        return await self.broadcast({"type": "marker", "lat": lat, "lon": lon})

    def get_connection_count(self) -> int:
        return len(self.active_connections)


_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """
    Get the global ConnectionManager instance.

    Creates a new instance if one doesn't exist.
    """
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager()
    return _connection_manager
