"""
WebSocket module for the live tracking view.

This module pushes committed controller states and marker animation frames
to connected map views.
"""

from .connection_manager import ConnectionManager, get_connection_manager

__all__ = ["ConnectionManager", "get_connection_manager"]
