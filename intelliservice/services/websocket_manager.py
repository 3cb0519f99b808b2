"""
WebSocket Manager

Manages WebSocket connections for live tracking and on-site progress.
Channels are created on demand ("tracking", "onsite:<ticket_id>").
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)

TRACKING_CHANNEL = "tracking"
ONSITE_CHANNEL_PREFIX = "onsite:"


def is_valid_channel(channel: str) -> bool:
    if channel == TRACKING_CHANNEL:
        return True
    return channel.startswith(ONSITE_CHANNEL_PREFIX) and len(channel) > len(ONSITE_CHANNEL_PREFIX)


def channel_message_type(channel: str) -> str:
    """tracking -> tracking_update, onsite:<id> -> onsite_update"""
    return f"{channel.split(':', 1)[0]}_update"


class ConnectionManager:
    """
    Manages WebSocket connections for real-time updates.

    Features:
    - Multiple connection tracking
    - Channel-based subscriptions
    - Dead connections dropped on send
    """

    def __init__(self):
        # All active connections
        self.active_connections: List[WebSocket] = []

        # Connections by channel
        self.channels: Dict[str, Set[WebSocket]] = {}

        # Connection metadata
        self.connection_info: Dict[WebSocket, Dict[str, Any]] = {}

    async def connect(self, websocket: WebSocket, channels: List[str]):
        """Accept a connection and subscribe it to channels"""
        await websocket.accept()
        self.active_connections.append(websocket)

        for channel in channels:
            self.channels.setdefault(channel, set()).add(websocket)

        self.connection_info[websocket] = {
            "connected_at": datetime.now(timezone.utc).isoformat(),
            "channels": list(channels),
            "client_ip": websocket.client.host if websocket.client else "unknown"
        }

        logger.info(f"[WS] Client connected. Total: {len(self.active_connections)}")

    def disconnect(self, websocket: WebSocket):
        """Remove connection from all channels and active list."""
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

        for name in list(self.channels):
            self.channels[name].discard(websocket)
            if not self.channels[name]:
                del self.channels[name]

        self.connection_info.pop(websocket, None)

        logger.info(f"[WS] Client disconnected. Total: {len(self.active_connections)}")

    async def send_personal(self, message: dict, websocket: WebSocket):
        """Send message to a specific connection."""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning(f"[WS] Error sending personal message: {e}")
            self.disconnect(websocket)

    def get_status(self) -> dict:
        """Get current connection status."""
        return {
            "total_connections": len(self.active_connections),
            "channels": {
                channel: len(connections)
                for channel, connections in self.channels.items()
            },
            "connections": [
                {
                    "client_ip": info.get("client_ip"),
                    "connected_at": info.get("connected_at"),
                    "channels": info.get("channels", [])
                }
                for info in self.connection_info.values()
            ]
        }


# Singleton instance
manager = ConnectionManager()


def get_ws_manager() -> ConnectionManager:
    """Get the singleton WebSocket manager."""
    return manager
