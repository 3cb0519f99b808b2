"""
Real-time Router

WebSocket endpoint for live tracking and on-site progress.
Each channel is backed by a shared polling key, so any number of clients
watching the same channel cost one database poll per interval.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from intelliservice.services.polling import (
    ONSITE_POLL_SECONDS,
    TRACKING_POLL_SECONDS,
    PollingService,
    get_polling_service,
)
from intelliservice.services.supabase_client import get_supabase
from intelliservice.services.tickets import TicketService
from intelliservice.services.tracking import TrackingService
from intelliservice.services.websocket_manager import (
    ONSITE_CHANNEL_PREFIX,
    TRACKING_CHANNEL,
    channel_message_type,
    get_ws_manager,
    is_valid_channel,
)

logger = logging.getLogger(__name__)

router = APIRouter()

HEARTBEAT_SECONDS = 30.0


def parse_channels(raw: str) -> List[str]:
    channels = [c.strip() for c in (raw or "").split(",") if c.strip()]
    return [c for c in channels if is_valid_channel(c)] or [TRACKING_CHANNEL]


def channel_source(channel: str):
    """(fetch, interval_seconds) for a channel"""
    if channel == TRACKING_CHANNEL:
        async def fetch_tracking():
            return await TrackingService(get_supabase()).load_technicians()
        return fetch_tracking, TRACKING_POLL_SECONDS

    ticket_id = channel[len(ONSITE_CHANNEL_PREFIX):]

    async def fetch_onsite():
        return await TicketService(get_supabase()).get_onsite_progress(ticket_id)
    return fetch_onsite, ONSITE_POLL_SECONDS


def _channel_sender(websocket: WebSocket, channel: str):
    manager = get_ws_manager()

    async def send(data):
        await manager.send_personal({
            "type": channel_message_type(channel),
            "channel": channel,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "data": data,
        }, websocket)
    return send


async def _subscribe_channels(websocket: WebSocket, channels: List[str], polling: PollingService) -> List[str]:
    subscription_ids = []
    for channel in channels:
        fetch, interval = channel_source(channel)
        sender = _channel_sender(websocket, channel)
        subscription_ids.append(polling.subscribe(channel, fetch, sender, interval))

        latest = polling.get_latest(channel)
        if latest is not None:
            await sender(latest)
    return subscription_ids


@router.websocket("/ws")
async def websocket_live(
    websocket: WebSocket,
    channels: str = Query(TRACKING_CHANNEL, description="Comma separated: tracking, onsite:<ticket_id>")
):
    """
    Live updates WebSocket.

    Usage:
        const ws = new WebSocket('ws://localhost:8000/api/realtime/ws?channels=tracking,onsite:123');

    Message types received:
        - tracking_update: technicians with location and open tickets
        - onsite_update: on-site progress for a ticket
        - heartbeat: connection health check (every 30s)
    """
    manager = get_ws_manager()
    polling = get_polling_service()
    channel_list = parse_channels(channels)

    await manager.connect(websocket, channels=channel_list)
    subscription_ids = await _subscribe_channels(websocket, channel_list, polling)

    try:
        while True:
            try:
                data = await asyncio.wait_for(
                    websocket.receive_json(),
                    timeout=HEARTBEAT_SECONDS
                )

                if data.get("type") == "ping":
                    await manager.send_personal({"type": "pong"}, websocket)

            except asyncio.TimeoutError:
                await manager.send_personal({
                    "type": "heartbeat",
                    "timestamp": datetime.now(timezone.utc).isoformat()
                }, websocket)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[WS] Error: {e}")
    finally:
        for subscription_id in subscription_ids:
            polling.unsubscribe(subscription_id)
        manager.disconnect(websocket)


@router.get("/status")
def realtime_status():
    """WebSocket connections and active polling keys"""
    polling = get_polling_service()
    return {
        **get_ws_manager().get_status(),
        "polling": {
            key: polling.subscriber_count(key)
            for key in polling.active_keys()
        },
    }
