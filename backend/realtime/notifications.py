"""
Notification helpers for sending WebSocket messages to connected clients.

Each rider and driver session joins its personal group (``rider_<id>`` or
``driver_<id>``); these helpers push events into those groups.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer

logger = logging.getLogger(__name__)

OPEN_REQUESTS_GROUP = "open_requests"
WAITLIST_GROUP = "waitlist"


def group_name(role: str, user_id: str) -> str:
    return f"{role}_{user_id}"


def send_to_group(group: str, payload: Dict[str, Any]) -> bool:
    """
    group_send from synchronous code.

    Returns:
        True if sent, False when no channel layer is configured
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return False

    logger.debug("WS -> %s: %s", group, payload)
    async_to_sync(channel_layer.group_send)(group, payload)
    return True


def notify_user(role: str, user_id: str, title: str, message: str, level: str = "info") -> bool:
    """Transient toast for one session (errors, unlocks, bonuses)."""
    try:
        return send_to_group(
            group_name(role, user_id),
            {"type": "notification", "title": title, "message": message, "level": level},
        )
    except Exception:
        logger.exception("Failed to notify %s_%s", role, user_id)
        return False
