"""
Internal Notification Service

Delivers warehouse staff notifications (variance alerts, count assignments).

This is a placeholder implementation that logs notifications.
In production, integrate with the in-app inbox / push provider.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, Dict, Any
from enum import Enum
from uuid import uuid4


logger = logging.getLogger(__name__)


class NotificationPriority(str, Enum):
    """Notification priority levels."""
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class NotificationType(str, Enum):
    """Types of notifications."""
    EXCEPTION_REPORTED = "EXCEPTION_REPORTED"    # Variance outside tolerance
    CYCLE_COUNT_ASSIGNED = "CYCLE_COUNT_ASSIGNED"
    SYSTEM_ALERT = "SYSTEM_ALERT"


class NotificationService:
    """
    Service for notifying warehouse users.

    notify_all broadcasts to every active user; notify_user targets one.
    """

    async def _deliver(
        self,
        recipient: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority,
        data: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        notification = {
            "notification_id": str(uuid4()),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "recipient": recipient,
            "type": notification_type.value,
            "priority": priority.value,
            "title": title,
            "message": message,
            "data": data or {},
            "status": "sent",
        }
        logger.info(f"[NOTIFICATION] {priority.value} to {recipient}: {title} - {message[:100]}")
        return notification

    async def notify_all(
        self,
        notification_type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Broadcast a notification to all users."""
        return await self._deliver("ALL", notification_type, title, message, priority, data)

    async def notify_user(
        self,
        user_id: str,
        notification_type: NotificationType,
        title: str,
        message: str,
        priority: NotificationPriority = NotificationPriority.NORMAL,
        data: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Send a notification to one user."""
        return await self._deliver(user_id, notification_type, title, message, priority, data)
