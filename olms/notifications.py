"""
Notification Module

Staff-facing notifications (due reminders, overdue alerts, system messages)
queued for delivery over a channel. Delivery itself happens outside this
system; records start PENDING.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .exceptions import ValidationError
from .logging_config import get_logger
from .storage import StorageInterface, StorageRecord


logger = get_logger("olms.notifications")


class NotificationType(Enum):
    PAYMENT_DUE = "PAYMENT_DUE"
    OVERDUE = "OVERDUE"
    RISK_ALERT = "RISK_ALERT"
    MATURITY = "MATURITY"
    SYSTEM = "SYSTEM"


class NotificationPriority(Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class NotificationChannel(Enum):
    IN_APP = "IN_APP"
    SMS = "SMS"
    EMAIL = "EMAIL"
    WHATSAPP = "WHATSAPP"


class NotificationStatus(Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
    READ = "READ"


@dataclass
class Notification(StorageRecord):
    """A notification waiting for, or past, delivery"""
    title: str
    message: str
    type: NotificationType = NotificationType.SYSTEM
    priority: NotificationPriority = NotificationPriority.MEDIUM
    channel: NotificationChannel = NotificationChannel.IN_APP
    status: NotificationStatus = NotificationStatus.PENDING
    loan_id: Optional[str] = None
    customer_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            title=data['title'],
            message=data['message'],
            type=NotificationType(data['type']),
            priority=NotificationPriority(data['priority']),
            channel=NotificationChannel(data['channel']),
            status=NotificationStatus(data['status']),
            loan_id=data.get('loan_id'),
            customer_id=data.get('customer_id')
        )


def _choice(enum_cls, value: Optional[str], default, label: str):
    if not value:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Invalid notification {label}: {value}")


class NotificationManager:
    """
    Creates and lists notifications
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.table_name = "notifications"

    def create_notification(
        self,
        title: str,
        message: str,
        type: Optional[str] = None,
        priority: Optional[str] = None,
        channel: Optional[str] = None,
        loan_id: Optional[str] = None,
        customer_id: Optional[str] = None
    ) -> Notification:
        """
        Queue a notification

        Type defaults to SYSTEM, priority to MEDIUM and channel to IN_APP.
        """
        if not title or not message:
            raise ValidationError("Notification title and message are required")

        now = datetime.now(timezone.utc)
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            title=title,
            message=message,
            type=_choice(NotificationType, type, NotificationType.SYSTEM, "type"),
            priority=_choice(NotificationPriority, priority, NotificationPriority.MEDIUM, "priority"),
            channel=_choice(NotificationChannel, channel, NotificationChannel.IN_APP, "channel"),
            loan_id=loan_id or None,
            customer_id=customer_id or None
        )
        self.storage.save(self.table_name, notification.id, notification.to_dict())
        logger.debug("Notification queued", extra={'resource': notification.id, 'extra_data': {
            'type': notification.type.value, 'channel': notification.channel.value
        }})
        return notification

    def list_notifications(self, type: Optional[str] = None, status: Optional[str] = None,
                           limit: int = 50) -> List[Notification]:
        """Newest first"""
        filters: Dict[str, Any] = {}
        if type:
            filters['type'] = type
        if status:
            filters['status'] = status
        notifications = [Notification.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications[:limit]
