from .user import User
from .item import Item
from .dose import DoseInstance, DoseStatus, TERMINAL_DOSE_STATUSES
from .stock import Stock, ConsumptionReason
from .notification import (
    NotificationLog,
    NotificationPreference,
    DeliveryStatus,
    NotificationType,
    NotificationPriority,
)
