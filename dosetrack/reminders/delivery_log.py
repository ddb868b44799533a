import logging

from sqlalchemy.orm import Session

from dosetrack.crud.notification import NotificationRepository
from dosetrack.models.notification import DeliveryStatus
from dosetrack.schemas.notification import DispatchOutcome
from dosetrack.utils.timezone import utcnow
from .metrics import notifications_delivered_total, notifications_failed_total

logger = logging.getLogger(__name__)


class DeliveryLog:
    """Persists the outcome of a claimed notification, exactly once per claim."""

    def __init__(self, db: Session, repo: NotificationRepository = None):
        self.repo = repo or NotificationRepository(db)

    def record(self, notification_id: str, claim_token: str, outcome: DispatchOutcome) -> bool:
        """Returns False when the row is no longer held under claim_token."""
        values = {
            "delivery_status": outcome.delivery_status,
            "channel_results": [r.model_dump() for r in outcome.channel_results],
            "error_message": outcome.error_message,
            "claim_token": None,
        }
        if outcome.delivery_status == DeliveryStatus.DELIVERED.value:
            values["sent_at"] = utcnow()

        applied = self.repo.finalize(notification_id, claim_token, values)
        if not applied:
            logger.warning(f"[DeliveryLog] notification={notification_id} already finalized or claim lost")
            return False

        if outcome.success:
            notifications_delivered_total.inc()
        else:
            notifications_failed_total.inc()
        return True
