from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from dosetrack.core.config import settings
from dosetrack.crud.dose import DoseRepository
from dosetrack.models.dose import DoseStatus


def count_leading_taken(statuses: Iterable[str]) -> int:
    """Consecutive `taken` entries from the most recent, stopping at the first other status."""
    streak = 0
    for status in statuses:
        if status != DoseStatus.TAKEN.value:
            break
        streak += 1
    return streak


class StreakCalculator:
    """Read-only adherence streak for an item, used for user-facing reporting."""

    def __init__(self, db: Session, dose_repo: Optional[DoseRepository] = None, limit: Optional[int] = None):
        self.doses = dose_repo or DoseRepository(db)
        self.limit = limit or settings.STREAK_LOOKBACK

    def recompute(self, item_id: str, as_of: Optional[datetime] = None) -> int:
        recent = self.doses.recent_for_item(item_id, limit=self.limit, as_of=as_of)
        return count_leading_taken(d.status for d in recent)
