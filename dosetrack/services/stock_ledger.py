"""
Stock ledger and depletion projector.

Every mutation appends a consumption entry and recomputes projected_end_at from
the number of doses taken in the trailing window. The estimate is a plain
trailing average recomputed from raw counts, so it corrects itself when
adherence changes.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from dosetrack.core.config import settings
from dosetrack.core.exceptions import NotFoundError, ValidationError
from dosetrack.crud.dose import DoseRepository
from dosetrack.crud.stock import StockRepository
from dosetrack.models.stock import ConsumptionReason, Stock
from dosetrack.schemas.stock import StockProjection
from dosetrack.utils.timezone import to_utc_aware, utcnow

logger = logging.getLogger(__name__)


def compute_projection(
    units_left: float,
    taken_count: int,
    at: datetime,
    trailing_days: int = 7,
    min_daily_rate: float = 0.1,
) -> tuple[float, Optional[float], datetime]:
    """Return (daily_rate, days_remaining, projected_end_at).

    daily_rate is floored at min_daily_rate so an item with no recent history
    does not divide by zero or project decades ahead.
    """
    daily_rate = max(taken_count / float(trailing_days), min_daily_rate)
    if units_left <= 0:
        return daily_rate, 0.0, at
    days_remaining = units_left / daily_rate
    return daily_rate, days_remaining, at + timedelta(days=days_remaining)


def _require_positive(amount: float) -> None:
    if amount is None or amount <= 0:
        raise ValidationError("amount must be positive", detail={"amount": amount})


class StockLedger:
    def __init__(
        self,
        db: Session,
        stock_repo: Optional[StockRepository] = None,
        dose_repo: Optional[DoseRepository] = None,
    ):
        self.db = db
        self.stocks = stock_repo or StockRepository(db)
        self.doses = dose_repo or DoseRepository(db)
        self.trailing_days = settings.STOCK_TRAILING_DAYS
        self.min_daily_rate = settings.STOCK_MIN_DAILY_RATE

    def deduct(self, item_id: str, amount: float, at: datetime) -> Optional[Stock]:
        """Remove consumed units (never below zero) and refresh the projection.

        Returns None when the item has no stock record.
        """
        _require_positive(amount)
        at = to_utc_aware(at)
        try:
            stock = self.stocks.lock_by_item(item_id)
            if stock is None:
                logger.info(f"[Stock] No stock tracked for item {item_id}; nothing to deduct")
                self.stocks.rollback()
                return None
            self.stocks.decrement(item_id, amount)
            self.stocks.refresh(stock)
            self._append(stock, at, amount, ConsumptionReason.TAKEN)
            self._reproject(stock, at)
            self.stocks.commit()
        except Exception:
            self.stocks.rollback()
            raise
        logger.info(
            f"[Stock] item={item_id} deducted={amount} units_left={stock.units_left} "
            f"projected_end_at={stock.projected_end_at}"
        )
        return stock

    def refill(self, item_id: str, amount: float, at: Optional[datetime] = None) -> Stock:
        _require_positive(amount)
        at = to_utc_aware(at) if at else utcnow()
        try:
            stock = self.stocks.lock_by_item(item_id)
            if stock is None:
                raise NotFoundError("Stock not found")
            self.stocks.increment(item_id, amount)
            self.stocks.refresh(stock)
            stock.units_total = max(float(stock.units_total or 0), float(stock.units_left))
            stock.last_refill_at = at
            self._append(stock, at, amount, ConsumptionReason.REFILL)
            self._reproject(stock, at)
            self.stocks.commit()
        except Exception:
            self.stocks.rollback()
            raise
        logger.info(f"[Stock] item={item_id} refilled +{amount} units_left={stock.units_left}")
        return stock

    def adjust(
        self,
        item_id: str,
        units_left: float,
        reason: ConsumptionReason = ConsumptionReason.ADJUSTED,
        at: Optional[datetime] = None,
    ) -> Stock:
        """Manual correction: set units_left directly and record the difference."""
        at = to_utc_aware(at) if at else utcnow()
        try:
            stock = self.stocks.lock_by_item(item_id)
            if stock is None:
                raise NotFoundError("Stock not found")
            new_units = max(0.0, float(units_left))
            delta = float(stock.units_left) - new_units
            stock.units_left = new_units
            self._append(stock, at, delta, reason)
            self._reproject(stock, at)
            self.stocks.commit()
        except Exception:
            self.stocks.rollback()
            raise
        logger.info(f"[Stock] item={item_id} adjusted ({reason.value}) units_left={stock.units_left}")
        return stock

    def projection(self, item_id: str, now: Optional[datetime] = None) -> StockProjection:
        now = to_utc_aware(now) if now else utcnow()
        stock = self.stocks.get_by_item(item_id)
        if stock is None:
            raise NotFoundError("Stock not found")
        taken = self._taken_count(item_id, now)
        daily_rate, days_remaining, projected = compute_projection(
            float(stock.units_left), taken, now, self.trailing_days, self.min_daily_rate
        )
        return StockProjection(
            item_id=item_id,
            units_left=float(stock.units_left),
            taken_count=taken,
            daily_rate=daily_rate,
            days_remaining=days_remaining,
            projected_end_at=projected,
        )

    def _taken_count(self, item_id: str, at: datetime) -> int:
        return self.doses.count_taken_between(item_id, at - timedelta(days=self.trailing_days), at)

    def _reproject(self, stock: Stock, at: datetime) -> None:
        taken = self._taken_count(stock.item_id, at)
        _, _, projected = compute_projection(
            float(stock.units_left), taken, at, self.trailing_days, self.min_daily_rate
        )
        stock.projected_end_at = projected

    @staticmethod
    def _append(stock: Stock, at: datetime, amount: float, reason: ConsumptionReason) -> None:
        # Assign a new list so the JSON column is flagged dirty
        history = list(stock.consumption_history or [])
        history.append({"date": at.isoformat(), "amount": amount, "reason": reason.value})
        stock.consumption_history = history
