from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, case
from sqlalchemy.orm import Session, joinedload

from dosetrack.models.stock import Stock
from dosetrack.utils.timezone import to_utc_aware, utcnow


class StockRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_item(self, item_id: str) -> Optional[Stock]:
        return self.db.execute(select(Stock).where(Stock.item_id == item_id)).scalars().first()

    def lock_by_item(self, item_id: str) -> Optional[Stock]:
        """SELECT ... FOR UPDATE on the item's stock row (no-op locking on SQLite)."""
        stmt = (
            select(Stock)
            .where(Stock.item_id == item_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.execute(stmt).scalars().first()

    def decrement(self, item_id: str, amount: float) -> None:
        """Atomic floor-at-zero decrement executed by the database."""
        remaining = Stock.units_left - amount
        self.db.execute(
            update(Stock)
            .where(Stock.item_id == item_id)
            .values(units_left=case((remaining < 0, 0), else_=remaining), updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    def increment(self, item_id: str, amount: float) -> None:
        self.db.execute(
            update(Stock)
            .where(Stock.item_id == item_id)
            .values(units_left=Stock.units_left + amount, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )

    def refresh(self, stock: Stock) -> Stock:
        self.db.refresh(stock)
        return stock

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    def ending_before(self, cutoff: datetime, limit: int = 500) -> List[Stock]:
        """Stocks whose projected depletion falls on or before cutoff."""
        stmt = (
            select(Stock)
            .options(joinedload(Stock.item))
            .where(Stock.projected_end_at.is_not(None), Stock.projected_end_at <= to_utc_aware(cutoff))
            .order_by(Stock.projected_end_at.asc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars())
