import secrets
from typing import Generator, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from dosetrack.core.config import settings
from dosetrack.core.exceptions import NotFoundError
from dosetrack.db.session import SessionLocal
from dosetrack.models.item import Item
from dosetrack.reminders.dispatcher import ChannelDispatcher
from dosetrack.reminders.scheduler import NotificationScheduler
from dosetrack.services.dose_state_machine import DoseStateMachine
from dosetrack.services.stock_ledger import StockLedger


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity, established upstream by the auth layer."""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()


def verify_api_key_dependency(
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> bool:
    """
    Dependency guarding the internal scheduling endpoints
    """
    if not settings.REQUIRE_API_KEY:
        return True

    api_key = None
    if x_api_key:
        api_key = x_api_key
    elif authorization and authorization.startswith("Bearer "):
        api_key = authorization.split(" ", 1)[1]

    if not api_key or not any(secrets.compare_digest(api_key, k) for k in settings.api_keys):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
        )
    return True


def get_owned_item(db: Session, item_id: str, user_id: str) -> Item:
    item = db.get(Item, item_id)
    if item is None or item.user_id != user_id:
        raise NotFoundError("Item not found")
    return item


def get_dispatcher() -> Generator:
    dispatcher = ChannelDispatcher()
    try:
        yield dispatcher
    finally:
        dispatcher.close()


def get_dose_state_machine(db: Session = Depends(get_db)) -> DoseStateMachine:
    return DoseStateMachine(db)


def get_stock_ledger(db: Session = Depends(get_db)) -> StockLedger:
    return StockLedger(db)


def get_notification_scheduler(
    db: Session = Depends(get_db),
    dispatcher: ChannelDispatcher = Depends(get_dispatcher),
) -> NotificationScheduler:
    return NotificationScheduler(db, dispatcher=dispatcher)
