from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from dosetrack.api import deps
from dosetrack.core.exceptions import NotFoundError
from dosetrack.crud.stock import StockRepository
from dosetrack.models.stock import ConsumptionReason
from dosetrack.schemas.stock import AdjustRequest, RefillRequest, StockProjection, StockRead
from dosetrack.services.stock_ledger import StockLedger


router = APIRouter()


@router.get("/{item_id}", response_model=StockRead)
def get_stock(
    item_id: str,
    db: Session = Depends(deps.get_db),
    user_id: str = Depends(deps.get_current_user_id),
):
    deps.get_owned_item(db, item_id, user_id)
    stock = StockRepository(db).get_by_item(item_id)
    if stock is None:
        raise NotFoundError("Stock not found")
    return stock


@router.get("/{item_id}/projection", response_model=StockProjection)
def get_projection(
    item_id: str,
    db: Session = Depends(deps.get_db),
    ledger: StockLedger = Depends(deps.get_stock_ledger),
    user_id: str = Depends(deps.get_current_user_id),
):
    deps.get_owned_item(db, item_id, user_id)
    return ledger.projection(item_id)


@router.post("/{item_id}/refill", response_model=StockRead)
def refill_stock(
    item_id: str,
    payload: RefillRequest,
    db: Session = Depends(deps.get_db),
    ledger: StockLedger = Depends(deps.get_stock_ledger),
    user_id: str = Depends(deps.get_current_user_id),
):
    deps.get_owned_item(db, item_id, user_id)
    return ledger.refill(item_id, payload.amount, payload.at)


@router.post("/{item_id}/adjust", response_model=StockRead)
def adjust_stock(
    item_id: str,
    payload: AdjustRequest,
    db: Session = Depends(deps.get_db),
    ledger: StockLedger = Depends(deps.get_stock_ledger),
    user_id: str = Depends(deps.get_current_user_id),
):
    deps.get_owned_item(db, item_id, user_id)
    return ledger.adjust(item_id, payload.units_left, ConsumptionReason(payload.reason), payload.at)
