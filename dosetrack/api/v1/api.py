from fastapi import APIRouter

from dosetrack.api.v1.endpoints import doses
from dosetrack.api.v1.endpoints import notifications
from dosetrack.api.v1.endpoints import stock

api_router = APIRouter()

api_router.include_router(doses.router, prefix="/doses", tags=["doses"])
api_router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
api_router.include_router(stock.router, prefix="/stock", tags=["stock"])
