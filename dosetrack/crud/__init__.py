from .dose import DoseRepository
from .stock import StockRepository
from .notification import NotificationRepository
