from .dose import (
    MarkTakenRequest,
    MarkTakenResponse,
    SkipDoseRequest,
    SkipDoseResponse,
    SnoozeRequest,
    SnoozeResponse,
    DoseRead,
    StreakRead,
)
from .notification import (
    NotificationCreate,
    NotificationQueued,
    NotificationRead,
    ChannelPreferences,
    ChannelResult,
    DispatchOutcome,
    ProcessDueRequest,
    SweepSummary,
)
from .stock import StockRead, RefillRequest, AdjustRequest, StockProjection
