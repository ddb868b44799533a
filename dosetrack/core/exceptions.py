"""
Error taxonomy shared by the dose, stock and notification layers.

The API layer maps these onto HTTP statuses; the Celery tasks log them.
NotFoundError deliberately covers both "absent" and "owned by someone else".
"""
from typing import Optional


class DoseTrackError(Exception):
    """Base class for domain errors."""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, detail: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail or {}


class ValidationError(DoseTrackError):
    status_code = 422
    code = "validation_error"


class NotFoundError(DoseTrackError):
    status_code = 404
    code = "not_found"


class ConflictError(DoseTrackError):
    status_code = 409
    code = "conflict"


class InternalError(DoseTrackError):
    status_code = 500
    code = "internal_error"


class ChannelDeliveryError(DoseTrackError):
    """Raised by a channel when a single transport attempt fails.

    Never escapes ChannelDispatcher.dispatch; it is folded into a ChannelResult.
    """

    code = "channel_delivery_error"

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(message, detail={"channel": channel})
        self.channel = channel
