import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Any, Dict, Iterable, List, Optional, Tuple

from dosetrack.core.config import settings
from dosetrack.core.exceptions import ChannelDeliveryError
from dosetrack.schemas.notification import ChannelPreferences, ChannelResult, DispatchOutcome
from .channels import CHAT, EMAIL, PUSH, Channel, default_channels
from .metrics import channel_attempts_total

logger = logging.getLogger(__name__)

CHANNEL_ORDER = (PUSH, EMAIL, CHAT)
NO_CHANNEL_MESSAGE = "no channel enabled for user"


def resolve_targets(preferences: ChannelPreferences, email: Optional[str]) -> List[Tuple[str, str]]:
    """(channel, target) pairs the user can be reached on, in dispatch order."""
    targets = []
    if preferences.push_enabled and preferences.push_token:
        targets.append((PUSH, preferences.push_token))
    if preferences.email_enabled and email:
        targets.append((EMAIL, email))
    if preferences.chat_enabled and preferences.chat_address:
        targets.append((CHAT, preferences.chat_address))
    return targets


class ChannelDispatcher:
    """Fans one notification out to every reachable channel.

    Channels run concurrently, each bounded by the same timeout measured from
    the start of dispatch. A channel error never escapes: it becomes a failed
    ChannelResult. Overall success means at least one channel succeeded.
    """

    def __init__(self, channels: Optional[Iterable[Channel]] = None, timeout: Optional[float] = None):
        self.registry: Dict[str, Channel] = {}
        for channel in channels if channels is not None else default_channels():
            self.register(channel)
        self.timeout = timeout if timeout is not None else settings.CHANNEL_TIMEOUT_SECONDS

    def register(self, channel: Channel) -> None:
        self.registry[channel.name] = channel

    def close(self) -> None:
        """Release resources held by channels, such as HTTP sessions."""
        for channel in self.registry.values():
            close = getattr(channel, "close", None)
            if close is not None:
                close()

    def dispatch(self, notification: Any, preferences: ChannelPreferences, email: Optional[str]) -> DispatchOutcome:
        targets = [(name, target) for name, target in resolve_targets(preferences, email) if name in self.registry]
        if not targets:
            logger.info(f"[Dispatch] notification={notification.id} has no reachable channel")
            return DispatchOutcome(success=False, channel_results=[], error_message=NO_CHANNEL_MESSAGE)

        results: List[ChannelResult] = []
        executor = ThreadPoolExecutor(max_workers=len(targets), thread_name_prefix="channel")
        try:
            deadline = time.monotonic() + self.timeout
            futures = [
                (name, executor.submit(self.registry[name].send, notification, target))
                for name, target in targets
            ]
            for name, future in futures:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    future.result(timeout=remaining)
                    results.append(ChannelResult(channel=name, success=True))
                except FutureTimeout:
                    future.cancel()
                    results.append(ChannelResult(channel=name, success=False, error=f"timed out after {self.timeout}s"))
                except ChannelDeliveryError as e:
                    results.append(ChannelResult(channel=name, success=False, error=e.message))
                except Exception as e:
                    logger.exception(f"[Dispatch] channel {name} raised unexpectedly")
                    results.append(ChannelResult(channel=name, success=False, error=str(e) or e.__class__.__name__))
        finally:
            # A hung transport must not hold the sweep; abandon its thread.
            executor.shutdown(wait=False, cancel_futures=True)

        for r in results:
            channel_attempts_total.labels(channel=r.channel, outcome="success" if r.success else "failure").inc()

        success = any(r.success for r in results)
        error_message = None
        if not success:
            error_message = "; ".join(f"{r.channel}: {r.error}" for r in results)
        logger.info(
            f"[Dispatch] notification={notification.id} success={success} "
            f"channels={[(r.channel, r.success) for r in results]}"
        )
        return DispatchOutcome(success=success, channel_results=results, error_message=error_message)
