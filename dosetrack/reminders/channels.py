"""
Notification transports.

Each channel exposes `name` and `send(notification, target)`. `send` returns
nothing on success and raises ChannelDeliveryError on any failure, including
missing configuration. The dispatcher turns those into ChannelResult entries.
"""
import json
import logging
import os
import re
import smtplib
import ssl
import uuid
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Optional, Protocol

import requests
from firebase_admin import _apps, credentials, initialize_app, messaging  # type: ignore

from dosetrack.core.config import settings
from dosetrack.core.exceptions import ChannelDeliveryError

logger = logging.getLogger(__name__)

PUSH = "push"
EMAIL = "email"
CHAT = "chat"


def mask(value: Optional[str], keep: int = 4) -> str:
    """Log-safe rendering of tokens, phone numbers and addresses."""
    if not value:
        return "None"
    if "@" in value:
        local, _, domain = value.partition("@")
        return f"{local[:1]}***@{domain}"
    return f"{value[:keep]}***" if len(value) > keep else "***"


class Channel(Protocol):
    name: str

    def send(self, notification: Any, target: str) -> None:  # pragma: no cover - Protocol
        ...


def _ensure_firebase_initialized() -> bool:
    if _apps:
        return True

    proj = settings.FCM_PROJECT_ID
    creds_json = settings.FCM_CREDENTIALS_JSON or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    options = {"projectId": proj} if proj else None
    try:
        if creds_json and creds_json.strip().startswith("{"):
            initialize_app(credentials.Certificate(json.loads(creds_json)), options=options)
            logger.info("[FCM] Firebase app initialized (inline JSON)")
        elif creds_json and os.path.exists(creds_json):
            initialize_app(credentials.Certificate(creds_json), options=options)
            logger.info("[FCM] Firebase app initialized (file)")
        elif proj:
            initialize_app(options=options)
            logger.info("[FCM] Firebase app initialized (projectId only)")
        else:
            logger.warning("[FCM] No credentials provided - push notifications are disabled")
            return False
    except Exception as e:
        logger.error(f"[FCM] Failed to initialize Firebase: {e!r}")
        return False
    return True


class FcmPushChannel:
    name = PUSH

    def send(self, notification: Any, target: str) -> None:
        if not _ensure_firebase_initialized():
            raise ChannelDeliveryError(self.name, "FCM not configured")

        collapse_id = str(uuid.uuid4())
        message = messaging.Message(
            token=target,
            notification=messaging.Notification(title=notification.title, body=notification.body),
            data={
                "notification_id": str(notification.id),
                "notification_type": str(notification.notification_type),
                "dose_id": str(notification.dose_id or ""),
                "priority": str(notification.priority),
            },
            apns=messaging.APNSConfig(
                headers={
                    "apns-push-type": "alert",
                    "apns-priority": "10",
                    "apns-collapse-id": collapse_id,
                }
            ),
        )
        try:
            result = messaging.send(message, dry_run=False)
        except Exception as e:
            logger.warning(f"[FCM] Send failed to token={mask(target, 20)}: {e!r}")
            raise ChannelDeliveryError(self.name, str(e) or e.__class__.__name__) from e
        logger.info(f"[FCM] Sent notification={notification.id} message_id={result}")


class SmtpEmailChannel:
    name = EMAIL

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout or settings.CHANNEL_TIMEOUT_SECONDS

    def send(self, notification: Any, target: str) -> None:
        if not settings.smtp_configured:
            raise ChannelDeliveryError(self.name, "SMTP not configured")

        msg = MIMEMultipart("alternative")
        msg["Subject"] = notification.title
        msg["From"] = settings.FROM_EMAIL
        msg["To"] = target
        msg.attach(MIMEText(self._text(notification), "plain"))
        msg.attach(MIMEText(self._html(notification), "html"))

        try:
            self._deliver(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"[Email] Send failed to {mask(target)}: {e!r}")
            raise ChannelDeliveryError(self.name, str(e) or e.__class__.__name__) from e
        logger.info(f"[Email] Sent notification={notification.id} to {mask(target)}")

    def _deliver(self, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        port = int(settings.SMTP_PORT)
        if port == 465:
            with smtplib.SMTP_SSL(settings.SMTP_SERVER, port, context=context, timeout=self.timeout) as server:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.send_message(msg)
        else:
            with smtplib.SMTP(settings.SMTP_SERVER, port, timeout=self.timeout) as server:
                server.starttls(context=context)
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
                server.send_message(msg)

    @staticmethod
    def _text(notification: Any) -> str:
        lines = [notification.title, "", notification.body]
        if settings.APP_URL:
            lines += ["", f"Open the app: {settings.APP_URL}"]
        return "\n".join(lines)

    @staticmethod
    def _html(notification: Any) -> str:
        link = ""
        if settings.APP_URL:
            link = f'<p><a href="{escape(settings.APP_URL)}">Open the app</a></p>'
        return f"""
        <!DOCTYPE html>
        <html>
        <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
            <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
                <h2>{escape(notification.title)}</h2>
                <p>{escape(notification.body)}</p>
                {link}
            </div>
        </body>
        </html>
        """


class EvolutionChatChannel:
    """WhatsApp delivery through an Evolution API gateway."""

    name = CHAT

    def __init__(self, session: Optional[requests.Session] = None, timeout: Optional[float] = None):
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.timeout = timeout or settings.CHANNEL_TIMEOUT_SECONDS

    def send(self, notification: Any, target: str) -> None:
        if not settings.evolution_configured:
            raise ChannelDeliveryError(self.name, "Evolution API not configured")

        number = re.sub(r"\D", "", target or "")
        if not number:
            raise ChannelDeliveryError(self.name, "invalid chat address")

        url = f"{settings.EVOLUTION_API_URL.rstrip('/')}/message/sendText/{settings.EVOLUTION_INSTANCE}"
        try:
            response = self.session.post(
                url,
                headers={"apikey": settings.EVOLUTION_API_KEY, "Content-Type": "application/json"},
                json={"number": number, "text": f"*{notification.title}*\n\n{notification.body}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"[Chat] Request failed for {mask(number)}: {e!r}")
            raise ChannelDeliveryError(self.name, str(e) or e.__class__.__name__) from e

        if not response.ok:
            logger.warning(f"[Chat] Gateway rejected message for {mask(number)}: HTTP {response.status_code}")
            raise ChannelDeliveryError(self.name, f"HTTP {response.status_code}: {response.text[:200]}")
        logger.info(f"[Chat] Sent notification={notification.id} to {mask(number)}")

    def close(self) -> None:
        if self._owns_session:
            self.session.close()


def default_channels() -> list:
    return [FcmPushChannel(), SmtpEmailChannel(), EvolutionChatChannel()]
