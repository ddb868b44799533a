# tests/test_channels.py

import pytest
import requests

from conftest import FakeNotification
from dosetrack.core.config import settings
from dosetrack.core.exceptions import ChannelDeliveryError
from dosetrack.reminders import channels
from dosetrack.reminders.channels import EvolutionChatChannel, FcmPushChannel, SmtpEmailChannel, mask


class DummyResponse:
    def __init__(self, status_code: int = 201, text: str = "{}") -> None:
        self.status_code = status_code
        self.text = text

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class DummySession:
    def __init__(self, response=None, exc=None) -> None:
        self.response = response or DummyResponse()
        self.exc = exc
        self.calls = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.exc is not None:
            raise self.exc
        return self.response


@pytest.fixture
def evolution(monkeypatch):
    monkeypatch.setattr(settings, "EVOLUTION_API_URL", "https://gateway.example.com/")
    monkeypatch.setattr(settings, "EVOLUTION_API_KEY", "evo-key")
    monkeypatch.setattr(settings, "EVOLUTION_INSTANCE", "dosetrack")


def test_chat_posts_send_text_to_gateway(evolution) -> None:
    session = DummySession()
    channel = EvolutionChatChannel(session=session, timeout=3)

    channel.send(FakeNotification(title="Time to take Aspirin", body="Due now."), "+1 (555) 000-1111")

    call = session.calls[0]
    assert call["url"] == "https://gateway.example.com/message/sendText/dosetrack"
    assert call["headers"]["apikey"] == "evo-key"
    assert call["json"] == {"number": "15550001111", "text": "*Time to take Aspirin*\n\nDue now."}
    assert call["timeout"] == 3


def test_chat_http_error_raises_delivery_error(evolution) -> None:
    channel = EvolutionChatChannel(session=DummySession(DummyResponse(500, "gateway down")))

    with pytest.raises(ChannelDeliveryError) as exc_info:
        channel.send(FakeNotification(), "+15550001111")

    assert exc_info.value.channel == "chat"
    assert exc_info.value.message == "HTTP 500: gateway down"


def test_chat_transport_error_raises_delivery_error(evolution) -> None:
    channel = EvolutionChatChannel(session=DummySession(exc=requests.ConnectionError("refused")))

    with pytest.raises(ChannelDeliveryError, match="refused"):
        channel.send(FakeNotification(), "+15550001111")


def test_chat_without_gateway_config_fails(monkeypatch) -> None:
    monkeypatch.setattr(settings, "EVOLUTION_API_URL", None)
    session = DummySession()

    with pytest.raises(ChannelDeliveryError, match="not configured"):
        EvolutionChatChannel(session=session).send(FakeNotification(), "+15550001111")
    assert session.calls == []


def test_email_without_smtp_config_fails(monkeypatch) -> None:
    monkeypatch.setattr(settings, "SMTP_SERVER", None)

    with pytest.raises(ChannelDeliveryError) as exc_info:
        SmtpEmailChannel().send(FakeNotification(), "user@example.com")

    assert exc_info.value.message == "SMTP not configured"


def test_email_smtp_error_raises_delivery_error(monkeypatch) -> None:
    import smtplib

    monkeypatch.setattr(settings, "SMTP_SERVER", "smtp.example.com")
    monkeypatch.setattr(settings, "SMTP_USERNAME", "mailer@example.com")
    monkeypatch.setattr(settings, "SMTP_PASSWORD", "secret")
    monkeypatch.setattr(settings, "FROM_EMAIL", "mailer@example.com")

    channel = SmtpEmailChannel()
    sent = []

    def refuse(msg):
        sent.append(msg)
        raise smtplib.SMTPRecipientsRefused({"user@example.com": (550, b"no such user")})

    monkeypatch.setattr(channel, "_deliver", refuse)

    with pytest.raises(ChannelDeliveryError):
        channel.send(FakeNotification(title="Low stock"), "user@example.com")
    assert sent[0]["To"] == "user@example.com"
    assert sent[0]["Subject"] == "Low stock"


def test_push_without_firebase_fails(monkeypatch) -> None:
    monkeypatch.setattr(channels, "_ensure_firebase_initialized", lambda: False)

    with pytest.raises(ChannelDeliveryError, match="FCM not configured"):
        FcmPushChannel().send(FakeNotification(), "fcm-token")


def test_push_send_error_raises_delivery_error(monkeypatch) -> None:
    monkeypatch.setattr(channels, "_ensure_firebase_initialized", lambda: True)

    def reject(message, dry_run=False):
        raise ValueError("invalid registration token")

    monkeypatch.setattr(channels.messaging, "send", reject)

    with pytest.raises(ChannelDeliveryError) as exc_info:
        FcmPushChannel().send(FakeNotification(), "bad-token")
    assert exc_info.value.channel == "push"
    assert "invalid registration token" in exc_info.value.message


def test_push_sends_message_to_token(monkeypatch) -> None:
    monkeypatch.setattr(channels, "_ensure_firebase_initialized", lambda: True)
    sent = []
    monkeypatch.setattr(channels.messaging, "send", lambda message, dry_run=False: sent.append(message) or "msg-1")

    FcmPushChannel().send(FakeNotification(id="n-42"), "good-token")

    assert sent[0].token == "good-token"
    assert sent[0].data["notification_id"] == "n-42"


def test_mask_hides_secrets() -> None:
    assert mask("user@example.com") == "u***@example.com"
    assert mask("15550001111") == "1555***"
    assert mask(None) == "None"


def test_chat_channel_closes_only_its_own_session(monkeypatch) -> None:
    closed = []
    monkeypatch.setattr(requests.Session, "close", lambda self: closed.append(self))
    owned = EvolutionChatChannel()

    EvolutionChatChannel(session=DummySession()).close()
    owned.close()

    assert closed == [owned.session]
