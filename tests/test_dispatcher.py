# tests/test_dispatcher.py

import pytest

from conftest import FakeChannel, FakeNotification
from dosetrack.api import deps
from dosetrack.reminders.dispatcher import NO_CHANNEL_MESSAGE, ChannelDispatcher, resolve_targets
from dosetrack.schemas.notification import ChannelPreferences


ALL_ON = ChannelPreferences(
    push_enabled=True,
    push_token="fcm-token",
    email_enabled=True,
    chat_enabled=True,
    chat_address="+15550001111",
)


@pytest.fixture
def notification():
    return FakeNotification()


def test_push_ok_email_fails_is_overall_success(notification) -> None:
    push = FakeChannel("push")
    email = FakeChannel("email", error="mailbox unavailable")
    dispatcher = ChannelDispatcher([push, email], timeout=2)
    prefs = ChannelPreferences(push_enabled=True, push_token="fcm-token")

    outcome = dispatcher.dispatch(notification, prefs, "user@example.com")

    assert outcome.success is True
    assert outcome.delivery_status == "delivered"
    assert outcome.error_message is None
    assert [r.model_dump() for r in outcome.channel_results] == [
        {"channel": "push", "success": True, "error": None},
        {"channel": "email", "success": False, "error": "mailbox unavailable"},
    ]


def test_all_channels_fail_concatenates_errors(notification) -> None:
    dispatcher = ChannelDispatcher(
        [
            FakeChannel("push", error="invalid token"),
            FakeChannel("email", error="SMTP not configured"),
            FakeChannel("chat", error="HTTP 500: gateway down"),
        ],
        timeout=2,
    )

    outcome = dispatcher.dispatch(notification, ALL_ON, "user@example.com")

    assert outcome.success is False
    assert outcome.delivery_status == "failed"
    assert outcome.error_message == (
        "push: invalid token; email: SMTP not configured; chat: HTTP 500: gateway down"
    )


def test_results_follow_push_email_chat_order(notification) -> None:
    # registered out of order on purpose
    dispatcher = ChannelDispatcher([FakeChannel("chat"), FakeChannel("email"), FakeChannel("push")], timeout=2)

    outcome = dispatcher.dispatch(notification, ALL_ON, "user@example.com")

    assert [r.channel for r in outcome.channel_results] == ["push", "email", "chat"]


def test_targets_are_passed_to_channels(notification) -> None:
    push, email, chat = FakeChannel("push"), FakeChannel("email"), FakeChannel("chat")
    dispatcher = ChannelDispatcher([push, email, chat], timeout=2)

    dispatcher.dispatch(notification, ALL_ON, "user@example.com")

    assert push.calls == [("n-1", "fcm-token")]
    assert email.calls == [("n-1", "user@example.com")]
    assert chat.calls == [("n-1", "+15550001111")]


def test_disabled_or_unreachable_channels_are_not_attempted(notification) -> None:
    push, email, chat = FakeChannel("push"), FakeChannel("email"), FakeChannel("chat")
    dispatcher = ChannelDispatcher([push, email, chat], timeout=2)
    # push enabled without a token, chat enabled without an address, no email resolved
    prefs = ChannelPreferences(push_enabled=True, email_enabled=True, chat_enabled=True)

    outcome = dispatcher.dispatch(notification, prefs, None)

    assert outcome.success is False
    assert outcome.channel_results == []
    assert outcome.error_message == NO_CHANNEL_MESSAGE
    assert not (push.calls or email.calls or chat.calls)


def test_email_is_on_by_default_and_can_be_disabled() -> None:
    assert resolve_targets(ChannelPreferences(), "a@example.com") == [("email", "a@example.com")]
    assert resolve_targets(ChannelPreferences(email_enabled=False), "a@example.com") == []


def test_slow_channel_times_out_without_blocking_others(notification) -> None:
    slow = FakeChannel("push", block=True)
    email = FakeChannel("email")
    dispatcher = ChannelDispatcher([slow, email], timeout=0.2)
    prefs = ChannelPreferences(push_enabled=True, push_token="fcm-token")

    try:
        outcome = dispatcher.dispatch(notification, prefs, "user@example.com")
    finally:
        slow.release.set()

    assert outcome.success is True
    push_result, email_result = outcome.channel_results
    assert push_result.success is False
    assert "timed out" in push_result.error
    assert email_result.success is True


def test_unexpected_channel_exception_is_captured(notification) -> None:
    dispatcher = ChannelDispatcher([FakeChannel("email", exc=RuntimeError("socket closed"))], timeout=2)

    outcome = dispatcher.dispatch(notification, ChannelPreferences(), "user@example.com")

    assert outcome.success is False
    assert outcome.error_message == "email: socket closed"


def test_channel_missing_from_registry_is_skipped(notification) -> None:
    dispatcher = ChannelDispatcher([FakeChannel("email")], timeout=2)

    outcome = dispatcher.dispatch(notification, ALL_ON, "user@example.com")

    assert [r.channel for r in outcome.channel_results] == ["email"]


class ClosableChannel(FakeChannel):
    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.closed = False

    def close(self) -> None:
        self.closed = True


def test_close_releases_channel_resources() -> None:
    chat = ClosableChannel("chat")

    ChannelDispatcher([FakeChannel("push"), chat]).close()

    assert chat.closed is True


def test_request_scoped_dispatcher_is_closed_on_teardown(monkeypatch) -> None:
    closed = []
    monkeypatch.setattr(ChannelDispatcher, "close", lambda self: closed.append(self))

    dependency = deps.get_dispatcher()
    dispatcher = next(dependency)
    assert closed == []
    dependency.close()

    assert closed == [dispatcher]
