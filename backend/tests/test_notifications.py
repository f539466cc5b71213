"""Tests for best-effort workflow notification dispatch."""
import logging
import uuid
from unittest.mock import MagicMock, patch

from app.services import notifications


def _event(**kwargs) -> notifications.WorkflowEvent:
    return notifications.WorkflowEvent(
        event_type="pr_submitted",
        entity_type="purchase_request",
        entity_id=uuid.uuid4(),
        **kwargs,
    )


def test_dispatch_without_subscribers_logs_console_mock(caplog):
    recipient = uuid.uuid4()
    with caplog.at_level(logging.INFO, logger="app.services.notifications"):
        notifications.dispatch(_event(recipient_ids=[recipient]))

    assert "WORKFLOW NOTIFICATION" in caplog.text
    assert str(recipient) in caplog.text


def test_failing_subscriber_is_logged_and_others_still_run(caplog):
    broken = MagicMock(side_effect=ConnectionError("sink unreachable"))
    healthy = MagicMock()
    notifications.subscribe(broken)
    notifications.subscribe(healthy)

    with caplog.at_level(logging.WARNING, logger="app.services.notifications"):
        notifications.dispatch(_event())

    healthy.assert_called_once()
    assert "sink unreachable" in caplog.text


@patch("app.services.notifications.settings")
def test_disabled_notifications_are_dropped(mock_settings):
    mock_settings.NOTIFICATIONS_ENABLED = False
    handler = MagicMock()
    notifications.subscribe(handler)

    notifications.dispatch(_event())

    handler.assert_not_called()


def test_subscribe_is_idempotent():
    handler = MagicMock()
    notifications.subscribe(handler)
    notifications.subscribe(handler)
    assert notifications._subscribers.count(handler) == 1

    notifications.unsubscribe(handler)
    assert handler not in notifications._subscribers
