"""Tests for AuditSink: audit writes, notification queueing and queries."""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from django.utils import timezone
from freezegun import freeze_time

from billing.audit import AuditSink
from billing.models import AuditEvent
from billing.state_machines import AuditEventType
from billing.tests.factories import AuditEventFactory, UserFactory


class TestRecord:
    def test_creates_event(self, user):
        event = AuditSink.record(
            user.pk,
            AuditEventType.PAYMENT_COMPLETED,
            {"amount": "49.00"},
            resource_type="payment_record",
            resource_id="abc",
            ip_address="198.51.100.4",
        )

        assert event is not None
        event.refresh_from_db()
        assert event.user_id == user.pk
        assert event.payload == {"amount": "49.00"}
        assert event.resource_id == "abc"
        assert event.ip_address == "198.51.100.4"

    def test_event_without_user(self, db):
        event = AuditSink.record(None, AuditEventType.PAYMENT_UNMATCHED)

        assert event.user_id is None
        assert event.payload == {}

    def test_write_failure_is_swallowed(self, user):
        """Should log and return None instead of failing the caller."""
        with patch.object(AuditEvent.objects, "create", side_effect=DatabaseError("disk full")):
            result = AuditSink.record(user.pk, AuditEventType.PAYMENT_COMPLETED)

        assert result is None
        assert not AuditEvent.objects.exists()

    def test_events_are_append_only(self, user):
        event = AuditSink.record(user.pk, AuditEventType.PAYMENT_COMPLETED)
        event.payload = {"edited": True}

        with pytest.raises(ValueError):
            event.save()


class TestNotify:
    def test_queues_notification_task(self, user, notification_queue):
        queued = AuditSink.notify(user.pk, "payment_confirmation", {"amount": "10.00"})

        assert queued is True
        notification_queue.assert_called_once_with(
            str(user.pk), "payment_confirmation", {"amount": "10.00"}
        )

    def test_broker_failure_is_swallowed(self, user, notification_queue):
        """Should report failure instead of raising when the broker is down."""
        notification_queue.side_effect = ConnectionError("broker down")

        assert AuditSink.notify(user.pk, "payment_confirmation") is False

    def test_no_user_skips(self, notification_queue):
        assert AuditSink.notify(None, "payment_confirmation") is False
        notification_queue.assert_not_called()


class TestQuery:
    def test_filters_by_user_and_type(self, user):
        other = UserFactory()
        mine = AuditEventFactory(user=user, event_type=AuditEventType.PAYMENT_COMPLETED)
        AuditEventFactory(user=user, event_type=AuditEventType.CREDIT_CONSUMED)
        AuditEventFactory(user=other, event_type=AuditEventType.PAYMENT_COMPLETED)

        results = list(
            AuditSink.query(user_id=user.pk, event_type=AuditEventType.PAYMENT_COMPLETED)
        )

        assert results == [mine]

    def test_time_range_is_half_open(self, user):
        """Should include since and exclude until."""
        start = timezone.now()
        with freeze_time(start):
            at_start = AuditEventFactory(user=user)
        with freeze_time(start + timedelta(hours=1)):
            AuditEventFactory(user=user)

        results = list(AuditSink.query(since=start, until=start + timedelta(hours=1)))

        assert results == [at_start]

    def test_most_recent_first(self, user):
        start = timezone.now()
        with freeze_time(start):
            older = AuditEventFactory(user=user)
        with freeze_time(start + timedelta(minutes=5)):
            newer = AuditEventFactory(user=user)

        assert list(AuditSink.query(user_id=user.pk)) == [newer, older]
