"""
Tests for the dispatch_event management command.
"""

from io import StringIO
from unittest.mock import patch

import pytest
from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError

from apps.notifications.exceptions import StoreError
from apps.notifications.models import Notification
from tests.accounts.factories import UserFactory


@pytest.mark.django_db
class TestDispatchEvent:
    """Tests for dispatch_event command."""

    def test_dispatches_event(self) -> None:
        user = UserFactory.create()
        out = StringIO()

        call_command(
            "dispatch_event",
            "newEngagement",
            str(user.pk),
            "--key=cli-1",
            '--payload={"engagement_id": 1}',
            stdout=out,
        )

        assert "Dispatched newEngagement [cli-1]: completed" in out.getvalue()
        assert Notification.objects.get().payload == {"engagement_id": 1}
        assert len(mail.outbox) == 1

    def test_second_run_replays(self) -> None:
        user = UserFactory.create()
        call_command("dispatch_event", "newEngagement", str(user.pk), "--key=cli-1", stdout=StringIO())
        out = StringIO()

        call_command("dispatch_event", "newEngagement", str(user.pk), "--key=cli-1", stdout=out)

        assert "Replayed newEngagement [cli-1]: completed" in out.getvalue()
        assert len(mail.outbox) == 1

    def test_reports_failed_actions(self) -> None:
        out = StringIO()

        call_command("dispatch_event", "newEngagement", "999999", "--key=cli-2", stdout=out)

        output = out.getvalue()
        assert "partially_failed" in output
        assert "action 1 notify_one:notification: Recipient not found" in output

    def test_invalid_event_type(self) -> None:
        with pytest.raises(CommandError, match="event_type"):
            call_command("dispatch_event", "Bad Type", "1", "--key=cli-3", stdout=StringIO())

        assert not Notification.objects.exists()

    def test_invalid_payload(self) -> None:
        with pytest.raises(CommandError, match="not valid JSON"):
            call_command(
                "dispatch_event", "newEngagement", "1", "--key=cli-4", "--payload={", stdout=StringIO()
            )

    def test_payload_must_be_object(self) -> None:
        with pytest.raises(CommandError, match="JSON object"):
            call_command(
                "dispatch_event", "newEngagement", "1", "--key=cli-5", "--payload=[1]", stdout=StringIO()
            )

    def test_store_unavailable(self) -> None:
        with patch(
            "apps.notifications.stores.DjangoEventRecordStore.append",
            side_effect=StoreError("down"),
        ):
            with pytest.raises(CommandError, match="safe to retry"):
                call_command(
                    "dispatch_event", "newEngagement", "1", "--key=cli-6", stdout=StringIO()
                )
