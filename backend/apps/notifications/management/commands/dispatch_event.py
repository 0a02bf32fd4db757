"""
Dispatch event management command.

Dispatches one event through the configured rules. Dispatching again with
the same idempotency key replays the stored outcome without sending
anything, which makes the command safe to re-run after a timeout.
"""

import json

from django.core.management.base import BaseCommand, CommandError

from apps.core.logging import get_logger
from apps.notifications.dispatcher import parse_event
from apps.notifications.exceptions import StoreError, ValidationError
from apps.notifications.services import get_dispatcher

logger = get_logger(__name__)


class Command(BaseCommand):
    help = "Dispatch (or replay) a notification event"

    def add_arguments(self, parser):
        parser.add_argument("event_type", help="Event type, e.g. 'newEngagement'")
        parser.add_argument("subject_id", type=int, help="ID of the user the event is about")
        parser.add_argument(
            "--key",
            required=True,
            help="Idempotency key. Reuse it to replay instead of re-sending",
        )
        parser.add_argument(
            "--payload",
            default="{}",
            help="Event payload as a JSON object (default: {})",
        )

    def handle(self, *args, **options):
        try:
            payload = json.loads(options["payload"])
        except json.JSONDecodeError as e:
            raise CommandError(f"--payload is not valid JSON: {e}") from e
        if not isinstance(payload, dict):
            raise CommandError("--payload must be a JSON object")

        try:
            event = parse_event(
                {
                    "event_type": options["event_type"],
                    "idempotency_key": options["key"],
                    "subject_id": options["subject_id"],
                    "payload": payload,
                }
            )
            outcome = get_dispatcher().dispatch(event)
        except ValidationError as e:
            raise CommandError(str(e)) from e
        except StoreError as e:
            logger.error("dispatch_event_store_unavailable", error=str(e))
            raise CommandError(f"Store unavailable, safe to retry: {e}") from e

        verb = "Replayed" if outcome.replayed else "Dispatched"
        self.stdout.write(f"{verb} {event.event_type} [{event.idempotency_key}]: {outcome.state}")
        for failure in outcome.failures:
            self.stdout.write(
                self.style.WARNING(f"  action {failure.index} {failure.action}: {failure.reason}")
            )
