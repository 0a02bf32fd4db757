"""
Notifications API endpoints.

Routes are unauthenticated and take the user ID from the path. Mount the
router behind the deployment's auth before exposing it publicly.
"""

from django.http import HttpRequest
from ninja import Query, Router
from ninja.errors import HttpError

from apps.accounts.models import User
from apps.core.logging import get_logger
from apps.core.schemas import ErrorResponse
from apps.notifications.exceptions import StoreError
from apps.notifications.schemas import (
    NotificationListParams,
    NotificationListResponse,
    NotificationResponse,
)
from apps.notifications.services import list_notifications

logger = get_logger(__name__)

router = Router(tags=["notifications"])


@router.get(
    "/users/{user_id}",
    response={200: NotificationListResponse, 404: ErrorResponse, 503: ErrorResponse},
    operation_id="listNotifications",
    summary="List a user's notifications",
)
def list_user_notifications(
    request: HttpRequest, user_id: int, params: Query[NotificationListParams]
) -> NotificationListResponse:
    """
    List notifications for a user, newest first.

    Each entry carries the caption shown in the notification feed and the
    delivery status of the emails that went with it.
    """
    if not User.objects.filter(pk=user_id).exists():
        raise HttpError(404, "User not found")

    try:
        records = list_notifications(user_id, limit=params.limit)
    except StoreError:
        logger.exception("notification_list_failed", user_id=user_id)
        raise HttpError(503, "Notifications are temporarily unavailable")

    return NotificationListResponse(
        notifications=[
            NotificationResponse(
                idempotency_key=record.idempotency_key,
                event_type=record.event_type,
                caption=record.caption,
                status=record.status.value,
                data=record.payload,
                created_at=record.created_at.isoformat(),
            )
            for record in records
        ]
    )
