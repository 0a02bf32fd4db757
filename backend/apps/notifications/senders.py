"""
Message senders - pluggable delivery backends.

DjangoMailSender: renders a Django template and sends it through django.core.mail
"""

import smtplib
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string

from apps.core.logging import get_logger
from apps.notifications.exceptions import SendError
from apps.notifications.schemas import Recipient

logger = get_logger(__name__)

TEMPLATE_DIR = "notifications/email"
DEFAULT_SUBJECT = "Notification"


class MessageSender(ABC):
    """Abstract base class for message senders."""

    @abstractmethod
    def send(self, recipient: Recipient, template_id: str, variables: Mapping[str, Any]) -> None:
        """
        Deliver one message.

        Raises:
            SendError: If the message could not be delivered.
        """


class DjangoMailSender(MessageSender):
    """
    Email sender built on Django's mail framework.

    Looks up ``notifications/email/<template_id>.txt`` (required) and
    ``<template_id>.html`` (optional). The subject is the ``title`` variable.
    """

    def __init__(self, from_email: str | None = None):
        self.from_email = from_email

    def send(self, recipient: Recipient, template_id: str, variables: Mapping[str, Any]) -> None:
        context = {**variables, "recipient": recipient}

        try:
            body = render_to_string(f"{TEMPLATE_DIR}/{template_id}.txt", context)
        except TemplateDoesNotExist as e:
            raise SendError(f"Unknown template {template_id!r}", recipient.id) from e

        try:
            html = render_to_string(f"{TEMPLATE_DIR}/{template_id}.html", context)
        except TemplateDoesNotExist:
            html = None

        message = EmailMultiAlternatives(
            subject=str(variables.get("title") or DEFAULT_SUBJECT),
            body=body,
            from_email=self.from_email or settings.DEFAULT_FROM_EMAIL,
            to=[recipient.email],
        )
        if html:
            message.attach_alternative(html, "text/html")

        try:
            sent = message.send()
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(
                "notification_email_failed",
                recipient_id=recipient.id,
                template_id=template_id,
                error=str(e),
            )
            raise SendError(f"Mail transport error: {e}", recipient.id) from e

        if not sent:
            raise SendError("Mail backend accepted no messages", recipient.id)

        logger.info(
            "notification_email_sent",
            recipient_id=recipient.id,
            recipient_email=recipient.email,
            template_id=template_id,
        )
