"""
Local development settings.

Extends base settings with development-friendly defaults.
"""

from apps.core.logging import configure_logging

from .base import *  # noqa: F403
from .base import settings

DEBUG = True
ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

# Print emails instead of sending them
EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"

# Pretty console logs in development
configure_logging(json_format=False, log_level=settings.LOG_LEVEL)
