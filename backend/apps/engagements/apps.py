"""Engagements app configuration."""

from django.apps import AppConfig


class EngagementsConfig(AppConfig):
    """Configuration for engagements app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.engagements"
