"""
Stripe client configuration.

Provides a configured Stripe module for payment operations.
"""

from types import ModuleType

import stripe

from config.settings.base import settings

# API version the payment provider is written against
STRIPE_API_VERSION = "2025-06-30.basil"

# Retries for network failures; charges pass an idempotency key when they have one
STRIPE_MAX_NETWORK_RETRIES = 2


def configure_stripe() -> None:
    """Configure Stripe API with settings."""
    stripe.api_key = settings.STRIPE_SECRET_KEY
    stripe.api_version = STRIPE_API_VERSION
    stripe.max_network_retries = STRIPE_MAX_NETWORK_RETRIES


def get_stripe() -> ModuleType:
    """
    Get configured Stripe module.

    Ensures Stripe is configured before use.
    """
    configure_stripe()
    return stripe


def get_currency() -> str:
    """Currency every charge is made in, lowercased as Stripe expects."""
    return settings.STRIPE_CURRENCY.lower()
