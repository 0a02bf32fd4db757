"""
Shared pytest fixtures for all tests.

This module provides common fixtures used across multiple test modules.
Individual test modules can override these fixtures if needed.

Factories
---------
Import factories directly from their modules:

    from tests.accounts.factories import UserFactory, OrganizationFactory, MemberFactory
    from tests.engagements.factories import EngagementFactory
    from tests.billing.factories import SubscriptionFactory, SubscriptionPlanFactory

Example usage:

    @pytest.mark.django_db
    def test_something():
        user = UserFactory.create(email="test@example.com")
        org = OrganizationFactory.create()
        member = MemberFactory.create(user=user, organization=org, role="owner")
"""

import pytest
from django.test import Client, RequestFactory


@pytest.fixture(autouse=True)
def reset_cached_services():
    """
    Drop process-wide singletons between tests.

    The dispatcher and payment provider are cached with lru_cache; tests
    that patch settings must not see an instance built for another test.
    """
    from apps.billing.services import get_payment_provider
    from apps.notifications.services import get_dispatcher

    get_dispatcher.cache_clear()
    get_payment_provider.cache_clear()
    yield
    get_dispatcher.cache_clear()
    get_payment_provider.cache_clear()


@pytest.fixture
def request_factory() -> RequestFactory:
    """
    Django request factory for unit testing views.

    Use this when you need to test view functions directly without going through
    the full HTTP stack. Useful for testing Django Ninja endpoints.
    """
    return RequestFactory()


@pytest.fixture
def api_client() -> Client:
    """
    Django test client for full HTTP request/response cycle tests.

    Use this when you need to test the complete HTTP flow including middleware,
    routing, and response handling.

    Example:
        def test_api_returns_200(api_client):
            response = api_client.get("/api/v1/health")
            assert response.status_code == 200
    """
    return Client()


@pytest.fixture
def default_registry():
    """The production rule set, frozen, pointing at a test frontend."""
    from apps.notifications.rules import build_default_registry

    return build_default_registry(frontend_url="https://app.example.com").freeze()


@pytest.fixture
def owner_member(db):
    """
    Create a member with owner role.

    The owner is who gets charged for the organization's engagements.
    """
    from tests.accounts.factories import MemberFactory

    return MemberFactory.create(role="owner")


@pytest.fixture
def member(db):
    """
    Create a regular member.

    Shortcut for tests that need a standard member.
    """
    from tests.accounts.factories import MemberFactory

    return MemberFactory.create(role="member")
