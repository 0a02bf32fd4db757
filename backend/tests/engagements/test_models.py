"""
Tests for engagements models.
"""

from decimal import Decimal

import pytest

from tests.engagements.factories import EngagementFactory, ExpertFactory, ProjectFactory


@pytest.mark.django_db
class TestEngagementModel:
    """Tests for Engagement model."""

    @pytest.mark.parametrize(
        "rate,expected",
        [
            (Decimal("100.00"), 10000),
            (Decimal("0.00"), 0),
            (Decimal("12.34"), 1234),
            (Decimal("0.01"), 1),
        ],
    )
    def test_amount_minor_units(self, rate, expected) -> None:
        engagement = EngagementFactory.build(last_rate=rate)

        assert engagement.amount_minor_units == expected

    def test_str(self) -> None:
        engagement = EngagementFactory.create(name="Kickoff")

        assert str(engagement) == "Kickoff (requested)"

    def test_project_belongs_to_organization(self) -> None:
        project = ProjectFactory.create()

        assert project.organization.project_set.get() == project

    def test_expert_is_linked_to_user(self) -> None:
        expert = ExpertFactory.create(name="Ada")

        assert expert.user.expert == expert
        assert str(expert) == "Ada"
