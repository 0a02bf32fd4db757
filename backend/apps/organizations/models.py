"""
Organizations models - companies that own projects and pay for engagements.
"""

from django.db import models


class Organization(models.Model):
    """
    A client company.

    Members with the ``owner`` role act as the paying party for the
    company's engagements.
    """

    name = models.CharField(max_length=255)
    slug = models.SlugField(
        max_length=255,
        unique=True,
        help_text="URL-safe identifier, e.g. 'acme-corp'",
    )

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.name

    def get_owner(self):
        """Return the user holding the owner role, or None."""
        from apps.accounts.models import Member

        owner = (
            Member.objects.filter(organization=self, role=Member.Role.OWNER)
            .select_related("user")
            .first()
        )
        return owner.user if owner else None
