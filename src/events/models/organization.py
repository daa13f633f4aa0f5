from django.core.exceptions import ValidationError
from django.db import models

from common.models import TimeStampedModel


class OrganizationRole(models.TextChoices):
    ADMIN = "ADMIN"
    SCANNER = "SCANNER"


class Organization(TimeStampedModel):
    name = models.CharField(max_length=255)
    owner_id = models.CharField(max_length=255, db_index=True, help_text="Identity provider id of the owner.")

    def __str__(self) -> str:
        return self.name


class OrganizationMember(TimeStampedModel):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="members")
    user_id = models.CharField(max_length=255, db_index=True)
    roles = models.JSONField(default=list, blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["organization", "user_id"], name="unique_organization_member"),
        ]

    def clean(self) -> None:
        """Reject roles outside of OrganizationRole."""
        unknown = set(self.roles) - set(OrganizationRole.values)
        if unknown:
            raise ValidationError({"roles": f"Unknown roles: {', '.join(sorted(unknown))}"})

    def has_role(self, role: str) -> bool:
        """Whether this member is active and holds ``role``."""
        return self.is_active and role in self.roles

    def __str__(self) -> str:
        return f"{self.user_id} @ {self.organization_id}"
