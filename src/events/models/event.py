import typing as t
from datetime import datetime

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from common.models import TimeStampedModel
from events.exceptions import InvalidRuleError
from events.service.sales_rules import SalesStartRule, SalesStartRuleType, resolve_sales_start, rule_from_fields

from .organization import Organization


class EventStatus(models.TextChoices):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    DELETED = "DELETED"


class SessionStatus(models.TextChoices):
    SCHEDULED = "SCHEDULED"
    ON_SALE = "ON_SALE"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"
    SOLD_OUT = "SOLD_OUT"

    @classmethod
    def terminal(cls) -> frozenset["SessionStatus"]:
        """Statuses a session never leaves."""
        return frozenset({cls.CANCELLED, cls.SOLD_OUT, cls.CLOSED})


class EventQuerySet(models.QuerySet["Event"]):
    def with_sessions(self) -> t.Self:
        """Prefetch the sessions and select the organization."""
        return self.select_related("organization").prefetch_related("sessions")


class Event(TimeStampedModel):
    organization = models.ForeignKey(Organization, on_delete=models.CASCADE, related_name="events")
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    status = models.CharField(choices=EventStatus.choices, max_length=10, default=EventStatus.PENDING, db_index=True)
    rejection_reason = models.TextField(blank=True, null=True)

    objects = EventQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["organization", "status"], name="idx_event_org_status"),
        ]

    def clean(self) -> None:
        """A rejection reason is stored exactly when the event is rejected."""
        if self.status == EventStatus.REJECTED and not (self.rejection_reason or "").strip():
            raise ValidationError({"rejection_reason": "A rejected event needs a rejection reason."})
        if self.status != EventStatus.REJECTED and self.rejection_reason:
            raise ValidationError({"rejection_reason": "Only rejected events carry a rejection reason."})

    def __str__(self) -> str:
        return f"{self.title} ({self.status})"


class EventSession(TimeStampedModel):
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="sessions")
    start_time = models.DateTimeField(db_index=True)
    end_time = models.DateTimeField()
    status = models.CharField(
        choices=SessionStatus.choices, max_length=10, default=SessionStatus.SCHEDULED, db_index=True
    )

    sales_start_rule_type = models.CharField(
        choices=SalesStartRuleType.choices, max_length=10, default=SalesStartRuleType.IMMEDIATE
    )
    sales_start_fixed_datetime = models.DateTimeField(null=True, blank=True)
    sales_start_hours_before = models.PositiveIntegerField(null=True, blank=True, validators=[MinValueValidator(0)])
    sales_start_time = models.DateTimeField(
        null=True, blank=True, help_text="Resolved instant at which tickets go on sale."
    )

    class Meta:
        ordering = ["start_time"]
        indexes = [
            models.Index(fields=["event", "status"], name="idx_session_event_status"),
        ]

    @property
    def sales_start_rule(self) -> SalesStartRule:
        """The sales start rule stored on this session."""
        return rule_from_fields(
            self.sales_start_rule_type,
            fixed_datetime=self.sales_start_fixed_datetime,
            hours_before=self.sales_start_hours_before,
        )

    @property
    def is_terminal(self) -> bool:
        return self.status in SessionStatus.terminal()

    def is_editable(self, now: datetime | None = None) -> bool:
        """A session can be changed only before its sales open and before it ends."""
        now = now or timezone.now()
        if self.end_time and now >= self.end_time:
            return False
        return self.sales_start_time is None or now < self.sales_start_time

    def clean(self) -> None:
        """Check the time window and the sales rule; resolve the sales start time when not supplied."""
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError({"end_time": "A session must end after it starts."})
        if not self.start_time:
            return
        try:
            resolved = resolve_sales_start(self.sales_start_rule, self.start_time)
        except InvalidRuleError as e:
            raise ValidationError({"sales_start_rule_type": str(e)}) from e
        if self.sales_start_time is None:
            self.sales_start_time = resolved

    def __str__(self) -> str:
        return f"{self.event_id} @ {self.start_time:%Y-%m-%d %H:%M}"
