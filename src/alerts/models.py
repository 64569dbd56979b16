"""Models for the alerts app."""
from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import TimeStampedModel


class Alert(TimeStampedModel):
    """An item needing administrative attention.

    Alerts are advisory: they are raised by Celery tasks or by services when
    an order stalls, collects too many rejected confirmations, or a site
    counter drifts from the ledger. Nothing is transitioned automatically.
    """

    class Type(models.TextChoices):
        ORDER_STUCK = "ORDER_STUCK", "Order stuck"
        CONFIRMATION_REVIEW = "CONFIRMATION_REVIEW", "Confirmation retries exhausted"
        CAPACITY_DRIFT = "CAPACITY_DRIFT", "Site load drift"

    class Severity(models.TextChoices):
        INFO = "INFO", "Information"
        WARNING = "WARNING", "Warning"
        CRITICAL = "CRITICAL", "Critical"

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="alerts",
        verbose_name="order",
    )
    pickup_site = models.ForeignKey(
        "pickup_sites.PickupSite",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="alerts",
        verbose_name="pickup site",
    )
    alert_type = models.CharField(
        "alert type",
        max_length=30,
        choices=Type.choices,
    )
    severity = models.CharField(
        "severity",
        max_length=10,
        choices=Severity.choices,
        default=Severity.INFO,
    )
    title = models.CharField("title", max_length=200)
    message = models.TextField("message")
    payload = models.JSONField(
        "payload",
        default=dict,
        blank=True,
        help_text="Extra JSON data (e.g. order_id, hours_waiting, expected_load).",
    )

    # Read tracking
    is_read = models.BooleanField("read", default=False)
    read_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="read_alerts",
        verbose_name="read by",
    )
    read_at = models.DateTimeField("read at", null=True, blank=True)

    class Meta:
        verbose_name = "Alert"
        verbose_name_plural = "Alerts"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["alert_type", "created_at"], name="alert_type_created_idx"),
        ]

    def __str__(self):
        return f"[{self.get_severity_display()}] {self.title}"

    def mark_as_read(self, user):
        """Mark this alert as read by *user*."""
        if not self.is_read:
            self.is_read = True
            self.read_by = user
            self.read_at = timezone.now()
            self.save(update_fields=["is_read", "read_by", "read_at", "updated_at"])
