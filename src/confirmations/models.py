"""Models for the confirmations app."""
from django.conf import settings
from django.db import models
from django.utils import timezone

from orders.models import OrderStatus


class Confirmation(models.Model):
    """One piece of handover evidence submitted for an order leg.

    Both accepted and rejected attempts are stored; rows are never edited.
    A verified confirmation satisfies exactly the leg recorded in
    ``from_status`` / ``to_status``.
    """

    class Kind(models.TextChoices):
        OTP = "OTP", "One-time code"
        QR = "QR", "QR code scan"
        GPS = "GPS", "GPS position"
        PHOTO = "PHOTO", "Photo"

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="confirmations",
        verbose_name="order",
    )
    kind = models.CharField("kind", max_length=10, choices=Kind.choices)
    evidence = models.JSONField("evidence", default=dict, blank=True)
    photo = models.ImageField("photo", upload_to="confirmations/%Y/%m/", null=True, blank=True)
    condition_note = models.TextField("condition note", blank=True, default="")
    distance_meters = models.FloatField("distance to site (m)", null=True, blank=True)
    verifier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="submitted_confirmations",
        verbose_name="submitted by",
    )
    is_verified = models.BooleanField("verified", default=False)
    rejection_reason = models.CharField("rejection reason", max_length=255, blank=True, default="")
    from_status = models.CharField("from", max_length=30, choices=OrderStatus.choices)
    to_status = models.CharField("to", max_length=30, choices=OrderStatus.choices)
    created_at = models.DateTimeField("verified at", default=timezone.now, db_index=True)

    class Meta:
        verbose_name = "Confirmation"
        verbose_name_plural = "Confirmations"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order", "kind"], name="confirmation_order_kind_idx"),
        ]

    def __str__(self):
        state = "ok" if self.is_verified else "rejected"
        return f"{self.kind} {self.from_status}->{self.to_status} ({state})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Confirmations are immutable.")
        super().save(*args, **kwargs)


class TrackingPoint(models.Model):
    """A courier position reported while an order is in transit.

    Points form the order's tracking trail. They are informational only
    and never advance the order.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="tracking_points",
        verbose_name="order",
    )
    reported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="tracking_points",
        verbose_name="reported by",
    )
    latitude = models.DecimalField("latitude", max_digits=9, decimal_places=6)
    longitude = models.DecimalField("longitude", max_digits=9, decimal_places=6)
    accuracy = models.FloatField("accuracy (m)", null=True, blank=True)
    altitude = models.FloatField("altitude (m)", null=True, blank=True)
    speed = models.FloatField("speed (m/s)", null=True, blank=True)
    heading = models.FloatField("heading (deg)", null=True, blank=True)
    distance_to_site_meters = models.FloatField("distance to site (m)", null=True, blank=True)
    status_at_time = models.CharField("order status", max_length=30, choices=OrderStatus.choices)
    created_at = models.DateTimeField("reported at", default=timezone.now, db_index=True)

    class Meta:
        verbose_name = "Tracking point"
        verbose_name_plural = "Tracking points"
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.latitude},{self.longitude} ({self.status_at_time})"
