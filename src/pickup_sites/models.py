"""Models for the pickup sites app."""
from django.db import models
from django.db.models import F, Q

from core.models import TimeStampedModel


class PickupSite(TimeStampedModel):
    """A staging location where couriers drop goods and buyers collect them.

    ``current_load`` is only ever changed through conditional ``UPDATE``
    statements in :mod:`pickup_sites.services`; it must equal the number of orders
    of this site currently present at the site.
    """

    name = models.CharField("name", max_length=255)
    address = models.CharField("address", max_length=255, blank=True, default="")
    city = models.CharField("city", max_length=100, blank=True, default="")
    latitude = models.DecimalField("latitude", max_digits=10, decimal_places=7)
    longitude = models.DecimalField("longitude", max_digits=10, decimal_places=7)
    capacity = models.PositiveIntegerField("capacity", default=100)
    current_load = models.PositiveIntegerField("current load", default=0)
    contact_phone = models.CharField("contact phone", max_length=30, blank=True, default="")
    is_active = models.BooleanField("active", default=True)

    class Meta:
        verbose_name = "Pickup site"
        verbose_name_plural = "Pickup sites"
        ordering = ["name"]
        constraints = [
            models.CheckConstraint(
                condition=Q(current_load__gte=0) & Q(current_load__lte=F("capacity")),
                name="pickup_site_load_within_capacity",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.current_load}/{self.capacity})"

    @property
    def available_slots(self) -> int:
        return max(self.capacity - self.current_load, 0)

    @property
    def is_full(self) -> bool:
        return self.current_load >= self.capacity
