"""Site Capacity Tracker.

Each pickup site keeps a ``current_load`` counter. It is mutated only by
conditional ``UPDATE ... WHERE`` statements so concurrent arrivals at the
same site serialise on the row and the ``0 <= load <= capacity`` bound is
enforced by the database, never by an in-process read-then-write.

``reserve_slot`` / ``release_slot`` are meant to be called inside the same
``transaction.atomic`` block as the order status write they accompany.
"""
from __future__ import annotations

import logging

from django.db.models import F
from django.utils import timezone

from core.exceptions import CapacityExceededError, NotFoundError
from pickup_sites.models import PickupSite

logger = logging.getLogger("fulfillment")


def get_site(site_id) -> PickupSite:
    try:
        return PickupSite.objects.get(pk=site_id)
    except (PickupSite.DoesNotExist, ValueError):
        raise NotFoundError(f"Pickup site {site_id} not found.", site_id=site_id) from None


def reserve_slot(site_id) -> None:
    """Increment the site load by one, failing when the site is full."""
    updated = PickupSite.objects.filter(
        pk=site_id,
        current_load__lt=F("capacity"),
    ).update(current_load=F("current_load") + 1, updated_at=timezone.now())

    if not updated:
        if not PickupSite.objects.filter(pk=site_id).exists():
            raise NotFoundError(f"Pickup site {site_id} not found.", site_id=site_id)
        logger.warning("Capacity exceeded at pickup site %s", site_id)
        raise CapacityExceededError(
            "The pickup site is at full capacity.",
            site_id=site_id,
        )
    logger.debug("Reserved slot at pickup site %s", site_id)


def release_slot(site_id) -> None:
    """Decrement the site load by one.

    A release with nothing held means the counter drifted from the ledger;
    it is logged and left for :func:`count_present_orders` reconciliation
    rather than driving the counter negative.
    """
    updated = PickupSite.objects.filter(
        pk=site_id,
        current_load__gt=0,
    ).update(current_load=F("current_load") - 1, updated_at=timezone.now())

    if not updated:
        logger.error("Release on pickup site %s with zero load; counter drift", site_id)
        return
    logger.debug("Released slot at pickup site %s", site_id)


def count_present_orders(site: PickupSite) -> int:
    """Count orders of *site* whose status means the parcel is physically there."""
    from orders.models import Order

    return Order.objects.filter(
        pickup_site=site,
        status__in=Order.PRESENT_AT_SITE_STATUSES,
    ).count()


def find_load_drift(sites=None) -> list[tuple[PickupSite, int]]:
    """Return ``(site, actual_count)`` for every site whose counter disagrees."""
    sites = sites if sites is not None else PickupSite.objects.all()
    drift = []
    for site in sites:
        actual = count_present_orders(site)
        if actual != site.current_load:
            drift.append((site, actual))
    return drift
