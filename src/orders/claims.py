"""Claim Coordinator: couriers pick up available orders, first come first served.

A claim is a single conditional update on the order row
(``status = AVAILABLE_FOR_PICKUP AND agent IS NULL``). Of any number of
concurrent claims on the same order exactly one matches; every other one
gets :class:`~core.exceptions.ConflictError` and must refresh its list.
"""
from __future__ import annotations

import logging

from django.utils import timezone

from accounts.models import Agent
from core.exceptions import AuthorizationError, PolicyViolationError
from orders.models import Order, OrderStatus
from orders.services import get_order, transition

logger = logging.getLogger("fulfillment")


def _require_active_courier(courier: Agent) -> None:
    if courier is None or not courier.is_active or not courier.is_courier:
        raise AuthorizationError("Only active couriers can claim orders.")


def list_claimable(courier: Agent, site=None):
    """Orders a courier may claim right now, oldest first.

    The list is advisory: it can be stale by the time the courier acts,
    which :func:`claim` resolves.
    """
    _require_active_courier(courier)
    qs = Order.objects.filter(
        status=OrderStatus.AVAILABLE_FOR_PICKUP,
        agent__isnull=True,
    ).select_related("pickup_site", "seller")
    if site is not None:
        qs = qs.filter(pickup_site=site)
    return qs.order_by("created_at")


def claim(order_id, courier: Agent) -> Order:
    """Assign *order_id* to *courier* if nobody else has claimed it."""
    _require_active_courier(courier)
    if not courier.is_available:
        raise PolicyViolationError("Set yourself available before claiming orders.")

    order = get_order(order_id)
    order = transition(
        order.pk,
        OrderStatus.AVAILABLE_FOR_PICKUP,
        OrderStatus.CLAIMED_BY_COURIER,
        courier.user,
        updates={"agent": courier, "claimed_at": timezone.now()},
        extra_filters={"agent__isnull": True},
    )
    logger.info("Order %s claimed by courier %s", order.order_number, courier.agent_code)
    return order
