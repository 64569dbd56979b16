"""Order Ledger: the single authority for order status.

Every status write goes through :func:`transition`, which issues one
conditional ``UPDATE ... WHERE status = <expected>``. If another writer got
there first, zero rows match and :class:`~core.exceptions.ConflictError`
is raised; nothing is ever blindly overwritten. Capacity bookkeeping,
commission computation, the history row and the audit entry are written in
the same database transaction as the status change.
"""
from __future__ import annotations

import logging
import secrets
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from accounts.services import get_agent_for_user, require_admin
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from core.services import create_audit_log
from orders.models import (
    AGENT_REQUIRED_STATUSES,
    COURIER_PROGRESS_EDGES,
    EVIDENCE_GATED_EDGES,
    PRESENT_AT_SITE_STATUSES,
    SITE_REQUIRED_STATUSES,
    Order,
    OrderStatus,
    OrderStatusHistory,
    is_forward_edge,
    is_override_edge,
)
from orders.signals import order_status_changed
from pickup_sites import services as capacity

logger = logging.getLogger("fulfillment")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_order(order_id) -> Order:
    try:
        return Order.objects.select_related("agent", "pickup_site").get(pk=order_id)
    except (Order.DoesNotExist, DjangoValidationError, ValueError):
        # A malformed UUID is just an unknown order to the caller.
        raise NotFoundError(f"Order {order_id} not found.", order_id=str(order_id)) from None


def get_order_history(order_id):
    """Return the status history of an order, oldest first."""
    order = get_order(order_id)
    return OrderStatusHistory.objects.filter(order=order).select_related("actor")


def coerce_status(value) -> OrderStatus:
    """Map a raw value onto the closed status set, refusing unknown values."""
    try:
        return OrderStatus(value)
    except ValueError:
        raise PolicyViolationError(f"Unknown order status '{value}'.", status=value) from None


def _current_status(order_id):
    return Order.objects.filter(pk=order_id).values_list("status", flat=True).first()


# ---------------------------------------------------------------------------
# transition
# ---------------------------------------------------------------------------

def transition(
    order_id,
    expected_status,
    target_status,
    actor,
    *,
    override: bool = False,
    reason: str = "",
    metadata: dict | None = None,
    updates: dict | None = None,
    extra_filters: dict | None = None,
) -> Order:
    """Move an order from *expected_status* to *target_status*.

    Parameters
    ----------
    order_id : UUID
    expected_status, target_status : str
        Members of :class:`~orders.models.OrderStatus`.
    actor : User
        Recorded on the history row and audit entry. Callers check that the
        actor is entitled to drive this edge before calling.
    override : bool
        Allow administrative edges (forward jumps and cancellation).
    updates : dict
        Extra field values written by the same conditional update.
    extra_filters : dict
        Extra conditions the row must satisfy for the update to apply.

    Returns
    -------
    Order
        The order as stored after the change.

    Raises
    ------
    PolicyViolationError
        The edge does not exist in the graph.
    ConflictError
        The stored status was not *expected_status* at write time.
    CapacityExceededError
        The pickup site has no free slot for an arriving parcel.
    """
    expected_status = coerce_status(expected_status)
    target_status = coerce_status(target_status)

    allowed = is_override_edge(expected_status, target_status) if override else is_forward_edge(
        expected_status, target_status
    )
    if not allowed:
        raise PolicyViolationError(
            f"Transition {expected_status} -> {target_status} is not allowed.",
            from_status=expected_status,
            to_status=target_status,
        )

    updates = dict(updates or {})
    with transaction.atomic():
        order = get_order(order_id)

        will_have_agent = order.agent_id is not None or updates.get("agent") is not None
        if target_status in AGENT_REQUIRED_STATUSES and not will_have_agent:
            raise PolicyViolationError(
                f"Status {target_status} requires an assigned courier.",
                to_status=target_status,
            )
        if target_status in SITE_REQUIRED_STATUSES and order.pickup_site_id is None:
            raise PolicyViolationError("The order has no pickup site.", to_status=target_status)

        now = timezone.now()
        fields = {
            "status": target_status,
            "status_changed_at": now,
            "updated_at": now,
            "failed_confirmation_count": 0,
            "needs_review": False,
            "review_reason": "",
            "flagged_at": None,
        }
        if target_status in (OrderStatus.COLLECTED_BY_BUYER, OrderStatus.CANCELLED):
            fields["delivery_code"] = None
            fields["delivery_code_expires_at"] = None
        fields.update(updates)

        matched = Order.objects.filter(
            pk=order.pk,
            status=expected_status,
            **(extra_filters or {}),
        ).update(**fields)
        if matched != 1:
            current = _current_status(order.pk)
            logger.info(
                "Conflict on order %s: expected %s, found %s (target %s)",
                order.pk, expected_status, current, target_status,
            )
            raise ConflictError(
                f"Order is no longer {expected_status} (now {current}).",
                order_id=str(order.pk),
                expected=expected_status,
                current=current,
            )

        # Capacity follows the "physically present" predicate across the edge.
        held_before = expected_status in PRESENT_AT_SITE_STATUSES
        held_after = target_status in PRESENT_AT_SITE_STATUSES
        if held_after and not held_before:
            capacity.reserve_slot(order.pickup_site_id)
        elif held_before and not held_after:
            capacity.release_slot(order.pickup_site_id)

        OrderStatusHistory.objects.create(
            order=order,
            from_status=expected_status,
            to_status=target_status,
            actor=actor,
            is_override=override,
            reason=reason,
            metadata=metadata or {},
            created_at=now,
        )

        order.refresh_from_db()
        _apply_side_effects(order, expected_status, target_status, actor, held_before, held_after)

        create_audit_log(
            actor=actor,
            action="ADMIN_OVERRIDE" if override else "ORDER_TRANSITION",
            entity_type="Order",
            entity_id=order.pk,
            before={"status": expected_status},
            after={"status": target_status, "reason": reason} if reason else {"status": target_status},
        )

        transaction.on_commit(
            lambda: order_status_changed.send(
                sender=Order,
                order=order,
                from_status=expected_status,
                to_status=target_status,
                actor=actor,
                is_override=override,
            )
        )

    logger.info(
        "Order %s: %s -> %s by %s%s",
        order.order_number, expected_status, target_status, actor,
        " (override)" if override else "",
    )
    return order


def _apply_side_effects(order, from_status, to_status, actor, held_before, held_after):
    """Commission hooks that ride on the status change transaction."""
    from commissions import services as commissions
    from commissions.models import Commission

    if held_after and not held_before:
        commissions.compute_site_commission(order)
    if to_status == OrderStatus.COLLECTED_BY_BUYER:
        commissions.compute_commission(order, Commission.CommissionType.DELIVERY)
    if to_status == OrderStatus.CANCELLED:
        commissions.reject_pending_commissions(order, actor=actor, reason="Order cancelled")


# ---------------------------------------------------------------------------
# Order creation and publication
# ---------------------------------------------------------------------------

def generate_order_number() -> str:
    """Format: ``ORD-20260115-3FA9C2``."""
    return f"ORD-{timezone.localdate():%Y%m%d}-{secrets.token_hex(3).upper()}"


@transaction.atomic
def create_order(
    buyer,
    seller,
    total,
    pickup_site=None,
    source: str = Order.Source.MARKETPLACE,
    created_by=None,
) -> Order:
    """Register a new order in ``CREATED``.

    Assisted (``MANUAL``) orders are entered by a site manager on behalf of
    a buyer and default to the manager's own site.
    """
    try:
        total = Decimal(str(total))
    except (InvalidOperation, ValueError):
        raise ValidationError("Order total must be a number.") from None
    if not total.is_finite():
        raise ValidationError("Order total must be a number.")
    if total <= 0:
        raise ValidationError("Order total must be positive.")
    if source not in Order.Source.values:
        raise ValidationError(f"Unknown order source '{source}'.")
    if buyer.pk == seller.pk:
        raise PolicyViolationError("Buyer and seller must be different users.")

    if source == Order.Source.MANUAL:
        manager = get_agent_for_user(created_by)
        if manager is None or not manager.is_site_manager:
            raise AuthorizationError("Only a site manager can create assisted orders.")
        pickup_site = pickup_site or manager.assigned_site
        if pickup_site.pk != manager.assigned_site_id:
            raise AuthorizationError("Site managers can only create orders for their own site.")

    if pickup_site is not None and not pickup_site.is_active:
        raise PolicyViolationError("This pickup site is not accepting orders.")

    order = Order.objects.create(
        order_number=generate_order_number(),
        buyer=buyer,
        seller=seller,
        total=total,
        pickup_site=pickup_site,
        source=source,
        created_by=created_by or buyer,
    )
    OrderStatusHistory.objects.create(
        order=order,
        from_status=None,
        to_status=OrderStatus.CREATED,
        actor=created_by or buyer,
    )
    create_audit_log(
        actor=created_by or buyer,
        action="ORDER_CREATED",
        entity_type="Order",
        entity_id=order.pk,
        after={
            "order_number": order.order_number,
            "total": str(order.total),
            "source": order.source,
            "pickup_site": str(pickup_site.pk) if pickup_site else None,
        },
    )
    logger.info("Order %s created (%s, total=%s)", order.order_number, source, total)
    return order


def publish_for_pickup(order_id, actor) -> Order:
    """Make a ``CREATED`` order claimable by couriers (seller or admin)."""
    order = get_order(order_id)
    if actor is None or (order.seller_id != actor.pk and not actor.is_fulfillment_admin):
        raise AuthorizationError("Only the seller can publish this order.")
    if order.pickup_site_id is None:
        raise PolicyViolationError("Choose a pickup site before publishing the order.")
    return transition(order.pk, OrderStatus.CREATED, OrderStatus.AVAILABLE_FOR_PICKUP, actor)


def advance_order(order_id, expected_status, target_status, actor) -> Order:
    """Let the assigned courier report progress on an evidence-free leg."""
    expected_status = coerce_status(expected_status)
    target_status = coerce_status(target_status)
    if (expected_status, target_status) in EVIDENCE_GATED_EDGES:
        raise PolicyViolationError(
            f"Transition {expected_status} -> {target_status} requires handover evidence.",
        )
    if (expected_status, target_status) not in COURIER_PROGRESS_EDGES:
        raise PolicyViolationError(f"Transition {expected_status} -> {target_status} is not allowed.")

    order = get_order(order_id)
    courier = get_agent_for_user(actor)
    if courier is None or order.agent_id != courier.pk:
        raise AuthorizationError("Only the assigned courier can advance this order.")
    return transition(order.pk, expected_status, target_status, actor)


# ---------------------------------------------------------------------------
# Administrative override
# ---------------------------------------------------------------------------

def admin_override_transition(order_id, target_status, justification: str, admin) -> Order:
    """Force an order forward or into ``CANCELLED``.

    The current status is read and then used as the expected status, so a
    concurrent change still surfaces as :class:`ConflictError`. Backward
    moves are refused.
    """
    require_admin(admin)
    if not justification or not justification.strip():
        raise ValidationError("A justification is required for an override.")

    target_status = coerce_status(target_status)
    order = get_order(order_id)
    if not is_override_edge(order.status, target_status):
        raise PolicyViolationError(
            f"Override {order.status} -> {target_status} is not allowed.",
            from_status=order.status,
            to_status=target_status,
        )

    logger.warning(
        "Admin override on order %s: %s -> %s by %s. Justification: %s",
        order.order_number, order.status, target_status, admin, justification,
    )
    return transition(
        order.pk,
        order.status,
        target_status,
        admin,
        override=True,
        reason=justification.strip(),
    )


def cancel_order(order_id, reason: str, actor) -> Order:
    """Cancel an order (admin only). Releases any held site slot."""
    return admin_override_transition(order_id, OrderStatus.CANCELLED, reason, actor)


# ---------------------------------------------------------------------------
# Review flags
# ---------------------------------------------------------------------------

def flag_for_review(order: Order, review_reason: str) -> bool:
    """Set ``needs_review`` on a non-terminal order. Returns ``True`` if newly flagged."""
    flagged = Order.objects.filter(pk=order.pk, needs_review=False).exclude(
        status__in=[OrderStatus.COLLECTED_BY_BUYER, OrderStatus.CANCELLED],
    ).update(
        needs_review=True,
        review_reason=review_reason,
        flagged_at=timezone.now(),
    )
    if flagged:
        logger.warning("Order %s flagged for review (%s)", order.order_number, review_reason)
    order.refresh_from_db()
    return bool(flagged)
