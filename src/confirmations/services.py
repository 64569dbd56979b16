"""Confirmation Engine.

Each evidence-gated leg of an order accepts exactly one kind of evidence:

- PHOTO: ``AT_SELLER -> PICKED_UP``, submitted by the assigned courier.
- GPS: ``EN_ROUTE_TO_SITE -> AT_SITE``, submitted by the assigned courier.
- OTP or QR: ``AWAITING_COLLECTION -> COLLECTED_BY_BUYER``, submitted by the
  buyer or by the manager of the pickup site.

Evidence is validated before anything is written. A rejected attempt is
stored as an unverified :class:`Confirmation` and counted; the caller may
retry. An accepted attempt is stored and the order advanced through the
ledger in one transaction, so a failed capacity check or a concurrent
status change leaves no confirmation behind.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from django.conf import settings
from django.core import signing
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from accounts.services import get_agent_for_user
from confirmations.models import Confirmation, TrackingPoint
from core.exceptions import AuthorizationError, ConflictError, PolicyViolationError, ValidationError
from core.geo import haversine_distance_meters, is_valid_coordinate
from core.services import create_audit_log
from core.verification import (
    build_collection_qr_payload,
    codes_match,
    generate_otp,
    generate_qr_data_uri,
    read_collection_qr_payload,
)
from orders.models import Order, OrderStatus
from orders.services import flag_for_review, get_order, transition

logger = logging.getLogger("fulfillment")

LEG_FOR_KIND = {
    Confirmation.Kind.PHOTO: (OrderStatus.AT_SELLER, OrderStatus.PICKED_UP),
    Confirmation.Kind.GPS: (OrderStatus.EN_ROUTE_TO_SITE, OrderStatus.AT_SITE),
    Confirmation.Kind.OTP: (OrderStatus.AWAITING_COLLECTION, OrderStatus.COLLECTED_BY_BUYER),
    Confirmation.Kind.QR: (OrderStatus.AWAITING_COLLECTION, OrderStatus.COLLECTED_BY_BUYER),
}


@dataclass
class CollectionCode:
    """What a site manager hands to the buyer once the parcel is ready."""

    order: Order
    code: str
    expires_at: datetime
    qr_payload: str

    @property
    def qr_image(self) -> str:
        return generate_qr_data_uri(self.qr_payload)


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------

def _is_site_manager_of(actor, order: Order) -> bool:
    agent = get_agent_for_user(actor)
    return (
        agent is not None
        and agent.is_site_manager
        and order.pickup_site_id is not None
        and agent.assigned_site_id == order.pickup_site_id
    )


def _authorize(kind: str, order: Order, actor) -> None:
    if actor is None:
        raise AuthorizationError("Authentication required.")
    if kind in (Confirmation.Kind.PHOTO, Confirmation.Kind.GPS):
        courier = get_agent_for_user(actor)
        if courier is None or order.agent_id != courier.pk:
            raise AuthorizationError("Only the assigned courier can submit this evidence.")
        return
    if order.buyer_id == actor.pk or _is_site_manager_of(actor, order):
        return
    raise AuthorizationError("Only the buyer or the site manager can confirm collection.")


# ---------------------------------------------------------------------------
# Evidence validators
#
# Each returns ``(evidence_json, extra_fields)`` for the Confirmation row or
# raises ValidationError. They never write.
# ---------------------------------------------------------------------------

def _validate_photo(order: Order, evidence: dict):
    photo = evidence.get("photo")
    note = (evidence.get("condition_note") or "").strip()
    if not photo:
        raise ValidationError("A photo of the parcel is required at seller handover.")
    return (
        {"photo_name": getattr(photo, "name", str(photo)), "has_note": bool(note)},
        {"photo": photo, "condition_note": note},
    )


def _coordinate(evidence: dict, key: str) -> float:
    try:
        return float(evidence[key])
    except KeyError:
        raise ValidationError(f"GPS evidence is missing '{key}'.") from None
    except (TypeError, ValueError):
        raise ValidationError(f"GPS '{key}' must be a number.") from None


def _validate_gps(order: Order, evidence: dict):
    latitude = _coordinate(evidence, "latitude")
    longitude = _coordinate(evidence, "longitude")
    if not is_valid_coordinate(latitude, longitude):
        raise ValidationError("GPS coordinates are out of range.")

    site = order.pickup_site
    if site is None:
        raise PolicyViolationError("The order has no pickup site to check the position against.")
    distance = haversine_distance_meters(
        latitude, longitude, float(site.latitude), float(site.longitude)
    )
    tolerance = settings.GPS_TOLERANCE_METERS
    if distance > tolerance:
        raise ValidationError(
            f"Position is {distance:.0f} m from the pickup site (tolerance {tolerance} m).",
            distance_meters=round(distance, 2),
        )
    record = {"latitude": latitude, "longitude": longitude}
    if evidence.get("accuracy") is not None:
        try:
            record["accuracy"] = float(evidence["accuracy"])
        except (TypeError, ValueError):
            raise ValidationError("GPS 'accuracy' must be a number.") from None
    return record, {"distance_meters": round(distance, 2)}


def _check_code(order: Order, submitted: str) -> None:
    if not order.delivery_code:
        raise ValidationError("No collection code has been issued for this order.")
    if order.delivery_code_expires_at is None or timezone.now() > order.delivery_code_expires_at:
        raise ValidationError("The collection code has expired. Ask the site for a new one.")
    if not codes_match(order.delivery_code, submitted):
        raise ValidationError("The collection code does not match.")


def _validate_otp(order: Order, evidence: dict):
    code = str(evidence.get("code") or "").strip()
    if not code:
        raise ValidationError("An OTP code is required.")
    _check_code(order, code)
    return {"code_length": len(code)}, {}


def _validate_qr(order: Order, evidence: dict):
    payload = evidence.get("payload")
    if not payload:
        raise ValidationError("A scanned QR payload is required.")
    try:
        data = read_collection_qr_payload(payload)
    except signing.BadSignature:
        raise ValidationError("The QR code is not valid.") from None
    if data.get("order") != str(order.pk):
        raise ValidationError("The QR code belongs to another order.")
    _check_code(order, data.get("code", ""))
    return {"scanned": True}, {}


VALIDATORS = {
    Confirmation.Kind.PHOTO: _validate_photo,
    Confirmation.Kind.GPS: _validate_gps,
    Confirmation.Kind.OTP: _validate_otp,
    Confirmation.Kind.QR: _validate_qr,
}


# ---------------------------------------------------------------------------
# submit_confirmation
# ---------------------------------------------------------------------------

def submit_confirmation(order_id, kind: str, evidence: dict, actor) -> Order:
    """Validate handover evidence and advance the order by one leg.

    Raises
    ------
    ValidationError
        Unknown kind, malformed or out-of-tolerance evidence, expired or
        mismatched code. The attempt is recorded and counted.
    ConflictError
        The order is not (or no longer) at the leg this kind confirms.
    AuthorizationError
        The actor may not submit this kind of evidence for the order.
    CapacityExceededError
        Site arrival with the pickup site full. Nothing is recorded.
    PolicyViolationError
        GPS evidence for an order that has no pickup site.
    """
    if kind not in Confirmation.Kind.values:
        raise ValidationError(f"Unknown confirmation kind '{kind}'.")
    evidence = evidence or {}
    order = get_order(order_id)
    from_status, to_status = LEG_FOR_KIND[kind]

    if order.status != from_status:
        raise ConflictError(
            f"{kind} evidence confirms {from_status} -> {to_status} but the order is {order.status}.",
            order_id=str(order.pk),
            expected=from_status,
            current=order.status,
        )
    _authorize(kind, order, actor)

    try:
        record, extra = VALIDATORS[kind](order, evidence)
    except ValidationError as exc:
        _record_rejection(order, kind, actor, from_status, to_status, exc)
        raise

    with transaction.atomic():
        confirmation = Confirmation.objects.create(
            order=order,
            kind=kind,
            evidence=record,
            verifier=actor,
            is_verified=True,
            from_status=from_status,
            to_status=to_status,
            **extra,
        )
        order = transition(
            order.pk,
            from_status,
            to_status,
            actor,
            metadata={"confirmation_id": confirmation.pk, "kind": kind},
        )

    logger.info(
        "Confirmation %s accepted for order %s (%s -> %s)",
        kind, order.order_number, from_status, to_status,
    )
    return order


def _record_rejection(order, kind, actor, from_status, to_status, exc: ValidationError) -> None:
    """Store the rejected attempt, bump the counter and flag the order at the limit."""
    from alerts.services import raise_confirmation_review_alert

    with transaction.atomic():
        Confirmation.objects.create(
            order=order,
            kind=kind,
            verifier=actor,
            is_verified=False,
            rejection_reason=exc.message[:255],
            distance_meters=exc.context.get("distance_meters"),
            from_status=from_status,
            to_status=to_status,
        )
        Order.objects.filter(pk=order.pk).update(
            failed_confirmation_count=F("failed_confirmation_count") + 1,
        )
        order.refresh_from_db(fields=["failed_confirmation_count", "needs_review", "review_reason"])

        max_retries = settings.CONFIRMATION_MAX_RETRIES
        if order.failed_confirmation_count >= max_retries:
            if flag_for_review(order, Order.ReviewReason.CONFIRMATION_RETRIES):
                raise_confirmation_review_alert(order, order.failed_confirmation_count)

    logger.warning(
        "Confirmation %s rejected for order %s (attempt %d): %s",
        kind, order.order_number, order.failed_confirmation_count, exc.message,
    )


# ---------------------------------------------------------------------------
# issue_collection_code
# ---------------------------------------------------------------------------

def issue_collection_code(order_id, actor) -> CollectionCode:
    """Generate the buyer's OTP/QR and mark the parcel ready for collection.

    From ``AT_SITE`` this moves the order to ``AWAITING_COLLECTION``. On an
    order already awaiting collection a fresh code replaces the old one,
    which is how an expired code is recovered.
    """
    order = get_order(order_id)
    if actor is None or not (actor.is_fulfillment_admin or _is_site_manager_of(actor, order)):
        raise AuthorizationError("Only the site manager of this pickup site can issue codes.")

    code = generate_otp()
    expires_at = timezone.now() + timedelta(minutes=settings.OTP_EXPIRY_MINUTES)

    if order.status == OrderStatus.AT_SITE:
        order = transition(
            order.pk,
            OrderStatus.AT_SITE,
            OrderStatus.AWAITING_COLLECTION,
            actor,
            updates={"delivery_code": code, "delivery_code_expires_at": expires_at},
        )
        create_audit_log(
            actor=actor,
            action="COLLECTION_CODE_ISSUED",
            entity_type="Order",
            entity_id=order.pk,
            after={"expires_at": expires_at.isoformat()},
        )
    elif order.status == OrderStatus.AWAITING_COLLECTION:
        with transaction.atomic():
            updated = Order.objects.filter(
                pk=order.pk, status=OrderStatus.AWAITING_COLLECTION
            ).update(
                delivery_code=code,
                delivery_code_expires_at=expires_at,
                updated_at=timezone.now(),
            )
            if not updated:
                raise ConflictError("Order is no longer awaiting collection.", order_id=str(order.pk))
            create_audit_log(
                actor=actor,
                action="COLLECTION_CODE_REISSUED",
                entity_type="Order",
                entity_id=order.pk,
                after={"expires_at": expires_at.isoformat()},
            )
        order.refresh_from_db()
    else:
        raise ConflictError(
            f"A collection code can only be issued at the pickup site (order is {order.status}).",
            order_id=str(order.pk),
            current=order.status,
        )

    logger.info("Collection code issued for order %s (expires %s)", order.order_number, expires_at)
    return CollectionCode(
        order=order,
        code=code,
        expires_at=expires_at,
        qr_payload=build_collection_qr_payload(order.pk, code),
    )


# ---------------------------------------------------------------------------
# Review listing
# ---------------------------------------------------------------------------

def list_confirmations(order_id, verified=None):
    """Every evidence attempt for an order, newest first.

    ``verified`` narrows the list to accepted (``True``) or rejected
    (``False``) attempts.
    """
    order = get_order(order_id)
    confirmations = order.confirmations.select_related("verifier")
    if verified is not None:
        confirmations = confirmations.filter(is_verified=verified)
    return confirmations


# ---------------------------------------------------------------------------
# Tracking trail
# ---------------------------------------------------------------------------

TRACKABLE_STATUSES = frozenset({
    OrderStatus.CLAIMED_BY_COURIER,
    OrderStatus.EN_ROUTE_TO_SELLER,
    OrderStatus.AT_SELLER,
    OrderStatus.PICKED_UP,
    OrderStatus.EN_ROUTE_TO_SITE,
})


def _optional_number(evidence: dict, key: str):
    value = evidence.get(key)
    if value is None or value == "":
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"'{key}' must be a number.") from None
    if math.isnan(value) or math.isinf(value):
        raise ValidationError(f"'{key}' must be a number.")
    return value


def record_position(order_id, actor, evidence: dict) -> TrackingPoint:
    """Append the assigned courier's current position to the order's trail.

    Positions are accepted from claim until site arrival and never change
    the order status.
    """
    evidence = evidence or {}
    order = get_order(order_id)
    courier = get_agent_for_user(actor)
    if courier is None or order.agent_id != courier.pk:
        raise AuthorizationError("Only the assigned courier can report a position.")
    if order.status not in TRACKABLE_STATUSES:
        raise ConflictError(
            f"Positions are not tracked while the order is {order.status}.",
            order_id=str(order.pk),
            current=order.status,
        )

    latitude = _coordinate(evidence, "latitude")
    longitude = _coordinate(evidence, "longitude")
    if not is_valid_coordinate(latitude, longitude):
        raise ValidationError("GPS coordinates are out of range.")

    distance = None
    if order.pickup_site_id is not None:
        site = order.pickup_site
        distance = round(
            haversine_distance_meters(latitude, longitude, float(site.latitude), float(site.longitude)), 2
        )

    point = TrackingPoint.objects.create(
        order=order,
        reported_by=actor,
        latitude=Decimal(str(round(latitude, 6))),
        longitude=Decimal(str(round(longitude, 6))),
        accuracy=_optional_number(evidence, "accuracy"),
        altitude=_optional_number(evidence, "altitude"),
        speed=_optional_number(evidence, "speed"),
        heading=_optional_number(evidence, "heading"),
        distance_to_site_meters=distance,
        status_at_time=order.status,
    )
    logger.debug("Position recorded for order %s (%s m from site)", order.order_number, distance)
    return point


def tracking_trail(order_id):
    """The order's reported positions, oldest first."""
    order = get_order(order_id)
    return order.tracking_points.select_related("reported_by")
