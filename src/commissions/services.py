"""Commission Ledger and payment proofs.

Commissions are computed once per (agent, order, type) when the ledger
reaches a qualifying status, then wait for an administrator. Payment proofs
record cash collected for an order and follow their own review, separate
from commission approval.
"""
from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import Count, Sum
from django.utils import timezone

from accounts.services import get_agent_for_user, get_site_manager, require_admin
from commissions.models import CalculationMode, Commission, CommissionPolicy, CommissionType, PaymentProof
from core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)
from core.services import create_audit_log
from orders.models import Order, OrderStatus

logger = logging.getLogger("fulfillment")

CENT = Decimal("0.01")

PRESENT_OR_COLLECTED = frozenset({
    OrderStatus.AT_SITE,
    OrderStatus.AWAITING_COLLECTION,
    OrderStatus.COLLECTED_BY_BUYER,
})

# Status an order must have reached before each commission type is owed.
QUALIFYING_STATUSES = {
    CommissionType.DELIVERY: {OrderStatus.COLLECTED_BY_BUYER},
    CommissionType.ASSISTED_PURCHASE: PRESENT_OR_COLLECTED,
    CommissionType.SITE_RECEIPT: PRESENT_OR_COLLECTED,
}

SITE_COMMISSION_TYPES = frozenset({CommissionType.ASSISTED_PURCHASE, CommissionType.SITE_RECEIPT})


# ---------------------------------------------------------------------------
# Policy resolution
# ---------------------------------------------------------------------------

def resolve_policy(commission_type: str) -> tuple[str, Decimal]:
    """Return ``(mode, value)`` currently in force for *commission_type*."""
    policy = CommissionPolicy.objects.filter(commission_type=commission_type, is_active=True).first()
    if policy is not None:
        return policy.mode, policy.value
    try:
        default = settings.DEFAULT_COMMISSION_POLICIES[commission_type]
    except KeyError:
        raise PolicyViolationError(f"No commission policy configured for {commission_type}.") from None
    return default["mode"], Decimal(str(default["value"]))


def calculate_amount(mode: str, value: Decimal, base_amount: Decimal) -> Decimal:
    if mode == CalculationMode.PERCENTAGE:
        return (Decimal(base_amount) * Decimal(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    if mode == CalculationMode.FIXED:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    raise PolicyViolationError(f"Unknown commission mode '{mode}'.")


# ---------------------------------------------------------------------------
# Computation
# ---------------------------------------------------------------------------

def get_commission(commission_id) -> Commission:
    try:
        return Commission.objects.select_related("agent", "order").get(pk=commission_id)
    except (Commission.DoesNotExist, ValueError):
        raise NotFoundError(f"Commission {commission_id} not found.", commission_id=commission_id) from None


def _beneficiary(order: Order, commission_type: str):
    if commission_type == CommissionType.DELIVERY:
        if order.agent_id is None:
            raise PolicyViolationError("The order has no courier to credit.")
        return order.agent
    manager = get_site_manager(order.pickup_site_id)
    if manager is None:
        raise PolicyViolationError("The pickup site has no active manager to credit.")
    return manager


def compute_commission(order: Order, commission_type: str, agent=None) -> Commission:
    """Create the commission for *order*, or return the one that already exists.

    The rate in force right now is frozen into the record; later policy
    changes do not touch existing rows.
    """
    if commission_type not in CommissionType.values:
        raise PolicyViolationError(f"Unknown commission type '{commission_type}'.")
    agent = agent or _beneficiary(order, commission_type)

    existing = Commission.objects.filter(agent=agent, order=order, commission_type=commission_type).first()
    if existing is not None:
        return existing

    mode, rate = resolve_policy(commission_type)
    amount = calculate_amount(mode, rate, order.total)
    try:
        with transaction.atomic():
            commission = Commission.objects.create(
                agent=agent,
                order=order,
                commission_type=commission_type,
                mode=mode,
                rate=rate,
                base_amount=order.total,
                amount=amount,
            )
    except IntegrityError:
        # Lost a race with an identical computation; theirs stands.
        return Commission.objects.get(agent=agent, order=order, commission_type=commission_type)

    if commission_type == CommissionType.DELIVERY:
        Order.objects.filter(pk=order.pk).update(commission_amount=amount)

    create_audit_log(
        actor=None,
        action="COMMISSION_CREATED",
        entity_type="Commission",
        entity_id=commission.pk,
        after={
            "order": str(order.pk),
            "agent": agent.agent_code,
            "type": commission_type,
            "mode": mode,
            "rate": str(rate),
            "amount": str(amount),
        },
    )
    logger.info(
        "Commission %s created: %s %s for agent %s on order %s",
        commission.pk, commission_type, amount, agent.agent_code, order.order_number,
    )
    return commission


def site_commission_type(order: Order) -> str:
    """Assisted orders pay the manager for the sale, others for the receipt."""
    if order.source == Order.Source.MANUAL:
        return CommissionType.ASSISTED_PURCHASE
    return CommissionType.SITE_RECEIPT


def compute_site_commission(order: Order) -> Commission | None:
    """Credit the site manager on arrival, when the site has one."""
    manager = get_site_manager(order.pickup_site_id)
    if manager is None:
        logger.info("No active manager at site %s; no site commission", order.pickup_site_id)
        return None
    return compute_commission(order, site_commission_type(order), agent=manager)


def compute_or_query_commission(order_id, commission_type: str = CommissionType.DELIVERY) -> Commission:
    """Return the commission of *order_id*, computing it if the order qualifies."""
    from orders.services import get_order

    if commission_type not in CommissionType.values:
        raise ValidationError(f"Unknown commission type '{commission_type}'.")
    order = get_order(order_id)
    existing = Commission.objects.filter(order=order, commission_type=commission_type).first()
    if existing is not None:
        return existing
    if commission_type in SITE_COMMISSION_TYPES and commission_type != site_commission_type(order):
        raise PolicyViolationError(
            f"No {commission_type} commission is owed on a {order.source} order.",
        )
    if order.status not in QUALIFYING_STATUSES[commission_type]:
        raise PolicyViolationError(
            f"No {commission_type} commission is owed while the order is {order.status}.",
        )
    return compute_commission(order, commission_type)


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------

REVIEW_DECISIONS = (Commission.Status.APPROVED, Commission.Status.REJECTED)


def review_commission(commission_id, decision: str, admin, notes: str = "") -> Commission:
    """Approve or reject a pending commission (admin only).

    Repeating the decision already taken returns the record unchanged.
    """
    require_admin(admin)
    if decision not in REVIEW_DECISIONS:
        raise ValidationError("Decision must be 'approved' or 'rejected'.")

    commission = get_commission(commission_id)
    with transaction.atomic():
        now = timezone.now()
        updated = Commission.objects.filter(pk=commission.pk, status=Commission.Status.PENDING).update(
            status=decision,
            reviewed_by=admin,
            reviewed_at=now,
            review_notes=notes,
            updated_at=now,
        )
        commission.refresh_from_db()
        if not updated:
            if commission.status == decision:
                return commission
            raise ConflictError(
                f"Commission is already {commission.status}.",
                commission_id=commission.pk,
                current=commission.status,
            )

        create_audit_log(
            actor=admin,
            action="COMMISSION_APPROVED" if decision == Commission.Status.APPROVED else "COMMISSION_REJECTED",
            entity_type="Commission",
            entity_id=commission.pk,
            before={"status": Commission.Status.PENDING},
            after={"status": decision, "amount": str(commission.amount), "notes": notes},
        )

    logger.info("Commission %s %s by %s", commission.pk, decision, admin)
    return commission


def mark_commission_paid(commission_id, admin, reference: str = "") -> Commission:
    """Record the payout of an approved commission (admin only)."""
    require_admin(admin)
    commission = get_commission(commission_id)
    with transaction.atomic():
        now = timezone.now()
        updated = Commission.objects.filter(pk=commission.pk, status=Commission.Status.APPROVED).update(
            status=Commission.Status.PAID,
            paid_by=admin,
            paid_at=now,
            payment_reference=reference,
            updated_at=now,
        )
        commission.refresh_from_db()
        if not updated:
            if commission.status == Commission.Status.PAID:
                return commission
            raise PolicyViolationError(
                f"Only approved commissions can be paid (this one is {commission.status}).",
            )
        create_audit_log(
            actor=admin,
            action="COMMISSION_PAID",
            entity_type="Commission",
            entity_id=commission.pk,
            after={"amount": str(commission.amount), "reference": reference},
        )

    logger.info("Commission %s paid (%s) by %s", commission.pk, commission.amount, admin)
    return commission


def reject_pending_commissions(order: Order, actor=None, reason: str = "") -> int:
    """Reject every pending commission of *order*. Used on cancellation."""
    now = timezone.now()
    count = Commission.objects.filter(order=order, status=Commission.Status.PENDING).update(
        status=Commission.Status.REJECTED,
        reviewed_by=actor,
        reviewed_at=now,
        review_notes=reason,
        updated_at=now,
    )
    if count:
        logger.info("Rejected %d pending commissions of order %s", count, order.order_number)
    return count


def agent_earnings_summary(agent) -> dict:
    """Totals and counts of an agent's commissions per status."""
    summary = {
        status: {"count": 0, "total": Decimal("0.00")} for status in Commission.Status.values
    }
    rows = (
        Commission.objects.filter(agent=agent)
        .values("status")
        .annotate(count=Count("id"), total=Sum("amount"))
    )
    for row in rows:
        summary[row["status"]] = {"count": row["count"], "total": row["total"] or Decimal("0.00")}
    summary["currency"] = settings.CURRENCY
    return summary


# ---------------------------------------------------------------------------
# Payment proofs
# ---------------------------------------------------------------------------

def get_payment_proof(proof_id) -> PaymentProof:
    try:
        return PaymentProof.objects.select_related("order", "agent").get(pk=proof_id)
    except (PaymentProof.DoesNotExist, ValueError):
        raise NotFoundError(f"Payment proof {proof_id} not found.", proof_id=proof_id) from None


def _open_proof(order):
    return PaymentProof.objects.filter(
        order=order,
        status__in=[PaymentProof.Status.PENDING, PaymentProof.Status.APPROVED],
    ).first()


def _check_attachment(attachment) -> None:
    if not attachment:
        raise ValidationError("A payment screenshot or receipt is required.")
    name = getattr(attachment, "name", "") or ""
    extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    if extension not in settings.PAYMENT_PROOF_EXTENSIONS:
        raise ValidationError(
            "Receipts must be one of: " + ", ".join(settings.PAYMENT_PROOF_EXTENSIONS) + ".",
        )
    size = getattr(attachment, "size", None)
    if size is not None and size > settings.PAYMENT_PROOF_MAX_BYTES:
        raise ValidationError(
            f"Receipt is too large ({size} bytes, limit {settings.PAYMENT_PROOF_MAX_BYTES}).",
        )


def submit_payment_proof(order_id, amount, method: str, actor, attachment=None, reference: str = "") -> PaymentProof:
    """Declare cash collected for an order.

    Only the order's courier or the manager of its pickup site may submit,
    and a screenshot or receipt must accompany the declaration. While a
    proof is pending or approved, submitting again returns it.
    """
    from orders.services import get_order

    order = get_order(order_id)
    agent = get_agent_for_user(actor)
    involved = agent is not None and (
        order.agent_id == agent.pk
        or (agent.is_site_manager and agent.assigned_site_id == order.pickup_site_id)
    )
    if not involved:
        raise AuthorizationError("Only the agents handling this order can submit payment proof.")

    try:
        amount = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a number.") from None
    if not amount.is_finite():
        raise ValidationError("Amount must be a number.")
    if amount <= 0:
        raise ValidationError("Amount must be positive.")
    if method not in PaymentProof.Method.values:
        raise ValidationError(f"Unknown payment method '{method}'.")
    _check_attachment(attachment)

    existing = _open_proof(order)
    if existing is not None:
        logger.info("Payment proof for order %s already open (%s)", order.order_number, existing.pk)
        return existing

    try:
        with transaction.atomic():
            proof = PaymentProof.objects.create(
                order=order,
                agent=agent,
                amount=amount,
                method=method,
                reference=reference,
                attachment=attachment,
            )
    except IntegrityError:
        return _open_proof(order)

    create_audit_log(
        actor=actor,
        action="PAYMENT_PROOF_SUBMITTED",
        entity_type="PaymentProof",
        entity_id=proof.pk,
        after={"order": str(order.pk), "amount": str(amount), "method": method},
    )
    logger.info("Payment proof %s submitted for order %s (%s %s)", proof.pk, order.order_number, amount, method)
    return proof


def review_payment_proof(proof_id, decision: str, admin, notes: str = "") -> PaymentProof:
    """Approve or reject a pending payment proof (admin only)."""
    require_admin(admin)
    if decision not in (PaymentProof.Status.APPROVED, PaymentProof.Status.REJECTED):
        raise ValidationError("Decision must be 'approved' or 'rejected'.")

    proof = get_payment_proof(proof_id)
    with transaction.atomic():
        now = timezone.now()
        updated = PaymentProof.objects.filter(pk=proof.pk, status=PaymentProof.Status.PENDING).update(
            status=decision,
            reviewed_by=admin,
            reviewed_at=now,
            review_notes=notes,
            updated_at=now,
        )
        proof.refresh_from_db()
        if not updated:
            if proof.status == decision:
                return proof
            raise ConflictError(
                f"Payment proof is already {proof.status}.",
                proof_id=proof.pk,
                current=proof.status,
            )
        create_audit_log(
            actor=admin,
            action="PAYMENT_PROOF_APPROVED" if decision == PaymentProof.Status.APPROVED else "PAYMENT_PROOF_REJECTED",
            entity_type="PaymentProof",
            entity_id=proof.pk,
            before={"status": PaymentProof.Status.PENDING},
            after={"status": decision, "amount": str(proof.amount), "notes": notes},
        )

    logger.info("Payment proof %s %s by %s", proof.pk, decision, admin)
    return proof
