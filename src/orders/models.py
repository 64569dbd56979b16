"""Models for the orders app: the Order Ledger."""
import uuid

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.models import TimeStampedModel


class OrderStatus(models.TextChoices):
    """Closed set of fulfillment statuses. Values are stable API strings."""

    CREATED = "CREATED", "Created"
    AVAILABLE_FOR_PICKUP = "AVAILABLE_FOR_PICKUP", "Available for pickup"
    CLAIMED_BY_COURIER = "CLAIMED_BY_COURIER", "Claimed by courier"
    EN_ROUTE_TO_SELLER = "EN_ROUTE_TO_SELLER", "En route to seller"
    AT_SELLER = "AT_SELLER", "At seller"
    PICKED_UP = "PICKED_UP", "Picked up"
    EN_ROUTE_TO_SITE = "EN_ROUTE_TO_SITE", "En route to pickup site"
    AT_SITE = "AT_SITE", "At pickup site"
    AWAITING_COLLECTION = "AWAITING_COLLECTION", "Awaiting collection"
    COLLECTED_BY_BUYER = "COLLECTED_BY_BUYER", "Collected by buyer"
    CANCELLED = "CANCELLED", "Cancelled"


# Forward order of the fulfillment pipeline. CANCELLED is a parallel terminal.
FORWARD_SEQUENCE = (
    OrderStatus.CREATED,
    OrderStatus.AVAILABLE_FOR_PICKUP,
    OrderStatus.CLAIMED_BY_COURIER,
    OrderStatus.EN_ROUTE_TO_SELLER,
    OrderStatus.AT_SELLER,
    OrderStatus.PICKED_UP,
    OrderStatus.EN_ROUTE_TO_SITE,
    OrderStatus.AT_SITE,
    OrderStatus.AWAITING_COLLECTION,
    OrderStatus.COLLECTED_BY_BUYER,
)
STATUS_RANK = {status: rank for rank, status in enumerate(FORWARD_SEQUENCE)}

TERMINAL_STATUSES = frozenset({OrderStatus.COLLECTED_BY_BUYER, OrderStatus.CANCELLED})

# Direct forward edges: each status may only move to the next one.
FORWARD_EDGES = {
    current: {following}
    for current, following in zip(FORWARD_SEQUENCE, FORWARD_SEQUENCE[1:])
}

# Statuses in which the parcel physically sits at the pickup site.
PRESENT_AT_SITE_STATUSES = frozenset({OrderStatus.AT_SITE, OrderStatus.AWAITING_COLLECTION})

# Statuses that require an assigned courier.
AGENT_REQUIRED_STATUSES = frozenset(
    status for status in FORWARD_SEQUENCE if STATUS_RANK[status] >= STATUS_RANK[OrderStatus.CLAIMED_BY_COURIER]
)

# Statuses that require a pickup site.
SITE_REQUIRED_STATUSES = frozenset(
    status for status in FORWARD_SEQUENCE if STATUS_RANK[status] >= STATUS_RANK[OrderStatus.AVAILABLE_FOR_PICKUP]
)

# Forward edges that may only be taken with handover evidence or a
# site-manager action, never through a plain courier "advance".
EVIDENCE_GATED_EDGES = frozenset({
    (OrderStatus.AT_SELLER, OrderStatus.PICKED_UP),
    (OrderStatus.EN_ROUTE_TO_SITE, OrderStatus.AT_SITE),
    (OrderStatus.AT_SITE, OrderStatus.AWAITING_COLLECTION),
    (OrderStatus.AWAITING_COLLECTION, OrderStatus.COLLECTED_BY_BUYER),
})

# Forward edges a courier drives without evidence.
COURIER_PROGRESS_EDGES = frozenset({
    (OrderStatus.CLAIMED_BY_COURIER, OrderStatus.EN_ROUTE_TO_SELLER),
    (OrderStatus.EN_ROUTE_TO_SELLER, OrderStatus.AT_SELLER),
    (OrderStatus.PICKED_UP, OrderStatus.EN_ROUTE_TO_SITE),
})


def is_forward_edge(current, target) -> bool:
    return target in FORWARD_EDGES.get(current, set())


def is_override_edge(current, target) -> bool:
    """Administrative edges: cancel from any non-terminal status, or jump forward."""
    if current in TERMINAL_STATUSES:
        return False
    if target == OrderStatus.CANCELLED:
        return True
    if target not in STATUS_RANK:
        return False
    return STATUS_RANK[target] > STATUS_RANK[current]


class Order(TimeStampedModel):
    """A purchased physical item moving from seller to buyer through a pickup site.

    ``status`` and ``agent`` are only written through conditional updates in
    :mod:`orders.services`; the history of every change lives in
    :class:`OrderStatusHistory`.
    """

    Status = OrderStatus
    PRESENT_AT_SITE_STATUSES = PRESENT_AT_SITE_STATUSES

    class Source(models.TextChoices):
        MARKETPLACE = "MARKETPLACE", "Marketplace checkout"
        MANUAL = "MANUAL", "Assisted order created at a pickup site"

    class ReviewReason(models.TextChoices):
        STUCK = "STUCK", "No progress within the timeout"
        CONFIRMATION_RETRIES = "CONFIRMATION_RETRIES", "Too many rejected confirmations"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order_number = models.CharField("order number", max_length=40, unique=True)
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="purchases",
        verbose_name="buyer",
    )
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sold_orders",
        verbose_name="seller",
    )
    agent = models.ForeignKey(
        "accounts.Agent",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="claimed_orders",
        verbose_name="assigned courier",
    )
    pickup_site = models.ForeignKey(
        "pickup_sites.PickupSite",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
        verbose_name="pickup site",
    )
    source = models.CharField(
        "source",
        max_length=20,
        choices=Source.choices,
        default=Source.MARKETPLACE,
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_orders",
        verbose_name="created by",
    )
    status = models.CharField(
        "status",
        max_length=30,
        choices=OrderStatus.choices,
        default=OrderStatus.CREATED,
        db_index=True,
    )
    total = models.DecimalField("total", max_digits=14, decimal_places=2)

    # ------------------------------------------------------------------
    # Collection code (OTP / QR secret) issued when the parcel is ready
    # ------------------------------------------------------------------
    delivery_code = models.CharField("delivery code", max_length=12, null=True, blank=True)
    delivery_code_expires_at = models.DateTimeField("delivery code expires at", null=True, blank=True)

    commission_amount = models.DecimalField(
        "courier commission",
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
    )

    # ------------------------------------------------------------------
    # Progress tracking
    # ------------------------------------------------------------------
    claimed_at = models.DateTimeField("claimed at", null=True, blank=True)
    status_changed_at = models.DateTimeField("status changed at", default=timezone.now, db_index=True)
    failed_confirmation_count = models.PositiveIntegerField("failed confirmations", default=0)
    needs_review = models.BooleanField("needs review", default=False, db_index=True)
    review_reason = models.CharField(
        "review reason",
        max_length=30,
        choices=ReviewReason.choices,
        blank=True,
        default="",
    )
    flagged_at = models.DateTimeField("flagged at", null=True, blank=True)

    class Meta:
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "agent"], name="order_status_agent_idx"),
            models.Index(fields=["pickup_site", "status"], name="order_site_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(status=OrderStatus.CANCELLED)
                    | Q(agent__isnull=True, status__in=[OrderStatus.CREATED, OrderStatus.AVAILABLE_FOR_PICKUP])
                    | Q(agent__isnull=False, status__in=sorted(AGENT_REQUIRED_STATUSES))
                ),
                name="order_agent_matches_status",
            ),
            models.CheckConstraint(condition=Q(total__gt=0), name="order_total_positive"),
        ]

    def __str__(self):
        return f"{self.order_number} [{self.status}]"


class OrderStatusHistory(models.Model):
    """Immutable, timestamped record of one status change."""

    order = models.ForeignKey(
        Order,
        on_delete=models.PROTECT,
        related_name="status_history",
        verbose_name="order",
    )
    from_status = models.CharField("from", max_length=30, choices=OrderStatus.choices, null=True, blank=True)
    to_status = models.CharField("to", max_length=30, choices=OrderStatus.choices)
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_status_changes",
    )
    is_override = models.BooleanField("administrative override", default=False)
    reason = models.TextField("reason", blank=True, default="")
    metadata = models.JSONField("metadata", default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        verbose_name = "Order status change"
        verbose_name_plural = "Order status history"
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.order_id}: {self.from_status} -> {self.to_status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Status history entries are immutable.")
        super().save(*args, **kwargs)
