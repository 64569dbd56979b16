"""Models for the commissions app: agent earnings and cash payment proofs."""
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q

from core.models import TimeStampedModel


class CommissionType(models.TextChoices):
    DELIVERY = "DELIVERY", "Courier delivery"
    ASSISTED_PURCHASE = "ASSISTED_PURCHASE", "Site manager assisted purchase"
    SITE_RECEIPT = "SITE_RECEIPT", "Site manager parcel receipt"


class CalculationMode(models.TextChoices):
    PERCENTAGE = "PERCENTAGE", "Percentage of order total"
    FIXED = "FIXED", "Fixed amount"


class CommissionPolicy(TimeStampedModel):
    """Admin-managed rate for one commission type.

    The active policy of a type overrides ``DEFAULT_COMMISSION_POLICIES``.
    For ``PERCENTAGE`` the value is a fraction (``0.05`` is 5 %).
    """

    commission_type = models.CharField("commission type", max_length=30, choices=CommissionType.choices)
    mode = models.CharField("mode", max_length=20, choices=CalculationMode.choices)
    value = models.DecimalField("value", max_digits=12, decimal_places=4)
    is_active = models.BooleanField("active", default=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    class Meta:
        verbose_name = "Commission policy"
        verbose_name_plural = "Commission policies"
        ordering = ["commission_type", "-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["commission_type"],
                condition=Q(is_active=True),
                name="commission_policy_one_active_per_type",
            ),
            models.CheckConstraint(condition=Q(value__gte=0), name="commission_policy_value_non_negative"),
        ]

    def __str__(self):
        return f"{self.commission_type}: {self.mode} {self.value}"


class Commission(TimeStampedModel):
    """Money owed to an agent for one leg of one order.

    At most one row exists per (agent, order, type). ``rate``, ``mode`` and
    ``amount`` are frozen when the row is created; once the status leaves
    ``pending`` they can no longer change.
    """

    CommissionType = CommissionType

    class Status(models.TextChoices):
        PENDING = "pending", "Pending approval"
        APPROVED = "approved", "Approved"
        PAID = "paid", "Paid"
        REJECTED = "rejected", "Rejected"

    agent = models.ForeignKey(
        "accounts.Agent",
        on_delete=models.PROTECT,
        related_name="commissions",
        verbose_name="agent",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="commissions",
        verbose_name="order",
    )
    commission_type = models.CharField("commission type", max_length=30, choices=CommissionType.choices)
    mode = models.CharField("mode", max_length=20, choices=CalculationMode.choices)
    rate = models.DecimalField("rate", max_digits=12, decimal_places=4)
    base_amount = models.DecimalField("order total", max_digits=14, decimal_places=2)
    amount = models.DecimalField("amount", max_digits=14, decimal_places=2)
    status = models.CharField(
        "status",
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_commissions",
    )
    reviewed_at = models.DateTimeField("reviewed at", null=True, blank=True)
    review_notes = models.TextField("review notes", blank=True, default="")
    paid_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="paid_commissions",
    )
    paid_at = models.DateTimeField("paid at", null=True, blank=True)
    payment_reference = models.CharField("payment reference", max_length=100, blank=True, default="")

    class Meta:
        verbose_name = "Commission"
        verbose_name_plural = "Commissions"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["agent", "order", "commission_type"],
                name="commission_unique_agent_order_type",
            ),
            models.CheckConstraint(condition=Q(amount__gte=0), name="commission_amount_non_negative"),
        ]

    def __str__(self):
        return f"{self.commission_type} {self.amount} for {self.agent} [{self.status}]"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            stored = type(self).objects.filter(pk=self.pk).values("status", "amount", "rate").first()
            if stored and stored["status"] != self.Status.PENDING and (
                stored["amount"] != self.amount or stored["rate"] != self.rate
            ):
                raise ValueError("Commission amount and rate are frozen once reviewed.")
        super().save(*args, **kwargs)


class PaymentProof(TimeStampedModel):
    """Cash actually collected for an order, declared by an agent and reviewed by an admin.

    Independent of commission approval. At most one proof per order may be
    pending or approved at a time.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending review"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    class Method(models.TextChoices):
        CASH = "CASH", "Cash"
        MOBILE_MONEY = "MOBILE_MONEY", "Mobile money"
        BANK_TRANSFER = "BANK_TRANSFER", "Bank transfer"

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="payment_proofs",
        verbose_name="order",
    )
    agent = models.ForeignKey(
        "accounts.Agent",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payment_proofs",
        verbose_name="submitted by",
    )
    amount = models.DecimalField("amount", max_digits=14, decimal_places=2)
    method = models.CharField("method", max_length=20, choices=Method.choices)
    reference = models.CharField("reference", max_length=100, blank=True, default="")
    attachment = models.FileField("receipt", upload_to="payment_proofs/%Y/%m/", blank=True)
    status = models.CharField(
        "status",
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_payment_proofs",
    )
    reviewed_at = models.DateTimeField("reviewed at", null=True, blank=True)
    review_notes = models.TextField("review notes", blank=True, default="")

    class Meta:
        verbose_name = "Payment proof"
        verbose_name_plural = "Payment proofs"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(status__in=["pending", "approved"]),
                name="payment_proof_one_open_per_order",
            ),
            models.CheckConstraint(condition=Q(amount__gt=Decimal("0")), name="payment_proof_amount_positive"),
        ]

    def __str__(self):
        return f"{self.method} {self.amount} for {self.order_id} [{self.status}]"
