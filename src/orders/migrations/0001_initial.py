import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

STATUS_CHOICES = [
    ("CREATED", "Created"),
    ("AVAILABLE_FOR_PICKUP", "Available for pickup"),
    ("CLAIMED_BY_COURIER", "Claimed by courier"),
    ("EN_ROUTE_TO_SELLER", "En route to seller"),
    ("AT_SELLER", "At seller"),
    ("PICKED_UP", "Picked up"),
    ("EN_ROUTE_TO_SITE", "En route to pickup site"),
    ("AT_SITE", "At pickup site"),
    ("AWAITING_COLLECTION", "Awaiting collection"),
    ("COLLECTED_BY_BUYER", "Collected by buyer"),
    ("CANCELLED", "Cancelled"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("accounts", "0001_initial"),
        ("pickup_sites", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Order",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_number", models.CharField(max_length=40, unique=True, verbose_name="order number")),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("MARKETPLACE", "Marketplace checkout"),
                            ("MANUAL", "Assisted order created at a pickup site"),
                        ],
                        default="MARKETPLACE",
                        max_length=20,
                        verbose_name="source",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=STATUS_CHOICES,
                        db_index=True,
                        default="CREATED",
                        max_length=30,
                        verbose_name="status",
                    ),
                ),
                ("total", models.DecimalField(decimal_places=2, max_digits=14, verbose_name="total")),
                ("delivery_code", models.CharField(blank=True, max_length=12, null=True, verbose_name="delivery code")),
                (
                    "delivery_code_expires_at",
                    models.DateTimeField(blank=True, null=True, verbose_name="delivery code expires at"),
                ),
                (
                    "commission_amount",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=14, null=True, verbose_name="courier commission"
                    ),
                ),
                ("claimed_at", models.DateTimeField(blank=True, null=True, verbose_name="claimed at")),
                (
                    "status_changed_at",
                    models.DateTimeField(
                        db_index=True, default=django.utils.timezone.now, verbose_name="status changed at"
                    ),
                ),
                (
                    "failed_confirmation_count",
                    models.PositiveIntegerField(default=0, verbose_name="failed confirmations"),
                ),
                ("needs_review", models.BooleanField(db_index=True, default=False, verbose_name="needs review")),
                (
                    "review_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("STUCK", "No progress within the timeout"),
                            ("CONFIRMATION_RETRIES", "Too many rejected confirmations"),
                        ],
                        default="",
                        max_length=30,
                        verbose_name="review reason",
                    ),
                ),
                ("flagged_at", models.DateTimeField(blank=True, null=True, verbose_name="flagged at")),
                (
                    "agent",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="claimed_orders",
                        to="accounts.agent",
                        verbose_name="assigned courier",
                    ),
                ),
                (
                    "buyer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="purchases",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="buyer",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_orders",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="created by",
                    ),
                ),
                (
                    "pickup_site",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="orders",
                        to="pickup_sites.pickupsite",
                        verbose_name="pickup site",
                    ),
                ),
                (
                    "seller",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="sold_orders",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="seller",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order",
                "verbose_name_plural": "Orders",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "agent"], name="order_status_agent_idx"),
                    models.Index(fields=["pickup_site", "status"], name="order_site_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("status", "CANCELLED"),
                            models.Q(("agent__isnull", True), ("status__in", ["CREATED", "AVAILABLE_FOR_PICKUP"])),
                            models.Q(
                                ("agent__isnull", False),
                                (
                                    "status__in",
                                    [
                                        "AT_SELLER",
                                        "AT_SITE",
                                        "AWAITING_COLLECTION",
                                        "CLAIMED_BY_COURIER",
                                        "COLLECTED_BY_BUYER",
                                        "EN_ROUTE_TO_SELLER",
                                        "EN_ROUTE_TO_SITE",
                                        "PICKED_UP",
                                    ],
                                ),
                            ),
                            _connector="OR",
                        ),
                        name="order_agent_matches_status",
                    ),
                    models.CheckConstraint(condition=models.Q(("total__gt", 0)), name="order_total_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="OrderStatusHistory",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "from_status",
                    models.CharField(blank=True, choices=STATUS_CHOICES, max_length=30, null=True, verbose_name="from"),
                ),
                ("to_status", models.CharField(choices=STATUS_CHOICES, max_length=30, verbose_name="to")),
                ("is_override", models.BooleanField(default=False, verbose_name="administrative override")),
                ("reason", models.TextField(blank=True, default="", verbose_name="reason")),
                ("metadata", models.JSONField(blank=True, default=dict, verbose_name="metadata")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="order_status_changes",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="status_history",
                        to="orders.order",
                        verbose_name="order",
                    ),
                ),
            ],
            options={
                "verbose_name": "Order status change",
                "verbose_name_plural": "Order status history",
                "ordering": ["created_at", "id"],
            },
        ),
    ]
