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
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Confirmation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("OTP", "One-time code"),
                            ("QR", "QR code scan"),
                            ("GPS", "GPS position"),
                            ("PHOTO", "Photo"),
                        ],
                        max_length=10,
                        verbose_name="kind",
                    ),
                ),
                ("evidence", models.JSONField(blank=True, default=dict, verbose_name="evidence")),
                (
                    "photo",
                    models.ImageField(blank=True, null=True, upload_to="confirmations/%Y/%m/", verbose_name="photo"),
                ),
                ("condition_note", models.TextField(blank=True, default="", verbose_name="condition note")),
                ("distance_meters", models.FloatField(blank=True, null=True, verbose_name="distance to site (m)")),
                ("is_verified", models.BooleanField(default=False, verbose_name="verified")),
                (
                    "rejection_reason",
                    models.CharField(blank=True, default="", max_length=255, verbose_name="rejection reason"),
                ),
                ("from_status", models.CharField(choices=STATUS_CHOICES, max_length=30, verbose_name="from")),
                ("to_status", models.CharField(choices=STATUS_CHOICES, max_length=30, verbose_name="to")),
                (
                    "created_at",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name="verified at"),
                ),
                (
                    "order",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="confirmations",
                        to="orders.order",
                        verbose_name="order",
                    ),
                ),
                (
                    "verifier",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="submitted_confirmations",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="submitted by",
                    ),
                ),
            ],
            options={
                "verbose_name": "Confirmation",
                "verbose_name_plural": "Confirmations",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["order", "kind"], name="confirmation_order_kind_idx"),
                ],
            },
        ),
    ]
