import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("orders", "0001_initial"),
        ("pickup_sites", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Alert",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                (
                    "alert_type",
                    models.CharField(
                        choices=[
                            ("ORDER_STUCK", "Order stuck"),
                            ("CONFIRMATION_REVIEW", "Confirmation retries exhausted"),
                            ("CAPACITY_DRIFT", "Site load drift"),
                        ],
                        max_length=30,
                        verbose_name="alert type",
                    ),
                ),
                (
                    "severity",
                    models.CharField(
                        choices=[("INFO", "Information"), ("WARNING", "Warning"), ("CRITICAL", "Critical")],
                        default="INFO",
                        max_length=10,
                        verbose_name="severity",
                    ),
                ),
                ("title", models.CharField(max_length=200, verbose_name="title")),
                ("message", models.TextField(verbose_name="message")),
                (
                    "payload",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Extra JSON data (e.g. order_id, hours_waiting, expected_load).",
                        verbose_name="payload",
                    ),
                ),
                ("is_read", models.BooleanField(default=False, verbose_name="read")),
                ("read_at", models.DateTimeField(blank=True, null=True, verbose_name="read at")),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="alerts",
                        to="orders.order",
                        verbose_name="order",
                    ),
                ),
                (
                    "pickup_site",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="alerts",
                        to="pickup_sites.pickupsite",
                        verbose_name="pickup site",
                    ),
                ),
                (
                    "read_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="read_alerts",
                        to=settings.AUTH_USER_MODEL,
                        verbose_name="read by",
                    ),
                ),
            ],
            options={
                "verbose_name": "Alert",
                "verbose_name_plural": "Alerts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["alert_type", "created_at"], name="alert_type_created_idx"),
                ],
            },
        ),
    ]
