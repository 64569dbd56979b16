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

    dependencies = [
        ("confirmations", "0001_initial"),
        ("orders", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="TrackingPoint",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("latitude", models.DecimalField(decimal_places=6, max_digits=9, verbose_name="latitude")),
                ("longitude", models.DecimalField(decimal_places=6, max_digits=9, verbose_name="longitude")),
                ("accuracy", models.FloatField(blank=True, null=True, verbose_name="accuracy (m)")),
                ("altitude", models.FloatField(blank=True, null=True, verbose_name="altitude (m)")),
                ("speed", models.FloatField(blank=True, null=True, verbose_name="speed (m/s)")),
                ("heading", models.FloatField(blank=True, null=True, verbose_name="heading (deg)")),
                ("distance_to_site_meters", models.FloatField(blank=True, null=True, verbose_name="distance to site (m)")),
                ("status_at_time", models.CharField(choices=STATUS_CHOICES, max_length=30, verbose_name="order status")),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now, verbose_name="reported at")),
                ("order", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="tracking_points", to="orders.order", verbose_name="order")),
                ("reported_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="tracking_points", to=settings.AUTH_USER_MODEL, verbose_name="reported by")),
            ],
            options={
                "verbose_name": "Tracking point",
                "verbose_name_plural": "Tracking points",
                "ordering": ["created_at", "id"],
            },
        ),
    ]
