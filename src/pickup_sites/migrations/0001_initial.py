from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PickupSite",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, verbose_name="created at")),
                ("updated_at", models.DateTimeField(auto_now=True, verbose_name="updated at")),
                ("name", models.CharField(max_length=255, verbose_name="name")),
                ("address", models.CharField(blank=True, default="", max_length=255, verbose_name="address")),
                ("city", models.CharField(blank=True, default="", max_length=100, verbose_name="city")),
                ("latitude", models.DecimalField(decimal_places=7, max_digits=10, verbose_name="latitude")),
                ("longitude", models.DecimalField(decimal_places=7, max_digits=10, verbose_name="longitude")),
                ("capacity", models.PositiveIntegerField(default=100, verbose_name="capacity")),
                ("current_load", models.PositiveIntegerField(default=0, verbose_name="current load")),
                ("contact_phone", models.CharField(blank=True, default="", max_length=30, verbose_name="contact phone")),
                ("is_active", models.BooleanField(default=True, verbose_name="active")),
            ],
            options={
                "verbose_name": "Pickup site",
                "verbose_name_plural": "Pickup sites",
                "ordering": ["name"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("current_load__gte", 0), ("current_load__lte", models.F("capacity"))),
                        name="pickup_site_load_within_capacity",
                    ),
                ],
            },
        ),
    ]
