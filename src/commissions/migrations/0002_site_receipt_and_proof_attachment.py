from django.db import migrations, models

COMMISSION_TYPE_CHOICES = [
    ("DELIVERY", "Courier delivery"),
    ("ASSISTED_PURCHASE", "Site manager assisted purchase"),
    ("SITE_RECEIPT", "Site manager parcel receipt"),
]


class Migration(migrations.Migration):

    dependencies = [
        ("commissions", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="commissionpolicy",
            name="commission_type",
            field=models.CharField(choices=COMMISSION_TYPE_CHOICES, max_length=30, verbose_name="commission type"),
        ),
        migrations.AlterField(
            model_name="commission",
            name="commission_type",
            field=models.CharField(choices=COMMISSION_TYPE_CHOICES, max_length=30, verbose_name="commission type"),
        ),
        migrations.AddField(
            model_name="paymentproof",
            name="attachment",
            field=models.FileField(blank=True, upload_to="payment_proofs/%Y/%m/", verbose_name="receipt"),
        ),
    ]
