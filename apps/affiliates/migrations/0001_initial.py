import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Affiliate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("code", models.CharField(max_length=32, unique=True)),
                ("is_active", models.BooleanField(default=True)),
                ("rules", models.JSONField(blank=True, default=list)),
                ("month_key", models.CharField(db_index=True, max_length=7)),
                ("month_sales", models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ("month_orders", models.IntegerField(default=0)),
                ("month_commission_accrued", models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ("lifetime_sales", models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ("lifetime_commission", models.DecimalField(decimal_places=2, default=0, max_digits=15)),
                ("fund_account_id", models.CharField(blank=True, db_index=True, max_length=100, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="affiliate",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-month_sales", "-created_at"],
                "indexes": [
                    models.Index(fields=["is_active", "code"], name="affiliate_active_code_idx"),
                ],
            },
        ),
    ]
