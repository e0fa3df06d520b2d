import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("affiliates", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Attribution",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("order_id", models.CharField(max_length=64)),
                ("order_number", models.CharField(blank=True, default="", max_length=64)),
                ("click_id", models.CharField(blank=True, default="", max_length=64)),
                ("month_key", models.CharField(max_length=7)),
                ("base_amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("commission_percent", models.DecimalField(decimal_places=2, max_digits=5)),
                ("commission_amount", models.DecimalField(decimal_places=2, max_digits=15)),
                (
                    "status",
                    models.CharField(
                        choices=[("open", "Open"), ("locked", "Locked"), ("reversed", "Reversed")],
                        default="open",
                        max_length=20,
                    ),
                ),
                ("completed_at", models.DateTimeField()),
                ("holdback_until", models.DateTimeField()),
                ("locked_at", models.DateTimeField(blank=True, null=True)),
                ("reversed_at", models.DateTimeField(blank=True, null=True)),
                ("reversal_reason", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "affiliate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="attributions",
                        to="affiliates.affiliate",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="referred_attributions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["affiliate", "month_key", "status"], name="attr_aff_month_status_idx"),
                    models.Index(fields=["status", "holdback_until"], name="attr_status_holdback_idx"),
                    models.Index(fields=["order_id"], name="attr_order_id_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("affiliate", "order_id"), name="uniq_attribution_affiliate_order"),
                ],
            },
        ),
        migrations.CreateModel(
            name="CommissionAdjustment",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("month_key", models.CharField(max_length=7)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=15)),
                ("note", models.TextField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "affiliate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="adjustments",
                        to="affiliates.affiliate",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="commission_adjustments",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PayoutRequest",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("month_key", models.CharField(max_length=7)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=15)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("requested", "Requested"),
                            ("approved", "Approved"),
                            ("paid", "Paid"),
                            ("rejected", "Rejected"),
                        ],
                        default="requested",
                        max_length=20,
                    ),
                ),
                ("account_holder", models.CharField(max_length=255)),
                ("bank_account", models.CharField(max_length=34)),
                ("ifsc", models.CharField(max_length=11)),
                ("bank_name", models.CharField(max_length=100)),
                ("city", models.CharField(max_length=100)),
                ("upi_id", models.CharField(blank=True, default="", max_length=255)),
                ("pan", models.CharField(blank=True, default="", max_length=10)),
                ("aadhaar_number", models.CharField(max_length=12)),
                ("payout_reference", models.CharField(blank=True, default="", max_length=100)),
                ("utr", models.CharField(blank=True, default="", max_length=100)),
                ("notes", models.TextField(blank=True, default="")),
                ("approved_at", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("rejected_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "affiliate",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payout_requests",
                        to="affiliates.affiliate",
                    ),
                ),
                (
                    "reviewed_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="reviewed_payout_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payout_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "month_key"], name="payout_status_month_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "rejected"), _negated=True),
                        fields=("affiliate", "month_key"),
                        name="uniq_live_payout_per_affiliate_month",
                    ),
                ],
            },
        ),
    ]
