"""
Record applied refund clawbacks.

Changes:
    - Create WalletRefund (unique refund_key, computed debits and shortfalls)
"""

import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("wallets", "0002_add_withdrawal_poll_schedule"),
    ]

    operations = [
        migrations.CreateModel(
            name="WalletRefund",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="When the row was written",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="When the row last changed",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "refund_key",
                    models.CharField(
                        help_text="Idempotency key for the refund",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "transaction_id",
                    models.CharField(
                        db_index=True,
                        help_text="Original payment transaction id",
                        max_length=255,
                    ),
                ),
                (
                    "refund_amount",
                    models.DecimalField(decimal_places=2, max_digits=18),
                ),
                (
                    "original_amount",
                    models.DecimalField(decimal_places=2, max_digits=18),
                ),
                (
                    "owner_debited",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=18
                    ),
                ),
                (
                    "platform_debited",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=18
                    ),
                ),
                (
                    "owner_shortfall",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Owner share not recovered because the balance was too low",
                        max_digits=18,
                    ),
                ),
                (
                    "platform_shortfall",
                    models.DecimalField(
                        decimal_places=2, default=Decimal("0.00"), max_digits=18
                    ),
                ),
                ("reason", models.TextField(blank=True, null=True)),
                (
                    "wallet",
                    models.ForeignKey(
                        help_text="Owner wallet the refund was clawed back from",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="wallets.wallet",
                    ),
                ),
            ],
            options={
                "verbose_name": "Wallet Refund",
                "verbose_name_plural": "Wallet Refunds",
                "ordering": ["-created_at"],
            },
        ),
    ]
