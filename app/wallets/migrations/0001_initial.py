"""
Initial wallets schema.

Changes:
    - Create Wallet (one per owner, non-negative balance)
    - Create BankAccount (at most one default per user)
    - Create LedgerEntry (append-only, sequence unique per wallet)
    - Create Withdrawal (status managed by django-fsm)
    - Create WalletNotification (email outbox) and WebhookEvent
"""

import uuid
from decimal import Decimal

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Wallet",
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
                    "owner_type",
                    models.CharField(
                        choices=[("EVENT", "Event"), ("GROUP", "Group"), ("PLATFORM", "Platform")],
                        help_text="Kind of entity owning this wallet",
                        max_length=16,
                    ),
                ),
                (
                    "owner_id",
                    models.CharField(
                        blank=True,
                        help_text="Identifier of the owning event or group (null for PLATFORM)",
                        max_length=64,
                        null=True,
                    ),
                ),
                (
                    "balance",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Current balance; equals the balance_after of the latest ledger entry",
                        max_digits=18,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="NGN",
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        default=True,
                        help_text="Whether this wallet accepts new ledger entries",
                    ),
                ),
            ],
            options={
                "verbose_name": "Wallet",
                "verbose_name_plural": "Wallets",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("owner_type", "owner_id"),
                        name="unique_wallet_per_owner",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("owner_id__isnull", True)),
                        fields=("owner_type",),
                        name="unique_ownerless_wallet_per_type",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("balance__gte", 0)),
                        name="wallet_balance_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BankAccount",
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
                    "bank_code",
                    models.CharField(help_text="Provider bank code", max_length=16),
                ),
                (
                    "bank_name",
                    models.CharField(help_text="Bank display name", max_length=128),
                ),
                (
                    "account_number",
                    models.CharField(help_text="Bank account number", max_length=20),
                ),
                (
                    "account_name",
                    models.CharField(help_text="Account holder name", max_length=255),
                ),
                (
                    "is_default",
                    models.BooleanField(
                        default=False,
                        help_text="Whether withdrawals go to this account by default",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who owns this bank account",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="bank_accounts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Bank Account",
                "verbose_name_plural": "Bank Accounts",
                "ordering": ["-is_default", "-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("is_default", True)),
                        fields=("user",),
                        name="one_default_bank_account_per_user",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
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
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this entry was recorded",
                    ),
                ),
                (
                    "owner_type",
                    models.CharField(
                        choices=[("EVENT", "Event"), ("GROUP", "Group"), ("PLATFORM", "Platform")],
                        help_text="Owner type of the wallet (denormalized)",
                        max_length=16,
                    ),
                ),
                (
                    "owner_id",
                    models.CharField(
                        blank=True,
                        help_text="Owner id of the wallet (denormalized)",
                        max_length=64,
                        null=True,
                    ),
                ),
                (
                    "entry_type",
                    models.CharField(
                        choices=[
                            ("CREDIT", "Ticket sale credit"),
                            ("WITHDRAWAL", "Withdrawal"),
                            ("ADJUSTMENT", "Adjustment"),
                            ("REFUND", "Refund"),
                        ],
                        help_text="Business reason for this entry",
                        max_length=16,
                    ),
                ),
                (
                    "direction",
                    models.CharField(
                        choices=[("CREDIT", "Credit"), ("DEBIT", "Debit")],
                        help_text="Whether the balance went up or down",
                        max_length=8,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Amount moved (always positive)",
                        max_digits=18,
                    ),
                ),
                (
                    "balance_after",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Wallet balance immediately after this entry",
                        max_digits=18,
                    ),
                ),
                (
                    "sequence",
                    models.PositiveIntegerField(
                        help_text="0-based position of this entry in the wallet history",
                    ),
                ),
                (
                    "transaction_reference",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Ticket transaction id or payout reference",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "external_reference",
                    models.CharField(
                        blank=True,
                        help_text="Provider side identifier (e.g., transfer id)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "hangout_id",
                    models.CharField(
                        blank=True,
                        help_text="Event this money relates to",
                        max_length=64,
                        null=True,
                    ),
                ),
                (
                    "idempotency_key",
                    models.CharField(
                        blank=True,
                        help_text="Unique key to prevent duplicate entries",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Typed metadata with a 'kind' discriminator",
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        help_text="Wallet whose balance this entry moved",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entries",
                        to="wallets.wallet",
                    ),
                ),
            ],
            options={
                "verbose_name": "Ledger Entry",
                "verbose_name_plural": "Ledger Entries",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["wallet", "created_at"],
                        name="ledger_wallet_created_idx",
                    ),
                    models.Index(
                        fields=["owner_type", "owner_id"],
                        name="ledger_owner_idx",
                    ),
                    models.Index(
                        fields=["entry_type"],
                        name="ledger_entry_type_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("wallet", "sequence"),
                        name="unique_ledger_sequence_per_wallet",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="ledger_entry_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("balance_after__gte", 0)),
                        name="ledger_entry_balance_after_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Withdrawal",
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
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on every update",
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
                    "owner_type",
                    models.CharField(
                        choices=[("EVENT", "Event"), ("GROUP", "Group"), ("PLATFORM", "Platform")],
                        help_text="Owner type of the debited wallet",
                        max_length=16,
                    ),
                ),
                (
                    "owner_id",
                    models.CharField(
                        blank=True,
                        help_text="Owner id of the debited wallet",
                        max_length=64,
                        null=True,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Gross requested amount (the full amount debited)",
                        max_digits=18,
                    ),
                ),
                (
                    "fee_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=0,
                        help_text="Fee retained by the platform",
                        max_digits=18,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="NGN",
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("unknown", "Unknown"),
                            ("successful", "Successful"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current status of the withdrawal (managed by FSM)",
                        max_length=50,
                    ),
                ),
                (
                    "payout_reference",
                    models.CharField(
                        help_text="Unique reference sent to the provider (idempotency key)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "provider_transfer_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Provider transfer id",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        help_text="Provider message if the transfer failed",
                        null=True,
                    ),
                ),
                (
                    "finalized_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the withdrawal reached a terminal status",
                        null=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Typed provider metadata",
                    ),
                ),
                (
                    "bank_account",
                    models.ForeignKey(
                        blank=True,
                        help_text="Destination bank account",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="withdrawals",
                        to="wallets.bankaccount",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who requested the withdrawal",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="withdrawals",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "wallet",
                    models.ForeignKey(
                        help_text="Wallet that was debited",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="withdrawals",
                        to="wallets.wallet",
                    ),
                ),
            ],
            options={
                "verbose_name": "Withdrawal",
                "verbose_name_plural": "Withdrawals",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["owner_type", "owner_id", "status"],
                        name="withdrawal_owner_status_idx",
                    ),
                    models.Index(
                        fields=["user", "created_at"],
                        name="withdrawal_user_created_idx",
                    ),
                    models.Index(
                        fields=["status", "created_at"],
                        name="withdrawal_status_created_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="withdrawal_amount_positive",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("fee_amount__gte", 0)),
                        name="withdrawal_fee_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WalletNotification",
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
                    "kind",
                    models.CharField(
                        choices=[
                            ("withdrawal_receipt_admin", "Withdrawal receipt (admin)"),
                            ("withdrawal_success", "Withdrawal successful"),
                            ("withdrawal_failed", "Withdrawal failed"),
                            ("wallet_adjusted_manual", "Manual wallet adjustment"),
                            ("wallet_adjusted_refund", "Wallet adjusted for refund"),
                            ("event_wallet_credited", "Event wallet credited"),
                            ("group_wallet_credited", "Group wallet credited"),
                            ("operator_rollback_alert", "Operator rollback alert"),
                        ],
                        help_text="Which email to render",
                        max_length=40,
                    ),
                ),
                (
                    "recipients",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Email addresses to deliver to",
                    ),
                ),
                (
                    "context",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Template context (JSON-serializable)",
                    ),
                ),
                (
                    "dedupe_key",
                    models.CharField(
                        help_text="Unique key for the logical message",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("sent", "Sent"),
                            ("failed", "Failed"),
                            ("skipped", "Skipped"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current delivery status",
                        max_length=20,
                    ),
                ),
                (
                    "attempt_count",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of delivery attempts",
                    ),
                ),
                (
                    "sent_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the email was handed to the email backend",
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Last delivery error",
                    ),
                ),
                (
                    "failure_code",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Error code of the last failure",
                        max_length=50,
                    ),
                ),
                (
                    "is_permanent_failure",
                    models.BooleanField(
                        default=False,
                        help_text="True if retry won't help (e.g., template missing)",
                    ),
                ),
                (
                    "withdrawal",
                    models.ForeignKey(
                        blank=True,
                        help_text="Withdrawal this notification is about",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="notifications",
                        to="wallets.withdrawal",
                    ),
                ),
            ],
            options={
                "verbose_name": "Wallet Notification",
                "verbose_name_plural": "Wallet Notifications",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="wallet_notif_status_idx",
                    ),
                    models.Index(
                        fields=["kind", "status"],
                        name="wallet_notif_kind_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
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
                    "event_key",
                    models.CharField(
                        help_text="Unique key for idempotency (event:transfer_id:status)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Flutterwave event type (e.g., 'transfer.completed')",
                        max_length=100,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(
                        help_text="Full webhook payload from Flutterwave (JSON)",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When event was successfully processed",
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error message if processing failed",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of processing attempts",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="wallet_webhook_status_idx",
                    ),
                    models.Index(
                        fields=["event_type", "created_at"],
                        name="wallet_webhook_type_idx",
                    ),
                ],
            },
        ),
    ]
