"""
Pytest fixtures shared by all wallet tests.

Redis is never contacted: ``mock_redis`` patches the connection used by
the distributed locks for every test. The owner directory is the
in-memory one, populated with one event and one group.

Usage:
    def test_withdraw(orchestrator, funded_event_wallet, organizer, bank_account):
        receipt = orchestrator.execute(EVENT, EVENT_ID, organizer, Decimal("100000"))
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from wallets.adapters import TransferResult
from wallets.directory import InMemoryOwnerDirectory, get_owner_directory
from wallets.exceptions import ProviderTimeoutError
from wallets.ledger import LedgerService
from wallets.protocols import EventRecord, GroupRecord
from wallets.services import (
    WalletAuthorizationService,
    WalletNotifier,
    WithdrawalOrchestrator,
    WithdrawalService,
)
from wallets.state_machines import LedgerDirection, LedgerEntryType, WalletOwnerType
from wallets.tests.factories import BankAccountFactory, UserFactory
from wallets.types import PostEntryParams

EVENT_ID = "evt-lagos-jazz"
GROUP_ID = "grp-owambe"


# =============================================================================
# Infrastructure
# =============================================================================


@pytest.fixture(autouse=True)
def mock_redis(mocker):
    """Redis stand-in for DistributedLock: every acquire and release succeeds."""
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    mocker.patch("wallets.locks.get_redis_connection", return_value=redis)
    return redis


@pytest.fixture(autouse=True)
def wallet_settings(settings):
    settings.WALLET_ADMIN_NOTIFICATION_EMAILS = ["finance@example.com"]
    settings.WALLET_OPERATOR_ALERT_EMAILS = ["oncall@example.com"]
    settings.WALLETS_OWNER_DIRECTORY = "wallets.directory.InMemoryOwnerDirectory"
    settings.FLUTTERWAVE_SECRET_KEY = "FLWSECK_TEST-secret"
    settings.FLUTTERWAVE_WEBHOOK_SECRET_HASH = "test-webhook-hash"
    return settings


# =============================================================================
# Users
# =============================================================================


@pytest.fixture
def organizer(db):
    """Creator of the test event and the test group."""
    return UserFactory(email="organizer@example.com")


@pytest.fixture
def co_organizer(db):
    return UserFactory(email="co@example.com")


@pytest.fixture
def group_member(db):
    return UserFactory(email="member@example.com")


@pytest.fixture
def stranger(db):
    return UserFactory(email="stranger@example.com")


# =============================================================================
# Owner Directory
# =============================================================================


@pytest.fixture
def owner_directory(organizer, co_organizer, group_member):
    """
    The process-wide in-memory directory, populated and cleared per test.

    ``default()`` factories resolve the same instance.
    """
    get_owner_directory.cache_clear()
    directory = get_owner_directory()
    assert isinstance(directory, InMemoryOwnerDirectory)
    directory.add_event(
        EventRecord(
            id=EVENT_ID,
            title="Lagos Jazz Night",
            creator_id=str(organizer.pk),
            co_organizer_ids=frozenset({str(co_organizer.pk)}),
        )
    )
    directory.add_group(
        GroupRecord(
            id=GROUP_ID,
            name="Owambe Crew",
            creator_id=str(organizer.pk),
            member_ids=frozenset({str(group_member.pk)}),
        )
    )
    yield directory
    get_owner_directory.cache_clear()


# =============================================================================
# Wallets
# =============================================================================


def credit(wallet, amount, key=None):
    """Put money in a wallet the way a ticket sale does."""
    return LedgerService.post(
        wallet,
        PostEntryParams(
            entry_type=LedgerEntryType.CREDIT,
            direction=LedgerDirection.CREDIT,
            amount=Decimal(amount),
            idempotency_key=key,
        ),
    )


@pytest.fixture
def funded_event_wallet(db, owner_directory):
    """EVENT wallet holding ₦200,000."""
    wallet = LedgerService.get_or_create_wallet(WalletOwnerType.EVENT, EVENT_ID)
    credit(wallet, "200000")
    wallet.refresh_from_db()
    return wallet


@pytest.fixture
def funded_group_wallet(db, owner_directory):
    """GROUP wallet holding ₦50,000."""
    wallet = LedgerService.get_or_create_wallet(WalletOwnerType.GROUP, GROUP_ID)
    credit(wallet, "50000")
    wallet.refresh_from_db()
    return wallet


@pytest.fixture
def bank_account(organizer):
    return BankAccountFactory(user=organizer, account_number="0123456789")


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def email_sender():
    sender = MagicMock()
    sender.send.return_value = True
    return sender


@pytest.fixture
def notifier(email_sender, owner_directory):
    return WalletNotifier(email_sender=email_sender, directory=owner_directory)


@pytest.fixture
def authorization(owner_directory):
    return WalletAuthorizationService(directory=owner_directory)


@pytest.fixture
def withdrawal_service(authorization):
    return WithdrawalService(authorization=authorization, event_fee_percent="5")


@pytest.fixture
def provider():
    """PayoutProvider stub; tests set return values and side effects."""
    return MagicMock()


@pytest.fixture
def orchestrator(withdrawal_service, provider, notifier):
    return WithdrawalOrchestrator(
        withdrawal_service=withdrawal_service,
        provider=provider,
        notifier=notifier,
    )


@pytest.fixture
def pending_withdrawal(orchestrator, provider, funded_event_wallet, organizer, bank_account):
    """₦100,000 EVENT withdrawal, debited and waiting for its webhook."""
    provider.create_transfer.side_effect = lambda params: TransferResult(
        id="408221", reference=params.reference, status="NEW"
    )
    receipt = orchestrator.execute(
        WalletOwnerType.EVENT, EVENT_ID, organizer, Decimal("100000")
    )
    provider.reset_mock(side_effect=True)
    return receipt.withdrawal


@pytest.fixture
def unknown_withdrawal(orchestrator, provider, funded_event_wallet, organizer, bank_account):
    """₦100,000 EVENT withdrawal whose create-transfer call timed out."""
    provider.create_transfer.side_effect = ProviderTimeoutError(
        "Flutterwave did not respond in time"
    )
    receipt = orchestrator.execute(
        WalletOwnerType.EVENT, EVENT_ID, organizer, Decimal("100000")
    )
    provider.reset_mock(side_effect=True)
    return receipt.withdrawal
