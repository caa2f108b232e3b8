"""
Wallets - organizer balances, ledger and withdrawals.

Key components:
    - models/: Wallet, LedgerEntry, Withdrawal, BankAccount,
      WalletNotification, WebhookEvent
    - ledger/: LedgerService, the only code that moves wallet balances
    - services/: authorization, withdrawal, adjustment, funding, refund,
      queries and notifications
    - adapters/: Flutterwave payout adapter
    - webhooks/: Flutterwave webhook ingress and transfer finalization
    - workers/: withdrawal reconciliation poller
    - tasks.py: Celery tasks (outbox delivery, webhook processing, polling)
"""
