"""
Background workers for wallets.

- WithdrawalPoller: Reconciles PENDING/UNKNOWN withdrawals with Flutterwave

The Celery entry point is wallets.tasks.poll_pending_withdrawals.
"""

from wallets.workers.withdrawal_poller import WithdrawalPoller

__all__ = ["WithdrawalPoller"]
