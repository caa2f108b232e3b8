"""
Wallet authorization.

Decides who may view or withdraw from a wallet. Pure reads against the
owner directory; returns an AuthorizationDecision instead of raising so
callers choose how to surface a denial.

Rules:
    PLATFORM: view admins only, withdraw never
    EVENT:    view creator, accepted co-organizers, admins; withdraw creator
    GROUP:    view creator, group admins, members, system admins;
              withdraw creator

Usage:
    from wallets.services import WalletAuthorizationService

    authz = WalletAuthorizationService.default()
    decision = authz.can_withdraw(WalletOwnerType.EVENT, event_id, user.id)
    if not decision.allowed:
        raise WalletAuthorizationError(decision.reason)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from wallets.directory import get_owner_directory
from wallets.state_machines import WalletOwnerType
from wallets.types import AuthorizationDecision

if TYPE_CHECKING:
    from wallets.protocols import OwnerDirectory


def _same_user(a, b) -> bool:
    return a is not None and b is not None and str(a) == str(b)


class WalletAuthorizationService:
    """View and withdraw permission checks for wallets."""

    def __init__(self, directory: OwnerDirectory) -> None:
        self.directory = directory

    @classmethod
    def default(cls) -> WalletAuthorizationService:
        return cls(directory=get_owner_directory())

    def can_view(
        self,
        owner_type: str,
        owner_id: str | None,
        user_id,
        is_admin: bool = False,
    ) -> AuthorizationDecision:
        if owner_type == WalletOwnerType.PLATFORM:
            if is_admin:
                return AuthorizationDecision.allow()
            return AuthorizationDecision.deny("Only admins can view platform wallet")

        if owner_type == WalletOwnerType.EVENT:
            event = self.directory.get_event(owner_id)
            if event is None:
                return AuthorizationDecision.deny("Event not found")
            if _same_user(event.creator_id, user_id):
                return AuthorizationDecision.allow()
            if str(user_id) in {str(uid) for uid in event.co_organizer_ids}:
                return AuthorizationDecision.allow()
            if is_admin:
                return AuthorizationDecision.allow()
            return AuthorizationDecision.deny(
                "You do not have permission to view this event wallet"
            )

        if owner_type == WalletOwnerType.GROUP:
            group = self.directory.get_group(owner_id)
            if group is None:
                return AuthorizationDecision.deny("Group not found")
            if _same_user(group.creator_id, user_id):
                return AuthorizationDecision.allow()
            members = {str(uid) for uid in (*group.admin_ids, *group.member_ids)}
            if str(user_id) in members:
                return AuthorizationDecision.allow()
            if is_admin:
                return AuthorizationDecision.allow()
            return AuthorizationDecision.deny(
                "You do not have permission to view this group wallet"
            )

        return AuthorizationDecision.deny("Invalid ownerType")

    def can_withdraw(
        self,
        owner_type: str,
        owner_id: str | None,
        user_id,
    ) -> AuthorizationDecision:
        if owner_type == WalletOwnerType.PLATFORM:
            return AuthorizationDecision.deny(
                "Withdrawals from platform wallet are not supported"
            )

        if owner_type == WalletOwnerType.EVENT:
            event = self.directory.get_event(owner_id)
            if event is None:
                return AuthorizationDecision.deny("Event not found")
            if not _same_user(event.creator_id, user_id):
                return AuthorizationDecision.deny(
                    "Only the event creator can request withdrawals"
                )
            return AuthorizationDecision.allow()

        if owner_type == WalletOwnerType.GROUP:
            group = self.directory.get_group(owner_id)
            if group is None:
                return AuthorizationDecision.deny("Group not found")
            if not _same_user(group.creator_id, user_id):
                return AuthorizationDecision.deny(
                    "Only the group creator can request withdrawals"
                )
            return AuthorizationDecision.allow()

        return AuthorizationDecision.deny("Invalid ownerType")
