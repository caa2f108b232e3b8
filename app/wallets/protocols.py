"""
Protocol definitions for the wallet subsystem's collaborators.

Events and groups are owned by other services. The wallet code reads them
only through OwnerDirectory, and moves money out only through
PayoutProvider, so both can be swapped (and stubbed in tests) without
touching wallet logic.

Available Protocols:
    OwnerDirectory: Lookup of events and groups that own wallets
    PayoutProvider: Bank transfer rail (FlutterwaveAdapter implements it)

Records:
    EventRecord, GroupRecord: Read-only views of wallet owners
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from wallets.adapters.flutterwave_adapter import (
        CreateTransferParams,
        TransferResult,
        TransferStatus,
    )


@dataclass(frozen=True)
class EventRecord:
    """
    An event (hangout) that can own a wallet.

    Attributes:
        id: Event id
        title: Display title used in emails
        creator_id: User id of the event creator
        origin: "user" for user-created events; other origins have no
            individual owner to notify
        co_organizer_ids: User ids of accepted co-organizers
    """

    id: str
    title: str
    creator_id: str | None
    origin: str = "user"
    co_organizer_ids: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class GroupRecord:
    """
    A group that can own a wallet.

    Attributes:
        id: Group id
        name: Display name used in emails
        creator_id: User id of the group creator
        admin_ids: User ids of group members with the admin role
        member_ids: User ids of all members
    """

    id: str
    name: str
    creator_id: str | None
    admin_ids: frozenset[str] = field(default_factory=frozenset)
    member_ids: frozenset[str] = field(default_factory=frozenset)


@runtime_checkable
class OwnerDirectory(Protocol):
    """Lookup of wallet owners. Returns None for unknown ids."""

    def get_event(self, event_id: str) -> EventRecord | None: ...

    def get_group(self, group_id: str) -> GroupRecord | None: ...


@runtime_checkable
class PayoutProvider(Protocol):
    """
    Bank transfer rail.

    create_transfer raises ProviderRejectedError for a definite refusal and
    ProviderTimeoutError / ProviderUnavailableError when the outcome is
    unknown. The lookups return None when the provider has no such
    transfer and raise ProviderError when the lookup itself fails.
    """

    def create_transfer(self, params: CreateTransferParams) -> TransferResult: ...

    def verify_transfer(self, transfer_id: str) -> TransferStatus | None: ...

    def find_transfer_by_reference(self, reference: str) -> TransferStatus | None: ...
