"""
Owner directory wiring.

The events and groups services are external to this project. Deployments
point WALLETS_OWNER_DIRECTORY at a class implementing OwnerDirectory
(e.g. an HTTP client for the events service). The default is an in-memory
directory that starts empty and is populated by whoever hosts the
wallets app (fixtures, management scripts, tests).

Usage:
    from wallets.directory import get_owner_directory

    directory = get_owner_directory()
    event = directory.get_event(event_id)
"""

from __future__ import annotations

import functools
import logging

from django.conf import settings
from django.utils.module_loading import import_string

from wallets.protocols import EventRecord, GroupRecord, OwnerDirectory

logger = logging.getLogger(__name__)


class InMemoryOwnerDirectory:
    """
    Dictionary-backed OwnerDirectory.

    Example:
        directory = InMemoryOwnerDirectory()
        directory.add_event(EventRecord(id="evt-1", title="Lagos Jazz Night", creator_id="7"))
        directory.get_event("evt-1").creator_id  # "7"
    """

    def __init__(
        self,
        events: list[EventRecord] | None = None,
        groups: list[GroupRecord] | None = None,
    ) -> None:
        self._events = {str(event.id): event for event in events or []}
        self._groups = {str(group.id): group for group in groups or []}

    def add_event(self, event: EventRecord) -> None:
        self._events[str(event.id)] = event

    def add_group(self, group: GroupRecord) -> None:
        self._groups[str(group.id)] = group

    def get_event(self, event_id: str) -> EventRecord | None:
        return self._events.get(str(event_id))

    def get_group(self, group_id: str) -> GroupRecord | None:
        return self._groups.get(str(group_id))


@functools.lru_cache(maxsize=1)
def get_owner_directory() -> OwnerDirectory:
    """
    Build the configured directory once per process.

    Call ``get_owner_directory.cache_clear()`` after changing the setting.
    """
    directory_class = import_string(settings.WALLETS_OWNER_DIRECTORY)
    logger.debug(
        "Loaded owner directory",
        extra={"directory": settings.WALLETS_OWNER_DIRECTORY},
    )
    return directory_class()
