"""Forwarding information base: which faces subscribed to which names."""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Dict, List

from .names import ShortName
from .packet import Address

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriberInfo:
    """A subscriber: the name it asked for, where it is, its relay sequence."""

    name: ShortName
    face: Address
    relay_seq_num: int = 0


class Fib(abc.ABC):
    """Store of subscriptions keyed by short name."""

    @abc.abstractmethod
    def add_subscription(self, name: ShortName, subscriber: SubscriberInfo) -> None:
        """Record ``subscriber`` as subscribed to ``name``."""

    @abc.abstractmethod
    def remove_subscription(self, name: ShortName, subscriber: SubscriberInfo) -> None:
        """Forget the subscription of ``subscriber``'s face to ``name``."""

    @abc.abstractmethod
    def lookup_subscription(self, name: ShortName) -> List[SubscriberInfo]:
        """Return every subscriber that should receive data named ``name``."""


class MultimapFib(Fib):
    """Subscriptions held in a map from name to its subscribers."""

    def __init__(self) -> None:
        self._store: Dict[ShortName, List[SubscriberInfo]] = {}

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._store.values())

    def add_subscription(self, name: ShortName, subscriber: SubscriberInfo) -> None:
        """Subscribe to ``name``, replacing any earlier subscription to it."""
        self._store[name] = [subscriber]
        log.debug("%s has %d subscription", name, len(self._store[name]))

    def remove_subscription(self, name: ShortName, subscriber: SubscriberInfo) -> None:
        entries = self._store.get(name)
        if not entries:
            return
        for position, entry in enumerate(entries):
            if entry.face == subscriber.face:
                del entries[position]
                break
        if not entries:
            del self._store[name]

    def lookup_subscription(self, name: ShortName) -> List[SubscriberInfo]:
        """Collect subscribers of the resource, the sender and the source of ``name``."""
        if not name.resource_id:
            raise ValueError("lookup needs a name with a resource id")
        keys = [ShortName(name.resource_id)]
        if name.sender_id:
            keys.append(ShortName(name.resource_id, name.sender_id))
        if name.source_id:
            keys.append(ShortName(name.resource_id, name.sender_id, name.source_id))
        result: List[SubscriberInfo] = []
        for key in keys:
            result.extend(self._store.get(key, ()))
        return result