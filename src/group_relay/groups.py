"""Group registry: membership and bounded history per group key."""

from __future__ import annotations

import logging
from collections import deque
from typing import Dict, Iterator, Set

from .models import HistoryEvent, RosterEvent

logger = logging.getLogger(__name__)


class Group:
    """Display names claimed in one group plus its recent events."""

    def __init__(self, key: str, *, history_limit: int) -> None:
        self.key = key
        self._members: Set[str] = set()
        self._history: deque[HistoryEvent] = deque(maxlen=history_limit)

    @property
    def members(self) -> frozenset[str]:
        return frozenset(self._members)

    def has_member(self, name: str) -> bool:
        return name in self._members

    def add_member(self, name: str) -> None:
        if name in self._members:
            raise ValueError(f"Name {name!r} already claimed in group {self.key}")
        self._members.add(name)

    def remove_member(self, name: str) -> bool:
        if name not in self._members:
            return False
        self._members.remove(name)
        return True

    def record(self, event: HistoryEvent) -> None:
        """Append to history; the oldest entry drops out once the limit is hit."""

        self._history.append(event)

    def history(self) -> list[HistoryEvent]:
        return list(self._history)

    def roster(self) -> RosterEvent:
        return RosterEvent(members=sorted(self._members))


class GroupRegistry:
    """Owns every group for the lifetime of the process.

    Groups are never removed; ``get_or_create`` is the only way one comes
    into existence and the returned object stays valid for the registry's
    lifetime.
    """

    def __init__(self, *, history_limit: int) -> None:
        self._history_limit = history_limit
        self._groups: Dict[str, Group] = {}

    def get_or_create(self, key: str) -> Group:
        group = self._groups.get(key)
        if group is None:
            group = Group(key, history_limit=self._history_limit)
            self._groups[key] = group
            logger.debug("Created group %s", key)
        return group

    def get(self, key: str) -> Group | None:
        return self._groups.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self._groups

    def __iter__(self) -> Iterator[Group]:
        return iter(list(self._groups.values()))

    def __len__(self) -> int:
        return len(self._groups)
