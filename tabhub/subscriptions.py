"""
Per-tab subscription table.

Every signal subscription made on behalf of a tab is recorded under its id,
so a single release() on tab destruction tears all of them down.
"""

import logging
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class SubscriptionTable:

    def __init__(self):
        self._table: Dict[int, List[Unsubscribe]] = {}

    def add(self, tab_id: int, unsubscribe: Unsubscribe):
        self._table.setdefault(tab_id, []).append(unsubscribe)

    def release(self, tab_id: int) -> int:
        """Call every unsubscribe for the tab once. Returns how many ran."""
        released = 0
        for unsubscribe in self._table.pop(tab_id, []):
            try:
                unsubscribe()
            except Exception as e:
                logger.warning("Unsubscribe for tab[%s] failed: %r", tab_id, e)
                continue
            released += 1
        return released

    def release_all(self) -> int:
        return sum(self.release(tab_id) for tab_id in list(self._table))

    def count(self, tab_id: int) -> int:
        return len(self._table.get(tab_id, ()))

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._table

    def __len__(self) -> int:
        return len(self._table)
