"""
Tab Registry & Snapshot Cache

The registry is the authoritative set of live tabs keyed by id. The cache
holds the last-broadcast snapshot for each of them.

Design: Arena-and-index pattern - tabs are addressed by integer id, never by
handle identity.
"""

from typing import Callable, Dict, Iterator, List, Optional, Tuple

from .tab import TabHandle, TabSnapshot


SnapshotBuilder = Callable[[TabHandle], TabSnapshot]
SnapshotDecorator = Callable[[TabSnapshot], Optional[TabSnapshot]]


class TabRegistry:
    """Live tabs by id. Emits nothing."""

    def __init__(self):
        self._tabs: Dict[int, TabHandle] = {}

    def observe(self, tab: TabHandle) -> bool:
        """Add a tab. Returns False if it was already observed."""
        if tab.id in self._tabs:
            return False
        self._tabs[tab.id] = tab
        return True

    def forget(self, tab_id: int) -> Optional[TabHandle]:
        return self._tabs.pop(tab_id, None)

    def lookup(self, tab_id: int) -> Optional[TabHandle]:
        return self._tabs.get(tab_id)

    def all(self) -> List[TabHandle]:
        return list(self._tabs.values())

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._tabs

    def __len__(self) -> int:
        return len(self._tabs)


class TabSnapshotCache:
    """
    Last-broadcast snapshot per live tab.

    Snapshots are built lazily on first access. Decorators run on every
    freshly built snapshot and may return a replacement (e.g. to stamp the
    `active` flag from the UI's current selection).
    """

    def __init__(self, builder: SnapshotBuilder):
        self._builder = builder
        self._entries: Dict[int, TabSnapshot] = {}
        self._decorators: List[SnapshotDecorator] = []

    def add_decorator(self, decorator: SnapshotDecorator):
        self._decorators.append(decorator)

    def build(self, tab: TabHandle) -> TabSnapshot:
        """Build a fresh snapshot from live state without caching it."""
        snapshot = self._builder(tab)
        for decorate in self._decorators:
            snapshot = decorate(snapshot) or snapshot
        return snapshot

    def get(self, tab: TabHandle) -> TabSnapshot:
        snapshot = self._entries.get(tab.id)
        if snapshot is None:
            snapshot = self.build(tab)
            self._entries[tab.id] = snapshot
        return snapshot

    def peek(self, tab_id: int) -> Optional[TabSnapshot]:
        return self._entries.get(tab_id)

    def replace(self, tab_id: int, snapshot: TabSnapshot):
        self._entries[tab_id] = snapshot

    def invalidate(self, tab_id: int) -> Optional[TabSnapshot]:
        return self._entries.pop(tab_id, None)

    def items(self) -> List[Tuple[int, TabSnapshot]]:
        return list(self._entries.items())

    def for_each(self, visitor: Callable[[int, TabSnapshot], None]):
        for tab_id, snapshot in self.items():
            visitor(tab_id, snapshot)

    def set_active(self, tab_id: int):
        """Recompute `active` on every cached entry so at most one is True."""
        for cached_id, snapshot in self.items():
            active = cached_id == tab_id
            if snapshot.active != active:
                self._entries[cached_id] = snapshot.with_changes(active=active)

    def __contains__(self, tab_id: int) -> bool:
        return tab_id in self._entries

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
