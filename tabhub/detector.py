"""
Change Detection

Rebuilds a tab's snapshot on each lifecycle signal, diffs the whitelisted
fields against the cached one, and broadcasts tabs.onUpdated only when
something observable actually changed.
"""

import logging
from typing import Any, Dict, Optional

from .broadcast import EventBroadcaster
from .registry import TabRegistry, TabSnapshotCache
from .tab import UPDATE_FIELDS

logger = logging.getLogger(__name__)

# Lifecycle signals that may change an observable field
UPDATE_SIGNALS = (
    "page-title-updated",     # title
    "did-start-loading",      # status
    "did-stop-loading",       # status
    "media-started-playing",  # audible
    "media-paused",           # audible
    "did-start-navigation",   # url
    "did-redirect-navigation",  # url
    "did-navigate-in-page",   # url
    "audio-state-changed",    # mutedInfo
)
FAVICON_SIGNAL = "page-favicon-updated"


class ChangeDetector:
    """Diffs fresh snapshots against the cache for a fixed field whitelist."""

    def __init__(self, registry: TabRegistry, cache: TabSnapshotCache,
                 broadcaster: EventBroadcaster, fields=UPDATE_FIELDS):
        self.registry = registry
        self.cache = cache
        self.broadcaster = broadcaster
        self.fields = tuple(fields)

    def on_updated(self, tab_id: int) -> Optional[Dict[str, Any]]:
        """
        Handle one lifecycle signal for a tab.

        Returns:
            The broadcast change-map, or None if nothing was sent
        """
        tab = self.registry.lookup(tab_id)
        if tab is None:
            return None

        previous = self.cache.peek(tab_id)
        if previous is None:
            # Nothing to diff against; onCreated covers first observation
            return None

        # `active` belongs to activation, not live state
        fresh = self.cache.build(tab).with_changes(active=previous.active)
        changes = previous.diff(fresh, self.fields)
        if not changes:
            return None

        self.cache.replace(tab_id, fresh)
        logger.debug("tab[%s] changed: %s", tab_id, ", ".join(changes))
        self.broadcaster.broadcast("tabs.onUpdated", tab_id, changes, fresh.to_dict())
        return changes
