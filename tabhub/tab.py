"""
Tab Data Model

Host-independent view of a browsing surface and the immutable snapshot
records broadcast to extension hosts.

Design: Value Object pattern - snapshots are replaced, never mutated.
"""

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional, Protocol, Tuple


TAB_ID_NONE = -1
WINDOW_ID_NONE = -1
WINDOW_ID_CURRENT = -2

Unsubscribe = Callable[[], None]
SignalCallback = Callable[[Dict], None]


class TabStatus(str, Enum):
    """Loading state of a tab. Only ever moves loading -> complete."""
    LOADING = "loading"
    COMPLETE = "complete"


# ═══════════════════════════════════════════════════════════════════
# Host handles
# ═══════════════════════════════════════════════════════════════════

class TabHandle(Protocol):
    """
    Non-owning reference to a live browsing surface.

    Signal callbacks receive a single params dict, the same shape CDP
    event callbacks use.
    """

    id: int
    title: str
    url: str
    favicon: Optional[str]
    audio_muted: bool
    process_id: int

    def is_loading(self) -> bool: ...

    def is_audible(self) -> bool: ...

    def load_url(self, url: str) -> None: ...

    def reload(self, ignore_cache: bool = False) -> None: ...

    def set_audio_muted(self, muted: bool) -> None: ...

    def insert_css(self, code: str) -> None: ...

    def on(self, signal: str, callback: SignalCallback) -> Unsubscribe: ...

    def once(self, signal: str, callback: SignalCallback) -> Unsubscribe: ...


class WindowHandle(Protocol):
    """Top-level window owning one or more tabs."""

    id: int

    def size(self) -> Tuple[int, int]: ...

    def is_destroyed(self) -> bool: ...


# ═══════════════════════════════════════════════════════════════════
# Snapshot
# ═══════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class MutedInfo:
    muted: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return {"muted": self.muted}


# attribute name -> wire name
_WIRE_NAMES = {
    "active": "active",
    "audible": "audible",
    "auto_discardable": "autoDiscardable",
    "discarded": "discarded",
    "fav_icon_url": "favIconUrl",
    "height": "height",
    "highlighted": "highlighted",
    "id": "id",
    "incognito": "incognito",
    "muted_info": "mutedInfo",
    "pinned": "pinned",
    "selected": "selected",
    "status": "status",
    "title": "title",
    "url": "url",
    "width": "width",
    "window_id": "windowId",
    "index": "index",
}
_ATTR_NAMES = {wire: attr for attr, wire in _WIRE_NAMES.items()}

# Fields whose changes are reported through tabs.onUpdated
UPDATE_FIELDS: Tuple[str, ...] = (
    "status",
    "url",
    "pinned",
    "audible",
    "discarded",
    "autoDiscardable",
    "mutedInfo",
    "favIconUrl",
    "title",
)


@dataclass(frozen=True)
class TabSnapshot:
    """
    Observable state of a tab at a point in time.

    Wire names (camelCase) are produced by to_dict(); `fav_icon_url` and
    `index` are omitted when unset.
    """
    id: int
    window_id: int = WINDOW_ID_NONE
    status: TabStatus = TabStatus.COMPLETE
    title: str = ""
    url: str = ""
    fav_icon_url: Optional[str] = None
    active: bool = False
    audible: bool = False
    muted_info: MutedInfo = MutedInfo()
    auto_discardable: bool = True
    discarded: bool = False
    highlighted: bool = False
    incognito: bool = False
    pinned: bool = False
    selected: bool = True
    width: int = 0
    height: int = 0
    index: Optional[int] = None

    def with_changes(self, **changes: Any) -> "TabSnapshot":
        """Return a copy with the given attributes replaced."""
        return replace(self, **changes)

    def wire_value(self, wire_name: str) -> Any:
        value = getattr(self, _ATTR_NAMES[wire_name])
        if isinstance(value, MutedInfo):
            return value.to_dict()
        if isinstance(value, TabStatus):
            return value.value
        return value

    def diff(self, other: "TabSnapshot", wire_names: Iterable[str] = UPDATE_FIELDS) -> Dict[str, Any]:
        """Change-map of wire name -> value in `other` for fields that differ."""
        changes = {}
        for name in wire_names:
            new = other.wire_value(name)
            if self.wire_value(name) != new:
                changes[name] = new
        return changes

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for f in fields(self):
            wire = _WIRE_NAMES[f.name]
            value = self.wire_value(wire)
            if value is None and f.name in ("fav_icon_url", "index"):
                continue
            out[wire] = value
        return out


def build_snapshot(tab: TabHandle, window: Optional[WindowHandle]) -> TabSnapshot:
    """Construct a snapshot from the tab's current live state."""
    width, height = window.size() if window is not None else (0, 0)
    return TabSnapshot(
        id=tab.id,
        window_id=window.id if window is not None else WINDOW_ID_NONE,
        status=TabStatus.LOADING if tab.is_loading() else TabStatus.COMPLETE,
        title=tab.title or "",
        url=tab.url or "",
        fav_icon_url=tab.favicon or None,
        audible=bool(tab.is_audible()),
        muted_info=MutedInfo(bool(tab.audio_muted)),
        width=width,
        height=height,
    )
