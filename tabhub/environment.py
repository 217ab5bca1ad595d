"""
Host Environment

What the core needs from whatever owns windows and tabs: window resolution
and window creation. Implemented by the CDP adapter for a real browser and
by StaticEnvironment for embedding and tests.
"""

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from .tab import TabHandle, WindowHandle


class HostEnvironment(Protocol):

    def parent_window_of(self, handle: Any) -> Optional[WindowHandle]: ...

    def window_by_id(self, window_id: int) -> Optional[WindowHandle]: ...

    def open_window(self, url: str) -> Tuple[WindowHandle, Optional[TabHandle]]: ...


@dataclass(eq=False)
class StaticWindow:
    """Plain window record."""
    id: int
    width: int = 1280
    height: int = 720
    destroyed: bool = False
    url: str = ""

    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def is_destroyed(self) -> bool:
        return self.destroyed


@dataclass
class StaticEnvironment:
    """
    In-memory window bookkeeping.

    Handles (tabs or extension hosts) are attached to windows explicitly,
    or carry a `window_id` attribute naming one.
    `window_factory(url)` may be supplied to create real tabs alongside new
    windows; the default only records the window.
    """
    window_factory: Optional[Callable[[str], Tuple[WindowHandle, Optional[TabHandle]]]] = None
    _windows: Dict[int, WindowHandle] = field(default_factory=dict)
    _members: List[Tuple[Any, int]] = field(default_factory=list)
    _ids: Any = field(default_factory=lambda: itertools.count(1))

    def add_window(self, window: Optional[WindowHandle] = None, **kw) -> WindowHandle:
        if window is None:
            window = StaticWindow(id=next(self._ids), **kw)
        self._windows[window.id] = window
        return window

    def attach(self, handle: Any, window: WindowHandle):
        self.detach(handle)
        self._windows.setdefault(window.id, window)
        self._members.append((handle, window.id))

    def detach(self, handle: Any):
        self._members = [(h, w) for h, w in self._members if h is not handle]

    def close_window(self, window_id: int):
        window = self._windows.get(window_id)
        if isinstance(window, StaticWindow):
            window.destroyed = True

    def parent_window_of(self, handle: Any) -> Optional[WindowHandle]:
        for member, window_id in self._members:
            if member is handle:
                return self._windows.get(window_id)
        # Hosts name their window instead of being attached
        window_id = getattr(handle, "window_id", None)
        return self._windows.get(window_id) if window_id is not None else None

    def window_by_id(self, window_id: int) -> Optional[WindowHandle]:
        return self._windows.get(window_id)

    def open_window(self, url: str) -> Tuple[WindowHandle, Optional[TabHandle]]:
        if self.window_factory is not None:
            window, tab = self.window_factory(url)
            self.add_window(window)
            if tab is not None:
                self.attach(tab, window)
            return window, tab
        return self.add_window(url=url), None
