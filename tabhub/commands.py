"""
Command Surface

Request/response operations invoked by one extension host. Results go back
to the caller only; commands never broadcast. Events reach hosts solely
through the lifecycle-signal path.

Design: Command pattern - a fixed channel table dispatching to API objects.
"""

import inspect
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from .config import DEFAULT_ALLOWED_SCHEMES
from .environment import HostEnvironment
from .errors import InvalidInput, NotFound
from .registry import TabRegistry, TabSnapshotCache
from .tab import TAB_ID_NONE, WINDOW_ID_NONE, TabHandle

logger = logging.getLogger(__name__)

COMMAND_CHANNELS = (
    "browserAction.setBadgeBackgroundColor",
    "browserAction.setBadgeText",
    "browserAction.setTitle",
    "tabs.get",
    "tabs.getAllInWindow",
    "tabs.create",
    "tabs.insertCSS",
    "tabs.query",
    "tabs.reload",
    "tabs.update",
    "windows.create",
)

BLOCKED_SCHEMES = ("javascript", "vbscript")


def validate_url(url: Any, allowed_schemes: Iterable[str] = DEFAULT_ALLOWED_SCHEMES) -> str:
    """Return url if its scheme is allowed, else raise InvalidInput."""
    if not isinstance(url, str) or not url.strip():
        raise InvalidInput(f"URL must be a non-empty string, got {url!r}")
    scheme = urlsplit(url.strip()).scheme.lower()
    if not scheme:
        raise InvalidInput(f"URL has no scheme: {url!r}")
    if scheme in BLOCKED_SCHEMES or scheme not in allowed_schemes:
        raise InvalidInput(f"URL scheme not allowed: {scheme}")
    return url


def _properties(value: Optional[Dict], name: str) -> Dict:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise InvalidInput(f"{name} must be an object, got {type(value).__name__}")
    return value


def _tab_id(value: Any) -> int:
    # bool is an int subclass; True must not alias tab 1
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidInput(f"tabId must be an integer, got {value!r}")
    return value


def _flag(props: Dict, key: str) -> Optional[bool]:
    """props[key] if present, which must then be a real boolean."""
    value = props.get(key)
    if value is not None and not isinstance(value, bool):
        raise InvalidInput(f"`{key}` must be a boolean, got {value!r}")
    return value


# ═══════════════════════════════════════════════════════════════════
# tabs.*
# ═══════════════════════════════════════════════════════════════════

class TabsAPI:
    """chrome.tabs commands."""

    def __init__(self, registry: TabRegistry, cache: TabSnapshotCache,
                 environment: HostEnvironment, strict: bool = False,
                 allowed_schemes: Iterable[str] = DEFAULT_ALLOWED_SCHEMES):
        self.registry = registry
        self.cache = cache
        self.environment = environment
        self.strict = strict
        self.allowed_schemes = tuple(allowed_schemes)

    def _resolve(self, tab_id: Any) -> Optional[TabHandle]:
        tab = self.registry.lookup(_tab_id(tab_id))
        if tab is None:
            if self.strict:
                raise NotFound("tab", tab_id)
            logger.debug("Ignoring command for unknown tab[%s]", tab_id)
        return tab

    def _window_id(self, handle: Any) -> int:
        window = self.environment.parent_window_of(handle)
        return window.id if window is not None else WINDOW_ID_NONE

    def get(self, sender: Any, tab_id: Any) -> Dict:
        tab = self.registry.lookup(_tab_id(tab_id))
        if tab is None:
            return {"id": TAB_ID_NONE}
        return self.cache.get(tab).to_dict()

    def get_all_in_window(self, sender: Any, window_id: Optional[int] = None) -> List[Dict]:
        """
        Tabs in the window that contains the caller.

        A caller with no owning window (e.g. a background host) gets [].
        """
        sender_window = self.environment.parent_window_of(sender)
        if sender_window is None:
            return []

        in_window = [tab for tab in self.registry.all()
                     if self._window_id(tab) == sender_window.id]
        return [self.cache.get(tab).with_changes(index=index).to_dict()
                for index, tab in enumerate(in_window)]

    def create(self, sender: Any, details: Optional[Dict] = None) -> Optional[Dict]:
        """
        Open a new top-level window loading details["url"].

        Returns the new tab's snapshot if it is already observed, its ids if
        the environment reported it, else None.
        """
        details = _properties(details, "createProperties")
        url = validate_url(details.get("url", "about:blank"), self.allowed_schemes)
        window, tab = self.environment.open_window(url)
        if tab is None:
            return None
        if tab.id in self.registry:
            return self.cache.get(tab).to_dict()
        return {"id": tab.id, "windowId": window.id}

    def insert_css(self, sender: Any, tab_id: Any, details: Optional[Dict] = None):
        details = _properties(details, "details")
        code = details.get("code")
        if not isinstance(code, str):
            raise InvalidInput("insertCSS requires a `code` string")
        tab = self._resolve(tab_id)
        if tab is None:
            return None
        tab.insert_css(code)
        return None

    def query(self, sender: Any, details: Optional[Dict] = None) -> List[Dict]:
        """Filter by `active` when given; other query keys match everything."""
        details = _properties(details, "queryInfo")
        active = _flag(details, "active")

        snapshots = [self.cache.get(tab) for tab in self.registry.all()]
        if active is not None:
            snapshots = [s for s in snapshots if s.active == active]
        return [s.with_changes(index=index).to_dict() for index, s in enumerate(snapshots)]

    def reload(self, sender: Any, tab_id: Any, reload_properties: Optional[Dict] = None):
        reload_properties = _properties(reload_properties, "reloadProperties")
        bypass_cache = _flag(reload_properties, "bypassCache")
        tab = self._resolve(tab_id)
        if tab is None:
            return None
        tab.reload(ignore_cache=bool(bypass_cache))
        return None

    def update(self, sender: Any, tab_id: Any, update_properties: Optional[Dict] = None):
        props = _properties(update_properties, "updateProperties")
        url = props.get("url")
        if url is not None:
            validate_url(url, self.allowed_schemes)
        muted = _flag(props, "muted")

        tab = self._resolve(tab_id)
        if tab is None:
            return None
        if url is not None:
            tab.load_url(url)
        if muted is not None:
            tab.set_audio_muted(muted)
        return None


# ═══════════════════════════════════════════════════════════════════
# windows.*
# ═══════════════════════════════════════════════════════════════════

class WindowsAPI:
    """chrome.windows commands."""

    def __init__(self, environment: HostEnvironment,
                 allowed_schemes: Iterable[str] = DEFAULT_ALLOWED_SCHEMES):
        self.environment = environment
        self.allowed_schemes = tuple(allowed_schemes)

    def create(self, sender: Any, details: Optional[Dict] = None) -> Dict:
        details = _properties(details, "createData")
        url = validate_url(details.get("url", "about:blank"), self.allowed_schemes)
        window, _ = self.environment.open_window(url)
        return {"id": window.id}


# ═══════════════════════════════════════════════════════════════════
# browserAction.*
# ═══════════════════════════════════════════════════════════════════

class BrowserActionAPI:
    """Accepted and acknowledged; nothing is drawn."""

    def set_badge_background_color(self, sender: Any, *args: Any) -> bool:
        return True

    def set_badge_text(self, sender: Any, *args: Any) -> bool:
        return True

    def set_title(self, sender: Any, *args: Any) -> bool:
        return True


# ═══════════════════════════════════════════════════════════════════
# Surface
# ═══════════════════════════════════════════════════════════════════

class CommandSurface:
    """
    All command channels behind one dispatch table.

    Usage:
        surface = CommandSurface(registry, cache, environment)
        surface.invoke("tabs.get", host, 3)
    """

    def __init__(self, registry: TabRegistry, cache: TabSnapshotCache,
                 environment: HostEnvironment, strict: bool = False,
                 allowed_schemes: Iterable[str] = DEFAULT_ALLOWED_SCHEMES):
        self.tabs = TabsAPI(registry, cache, environment, strict, allowed_schemes)
        self.windows = WindowsAPI(environment, allowed_schemes)
        self.browser_action = BrowserActionAPI()
        self._handlers: Dict[str, Callable[..., Any]] = {
            "browserAction.setBadgeBackgroundColor": self.browser_action.set_badge_background_color,
            "browserAction.setBadgeText": self.browser_action.set_badge_text,
            "browserAction.setTitle": self.browser_action.set_title,
            "tabs.get": self.tabs.get,
            "tabs.getAllInWindow": self.tabs.get_all_in_window,
            "tabs.create": self.tabs.create,
            "tabs.insertCSS": self.tabs.insert_css,
            "tabs.query": self.tabs.query,
            "tabs.reload": self.tabs.reload,
            "tabs.update": self.tabs.update,
            "windows.create": self.windows.create,
        }

    def handlers(self) -> Dict[str, Callable[..., Any]]:
        return dict(self._handlers)

    def invoke(self, channel: str, sender: Any, *args: Any) -> Any:
        handler = self._handlers.get(channel)
        if handler is None:
            raise InvalidInput(f"Unknown command channel: {channel}")
        try:
            inspect.signature(handler).bind(sender, *args)
        except TypeError as e:
            raise InvalidInput(f"{channel}: {e}") from e
        return handler(sender, *args)
