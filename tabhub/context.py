"""
Extension Context

Unified context object owning every piece of shared tab state: the tab
registry, snapshot cache, host set and per-tab subscriptions. Created at
startup by the application root and closed at shutdown.

Design: Facade pattern over the registry, detector, broadcaster and commands.
"""

import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, Optional

from .broadcast import EventBroadcaster, ExtensionHost
from .commands import CommandSurface
from .config import Config
from .detector import FAVICON_SIGNAL, UPDATE_SIGNALS, ChangeDetector
from .environment import HostEnvironment, StaticEnvironment
from .navigation import NavigationObserver, now_ms
from .registry import TabRegistry, TabSnapshotCache
from .subscriptions import SubscriptionTable
from .tab import TAB_ID_NONE, WINDOW_ID_NONE, TabHandle, TabSnapshot, build_snapshot

logger = logging.getLogger(__name__)


@dataclass
class ExtensionContext:
    """
    Shared tab state plus the handlers the host environment calls into.

    The environment must call observe_tab() for each new surface,
    observe_extension_host() for each subscriber, and on_activated() when
    the UI selection changes. All calls are expected on one control thread.
    """
    environment: HostEnvironment = field(default_factory=StaticEnvironment)
    config: Config = field(default_factory=Config)
    clock: Callable[[], float] = now_ms
    registry: TabRegistry = field(init=False)
    cache: TabSnapshotCache = field(init=False)
    broadcaster: EventBroadcaster = field(init=False)
    subscriptions: SubscriptionTable = field(init=False)
    detector: ChangeDetector = field(init=False)
    active_tab_id: int = field(default=TAB_ID_NONE, init=False)
    closed: bool = field(default=False, init=False)
    _commands: Optional[CommandSurface] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.registry = TabRegistry()
        self.cache = TabSnapshotCache(self._build_snapshot)
        self.cache.add_decorator(self._stamp_active)
        self.broadcaster = EventBroadcaster()
        self.subscriptions = SubscriptionTable()
        self.detector = ChangeDetector(self.registry, self.cache, self.broadcaster)

    @property
    def commands(self) -> CommandSurface:
        """Lazy-init CommandSurface."""
        if self._commands is None:
            self._commands = CommandSurface(
                self.registry,
                self.cache,
                self.environment,
                strict=self.config.strict_commands,
                allowed_schemes=self.config.allowed_schemes,
            )
        return self._commands

    def invoke(self, channel: str, sender: Any, *args: Any) -> Any:
        return self.commands.invoke(channel, sender, *args)

    # ─── Snapshots ──────────────────────────────────────────────────

    def parent_window_of(self, handle: Any):
        return self.environment.parent_window_of(handle)

    def _build_snapshot(self, tab: TabHandle) -> TabSnapshot:
        return build_snapshot(tab, self.parent_window_of(tab))

    def _stamp_active(self, snapshot: TabSnapshot) -> TabSnapshot:
        return snapshot.with_changes(active=snapshot.id == self.active_tab_id)

    # ─── Observation ────────────────────────────────────────────────

    def observe_tab(self, tab: TabHandle) -> bool:
        """Register a tab and wire its lifecycle signals. Idempotent."""
        if self.closed or not self.registry.observe(tab):
            return False

        tab_id = tab.id
        subs = self.subscriptions

        navigation = NavigationObserver(tab, self.broadcaster, self.clock)
        for unsubscribe in navigation.subscriptions:
            subs.add(tab_id, unsubscribe)

        for signal in UPDATE_SIGNALS:
            subs.add(tab_id, tab.on(signal, partial(self._on_signal, tab_id)))
        subs.add(tab_id, tab.on(FAVICON_SIGNAL, partial(self._on_favicon, tab)))
        subs.add(tab_id, tab.once("destroyed", partial(self._on_signal_removed, tab_id)))

        self.on_created(tab)
        logger.info("Observing tab[%s] %s", tab_id, tab.url)
        return True

    def observe_extension_host(self, host: ExtensionHost) -> bool:
        """Register a subscriber; it is dropped on its `destroyed` signal."""
        if self.closed or not self.broadcaster.add(host):
            return False
        once = getattr(host, "once", None)
        if once is not None:
            once("destroyed", partial(self.forget_extension_host, host))
        logger.info("Observing extension host[%s][%s]", host.id, getattr(host, "kind", "host"))
        return True

    def forget_extension_host(self, host: ExtensionHost, *_):
        if self.broadcaster.discard(host):
            logger.info("Extension host[%s] gone", host.id)

    def _on_signal(self, tab_id: int, params: Optional[Dict] = None):
        self.on_updated(tab_id)

    def _on_signal_removed(self, tab_id: int, params: Optional[Dict] = None):
        self.on_removed(tab_id)

    def _on_favicon(self, tab: TabHandle, params: Optional[Dict] = None):
        favicons = (params or {}).get("favicons") or []
        tab.favicon = favicons[0] if favicons else None
        self.on_updated(tab.id)

    # ─── Events ─────────────────────────────────────────────────────

    def on_created(self, tab: TabHandle):
        self.broadcaster.broadcast("tabs.onCreated", self.cache.get(tab).to_dict())

    def on_updated(self, tab_id: int) -> Optional[Dict[str, Any]]:
        return self.detector.on_updated(tab_id)

    def on_removed(self, tab_id: int) -> bool:
        """Drop every trace of the tab and broadcast tabs.onRemoved once."""
        tab = self.registry.forget(tab_id)
        snapshot = self.cache.invalidate(tab_id)
        self.subscriptions.release(tab_id)
        if tab is None and snapshot is None:
            return False
        if self.active_tab_id == tab_id:
            self.active_tab_id = TAB_ID_NONE

        window_id = snapshot.window_id if snapshot is not None else WINDOW_ID_NONE
        window = self.environment.window_by_id(window_id) if window_id > WINDOW_ID_NONE else None
        self.broadcaster.broadcast("tabs.onRemoved", tab_id, {
            "windowId": window_id,
            "isWindowClosing": window.is_destroyed() if window is not None else False,
        })
        return True

    def on_activated(self, tab_id: int) -> bool:
        tab = self.registry.lookup(tab_id)
        if tab is None:
            return False
        window = self.parent_window_of(tab)

        self.active_tab_id = tab_id
        self.cache.get(tab)
        self.cache.set_active(tab_id)

        self.broadcaster.broadcast("tabs.onActivated", {
            "tabId": tab_id,
            "windowId": window.id if window is not None else WINDOW_ID_NONE,
        })
        return True

    # ─── Lifecycle ──────────────────────────────────────────────────

    def close(self):
        """Release all subscriptions and hosts."""
        if self.closed:
            return
        self.closed = True
        released = self.subscriptions.release_all()
        self.broadcaster.clear()
        logger.info("Context closed (%d subscriptions released)", released)


def create_context(environment: Optional[HostEnvironment] = None,
                   config: Optional[Config] = None, **kw) -> ExtensionContext:
    return ExtensionContext(
        environment=environment if environment is not None else StaticEnvironment(),
        config=config or Config(),
        **kw,
    )
