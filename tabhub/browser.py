"""
Chrome DevTools Protocol host environment.

Binds the tab core to a running Chromium: page targets become tabs, CDP
page events become lifecycle signals, and window queries go through the
Browser domain.

Usage:
    from tabhub import CDP, CDPEnvironment, ExtensionContext, ControlLoop

    loop = ControlLoop(); loop.start()
    cdp = CDP("localhost:9222", dispatch=loop.submit).connect()
    env = CDPEnvironment(cdp)
    context = ExtensionContext(environment=env)
    loop.call(env.bind, context)
"""

import itertools
import json
import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
import websocket

from .tab import WINDOW_ID_NONE, SignalCallback, Unsubscribe

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════
# CDP Transport
# ═══════════════════════════════════════════════════════════════════

class CDP:
    """
    Browser-level Chrome DevTools Protocol connection.

    A reader thread resolves command responses and hands event callbacks to
    `dispatch` (e.g. ControlLoop.submit), so callbacks run wherever the
    caller wants them serialized.
    """

    def __init__(self, address: str = "localhost:9222",
                 dispatch: Optional[Callable[..., Any]] = None):
        self.address = address
        self._dispatch = dispatch or (lambda fn, *args: fn(*args))
        self._ws: Optional[websocket.WebSocket] = None
        self._ids = itertools.count(1)
        self._pending: Dict[int, Future] = {}
        self._callbacks: Dict[Tuple[str, Optional[str]], List[Callable]] = {}
        self._lock = threading.Lock()
        self._reader: Optional[threading.Thread] = None

    def connect(self) -> "CDP":
        """Connect to the browser endpoint advertised by /json/version."""
        if self._ws:
            return self

        version = requests.get(f"http://{self.address}/json/version", timeout=10).json()
        ws_url = version.get("webSocketDebuggerUrl")
        if not ws_url:
            raise ConnectionError(f"No browser endpoint at {self.address}")

        self._ws = websocket.create_connection(ws_url, timeout=60)
        self._ws.settimeout(None)
        self._reader = threading.Thread(target=self._read_loop, name="tabhub-cdp", daemon=True)
        self._reader.start()
        logger.info("CDP connected: %s", version.get("Browser", ws_url))
        return self

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def send_async(self, method: str, params: Optional[Dict] = None,
                   session_id: Optional[str] = None) -> Future:
        """Send a command; the future resolves with its result."""
        if not self._ws:
            self.connect()

        msg_id = next(self._ids)
        msg: Dict[str, Any] = {"id": msg_id, "method": method}
        if params:
            msg["params"] = params
        if session_id:
            msg["sessionId"] = session_id

        future: Future = Future()
        with self._lock:
            self._pending[msg_id] = future
        self._ws.send(json.dumps(msg))
        return future

    def send(self, method: str, params: Optional[Dict] = None,
             session_id: Optional[str] = None, timeout: float = 30) -> Dict:
        """Send CDP command and return result."""
        future = self.send_async(method, params, session_id)
        try:
            return future.result(timeout=timeout)
        except FutureTimeout:
            raise TimeoutError(f"CDP: {method} timed out after {timeout}s") from None

    def fire(self, method: str, params: Optional[Dict] = None,
             session_id: Optional[str] = None):
        """Send without waiting; failures are logged."""
        def done(future: Future):
            if future.exception() is not None:
                logger.warning("%s failed: %s", method, future.exception())
        self.send_async(method, params, session_id).add_done_callback(done)

    def on(self, event: str, callback: Callable[[Dict], None],
           session_id: Optional[str] = None) -> Unsubscribe:
        """Subscribe to CDP event, optionally scoped to one session."""
        key = (event, session_id)
        with self._lock:
            self._callbacks.setdefault(key, []).append(callback)

        def unsubscribe():
            with self._lock:
                callbacks = self._callbacks.get(key, [])
                if callback in callbacks:
                    callbacks.remove(callback)
        return unsubscribe

    def handle_message(self, message: Dict):
        """Route one decoded message from the socket."""
        if "id" in message:
            with self._lock:
                future = self._pending.pop(message["id"], None)
            if future is None:
                return
            if "error" in message:
                future.set_exception(RuntimeError(f"CDP: {message['error']}"))
            else:
                future.set_result(message.get("result", {}))
            return

        event = message.get("method")
        if not event:
            return
        with self._lock:
            callbacks = list(self._callbacks.get((event, message.get("sessionId")), ()))
        params = message.get("params", {})
        for cb in callbacks:
            self._dispatch(cb, params)

    def _read_loop(self):
        ws = self._ws
        while ws is not None and ws is self._ws:
            try:
                raw = ws.recv()
            except (websocket.WebSocketException, OSError) as e:
                if self._ws is not None:
                    logger.warning("CDP connection lost: %s", e)
                break
            if not raw:
                continue
            try:
                self.handle_message(json.loads(raw))
            except ValueError:
                logger.warning("CDP: undecodable message dropped")
        self._fail_pending(ConnectionError("CDP connection closed"))

    def _fail_pending(self, error: Exception):
        with self._lock:
            pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(error)

    def close(self):
        """Close connection."""
        ws, self._ws = self._ws, None
        if ws:
            try:
                ws.close()
            except (websocket.WebSocketException, OSError):
                pass
        self._fail_pending(ConnectionError("CDP connection closed"))


# ═══════════════════════════════════════════════════════════════════
# Windows & tabs
# ═══════════════════════════════════════════════════════════════════

@dataclass(eq=False)
class CDPWindow:
    """Browser window as reported by Browser.getWindowForTarget."""
    id: int
    width: int = 0
    height: int = 0
    destroyed: bool = False

    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def is_destroyed(self) -> bool:
        return self.destroyed


class CDPTab:
    """
    TabHandle over an attached page target (flattened session).

    CDP page events are re-emitted as lifecycle signals:
        Page.frameStartedLoading      -> did-start-loading
        Page.frameStoppedLoading      -> did-stop-loading
        Page.frameRequestedNavigation -> will-navigate
        Page.frameNavigated           -> did-start-navigation
        Page.navigatedWithinDocument  -> did-navigate-in-page
        title change in target info   -> page-title-updated
        target destroyed              -> destroyed
        set_audio_muted() change      -> audio-state-changed
    """

    def __init__(self, tab_id: int, target_info: Dict, session_id: str, cdp: CDP,
                 window_id: int = WINDOW_ID_NONE):
        self.id = tab_id
        self.target_id = target_info["targetId"]
        self.session_id = session_id
        self.cdp = cdp
        self.window_id = window_id
        self.title = target_info.get("title", "")
        self.url = target_info.get("url", "")
        self.favicon: Optional[str] = None
        self.audio_muted = False
        # CDP does not expose renderer pids per target
        self.process_id = 0
        self._loading = False
        self._audible = False
        self._destroyed = False
        self._signals: Dict[str, List[SignalCallback]] = {}
        self._frame_ids: Dict[str, int] = {self.target_id: 0}
        self._cdp_subscriptions: List[Unsubscribe] = []

    # ─── Signals ────────────────────────────────────────────────────

    def on(self, signal: str, callback: SignalCallback) -> Unsubscribe:
        self._signals.setdefault(signal, []).append(callback)

        def unsubscribe():
            callbacks = self._signals.get(signal, [])
            if callback in callbacks:
                callbacks.remove(callback)
        return unsubscribe

    def once(self, signal: str, callback: SignalCallback) -> Unsubscribe:
        unsubscribe: Unsubscribe

        def wrapper(params: Dict):
            unsubscribe()
            callback(params)
        unsubscribe = self.on(signal, wrapper)
        return unsubscribe

    def emit(self, signal: str, params: Optional[Dict] = None):
        for cb in list(self._signals.get(signal, ())):
            cb(params or {})

    # ─── Live state ─────────────────────────────────────────────────

    def is_loading(self) -> bool:
        return self._loading

    def is_audible(self) -> bool:
        return self._audible

    def attach(self):
        """Subscribe to this target's page events and enable the Page domain."""
        sid = self.session_id
        events = {
            "Page.frameStartedLoading": self._on_started_loading,
            "Page.frameStoppedLoading": self._on_stopped_loading,
            "Page.frameRequestedNavigation": self._on_requested_navigation,
            "Page.frameNavigated": self._on_navigated,
            "Page.navigatedWithinDocument": self._on_navigated_within_document,
        }
        for event, handler in events.items():
            self._cdp_subscriptions.append(self.cdp.on(event, handler, sid))
        self.cdp.fire("Page.enable", session_id=sid)

    def update_info(self, target_info: Dict):
        """Apply Target.targetInfoChanged."""
        title = target_info.get("title", self.title)
        self.url = target_info.get("url", self.url)
        if title != self.title:
            self.title = title
            self.emit("page-title-updated", {"title": title})

    def destroy(self):
        if self._destroyed:
            return
        self._destroyed = True
        for unsubscribe in self._cdp_subscriptions:
            unsubscribe()
        self._cdp_subscriptions = []
        self.emit("destroyed")

    def set_audible(self, audible: bool):
        if audible != self._audible:
            self._audible = audible
            self.emit("media-started-playing" if audible else "media-paused")

    def _frame_routing_id(self, frame_id: str) -> int:
        if frame_id not in self._frame_ids:
            self._frame_ids[frame_id] = len(self._frame_ids)
        return self._frame_ids[frame_id]

    def _on_started_loading(self, params: Dict):
        if params.get("frameId") == self.target_id:
            self._loading = True
            self.emit("did-start-loading")

    def _on_stopped_loading(self, params: Dict):
        if params.get("frameId") == self.target_id:
            self._loading = False
            self.emit("did-stop-loading")

    def _on_requested_navigation(self, params: Dict):
        self.emit("will-navigate", {"url": params.get("url", "")})

    def _on_navigated(self, params: Dict):
        frame = params.get("frame", {})
        is_main_frame = frame.get("parentId") is None
        url = frame.get("url", "") + frame.get("urlFragment", "")
        if is_main_frame:
            self.url = url
        self.emit("did-start-navigation", {
            "url": url,
            "is_in_place": False,
            "is_main_frame": is_main_frame,
            "frame_routing_id": self._frame_routing_id(frame.get("id", "")),
        })

    def _on_navigated_within_document(self, params: Dict):
        if params.get("frameId") == self.target_id:
            self.url = params.get("url", self.url)
            self.emit("did-navigate-in-page", {"url": self.url})

    # ─── Mutations ──────────────────────────────────────────────────

    def _eval(self, script: str):
        self.cdp.fire("Runtime.evaluate", {"expression": script}, self.session_id)

    def load_url(self, url: str):
        self.cdp.fire("Page.navigate", {"url": url}, self.session_id)

    def reload(self, ignore_cache: bool = False):
        self.cdp.fire("Page.reload", {"ignoreCache": ignore_cache}, self.session_id)

    def set_audio_muted(self, muted: bool):
        # No per-target mute in CDP; mute the page's media elements instead
        changed = muted != self.audio_muted
        self.audio_muted = muted
        self._eval(
            "document.querySelectorAll('audio,video')"
            f".forEach(m => {{ m.muted = {json.dumps(muted)}; }})"
        )
        if changed:
            self.emit("audio-state-changed", {"muted": muted})

    def insert_css(self, code: str):
        self._eval(f"""
            (() => {{
                const style = document.createElement('style');
                style.textContent = {json.dumps(code)};
                (document.head || document.documentElement).appendChild(style);
            }})()
        """)

    def __repr__(self) -> str:
        return f"CDPTab(id={self.id}, target={self.target_id}, url={self.url!r})"


# ═══════════════════════════════════════════════════════════════════
# Environment
# ═══════════════════════════════════════════════════════════════════

class CDPEnvironment:
    """
    HostEnvironment backed by a live browser.

    Page targets are attached as they are discovered and handed to
    context.observe_tab(). Extension hosts carry an optional `window_id`
    attribute naming the window they live in.

    Its CDP round trips run on the control loop and block it, so each one
    is capped at `timeout` seconds.
    """

    DEFAULT_TIMEOUT = 5.0

    def __init__(self, cdp: CDP, timeout: float = DEFAULT_TIMEOUT):
        self.cdp = cdp
        self.timeout = timeout
        self.context = None
        self._tab_ids = itertools.count(1)
        self._tabs: Dict[str, CDPTab] = {}
        self._windows: Dict[int, CDPWindow] = {}

    def bind(self, context):
        """Start target discovery. Call on the control loop."""
        self.context = context
        self.cdp.on("Target.targetCreated", self._on_target_created)
        self.cdp.on("Target.targetInfoChanged", self._on_target_info_changed)
        self.cdp.on("Target.targetDestroyed", self._on_target_destroyed)
        self.cdp.send("Target.setDiscoverTargets", {"discover": True}, timeout=self.timeout)

    def tab_for_target(self, target_id: str) -> Optional[CDPTab]:
        return self._tabs.get(target_id)

    def _window_for_target(self, target_id: str) -> CDPWindow:
        result = self.cdp.send("Browser.getWindowForTarget", {"targetId": target_id},
                               timeout=self.timeout)
        window_id = result["windowId"]
        bounds = result.get("bounds", {})
        window = self._windows.get(window_id)
        if window is None:
            window = self._windows[window_id] = CDPWindow(window_id)
        window.width = bounds.get("width", window.width)
        window.height = bounds.get("height", window.height)
        window.destroyed = False
        return window

    def _attach(self, target_info: Dict) -> Optional[CDPTab]:
        target_id = target_info["targetId"]
        if target_id in self._tabs:
            return self._tabs[target_id]
        if target_info.get("type") != "page":
            return None

        session_id = self.cdp.send("Target.attachToTarget", {
            "targetId": target_id,
            "flatten": True,
        }, timeout=self.timeout)["sessionId"]
        window = self._window_for_target(target_id)
        tab = CDPTab(next(self._tab_ids), target_info, session_id, self.cdp, window.id)
        self._tabs[target_id] = tab
        tab.attach()
        if self.context is not None:
            self.context.observe_tab(tab)
        return tab

    def _on_target_created(self, params: Dict):
        info = params.get("targetInfo", {})
        url = info.get("url", "")
        if url.startswith("devtools://"):
            return
        try:
            self._attach(info)
        except (RuntimeError, TimeoutError, ConnectionError) as e:
            logger.warning("Could not attach target %s: %s", info.get("targetId"), e)

    def _on_target_info_changed(self, params: Dict):
        info = params.get("targetInfo", {})
        tab = self._tabs.get(info.get("targetId"))
        if tab is not None:
            tab.update_info(info)

    def _on_target_destroyed(self, params: Dict):
        tab = self._tabs.pop(params.get("targetId"), None)
        if tab is None:
            return
        window = self._windows.get(tab.window_id)
        if window is not None and not any(t.window_id == window.id for t in self._tabs.values()):
            window.destroyed = True
        tab.destroy()

    # ─── HostEnvironment ────────────────────────────────────────────

    def parent_window_of(self, handle: Any) -> Optional[CDPWindow]:
        window_id = getattr(handle, "window_id", None)
        if window_id is None:
            return None
        return self._windows.get(window_id)

    def window_by_id(self, window_id: int) -> Optional[CDPWindow]:
        return self._windows.get(window_id)

    def open_window(self, url: str) -> Tuple[CDPWindow, Optional[CDPTab]]:
        target_id = self.cdp.send("Target.createTarget", {"url": url, "newWindow": True},
                                  timeout=self.timeout)["targetId"]
        tab = self._attach({"targetId": target_id, "type": "page", "url": url, "title": ""})
        if tab is not None:
            return self._windows[tab.window_id], tab
        return self._window_for_target(target_id), None
