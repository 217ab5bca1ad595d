"""
Navigation Observer

Translates a tab's navigation signals into webNavigation events.

Frame ids are normalized: the main frame is always 0. Sub-frame parent
linkage is not tracked, so parentFrameId is always -1.
"""

import time
from typing import Callable, Dict, List

from .broadcast import EventBroadcaster
from .tab import TabHandle, Unsubscribe

MAIN_FRAME_ID = 0
PARENT_FRAME_ID_NONE = -1


def now_ms() -> float:
    return time.time() * 1000


class NavigationObserver:
    """
    One instance per observed tab.

    - will-navigate (once): webNavigation.onCreatedNavigationTarget
    - did-start-navigation (every time): webNavigation.onCommitted
    """

    def __init__(self, tab: TabHandle, broadcaster: EventBroadcaster,
                 clock: Callable[[], float] = now_ms):
        self.tab = tab
        self.broadcaster = broadcaster
        self.clock = clock
        self._target_sent = False
        self.subscriptions: List[Unsubscribe] = [
            tab.on("did-start-navigation", self.on_committed),
            tab.once("will-navigate", self.on_created_navigation_target),
        ]

    def on_created_navigation_target(self, params: Dict):
        if self._target_sent:
            return
        self._target_sent = True
        self.broadcaster.broadcast("webNavigation.onCreatedNavigationTarget", {
            "sourceTabId": self.tab.id,
            "sourceProcessId": self.tab.process_id,
            "sourceFrameId": MAIN_FRAME_ID,
            "url": params.get("url", ""),
            "tabId": self.tab.id,
            "timeStamp": self.clock(),
        })

    def on_committed(self, params: Dict):
        is_main_frame = params.get("is_main_frame", True)
        self.broadcaster.broadcast("webNavigation.onCommitted", {
            "frameId": MAIN_FRAME_ID if is_main_frame else params.get("frame_routing_id", MAIN_FRAME_ID),
            "parentFrameId": PARENT_FRAME_ID_NONE,
            "processId": self.tab.process_id,
            "tabId": self.tab.id,
            "timeStamp": self.clock(),
            "url": params.get("url", ""),
        })
